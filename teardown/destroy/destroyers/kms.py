"""KMS key destroyer."""

from __future__ import annotations

from typing import Iterable, Optional

from ...aws.client import ClientFactory
from ...models.execution_context import ExecutionContext
from ...models.outcome import DestructionOutcome
from ...models.resource import ResourceDescriptor
from ...models.target import Target
from .base import ServiceDestroyer

PENDING_WINDOW_DAYS = 7
AWS_ALIAS_PREFIX = "alias/aws/"


class KMSDestroyer(ServiceDestroyer):
    """Destroyer for customer-managed KMS keys, found through their aliases.

    Keys cannot be deleted immediately; they are scheduled for deletion after
    the minimum pending window and the alias is removed.
    """

    @property
    def service_name(self) -> str:
        return "kms"

    @property
    def resource_class(self) -> str:
        return "KMS key"

    def _enumerate(self, clients: ClientFactory, target: Target) -> Iterable[ResourceDescriptor]:
        kms = clients.client("kms", target.region)
        return [
            self._descriptor(
                target,
                identifier=alias["AliasName"],
                name=alias["AliasName"][len("alias/") :],
                key_id=alias["TargetKeyId"],
            )
            for alias in self._paginate(kms, "list_aliases", "Aliases")
            if alias.get("TargetKeyId") and not alias["AliasName"].startswith(AWS_ALIAS_PREFIX)
        ]

    def _delete(
        self,
        clients: ClientFactory,
        descriptor: ResourceDescriptor,
        ctx: ExecutionContext,
    ) -> Optional[DestructionOutcome]:
        kms = clients.client("kms", descriptor.region)
        key_id = descriptor.metadata["key_id"]
        metadata = self._call(kms.describe_key, KeyId=key_id)["KeyMetadata"]

        if metadata.get("KeyManager") == "AWS":
            return DestructionOutcome.skipped(descriptor, "AWS managed key")

        self._call(kms.delete_alias, AliasName=descriptor.identifier)

        if metadata.get("KeyState") == "PendingDeletion":
            self.logger.info(f"Key {key_id} already pending deletion")
            return None

        response = self._call(kms.schedule_key_deletion, KeyId=key_id, PendingWindowInDays=PENDING_WINDOW_DAYS)
        self.logger.info(f"Key {key_id} scheduled for deletion on {response.get('DeletionDate')}")
        return None

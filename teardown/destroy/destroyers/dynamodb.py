"""DynamoDB table destroyer."""

from __future__ import annotations

from typing import Iterable, Optional

from ...aws.client import ClientFactory
from ...models.execution_context import ExecutionContext
from ...models.outcome import DestructionOutcome
from ...models.resource import ResourceDescriptor
from ...models.target import Target
from ..errors import DependencyNotReadyError
from .base import ServiceDestroyer


class DynamoDBDestroyer(ServiceDestroyer):
    """Destroyer for DynamoDB tables (including Terraform lock tables)."""

    @property
    def service_name(self) -> str:
        return "dynamodb"

    @property
    def resource_class(self) -> str:
        return "DynamoDB table"

    def _enumerate(self, clients: ClientFactory, target: Target) -> Iterable[ResourceDescriptor]:
        dynamodb = clients.client("dynamodb", target.region)
        return [
            self._descriptor(target, identifier=name, name=name)
            for name in self._paginate(dynamodb, "list_tables", "TableNames")
        ]

    def _delete(
        self,
        clients: ClientFactory,
        descriptor: ResourceDescriptor,
        ctx: ExecutionContext,
    ) -> Optional[DestructionOutcome]:
        dynamodb = clients.client("dynamodb", descriptor.region)
        table = self._call(dynamodb.describe_table, TableName=descriptor.identifier)["Table"]

        status = table.get("TableStatus")
        if status == "DELETING":
            return DestructionOutcome.skipped(descriptor, "table already deleting", "NotFoundError")
        if status not in (None, "ACTIVE", "ARCHIVED", "INACCESSIBLE_ENCRYPTION_CREDENTIALS"):
            raise DependencyNotReadyError(f"table {descriptor.identifier} is {status}", status)

        if table.get("DeletionProtectionEnabled"):
            self.logger.info(f"Turning off deletion protection on {descriptor.identifier}")
            self._call(dynamodb.update_table, TableName=descriptor.identifier, DeletionProtectionEnabled=False)

        self._call(dynamodb.delete_table, TableName=descriptor.identifier)
        return None

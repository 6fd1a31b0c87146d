"""SNS topic destroyer."""

from __future__ import annotations

from typing import Dict, Iterable, Optional

from ...aws.client import ClientFactory
from ...models.execution_context import ExecutionContext
from ...models.outcome import DestructionOutcome
from ...models.resource import ResourceDescriptor
from ...models.target import Target
from ..errors import CredentialsError, SessionRevokedError, TeardownError
from .base import ServiceDestroyer, tags_to_dict


class SNSDestroyer(ServiceDestroyer):
    """Destroyer for SNS topics."""

    @property
    def service_name(self) -> str:
        return "sns"

    @property
    def resource_class(self) -> str:
        return "SNS topic"

    def _enumerate(self, clients: ClientFactory, target: Target) -> Iterable[ResourceDescriptor]:
        sns = clients.client("sns", target.region)
        return [
            self._descriptor(
                target,
                identifier=topic["TopicArn"],
                name=topic["TopicArn"].rsplit(":", 1)[-1],
                tags=self._tags(sns, topic["TopicArn"]),
            )
            for topic in self._paginate(sns, "list_topics", "Topics")
        ]

    def _tags(self, sns, arn: str) -> Dict[str, str]:
        try:
            response = self._call(sns.list_tags_for_resource, ResourceArn=arn)
        except (CredentialsError, SessionRevokedError):
            raise
        except TeardownError:
            return {}
        return tags_to_dict(response.get("Tags", []))

    def _delete(
        self,
        clients: ClientFactory,
        descriptor: ResourceDescriptor,
        ctx: ExecutionContext,
    ) -> Optional[DestructionOutcome]:
        sns = clients.client("sns", descriptor.region)
        # delete_topic is a no-op for unknown topics; NotFound here means gone
        self._call(sns.get_topic_attributes, TopicArn=descriptor.identifier)
        self._call(sns.delete_topic, TopicArn=descriptor.identifier)
        return None

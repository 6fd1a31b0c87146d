"""SSM Parameter Store destroyer."""

from __future__ import annotations

from typing import Iterable, Optional

from ...aws.client import ClientFactory
from ...models.execution_context import ExecutionContext
from ...models.outcome import DestructionOutcome
from ...models.resource import ResourceDescriptor
from ...models.target import Target
from .base import ServiceDestroyer


class SSMParameterDestroyer(ServiceDestroyer):
    """Destroyer for SSM parameters."""

    @property
    def service_name(self) -> str:
        return "ssm"

    @property
    def resource_class(self) -> str:
        return "SSM parameter"

    def _enumerate(self, clients: ClientFactory, target: Target) -> Iterable[ResourceDescriptor]:
        ssm = clients.client("ssm", target.region)
        return [
            self._descriptor(target, identifier=param["Name"], name=param["Name"], type=param.get("Type"))
            for param in self._paginate(ssm, "describe_parameters", "Parameters")
        ]

    def _delete(
        self,
        clients: ClientFactory,
        descriptor: ResourceDescriptor,
        ctx: ExecutionContext,
    ) -> Optional[DestructionOutcome]:
        ssm = clients.client("ssm", descriptor.region)
        self._call(ssm.delete_parameter, Name=descriptor.identifier)
        return None

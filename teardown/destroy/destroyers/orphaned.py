"""Orphaned resource sweep.

Unassociated Elastic IPs keep billing after the instances or NAT gateways
using them are gone. Only addresses carrying project ownership tags are
released; untagged addresses are left alone.
"""

from __future__ import annotations

from typing import Iterable, Optional

from ...aws.client import ClientFactory
from ...models.execution_context import ExecutionContext
from ...models.outcome import DestructionOutcome
from ...models.resource import ResourceDescriptor
from ...models.target import Target
from ..errors import DependencyNotReadyError, NotFoundError
from .base import ServiceDestroyer, tags_to_dict


class OrphanedResourceDestroyer(ServiceDestroyer):
    """Destroyer for unassociated, project-tagged Elastic IPs."""

    @property
    def service_name(self) -> str:
        return "orphaned"

    @property
    def resource_class(self) -> str:
        return "unassociated Elastic IP"

    def _enumerate(self, clients: ClientFactory, target: Target) -> Iterable[ResourceDescriptor]:
        ec2 = clients.client("ec2", target.region)
        response = self._call(ec2.describe_addresses)
        return [
            # Name left empty: only ownership tags can match an address
            self._descriptor(
                target,
                identifier=address["AllocationId"],
                name="",
                tags=tags_to_dict(address.get("Tags", [])),
                public_ip=address.get("PublicIp"),
            )
            for address in response.get("Addresses", [])
            if address.get("AllocationId") and not address.get("AssociationId")
        ]

    def _delete(
        self,
        clients: ClientFactory,
        descriptor: ResourceDescriptor,
        ctx: ExecutionContext,
    ) -> Optional[DestructionOutcome]:
        ec2 = clients.client("ec2", descriptor.region)
        response = self._call(ec2.describe_addresses, AllocationIds=[descriptor.identifier])
        addresses = response.get("Addresses", [])
        if not addresses:
            raise NotFoundError(f"address {descriptor.identifier} not found", "InvalidAllocationID.NotFound")
        if addresses[0].get("AssociationId"):
            raise DependencyNotReadyError(
                f"address {descriptor.identifier} was associated since enumeration", "InvalidIPAddress.InUse"
            )

        self._call(ec2.release_address, AllocationId=descriptor.identifier)
        return None

"""Route53 hosted zones and health checks."""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from ...aws.client import ClientFactory
from ...models.execution_context import ExecutionContext
from ...models.outcome import DestructionOutcome
from ...models.resource import ResourceDescriptor
from ...models.target import Target
from .base import GLOBAL_REGION, ServiceDestroyer

HOSTED_ZONE = "hosted-zone"
HEALTH_CHECK = "health-check"
MAX_CHANGES_PER_BATCH = 100


class Route53Destroyer(ServiceDestroyer):
    """Destroyer for Route53 hosted zones and health checks.

    Zones are emptied of every record except the apex SOA and NS sets before
    deletion. Health checks go after zones, since records may reference them.
    """

    @property
    def service_name(self) -> str:
        return "route53"

    @property
    def resource_class(self) -> str:
        return "Route53 resource"

    @property
    def is_global_service(self) -> bool:
        return True

    def _enumerate(self, clients: ClientFactory, target: Target) -> Iterable[ResourceDescriptor]:
        r53 = clients.client("route53", GLOBAL_REGION)
        resources: List[ResourceDescriptor] = []

        for zone in self._paginate(r53, "list_hosted_zones", "HostedZones"):
            zone_id = zone["Id"].split("/")[-1]
            resources.append(
                self._descriptor(
                    target,
                    identifier=zone_id,
                    name=zone["Name"].rstrip("."),
                    resource_class="Route53 hosted zone",
                    kind=HOSTED_ZONE,
                    zone_name=zone["Name"],
                    private=zone.get("Config", {}).get("PrivateZone", False),
                )
            )

        for check in self._paginate(r53, "list_health_checks", "HealthChecks"):
            config = check.get("HealthCheckConfig", {})
            resources.append(
                self._descriptor(
                    target,
                    identifier=check["Id"],
                    name=config.get("FullyQualifiedDomainName", ""),
                    resource_class="Route53 health check",
                    kind=HEALTH_CHECK,
                )
            )
        return resources

    def _delete(
        self,
        clients: ClientFactory,
        descriptor: ResourceDescriptor,
        ctx: ExecutionContext,
    ) -> Optional[DestructionOutcome]:
        r53 = clients.client("route53", GLOBAL_REGION)
        if descriptor.metadata.get("kind") == HEALTH_CHECK:
            self._call(r53.delete_health_check, HealthCheckId=descriptor.identifier)
            return None

        zone_id = descriptor.identifier
        zone_name = descriptor.metadata.get("zone_name") or f"{descriptor.name}."
        changes = [
            {"Action": "DELETE", "ResourceRecordSet": record}
            for record in self._paginate(r53, "list_resource_record_sets", "ResourceRecordSets", HostedZoneId=zone_id)
            if not self._is_apex_record(record, zone_name)
        ]

        for i in range(0, len(changes), MAX_CHANGES_PER_BATCH):
            batch = changes[i : i + MAX_CHANGES_PER_BATCH]
            self._call(
                r53.change_resource_record_sets,
                HostedZoneId=zone_id,
                ChangeBatch={"Comment": "teardown", "Changes": batch},
            )
        if changes:
            self.logger.info(f"Deleted {len(changes)} record sets from {descriptor.name}")

        self._call(r53.delete_hosted_zone, Id=zone_id)
        return None

    @staticmethod
    def _is_apex_record(record: Dict[str, Any], zone_name: str) -> bool:
        return record.get("Type") in ("SOA", "NS") and record.get("Name") == zone_name

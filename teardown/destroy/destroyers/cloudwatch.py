"""CloudWatch alarms, dashboards and log groups."""

from __future__ import annotations

from typing import Iterable, List, Optional

from ...aws.client import ClientFactory
from ...models.execution_context import ExecutionContext
from ...models.outcome import DestructionOutcome
from ...models.resource import ResourceDescriptor
from ...models.target import Target
from ..errors import NotFoundError
from .base import ServiceDestroyer

COMPOSITE_ALARM = "composite-alarm"
DASHBOARD = "dashboard"
METRIC_ALARM = "metric-alarm"
LOG_GROUP = "log-group"

# Composite alarms reference metric alarms and must go first
DELETION_ORDER = (COMPOSITE_ALARM, DASHBOARD, METRIC_ALARM, LOG_GROUP)

RESOURCE_CLASSES = {
    COMPOSITE_ALARM: "CloudWatch composite alarm",
    DASHBOARD: "CloudWatch dashboard",
    METRIC_ALARM: "CloudWatch metric alarm",
    LOG_GROUP: "CloudWatch log group",
}


class CloudWatchDestroyer(ServiceDestroyer):
    """Destroyer for CloudWatch monitoring resources."""

    @property
    def service_name(self) -> str:
        return "cloudwatch"

    @property
    def resource_class(self) -> str:
        return "CloudWatch resource"

    def _enumerate(self, clients: ClientFactory, target: Target) -> Iterable[ResourceDescriptor]:
        cw = clients.client("cloudwatch", target.region)
        logs = clients.client("logs", target.region)

        found = {kind: [] for kind in DELETION_ORDER}
        for alarm in self._paginate(cw, "describe_alarms", "CompositeAlarms", AlarmTypes=["CompositeAlarm"]):
            found[COMPOSITE_ALARM].append(
                self._item(target, COMPOSITE_ALARM, alarm["AlarmName"], arn=alarm.get("AlarmArn"))
            )
        for entry in self._paginate(cw, "list_dashboards", "DashboardEntries"):
            found[DASHBOARD].append(self._item(target, DASHBOARD, entry["DashboardName"]))
        for alarm in self._paginate(cw, "describe_alarms", "MetricAlarms", AlarmTypes=["MetricAlarm"]):
            found[METRIC_ALARM].append(self._item(target, METRIC_ALARM, alarm["AlarmName"], arn=alarm.get("AlarmArn")))
        for group in self._paginate(logs, "describe_log_groups", "logGroups"):
            found[LOG_GROUP].append(self._item(target, LOG_GROUP, group["logGroupName"], arn=group.get("arn")))

        ordered: List[ResourceDescriptor] = []
        for kind in DELETION_ORDER:
            ordered.extend(found[kind])
        return ordered

    def _item(self, target: Target, kind: str, name: str, **metadata) -> ResourceDescriptor:
        return self._descriptor(
            target,
            identifier=name,
            name=name,
            resource_class=RESOURCE_CLASSES[kind],
            kind=kind,
            **metadata,
        )

    def _delete(
        self,
        clients: ClientFactory,
        descriptor: ResourceDescriptor,
        ctx: ExecutionContext,
    ) -> Optional[DestructionOutcome]:
        kind = descriptor.metadata.get("kind")
        name = descriptor.identifier

        if kind in (COMPOSITE_ALARM, METRIC_ALARM):
            cw = clients.client("cloudwatch", descriptor.region)
            # delete_alarms succeeds silently for unknown names
            alarm_type = "CompositeAlarm" if kind == COMPOSITE_ALARM else "MetricAlarm"
            existing = self._call(cw.describe_alarms, AlarmNames=[name], AlarmTypes=[alarm_type])
            if not existing.get("CompositeAlarms") and not existing.get("MetricAlarms"):
                raise NotFoundError(f"alarm {name} not found", "ResourceNotFound")
            self._call(cw.delete_alarms, AlarmNames=[name])
        elif kind == DASHBOARD:
            cw = clients.client("cloudwatch", descriptor.region)
            self._call(cw.delete_dashboards, DashboardNames=[name])
        elif kind == LOG_GROUP:
            logs = clients.client("logs", descriptor.region)
            self._call(logs.delete_log_group, logGroupName=name)
        else:
            raise ValueError(f"Unknown CloudWatch resource kind: {kind}")
        return None

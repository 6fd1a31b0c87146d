"""Unit tests for Route53Destroyer."""

from unittest.mock import MagicMock

import pytest

from teardown.destroy.destroyers.route53 import HEALTH_CHECK, HOSTED_ZONE, Route53Destroyer
from teardown.models.execution_context import ExecutionContext
from teardown.models.outcome import OutcomeStatus
from tests.fixtures.aws import (
    FakeClientFactory,
    make_client_error,
    make_descriptor,
    make_target,
    no_wait_retry,
    stub_paginators,
)

ZONE_NAME = "static-site.example.com."

SOA = {"Name": ZONE_NAME, "Type": "SOA", "TTL": 900, "ResourceRecords": [{"Value": "ns-1.awsdns-00.com."}]}
APEX_NS = {"Name": ZONE_NAME, "Type": "NS", "TTL": 172800, "ResourceRecords": [{"Value": "ns-1.awsdns-00.com."}]}
DELEGATION_NS = {"Name": f"dev.{ZONE_NAME}", "Type": "NS", "TTL": 300, "ResourceRecords": [{"Value": "ns-2."}]}
WWW = {"Name": f"www.{ZONE_NAME}", "Type": "A", "AliasTarget": {"DNSName": "d111.cloudfront.net."}}


@pytest.fixture
def destroyer() -> Route53Destroyer:
    return Route53Destroyer(retry_policy=no_wait_retry())


def _zone_descriptor():
    return make_descriptor("Z0123", "route53", name="static-site.example.com", kind=HOSTED_ZONE, zone_name=ZONE_NAME)


class TestRoute53Destroyer:
    """Test suite for Route53Destroyer."""

    def test_enumerate_zones_and_health_checks(self, destroyer: Route53Destroyer) -> None:
        """Test that zone IDs are stripped of their path and health checks follow zones."""
        r53 = stub_paginators(
            MagicMock(),
            {
                "list_hosted_zones": [
                    {"HostedZones": [{"Id": "/hostedzone/Z0123", "Name": ZONE_NAME, "Config": {"PrivateZone": False}}]}
                ],
                "list_health_checks": [
                    {"HealthChecks": [{"Id": "hc-1", "HealthCheckConfig": {"FullyQualifiedDomainName": "static-site"}}]}
                ],
            },
        )

        resources = destroyer.enumerate(FakeClientFactory(clients={"route53": r53}), make_target())

        assert [(r.identifier, r.metadata["kind"]) for r in resources] == [
            ("Z0123", HOSTED_ZONE),
            ("hc-1", HEALTH_CHECK),
        ]
        assert resources[0].name == "static-site.example.com"
        assert resources[0].metadata["zone_name"] == ZONE_NAME

    def test_apex_soa_and_ns_are_kept(self, destroyer: Route53Destroyer) -> None:
        """Test that every record except the apex SOA and NS sets is removed before the zone."""
        r53 = stub_paginators(
            MagicMock(), {"list_resource_record_sets": [{"ResourceRecordSets": [SOA, APEX_NS, DELEGATION_NS, WWW]}]}
        )

        outcome = destroyer.destroy(FakeClientFactory(clients={"route53": r53}), _zone_descriptor(), ExecutionContext())

        assert outcome.status == OutcomeStatus.DESTROYED
        r53.change_resource_record_sets.assert_called_once()
        batch = r53.change_resource_record_sets.call_args.kwargs["ChangeBatch"]["Changes"]
        assert [change["ResourceRecordSet"] for change in batch] == [DELEGATION_NS, WWW]
        assert {change["Action"] for change in batch} == {"DELETE"}
        r53.delete_hosted_zone.assert_called_once_with(Id="Z0123")

    def test_zone_with_only_apex_records(self, destroyer: Route53Destroyer) -> None:
        """Test that an already empty zone is deleted without a change batch."""
        r53 = stub_paginators(MagicMock(), {"list_resource_record_sets": [{"ResourceRecordSets": [SOA, APEX_NS]}]})

        destroyer.destroy(FakeClientFactory(clients={"route53": r53}), _zone_descriptor(), ExecutionContext())

        r53.change_resource_record_sets.assert_not_called()
        r53.delete_hosted_zone.assert_called_once_with(Id="Z0123")

    def test_record_changes_are_batched(self, destroyer: Route53Destroyer) -> None:
        """Test that large zones are emptied in batches of at most 100 changes."""
        records = [{"Name": f"host{i}.{ZONE_NAME}", "Type": "A"} for i in range(150)]
        r53 = stub_paginators(MagicMock(), {"list_resource_record_sets": [{"ResourceRecordSets": [SOA] + records}]})

        destroyer.destroy(FakeClientFactory(clients={"route53": r53}), _zone_descriptor(), ExecutionContext())

        sizes = [len(c.kwargs["ChangeBatch"]["Changes"]) for c in r53.change_resource_record_sets.call_args_list]
        assert sizes == [100, 50]

    def test_health_check_in_use_is_deferred(self, destroyer: Route53Destroyer) -> None:
        """Test that a health check still referenced by a record waits for a re-run."""
        r53 = MagicMock()
        r53.delete_health_check.side_effect = make_client_error("HealthCheckInUse", "DeleteHealthCheck")
        descriptor = make_descriptor("hc-1", "route53", kind=HEALTH_CHECK)

        outcome = destroyer.destroy(FakeClientFactory(clients={"route53": r53}), descriptor, ExecutionContext())

        assert outcome.status == OutcomeStatus.DEFERRED

"""Unit tests for CloudWatchDestroyer."""

from unittest.mock import MagicMock

import pytest

from teardown.destroy.destroyers.cloudwatch import COMPOSITE_ALARM, LOG_GROUP, METRIC_ALARM, CloudWatchDestroyer
from teardown.models.execution_context import ExecutionContext
from teardown.models.outcome import OutcomeStatus
from tests.fixtures.aws import FakeClientFactory, make_descriptor, make_target, no_wait_retry, stub_paginators


@pytest.fixture
def destroyer() -> CloudWatchDestroyer:
    return CloudWatchDestroyer(retry_policy=no_wait_retry())


class TestCloudWatchDestroyer:
    """Test suite for CloudWatchDestroyer."""

    def test_composite_alarms_come_before_metric_alarms(self, destroyer: CloudWatchDestroyer) -> None:
        """Test that composite alarms are deleted before the alarms they reference."""
        cw = stub_paginators(
            MagicMock(),
            {
                "describe_alarms": [
                    {
                        "MetricAlarms": [{"AlarmName": "static-site-5xx", "AlarmArn": "arn:m"}],
                        "CompositeAlarms": [{"AlarmName": "static-site-health", "AlarmArn": "arn:c"}],
                    }
                ],
                "list_dashboards": [{"DashboardEntries": [{"DashboardName": "static-site-overview"}]}],
            },
        )
        logs = stub_paginators(
            MagicMock(), {"describe_log_groups": [{"logGroups": [{"logGroupName": "/aws/lambda/static-site"}]}]}
        )
        clients = FakeClientFactory(clients={"cloudwatch": cw, "logs": logs})

        resources = destroyer.enumerate(clients, make_target())

        assert [r.identifier for r in resources] == [
            "static-site-health",
            "static-site-overview",
            "static-site-5xx",
            "/aws/lambda/static-site",
        ]
        assert resources[0].resource_class == "CloudWatch composite alarm"
        assert resources[2].metadata["kind"] == METRIC_ALARM

    def test_delete_alarm(self, destroyer: CloudWatchDestroyer) -> None:
        """Test that an existing alarm is deleted by name."""
        cw = MagicMock()
        cw.describe_alarms.return_value = {"CompositeAlarms": [{"AlarmName": "static-site-health"}]}
        descriptor = make_descriptor("static-site-health", "cloudwatch", kind=COMPOSITE_ALARM)

        outcome = destroyer.destroy(FakeClientFactory(clients={"cloudwatch": cw}), descriptor, ExecutionContext())

        assert outcome.status == OutcomeStatus.DESTROYED
        cw.describe_alarms.assert_called_once_with(AlarmNames=["static-site-health"], AlarmTypes=["CompositeAlarm"])
        cw.delete_alarms.assert_called_once_with(AlarmNames=["static-site-health"])

    def test_missing_alarm_is_skipped(self, destroyer: CloudWatchDestroyer) -> None:
        """Test that an alarm gone since enumeration is not re-deleted."""
        cw = MagicMock()
        cw.describe_alarms.return_value = {"CompositeAlarms": [], "MetricAlarms": []}
        descriptor = make_descriptor("static-site-5xx", "cloudwatch", kind=METRIC_ALARM)

        outcome = destroyer.destroy(FakeClientFactory(clients={"cloudwatch": cw}), descriptor, ExecutionContext())

        assert outcome.status == OutcomeStatus.SKIPPED
        cw.delete_alarms.assert_not_called()

    def test_delete_log_group(self, destroyer: CloudWatchDestroyer) -> None:
        """Test that log groups are deleted through the logs client."""
        logs = MagicMock()
        descriptor = make_descriptor("/aws/lambda/static-site", "cloudwatch", kind=LOG_GROUP)

        outcome = destroyer.destroy(FakeClientFactory(clients={"logs": logs}), descriptor, ExecutionContext())

        assert outcome.status == OutcomeStatus.DESTROYED
        logs.delete_log_group.assert_called_once_with(logGroupName="/aws/lambda/static-site")

    def test_unknown_kind_fails(self, destroyer: CloudWatchDestroyer) -> None:
        """Test that a descriptor without a known kind is never guessed at."""
        outcome = destroyer.destroy(
            FakeClientFactory(), make_descriptor("static-site-x", "cloudwatch", kind="insight-rule"), ExecutionContext()
        )

        assert outcome.status == OutcomeStatus.FAILED
        assert outcome.error_type == "ValueError"

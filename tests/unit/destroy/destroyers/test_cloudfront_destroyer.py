"""Unit tests for CloudFrontDestroyer."""

from unittest.mock import MagicMock

import pytest

from teardown.destroy.destroyers.cloudfront import CloudFrontDestroyer
from teardown.models.execution_context import ExecutionContext
from teardown.models.outcome import OutcomeStatus
from tests.fixtures.aws import (
    FakeClientFactory,
    FakeClock,
    make_client_error,
    make_descriptor,
    make_target,
    no_wait_retry,
)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def destroyer(clock: FakeClock) -> CloudFrontDestroyer:
    return CloudFrontDestroyer(retry_policy=no_wait_retry(), clock=clock, sleep=clock.advance, poll_interval=30)


@pytest.fixture
def cloudfront() -> MagicMock:
    cf = MagicMock()
    cf.get_distribution_config.return_value = {
        "DistributionConfig": {"Enabled": True, "Comment": "static-site-dev"},
        "ETag": "E1",
    }
    cf.update_distribution.return_value = {"ETag": "E2"}
    return cf


class TestCloudFrontDestroyer:
    """Test suite for CloudFrontDestroyer."""

    def test_enumerate_names_by_comment(self, destroyer: CloudFrontDestroyer) -> None:
        """Test that the distribution comment is its matching name."""
        cf = MagicMock()
        cf.get_paginator.return_value.paginate.return_value = [
            {
                "DistributionList": {
                    "Items": [
                        {
                            "Id": "E2ABC",
                            "ARN": "arn:aws:cloudfront::822529998967:distribution/E2ABC",
                            "Comment": "static-site-dev",
                            "Aliases": {"Items": ["www.example.com"]},
                            "Status": "Deployed",
                            "Enabled": True,
                        },
                        {"Id": "E3XYZ", "Comment": "", "Aliases": {"Items": ["shop.example.com"]}},
                    ]
                }
            }
        ]
        cf.list_tags_for_resource.return_value = {"Tags": {"Items": [{"Key": "Project", "Value": "static-site"}]}}

        resources = destroyer.enumerate(FakeClientFactory(clients={"cloudfront": cf}), make_target())

        assert [r.name for r in resources] == ["static-site-dev", "shop.example.com"]
        assert resources[0].tags == {"Project": "static-site"}
        assert resources[0].region == "us-east-1"
        cf.list_tags_for_resource.assert_called_once()

    def test_disables_waits_and_deletes(self, destroyer: CloudFrontDestroyer, cloudfront: MagicMock) -> None:
        """Test the disable, propagate, delete sequence."""
        cloudfront.get_distribution.side_effect = [
            {"Distribution": {"Status": "InProgress"}, "ETag": "E2"},
            {"Distribution": {"Status": "Deployed"}, "ETag": "E3"},
        ]
        clients = FakeClientFactory(clients={"cloudfront": cloudfront})

        outcome = destroyer.destroy(clients, make_descriptor("E2ABC", "cloudfront"), ExecutionContext())

        assert outcome.status == OutcomeStatus.DESTROYED
        config = cloudfront.update_distribution.call_args.kwargs["DistributionConfig"]
        assert config["Enabled"] is False
        assert cloudfront.update_distribution.call_args.kwargs["IfMatch"] == "E1"
        cloudfront.delete_distribution.assert_called_once_with(Id="E2ABC", IfMatch="E3")

    def test_already_disabled_skips_update(self, destroyer: CloudFrontDestroyer, cloudfront: MagicMock) -> None:
        """Test that a disabled distribution is not updated again."""
        cloudfront.get_distribution_config.return_value = {"DistributionConfig": {"Enabled": False}, "ETag": "E1"}
        cloudfront.get_distribution.return_value = {"Distribution": {"Status": "Deployed"}, "ETag": "E1"}

        outcome = destroyer.destroy(
            FakeClientFactory(clients={"cloudfront": cloudfront}),
            make_descriptor("E2ABC", "cloudfront"),
            ExecutionContext(),
        )

        assert outcome.status == OutcomeStatus.DESTROYED
        cloudfront.update_distribution.assert_not_called()

    def test_propagation_timeout_defers(self, destroyer: CloudFrontDestroyer, cloudfront: MagicMock) -> None:
        """Test that a distribution still propagating is deferred, not failed."""
        cloudfront.get_distribution.return_value = {"Distribution": {"Status": "InProgress"}, "ETag": "E2"}
        ctx = ExecutionContext(per_operation_timeout=60)

        outcome = destroyer.destroy(
            FakeClientFactory(clients={"cloudfront": cloudfront}), make_descriptor("E2ABC", "cloudfront"), ctx
        )

        assert outcome.status == OutcomeStatus.DEFERRED
        assert "re-run" in outcome.error
        cloudfront.delete_distribution.assert_not_called()
        assert cloudfront.get_distribution.call_count == 3

    def test_missing_distribution_is_skipped(self, destroyer: CloudFrontDestroyer, cloudfront: MagicMock) -> None:
        """Test idempotence."""
        cloudfront.get_distribution_config.side_effect = make_client_error(
            "NoSuchDistribution", "GetDistributionConfig", 404
        )
        clients = FakeClientFactory(clients={"cloudfront": cloudfront})

        for _ in range(2):
            outcome = destroyer.destroy(clients, make_descriptor("E2ABC", "cloudfront"), ExecutionContext())
            assert outcome.status == OutcomeStatus.SKIPPED

    def test_etag_conflict_is_deferred(self, destroyer: CloudFrontDestroyer, cloudfront: MagicMock) -> None:
        """Test that a concurrent modification defers the distribution."""
        cloudfront.update_distribution.side_effect = make_client_error("PreconditionFailed", "UpdateDistribution", 412)

        outcome = destroyer.destroy(
            FakeClientFactory(clients={"cloudfront": cloudfront}),
            make_descriptor("E2ABC", "cloudfront"),
            ExecutionContext(),
        )

        assert outcome.status == OutcomeStatus.DEFERRED

"""Unit tests for Validator."""

from typing import List

import pytest

from teardown.destroy.errors import ThrottlingError
from teardown.destroy.matcher import ResourceMatcher
from teardown.destroy.validator import FALLBACK_REGIONS, Validator
from teardown.models.target import AccountMap, Target
from tests.fixtures.aws import (
    DEV_ACCOUNT,
    MANAGEMENT_ACCOUNT,
    STAGING_ACCOUNT,
    FakeClientFactory,
    FakeDestroyer,
    FakeSessionManager,
    make_client_error,
    make_patterns,
    make_registry,
)

REGIONS = {"Regions": [{"RegionName": "us-west-2"}, {"RegionName": "us-east-1"}, {"RegionName": "eu-west-1"}]}


def _targets() -> List[Target]:
    account_map = AccountMap.from_dict(
        {"management": MANAGEMENT_ACCOUNT, "dev": DEV_ACCOUNT, "staging": STAGING_ACCOUNT}
    )
    return account_map.build_targets(["us-east-1", "us-west-2"], base_account=MANAGEMENT_ACCOUNT)


def _sessions(**kwargs) -> FakeSessionManager:
    sessions = FakeSessionManager(**kwargs)
    for account in (MANAGEMENT_ACCOUNT, DEV_ACCOUNT, STAGING_ACCOUNT):
        sessions.factory_for(account).client("ec2").describe_regions.return_value = REGIONS
    return sessions


@pytest.fixture
def matcher() -> ResourceMatcher:
    return ResourceMatcher(make_patterns("static-site"))


class BrokenDestroyer(FakeDestroyer):
    def _enumerate(self, clients, target):
        raise ThrottlingError("Rate exceeded", "Throttling")


class TestValidator:
    """Test suite for Validator."""

    def test_passes_when_nothing_remains(self, matcher: ResourceMatcher) -> None:
        """Test a clean validation."""
        registry = make_registry(FakeDestroyer("dynamodb", ["unrelated-table"]))

        report = Validator(_sessions(), registry, matcher).validate(_targets())

        assert report.passed is True
        assert report.accounts_checked == [MANAGEMENT_ACCOUNT, DEV_ACCOUNT, STAGING_ACCOUNT]
        assert report.regions_checked == ["us-east-1", "us-west-2"]
        assert report.errors == []

    def test_names_stragglers(self, matcher: ResourceMatcher) -> None:
        """Test that remaining resources are reported per account and region."""
        registry = make_registry(FakeDestroyer("dynamodb", ["static-site-locks"]))

        report = Validator(_sessions(), registry, matcher).validate(_targets())

        assert report.passed is False
        assert len(report.stragglers) == 6
        assert {(s.account_id, s.region) for s in report.stragglers} == {
            (account, region)
            for account in (MANAGEMENT_ACCOUNT, DEV_ACCOUNT, STAGING_ACCOUNT)
            for region in ("us-east-1", "us-west-2")
        }

    def test_global_service_scanned_once_per_account(self, matcher: ResourceMatcher) -> None:
        """Test that a global straggler is reported once."""
        destroyer = FakeDestroyer("cloudfront", ["static-site-cdn"], global_service=True)

        report = Validator(_sessions(), make_registry(destroyer), matcher).validate(_targets())

        assert len(report.stragglers) == 3
        assert {entry[3] for entry in destroyer.log if entry[0] == "enumerate"} == {"us-east-1"}

    def test_scans_regions_outside_the_run(self, matcher: ResourceMatcher) -> None:
        """Test that validation covers every enabled region with the prefix."""
        sessions = _sessions()
        sessions.factory_for(DEV_ACCOUNT).client("ec2").describe_regions.return_value = {
            "Regions": [{"RegionName": "us-east-1"}, {"RegionName": "us-east-2"}]
        }
        destroyer = FakeDestroyer("dynamodb", ["static-site-locks"])
        targets = [t for t in _targets() if t.account_id == DEV_ACCOUNT]

        report = Validator(sessions, make_registry(destroyer), matcher).validate(targets)

        assert sorted(s.region for s in report.stragglers) == ["us-east-1", "us-east-2"]

    def test_unvalidated_and_excluded_destroyers_are_skipped(self, matcher: ResourceMatcher) -> None:
        """Test destroyer selection for the scan."""
        state = FakeDestroyer("terraform_state", ["module.cross_account.static-site"], global_service=True)
        state.validated = False
        logs = FakeDestroyer("cloudtrail_buckets", ["static-site-cloudtrail-logs"], global_service=True)
        tables = FakeDestroyer("dynamodb", ["static-site-locks"])
        registry = make_registry(state, logs, tables)

        validator = Validator(_sessions(), registry, matcher, exclude=["cloudtrail_buckets"])

        assert [d.service_name for d in validator.destroyers()] == ["dynamodb"]

    def test_service_names_restrict_scan(self, matcher: ResourceMatcher) -> None:
        """Test that only the scope's destroyers are scanned."""
        registry = make_registry(FakeDestroyer("iam", ["static-site-role"]), FakeDestroyer("dynamodb", []))

        validator = Validator(_sessions(), registry, matcher, service_names=["dynamodb", "s3"])

        assert [d.service_name for d in validator.destroyers()] == ["dynamodb"]

    def test_denied_account_is_reported(self, matcher: ResourceMatcher) -> None:
        """Test that an inaccessible account is an error, not a failure."""
        registry = make_registry(FakeDestroyer("dynamodb", ["static-site-locks"]))

        report = Validator(_sessions(denied=[STAGING_ACCOUNT]), registry, matcher).validate(_targets())

        assert len(report.errors) == 1
        assert STAGING_ACCOUNT in report.errors[0]
        assert STAGING_ACCOUNT in report.accounts_checked
        assert STAGING_ACCOUNT not in {s.account_id for s in report.stragglers}

    def test_scan_errors_are_collected(self, matcher: ResourceMatcher) -> None:
        """Test that an unavailable service does not stop validation."""
        registry = make_registry(BrokenDestroyer("sns"), FakeDestroyer("dynamodb", ["static-site-locks"]))
        targets = [t for t in _targets() if t.account_id == DEV_ACCOUNT]

        report = Validator(_sessions(), registry, matcher).validate(targets)

        assert len(report.errors) == 2
        assert "Rate exceeded" in report.errors[0]
        assert len(report.stragglers) == 2

    def test_region_fallback(self, matcher: ResourceMatcher) -> None:
        """Test the fallback region list."""
        clients = FakeClientFactory()
        clients.client("ec2").describe_regions.side_effect = make_client_error("UnauthorizedOperation")

        regions = Validator(_sessions(), make_registry(), matcher).validation_regions(clients)

        assert regions == list(FALLBACK_REGIONS)

    def test_region_prefix(self, matcher: ResourceMatcher) -> None:
        """Test region filtering by prefix."""
        clients = FakeClientFactory()
        clients.client("ec2").describe_regions.return_value = REGIONS

        regions = Validator(_sessions(), make_registry(), matcher, region_prefix="eu-").validation_regions(clients)

        assert regions == ["eu-west-1"]

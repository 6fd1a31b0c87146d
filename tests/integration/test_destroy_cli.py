"""Integration tests for the teardown CLI commands."""

from __future__ import annotations

import json
from pathlib import Path
from typing import List, Optional
from unittest.mock import MagicMock, patch

import pytest
from rich.console import Console
from typer.testing import CliRunner

import teardown.cli.main as cli_main
from teardown.cli.main import app
from teardown.destroy.destroyers.s3 import S3Destroyer
from teardown.destroy.engine import DestructionEngine
from teardown.destroy.errors import CredentialsError
from teardown.destroy.lazy_delete import LazyDeleteStore
from teardown.destroy.reporter import LATEST_REPORT, Reporter
from teardown.models.lazy_delete import LazyDeleteEntry
from tests.fixtures.aws import (
    DEV_ACCOUNT,
    MANAGEMENT_ACCOUNT,
    STAGING_ACCOUNT,
    FakeDestroyer,
    FakeSessionManager,
    make_client_error,
    make_registry,
    no_wait_retry,
)

CONFIG_YAML = f"""
project_name: static-site
regions: [us-east-1]
accounts:
  management: "{MANAGEMENT_ACCOUNT}"
  dev: "{DEV_ACCOUNT}"
  staging: "{STAGING_ACCOUNT}"
"""


@pytest.fixture
def runner() -> CliRunner:
    """Create CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def wide_console(monkeypatch: pytest.MonkeyPatch) -> Console:
    """Print to a console wide enough that table cells are never truncated."""
    console = Console(width=200)
    monkeypatch.setattr(cli_main, "console", console)
    return console


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "teardown.yaml"
    path.write_text(CONFIG_YAML + f"output_dir: {tmp_path}\n")
    return path


@pytest.fixture
def sessions() -> FakeSessionManager:
    sessions = FakeSessionManager()
    for account in (MANAGEMENT_ACCOUNT, DEV_ACCOUNT, STAGING_ACCOUNT):
        clients = sessions.factory_for(account)
        clients.client("ec2").describe_regions.return_value = {"Regions": [{"RegionName": "us-east-1"}]}
        clients.client("s3").list_buckets.return_value = {"Buckets": []}
    return sessions


@pytest.fixture
def tables() -> FakeDestroyer:
    return FakeDestroyer("dynamodb", ["static-site-locks", "billing-ledger"])


@pytest.fixture
def fake_engine(sessions: FakeSessionManager, tables: FakeDestroyer):
    """Patch build_engine to wire the fakes instead of boto3."""

    def _build(ctx, output_dir):
        config = cli_main.config
        return DestructionEngine(
            ctx,
            config.ownership_patterns(),
            config.account_map(),
            sessions=sessions,
            registry=make_registry(S3Destroyer(retry_policy=no_wait_retry()), tables),
            reporter=Reporter(console=cli_main.console, output_dir=output_dir),
            validation_region_prefix=config.validation_region_prefix,
        )

    with patch("teardown.cli.main.build_engine", side_effect=_build) as mock_build:
        yield mock_build


def _invoke(runner: CliRunner, config_file: Path, args: List[str], input: Optional[str] = None):
    return runner.invoke(app, ["--config", str(config_file)] + args, input=input)


class TestGlobalOptions:
    """Tests for the app callback and simple commands."""

    def test_version(self, runner: CliRunner, config_file: Path) -> None:
        """Test the version command."""
        result = _invoke(runner, config_file, ["version"])

        assert result.exit_code == 0
        assert "teardown version 0.4.0" in result.stdout

    def test_missing_config_file(self, runner: CliRunner, tmp_path: Path) -> None:
        """Test that a named config file must exist."""
        result = runner.invoke(app, ["--config", str(tmp_path / "missing.yaml"), "version"])

        assert result.exit_code == 1
        assert "Config file not found" in result.stdout

    @patch("teardown.cli.main.validate_credentials")
    def test_whoami(self, mock_validate: MagicMock, runner: CliRunner, config_file: Path) -> None:
        """Test showing the caller identity."""
        mock_validate.return_value = {
            "account_id": MANAGEMENT_ACCOUNT,
            "user_id": "AIDAEXAMPLE",
            "arn": f"arn:aws:iam::{MANAGEMENT_ACCOUNT}:user/deployer",
        }

        result = _invoke(runner, config_file, ["--profile", "sandbox", "whoami"])

        assert result.exit_code == 0
        assert MANAGEMENT_ACCOUNT in result.stdout
        mock_validate.assert_called_once_with("sandbox")

    @patch("teardown.cli.main.validate_credentials")
    def test_whoami_without_credentials(self, mock_validate: MagicMock, runner: CliRunner, config_file: Path) -> None:
        """Test the error path of whoami."""
        mock_validate.side_effect = cli_main.CredentialValidationError("No AWS credentials found.")

        result = _invoke(runner, config_file, ["whoami"])

        assert result.exit_code == 1
        assert "No AWS credentials found." in result.stdout


class TestDestroyCommand:
    """Tests for the destroy command."""

    def test_dry_run(self, runner, config_file, fake_engine, tables, tmp_path) -> None:
        """Test that a dry run lists resources and destroys nothing."""
        result = _invoke(runner, config_file, ["destroy", "--dry-run"])

        assert result.exit_code == 0
        assert "Teardown Plan" in result.stdout
        assert "static-site-locks" in result.stdout
        assert tables.deleted == set()
        assert (tmp_path / LATEST_REPORT).exists()

    def test_confirmed_destroy(self, runner, config_file, fake_engine, tables, tmp_path) -> None:
        """Test typing the phrase and confirming twice."""
        result = _invoke(runner, config_file, ["destroy"], input="DESTROY EVERYTHING\ny\n")

        assert result.exit_code == 0
        assert "FINAL WARNING" in result.stdout
        assert "COMPLETED" in result.stdout
        assert "Validation passed" in result.stdout
        assert len(tables.deleted) == 3
        with open(tmp_path / LATEST_REPORT) as f:
            report = json.load(f)
        assert report["resources_destroyed"] == 3
        assert list(tmp_path.glob("destroy-*.log"))

    def test_wrong_phrase_cancels(self, runner, config_file, fake_engine, tables) -> None:
        """Test that anything but the exact phrase cancels with exit code 2."""
        result = _invoke(runner, config_file, ["destroy"], input="destroy everything\n")

        assert result.exit_code == 2
        assert "Cancelled." in result.stdout
        assert tables.log == []

    def test_second_confirmation_declined(self, runner, config_file, fake_engine, tables) -> None:
        """Test that the second prompt also guards the run."""
        result = _invoke(runner, config_file, ["destroy"], input="DESTROY EVERYTHING\nn\n")

        assert result.exit_code == 2
        assert tables.log == []

    def test_environment_scope(self, runner, config_file, fake_engine, tables) -> None:
        """Test the environment phrase and that other accounts are untouched."""
        result = _invoke(
            runner, config_file, ["destroy", "--scope", "environment", "-e", "dev"], input="DESTROY DEV\ny\n"
        )

        assert result.exit_code == 0
        assert {account for account, _, _ in tables.deleted} == {DEV_ACCOUNT}

    def test_force_with_stragglers_exits_zero(self, runner, config_file, fake_engine, sessions, tmp_path) -> None:
        """Test that a partial run with stragglers still completes."""
        stubborn = FakeDestroyer("dynamodb", ["static-site-locks"], fail=["static-site-locks"])
        fake_engine.side_effect = lambda ctx, out: DestructionEngine(
            ctx,
            cli_main.config.ownership_patterns(),
            cli_main.config.account_map(),
            sessions=sessions,
            registry=make_registry(stubborn),
            reporter=Reporter(console=cli_main.console, output_dir=out),
        )

        result = _invoke(runner, config_file, ["destroy", "--force"])

        assert result.exit_code == 0
        assert "PARTIAL" in result.stdout
        assert "Remaining resources (3)" in result.stdout

    def test_lost_credentials_exit_one(self, runner, config_file, fake_engine, sessions) -> None:
        """Test that a halted run exits with code 1."""
        sessions.caller_account = MagicMock(side_effect=CredentialsError("ExpiredToken"))

        result = _invoke(runner, config_file, ["destroy", "--force"])

        assert result.exit_code == 1
        assert "FAILED" in result.stdout

    def test_invalid_scope(self, runner, config_file, fake_engine) -> None:
        """Test option validation."""
        result = _invoke(runner, config_file, ["destroy", "--scope", "region"])

        assert result.exit_code == 1
        assert "Invalid scope" in result.stdout
        fake_engine.assert_not_called()

    def test_environment_scope_needs_environment(self, runner, config_file, fake_engine) -> None:
        """Test that --scope environment requires --environment."""
        result = _invoke(runner, config_file, ["destroy", "--scope", "environment"])

        assert result.exit_code == 1
        assert "requires --environment" in result.stdout

    def test_invalid_account_filter(self, runner, config_file, fake_engine) -> None:
        """Test that account IDs are checked."""
        result = _invoke(runner, config_file, ["destroy", "--account-filter", "1234,dev"])

        assert result.exit_code == 1
        assert "Invalid account ID" in result.stdout

    def test_missing_project_name(self, runner, tmp_path) -> None:
        """Test that no run starts without ownership patterns."""
        path = tmp_path / "teardown.yaml"
        path.write_text(f"output_dir: {tmp_path}\n")

        with patch("teardown.cli.main.boto3.Session") as mock_session:
            result = runner.invoke(app, ["--config", str(path), "destroy", "--dry-run"])

        assert result.exit_code == 1
        assert "No project name configured" in result.stdout
        mock_session.assert_not_called()


class TestValidateCommand:
    """Tests for the validate command."""

    def test_validate_clean(self, runner, config_file, fake_engine, tables) -> None:
        """Test a clean validation."""
        tables.gone = {"static-site-locks"}

        result = _invoke(runner, config_file, ["validate"])

        assert result.exit_code == 0
        assert "Validation passed" in result.stdout

    def test_validate_stragglers(self, runner, config_file, fake_engine, tables) -> None:
        """Test that stragglers are listed."""
        result = _invoke(runner, config_file, ["validate", "--account-filter", DEV_ACCOUNT])

        assert result.exit_code == 0
        assert "Remaining resources (1)" in result.stdout
        assert tables.deleted == set()


class TestLazyDeleteCommands:
    """Tests for the lazy-delete command group."""

    def test_list_empty(self, runner, config_file) -> None:
        """Test listing without a tracking file."""
        result = _invoke(runner, config_file, ["lazy-delete", "list"])

        assert result.exit_code == 0
        assert "No lazy-delete entries." in result.stdout

    def test_list_entries(self, runner, config_file, tmp_path) -> None:
        """Test listing tracked buckets."""
        LazyDeleteStore.in_dir(tmp_path).save(
            [LazyDeleteEntry("static-site-logs-dev", DEV_ACCOUNT, "us-east-1", "emptying exceeded 180s timeout")]
        )

        result = _invoke(runner, config_file, ["lazy-delete", "list"])

        assert result.exit_code == 0
        assert "static-site-logs-dev" in result.stdout
        assert "pending" in result.stdout

    def test_recheck(self, runner, config_file, fake_engine, sessions, tmp_path) -> None:
        """Test finishing a bucket whose objects have expired."""
        LazyDeleteStore.in_dir(tmp_path).save(
            [LazyDeleteEntry("static-site-logs-dev", DEV_ACCOUNT, "us-east-1", "emptying exceeded 180s timeout")]
        )

        result = _invoke(runner, config_file, ["lazy-delete", "recheck"])

        assert result.exit_code == 0
        assert "1 deleted, 0 still pending, 0 failed" in result.stdout
        assert LazyDeleteStore.in_dir(tmp_path).pending() == []
        sessions.factory_for(DEV_ACCOUNT).clients["s3"].delete_bucket.assert_called_once_with(
            Bucket="static-site-logs-dev"
        )

    def test_recheck_bucket_gone(self, runner, config_file, fake_engine, sessions, tmp_path) -> None:
        """Test that a bucket already removed completes its entry."""
        LazyDeleteStore.in_dir(tmp_path).save(
            [LazyDeleteEntry("static-site-logs-dev", DEV_ACCOUNT, "us-east-1", "timeout")]
        )
        s3 = sessions.factory_for(DEV_ACCOUNT).client("s3")
        s3.head_bucket.side_effect = make_client_error("404", "HeadBucket", 404)

        result = _invoke(runner, config_file, ["lazy-delete", "recheck"])

        assert result.exit_code == 0
        assert "completed" in result.stdout
        s3.delete_bucket.assert_not_called()

    def test_recheck_account_filter(self, runner, config_file, fake_engine, sessions, tmp_path) -> None:
        """Test that --account-filter keeps other accounts' buckets untouched."""
        LazyDeleteStore.in_dir(tmp_path).save(
            [
                LazyDeleteEntry("static-site-logs-dev", DEV_ACCOUNT, "us-east-1", "timeout"),
                LazyDeleteEntry("static-site-logs-staging", STAGING_ACCOUNT, "us-east-1", "timeout"),
            ]
        )

        result = _invoke(runner, config_file, ["lazy-delete", "recheck", "--account-filter", DEV_ACCOUNT])

        assert result.exit_code == 0
        assert "1 deleted, 0 still pending, 0 failed" in result.stdout
        sessions.factory_for(STAGING_ACCOUNT).clients["s3"].delete_bucket.assert_not_called()
        assert [e.account_id for e in LazyDeleteStore.in_dir(tmp_path).pending()] == [STAGING_ACCOUNT]

    def test_list_corrupt_file(self, runner, config_file, tmp_path) -> None:
        """Test that a damaged tracking file is reported with exit code 1."""
        (tmp_path / "lazy-delete.yaml").write_text("entries: [unclosed\n")

        result = _invoke(runner, config_file, ["lazy-delete", "list"])

        assert result.exit_code == 1
        assert "not valid YAML" in result.stdout

"""Unit tests for credential validation."""

from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import NoCredentialsError, ProfileNotFound

from teardown.aws.credentials import CredentialValidationError, validate_credentials
from tests.fixtures.aws import MANAGEMENT_ACCOUNT, make_client_error


class TestValidateCredentials:
    """Test suite for validate_credentials."""

    @patch("teardown.aws.credentials.create_boto_client")
    def test_returns_identity(self, mock_create_client: MagicMock) -> None:
        """Test a successful identity lookup."""
        mock_create_client.return_value.get_caller_identity.return_value = {
            "Account": MANAGEMENT_ACCOUNT,
            "UserId": "AIDAEXAMPLE",
            "Arn": f"arn:aws:iam::{MANAGEMENT_ACCOUNT}:user/ops",
        }

        identity = validate_credentials("ops")

        assert identity["account_id"] == MANAGEMENT_ACCOUNT
        assert identity["arn"].endswith("user/ops")
        mock_create_client.assert_called_once_with("sts", profile_name="ops")

    @patch("teardown.aws.credentials.create_boto_client")
    def test_missing_credentials(self, mock_create_client: MagicMock) -> None:
        """Test the message when no credentials are configured."""
        mock_create_client.return_value.get_caller_identity.side_effect = NoCredentialsError()

        with pytest.raises(CredentialValidationError, match="No AWS credentials"):
            validate_credentials()

    @patch("teardown.aws.credentials.create_boto_client")
    def test_unknown_profile(self, mock_create_client: MagicMock) -> None:
        """Test the message for an unknown profile."""
        mock_create_client.side_effect = ProfileNotFound(profile="missing")

        with pytest.raises(CredentialValidationError, match="profile not found"):
            validate_credentials("missing")

    @patch("teardown.aws.credentials.create_boto_client")
    def test_rejected_credentials(self, mock_create_client: MagicMock) -> None:
        """Test expired or invalid credentials."""
        mock_create_client.return_value.get_caller_identity.side_effect = make_client_error(
            "ExpiredToken", "GetCallerIdentity", 403
        )

        with pytest.raises(CredentialValidationError, match="ExpiredToken"):
            validate_credentials()

"""Base credential validation."""

from __future__ import annotations

import logging
from typing import Dict, Optional

from botocore.exceptions import ClientError, NoCredentialsError, ProfileNotFound

from .client import create_boto_client

logger = logging.getLogger(__name__)


class CredentialValidationError(Exception):
    """Raised when the ambient credentials cannot be used."""


def validate_credentials(profile_name: Optional[str] = None) -> Dict[str, str]:
    """Validate AWS credentials and return the caller identity.

    Args:
        profile_name: AWS profile name (optional)

    Returns:
        Dictionary with account_id, user_id and arn

    Raises:
        CredentialValidationError: If credentials are missing, expired or invalid
    """
    try:
        sts = create_boto_client("sts", profile_name=profile_name)
        identity = sts.get_caller_identity()
    except ProfileNotFound as e:
        raise CredentialValidationError(f"AWS profile not found: {e}")
    except NoCredentialsError:
        raise CredentialValidationError(
            "No AWS credentials found. Configure a profile or export AWS_ACCESS_KEY_ID/AWS_SECRET_ACCESS_KEY."
        )
    except ClientError as e:
        code = e.response.get("Error", {}).get("Code", "Unknown")
        raise CredentialValidationError(f"AWS credentials rejected ({code}): {e}")

    logger.debug(f"Authenticated as {identity['Arn']}")
    return {
        "account_id": identity["Account"],
        "user_id": identity["UserId"],
        "arn": identity["Arn"],
    }

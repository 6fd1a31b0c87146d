"""Identity and session management.

Base credentials come from the ambient environment (or a named profile).
Member accounts are reached by assuming a cross-account role. Exactly one
assumed session is live at a time and it is always torn down when the
caller's scope exits, including on error.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterator, Optional

import boto3
from botocore.exceptions import ClientError, NoCredentialsError

from ..destroy.errors import AuthorizationError, CredentialsError
from ..models.target import Target
from .client import ClientFactory, build_boto_config

logger = logging.getLogger(__name__)

DEFAULT_ROLE_NAME = "OrganizationAccountAccessRole"
DEFAULT_SESSION_DURATION = 3600


@dataclass(frozen=True)
class AssumedSession:
    """Metadata of the currently assumed role session.

    Credentials themselves never leave the SessionManager.
    """

    role_arn: str
    session_name: str
    external_id: Optional[str]
    expiry: Optional[datetime]
    account_id: str


def default_external_id(project_short_name: str) -> str:
    return f"github-actions-{project_short_name}"


class SessionManager:
    """Hands out authenticated client handles, one account at a time.

    Attributes:
        role_name: Role assumed in member accounts
        external_id: External ID passed to sts:AssumeRole
        session_duration: Assumed session lifetime in seconds
        current: The live AssumedSession, None when on base credentials
    """

    def __init__(
        self,
        base_session: Optional[boto3.Session] = None,
        role_name: str = DEFAULT_ROLE_NAME,
        external_id: Optional[str] = None,
        session_duration: int = DEFAULT_SESSION_DURATION,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.base_session = base_session or boto3.Session()
        self.role_name = role_name
        self.external_id = external_id
        self.session_duration = session_duration
        self.current: Optional[AssumedSession] = None
        self._clock = clock
        self._active: Optional[ClientFactory] = None
        self._caller_account: Optional[str] = None

    def caller_account(self) -> str:
        """Account ID of the base credentials.

        Raises:
            CredentialsError: If the base credentials are missing or rejected
        """
        if self._caller_account is None:
            try:
                sts = self.base_session.client("sts", config=build_boto_config())
                self._caller_account = sts.get_caller_identity()["Account"]
            except NoCredentialsError as e:
                raise CredentialsError(f"No base credentials available: {e}")
            except ClientError as e:
                code = e.response.get("Error", {}).get("Code", "Unknown")
                raise CredentialsError(f"Base credentials rejected: {code}", code)
        return self._caller_account

    def role_arn(self, account_id: str) -> str:
        return f"arn:aws:iam::{account_id}:role/{self.role_name}"

    @contextmanager
    def assume(self, target: Target) -> Iterator[ClientFactory]:
        """Yield a client handle authenticated for the target's account.

        The base session is used directly for the caller's own account.
        Otherwise the cross-account role is assumed. The handle is revoked
        when the block exits.

        Raises:
            AuthorizationError: If the role cannot be assumed
            RuntimeError: If another session is still live
        """
        if self._active is not None:
            raise RuntimeError(
                f"Session for account {self._active.account_id} is still active; restore() it first"
            )

        base_account = self.caller_account()
        if target.account_id == base_account:
            factory = ClientFactory(self.base_session, target.account_id, target.region)
        else:
            factory = ClientFactory(self._assume_role(target), target.account_id, target.region)

        self._active = factory
        try:
            yield factory
        finally:
            self.restore()

    def _assume_role(self, target: Target) -> boto3.Session:
        role_arn = self.role_arn(target.account_id)
        session_name = f"teardown-{target.environment}-{int(self._clock())}"[:64]

        params = {
            "RoleArn": role_arn,
            "RoleSessionName": session_name,
            "DurationSeconds": self.session_duration,
        }
        if self.external_id:
            params["ExternalId"] = self.external_id

        logger.info(f"Assuming {role_arn} for {target.environment}")
        try:
            sts = self.base_session.client("sts", config=build_boto_config())
            response = sts.assume_role(**params)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "Unknown")
            message = e.response.get("Error", {}).get("Message", str(e))
            if code in ("ExpiredToken", "InvalidClientTokenId"):
                raise CredentialsError(f"Base credentials rejected while assuming {role_arn}: {code}", code)
            raise AuthorizationError(f"Cannot assume {role_arn}: {code} - {message}", code)
        except NoCredentialsError as e:
            raise CredentialsError(f"No base credentials available: {e}")

        credentials = response["Credentials"]
        self.current = AssumedSession(
            role_arn=role_arn,
            session_name=session_name,
            external_id=self.external_id,
            expiry=credentials.get("Expiration"),
            account_id=target.account_id,
        )
        return boto3.Session(
            aws_access_key_id=credentials["AccessKeyId"],
            aws_secret_access_key=credentials["SecretAccessKey"],
            aws_session_token=credentials["SessionToken"],
            region_name=target.region,
        )

    def restore(self) -> None:
        """Return to base credentials, revoking any live handle."""
        if self._active is not None:
            self._active.revoke()
            logger.debug(f"Restored base identity (was {self._active.account_id})")
        self._active = None
        self.current = None

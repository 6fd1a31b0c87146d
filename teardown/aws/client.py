"""Boto3 client construction.

All provider calls go through a ClientFactory bound to one session, so the
account a call runs against is always explicit.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Optional, Tuple

import boto3
from botocore.config import Config as BotoConfig

from ..destroy.errors import SessionRevokedError

logger = logging.getLogger(__name__)

DEFAULT_CONNECT_TIMEOUT = 10
DEFAULT_READ_TIMEOUT = 60


def build_boto_config(
    connect_timeout: int = DEFAULT_CONNECT_TIMEOUT,
    read_timeout: int = DEFAULT_READ_TIMEOUT,
) -> BotoConfig:
    """Botocore config with per-call timeouts.

    Botocore's own retries are limited to a single attempt; the engine's
    RetryPolicy is the only retry layer.
    """
    return BotoConfig(
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
        retries={"total_max_attempts": 1, "mode": "standard"},
    )


def create_boto_client(
    service_name: str,
    region_name: Optional[str] = None,
    profile_name: Optional[str] = None,
) -> Any:
    """Create a boto3 client from the ambient (or profile) credentials.

    Args:
        service_name: AWS service name (e.g., "sts")
        region_name: AWS region (optional)
        profile_name: AWS profile name (optional)

    Returns:
        boto3 client
    """
    session = boto3.Session(profile_name=profile_name) if profile_name else boto3.Session()
    return session.client(service_name, region_name=region_name, config=build_boto_config())


class ClientFactory:
    """Authenticated client handle for one account.

    Destroyers receive only this handle, never raw credentials. Clients are
    cached per (service, region). Once revoked, the handle refuses to build
    or return clients.

    Attributes:
        account_id: Account the underlying session is authenticated for
        default_region: Region used when a caller does not pass one
    """

    def __init__(
        self,
        session: boto3.Session,
        account_id: str,
        default_region: str = "us-east-1",
        config: Optional[BotoConfig] = None,
    ) -> None:
        self._session: Optional[boto3.Session] = session
        self.account_id = account_id
        self.default_region = default_region
        self._config = config or build_boto_config()
        self._clients: Dict[Tuple[str, str], Any] = {}
        self._lock = threading.Lock()

    @property
    def revoked(self) -> bool:
        return self._session is None

    def client(self, service_name: str, region: Optional[str] = None) -> Any:
        """Return a cached boto3 client for the service and region.

        Raises:
            SessionRevokedError: If the handle's session has been restored
        """
        region = region or self.default_region
        key = (service_name, region)
        with self._lock:
            if self._session is None:
                raise SessionRevokedError(
                    f"Client handle for account {self.account_id} was used after its session ended"
                )
            if key not in self._clients:
                logger.debug(f"Creating {service_name} client for {self.account_id} in {region}")
                self._clients[key] = self._session.client(service_name, region_name=region, config=self._config)
            return self._clients[key]

    def revoke(self) -> None:
        """Drop the session and every cached client."""
        with self._lock:
            self._session = None
            self._clients.clear()

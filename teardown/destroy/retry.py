"""Retry policy and AWS error classification.

Only throttling and provider-side 5xx errors are retried. Authorization and
not-found errors are terminal and surface immediately.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, TypeVar

from botocore.exceptions import (
    ClientError,
    ConnectTimeoutError,
    EndpointConnectionError,
    NoCredentialsError,
    ReadTimeoutError,
)

from .errors import (
    AuthorizationError,
    CredentialsError,
    DependencyNotReadyError,
    DestroyError,
    NotFoundError,
    TeardownError,
    ThrottlingError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

THROTTLING_CODES = frozenset(
    {
        "Throttling",
        "ThrottlingException",
        "ThrottledException",
        "TooManyRequestsException",
        "RequestLimitExceeded",
        "SlowDown",
        "RequestThrottled",
        "PriorRequestNotComplete",
        "ServiceUnavailable",
        "InternalError",
        "InternalFailure",
        "ConcurrentModificationException",
    }
)

NOT_FOUND_CODES = frozenset(
    {
        "404",
        "NoSuchBucket",
        "NoSuchEntity",
        "NoSuchKey",
        "NotFound",
        "NotFoundException",
        "ResourceNotFoundException",
        "NoSuchDistribution",
        "NoSuchHostedZone",
        "NoSuchHealthCheck",
        "NoSuchCloudFrontOriginAccessIdentity",
        "ParameterNotFound",
        "TrailNotFoundException",
        "WAFNonexistentItemException",
        "InvalidAllocationID.NotFound",
        "PolicyNotFoundException",
        "OrganizationalUnitNotFoundException",
        "AccountNotFoundException",
        "AliasNotFoundException",
        "ResourceNotFound",
        "NoSuchOpenIdConnectProvider",
        "ChildNotFoundException",
    }
)

DEPENDENCY_CODES = frozenset(
    {
        "DistributionNotDisabled",
        "DependencyViolation",
        "DeleteConflict",
        "ResourceInUseException",
        "HostedZoneNotEmpty",
        "OrganizationalUnitNotEmptyException",
        "WAFAssociatedItemException",
        "BucketNotEmpty",
        "PreconditionFailed",
        "InvalidIfMatchVersion",
        "KMSInvalidStateException",
        "InvalidIPAddress.InUse",
        "AuthFailure.AddressInUse",
        "HealthCheckInUse",
    }
)

AUTHORIZATION_CODES = frozenset(
    {
        "AccessDenied",
        "AccessDeniedException",
        "UnauthorizedOperation",
        "AuthorizationError",
        "AWSOrganizationsNotInUseException",
    }
)

CREDENTIAL_CODES = frozenset(
    {
        "ExpiredToken",
        "ExpiredTokenException",
        "InvalidClientTokenId",
        "UnrecognizedClientException",
        "SignatureDoesNotMatch",
    }
)


def classify_client_error(error: ClientError, operation: str = "") -> TeardownError:
    """Convert a botocore ClientError into the engine's error taxonomy.

    Args:
        error: The ClientError raised by a boto3 call
        operation: Operation name for the message

    Returns:
        A TeardownError subclass instance (not raised)
    """
    code = error.response.get("Error", {}).get("Code", "Unknown")
    message = error.response.get("Error", {}).get("Message", str(error))
    status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0) or 0
    text = f"{operation}: {code} - {message}" if operation else f"{code} - {message}"

    if code in CREDENTIAL_CODES:
        return CredentialsError(text, code)
    if code in AUTHORIZATION_CODES:
        return AuthorizationError(text, code)
    if code in NOT_FOUND_CODES or code.endswith(".NotFound"):
        return NotFoundError(text, code)
    if code in DEPENDENCY_CODES:
        return DependencyNotReadyError(text, code)
    if code in THROTTLING_CODES or status >= 500:
        return ThrottlingError(text, code)
    return DestroyError(text, code)


def classify_exception(error: Exception, operation: str = "") -> TeardownError:
    """Classify any exception raised by a provider call."""
    if isinstance(error, TeardownError):
        return error
    if isinstance(error, ClientError):
        return classify_client_error(error, operation)
    if isinstance(error, NoCredentialsError):
        return CredentialsError(f"{operation}: {error}")
    if isinstance(error, (ConnectTimeoutError, ReadTimeoutError, EndpointConnectionError)):
        return ThrottlingError(f"{operation}: {error}")
    return DestroyError(f"{operation}: {error}" if operation else str(error))


@dataclass
class RetryPolicy:
    """Capped exponential backoff for retryable provider errors.

    Attributes:
        max_attempts: Total attempts including the first call
        base_delay: Delay before the first retry in seconds
        max_delay: Upper bound for a single delay
        jitter: Randomize each delay between 50% and 100%
        sleep: Sleep function (injectable for tests)
    """

    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: bool = True
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def delay_for(self, attempt: int) -> float:
        """Delay after the given zero-based failed attempt."""
        delay = min(self.base_delay * (2 ** attempt), self.max_delay)
        if self.jitter:
            delay *= random.uniform(0.5, 1.0)
        return delay

    def call(self, func: Callable[..., T], *args: Any, operation: Optional[str] = None, **kwargs: Any) -> T:
        """Invoke ``func`` with retries for throttling errors.

        Raises:
            TeardownError: The classified error once it is terminal or
                retries are exhausted
        """
        operation = operation or getattr(func, "__name__", "call")
        for attempt in range(self.max_attempts):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                error = classify_exception(e, operation)
                if not isinstance(error, ThrottlingError) or attempt >= self.max_attempts - 1:
                    if error is e:
                        raise
                    raise error from e

                wait_time = self.delay_for(attempt)
                logger.debug(
                    f"{operation} throttled ({error.code}), retrying in {wait_time:.1f}s "
                    f"(attempt {attempt + 1}/{self.max_attempts})"
                )
                self.sleep(wait_time)

        raise DestroyError(f"{operation}: retries exhausted")

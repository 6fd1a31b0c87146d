"""Base class for service destroyers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from ...aws.client import ClientFactory
from ...models.execution_context import ExecutionContext
from ...models.outcome import DestructionOutcome
from ...models.resource import ResourceDescriptor
from ...models.target import Target
from ..errors import (
    AuthorizationError,
    CredentialsError,
    DependencyNotReadyError,
    NotFoundError,
    OperationTimeoutError,
    SessionRevokedError,
    TeardownError,
)
from ..matcher import ResourceMatcher
from ..retry import RetryPolicy

GLOBAL_REGION = "us-east-1"


def tags_to_dict(tags: Optional[Iterable[Mapping[str, Any]]], key: str = "Key", value: str = "Value") -> Dict[str, str]:
    """Convert an AWS tag list into a dict."""
    return {tag[key]: tag.get(value, "") for tag in tags or [] if key in tag}


class ServiceDestroyer(ABC):
    """Abstract base class for all service destroyers.

    Each destroyer should:
    1. Have a unique service_name (its registry key)
    2. Enumerate candidate resources, returning [] when the service is absent
    3. Implement _delete for one resource, raising the typed errors from
       ``teardown.destroy.errors`` when something goes wrong

    ``destroy`` maps those errors onto outcomes, so a destroyer never has to
    build failure outcomes itself.
    """

    management_only = False
    member_only = False
    validated = True

    def __init__(self, retry_policy: Optional[RetryPolicy] = None) -> None:
        self.retry_policy = retry_policy or RetryPolicy()
        self.logger = logging.getLogger(f"{__name__.rsplit('.', 1)[0]}.{self.service_name}")

    @property
    @abstractmethod
    def service_name(self) -> str:
        """Registry key (e.g., "s3")."""

    @property
    @abstractmethod
    def resource_class(self) -> str:
        """Human label of what this destroyer removes (e.g., "S3 buckets")."""

    @property
    def is_global_service(self) -> bool:
        return False

    def enabled(self, ctx: ExecutionContext) -> bool:
        """Whether run flags allow this destroyer at all."""
        return True

    def bind(self, ctx: ExecutionContext, known_accounts: Sequence[str] = ()) -> None:
        """Receive run-wide settings before the first phase starts."""

    def applies_to(self, target: Target) -> bool:
        """Whether this destroyer runs against the given target."""
        if self.management_only and not target.is_management:
            return False
        if self.member_only and target.is_management:
            return False
        if self.is_global_service and not target.is_home_region:
            return False
        return True

    def api_region(self, target: Target) -> str:
        return GLOBAL_REGION if self.is_global_service else target.region

    def scan(self, clients: ClientFactory, target: Target) -> List[ResourceDescriptor]:
        """Enumerate candidates, raising typed errors."""
        return list(self._enumerate(clients, target))

    def enumerate(self, clients: ClientFactory, target: Target) -> List[ResourceDescriptor]:
        """Enumerate candidate resources.

        Returns:
            Descriptors of every candidate; empty if the service is absent,
            unavailable or denied in this account/region
        """
        try:
            return self.scan(clients, target)
        except (CredentialsError, SessionRevokedError):
            raise
        except TeardownError as e:
            self.logger.warning(f"Could not list {self.resource_class} in {target.label}: {e}")
            return []

    def select(self, descriptors: List[ResourceDescriptor], matcher: ResourceMatcher) -> List[ResourceDescriptor]:
        """Pick the descriptors this destroyer may act on."""
        return matcher.filter(descriptors)

    def prepare(
        self,
        clients: ClientFactory,
        target: Target,
        ctx: ExecutionContext,
        resources: List[ResourceDescriptor],
    ) -> None:
        """Hook run for every destroyer of a phase before any of them destroys."""

    def destroy(
        self,
        clients: ClientFactory,
        descriptor: ResourceDescriptor,
        ctx: ExecutionContext,
    ) -> DestructionOutcome:
        """Destroy one resource.

        Idempotent: a resource that is already gone yields ``skipped``.

        Raises:
            CredentialsError: Base credentials lost; the run must halt
        """
        try:
            outcome = self._delete(clients, descriptor, ctx)
        except (CredentialsError, SessionRevokedError):
            raise
        except NotFoundError as e:
            self.logger.info(f"{descriptor.display_name} already deleted")
            return DestructionOutcome.skipped(descriptor, f"already deleted ({e.code or 'not found'})", "NotFoundError")
        except (DependencyNotReadyError, OperationTimeoutError) as e:
            self.logger.warning(f"Deferred {descriptor.display_name}: {e}")
            return DestructionOutcome.deferred(descriptor, str(e), type(e).__name__)
        except AuthorizationError as e:
            self.logger.error(f"Access denied deleting {descriptor.display_name}: {e}")
            return DestructionOutcome.failed(descriptor, e)
        except TeardownError as e:
            self.logger.error(f"Failed to delete {descriptor.display_name}: {e}")
            return DestructionOutcome.failed(descriptor, e)
        except Exception as e:
            self.logger.exception(f"Unexpected error deleting {descriptor.display_name}")
            return DestructionOutcome.failed(descriptor, e)

        if outcome is not None:
            return outcome
        self.logger.info(f"Deleted {self.resource_class} {descriptor.display_name}")
        return DestructionOutcome.destroyed(descriptor)

    @abstractmethod
    def _enumerate(self, clients: ClientFactory, target: Target) -> Iterable[ResourceDescriptor]:
        """List candidate resources, raising typed errors."""

    @abstractmethod
    def _delete(
        self,
        clients: ClientFactory,
        descriptor: ResourceDescriptor,
        ctx: ExecutionContext,
    ) -> Optional[DestructionOutcome]:
        """Delete one resource. Return None when destroyed."""

    def _call(self, method: Callable[..., Any], **kwargs: Any) -> Any:
        """Call a boto3 client method through the retry policy."""
        return self.retry_policy.call(method, operation=getattr(method, "__name__", None), **kwargs)

    def _paginate(self, client: Any, operation: str, key: str, **kwargs: Any) -> List[Any]:
        """Collect every item of a paginated list call."""

        def _collect() -> List[Any]:
            items: List[Any] = []
            for page in client.get_paginator(operation).paginate(**kwargs):
                items.extend(page.get(key, []))
            return items

        return self.retry_policy.call(_collect, operation=operation)

    def _descriptor(
        self,
        target: Target,
        identifier: str,
        name: str = "",
        tags: Optional[Mapping[str, str]] = None,
        region: Optional[str] = None,
        resource_class: Optional[str] = None,
        **metadata: Any,
    ) -> ResourceDescriptor:
        return ResourceDescriptor(
            service_type=self.service_name,
            identifier=identifier,
            region=region or self.api_region(target),
            account_id=target.account_id,
            name=name,
            tags=dict(tags or {}),
            resource_class=resource_class or self.resource_class,
            metadata=metadata,
        )

"""Destruction outcome model."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from .lazy_delete import LazyDeleteEntry
from .resource import ResourceDescriptor


class OutcomeStatus(Enum):
    """Fate of one matched resource."""

    DESTROYED = "destroyed"
    FAILED = "failed"
    SKIPPED = "skipped"
    DEFERRED = "deferred"


@dataclass(frozen=True)
class DestructionOutcome:
    """Immutable record of what happened to one matched resource.

    Every matched resource yields exactly one outcome. Outcomes are collected
    as a stream and folded into a summary at the end of the run.

    Attributes:
        resource: The resource the outcome is about
        status: destroyed, failed, skipped or deferred
        error: Human-readable error or skip reason
        error_type: Name of the error class (e.g., "AuthorizationError")
        lazy_delete: Follow-up entry when removal was handed to the provider
        phase: Name of the phase that produced the outcome
        timestamp: When the outcome was recorded (UTC)
    """

    resource: ResourceDescriptor
    status: OutcomeStatus
    error: Optional[str] = None
    error_type: Optional[str] = None
    lazy_delete: Optional[LazyDeleteEntry] = field(default=None, hash=False, compare=False)
    phase: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc), compare=False)

    @classmethod
    def destroyed(cls, resource: ResourceDescriptor) -> DestructionOutcome:
        return cls(resource=resource, status=OutcomeStatus.DESTROYED)

    @classmethod
    def skipped(
        cls, resource: ResourceDescriptor, reason: str, error_type: Optional[str] = None
    ) -> DestructionOutcome:
        return cls(resource=resource, status=OutcomeStatus.SKIPPED, error=reason, error_type=error_type)

    @classmethod
    def failed(cls, resource: ResourceDescriptor, error: BaseException) -> DestructionOutcome:
        return cls(
            resource=resource,
            status=OutcomeStatus.FAILED,
            error=str(error),
            error_type=type(error).__name__,
        )

    @classmethod
    def deferred(
        cls,
        resource: ResourceDescriptor,
        reason: str,
        error_type: Optional[str] = None,
        lazy_delete: Optional[LazyDeleteEntry] = None,
    ) -> DestructionOutcome:
        return cls(
            resource=resource,
            status=OutcomeStatus.DEFERRED,
            error=reason,
            error_type=error_type,
            lazy_delete=lazy_delete,
        )

    def with_phase(self, phase: str) -> DestructionOutcome:
        return DestructionOutcome(
            resource=self.resource,
            status=self.status,
            error=self.error,
            error_type=self.error_type,
            lazy_delete=self.lazy_delete,
            phase=phase,
            timestamp=self.timestamp,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = self.resource.to_dict()
        data.update(
            {
                "status": self.status.value,
                "error": self.error,
                "error_type": self.error_type,
                "phase": self.phase,
                "timestamp": self.timestamp.isoformat(),
            }
        )
        return data

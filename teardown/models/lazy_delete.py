"""Lazy-delete tracking entry model."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional


class LazyDeleteStatus(Enum):
    """Lifecycle of a lazy-delete entry."""

    PENDING = "pending"
    COMPLETED = "completed"


DEFAULT_CONVERGENCE_WINDOW = timedelta(days=2)


@dataclass
class LazyDeleteEntry:
    """A resource left to asynchronous provider-side cleanup.

    Created when a bucket could not be emptied within the per-operation
    timeout. A lifecycle rule expires the remaining objects and later runs
    re-check the entry until the bucket is gone.

    Attributes:
        resource_id: Bucket name (or other resource identifier)
        account_id: Owning account
        region: Region of the resource
        reason: Why synchronous removal did not finish
        expected_convergence_window: How long the provider should need
        status: pending until a re-check finds the resource gone
        service_type: Destroyer key used to re-check the entry
        created_at: When the entry was recorded (UTC)
        last_checked_at: Last re-check time (UTC), None if never re-checked
    """

    resource_id: str
    account_id: str
    region: str
    reason: str
    expected_convergence_window: timedelta = DEFAULT_CONVERGENCE_WINDOW
    status: LazyDeleteStatus = LazyDeleteStatus.PENDING
    service_type: str = "s3"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    last_checked_at: Optional[datetime] = None

    @property
    def key(self) -> tuple:
        return (self.account_id, self.service_type, self.resource_id)

    @property
    def expected_by(self) -> datetime:
        return self.created_at + self.expected_convergence_window

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return self.status == LazyDeleteStatus.PENDING and now > self.expected_by

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resource_id": self.resource_id,
            "account_id": self.account_id,
            "region": self.region,
            "service_type": self.service_type,
            "reason": self.reason,
            "expected_convergence_window_hours": self.expected_convergence_window.total_seconds() / 3600,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "last_checked_at": self.last_checked_at.isoformat() if self.last_checked_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> LazyDeleteEntry:
        last_checked = data.get("last_checked_at")
        return cls(
            resource_id=data["resource_id"],
            account_id=str(data["account_id"]),
            region=data["region"],
            reason=data.get("reason", ""),
            expected_convergence_window=timedelta(hours=float(data.get("expected_convergence_window_hours", 48))),
            status=LazyDeleteStatus(data.get("status", "pending")),
            service_type=data.get("service_type", "s3"),
            created_at=_parse_time(data["created_at"]),
            last_checked_at=_parse_time(last_checked) if last_checked else None,
        )


def _parse_time(value: Any) -> datetime:
    # PyYAML already turns unquoted timestamps into datetimes
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed

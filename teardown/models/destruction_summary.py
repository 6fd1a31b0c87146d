"""Destruction summary model.

Folds the outcome stream of a run into counts and a final status.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .lazy_delete import LazyDeleteEntry
from .outcome import DestructionOutcome, OutcomeStatus
from .resource import ResourceDescriptor
from .validation import ValidationReport


class RunStatus(Enum):
    """Overall run status.

    State transitions:
        planned (dry-run only)
        completed (nothing failed or deferred)
        partial (some resources failed or were deferred)
        interrupted (cancelled by signal before the last phase)
        failed (base credentials lost)
    """

    PLANNED = "planned"
    COMPLETED = "completed"
    PARTIAL = "partial"
    INTERRUPTED = "interrupted"
    FAILED = "failed"


@dataclass
class DestructionSummary:
    """Result of one engine run.

    Attributes:
        run_id: Unique identifier for the run
        started_at: Run start (UTC)
        completed_at: Run end (UTC)
        dry_run: True when no destructive call was issued
        force: True when confirmation was skipped
        scope: Scope label of the run
        outcomes: Every outcome recorded by the run, in order
        planned: Resources a dry run would destroy
        lazy_deletes: Entries persisted for follow-up runs
        validation: Post-destruction validation report
        aborted: Set when the run halted (credentials lost or interrupted)
        error: Halt reason
    """

    run_id: str
    started_at: datetime
    dry_run: bool = False
    force: bool = False
    scope: str = "full"
    completed_at: Optional[datetime] = None
    outcomes: Tuple[DestructionOutcome, ...] = ()
    planned: Tuple[ResourceDescriptor, ...] = ()
    lazy_deletes: List[LazyDeleteEntry] = field(default_factory=list)
    validation: Optional[ValidationReport] = None
    aborted: Optional[RunStatus] = None
    error: Optional[str] = None

    def count(self, status: OutcomeStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    @property
    def destroyed_count(self) -> int:
        return self.count(OutcomeStatus.DESTROYED)

    @property
    def failed_count(self) -> int:
        return self.count(OutcomeStatus.FAILED)

    @property
    def skipped_count(self) -> int:
        return self.count(OutcomeStatus.SKIPPED)

    @property
    def deferred_count(self) -> int:
        return self.count(OutcomeStatus.DEFERRED)

    def by_status(self, status: OutcomeStatus) -> List[DestructionOutcome]:
        return [outcome for outcome in self.outcomes if outcome.status == status]

    @property
    def status(self) -> RunStatus:
        if self.aborted is not None:
            return self.aborted
        if self.dry_run:
            return RunStatus.PLANNED
        if self.failed_count or self.deferred_count:
            return RunStatus.PARTIAL
        return RunStatus.COMPLETED

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "timestamp": self.started_at.isoformat(),
            "status": self.status.value,
            "scope": self.scope,
            "duration_seconds": self.duration_seconds,
            "dry_run": self.dry_run,
            "force_mode": self.force,
            "resources_destroyed": self.destroyed_count,
            "resources_failed": self.failed_count,
            "resources_skipped": self.skipped_count,
            "resources_deferred": self.deferred_count,
            "error": self.error,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
            "planned": [resource.to_dict() for resource in self.planned],
            "lazy_delete": [entry.to_dict() for entry in self.lazy_deletes],
            "validation": self.validation.to_dict() if self.validation else None,
        }

"""Destruction engine facade.

Ties together sessions, matcher, registry, scheduler, validator and reporter
for one run. The CLI builds an engine and calls ``plan``, ``execute``,
``validate`` or ``recheck_lazy_deletes``.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from ..aws.session import SessionManager
from ..models.destruction_summary import DestructionSummary, RunStatus
from ..models.execution_context import ExecutionContext
from ..models.lazy_delete import LazyDeleteEntry
from ..models.outcome import DestructionOutcome
from ..models.ownership import OwnershipPatterns
from ..models.target import AccountMap, Target
from ..models.validation import ValidationReport
from .cancellation import CancellationToken
from .destroyers.s3 import S3Destroyer
from .errors import ConfirmationCancelled, CredentialsError, TrackingFileError
from .lazy_delete import recheck
from .matcher import ResourceMatcher
from .phases import FINAL_SWEEP_PHASE, PHASES, destroyer_names
from .registry import DestroyerRegistry
from .reporter import Reporter
from .scheduler import PhaseScheduler
from .validator import DEFAULT_REGION_PREFIX, Validator

logger = logging.getLogger(__name__)

# Receives the resource classes a run will touch, returns True to proceed
ConfirmCallback = Callable[[List[str]], bool]


def new_run_id() -> str:
    return f"run_{uuid.uuid4().hex[:12]}"


class DestructionEngine:
    """One destroy run over a set of accounts and regions.

    Attributes:
        ctx: Run configuration
        patterns: Ownership patterns
        account_map: Environment to account mapping
        sessions: Session manager
        registry: Destroyer registry
        reporter: Reporter (single writer of report and tracking files)
        cancellation: Cooperative cancellation token
        validation_region_prefix: Regions scanned by validation start with this
    """

    def __init__(
        self,
        ctx: ExecutionContext,
        patterns: OwnershipPatterns,
        account_map: AccountMap,
        sessions: Optional[SessionManager] = None,
        registry: Optional[DestroyerRegistry] = None,
        reporter: Optional[Reporter] = None,
        cancellation: Optional[CancellationToken] = None,
        validation_region_prefix: str = DEFAULT_REGION_PREFIX,
    ) -> None:
        self.ctx = ctx
        self.patterns = patterns
        self.account_map = account_map
        self.sessions = sessions or SessionManager()
        self.registry = registry or DestroyerRegistry()
        self.reporter = reporter or Reporter()
        self.cancellation = cancellation or CancellationToken()
        self.validation_region_prefix = validation_region_prefix
        self.matcher = ResourceMatcher(patterns, ctx.scope)

    def targets(self) -> List[Target]:
        """Targets of the run, management account first.

        Raises:
            CredentialsError: If base credentials are unusable
        """
        base_account = self.sessions.caller_account()
        targets = self.account_map.build_targets(
            regions=self.ctx.regions,
            base_account=base_account,
            account_filter=self.ctx.account_filter,
            include_cross_account=self.ctx.cross_account_enabled,
        )
        if self.ctx.environment:
            targets = [t for t in targets if t.environment == self.ctx.environment]
        return targets

    def resource_classes(self) -> List[str]:
        """Human labels of every resource class the run may destroy."""
        classes = []
        for name in destroyer_names(self.ctx.scope):
            if name not in self.registry:
                continue
            destroyer = self.registry.get(name)
            if destroyer.enabled(self.ctx) and destroyer.resource_class not in classes:
                classes.append(destroyer.resource_class)
        return classes

    def plan(self) -> DestructionSummary:
        """Enumerate and match everything, issuing no destructive call."""
        if not self.ctx.dry_run:
            raise ValueError("plan() requires a dry-run execution context")
        return self._run()

    def execute(self, confirm: Optional[ConfirmCallback] = None) -> DestructionSummary:
        """Run every phase of the scope.

        Args:
            confirm: Confirmation callback; required unless force or dry-run

        Raises:
            ConfirmationCancelled: If the operator did not confirm
            CredentialsError: If base credentials are unusable before the run starts
        """
        if not (self.ctx.force or self.ctx.dry_run):
            if confirm is None or not confirm(self.resource_classes()):
                raise ConfirmationCancelled("Destruction cancelled at the confirmation prompt")
        return self._run()

    def validate(self, targets: Optional[Sequence[Target]] = None, exclude: Sequence[str] = ()) -> ValidationReport:
        """Scan for stragglers without destroying anything."""
        validator = Validator(
            self.sessions,
            self.registry,
            self.matcher,
            region_prefix=self.validation_region_prefix,
            service_names=destroyer_names(self.ctx.scope),
            exclude=exclude,
        )
        return validator.validate(targets if targets is not None else self.targets())

    def recheck_lazy_deletes(self) -> DestructionSummary:
        """Re-check pending lazy-delete entries outside a full run.

        Only entries in accounts this context targets are touched.

        Raises:
            CredentialsError: If base credentials are unusable
            TrackingFileError: If the tracking file cannot be read
        """
        summary = DestructionSummary(
            run_id=new_run_id(),
            started_at=datetime.now(timezone.utc),
            dry_run=self.ctx.dry_run,
            force=self.ctx.force,
            scope=self.ctx.scope.value,
        )
        entries = self._in_scope(self.reporter.store.pending(), self.targets())
        outcomes = self._recheck(entries)
        summary.outcomes = tuple(outcome.with_phase("lazy-delete") for outcome in outcomes)
        summary.lazy_deletes = entries
        summary.completed_at = datetime.now(timezone.utc)
        if entries and not self.ctx.dry_run:
            self.reporter.persist_lazy_deletes(entries)
        return summary

    def _run(self) -> DestructionSummary:
        summary = DestructionSummary(
            run_id=new_run_id(),
            started_at=datetime.now(timezone.utc),
            dry_run=self.ctx.dry_run,
            force=self.ctx.force,
            scope=self.ctx.scope.value,
        )
        logger.info(
            f"Starting {'dry run' if self.ctx.dry_run else 'destroy run'} {summary.run_id} "
            f"({self.ctx.scope.value} scope, regions {', '.join(self.ctx.regions)})"
        )

        try:
            targets = self.targets()
        except CredentialsError as e:
            summary.aborted = RunStatus.FAILED
            summary.error = str(e)
            summary.completed_at = datetime.now(timezone.utc)
            return summary

        logger.info(f"{len(targets)} target(s): {', '.join(t.label for t in targets)}")
        previous_entries = [] if self.ctx.dry_run else self._in_scope(self._previous_lazy_deletes(), targets)

        def on_validation() -> None:
            final_sweep = next(phase for phase in PHASES if phase.name == FINAL_SWEEP_PHASE)
            summary.validation = self.validate(targets, exclude=final_sweep.destroyers)

        def on_final_sweep() -> List[DestructionOutcome]:
            return self._recheck(previous_entries)

        scheduler = PhaseScheduler(
            self.sessions,
            self.registry,
            self.matcher,
            self.ctx,
            cancellation=self.cancellation,
            known_accounts=self.account_map.all_accounts(),
            on_validation=None if self.ctx.dry_run else on_validation,
            on_final_sweep=on_final_sweep,
        )
        result = scheduler.run(targets)

        summary.outcomes = tuple(result.outcomes)
        summary.planned = tuple(result.planned)
        summary.aborted = result.halted
        summary.error = result.error
        summary.lazy_deletes = [o.lazy_delete for o in result.outcomes if o.lazy_delete is not None]
        summary.lazy_deletes.extend(entry for entry in previous_entries if entry.last_checked_at is not None)
        summary.completed_at = datetime.now(timezone.utc)

        logger.info(
            f"Run {summary.run_id} {summary.status.value}: {summary.destroyed_count} destroyed, "
            f"{summary.failed_count} failed, {summary.deferred_count} deferred, {summary.skipped_count} skipped"
        )
        return summary

    def _previous_lazy_deletes(self) -> List[LazyDeleteEntry]:
        try:
            return self.reporter.store.pending()
        except (OSError, TrackingFileError) as e:
            logger.error(f"Skipping lazy-delete re-check, tracking file unreadable: {e}")
            return []

    def _in_scope(self, entries: List[LazyDeleteEntry], targets: Sequence[Target]) -> List[LazyDeleteEntry]:
        """Keep the entries whose account is one of the run's targets."""
        accounts = {target.account_id for target in targets}
        kept = []
        for entry in entries:
            if entry.account_id in accounts:
                kept.append(entry)
            else:
                logger.info(f"Lazy delete of {entry.resource_id} in {entry.account_id} is outside this run, left as is")
        return kept

    def _recheck(self, entries: List[LazyDeleteEntry]) -> List[DestructionOutcome]:
        if not entries:
            return []
        checker = self.registry.get("s3")
        if not isinstance(checker, S3Destroyer):
            raise TypeError("The s3 destroyer must be an S3Destroyer to re-check lazy deletes")
        return recheck(entries, self.sessions, self._target_for, checker, dry_run=self.ctx.dry_run)

    def _target_for(self, entry: LazyDeleteEntry) -> Target:
        return Target(
            account_id=entry.account_id,
            region=entry.region,
            environment=self.account_map.environment_for(entry.account_id),
            is_management=entry.account_id == self.account_map.management,
        )

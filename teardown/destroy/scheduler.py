"""Phase scheduler.

Drives the fixed phase order. Within a phase, targets are processed one at a
time and each target gets its own session, restored before the next target.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..aws.client import ClientFactory
from ..aws.session import SessionManager
from ..models.destruction_summary import RunStatus
from ..models.execution_context import ExecutionContext
from ..models.outcome import DestructionOutcome
from ..models.resource import ResourceDescriptor
from ..models.target import Target
from .cancellation import CancellationToken
from .destroyers.base import ServiceDestroyer
from .errors import AuthorizationError, CredentialsError
from .matcher import ResourceMatcher
from .phases import FINAL_SWEEP_PHASE, VALIDATION_PHASE, Phase, phases_for
from .registry import DestroyerRegistry

logger = logging.getLogger(__name__)


@dataclass
class ScheduleResult:
    """Everything the scheduler produced for one run.

    Attributes:
        outcomes: Outcomes of every matched resource, in execution order
        planned: Resources a dry run would destroy
        phases_run: Names of the phases that started
        halted: Set when the run stopped early
        error: Why the run stopped early
    """

    outcomes: List[DestructionOutcome] = field(default_factory=list)
    planned: List[ResourceDescriptor] = field(default_factory=list)
    phases_run: List[str] = field(default_factory=list)
    halted: Optional[RunStatus] = None
    error: Optional[str] = None


class PhaseScheduler:
    """Runs destroyers phase by phase, target by target.

    A failed resource never blocks its phase and a failed phase never blocks
    the run. Only lost base credentials or cancellation stop it.

    Attributes:
        sessions: Session manager handing out one client handle at a time
        registry: Destroyer registry
        matcher: Ownership matcher
        ctx: Run configuration
        cancellation: Cooperative cancellation token
        denied: Accounts whose role could not be assumed, with the reason
    """

    def __init__(
        self,
        sessions: SessionManager,
        registry: DestroyerRegistry,
        matcher: ResourceMatcher,
        ctx: ExecutionContext,
        cancellation: Optional[CancellationToken] = None,
        known_accounts: Sequence[str] = (),
        on_validation: Optional[Callable[[], None]] = None,
        on_final_sweep: Optional[Callable[[], List[DestructionOutcome]]] = None,
    ) -> None:
        self.sessions = sessions
        self.registry = registry
        self.matcher = matcher
        self.ctx = ctx
        self.cancellation = cancellation or CancellationToken()
        self.known_accounts = tuple(known_accounts)
        self.on_validation = on_validation
        self.on_final_sweep = on_final_sweep
        self.denied: Dict[str, str] = {}

    @property
    def phases(self) -> Tuple[Phase, ...]:
        return phases_for(self.ctx.scope)

    def destroyers_for(self, phase: Phase) -> List[ServiceDestroyer]:
        """Registered and enabled destroyers of a phase, in phase order."""
        destroyers = []
        for name in phase.destroyers:
            if name not in self.registry:
                logger.warning(f"No destroyer registered for {name}, skipping it in {phase.label}")
                continue
            destroyer = self.registry.get(name)
            if destroyer.enabled(self.ctx):
                destroyers.append(destroyer)
        return destroyers

    def bind(self) -> None:
        """Hand run-wide settings to every destroyer of the run."""
        for phase in self.phases:
            for destroyer in self.destroyers_for(phase):
                destroyer.bind(self.ctx, self.known_accounts)

    def run(self, targets: Sequence[Target]) -> ScheduleResult:
        """Run every phase of the scope against the targets.

        Args:
            targets: Ordered targets (account-major, home region first)

        Returns:
            ScheduleResult with the outcome stream
        """
        result = ScheduleResult()
        self.bind()

        for phase in self.phases:
            if self.cancellation.cancelled:
                result.halted = RunStatus.INTERRUPTED
                result.error = self.cancellation.reason
                logger.warning(f"Run cancelled before {phase.label}")
                break

            logger.info(f"=== {phase.label} - {phase.description} ===")
            result.phases_run.append(phase.name)
            try:
                self.run_phase(phase, targets, result)
            except CredentialsError as e:
                result.halted = RunStatus.FAILED
                result.error = f"Base credentials lost during {phase.label}: {e}"
                logger.error(result.error)
                break

        if result.halted is None and self.cancellation.cancelled:
            result.halted = RunStatus.INTERRUPTED
            result.error = self.cancellation.reason
        return result

    def run_phase(self, phase: Phase, targets: Sequence[Target], result: ScheduleResult) -> None:
        """Run one phase, appending to the result.

        Raises:
            CredentialsError: If base credentials are lost
        """
        if phase.name == VALIDATION_PHASE:
            if self.on_validation is not None:
                self.on_validation()
            return

        for target in targets:
            if self.cancellation.cancelled:
                return
            if phase.management_only and not target.is_management:
                continue

            destroyers = [d for d in self.destroyers_for(phase) if d.applies_to(target)]
            if not destroyers:
                continue

            outcomes, planned = self.run_target(phase, target, destroyers)
            result.outcomes.extend(outcomes)
            result.planned.extend(planned)

        if phase.name == FINAL_SWEEP_PHASE and self.on_final_sweep is not None and not self.ctx.dry_run:
            result.outcomes.extend(outcome.with_phase(phase.name) for outcome in self.on_final_sweep())

    def run_target(
        self,
        phase: Phase,
        target: Target,
        destroyers: List[ServiceDestroyer],
    ) -> Tuple[List[DestructionOutcome], List[ResourceDescriptor]]:
        """Process one target inside its own session.

        A denied role assumption skips the whole target: one outcome per
        destroyer, nothing partially processed.
        """
        if target.account_id in self.denied:
            return self._denied(phase, target, destroyers, self.denied[target.account_id]), []

        try:
            with self.sessions.assume(target) as clients:
                return self._process(phase, target, destroyers, clients)
        except AuthorizationError as e:
            logger.error(f"Skipping account {target.account_id} ({target.environment}): {e}")
            self.denied[target.account_id] = str(e)
            return self._denied(phase, target, destroyers, str(e)), []

    def _process(
        self,
        phase: Phase,
        target: Target,
        destroyers: List[ServiceDestroyer],
        clients: ClientFactory,
    ) -> Tuple[List[DestructionOutcome], List[ResourceDescriptor]]:
        selected: List[Tuple[ServiceDestroyer, List[ResourceDescriptor]]] = []
        for destroyer in destroyers:
            candidates = destroyer.enumerate(clients, target)
            matched = destroyer.select(candidates, self.matcher)
            if candidates:
                logger.info(
                    f"{target.label} {destroyer.service_name}: {len(matched)} of {len(candidates)} candidates match"
                )
            selected.append((destroyer, matched))

        if self.ctx.dry_run:
            planned = [descriptor for _, matched in selected for descriptor in matched]
            for descriptor in planned:
                logger.info(f"[dry-run] would destroy {descriptor.resource_class} {descriptor.display_name}")
            return [], planned

        # Every prepare hook runs before any destroyer of the phase deletes anything
        for destroyer, matched in selected:
            if matched:
                destroyer.prepare(clients, target, self.ctx, matched)

        outcomes: List[DestructionOutcome] = []
        for destroyer, matched in selected:
            for descriptor in matched:
                if self.cancellation.cancelled:
                    outcome = DestructionOutcome.skipped(descriptor, f"cancelled: {self.cancellation.reason}")
                else:
                    outcome = destroyer.destroy(clients, descriptor, self.ctx)
                outcomes.append(outcome.with_phase(phase.name))
        return outcomes, []

    def _denied(
        self,
        phase: Phase,
        target: Target,
        destroyers: List[ServiceDestroyer],
        reason: str,
    ) -> List[DestructionOutcome]:
        outcomes = []
        for destroyer in destroyers:
            placeholder = ResourceDescriptor(
                service_type=destroyer.service_name,
                identifier="*",
                region=destroyer.api_region(target),
                account_id=target.account_id,
                resource_class=destroyer.resource_class,
            )
            outcome = DestructionOutcome.skipped(placeholder, reason, AuthorizationError.__name__)
            outcomes.append(outcome.with_phase(phase.name))
        return outcomes

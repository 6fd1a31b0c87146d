"""Post-destruction validation.

Re-enumerates every validated destroyer across every target account and
every supported region, and names whatever still matches. Read-only.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence, Set, Tuple

from ..aws.client import ClientFactory
from ..aws.session import SessionManager
from ..models.resource import ResourceDescriptor
from ..models.target import Target
from ..models.validation import ValidationReport
from .destroyers.base import GLOBAL_REGION, ServiceDestroyer
from .errors import AuthorizationError, CredentialsError, SessionRevokedError, TeardownError
from .matcher import ResourceMatcher
from .registry import DestroyerRegistry

logger = logging.getLogger(__name__)

DEFAULT_REGION_PREFIX = "us-"
FALLBACK_REGIONS = ("us-east-1", "us-east-2", "us-west-1", "us-west-2")


class Validator:
    """Stragglers scan across accounts and regions.

    Attributes:
        sessions: Session manager
        registry: Destroyer registry
        matcher: Ownership matcher
        region_prefix: Only regions starting with this prefix are scanned
        service_names: Restrict the scan to these destroyers (None means all);
            destroyers not flagged as validated are never scanned
        exclude: Destroyers left out of the scan (e.g., those of a later phase)
    """

    def __init__(
        self,
        sessions: SessionManager,
        registry: DestroyerRegistry,
        matcher: ResourceMatcher,
        region_prefix: str = DEFAULT_REGION_PREFIX,
        service_names: Optional[Iterable[str]] = None,
        exclude: Iterable[str] = (),
    ) -> None:
        self.sessions = sessions
        self.registry = registry
        self.matcher = matcher
        self.region_prefix = region_prefix
        self.service_names = tuple(service_names) if service_names is not None else None
        self.exclude = frozenset(exclude)

    def destroyers(self) -> List[ServiceDestroyer]:
        if self.service_names is None:
            destroyers = self.registry.all()
        else:
            destroyers = [self.registry.get(name) for name in self.service_names if name in self.registry]
        return [d for d in destroyers if d.validated and d.service_name not in self.exclude]

    def validation_regions(self, clients: ClientFactory) -> List[str]:
        """Enabled regions with the configured prefix.

        Falls back to the four US regions when the region list is unavailable.
        """
        try:
            ec2 = clients.client("ec2", GLOBAL_REGION)
            response = ec2.describe_regions()
            regions = sorted(
                r["RegionName"]
                for r in response.get("Regions", [])
                if r["RegionName"].startswith(self.region_prefix)
            )
        except SessionRevokedError:
            raise
        except Exception as e:
            logger.debug(f"describe_regions failed, using fallback regions: {e}")
            return list(FALLBACK_REGIONS)
        return regions or list(FALLBACK_REGIONS)

    def validate(self, targets: Sequence[Target]) -> ValidationReport:
        """Scan every account of the targets.

        Args:
            targets: Run targets; only their accounts and environments are used

        Returns:
            ValidationReport naming every straggler

        Raises:
            CredentialsError: If base credentials are lost
        """
        report = ValidationReport()
        seen: Set[Tuple[str, str, str, str]] = set()

        for home in self._home_targets(targets):
            try:
                with self.sessions.assume(home) as clients:
                    self._validate_account(clients, home, report, seen)
            except AuthorizationError as e:
                report.errors.append(f"{home.account_id}: {e}")
                logger.warning(f"Could not validate account {home.account_id}: {e}")
            report.accounts_checked.append(home.account_id)

        if report.passed:
            logger.info(
                f"Validation passed: no project resources left in {len(report.accounts_checked)} account(s)"
            )
        else:
            logger.warning(f"Validation found {len(report.stragglers)} remaining resource(s)")
        return report

    def _validate_account(
        self,
        clients: ClientFactory,
        home: Target,
        report: ValidationReport,
        seen: Set[Tuple[str, str, str, str]],
    ) -> None:
        destroyers = self.destroyers()
        regions = self.validation_regions(clients)
        if home.region in regions:
            regions.remove(home.region)
        regions.insert(0, home.region)

        for index, region in enumerate(regions):
            if region not in report.regions_checked:
                report.regions_checked.append(region)
            target = Target(
                account_id=home.account_id,
                region=region,
                environment=home.environment,
                is_management=home.is_management,
                is_home_region=index == 0,
            )
            for destroyer in destroyers:
                if not destroyer.applies_to(target):
                    continue
                for straggler in self._scan(destroyer, clients, target, report):
                    key = (straggler.account_id, straggler.service_type, straggler.region, straggler.identifier)
                    if key in seen:
                        continue
                    seen.add(key)
                    report.stragglers.append(straggler)
                    logger.warning(
                        f"Straggler: {straggler.resource_class} {straggler.display_name} "
                        f"in {straggler.account_id}/{straggler.region}"
                    )

    def _scan(
        self,
        destroyer: ServiceDestroyer,
        clients: ClientFactory,
        target: Target,
        report: ValidationReport,
    ) -> List[ResourceDescriptor]:
        try:
            candidates = destroyer.scan(clients, target)
        except (CredentialsError, SessionRevokedError):
            raise
        except TeardownError as e:
            report.errors.append(f"{target.label} {destroyer.service_name}: {e}")
            return []
        return destroyer.select(candidates, self.matcher)

    @staticmethod
    def _home_targets(targets: Sequence[Target]) -> List[Target]:
        homes: List[Target] = []
        accounts: Set[str] = set()
        for target in targets:
            if target.is_home_region and target.account_id not in accounts:
                accounts.add(target.account_id)
                homes.append(target)
        return homes

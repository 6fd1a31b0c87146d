"""Fixed destruction phase order.

Each phase only depends on every earlier phase having run, not on every
resource of it having been destroyed. The order is code, never configuration.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

from ..models.execution_context import Scope

BOTH_SCOPES = (Scope.FULL, Scope.ENVIRONMENT)
FULL_ONLY = (Scope.FULL,)


@dataclass(frozen=True)
class Phase:
    """One ordered stage of the destruction pipeline.

    Attributes:
        number: Position in the run (1-based)
        name: Short name used in logs and outcomes
        description: Human-readable purpose
        destroyers: Registry keys run in this phase, in order
        management_only: Only runs against the management account
        scopes: Scopes this phase runs in
    """

    number: int
    name: str
    description: str
    destroyers: Tuple[str, ...] = ()
    management_only: bool = False
    scopes: Tuple[Scope, ...] = BOTH_SCOPES

    def runs_in(self, scope: Scope) -> bool:
        return scope in self.scopes

    @property
    def label(self) -> str:
        return f"Phase {self.number}: {self.name}"


VALIDATION_PHASE = "validation"
FINAL_SWEEP_PHASE = "final-sweep"

PHASES: Tuple[Phase, ...] = (
    Phase(
        1,
        "cross-account",
        "Cross-account CI roles and their Terraform state entries",
        ("cross_account_roles", "terraform_state"),
        scopes=FULL_ONLY,
    ),
    Phase(2, "edge", "CDN distributions and web ACLs blocking their origins", ("cloudfront", "waf")),
    Phase(
        3,
        "storage-logging",
        "Audit trails (stopped first), buckets, monitoring and notifications",
        ("cloudtrail", "s3", "cloudwatch", "sns"),
    ),
    Phase(4, "compute-database", "Database tables", ("dynamodb",)),
    Phase(5, "dns-network", "Hosted zones and health checks", ("route53",)),
    Phase(6, "identity-keys", "IAM entities and KMS keys", ("iam", "kms"), scopes=FULL_ONLY),
    Phase(7, "cost-config", "Budgets and parameters", ("budgets", "ssm")),
    Phase(8, "orphaned", "Leftover billable resources", ("orphaned",), scopes=FULL_ONLY),
    Phase(
        9,
        "organization",
        "Service control policies, organizational units and member accounts",
        ("organizations", "member_accounts"),
        management_only=True,
        scopes=FULL_ONLY,
    ),
    Phase(10, VALIDATION_PHASE, "Re-scan every region for stragglers"),
    Phase(
        11,
        FINAL_SWEEP_PHASE,
        "CloudTrail log buckets and pending lazy deletes",
        ("cloudtrail_buckets",),
    ),
)


def phases_for(scope: Scope) -> Tuple[Phase, ...]:
    return tuple(phase for phase in PHASES if phase.runs_in(scope))


def destroyer_names(scope: Scope) -> Tuple[str, ...]:
    """Every destroyer key a run of this scope may use, in phase order."""
    names = []
    for phase in phases_for(scope):
        names.extend(name for name in phase.destroyers if name not in names)
    return tuple(names)

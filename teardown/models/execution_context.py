"""Execution context model.

Run-wide configuration, created once per invocation and read-only afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Tuple


DEFAULT_TERRAFORM_DIR = "terraform/foundations/org-management"


class Scope(Enum):
    """What a run is allowed to destroy."""

    FULL = "full"
    ENVIRONMENT = "environment"


@dataclass(frozen=True)
class ExecutionContext:
    """Cross-cutting run configuration.

    Attributes:
        dry_run: Enumerate and match only, issue no destructive calls
        force: Skip the interactive confirmation
        account_filter: Accounts to process (empty means every configured account)
        cross_account_enabled: Assume roles into member accounts
        per_operation_timeout: Seconds a single resource may take (S3 emptying, CloudFront wait)
        close_member_accounts: Close member accounts in the organization phase
        terraform_cleanup: Remove cross-account entries from Terraform state
        regions: Regions to process, home region first
        scope: Full teardown or a single environment
        environment: Environment label when scope is ENVIRONMENT
        max_workers: Worker pool size for object batch deletion
        lazy_delete_days: Expiration days for the lazy-delete lifecycle rule
        terraform_dir: Terraform root holding the cross-account state entries
    """

    dry_run: bool = False
    force: bool = False
    account_filter: FrozenSet[str] = field(default_factory=frozenset)
    cross_account_enabled: bool = True
    per_operation_timeout: float = 180.0
    close_member_accounts: bool = False
    terraform_cleanup: bool = True
    regions: Tuple[str, ...] = ("us-east-1",)
    scope: Scope = Scope.FULL
    environment: str = ""
    max_workers: int = 4
    lazy_delete_days: int = 1
    terraform_dir: str = DEFAULT_TERRAFORM_DIR

    def __post_init__(self) -> None:
        if self.per_operation_timeout <= 0:
            raise ValueError("per_operation_timeout must be positive")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if not self.regions:
            raise ValueError("At least one region is required")
        if self.scope == Scope.ENVIRONMENT and not self.environment:
            raise ValueError("Environment scope requires an environment label")

    @property
    def home_region(self) -> str:
        return self.regions[0]

    def allows_account(self, account_id: str) -> bool:
        return not self.account_filter or account_id in self.account_filter

    @property
    def confirmation_phrase(self) -> str:
        """Literal phrase the operator must type to proceed."""
        if self.scope == Scope.ENVIRONMENT:
            return f"DESTROY {self.environment.upper()}"
        return "DESTROY EVERYTHING"

"""Target model.

A Target is one (account, region) destruction scope. Targets are built once
at the start of a run and never change afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

ENVIRONMENTS = ("dev", "staging", "prod")


@dataclass(frozen=True)
class Target:
    """One account/region pair the engine destroys resources in.

    Attributes:
        account_id: 12-digit AWS account ID
        region: AWS region name
        environment: Environment label (management, dev, staging, prod)
        is_management: True for the organization management account
        is_home_region: True for the region where global services run
    """

    account_id: str
    region: str
    environment: str
    is_management: bool = False
    is_home_region: bool = True

    def __post_init__(self) -> None:
        if not (len(self.account_id) == 12 and self.account_id.isdigit()):
            raise ValueError(f"Invalid account ID: {self.account_id!r}")
        if not self.region:
            raise ValueError("Target region must not be empty")

    @property
    def label(self) -> str:
        return f"{self.environment}:{self.account_id}/{self.region}"


@dataclass
class AccountMap:
    """Environment label to account ID mapping.

    Loaded from configuration (accounts.json or environment variables).
    """

    management: Optional[str] = None
    members: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Optional[str]]) -> AccountMap:
        """Build from an ``accounts.json`` style mapping."""
        members = {env: str(data[env]) for env in ENVIRONMENTS if data.get(env)}
        management = data.get("management")
        return cls(management=str(management) if management else None, members=members)

    def environment_for(self, account_id: str) -> str:
        if account_id == self.management:
            return "management"
        for env, acct in self.members.items():
            if acct == account_id:
                return env
        return "unknown"

    def all_accounts(self) -> List[str]:
        """Management first, then members in environment order."""
        accounts: List[str] = []
        if self.management:
            accounts.append(self.management)
        for env in ENVIRONMENTS:
            acct = self.members.get(env)
            if acct and acct not in accounts:
                accounts.append(acct)
        return accounts

    def build_targets(
        self,
        regions: Iterable[str],
        base_account: str,
        account_filter: Iterable[str] = (),
        include_cross_account: bool = True,
    ) -> List[Target]:
        """Expand accounts and regions into an ordered list of targets.

        The first region of the list is the home region where global
        services are processed.

        Args:
            regions: Regions to process (first one is the home region)
            base_account: Account of the ambient credentials
            account_filter: Restrict to these accounts (empty means all)
            include_cross_account: Include member accounts reached via role assumption

        Returns:
            Targets ordered account-major, region-minor
        """
        regions = list(regions)
        if not regions:
            raise ValueError("At least one region is required")
        wanted = set(account_filter)

        accounts = self.all_accounts() or [base_account]
        if base_account not in accounts:
            accounts.insert(0, base_account)

        targets: List[Target] = []
        for account_id in accounts:
            if wanted and account_id not in wanted:
                continue
            if account_id != base_account and not include_cross_account:
                continue
            environment = self.environment_for(account_id)
            for index, region in enumerate(regions):
                targets.append(
                    Target(
                        account_id=account_id,
                        region=region,
                        environment=environment,
                        is_management=account_id == self.management,
                        is_home_region=index == 0,
                    )
                )
        return targets

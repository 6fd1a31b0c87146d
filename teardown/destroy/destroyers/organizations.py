"""AWS Organizations destroyers (management account only)."""

from __future__ import annotations

from typing import Any, Iterable, List, Optional, Sequence

from ...aws.client import ClientFactory
from ...models.execution_context import ExecutionContext
from ...models.outcome import DestructionOutcome
from ...models.resource import ResourceDescriptor
from ...models.target import Target
from ..errors import NotFoundError
from ..matcher import ResourceMatcher
from ..retry import RetryPolicy
from .base import GLOBAL_REGION, ServiceDestroyer

SCP = "service-control-policy"
ORGANIZATIONAL_UNIT = "organizational-unit"
FULL_AWS_ACCESS = "FullAWSAccess"


class OrganizationsDestroyer(ServiceDestroyer):
    """Destroyer for project service control policies and organizational units.

    SCPs are detached from every target before deletion. OUs are listed
    depth-first so children come before their parents; accounts inside an
    OU are moved back to the root before the OU is deleted.
    """

    management_only = True

    @property
    def service_name(self) -> str:
        return "organizations"

    @property
    def resource_class(self) -> str:
        return "Organizations resource"

    @property
    def is_global_service(self) -> bool:
        return True

    def _enumerate(self, clients: ClientFactory, target: Target) -> Iterable[ResourceDescriptor]:
        org = clients.client("organizations", GLOBAL_REGION)
        resources: List[ResourceDescriptor] = []

        for policy in self._paginate(org, "list_policies", "Policies", Filter="SERVICE_CONTROL_POLICY"):
            if policy.get("AwsManaged") or policy["Name"] == FULL_AWS_ACCESS:
                continue
            resources.append(
                self._descriptor(
                    target,
                    identifier=policy["Id"],
                    name=policy["Name"],
                    resource_class="service control policy",
                    kind=SCP,
                )
            )

        for root in self._paginate(org, "list_roots", "Roots"):
            resources.extend(self._walk_units(org, target, root["Id"], root["Id"]))
        return resources

    def _walk_units(self, org: Any, target: Target, parent_id: str, root_id: str) -> List[ResourceDescriptor]:
        units: List[ResourceDescriptor] = []
        children = self._paginate(
            org, "list_organizational_units_for_parent", "OrganizationalUnits", ParentId=parent_id
        )
        for unit in children:
            units.extend(self._walk_units(org, target, unit["Id"], root_id))
            units.append(
                self._descriptor(
                    target,
                    identifier=unit["Id"],
                    name=unit["Name"],
                    resource_class="organizational unit",
                    kind=ORGANIZATIONAL_UNIT,
                    root_id=root_id,
                )
            )
        return units

    def _delete(
        self,
        clients: ClientFactory,
        descriptor: ResourceDescriptor,
        ctx: ExecutionContext,
    ) -> Optional[DestructionOutcome]:
        org = clients.client("organizations", GLOBAL_REGION)
        if descriptor.metadata.get("kind") == SCP:
            self._delete_policy(org, descriptor.identifier)
        else:
            self._delete_unit(org, descriptor.identifier, descriptor.metadata["root_id"])
        return None

    def _delete_policy(self, org: Any, policy_id: str) -> None:
        for policy_target in self._paginate(org, "list_targets_for_policy", "Targets", PolicyId=policy_id):
            self._call(org.detach_policy, PolicyId=policy_id, TargetId=policy_target["TargetId"])
        self._call(org.delete_policy, PolicyId=policy_id)

    def _delete_unit(self, org: Any, unit_id: str, root_id: str) -> None:
        for account in self._paginate(org, "list_accounts_for_parent", "Accounts", ParentId=unit_id):
            self.logger.info(f"Moving account {account['Id']} from {unit_id} to the root")
            self._call(
                org.move_account,
                AccountId=account["Id"],
                SourceParentId=unit_id,
                DestinationParentId=root_id,
            )
        self._call(org.delete_organizational_unit, OrganizationalUnitId=unit_id)


class MemberAccountDestroyer(ServiceDestroyer):
    """Closes project member accounts when explicitly requested.

    An account is only closed when it is one of the configured member
    accounts, allowed by the account filter, active, and its name matches
    the ownership rules.
    """

    management_only = True
    validated = False

    def __init__(self, retry_policy: Optional[RetryPolicy] = None) -> None:
        super().__init__(retry_policy)
        self.allowed_accounts: Sequence[str] = ()

    @property
    def service_name(self) -> str:
        return "member_accounts"

    @property
    def resource_class(self) -> str:
        return "member account"

    @property
    def is_global_service(self) -> bool:
        return True

    def enabled(self, ctx: ExecutionContext) -> bool:
        return ctx.close_member_accounts

    def bind(self, ctx: ExecutionContext, known_accounts: Sequence[str] = ()) -> None:
        self.allowed_accounts = tuple(a for a in known_accounts if ctx.allows_account(a))

    def _enumerate(self, clients: ClientFactory, target: Target) -> Iterable[ResourceDescriptor]:
        org = clients.client("organizations", GLOBAL_REGION)
        return [
            self._descriptor(
                target,
                identifier=account["Id"],
                name=account.get("Name", ""),
                status=account.get("Status"),
            )
            for account in self._paginate(org, "list_accounts", "Accounts")
            if account["Id"] != target.account_id
        ]

    def select(self, descriptors: List[ResourceDescriptor], matcher: ResourceMatcher) -> List[ResourceDescriptor]:
        return [d for d in matcher.filter(descriptors) if d.identifier in self.allowed_accounts]

    def _delete(
        self,
        clients: ClientFactory,
        descriptor: ResourceDescriptor,
        ctx: ExecutionContext,
    ) -> Optional[DestructionOutcome]:
        org = clients.client("organizations", GLOBAL_REGION)
        account = self._call(org.describe_account, AccountId=descriptor.identifier)["Account"]
        status = account.get("Status")
        if status in ("SUSPENDED", "PENDING_CLOSURE"):
            raise NotFoundError(f"account {descriptor.identifier} already {status}", status)
        if status != "ACTIVE":
            return DestructionOutcome.skipped(descriptor, f"account status is {status}")

        self._call(org.close_account, AccountId=descriptor.identifier)
        self.logger.warning(f"Closed member account {descriptor.identifier} ({descriptor.name})")
        return None

"""AWS Budgets destroyer."""

from __future__ import annotations

from typing import Iterable, Optional

from ...aws.client import ClientFactory
from ...models.execution_context import ExecutionContext
from ...models.outcome import DestructionOutcome
from ...models.resource import ResourceDescriptor
from ...models.target import Target
from .base import GLOBAL_REGION, ServiceDestroyer


class BudgetsDestroyer(ServiceDestroyer):
    """Destroyer for cost budgets and their budget actions."""

    @property
    def service_name(self) -> str:
        return "budgets"

    @property
    def resource_class(self) -> str:
        return "budget"

    @property
    def is_global_service(self) -> bool:
        return True

    def _enumerate(self, clients: ClientFactory, target: Target) -> Iterable[ResourceDescriptor]:
        budgets = clients.client("budgets", GLOBAL_REGION)
        return [
            self._descriptor(target, identifier=budget["BudgetName"], name=budget["BudgetName"])
            for budget in self._paginate(budgets, "describe_budgets", "Budgets", AccountId=target.account_id)
        ]

    def _delete(
        self,
        clients: ClientFactory,
        descriptor: ResourceDescriptor,
        ctx: ExecutionContext,
    ) -> Optional[DestructionOutcome]:
        budgets = clients.client("budgets", GLOBAL_REGION)
        account_id = descriptor.account_id
        name = descriptor.identifier

        actions = self._paginate(
            budgets, "describe_budget_actions_for_budget", "Actions", AccountId=account_id, BudgetName=name
        )
        for action in actions:
            self._call(budgets.delete_budget_action, AccountId=account_id, BudgetName=name, ActionId=action["ActionId"])

        self._call(budgets.delete_budget, AccountId=account_id, BudgetName=name)
        return None

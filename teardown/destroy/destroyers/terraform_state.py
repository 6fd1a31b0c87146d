"""Terraform/OpenTofu state cleanup for cross-account resources.

Once member-account roles are gone, the management-account state still
references them and every later plan would fail. Those entries are removed
from state (``state rm``); nothing in the cloud is touched.
"""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from ...aws.client import ClientFactory
from ...models.execution_context import DEFAULT_TERRAFORM_DIR, ExecutionContext
from ...models.outcome import DestructionOutcome
from ...models.resource import ResourceDescriptor
from ...models.target import Target
from ..errors import DestroyError, OperationTimeoutError
from ..matcher import ResourceMatcher
from ..retry import RetryPolicy
from .base import ServiceDestroyer

CROSS_ACCOUNT_MARKERS = ("cross_account", "cross-account")
BINARIES = ("tofu", "terraform")


class TerraformStateDestroyer(ServiceDestroyer):
    """Removes cross-account addresses from the management Terraform state."""

    management_only = True
    validated = False

    def __init__(self, retry_policy: Optional[RetryPolicy] = None) -> None:
        super().__init__(retry_policy)
        self.working_dir = Path(DEFAULT_TERRAFORM_DIR)
        self.timeout = 180.0

    @property
    def service_name(self) -> str:
        return "terraform_state"

    @property
    def resource_class(self) -> str:
        return "Terraform state entry"

    @property
    def is_global_service(self) -> bool:
        return True

    def enabled(self, ctx: ExecutionContext) -> bool:
        return ctx.terraform_cleanup

    def bind(self, ctx: ExecutionContext, known_accounts: Sequence[str] = ()) -> None:
        self.working_dir = Path(ctx.terraform_dir)
        self.timeout = ctx.per_operation_timeout

    def binary(self) -> Optional[str]:
        for name in BINARIES:
            path = shutil.which(name)
            if path:
                return path
        return None

    def _run(self, *args: str) -> subprocess.CompletedProcess:
        binary = self.binary()
        if binary is None:
            raise DestroyError("neither tofu nor terraform is installed")
        try:
            return subprocess.run(
                [binary, *args],
                cwd=self.working_dir,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise OperationTimeoutError(f"{' '.join(args)} timed out after {self.timeout:.0f}s") from e

    def _enumerate(self, clients: ClientFactory, target: Target) -> Iterable[ResourceDescriptor]:
        if not self.working_dir.is_dir() or self.binary() is None:
            self.logger.debug(f"No Terraform state to clean in {self.working_dir}")
            return []

        result = self._run("state", "list")
        if result.returncode != 0:
            self.logger.warning(f"state list failed in {self.working_dir}: {result.stderr.strip()}")
            return []

        return [
            self._descriptor(target, identifier=address, name=address, working_dir=str(self.working_dir))
            for address in (line.strip() for line in result.stdout.splitlines())
            if address and any(marker in address for marker in CROSS_ACCOUNT_MARKERS)
        ]

    def select(self, descriptors: List[ResourceDescriptor], matcher: ResourceMatcher) -> List[ResourceDescriptor]:
        # Addresses carry no project name; the Terraform root scopes them, vetoes still apply
        selected = []
        for descriptor in descriptors:
            veto = matcher.vetoed(descriptor)
            if veto is None:
                selected.append(descriptor)
            else:
                self.logger.info(f"Keeping state entry {descriptor.identifier}: {veto.reason}")
        return selected

    def _delete(
        self,
        clients: ClientFactory,
        descriptor: ResourceDescriptor,
        ctx: ExecutionContext,
    ) -> Optional[DestructionOutcome]:
        result = self._run("state", "rm", descriptor.identifier)
        if result.returncode != 0:
            stderr = result.stderr.strip()
            if "No matching objects found" in stderr or "Invalid target address" in stderr:
                return DestructionOutcome.skipped(descriptor, "already removed from state", "NotFoundError")
            raise DestroyError(f"state rm {descriptor.identifier} failed: {stderr}")
        return None

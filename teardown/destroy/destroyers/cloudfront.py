"""CloudFront distribution destroyer."""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, Iterable, List, Optional

from ...aws.client import ClientFactory
from ...models.execution_context import ExecutionContext
from ...models.outcome import DestructionOutcome
from ...models.resource import ResourceDescriptor
from ...models.target import Target
from ..errors import CredentialsError, DependencyNotReadyError, SessionRevokedError, TeardownError
from ..retry import RetryPolicy
from .base import GLOBAL_REGION, ServiceDestroyer, tags_to_dict

DEPLOYED = "Deployed"


class CloudFrontDestroyer(ServiceDestroyer):
    """Destroyer for CloudFront distributions.

    A distribution can only be deleted once it is disabled and the disable
    has finished propagating (status ``Deployed``). If propagation does not
    finish within the per-operation timeout the outcome is deferred and a
    later run completes the deletion.
    """

    def __init__(
        self,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        poll_interval: float = 30.0,
    ) -> None:
        super().__init__(retry_policy)
        self.clock = clock
        self.sleep = sleep
        self.poll_interval = poll_interval

    @property
    def service_name(self) -> str:
        return "cloudfront"

    @property
    def resource_class(self) -> str:
        return "CloudFront distribution"

    @property
    def is_global_service(self) -> bool:
        return True

    def _enumerate(self, clients: ClientFactory, target: Target) -> Iterable[ResourceDescriptor]:
        cf = clients.client("cloudfront", GLOBAL_REGION)

        def _collect() -> List[Dict[str, Any]]:
            items: List[Dict[str, Any]] = []
            for page in cf.get_paginator("list_distributions").paginate():
                items.extend(page.get("DistributionList", {}).get("Items", []))
            return items

        resources = []
        for dist in self.retry_policy.call(_collect, operation="list_distributions"):
            aliases = dist.get("Aliases", {}).get("Items", [])
            # Comment is where the project names its distributions
            name = dist.get("Comment") or (aliases[0] if aliases else "")
            resources.append(
                self._descriptor(
                    target,
                    identifier=dist["Id"],
                    name=name,
                    tags=self._tags(cf, dist.get("ARN")),
                    aliases=list(aliases),
                    domain_name=dist.get("DomainName"),
                    status=dist.get("Status"),
                    enabled=dist.get("Enabled"),
                )
            )
        return resources

    def _tags(self, cf: Any, arn: Optional[str]) -> Dict[str, str]:
        if not arn:
            return {}
        try:
            response = self._call(cf.list_tags_for_resource, Resource=arn)
        except (CredentialsError, SessionRevokedError):
            raise
        except TeardownError as e:
            self.logger.debug(f"Could not read tags of {arn}: {e}")
            return {}
        return tags_to_dict(response.get("Tags", {}).get("Items", []))

    def _delete(
        self,
        clients: ClientFactory,
        descriptor: ResourceDescriptor,
        ctx: ExecutionContext,
    ) -> Optional[DestructionOutcome]:
        cf = clients.client("cloudfront", GLOBAL_REGION)
        dist_id = descriptor.identifier
        deadline = self.clock() + ctx.per_operation_timeout

        response = self._call(cf.get_distribution_config, Id=dist_id)
        config = response["DistributionConfig"]
        etag = response["ETag"]

        if config.get("Enabled"):
            self.logger.info(f"Disabling distribution {dist_id}")
            config["Enabled"] = False
            updated = self._call(cf.update_distribution, Id=dist_id, IfMatch=etag, DistributionConfig=config)
            etag = updated["ETag"]

        status, etag = self._wait_deployed(cf, dist_id, etag, deadline)
        if status != DEPLOYED:
            raise DependencyNotReadyError(
                f"distribution {dist_id} still {status} after {ctx.per_operation_timeout:.0f}s; re-run to delete it",
                "DistributionNotDeployed",
            )

        self._call(cf.delete_distribution, Id=dist_id, IfMatch=etag)
        return None

    def _wait_deployed(self, cf: Any, dist_id: str, etag: str, deadline: float) -> tuple[str, str]:
        """Poll until the distribution is Deployed or the deadline passes.

        Returns:
            Tuple of (last status, latest ETag)
        """
        while True:
            response = self._call(cf.get_distribution, Id=dist_id)
            status = response["Distribution"]["Status"]
            etag = response.get("ETag", etag)
            if status == DEPLOYED:
                return status, etag
            if self.clock() + self.poll_interval > deadline:
                return status, etag
            self.logger.debug(f"Distribution {dist_id} is {status}, waiting {self.poll_interval:.0f}s")
            self.sleep(self.poll_interval)

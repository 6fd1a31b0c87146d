"""CloudTrail trail destroyer.

Trails must stop writing before any bucket holding their logs is emptied,
otherwise deleting log objects produces new log objects. ``prepare`` stops
every matching trail; the scheduler runs it before any destroyer of the
storage phase deletes anything.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence

from ...aws.client import ClientFactory
from ...models.execution_context import ExecutionContext
from ...models.outcome import DestructionOutcome
from ...models.resource import ResourceDescriptor
from ...models.target import Target
from ..errors import CredentialsError, NotFoundError, SessionRevokedError, TeardownError
from ..retry import RetryPolicy
from .base import GLOBAL_REGION, ServiceDestroyer, tags_to_dict


class CloudTrailDestroyer(ServiceDestroyer):
    """Destroyer for CloudTrail trails.

    Listed once per account, across every run region, and always addressed
    in the trail's home region.
    """

    def __init__(self, retry_policy: Optional[RetryPolicy] = None) -> None:
        super().__init__(retry_policy)
        self.regions: Sequence[str] = (GLOBAL_REGION,)

    @property
    def service_name(self) -> str:
        return "cloudtrail"

    @property
    def resource_class(self) -> str:
        return "CloudTrail trail"

    @property
    def is_global_service(self) -> bool:
        return True

    def bind(self, ctx: ExecutionContext, known_accounts: Sequence[str] = ()) -> None:
        self.regions = tuple(ctx.regions)

    def _enumerate(self, clients: ClientFactory, target: Target) -> Iterable[ResourceDescriptor]:
        seen = set()
        resources = []
        for region in self.regions:
            ct = clients.client("cloudtrail", region)
            response = self._call(ct.describe_trails, includeShadowTrails=True)
            for trail in response.get("trailList", []):
                arn = trail["TrailARN"]
                if arn in seen:
                    continue
                seen.add(arn)
                home_region = trail.get("HomeRegion", region)
                resources.append(
                    self._descriptor(
                        target,
                        identifier=arn,
                        name=trail["Name"],
                        tags=self._tags(clients, arn, home_region),
                        region=home_region,
                        bucket=trail.get("S3BucketName"),
                        multi_region=trail.get("IsMultiRegionTrail", False),
                    )
                )
        return resources

    def _tags(self, clients: ClientFactory, arn: str, region: str) -> Dict[str, str]:
        try:
            ct = clients.client("cloudtrail", region)
            response = self._call(ct.list_tags, ResourceIdList=[arn])
        except (CredentialsError, SessionRevokedError):
            raise
        except TeardownError as e:
            self.logger.debug(f"Could not read tags of {arn}: {e}")
            return {}
        tag_lists = response.get("ResourceTagList", [])
        return tags_to_dict(tag_lists[0].get("TagsList", [])) if tag_lists else {}

    def prepare(
        self,
        clients: ClientFactory,
        target: Target,
        ctx: ExecutionContext,
        resources: List[ResourceDescriptor],
    ) -> None:
        """Stop logging on every matching trail."""
        for descriptor in resources:
            try:
                self.stop_logging(clients, descriptor)
            except (CredentialsError, SessionRevokedError):
                raise
            except TeardownError as e:
                self.logger.warning(f"Could not stop logging for trail {descriptor.name}: {e}")

    def stop_logging(self, clients: ClientFactory, descriptor: ResourceDescriptor) -> bool:
        """Stop a trail if it is logging.

        Returns:
            True if the trail was logging and has been stopped
        """
        ct = clients.client("cloudtrail", descriptor.region)
        status: Dict[str, Any] = self._call(ct.get_trail_status, Name=descriptor.identifier)
        if not status.get("IsLogging"):
            return False
        self._call(ct.stop_logging, Name=descriptor.identifier)
        self.logger.info(f"Stopped logging for trail {descriptor.name}")
        return True

    def _delete(
        self,
        clients: ClientFactory,
        descriptor: ResourceDescriptor,
        ctx: ExecutionContext,
    ) -> Optional[DestructionOutcome]:
        try:
            self.stop_logging(clients, descriptor)
        except NotFoundError:
            raise
        except (CredentialsError, SessionRevokedError):
            raise
        except TeardownError as e:
            self.logger.debug(f"stop_logging before delete failed: {e}")

        ct = clients.client("cloudtrail", descriptor.region)
        self._call(ct.delete_trail, Name=descriptor.identifier)
        return None

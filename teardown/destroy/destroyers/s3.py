"""S3 bucket destroyer.

Buckets are prepared (versioning suspended, logging and lifecycle removed),
emptied version by version in bounded batches, then deleted. When emptying
does not finish within the per-operation timeout, an expiration lifecycle
rule is applied instead and the bucket is handed to lazy delete.
"""

from __future__ import annotations

import time
from concurrent.futures import ALL_COMPLETED, FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from datetime import timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from ...aws.client import ClientFactory
from ...models.execution_context import ExecutionContext
from ...models.lazy_delete import LazyDeleteEntry
from ...models.outcome import DestructionOutcome
from ...models.resource import ResourceDescriptor
from ...models.target import Target
from ..errors import CredentialsError, DependencyNotReadyError, NotFoundError, SessionRevokedError, TeardownError
from ..matcher import ResourceMatcher
from ..retry import RetryPolicy, classify_exception
from .base import GLOBAL_REGION, ServiceDestroyer, tags_to_dict

MAX_KEYS_PER_BATCH = 1000
MAX_BATCHES = 500
LAZY_DELETE_RULE_ID = "teardown-lazy-delete"


def is_cloudtrail_bucket(name: str) -> bool:
    return "cloudtrail" in name.lower()


class S3Destroyer(ServiceDestroyer):
    """Destroyer for S3 buckets (CloudTrail log buckets excluded)."""

    include_cloudtrail_buckets = False

    def __init__(
        self,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        settle_delay: float = 2.0,
    ) -> None:
        super().__init__(retry_policy)
        self.clock = clock
        self.sleep = sleep
        self.settle_delay = settle_delay

    @property
    def service_name(self) -> str:
        return "s3"

    @property
    def resource_class(self) -> str:
        return "S3 bucket"

    @property
    def is_global_service(self) -> bool:
        return True

    def _enumerate(self, clients: ClientFactory, target: Target) -> Iterable[ResourceDescriptor]:
        s3 = clients.client("s3", GLOBAL_REGION)
        response = self._call(s3.list_buckets)

        resources = []
        for bucket in response.get("Buckets", []):
            name = bucket["Name"]
            resources.append(
                self._descriptor(
                    target,
                    identifier=name,
                    name=name,
                    tags=self._bucket_tags(s3, name),
                    region=self._bucket_region(s3, name),
                )
            )
        return resources

    def select(self, descriptors: List[ResourceDescriptor], matcher: ResourceMatcher) -> List[ResourceDescriptor]:
        matched = matcher.filter(descriptors)
        return [d for d in matched if is_cloudtrail_bucket(d.name) == self.include_cloudtrail_buckets]

    def _bucket_region(self, s3: Any, name: str) -> str:
        try:
            location = self._call(s3.get_bucket_location, Bucket=name).get("LocationConstraint")
        except (CredentialsError, SessionRevokedError):
            raise
        except TeardownError as e:
            self.logger.debug(f"Could not get location of {name}: {e}")
            return GLOBAL_REGION
        # us-east-1 buckets report no constraint, very old eu-west-1 ones report "EU"
        if not location:
            return GLOBAL_REGION
        return "eu-west-1" if location == "EU" else location

    def _bucket_tags(self, s3: Any, name: str) -> Dict[str, str]:
        try:
            response = self._call(s3.get_bucket_tagging, Bucket=name)
        except (CredentialsError, SessionRevokedError):
            raise
        except TeardownError:
            # NoSuchTagSet and cross-region redirects both land here
            return {}
        return tags_to_dict(response.get("TagSet", []))

    def bucket_exists(self, clients: ClientFactory, name: str, region: str) -> bool:
        s3 = clients.client("s3", region)
        try:
            self._call(s3.head_bucket, Bucket=name)
        except NotFoundError:
            return False
        return True

    def delete_if_empty(self, clients: ClientFactory, name: str, region: str) -> bool:
        """Delete a bucket only if the provider reports it empty.

        Returns:
            False while objects remain (BucketNotEmpty)

        Raises:
            NotFoundError: If the bucket no longer exists
        """
        s3 = clients.client("s3", region)
        try:
            self._call(s3.delete_bucket, Bucket=name)
        except DependencyNotReadyError:
            return False
        return True

    def _delete(
        self,
        clients: ClientFactory,
        descriptor: ResourceDescriptor,
        ctx: ExecutionContext,
    ) -> Optional[DestructionOutcome]:
        s3 = clients.client("s3", descriptor.region)
        bucket = descriptor.identifier
        deadline = self.clock() + ctx.per_operation_timeout

        self._prepare_bucket(s3, bucket)
        self.sleep(self.settle_delay)

        if not self._empty_bucket(s3, bucket, deadline, ctx.max_workers):
            return self._lazy_delete(
                s3,
                descriptor,
                ctx,
                f"emptying exceeded {ctx.per_operation_timeout:.0f}s timeout",
            )

        try:
            self._call(s3.delete_bucket, Bucket=bucket)
        except (CredentialsError, SessionRevokedError, NotFoundError):
            raise
        except TeardownError as e:
            return self._lazy_delete(s3, descriptor, ctx, f"delete_bucket failed: {e}")
        return None

    def _prepare_bucket(self, s3: Any, bucket: str) -> None:
        """Stop new versions, access logs and lifecycle transitions."""
        self._step(s3.put_bucket_versioning, Bucket=bucket, VersioningConfiguration={"Status": "Suspended"})
        self._step(s3.put_bucket_logging, Bucket=bucket, BucketLoggingStatus={})
        self._step(s3.delete_bucket_lifecycle, Bucket=bucket)
        self._step(s3.delete_bucket_replication, Bucket=bucket)

        response = self._step(s3.list_bucket_intelligent_tiering_configurations, Bucket=bucket) or {}
        for config in response.get("IntelligentTieringConfigurationList", []):
            self._step(s3.delete_bucket_intelligent_tiering_configuration, Bucket=bucket, Id=config["Id"])

    def _step(self, method: Callable[..., Any], **kwargs: Any) -> Any:
        # Missing sub-configurations are fine, a missing bucket is not
        try:
            return self._call(method, **kwargs)
        except NotFoundError as e:
            if e.code == "NoSuchBucket":
                raise
            self.logger.debug(f"{e}")
        except (CredentialsError, SessionRevokedError):
            raise
        except TeardownError as e:
            self.logger.debug(f"Ignoring bucket preparation error: {e}")
        return None

    def _empty_bucket(self, s3: Any, bucket: str, deadline: float, max_workers: int) -> bool:
        """Delete every object version and delete marker.

        Batches of at most MAX_KEYS_PER_BATCH keys are submitted to a pool of
        ``max_workers`` threads, never more than ``max_workers`` in flight.
        The deadline is checked before each submission and as each batch
        finishes. Emptying that overruns the deadline counts as timed out even
        if the last batches completed; the lazy-delete recheck removes such a
        bucket once it is empty.

        Returns:
            True when the bucket was fully listed and deleted in time, False
            when the deadline or the batch cap stopped the work
        """
        in_flight: Set[Future] = set()
        batches_sent = 0
        stopped = False

        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=f"s3-empty-{bucket}"[:40]) as pool:
            for batch in self._key_batches(s3, bucket):
                while len(in_flight) >= max_workers:
                    in_flight = self._wait_for_batches(in_flight, bucket, FIRST_COMPLETED)
                if self.clock() > deadline or batches_sent >= MAX_BATCHES:
                    stopped = True
                    break
                in_flight.add(pool.submit(self._delete_batch, s3, bucket, batch))
                batches_sent += 1
            self._wait_for_batches(in_flight, bucket, ALL_COMPLETED)

        if stopped or self.clock() > deadline:
            self.logger.warning(f"Stopped emptying {bucket} after {batches_sent} batches")
            return False
        return True

    def _key_batches(self, s3: Any, bucket: str) -> Iterable[List[Dict[str, str]]]:
        pending: List[Dict[str, str]] = []
        for page in self._version_pages(s3, bucket):
            pending.extend(
                {"Key": item["Key"], "VersionId": item["VersionId"]}
                for item in page.get("Versions", []) + page.get("DeleteMarkers", [])
            )
            while len(pending) >= MAX_KEYS_PER_BATCH:
                batch, pending = pending[:MAX_KEYS_PER_BATCH], pending[MAX_KEYS_PER_BATCH:]
                yield batch
        if pending:
            yield pending

    def _version_pages(self, s3: Any, bucket: str) -> Iterable[Dict[str, Any]]:
        paginator = s3.get_paginator("list_object_versions")
        pages = iter(paginator.paginate(Bucket=bucket, PaginationConfig={"PageSize": MAX_KEYS_PER_BATCH}))
        while True:
            try:
                page = next(pages, None)
            except Exception as e:
                raise classify_exception(e, "list_object_versions") from e
            if page is None:
                return
            yield page

    def _wait_for_batches(self, in_flight: Set[Future], bucket: str, return_when: str) -> Set[Future]:
        if not in_flight:
            return in_flight
        done, not_done = wait(in_flight, return_when=return_when)
        for future in done:
            for error in future.result()[:5]:
                self.logger.warning(f"Could not delete {bucket}/{error.get('Key')}: {error.get('Code')}")
        return set(not_done)

    def _delete_batch(self, s3: Any, bucket: str, batch: List[Dict[str, str]]) -> List[Dict[str, Any]]:
        response = self._call(s3.delete_objects, Bucket=bucket, Delete={"Objects": batch, "Quiet": True})
        return response.get("Errors", []) if isinstance(response, dict) else []

    def _lazy_delete(
        self,
        s3: Any,
        descriptor: ResourceDescriptor,
        ctx: ExecutionContext,
        reason: str,
    ) -> DestructionOutcome:
        """Expire everything left in the bucket and record it for follow-up."""
        days = ctx.lazy_delete_days
        self._call(
            s3.put_bucket_lifecycle_configuration,
            Bucket=descriptor.identifier,
            LifecycleConfiguration={
                "Rules": [
                    {
                        "ID": LAZY_DELETE_RULE_ID,
                        "Status": "Enabled",
                        "Filter": {},
                        "Expiration": {"Days": days},
                        "NoncurrentVersionExpiration": {"NoncurrentDays": days},
                        "AbortIncompleteMultipartUpload": {"DaysAfterInitiation": 1},
                    }
                ]
            },
        )
        entry = LazyDeleteEntry(
            resource_id=descriptor.identifier,
            account_id=descriptor.account_id,
            region=descriptor.region,
            reason=reason,
            expected_convergence_window=timedelta(days=days + 1),
            service_type=descriptor.service_type,
        )
        self.logger.warning(
            f"Bucket {descriptor.identifier} set to lazy delete ({reason}); "
            f"objects expire in {days} day(s), storage billing stops with them"
        )
        return DestructionOutcome.deferred(
            descriptor,
            f"lazy delete applied: {reason}",
            "OperationTimeoutError",
            lazy_delete=entry,
        )


class CloudTrailBucketDestroyer(S3Destroyer):
    """Final sweep of CloudTrail log buckets, once trails have stopped writing."""

    include_cloudtrail_buckets = True

    @property
    def service_name(self) -> str:
        return "cloudtrail_buckets"

    @property
    def resource_class(self) -> str:
        return "CloudTrail log bucket"

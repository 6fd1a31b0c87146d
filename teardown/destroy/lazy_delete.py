"""Lazy-delete tracking.

Buckets that could not be emptied in time are recorded in a YAML file and
re-checked by later runs until the provider has finished expiring them.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Union

import yaml

from ..aws.session import SessionManager
from ..models.lazy_delete import LazyDeleteEntry, LazyDeleteStatus
from ..models.outcome import DestructionOutcome
from ..models.resource import ResourceDescriptor
from ..models.target import Target
from .destroyers.s3 import S3Destroyer
from .errors import (
    AuthorizationError,
    CredentialsError,
    NotFoundError,
    SessionRevokedError,
    TeardownError,
    TrackingFileError,
)

logger = logging.getLogger(__name__)

LAZY_DELETE_FILE = "lazy-delete.yaml"


class LazyDeleteStore:
    """YAML-backed list of lazy-delete entries.

    File structure:
        metadata:
          version: "1.0"
          updated_at: ...
        entries:
          - resource_id: my-bucket
            account_id: "123456789012"
            ...

    Attributes:
        path: Tracking file location
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    @classmethod
    def in_dir(cls, output_dir: Union[str, Path]) -> LazyDeleteStore:
        return cls(Path(output_dir) / LAZY_DELETE_FILE)

    def load(self) -> List[LazyDeleteEntry]:
        """Read every entry; a missing file means no entries.

        Raises:
            TrackingFileError: If the file is not a valid tracking document
        """
        if not self.path.exists():
            return []
        with open(self.path, "r") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise TrackingFileError(f"{self.path} is not valid YAML: {e}") from e
        if data is None:
            return []
        if not isinstance(data, dict) or not isinstance(data.get("entries", []), list):
            raise TrackingFileError(f"{self.path} is not a lazy-delete tracking file")
        try:
            return [LazyDeleteEntry.from_dict(item) for item in data.get("entries") or []]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise TrackingFileError(f"{self.path} has a malformed entry: {e!r}") from e

    def save(self, entries: Iterable[LazyDeleteEntry]) -> None:
        """Write the entries through a temporary file replaced in one step."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "metadata": {
                "version": "1.0",
                "updated_at": datetime.now(timezone.utc).isoformat(),
            },
            "entries": [entry.to_dict() for entry in entries],
        }
        tmp_path = self.path.with_name(f".{self.path.name}.tmp")
        try:
            with open(tmp_path, "w") as f:
                yaml.dump(data, f, default_flow_style=False, sort_keys=False)
            tmp_path.replace(self.path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

    def merge(self, entries: Iterable[LazyDeleteEntry]) -> List[LazyDeleteEntry]:
        """Add or replace entries by (account, service, resource) and save.

        Returns:
            The full list as written
        """
        merged: Dict[tuple, LazyDeleteEntry] = {entry.key: entry for entry in self.load()}
        for entry in entries:
            merged[entry.key] = entry
        result = list(merged.values())
        self.save(result)
        return result

    def pending(self) -> List[LazyDeleteEntry]:
        return [entry for entry in self.load() if entry.status == LazyDeleteStatus.PENDING]


def entry_descriptor(entry: LazyDeleteEntry) -> ResourceDescriptor:
    return ResourceDescriptor(
        service_type=entry.service_type,
        identifier=entry.resource_id,
        region=entry.region,
        account_id=entry.account_id,
        name=entry.resource_id,
        resource_class="S3 bucket (lazy delete)",
    )


def recheck(
    entries: Iterable[LazyDeleteEntry],
    sessions: SessionManager,
    target_for: Callable[[LazyDeleteEntry], Target],
    checker: S3Destroyer,
    dry_run: bool = False,
    now: Optional[Callable[[], datetime]] = None,
) -> List[DestructionOutcome]:
    """Re-check pending entries and finish the buckets that are now empty.

    Entries are updated in place (status, last_checked_at); persisting them
    is left to the Reporter. Safe to run any number of times.

    Args:
        entries: Entries to re-check; completed ones are ignored
        sessions: Session manager used to reach each entry's account
        target_for: Builds the Target of an entry's account
        checker: S3 destroyer used for the existence check and final delete
        dry_run: Only check existence, never delete

    Returns:
        One outcome per pending entry

    Raises:
        CredentialsError: If base credentials are lost
    """
    now = now or (lambda: datetime.now(timezone.utc))
    outcomes: List[DestructionOutcome] = []

    for entry in entries:
        if entry.status != LazyDeleteStatus.PENDING:
            continue
        descriptor = entry_descriptor(entry)
        checked_at = now()
        try:
            with sessions.assume(target_for(entry)) as clients:
                outcome = _recheck_one(entry, descriptor, clients, checker, dry_run, checked_at)
        except AuthorizationError as e:
            outcome = DestructionOutcome.skipped(descriptor, str(e), AuthorizationError.__name__)
        entry.last_checked_at = checked_at
        outcomes.append(outcome)
    return outcomes


def _recheck_one(
    entry: LazyDeleteEntry,
    descriptor: ResourceDescriptor,
    clients,
    checker: S3Destroyer,
    dry_run: bool,
    checked_at: datetime,
) -> DestructionOutcome:
    try:
        if not checker.bucket_exists(clients, entry.resource_id, entry.region):
            entry.status = LazyDeleteStatus.COMPLETED
            logger.info(f"Lazy delete of {entry.resource_id} has completed")
            return DestructionOutcome.skipped(descriptor, "lazy delete completed", NotFoundError.__name__)

        if not dry_run and checker.delete_if_empty(clients, entry.resource_id, entry.region):
            entry.status = LazyDeleteStatus.COMPLETED
            logger.info(f"Deleted lazy-delete bucket {entry.resource_id}")
            return DestructionOutcome.destroyed(descriptor)
    except NotFoundError:
        entry.status = LazyDeleteStatus.COMPLETED
        return DestructionOutcome.skipped(descriptor, "lazy delete completed", NotFoundError.__name__)
    except (CredentialsError, SessionRevokedError):
        raise
    except TeardownError as e:
        logger.warning(f"Could not re-check {entry.resource_id}: {e}")
        return DestructionOutcome.failed(descriptor, e)

    reason = f"lazy delete pending, expected by {entry.expected_by:%Y-%m-%d %H:%M}"
    if entry.is_overdue(checked_at):
        logger.warning(f"Lazy delete of {entry.resource_id} is overdue ({reason})")
        reason = f"lazy delete overdue, was expected by {entry.expected_by:%Y-%m-%d %H:%M}"
    return DestructionOutcome.deferred(descriptor, reason)

"""Resource descriptor and match result models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional


@dataclass(frozen=True)
class ResourceDescriptor:
    """A discovered cloud resource.

    Produced by a destroyer's enumeration and consumed by the matcher and the
    same destroyer's destroy call.

    Attributes:
        service_type: Registry key of the destroyer that found it (e.g., "s3")
        identifier: Provider identifier passed to API calls (bucket name, ARN, ID)
        region: Region the resource lives in ("global" is not used, global
            resources carry the region their API is called in)
        account_id: Owning account
        name: Human name used for ownership matching
        tags: Resource tags
        resource_class: Human label for reports (e.g., "S3 bucket")
        metadata: Service-specific details needed for destruction
    """

    service_type: str
    identifier: str
    region: str
    account_id: str
    name: str = ""
    tags: Mapping[str, str] = field(default_factory=dict, hash=False)
    resource_class: str = ""
    metadata: Mapping[str, Any] = field(default_factory=dict, hash=False, compare=False)

    @property
    def display_name(self) -> str:
        return self.name or self.identifier

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service_type": self.service_type,
            "resource_class": self.resource_class,
            "identifier": self.identifier,
            "name": self.name,
            "region": self.region,
            "account_id": self.account_id,
            "tags": dict(self.tags),
        }


@dataclass(frozen=True)
class MatchResult:
    """Outcome of an ownership check.

    Attributes:
        matched: True only when an ownership rule matched unambiguously
        reason: Human-readable explanation
        pattern: The pattern that matched or excluded, if any
    """

    matched: bool
    reason: str
    pattern: Optional[str] = None

    def __bool__(self) -> bool:
        return self.matched

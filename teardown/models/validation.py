"""Post-destruction validation report model."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

from .resource import ResourceDescriptor


@dataclass
class ValidationReport:
    """Stragglers found by re-scanning every region and account.

    Attributes:
        stragglers: Matching resources that still exist
        regions_checked: Regions that were scanned
        accounts_checked: Accounts that were scanned
        errors: Scan errors (inaccessible accounts, unavailable services)
    """

    stragglers: List[ResourceDescriptor] = field(default_factory=list)
    regions_checked: List[str] = field(default_factory=list)
    accounts_checked: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return not self.stragglers

    def to_dict(self) -> Dict[str, Any]:
        return {
            "passed": self.passed,
            "stragglers": [resource.to_dict() for resource in self.stragglers],
            "regions_checked": list(self.regions_checked),
            "accounts_checked": list(self.accounts_checked),
            "errors": list(self.errors),
        }

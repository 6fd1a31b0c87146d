"""Ownership pattern model.

Ownership patterns decide which discovered resources belong to the project.
They are supplied by configuration; nothing here is hardcoded to one project.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .execution_context import Scope

MIN_PATTERN_LENGTH = 3

DEFAULT_TAG_KEYS = ("Project", "project", "Application")

# Account plumbing that must never be destroyed, whatever its name
DEFAULT_EXCLUSIONS = ("OrganizationAccountAccessRole", "AWSServiceRoleFor", "AWSReservedSSO")


@dataclass(frozen=True)
class OwnershipPatterns:
    """Name and tag rules identifying project resources.

    Attributes:
        fragments: Project name fragments, matched on token boundaries
        prefixes: Generated-resource name prefixes (state buckets, role names)
        tag_keys: Tag keys whose values are compared against the fragments
        exclusions: Substrings that veto a match regardless of other rules
        preserved: Per-scope substrings that must survive a run of that scope
    """

    fragments: Tuple[str, ...] = ()
    prefixes: Tuple[str, ...] = ()
    tag_keys: Tuple[str, ...] = DEFAULT_TAG_KEYS
    exclusions: Tuple[str, ...] = ()
    preserved: Dict[Scope, Tuple[str, ...]] = field(default_factory=dict, hash=False)

    def validate(self) -> bool:
        """Validate pattern invariants.

        Validation rules:
            - at least one fragment or prefix
            - no pattern shorter than MIN_PATTERN_LENGTH characters

        Returns:
            True if validation passes

        Raises:
            ValueError: If any validation rule fails
        """
        if not self.fragments and not self.prefixes:
            raise ValueError("Ownership patterns need at least one fragment or prefix")

        for pattern in self.fragments + self.prefixes:
            if len(pattern.strip()) < MIN_PATTERN_LENGTH:
                raise ValueError(f"Ownership pattern too short to be safe: {pattern!r}")

        return True

    def preserved_for(self, scope: Scope) -> Tuple[str, ...]:
        return self.preserved.get(scope, ())

    @classmethod
    def from_project(
        cls,
        project_name: str,
        short_name: Optional[str] = None,
        extra_fragments: Optional[List[str]] = None,
        extra_prefixes: Optional[List[str]] = None,
        tag_keys: Optional[List[str]] = None,
        exclusions: Optional[List[str]] = None,
    ) -> OwnershipPatterns:
        """Derive the standard pattern set from project names.

        Generated names follow the bootstrap conventions:
        ``<project>-state-<env>-<account>``, ``<project>-terraform-state-<account>``,
        ``<project>-locks-<env>`` and ``GitHubActions-<Short>-<Env>-Role``.

        Args:
            project_name: Full project name (e.g., "static-site")
            short_name: Short project name used in generated names
            extra_fragments: Additional name fragments from configuration
            extra_prefixes: Additional generated-name prefixes
            tag_keys: Tag keys to inspect (defaults to Project/Application)
            exclusions: Substrings that must never match

        Returns:
            Validated OwnershipPatterns
        """
        short = short_name or project_name
        fragments: List[str] = []
        for candidate in [project_name, short] + list(extra_fragments or []):
            if candidate and candidate not in fragments:
                fragments.append(candidate)

        title = short[:1].upper() + short[1:]
        prefixes: List[str] = []
        for candidate in [
            f"{project_name}-state-",
            f"{project_name}-terraform-state-",
            f"{project_name}-locks-",
            f"GitHubActions-{title}-",
        ] + list(extra_prefixes or []):
            if candidate not in prefixes:
                prefixes.append(candidate)

        preserved = {
            Scope.ENVIRONMENT: (
                f"{project_name}-state-",
                f"{project_name}-terraform-state-",
                f"{project_name}-locks-",
                "GitHubActions-",
                "github-actions",
                "OrganizationAccountAccessRole",
                "token.actions.githubusercontent.com",
                "bootstrap",
            ),
        }

        patterns = cls(
            fragments=tuple(fragments),
            prefixes=tuple(prefixes),
            tag_keys=tuple(tag_keys) if tag_keys else DEFAULT_TAG_KEYS,
            exclusions=tuple(dict.fromkeys(DEFAULT_EXCLUSIONS + tuple(exclusions or ()))),
            preserved=preserved,
        )
        patterns.validate()
        return patterns

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fragments": list(self.fragments),
            "prefixes": list(self.prefixes),
            "tag_keys": list(self.tag_keys),
            "exclusions": list(self.exclusions),
            "preserved": {scope.value: list(values) for scope, values in self.preserved.items()},
        }

"""Ownership matching.

Decides whether a discovered resource belongs to the project. Matching is
pure and conservative: anything ambiguous is reported as no match.
"""

from __future__ import annotations

from typing import Optional

from ..models.execution_context import Scope
from ..models.ownership import MIN_PATTERN_LENGTH, OwnershipPatterns
from ..models.resource import MatchResult, ResourceDescriptor

SEPARATORS = frozenset("-_./: ")

_EMPTY_NAMES = frozenset({"", "null", "none"})


def _bounded_find(haystack: str, needle: str) -> bool:
    """Find ``needle`` in ``haystack`` with a separator or string edge on both sides."""
    start = haystack.find(needle)
    while start != -1:
        end = start + len(needle)
        before_ok = start == 0 or haystack[start - 1] in SEPARATORS
        after_ok = end == len(haystack) or haystack[end] in SEPARATORS
        if before_ok and after_ok:
            return True
        start = haystack.find(needle, start + 1)
    return False


class ResourceMatcher:
    """Ownership matcher for resource descriptors.

    Evaluation order: empty names, exclusions, scope-preserved patterns,
    prefixes, name fragments, tag values. The first decisive rule wins.

    Attributes:
        patterns: Ownership patterns in effect
        scope: Run scope used to select preserved patterns
    """

    def __init__(self, patterns: OwnershipPatterns, scope: Scope = Scope.FULL) -> None:
        patterns.validate()
        self.patterns = patterns
        self.scope = scope
        self._fragments = [f.lower() for f in patterns.fragments if len(f) >= MIN_PATTERN_LENGTH]
        self._prefixes = [p.lower() for p in patterns.prefixes if len(p) >= MIN_PATTERN_LENGTH]
        self._exclusions = [e.lower() for e in patterns.exclusions if e]
        self._preserved = [p.lower() for p in patterns.preserved_for(scope) if p]

    def matches(self, descriptor: ResourceDescriptor) -> MatchResult:
        """Decide whether a resource belongs to the project.

        Args:
            descriptor: Resource to check

        Returns:
            MatchResult; matched is True only for an unambiguous ownership rule
        """
        name = (descriptor.name or "").strip()
        if name.lower() in _EMPTY_NAMES:
            name = ""

        tag_values = [
            str(value).strip()
            for key, value in (descriptor.tags or {}).items()
            if key in self.patterns.tag_keys and value is not None
        ]
        tag_values = [value for value in tag_values if value.lower() not in _EMPTY_NAMES]

        if not name and not tag_values:
            return MatchResult(False, "no name or ownership tags")

        lowered = name.lower()
        veto = self._vetoed(lowered, descriptor)
        if veto is not None:
            return veto

        if lowered:
            for prefix in self._prefixes:
                if lowered.startswith(prefix):
                    return MatchResult(True, f"name starts with generated prefix '{prefix}'", prefix)

            for fragment in self._fragments:
                if _bounded_find(lowered, fragment):
                    return MatchResult(True, f"name contains project fragment '{fragment}'", fragment)

        for value in tag_values:
            lowered_value = value.lower()
            for fragment in self._fragments:
                if _bounded_find(lowered_value, fragment):
                    return MatchResult(True, f"ownership tag value '{value}' matches '{fragment}'", fragment)

        return MatchResult(False, "no ownership pattern matched")

    def vetoed(self, descriptor: ResourceDescriptor) -> Optional[MatchResult]:
        """Apply only the exclusion and preserved-pattern rules.

        Returns:
            The vetoing MatchResult, or None when nothing vetoes the resource
        """
        return self._vetoed((descriptor.name or "").strip().lower(), descriptor)

    def _vetoed(self, lowered_name: str, descriptor: ResourceDescriptor) -> Optional[MatchResult]:
        haystacks = [lowered_name, descriptor.identifier.lower()]
        for exclusion in self._exclusions:
            if any(exclusion in haystack for haystack in haystacks):
                return MatchResult(False, f"excluded by '{exclusion}'", exclusion)
        for preserved in self._preserved:
            if any(preserved in haystack for haystack in haystacks):
                return MatchResult(False, f"preserved in {self.scope.value} scope by '{preserved}'", preserved)
        return None

    def filter(self, descriptors: list[ResourceDescriptor]) -> list[ResourceDescriptor]:
        """Return only the descriptors that match."""
        return [descriptor for descriptor in descriptors if self.matches(descriptor).matched]

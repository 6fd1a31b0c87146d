"""Unit tests for ResourceMatcher."""

import random
import string

import pytest

from teardown.destroy.matcher import ResourceMatcher
from teardown.models.execution_context import Scope
from teardown.models.ownership import OwnershipPatterns
from tests.fixtures.aws import make_descriptor, make_patterns


@pytest.fixture
def matcher() -> ResourceMatcher:
    return ResourceMatcher(make_patterns("static-site", exclusions=["shared-logging"]))


class TestResourceMatcher:
    """Test suite for ResourceMatcher."""

    @pytest.mark.parametrize(
        "name",
        [
            "static-site",
            "static-site-assets-dev",
            "logs-static-site",
            "prod/static-site/api-key",
            "STATIC-SITE-Alerts",
            "static-site-state-dev-822529998967",
            "GitHubActions-Static-site-Dev-Role",
        ],
    )
    def test_matches_project_names(self, matcher: ResourceMatcher, name: str) -> None:
        """Test names that belong to the project."""
        result = matcher.matches(make_descriptor(identifier=name))

        assert result.matched is True
        assert result.pattern is not None

    @pytest.mark.parametrize(
        "name",
        [
            "mystatic-site",
            "static-sites-archive",
            "unrelated-bucket",
            "static",
        ],
    )
    def test_rejects_partial_tokens(self, matcher: ResourceMatcher, name: str) -> None:
        """Test that fragments must sit on token boundaries."""
        assert matcher.matches(make_descriptor(identifier=name)).matched is False

    @pytest.mark.parametrize("name", ["", "   ", "null", "None"])
    def test_empty_names_never_match(self, matcher: ResourceMatcher, name: str) -> None:
        """Test that unnamed resources without tags are left alone."""
        result = matcher.matches(make_descriptor(identifier="i-0abc", name=name))

        assert result.matched is False
        assert "no name" in result.reason

    def test_matches_by_tag(self, matcher: ResourceMatcher) -> None:
        """Test tag-only ownership (e.g., Elastic IPs)."""
        descriptor = make_descriptor(identifier="eipalloc-0abc", name="", tags={"Project": "static-site"})

        assert matcher.matches(descriptor).matched is True

    def test_ignores_unknown_tag_keys(self, matcher: ResourceMatcher) -> None:
        """Test that only configured tag keys count."""
        descriptor = make_descriptor(identifier="eipalloc-0abc", name="", tags={"Owner": "static-site"})

        assert matcher.matches(descriptor).matched is False

    def test_exclusion_vetoes_match(self, matcher: ResourceMatcher) -> None:
        """Test that exclusions win over fragments."""
        result = matcher.matches(make_descriptor(identifier="static-site-shared-logging"))

        assert result.matched is False
        assert result.pattern == "shared-logging"

    def test_default_exclusions(self, matcher: ResourceMatcher) -> None:
        """Test that account plumbing never matches."""
        for name in ["OrganizationAccountAccessRole", "AWSServiceRoleForSupport", "AWSReservedSSO_static-site"]:
            assert matcher.matches(make_descriptor(identifier=name, service_type="iam")).matched is False

    def test_environment_scope_preserves_bootstrap(self) -> None:
        """Test that environment runs keep state buckets and CI roles."""
        matcher = ResourceMatcher(make_patterns("static-site"), Scope.ENVIRONMENT)

        assert matcher.matches(make_descriptor(identifier="static-site-state-dev-822529998967")).matched is False
        assert matcher.matches(make_descriptor(identifier="GitHubActions-Static-site-Dev-Role")).matched is False
        assert matcher.matches(make_descriptor(identifier="static-site-assets-dev")).matched is True

    def test_vetoed_ignores_ownership(self, matcher: ResourceMatcher) -> None:
        """Test that vetoes apply to resources no ownership rule would match."""
        assert matcher.vetoed(make_descriptor(identifier="module.cross_account.aws_iam_role.this")) is None
        veto = matcher.vetoed(make_descriptor(identifier="module.cross_account.shared-logging"))
        assert veto is not None
        assert veto.pattern == "shared-logging"

    def test_rejects_unsafe_patterns(self) -> None:
        """Test that the matcher refuses overly broad patterns."""
        with pytest.raises(ValueError):
            ResourceMatcher(OwnershipPatterns(fragments=("a",)))

    def test_filter(self, matcher: ResourceMatcher) -> None:
        """Test filtering a descriptor list."""
        descriptors = [make_descriptor(identifier=n) for n in ["static-site-a", "other", "static-site-b"]]

        assert [d.identifier for d in matcher.filter(descriptors)] == ["static-site-a", "static-site-b"]

    def test_random_names_without_fragment_never_match(self, matcher: ResourceMatcher) -> None:
        """Test that names not containing a pattern are never matched."""
        rng = random.Random(20250101)
        alphabet = string.ascii_lowercase + string.digits + "-_./"

        for _ in range(500):
            name = "".join(rng.choice(alphabet) for _ in range(rng.randint(1, 40)))
            if "static-site" in name or "githubactions" in name:
                continue
            assert matcher.matches(make_descriptor(identifier=name)).matched is False, name

    def test_random_names_with_bounded_fragment_always_match(self, matcher: ResourceMatcher) -> None:
        """Test that the fragment between separators always matches."""
        rng = random.Random(42)
        alphabet = string.ascii_lowercase + string.digits

        for _ in range(500):
            prefix = "".join(rng.choice(alphabet) for _ in range(rng.randint(0, 10)))
            suffix = "".join(rng.choice(alphabet) for _ in range(rng.randint(0, 10)))
            parts = [p for p in (prefix, "static-site", suffix) if p]
            name = rng.choice("-_./").join(parts)
            if "shared-logging" in name:
                continue
            assert matcher.matches(make_descriptor(identifier=name)).matched is True, name

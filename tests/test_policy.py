"""Tests for pattern matching and the profile policy engine."""

from __future__ import annotations

import pytest

from mcp_warden.capabilities import CapabilityKind
from mcp_warden.policy import DecisionReason, PolicyEngine, match_pattern
from tests.fakes import make_profiles

TOOL = CapabilityKind.TOOL
RESOURCE = CapabilityKind.RESOURCE
PROMPT = CapabilityKind.PROMPT

# ── Patterns ─────────────────────────────────────────────────────────────


class TestMatchPattern:
    @pytest.mark.parametrize("name", ["read_file", "", "a/b/c", "fs:x", "file:///etc/hosts"])
    def test_lone_stars_match_anything(self, name: str) -> None:
        assert match_pattern(name, "*")
        assert match_pattern(name, "**")

    @pytest.mark.parametrize("name", ["read_file", "[weird", "a*b", "x?"])
    def test_exact_match_always_matches(self, name: str) -> None:
        assert match_pattern(name, name)

    def test_single_segment_glob(self) -> None:
        assert match_pattern("read_file", "read_*")
        assert match_pattern("read_", "read_*")
        assert not match_pattern("write_file", "read_*")
        assert match_pattern("file1.txt", "file?.*")
        assert match_pattern("docs/a", "docs/*")

    def test_pattern_without_star_is_exact_only(self) -> None:
        assert not match_pattern("read_file", "read?file")
        assert not match_pattern("read_file", "read[_]file")
        assert not match_pattern("file1", "file?")
        assert match_pattern("read?file", "read?file")

    def test_class_negation_uses_bang(self) -> None:
        assert match_pattern("xb", "[!a]*")
        assert not match_pattern("ab", "[!a]*")

    def test_single_star_does_not_cross_segments(self) -> None:
        assert not match_pattern("docs/a/b", "docs/*")
        assert not match_pattern("a/b", "*b")

    def test_double_star_suffix_is_prefix_test(self) -> None:
        assert match_pattern("file:///home/user/notes.txt", "file:///home/**")
        assert not match_pattern("file:///etc/passwd", "file:///home/**")

    def test_double_star_prefix_is_suffix_test(self) -> None:
        assert match_pattern("a/b/c/secret.key", "**.key")
        assert not match_pattern("a/b/c/secret.pub", "**.key")

    def test_interior_double_star_requires_both(self) -> None:
        assert match_pattern("repo/x/y/README.md", "repo/**.md")
        assert not match_pattern("repo/x/y/README.txt", "repo/**.md")
        assert not match_pattern("other/README.md", "repo/**.md")

    def test_interior_double_star_parts_do_not_overlap(self) -> None:
        assert not match_pattern("ab", "ab**b")

    @pytest.mark.parametrize("pattern", ["[abc", "read_[", "foo\\", "[abc*", "read_[*"])
    def test_malformed_patterns_never_match_and_never_raise(self, pattern: str) -> None:
        assert not match_pattern("read_file", pattern)
        assert not match_pattern("a", pattern)


# ── Engine ───────────────────────────────────────────────────────────────


@pytest.fixture
def engine() -> PolicyEngine:
    return PolicyEngine(
        make_profiles(
            {
                "safe": {
                    "fs": {
                        "tools": {"allow": ["list_directory", "read_file"]},
                        "resources": {"deny": ["file:///etc/**"]},
                    },
                    "git": {"tools": {"allow": ["*"], "deny": ["delete_file"]}},
                    "open": {},
                },
                "empty": {},
            }
        )
    )


class TestPolicyEngine:
    def test_unknown_profile_fails_closed(self, engine: PolicyEngine) -> None:
        assert not engine.allowed("nope", "fs", TOOL, "read_file")
        assert engine.evaluate("nope", "fs", TOOL, "read_file") is DecisionReason.UNKNOWN_PROFILE

    def test_backend_missing_from_profile_fails_closed(self, engine: PolicyEngine) -> None:
        assert not engine.allowed("empty", "fs", TOOL, "read_file")
        assert not engine.allowed("safe", "web", TOOL, "fetch")
        assert engine.evaluate("safe", "web", TOOL, "fetch") is DecisionReason.UNKNOWN_BACKEND

    def test_empty_filter_allows_everything(self, engine: PolicyEngine) -> None:
        for kind in CapabilityKind:
            assert engine.allowed("safe", "open", kind, "anything/at:all")

    def test_allow_list_scenario(self, engine: PolicyEngine) -> None:
        assert engine.allowed("safe", "fs", TOOL, "read_file")
        assert engine.allowed("safe", "fs", TOOL, "list_directory")
        assert not engine.allowed("safe", "fs", TOOL, "write_file")
        assert (
            engine.evaluate("safe", "fs", TOOL, "write_file")
            is DecisionReason.NOT_IN_ALLOW_LIST
        )

    def test_deny_overrides_allow(self, engine: PolicyEngine) -> None:
        assert engine.allowed("safe", "git", TOOL, "read_file")
        assert not engine.allowed("safe", "git", TOOL, "delete_file")
        assert (
            engine.evaluate("safe", "git", TOOL, "delete_file")
            is DecisionReason.DENIED_BY_PATTERN
        )

    def test_deny_wins_on_same_name(self) -> None:
        engine = PolicyEngine(
            make_profiles({"p": {"b": {"tools": {"allow": ["x"], "deny": ["x"]}}}})
        )
        assert not engine.allowed("p", "b", TOOL, "x")

    def test_non_empty_allow_denies_unmatched_regardless_of_deny(self) -> None:
        engine = PolicyEngine(
            make_profiles({"p": {"b": {"prompts": {"allow": ["summarize"], "deny": []}}}})
        )
        assert not engine.allowed("p", "b", PROMPT, "translate")

    def test_kinds_are_filtered_independently(self, engine: PolicyEngine) -> None:
        # fs restricts tools only; resources have a deny list of their own
        assert engine.allowed("safe", "fs", PROMPT, "write_file")
        assert engine.allowed("safe", "fs", RESOURCE, "file:///home/me/a.txt")
        assert not engine.allowed("safe", "fs", RESOURCE, "file:///etc/passwd")

    def test_effective_filter(self, engine: PolicyEngine) -> None:
        component = engine.effective_filter("safe", "fs", TOOL)
        assert component is not None
        assert component.allow == ["list_directory", "read_file"]
        assert engine.effective_filter("safe", "web", TOOL) is None
        assert engine.effective_filter("nope", "fs", TOOL) is None

    def test_reload_swaps_profiles(self, engine: PolicyEngine) -> None:
        assert not engine.allowed("safe", "fs", TOOL, "write_file")
        engine.reload(make_profiles({"safe": {"fs": {}}}))
        assert engine.allowed("safe", "fs", TOOL, "write_file")
        assert not engine.allowed("safe", "git", TOOL, "read_file")
        assert engine.profile_ids == ["safe"]

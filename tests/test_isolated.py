"""Tests for the single-backend isolated proxy."""

from __future__ import annotations

import pytest
from mcp.shared.exceptions import McpError

from mcp_warden.bridge import IsolatedProxy
from mcp_warden.errors import PolicyDeniedError, UpstreamUnavailableError
from mcp_warden.policy import PolicyEngine
from tests.fakes import FakeSession, connected, make_profiles


@pytest.fixture
def policy() -> PolicyEngine:
    return PolicyEngine(
        make_profiles(
            {
                "safe": {
                    "fs": {
                        "tools": {"allow": ["read_*"], "deny": ["read_secret"]},
                        "prompts": {"deny": ["*"]},
                    }
                },
                "other": {"git": {}},
            }
        )
    )


@pytest.fixture
def fs_session() -> FakeSession:
    return FakeSession(
        "fs",
        tools=["read_file", "read_secret", "write_file"],
        resources=["file:///home/a.txt"],
        prompts=["summarize"],
    )


class TestIsolatedProxy:
    @pytest.mark.anyio
    async def test_lists_native_names_filtered(self, policy, fs_session) -> None:
        async with connected({"fs": fs_session}) as manager:
            proxy = IsolatedProxy(manager.get("fs"), policy, "safe")
            tools = [t.name for t in await proxy.list_tools()]
            resources = [str(r.uri) for r in await proxy.list_resources()]
            prompts = await proxy.list_prompts()
        assert tools == ["read_file"]
        assert resources == ["file:///home/a.txt"]
        assert prompts == []
        assert proxy.backend_id == "fs"
        assert proxy.profile_id == "safe"

    @pytest.mark.anyio
    async def test_call_uses_name_verbatim(self, policy, fs_session) -> None:
        async with connected({"fs": fs_session}) as manager:
            proxy = IsolatedProxy(manager.get("fs"), policy, "safe")
            result = await proxy.call_tool("read_file", {"path": "/a"})
        assert result.content[0].text == "fs:read_file"
        assert fs_session.calls == [("tool", "read_file", {"path": "/a"})]

    @pytest.mark.anyio
    async def test_prefixed_name_is_not_parsed(self, policy, fs_session) -> None:
        async with connected({"fs": fs_session}) as manager:
            proxy = IsolatedProxy(manager.get("fs"), policy, "safe")
            with pytest.raises(PolicyDeniedError):
                await proxy.call_tool("fs:read_file")
        assert fs_session.calls == []

    @pytest.mark.anyio
    async def test_denied_operations_never_reach_backend(self, policy, fs_session) -> None:
        async with connected({"fs": fs_session}) as manager:
            proxy = IsolatedProxy(manager.get("fs"), policy, "safe")
            with pytest.raises(PolicyDeniedError):
                await proxy.call_tool("read_secret")
            with pytest.raises(PolicyDeniedError):
                await proxy.call_tool("write_file")
            with pytest.raises(PolicyDeniedError):
                await proxy.get_prompt("summarize")
        assert fs_session.calls == []

    @pytest.mark.anyio
    async def test_profile_without_backend_denies_everything(self, policy, fs_session) -> None:
        async with connected({"fs": fs_session}) as manager:
            proxy = IsolatedProxy(manager.get("fs"), policy, "other")
            assert await proxy.list_tools() == []
            with pytest.raises(PolicyDeniedError):
                await proxy.read_resource("file:///home/a.txt")
        assert fs_session.calls == []

    @pytest.mark.anyio
    async def test_read_resource(self, policy, fs_session) -> None:
        async with connected({"fs": fs_session}) as manager:
            proxy = IsolatedProxy(manager.get("fs"), policy, "safe")
            result = await proxy.read_resource("file:///home/a.txt")
        assert result.contents[0].text == "fs:file:///home/a.txt"

    @pytest.mark.anyio
    async def test_upstream_error_passes_through(self, policy) -> None:
        session = FakeSession("fs", tools=[])
        async with connected({"fs": session}) as manager:
            proxy = IsolatedProxy(manager.get("fs"), policy, "safe")
            with pytest.raises(McpError):
                await proxy.call_tool("read_file")

    @pytest.mark.anyio
    async def test_closed_connection_is_unavailable(self, policy, fs_session) -> None:
        async with connected({"fs": fs_session}) as manager:
            proxy = IsolatedProxy(manager.get("fs"), policy, "safe")
        assert await proxy.list_tools() == []
        with pytest.raises(UpstreamUnavailableError):
            await proxy.call_tool("read_file")

    @pytest.mark.anyio
    async def test_policy_reload_takes_effect(self, policy, fs_session) -> None:
        async with connected({"fs": fs_session}) as manager:
            proxy = IsolatedProxy(manager.get("fs"), policy, "safe")
            policy.reload(make_profiles({"safe": {"fs": {"tools": {"allow": ["write_file"]}}}}))
            tools = [t.name for t in await proxy.list_tools()]
            with pytest.raises(PolicyDeniedError):
                await proxy.call_tool("read_file")
        assert tools == ["write_file"]

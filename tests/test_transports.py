"""Tests for backend transport construction."""

from __future__ import annotations

from types import SimpleNamespace

import httpx
import pytest

from mcp_warden.bridge.transports import (
    StaticHeaderAuth,
    build_stdio_parameters,
    open_backend_session,
)
from mcp_warden.config import BackendConfig, StdioTransportConfig, TimeoutConfig
from mcp_warden.errors import UnsupportedTransportError


class TestStaticHeaderAuth:
    def test_headers_are_sent_on_every_request(self) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.headers.get("Authorization"))
            return httpx.Response(200)

        auth = StaticHeaderAuth({"Authorization": "Bearer abc"})
        with httpx.Client(transport=httpx.MockTransport(handler), auth=auth) as client:
            client.get("https://backend.example.com/mcp")
            client.post("https://backend.example.com/mcp", json={})
        assert seen == ["Bearer abc", "Bearer abc"]

    def test_headers_are_immutable(self) -> None:
        source = {"X-Api-Key": "k1"}
        auth = StaticHeaderAuth(source)
        source["X-Api-Key"] = "changed"
        assert auth.headers["X-Api-Key"] == "k1"
        with pytest.raises(TypeError):
            auth.headers["X-Api-Key"] = "k2"

    def test_repr_hides_values(self) -> None:
        auth = StaticHeaderAuth({"Authorization": "Bearer topsecret"})
        assert "topsecret" not in repr(auth)
        assert "Authorization" in repr(auth)


class TestStdioParameters:
    def test_environment_is_inherited_and_overridden(self, monkeypatch) -> None:
        monkeypatch.setenv("WARDEN_INHERITED", "yes")
        monkeypatch.setenv("WARDEN_OVERRIDDEN", "parent")
        transport = StdioTransportConfig(
            kind="stdio", command=" fs-server ", args=["--root", "/srv"], env={"WARDEN_OVERRIDDEN": "child"}
        )
        params = build_stdio_parameters(transport)
        assert params.command == "fs-server"
        assert params.args == ["--root", "/srv"]
        assert params.env["WARDEN_INHERITED"] == "yes"
        assert params.env["WARDEN_OVERRIDDEN"] == "child"


class TestOpenBackendSession:
    def test_unknown_kind(self) -> None:
        definition = BackendConfig.model_construct(
            display_name="", transport=SimpleNamespace(kind="pigeon"), timeouts=TimeoutConfig()
        )
        with pytest.raises(UnsupportedTransportError):
            open_backend_session("b", definition)

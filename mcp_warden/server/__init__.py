"""Serving: runtime assembly, HTTP app and stdio transport."""

from mcp_warden.server.app import build_mcp_server, create_app
from mcp_warden.server.lifespan import GatewayRuntime
from mcp_warden.server.transport import serve_stdio

__all__ = ["GatewayRuntime", "build_mcp_server", "create_app", "serve_stdio"]

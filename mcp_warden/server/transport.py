"""Client-facing MCP transports: streamable HTTP endpoints and stdio."""

import logging

from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server
from mcp.server.streamable_http_manager import StreamableHTTPSessionManager
from starlette.types import Receive, Scope, Send

logger = logging.getLogger(__name__)


class StreamableHttpEndpoint:
    """ASGI app forwarding every request to one MCP session manager.

    The session manager's ``run()`` must be active (see the app lifespan)
    before requests arrive.
    """

    def __init__(self, name: str, server: Server) -> None:
        self.name = name
        self.server = server
        self.session_manager = StreamableHTTPSessionManager(app=server)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        logger.debug("[%s] Streamable HTTP %s %s", self.name, scope.get("method"), scope.get("path"))
        await self.session_manager.handle_request(scope, receive, send)


async def serve_stdio(server: Server) -> None:
    """Serve *server* over this process's stdin/stdout until the client leaves."""
    logger.info("Serving '%s' over stdio.", server.name)
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())
    logger.info("Stdio client disconnected.")

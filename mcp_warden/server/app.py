"""Starlette ASGI application factory and MCP server instances."""

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator, List

from mcp.server.lowlevel import Server
from starlette.applications import Starlette
from starlette.routing import Route

from mcp_warden.bridge.dispatch import CapabilityDispatcher
from mcp_warden.constants import HUB_PATH, PER_SERVER_PATH_PREFIX, SERVER_NAME, SERVER_VERSION
from mcp_warden.errors import ConfigurationError
from mcp_warden.server.lifespan import GatewayRuntime
from mcp_warden.server.transport import StreamableHttpEndpoint

logger = logging.getLogger(__name__)


def build_mcp_server(dispatcher: CapabilityDispatcher, name: str = SERVER_NAME) -> Server:
    """Low-level MCP server with the dispatcher's six handlers installed."""
    server: Server = Server(name, version=SERVER_VERSION)
    dispatcher.install(server)
    logger.debug("MCP server instance '%s' created.", name)
    return server


def build_endpoints(runtime: GatewayRuntime) -> List[StreamableHttpEndpoint]:
    """One endpoint for the hub and one per isolated proxy, as configured."""
    endpoints: List[StreamableHttpEndpoint] = []
    if runtime.hub is not None:
        endpoints.append(StreamableHttpEndpoint(HUB_PATH, build_mcp_server(runtime.hub)))
    for backend_id, proxy in runtime.proxies.items():
        path = f"{PER_SERVER_PATH_PREFIX}{backend_id}"
        endpoints.append(
            StreamableHttpEndpoint(path, build_mcp_server(proxy, f"{SERVER_NAME} ({backend_id})"))
        )
    return endpoints


def create_app(runtime: GatewayRuntime) -> Starlette:
    """Create the ASGI application for an already started *runtime*."""
    endpoints = build_endpoints(runtime)
    if not endpoints:
        raise ConfigurationError("Nothing to serve: hub disabled and exposePerServer not set.")

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        async with AsyncExitStack() as stack:
            for endpoint in endpoints:
                await stack.enter_async_context(endpoint.session_manager.run())
            logger.info("MCP endpoints ready: %s", ", ".join(e.name for e in endpoints))
            yield
        logger.info("MCP endpoints stopped.")

    routes = [
        Route(endpoint.name, endpoint=endpoint, methods=["GET", "POST", "DELETE"])
        for endpoint in endpoints
    ]
    application = Starlette(lifespan=lifespan, routes=routes)
    application.state.runtime = runtime
    logger.info("Starlette ASGI app '%s' created with %d endpoint(s).", SERVER_NAME, len(routes))
    return application

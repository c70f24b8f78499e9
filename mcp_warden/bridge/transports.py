"""Transport builders for backend MCP servers.

``stdio`` backends are child processes spoken to over their standard
streams; ``http`` backends are streamable HTTP endpoints. Either way the
caller gets an *uninitialized* :class:`mcp.ClientSession`; the handshake is
the connection manager's job.
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from types import MappingProxyType
from typing import AsyncIterator, Dict, Generator, Mapping, Optional, TextIO

import httpx
from mcp import ClientSession, StdioServerParameters
from mcp import types as mcp_types
from mcp.client.stdio import stdio_client
from mcp.client.streamable_http import streamablehttp_client

from mcp_warden.config.schema import BackendConfig, HttpTransportConfig, StdioTransportConfig
from mcp_warden.constants import CLIENT_NAME, SERVER_VERSION
from mcp_warden.errors import UnsupportedTransportError

logger = logging.getLogger(__name__)

TRANSPORT_KINDS = frozenset({"stdio", "http"})


class StaticHeaderAuth(httpx.Auth):
    """Sets a fixed group of headers on every outgoing request.

    Built once per backend; the header mapping is read-only afterwards.
    """

    def __init__(self, headers: Mapping[str, str]) -> None:
        self._headers = MappingProxyType(dict(headers))

    @property
    def headers(self) -> Mapping[str, str]:
        return self._headers

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        for name, value in self._headers.items():
            request.headers[name] = value
        yield request

    def __repr__(self) -> str:
        return f"StaticHeaderAuth(headers={sorted(self._headers)})"


def build_stdio_parameters(transport: StdioTransportConfig) -> StdioServerParameters:
    """Child environment is the gateway's own environment plus the overrides."""
    proc_env: Dict[str, str] = dict(os.environ)
    proc_env.update(transport.env)
    return StdioServerParameters(
        command=transport.command,
        args=list(transport.args),
        env=proc_env,
    )


def _client_info() -> mcp_types.Implementation:
    return mcp_types.Implementation(name=CLIENT_NAME, version=SERVER_VERSION)


async def _log_subproc_stream(stream: asyncio.StreamReader, backend_id: str) -> None:
    """Read lines from a child's stderr and log them until EOF."""
    while True:
        line_bytes = await stream.readline()
        if not line_bytes:
            logger.debug("[%s-stderr] Stream ended (EOF).", backend_id)
            return
        line = line_bytes.decode(errors="replace").rstrip()
        if line:
            logger.info("[%s-stderr] %s", backend_id, line)


@asynccontextmanager
async def _stderr_to_log(backend_id: str) -> AsyncIterator[TextIO]:
    """Yield a writable file whose contents end up in the gateway log."""
    read_fd, write_fd = os.pipe()
    errlog = os.fdopen(write_fd, "w", encoding="utf-8", errors="replace")
    read_file = os.fdopen(read_fd, "rb", 0)
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    pipe_transport, _ = await loop.connect_read_pipe(
        lambda: asyncio.StreamReaderProtocol(reader), read_file
    )
    pump = asyncio.create_task(
        _log_subproc_stream(reader, backend_id), name=f"{backend_id}_stderr_logger"
    )
    try:
        yield errlog
    finally:
        errlog.close()
        try:
            await asyncio.wait_for(pump, timeout=1.0)
        except asyncio.TimeoutError:
            logger.debug("[%s-stderr] Logger did not reach EOF; cancelled.", backend_id)
        except Exception as exc:
            logger.error("[%s-stderr] Error while reading stream: %s", backend_id, exc)
        finally:
            pipe_transport.close()


@asynccontextmanager
async def _open_stdio(backend_id: str, transport: StdioTransportConfig) -> AsyncIterator[ClientSession]:
    params = build_stdio_parameters(transport)
    logger.debug("[%s] Stdio backend, command=%s args=%s", backend_id, params.command, params.args)
    async with _stderr_to_log(backend_id) as errlog:
        async with stdio_client(params, errlog=errlog) as (read_stream, write_stream):
            logger.debug("[%s] (stdio) transport streams established.", backend_id)
            async with ClientSession(read_stream, write_stream, client_info=_client_info()) as session:
                yield session


@asynccontextmanager
async def _open_http(backend_id: str, transport: HttpTransportConfig) -> AsyncIterator[ClientSession]:
    auth: Optional[StaticHeaderAuth] = None
    if transport.headers:
        auth = StaticHeaderAuth(transport.headers)
    logger.debug("[%s] Streamable-HTTP backend, url=%s auth=%r", backend_id, transport.url, auth)
    async with streamablehttp_client(url=transport.url, auth=auth) as (
        read_stream,
        write_stream,
        _get_session_id,
    ):
        logger.debug("[%s] (http) transport streams established.", backend_id)
        async with ClientSession(read_stream, write_stream, client_info=_client_info()) as session:
            yield session


def open_backend_session(backend_id: str, definition: BackendConfig):
    """Return an async context manager yielding an uninitialized session.

    Raises :class:`UnsupportedTransportError` for unknown transport kinds.
    """
    transport = definition.transport
    kind = getattr(transport, "kind", None)
    if kind == "stdio":
        return _open_stdio(backend_id, transport)
    if kind == "http":
        return _open_http(backend_id, transport)
    raise UnsupportedTransportError(backend_id, kind)

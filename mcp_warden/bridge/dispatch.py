"""Six-operation dispatch shared by the Hub and the Isolated Proxy.

:class:`Operation` is the closed set of MCP methods the gateway handles
itself. :class:`CapabilityDispatcher` declares one abstract coroutine per
operation, so a subclass missing one cannot be instantiated, and builds its
dispatch table from :data:`OPERATION_REQUESTS` at construction.
"""

from __future__ import annotations

import abc
import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type

from mcp import ClientSession
from mcp import types as mcp_types
from mcp.server.lowlevel import Server
from mcp.shared.exceptions import McpError
from pydantic import AnyUrl

from mcp_warden.capabilities import CapabilityKind, CapabilityRecord, make_record, native_name_of
from mcp_warden.constants import CAP_FETCH_TIMEOUT, MAX_LIST_PAGES
from mcp_warden.errors import (
    MalformedReferenceError,
    UnsupportedOperationError,
    UpstreamUnavailableError,
    WardenBaseError,
)
from mcp_warden.policy.engine import PolicyEngine

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    """The operations dispatched by the gateway, keyed by MCP method name."""

    LIST_TOOLS = "tools/list"
    CALL_TOOL = "tools/call"
    LIST_RESOURCES = "resources/list"
    READ_RESOURCE = "resources/read"
    LIST_PROMPTS = "prompts/list"
    GET_PROMPT = "prompts/get"


OPERATION_REQUESTS: Dict[Operation, Type[Any]] = {
    Operation.LIST_TOOLS: mcp_types.ListToolsRequest,
    Operation.CALL_TOOL: mcp_types.CallToolRequest,
    Operation.LIST_RESOURCES: mcp_types.ListResourcesRequest,
    Operation.READ_RESOURCE: mcp_types.ReadResourceRequest,
    Operation.LIST_PROMPTS: mcp_types.ListPromptsRequest,
    Operation.GET_PROMPT: mcp_types.GetPromptRequest,
}

_REQUEST_OPERATIONS: Dict[Type[Any], Operation] = {
    request_cls: op for op, request_cls in OPERATION_REQUESTS.items()
}

# (session method, result attribute) per capability kind
_LIST_METHODS = {
    CapabilityKind.TOOL: ("list_tools", "tools"),
    CapabilityKind.RESOURCE: ("list_resources", "resources"),
    CapabilityKind.PROMPT: ("list_prompts", "prompts"),
}

Fallback = Callable[[Any], Awaitable[Any]]


async def _collect_pages(session: ClientSession, kind: CapabilityKind, max_pages: int) -> List[Any]:
    method_name, attr = _LIST_METHODS[kind]
    list_method = getattr(session, method_name)
    items: List[Any] = []
    cursor: Optional[str] = None
    for _ in range(max_pages):
        result = await (list_method(cursor=cursor) if cursor else list_method())
        items.extend(getattr(result, attr, None) or [])
        cursor = getattr(result, "nextCursor", None)
        if not cursor:
            break
    else:
        logger.warning("Stopped following %s pagination after %d pages.", kind.value, max_pages)
    return items


async def fetch_capabilities(
    session: ClientSession,
    kind: CapabilityKind,
    timeout: float,
    max_pages: int = MAX_LIST_PAGES,
) -> List[Any]:
    """List every *kind* capability a session offers, following cursors.

    The whole listing (all pages) is bounded by *timeout*.
    """
    return await asyncio.wait_for(_collect_pages(session, kind, max_pages), timeout=timeout)


def _to_uri(reference: str) -> AnyUrl:
    try:
        return AnyUrl(reference)
    except ValueError as exc:
        raise MalformedReferenceError(CapabilityKind.RESOURCE.label, reference) from exc


async def forward(
    session: ClientSession,
    kind: CapabilityKind,
    native_name: str,
    arguments: Optional[Dict[str, Any]] = None,
) -> Any:
    """Send one invocation to a backend and return its result unmodified."""
    if kind is CapabilityKind.TOOL:
        return await session.call_tool(native_name, arguments)
    if kind is CapabilityKind.RESOURCE:
        return await session.read_resource(_to_uri(native_name))
    return await session.get_prompt(native_name, arguments)


class CapabilityDispatcher(abc.ABC):
    """Transport-agnostic request dispatch over the six operations.

    Parameters
    ----------
    policy:
        Engine consulted at discovery and again at invocation.
    profile_id:
        Profile every decision is made under; fixed for the instance.
    fetch_timeout:
        Default bound for one backend's discovery listing.
    """

    def __init__(
        self,
        policy: PolicyEngine,
        profile_id: str,
        fetch_timeout: float = CAP_FETCH_TIMEOUT,
    ) -> None:
        self._policy = policy
        self._profile_id = profile_id
        self._fetch_timeout = fetch_timeout
        self._handlers: Dict[Operation, Callable[[Any], Awaitable[Any]]] = {
            Operation.LIST_TOOLS: self._on_list_tools,
            Operation.CALL_TOOL: self._on_call_tool,
            Operation.LIST_RESOURCES: self._on_list_resources,
            Operation.READ_RESOURCE: self._on_read_resource,
            Operation.LIST_PROMPTS: self._on_list_prompts,
            Operation.GET_PROMPT: self._on_get_prompt,
        }
        missing = set(Operation) - set(self._handlers)
        if missing:
            raise TypeError(f"{type(self).__name__} has no handler for {sorted(missing)}")

    @property
    def profile_id(self) -> str:
        return self._profile_id

    # ── Operations ───────────────────────────────────────────────────────

    @abc.abstractmethod
    async def list_tools(self) -> List[mcp_types.Tool]: ...

    @abc.abstractmethod
    async def call_tool(
        self, name: str, arguments: Optional[Dict[str, Any]] = None
    ) -> mcp_types.CallToolResult: ...

    @abc.abstractmethod
    async def list_resources(self) -> List[mcp_types.Resource]: ...

    @abc.abstractmethod
    async def read_resource(self, uri: str) -> mcp_types.ReadResourceResult: ...

    @abc.abstractmethod
    async def list_prompts(self) -> List[mcp_types.Prompt]: ...

    @abc.abstractmethod
    async def get_prompt(
        self, name: str, arguments: Optional[Dict[str, str]] = None
    ) -> mcp_types.GetPromptResult: ...

    # ── Request adapters ─────────────────────────────────────────────────

    async def _on_list_tools(self, req: mcp_types.ListToolsRequest) -> mcp_types.ListToolsResult:
        return mcp_types.ListToolsResult(tools=await self.list_tools())

    async def _on_call_tool(self, req: mcp_types.CallToolRequest) -> mcp_types.CallToolResult:
        return await self.call_tool(req.params.name, req.params.arguments)

    async def _on_list_resources(
        self, req: mcp_types.ListResourcesRequest
    ) -> mcp_types.ListResourcesResult:
        return mcp_types.ListResourcesResult(resources=await self.list_resources())

    async def _on_read_resource(
        self, req: mcp_types.ReadResourceRequest
    ) -> mcp_types.ReadResourceResult:
        return await self.read_resource(str(req.params.uri))

    async def _on_list_prompts(self, req: mcp_types.ListPromptsRequest) -> mcp_types.ListPromptsResult:
        return mcp_types.ListPromptsResult(prompts=await self.list_prompts())

    async def _on_get_prompt(self, req: mcp_types.GetPromptRequest) -> mcp_types.GetPromptResult:
        return await self.get_prompt(req.params.name, req.params.arguments)

    async def handle(self, request: Any, fallback: Optional[Fallback] = None) -> Any:
        """Dispatch one request and return its typed result.

        *request* is a :class:`mcp.types.ClientRequest` or one of the six
        concrete request models.  Anything else goes to *fallback*, or raises
        :class:`UnsupportedOperationError` when there is none.
        """
        if isinstance(request, mcp_types.ClientRequest):
            request = request.root
        operation = _REQUEST_OPERATIONS.get(type(request))
        if operation is None:
            if fallback is not None:
                return await fallback(request)
            raise UnsupportedOperationError(getattr(request, "method", type(request).__name__))
        return await self._handlers[operation](request)

    def install(self, server: Server) -> Server:
        """Register the six handlers on a low-level MCP server.

        Other methods keep the server's defaults.  Gateway errors become MCP
        error responses carrying their own codes; upstream ``McpError`` is
        re-raised untouched.
        """
        for operation, request_cls in OPERATION_REQUESTS.items():
            server.request_handlers[request_cls] = self._server_handler(operation)
        return server

    def _server_handler(self, operation: Operation) -> Callable[[Any], Awaitable[mcp_types.ServerResult]]:
        handler = self._handlers[operation]

        async def _handle(req: Any) -> mcp_types.ServerResult:
            try:
                result = await handler(req)
            except WardenBaseError as exc:
                logger.info("%s rejected: %s", operation.value, exc)
                raise McpError(mcp_types.ErrorData(code=exc.code, message=str(exc))) from exc
            return mcp_types.ServerResult(result)

        return _handle

    # ── Shared discovery ─────────────────────────────────────────────────

    async def _discover_backend(
        self,
        conn: Any,
        kind: CapabilityKind,
        prefix_enabled: bool = False,
    ) -> List[CapabilityRecord]:
        """Fetch, filter and (optionally) rename one backend's capabilities.

        Never raises for backend trouble: an unavailable backend, a timeout
        or an upstream error all contribute zero records.
        """
        backend_id = conn.backend_id
        try:
            session = conn.require_session()
        except UpstreamUnavailableError:
            logger.debug("[%s] No live session; skipping %s discovery.", backend_id, kind.value)
            return []

        timeout = conn.fetch_timeout or self._fetch_timeout
        try:
            items = await fetch_capabilities(session, kind, timeout)
        except asyncio.TimeoutError:
            logger.warning("[%s] Timed out (%ss) fetching %s.", backend_id, timeout, kind.value)
            return []
        except Exception as exc:
            logger.warning(
                "[%s] Failed to fetch %s: %s: %s", backend_id, kind.value, type(exc).__name__, exc
            )
            return []

        records: List[CapabilityRecord] = []
        for item in items:
            native = native_name_of(kind, item)
            if not self._policy.allowed(self._profile_id, backend_id, kind, native):
                continue
            try:
                records.append(make_record(kind, backend_id, item, prefix_enabled))
            except ValueError:
                logger.warning(
                    "[%s] Dropping %s '%s': prefixed form is not a valid, normalized URI.",
                    backend_id,
                    kind.label,
                    native,
                )
        logger.debug("[%s] %d %s survived filtering.", backend_id, len(records), kind.value)
        return records

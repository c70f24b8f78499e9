"""Aggregating router: one MCP endpoint over every registered backend.

Discovery fans out to all backends concurrently, filters each backend's
capabilities through the policy engine and, in prefix mode, renames them
to ``<backendID>:<name>``.  Invocation reverses that naming (prefix mode)
or tries backends one by one (no-prefix mode), checking policy again
before anything is forwarded.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from mcp import types as mcp_types

from mcp_warden.bridge.client_manager import ConnectionManager
from mcp_warden.bridge.dispatch import CapabilityDispatcher, forward
from mcp_warden.capabilities import CapabilityKind, CapabilityRecord, split_reference
from mcp_warden.constants import CAP_FETCH_TIMEOUT
from mcp_warden.errors import CapabilityNotFoundError, PolicyDeniedError
from mcp_warden.policy.engine import PolicyEngine

logger = logging.getLogger(__name__)


def _is_error_result(result: Any) -> bool:
    return bool(getattr(result, "isError", False))


class Hub(CapabilityDispatcher):
    """Merges the capabilities of every backend in a :class:`ConnectionManager`.

    Parameters
    ----------
    manager:
        Registry of live backend connections, shared with the runtime.
    policy:
        Policy engine consulted on discovery and on invocation.
    profile_id:
        Profile applied to every request through this hub.
    prefix_enabled:
        Expose and expect ``<backendID>:<name>`` references.
    fetch_timeout:
        Default per-backend discovery bound.
    """

    def __init__(
        self,
        manager: ConnectionManager,
        policy: PolicyEngine,
        profile_id: str,
        prefix_enabled: bool = True,
        fetch_timeout: float = CAP_FETCH_TIMEOUT,
    ) -> None:
        super().__init__(policy, profile_id, fetch_timeout)
        self._manager = manager
        self._prefix_enabled = prefix_enabled

    @property
    def prefix_enabled(self) -> bool:
        return self._prefix_enabled

    # ── Discovery ────────────────────────────────────────────────────────

    async def discover(self, kind: CapabilityKind) -> List[CapabilityRecord]:
        """Return the filtered (and possibly renamed) records of all backends."""
        connections = self._manager.list()
        if not connections:
            return []
        results = await asyncio.gather(
            *(self._discover_backend(conn, kind, self._prefix_enabled) for conn in connections),
            return_exceptions=True,
        )
        records: List[CapabilityRecord] = []
        for conn, result in zip(connections, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "[%s] %s discovery aborted: %s", conn.backend_id, kind.value, type(result).__name__
                )
                continue
            records.extend(result)
        return records

    async def list_tools(self) -> List[mcp_types.Tool]:
        return [record.to_wire() for record in await self.discover(CapabilityKind.TOOL)]

    async def list_resources(self) -> List[mcp_types.Resource]:
        return [record.to_wire() for record in await self.discover(CapabilityKind.RESOURCE)]

    async def list_prompts(self) -> List[mcp_types.Prompt]:
        return [record.to_wire() for record in await self.discover(CapabilityKind.PROMPT)]

    # ── Invocation ───────────────────────────────────────────────────────

    async def call_tool(
        self, name: str, arguments: Optional[Dict[str, Any]] = None
    ) -> mcp_types.CallToolResult:
        return await self._invoke(CapabilityKind.TOOL, name, arguments)

    async def read_resource(self, uri: str) -> mcp_types.ReadResourceResult:
        return await self._invoke(CapabilityKind.RESOURCE, uri)

    async def get_prompt(
        self, name: str, arguments: Optional[Dict[str, str]] = None
    ) -> mcp_types.GetPromptResult:
        return await self._invoke(CapabilityKind.PROMPT, name, arguments)

    async def _invoke(
        self,
        kind: CapabilityKind,
        reference: str,
        arguments: Optional[Dict[str, Any]] = None,
    ) -> Any:
        if not self._prefix_enabled:
            return await self._try_each_backend(kind, reference, arguments)

        backend_id, native = split_reference(kind, reference)
        conn = self._manager.get(backend_id)
        if not self._policy.allowed(self._profile_id, backend_id, kind, native):
            logger.warning(
                "Blocked %s '%s' on '%s' under profile '%s'.",
                kind.label,
                native,
                backend_id,
                self._profile_id,
            )
            raise PolicyDeniedError(kind.label, reference)
        session = conn.require_session()
        logger.debug("Routing %s '%s' to '%s' as '%s'.", kind.label, reference, backend_id, native)
        return await forward(session, kind, native, arguments)

    async def _try_each_backend(
        self,
        kind: CapabilityKind,
        reference: str,
        arguments: Optional[Dict[str, Any]],
    ) -> Any:
        """Try each permitted backend in registry order until one succeeds.

        Registry order follows connection completion, so with several
        permitted owners of the same name the winner is not predictable.
        An ``isError`` result counts as a failed attempt; if every attempt
        fails the last failure (exception or error result) is surfaced.
        """
        last_error: Optional[Exception] = None
        last_error_result: Any = None
        for conn in self._manager.list():
            if not self._policy.allowed(self._profile_id, conn.backend_id, kind, reference):
                continue
            try:
                session = conn.require_session()
                result = await forward(session, kind, reference, arguments)
            except Exception as exc:
                logger.debug(
                    "[%s] %s '%s' failed: %s: %s",
                    conn.backend_id,
                    kind.label,
                    reference,
                    type(exc).__name__,
                    exc,
                )
                last_error, last_error_result = exc, None
                continue
            if _is_error_result(result):
                last_error, last_error_result = None, result
                continue
            return result

        if last_error_result is not None:
            return last_error_result
        if last_error is not None:
            raise last_error
        logger.warning(
            "%s '%s' not found or not allowed under profile '%s'.",
            kind.label,
            reference,
            self._profile_id,
        )
        raise CapabilityNotFoundError(kind.label, reference)

"""Isolated proxy: the six operations scoped to exactly one backend.

References are the backend's own names; nothing is renamed or parsed.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from mcp import types as mcp_types

from mcp_warden.bridge.client_manager import BackendConnection
from mcp_warden.bridge.dispatch import CapabilityDispatcher, forward
from mcp_warden.capabilities import CapabilityKind
from mcp_warden.constants import CAP_FETCH_TIMEOUT
from mcp_warden.errors import PolicyDeniedError
from mcp_warden.policy.engine import PolicyEngine

logger = logging.getLogger(__name__)


class IsolatedProxy(CapabilityDispatcher):
    """Exposes one backend connection under one profile."""

    def __init__(
        self,
        connection: BackendConnection,
        policy: PolicyEngine,
        profile_id: str,
        fetch_timeout: float = CAP_FETCH_TIMEOUT,
    ) -> None:
        super().__init__(policy, profile_id, fetch_timeout)
        self._connection = connection

    @property
    def backend_id(self) -> str:
        return self._connection.backend_id

    async def _list(self, kind: CapabilityKind) -> List[Any]:
        records = await self._discover_backend(self._connection, kind)
        return [record.to_wire() for record in records]

    async def list_tools(self) -> List[mcp_types.Tool]:
        return await self._list(CapabilityKind.TOOL)

    async def list_resources(self) -> List[mcp_types.Resource]:
        return await self._list(CapabilityKind.RESOURCE)

    async def list_prompts(self) -> List[mcp_types.Prompt]:
        return await self._list(CapabilityKind.PROMPT)

    async def _invoke(
        self,
        kind: CapabilityKind,
        name: str,
        arguments: Optional[Dict[str, Any]] = None,
    ) -> Any:
        if not self._policy.allowed(self._profile_id, self.backend_id, kind, name):
            logger.warning(
                "[%s] Blocked %s '%s' under profile '%s'.",
                self.backend_id,
                kind.label,
                name,
                self._profile_id,
            )
            raise PolicyDeniedError(kind.label, name)
        session = self._connection.require_session()
        return await forward(session, kind, name, arguments)

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

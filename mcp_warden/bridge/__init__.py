"""Backend connections and the request routers built on them."""

from mcp_warden.bridge.client_manager import (
    BackendConnection,
    ConnectionManager,
    ConnectionState,
)
from mcp_warden.bridge.dispatch import CapabilityDispatcher, Operation
from mcp_warden.bridge.hub import Hub
from mcp_warden.bridge.isolated import IsolatedProxy

__all__ = [
    "BackendConnection",
    "CapabilityDispatcher",
    "ConnectionManager",
    "ConnectionState",
    "Hub",
    "IsolatedProxy",
    "Operation",
]

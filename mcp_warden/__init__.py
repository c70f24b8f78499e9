"""
MCP Warden - a policy-enforcing gateway in front of many MCP servers.

MCP Warden connects to backend MCP servers (stdio/HTTP) and exposes their
tools, resources and prompts through one profile-filtered hub endpoint and,
optionally, one isolated endpoint per backend.
"""

from mcp_warden.constants import SERVER_NAME, SERVER_VERSION

__version__ = SERVER_VERSION
__app_name__ = SERVER_NAME

__all__ = [
    "SERVER_NAME",
    "SERVER_VERSION",
    "__version__",
    "__app_name__",
]

"""Shared constants for MCP Warden."""

SERVER_NAME = "MCP Warden"
SERVER_VERSION = "0.1.0"
CLIENT_NAME = "mcp-warden-proxy"

# Network defaults
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8210

# Streamable HTTP paths
HUB_PATH = "/mcp"
PER_SERVER_PATH_PREFIX = "/mcp/"

# Logging defaults
LOG_DIR = "logs"
DEFAULT_LOG_LEVEL = "INFO"

# Config discovery
CONFIG_ENV_VAR = "MCP_WARDEN_CONFIG"
CONFIG_SEARCH_PATHS = (
    "mcp-warden.yaml",
    "config.yaml",
    "~/.config/mcp-warden/config.yaml",
)

# Backend connection timeouts
MCP_INIT_TIMEOUT = 15.0  # seconds for MCP session initialization
CAP_FETCH_TIMEOUT = 10.0  # seconds for one backend's full capability listing
CLOSE_TIMEOUT = 5.0  # seconds to wait for one backend to shut down
MAX_LIST_PAGES = 50  # pagination cap per backend per discovery call

# Wire naming convention: <backendID>:<nativeName>
ROUTING_SEPARATOR = ":"

# JSON-RPC error codes for gateway-originated failures
ERR_MALFORMED_REFERENCE = -32602
ERR_POLICY_DENIED = -32001
ERR_UNKNOWN_BACKEND = -32002
ERR_UPSTREAM_UNAVAILABLE = -32003
ERR_NOT_FOUND = -32004

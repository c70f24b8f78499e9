"""Configuration loading and validation for MCP Warden."""

from mcp_warden.config.loader import (
    collect_secrets,
    config_warnings,
    expand_env_vars,
    load_config,
    parse_config,
)
from mcp_warden.config.schema import (
    BackendConfig,
    BackendProfileConfig,
    ComponentFilterConfig,
    HttpTransportConfig,
    HubSettings,
    ProfileConfig,
    StdioTransportConfig,
    TimeoutConfig,
    TransportConfig,
    WardenConfig,
)

__all__ = [
    "BackendConfig",
    "BackendProfileConfig",
    "ComponentFilterConfig",
    "HttpTransportConfig",
    "HubSettings",
    "ProfileConfig",
    "StdioTransportConfig",
    "TimeoutConfig",
    "TransportConfig",
    "WardenConfig",
    "collect_secrets",
    "config_warnings",
    "expand_env_vars",
    "load_config",
    "parse_config",
]

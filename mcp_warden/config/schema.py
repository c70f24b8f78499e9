"""Pydantic configuration models for MCP Warden.

Keys are camelCase on disk (``defaultProfile``, ``displayName``,
``prefixServerIDs``, ``exposePerServer``); the snake_case field names are
accepted as well.
"""

from __future__ import annotations

from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from mcp_warden.capabilities import CapabilityKind
from mcp_warden.constants import ROUTING_SEPARATOR

_MODEL_CONFIG = ConfigDict(populate_by_name=True)


# ── Profiles ─────────────────────────────────────────────────────────────


class ComponentFilterConfig(BaseModel):
    """Allow/deny glob lists for one capability kind. Deny always wins."""

    model_config = _MODEL_CONFIG

    allow: List[str] = Field(
        default_factory=list,
        description="Patterns for allowed names. Empty means allow everything not denied.",
    )
    deny: List[str] = Field(
        default_factory=list,
        description="Patterns for denied names. Checked before allow.",
    )


class BackendProfileConfig(BaseModel):
    """Per-backend filters inside a profile (tools, resources, prompts)."""

    model_config = _MODEL_CONFIG

    tools: ComponentFilterConfig = Field(default_factory=ComponentFilterConfig)
    resources: ComponentFilterConfig = Field(default_factory=ComponentFilterConfig)
    prompts: ComponentFilterConfig = Field(default_factory=ComponentFilterConfig)

    def filter_for(self, kind: CapabilityKind) -> ComponentFilterConfig:
        return getattr(self, CapabilityKind(kind).value)


class ProfileConfig(BaseModel):
    """A named policy bundle. Backends not listed here are invisible under it."""

    model_config = _MODEL_CONFIG

    description: str = ""
    servers: Dict[str, BackendProfileConfig] = Field(default_factory=dict)


# ── Backends ─────────────────────────────────────────────────────────────


class TimeoutConfig(BaseModel):
    """Per-backend timeout configuration. Defaults are used when not specified."""

    model_config = _MODEL_CONFIG

    init: Optional[float] = Field(
        default=None,
        gt=0,
        description="MCP session initialization timeout in seconds.",
    )
    cap_fetch: Optional[float] = Field(
        default=None,
        gt=0,
        alias="capFetch",
        description="Capability list fetch timeout in seconds.",
    )


class StdioTransportConfig(BaseModel):
    """Spawn a child process and speak MCP over its standard streams."""

    model_config = _MODEL_CONFIG

    kind: Literal["stdio"]
    command: str = Field(..., min_length=1, description="Executable to run")
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(
        default_factory=dict,
        description="Overrides layered on top of the gateway's own environment.",
    )

    @field_validator("command")
    @classmethod
    def _strip_command(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("command must be a non-empty string")
        return v


class HttpTransportConfig(BaseModel):
    """Connect to a streamable HTTP MCP endpoint."""

    model_config = _MODEL_CONFIG

    kind: Literal["http"]
    url: str = Field(..., min_length=1, description="Streamable HTTP endpoint URL")
    headers: Dict[str, str] = Field(
        default_factory=dict,
        description="Static headers sent on every request. Supports ${ENV_VAR}.",
    )

    @field_validator("url")
    @classmethod
    def _validate_url(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"URL '{v}' must start with http:// or https://")
        return v


# Discriminated union: pick the right model based on the "kind" field
TransportConfig = Annotated[
    Union[StdioTransportConfig, HttpTransportConfig],
    Field(discriminator="kind"),
]


class BackendConfig(BaseModel):
    """One upstream MCP server."""

    model_config = _MODEL_CONFIG

    display_name: str = Field(default="", alias="displayName")
    transport: TransportConfig
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)


# ── Top level ────────────────────────────────────────────────────────────


class HubSettings(BaseModel):
    """The aggregating endpoint."""

    model_config = _MODEL_CONFIG

    enabled: bool = True
    prefix_server_ids: bool = Field(
        default=True,
        alias="prefixServerIDs",
        description="Expose capabilities as '<serverID>:<name>'.",
    )


class WardenConfig(BaseModel):
    """Root of a validated configuration file."""

    model_config = _MODEL_CONFIG

    default_profile: str = Field(..., min_length=1, alias="defaultProfile")
    servers: Dict[str, BackendConfig] = Field(default_factory=dict)
    profiles: Dict[str, ProfileConfig] = Field(default_factory=dict)
    hub: HubSettings = Field(default_factory=HubSettings)
    expose_per_server: bool = Field(default=False, alias="exposePerServer")

    @field_validator("servers")
    @classmethod
    def _validate_server_ids(cls, v: Dict[str, BackendConfig]) -> Dict[str, BackendConfig]:
        for server_id in v:
            if not server_id:
                raise ValueError("server ids must be non-empty")
            if ROUTING_SEPARATOR in server_id:
                raise ValueError(
                    f"server id '{server_id}' must not contain '{ROUTING_SEPARATOR}'"
                )
        return v

    @model_validator(mode="after")
    def _check_references(self) -> WardenConfig:
        problems: List[str] = []
        if self.default_profile not in self.profiles:
            problems.append(f"defaultProfile '{self.default_profile}' is not a defined profile")
        for profile_id, profile in self.profiles.items():
            for server_id in profile.servers:
                if server_id not in self.servers:
                    problems.append(
                        f"profile '{profile_id}' references unknown server '{server_id}'"
                    )
        if not self.hub.enabled and not self.expose_per_server:
            problems.append("neither hub.enabled nor exposePerServer is set; nothing to serve")
        if problems:
            raise ValueError("; ".join(problems))
        return self

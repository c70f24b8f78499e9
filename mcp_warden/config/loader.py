"""Configuration file loading and validation.

Reads a YAML or JSON file, expands ``${ENV_VAR}`` placeholders and
validates the result against :class:`~mcp_warden.config.schema.WardenConfig`.
"""

import json
import logging
import os
import re
from typing import Any, Dict, List

import yaml
from pydantic import AnyUrl, ValidationError

from mcp_warden.config.schema import HttpTransportConfig, WardenConfig
from mcp_warden.errors import ConfigurationError

logger = logging.getLogger(__name__)

_YAML_EXTS = frozenset({".yaml", ".yml"})
_JSON_EXTS = frozenset({".json"})

# ${VAR_NAME}; unset variables are left as written
_ENV_VAR_RE = re.compile(r"\$\{(\w+)\}")


def expand_env_vars(value: Any) -> Any:
    """Recursively replace ``${VAR}`` in string leaves with the variable's value."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), m.group(0)), value)
    if isinstance(value, dict):
        return {key: expand_env_vars(item) for key, item in value.items()}
    if isinstance(value, list):
        return [expand_env_vars(item) for item in value]
    return value


def _parse(text: str, ext: str) -> Any:
    if ext in _YAML_EXTS:
        return yaml.safe_load(text)
    if ext in _JSON_EXTS:
        return json.loads(text)
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError:
        return json.loads(text)


def _read_config_file(cfg_fpath: str) -> Dict[str, Any]:
    """Read and parse *cfg_fpath*.

    Raises :class:`ConfigurationError` on I/O or parse errors.
    """
    ext = os.path.splitext(cfg_fpath)[1].lower()
    try:
        with open(cfg_fpath, "r", encoding="utf-8") as f:
            raw_data = _parse(f.read(), ext)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Error reading configuration file: {cfg_fpath}\n  {exc}") from exc

    if not isinstance(raw_data, dict):
        raise ConfigurationError("Top-level configuration content must be a mapping.")
    return raw_data


def _format_validation_errors(exc: ValidationError) -> str:
    lines: List[str] = []
    for err in exc.errors():
        loc = " → ".join(str(part) for part in err["loc"]) or "config"
        lines.append(f"  • {loc}: {err['msg']}")
    return "\n".join(lines)


def parse_config(raw_data: Dict[str, Any]) -> WardenConfig:
    """Expand and validate an already-parsed mapping."""
    try:
        return WardenConfig.model_validate(expand_env_vars(raw_data))
    except ValidationError as exc:
        error_summary = _format_validation_errors(exc)
        raise ConfigurationError(
            f"Configuration validation failed ({len(exc.errors())} error(s)):\n{error_summary}"
        ) from exc


def load_config(cfg_fpath: str) -> WardenConfig:
    """Load, expand and validate the configuration at *cfg_fpath*.

    Raises:
        ConfigurationError: On a missing file, I/O or parse errors, or
            validation failures (all validation errors reported at once).
    """
    logger.debug("Loading configuration file: %s", cfg_fpath)
    if not os.path.exists(cfg_fpath):
        raise ConfigurationError(f"Configuration file does not exist: {cfg_fpath}")

    config = parse_config(_read_config_file(cfg_fpath))
    logger.info(
        "Configuration loaded: %d server(s), %d profile(s), default profile '%s'.",
        len(config.servers),
        len(config.profiles),
        config.default_profile,
    )
    return config


def config_warnings(config: WardenConfig) -> List[str]:
    """Return advisory, non-fatal findings about *config*."""
    warnings: List[str] = []
    prefixing = config.hub.prefix_server_ids
    if config.hub.enabled and not prefixing and len(config.servers) > 1:
        warnings.append(
            "hub prefixing is disabled with more than one server; identically named "
            "capabilities resolve to whichever permitted server answers first"
        )
    if config.hub.enabled and prefixing:
        for server_id in config.servers:
            sample_uri = f"{server_id}:x"
            try:
                valid = str(AnyUrl(sample_uri)) == sample_uri
            except ValueError:
                valid = False
            if not valid:
                warnings.append(
                    f"server id '{server_id}' is not a lower-case URI scheme; its resources "
                    "cannot be addressed through the hub"
                )
    for profile_id, profile in config.profiles.items():
        if not profile.servers:
            warnings.append(f"profile '{profile_id}' lists no servers; it exposes nothing")
    return warnings


def collect_secrets(config: WardenConfig) -> List[str]:
    """Values that must never appear in logs (static HTTP header values)."""
    secrets: List[str] = []
    for backend in config.servers.values():
        if isinstance(backend.transport, HttpTransportConfig):
            secrets.extend(v for v in backend.transport.headers.values() if v)
    return secrets

"""CLI argument parsing and main entry point.

* ``mcp-warden serve``     - connect the backends and serve the filtered view.
* ``mcp-warden validate``  - load and validate the configuration.
* ``mcp-warden profiles``  - list profiles and the servers they expose.
* ``mcp-warden effective`` - show the rules one profile applies to one server.
* ``mcp-warden call``      - act as a client of a running gateway.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional

import uvicorn
from mcp import ClientSession
from mcp import types as mcp_types
from mcp.client.streamable_http import streamablehttp_client
from pydantic import AnyUrl

from mcp_warden.capabilities import CapabilityKind
from mcp_warden.config import collect_secrets, config_warnings, load_config
from mcp_warden.config.schema import ComponentFilterConfig, WardenConfig
from mcp_warden.constants import (
    CONFIG_ENV_VAR,
    CONFIG_SEARCH_PATHS,
    DEFAULT_HOST,
    DEFAULT_LOG_LEVEL,
    DEFAULT_PORT,
    HUB_PATH,
    SERVER_NAME,
    SERVER_VERSION,
)
from mcp_warden.display.logging_config import secret_redaction_filter, setup_logging
from mcp_warden.errors import ConfigurationError, WardenBaseError
from mcp_warden.policy.engine import PolicyEngine

module_logger = logging.getLogger(__name__)

# Names checked by ``effective`` when no --name is given
_SAMPLE_NAMES = ("read_file", "write_file", "delete_file", "list_directory")


def _fail(message: str) -> int:
    print(f"Error: {message}", file=sys.stderr)
    return 1


def _find_config_file(explicit: Optional[str] = None) -> str:
    """Resolve the config path: flag, then ``$MCP_WARDEN_CONFIG``, then search paths.

    Falls back to the first search path if nothing exists (loader will error).
    """
    if explicit:
        return os.path.expanduser(explicit)
    from_env = os.environ.get(CONFIG_ENV_VAR)
    if from_env:
        return os.path.expanduser(from_env)
    for candidate in CONFIG_SEARCH_PATHS:
        path = os.path.expanduser(candidate)
        if os.path.isfile(path):
            return path
    return CONFIG_SEARCH_PATHS[0]


def _load(args: argparse.Namespace) -> WardenConfig:
    cfg_path = _find_config_file(args.config)
    module_logger.info("Configuration file path resolved to: %s", os.path.abspath(cfg_path))
    return load_config(cfg_path)


def _active_profile(args: argparse.Namespace, config: WardenConfig) -> str:
    profile_id = args.profile or config.default_profile
    if profile_id not in config.profiles:
        raise ConfigurationError(f"profile '{profile_id}' not found")
    return profile_id


# ── ``mcp-warden serve`` ────────────────────────────────────────────────


async def _run_server(
    config: WardenConfig,
    profile_id: str,
    host: str,
    port: int,
    log_lvl: str,
    use_stdio: bool,
) -> None:
    """Async main for ``serve``: connect backends, serve, always close."""
    from mcp_warden.server import GatewayRuntime, build_mcp_server, create_app, serve_stdio

    runtime = GatewayRuntime(config, profile_id)
    await runtime.start()
    try:
        if use_stdio:
            await serve_stdio(build_mcp_server(runtime.hub))
            return
        app = create_app(runtime)
        uvicorn_cfg = uvicorn.Config(
            app=app,
            host=host,
            port=port,
            log_config=None,
            log_level=log_lvl.lower() if log_lvl == "DEBUG" else "warning",
        )
        module_logger.info("Preparing to start Uvicorn server: http://%s:%s", host, port)
        print(f"{SERVER_NAME} listening on http://{host}:{port}{HUB_PATH} (profile: {profile_id})")
        await uvicorn.Server(uvicorn_cfg).serve()
    finally:
        await runtime.stop()
        module_logger.info("%s has shut down.", SERVER_NAME)


def _cmd_serve(args: argparse.Namespace) -> int:
    """Entry-point for ``mcp-warden serve``."""
    _, log_lvl = setup_logging(args.log_level, quiet=args.stdio)
    module_logger.info("---- %s v%s starting (file log level: %s) ----", SERVER_NAME, SERVER_VERSION, log_lvl)
    try:
        config = _load(args)
        profile_id = _active_profile(args, config)
    except WardenBaseError as exc:
        return _fail(str(exc))
    if args.stdio and not config.hub.enabled:
        return _fail("--stdio serves the hub, but hub.enabled is false")

    secret_redaction_filter.register_all(collect_secrets(config))
    for warning in config_warnings(config):
        module_logger.warning("Config: %s", warning)

    try:
        asyncio.run(_run_server(config, profile_id, args.host, args.port, log_lvl, args.stdio))
    except KeyboardInterrupt:
        module_logger.info("%s interrupted by KeyboardInterrupt.", SERVER_NAME)
    except WardenBaseError as exc:
        module_logger.error("Startup failed: %s", exc)
        return _fail(str(exc))
    return 0


# ── ``mcp-warden validate`` ─────────────────────────────────────────────


def _cmd_validate(args: argparse.Namespace) -> int:
    cfg_path = _find_config_file(args.config)
    try:
        config = load_config(cfg_path)
    except WardenBaseError as exc:
        return _fail(str(exc))

    print(f"Configuration is valid: {cfg_path}")
    print(f"  Servers:  {len(config.servers)}")
    print(f"  Profiles: {len(config.profiles)} (default: {config.default_profile})")
    print(f"  Hub:      {'enabled' if config.hub.enabled else 'disabled'}"
          f"{', prefixed' if config.hub.prefix_server_ids else ''}")
    print(f"  Per-server endpoints: {'yes' if config.expose_per_server else 'no'}")
    for warning in config_warnings(config):
        print(f"Warning: {warning}")
    return 0


# ── ``mcp-warden profiles`` ─────────────────────────────────────────────


def _filter_count(component: ComponentFilterConfig) -> int:
    return len(component.allow) + len(component.deny)


def _cmd_profiles(args: argparse.Namespace) -> int:
    try:
        config = _load(args)
    except WardenBaseError as exc:
        return _fail(str(exc))

    print("Available Profiles")
    print("==================\n")
    for name in sorted(config.profiles):
        profile = config.profiles[name]
        marker = " (default)" if name == config.default_profile else ""
        print(f"Profile: {name}{marker}")
        if profile.description:
            print(f"  Description: {profile.description}")
        print(f"  Servers: {len(profile.servers)} configured")
        for server_id in sorted(profile.servers):
            backend_profile = profile.servers[server_id]
            display_name = config.servers[server_id].display_name or server_id
            parts = []
            for kind in CapabilityKind:
                count = _filter_count(backend_profile.filter_for(kind))
                if count:
                    parts.append(f"{count} {kind.label} filter(s)")
            filter_info = f" - {', '.join(parts)}" if parts else ""
            print(f"    - {display_name} ({server_id}){filter_info}")
        print()

    print(f"Total: {len(config.profiles)} profile(s)")
    print(f"Default profile: {config.default_profile}")
    return 0


# ── ``mcp-warden effective`` ────────────────────────────────────────────


def _print_filter(
    engine: PolicyEngine,
    profile_id: str,
    server_id: str,
    kind: CapabilityKind,
    sample_names: List[str],
) -> None:
    indent = "  "
    component = engine.effective_filter(profile_id, server_id, kind)
    if component is None:
        return
    if not component.allow and not component.deny:
        print(f"{indent}No filtering rules (allow all)")
        return
    if component.allow:
        print(f"{indent}Allow:")
        for pattern in component.allow:
            print(f"{indent}  - {pattern}")
    else:
        print(f"{indent}Allow: * (all)")
    if component.deny:
        print(f"{indent}Deny:")
        for pattern in component.deny:
            print(f"{indent}  - {pattern}")
    print(f"\n{indent}Examples:")
    for name in sample_names:
        status = "ALLOWED" if engine.allowed(profile_id, server_id, kind, name) else "DENIED"
        print(f"{indent}  {name}: {status}")


def _cmd_effective(args: argparse.Namespace) -> int:
    try:
        config = _load(args)
        profile_id = _active_profile(args, config)
    except WardenBaseError as exc:
        return _fail(str(exc))
    server_id = args.server
    if server_id not in config.servers:
        return _fail(f"server '{server_id}' not found in config")

    profile = config.profiles[profile_id]
    print(f"Profile: {profile_id}")
    if server_id not in profile.servers:
        print(f"Server: {server_id}")
        print("\nServer is not configured in this profile (all access denied)")
        return 0

    engine = PolicyEngine.from_config(config)
    sample_names = args.names or list(_SAMPLE_NAMES)
    print(f"Description: {profile.description}")
    print(f"Server: {server_id}")
    for kind in CapabilityKind:
        print(f"\n{kind.value.capitalize()}:")
        _print_filter(engine, profile_id, server_id, kind, sample_names)
    return 0


# ── ``mcp-warden call`` ─────────────────────────────────────────────────


def _parse_json_object(text: str, flag: str) -> Dict[str, Any]:
    try:
        value = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"invalid JSON in {flag}: {exc}") from exc
    if not isinstance(value, dict):
        raise ValueError(f"{flag} must be a JSON object")
    return value


def _print_content(index: int, total: int, content: Any) -> None:
    if isinstance(content, mcp_types.TextContent):
        if total > 1:
            print(f"\n[Content {index}]")
        print(content.text)
    elif isinstance(content, mcp_types.ImageContent):
        print(f"\n[Image Content {index}]")
        print(f"  Type: {content.mimeType}")
        print(f"  Size: {len(content.data)} bytes")
    elif isinstance(content, mcp_types.EmbeddedResource):
        print(f"\n[Embedded Resource {index}]")
        print(f"  URI: {content.resource.uri}")


def _print_tool_result(name: str, result: mcp_types.CallToolResult) -> None:
    print(f"Tool: {name}")
    print("Status: Success")
    print("\nResult:\n-------")
    if not result.content:
        print("(no content)")
    for idx, content in enumerate(result.content):
        _print_content(idx, len(result.content), content)
    if result.isError:
        print("\nNote: Tool indicated an error condition")


def _print_prompt_result(name: str, result: mcp_types.GetPromptResult) -> None:
    print(f"Prompt: {name}")
    print("Status: Success")
    if result.description:
        print(f"Description: {result.description}")
    print("\nMessages:\n---------")
    if not result.messages:
        print("(no messages)")
    for idx, message in enumerate(result.messages):
        print(f"\n[Message {idx} - Role: {message.role}]")
        content = message.content
        if isinstance(content, mcp_types.TextContent):
            print(content.text)
        elif isinstance(content, mcp_types.ImageContent):
            print(f"  [Image: {content.mimeType}, {len(content.data)} bytes]")
        elif isinstance(content, mcp_types.EmbeddedResource):
            print(f"  [Embedded Resource]\n    URI: {content.resource.uri}")


def _print_resource_result(uri: str, result: mcp_types.ReadResourceResult) -> None:
    print(f"Resource: {uri}")
    print("Status: Success")
    print("\nContents:\n---------")
    if not result.contents:
        print("(no contents)")
    for idx, content in enumerate(result.contents):
        if len(result.contents) > 1:
            print(f"\n[Content {idx} - URI: {content.uri}]")
        if isinstance(content, mcp_types.TextResourceContents):
            print(content.text)
        else:
            print(f"\n[Blob Content - URI: {content.uri}]")
            print(f"  Size: {len(content.blob)} bytes (base64)")
        if content.mimeType:
            print(f"  MIME Type: {content.mimeType}")


async def _call_gateway(args: argparse.Namespace, payload: Dict[str, Any]) -> Any:
    url = f"http://{args.host}:{args.port}{args.endpoint}"
    async with streamablehttp_client(url) as (read_stream, write_stream, _get_session_id):
        async with ClientSession(read_stream, write_stream) as session:
            await session.initialize()
            if args.target == "tool":
                return await session.call_tool(args.name, payload)
            if args.target == "prompt":
                return await session.get_prompt(args.name, payload)
            return await session.read_resource(AnyUrl(args.uri))


def _cmd_call(args: argparse.Namespace) -> int:
    try:
        if args.target == "tool":
            payload = _parse_json_object(args.params, "--params")
        elif args.target == "prompt":
            payload = {k: str(v) for k, v in _parse_json_object(args.args, "--args").items()}
        else:
            payload = {}
            AnyUrl(args.uri)
    except ValueError as exc:
        return _fail(str(exc))

    try:
        result = asyncio.run(asyncio.wait_for(_call_gateway(args, payload), timeout=args.timeout))
    except asyncio.TimeoutError:
        return _fail(f"{args.target} call timed out after {args.timeout}s")
    except Exception as exc:
        return _fail(f"{args.target} call failed: {exc}")

    if args.json:
        print(result.model_dump_json(indent=2, by_alias=True, exclude_none=True))
    elif args.target == "tool":
        _print_tool_result(args.name, result)
    elif args.target == "prompt":
        _print_prompt_result(args.name, result)
    else:
        _print_resource_result(args.uri, result)
    return 0


# ── Parser ───────────────────────────────────────────────────────────────


def _add_call_parsers(subparsers: Any) -> None:
    sp_call = subparsers.add_parser(
        "call",
        help="Call a tool, prompt or resource through a running gateway",
    )
    call_sub = sp_call.add_subparsers(dest="target", required=True)

    sp_tool = call_sub.add_parser("tool", help="Call a tool")
    sp_tool.add_argument("--name", required=True, help="Tool name (e.g. fs:read_file)")
    sp_tool.add_argument("--params", default="{}", help="Tool arguments as a JSON object")

    sp_prompt = call_sub.add_parser("prompt", help="Get a prompt")
    sp_prompt.add_argument("--name", required=True, help="Prompt name")
    sp_prompt.add_argument("--args", default="{}", help="Prompt arguments as a JSON object")

    sp_resource = call_sub.add_parser("resource", help="Read a resource")
    sp_resource.add_argument("--uri", required=True, help="Resource URI")

    for sp in (sp_tool, sp_prompt, sp_resource):
        sp.add_argument("--host", default=DEFAULT_HOST, help=f"Gateway host (default: {DEFAULT_HOST})")
        sp.add_argument("--port", type=int, default=DEFAULT_PORT, help=f"Gateway port (default: {DEFAULT_PORT})")
        sp.add_argument(
            "--endpoint",
            default=HUB_PATH,
            help=f"Gateway endpoint, e.g. {HUB_PATH} or {HUB_PATH}/<server> (default: {HUB_PATH})",
        )
        sp.add_argument("--timeout", type=float, default=30.0, help="Request timeout in seconds")
        sp.add_argument("--json", action="store_true", help="Print the raw JSON result")
    sp_call.set_defaults(func=_cmd_call)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mcp-warden",
        description=f"{SERVER_NAME} v{SERVER_VERSION}",
    )
    parser.add_argument(
        "-c",
        "--config",
        default=None,
        metavar="PATH",
        help=(
            f"Configuration file (YAML or JSON). Default: ${CONFIG_ENV_VAR}, "
            f"then {', '.join(CONFIG_SEARCH_PATHS)}"
        ),
    )
    parser.add_argument(
        "-p",
        "--profile",
        default=None,
        metavar="NAME",
        help="Profile to apply (default: the config's defaultProfile)",
    )
    subparsers = parser.add_subparsers(dest="command")

    sp_serve = subparsers.add_parser("serve", help="Connect backends and serve the filtered view")
    sp_serve.add_argument("--host", default=DEFAULT_HOST, help=f"Host address (default: {DEFAULT_HOST})")
    sp_serve.add_argument("--port", type=int, default=DEFAULT_PORT, help=f"Port (default: {DEFAULT_PORT})")
    sp_serve.add_argument("--stdio", action="store_true", help="Serve the hub over stdin/stdout")
    sp_serve.add_argument(
        "--log-level",
        default=DEFAULT_LOG_LEVEL.lower(),
        choices=["debug", "info", "warning", "error", "critical"],
        help="File logging level (default: info)",
    )
    sp_serve.set_defaults(func=_cmd_serve)

    sp_validate = subparsers.add_parser("validate", help="Validate the configuration file")
    sp_validate.set_defaults(func=_cmd_validate)

    sp_profiles = subparsers.add_parser("profiles", help="List available profiles")
    sp_profiles.set_defaults(func=_cmd_profiles)

    sp_effective = subparsers.add_parser(
        "effective", help="Show the filtering rules a profile applies to one server"
    )
    sp_effective.add_argument("-s", "--server", required=True, help="Server id")
    sp_effective.add_argument(
        "-n",
        "--name",
        dest="names",
        action="append",
        default=None,
        help="Name to test against the rules (repeatable)",
    )
    sp_effective.set_defaults(func=_cmd_effective)

    _add_call_parsers(subparsers)
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Program entry point: parse arguments and dispatch to subcommand."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)
    exit_code = args.func(args)
    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()

"""Tests for the command-line interface (offline subcommands)."""

from __future__ import annotations

import textwrap
from unittest.mock import AsyncMock, patch

import pytest
from mcp import types as mcp_types

from mcp_warden import cli
from mcp_warden.constants import CONFIG_ENV_VAR

CONFIG_YAML = textwrap.dedent(
    """\
    defaultProfile: safe
    servers:
      fs:
        displayName: Files
        transport: {kind: stdio, command: fs-server}
      git:
        transport: {kind: stdio, command: git-server}
    profiles:
      safe:
        description: Read only
        servers:
          fs:
            tools:
              allow: [read_file, list_directory]
              deny: [delete_*]
      full:
        servers:
          fs: {}
          git: {}
    """
)


@pytest.fixture
def config_path(tmp_path, monkeypatch) -> str:
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    path = tmp_path / "warden.yaml"
    path.write_text(CONFIG_YAML)
    return str(path)


def _run(argv, capsys):
    """Run the CLI; return (exit code, stdout, stderr)."""
    try:
        cli.main(argv)
        code = 0
    except SystemExit as exc:
        code = exc.code
    out = capsys.readouterr()
    return code, out.out, out.err


class TestValidate:
    def test_valid_config(self, config_path, capsys) -> None:
        code, out, _ = _run(["-c", config_path, "validate"], capsys)
        assert code == 0
        assert f"Configuration is valid: {config_path}" in out
        assert "Servers:  2" in out
        assert "default: safe" in out

    def test_config_from_environment(self, config_path, capsys, monkeypatch) -> None:
        monkeypatch.setenv(CONFIG_ENV_VAR, config_path)
        code, out, _ = _run(["validate"], capsys)
        assert code == 0
        assert config_path in out

    def test_warnings_are_printed(self, tmp_path, capsys) -> None:
        path = tmp_path / "w.yaml"
        path.write_text(CONFIG_YAML + "  idle: {}\n")
        code, out, _ = _run(["-c", str(path), "validate"], capsys)
        assert code == 0
        assert "Warning: profile 'idle' lists no servers" in out

    def test_invalid_config(self, tmp_path, capsys) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text(CONFIG_YAML.replace("defaultProfile: safe", "defaultProfile: ghost"))
        code, _, err = _run(["-c", str(path), "validate"], capsys)
        assert code == 1
        assert err.startswith("Error: ")
        assert "ghost" in err

    def test_missing_config(self, tmp_path, capsys) -> None:
        code, _, err = _run(["-c", str(tmp_path / "none.yaml"), "validate"], capsys)
        assert code == 1
        assert "does not exist" in err


class TestProfiles:
    def test_lists_profiles(self, config_path, capsys) -> None:
        code, out, _ = _run(["-c", config_path, "profiles"], capsys)
        assert code == 0
        assert "Available Profiles" in out
        assert "Profile: safe (default)" in out
        assert "Profile: full\n" in out
        assert "Description: Read only" in out
        assert "- Files (fs) - 3 tool filter(s)" in out
        assert "- git (git)" in out
        assert "Total: 2 profile(s)" in out
        assert "Default profile: safe" in out


class TestEffective:
    def test_rules_and_examples(self, config_path, capsys) -> None:
        code, out, _ = _run(["-c", config_path, "effective", "-s", "fs"], capsys)
        assert code == 0
        assert "Profile: safe" in out
        assert "Server: fs" in out
        assert "  - read_file" in out
        assert "  - delete_*" in out
        assert "read_file: ALLOWED" in out
        assert "write_file: DENIED" in out
        assert "delete_file: DENIED" in out
        assert "No filtering rules (allow all)" in out

    def test_custom_names(self, config_path, capsys) -> None:
        argv = ["-c", config_path, "effective", "-s", "fs", "-n", "list_directory", "-n", "rm"]
        code, out, _ = _run(argv, capsys)
        assert code == 0
        assert "list_directory: ALLOWED" in out
        assert "rm: DENIED" in out
        assert "write_file" not in out

    def test_server_absent_from_profile(self, config_path, capsys) -> None:
        code, out, _ = _run(["-c", config_path, "effective", "-s", "git"], capsys)
        assert code == 0
        assert "all access denied" in out

    def test_other_profile(self, config_path, capsys) -> None:
        code, out, _ = _run(["-c", config_path, "-p", "full", "effective", "-s", "git"], capsys)
        assert code == 0
        assert "Profile: full" in out
        assert "all access denied" not in out

    def test_unknown_server(self, config_path, capsys) -> None:
        code, _, err = _run(["-c", config_path, "effective", "-s", "ghost"], capsys)
        assert code == 1
        assert "server 'ghost' not found" in err

    def test_unknown_profile(self, config_path, capsys) -> None:
        code, _, err = _run(["-c", config_path, "-p", "ghost", "effective", "-s", "fs"], capsys)
        assert code == 1
        assert "profile 'ghost' not found" in err


class TestCallArguments:
    def test_bad_tool_params(self, capsys) -> None:
        code, _, err = _run(["call", "tool", "--name", "fs:read_file", "--params", "{oops"], capsys)
        assert code == 1
        assert "invalid JSON in --params" in err

    def test_params_must_be_object(self, capsys) -> None:
        code, _, err = _run(["call", "tool", "--name", "fs:read_file", "--params", "[1]"], capsys)
        assert code == 1
        assert "--params must be a JSON object" in err

    def test_bad_resource_uri(self, capsys) -> None:
        code, _, err = _run(["call", "resource", "--uri", "not a uri"], capsys)
        assert code == 1
        assert err.startswith("Error: ")

    def test_tool_result_is_printed(self, capsys) -> None:
        result = mcp_types.CallToolResult(
            content=[mcp_types.TextContent(type="text", text="water the plants")]
        )
        with patch.object(cli, "_call_gateway", AsyncMock(return_value=result)) as call:
            code, out, _ = _run(
                ["call", "tool", "--name", "fs:read_file", "--params", '{"path": "/a"}'], capsys
            )
        assert code == 0
        assert call.await_args.args[1] == {"path": "/a"}
        assert "Tool: fs:read_file" in out
        assert "water the plants" in out

    def test_prompt_arguments_are_stringified(self, capsys) -> None:
        result = mcp_types.GetPromptResult(messages=[])
        with patch.object(cli, "_call_gateway", AsyncMock(return_value=result)) as call:
            code, out, _ = _run(
                ["call", "prompt", "--name", "fs:summarize", "--args", '{"n": 3}', "--json"], capsys
            )
        assert code == 0
        assert call.await_args.args[1] == {"n": "3"}
        assert '"messages": []' in out

    def test_gateway_failure_is_reported(self, capsys) -> None:
        failing = AsyncMock(side_effect=ConnectionError("refused"))
        with patch.object(cli, "_call_gateway", failing):
            code, _, err = _run(["call", "resource", "--uri", "fs:memo://notes/readme"], capsys)
        assert code == 1
        assert "resource call failed: refused" in err


class TestMain:
    def test_no_command_prints_help(self, capsys) -> None:
        code, out, _ = _run([], capsys)
        assert code == 1
        assert "usage: mcp-warden" in out

    def test_serve_stdio_requires_hub(self, tmp_path, capsys, monkeypatch) -> None:
        monkeypatch.setattr(cli, "setup_logging", lambda level, quiet=False: (None, level.upper()))
        path = tmp_path / "w.yaml"
        path.write_text(CONFIG_YAML + "hub: {enabled: false}\nexposePerServer: true\n")
        code, _, err = _run(["-c", str(path), "serve", "--stdio"], capsys)
        assert code == 1
        assert "hub.enabled is false" in err

    def test_find_config_prefers_flag(self, config_path, monkeypatch) -> None:
        monkeypatch.setenv(CONFIG_ENV_VAR, "/elsewhere.yaml")
        assert cli._find_config_file(config_path) == config_path
        assert cli._find_config_file(None) == "/elsewhere.yaml"

"""Tests for MCP server collection and rendering."""

import json
from collections.abc import Callable

from aw_compiler.compiler.context import CompileContext
from aw_compiler.compiler.engines.mcp import (
    DEFAULT_GITHUB_MCP_TOKEN,
    GITHUB_APP_TOKEN_STEP_ID,
    collect_mcp_servers,
    extract_secret_name,
    filter_env_for_secrets,
    github_mcp_token,
    mcp_config_steps,
    mcp_secret_env,
    render_mcp_json,
    render_mcp_toml,
)
from aw_compiler.compiler.types import WorkflowData

MakeData = Callable[..., WorkflowData]


class TestSecretFiltering:
    """Tests for extract_secret_name() and filter_env_for_secrets()."""

    def test_extract(self) -> None:
        """The first referenced secret is returned."""
        assert extract_secret_name("${{ secrets.A || secrets.B }}") == "A"
        assert extract_secret_name("${{ github.token }}") == ""

    def test_filter(self) -> None:
        """Entries survive when the secret or the key is allowed."""
        env = {
            "PLAIN": "value",
            "BY_SECRET": "${{ secrets.API_KEY }}",
            "BY_KEY": "${{ secrets.OTHER }}",
            "DROPPED": "${{ secrets.PRIVATE }}",
        }
        assert filter_env_for_secrets(env, ["API_KEY", "BY_KEY"]) == {
            "PLAIN": "value",
            "BY_SECRET": "${{ secrets.API_KEY }}",
            "BY_KEY": "${{ secrets.OTHER }}",
        }


class TestGithubToken:
    """Tests for github_mcp_token()."""

    def test_default(self, make_data: MakeData) -> None:
        """Without overrides the default secret chain is used."""
        assert github_mcp_token(make_data()) == DEFAULT_GITHUB_MCP_TOKEN

    def test_custom_token(self, make_data: MakeData) -> None:
        """tools.github.github-token wins."""
        data = make_data({"tools": {"github": {"github-token": "${{ secrets.PAT }}"}}})
        assert github_mcp_token(data) == "${{ secrets.PAT }}"

    def test_app(self, make_data: MakeData) -> None:
        """An App token comes from the minting step."""
        data = make_data(
            {"tools": {"github": {"app": {"app-id": "1", "private-key": "${{ secrets.K }}"}}}}
        )
        assert github_mcp_token(data) == f"${{{{ steps.{GITHUB_APP_TOKEN_STEP_ID}.outputs.token }}}}"

    def test_disabled(self, make_data: MakeData) -> None:
        """No GitHub tool means no token."""
        assert github_mcp_token(make_data({"tools": {"github": False}})) == ""


class TestCollect:
    """Tests for collect_mcp_servers()."""

    def test_builtin_order_then_custom(self, make_data: MakeData) -> None:
        """Built-in servers come first in fixed order, then user servers."""
        data = make_data(
            {
                "tools": {
                    "notion": {"url": "https://mcp.notion.so"},
                    "web-fetch": None,
                    "agentic-workflows": None,
                    "serena": ["python"],
                    "playwright": None,
                },
                "safe-outputs": {"create-issue": None},
            }
        )
        servers = collect_mcp_servers(data)
        assert list(servers) == [
            "github",
            "playwright",
            "serena",
            "agentic_workflows",
            "safeoutputs",
            "web-fetch",
            "notion",
        ]
        assert servers["web-fetch"] == {"container": "mcp/fetch"}
        assert servers["notion"] == {"url": "https://mcp.notion.so"}

    def test_engine_fetches_itself(self, make_data: MakeData) -> None:
        """Engines with native web fetch get no fetch server."""
        data = make_data({"tools": {"web-fetch": None}})
        assert "web-fetch" not in collect_mcp_servers(data, supports_web_fetch=True)

    def test_github_local(self, make_data: MakeData) -> None:
        """The local GitHub server runs the pinned image read-only."""
        github = collect_mcp_servers(make_data())["github"]
        assert github["command"] == "docker"
        assert "GITHUB_READ_ONLY=1" in github["args"]
        assert github["args"][-1] == "ghcr.io/github/github-mcp-server:v0.26.3"
        assert github["env"] == {"GITHUB_PERSONAL_ACCESS_TOKEN": "${GITHUB_MCP_SERVER_TOKEN}"}

    def test_github_remote_with_copilot_fields(self, make_data: MakeData) -> None:
        """Remote mode uses the hosted endpoint; Copilot format adds tools."""
        data = make_data(
            {"tools": {"github": {"mode": "remote", "toolsets": ["issues"], "allowed": ["get_issue"]}}}
        )
        github = collect_mcp_servers(data, copilot_fields=True)["github"]
        assert github["type"] == "http"
        assert github["headers"]["X-MCP-Toolsets"] == "issues"
        assert github["headers"]["X-MCP-Readonly"] == "true"
        assert github["tools"] == ["get_issue"]

    def test_guard_policy(self, make_data: MakeData) -> None:
        """A guard policy is forwarded to the server."""
        data = make_data({"tools": {"github": {"repos": "public", "min-integrity": "reader"}}})
        github = collect_mcp_servers(data)["github"]
        assert github["guard-policies"] == {
            "allow-only": {"repos": "public", "min-integrity": "reader"}
        }

    def test_custom_secret_env(self, make_data: MakeData) -> None:
        """Secrets in server env are replaced by exported variables."""
        data = make_data(
            {
                "mcp-servers": {
                    "jira": {
                        "container": "acme/jira-mcp",
                        "env": {"TOKEN": "${{ secrets.JIRA_TOKEN }}", "SITE": "acme"},
                    }
                }
            }
        )
        server = collect_mcp_servers(data, copilot_fields=True)["jira"]
        assert server == {
            "type": "local",
            "container": "acme/jira-mcp",
            "env": {"SITE": "acme", "TOKEN": "${MCP_JIRA_TOKEN}"},
            "tools": ["*"],
        }
        assert mcp_secret_env(data)["MCP_JIRA_TOKEN"] == "${{ secrets.JIRA_TOKEN }}"


class TestRender:
    """Tests for the JSON and TOML serializers."""

    def test_json(self) -> None:
        """JSON wraps servers in mcpServers and keeps order."""
        text = render_mcp_json({"b": {"command": "x"}, "a": {"url": "u"}})
        assert list(json.loads(text)["mcpServers"]) == ["b", "a"]

    def test_toml(self) -> None:
        """TOML uses quoted table names and env sub-tables."""
        text = render_mcp_toml(
            {"github": {"command": "docker", "args": ["run"], "env": {"GITHUB_TOKEN": "${T}"}}}
        )
        assert text == (
            "[history]\n"
            'persistence = "none"\n'
            "\n"
            '[mcp_servers."github"]\n'
            'command = "docker"\n'
            "args = [\n"
            '  "run",\n'
            "]\n"
            "\n"
            '[mcp_servers."github".env]\n'
            'GITHUB_TOKEN = "${T}"\n'
        )


class TestConfigSteps:
    """Tests for mcp_config_steps()."""

    def test_app_token_step_first(self, make_data: MakeData) -> None:
        """A GitHub App on the GitHub tool mints a token before setup."""
        data = make_data(
            {"tools": {"github": {"app": {"app-id": "1", "private-key": "${{ secrets.K }}"}}}}
        )
        ctx = CompileContext(pin=lambda repo: f"{repo}@pinned")
        app_step, setup = mcp_config_steps(data, ctx)
        assert app_step["id"] == GITHUB_APP_TOKEN_STEP_ID
        assert app_step["uses"] == "actions/create-github-app-token@pinned"
        assert setup["name"] == "Setup MCPs"
        assert "cat << 'GH_AW_MCP_CONFIG_EOF'" in setup["run"]


class TestSafeInputs:
    """Tests for the safeinputs server."""

    TOOLS = {
        "fetch-ticket": {
            "description": "Fetch a ticket",
            "run": "curl -H \"Authorization: $JIRA_TOKEN\" https://jira.example.com",
            "env": {"JIRA_TOKEN": "${{ secrets.JIRA_TOKEN }}"},
        }
    }

    def test_server_after_safeoutputs(self, make_data: MakeData) -> None:
        """The safeinputs server follows safeoutputs and reads env indirectly."""
        data = make_data({"safe-inputs": self.TOOLS, "safe-outputs": {"noop": None}})
        servers = collect_mcp_servers(data)
        assert list(servers) == ["github", "safeoutputs", "safeinputs"]
        assert servers["safeinputs"]["env"] == {
            "GH_AW_SAFE_INPUTS_TOOLS_PATH": "/opt/gh-aw/safe-inputs/tools.json",
            "JIRA_TOKEN": "${JIRA_TOKEN}",
        }
        assert mcp_secret_env(data)["JIRA_TOKEN"] == "${{ secrets.JIRA_TOKEN }}"

    def test_tools_file_step(self, make_data: MakeData) -> None:
        """Tool definitions are written before the MCP config, without secrets."""
        data = make_data({"safe-inputs": self.TOOLS})
        tools_step, setup = mcp_config_steps(data, CompileContext())
        assert tools_step["name"] == "Setup Safe Inputs"
        assert "/opt/gh-aw/safe-inputs/tools.json" in tools_step["run"]
        assert '"fetch-ticket"' in tools_step["run"]
        assert "secrets.JIRA_TOKEN" not in tools_step["run"]
        assert setup["name"] == "Setup MCPs"

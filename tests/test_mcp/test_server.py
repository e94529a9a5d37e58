"""Tests for tool registration and routing in the MCP server.

Verifies:
- All tracking tools plus ping appear in handle_list_tools
- A permissions file narrows the registered tools
- Tool calls route through the registry; unknown tools return an error
- ping reports connectivity and failures

Note: Detailed handler behavior is tested in tests/test_mcp/tools/ --
this file only tests the server routing layer.
"""

from types import SimpleNamespace
from unittest.mock import MagicMock

import mcp.types as types
import pytest

from tagplan_mcp import __version__
from tagplan_mcp.errors import PermissionDeniedError
from tagplan_mcp.mcp.server import (
    PING_SPEC,
    build_registry,
    get_context,
    handle_call_tool,
    handle_list_tools,
    set_context,
    set_registry,
)
from tagplan_mcp.mcp.tools import ALL_SPECS
from tagplan_mcp.mcp.tools.registry import ServerContext, ToolRegistry


def _text(result: types.CallToolResult) -> str:
    content = result.content[0]
    assert isinstance(content, types.TextContent)
    return content.text


@pytest.fixture
def context(config, fake_client):
    ctx = ServerContext(
        config=config,
        services=SimpleNamespace(tagmanager=fake_client, session=MagicMock()),
    )
    set_registry(ToolRegistry([PING_SPEC] + ALL_SPECS))
    set_context(ctx)
    yield ctx
    set_context(None)
    set_registry(None)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


class TestRegistration:
    async def test_list_tools(self, context):
        names = [tool.name for tool in await handle_list_tools()]

        assert names == [
            "ping",
            "tracking_status",
            "tracking_diff",
            "tracking_sync",
            "tracking_clean",
            "tracking_publish",
            "tracking_plan_merge",
        ]

    def test_permissions_file_filters(self, tmp_path, capsys):
        permissions = tmp_path / "read-only.permissions"
        permissions.write_text("# Read-only agent\nREAD\n")

        registry = build_registry(str(permissions))

        names = [tool.name for tool in registry.list_tools()]
        assert names == ["ping", "tracking_status", "tracking_diff"]
        assert "3 of 7 tools enabled" in capsys.readouterr().err

    def test_no_permissions_file(self):
        assert build_registry().tool_count() == 7

    def test_context_required(self):
        set_context(None)
        with pytest.raises(RuntimeError, match="not initialized"):
            get_context()


# ---------------------------------------------------------------------------
# Routing
# ---------------------------------------------------------------------------


class TestRouting:
    async def test_unknown_tool(self, context):
        result = await handle_call_tool("wiki_get", {})

        assert result.isError
        assert "Error (unknown_tool)" in _text(result)

    async def test_routes_to_handler(self, context, fake_client):
        result = await handle_call_tool("tracking_diff", {})

        assert not result.isError
        assert fake_client.calls_to("list_containers")


class TestPing:
    async def test_connected(self, context):
        result = await handle_call_tool("ping", None)

        text = _text(result)
        assert text.startswith(f"Tagplan MCP server {__version__} connected.")
        assert "accounts visible: 1" in text

    async def test_failure(self, context, fake_client):
        fake_client.fail("list_accounts", PermissionDeniedError("denied"))

        result = await handle_call_tool("ping", {})

        assert result.isError
        assert "Tag Manager connection failed: denied" in _text(result)

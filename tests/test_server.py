"""Tests for the MCP tool handlers and server routing."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from mcp_quickbooks.auth import RevokeResult, TokenSet
from mcp_quickbooks.config import Settings
from mcp_quickbooks.errors import HttpFault, ValidationError
from mcp_quickbooks.server import QuickBooksMCPServer
from mcp_quickbooks.tools import ALL_TOOLS, handle_auth_tool, handle_entity_tool, handle_report_tool


@pytest.fixture
def mock_client():
    client = MagicMock()
    for name in ("find", "count", "get", "create", "update", "delete", "batch", "change_data_capture", "report"):
        setattr(client, name, AsyncMock())
    return client


class TestToolDefinitions:
    def test_tool_names_unique(self):
        names = [tool.name for tool in ALL_TOOLS]
        assert len(names) == len(set(names))
        assert all(name.startswith("qbo_") for name in names)

    def test_expected_tools(self):
        names = {tool.name for tool in ALL_TOOLS}
        assert {"qbo_connect", "qbo_find", "qbo_batch", "qbo_report", "qbo_disconnect"} <= names


class TestEntityTools:
    async def test_find(self, mock_client):
        mock_client.find.return_value = {"time": "t", "data": [{"Id": "1"}, {"Id": "2"}]}

        result = await handle_entity_tool("qbo_find", {"entity": "Customer", "criteria": {"Active": True}}, mock_client)

        mock_client.find.assert_awaited_once_with("Customer", {"Active": True})
        assert result["count"] == 2

    async def test_count(self, mock_client):
        mock_client.count.return_value = 12

        result = await handle_entity_tool("qbo_count", {"entity": "Invoice"}, mock_client)

        assert result == {"entity": "Invoice", "count": 12}

    async def test_error_payload(self, mock_client):
        fault = {"Fault": {"Error": [{"Message": "Stale Object Error"}]}}
        mock_client.update.side_effect = HttpFault("QuickBooks fault: Stale Object Error", status_code=200, details=fault)

        result = await handle_entity_tool("qbo_update", {"entity": "Customer", "body": {}}, mock_client)

        assert result["error"] == "QuickBooks fault: Stale Object Error"
        assert result["details"] == fault

    async def test_unknown_tool(self, mock_client):
        result = await handle_entity_tool("qbo_explode", {}, mock_client)
        assert "Unknown" in result["error"]

    async def test_report(self, mock_client):
        mock_client.report.return_value = {"data": {"Header": {}}}

        await handle_report_tool("qbo_report", {"report": "BalanceSheet", "options": {"date_macro": "Today"}}, mock_client)

        mock_client.report.assert_awaited_once_with("BalanceSheet", {"date_macro": "Today"})


class TestAuthTools:
    async def test_not_configured(self):
        oauth = MagicMock(is_configured=False)

        result = await handle_auth_tool("qbo_refresh", {}, oauth)

        assert "not configured" in result["error"]

    async def test_disconnect_rejected(self):
        oauth = MagicMock(is_configured=True)
        oauth.revoke = AsyncMock(return_value=RevokeResult(revoked=False, status_code=400, body={"error": "invalid_token"}))

        result = await handle_auth_tool("qbo_disconnect", {}, oauth)

        oauth.revoke.assert_awaited_once_with(use_refresh_token=True)
        assert result["success"] is False
        assert result["status_code"] == 400

    async def test_refresh_error(self):
        oauth = MagicMock(is_configured=True)
        oauth.refresh = AsyncMock(side_effect=ValidationError("No refresh token available"))

        result = await handle_auth_tool("qbo_refresh", {}, oauth)

        assert result["error"] == "No refresh token available"


class TestServer:
    @pytest.fixture
    def settings(self, tmp_path):
        return Settings(
            client_id="client-id",
            client_secret="client-secret",
            token_path=tmp_path / "tokens.enc",
        )

    async def test_status_without_credentials(self, tmp_path):
        server = QuickBooksMCPServer(Settings(token_path=tmp_path / "tokens.enc"))

        with patch("mcp_quickbooks.server.discover_endpoints", new=AsyncMock()) as discover:
            result = await server._handle_tool("qbo_auth_status", {})

        discover.assert_not_awaited()
        assert result["configured"] is False

    async def test_discovery_runs_once(self, settings, endpoints):
        server = QuickBooksMCPServer(settings)

        with patch("mcp_quickbooks.server.discover_endpoints", new=AsyncMock(return_value=endpoints)) as discover:
            await server._handle_tool("qbo_auth_status", {})
            await server._handle_tool("qbo_auth_url", {})

        discover.assert_awaited_once_with(sandbox=False)

    async def test_entity_tool_requires_authentication(self, settings, endpoints):
        server = QuickBooksMCPServer(settings)

        with patch("mcp_quickbooks.server.discover_endpoints", new=AsyncMock(return_value=endpoints)):
            result = await server._handle_tool("qbo_find", {"entity": "Customer"})

        assert result["error"] == "Not authenticated with QuickBooks"

    async def test_routes_to_client(self, settings, endpoints):
        server = QuickBooksMCPServer(settings)
        server.token_store.save(TokenSet("access", "refresh", expires_at=9e12, realm_id="123145"))

        with patch("mcp_quickbooks.server.discover_endpoints", new=AsyncMock(return_value=endpoints)):
            client = await server.get_client()
            client.find = AsyncMock(return_value={"data": []})
            result = await server._handle_tool("qbo_find", {"entity": "Customer"})

        assert client.session.realm_id == "123145"
        assert result == {"data": [], "count": 0}


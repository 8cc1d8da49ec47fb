"""MCP Server for QuickBooks Online integration."""

import asyncio
import json
import logging
import sys
from typing import Any

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent

from .auth import QuickBooksOAuth, Session, TokenStore, discover_endpoints
from .config import Settings
from .quickbooks import QuickBooksClient
from .tools import (
    ALL_TOOLS,
    AUTH_TOOLS,
    REPORT_TOOLS,
    handle_auth_tool,
    handle_entity_tool,
    handle_report_tool,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

AUTH_TOOL_NAMES = frozenset(tool.name for tool in AUTH_TOOLS)
REPORT_TOOL_NAMES = frozenset(tool.name for tool in REPORT_TOOLS)


class QuickBooksMCPServer:
    """MCP Server for QuickBooks Online integration."""

    def __init__(self, settings: Settings | None = None):
        """Initialize the QuickBooks MCP server.

        Args:
            settings: Server settings (read from the environment when omitted)
        """
        self.settings = settings or Settings.from_env()
        self.server = Server("quickbooks-mcp")
        self.token_store = TokenStore(self.settings.token_path)

        # Discovery runs once, on the first tool call that needs the session
        self._oauth: QuickBooksOAuth | None = None
        self._client: QuickBooksClient | None = None
        self._setup_lock = asyncio.Lock()

        # Register handlers
        self._register_handlers()

    async def get_oauth(self) -> QuickBooksOAuth:
        """Get the OAuth handler, resolving endpoints on first use.

        Returns:
            QuickBooksOAuth bound to the server's session
        """
        async with self._setup_lock:
            if self._oauth is None:
                settings = self.settings
                endpoints = await discover_endpoints(sandbox=settings.sandbox)
                session = Session(
                    client_id=settings.client_id,
                    client_secret=settings.client_secret,
                    endpoints=endpoints,
                    minor_version=settings.minor_version,
                    sandbox=settings.sandbox,
                    debug=settings.debug,
                )
                oauth = QuickBooksOAuth(
                    session,
                    token_store=self.token_store,
                    redirect_uri=settings.redirect_uri,
                )
                if oauth.load_tokens():
                    logger.info(f"Loaded stored tokens for realm {session.realm_id}")
                self._oauth = oauth
        return self._oauth

    async def get_client(self) -> QuickBooksClient:
        """Get the QuickBooks client, creating it if needed."""
        oauth = await self.get_oauth()
        if self._client is None:
            self._client = QuickBooksClient(
                oauth.session,
                oauth=oauth,
                fetch_all_max_records=self.settings.fetch_all_max_records,
            )
        return self._client

    def _register_handlers(self) -> None:
        """Register MCP server handlers."""

        @self.server.list_tools()
        async def list_tools():
            """List all available QuickBooks tools."""
            return ALL_TOOLS

        @self.server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
            """Handle tool calls."""
            logger.info(f"Tool call: {name} with arguments: {arguments}")

            try:
                result = await self._handle_tool(name, arguments or {})
            except Exception as e:
                logger.exception(f"Error handling tool {name}")
                result = {"error": str(e)}

            return [TextContent(type="text", text=json.dumps(result, indent=2, default=str))]

    async def _handle_tool(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Route tool calls to appropriate handlers.

        Args:
            name: Tool name
            arguments: Tool arguments

        Returns:
            Tool result
        """
        if name == "qbo_auth_status" and not self.settings.is_configured:
            return {
                "connected": False,
                "configured": False,
                "message": "QuickBooks credentials not configured. Set QBO_CLIENT_ID and QBO_CLIENT_SECRET.",
            }

        # Authentication tools
        if name in AUTH_TOOL_NAMES:
            return await handle_auth_tool(name, arguments, await self.get_oauth())

        client = await self.get_client()

        # Check authentication for other tools
        tokens = await client.oauth.get_valid_tokens()
        if not tokens or not client.session.access_token:
            return {
                "error": "Not authenticated with QuickBooks",
                "message": "Use qbo_connect to connect to QuickBooks first",
            }

        if name in REPORT_TOOL_NAMES:
            return await handle_report_tool(name, arguments, client)

        if name.startswith("qbo_"):
            return await handle_entity_tool(name, arguments, client)

        return {"error": f"Unknown tool: {name}"}

    async def run(self) -> None:
        """Run the MCP server."""
        logger.info("Starting QuickBooks MCP server")

        async with stdio_server() as (read_stream, write_stream):
            await self.server.run(
                read_stream,
                write_stream,
                self.server.create_initialization_options(),
            )


def main() -> None:
    """Main entry point."""
    server = QuickBooksMCPServer()
    asyncio.run(server.run())


if __name__ == "__main__":
    main()

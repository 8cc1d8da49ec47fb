"""Authentication tools for QuickBooks MCP server."""

import logging
from typing import Any

from mcp.types import Tool

from ..auth import QuickBooksOAuth
from ..errors import QuickBooksError

logger = logging.getLogger(__name__)

AUTH_TOOLS = [
    Tool(
        name="qbo_auth_status",
        description="Check the current QuickBooks authentication status: whether credentials are configured, whether a company (realm) is connected, and the token state.",
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    Tool(
        name="qbo_auth_url",
        description="Generate the Intuit authorization URL. Open it in a browser to grant access to a QuickBooks company.",
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    Tool(
        name="qbo_connect",
        description="Connect to QuickBooks: returns the authorization URL, waits for the browser callback on the local redirect URI, then exchanges the code for tokens.",
        inputSchema={
            "type": "object",
            "properties": {
                "timeout": {
                    "type": "integer",
                    "description": "Seconds to wait for the callback. Default: 300",
                    "default": 300,
                    "minimum": 10,
                },
            },
            "required": [],
        },
    ),
    Tool(
        name="qbo_refresh",
        description="Refresh the QuickBooks access token using the stored refresh token.",
        inputSchema={
            "type": "object",
            "properties": {},
            "required": [],
        },
    ),
    Tool(
        name="qbo_disconnect",
        description="Disconnect from QuickBooks by revoking the stored tokens with Intuit.",
        inputSchema={
            "type": "object",
            "properties": {
                "use_refresh_token": {
                    "type": "boolean",
                    "description": "Revoke the refresh token instead of the access token. Default: true",
                    "default": True,
                },
            },
            "required": [],
        },
    ),
]


async def handle_auth_tool(name: str, arguments: dict[str, Any], oauth: QuickBooksOAuth) -> dict[str, Any]:
    """Handle authentication tool calls.

    Args:
        name: Tool name
        arguments: Tool arguments
        oauth: OAuth handler for the session

    Returns:
        Tool result
    """
    if name == "qbo_auth_status":
        return oauth.get_status()

    if not oauth.is_configured:
        return {
            "error": "QuickBooks credentials not configured",
            "message": "Store qbo-client-id and qbo-client-secret in secure storage or set QBO_CLIENT_ID and QBO_CLIENT_SECRET",
        }

    try:
        if name == "qbo_auth_url":
            url, state = oauth.get_authorization_url()
            return {
                "authorization_url": url,
                "state": state,
                "redirect_uri": oauth.redirect_uri,
                "message": "Open the URL in a browser to grant access, then call qbo_connect",
            }

        elif name == "qbo_connect":
            url, state = oauth.get_authorization_url()
            logger.info(f"Waiting for QuickBooks authorization callback: {url}")
            code, realm_id = await oauth.wait_for_callback(timeout=arguments.get("timeout", 300))
            tokens = await oauth.exchange_code(code, state=state, realm_id=realm_id)
            return {
                "success": True,
                "realm_id": tokens.realm_id,
                "message": f"Connected to QuickBooks realm {tokens.realm_id}",
            }

        elif name == "qbo_refresh":
            tokens = await oauth.refresh()
            return {
                "success": True,
                "realm_id": tokens.realm_id,
                "expires_at": tokens.expires_at,
                "message": "Access token refreshed",
            }

        elif name == "qbo_disconnect":
            result = await oauth.revoke(use_refresh_token=arguments.get("use_refresh_token", True))
            if not result.revoked:
                return {
                    "success": False,
                    "status_code": result.status_code,
                    "details": result.body,
                    "message": "Intuit rejected the revoke request; tokens were kept",
                }
            return {
                "success": True,
                "message": "Disconnected from QuickBooks. Tokens have been revoked and removed.",
            }

    except TimeoutError:
        return {"error": "Timed out waiting for the authorization callback"}
    except QuickBooksError as e:
        return {"error": str(e), "status_code": e.status_code, "details": e.details}

    return {"error": f"Unknown auth tool: {name}"}

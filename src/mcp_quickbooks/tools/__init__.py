"""MCP tools for QuickBooks integration."""

from .auth import AUTH_TOOLS, handle_auth_tool
from .entities import ENTITY_TOOLS, handle_entity_tool
from .reports import REPORT_TOOLS, handle_report_tool

ALL_TOOLS = AUTH_TOOLS + ENTITY_TOOLS + REPORT_TOOLS

__all__ = [
    "ALL_TOOLS",
    "AUTH_TOOLS",
    "ENTITY_TOOLS",
    "REPORT_TOOLS",
    "handle_auth_tool",
    "handle_entity_tool",
    "handle_report_tool",
]

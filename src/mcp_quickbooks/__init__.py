"""MCP server and async client for the QuickBooks Online accounting API."""

__version__ = "0.1.0"

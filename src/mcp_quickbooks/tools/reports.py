"""Report tools for QuickBooks MCP server."""

from typing import Any

from mcp.types import Tool

from ..errors import QuickBooksError
from ..quickbooks import QuickBooksClient
from ..quickbooks.entities import REPORTS

REPORT_TOOLS = [
    Tool(
        name="qbo_report",
        description="Run a QuickBooks report such as BalanceSheet or ProfitAndLoss.",
        inputSchema={
            "type": "object",
            "properties": {
                "report": {
                    "type": "string",
                    "description": "Report name",
                    "enum": list(REPORTS),
                },
                "options": {
                    "type": "object",
                    "description": "Report parameters, e.g. {\"start_date\": \"2024-01-01\", \"end_date\": \"2024-12-31\", \"accounting_method\": \"Accrual\"}",
                },
            },
            "required": ["report"],
        },
    ),
]


async def handle_report_tool(name: str, arguments: dict[str, Any], client: QuickBooksClient) -> dict[str, Any]:
    """Handle report tool calls."""
    if name != "qbo_report":
        return {"error": f"Unknown report tool: {name}"}

    try:
        return await client.report(arguments["report"], arguments.get("options"))
    except QuickBooksError as e:
        return {"error": str(e), "status_code": e.status_code, "details": e.details}

"""Entity tools for QuickBooks MCP server."""

from typing import Any

from mcp.types import Tool

from ..errors import QuickBooksError
from ..quickbooks import QuickBooksClient
from ..quickbooks.entities import REGISTRY

ENTITY_NAMES = [entity.name for entity in REGISTRY]

_ENTITY_PROPERTY = {
    "type": "string",
    "description": "QuickBooks entity name (e.g. Customer, Invoice, Bill)",
    "enum": ENTITY_NAMES,
}

ENTITY_TOOLS = [
    Tool(
        name="qbo_find",
        description="Query QuickBooks entities. Criteria may be a raw where/orderby clause string, an object of field -> value (lists become IN), or a list of {field, operator, value} records. Use limit/offset/asc/desc/fetchAll as pseudo-fields.",
        inputSchema={
            "type": "object",
            "properties": {
                "entity": _ENTITY_PROPERTY,
                "criteria": {
                    "description": "Filter criteria: string, object, or array of {field, value, operator}",
                    "anyOf": [{"type": "string"}, {"type": "object"}, {"type": "array"}],
                },
            },
            "required": ["entity"],
        },
    ),
    Tool(
        name="qbo_count",
        description="Count QuickBooks entities matching criteria.",
        inputSchema={
            "type": "object",
            "properties": {
                "entity": _ENTITY_PROPERTY,
                "criteria": {
                    "description": "Filter criteria: object or array of {field, value, operator}",
                    "anyOf": [{"type": "object"}, {"type": "array"}],
                },
            },
            "required": ["entity"],
        },
    ),
    Tool(
        name="qbo_get",
        description="Get a QuickBooks entity by Id.",
        inputSchema={
            "type": "object",
            "properties": {
                "entity": _ENTITY_PROPERTY,
                "id": {"type": "string", "description": "Entity Id (omit for Preferences)"},
            },
            "required": ["entity"],
        },
    ),
    Tool(
        name="qbo_create",
        description="Create a QuickBooks entity. The body is passed to QuickBooks unchanged.",
        inputSchema={
            "type": "object",
            "properties": {
                "entity": _ENTITY_PROPERTY,
                "body": {"type": "object", "description": "Entity fields"},
            },
            "required": ["entity", "body"],
        },
    ),
    Tool(
        name="qbo_update",
        description="Sparse-update a QuickBooks entity. The body must include Id and SyncToken.",
        inputSchema={
            "type": "object",
            "properties": {
                "entity": _ENTITY_PROPERTY,
                "body": {"type": "object", "description": "Entity fields including Id and SyncToken"},
            },
            "required": ["entity", "body"],
        },
    ),
    Tool(
        name="qbo_delete",
        description="Delete a QuickBooks transaction by Id (the current SyncToken is read first).",
        inputSchema={
            "type": "object",
            "properties": {
                "entity": _ENTITY_PROPERTY,
                "id": {"type": "string", "description": "Entity Id"},
            },
            "required": ["entity", "id"],
        },
    ),
    Tool(
        name="qbo_batch",
        description="Run up to 30 batch operations in one request (BatchItemRequest items).",
        inputSchema={
            "type": "object",
            "properties": {
                "items": {
                    "type": "array",
                    "description": "Batch items, each with bId and one of create/update/delete/Query",
                    "items": {"type": "object"},
                    "maxItems": 30,
                },
            },
            "required": ["items"],
        },
    ),
    Tool(
        name="qbo_change_data_capture",
        description="List QuickBooks entities changed since a timestamp.",
        inputSchema={
            "type": "object",
            "properties": {
                "entities": {
                    "type": "array",
                    "items": _ENTITY_PROPERTY,
                    "description": "Entities to check for changes",
                },
                "changed_since": {
                    "type": "string",
                    "description": "ISO-8601 timestamp, e.g. 2024-07-20T22:25:51-07:00",
                },
            },
            "required": ["entities", "changed_since"],
        },
    ),
]


async def handle_entity_tool(name: str, arguments: dict[str, Any], client: QuickBooksClient) -> dict[str, Any]:
    """Handle entity tool calls.

    Args:
        name: Tool name
        arguments: Tool arguments
        client: QuickBooks client

    Returns:
        Tool result
    """
    try:
        if name == "qbo_find":
            result = await client.find(arguments["entity"], arguments.get("criteria"))
            data = result.get("data")
            return {**result, "count": len(data) if isinstance(data, list) else None}

        elif name == "qbo_count":
            total = await client.count(arguments["entity"], arguments.get("criteria"))
            return {"entity": arguments["entity"], "count": total}

        elif name == "qbo_get":
            return await client.get(arguments["entity"], arguments.get("id"))

        elif name == "qbo_create":
            result = await client.create(arguments["entity"], arguments["body"])
            return {"success": True, **result}

        elif name == "qbo_update":
            result = await client.update(arguments["entity"], arguments["body"])
            return {"success": True, **result}

        elif name == "qbo_delete":
            result = await client.delete(arguments["entity"], arguments["id"])
            return {"success": True, **result}

        elif name == "qbo_batch":
            return await client.batch(arguments["items"])

        elif name == "qbo_change_data_capture":
            return await client.change_data_capture(arguments["entities"], arguments["changed_since"])

    except QuickBooksError as e:
        return {"error": str(e), "status_code": e.status_code, "details": e.details}

    return {"error": f"Unknown entity tool: {name}"}

"""
Response formatting utilities for MCP tool handlers.

Success payloads are pretty-printed JSON. Failures are {"error": ...}
with isError set, so clients see them as tool errors rather than
protocol faults.
"""

import json

from mcp import types


def tool_result(data) -> types.CallToolResult:
    """Wrap a successful tool result as MCP text content."""
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=json.dumps(data, indent=2, ensure_ascii=False))],
        isError=False
    )


def tool_error(error) -> types.CallToolResult:
    """Wrap an error (exception or message) as MCP text content with isError."""
    message = str(error)
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=json.dumps({"error": message}, ensure_ascii=False))],
        isError=True
    )

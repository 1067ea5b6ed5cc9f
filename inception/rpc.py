"""
JSON-RPC 2.0 helpers and the error types the tool server maps onto them.
"""

from __future__ import annotations

from typing import Any


def make_response(req_id: str | int | None, result: dict[str, Any]) -> dict[str, Any]:
    """Build a JSON-RPC 2.0 success response."""
    return {"jsonrpc": "2.0", "id": req_id, "result": result}


def make_error(
    req_id: str | int | None,
    code: int,
    message: str,
    data: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build a JSON-RPC 2.0 error response."""
    error: dict[str, Any] = {"code": code, "message": message}
    if data:
        error["data"] = data
    return {"jsonrpc": "2.0", "id": req_id, "error": error}


# Standard JSON-RPC error codes
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class UnknownToolError(LookupError):
    """A tools/call request named a tool this server does not expose."""

    code = METHOD_NOT_FOUND

    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class InvalidToolArguments(ValueError):
    """Tool arguments failed validation before reaching the orchestration core."""

    code = INVALID_PARAMS

    def __init__(self, tool: str, detail: str):
        super().__init__(f"Invalid arguments for {tool}: {detail}")
        self.tool = tool
        self.detail = detail

"""Result payload builders for MCP protocol messages."""

from enum import IntEnum
from typing import Any, Dict, List, Optional


class ErrorCodes(IntEnum):
    """Standard JSON-RPC error codes used in MCP."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # MCP specific
    RESOURCE_NOT_FOUND = -32002
    REQUEST_REJECTED = -1


class McpResponse:
    """Builders for the result payloads carried by successful responses."""

    @staticmethod
    def error(
        code: int,
        message: str,
        data: Optional[Any] = None
    ) -> Dict[str, Any]:
        """Create an error object.

        Args:
            code: Error code
            message: Error message
            data: Optional error data

        Returns:
            JSON-RPC error object
        """
        error_obj = {"code": int(code), "message": message}
        if data is not None:
            error_obj["data"] = data
        return error_obj

    @staticmethod
    def tool_result(content: List[Dict[str, Any]], is_error: bool = False) -> Dict[str, Any]:
        """Create a tools/call result.

        Args:
            content: Content blocks produced by the tool
            is_error: Whether the tool's own logic reported failure

        Returns:
            Tool call result payload
        """
        return {"content": content, "isError": is_error}

    @staticmethod
    def read_result(contents: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Create a resources/read result."""
        return {"contents": contents}

    @staticmethod
    def prompt_result(
        messages: List[Dict[str, Any]],
        description: Optional[str] = None
    ) -> Dict[str, Any]:
        """Create a prompts/get result."""
        result: Dict[str, Any] = {"messages": messages}
        if description:
            result["description"] = description
        return result

    @staticmethod
    def page(key: str, items: List[Dict[str, Any]], next_cursor: Optional[str] = None) -> Dict[str, Any]:
        """Create a discovery (list) result.

        Args:
            key: Collection key, e.g. ``tools`` or ``resourceTemplates``
            items: Descriptors on this page
            next_cursor: Continuation token, omitted on the last page

        Returns:
            Paginated list result payload
        """
        result: Dict[str, Any] = {key: items}
        if next_cursor is not None:
            result["nextCursor"] = next_cursor
        return result

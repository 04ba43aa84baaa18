"""Tool capabilities."""

import inspect
import logging
from typing import Any, Callable, Dict, List, Optional

from .content import text_content, to_content_list
from .response import McpResponse
from .schema import generate_function_input_schema, validate_arguments

logger = logging.getLogger(__name__)

HINT_NAMES = ("readOnlyHint", "destructiveHint", "idempotentHint", "openWorldHint")


class ToolFailure:
    """Returned by a tool handler to report that its own logic failed.

    The call still succeeds at the protocol level; the failure travels
    in-band as an ``isError`` result.
    """

    def __init__(self, message: str, content: Optional[List[Dict[str, Any]]] = None):
        self.message = message
        self.content = content

    def to_content(self) -> List[Dict[str, Any]]:
        return self.content if self.content is not None else [text_content(self.message)]

    def __repr__(self) -> str:
        return f"ToolFailure({self.message!r})"


class Tool:
    """Represents an MCP tool (function call capability)."""

    kind = "tool"

    def __init__(
        self,
        func: Callable,
        name: Optional[str] = None,
        description: Optional[str] = None,
        input_schema: Optional[Dict[str, Any]] = None,
        title: Optional[str] = None,
        hints: Optional[Dict[str, bool]] = None
    ):
        """Initialize a tool.

        Args:
            func: Handler called with the validated arguments as keywords
            name: Tool name (defaults to function name)
            description: Tool description (defaults to function docstring)
            input_schema: JSON Schema for the arguments (defaults to one
                generated from the function signature)
            title: Human readable title
            hints: Advisory behaviour hints, any of readOnlyHint,
                destructiveHint, idempotentHint, openWorldHint
        """
        self.func = func
        self.name = name or func.__name__
        self.description = description or (func.__doc__ or "").strip()
        self.input_schema = input_schema if input_schema is not None else generate_function_input_schema(func)
        self.title = title
        self.hints = dict(hints or {})
        unknown = set(self.hints) - set(HINT_NAMES)
        if unknown:
            raise ValueError(f"Unknown tool hints: {sorted(unknown)}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert tool to MCP tool descriptor."""
        result: Dict[str, Any] = {"name": self.name}
        if self.title:
            result["title"] = self.title
        result["description"] = self.description
        result["inputSchema"] = self.input_schema
        if self.title or self.hints:
            annotations = dict(self.hints)
            if self.title:
                annotations["title"] = self.title
            result["annotations"] = annotations
        return result

    def validate(self, arguments: Any) -> Dict[str, Any]:
        """Validate arguments against the input schema.

        Raises:
            ValidationError: If the arguments are invalid
        """
        return validate_arguments(arguments, self.input_schema)

    async def call(self, arguments: Dict[str, Any]) -> Dict[str, Any]:
        """Run the handler on already validated arguments.

        Failures inside the handler are reported in-band, never raised.

        Returns:
            tools/call result payload
        """
        try:
            result = self.func(**arguments)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.warning("Tool %s failed: %s", self.name, e, exc_info=True)
            return McpResponse.tool_result([text_content(f"Tool execution failed: {e}")], is_error=True)

        if isinstance(result, ToolFailure):
            return McpResponse.tool_result(result.to_content(), is_error=True)
        return McpResponse.tool_result(to_content_list(result))

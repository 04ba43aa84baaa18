"""Prompt capabilities."""

import inspect
from typing import Any, Callable, Dict, List, Optional

from .content import is_content_block, text_content
from .errors import InternalError, ValidationError
from .response import McpResponse

ROLES = ("user", "assistant")


class Prompt:
    """Represents an MCP prompt template."""

    kind = "prompt"

    def __init__(
        self,
        func: Callable,
        name: Optional[str] = None,
        description: Optional[str] = None,
        arguments: Optional[List[Dict[str, Any]]] = None,
        title: Optional[str] = None
    ):
        """Initialize a prompt.

        Args:
            func: Function that generates the messages, called with the
                arguments as keywords
            name: Prompt name (defaults to function name)
            description: Prompt description (defaults to function docstring)
            arguments: Argument descriptors (``name``, ``description``,
                ``required``); derived from the function signature when omitted
            title: Human readable title
        """
        self.func = func
        self.name = name or func.__name__
        self.description = description or (func.__doc__ or "").strip()
        self.title = title
        self.arguments = arguments if arguments is not None else self._arguments_from_signature(func)
        for arg in self.arguments:
            if "name" not in arg:
                raise ValueError(f"Prompt {self.name} has an argument without a name")

    @staticmethod
    def _arguments_from_signature(func: Callable) -> List[Dict[str, Any]]:
        arguments = []
        for param_name, param in inspect.signature(func).parameters.items():
            if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
                continue
            arguments.append({
                "name": param_name,
                "required": param.default is inspect.Parameter.empty
            })
        return arguments

    def to_dict(self) -> Dict[str, Any]:
        """Convert prompt to MCP prompt descriptor."""
        result: Dict[str, Any] = {"name": self.name}
        if self.title:
            result["title"] = self.title
        if self.description:
            result["description"] = self.description
        if self.arguments:
            result["arguments"] = [dict(arg) for arg in self.arguments]
        return result

    def validate(self, arguments: Any) -> Dict[str, str]:
        """Check named string arguments against the declared argument list.

        Raises:
            ValidationError: If an argument is missing, unknown or not a string
        """
        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise ValidationError("Arguments must be an object")

        declared = {arg["name"] for arg in self.arguments}
        for arg in self.arguments:
            if arg.get("required") and arg["name"] not in arguments:
                raise ValidationError(f"Missing required argument: {arg['name']}")
        for arg_name, value in arguments.items():
            if arg_name not in declared:
                raise ValidationError(f"Unexpected argument: {arg_name}")
            if not isinstance(value, str):
                raise ValidationError(f"Argument {arg_name} must be a string")
        return dict(arguments)

    async def render(self, arguments: Dict[str, str]) -> Dict[str, Any]:
        """Generate the messages for already validated arguments.

        The function may return strings (user turns), or dicts with a
        ``role`` and a ``content`` that is either a string or a content block.

        Returns:
            prompts/get result payload

        Raises:
            InternalError: If the function returns something that is not a
                message list
        """
        messages = self.func(**arguments)
        if inspect.isawaitable(messages):
            messages = await messages

        if not isinstance(messages, list):
            raise InternalError("Prompt function must return a list of messages")
        return McpResponse.prompt_result([self._to_message(msg) for msg in messages], self.description)

    @staticmethod
    def _to_message(msg: Any) -> Dict[str, Any]:
        if isinstance(msg, str):
            return {"role": "user", "content": text_content(msg)}
        if not (isinstance(msg, dict) and "role" in msg and "content" in msg):
            raise InternalError("Invalid message format in prompt")
        if msg["role"] not in ROLES:
            raise InternalError(f"Invalid message role in prompt: {msg['role']}")

        content = msg["content"]
        if isinstance(content, str):
            content = text_content(content)
        elif not is_content_block(content):
            raise InternalError("Invalid message content in prompt")
        return {"role": msg["role"], "content": content}

"""Invocation dispatcher: routes inbound requests to the registry."""

import base64
import binascii
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from .errors import (
    InternalError,
    McpError,
    MethodNotFoundError,
    PromptNotFoundError,
    ResourceNotFoundError,
    ToolNotFoundError,
    ValidationError,
)
from .registry import CapabilityRegistry
from .response import McpResponse

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50


def encode_cursor(offset: int) -> str:
    return base64.urlsafe_b64encode(f"offset:{offset}".encode("ascii")).decode("ascii")


def decode_cursor(cursor: str) -> int:
    """Turn a continuation token back into an offset.

    Raises:
        ValidationError: If the token was not produced by :func:`encode_cursor`
    """
    try:
        raw = base64.urlsafe_b64decode(cursor.encode("ascii")).decode("ascii")
        prefix, _, offset = raw.partition(":")
        if prefix != "offset":
            raise ValueError(raw)
        value = int(offset)
    except (binascii.Error, UnicodeError, ValueError, AttributeError):
        raise ValidationError(f"Invalid cursor: {cursor!r}") from None
    if value < 0:
        raise ValidationError(f"Invalid cursor: {cursor!r}")
    return value


def paginate(
    items: List[Dict[str, Any]],
    cursor: Optional[str],
    page_size: int
) -> Tuple[List[Dict[str, Any]], Optional[str]]:
    """Slice one page out of ``items``; no cursor means the first page."""
    start = decode_cursor(cursor) if cursor is not None else 0
    end = start + page_size
    next_cursor = encode_cursor(end) if end < len(items) else None
    return items[start:end], next_cursor


class Dispatcher:
    """Serves provider-side methods from a :class:`CapabilityRegistry`.

    Instances are request handlers for :meth:`Session.on_request`.
    """

    def __init__(self, registry: CapabilityRegistry, page_size: int = DEFAULT_PAGE_SIZE):
        if page_size < 1:
            raise ValueError("page_size must be positive")
        self.registry = registry
        self.page_size = page_size
        self._routes: Dict[str, Callable[[Dict[str, Any]], Awaitable[Dict[str, Any]]]] = {
            "tools/list": self.list_tools,
            "tools/call": self.call_tool,
            "resources/list": self.list_resources,
            "resources/templates/list": self.list_resource_templates,
            "resources/read": self.read_resource,
            "prompts/list": self.list_prompts,
            "prompts/get": self.get_prompt,
        }

    async def __call__(self, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        route = self._routes.get(method)
        if route is None:
            raise MethodNotFoundError(f"Method not found: {method}")
        return await route(params)

    def _page(self, key: str, params: Dict[str, Any]) -> Dict[str, Any]:
        cursor = params.get("cursor")
        if cursor is not None and not isinstance(cursor, str):
            raise ValidationError("cursor must be a string")
        items, next_cursor = paginate(self.registry.list()[key], cursor, self.page_size)
        return McpResponse.page(key, items, next_cursor)

    async def list_tools(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return self._page("tools", params)

    async def list_resources(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return self._page("resources", params)

    async def list_resource_templates(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return self._page("resourceTemplates", params)

    async def list_prompts(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return self._page("prompts", params)

    async def read_resource(self, params: Dict[str, Any]) -> Dict[str, Any]:
        uri = _require_string(params, "uri")
        found = self.registry.find_resource(uri)
        if found is None:
            raise ResourceNotFoundError(f"Resource not found: {uri}", data={"uri": uri})
        resource, uri_params = found
        logger.info("Reading resource %s via %s", uri, resource.name)
        try:
            return await resource.read(uri, uri_params)
        except McpError:
            raise
        except Exception as e:
            logger.exception("Resource %s failed", resource.name)
            raise InternalError(f"Resource read failed: {e}") from e

    async def call_tool(self, params: Dict[str, Any]) -> Dict[str, Any]:
        name = _require_string(params, "name")
        tool = self.registry.get_tool(name)
        if tool is None:
            raise ToolNotFoundError(f"Tool not found: {name}")
        arguments = tool.validate(params.get("arguments"))
        logger.info("Calling tool %s", name)
        return await tool.call(arguments)

    async def get_prompt(self, params: Dict[str, Any]) -> Dict[str, Any]:
        name = _require_string(params, "name")
        prompt = self.registry.get_prompt(name)
        if prompt is None:
            raise PromptNotFoundError(f"Prompt not found: {name}")
        arguments = prompt.validate(params.get("arguments"))
        logger.info("Rendering prompt %s", name)
        try:
            return await prompt.render(arguments)
        except McpError:
            raise
        except Exception as e:
            logger.exception("Prompt %s failed", name)
            raise InternalError(f"Prompt generation failed: {e}") from e


def _require_string(params: Dict[str, Any], key: str) -> str:
    value = params.get(key)
    if not isinstance(value, str):
        raise ValidationError(f"Missing or invalid parameter: {key}")
    return value

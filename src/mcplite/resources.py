"""Resource capabilities: literal resources and URI templates."""

import inspect
import json
import re
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote, unquote

from .content import format_text, resource_blob, resource_text
from .response import McpResponse

_PLACEHOLDER = re.compile(r"\{([^{}]*)\}")


class UriTemplate:
    """A URI pattern with ``{name}`` placeholders.

    Each placeholder matches exactly one non-empty path segment, so
    ``users://{userID}/profile`` matches ``users://7/profile`` but not
    ``users://profile`` or ``users://7/8/profile``.
    """

    def __init__(self, template: str):
        self.template = template
        self.variables: List[str] = []

        pattern = []
        position = 0
        for match in _PLACEHOLDER.finditer(template):
            name = match.group(1)
            if not name.isidentifier():
                raise ValueError(f"Invalid placeholder {{{name}}} in URI template {template!r}")
            if name == "uri":
                raise ValueError(f"Placeholder {{uri}} is reserved for the requested URI in {template!r}")
            if name in self.variables:
                raise ValueError(f"Duplicate placeholder {{{name}}} in URI template {template!r}")
            self.variables.append(name)
            pattern.append(re.escape(template[position:match.start()]))
            pattern.append(f"(?P<{name}>[^/]+)")
            position = match.end()
        pattern.append(re.escape(template[position:]))
        self._regex = re.compile("".join(pattern))

    @staticmethod
    def is_template(uri: str) -> bool:
        return _PLACEHOLDER.search(uri) is not None

    def match(self, uri: str) -> Optional[Dict[str, str]]:
        """Match a concrete URI.

        Returns:
            Decoded placeholder values, or None if the URI does not match
        """
        found = self._regex.fullmatch(uri)
        if found is None:
            return None
        return {name: unquote(value) for name, value in found.groupdict().items()}

    def expand(self, **values: Any) -> str:
        """Fill the placeholders, percent-encoding each value as one segment."""
        missing = [name for name in self.variables if name not in values]
        if missing:
            raise ValueError(f"Missing values for {missing} in URI template {self.template!r}")
        return _PLACEHOLDER.sub(lambda m: quote(str(values[m.group(1)]), safe=""), self.template)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, UriTemplate) and other.template == self.template

    def __hash__(self) -> int:
        return hash(self.template)

    def __repr__(self) -> str:
        return f"UriTemplate({self.template!r})"


class Resource:
    """Represents an MCP resource at a literal URI."""

    kind = "resource"

    def __init__(
        self,
        func: Callable,
        uri: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        mime_type: str = "text/plain",
        title: Optional[str] = None
    ):
        """Initialize a resource.

        Args:
            func: Handler called as ``func(uri, **params)``
            uri: Resource URI
            name: Resource name (defaults to function name)
            description: Resource description (defaults to function docstring)
            mime_type: MIME type of the resource
            title: Human readable title
        """
        self.func = func
        self.uri = uri
        self.name = name or func.__name__
        self.description = description or (func.__doc__ or "").strip()
        self.mime_type = mime_type
        self.title = title

    def to_dict(self) -> Dict[str, Any]:
        """Convert resource to MCP resource descriptor."""
        result: Dict[str, Any] = {"uri": self.uri, "name": self.name}
        self._describe(result)
        return result

    def _describe(self, result: Dict[str, Any]) -> None:
        if self.title:
            result["title"] = self.title
        if self.description:
            result["description"] = self.description
        if self.mime_type:
            result["mimeType"] = self.mime_type

    async def read(self, uri: str, params: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """Run the handler and format its output.

        Handlers may return a list of read entries (dicts with ``uri`` and
        ``text`` or ``blob``), bytes, or any value rendered as text.

        Returns:
            resources/read result payload
        """
        result = self.func(uri, **(params or {}))
        if inspect.isawaitable(result):
            result = await result

        if isinstance(result, list) and result and all(
            isinstance(entry, dict) and "uri" in entry and ("text" in entry or "blob" in entry)
            for entry in result
        ):
            return McpResponse.read_result(result)

        if isinstance(result, (bytes, bytearray)):
            return McpResponse.read_result([resource_blob(uri, bytes(result), self.mime_type)])

        if self.mime_type == "application/json" and not isinstance(result, str):
            text = json.dumps(result, indent=2)
        else:
            text = format_text(result)
        return McpResponse.read_result([resource_text(uri, text, self.mime_type)])


class ResourceTemplate(Resource):
    """A family of resources addressed by a URI template."""

    kind = "resource_template"

    def __init__(
        self,
        func: Callable,
        uri_template: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        mime_type: str = "text/plain",
        title: Optional[str] = None
    ):
        self.template = UriTemplate(uri_template)
        super().__init__(func, uri_template, name, description, mime_type, title)

    @property
    def uri_template(self) -> str:
        return self.template.template

    def match(self, uri: str) -> Optional[Dict[str, str]]:
        return self.template.match(uri)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to MCP resource template descriptor."""
        result: Dict[str, Any] = {"uriTemplate": self.uri_template, "name": self.name}
        self._describe(result)
        return result

"""Capability registry: the catalog of resources, tools and prompts a provider advertises."""

import logging
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .errors import DuplicateNameError
from .prompts import Prompt
from .resources import Resource, ResourceTemplate, UriTemplate
from .tools import Tool

logger = logging.getLogger(__name__)


class CapabilityRegistry:
    """Holds registered capabilities in registration order.

    Names are unique per kind. Literal resources and resource templates
    share one namespace.
    """

    def __init__(self):
        self.tools: Dict[str, Tool] = {}
        self.resources: Dict[str, Resource] = {}
        self.resource_templates: Dict[str, ResourceTemplate] = {}
        self.prompts: Dict[str, Prompt] = {}
        self._resources_by_uri: Dict[str, Resource] = {}

    def register_resource(
        self,
        name: str,
        uri: Union[str, UriTemplate],
        handler: Callable,
        title: Optional[str] = None,
        description: Optional[str] = None,
        mime_type: str = "text/plain"
    ) -> Resource:
        """Register a resource at a literal URI, or a template if ``uri`` has placeholders.

        The handler is called as ``handler(uri, **params)`` where ``params``
        holds the values extracted from the template placeholders.

        Raises:
            DuplicateNameError: If the name (or literal URI) is already registered
        """
        if name in self.resources or name in self.resource_templates:
            raise DuplicateNameError(f"Resource {name} is already registered")

        if isinstance(uri, UriTemplate):
            uri = uri.template
        if UriTemplate.is_template(uri):
            template = ResourceTemplate(handler, uri, name, description, mime_type, title)
            self.resource_templates[name] = template
            logger.debug("Registered resource template %s at %s", name, uri)
            return template

        if uri in self._resources_by_uri:
            raise DuplicateNameError(f"Resource URI {uri} is already registered")
        resource = Resource(handler, uri, name, description, mime_type, title)
        self.resources[name] = resource
        self._resources_by_uri[uri] = resource
        logger.debug("Registered resource %s at %s", name, uri)
        return resource

    def register_tool(
        self,
        name: str,
        handler: Callable,
        description: Optional[str] = None,
        input_schema: Optional[Dict[str, Any]] = None,
        hints: Optional[Dict[str, bool]] = None,
        title: Optional[str] = None
    ) -> Tool:
        """Register a tool.

        Raises:
            DuplicateNameError: If the name is already registered
        """
        if name in self.tools:
            raise DuplicateNameError(f"Tool {name} is already registered")
        tool = Tool(handler, name, description, input_schema, title, hints)
        self.tools[name] = tool
        logger.debug("Registered tool %s", name)
        return tool

    def register_prompt(
        self,
        name: str,
        handler: Callable,
        description: Optional[str] = None,
        arguments: Optional[List[Dict[str, Any]]] = None,
        title: Optional[str] = None
    ) -> Prompt:
        """Register a prompt.

        Raises:
            DuplicateNameError: If the name is already registered
        """
        if name in self.prompts:
            raise DuplicateNameError(f"Prompt {name} is already registered")
        prompt = Prompt(handler, name, description, arguments, title)
        self.prompts[name] = prompt
        logger.debug("Registered prompt %s", name)
        return prompt

    def list(self) -> Dict[str, List[Dict[str, Any]]]:
        """Return the advertised catalog, each kind in registration order."""
        return {
            "tools": [tool.to_dict() for tool in self.tools.values()],
            "resources": [resource.to_dict() for resource in self.resources.values()],
            "resourceTemplates": [t.to_dict() for t in self.resource_templates.values()],
            "prompts": [prompt.to_dict() for prompt in self.prompts.values()],
        }

    def find_resource(self, uri: str) -> Optional[Tuple[Resource, Dict[str, str]]]:
        """Resolve a concrete URI.

        A literal resource wins over templates; templates are tried in
        registration order.

        Returns:
            The matching resource and its extracted parameters, or None
        """
        resource = self._resources_by_uri.get(uri)
        if resource is not None:
            return resource, {}
        for template in self.resource_templates.values():
            params = template.match(uri)
            if params is not None:
                return template, params
        return None

    def get_tool(self, name: str) -> Optional[Tool]:
        return self.tools.get(name)

    def get_prompt(self, name: str) -> Optional[Prompt]:
        return self.prompts.get(name)

    def capabilities(self) -> Dict[str, Any]:
        """Capabilities to advertise during initialization, one per registered kind."""
        capabilities: Dict[str, Any] = {}
        if self.tools:
            capabilities["tools"] = {"listChanged": False}
        if self.resources or self.resource_templates:
            capabilities["resources"] = {"subscribe": False, "listChanged": False}
        if self.prompts:
            capabilities["prompts"] = {"listChanged": False}
        return capabilities

    def __len__(self) -> int:
        return len(self.tools) + len(self.resources) + len(self.resource_templates) + len(self.prompts)

"""Provider: advertises and executes capabilities over a session."""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from .config import Settings
from .dispatcher import Dispatcher
from .errors import SessionClosedError
from .registry import CapabilityRegistry
from .sampling import CreateMessageResult, Messages, request_sampling
from .session import Session
from .transport import StdioTransport, Transport

logger = logging.getLogger(__name__)


class Provider:
    """Server side of the protocol.

    Capabilities are registered with decorators or the ``add_*`` methods and
    served to one host at a time with :meth:`serve`. Tool handlers can call
    back into the host with :meth:`request_sampling`.
    """

    def __init__(
        self,
        name: str = "mcplite-provider",
        version: str = "0.1.0",
        instructions: Optional[str] = None,
        settings: Optional[Settings] = None
    ):
        """Initialize a provider.

        Args:
            name: Implementation name reported to hosts
            version: Implementation version reported to hosts
            instructions: Optional usage instructions reported to hosts
            settings: Timeouts and page size (defaults to :class:`Settings` defaults)
        """
        self.name = name
        self.version = version
        self.instructions = instructions
        self.settings = settings or Settings()
        self.registry = CapabilityRegistry()
        self.dispatcher = Dispatcher(self.registry, self.settings.page_size)
        self.session: Optional[Session] = None

    def add_tool(self, name: str, handler: Callable, **options: Any):
        return self.registry.register_tool(name, handler, **options)

    def add_resource(self, name: str, uri: str, handler: Callable, **options: Any):
        return self.registry.register_resource(name, uri, handler, **options)

    def add_prompt(self, name: str, handler: Callable, **options: Any):
        return self.registry.register_prompt(name, handler, **options)

    @property
    def tool(self):
        """Decorator for registering tools.

        Usage:
            @provider.tool
            def echo(message: str) -> str:
                return message

        Or with options:
            @provider.tool(name="create-user", hints={"readOnlyHint": False})
            def create_user(name: str) -> str:
                ...
        """
        def decorator(func_or_options=None, **kwargs):
            if func_or_options is None:
                def inner_decorator(func: Callable) -> Callable:
                    self.add_tool(kwargs.pop("name", None) or func.__name__, func, **kwargs)
                    return func
                return inner_decorator
            elif callable(func_or_options):
                self.add_tool(func_or_options.__name__, func_or_options, **kwargs)
                return func_or_options
            else:
                raise TypeError("Invalid arguments to tool decorator")

        return decorator

    @property
    def resource(self):
        """Decorator for registering resources and resource templates.

        Usage:
            @provider.resource(uri="users://all", mime_type="application/json")
            def users(uri: str) -> list:
                return [...]

            @provider.resource(uri="users://{userID}/profile", name="user-details")
            def user_details(uri: str, userID: str) -> dict:
                ...
        """
        def decorator(**options):
            def inner(func: Callable) -> Callable:
                if "uri" not in options:
                    raise ValueError("Resource decorator requires 'uri' parameter")
                uri = options.pop("uri")
                name = options.pop("name", None) or func.__name__
                self.add_resource(name, uri, func, **options)
                return func
            return inner

        return decorator

    @property
    def prompt(self):
        """Decorator for registering prompts.

        Usage:
            @provider.prompt
            def greet(name: str) -> list:
                return [{"role": "user", "content": f"Say hello to {name}"}]
        """
        def decorator(func_or_options=None, **kwargs):
            if func_or_options is None:
                def inner_decorator(func: Callable) -> Callable:
                    self.add_prompt(kwargs.pop("name", None) or func.__name__, func, **kwargs)
                    return func
                return inner_decorator
            elif callable(func_or_options):
                self.add_prompt(func_or_options.__name__, func_or_options, **kwargs)
                return func_or_options
            else:
                raise TypeError("Invalid arguments to prompt decorator")

        return decorator

    def capabilities(self) -> Dict[str, Any]:
        return self.registry.capabilities()

    async def serve(self, transport: Transport) -> None:
        """Serve one host until the connection closes.

        Raises:
            HandshakeError: If the host does not complete initialization
        """
        session = Session(
            transport,
            self.name,
            self.version,
            capabilities=self.capabilities(),
            instructions=self.instructions,
            request_timeout=self.settings.request_timeout,
            handshake_timeout=self.settings.handshake_timeout,
        )
        session.on_request(self.dispatcher)
        self.session = session
        try:
            await session.accept()
            logger.info("Serving %s", session.peer_info.get("name"))
            await session.wait_closed()
        finally:
            await session.close()
            self.session = None

    def run_stdio(self) -> None:
        """Serve a host connected to this process's stdin and stdout."""
        asyncio.run(self.serve(StdioTransport()))

    async def request_sampling(
        self,
        messages: Messages,
        max_tokens: int,
        **options: Any
    ) -> CreateMessageResult:
        """Ask the connected host to generate a message. See :func:`mcplite.sampling.request_sampling`."""
        if self.session is None or self.session.closed:
            raise SessionClosedError("Provider is not connected to a host")
        return await request_sampling(self.session, messages, max_tokens, **options)

    def __repr__(self) -> str:
        return (
            f"Provider(name='{self.name}', "
            f"tools={len(self.registry.tools)}, "
            f"resources={len(self.registry.resources) + len(self.registry.resource_templates)}, "
            f"prompts={len(self.registry.prompts)})"
        )

"""Host: discovers a provider's capabilities and invokes them."""

import logging
from typing import Any, Dict, List, Optional, Tuple

from . import __version__
from .config import Settings
from .errors import SessionClosedError
from .sampling import SamplingCallback, sampling_request_handler
from .session import Session
from .transport import Transport

logger = logging.getLogger(__name__)


class Host:
    """Client side of the protocol.

    Usage:
        async with Host() as host:
            await host.connect(ProcessTransport("python", ["-m", "mcplite.users"]))
            tools = await host.list_tools()
            result = await host.call_tool("create-user", {...})
    """

    def __init__(
        self,
        name: str = "mcplite-host",
        version: str = __version__,
        sampling_handler: Optional[SamplingCallback] = None,
        settings: Optional[Settings] = None
    ):
        self.name = name
        self.version = version
        self.settings = settings or Settings()
        self.session: Optional[Session] = None
        self.server_info: Dict[str, Any] = {}
        self._sampling_handler = sampling_handler

    def on_sampling_request(self, callback: SamplingCallback) -> None:
        """Serve the provider's sampling requests with ``callback``.

        Must be set before :meth:`connect`; sampling support is advertised
        only when a callback is present during initialization.
        """
        if self.session is not None:
            raise RuntimeError("Sampling handler must be set before connecting")
        self._sampling_handler = callback

    def capabilities(self) -> Dict[str, Any]:
        capabilities: Dict[str, Any] = {}
        if self._sampling_handler is not None:
            capabilities["sampling"] = {}
        return capabilities

    async def connect(self, transport: Transport) -> Dict[str, Any]:
        """Connect and run the initialization exchange.

        Returns:
            The provider's initialize result

        Raises:
            HandshakeError: If initialization fails
            RuntimeError: If the host is still connected; close it first
        """
        if self.session is not None and not self.session.closed:
            raise RuntimeError("Host is already connected")
        session = Session(
            transport,
            self.name,
            self.version,
            capabilities=self.capabilities(),
            request_timeout=self.settings.request_timeout,
            handshake_timeout=self.settings.handshake_timeout,
        )
        if self._sampling_handler is not None:
            session.on_request(sampling_request_handler(self._sampling_handler))
        self.session = session
        logger.debug("Connecting as %s %s (capabilities: %s)", self.name, self.version, sorted(self.capabilities()))
        result = await session.connect()
        self.server_info = session.peer_info
        return result

    async def close(self) -> None:
        if self.session is not None:
            await self.session.close()

    async def __aenter__(self) -> "Host":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _require_session(self) -> Session:
        if self.session is None:
            raise SessionClosedError("Host is not connected")
        return self.session

    async def request(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self._require_session().send_request(method, params)

    async def ping(self) -> None:
        await self.request("ping")

    # Discovery

    async def list_page(self, method: str, key: str, cursor: Optional[str] = None) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """Fetch one page of a discovery method.

        Returns:
            The items and the continuation cursor (None on the last page)
        """
        params = {"cursor": cursor} if cursor is not None else None
        result = await self.request(method, params)
        return result.get(key, []), result.get("nextCursor")

    async def _list_all(self, method: str, key: str) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        cursor = None
        while True:
            page, cursor = await self.list_page(method, key, cursor)
            items.extend(page)
            if cursor is None:
                return items

    async def list_tools(self) -> List[Dict[str, Any]]:
        return await self._list_all("tools/list", "tools")

    async def list_resources(self) -> List[Dict[str, Any]]:
        return await self._list_all("resources/list", "resources")

    async def list_resource_templates(self) -> List[Dict[str, Any]]:
        return await self._list_all("resources/templates/list", "resourceTemplates")

    async def list_prompts(self) -> List[Dict[str, Any]]:
        return await self._list_all("prompts/list", "prompts")

    # Invocation

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Call a tool.

        A successful return can still carry an application-level failure;
        check ``result["isError"]``.
        """
        return await self.request("tools/call", {"name": name, "arguments": arguments or {}})

    async def read_resource(self, uri: str) -> Dict[str, Any]:
        return await self.request("resources/read", {"uri": uri})

    async def get_prompt(self, name: str, arguments: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        return await self.request("prompts/get", {"name": name, "arguments": arguments or {}})

    @property
    def supports_sampling(self) -> bool:
        return self._sampling_handler is not None

    def __repr__(self) -> str:
        return f"Host(name='{self.name}', sampling={self.supports_sampling})"

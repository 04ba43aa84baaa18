"""Protocol session: connection lifecycle and request/response correlation.

A :class:`Session` is symmetric. Both peers hold one over the same transport
and both can send requests and serve them, which is what lets a provider
call back into its host for sampling. The host side calls :meth:`Session.connect`
to run the initialization exchange; the provider side calls :meth:`Session.accept`.
"""

import asyncio
import inspect
import itertools
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Union

from .codec import Notification, Request, RequestId, Response, decode_message, encode_message
from .errors import (
    HandshakeError,
    InvalidRequestError,
    InvalidResponseError,
    McpError,
    MethodNotFoundError,
    ParseError,
    RemoteError,
    RequestTimeoutError,
    SessionClosedError,
    TransportError,
)
from .response import ErrorCodes, McpResponse
from .transport import Transport

logger = logging.getLogger(__name__)

LATEST_PROTOCOL_VERSION = "2025-06-18"
SUPPORTED_PROTOCOL_VERSIONS = ("2025-06-18", "2025-03-26", "2024-11-05")

DEFAULT_HANDSHAKE_TIMEOUT = 10.0

RequestHandler = Callable[[str, Dict[str, Any]], Union[Dict[str, Any], Awaitable[Dict[str, Any]]]]
NotificationHandler = Callable[[Dict[str, Any]], Any]


class Session:
    """One logical connection between two peers.

    Args:
        transport: Channel to the peer
        name: Implementation name sent during initialization
        version: Implementation version sent during initialization
        capabilities: Capabilities this peer advertises
        instructions: Optional usage instructions (provider side)
        request_timeout: Default seconds to wait for a response, None waits forever
        handshake_timeout: Seconds to wait for the initialization exchange
    """

    def __init__(
        self,
        transport: Transport,
        name: str,
        version: str,
        capabilities: Optional[Dict[str, Any]] = None,
        instructions: Optional[str] = None,
        request_timeout: Optional[float] = None,
        handshake_timeout: float = DEFAULT_HANDSHAKE_TIMEOUT
    ):
        self.transport = transport
        self.name = name
        self.version = version
        self.capabilities: Dict[str, Any] = dict(capabilities or {})
        self.instructions = instructions
        self.request_timeout = request_timeout
        self.handshake_timeout = handshake_timeout

        self.protocol_version: Optional[str] = None
        self.peer_capabilities: Dict[str, Any] = {}
        self.peer_info: Dict[str, Any] = {}
        self.peer_instructions: Optional[str] = None

        self._ids = itertools.count(1)
        self._pending: Dict[RequestId, asyncio.Future] = {}
        self._request_handler: Optional[RequestHandler] = None
        self._notification_handlers: Dict[str, NotificationHandler] = {}
        self._inbound: Set[asyncio.Task] = set()
        self._reader_task: Optional[asyncio.Task] = None
        self._send_lock: Optional[asyncio.Lock] = None
        self._accepting = False
        self._initialize_received = False
        self._initialized: Optional[asyncio.Event] = None
        self._closed_event: Optional[asyncio.Event] = None
        self._started = False
        self._closed = False

    # Lifecycle

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> None:
        """Open the transport and begin reading. Done by connect()/accept()."""
        if self._started:
            return
        if self._closed:
            raise SessionClosedError("Session is closed")
        self._started = True
        self._send_lock = asyncio.Lock()
        self._initialized = asyncio.Event()
        self._closed_event = asyncio.Event()
        await self.transport.open()
        self._reader_task = asyncio.create_task(self._read_loop())

    async def connect(self) -> Dict[str, Any]:
        """Run the host side of the initialization exchange.

        Returns:
            The provider's initialize result

        Raises:
            HandshakeError: If the provider rejects or never answers the
                exchange, or answers with an unsupported protocol version
        """
        await self.start()
        params = {
            "protocolVersion": LATEST_PROTOCOL_VERSION,
            "capabilities": self.capabilities,
            "clientInfo": {"name": self.name, "version": self.version},
        }
        try:
            result = await self.send_request("initialize", params, timeout=self.handshake_timeout)
        except RemoteError as e:
            await self.close()
            raise HandshakeError(f"Provider rejected initialization: {e.message}") from e
        except (TransportError, InvalidResponseError) as e:
            await self.close()
            raise HandshakeError(f"Initialization failed: {e.message}") from e

        version = result.get("protocolVersion")
        if version not in SUPPORTED_PROTOCOL_VERSIONS:
            await self.close()
            raise HandshakeError(f"Provider protocol version is not supported: {version}")

        self.protocol_version = version
        self.peer_capabilities = result.get("capabilities") or {}
        self.peer_info = result.get("serverInfo") or {}
        self.peer_instructions = result.get("instructions")
        self._initialized.set()

        await self.send_notification("notifications/initialized")
        logger.info("Connected to %s %s (protocol %s)",
                    self.peer_info.get("name"), self.peer_info.get("version"), version)
        return result

    async def accept(self) -> None:
        """Run the provider side of the initialization exchange.

        Returns once the host has sent ``notifications/initialized``.

        Raises:
            HandshakeError: If the host does not complete the exchange in time
        """
        self._accepting = True
        await self.start()
        try:
            await asyncio.wait_for(self._wait_initialized_or_closed(), self.handshake_timeout)
        except asyncio.TimeoutError:
            await self.close()
            raise HandshakeError("Host did not complete initialization in time") from None
        if not self._initialized.is_set():
            raise HandshakeError("Connection closed during initialization")

    async def _wait_initialized_or_closed(self) -> None:
        waiters = [
            asyncio.ensure_future(self._initialized.wait()),
            asyncio.ensure_future(self._closed_event.wait()),
        ]
        try:
            await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for waiter in waiters:
                waiter.cancel()

    async def wait_closed(self) -> None:
        """Wait until the session is torn down by either side."""
        if self._closed_event is None:
            return
        await self._closed_event.wait()

    async def close(self) -> None:
        """Close the session. Pending requests fail with SessionClosedError. Idempotent."""
        await self._shutdown(SessionClosedError("Session closed"))

    async def _shutdown(self, reason: TransportError) -> None:
        if self._closed:
            return
        self._closed = True

        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(type(reason)(reason.message))
        if pending:
            logger.debug("Failed %d pending requests: %s", len(pending), reason.message)

        current = asyncio.current_task()
        for task in list(self._inbound):
            if task is not current:
                task.cancel()
        if self._reader_task is not None and self._reader_task is not current:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass

        try:
            await self.transport.close()
        except (TransportError, OSError) as e:
            logger.debug("Error closing transport: %s", e)

        if self._closed_event is not None:
            self._closed_event.set()

    async def __aenter__(self) -> "Session":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # Capabilities

    def peer_supports(self, capability: str) -> bool:
        """Whether the peer advertised ``capability`` during initialization."""
        return capability in self.peer_capabilities

    # Outbound

    async def send_request(
        self,
        method: str,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None
    ) -> Dict[str, Any]:
        """Send a request and wait for its response.

        Args:
            method: Method name
            params: Parameter payload
            timeout: Seconds to wait; defaults to the session's request_timeout

        Returns:
            The result payload

        Raises:
            RemoteError: If the peer answered with an error payload
            InvalidResponseError: If the peer's answer was not a valid response
            RequestTimeoutError: If no response arrived in time
            TransportError: If the connection dropped first
        """
        if self._closed or not self._started:
            raise SessionClosedError("Session is not open")

        request_id = next(self._ids)
        while request_id in self._pending:
            request_id = next(self._ids)
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        if timeout is None:
            timeout = self.request_timeout
        try:
            await self._send(Request(id=request_id, method=method, params=params))
            if timeout is None:
                return await future
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            raise RequestTimeoutError(f"Request {method} timed out after {timeout}s") from None
        finally:
            self._pending.pop(request_id, None)

    async def send_notification(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        """Send a notification. Does not wait for anything from the peer."""
        if self._closed or not self._started:
            raise SessionClosedError("Session is not open")
        await self._send(Notification(method=method, params=params))

    async def _send(self, message: Union[Request, Response, Notification]) -> None:
        frame = encode_message(message)
        async with self._send_lock:
            await self.transport.send(frame)
        logger.debug("Sent %s", frame[:200])

    # Inbound

    def on_request(self, handler: Optional[RequestHandler]) -> None:
        """Set the single dispatcher for inbound requests.

        ``handler(method, params)`` returns the result payload (or an awaitable
        of it). Raising an :class:`~mcplite.errors.McpError` answers with that
        error; any other exception answers with INTERNAL_ERROR.
        """
        self._request_handler = handler

    def on_notification(self, method: str, handler: NotificationHandler) -> None:
        """Register a handler for one inbound notification method."""
        self._notification_handlers[method] = handler

    async def _read_loop(self) -> None:
        reason = TransportError("Connection closed by peer")
        try:
            while True:
                frame = await self.transport.receive()
                if frame is None:
                    break
                await self._handle_frame(frame)
        except TransportError as e:
            logger.warning("Transport failed: %s", e.message)
            reason = e
        except asyncio.CancelledError:
            return
        # Only reached when the peer went away; close() cancels this task instead.
        self._reader_task = None
        await self._shutdown(reason)

    async def _handle_frame(self, frame: bytes) -> None:
        logger.debug("Received %s", frame[:200])
        try:
            message = decode_message(frame)
        except ParseError as e:
            logger.warning("Discarding unparsable message: %s", e.message)
            await self._send_error(None, e)
            return
        except InvalidResponseError as e:
            self._fail_pending(e)
            return
        except InvalidRequestError as e:
            logger.warning("Discarding invalid message: %s", e.message)
            await self._send_error(e.request_id, e)
            return

        if isinstance(message, Response):
            self._handle_response(message)
        elif isinstance(message, Request):
            task = asyncio.create_task(self._handle_request(message))
            self._inbound.add(task)
            task.add_done_callback(self._inbound.discard)
        else:
            await self._handle_notification(message)

    def _fail_pending(self, error: InvalidResponseError) -> None:
        # A response is never answered, even when it is malformed
        future = self._pending.pop(error.request_id, None) if error.request_id is not None else None
        if future is None or future.done():
            logger.warning("Discarding invalid response: %s", error.message)
            return
        logger.warning("Invalid response to request %r: %s", error.request_id, error.message)
        future.set_exception(error)

    def _handle_response(self, response: Response) -> None:
        future = self._pending.pop(response.id, None)
        if future is None or future.done():
            logger.warning("Discarding response with unknown id %r", response.id)
            return
        if response.error is not None:
            future.set_exception(RemoteError(response.error.code, response.error.message,
                                             response.error.data))
        else:
            future.set_result(response.result)

    async def _handle_request(self, request: Request) -> None:
        try:
            result = await self._dispatch(request.method, request.params or {})
            response = Response(id=request.id, result=result if result is not None else {})
        except McpError as e:
            response = Response(id=request.id, error=e.to_error())
        except Exception as e:
            logger.exception("Unhandled error while serving %s", request.method)
            response = Response(
                id=request.id,
                error=McpResponse.error(ErrorCodes.INTERNAL_ERROR, f"Internal error: {e}")
            )
        try:
            await self._send(response)
        except TransportError as e:
            logger.debug("Could not answer %s: %s", request.method, e.message)

    async def _dispatch(self, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        if method == "ping":
            return {}
        if method == "initialize" and self._accepting:
            return self._answer_initialize(params)
        if self._accepting and not self._initialize_received:
            raise InvalidRequestError("Session is not initialized")
        if self._request_handler is None:
            raise MethodNotFoundError(f"Method not found: {method}")
        result = self._request_handler(method, params)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _answer_initialize(self, params: Dict[str, Any]) -> Dict[str, Any]:
        if self._initialize_received:
            raise InvalidRequestError("Session is already initialized")
        requested = params.get("protocolVersion")
        if not isinstance(requested, str):
            raise InvalidRequestError("initialize requires a protocolVersion")

        version = requested if requested in SUPPORTED_PROTOCOL_VERSIONS else LATEST_PROTOCOL_VERSION
        self.protocol_version = version
        self.peer_capabilities = params.get("capabilities") or {}
        self.peer_info = params.get("clientInfo") or {}
        self._initialize_received = True
        logger.info("Host %s %s initializing (requested protocol %s, using %s)",
                    self.peer_info.get("name"), self.peer_info.get("version"), requested, version)

        result = {
            "protocolVersion": version,
            "capabilities": self.capabilities,
            "serverInfo": {"name": self.name, "version": self.version},
        }
        if self.instructions:
            result["instructions"] = self.instructions
        return result

    async def _handle_notification(self, notification: Notification) -> None:
        if notification.method == "notifications/initialized" and self._accepting:
            if self._initialize_received:
                self._initialized.set()
            return
        handler = self._notification_handlers.get(notification.method)
        if handler is None:
            logger.debug("Ignoring notification %s", notification.method)
            return
        try:
            result = handler(notification.params or {})
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Notification handler for %s failed", notification.method)

    async def _send_error(self, request_id: Optional[RequestId], error: McpError) -> None:
        try:
            await self._send(Response(id=request_id, error=error.to_error()))
        except TransportError as e:
            logger.debug("Could not report error: %s", e.message)

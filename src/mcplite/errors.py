"""Exceptions raised by the mcplite protocol core.

Protocol errors carry a JSON-RPC error code and are turned into error
responses by the session. Local errors (transport, handshake, registration)
are raised to the caller and never cross the wire.
"""

from typing import Any, Dict, Optional

from .response import ErrorCodes, McpResponse


class McpError(Exception):
    """Base class for all mcplite errors."""

    code: int = ErrorCodes.INTERNAL_ERROR

    def __init__(self, message: str, data: Optional[Any] = None, code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.data = data
        if code is not None:
            self.code = code

    def to_error(self) -> Dict[str, Any]:
        """Convert to a JSON-RPC error object."""
        return McpResponse.error(self.code, self.message, self.data)


# Protocol errors, reported back to the peer as error responses

class ParseError(McpError):
    code = ErrorCodes.PARSE_ERROR


class InvalidRequestError(McpError):
    code = ErrorCodes.INVALID_REQUEST
    request_id = None


class MethodNotFoundError(McpError):
    code = ErrorCodes.METHOD_NOT_FOUND


class ValidationError(McpError):
    """Arguments failed schema validation."""

    code = ErrorCodes.INVALID_PARAMS


class ResourceNotFoundError(McpError):
    code = ErrorCodes.RESOURCE_NOT_FOUND


class ToolNotFoundError(McpError):
    code = ErrorCodes.INVALID_PARAMS


class PromptNotFoundError(McpError):
    code = ErrorCodes.INVALID_PARAMS


class InternalError(McpError):
    code = ErrorCodes.INTERNAL_ERROR


class SamplingRejectedError(McpError):
    """The host declined to run a sampling request."""

    code = ErrorCodes.REQUEST_REJECTED


# Local errors

class HandshakeError(McpError):
    """The initialization exchange failed or timed out."""


class TransportError(McpError):
    """The channel broke, the peer disconnected, or a request timed out."""


class SessionClosedError(TransportError):
    """The session was closed while a request was pending, or before it was sent."""


class RequestTimeoutError(TransportError):
    """No response arrived within the configured timeout."""


class RemoteError(McpError):
    """The peer answered a request with an error payload."""

    def __init__(self, code: int, message: str, data: Optional[Any] = None):
        super().__init__(message, data, code)

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"


class DuplicateNameError(McpError, ValueError):
    """A capability with the same name is already registered."""


class CapabilityNotSupportedError(McpError):
    """The peer did not advertise a capability required for the call."""


class UnsupportedContentError(McpError):
    """Content of an unexpected shape or type was received."""


class InvalidResponseError(UnsupportedContentError):
    """A response-shaped message failed validation.

    Never answered on the wire; the pending request with ``request_id``,
    if any, fails with this error instead.
    """

    request_id = None

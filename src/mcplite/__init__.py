"""mcplite - a minimal model-context protocol host/provider pair."""

__version__ = "0.1.0"

from .codec import Notification, Request, Response, decode_message, encode_message
from .config import Settings, load_settings
from .content import image_content, resource_blob, resource_text, text_content
from .dispatcher import Dispatcher
from .errors import (
    CapabilityNotSupportedError,
    DuplicateNameError,
    HandshakeError,
    InvalidResponseError,
    McpError,
    PromptNotFoundError,
    RemoteError,
    RequestTimeoutError,
    ResourceNotFoundError,
    SamplingRejectedError,
    SessionClosedError,
    ToolNotFoundError,
    TransportError,
    UnsupportedContentError,
    ValidationError,
)
from .host import Host
from .prompts import Prompt
from .provider import Provider
from .registry import CapabilityRegistry
from .resources import Resource, ResourceTemplate, UriTemplate
from .response import ErrorCodes, McpResponse
from .sampling import generation_handler, request_sampling, result_text
from .session import LATEST_PROTOCOL_VERSION, SUPPORTED_PROTOCOL_VERSIONS, Session
from .tools import Tool, ToolFailure
from .transport import ProcessTransport, StdioTransport, StreamTransport, Transport, memory_pair

__all__ = [
    "__version__",
    "Host",
    "Provider",
    "Session",
    "CapabilityRegistry",
    "Dispatcher",
    "Tool",
    "ToolFailure",
    "Resource",
    "ResourceTemplate",
    "UriTemplate",
    "Prompt",
    "Request",
    "Response",
    "Notification",
    "encode_message",
    "decode_message",
    "Transport",
    "StreamTransport",
    "StdioTransport",
    "ProcessTransport",
    "memory_pair",
    "McpResponse",
    "ErrorCodes",
    "text_content",
    "image_content",
    "resource_text",
    "resource_blob",
    "request_sampling",
    "result_text",
    "generation_handler",
    "Settings",
    "load_settings",
    "LATEST_PROTOCOL_VERSION",
    "SUPPORTED_PROTOCOL_VERSIONS",
    "McpError",
    "HandshakeError",
    "InvalidResponseError",
    "TransportError",
    "SessionClosedError",
    "RequestTimeoutError",
    "RemoteError",
    "ValidationError",
    "ResourceNotFoundError",
    "ToolNotFoundError",
    "PromptNotFoundError",
    "DuplicateNameError",
    "CapabilityNotSupportedError",
    "UnsupportedContentError",
    "SamplingRejectedError",
]

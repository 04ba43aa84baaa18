"""Message codec: JSON-RPC 2.0 messages framed as newline-delimited JSON."""

import json
import logging
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic import ValidationError as PydanticValidationError

from .errors import InvalidRequestError, InvalidResponseError, ParseError

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"

RequestId = Union[int, str]


class WireModel(BaseModel):
    """Base class for wire messages. Unknown fields are kept for forward compatibility."""

    model_config = ConfigDict(extra="allow")


class ErrorObject(WireModel):
    code: int
    message: str
    data: Optional[Any] = None


class Request(WireModel):
    """A request that expects exactly one response with the same id."""

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    id: RequestId
    method: str
    params: Optional[Dict[str, Any]] = None


class Notification(WireModel):
    """A one-way message; no id, no response."""

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    method: str
    params: Optional[Dict[str, Any]] = None


class Response(WireModel):
    """The answer to a request: a result or an error, never both."""

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    id: Optional[RequestId] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[ErrorObject] = None

    @model_validator(mode="after")
    def _result_xor_error(self) -> "Response":
        if (self.result is None) == (self.error is None):
            raise ValueError("response must carry exactly one of result or error")
        return self

    @property
    def is_error(self) -> bool:
        return self.error is not None


Message = Union[Request, Response, Notification]


def encode_message(message: Message) -> bytes:
    """Serialize a message to a single newline-terminated frame."""
    # Only absent top-level members are dropped; nulls inside params and results are data
    payload = {k: v for k, v in message.model_dump(mode="json").items() if v is not None}
    if isinstance(message, Response):
        # JSON-RPC requires the id member on responses, null when unknown
        payload["id"] = message.id
        if message.error is not None:
            payload["error"] = message.error.model_dump(mode="json", exclude_none=True)
    return (json.dumps(payload, ensure_ascii=False, separators=(",", ":")) + "\n").encode("utf-8")


def decode_message(frame: Union[bytes, str]) -> Message:
    """Parse one frame into a Request, Response or Notification.

    Raises:
        ParseError: If the frame is not valid JSON
        InvalidRequestError: If the JSON is not a valid message. The
            offending id, when one could be read, is in ``request_id``.
        InvalidResponseError: If the JSON has ``result`` or ``error`` but
            no ``method`` and is not a valid response; ``request_id`` as above.
    """
    if isinstance(frame, bytes):
        try:
            frame = frame.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ParseError(f"Invalid UTF-8 in message: {e}")

    try:
        data = json.loads(frame)
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON: {e}")

    if not isinstance(data, dict):
        raise InvalidRequestError("Message must be a JSON object")

    raw_id = data.get("id")
    if "method" in data:
        try:
            if "id" in data:
                return Request.model_validate(data)
            return Notification.model_validate(data)
        except PydanticValidationError as e:
            raise _invalid(InvalidRequestError, f"Invalid message: {e.errors()[0]['msg']}", raw_id)

    if "result" in data or "error" in data:
        try:
            return Response.model_validate(data)
        except PydanticValidationError as e:
            raise _invalid(InvalidResponseError, f"Invalid response: {e.errors()[0]['msg']}", raw_id)

    raise _invalid(InvalidRequestError, "Message is neither a request, a response nor a notification", raw_id)


def _invalid(error_class, message: str, raw_id: Any):
    error = error_class(message)
    if isinstance(raw_id, (int, str)) and not isinstance(raw_id, bool):
        error.request_id = raw_id
    return error

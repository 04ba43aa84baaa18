"""Sampling bridge: a provider asks its host to run a text generation call.

Provider side: :func:`request_sampling` and :func:`result_text`.
Host side: :func:`sampling_request_handler` turns a plain function into the
session request handler that answers ``sampling/createMessage``, and
:func:`generation_handler` builds such a function from a text generation
backend plus an optional approval step.
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from .content import text_content
from .errors import (
    CapabilityNotSupportedError,
    MethodNotFoundError,
    SamplingRejectedError,
    UnsupportedContentError,
    ValidationError,
)
from .session import Session

logger = logging.getLogger(__name__)

SAMPLING_METHOD = "sampling/createMessage"


class SamplingMessage(BaseModel):
    model_config = ConfigDict(extra="allow")

    role: Literal["user", "assistant"]
    content: Dict[str, Any]


class CreateMessageResult(BaseModel):
    """What the host answers to a sampling request."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    role: Literal["user", "assistant"] = "assistant"
    content: Dict[str, Any]
    model: str
    stop_reason: Optional[str] = Field(default=None, alias="stopReason")

    @property
    def content_type(self) -> Optional[str]:
        return self.content.get("type")


Messages = Union[str, List[Union[str, Dict[str, Any]]]]


def build_messages(messages: Messages) -> List[Dict[str, Any]]:
    """Normalise a prompt string or message list into sampling messages.

    Strings become user turns; string content becomes a text block.
    """
    if isinstance(messages, str):
        messages = [messages]
    built = []
    for message in messages:
        if isinstance(message, str):
            message = {"role": "user", "content": message}
        if isinstance(message.get("content"), str):
            message = dict(message, content=text_content(message["content"]))
        built.append(SamplingMessage.model_validate(message).model_dump())
    return built


async def request_sampling(
    session: Session,
    messages: Messages,
    max_tokens: int,
    system_prompt: Optional[str] = None,
    temperature: Optional[float] = None,
    stop_sequences: Optional[List[str]] = None,
    model_preferences: Optional[Dict[str, Any]] = None,
    timeout: Optional[float] = None
) -> CreateMessageResult:
    """Ask the host to generate a message.

    Raises:
        CapabilityNotSupportedError: If the host did not advertise sampling;
            nothing is sent in that case
        RemoteError: If the host answered with an error (e.g. it declined)
        UnsupportedContentError: If the host's answer is not a valid result
        TransportError: If the connection dropped or the request timed out
    """
    if not session.peer_supports("sampling"):
        raise CapabilityNotSupportedError("Host does not support sampling")

    params: Dict[str, Any] = {"messages": build_messages(messages), "maxTokens": max_tokens}
    if system_prompt is not None:
        params["systemPrompt"] = system_prompt
    if temperature is not None:
        params["temperature"] = temperature
    if stop_sequences:
        params["stopSequences"] = stop_sequences
    if model_preferences:
        params["modelPreferences"] = model_preferences

    logger.info("Requesting sampling from host (maxTokens=%s)", max_tokens)
    result = await session.send_request(SAMPLING_METHOD, params, timeout=timeout)
    try:
        return CreateMessageResult.model_validate(result)
    except PydanticValidationError as e:
        raise UnsupportedContentError(f"Malformed sampling result: {e.errors()[0]['msg']}") from e


def result_text(result: CreateMessageResult) -> str:
    """Extract the generated text.

    Raises:
        UnsupportedContentError: If the host returned non-text content
    """
    if result.content_type != "text" or not isinstance(result.content.get("text"), str):
        raise UnsupportedContentError(f"Expected text content, got {result.content_type!r}")
    return result.content["text"]


# Host side

SamplingCallback = Callable[..., Union[str, Dict[str, Any], Awaitable[Union[str, Dict[str, Any]]]]]


def sampling_request_handler(callback: SamplingCallback, model: str = "unknown"):
    """Wrap ``callback(messages, max_tokens, **params)`` as a session request handler.

    The callback receives the message list and token budget (other request
    parameters as keywords, e.g. ``systemPrompt``) and returns generated
    text or a complete result dict. Raising
    :class:`~mcplite.errors.SamplingRejectedError` declines the request.
    """

    async def handle(method: str, params: Dict[str, Any]) -> Dict[str, Any]:
        if method != SAMPLING_METHOD:
            raise MethodNotFoundError(f"Method not found: {method}")
        messages = params.get("messages")
        max_tokens = params.get("maxTokens")
        if not isinstance(messages, list) or not isinstance(max_tokens, int):
            raise ValidationError("sampling/createMessage requires messages and maxTokens")

        extra = {k: v for k, v in params.items() if k not in ("messages", "maxTokens")}
        result = callback(messages, max_tokens, **extra)
        if inspect.isawaitable(result):
            result = await result

        if isinstance(result, str):
            result = {
                "role": "assistant",
                "content": text_content(result),
                "model": model,
                "stopReason": "endTurn"
            }
        return CreateMessageResult.model_validate(result).model_dump(by_alias=True, exclude_none=True)

    return handle


def generation_handler(
    generate: Callable[[str], Union[str, Awaitable[str]]],
    approve: Optional[Callable[[str], Union[bool, Awaitable[bool]]]] = None
) -> SamplingCallback:
    """Build a sampling callback from a ``generate(prompt) -> text`` backend.

    The text of the request's messages is joined into one prompt. When
    ``approve`` is given it is asked first and a falsy answer declines the
    request.
    """

    async def callback(messages: List[Dict[str, Any]], max_tokens: int, **params: Any) -> str:
        prompt = "\n\n".join(
            m["content"]["text"] for m in messages
            if isinstance(m.get("content"), dict) and m["content"].get("type") == "text"
        )
        if approve is not None:
            approved = approve(prompt)
            if inspect.isawaitable(approved):
                approved = await approved
            if not approved:
                logger.info("Sampling request declined")
                raise SamplingRejectedError("User rejected sampling request")

        text = generate(prompt)
        if inspect.isawaitable(text):
            text = await text
        return text

    return callback

"""Content block helpers.

Tools, prompts and sampling exchange lists of typed content blocks. Handlers
may return plain Python values; these helpers turn them into the block shapes
sent on the wire.
"""

import base64
import json
from typing import Any, Dict, List, Optional

CONTENT_TYPES = ("text", "image", "audio", "resource", "resource_link")


def text_content(text: str) -> Dict[str, Any]:
    return {"type": "text", "text": text}


def image_content(data: bytes, mime_type: str) -> Dict[str, Any]:
    return {
        "type": "image",
        "data": base64.b64encode(data).decode("ascii"),
        "mimeType": mime_type
    }


def resource_text(uri: str, text: str, mime_type: Optional[str] = None) -> Dict[str, Any]:
    """Create a text entry of a resources/read result."""
    entry = {"uri": uri, "text": text}
    if mime_type:
        entry["mimeType"] = mime_type
    return entry


def resource_blob(uri: str, data: bytes, mime_type: Optional[str] = None) -> Dict[str, Any]:
    """Create a binary entry of a resources/read result, base64 encoded."""
    entry = {"uri": uri, "blob": base64.b64encode(data).decode("ascii")}
    if mime_type:
        entry["mimeType"] = mime_type
    return entry


def is_content_block(value: Any) -> bool:
    return isinstance(value, dict) and value.get("type") in CONTENT_TYPES


def format_text(value: Any) -> str:
    """Render a handler return value as text.

    Strings pass through, containers become indented JSON and anything
    else goes through ``str()``.
    """
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value, indent=2)
    return str(value)


def to_content_list(value: Any) -> List[Dict[str, Any]]:
    """Normalise a handler return value into a list of content blocks.

    Args:
        value: A content block, a list of content blocks, or any value
            that can be rendered as text

    Returns:
        List of content blocks
    """
    if value is None:
        return []
    if is_content_block(value):
        return [value]
    if isinstance(value, list) and value and all(is_content_block(v) for v in value):
        return list(value)
    return [text_content(format_text(value))]

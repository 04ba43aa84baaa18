"""User directory provider built on mcplite."""

from .server import build_provider, parse_generated_user
from .store import JsonUserStore, StoreError, UserStore

__all__ = [
    "build_provider",
    "parse_generated_user",
    "JsonUserStore",
    "StoreError",
    "UserStore",
]

"""User record persistence."""

import json
import logging
import os
import tempfile
import threading
from typing import Any, Dict, List, Protocol

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when user records cannot be read or written."""


class UserStore(Protocol):
    def load(self) -> List[Dict[str, Any]]:
        ...

    def append(self, record: Dict[str, Any]) -> int:
        ...


class JsonUserStore:
    """Users kept as a JSON array in a single file.

    Ids are assigned as ``len(users) + 1``. A missing file reads as an
    empty list; writes replace the file atomically.
    """

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def load(self) -> List[Dict[str, Any]]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                users = json.load(f)
        except FileNotFoundError:
            return []
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Cannot read users from {self.path}: {e}") from e
        if not isinstance(users, list):
            raise StoreError(f"{self.path} does not contain a JSON array")
        return users

    def append(self, record: Dict[str, Any]) -> int:
        with self._lock:
            users = self.load()
            user_id = len(users) + 1
            users.append({"id": user_id, **record})
            self._write(users)
        logger.info("Stored user %s in %s", user_id, self.path)
        return user_id

    def _write(self, users: List[Dict[str, Any]]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".users-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(users, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StoreError(f"Cannot write users to {self.path}: {e}") from e

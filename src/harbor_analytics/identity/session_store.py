"""Session-scoped storage for the visitor session id.

A "session" is whatever scope the backend gives it: the lifetime of the
process for :class:`MemorySessionStore`, or the lifetime of a state file for
:class:`FileSessionStore` (survives restarts until the file is removed).
Backends raise :class:`IdentityStorageUnavailable` on any failure.
"""

from __future__ import annotations

import json
import os
import stat
import threading
from pathlib import Path
from typing import Dict, Optional, Protocol

from loguru import logger

from ..exceptions import IdentityStorageUnavailable


class SessionStore(Protocol):
    """Key/value storage scoped to one browsing session."""

    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...


class MemorySessionStore:
    """In-process session storage."""

    def __init__(self) -> None:
        self._items: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            self._items[key] = value

    def clear(self) -> None:
        with self._lock:
            self._items.clear()


class FileSessionStore:
    """Session storage kept in a private JSON file."""

    def __init__(self, state_dir: Optional[Path] = None, filename: str = "session.json"):
        """Initialize the file store.

        Args:
            state_dir: Directory for the state file (defaults to ~/.harbor)
            filename: Name of the JSON state file
        """
        self.state_dir = Path(state_dir) if state_dir is not None else Path.home() / ".harbor"
        self.state_file = self.state_dir / filename
        self._lock = threading.Lock()

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            value = self._read().get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def clear(self) -> None:
        """Remove the state file, ending the session."""
        with self._lock:
            try:
                self.state_file.unlink(missing_ok=True)
            except OSError as e:
                raise IdentityStorageUnavailable(f"Failed to remove session file: {e}") from e

    def _read(self) -> dict:
        try:
            if not self.state_file.exists():
                return {}
            with open(self.state_file, "r") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise IdentityStorageUnavailable(f"Failed to read session file: {e}") from e

        if not isinstance(data, dict):
            raise IdentityStorageUnavailable(f"Session file is not a JSON object: {self.state_file}")
        return data

    def _write(self, data: dict) -> None:
        try:
            self.state_dir.mkdir(mode=0o700, parents=True, exist_ok=True)

            # Write to a temporary file first, then atomically replace
            temp_file = self.state_file.with_suffix(".tmp")
            with open(temp_file, "w") as f:
                json.dump(data, f)

            # Owner read/write only
            os.chmod(temp_file, stat.S_IRUSR | stat.S_IWUSR)
            temp_file.replace(self.state_file)

        except OSError as e:
            raise IdentityStorageUnavailable(f"Failed to write session file: {e}") from e

        logger.debug(f"Stored session state in {self.state_file}")

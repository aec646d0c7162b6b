"""Thread-safe key/value state, plus a process-wide global store."""

from __future__ import annotations

import copy
import threading
from typing import Any


class StateManager:
    """A thread-safe mapping of string keys to JSON-like values."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state: dict[str, Any] = {}

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._state[key] = value

    def get(self, key: str) -> Any | None:
        """Return a copy of the stored value, or None if the key is absent."""
        with self._lock:
            return copy.deepcopy(self._state.get(key))

    def delete(self, key: str) -> None:
        with self._lock:
            self._state.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._state.clear()

    def get_all(self) -> dict[str, Any]:
        with self._lock:
            return copy.deepcopy(self._state)


_store: StateManager | None = None
_init_lock = threading.Lock()


def init_state_manager() -> None:
    """Create the global store; later calls leave the existing one in place."""
    global _store
    with _init_lock:
        if _store is None:
            _store = StateManager()


def set_global(key: str, value: Any) -> None:
    """Store a value globally; does nothing before init_state_manager()."""
    if _store is not None:
        _store.set(key, value)


def get_global(key: str) -> Any | None:
    """Read a global value; None if absent or the store is not initialised."""
    if _store is None:
        return None
    return _store.get(key)
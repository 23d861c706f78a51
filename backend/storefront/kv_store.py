# Overview: Key-value store abstraction with TTL semantics used for the token cache and OTP state.

"""
Key-Value Store

WHY: Token validation and password-reset codes need short-lived shared
state. The store is injected at app creation (create_app(kv_store=...)) and
kept in app.extensions, never as a module-level global.

CONTRACT:
- get(key) returns the stored value, or None if missing or expired
- set(key, value, ttl_seconds) stores a JSON-compatible value; ttl_seconds
  must be > 0 and the entry disappears after that many seconds
- delete(key) removes the entry; deleting a missing key is not an error

Backends may raise KeyValueStoreError when unavailable. Callers that treat
the store as advisory (the token cache) catch it and fall back to the
database.
"""

from __future__ import annotations

import threading
import time
from typing import Any

from flask import current_app


EXTENSION_KEY = "storefront.kv_store"


class KeyValueStoreError(Exception):
    """Raised when the backing store cannot serve a request."""


class KeyValueStore:
    """Interface for TTL key-value backends."""

    def get(self, key: str) -> Any | None:
        raise NotImplementedError

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def purge_expired(self) -> int:
        """Drop expired entries. Backends with native expiry have nothing to do."""
        return 0


class MemoryStore(KeyValueStore):
    """
    In-process store. Default backend and the one used by tests.

    Expired entries are dropped lazily on read, by purge_expired(), and by a
    sweep inside set() at most once per sweep_interval seconds.
    """

    def __init__(self, clock=time.monotonic, sweep_interval: float = 60.0):
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._next_sweep = clock() + sweep_interval
        self._entries: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be > 0")
        with self._lock:
            now = self._clock()
            if now >= self._next_sweep:
                self._sweep_locked(now)
                self._next_sweep = now + self._sweep_interval
            self._entries[key] = (value, now + ttl_seconds)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def _sweep_locked(self, now: float) -> int:
        expired = [k for k, (_, exp) in self._entries.items() if exp <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def purge_expired(self) -> int:
        with self._lock:
            return self._sweep_locked(self._clock())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def init_kv_store(app, store: KeyValueStore | None = None) -> KeyValueStore:
    if store is None:
        store = MemoryStore()
    app.extensions[EXTENSION_KEY] = store
    return store


def get_kv_store() -> KeyValueStore:
    """Return the store bound to the current app."""
    return current_app.extensions[EXTENSION_KEY]

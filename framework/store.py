"""Subscribable key-value state store with merge-patch and versioned writes.

Every document is a flat mapping of field name to value. `patch` merges the given
fields into the document and bumps its version. Passing `expected_version` turns the
write into a compare-and-set: it succeeds only if nobody else has written since the
caller read the snapshot, otherwise `StaleWriteError` is raised and nothing changes.

Listeners are called with the committed snapshot after the store lock is released,
so a listener may safely read from (or write to) the store.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
import logging
import threading
from types import MappingProxyType
from typing import Any, Protocol

from .errors import SessionNotFoundError, StaleWriteError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Snapshot:
    """Immutable view of one document at one version."""

    key: str
    version: int
    values: Mapping[str, Any] = field(default_factory=dict)

    def __getitem__(self, name: str) -> Any:
        return self.values[name]

    def get(self, name: str, default: Any = None) -> Any:
        return self.values.get(name, default)


Listener = Callable[[Snapshot | None], None]
Unsubscribe = Callable[[], None]


class StateStore(Protocol):
    """Contract the engine requires from a shared session store."""

    def create(self, key: str, values: Mapping[str, Any]) -> Snapshot:
        """Create a new document; fails if the key already exists."""

    def get(self, key: str) -> Snapshot:
        """Return the latest snapshot or raise `SessionNotFoundError`."""

    def patch(self, key: str, partial: Mapping[str, Any], *, expected_version: int | None = None) -> Snapshot:
        """Merge fields into a document and return the committed snapshot."""

    def delete(self, key: str) -> None:
        """Remove a document and notify its listeners with `None`."""

    def keys(self) -> list[str]:
        """Return all document keys."""

    def subscribe(self, key: str, listener: Listener) -> Unsubscribe:
        """Register a change listener and return a function that removes it."""


class InMemoryStateStore:
    """Thread-safe in-process implementation of `StateStore`."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._documents: dict[str, Snapshot] = {}
        self._listeners: dict[str, list[Listener]] = {}

    def create(self, key: str, values: Mapping[str, Any]) -> Snapshot:
        with self._lock:
            if key in self._documents:
                raise ValidationError(f"Document {key!r} already exists.")
            snapshot = Snapshot(key=key, version=1, values=MappingProxyType(dict(values)))
            self._documents[key] = snapshot
            listeners = list(self._listeners.get(key, ()))
        self._notify(listeners, snapshot)
        return snapshot

    def get(self, key: str) -> Snapshot:
        with self._lock:
            if key not in self._documents:
                raise SessionNotFoundError(key)
            return self._documents[key]

    def patch(self, key: str, partial: Mapping[str, Any], *, expected_version: int | None = None) -> Snapshot:
        with self._lock:
            current = self.get(key)
            if expected_version is not None and current.version != expected_version:
                raise StaleWriteError(key, expected_version, current.version)
            merged = dict(current.values)
            merged.update(partial)
            snapshot = Snapshot(key=key, version=current.version + 1, values=MappingProxyType(merged))
            self._documents[key] = snapshot
            listeners = list(self._listeners.get(key, ()))
        logger.debug("Committed %s v%d fields=%s", key, snapshot.version, sorted(partial))
        self._notify(listeners, snapshot)
        return snapshot

    def delete(self, key: str) -> None:
        with self._lock:
            if key not in self._documents:
                raise SessionNotFoundError(key)
            del self._documents[key]
            listeners = self._listeners.pop(key, [])
        self._notify(listeners, None)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._documents)

    def subscribe(self, key: str, listener: Listener) -> Unsubscribe:
        with self._lock:
            self._listeners.setdefault(key, []).append(listener)
            current = self._documents.get(key)

        if current is not None:
            self._notify([listener], current)

        def unsubscribe() -> None:
            with self._lock:
                registered = self._listeners.get(key)
                if registered and listener in registered:
                    registered.remove(listener)

        return unsubscribe

    def _notify(self, listeners: list[Listener], snapshot: Snapshot | None) -> None:
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception:
                # A failing observer must not roll back a committed write.
                logger.exception("State listener failed for %s", snapshot.key if snapshot else "<deleted>")

"""Tests for the in-memory state store."""

from __future__ import annotations

import logging

import pytest

from framework.errors import SessionNotFoundError, StaleWriteError, ValidationError
from framework.store import InMemoryStateStore


def test_create_get_and_patch_bump_version() -> None:
    store = InMemoryStateStore()
    created = store.create("s1", {"a": 1, "b": 2})

    patched = store.patch("s1", {"b": 3})

    assert created.version == 1
    assert patched.version == 2
    assert dict(store.get("s1").values) == {"a": 1, "b": 3}
    assert store.keys() == ["s1"]


def test_create_twice_is_rejected() -> None:
    store = InMemoryStateStore()
    store.create("s1", {})
    with pytest.raises(ValidationError):
        store.create("s1", {})


def test_missing_document_raises_not_found() -> None:
    store = InMemoryStateStore()
    with pytest.raises(SessionNotFoundError):
        store.get("nope")
    with pytest.raises(SessionNotFoundError):
        store.patch("nope", {"a": 1})
    with pytest.raises(SessionNotFoundError):
        store.delete("nope")


def test_versioned_patch_loses_race() -> None:
    store = InMemoryStateStore()
    snapshot = store.create("s1", {"count": 0})
    store.patch("s1", {"count": 1}, expected_version=snapshot.version)

    with pytest.raises(StaleWriteError) as excinfo:
        store.patch("s1", {"count": 99}, expected_version=snapshot.version)

    assert (excinfo.value.expected_version, excinfo.value.actual_version) == (1, 2)
    assert store.get("s1")["count"] == 1


def test_snapshots_are_read_only() -> None:
    store = InMemoryStateStore()
    snapshot = store.create("s1", {"a": 1})
    with pytest.raises(TypeError):
        snapshot.values["a"] = 2  # type: ignore[index]


def test_subscribe_delivers_current_then_changes() -> None:
    store = InMemoryStateStore()
    store.create("s1", {"a": 1})
    seen = []

    unsubscribe = store.subscribe("s1", lambda snapshot: seen.append(snapshot and snapshot.version))
    store.patch("s1", {"a": 2})
    unsubscribe()
    store.patch("s1", {"a": 3})

    assert seen == [1, 2]


def test_delete_notifies_none() -> None:
    store = InMemoryStateStore()
    store.create("s1", {})
    seen = []
    store.subscribe("s1", seen.append)

    store.delete("s1")

    assert seen[-1] is None
    assert store.keys() == []


def test_failing_listener_does_not_block_commit(caplog: pytest.LogCaptureFixture) -> None:
    store = InMemoryStateStore()
    store.create("s1", {"a": 1})
    seen = []

    def broken(snapshot):
        if snapshot is not None and snapshot.version > 1:
            raise RuntimeError("listener exploded")

    store.subscribe("s1", broken)
    store.subscribe("s1", lambda snapshot: seen.append(snapshot.version))

    with caplog.at_level(logging.ERROR, logger="framework.store"):
        committed = store.patch("s1", {"a": 2})

    assert committed.version == 2
    assert store.get("s1")["a"] == 2
    assert seen == [1, 2]
    assert "State listener failed" in caplog.text

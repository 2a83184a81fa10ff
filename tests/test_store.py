from __future__ import annotations

import pytest

from action_engine.runtime.store import ObservableStore


def test_store_notifies_listeners_with_snapshot_and_key() -> None:
    store: ObservableStore[int] = ObservableStore("numbers")
    seen: list[tuple[dict[str, int], str | None]] = []

    unsubscribe = store.listen(lambda snapshot, key: seen.append((snapshot, key)))
    store.set_key("a", 1)
    store.set_key("a", 2)
    unsubscribe()
    store.set_key("b", 3)

    assert seen == [({"a": 1}, "a"), ({"a": 2}, "a")]
    assert store.get() == {"a": 2, "b": 3}
    assert "b" in store
    assert len(store) == 2
    assert list(store) == ["a", "b"]


def test_subscribe_delivers_current_state_first() -> None:
    store: ObservableStore[str] = ObservableStore()
    store.set_key("x", "first")
    seen: list[str | None] = []

    store.subscribe(lambda snapshot, key: seen.append(key))
    store.set_key("y", "second")

    assert seen == [None, "y"]


def test_snapshots_are_copies() -> None:
    store: ObservableStore[int] = ObservableStore()
    store.set_key("a", 1)

    snapshot = store.get()
    snapshot["a"] = 99

    assert store.get_key("a") == 1
    assert store.get_key("missing") is None


def test_failing_listener_does_not_block_others(caplog: pytest.LogCaptureFixture) -> None:
    store: ObservableStore[int] = ObservableStore("numbers")
    seen: list[str | None] = []

    def broken(snapshot: dict[str, int], key: str | None) -> None:
        raise RuntimeError("display crashed")

    store.listen(broken)
    store.listen(lambda snapshot, key: seen.append(key))
    store.set_key("a", 1)

    assert seen == ["a"]
    assert store.get_key("a") == 1
    assert "Listener failed" in caplog.text

"""Observable keyed store shared with display consumers."""

from __future__ import annotations

from typing import Callable, Generic, Iterator, TypeVar

from action_engine.util.logging import get_logger

V = TypeVar("V")

StoreListener = Callable[[dict[str, V], str | None], None]


class ObservableStore(Generic[V]):
    """Mapping from string keys to immutable values with change listeners.

    Writes replace one key at a time and notify listeners synchronously with a
    snapshot of the whole mapping and the key that changed. Readers always see
    the latest written value; entries are never removed.
    """

    def __init__(self, name: str = "store") -> None:
        self._name = name
        self._values: dict[str, V] = {}
        self._listeners: list[StoreListener[V]] = []
        self._logger = get_logger(self.__class__.__name__)

    def get(self) -> dict[str, V]:
        """Return a snapshot of all entries."""

        return dict(self._values)

    def get_key(self, key: str) -> V | None:
        """Return the value stored under ``key`` if present."""

        return self._values.get(key)

    def set_key(self, key: str, value: V) -> None:
        """Store ``value`` under ``key`` and notify listeners."""

        self._values[key] = value
        self._notify(key)

    def listen(self, listener: StoreListener[V]) -> Callable[[], None]:
        """Register a listener called after every change.

        Returns:
            A callable that unregisters the listener.
        """

        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def subscribe(self, listener: StoreListener[V]) -> Callable[[], None]:
        """Like ``listen`` but also calls the listener with the current state."""

        unsubscribe = self.listen(listener)
        listener(self.get(), None)
        return unsubscribe

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._values))

    def __len__(self) -> int:
        return len(self._values)

    def _notify(self, key: str) -> None:
        snapshot = self.get()
        for listener in list(self._listeners):
            try:
                listener(snapshot, key)
            except Exception:
                self._logger.exception(
                    "Listener failed while handling change of '%s' in %s.", key, self._name
                )

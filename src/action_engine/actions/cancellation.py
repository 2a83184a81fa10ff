"""Cooperative cancellation tokens passed into action handlers."""

from __future__ import annotations

from typing import Callable

from action_engine.util.logging import get_logger

_LOGGER = get_logger("action_engine.cancellation")


class CancellationToken:
    """A one-shot signal observed by in-flight handlers.

    Handlers check ``cancelled`` at their suspension points and may register
    callbacks (for example to kill a spawned process) that run once when the
    token is cancelled. Callbacks registered after cancellation run immediately.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        """Return whether cancellation was requested."""

        return self._cancelled

    def cancel(self) -> None:
        """Signal cancellation and run registered callbacks once."""

        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            _run_callback(callback)

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback invoked on cancellation.

        Returns:
            A callable that removes the callback again.
        """

        if self._cancelled:
            _run_callback(callback)
            return lambda: None
        self._callbacks.append(callback)

        def remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return remove


def _run_callback(callback: Callable[[], None]) -> None:
    try:
        callback()
    except Exception:
        _LOGGER.exception("Cancellation callback failed.")

"""Serialized execution of queued operations."""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from action_engine.util.logging import get_logger

Operation = Callable[[], Awaitable[Any]]


class ExecutionChainClosedError(RuntimeError):
    """Raised when submitting to a chain that was closed."""


@dataclass
class _QueuedOperation:
    label: str
    operation: Operation
    future: asyncio.Future[Any]


class ExecutionChain:
    """FIFO queue drained by a single worker task.

    Operations run one at a time in submission order. A failing operation does
    not stop the chain: its exception is logged and set on the future returned
    by ``submit`` and the worker moves on to the next operation.
    Cancelling a returned future only detaches that caller: the operation still
    runs. Operations that never started are dropped by ``close`` alone.
    """

    def __init__(self, name: str = "chain") -> None:
        """Initialize an empty chain.

        Args:
            name: Label used in log messages.
        """

        self._name = name
        self._queue: asyncio.Queue[_QueuedOperation] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._closed = False
        self._logger = get_logger(self.__class__.__name__)

    @property
    def pending(self) -> int:
        """Return the number of operations that have not started yet."""

        return self._queue.qsize()

    @property
    def closed(self) -> bool:
        """Return whether the chain stopped accepting operations."""

        return self._closed

    def submit(self, operation: Operation, *, label: str = "operation") -> asyncio.Future[Any]:
        """Append an operation to the chain.

        Must be called from a running event loop.

        Args:
            operation: Zero-argument callable returning an awaitable.
            label: Short description used in logs.

        Returns:
            Future resolved with the operation's result or failure once it settles.

        Raises:
            ExecutionChainClosedError: If ``close`` was already called.
        """

        if self._closed:
            raise ExecutionChainClosedError(f"Execution chain '{self._name}' is closed.")
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()
        future.add_done_callback(_mark_exception_retrieved)
        self._queue.put_nowait(_QueuedOperation(label=label, operation=operation, future=future))
        self._ensure_worker()
        return future

    async def join(self) -> None:
        """Wait until every submitted operation has settled."""

        await self._queue.join()

    async def close(self) -> None:
        """Stop the worker and cancel operations that never started."""

        self._closed = True
        worker, self._worker = self._worker, None
        if worker is not None and not worker.done():
            worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await worker
        while not self._queue.empty():
            item = self._queue.get_nowait()
            item.future.cancel()
            self._queue.task_done()

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._drain(), name=f"chain:{self._name}")

    async def _drain(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                try:
                    result = await item.operation()
                except asyncio.CancelledError:
                    item.future.cancel()
                    raise
                except Exception as exc:
                    self._logger.error(
                        "Operation '%s' in chain '%s' failed: %s", item.label, self._name, exc
                    )
                    if not item.future.done():
                        item.future.set_exception(exc)
                else:
                    if not item.future.done():
                        item.future.set_result(result)
            finally:
                self._queue.task_done()


def _mark_exception_retrieved(future: asyncio.Future[Any]) -> None:
    # Failures are logged by the worker; awaiting the future still re-raises.
    if not future.cancelled():
        future.exception()

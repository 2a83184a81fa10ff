"""Per-artifact action runner."""

from __future__ import annotations

import asyncio
import time
from dataclasses import replace
from typing import Any

from action_engine.actions.models import (
    ActionDescriptor,
    ActionRecord,
    ActionStatus,
    describe_action,
)
from action_engine.handlers.registry import HandlerRegistry
from action_engine.runtime.chain import ExecutionChain
from action_engine.runtime.store import ObservableStore
from action_engine.util.logging import get_logger
from action_engine.util.observability import ObservabilityManager, create_observability_manager


class ProtocolError(RuntimeError):
    """Raised when the event producer violates the action protocol."""


class ActionNotFoundError(ProtocolError):
    """Raised when an event references an action that was never added."""


class ActionRunner:
    """Registers, sequences and executes the actions of one artifact.

    Execution goes through an ``ExecutionChain`` so that at most one action
    runs at a time, in the order ``run_action`` was called. Every status
    change is written to ``actions`` before control returns to the caller.
    """

    def __init__(
        self,
        handlers: HandlerRegistry,
        *,
        name: str = "runner",
        observability: ObservabilityManager | None = None,
    ) -> None:
        """Initialize the runner.

        Args:
            handlers: Registry resolving a handler per descriptor type.
            name: Label used for the chain and in logs, usually the artifact id.
            observability: Shared events and metrics sink.
        """

        self._handlers = handlers
        self._name = name
        self._chain = ExecutionChain(name)
        self._completions: dict[str, asyncio.Future[Any]] = {}
        self._observability = observability or create_observability_manager()
        self._logger = get_logger(self.__class__.__name__)
        self.actions: ObservableStore[ActionRecord] = ObservableStore(f"actions:{name}")

    @property
    def name(self) -> str:
        """Return the runner label."""

        return self._name

    def get_action(self, action_id: str) -> ActionRecord | None:
        """Return the current record for an action if it exists."""

        return self.actions.get_key(action_id)

    def add_action(self, action_id: str, descriptor: ActionDescriptor) -> None:
        """Register an action as pending.

        Re-adding a known id is ignored. Once the work queued before this call
        settles, the action is shown as running; its handler only starts after
        ``run_action``.
        """

        if action_id in self.actions:
            return
        self.actions.set_key(action_id, ActionRecord(action_id=action_id, descriptor=descriptor))
        self._observability.metrics.increment("actions.added")
        self._observability.log_event(
            "action.added",
            {"runner": self._name, "action_id": action_id, "type": descriptor.type},
        )

        async def mark_running() -> None:
            self._set_status(action_id, ActionStatus.RUNNING)

        self._chain.submit(mark_running, label=f"mark-running:{action_id}")

    def run_action(
        self,
        action_id: str,
        descriptor: ActionDescriptor | None = None,
    ) -> asyncio.Future[Any]:
        """Queue an action for execution.

        Args:
            action_id: Identifier passed to ``add_action`` earlier.
            descriptor: Final descriptor replacing the one given at add time.

        Returns:
            Future resolved with the final ``ActionRecord`` once the action
            settles, or raising the handler's error. Repeated calls for the
            same id return the same future without executing again.

        Raises:
            ActionNotFoundError: If the action was never added.
        """

        record = self._require(action_id)
        if record.executed:
            return self._completions[action_id]

        record = replace(record.merge_descriptor(descriptor), executed=True)
        self.actions.set_key(action_id, record)

        async def execute() -> ActionRecord:
            return await self._execute(action_id)

        future = self._chain.submit(execute, label=f"execute:{action_id}")
        self._completions[action_id] = future
        return future

    def abort(self, action_id: str) -> None:
        """Request cancellation of an action and mark it aborted right away.

        Actions that already reached a terminal status keep it; the token
        is signalled anyway so background processes they started are killed.

        Raises:
            ActionNotFoundError: If the action was never added.
        """

        record = self._require(action_id)
        record.cancel.cancel()
        if self._set_status(action_id, ActionStatus.ABORTED):
            self._logger.info("Aborted action '%s' in '%s'.", action_id, self._name)
            self._observability.log_event(
                "action.aborted", {"runner": self._name, "action_id": action_id}
            )

    def abort_all(self) -> None:
        """Abort every action of the runner.

        Unfinished actions become aborted. Finished ones keep their status but
        their tokens are still signalled, which stops processes left running in
        the background.
        """

        for action_id in self.actions.get():
            self.abort(action_id)

    async def wait_idle(self) -> None:
        """Wait until every queued operation has settled."""

        await self._chain.join()

    async def close(self) -> None:
        """Stop the execution chain; queued actions that never started are dropped."""

        await self._chain.close()

    async def _execute(self, action_id: str) -> ActionRecord:
        record = self._require(action_id)
        if record.cancel.cancelled:
            self._logger.info("Skipping aborted action '%s'.", action_id)
            return record

        self._set_status(action_id, ActionStatus.RUNNING)
        self._observability.log_event(
            "action.started",
            {
                "runner": self._name,
                "action_id": action_id,
                "action": describe_action(record.descriptor),
            },
        )
        start = time.perf_counter()
        try:
            handler = self._handlers.get(record.descriptor)
            await handler.execute(record.descriptor, record.cancel)
        except Exception as exc:
            self._set_status(action_id, ActionStatus.FAILED, error=str(exc) or "Action failed")
            self._finish(action_id, start)
            raise

        final_status = ActionStatus.ABORTED if record.cancel.cancelled else ActionStatus.COMPLETE
        self._set_status(action_id, final_status)
        return self._finish(action_id, start)

    def _finish(self, action_id: str, start: float) -> ActionRecord:
        duration = time.perf_counter() - start
        record = self._require(action_id)
        self._observability.metrics.record_duration("action.duration", duration)
        self._observability.log_event(
            "action.finished",
            {
                "runner": self._name,
                "action_id": action_id,
                "status": record.status.value,
                "error": record.error,
                "duration_s": duration,
            },
            level="WARNING" if record.status == ActionStatus.FAILED else "INFO",
        )
        return record

    def _set_status(
        self,
        action_id: str,
        status: ActionStatus,
        error: str | None = None,
    ) -> bool:
        record = self._require(action_id)
        updated = record.transition(status, error=error)
        if updated is record:
            return False
        self.actions.set_key(action_id, updated)
        if status.is_terminal:
            self._observability.metrics.increment(f"actions.{status.value}")
        if status == ActionStatus.FAILED:
            self._logger.warning("Action '%s' in '%s' failed: %s", action_id, self._name, error)
        return True

    def _require(self, action_id: str) -> ActionRecord:
        record = self.actions.get_key(action_id)
        if record is None:
            raise ActionNotFoundError(f"Action {action_id} not found")
        return record

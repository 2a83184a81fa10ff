"""Shell action handler."""

from __future__ import annotations

import asyncio
from typing import Final, Iterable

from action_engine.actions.cancellation import CancellationToken
from action_engine.actions.models import ShellAction
from action_engine.handlers.base import ActionExecutionError, ActionHandler
from action_engine.handlers.process import ShellLauncher
from action_engine.util.logging import get_logger

DEFAULT_COMPLETION_TIMEOUT_S: Final[float] = 5.0
DEFAULT_LONG_RUNNING_PATTERNS: Final[tuple[str, ...]] = (
    "npm",
    "pnpm",
    "yarn",
    "next dev",
    "vite",
)


def is_long_running(command: str, patterns: Iterable[str]) -> bool:
    """Return whether ``command`` looks like an installer or a dev server."""

    return any(pattern in command for pattern in patterns)


class ShellHandler(ActionHandler):
    """Run shell actions with lenient completion for long-running commands.

    The process exit is raced against ``completion_timeout_s``. Commands that
    match a long-running pattern and are still alive when the timeout fires
    succeed immediately and keep running in the background; nonzero exits of
    such commands are tolerated as well.
    """

    def __init__(
        self,
        launcher: ShellLauncher,
        completion_timeout_s: float = DEFAULT_COMPLETION_TIMEOUT_S,
        long_running_patterns: Iterable[str] = DEFAULT_LONG_RUNNING_PATTERNS,
    ) -> None:
        self._launcher = launcher
        self._completion_timeout_s = completion_timeout_s
        self._long_running_patterns = tuple(long_running_patterns)
        self._background: set[asyncio.Future[int]] = set()
        self._logger = get_logger(self.__class__.__name__)

    @property
    def action_type(self) -> type[ShellAction]:
        return ShellAction

    async def execute(self, action: ShellAction, token: CancellationToken) -> None:
        if token.cancelled:
            return
        command = action.content
        self._logger.debug("Starting shell command: %s", command)
        process = await self._launcher.start(command)

        def abort_process() -> None:
            self._logger.debug("Aborting shell command")
            process.kill()

        exit_future = asyncio.ensure_future(process.wait())
        remove_callback = token.add_callback(abort_process)
        # Backgrounded processes stay killable by abort until they exit.
        exit_future.add_done_callback(lambda _: remove_callback())
        exit_code = await self._wait_for_exit(exit_future, command)

        self._logger.debug("Process terminated with code %s", exit_code)
        if token.cancelled:
            return
        if exit_code != 0 and not is_long_running(command, self._long_running_patterns):
            raise ActionExecutionError(f"Process failed with exit code {exit_code}")

    async def _wait_for_exit(self, exit_future: asyncio.Future[int], command: str) -> int:
        done, _ = await asyncio.wait({exit_future}, timeout=self._completion_timeout_s)
        if exit_future in done:
            return exit_future.result()
        if is_long_running(command, self._long_running_patterns):
            self._logger.debug("Long-running process detected, marking as complete")
            self._background.add(exit_future)
            exit_future.add_done_callback(self._background.discard)
            return 0
        return await exit_future

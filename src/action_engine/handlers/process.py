"""Shell process launching shared by the shell and import handlers."""

from __future__ import annotations

import asyncio
from typing import Callable

from action_engine.sandbox.base import Sandbox, SandboxProcess
from action_engine.util.logging import get_logger

OutputObserver = Callable[[str], None]

DEFAULT_SHELL_PROGRAM = "/bin/sh"
DEFAULT_SHELL_ARGS: tuple[str, ...] = ("-c",)
DEFAULT_SHELL_ENV: dict[str, str] = {"npm_config_yes": "true"}


class ShellLauncher:
    """Spawn shell commands in the sandbox and stream their output."""

    def __init__(
        self,
        sandbox: Sandbox,
        program: str = DEFAULT_SHELL_PROGRAM,
        args: tuple[str, ...] = DEFAULT_SHELL_ARGS,
        env: dict[str, str] | None = None,
        on_output: OutputObserver | None = None,
    ) -> None:
        """Initialize the launcher.

        Args:
            sandbox: Sandbox used to spawn processes.
            program: Shell executable.
            args: Arguments placed before the command text.
            env: Environment passed to every command.
            on_output: Observer receiving output chunks. Defaults to debug logging.
        """

        self._sandbox = sandbox
        self._program = program
        self._args = tuple(args)
        self._env = dict(DEFAULT_SHELL_ENV if env is None else env)
        self._on_output = on_output
        self._pipes: set[asyncio.Task[None]] = set()
        self._logger = get_logger(self.__class__.__name__)

    async def start(self, command: str) -> SandboxProcess:
        """Spawn ``command`` through the shell and begin piping its output."""

        process = await self._sandbox.spawn(
            self._program,
            [*self._args, command],
            env=dict(self._env),
        )
        task = asyncio.create_task(self._pipe_output(process))
        self._pipes.add(task)
        task.add_done_callback(self._pipes.discard)
        return process

    async def _pipe_output(self, process: SandboxProcess) -> None:
        try:
            async for chunk in process.output():
                if self._on_output is not None:
                    self._on_output(chunk)
                else:
                    self._logger.debug("Process output: %s", chunk.rstrip())
        except Exception as exc:
            self._logger.error("Error piping process output: %s", exc)

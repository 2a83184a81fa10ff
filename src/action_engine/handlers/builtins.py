"""Default handler set covering every action descriptor type."""

from __future__ import annotations

from typing import Iterable

from action_engine.handlers.files import FileHandler, ImportHandler
from action_engine.handlers.process import (
    DEFAULT_SHELL_ARGS,
    DEFAULT_SHELL_PROGRAM,
    OutputObserver,
    ShellLauncher,
)
from action_engine.handlers.registry import HandlerRegistry
from action_engine.handlers.shell import (
    DEFAULT_COMPLETION_TIMEOUT_S,
    DEFAULT_LONG_RUNNING_PATTERNS,
    ShellHandler,
)
from action_engine.sandbox.base import Sandbox


def build_default_handler_registry(
    sandbox: Sandbox,
    *,
    shell_program: str = DEFAULT_SHELL_PROGRAM,
    shell_args: Iterable[str] = DEFAULT_SHELL_ARGS,
    shell_env: dict[str, str] | None = None,
    completion_timeout_s: float = DEFAULT_COMPLETION_TIMEOUT_S,
    long_running_patterns: Iterable[str] = DEFAULT_LONG_RUNNING_PATTERNS,
    on_output: OutputObserver | None = None,
) -> HandlerRegistry:
    """Create a registry with the shell, file and import handlers.

    Args:
        sandbox: Sandbox shared by all handlers.
        shell_program: Shell executable used for commands.
        shell_args: Arguments placed before the command text.
        shell_env: Environment for spawned commands.
        completion_timeout_s: Time after which long-running commands succeed.
        long_running_patterns: Substrings marking installers and dev servers.
        on_output: Optional observer for process output.

    Returns:
        HandlerRegistry with one handler per descriptor type.
    """

    launcher = ShellLauncher(
        sandbox,
        program=shell_program,
        args=tuple(shell_args),
        env=shell_env,
        on_output=on_output,
    )
    registry = HandlerRegistry()
    registry.register(
        ShellHandler(
            launcher,
            completion_timeout_s=completion_timeout_s,
            long_running_patterns=long_running_patterns,
        )
    )
    registry.register(FileHandler(sandbox))
    registry.register(ImportHandler(sandbox, launcher))
    return registry

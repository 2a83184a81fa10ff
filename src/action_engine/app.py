"""Application wiring for CLI-friendly replays."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from action_engine.actions.models import ActionStatus, describe_action
from action_engine.artifacts import ArtifactRegistry
from action_engine.config import (
    ConfigError,
    EngineConfig,
    config_to_dict,
    load_config,
    update_sandbox_mode,
    update_workspace_root,
)
from action_engine.events import EventReplayer, load_events
from action_engine.handlers.builtins import build_default_handler_registry
from action_engine.handlers.process import OutputObserver
from action_engine.handlers.registry import HandlerRegistry
from action_engine.sandbox.base import Sandbox
from action_engine.sandbox.docker import DockerSandbox
from action_engine.sandbox.local import LocalSandbox
from action_engine.util.logging import configure_logging, get_logger
from action_engine.util.observability import ObservabilityManager, create_observability_manager


class AppConfigError(RuntimeError):
    """Raised when configuration or runtime setup fails."""


@dataclass(frozen=True)
class RuntimeContext:
    """Container for the services behind an engine session."""

    config: EngineConfig
    sandbox: Sandbox
    handlers: HandlerRegistry
    registry: ArtifactRegistry
    observability: ObservabilityManager

    async def shutdown(self) -> None:
        """Stop every runner and release the sandbox."""

        await self.registry.close()
        await self.sandbox.close()


@dataclass(frozen=True)
class ActionSummary:
    """Final state of one action after a replay."""

    artifact_id: str
    action_id: str
    description: str
    status: ActionStatus
    error: str | None = None


@dataclass
class ReplaySummary:
    """Outcome of replaying an event file.

    Attributes:
        actions: Final state of every action, grouped by artifact order.
        protocol_errors: Events rejected because they violated the protocol.
        metrics: Snapshot of the collected metrics.
    """

    actions: list[ActionSummary] = field(default_factory=list)
    protocol_errors: list[str] = field(default_factory=list)
    metrics: dict[str, Any] = field(default_factory=dict)

    @property
    def failed(self) -> list[ActionSummary]:
        """Return the actions that ended in the failed state."""

        return [action for action in self.actions if action.status == ActionStatus.FAILED]

    def status_counts(self) -> dict[str, int]:
        """Return the number of actions per final status."""

        counts: dict[str, int] = {}
        for action in self.actions:
            counts[action.status.value] = counts.get(action.status.value, 0) + 1
        return counts


_LOGGER = get_logger("action_engine.app")


def initialize_config(workspace: Path) -> Path:
    """Create a default configuration file in the workspace.

    Args:
        workspace: Workspace directory where the config should be written.

    Returns:
        Path to the generated configuration file.

    Raises:
        AppConfigError: If the config file already exists.
    """

    workspace = workspace.resolve()
    config_path = workspace / "action_engine.yaml"
    if config_path.exists():
        raise AppConfigError(
            f"Config file already exists at {config_path}. Remove it or choose another "
            "workspace."
        )
    workspace.mkdir(parents=True, exist_ok=True)
    config_path.write_text(
        json.dumps(config_to_dict(EngineConfig(workspace_root=workspace)), indent=2),
        encoding="utf-8",
    )
    _LOGGER.info("Initialized configuration at %s", config_path)
    return config_path


def build_runtime(
    config: EngineConfig,
    *,
    sandbox: Sandbox | None = None,
    on_output: OutputObserver | None = None,
) -> RuntimeContext:
    """Build the services for an engine session.

    Args:
        config: Engine configuration.
        sandbox: Optional pre-built sandbox (for testing).
        on_output: Optional observer for process output.

    Returns:
        RuntimeContext with initialized services.
    """

    sandbox_instance = sandbox or _build_sandbox(config)
    observability = create_observability_manager(
        context={"sandbox": config.sandbox.mode, "workspace": str(config.workspace_root)}
    )
    handlers = build_default_handler_registry(
        sandbox_instance,
        shell_program=config.shell.program,
        shell_args=config.shell.args,
        shell_env=config.shell.env,
        completion_timeout_s=config.shell.completion_timeout_s,
        long_running_patterns=config.shell.long_running_patterns,
        on_output=on_output,
    )
    registry = ArtifactRegistry(handlers, observability=observability)
    _LOGGER.info("Runtime initialized with sandbox mode '%s'.", config.sandbox.mode)
    return RuntimeContext(
        config=config,
        sandbox=sandbox_instance,
        handlers=handlers,
        registry=registry,
        observability=observability,
    )


def summarize_actions(registry: ArtifactRegistry) -> list[ActionSummary]:
    """Collect the current state of every action, artifact by artifact."""

    summaries: list[ActionSummary] = []
    for message_id in registry.artifact_ids:
        artifact = registry.get_artifact(message_id)
        if artifact is None:
            continue
        for action_id, record in artifact.runner.actions.get().items():
            summaries.append(
                ActionSummary(
                    artifact_id=message_id,
                    action_id=action_id,
                    description=describe_action(record.descriptor),
                    status=record.status,
                    error=record.error,
                )
            )
    return summaries


async def replay_events_async(
    events_path: Path,
    config: EngineConfig,
    *,
    sandbox: Sandbox | None = None,
) -> ReplaySummary:
    """Replay a JSON Lines event file against a fresh runtime.

    The runtime is shut down afterwards, which stops background processes
    such as dev servers started by the replayed actions.
    """

    events = load_events(events_path)
    runtime = build_runtime(config, sandbox=sandbox)
    _LOGGER.info("Replaying %s events from %s", len(events), events_path)
    try:
        with runtime.observability.track_duration("replay.duration"):
            result = await EventReplayer(runtime.registry).replay(events)
        return ReplaySummary(
            actions=summarize_actions(runtime.registry),
            protocol_errors=list(result.protocol_errors),
            metrics=runtime.observability.metrics.snapshot(),
        )
    finally:
        await runtime.shutdown()


def replay_events(
    events_path: Path,
    workspace: Path,
    sandbox_mode: str | None = None,
    log_level: str | None = None,
) -> ReplaySummary:
    """Load the workspace configuration and replay an event file.

    The configured logging section is applied unless ``log_level`` was given
    on the command line.
    """

    _LOGGER.info("Loading configuration from workspace %s", workspace)
    try:
        config = load_config(workspace)
        config = update_workspace_root(config, workspace.resolve())
        if sandbox_mode is not None:
            config = update_sandbox_mode(config, sandbox_mode)
    except ConfigError as exc:
        raise AppConfigError(str(exc)) from exc
    if log_level is None:
        configure_logging(config.logging.level, config.logging.format, force=True)
    return asyncio.run(replay_events_async(events_path, config))


def _build_sandbox(config: EngineConfig) -> Sandbox:
    mode = config.sandbox.mode.lower()
    if mode == "local":
        return LocalSandbox(
            config.workspace_root,
            workdir=config.sandbox.workdir,
            env=config.sandbox.env,
        )
    if mode == "docker":
        return DockerSandbox(
            config.workspace_root,
            config.sandbox.docker_image,
            workdir=config.sandbox.workdir,
            env=config.sandbox.env,
            docker_binary=config.sandbox.docker_binary,
        )
    raise AppConfigError(f"Unknown sandbox mode: {config.sandbox.mode}")

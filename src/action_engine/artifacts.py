"""Artifact registry owning one action runner per artifact."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field, replace
from typing import Any

from action_engine.actions.models import ActionDescriptor
from action_engine.handlers.registry import HandlerRegistry
from action_engine.runtime.runner import ActionRunner, ProtocolError
from action_engine.runtime.store import ObservableStore
from action_engine.util.logging import get_logger
from action_engine.util.observability import ObservabilityManager, create_observability_manager


class ArtifactNotFoundError(ProtocolError):
    """Raised when an action event targets an artifact that was never added."""


@dataclass(frozen=True)
class ArtifactRecord:
    """An artifact produced by one model response.

    Attributes:
        id: Identifier of the originating message.
        title: Human-readable artifact title.
        closed: Whether the producer finished streaming the artifact.
        runner: Runner executing this artifact's actions.
    """

    id: str
    title: str
    runner: ActionRunner = field(compare=False, repr=False)
    closed: bool = False


class ArtifactRegistry:
    """Tracks artifacts and routes action events to their runners.

    All runners share the handler registry, and therefore the sandbox behind
    it. Runners are independent of each other: actions of different artifacts
    may execute concurrently.
    """

    def __init__(
        self,
        handlers: HandlerRegistry,
        observability: ObservabilityManager | None = None,
    ) -> None:
        """Initialize an empty registry.

        Args:
            handlers: Handler registry given to every runner.
            observability: Shared events and metrics sink.
        """

        self._handlers = handlers
        self._observability = observability or create_observability_manager()
        self._logger = get_logger(self.__class__.__name__)
        self.artifacts: ObservableStore[ArtifactRecord] = ObservableStore("artifacts")
        self.artifact_ids: list[str] = []

    @property
    def first_artifact(self) -> ArtifactRecord | None:
        """Return the first artifact that was registered, if any."""

        if not self.artifact_ids:
            return None
        return self.artifacts.get_key(self.artifact_ids[0])

    def get_artifact(self, message_id: str) -> ArtifactRecord | None:
        """Return the artifact registered for a message id."""

        return self.artifacts.get_key(message_id)

    def add_artifact(self, message_id: str, title: str) -> None:
        """Register an artifact and create its runner. Known ids are ignored."""

        if message_id in self.artifacts:
            return
        if message_id not in self.artifact_ids:
            self.artifact_ids.append(message_id)
        runner = ActionRunner(
            self._handlers,
            name=message_id,
            observability=self._observability,
        )
        self.artifacts.set_key(message_id, ArtifactRecord(id=message_id, title=title, runner=runner))
        self._observability.metrics.increment("artifacts.registered")
        self._observability.log_event(
            "artifact.registered", {"message_id": message_id, "title": title}
        )

    def update_artifact(
        self,
        message_id: str,
        *,
        title: str | None = None,
        closed: bool | None = None,
    ) -> None:
        """Merge title and closed state into an artifact. Unknown ids are ignored."""

        artifact = self.artifacts.get_key(message_id)
        if artifact is None:
            self._logger.debug("Ignoring update for unknown artifact '%s'.", message_id)
            return
        changes: dict[str, Any] = {}
        if title is not None:
            changes["title"] = title
        if closed is not None:
            changes["closed"] = closed
        if changes:
            self.artifacts.set_key(message_id, replace(artifact, **changes))

    def add_action(self, message_id: str, action_id: str, descriptor: ActionDescriptor) -> None:
        """Register an action with the artifact's runner.

        Raises:
            ArtifactNotFoundError: If the artifact was never added.
        """

        self._logger.debug("Adding action '%s' to artifact '%s'.", action_id, message_id)
        self._require(message_id).runner.add_action(action_id, descriptor)

    def run_action(
        self,
        message_id: str,
        action_id: str,
        descriptor: ActionDescriptor | None = None,
    ) -> asyncio.Future[Any]:
        """Queue an action on the artifact's runner.

        Returns:
            The completion future from ``ActionRunner.run_action``.

        Raises:
            ArtifactNotFoundError: If the artifact was never added.
            ActionNotFoundError: If the action was never added.
        """

        self._logger.debug("Running action '%s' of artifact '%s'.", action_id, message_id)
        return self._require(message_id).runner.run_action(action_id, descriptor)

    def abort_action(self, message_id: str, action_id: str) -> None:
        """Abort a single action of an artifact."""

        self._require(message_id).runner.abort(action_id)

    def abort_all_actions(self) -> None:
        """Abort every action across all artifacts; finished ones keep their status."""

        for artifact in self.artifacts.get().values():
            artifact.runner.abort_all()

    async def wait_idle(self) -> None:
        """Wait until every runner has settled its queued work."""

        runners = [artifact.runner for artifact in self.artifacts.get().values()]
        await asyncio.gather(*(runner.wait_idle() for runner in runners))

    async def close(self) -> None:
        """Stop every runner's execution chain."""

        runners = [artifact.runner for artifact in self.artifacts.get().values()]
        await asyncio.gather(*(runner.close() for runner in runners))

    def _require(self, message_id: str) -> ArtifactRecord:
        artifact = self.artifacts.get_key(message_id)
        if artifact is None:
            self._logger.error("Artifact not found for action: '%s'.", message_id)
            raise ArtifactNotFoundError(f"Artifact {message_id} not found")
        return artifact

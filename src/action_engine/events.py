"""Parser events and their replay into an artifact registry."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from action_engine.actions.models import ActionDescriptor, ActionParseError, action_from_dict
from action_engine.artifacts import ArtifactRegistry
from action_engine.runtime.runner import ProtocolError
from action_engine.util.logging import get_logger

ARTIFACT_ADD = "artifact.add"
ARTIFACT_UPDATE = "artifact.update"
ACTION_ADD = "action.add"
ACTION_RUN = "action.run"

_ARTIFACT_KINDS = frozenset({ARTIFACT_ADD, ARTIFACT_UPDATE})
_ACTION_KINDS = frozenset({ACTION_ADD, ACTION_RUN})


class EventParseError(ValueError):
    """Raised when an event payload is malformed."""


@dataclass(frozen=True)
class ArtifactEvent:
    """Artifact-level event emitted by the response parser.

    Attributes:
        kind: ``artifact.add`` or ``artifact.update``.
        message_id: Message the artifact belongs to.
        title: Artifact title, if the event carries one.
        closed: Closed flag for updates, if the event carries one.
    """

    kind: str
    message_id: str
    title: str | None = None
    closed: bool | None = None


@dataclass(frozen=True)
class ActionEvent:
    """Action-level event emitted by the response parser.

    Attributes:
        kind: ``action.add`` or ``action.run``.
        message_id: Message owning the artifact the action belongs to.
        action_id: Action identifier within the artifact.
        descriptor: Parsed action, optional for ``action.run``.
    """

    kind: str
    message_id: str
    action_id: str
    descriptor: ActionDescriptor | None = None


ParserEvent = ArtifactEvent | ActionEvent


def event_from_dict(payload: Any) -> ParserEvent:
    """Build a parser event from a JSON-compatible mapping.

    Raises:
        EventParseError: If the payload is not a valid event.
    """

    if not isinstance(payload, dict):
        raise EventParseError("Event payload must be a mapping.")
    kind = payload.get("event")
    message_id = _expect_str(payload, "message_id", "messageId")
    if kind in _ARTIFACT_KINDS:
        title = payload.get("title")
        closed = payload.get("closed")
        if title is not None and not isinstance(title, str):
            raise EventParseError("Artifact 'title' must be a string.")
        if closed is not None and not isinstance(closed, bool):
            raise EventParseError("Artifact 'closed' must be a boolean.")
        if kind == ARTIFACT_ADD and title is None:
            title = ""
        return ArtifactEvent(kind=kind, message_id=message_id, title=title, closed=closed)
    if kind in _ACTION_KINDS:
        action_id = _expect_str(payload, "action_id", "actionId")
        raw_action = payload.get("action")
        if raw_action is None and kind == ACTION_ADD:
            raise EventParseError("'action.add' events require an 'action' payload.")
        try:
            descriptor = action_from_dict(raw_action) if raw_action is not None else None
        except ActionParseError as exc:
            raise EventParseError(str(exc)) from exc
        return ActionEvent(
            kind=kind,
            message_id=message_id,
            action_id=action_id,
            descriptor=descriptor,
        )
    raise EventParseError(f"Unknown event kind: {kind!r}")


def load_events(path: Path) -> list[ParserEvent]:
    """Load parser events from a JSON Lines file. Blank lines are skipped.

    Raises:
        EventParseError: If a line is not valid JSON or not a valid event.
    """

    events: list[ParserEvent] = []
    with path.open("r", encoding="utf-8") as handle:
        for line_number, line in enumerate(handle, start=1):
            text = line.strip()
            if not text:
                continue
            try:
                payload = json.loads(text)
                events.append(event_from_dict(payload))
            except (json.JSONDecodeError, EventParseError) as exc:
                raise EventParseError(f"Line {line_number}: {exc}") from exc
    return events


@dataclass
class ReplayResult:
    """Outcome of replaying a stream of parser events.

    Attributes:
        events_applied: Events delivered to the registry.
        protocol_errors: Messages of events rejected as protocol violations.
        completions: Completion futures of every action that was run.
    """

    events_applied: int = 0
    protocol_errors: list[str] = field(default_factory=list)
    completions: list[asyncio.Future[Any]] = field(default_factory=list)


class EventReplayer:
    """Feed parser events into an ``ArtifactRegistry`` in stream order."""

    def __init__(self, registry: ArtifactRegistry) -> None:
        self._registry = registry
        self._logger = get_logger(self.__class__.__name__)

    def apply(self, event: ParserEvent) -> asyncio.Future[Any] | None:
        """Deliver one event to the registry.

        Returns:
            The completion future for ``action.run`` events, otherwise None.

        Raises:
            ProtocolError: If the event references an unknown artifact or action.
        """

        if isinstance(event, ArtifactEvent):
            if event.kind == ARTIFACT_ADD:
                self._registry.add_artifact(event.message_id, event.title or "")
                if event.closed:
                    self._registry.update_artifact(event.message_id, closed=True)
            else:
                self._registry.update_artifact(
                    event.message_id, title=event.title, closed=event.closed
                )
            return None
        if event.kind == ACTION_ADD:
            if event.descriptor is None:
                raise ProtocolError(f"Action {event.action_id} was added without a descriptor")
            self._registry.add_action(event.message_id, event.action_id, event.descriptor)
            return None
        return self._registry.run_action(event.message_id, event.action_id, event.descriptor)

    async def replay(self, events: Iterable[ParserEvent]) -> ReplayResult:
        """Apply every event, then wait until all runners are idle.

        Protocol violations are logged and recorded; they reject only the
        offending event and the replay continues.
        """

        result = ReplayResult()
        for event in events:
            try:
                completion = self.apply(event)
            except ProtocolError as exc:
                self._logger.error("Rejected %s event: %s", event.kind, exc)
                result.protocol_errors.append(str(exc))
                continue
            result.events_applied += 1
            if completion is not None:
                result.completions.append(completion)
            # Let queued work start between events, as it would while streaming.
            await asyncio.sleep(0)
        await self._registry.wait_idle()
        return result


def _expect_str(payload: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, str) and value:
            return value
    raise EventParseError(f"Event field '{keys[0]}' must be a non-empty string.")

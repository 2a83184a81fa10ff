"""Action descriptors, statuses and runtime records."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Final

from action_engine.actions.cancellation import CancellationToken


class ActionParseError(ValueError):
    """Raised when an action payload cannot be turned into a descriptor."""


@dataclass(frozen=True)
class ShellAction:
    """Run a command through the sandbox shell.

    Attributes:
        content: Command text passed to the shell.
    """

    content: str

    @property
    def type(self) -> str:
        return "shell"


@dataclass(frozen=True)
class FileAction:
    """Write a file inside the sandbox.

    Attributes:
        file_path: Target path, usually absolute inside the sandbox workdir.
        content: Full file content; existing files are overwritten.
    """

    file_path: str
    content: str

    @property
    def type(self) -> str:
        return "file"


@dataclass(frozen=True)
class ImportedFile:
    """A single file carried by an import action."""

    path: str
    content: str


@dataclass(frozen=True)
class ImportAction:
    """Import a set of files and run follow-up commands.

    Attributes:
        target_path: Base directory the files are written under.
        files: Files relative to ``target_path``, written in order.
        post_import_commands: Shell commands run after all files are written.
    """

    target_path: str
    files: tuple[ImportedFile, ...] = ()
    post_import_commands: tuple[str, ...] = ()

    @property
    def type(self) -> str:
        return "import"


ActionDescriptor = ShellAction | FileAction | ImportAction


class ActionStatus(str, Enum):
    """Lifecycle states of an action."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    ABORTED = "aborted"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: Final[frozenset[ActionStatus]] = frozenset(
    {ActionStatus.COMPLETE, ActionStatus.ABORTED, ActionStatus.FAILED}
)

_ALLOWED_TRANSITIONS: Final[dict[ActionStatus, frozenset[ActionStatus]]] = {
    ActionStatus.PENDING: frozenset({ActionStatus.RUNNING, ActionStatus.ABORTED}),
    ActionStatus.RUNNING: frozenset(
        {ActionStatus.COMPLETE, ActionStatus.ABORTED, ActionStatus.FAILED}
    ),
}


@dataclass(frozen=True)
class ActionRecord:
    """Runtime state of one action inside a runner.

    Records are immutable; every update produces a new record that replaces the
    previous one in the action store.

    Attributes:
        action_id: Identifier of the action, unique within its artifact.
        descriptor: What the action does. Frozen once ``executed`` is set.
        status: Current lifecycle status.
        executed: Whether execution has been dispatched to the chain.
        error: Failure reason, only set when ``status`` is ``FAILED``.
        cancel: Token signalled when the action is aborted.
    """

    action_id: str
    descriptor: ActionDescriptor
    status: ActionStatus = ActionStatus.PENDING
    executed: bool = False
    error: str | None = None
    cancel: CancellationToken = field(default_factory=CancellationToken, compare=False)

    def can_transition(self, status: ActionStatus) -> bool:
        """Return whether moving to ``status`` is a legal state change."""

        return status in _ALLOWED_TRANSITIONS.get(self.status, frozenset())

    def transition(self, status: ActionStatus, error: str | None = None) -> ActionRecord:
        """Return a copy moved to ``status``.

        Illegal transitions, including any move out of a terminal state, return
        the record unchanged.
        """

        if status == self.status or not self.can_transition(status):
            return self
        return replace(
            self,
            status=status,
            error=error if status == ActionStatus.FAILED else None,
        )

    def merge_descriptor(self, descriptor: ActionDescriptor | None) -> ActionRecord:
        """Return a copy with an updated descriptor unless execution started."""

        if descriptor is None or self.executed:
            return self
        return replace(self, descriptor=descriptor)


def action_from_dict(payload: Any) -> ActionDescriptor:
    """Build an action descriptor from a JSON-compatible mapping.

    Both snake_case keys and the parser's camelCase keys are accepted.

    Args:
        payload: Mapping with a ``type`` tag of ``shell``, ``file`` or ``import``.

    Returns:
        The matching descriptor.

    Raises:
        ActionParseError: If the tag is unknown or a field is malformed.
    """

    if not isinstance(payload, dict):
        raise ActionParseError("Action payload must be a mapping.")
    action_type = payload.get("type")
    if action_type == "shell":
        return ShellAction(content=_require_str(payload, "content", "command"))
    if action_type == "file":
        return FileAction(
            file_path=_require_str(payload, "file_path", "filePath"),
            content=_optional_str(payload, "content"),
        )
    if action_type == "import":
        raw_files = payload.get("files", [])
        if not isinstance(raw_files, list):
            raise ActionParseError("Import action 'files' must be a list.")
        raw_commands = _first_present(payload, "post_import_commands", "postImportCommands")
        if raw_commands is None:
            raw_commands = []
        if not isinstance(raw_commands, list) or not all(
            isinstance(item, str) for item in raw_commands
        ):
            raise ActionParseError("Import action post-import commands must be strings.")
        return ImportAction(
            target_path=_optional_str(payload, "target_path", "targetPath"),
            files=tuple(_imported_file_from_dict(item) for item in raw_files),
            post_import_commands=tuple(raw_commands),
        )
    raise ActionParseError(f"Unknown action type: {action_type!r}")


def action_to_dict(descriptor: ActionDescriptor) -> dict[str, Any]:
    """Serialize a descriptor into a JSON-compatible dictionary."""

    if isinstance(descriptor, ShellAction):
        return {"type": "shell", "content": descriptor.content}
    if isinstance(descriptor, FileAction):
        return {
            "type": "file",
            "file_path": descriptor.file_path,
            "content": descriptor.content,
        }
    return {
        "type": "import",
        "target_path": descriptor.target_path,
        "files": [{"path": item.path, "content": item.content} for item in descriptor.files],
        "post_import_commands": list(descriptor.post_import_commands),
    }


def describe_action(descriptor: ActionDescriptor) -> str:
    """Return a short single-line label for logs and summaries."""

    if isinstance(descriptor, ShellAction):
        first_line = descriptor.content.strip().split("\n", 1)[0]
        return f"shell: {first_line}"
    if isinstance(descriptor, FileAction):
        return f"file: {descriptor.file_path}"
    return f"import: {descriptor.target_path or '.'} ({len(descriptor.files)} files)"


def _imported_file_from_dict(item: Any) -> ImportedFile:
    if not isinstance(item, dict):
        raise ActionParseError("Imported file entries must be mappings.")
    return ImportedFile(
        path=_require_str(item, "path"),
        content=_optional_str(item, "content"),
    )


def _first_present(payload: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in payload:
            return payload[key]
    return None


def _require_str(payload: dict[str, Any], *keys: str) -> str:
    value = _first_present(payload, *keys)
    if not isinstance(value, str) or not value:
        raise ActionParseError(f"Action field '{keys[0]}' must be a non-empty string.")
    return value


def _optional_str(payload: dict[str, Any], *keys: str) -> str:
    value = _first_present(payload, *keys)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ActionParseError(f"Action field '{keys[0]}' must be a string.")
    return value

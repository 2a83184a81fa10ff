"""Action descriptors and runtime records."""

from action_engine.actions.cancellation import CancellationToken
from action_engine.actions.models import (
    TERMINAL_STATUSES,
    ActionDescriptor,
    ActionParseError,
    ActionRecord,
    ActionStatus,
    FileAction,
    ImportAction,
    ImportedFile,
    ShellAction,
    action_from_dict,
    action_to_dict,
    describe_action,
)

__all__ = [
    "TERMINAL_STATUSES",
    "ActionDescriptor",
    "ActionParseError",
    "ActionRecord",
    "ActionStatus",
    "CancellationToken",
    "FileAction",
    "ImportAction",
    "ImportedFile",
    "ShellAction",
    "action_from_dict",
    "action_to_dict",
    "describe_action",
]

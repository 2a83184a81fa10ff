"""Handler abstractions for executing action descriptors."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from action_engine.actions.cancellation import CancellationToken


class ActionExecutionError(RuntimeError):
    """Raised when a handler fails to carry out an action."""


class ActionHandler(ABC):
    """Base class for per-type action handlers."""

    @property
    @abstractmethod
    def action_type(self) -> type[Any]:
        """Return the descriptor class this handler executes."""

    @abstractmethod
    async def execute(self, action: Any, token: CancellationToken) -> None:
        """Execute the action inside the sandbox.

        Args:
            action: Descriptor of the type returned by ``action_type``.
            token: Cancellation token checked at suspension points.

        Raises:
            ActionExecutionError: If the action fails.
        """

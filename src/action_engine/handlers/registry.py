"""Registry mapping descriptor types to handlers."""

from __future__ import annotations

from typing import Any, Iterable

from action_engine.handlers.base import ActionHandler


class HandlerRegistryError(RuntimeError):
    """Raised when handler registry operations fail."""


class HandlerNotFoundError(HandlerRegistryError):
    """Raised when no handler exists for a descriptor type."""


class HandlerRegistrationError(HandlerRegistryError):
    """Raised when a handler cannot be registered."""


class HandlerRegistry:
    """Registry of action handlers keyed by descriptor class."""

    def __init__(self) -> None:
        self._handlers: dict[type[Any], ActionHandler] = {}

    def register(self, handler: ActionHandler) -> None:
        """Register a handler for its descriptor type.

        Args:
            handler: Handler to register.

        Raises:
            HandlerRegistrationError: If the type already has a handler.
        """

        if handler.action_type in self._handlers:
            raise HandlerRegistrationError(
                f"A handler for '{handler.action_type.__name__}' is already registered"
            )
        self._handlers[handler.action_type] = handler

    def get(self, action: Any) -> ActionHandler:
        """Return the handler for a descriptor instance.

        Raises:
            HandlerNotFoundError: If no handler is registered for its type.
        """

        try:
            return self._handlers[type(action)]
        except KeyError as exc:
            raise HandlerNotFoundError(
                f"No handler registered for action type '{type(action).__name__}'"
            ) from exc

    def list_handlers(self) -> Iterable[ActionHandler]:
        """Return all registered handlers."""

        return list(self._handlers.values())

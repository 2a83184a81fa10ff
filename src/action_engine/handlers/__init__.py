"""Action handlers executed by the runner."""

from action_engine.handlers.base import ActionExecutionError, ActionHandler
from action_engine.handlers.builtins import build_default_handler_registry
from action_engine.handlers.files import FileHandler, ImportHandler
from action_engine.handlers.process import ShellLauncher
from action_engine.handlers.registry import (
    HandlerNotFoundError,
    HandlerRegistrationError,
    HandlerRegistry,
    HandlerRegistryError,
)
from action_engine.handlers.shell import ShellHandler, is_long_running

__all__ = [
    "ActionExecutionError",
    "ActionHandler",
    "FileHandler",
    "HandlerNotFoundError",
    "HandlerRegistrationError",
    "HandlerRegistry",
    "HandlerRegistryError",
    "ImportHandler",
    "ShellHandler",
    "ShellLauncher",
    "build_default_handler_registry",
    "is_long_running",
]

"""Sandbox capability interface consumed by action handlers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator


class SandboxError(RuntimeError):
    """Raised when the sandbox cannot perform an operation."""


class SandboxPathError(SandboxError, ValueError):
    """Raised when a path escapes the sandbox root."""


class SandboxProcess(ABC):
    """A process spawned inside the sandbox."""

    @property
    @abstractmethod
    def pid(self) -> int | None:
        """Return the process identifier when known."""

    @abstractmethod
    def output(self) -> AsyncIterator[str]:
        """Yield decoded output chunks (stdout and stderr) until the process ends."""

    @abstractmethod
    async def wait(self) -> int:
        """Wait for the process to exit and return its exit code."""

    @abstractmethod
    def kill(self) -> None:
        """Request termination of the process. Safe to call after exit."""


class SandboxFileSystem(ABC):
    """Asynchronous file system of the sandbox."""

    @abstractmethod
    async def mkdir(self, path: str, *, recursive: bool = False) -> None:
        """Create a directory.

        Args:
            path: Directory path inside the sandbox.
            recursive: Create missing parents and tolerate existing directories.
        """

    @abstractmethod
    async def write_file(self, path: str, content: str) -> None:
        """Write text content, replacing any existing file."""

    @abstractmethod
    async def read_file(self, path: str) -> str:
        """Read text content from a file."""


class Sandbox(ABC):
    """Process and file system capabilities shared by every action runner."""

    @property
    @abstractmethod
    def fs(self) -> SandboxFileSystem:
        """Return the sandbox file system."""

    @abstractmethod
    async def spawn(
        self,
        program: str,
        args: list[str],
        env: dict[str, str] | None = None,
    ) -> SandboxProcess:
        """Start a process inside the sandbox.

        Args:
            program: Executable to run.
            args: Arguments passed to the executable.
            env: Extra environment variables for the process.

        Returns:
            Handle to the running process.
        """

    async def close(self) -> None:
        """Release sandbox resources. The default implementation does nothing."""

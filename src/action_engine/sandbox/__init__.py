"""Sandbox interface and implementations."""

from action_engine.sandbox.base import (
    Sandbox,
    SandboxError,
    SandboxFileSystem,
    SandboxPathError,
    SandboxProcess,
)
from action_engine.sandbox.docker import DockerSandbox
from action_engine.sandbox.local import LocalFileSystem, LocalProcess, LocalSandbox

__all__ = [
    "DockerSandbox",
    "LocalFileSystem",
    "LocalProcess",
    "LocalSandbox",
    "Sandbox",
    "SandboxError",
    "SandboxFileSystem",
    "SandboxPathError",
    "SandboxProcess",
]

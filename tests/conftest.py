"""Shared test fixtures and in-memory sandbox fakes."""

from __future__ import annotations

import asyncio
import posixpath
from typing import AsyncIterator

import pytest

from action_engine.sandbox.base import Sandbox, SandboxFileSystem, SandboxProcess


class FakeProcess(SandboxProcess):
    def __init__(
        self,
        command: str,
        *,
        exit_code: int = 0,
        chunks: tuple[str, ...] = (),
        hang: bool = False,
        delay_s: float = 0.0,
    ) -> None:
        self.command = command
        self.killed = False
        self._exit_code = exit_code
        self._chunks = chunks
        self._hang = hang
        self._delay_s = delay_s
        self._done = asyncio.Event()
        if not hang and not delay_s:
            self._done.set()

    @property
    def pid(self) -> int | None:
        return 4242

    @property
    def finished(self) -> bool:
        return self._done.is_set()

    async def output(self) -> AsyncIterator[str]:
        for chunk in self._chunks:
            yield chunk

    async def wait(self) -> int:
        if self._delay_s and not self._done.is_set():
            try:
                await asyncio.wait_for(self._done.wait(), timeout=self._delay_s)
            except asyncio.TimeoutError:
                self._done.set()
        await self._done.wait()
        return self._exit_code

    def kill(self) -> None:
        if self._done.is_set():
            return
        self.killed = True
        self._exit_code = -9
        self._done.set()


class InMemoryFileSystem(SandboxFileSystem):
    def __init__(self) -> None:
        self.files: dict[str, str] = {}
        self.directories: set[str] = {"/"}
        self.operations: list[tuple[str, str]] = []
        self.fail_mkdir: set[str] = set()
        self.fail_write: set[str] = set()

    async def mkdir(self, path: str, *, recursive: bool = False) -> None:
        await asyncio.sleep(0)
        path = self._absolute(path)
        if path in self.fail_mkdir:
            raise OSError(f"mkdir failed for {path}")
        self.operations.append(("mkdir", path))
        if recursive:
            current = path
            while current not in self.directories:
                self.directories.add(current)
                current = posixpath.dirname(current)
        else:
            if posixpath.dirname(path) not in self.directories:
                raise FileNotFoundError(path)
            self.directories.add(path)

    async def write_file(self, path: str, content: str) -> None:
        await asyncio.sleep(0)
        path = self._absolute(path)
        if path in self.fail_write:
            raise OSError(f"write failed for {path}")
        if posixpath.dirname(path) not in self.directories:
            raise FileNotFoundError(path)
        self.operations.append(("write", path))
        self.files[path] = content

    async def read_file(self, path: str) -> str:
        return self.files[self._absolute(path)]

    def _absolute(self, path: str) -> str:
        if path.startswith("/"):
            return posixpath.normpath(path)
        return posixpath.normpath(posixpath.join("/home/project", path))


class FakeSandbox(Sandbox):
    def __init__(self) -> None:
        self._fs = InMemoryFileSystem()
        self._fs.directories.update({"/home", "/home/project"})
        self.spawned: list[tuple[str, list[str], dict[str, str] | None]] = []
        self.processes: list[FakeProcess] = []
        self.exit_codes: dict[str, int] = {}
        self.hanging: set[str] = set()
        self.delays: dict[str, float] = {}
        self.outputs: dict[str, tuple[str, ...]] = {}

    @property
    def fs(self) -> InMemoryFileSystem:
        return self._fs

    async def spawn(
        self,
        program: str,
        args: list[str],
        env: dict[str, str] | None = None,
    ) -> FakeProcess:
        await asyncio.sleep(0)
        command = args[-1] if args else program
        self.spawned.append((program, list(args), env))
        process = FakeProcess(
            command,
            exit_code=self.exit_codes.get(command, 0),
            chunks=self.outputs.get(command, ()),
            hang=command in self.hanging,
            delay_s=self.delays.get(command, 0.0),
        )
        self.processes.append(process)
        return process

    @property
    def commands(self) -> list[str]:
        return [process.command for process in self.processes]

    async def close(self) -> None:
        for process in self.processes:
            process.kill()


@pytest.fixture
def fake_sandbox() -> FakeSandbox:
    return FakeSandbox()

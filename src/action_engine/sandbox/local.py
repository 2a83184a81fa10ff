"""Sandbox backed by a host directory and local processes."""

from __future__ import annotations

import asyncio
import contextlib
import os
import posixpath
import signal
from pathlib import Path, PurePosixPath
from typing import AsyncIterator, Callable

from action_engine.sandbox.base import (
    Sandbox,
    SandboxError,
    SandboxFileSystem,
    SandboxPathError,
    SandboxProcess,
)
from action_engine.util.logging import get_logger

DEFAULT_WORKDIR = "/home/project"
_READ_CHUNK_SIZE = 4096


class LocalFileSystem(SandboxFileSystem):
    """Map sandbox paths under ``workdir`` onto a host directory."""

    def __init__(self, root: Path, workdir: str = DEFAULT_WORKDIR) -> None:
        """Initialize the file system.

        Args:
            root: Host directory that backs the sandbox workdir.
            workdir: Absolute sandbox path that corresponds to ``root``.
        """

        self._root = root.resolve()
        self._workdir = PurePosixPath(posixpath.normpath(workdir))

    @property
    def root(self) -> Path:
        """Return the host directory backing the sandbox."""

        return self._root

    async def mkdir(self, path: str, *, recursive: bool = False) -> None:
        resolved = self.resolve(path)
        await asyncio.to_thread(resolved.mkdir, parents=recursive, exist_ok=recursive)

    async def write_file(self, path: str, content: str) -> None:
        resolved = self.resolve(path)
        await asyncio.to_thread(resolved.write_text, content, encoding="utf-8")

    async def read_file(self, path: str) -> str:
        resolved = self.resolve(path)
        return await asyncio.to_thread(resolved.read_text, encoding="utf-8")

    def resolve(self, path: str) -> Path:
        """Resolve a sandbox path to a host path inside the root.

        Args:
            path: Absolute path under the workdir, or a path relative to it.

        Raises:
            SandboxPathError: If the path points outside the sandbox root.
        """

        sandbox_path = PurePosixPath(path)
        if sandbox_path.is_absolute():
            try:
                sandbox_path = sandbox_path.relative_to(self._workdir)
            except ValueError as exc:
                raise SandboxPathError(
                    f"Path '{path}' is outside the sandbox workdir {self._workdir}"
                ) from exc
        candidate = (self._root / Path(*sandbox_path.parts)).resolve()
        if not candidate.is_relative_to(self._root):
            raise SandboxPathError(f"Path '{path}' escapes sandbox root")
        return candidate


class LocalProcess(SandboxProcess):
    """Wrap an asyncio subprocess started in its own process group."""

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        on_kill: Callable[[], None] | None = None,
    ) -> None:
        self._process = process
        self._on_kill = on_kill
        self._killed = False

    @property
    def pid(self) -> int | None:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        """Return the exit code once the process has finished."""

        return self._process.returncode

    async def output(self) -> AsyncIterator[str]:
        stream = self._process.stdout
        if stream is None:
            return
        while True:
            chunk = await stream.read(_READ_CHUNK_SIZE)
            if not chunk:
                break
            yield chunk.decode("utf-8", errors="replace")

    async def wait(self) -> int:
        return await self._process.wait()

    def kill(self) -> None:
        if self._killed or self._process.returncode is not None:
            return
        self._killed = True
        if self._on_kill is not None:
            self._on_kill()
        try:
            os.killpg(self._process.pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            with contextlib.suppress(ProcessLookupError):
                self._process.kill()


class LocalSandbox(Sandbox):
    """Run processes on the host inside a workspace directory."""

    def __init__(
        self,
        root: Path,
        workdir: str = DEFAULT_WORKDIR,
        env: dict[str, str] | None = None,
    ) -> None:
        """Initialize the sandbox.

        Args:
            root: Host directory used as the sandbox workdir.
            workdir: Absolute sandbox path mapped onto ``root``.
            env: Environment variables added to every spawned process.
        """

        self._fs = LocalFileSystem(root, workdir)
        self._env = dict(env or {})
        self._processes: set[LocalProcess] = set()
        self._logger = get_logger(self.__class__.__name__)

    @property
    def fs(self) -> LocalFileSystem:
        return self._fs

    @property
    def root(self) -> Path:
        """Return the host directory backing the sandbox."""

        return self._fs.root

    @property
    def processes(self) -> frozenset[LocalProcess]:
        """Return tracked processes; exited ones are dropped at the next spawn."""

        return frozenset(self._processes)

    async def spawn(
        self,
        program: str,
        args: list[str],
        env: dict[str, str] | None = None,
    ) -> LocalProcess:
        command = self.build_command(program, args, env)
        merged_env = os.environ.copy()
        merged_env.update(self._env)
        if env:
            merged_env.update(env)
        await asyncio.to_thread(self.root.mkdir, parents=True, exist_ok=True)
        self._logger.debug("Spawning %s in %s", command, self.root)
        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(self.root),
                env=merged_env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                start_new_session=True,
            )
        except OSError as exc:
            raise SandboxError(f"Failed to spawn {command[0]}: {exc}") from exc
        handle = LocalProcess(process, on_kill=self.kill_hook(command))
        self._processes = {item for item in self._processes if item.returncode is None}
        self._processes.add(handle)
        return handle

    def build_command(
        self,
        program: str,
        args: list[str],
        env: dict[str, str] | None,
    ) -> list[str]:
        """Return the host command line used to start a process."""

        return [program, *args]

    def kill_hook(self, command: list[str]) -> Callable[[], None] | None:
        """Return an extra callback run when a process is killed."""

        return None

    async def close(self) -> None:
        """Kill processes that are still running and wait for them."""

        processes, self._processes = self._processes, set()
        for process in processes:
            if process.returncode is None:
                self._logger.info("Stopping background process %s", process.pid)
                process.kill()
        for process in processes:
            with contextlib.suppress(ProcessLookupError):
                await process.wait()

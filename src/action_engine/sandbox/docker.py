"""Docker-backed sandbox sharing its file system with a host directory."""

from __future__ import annotations

import asyncio
import subprocess
import uuid
from pathlib import Path
from typing import Callable

from action_engine.sandbox.local import DEFAULT_WORKDIR, LocalSandbox


class DockerSandbox(LocalSandbox):
    """Run processes in throwaway containers with the workspace bind-mounted.

    File operations go straight to the host directory, which the container
    sees at ``workdir``.
    """

    def __init__(
        self,
        root: Path,
        image: str,
        workdir: str = DEFAULT_WORKDIR,
        env: dict[str, str] | None = None,
        docker_binary: str = "docker",
    ) -> None:
        """Initialize the sandbox.

        Args:
            root: Host directory to bind-mount into each container.
            image: Docker image to run.
            workdir: Mount point and working directory inside the container.
            env: Environment variables passed to every container.
            docker_binary: Docker CLI executable.
        """

        super().__init__(root, workdir=workdir)
        self._image = image
        self._workdir = workdir
        self._container_env = dict(env or {})
        self._docker_binary = docker_binary
        self._kills: set[asyncio.Task[None]] = set()

    def build_command(
        self,
        program: str,
        args: list[str],
        env: dict[str, str] | None,
    ) -> list[str]:
        docker_command = [
            self._docker_binary,
            "run",
            "--rm",
            "-i",
            "--name",
            f"action-engine-{uuid.uuid4().hex[:12]}",
            "-v",
            f"{self.root}:{self._workdir}",
            "-w",
            self._workdir,
        ]
        for key, value in {**self._container_env, **(env or {})}.items():
            docker_command.extend(["-e", f"{key}={value}"])
        docker_command.append(self._image)
        docker_command.append(program)
        docker_command.extend(args)
        return docker_command

    def kill_hook(self, command: list[str]) -> Callable[[], None] | None:
        container_name = command[command.index("--name") + 1]

        def kill_container() -> None:
            # Killing the docker client alone leaves the container running.
            task = asyncio.get_running_loop().create_task(self._kill_container(container_name))
            self._kills.add(task)
            task.add_done_callback(self._kills.discard)

        return kill_container

    async def close(self) -> None:
        """Stop running containers and wait for pending ``docker kill`` calls."""

        await super().close()
        if self._kills:
            await asyncio.gather(*self._kills)

    async def _kill_container(self, container_name: str) -> None:
        try:
            completed = await asyncio.to_thread(
                subprocess.run,
                [self._docker_binary, "kill", container_name],
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as exc:
            self._logger.warning("docker kill %s failed: %s", container_name, exc)
            return
        if completed.returncode != 0:
            self._logger.warning(
                "docker kill %s exited with %s: %s",
                container_name,
                completed.returncode,
                completed.stderr.strip(),
            )

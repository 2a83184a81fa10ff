"""File and import action handlers."""

from __future__ import annotations

import posixpath

from action_engine.actions.cancellation import CancellationToken
from action_engine.actions.models import FileAction, ImportAction
from action_engine.handlers.base import ActionExecutionError, ActionHandler
from action_engine.handlers.process import ShellLauncher
from action_engine.sandbox.base import Sandbox, SandboxError
from action_engine.util.logging import get_logger


def strip_trailing_separators(path: str) -> str:
    """Remove trailing ``/`` characters while keeping the root directory."""

    stripped = path.rstrip("/")
    if not stripped and path.startswith("/"):
        return "/"
    return stripped


def parent_directory(path: str) -> str | None:
    """Return the directory that must exist before writing ``path``.

    Returns ``None`` when the file lives in the current directory.
    """

    folder = strip_trailing_separators(posixpath.dirname(path))
    if folder in ("", "."):
        return None
    return folder


class FileHandler(ActionHandler):
    """Write single files on a best-effort basis.

    Directory creation and write failures are logged and never fail the
    action, so one broken file does not hold up the rest of the artifact.
    """

    def __init__(self, sandbox: Sandbox) -> None:
        self._sandbox = sandbox
        self._logger = get_logger(self.__class__.__name__)

    @property
    def action_type(self) -> type[FileAction]:
        return FileAction

    async def execute(self, action: FileAction, token: CancellationToken) -> None:
        if token.cancelled:
            return
        fs = self._sandbox.fs
        folder = parent_directory(action.file_path)
        if folder is not None:
            try:
                await fs.mkdir(folder, recursive=True)
                self._logger.debug("Created folder %s", folder)
            except (OSError, SandboxError) as exc:
                self._logger.error("Failed to create folder %s: %s", folder, exc)

        if token.cancelled:
            return
        try:
            await fs.write_file(action.file_path, action.content)
            self._logger.debug("File written %s", action.file_path)
        except (OSError, SandboxError) as exc:
            self._logger.error("Failed to write file %s: %s", action.file_path, exc)


class ImportHandler(ActionHandler):
    """Write a batch of files, then run post-import commands.

    Unlike ``FileHandler`` every failure is fatal for the action. Files are
    written one after another and nothing is rolled back on failure.
    """

    def __init__(self, sandbox: Sandbox, launcher: ShellLauncher) -> None:
        self._sandbox = sandbox
        self._launcher = launcher
        self._logger = get_logger(self.__class__.__name__)

    @property
    def action_type(self) -> type[ImportAction]:
        return ImportAction

    async def execute(self, action: ImportAction, token: CancellationToken) -> None:
        self._logger.debug("Starting repository import")
        try:
            await self._write_files(action, token)
            await self._run_post_import_commands(action, token)
        except Exception as exc:
            self._logger.error("Repository import failed: %s", exc)
            raise
        if token.cancelled:
            self._logger.info("Repository import cancelled")
        else:
            self._logger.debug("Repository import completed successfully")

    async def _write_files(self, action: ImportAction, token: CancellationToken) -> None:
        fs = self._sandbox.fs
        folder = strip_trailing_separators(action.target_path) or "."
        if folder != ".":
            await fs.mkdir(folder, recursive=True)

        for imported in action.files:
            if token.cancelled:
                return
            file_path = imported.path if folder == "." else posixpath.join(folder, imported.path)
            file_dir = parent_directory(file_path)
            if file_dir is not None:
                await fs.mkdir(file_dir, recursive=True)
            await fs.write_file(file_path, imported.content)
            self._logger.debug("Imported file: %s", file_path)

    async def _run_post_import_commands(
        self, action: ImportAction, token: CancellationToken
    ) -> None:
        for command in action.post_import_commands:
            if token.cancelled:
                return
            process = await self._launcher.start(command)
            remove_callback = token.add_callback(process.kill)
            try:
                exit_code = await process.wait()
            finally:
                remove_callback()
            if token.cancelled:
                return
            if exit_code != 0:
                raise ActionExecutionError(f"Post-import command failed: {command}")

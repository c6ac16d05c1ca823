from __future__ import annotations

import logging
import shutil
import subprocess
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Protocol, TypeVar

from deskgate.core.exceptions import ExecutionFailure
from deskgate.core.models import (
    Action,
    ActionArgs,
    ActionExecutionResult,
    ActionType,
    CopyFileArgs,
    CreateDirectoryArgs,
    CreateFileArgs,
    DeleteFileArgs,
    MoveFileArgs,
    ReadFileArgs,
)

logger = logging.getLogger(__name__)

ArgsT = TypeVar("ArgsT", bound=ActionArgs)

_SUPPORTED_ENCODINGS = {"utf-8", "utf8"}
_TRASH_TIMEOUT_SECONDS = 15


class TrashRunner(Protocol):
    def move_to_trash(self, path: Path) -> bool: ...


class ShellTrashRunner:
    """Moves a file to the platform trash through the desktop's shell helper."""

    def __init__(self, platform: str | None = None):
        self._platform = platform or sys.platform

    def move_to_trash(self, path: Path) -> bool:
        for command in self._commands(path):
            try:
                process = subprocess.run(
                    command,
                    check=False,
                    capture_output=True,
                    text=True,
                    timeout=_TRASH_TIMEOUT_SECONDS,
                )
            except (OSError, subprocess.TimeoutExpired) as exc:
                logger.debug("trash helper %s unavailable: %s", command[0], exc)
                continue
            if process.returncode == 0:
                return True
            logger.debug(
                "trash helper %s failed: %s", command[0], process.stderr.strip()
            )
        return False

    def _commands(self, path: Path) -> list[list[str]]:
        target = str(path)
        if self._platform == "darwin":
            escaped = target.replace("\\", "\\\\").replace('"', '\\"')
            script = f'tell application "Finder" to move POSIX file "{escaped}" to trash'
            return [["osascript", "-e", script]]
        if self._platform.startswith("win"):
            quoted = target.replace("'", "''")
            script = (
                "Add-Type -AssemblyName Microsoft.VisualBasic; "
                "[Microsoft.VisualBasic.FileIO.FileSystem]::DeleteFile("
                f"'{quoted}', 'OnlyErrorDialogs', 'SendToRecycleBin')"
            )
            return [["powershell", "-NoProfile", "-Command", script]]
        if self._platform.startswith("linux"):
            return [["gio", "trash", target], ["gvfs-trash", target]]
        return []


class FilesystemAdapter:
    """Per-action-kind I/O primitives.

    Every primitive returns an ``ActionExecutionResult`` on success and raises
    ``ExecutionFailure`` tagged with the action id on any I/O error.
    """

    def __init__(self, trash: TrashRunner | None = None, use_trash: bool = True):
        self._trash = trash or ShellTrashRunner()
        self._use_trash = use_trash
        self._handlers: dict[ActionType, Callable[[Action], ActionExecutionResult]] = {
            ActionType.fs_create_file: self.create_file,
            ActionType.fs_read_file: self.read_file,
            ActionType.fs_copy_file: self.copy_file,
            ActionType.fs_move_file: self.move_file,
            ActionType.fs_delete_file: self.delete_file,
            ActionType.fs_create_directory: self.create_directory,
        }

    def execute(self, action: Action) -> ActionExecutionResult:
        missing = action.args.missing_paths()
        if missing:
            raise ExecutionFailure(
                f"Missing '{missing[0]}' argument: path has not been provided",
                action_id=action.id,
            )
        handler = self._handlers.get(action.type)
        if handler is None:
            raise ExecutionFailure(
                f"Unsupported action type: {action.type}", action_id=action.id
            )
        try:
            return handler(action)
        except ExecutionFailure:
            raise
        except Exception as exc:
            raise ExecutionFailure(
                f"Unexpected error during {action.type.value}: {exc}",
                action_id=action.id,
            ) from exc

    def create_file(self, action: Action) -> ActionExecutionResult:
        args = _expect(action, CreateFileArgs)
        if args.encoding.lower() not in _SUPPORTED_ENCODINGS:
            raise ExecutionFailure(
                f"Unsupported encoding: {args.encoding}", action_id=action.id
            )
        path = Path(args.path)
        _make_parents(path, action)
        try:
            data = args.content.encode("utf-8")
        except UnicodeEncodeError as exc:
            raise ExecutionFailure(
                f"Content is not valid UTF-8 text: {exc}", action_id=action.id
            ) from exc
        try:
            path.write_bytes(data)
        except OSError as exc:
            raise ExecutionFailure(
                f"Failed to create file: {exc}", action_id=action.id
            ) from exc
        return _success(action, {"path": args.path, "size": len(data)})

    def read_file(self, action: Action) -> ActionExecutionResult:
        args = _expect(action, ReadFileArgs)
        path = Path(args.path)
        if not path.exists():
            raise ExecutionFailure(f"File does not exist: {args.path}", action_id=action.id)
        if not path.is_file():
            raise ExecutionFailure(f"Path is not a file: {args.path}", action_id=action.id)
        try:
            contents = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ExecutionFailure(
                f"Failed to read file: {exc}", action_id=action.id
            ) from exc
        return _success(
            action,
            {"path": args.path, "content": contents, "size": len(contents.encode("utf-8"))},
        )

    def copy_file(self, action: Action) -> ActionExecutionResult:
        args = _expect(action, CopyFileArgs)
        source = Path(args.source_path)
        destination = Path(args.destination_path)
        if not source.exists():
            raise ExecutionFailure(
                f"Source file does not exist: {args.source_path}", action_id=action.id
            )
        if not source.is_file():
            raise ExecutionFailure(
                f"Source is not a file: {args.source_path}", action_id=action.id
            )
        _make_parents(destination, action)
        try:
            shutil.copy2(source, destination)
        except OSError as exc:
            raise ExecutionFailure(
                f"Failed to copy file: {exc}", action_id=action.id
            ) from exc
        return _success(
            action, {"source": args.source_path, "destination": args.destination_path}
        )

    def move_file(self, action: Action) -> ActionExecutionResult:
        args = _expect(action, MoveFileArgs)
        source = Path(args.source_path)
        destination = Path(args.destination_path)
        if not source.exists():
            raise ExecutionFailure(
                f"Source file does not exist: {args.source_path}", action_id=action.id
            )
        _make_parents(destination, action)
        try:
            source.rename(destination)
        except OSError as exc:
            raise ExecutionFailure(
                f"Failed to move file: {exc}", action_id=action.id
            ) from exc
        return _success(
            action, {"source": args.source_path, "destination": args.destination_path}
        )

    def delete_file(self, action: Action) -> ActionExecutionResult:
        args = _expect(action, DeleteFileArgs)
        path = Path(args.path)
        if not path.exists():
            raise ExecutionFailure(f"File does not exist: {args.path}", action_id=action.id)
        if not path.is_file():
            raise ExecutionFailure(f"Path is not a file: {args.path}", action_id=action.id)

        trashed = self._use_trash and self._trash.move_to_trash(path)
        if not trashed:
            if self._use_trash:
                logger.info("trash unavailable for %s, deleting permanently", args.path)
            try:
                path.unlink()
            except OSError as exc:
                raise ExecutionFailure(
                    f"Failed to delete file: {exc}", action_id=action.id
                ) from exc
        return _success(action, {"path": args.path, "deleted": True, "trashed": trashed})

    def create_directory(self, action: Action) -> ActionExecutionResult:
        args = _expect(action, CreateDirectoryArgs)
        try:
            Path(args.path).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ExecutionFailure(
                f"Failed to create directory: {exc}", action_id=action.id
            ) from exc
        return _success(action, {"path": args.path})


def _expect(action: Action, args_type: type[ArgsT]) -> ArgsT:
    if not isinstance(action.args, args_type):
        raise ExecutionFailure(
            f"action {action.id} has no {args_type.__name__} payload", action_id=action.id
        )
    return action.args


def _make_parents(path: Path, action: Action) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise ExecutionFailure(
            f"Failed to create parent directory: {exc}", action_id=action.id
        ) from exc


def _success(action: Action, output: dict) -> ActionExecutionResult:
    return ActionExecutionResult(action_id=action.id, success=True, output=output)

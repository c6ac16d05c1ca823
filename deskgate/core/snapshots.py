from __future__ import annotations

import logging
import shutil
import tempfile
import uuid
from collections.abc import Iterable
from pathlib import Path

from deskgate.core.exceptions import SnapshotFailure
from deskgate.core.models import (
    SNAPSHOT_RETENTION_SECONDS,
    ActionSnapshot,
    utc_timestamp,
)

logger = logging.getLogger(__name__)

SNAPSHOT_DIR_PREFIX = "deskgate-snapshots-"


class SnapshotManager:
    """Backs up single files into a private directory owned by one execution.

    Each ``execute`` call builds its own manager, so concurrent executions
    never share a directory. ``discard`` removes the directory; a manager
    whose snapshots back a completed plan is left in place so those snapshots
    can be restored until their retention lapses.
    """

    def __init__(
        self,
        root: Path | str | None = None,
        retention_seconds: int = SNAPSHOT_RETENTION_SECONDS,
    ):
        if root is not None:
            Path(root).mkdir(parents=True, exist_ok=True)
        try:
            self.directory = Path(tempfile.mkdtemp(prefix=SNAPSHOT_DIR_PREFIX, dir=root))
        except OSError as exc:
            raise SnapshotFailure(f"Failed to create temp directory: {exc}") from exc
        self.retention_seconds = retention_seconds

    def create_snapshot(self, action_id: str, original_path: Path | str) -> ActionSnapshot:
        original = Path(original_path)
        if not original.exists():
            raise SnapshotFailure("File does not exist, cannot create snapshot")
        if not original.is_file():
            raise SnapshotFailure("Path is not a file, cannot snapshot")

        snapshot_id = str(uuid.uuid4())
        snapshot_path = self.directory / snapshot_id
        try:
            shutil.copy2(original, snapshot_path)
        except OSError as exc:
            raise SnapshotFailure(f"Failed to copy file to snapshot: {exc}") from exc

        created_at = utc_timestamp()
        return ActionSnapshot(
            id=snapshot_id,
            action_id=action_id,
            original_path=str(original),
            snapshot_path=str(snapshot_path),
            created_at=created_at,
            retention_until=created_at + self.retention_seconds,
        )

    @staticmethod
    def restore_from_snapshot(snapshot: ActionSnapshot) -> None:
        """Copy the backed-up bytes over the original path; safe to repeat."""
        snapshot_path = Path(snapshot.snapshot_path)
        original = Path(snapshot.original_path)
        if not snapshot_path.is_file():
            raise SnapshotFailure(f"Snapshot file does not exist: {snapshot.id}")
        try:
            original.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise SnapshotFailure(f"Failed to create parent directory: {exc}") from exc
        try:
            shutil.copy2(snapshot_path, original)
        except OSError as exc:
            raise SnapshotFailure(f"Failed to restore from snapshot: {exc}") from exc

    @staticmethod
    def delete_snapshot(snapshot: ActionSnapshot) -> None:
        snapshot_path = Path(snapshot.snapshot_path)
        try:
            snapshot_path.unlink(missing_ok=True)
        except OSError as exc:
            raise SnapshotFailure(f"Failed to delete snapshot: {exc}") from exc

        directory = snapshot_path.parent
        if (
            directory.name.startswith(SNAPSHOT_DIR_PREFIX)
            and directory.is_dir()
            and not any(directory.iterdir())
        ):
            directory.rmdir()

    @classmethod
    def cleanup_expired(
        cls,
        snapshots: Iterable[ActionSnapshot],
        now: int | None = None,
    ) -> list[ActionSnapshot]:
        """Delete every snapshot whose retention has lapsed.

        Individual failures are logged and skipped; the purged snapshots are
        returned so the caller can drop their records.
        """
        now = utc_timestamp() if now is None else now
        cleaned: list[ActionSnapshot] = []
        for snapshot in snapshots:
            if snapshot.retention_until >= now:
                continue
            try:
                cls.delete_snapshot(snapshot)
            except (SnapshotFailure, OSError) as exc:
                logger.warning("Failed to delete expired snapshot %s: %s", snapshot.id, exc)
                continue
            cleaned.append(snapshot)
        return cleaned

    def discard(self) -> None:
        shutil.rmtree(self.directory, ignore_errors=True)

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Protocol

from deskgate.core.exceptions import NotFoundError
from deskgate.core.models import ActionSnapshot, AuditEntry


class HistoryStore(Protocol):
    """Narrow interface to the host database that owns audit and snapshot rows.

    Implementations must serialize "read last hash, then append" across the
    whole process (``append_chained``); the audit chain forks otherwise.
    """

    def get_last_hash(self) -> str: ...

    def append(self, entry: AuditEntry) -> None: ...

    def append_chained(self, build: Callable[[str], AuditEntry]) -> AuditEntry: ...

    def query_history(self, limit: int) -> list[AuditEntry]: ...

    def save_snapshot(self, snapshot: ActionSnapshot) -> None: ...

    def lookup_snapshot(self, action_id: str) -> ActionSnapshot | None: ...

    def list_snapshots(self) -> list[ActionSnapshot]: ...

    def delete_snapshot(self, snapshot_id: str) -> None: ...


class InMemoryHistoryStore:
    def __init__(self):
        self._entries: list[AuditEntry] = []
        self._snapshots: dict[str, ActionSnapshot] = {}
        self._lock = threading.RLock()

    def get_last_hash(self) -> str:
        with self._lock:
            if not self._entries:
                return ""
            return self._entries[-1].signature

    def append(self, entry: AuditEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def append_chained(self, build: Callable[[str], AuditEntry]) -> AuditEntry:
        with self._lock:
            entry = build(self.get_last_hash())
            self.append(entry)
            return entry

    def query_history(self, limit: int) -> list[AuditEntry]:
        """Newest first."""
        with self._lock:
            if limit < 1:
                return []
            return list(reversed(self._entries[-limit:]))

    def all_entries(self) -> list[AuditEntry]:
        """Oldest first, the order the chain is verified in."""
        with self._lock:
            return list(self._entries)

    def get_entry(self, entry_id: str) -> AuditEntry:
        with self._lock:
            for entry in self._entries:
                if entry.id == entry_id:
                    return entry
        raise NotFoundError(f"audit entry '{entry_id}' not found")

    def save_snapshot(self, snapshot: ActionSnapshot) -> None:
        with self._lock:
            self._snapshots[snapshot.id] = snapshot

    def lookup_snapshot(self, action_id: str) -> ActionSnapshot | None:
        with self._lock:
            matches = [
                snapshot
                for snapshot in self._snapshots.values()
                if snapshot.action_id == action_id
            ]
        if not matches:
            return None
        return max(matches, key=lambda snapshot: snapshot.created_at)

    def list_snapshots(self) -> list[ActionSnapshot]:
        with self._lock:
            return list(self._snapshots.values())

    def delete_snapshot(self, snapshot_id: str) -> None:
        with self._lock:
            self._snapshots.pop(snapshot_id, None)

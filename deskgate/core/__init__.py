from deskgate.core.audit import AuditBuilder
from deskgate.core.config import Settings, load_settings
from deskgate.core.executor import Executor
from deskgate.core.fs_adapter import FilesystemAdapter, ShellTrashRunner, TrashRunner
from deskgate.core.parser import parse_intent
from deskgate.core.policy import PolicyEngine, Scope
from deskgate.core.preview import preview_plan
from deskgate.core.snapshots import SnapshotManager
from deskgate.core.store import HistoryStore, InMemoryHistoryStore
from deskgate.core.verifier import verify_plan

__all__ = [
    "AuditBuilder",
    "Executor",
    "FilesystemAdapter",
    "HistoryStore",
    "InMemoryHistoryStore",
    "PolicyEngine",
    "Scope",
    "Settings",
    "ShellTrashRunner",
    "SnapshotManager",
    "TrashRunner",
    "load_settings",
    "parse_intent",
    "preview_plan",
    "verify_plan",
]

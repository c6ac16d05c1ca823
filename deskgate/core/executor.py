from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from deskgate.core.config import Settings
from deskgate.core.exceptions import (
    ExecutionFailure,
    NotFoundError,
    SnapshotFailure,
    ValidationFailure,
)
from deskgate.core.fs_adapter import FilesystemAdapter
from deskgate.core.models import (
    SNAPSHOT_RETENTION_SECONDS,
    Action,
    ActionExecutionResult,
    ActionPlan,
    ActionResult,
    ActionSnapshot,
    CapabilityToken,
    PlanStatus,
    utc_timestamp,
)
from deskgate.core.policy import PolicyEngine
from deskgate.core.snapshots import SnapshotManager
from deskgate.core.store import HistoryStore

logger = logging.getLogger(__name__)


class Executor:
    """Runs a plan's actions in order with snapshot-backed rollback.

    Only move and delete are snapshotted, so rollback restores those and
    nothing else: a file created earlier in a failed plan stays on disk.
    """

    def __init__(
        self,
        policy: PolicyEngine,
        adapter: FilesystemAdapter | None = None,
        store: HistoryStore | None = None,
        snapshot_root: Path | str | None = None,
        retention_seconds: int = SNAPSHOT_RETENTION_SECONDS,
    ):
        self.policy = policy
        self.adapter = adapter or FilesystemAdapter()
        self.store = store
        self.snapshot_root = snapshot_root
        self.retention_seconds = retention_seconds

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        policy: PolicyEngine,
        store: HistoryStore | None = None,
    ) -> Executor:
        return cls(
            policy=policy,
            adapter=FilesystemAdapter(use_trash=settings.use_trash),
            store=store,
            snapshot_root=settings.snapshot_root,
            retention_seconds=settings.snapshot_retention_seconds,
        )

    def execute(
        self,
        plan: ActionPlan,
        token: CapabilityToken | None = None,
    ) -> ActionResult:
        if token is not None:
            for action in plan.actions:
                self.policy.authorize_action(token, action)
        for action in plan.actions:
            missing = action.args.missing_paths()
            if missing:
                raise ValidationFailure(
                    f"Action {action.id} still needs '{missing[0]}' before execution",
                    code="PATH_REQUIRED",
                )

        manager = SnapshotManager(
            root=self.snapshot_root, retention_seconds=self.retention_seconds
        )
        keep_directory = False
        snapshots: list[ActionSnapshot] = []
        results: list[ActionExecutionResult] = []
        executed_at = utc_timestamp()
        try:
            for action in plan.actions:
                snapshot = None
                if action.type.needs_snapshot:
                    snapshot = self._take_snapshot(manager, action)
                    if snapshot is not None:
                        snapshots.append(snapshot)
                try:
                    result = self.adapter.execute(action)
                except Exception as exc:
                    error = exc if isinstance(exc, ExecutionFailure) else ExecutionFailure(
                        f"Unexpected error during {action.type.value}: {exc}",
                        action_id=action.id,
                    )
                    failure = self._rollback(plan, action, error, snapshots, results, executed_at)
                    keep_directory = bool(failure.rollback_errors)
                    raise failure from exc
                results.append(
                    result.model_copy(
                        update={"snapshot_id": snapshot.id if snapshot else None}
                    )
                )

            if snapshots:
                keep_directory = True
                if self.store is not None:
                    for snapshot in snapshots:
                        self.store.save_snapshot(snapshot)
        finally:
            if not keep_directory:
                manager.discard()

        return ActionResult(
            action_id=plan.id,
            success=True,
            status=PlanStatus.completed,
            executed_at=executed_at,
            results=results,
            undo_available=bool(snapshots),
            undo_ttl=utc_timestamp() + self.retention_seconds,
        )

    async def execute_async(
        self,
        plan: ActionPlan,
        token: CapabilityToken | None = None,
    ) -> ActionResult:
        # Adapter calls block; keep them off the event loop.
        return await asyncio.to_thread(self.execute, plan, token)

    def undo_action(self, action_id: str) -> ActionSnapshot:
        if self.store is None:
            raise NotFoundError("no snapshot store configured, undo unavailable")
        snapshot = self.store.lookup_snapshot(action_id)
        if snapshot is None:
            raise NotFoundError(f"no snapshot recorded for action '{action_id}'")
        if snapshot.retention_until < utc_timestamp():
            raise NotFoundError(f"undo window for action '{action_id}' has expired")
        SnapshotManager.restore_from_snapshot(snapshot)
        logger.info("restored %s from snapshot %s", snapshot.original_path, snapshot.id)
        return snapshot

    def cleanup_snapshots(self, now: int | None = None) -> int:
        if self.store is None:
            return 0
        cleaned = SnapshotManager.cleanup_expired(self.store.list_snapshots(), now=now)
        for snapshot in cleaned:
            self.store.delete_snapshot(snapshot.id)
        return len(cleaned)

    def _take_snapshot(
        self, manager: SnapshotManager, action: Action
    ) -> ActionSnapshot | None:
        target = Path(action.args.primary_path)
        if not target.exists():
            return None
        try:
            return manager.create_snapshot(action.id, target)
        except SnapshotFailure as exc:
            logger.warning(
                "Failed to create snapshot for action %s, continuing without undo: %s",
                action.id,
                exc.message,
            )
            return None

    def _rollback(
        self,
        plan: ActionPlan,
        action: Action,
        error: ExecutionFailure,
        snapshots: list[ActionSnapshot],
        results: list[ActionExecutionResult],
        executed_at: int,
    ) -> ExecutionFailure:
        """Restore snapshots newest first and build the aggregate error.

        A failed restore does not stop the others; every failure is reported.
        """
        logger.warning(
            "action %s of plan %s failed, rolling back %d snapshot(s)",
            action.id,
            plan.id,
            len(snapshots),
        )
        restored: list[str] = []
        rollback_errors: list[str] = []
        for snapshot in reversed(snapshots):
            try:
                SnapshotManager.restore_from_snapshot(snapshot)
            except SnapshotFailure as exc:
                logger.error("rollback of snapshot %s failed: %s", snapshot.id, exc.message)
                rollback_errors.append(f"{snapshot.original_path}: {exc.message}")
                continue
            restored.append(snapshot.id)

        if rollback_errors:
            message = (
                f"Action execution failed: {error.message}. Rollback incomplete: "
                + "; ".join(rollback_errors)
            )
        else:
            message = f"Action execution failed: {error.message}. All actions rolled back."

        failed_result = ActionExecutionResult(
            action_id=action.id, success=False, error=error.message
        )
        plan_result = ActionResult(
            action_id=plan.id,
            success=False,
            status=PlanStatus.rolled_back,
            executed_at=executed_at,
            results=[*results, failed_result],
            error=message,
        )
        return ExecutionFailure(
            message,
            action_id=action.id,
            rolled_back=tuple(restored),
            rollback_errors=tuple(rollback_errors),
            result=plan_result,
        )

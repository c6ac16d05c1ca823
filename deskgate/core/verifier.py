from __future__ import annotations

import os
from pathlib import Path

from deskgate.core.exceptions import PreconditionFailure, ValidationFailure
from deskgate.core.models import (
    Action,
    ActionPlan,
    ActionType,
    Precondition,
    RiskScore,
    VerifiedPlan,
    is_placeholder,
    utc_timestamp,
)
from deskgate.core.paths import normalize_path, validate_path

ACTION_RISK: dict[ActionType, RiskScore] = {
    ActionType.fs_create_file: RiskScore.low,
    ActionType.fs_read_file: RiskScore.low,
    ActionType.fs_create_directory: RiskScore.low,
    ActionType.fs_copy_file: RiskScore.medium,
    ActionType.fs_move_file: RiskScore.high,
    ActionType.fs_delete_file: RiskScore.high,
}


def fold_risk(current: float, action_type: ActionType) -> float:
    return min(1.0, current * 0.7 + ACTION_RISK[action_type].value * 0.3)


def verify_plan(plan: ActionPlan, home_dir: Path | None = None) -> VerifiedPlan:
    """Check every action in plan order and fold its weight into the plan risk.

    The first violation raises (``ValidationFailure`` or
    ``PreconditionFailure``); there is no aggregated report. Placeholder paths
    are tolerated and produce a note instead of a check.

    Concrete paths in the returned plan are absolute and free of ``..``, so
    scope checks and execution see the same path.
    """
    notes: list[str] = []
    risk_score = plan.risk_score
    actions: list[Action] = []

    for action in plan.actions:
        validate_action_type(action.type)

        normalized: dict[str, str] = {}
        for name, value in action.args.path_fields().items():
            if is_placeholder(value):
                notes.append(
                    f"Action {action.id} ({action.type.value}) needs '{name}' "
                    "before it can be executed"
                )
                continue
            validate_path(value, home_dir)
            normalized[name] = normalize_path(value, home_dir)
        if normalized:
            action = action.model_copy(
                update={"args": action.args.model_copy(update=normalized)}
            )
        actions.append(action)

        if action.preconditions is not None:
            check_preconditions(action, action.preconditions)

        risk_score = fold_risk(risk_score, action.type)

    band = RiskScore.from_value(risk_score)
    if band in {RiskScore.high, RiskScore.critical}:
        notes.append(f"Plan risk is {band.name} ({risk_score:.2f})")

    return VerifiedPlan(
        plan=plan.model_copy(update={"risk_score": risk_score, "actions": actions}),
        verified_at=utc_timestamp(),
        verification_notes=notes,
    )


def validate_action_type(action_type: ActionType) -> None:
    if action_type not in ACTION_RISK:
        raise ValidationFailure(f"Unsupported action type: {action_type}")


def check_preconditions(action: Action, preconditions: Precondition) -> None:
    target_str = action.args.precondition_target
    if is_placeholder(target_str):
        # Re-checked once the host has collected the path.
        return
    target = Path(target_str)

    if preconditions.exists is not None:
        exists = target.exists()
        if preconditions.exists and not exists:
            raise PreconditionFailure(
                f"Precondition failed: file should exist but doesn't: {target_str}"
            )
        if not preconditions.exists and exists:
            raise PreconditionFailure(
                f"Precondition failed: file should not exist but does: {target_str}"
            )

    if preconditions.directory is not None and target.exists():
        if target.is_dir() != preconditions.directory:
            expected = "a directory" if preconditions.directory else "not a directory"
            raise PreconditionFailure(
                f"Precondition failed: path should be {expected}: {target_str}"
            )
    elif preconditions.directory:
        raise PreconditionFailure(
            f"Precondition failed: directory does not exist: {target_str}"
        )

    if preconditions.readable is not None:
        readable = target.exists() and os.access(target, os.R_OK)
        if preconditions.readable and not readable:
            raise PreconditionFailure(
                f"Precondition failed: file not readable: {target_str}"
            )

    if preconditions.writable:
        parent = _nearest_existing_ancestor(target.parent)
        if parent is None or not os.access(parent, os.W_OK):
            raise PreconditionFailure(
                f"Precondition failed: directory not writable: {target_str}"
            )


def _nearest_existing_ancestor(path: Path) -> Path | None:
    for candidate in (path, *path.parents):
        if candidate.exists():
            return candidate
    return None

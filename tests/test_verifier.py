from __future__ import annotations

from pathlib import Path

import pytest

from deskgate.core.exceptions import PreconditionFailure, ValidationFailure
from deskgate.core.models import (
    PLACEHOLDER_PATH,
    Action,
    ActionOrigin,
    ActionPlan,
    ActionType,
    CreateDirectoryArgs,
    CreateFileArgs,
    DeleteFileArgs,
    MoveFileArgs,
    Precondition,
    ReadFileArgs,
    RiskScore,
)
from deskgate.core.parser import parse_intent
from deskgate.core.paths import validate_path
from deskgate.core.verifier import fold_risk, verify_plan


def _plan(*actions: Action, risk: float = RiskScore.low.value) -> ActionPlan:
    return ActionPlan(
        origin=ActionOrigin(user_input="test"),
        actions=list(actions),
        summary="test plan",
        risk_score=risk,
    )


def test_parsed_plan_with_resolvable_paths_verifies(tmp_path: Path):
    source = tmp_path / "report.txt"
    source.write_text("quarterly", encoding="utf-8")

    plan = parse_intent(f"copy {source} to {tmp_path / 'backup.txt'}", tmp_path)
    verified = verify_plan(plan, tmp_path)

    assert verified.plan.id == plan.id
    assert verified.verified_at > 0


def test_out_of_bounds_parent_references_are_rejected(tmp_path: Path):
    escape = "../" * 64 + "nope/secret.txt"
    plan = parse_intent(f"read {escape}", tmp_path)

    with pytest.raises(ValidationFailure):
        verify_plan(plan, tmp_path)


def test_one_high_risk_action_raises_low_plan_risk(tmp_path: Path):
    target = tmp_path / "old.log"
    target.write_text("x", encoding="utf-8")
    action = Action(type=ActionType.fs_delete_file, args=DeleteFileArgs(path=str(target)))

    verified = verify_plan(_plan(action), tmp_path)

    assert verified.plan.risk_score >= 0.15 * 0.7 + 0.8 * 0.3 - 1e-9
    assert verified.plan.risk_score == pytest.approx(0.345)


def test_risk_folds_once_per_action_in_order():
    assert fold_risk(0.15, ActionType.fs_create_file) == pytest.approx(0.15)
    assert fold_risk(1.0, ActionType.fs_delete_file) == pytest.approx(0.94)


def test_reverification_is_stable_in_shape(tmp_path: Path):
    action = Action(
        type=ActionType.fs_create_file,
        args=CreateFileArgs(path=str(tmp_path / "a.txt")),
    )
    plan = _plan(action)

    first = verify_plan(plan, tmp_path)
    second = verify_plan(plan, tmp_path)

    assert first.plan.risk_score == second.plan.risk_score
    assert plan.risk_score == RiskScore.low.value


def test_placeholder_paths_are_tolerated_and_noted(tmp_path: Path):
    action = Action(
        type=ActionType.fs_delete_file,
        args=DeleteFileArgs(path=PLACEHOLDER_PATH),
        preconditions=Precondition(exists=True),
    )

    verified = verify_plan(_plan(action, risk=RiskScore.high.value), tmp_path)

    assert any("needs 'path'" in note for note in verified.verification_notes)
    assert any("Plan risk is high" in note for note in verified.verification_notes)


def test_exists_precondition_fails_fast(tmp_path: Path):
    missing = Action(
        type=ActionType.fs_read_file,
        args=ReadFileArgs(path=str(tmp_path / "missing.txt")),
        preconditions=Precondition(exists=True, readable=True),
    )

    with pytest.raises(PreconditionFailure, match="should exist but doesn't"):
        verify_plan(_plan(missing), tmp_path)


def test_create_precondition_rejects_existing_target(tmp_path: Path):
    existing = tmp_path / "taken.txt"
    existing.write_text("", encoding="utf-8")
    action = Action(
        type=ActionType.fs_create_file,
        args=CreateFileArgs(path=str(existing)),
        preconditions=Precondition(writable=True, exists=False),
    )

    with pytest.raises(PreconditionFailure, match="should not exist but does"):
        verify_plan(_plan(action), tmp_path)


def test_directory_precondition(tmp_path: Path):
    (tmp_path / "dir").mkdir()
    action = Action(
        type=ActionType.fs_create_directory,
        args=CreateDirectoryArgs(path=str(tmp_path / "dir")),
        preconditions=Precondition(directory=False),
    )

    with pytest.raises(PreconditionFailure, match="not a directory"):
        verify_plan(_plan(action), tmp_path)


def test_writable_checks_nearest_existing_ancestor(tmp_path: Path):
    action = Action(
        type=ActionType.fs_create_file,
        args=CreateFileArgs(path=str(tmp_path / "a" / "b" / "c.txt")),
        preconditions=Precondition(writable=True, exists=False),
    )

    verify_plan(_plan(action), tmp_path)


def test_move_preconditions_target_the_source(tmp_path: Path):
    action = Action(
        type=ActionType.fs_move_file,
        args=MoveFileArgs(
            source_path=str(tmp_path / "gone.txt"),
            destination_path=str(tmp_path / "dest.txt"),
        ),
        preconditions=Precondition(exists=True),
    )

    with pytest.raises(PreconditionFailure, match="gone.txt"):
        verify_plan(_plan(action), tmp_path)


def test_args_must_match_action_type():
    with pytest.raises(ValueError):
        Action(type=ActionType.fs_move_file, args=ReadFileArgs(path="/tmp/a"))


def test_unknown_argument_keys_are_rejected():
    with pytest.raises(ValueError):
        Action.model_validate(
            {"type": "fs_read_file", "args": {"path": "/tmp/a", "mode": "rb"}}
        )


def test_validate_path_canonicalizes_existing_paths(tmp_path: Path):
    (tmp_path / "sub").mkdir()

    resolved = validate_path(str(tmp_path / "sub" / ".." / "sub"))

    assert resolved == (tmp_path / "sub").resolve()


def test_validate_path_rejects_climbing_past_root_for_new_paths():
    with pytest.raises(ValidationFailure, match="excessive parent"):
        validate_path("/deskgate-missing/../../etc/shadow-copy")


def test_validate_path_rejects_empty_and_nul():
    with pytest.raises(ValidationFailure):
        validate_path("")
    with pytest.raises(ValidationFailure):
        validate_path("/tmp/a\x00b")


def test_validate_path_expands_home(tmp_path: Path):
    (tmp_path / "notes.txt").write_text("", encoding="utf-8")

    assert validate_path("~/notes.txt", tmp_path) == (tmp_path / "notes.txt").resolve()


def test_verified_plan_carries_folded_paths(tmp_path: Path):
    (tmp_path / "inbox").mkdir()
    action = Action(
        type=ActionType.fs_create_file,
        args=CreateFileArgs(path=str(tmp_path / "inbox" / ".." / "new.txt")),
    )
    plan = _plan(action)

    verified = verify_plan(plan, tmp_path)

    assert verified.plan.actions[0].args.path == str(tmp_path / "new.txt")
    assert verified.plan.actions[0].id == action.id
    assert plan.actions[0].args.path == str(tmp_path / "inbox" / ".." / "new.txt")

from __future__ import annotations

from pathlib import Path

from deskgate.core.models import (
    Action,
    ActionPlan,
    ActionType,
    AffectedItem,
    CreateFileArgs,
    PreviewResult,
    is_placeholder,
)
from deskgate.core.verifier import verify_plan

CONFIRMATION_RISK_THRESHOLD = 0.7

_MISSING_LABELS = {
    "path": "[Path needed]",
    "source_path": "[Source path needed]",
    "destination_path": "[Destination path needed]",
}


def preview_plan(
    plan: ActionPlan,
    home_dir: Path | None = None,
    max_chars: int = 200,
) -> PreviewResult:
    """Read-only projection of what executing ``plan`` would touch.

    Runs the verifier first, so an invalid plan raises instead of previewing.
    """
    verified = verify_plan(plan, home_dir)
    risk_score = verified.plan.risk_score

    affected_items: list[AffectedItem] = []
    missing_paths: list[str] = []
    for action in verified.plan.actions:
        if action.args.missing_paths():
            missing_paths.append(action.id)
        affected_items.extend(_affected_items(action, max_chars))

    requires_explicit_confirmation = (
        risk_score > CONFIRMATION_RISK_THRESHOLD
        or any(action.type == ActionType.fs_delete_file for action in plan.actions)
        or bool(missing_paths)
    )

    return PreviewResult(
        plan=plan,
        risk_score=risk_score,
        affected_items=affected_items,
        warnings=list(verified.verification_notes),
        requires_explicit_confirmation=requires_explicit_confirmation,
        missing_paths=missing_paths,
    )


def _affected_items(action: Action, max_chars: int) -> list[AffectedItem]:
    items = []
    for name, value in action.args.path_fields().items():
        # The source of a copy is only read; its read action already lists it.
        if action.type == ActionType.fs_copy_file and name == "source_path":
            if not is_placeholder(value):
                continue
        items.append(
            AffectedItem(
                path=_MISSING_LABELS[name] if is_placeholder(value) else value,
                operation=action.type.value,
                preview=_content_preview(action, max_chars),
            )
        )
    return items


def _content_preview(action: Action, max_chars: int) -> str | None:
    if not isinstance(action.args, CreateFileArgs):
        return None
    content = action.args.content
    if len(content) <= max_chars:
        return content
    return content[:max_chars] + "..."

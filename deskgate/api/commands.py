from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from deskgate.api.runtime import Runtime
from deskgate.core.audit import AuditBuilder
from deskgate.core.exceptions import ExecutionFailure, TokenInvalid, ValidationFailure
from deskgate.core.models import (
    ActionPlan,
    ActionResult,
    ActionSource,
    AuditEntry,
    CapabilityToken,
    CleanupResponse,
    IntegrityReport,
    MintTokenRequest,
    PreviewResult,
    UndoResponse,
    VerifiedPlan,
    is_placeholder,
)
from deskgate.core.parser import parse_intent
from deskgate.core.paths import expand_home
from deskgate.core.preview import preview_plan
from deskgate.core.verifier import verify_plan

logger = logging.getLogger(__name__)


def load_plan(payload: dict[str, Any] | str, home_dir: Path | None = None) -> ActionPlan:
    """Build an ActionPlan from untrusted input (an LLM planner, a UI draft).

    Malformed payloads surface as ``ValidationFailure``. A leading ``~`` in
    any concrete path is expanded against ``home_dir``.
    """
    try:
        if isinstance(payload, str):
            plan = ActionPlan.model_validate_json(payload)
        else:
            plan = ActionPlan.model_validate(payload)
    except ValidationError as exc:
        errors = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'plan'}: {error['msg']}"
            for error in exc.errors()
        )
        raise ValidationFailure(f"Invalid action plan: {errors}") from exc
    if home_dir is None:
        return plan
    return _expand_plan_paths(plan, home_dir)


def _expand_plan_paths(plan: ActionPlan, home_dir: Path) -> ActionPlan:
    actions = []
    for action in plan.actions:
        updates = {
            name: expand_home(value, home_dir)
            for name, value in action.args.path_fields().items()
            if not is_placeholder(value) and value.startswith("~")
        }
        if updates:
            action = action.model_copy(update={"args": action.args.model_copy(update=updates)})
        actions.append(action)
    return plan.model_copy(update={"actions": actions})


def parse(runtime: Runtime, user_input: str, source: ActionSource) -> ActionPlan:
    return parse_intent(user_input, home_dir=runtime.home_dir, source=source)


def plan_from_llm(runtime: Runtime, payload: dict[str, Any] | str) -> VerifiedPlan:
    plan = load_plan(payload, runtime.home_dir)
    return verify_plan(plan, runtime.home_dir)


def verify(runtime: Runtime, payload: dict[str, Any]) -> VerifiedPlan:
    return verify_plan(load_plan(payload, runtime.home_dir), runtime.home_dir)


def preview(runtime: Runtime, payload: dict[str, Any]) -> PreviewResult:
    return preview_plan(
        load_plan(payload, runtime.home_dir),
        runtime.home_dir,
        max_chars=runtime.settings.preview_max_chars,
    )


def execute_plan(
    runtime: Runtime,
    payload: dict[str, Any],
    capability_token: str | None = None,
) -> ActionResult:
    """Verify, authorize, execute and audit one plan.

    Failed executions are audited with their rolled-back result before the
    error propagates.
    """
    verified = verify(runtime, payload)
    token = _resolve_token(runtime, capability_token)
    plan = verified.plan
    try:
        result = runtime.executor.execute(plan, token)
    except ExecutionFailure as exc:
        if exc.result is not None:
            AuditBuilder.record(runtime.store, plan, exc.result)
        raise
    AuditBuilder.record(runtime.store, plan, result)
    logger.info(
        "plan %s completed with %d action(s), undo_available=%s",
        plan.id,
        len(result.results),
        result.undo_available,
    )
    return result


def _resolve_token(runtime: Runtime, capability_token: str | None) -> CapabilityToken | None:
    if capability_token:
        return runtime.policy.validate(capability_token)
    if runtime.settings.require_capability_token:
        raise TokenInvalid("capability token is required to execute plans")
    return None


def undo(runtime: Runtime, action_id: str) -> UndoResponse:
    snapshot = runtime.executor.undo_action(action_id)
    return UndoResponse(action_id=action_id, restored=[snapshot])


def mint_token(runtime: Runtime, request: MintTokenRequest) -> CapabilityToken:
    return runtime.policy.mint(
        scopes=request.scopes,
        ttl_seconds=request.ttl_seconds,
        session_id=request.session_id,
    )


def validate_token(runtime: Runtime, token: str) -> CapabilityToken:
    return runtime.policy.validate(token)


def revoke_token(runtime: Runtime, nonce: str) -> dict[str, Any]:
    runtime.policy.revoke(nonce)
    return {"nonce": nonce, "revoked": False}


def audit_history(runtime: Runtime, limit: int | None = None) -> list[AuditEntry]:
    return runtime.store.query_history(_normalize_limit(runtime, limit))


def verify_audit(runtime: Runtime, limit: int | None = None) -> IntegrityReport:
    window = runtime.store.query_history(
        _normalize_limit(runtime, limit or runtime.settings.history_max_limit)
    )
    return AuditBuilder.verify_chain(list(reversed(window)))


def cleanup_snapshots(runtime: Runtime) -> CleanupResponse:
    return CleanupResponse(cleaned=runtime.executor.cleanup_snapshots())


def _normalize_limit(runtime: Runtime, limit: int | None) -> int:
    if limit is None:
        return runtime.settings.history_default_limit
    return max(1, min(limit, runtime.settings.history_max_limit))

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Query

from deskgate.api import commands
from deskgate.api.runtime import Runtime
from deskgate.core.models import (
    ActionPlan,
    ActionResult,
    AuditEntry,
    CapabilityToken,
    CleanupResponse,
    ErrorResponse,
    ExecuteRequest,
    IntegrityReport,
    MintTokenRequest,
    ParseRequest,
    PlanRequest,
    PreviewResult,
    UndoResponse,
    ValidateTokenRequest,
    VerifiedPlan,
)


def build_contract_router(runtime: Runtime, prefix: str) -> APIRouter:
    router = APIRouter(prefix=prefix)

    @router.post(
        "/plans:parse",
        response_model=ActionPlan,
        responses={422: {"model": ErrorResponse}},
    )
    def parse_plan(payload: ParseRequest) -> ActionPlan:
        return commands.parse(runtime, payload.user_input, payload.source)

    @router.post(
        "/plans:plan_with_llm",
        response_model=VerifiedPlan,
        responses={400: {"model": ErrorResponse}},
    )
    def plan_with_llm(payload: PlanRequest) -> VerifiedPlan:
        return commands.plan_from_llm(runtime, payload.plan)

    @router.post(
        "/plans:verify",
        response_model=VerifiedPlan,
        responses={400: {"model": ErrorResponse}},
    )
    def verify_plan(payload: PlanRequest) -> VerifiedPlan:
        return commands.verify(runtime, payload.plan)

    @router.post(
        "/plans:preview",
        response_model=PreviewResult,
        responses={400: {"model": ErrorResponse}},
    )
    def preview_plan(payload: PlanRequest) -> PreviewResult:
        return commands.preview(runtime, payload.plan)

    @router.post(
        "/plans:execute",
        response_model=ActionResult,
        responses={
            400: {"model": ErrorResponse},
            401: {"model": ErrorResponse},
            403: {"model": ErrorResponse},
            500: {"model": ErrorResponse},
        },
    )
    def execute_plan(payload: ExecuteRequest) -> ActionResult:
        return commands.execute_plan(
            runtime,
            payload.plan,
            capability_token=payload.capability_token,
        )

    @router.post(
        "/actions/{action_id}:undo",
        response_model=UndoResponse,
        responses={404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    )
    def undo_action(action_id: str) -> UndoResponse:
        return commands.undo(runtime, action_id)

    @router.post(
        "/tokens",
        response_model=CapabilityToken,
        responses={400: {"model": ErrorResponse}},
    )
    def mint_token(payload: MintTokenRequest) -> CapabilityToken:
        return commands.mint_token(runtime, payload)

    @router.post(
        "/tokens:validate",
        response_model=CapabilityToken,
        responses={401: {"model": ErrorResponse}},
    )
    def validate_token(payload: ValidateTokenRequest) -> CapabilityToken:
        return commands.validate_token(runtime, payload.token)

    @router.post("/tokens/{nonce}:revoke", response_model=dict[str, Any])
    def revoke_token(nonce: str) -> dict[str, Any]:
        return commands.revoke_token(runtime, nonce)

    @router.get("/audit", response_model=list[AuditEntry])
    def audit_history(
        limit: int | None = Query(default=None, ge=1),
    ) -> list[AuditEntry]:
        return commands.audit_history(runtime, limit)

    @router.get("/audit:verify", response_model=IntegrityReport)
    def verify_audit(
        limit: int | None = Query(default=None, ge=1),
    ) -> IntegrityReport:
        return commands.verify_audit(runtime, limit)

    @router.post("/snapshots:cleanup", response_model=CleanupResponse)
    def cleanup_snapshots() -> CleanupResponse:
        return commands.cleanup_snapshots(runtime)

    return router

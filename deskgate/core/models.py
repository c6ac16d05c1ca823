from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum, StrEnum
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

PLACEHOLDER_PATH = "__PROMPT_PATH__"
SNAPSHOT_RETENTION_SECONDS = 7 * 24 * 60 * 60


def new_id() -> str:
    return str(uuid.uuid4())


def utc_timestamp() -> int:
    return int(datetime.now(UTC).timestamp())


def is_placeholder(value: str | None) -> bool:
    return value == PLACEHOLDER_PATH


class ActionType(StrEnum):
    fs_create_file = "fs_create_file"
    fs_read_file = "fs_read_file"
    fs_copy_file = "fs_copy_file"
    fs_move_file = "fs_move_file"
    fs_delete_file = "fs_delete_file"
    fs_create_directory = "fs_create_directory"

    @property
    def domain(self) -> str:
        return self.value.split("_", maxsplit=1)[0]

    @property
    def needs_snapshot(self) -> bool:
        return self in {ActionType.fs_move_file, ActionType.fs_delete_file}


class ActionSource(StrEnum):
    ui = "ui"
    voice = "voice"
    automation = "automation"
    plugin = "plugin"


class PlanStatus(StrEnum):
    parsed = "parsed"
    verified = "verified"
    authorized = "authorized"
    executing = "executing"
    completed = "completed"
    rolled_back = "rolled_back"
    failed = "failed"


class RiskScore(Enum):
    low = 0.15
    medium = 0.5
    high = 0.8
    critical = 0.95

    @classmethod
    def from_value(cls, value: float) -> RiskScore:
        if value < 0.3:
            return cls.low
        if value < 0.7:
            return cls.medium
        if value < 0.9:
            return cls.high
        return cls.critical


class ActionArgs(BaseModel):
    """Argument payload of one action kind.

    ``path_field_names`` lists the path-like arguments in priority order; the
    first one is the primary path used for permission checks and snapshots.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    path_field_names: ClassVar[tuple[str, ...]] = ("path",)
    precondition_field: ClassVar[str] = "path"

    def path_fields(self) -> dict[str, str]:
        return {name: getattr(self, name) for name in self.path_field_names}

    def concrete_paths(self) -> dict[str, str]:
        return {
            name: value
            for name, value in self.path_fields().items()
            if not is_placeholder(value)
        }

    def missing_paths(self) -> list[str]:
        return [
            name for name, value in self.path_fields().items() if is_placeholder(value)
        ]

    @property
    def primary_path(self) -> str:
        return getattr(self, self.path_field_names[0])

    @property
    def precondition_target(self) -> str:
        return getattr(self, self.precondition_field)


class CreateFileArgs(ActionArgs):
    path: str
    content: str = ""
    encoding: str = "utf-8"


class ReadFileArgs(ActionArgs):
    path: str


class CopyFileArgs(ActionArgs):
    path_field_names: ClassVar[tuple[str, ...]] = ("source_path", "destination_path")
    precondition_field: ClassVar[str] = "destination_path"

    source_path: str
    destination_path: str


class MoveFileArgs(ActionArgs):
    path_field_names: ClassVar[tuple[str, ...]] = ("source_path", "destination_path")
    precondition_field: ClassVar[str] = "source_path"

    source_path: str
    destination_path: str


class DeleteFileArgs(ActionArgs):
    path: str


class CreateDirectoryArgs(ActionArgs):
    path: str


ARGS_BY_TYPE: dict[ActionType, type[ActionArgs]] = {
    ActionType.fs_create_file: CreateFileArgs,
    ActionType.fs_read_file: ReadFileArgs,
    ActionType.fs_copy_file: CopyFileArgs,
    ActionType.fs_move_file: MoveFileArgs,
    ActionType.fs_delete_file: DeleteFileArgs,
    ActionType.fs_create_directory: CreateDirectoryArgs,
}


class Precondition(BaseModel):
    model_config = ConfigDict(frozen=True)

    writable: bool | None = None
    readable: bool | None = None
    exists: bool | None = None
    directory: bool | None = None


class ActionMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    confidence: float | None = Field(default=None, ge=0.0, le=1.0)


class Action(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    type: ActionType
    args: (
        CreateFileArgs
        | ReadFileArgs
        | CopyFileArgs
        | MoveFileArgs
        | DeleteFileArgs
        | CreateDirectoryArgs
    )
    preconditions: Precondition | None = None
    metadata: ActionMetadata | None = None

    @model_validator(mode="before")
    @classmethod
    def coerce_args(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        raw_args = data.get("args")
        if raw_args is None or isinstance(raw_args, ActionArgs):
            return data
        try:
            action_type = ActionType(data.get("type"))
        except ValueError:
            return data
        return {**data, "args": ARGS_BY_TYPE[action_type].model_validate(raw_args)}

    @model_validator(mode="after")
    def check_args_kind(self) -> Action:
        expected = ARGS_BY_TYPE[self.type]
        if type(self.args) is not expected:
            msg = (
                f"args of type '{type(self.args).__name__}' do not match "
                f"action type '{self.type.value}'"
            )
            raise ValueError(msg)
        return self

    @property
    def confidence(self) -> float | None:
        if self.metadata is None:
            return None
        return self.metadata.confidence


class ActionOrigin(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_input: str
    source: ActionSource = ActionSource.ui
    request_id: str = Field(default_factory=new_id)


class ActionPlan(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    origin: ActionOrigin
    actions: list[Action]
    summary: str
    risk_score: float = Field(ge=0.0, le=1.0)
    dry_run: bool = True

    @model_validator(mode="after")
    def check_unique_action_ids(self) -> ActionPlan:
        ids = [action.id for action in self.actions]
        if len(ids) != len(set(ids)):
            raise ValueError("action ids must be unique within a plan")
        return self


class VerifiedPlan(BaseModel):
    """Output of the verifier; callers should not build one by hand."""

    model_config = ConfigDict(frozen=True)

    plan: ActionPlan
    verified_at: int
    verification_notes: list[str] = Field(default_factory=list)


class ActionSnapshot(BaseModel):
    id: str
    action_id: str
    original_path: str
    snapshot_path: str
    created_at: int
    retention_until: int


class CapabilityToken(BaseModel):
    nonce: str
    scopes: list[str]
    ttl_seconds: int
    session_id: str
    issued_at: int
    expires_at: int
    token: str | None = None


class ActionExecutionResult(BaseModel):
    action_id: str
    success: bool
    output: dict[str, Any] | None = None
    error: str | None = None
    snapshot_id: str | None = None


class ActionResult(BaseModel):
    action_id: str
    success: bool
    status: PlanStatus
    executed_at: int
    results: list[ActionExecutionResult] = Field(default_factory=list)
    error: str | None = None
    undo_available: bool = False
    undo_ttl: int | None = None


class AffectedItem(BaseModel):
    path: str
    operation: str
    preview: str | None = None


class PreviewResult(BaseModel):
    plan: ActionPlan
    risk_score: float
    affected_items: list[AffectedItem] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    requires_explicit_confirmation: bool
    missing_paths: list[str] = Field(default_factory=list)


class AuditEntry(BaseModel):
    id: str
    entry_json: str
    timestamp: int
    prev_hash: str
    signature: str
    action_id: str | None = None


class ParseRequest(BaseModel):
    user_input: str
    source: ActionSource = ActionSource.ui


class PlanRequest(BaseModel):
    plan: dict[str, Any]


class ExecuteRequest(BaseModel):
    plan: dict[str, Any]
    capability_token: str | None = None


class MintTokenRequest(BaseModel):
    scopes: list[str]
    session_id: str
    ttl_seconds: int | None = Field(default=None, ge=1)


class ValidateTokenRequest(BaseModel):
    token: str


class UndoResponse(BaseModel):
    action_id: str
    restored: list[ActionSnapshot] = Field(default_factory=list)


class CleanupResponse(BaseModel):
    cleaned: int


class IntegrityReport(BaseModel):
    valid: bool
    checked: int
    broken_at: str | None = None


class ErrorDetail(BaseModel):
    code: str
    message: str


class ErrorResponse(BaseModel):
    error: ErrorDetail

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from deskgate.core.models import ActionResult


@dataclass(frozen=True)
class ErrorPayload:
    code: str
    message: str


class APIError(Exception):
    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.payload = ErrorPayload(code=code, message=message)

    @property
    def message(self) -> str:
        return self.payload.message


class NotFoundError(APIError):
    def __init__(self, message: str):
        super().__init__(status_code=404, code="NOT_FOUND", message=message)


class ParseFailure(APIError):
    """No deterministic rule matched; callers fall back to an LLM planner."""

    def __init__(
        self,
        message: str = (
            "Could not parse intent. Please use LLM planner for complex requests."
        ),
    ):
        super().__init__(status_code=422, code="PARSE_FAILURE", message=message)


class ValidationFailure(APIError):
    def __init__(self, message: str, code: str = "VALIDATION_FAILURE"):
        super().__init__(status_code=400, code=code, message=message)


class PreconditionFailure(ValidationFailure):
    def __init__(self, message: str):
        super().__init__(message, code="PRECONDITION_FAILURE")


class PermissionDenied(APIError):
    def __init__(self, message: str = "permission denied"):
        super().__init__(status_code=403, code="PERMISSION_DENIED", message=message)


class TokenInvalid(APIError):
    def __init__(self, message: str = "invalid capability token", code: str = "TOKEN_INVALID"):
        super().__init__(status_code=401, code=code, message=message)


class TokenExpired(TokenInvalid):
    def __init__(self, message: str = "Token has expired"):
        super().__init__(message, code="TOKEN_EXPIRED")


class SnapshotFailure(APIError):
    def __init__(self, message: str):
        super().__init__(status_code=500, code="SNAPSHOT_FAILURE", message=message)


class ExecutionFailure(APIError):
    def __init__(
        self,
        message: str,
        action_id: str | None = None,
        rolled_back: tuple[str, ...] = (),
        rollback_errors: tuple[str, ...] = (),
        result: ActionResult | None = None,
    ):
        super().__init__(status_code=500, code="EXECUTION_FAILURE", message=message)
        self.action_id = action_id
        self.rolled_back = rolled_back
        self.rollback_errors = rollback_errors
        self.result = result

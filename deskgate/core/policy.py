from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import logging
import os
import re
import secrets
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from functools import lru_cache

from deskgate.core.config import Settings
from deskgate.core.exceptions import (
    PermissionDenied,
    TokenExpired,
    TokenInvalid,
    ValidationFailure,
)
from deskgate.core.models import Action, CapabilityToken

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class Scope:
    """One ``domain:operation:resource_glob`` grant, e.g. ``fs:*:/home/me/*``."""

    domain: str
    operation: str
    resource_pattern: str

    @classmethod
    def parse(cls, raw: str) -> Scope:
        parts = raw.split(":")
        if len(parts) < 3:
            raise ValueError(
                "Invalid scope format. Expected: domain:operation:resource_pattern"
            )
        # Resources may themselves contain ':' (drive letters).
        return cls(
            domain=parts[0],
            operation=parts[1],
            resource_pattern=":".join(parts[2:]),
        )

    def matches(self, domain: str, resource: str) -> bool:
        if self.domain != domain:
            return False
        return _compile_glob(self.resource_pattern).fullmatch(resource) is not None


@lru_cache(maxsize=256)
def _compile_glob(pattern: str) -> re.Pattern[str]:
    return re.compile(".*".join(re.escape(chunk) for chunk in pattern.split("*")))


class PolicyEngine:
    def __init__(
        self,
        secret: str | bytes,
        default_ttl_seconds: int = 300,
        clock: Clock | None = None,
    ):
        if not secret:
            raise ValueError("token secret must not be empty")
        self._secret = secret.encode("utf-8") if isinstance(secret, str) else secret
        self.default_ttl_seconds = default_ttl_seconds
        self._clock = clock or time.time

    @classmethod
    def from_settings(cls, settings: Settings) -> PolicyEngine:
        secret = settings.token_secret
        if secret is None:
            logger.info("no token secret configured, using an ephemeral per-process secret")
            secret = secrets.token_urlsafe(32)
        return cls(secret=secret, default_ttl_seconds=settings.default_token_ttl_seconds)

    def now(self) -> int:
        return int(self._clock())

    def mint(
        self,
        scopes: list[str],
        ttl_seconds: int | None,
        session_id: str,
    ) -> CapabilityToken:
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        if ttl < 0:
            raise ValidationFailure("ttl_seconds must be >= 0")
        if not session_id.strip():
            raise ValidationFailure("session_id is required")
        for scope in scopes:
            try:
                Scope.parse(scope)
            except ValueError as exc:
                raise ValidationFailure(f"{exc}: '{scope}'", code="INVALID_SCOPE") from exc

        issued_at = self.now()
        token = CapabilityToken(
            nonce=str(uuid.uuid4()),
            scopes=list(scopes),
            ttl_seconds=ttl,
            session_id=session_id,
            issued_at=issued_at,
            expires_at=issued_at + ttl,
        )
        return token.model_copy(update={"token": self.encode(token)})

    def encode(self, token: CapabilityToken) -> str:
        claims = {
            "nonce": token.nonce,
            "scopes": token.scopes,
            "session_id": token.session_id,
            "issued_at": token.issued_at,
            "expires_at": token.expires_at,
        }
        body = _b64encode(
            json.dumps(claims, sort_keys=True, separators=(",", ":")).encode("utf-8")
        )
        return f"{body}.{_b64encode(self._sign(body))}"

    def validate(self, token_string: str) -> CapabilityToken:
        body, sep, signature = token_string.strip().partition(".")
        if not sep or not body or not signature:
            raise TokenInvalid("Failed to decode token: malformed token")
        try:
            provided = _b64decode(signature)
            expected = self._sign(body)
        except (binascii.Error, ValueError) as exc:
            raise TokenInvalid("Failed to decode token: bad signature encoding") from exc
        if not hmac.compare_digest(provided, expected):
            raise TokenInvalid("Failed to decode token: signature mismatch")

        try:
            claims = json.loads(_b64decode(body))
            token = CapabilityToken(
                nonce=claims["nonce"],
                scopes=claims["scopes"],
                session_id=claims["session_id"],
                issued_at=claims["issued_at"],
                expires_at=claims["expires_at"],
                ttl_seconds=claims["expires_at"] - claims["issued_at"],
                token=token_string.strip(),
            )
        except (binascii.Error, ValueError, KeyError, TypeError) as exc:
            raise TokenInvalid("Failed to decode token: bad claims") from exc

        if token.expires_at < self.now():
            raise TokenExpired()
        return token

    @staticmethod
    def check_permission(token: CapabilityToken, action_domain: str, resource: str) -> bool:
        for raw_scope in token.scopes:
            try:
                scope = Scope.parse(raw_scope)
            except ValueError:
                continue
            if scope.matches(action_domain, resource):
                return True
        return False

    def authorize_action(self, token: CapabilityToken, action: Action) -> None:
        """Every concrete path of ``action`` must fall under some scope.

        Paths are matched after ``..`` folding so a glob cannot be escaped
        through a parent reference.
        """
        domain = action.type.domain
        for name, path in action.args.concrete_paths().items():
            if self.check_permission(token, domain, os.path.normpath(path)):
                continue
            logger.warning(
                "capability token %s denied %s on %s (%s)",
                token.nonce,
                action.type.value,
                path,
                name,
            )
            raise PermissionDenied(f"Permission denied for action on {path}")

    def revoke(self, nonce: str) -> None:
        # Revocation lists live in the host store; nothing to do in-process.
        logger.info("revoke requested for token nonce %s", nonce)

    def _sign(self, body: str) -> bytes:
        return hmac.new(self._secret, body.encode("ascii"), hashlib.sha256).digest()


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode((value + padding).encode("ascii"))

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from deskgate import DOTENV_FILE


def _to_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _to_int(value: str | None, default: int, key: str) -> int:
    if value is None:
        return default
    stripped = value.strip()
    if not stripped:
        return default
    try:
        return int(stripped)
    except ValueError as exc:
        raise ValueError(f"{key} must be an integer") from exc


def _to_optional_str(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


@dataclass(frozen=True)
class Settings:
    api_prefix: str = "/v1"
    api_host: str = "127.0.0.1"
    api_port: int = 8127
    token_secret: str | None = None
    default_token_ttl_seconds: int = 300
    require_capability_token: bool = False
    snapshot_root: str | None = None
    snapshot_retention_seconds: int = 7 * 24 * 60 * 60
    use_trash: bool = True
    preview_max_chars: int = 200
    history_default_limit: int = 50
    history_max_limit: int = 500
    log_level: str = "INFO"


def load_settings() -> Settings:
    load_dotenv(DOTENV_FILE)
    retention = _to_int(
        os.getenv("DESKGATE_SNAPSHOT_RETENTION_SECONDS"),
        default=7 * 24 * 60 * 60,
        key="DESKGATE_SNAPSHOT_RETENTION_SECONDS",
    )
    if retention < 0:
        raise ValueError("DESKGATE_SNAPSHOT_RETENTION_SECONDS must be >= 0")
    ttl = _to_int(
        os.getenv("DESKGATE_TOKEN_TTL_SECONDS"),
        default=300,
        key="DESKGATE_TOKEN_TTL_SECONDS",
    )
    if ttl < 1:
        raise ValueError("DESKGATE_TOKEN_TTL_SECONDS must be >= 1")
    return Settings(
        api_host=os.getenv("DESKGATE_API_HOST", "127.0.0.1").strip() or "127.0.0.1",
        api_port=_to_int(
            os.getenv("DESKGATE_API_PORT"),
            default=8127,
            key="DESKGATE_API_PORT",
        ),
        token_secret=_to_optional_str(os.getenv("DESKGATE_TOKEN_SECRET")),
        default_token_ttl_seconds=ttl,
        require_capability_token=_to_bool(
            os.getenv("DESKGATE_REQUIRE_TOKEN"), default=False
        ),
        snapshot_root=_to_optional_str(os.getenv("DESKGATE_SNAPSHOT_ROOT")),
        snapshot_retention_seconds=retention,
        use_trash=_to_bool(os.getenv("DESKGATE_USE_TRASH"), default=True),
        preview_max_chars=_to_int(
            os.getenv("DESKGATE_PREVIEW_MAX_CHARS"),
            default=200,
            key="DESKGATE_PREVIEW_MAX_CHARS",
        ),
        log_level=(os.getenv("DESKGATE_LOG_LEVEL", "INFO").strip() or "INFO").upper(),
    )

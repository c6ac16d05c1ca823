from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from deskgate.core.exceptions import ParseFailure
from deskgate.core.models import (
    PLACEHOLDER_PATH,
    Action,
    ActionMetadata,
    ActionOrigin,
    ActionPlan,
    ActionSource,
    ActionType,
    CopyFileArgs,
    CreateDirectoryArgs,
    CreateFileArgs,
    DeleteFileArgs,
    MoveFileArgs,
    Precondition,
    ReadFileArgs,
    RiskScore,
)
from deskgate.core.paths import resolve_path

RESOLVED_CONFIDENCE = 0.9
MISSING_PATH_CONFIDENCE = 0.7
SEQUENCE_CONFIDENCE = 0.85

_FLAGS = re.IGNORECASE

_CREATE_FILE_MISSING = re.compile(
    r"\bcreate\s+(?:a\s+)?(?:new\s+)?file\s*$|\bnew\s+file\s*$", _FLAGS
)
_CREATE_FILE_PATTERNS = (
    re.compile(r"\bcreate\s+file\s+(.+?)(?:\s+with\s+content\s+(.+))?$", _FLAGS),
    re.compile(r"\bcreate\s+a\s+file\s+(.+?)(?:\s+with\s+content\s+(.+))?$", _FLAGS),
    re.compile(r"\bnew\s+file\s+(.+?)(?:\s+with\s+content\s+(.+))?$", _FLAGS),
)

_READ_FILE_MISSING = re.compile(r"\b(?:read|open|show|view|display)\s+file\s*$", _FLAGS)
_READ_FILE_PATTERNS = (
    re.compile(r"\b(?:read|open|show|view|display)\s+file\s+(.+?)$", _FLAGS),
    re.compile(r"\b(?:read|open|show|view|display)\s+(.+?)$", _FLAGS),
)

_COPY_FILE_MISSING = re.compile(r"\bcopy(?:\s+(?:a\s+)?file)?\s*$", _FLAGS)
_COPY_FILE_PATTERNS = (
    re.compile(r"\bcopy\s+(?:file\s+)?(.+?)\s+to\s+(.+?)$", _FLAGS),
    re.compile(r"\bcopy\s+(.+?)\s+(?:to\s+)?(.+?)$", _FLAGS),
)

_MOVE_FILE_MISSING = re.compile(r"\b(?:move|rename)(?:\s+(?:a\s+)?file)?\s*$", _FLAGS)
_MOVE_FILE_PATTERNS = (
    re.compile(r"\b(?:move|rename)\s+(?:file\s+)?(.+?)\s+to\s+(.+?)$", _FLAGS),
    re.compile(r"\brename\s+(.+?)\s+(?:to\s+)?(.+?)$", _FLAGS),
)

_DELETE_FILE_MISSING = re.compile(r"\b(?:delete|remove|rm)(?:\s+(?:a\s+)?file)?\s*$", _FLAGS)
_DELETE_FILE_PATTERNS = (
    re.compile(r"\b(?:delete|remove|rm)\s+(?:file\s+)?(.+?)$", _FLAGS),
)

_CREATE_DIRECTORY_MISSING = re.compile(
    r"\b(?:create|new)\s+(?:a\s+)?(?:directory|dir|folder)\s*$|\bmkdir\s*$", _FLAGS
)
_CREATE_DIRECTORY_PATTERNS = (
    re.compile(r"\bcreate\s+(?:a\s+)?(?:directory|dir|folder)\s+(.+?)$", _FLAGS),
    re.compile(r"\bmkdir\s+(.+?)$", _FLAGS),
    re.compile(r"\bnew\s+(?:directory|dir|folder)\s+(.+?)$", _FLAGS),
)

_QUOTED = re.compile(r"\"([^\"]+)\"|'([^']+)'")
_PATH_LIKE = re.compile(r"(\S+(?:/[^/\s]+)+)")


@dataclass(frozen=True)
class IntentMatch:
    actions: list[Action]
    summary: str
    risk: RiskScore


Rule = Callable[[str, Path], IntentMatch | None]


def parse_intent(
    user_input: str,
    home_dir: Path,
    source: ActionSource = ActionSource.ui,
) -> ActionPlan:
    """Translate a closed set of natural-language requests into an ActionPlan.

    Rule families are tried in a fixed order (create file, read file, copy,
    move, delete, create directory) and the first match wins. Raises
    ``ParseFailure`` when nothing matches.
    """
    text = user_input.strip()
    for rule in _RULES:
        match = rule(text, home_dir)
        if match is None:
            continue
        return ActionPlan(
            origin=ActionOrigin(user_input=user_input, source=source),
            actions=match.actions,
            summary=match.summary,
            risk_score=match.risk.value,
            dry_run=True,
        )
    raise ParseFailure()


def _parse_create_file(text: str, home_dir: Path) -> IntentMatch | None:
    summary = f"Create file: {extract_file_path(text)}"
    preconditions = Precondition(writable=True, exists=False)
    if _CREATE_FILE_MISSING.search(text):
        action = Action(
            type=ActionType.fs_create_file,
            args=CreateFileArgs(path=PLACEHOLDER_PATH),
            preconditions=preconditions,
            metadata=ActionMetadata(confidence=MISSING_PATH_CONFIDENCE),
        )
        return IntentMatch([action], summary, RiskScore.low)

    for pattern in _CREATE_FILE_PATTERNS:
        found = pattern.search(text)
        if not found:
            continue
        raw_path = _clean(found.group(1))
        if not raw_path:
            continue
        content = (found.group(2) or "").strip()
        action = Action(
            type=ActionType.fs_create_file,
            args=CreateFileArgs(
                path=_resolve(raw_path, home_dir),
                content=content,
                encoding="utf-8",
            ),
            preconditions=preconditions,
            metadata=ActionMetadata(confidence=RESOLVED_CONFIDENCE),
        )
        return IntentMatch([action], summary, RiskScore.low)
    return None


def _parse_read_file(text: str, home_dir: Path) -> IntentMatch | None:
    summary = f"Read file: {extract_file_path(text)}"
    preconditions = Precondition(readable=True, exists=True)
    if _READ_FILE_MISSING.search(text):
        action = Action(
            type=ActionType.fs_read_file,
            args=ReadFileArgs(path=PLACEHOLDER_PATH),
            preconditions=preconditions,
            metadata=ActionMetadata(confidence=MISSING_PATH_CONFIDENCE),
        )
        return IntentMatch([action], summary, RiskScore.low)

    for pattern in _READ_FILE_PATTERNS:
        found = pattern.search(text)
        if not found:
            continue
        raw_path = _clean(found.group(1))
        if not raw_path:
            continue
        action = Action(
            type=ActionType.fs_read_file,
            args=ReadFileArgs(path=_resolve(raw_path, home_dir)),
            preconditions=preconditions,
            metadata=ActionMetadata(confidence=RESOLVED_CONFIDENCE),
        )
        return IntentMatch([action], summary, RiskScore.low)
    return None


def _parse_copy_file(text: str, home_dir: Path) -> IntentMatch | None:
    if _COPY_FILE_MISSING.search(text):
        actions = _copy_actions(
            PLACEHOLDER_PATH, PLACEHOLDER_PATH, MISSING_PATH_CONFIDENCE
        )
        return IntentMatch(actions, "Copy file", RiskScore.medium)

    for pattern in _COPY_FILE_PATTERNS:
        found = pattern.search(text)
        if not found:
            continue
        source = _clean(found.group(1))
        destination = _clean(found.group(2))
        if not source or not destination:
            continue
        actions = _copy_actions(
            _resolve(source, home_dir),
            _resolve(destination, home_dir),
            SEQUENCE_CONFIDENCE,
        )
        return IntentMatch(actions, "Copy file", RiskScore.medium)
    return None


def _copy_actions(source: str, destination: str, confidence: float) -> list[Action]:
    read_action = Action(
        type=ActionType.fs_read_file,
        args=ReadFileArgs(path=source),
        preconditions=Precondition(readable=True, exists=True),
        metadata=ActionMetadata(confidence=confidence),
    )
    copy_action = Action(
        type=ActionType.fs_copy_file,
        args=CopyFileArgs(source_path=source, destination_path=destination),
        preconditions=Precondition(writable=True, exists=False),
        metadata=ActionMetadata(confidence=confidence),
    )
    return [read_action, copy_action]


def _parse_move_file(text: str, home_dir: Path) -> IntentMatch | None:
    if _MOVE_FILE_MISSING.search(text):
        action = _move_action(PLACEHOLDER_PATH, PLACEHOLDER_PATH, MISSING_PATH_CONFIDENCE)
        return IntentMatch([action], "Move file", RiskScore.high)

    for pattern in _MOVE_FILE_PATTERNS:
        found = pattern.search(text)
        if not found:
            continue
        source = _clean(found.group(1))
        destination = _clean(found.group(2))
        if not source or not destination:
            continue
        action = _move_action(
            _resolve(source, home_dir),
            _resolve(destination, home_dir),
            SEQUENCE_CONFIDENCE,
        )
        return IntentMatch([action], "Move file", RiskScore.high)
    return None


def _move_action(source: str, destination: str, confidence: float) -> Action:
    return Action(
        type=ActionType.fs_move_file,
        args=MoveFileArgs(source_path=source, destination_path=destination),
        preconditions=Precondition(writable=True, exists=True),
        metadata=ActionMetadata(confidence=confidence),
    )


def _parse_delete_file(text: str, home_dir: Path) -> IntentMatch | None:
    summary = f"Delete file: {extract_file_path(text)}"
    preconditions = Precondition(exists=True)
    if _DELETE_FILE_MISSING.search(text):
        action = Action(
            type=ActionType.fs_delete_file,
            args=DeleteFileArgs(path=PLACEHOLDER_PATH),
            preconditions=preconditions,
            metadata=ActionMetadata(confidence=MISSING_PATH_CONFIDENCE),
        )
        return IntentMatch([action], summary, RiskScore.high)

    for pattern in _DELETE_FILE_PATTERNS:
        found = pattern.search(text)
        if not found:
            continue
        raw_path = _clean(found.group(1))
        if not raw_path:
            continue
        action = Action(
            type=ActionType.fs_delete_file,
            args=DeleteFileArgs(path=_resolve(raw_path, home_dir)),
            preconditions=preconditions,
            metadata=ActionMetadata(confidence=RESOLVED_CONFIDENCE),
        )
        return IntentMatch([action], summary, RiskScore.high)
    return None


def _parse_create_directory(text: str, home_dir: Path) -> IntentMatch | None:
    summary = f"Create directory: {extract_file_path(text)}"
    # directory=False: the target must not already be a directory.
    preconditions = Precondition(writable=True, exists=False, directory=False)
    if _CREATE_DIRECTORY_MISSING.search(text):
        action = Action(
            type=ActionType.fs_create_directory,
            args=CreateDirectoryArgs(path=PLACEHOLDER_PATH),
            preconditions=preconditions,
            metadata=ActionMetadata(confidence=MISSING_PATH_CONFIDENCE),
        )
        return IntentMatch([action], summary, RiskScore.low)

    for pattern in _CREATE_DIRECTORY_PATTERNS:
        found = pattern.search(text)
        if not found:
            continue
        raw_path = _clean(found.group(1))
        if not raw_path:
            continue
        action = Action(
            type=ActionType.fs_create_directory,
            args=CreateDirectoryArgs(path=_resolve(raw_path, home_dir)),
            preconditions=preconditions,
            metadata=ActionMetadata(confidence=RESOLVED_CONFIDENCE),
        )
        return IntentMatch([action], summary, RiskScore.low)
    return None


def extract_file_path(text: str) -> str:
    """Best-effort path for plan summaries: quoted text, then a path-like token."""
    quoted = _QUOTED.search(text)
    if quoted:
        return quoted.group(1) or quoted.group(2)
    path_like = _PATH_LIKE.search(text)
    if path_like:
        return path_like.group(1)
    return text


def _clean(raw: str | None) -> str:
    if raw is None:
        return ""
    value = raw.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        value = value[1:-1].strip()
    return value


def _resolve(raw_path: str, home_dir: Path) -> str:
    return str(resolve_path(raw_path, home_dir))


_RULES: tuple[Rule, ...] = (
    _parse_create_file,
    _parse_read_file,
    _parse_copy_file,
    _parse_move_file,
    _parse_delete_file,
    _parse_create_directory,
)

from __future__ import annotations

import os
from pathlib import Path, PurePath

from deskgate.core.exceptions import ValidationFailure


def expand_home(path_str: str, home_dir: Path | None) -> str:
    if home_dir is None or not path_str.startswith("~"):
        return path_str
    if path_str == "~":
        return str(home_dir)
    if path_str.startswith(("~/", "~\\")):
        return str(home_dir / path_str[2:])
    return path_str


def resolve_path(path_str: str, home_dir: Path | None = None) -> Path:
    """Resolve a user-supplied path the way the parser does.

    Absolute paths pass through unchanged; relative paths are joined to the
    process working directory, not to ``home_dir``.
    """
    path = Path(expand_home(path_str, home_dir))
    if path.is_absolute():
        return path
    return Path.cwd() / path


def validate_path(path_str: str, home_dir: Path | None = None) -> Path:
    """Reject traversal abuse and return the canonical form of ``path_str``.

    Existing paths are canonicalized. Paths that do not exist yet are walked
    component by component; a ``..`` that would climb above the root at the
    point it is seen rejects the path.
    """
    if not path_str or "\x00" in path_str:
        raise ValidationFailure(f"Invalid path: {path_str!r}")

    path = Path(expand_home(path_str, home_dir))
    if path.is_absolute():
        canonical = _canonicalize(path)
        if canonical is not None:
            return canonical
        _check_depth(path, path_str, "Invalid path: excessive parent directory references")
        return path

    try:
        cwd = Path.cwd()
    except OSError as exc:
        raise ValidationFailure(f"Failed to get current directory: {exc}") from exc

    normalized = _normalize(cwd / path, path_str)
    canonical = _canonicalize(normalized)
    if canonical is not None:
        return canonical
    _check_depth(normalized, path_str, "Path traversal detected")
    return normalized


def _canonicalize(path: Path) -> Path | None:
    try:
        return path.resolve(strict=True)
    except (OSError, RuntimeError):
        return None


def _check_depth(path: PurePath, path_str: str, message: str) -> None:
    depth = 0
    for part in path.parts:
        if part == path.anchor:
            depth = 0
        elif part == "..":
            if depth == 0:
                raise ValidationFailure(f"{message}: {path_str}")
            depth -= 1
        elif part != ".":
            depth += 1


def _normalize(path: Path, path_str: str) -> Path:
    anchor = path.anchor
    parts: list[str] = []
    for part in path.parts:
        if part == anchor or part == os.curdir:
            continue
        if part == os.pardir:
            if not parts:
                raise ValidationFailure(f"Path traversal detected: {path_str}")
            parts.pop()
            continue
        parts.append(part)
    return Path(anchor, *parts)


def normalize_path(path_str: str, home_dir: Path | None = None) -> str:
    """Absolute form of ``path_str`` with ``.`` and ``..`` folded away.

    Purely lexical: symlinks are left in place, so a link is acted on as
    itself and not as its target.
    """
    return str(_normalize(resolve_path(path_str, home_dir), path_str))

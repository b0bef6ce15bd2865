"""Path resolution helpers for document-root scoped access."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Final
from urllib.parse import unquote

WINDOWS_DRIVE_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[a-zA-Z]:[\\/]")


class PathBlockedError(Exception):
    """Raised when a requested path escapes the document root."""

    def __init__(self, reason: str, hint: str) -> None:
        super().__init__(reason)
        self.reason = reason
        self.hint = hint


def relative_url_path(pathname: str) -> str:
    """Return the root-relative POSIX form of a request pathname."""
    normalized = unquote(pathname).replace("\\", "/")
    parts = [part for part in normalized.split("/") if part not in ("", ".")]
    return "/".join(parts)


def resolve_document_path(document_root: Path, pathname: str) -> Path:
    """Resolve a request pathname against the document root with sandbox enforcement."""
    root = document_root.resolve()
    normalized = unquote(pathname).replace("\\", "/")

    if not normalized.strip("/"):
        raise PathBlockedError(
            reason="Path is empty.",
            hint="Request a file below the document root such as '/src/app.js'.",
        )
    if WINDOWS_DRIVE_PATTERN.match(normalized.lstrip("/")):
        raise PathBlockedError(
            reason="Drive-qualified paths are blocked.",
            hint="Request a path relative to the document root.",
        )

    parts = [part for part in normalized.split("/") if part not in ("", ".")]
    if any(part == ".." for part in parts):
        raise PathBlockedError(
            reason="Path traversal is blocked.",
            hint="Remove '..' segments from the request path.",
        )

    resolved = (root / Path(*parts)).resolve(strict=False)
    if not resolved.is_relative_to(root):
        raise PathBlockedError(
            reason="Resolved path escapes document_root.",
            hint="Request a file located under the configured document root.",
        )
    return resolved

"""Structured JSONL audit log of served requests."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from pathlib import Path


@dataclass(slots=True, frozen=True)
class AuditEvent:
    """Sanitized representation of a single HTTP or channel request."""

    timestamp: str
    request_id: str
    route: str
    pathname: str
    ok: bool
    status: int
    error_code: str | None
    metadata: dict[str, object]


def utc_timestamp() -> str:
    """Return an ISO-8601 UTC timestamp."""
    return datetime.now(tz=UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def sanitize_query(query: dict[str, str]) -> dict[str, object]:
    """Keep known harness query flags, summarize everything else."""
    sanitized: dict[str, object] = {}
    for key in sorted(query.keys()):
        value = query[key]
        if key in {"debug", "name", "v"}:
            sanitized[key] = value
            continue
        sanitized[f"{key}_present"] = True
        sanitized[f"{key}_length"] = len(value)
    return sanitized


class JsonlAuditLogger:
    """Append-only JSONL audit logger."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        """Return on-disk JSONL path."""
        return self._path

    def append(self, event: AuditEvent) -> None:
        """Append a sanitized event as one JSON object per line."""
        with self._path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(asdict(event), sort_keys=True))
            handle.write("\n")

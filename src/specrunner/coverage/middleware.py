"""Request-time coverage instrumentation of served source files."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from specrunner.context import MIME_TYPES, Handler, RequestContext
from specrunner.coverage.instrumenter import InstrumentationError, Instrumenter
from specrunner.discovery import glob_match
from specrunner.security import relative_url_path, resolve_document_path

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SourceMapRegistry:
    """Latest source map per absolute source path; later writes replace earlier ones."""

    _maps: dict[str, object] = field(default_factory=dict)

    def record(self, path: Path, source_map: object) -> None:
        self._maps[str(path)] = source_map

    def get(self, path: Path) -> object | None:
        return self._maps.get(str(path))

    def paths(self) -> tuple[str, ...]:
        return tuple(self._maps.keys())

    def __len__(self) -> int:
        return len(self._maps)


def is_excluded(pathname: str, patterns: Sequence[str]) -> bool:
    """Return True when a request path matches any coverage exclusion glob."""
    relative = relative_url_path(pathname)
    return any(glob_match(relative, pattern) for pattern in patterns)


def instrument_handler(
    document_root: Path,
    exclude: Sequence[str],
    registry: SourceMapRegistry,
    instrumenter: Instrumenter | None = None,
) -> Handler:
    """Build the handler that instruments JavaScript on its way to the browser."""
    active = instrumenter or Instrumenter()
    patterns = tuple(exclude)

    def handler(context: RequestContext) -> None:
        if context.flag("debug"):
            return

        src = resolve_document_path(document_root, context.pathname)
        context.headers["content-type"] = MIME_TYPES["js"]

        if context.source_map is not None:
            registry.record(src, context.source_map)
            context.source_map = None

        content = context.content
        if content is None:
            content = src.read_text(encoding="utf-8")

        if is_excluded(context.pathname, patterns):
            context.content = content
            return
        try:
            context.content = active.instrument(content, str(src))
        except InstrumentationError as error:
            logger.error("Coverage instrumentation failed for %s: %s", src, error.reason)
            raise

    return handler

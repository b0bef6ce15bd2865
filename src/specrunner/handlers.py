"""Handler factories for harness pages, bundled assets and plain files."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from specrunner.artifacts import ArtifactCache
from specrunner.compositor import CLIENT_DIR, PROJECT_TEMPLATE_DIR
from specrunner.context import MIME_TYPES, Handler, RequestContext, mime_for
from specrunner.routing import (
    ASSET_PATTERN,
    CATCH_ALL_PATTERN,
    ROLE_CATCH_ALL,
    ROLE_SOURCE,
    SOURCE_KEY,
    SOURCE_PATTERN,
    Route,
    route,
)
from specrunner.security import resolve_document_path

NAMED_VARIANTS = {"bm-context", "bm-debug"}
PROJECT_ASSET_DIR = ".kab"


def artifact_handler(cache: ArtifactCache, name: str) -> Handler:
    """Serve a cached page; benchmark pages pick their variant from ``?name=``."""

    def handler(context: RequestContext) -> None:
        context.headers["content-type"] = MIME_TYPES["html"]
        key = name
        variant = context.query.get("name")
        if key in NAMED_VARIANTS and variant:
            key = f"{key}-{variant}"
        context.content = cache.get(key)

    return handler


def asset_dirs(project_root: Path) -> tuple[Path, ...]:
    """Asset lookup order: project overrides, then bundled client files."""
    return (project_root / PROJECT_TEMPLATE_DIR / PROJECT_ASSET_DIR, CLIENT_DIR)


def asset_handler(directories: Sequence[Path]) -> Handler:
    """Serve ``/.kab/<file>`` from the first directory that has it."""
    roots = tuple(directories)

    def handler(context: RequestContext) -> None:
        match = ASSET_PATTERN.match(context.url)
        if match is None:
            raise FileNotFoundError(context.pathname)
        relative = match.group(1)
        context.headers["content-type"] = mime_for(relative)
        for root in roots:
            candidate = resolve_document_path(root, relative)
            if candidate.is_file():
                context.content = candidate.read_text(encoding="utf-8")
                return
        raise FileNotFoundError(relative)

    return handler


def file_handler(document_root: Path) -> Handler:
    """Serve any file under the document root."""

    def handler(context: RequestContext) -> None:
        src = resolve_document_path(document_root, context.pathname)
        if context.content is None:
            context.content = src.read_text(encoding="utf-8")
        context.headers.setdefault("content-type", mime_for(context.pathname))

    return handler


def default_base_routes(document_root: Path) -> tuple[Route, ...]:
    """Base table used when the caller supplies none: raw sources, then every other file."""
    serve = file_handler(document_root)
    return (
        route(SOURCE_PATTERN, serve, key=SOURCE_KEY, role=ROLE_SOURCE),
        route(CATCH_ALL_PATTERN, serve, key="file", role=ROLE_CATCH_ALL),
    )

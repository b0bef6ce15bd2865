"""Ordered route table and coverage-aware route table construction."""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from typing import Final

from specrunner.context import Handler, RequestContext

ROLE_SOURCE: Final = "source"
ROLE_COMPILED_SOURCE: Final = "compiled_source"
ROLE_CATCH_ALL: Final = "catch_all"
ROLE_ARTIFACT: Final = "artifact"
ROLE_ASSET: Final = "asset"
ROLE_FILE: Final = "file"

SOURCE_KEY: Final = "source"
COMPILED_SUFFIX: Final = "babel"
SOURCE_PATTERN: Final[re.Pattern[str]] = re.compile(r"^/src(/[^/]+)*\.js\?v")
CATCH_ALL_PATTERN: Final[re.Pattern[str]] = re.compile(r"^.*$")
ASSET_PATTERN: Final[re.Pattern[str]] = re.compile(r"^/\.kab/([^?]+\.([^?.]+))")
_MATCH_ANYTHING: Final = frozenset({"", "^", ".*", "^.*", ".*$", "^.*$"})


@dataclass(slots=True, frozen=True)
class Route:
    """One pattern plus the ordered handler chain that serves it."""

    pattern: re.Pattern[str]
    handlers: tuple[Handler, ...]
    key: str | None = None
    role: str | None = None

    def matches(self, url: str) -> bool:
        """Return True when the pattern matches the start of the request URL."""
        return self.pattern.match(url) is not None


class NoRouteError(LookupError):
    """Raised when no route matches a request URL."""

    def __init__(self, url: str) -> None:
        super().__init__(f"No route matches: {url}")
        self.url = url


def route(
    pattern: str | re.Pattern[str],
    *handlers: Handler,
    key: str | None = None,
    role: str | None = None,
) -> Route:
    """Build a route from a pattern and any number of handlers."""
    compiled = re.compile(pattern) if isinstance(pattern, str) else pattern
    return Route(pattern=compiled, handlers=tuple(handlers), key=key, role=role)


def is_catch_all(item: Route) -> bool:
    """Return True for routes tagged ``catch_all`` or whose pattern matches every URL."""
    return item.role == ROLE_CATCH_ALL or item.pattern.pattern in _MATCH_ANYTHING


def is_compiled_source(item: Route) -> bool:
    """Return True for the compiled variant of the source route (e.g. ``source.babel``)."""
    if item.role == ROLE_COMPILED_SOURCE:
        return True
    key = item.key or ""
    return key[len(SOURCE_KEY) + 1 :] == COMPILED_SUFFIX


def is_source_route(item: Route) -> bool:
    """Return True when a route serves instrumentable source files."""
    if item.role == ROLE_SOURCE or item.key == SOURCE_KEY:
        return True
    return is_compiled_source(item)


def builtin_routes(
    artifact_handler: Callable[[str], Handler],
    asset_handler: Handler,
) -> tuple[Route, ...]:
    """Return the harness pages in their fixed precedence order."""
    return (
        route(r"^/(index|home)?$", artifact_handler("runner"), key="runner", role=ROLE_ARTIFACT),
        route(r"^/debug\.html", artifact_handler("debug"), key="debug", role=ROLE_ARTIFACT),
        route(r"^/context\.html", artifact_handler("context"), key="context", role=ROLE_ARTIFACT),
        route(
            r"^/benchmark\.html$",
            artifact_handler("bm-runner"),
            key="bm-runner",
            role=ROLE_ARTIFACT,
        ),
        route(
            r"^/bm-debug\.html", artifact_handler("bm-debug"), key="bm-debug", role=ROLE_ARTIFACT
        ),
        route(
            r"^/bm-context\.html",
            artifact_handler("bm-context"),
            key="bm-context",
            role=ROLE_ARTIFACT,
        ),
        route(ASSET_PATTERN, asset_handler, key="asset", role=ROLE_ASSET),
    )


def build_routes(
    base_routes: Sequence[Route],
    *,
    artifact_handler: Callable[[str], Handler],
    asset_handler: Handler,
    instrument_handler: Handler,
) -> tuple[Route, ...]:
    """Prepend built-in pages and splice coverage instrumentation into the table.

    Every existing source route gets ``instrument_handler`` inserted just before
    its last handler (before the last two for the compiled variant). When no
    route serves source, a dedicated one is placed ahead of the first catch-all
    route, or appended when there is none.

    The result is not idempotent: feeding it back in inserts the handler again.
    """
    routes = [*builtin_routes(artifact_handler, asset_handler), *base_routes]

    has_source = False
    for index, item in enumerate(routes):
        if not is_source_route(item):
            continue
        has_source = True
        offset = 2 if is_compiled_source(item) else 1
        position = max(0, len(item.handlers) - offset)
        handlers = (*item.handlers[:position], instrument_handler, *item.handlers[position:])
        routes[index] = replace(item, handlers=handlers)

    if not has_source:
        insert_at = len(routes)
        for index, item in enumerate(routes):
            if is_catch_all(item):
                insert_at = index
                break
        routes.insert(
            insert_at,
            route(SOURCE_PATTERN, instrument_handler, key=SOURCE_KEY, role=ROLE_SOURCE),
        )

    return tuple(routes)


@dataclass(slots=True, frozen=True)
class RouteTable:
    """First-match route table preserving deterministic declaration order."""

    routes: tuple[Route, ...]

    def match(self, url: str) -> Route | None:
        """Return the first route matching the URL."""
        for item in self.routes:
            if item.matches(url):
                return item
        return None

    def dispatch(self, context: RequestContext) -> Route:
        """Run the matching route's handler chain against the context."""
        item = self.match(context.url)
        if item is None:
            raise NoRouteError(context.url)
        for handler in item.handlers:
            handler(context)
        return item

    def keys(self) -> tuple[str | None, ...]:
        """Return route keys in table order."""
        return tuple(item.key for item in self.routes)

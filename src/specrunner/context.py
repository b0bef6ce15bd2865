"""Request context passed through route handler chains."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from urllib.parse import parse_qsl, urlsplit

MIME_TYPES: dict[str, str] = {
    "js": "application/javascript",
    "css": "text/css",
    "html": "text/html",
}
DEFAULT_MIME_TYPE = MIME_TYPES["html"]

_FALSE_FLAGS = {"", "0", "false", "no"}


@dataclass(slots=True)
class RequestContext:
    """Mutable per-request state shared by every handler in a chain."""

    pathname: str
    query: dict[str, str] = field(default_factory=dict)
    method: str = "GET"
    raw_query: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    content: str | None = None
    source_map: object | None = None
    status: int = 200

    @property
    def url(self) -> str:
        """Return the pathname plus query string, as route patterns see it."""
        if not self.raw_query:
            return self.pathname
        return f"{self.pathname}?{self.raw_query}"

    def flag(self, name: str) -> bool:
        """Return True when a query flag is present with a truthy value."""
        value = self.query.get(name)
        if value is None:
            return False
        return value.strip().lower() not in _FALSE_FLAGS


Handler = Callable[[RequestContext], None]


def parse_request(url: str, method: str = "GET") -> RequestContext:
    """Split a raw request target into a fresh context."""
    parts = urlsplit(url)
    pathname = parts.path or "/"
    query: dict[str, str] = {}
    for key, value in parse_qsl(parts.query, keep_blank_values=True):
        query.setdefault(key, value)
    return RequestContext(
        pathname=pathname,
        query=query,
        method=method.upper(),
        raw_query=parts.query,
    )


def mime_for(pathname: str) -> str:
    """Map a path extension to a response content type."""
    name = pathname.rsplit("/", 1)[-1]
    if "." not in name:
        return DEFAULT_MIME_TYPE
    ext = name.rsplit(".", 1)[-1].lower()
    return MIME_TYPES.get(ext, DEFAULT_MIME_TYPE)

from __future__ import annotations

from pathlib import Path

import pytest

from specrunner.context import RequestContext, parse_request
from specrunner.handlers import default_base_routes
from specrunner.routing import NoRouteError, RouteTable, build_routes, route


def _noop(context: RequestContext) -> None:
    return None


def _table(tmp_path: Path) -> RouteTable:
    return RouteTable(
        build_routes(
            default_base_routes(tmp_path),
            artifact_handler=lambda name: _noop,
            asset_handler=_noop,
            instrument_handler=_noop,
        )
    )


@pytest.mark.parametrize(
    ("url", "key"),
    [
        ("/", "runner"),
        ("/index", "runner"),
        ("/home", "runner"),
        ("/debug.html", "debug"),
        ("/context.html", "context"),
        ("/benchmark.html", "bm-runner"),
        ("/bm-debug.html?name=bench/a.md", "bm-debug"),
        ("/bm-context.html?name=bench/a.md", "bm-context"),
        ("/.kab/harness.js", "asset"),
        ("/src/app.js?v=1", "source"),
        ("/src/nested/deep/app.js?v", "source"),
        ("/src/app.js", "file"),
        ("/lib/app.js?v=1", "file"),
        ("/test/a.spec.js", "file"),
    ],
)
def test_urls_resolve_to_expected_route(tmp_path: Path, url: str, key: str) -> None:
    matched = _table(tmp_path).match(url)

    assert matched is not None
    assert matched.key == key


def test_first_matching_route_wins() -> None:
    calls: list[str] = []
    table = RouteTable(
        (
            route(r"^/x", lambda context: calls.append("first"), key="first"),
            route(r"^/x", lambda context: calls.append("second"), key="second"),
        )
    )

    matched = table.dispatch(parse_request("/x"))

    assert matched.key == "first"
    assert calls == ["first"]


def test_handlers_share_one_context_in_order() -> None:
    def produce(context: RequestContext) -> None:
        context.content = "a"

    def extend(context: RequestContext) -> None:
        context.content = (context.content or "") + "b"

    table = RouteTable((route(r"^/page", produce, extend, key="page"),))
    context = parse_request("/page")

    table.dispatch(context)

    assert context.content == "ab"


def test_unmatched_url_raises() -> None:
    table = RouteTable((route(r"^/only$", _noop, key="only"),))

    with pytest.raises(NoRouteError, match="/other"):
        table.dispatch(parse_request("/other?x=1"))
    assert table.keys() == ("only",)

from __future__ import annotations

from specrunner.context import RequestContext
from specrunner.routing import (
    CATCH_ALL_PATTERN,
    ROLE_CATCH_ALL,
    ROLE_SOURCE,
    SOURCE_PATTERN,
    Route,
    build_routes,
    route,
)

BUILTIN_COUNT = 7


def _handler(name: str):
    def handler(context: RequestContext) -> None:
        context.headers.setdefault("trail", "")
        context.headers["trail"] += name

    handler.__name__ = name
    return handler


FIRST = _handler("first")
SECOND = _handler("second")
LAST = _handler("last")
SERVE = _handler("serve")
INSTRUMENT = _handler("instrument")
ASSET = _handler("asset")


def _artifact(name: str):
    return _handler(f"artifact:{name}")


def _build(base: tuple[Route, ...]) -> tuple[Route, ...]:
    return build_routes(
        base,
        artifact_handler=_artifact,
        asset_handler=ASSET,
        instrument_handler=INSTRUMENT,
    )


def _by_key(routes: tuple[Route, ...], key: str) -> Route:
    return next(item for item in routes if item.key == key)


def test_source_route_is_inserted_before_catch_all() -> None:
    base = (route(CATCH_ALL_PATTERN, SERVE, key="file", role=ROLE_CATCH_ALL),)

    routes = _build(base)

    assert len(routes) == BUILTIN_COUNT + 1 + 1
    assert [item.key for item in routes[-2:]] == ["source", "file"]
    inserted = routes[-2]
    assert inserted.pattern is SOURCE_PATTERN
    assert inserted.role == ROLE_SOURCE
    assert inserted.handlers == (INSTRUMENT,)


def test_builtin_pages_come_first_in_fixed_order() -> None:
    routes = _build(())

    assert [item.key for item in routes[:BUILTIN_COUNT]] == [
        "runner",
        "debug",
        "context",
        "bm-runner",
        "bm-debug",
        "bm-context",
        "asset",
    ]


def test_source_route_is_appended_without_catch_all() -> None:
    base = (route(r"^/api", SERVE, key="api"),)

    routes = _build(base)

    assert [item.key for item in routes[-2:]] == ["api", "source"]


def test_untagged_match_everything_route_counts_as_catch_all() -> None:
    base = (route(CATCH_ALL_PATTERN, SERVE, key="anything"),)

    routes = _build(base)

    assert [item.key for item in routes[-2:]] == ["source", "anything"]


def test_untagged_narrow_route_is_not_a_catch_all() -> None:
    base = (route(r"^/lib/.*$", SERVE, key="lib"),)

    routes = _build(base)

    assert [item.key for item in routes[-2:]] == ["lib", "source"]


def test_existing_source_route_gets_instrument_before_last_handler() -> None:
    base = (
        route(r"^/src", FIRST, SECOND, LAST, key="source"),
        route(CATCH_ALL_PATTERN, SERVE, key="file", role=ROLE_CATCH_ALL),
    )

    routes = _build(base)

    assert len(routes) == BUILTIN_COUNT + 2
    source = _by_key(routes, "source")
    assert source.handlers == (FIRST, SECOND, INSTRUMENT, LAST)


def test_compiled_source_gets_instrument_before_last_two_handlers() -> None:
    base = (route(r"^/src", FIRST, SECOND, LAST, key="source.babel"),)

    routes = _build(base)

    assert _by_key(routes, "source.babel").handlers == (FIRST, INSTRUMENT, SECOND, LAST)


def test_compiled_source_with_one_handler_clamps_to_front() -> None:
    base = (route(r"^/src", LAST, key="source.babel"),)

    routes = _build(base)

    assert _by_key(routes, "source.babel").handlers == (INSTRUMENT, LAST)


def test_source_role_without_key_is_instrumented() -> None:
    base = (route(r"^/lib", SERVE, role=ROLE_SOURCE),)

    routes = _build(base)

    assert routes[-1].handlers == (INSTRUMENT, SERVE)
    assert sum(1 for item in routes if item.key == "source") == 0


def test_every_source_route_is_instrumented() -> None:
    base = (
        route(r"^/src", SERVE, key="source"),
        route(r"^/gen", FIRST, LAST, key="source.babel"),
    )

    routes = _build(base)

    assert _by_key(routes, "source").handlers == (INSTRUMENT, SERVE)
    assert _by_key(routes, "source.babel").handlers == (INSTRUMENT, FIRST, LAST)


def test_rebuilding_inserts_the_handler_again() -> None:
    base = (route(r"^/src", FIRST, LAST, key="source"),)

    once = _build(base)
    twice = _build(once)

    source = _by_key(twice, "source")
    assert source.handlers == (FIRST, INSTRUMENT, INSTRUMENT, LAST)
    assert len(twice) == len(once) + BUILTIN_COUNT

"""Harness HTTP server entrypoint."""

from __future__ import annotations

import argparse
import asyncio
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

from aiohttp import web

from specrunner.artifacts import ArtifactBuilder, ArtifactCache, ArtifactMissingError, BuildOutcome
from specrunner.channel import CHANNEL_PATH, ChannelEndpoint
from specrunner.compositor import TemplateNotFoundError
from specrunner.config import CliOverrides, HarnessConfig, load_effective_config
from specrunner.context import DEFAULT_MIME_TYPE, parse_request
from specrunner.coverage import InstrumentationError, SourceMapRegistry, instrument_handler
from specrunner.events import EventEmitter
from specrunner.handlers import artifact_handler, asset_dirs, asset_handler, default_base_routes
from specrunner.logging import AuditEvent, JsonlAuditLogger, sanitize_query, utc_timestamp
from specrunner.routing import NoRouteError, Route, RouteTable, build_routes
from specrunner.security import PathBlockedError
from specrunner.sessions import FINISH_EVENT, BrowserSessionRegistry, RunCoordinator
from specrunner.watch import CHANGE_EVENT, FileWatcher

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class Response:
    """Status, content type and body of one served request."""

    status: int
    content_type: str
    body: str
    route: str | None = None
    error_code: str | None = None


def build_arg_parser() -> argparse.ArgumentParser:
    """Build argument parser for server startup configuration."""
    parser = argparse.ArgumentParser(prog="specrunner")
    parser.add_argument("benchmarks", nargs="*", help="Markdown benchmark files to run.")
    parser.add_argument("--project-root", required=False, default=".")
    parser.add_argument("--data-dir", required=False, default=None)
    parser.add_argument("--port", type=int, required=False, default=None)
    parser.add_argument("--count", type=int, required=False, default=None)
    parser.add_argument("--watch", action=argparse.BooleanOptionalAction, default=None)
    parser.add_argument("--single-run", action=argparse.BooleanOptionalAction, default=None)
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


class HarnessServer:
    """Route requests to harness pages, instrumented sources and project files."""

    def __init__(
        self,
        config: HarnessConfig,
        base_routes: Sequence[Route] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._cache = ArtifactCache()
        self._source_maps = SourceMapRegistry()
        self._emitter = EventEmitter()
        self._registry = BrowserSessionRegistry(self._emitter)
        self._coordinator = RunCoordinator(self._registry)
        self._channel = ChannelEndpoint(self._registry)
        self._builder = ArtifactBuilder(config, self._cache, clock=clock)
        self._audit_logger = JsonlAuditLogger(path=config.data_dir / "audit.jsonl")
        self._routes = RouteTable(
            build_routes(
                base_routes
                if base_routes is not None
                else default_base_routes(config.document_root),
                artifact_handler=lambda name: artifact_handler(self._cache, name),
                asset_handler=asset_handler(asset_dirs(config.project_root)),
                instrument_handler=instrument_handler(
                    config.document_root,
                    config.coverage.exclude,
                    self._source_maps,
                ),
            )
        )
        self._watcher: FileWatcher | None = None
        self._benchmarks: tuple[str, ...] = ()
        self._count: object = None
        self._request_counter = 0
        self._exit_code: int | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stopped: asyncio.Event | None = None
        self._emitter.on(CHANGE_EVENT, self._on_change)

    @property
    def config(self) -> HarnessConfig:
        return self._config

    @property
    def cache(self) -> ArtifactCache:
        return self._cache

    @property
    def routes(self) -> RouteTable:
        return self._routes

    @property
    def emitter(self) -> EventEmitter:
        return self._emitter

    @property
    def registry(self) -> BrowserSessionRegistry:
        return self._registry

    @property
    def coordinator(self) -> RunCoordinator:
        return self._coordinator

    @property
    def source_maps(self) -> SourceMapRegistry:
        return self._source_maps

    @property
    def watcher(self) -> FileWatcher | None:
        return self._watcher

    @property
    def exit_code(self) -> int | None:
        return self._exit_code

    def build(self, benchmarks: Sequence[str] = (), count: object = None) -> BuildOutcome:
        """Build spec pages, or benchmark pages when case files are given."""
        self._benchmarks = tuple(benchmarks)
        self._count = count
        outcome = self._build_once()
        if outcome.built and self._config.run.watch:
            self._watcher = FileWatcher(outcome.watched, self._notify_change)
        return outcome

    def _build_once(self) -> BuildOutcome:
        if self._benchmarks:
            return self._builder.bench(self._benchmarks, self._count)
        return self._builder.build()

    def _notify_change(self, path: Path) -> None:
        """Hand a change seen on the observer thread over to the serving loop."""
        if self._loop is None:
            self._emitter.emit(CHANGE_EVENT, path)
        else:
            self._loop.call_soon_threadsafe(self._emitter.emit, CHANGE_EVENT, path)

    def _on_change(self, path: Path) -> None:
        logger.info("%s changed.", path)
        outcome = self._build_once()
        if self._watcher is not None and outcome.built:
            self._watcher.reset(outcome.watched)
        self._coordinator.reload({"path": str(path)})

    def stop(self, code: int = 0) -> None:
        """Ask the serving loop to exit with ``code`` (anything but 1 becomes 0)."""
        self._exit_code = 1 if code == 1 else 0
        if self._stopped is not None:
            self._stopped.set()

    def exit_after_finish(self) -> None:
        """Stop serving once the run coordinator reports a finished run."""
        self._emitter.on(FINISH_EVENT, self.stop)

    def next_request_id(self) -> str:
        self._request_counter += 1
        return f"req-{self._request_counter:06d}"

    def handle_request(self, method: str, url: str) -> Response:
        """Serve one request through the route table."""
        request_id = self.next_request_id()
        context = parse_request(url, method)

        matched = self._routes.match(context.url)
        route_key = matched.key if matched is not None else None
        try:
            self._routes.dispatch(context)
        except NoRouteError:
            response = self.error_response(404, "NO_ROUTE", "No route matches the request.")
        except PathBlockedError as error:
            response = self.error_response(403, "PATH_BLOCKED", error.reason, route_key)
        except ArtifactMissingError as error:
            response = self.error_response(404, "ARTIFACT_MISSING", str(error), route_key)
        except (FileNotFoundError, IsADirectoryError):
            response = self.error_response(404, "NOT_FOUND", "File not found.", route_key)
        except InstrumentationError as error:
            response = self.error_response(500, "INSTRUMENT_FAILED", str(error), route_key)
        except UnicodeDecodeError:
            response = self.error_response(415, "NOT_TEXT", "File is not UTF-8 text.", route_key)
        else:
            response = Response(
                status=context.status,
                content_type=context.headers.get("content-type", DEFAULT_MIME_TYPE),
                body=context.content or "",
                route=route_key,
            )
        self.log_request(request_id, context.pathname, context.query, response)
        return response

    @staticmethod
    def error_response(
        status: int, code: str, message: str, route: str | None = None
    ) -> Response:
        """Build a plain-text error response."""
        return Response(
            status=status,
            content_type="text/plain",
            body=message,
            route=route,
            error_code=code,
        )

    def log_request(
        self,
        request_id: str,
        pathname: str,
        query: dict[str, str],
        response: Response,
    ) -> None:
        """Log one sanitized request event."""
        event = AuditEvent(
            timestamp=utc_timestamp(),
            request_id=request_id,
            route=response.route or "none",
            pathname=pathname,
            ok=response.status < 400,
            status=response.status,
            error_code=response.error_code,
            metadata=sanitize_query(query),
        )
        self._audit_logger.append(event)

    def create_app(self) -> web.Application:
        """Build the web application: the browser channel, then every routed request."""
        app = web.Application()
        app.add_routes(
            [
                web.get(CHANNEL_PATH, self._serve_channel),
                web.route("*", "/{tail:.*}", self._serve_routed),
            ]
        )
        app.on_shutdown.append(self._close_channels)
        return app

    async def _serve_routed(self, request: web.Request) -> web.Response:
        response = self.handle_request(request.method, request.raw_path)
        return web.Response(
            status=response.status,
            text=response.body,
            content_type=response.content_type,
            charset="utf-8",
            headers={"Cache-Control": "no-store"},
        )

    async def _serve_channel(self, request: web.Request) -> web.StreamResponse:
        self.log_request(
            self.next_request_id(),
            request.path,
            dict(request.query),
            Response(status=101, content_type="", body="", route="channel"),
        )
        return await self._channel.serve(request)

    async def _close_channels(self, app: web.Application) -> None:
        await self._channel.close_all()

    async def serve(self, host: str = "0.0.0.0", port: int | None = None) -> int:
        """Serve until ``stop`` is called; the watcher reports from its own thread."""
        self._loop = asyncio.get_running_loop()
        self._stopped = asyncio.Event()
        if self._exit_code is not None:
            self._stopped.set()
        runner = web.AppRunner(self.create_app())
        await runner.setup()
        try:
            site = web.TCPSite(runner, host, port or self._config.port)
            await site.start()
            if self._watcher is not None:
                self._watcher.start()
            await self._stopped.wait()
        finally:
            if self._watcher is not None:
                self._watcher.stop()
            await runner.cleanup()
            self._loop = None
            self._stopped = None
        return self._exit_code or 0

    def serve_http(self, host: str = "0.0.0.0", port: int | None = None) -> int:
        """Run ``serve`` on a fresh event loop; Ctrl-C exits with 0."""
        try:
            return asyncio.run(self.serve(host, port))
        except KeyboardInterrupt:
            return 0


def create_server(
    project_root: str,
    cli_overrides: CliOverrides | None = None,
    base_routes: Sequence[Route] | None = None,
    clock: Callable[[], float] = time.time,
) -> HarnessServer:
    """Create a configured harness server instance."""
    config = load_effective_config(
        project_root=Path(project_root).resolve(), overrides=cli_overrides
    )
    return HarnessServer(config=config, base_routes=base_routes, clock=clock)


def main(argv: list[str] | None = None) -> int:
    """Entrypoint for the harness server process."""
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")

    overrides = CliOverrides(
        data_dir=Path(args.data_dir).resolve() if args.data_dir is not None else None,
        port=args.port,
        watch=args.watch,
        single_run=args.single_run,
        benchmark_count=args.count,
    )
    try:
        server = create_server(project_root=args.project_root, cli_overrides=overrides)
        outcome = server.build(args.benchmarks, args.count)
    except (ValueError, TemplateNotFoundError, FileNotFoundError) as error:
        logger.error("%s", error)
        return 1

    if not outcome.built:
        if args.benchmarks:
            logger.warning("Benchmark files not found.")
        else:
            logger.warning("Specs not found.")
        return 0

    url = f"http://localhost:{server.config.port}/"
    if args.benchmarks:
        url += "benchmark.html"
    print(url)

    if server.config.run.single_run:
        server.exit_after_finish()
    return server.serve_http()


if __name__ == "__main__":
    raise SystemExit(main())

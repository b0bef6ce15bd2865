from __future__ import annotations

import asyncio
import json
from collections.abc import Mapping
from pathlib import Path

import pytest
from aiohttp.test_utils import TestClient, TestServer

from specrunner.channel import CHANNEL_PATH
from specrunner.server import HarnessServer, create_server
from specrunner.sessions import Connected
from specrunner.watch import CHANGE_EVENT

APP_JS = "function add(a, b) {\n  return a + b;\n}\n"
SPEC_JS = (
    "describe('add', function () {\n"
    "  it('adds', function () {\n"
    "    expect(1).toBe(1);\n"
    "  });\n"
    "});\n"
)


@pytest.fixture()
def project(tmp_path: Path) -> Path:
    (tmp_path / "src").mkdir()
    (tmp_path / "test").mkdir()
    (tmp_path / "src" / "app.js").write_text(APP_JS, encoding="utf-8")
    (tmp_path / "src" / "broken.js").write_text("function broken() {\n", encoding="utf-8")
    (tmp_path / "test" / "add.spec.js").write_text(SPEC_JS, encoding="utf-8")
    return tmp_path


@pytest.fixture()
def server(project: Path) -> HarnessServer:
    harness = create_server(project_root=str(project), clock=lambda: 1.0)
    assert harness.build().built is True
    return harness


def test_harness_pages_are_served(server: HarnessServer) -> None:
    runner = server.handle_request("GET", "/")
    context = server.handle_request("GET", "/context.html")
    debug = server.handle_request("GET", "/debug.html")

    assert runner.status == 200
    assert runner.route == "runner"
    assert "<iframe" in runner.body
    assert context.content_type == "text/html"
    assert "require(['test/add.spec'], function" in context.body
    assert "debug=rs" in debug.body
    assert "debug=rs" not in context.body


def test_sources_are_instrumented_unless_debugging(server: HarnessServer) -> None:
    instrumented = server.handle_request("GET", "/src/app.js?v=1")
    raw = server.handle_request("GET", "/src/app.js?v=1&debug=1")
    plain = server.handle_request("GET", "/src/app.js")

    assert instrumented.status == 200
    assert instrumented.route == "source"
    assert instrumented.content_type == "application/javascript"
    assert "__coverage__" in instrumented.body
    assert raw.route == "source"
    assert raw.body == APP_JS
    assert raw.content_type == "application/javascript"
    assert plain.route == "file"
    assert plain.body == APP_JS


def test_errors_map_to_status_codes(server: HarnessServer) -> None:
    missing = server.handle_request("GET", "/src/absent.js?v=1")
    blocked = server.handle_request("GET", "/src/../../etc/passwd.js?v=1")
    broken = server.handle_request("GET", "/src/broken.js?v=1")
    unbuilt = server.handle_request("GET", "/benchmark.html")

    assert (missing.status, missing.error_code) == (404, "NOT_FOUND")
    assert (blocked.status, blocked.error_code) == (403, "PATH_BLOCKED")
    assert (broken.status, broken.error_code) == (500, "INSTRUMENT_FAILED")
    assert (unbuilt.status, unbuilt.error_code) == (404, "ARTIFACT_MISSING")
    assert broken.route == "source"


def test_bundled_assets_are_served(server: HarnessServer) -> None:
    response = server.handle_request("GET", "/.kab/harness.js")

    assert response.status == 200
    assert response.route == "asset"
    assert "registerBrowser" in response.body


def test_every_request_is_audited(server: HarnessServer) -> None:
    server.handle_request("GET", "/context.html")
    server.handle_request("GET", "/src/app.js?v=1&token=secret")
    server.handle_request("GET", "/src/absent.js?v=1")

    audit_path = server.config.data_dir / "audit.jsonl"
    records = [json.loads(line) for line in audit_path.read_text(encoding="utf-8").splitlines()]
    assert [record["request_id"] for record in records] == [
        "req-000001",
        "req-000002",
        "req-000003",
    ]
    assert records[1]["metadata"] == {"token_length": 6, "token_present": True, "v": "1"}
    assert records[2]["ok"] is False
    assert records[2]["error_code"] == "NOT_FOUND"


def test_custom_base_routes_replace_the_file_server(project: Path) -> None:
    harness = create_server(project_root=str(project), base_routes=())
    harness.build()

    plain = harness.handle_request("GET", "/src/app.js")
    instrumented = harness.handle_request("GET", "/src/app.js?v=1")

    assert (plain.status, plain.error_code) == (404, "NO_ROUTE")
    assert "__coverage__" in instrumented.body


class RecordingChannel:
    def __init__(self) -> None:
        self.sent: list[tuple[str, dict[str, object]]] = []

    def send(self, event: str, payload: Mapping[str, object]) -> None:
        self.sent.append((event, dict(payload)))


def test_watch_mode_rebuilds_and_reloads_browsers(project: Path) -> None:
    (project / "specrunner.toml").write_text(
        "[run]\nwatch = true\nsingle_run = false\n", encoding="utf-8"
    )
    harness = create_server(project_root=str(project))
    harness.build()
    assert harness.watcher is not None
    channel = RecordingChannel()
    harness.registry.handle(Connected("conn-1", channel))
    harness.registry.handle_message("conn-1", {"type": "registerBrowser"})

    changed = project / "test" / "add.spec.js"
    (project / "test" / "second.spec.js").write_text(SPEC_JS, encoding="utf-8")
    harness.emitter.emit(CHANGE_EVENT, changed)

    assert channel.sent == [("reload", {"path": str(changed)})]
    context = harness.handle_request("GET", "/context.html").body
    assert "'test/add.spec', 'test/second.spec'" in context
    assert (project / "test" / "second.spec.js").resolve() in harness.watcher.paths


def test_http_responses_are_not_cached(server: HarnessServer) -> None:
    async def scenario() -> None:
        async with TestClient(TestServer(server.create_app())) as client:
            page = await client.get("/context.html")
            missing = await client.get("/src/absent.js?v=1")

            assert page.status == 200
            assert page.headers["Content-Type"] == "text/html; charset=utf-8"
            assert page.headers["Cache-Control"] == "no-store"
            assert "require(['test/add.spec']" in await page.text()
            assert missing.status == 404

    asyncio.run(scenario())


def test_single_run_stops_with_browser_result(server: HarnessServer) -> None:
    server.exit_after_finish()

    async def scenario() -> None:
        async with TestClient(TestServer(server.create_app())) as client:
            socket = await client.ws_connect(CHANNEL_PATH)
            await socket.send_json({"type": "registerBrowser"})
            await socket.receive_json(timeout=5)
            await socket.send_json({"type": "runComplete", "payload": {"failed": 2}})
            await socket.receive_json(timeout=5)
            await socket.close()

    asyncio.run(scenario())

    assert server.exit_code == 1
    audit_path = server.config.data_dir / "audit.jsonl"
    records = [json.loads(line) for line in audit_path.read_text(encoding="utf-8").splitlines()]
    assert (records[0]["route"], records[0]["status"]) == ("channel", 101)

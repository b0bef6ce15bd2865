from __future__ import annotations

from pathlib import Path

import pytest

from specrunner.artifacts import ArtifactCache, ArtifactMissingError
from specrunner.context import mime_for, parse_request
from specrunner.handlers import artifact_handler, asset_dirs, asset_handler, file_handler


def test_artifact_handler_serves_cached_page() -> None:
    cache = ArtifactCache()
    cache.put("context", "<html>context</html>")
    context = parse_request("/context.html")

    artifact_handler(cache, "context")(context)

    assert context.content == "<html>context</html>"
    assert context.headers["content-type"] == "text/html"


def test_benchmark_pages_select_variant_by_name() -> None:
    cache = ArtifactCache()
    cache.put("bm-context-bench/array.md", "array page")
    context = parse_request("/bm-context.html?name=bench%2Farray.md")

    artifact_handler(cache, "bm-context")(context)

    assert context.content == "array page"


def test_unbuilt_page_raises() -> None:
    with pytest.raises(ArtifactMissingError):
        artifact_handler(ArtifactCache(), "debug")(parse_request("/debug.html"))


def test_project_assets_override_bundled_assets(tmp_path: Path) -> None:
    handler = asset_handler(asset_dirs(tmp_path))
    bundled = parse_request("/.kab/harness.js")
    handler(bundled)
    assert bundled.content is not None
    assert "specrunner" in bundled.content
    assert bundled.headers["content-type"] == "application/javascript"

    (tmp_path / "test" / ".kab").mkdir(parents=True)
    (tmp_path / "test" / ".kab" / "harness.js").write_text("override", encoding="utf-8")
    overridden = parse_request("/.kab/harness.js")
    handler(overridden)
    assert overridden.content == "override"


def test_missing_asset_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        asset_handler(asset_dirs(tmp_path))(parse_request("/.kab/frameworks/absent.js"))


def test_file_handler_keeps_upstream_content(tmp_path: Path) -> None:
    (tmp_path / "page.css").write_text("body {}", encoding="utf-8")
    handler = file_handler(tmp_path)

    fresh = parse_request("/page.css")
    handler(fresh)
    assert fresh.content == "body {}"
    assert fresh.headers["content-type"] == "text/css"

    prepared = parse_request("/page.css")
    prepared.content = "prepared"
    handler(prepared)
    assert prepared.content == "prepared"


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("/x.js?debug", False),
        ("/x.js?debug=1", True),
        ("/x.js?debug=true", True),
        ("/x.js?debug=0", False),
        ("/x.js?debug=false", False),
        ("/x.js", False),
    ],
)
def test_debug_flag_truthiness(url: str, expected: bool) -> None:
    assert parse_request(url).flag("debug") is expected


@pytest.mark.parametrize(
    ("pathname", "expected"),
    [
        ("/a.js", "application/javascript"),
        ("/a.CSS", "text/css"),
        ("/a.html", "text/html"),
        ("/a.json", "text/html"),
        ("/dir/", "text/html"),
    ],
)
def test_mime_types(pathname: str, expected: str) -> None:
    assert mime_for(pathname) == expected

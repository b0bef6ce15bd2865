from __future__ import annotations

from pathlib import Path

from specrunner.config import FilesConfig
from specrunner.discovery import discover_file_set, glob_match, list_files


def _write(root: Path, relative: str, text: str = "") -> None:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def test_files_are_partitioned_by_role(tmp_path: Path) -> None:
    _write(tmp_path, "test/z.spec.js")
    _write(tmp_path, "test/a.spec.js")
    _write(tmp_path, "test/sub/bSpec.js")
    _write(tmp_path, "css/site.css")
    _write(tmp_path, "test/fixture.style.css", "p { margin: 0; }")
    _write(tmp_path, "test/fixture.html", "<div id=\"f\"></div>")
    _write(tmp_path, "node_modules/pkg/test/c.spec.js")
    config = FilesConfig(
        specs=("test/**/*.spec.js", "test/**/*Spec.js"),
        stylesheets=("css/*.css",),
        styles=("test/*.style.css",),
        html=("test/*.html",),
    )

    discovery = discover_file_set(tmp_path, config)

    assert discovery.files.scripts == ("test/a.spec.js", "test/z.spec.js", "test/sub/bSpec.js")
    assert discovery.files.stylesheets == ("/css/site.css",)
    assert discovery.files.style_blocks == ("p { margin: 0; }",)
    assert discovery.files.markup == ('<div id="f"></div>',)
    assert tmp_path.resolve() / "css" / "site.css" in discovery.sources


def test_files_matching_several_globs_are_listed_once(tmp_path: Path) -> None:
    _write(tmp_path, "test/a.spec.js")
    config = FilesConfig(specs=("test/*.js", "test/**/*.spec.js"))

    discovery = discover_file_set(tmp_path, config)

    assert discovery.files.scripts == ("test/a.spec.js",)


def test_excluded_directories_are_skipped(tmp_path: Path) -> None:
    _write(tmp_path, "src/app.js")
    _write(tmp_path, "node_modules/pkg/index.js")
    _write(tmp_path, ".git/config")

    assert list_files(tmp_path, ("**/node_modules/**", "**/.git/**")) == ["src/app.js"]


def test_double_star_matches_zero_directories() -> None:
    assert glob_match("test/a.spec.js", "test/**/*.spec.js")
    assert glob_match("test/x/y/a.spec.js", "test/**/*.spec.js")
    assert glob_match("test/a.spec.js", "/test/*.spec.js")
    assert not glob_match("src/a.spec.js", "test/**/*.spec.js")


def test_single_star_stays_inside_one_directory() -> None:
    assert glob_match("src/a.js", "src/*.js")
    assert not glob_match("src/deep/x.js", "src/*.js")
    assert not glob_match("test/sub/a.spec.js", "test/?.spec.js")


def test_exclude_globs_respect_segment_boundaries(tmp_path: Path) -> None:
    _write(tmp_path, "src/a.js")
    _write(tmp_path, "src/deep/x.js")

    assert list_files(tmp_path, ("src/*.js",)) == ["src/deep/x.js"]
    assert list_files(tmp_path, ("src/**/*.js",)) == []

"""Placeholder substitution turning harness templates into servable pages."""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Final

from specrunner.benchmark import build_cases
from specrunner.models import BenchmarkOptions, CaseDescription, FileSet

CLIENT_DIR: Final[Path] = Path(__file__).resolve().parent / "client"
PROJECT_TEMPLATE_DIR: Final = "test"

_CSS_RE = re.compile(r"<!--%css%-->", re.IGNORECASE)
_STYLE_RE = re.compile(r"<!--%style%-->", re.IGNORECASE)
_SPECS_RE = re.compile(r"\s*/\*specs\*/\s*", re.IGNORECASE)
_CASES_RE = re.compile(r"\s*/\*cases\*/\s*", re.IGNORECASE)
_HTML_RE = re.compile(r"<!--%html%-->", re.IGNORECASE)
_REQUIRE_CONFIG_RE = re.compile(r"\s*/\*requireConfig\*/\s*", re.IGNORECASE)
_FRAMEWORKS_RE = re.compile(r"<!--%frameworks%-->", re.IGNORECASE)
_PAGES_RE = re.compile(r"\s*/\*pages\*/\s*", re.IGNORECASE)
_SPEC_EXTENSION_RE = re.compile(r"\.(js|ts|dart|coffee)$")


class TemplateNotFoundError(FileNotFoundError):
    """Raised when neither a project override nor a bundled template exists."""

    def __init__(self, name: str, path: Path) -> None:
        super().__init__(f"Template '{name}' not found at {path}")
        self.name = name
        self.path = path


def build_stylesheets(files: Sequence[str]) -> str:
    """Render one stylesheet link per file, in order."""
    return "".join(f'<link rel="stylesheet" href="{file}">\n' for file in files)


def build_styles(blocks: Sequence[str]) -> str:
    """Wrap every inline style block in a single style element."""
    if not blocks:
        return ""
    return "<style>\n" + "\n".join(blocks) + "\n</style>"


def build_specs(files: Sequence[str]) -> str:
    """Render spec module ids as a comma separated list of quoted strings."""
    return ", ".join(f"'{_SPEC_EXTENSION_RE.sub('', file)}'" for file in files)


def build_pages(keys: Sequence[str]) -> str:
    """Render benchmark page keys the same way as spec ids."""
    return ", ".join(f"'{key}'" for key in keys)


def render_frameworks(names: Sequence[str]) -> str:
    """Render one script tag per enabled test framework."""
    return "\n".join(f'<script src="/.kab/frameworks/{name}.js"></script>' for name in names)


def compose(
    template: str,
    files: FileSet,
    frameworks: str,
    require_config: str,
    cases: CaseDescription | None = None,
    options: BenchmarkOptions | None = None,
) -> str:
    """Fill every placeholder of ``template``; absent inputs render as empty text."""

    def cases_text() -> str:
        if cases is None:
            return ""
        return build_cases(cases, options or BenchmarkOptions())

    output = _CSS_RE.sub(lambda _: build_stylesheets(files.stylesheets), template)
    output = _STYLE_RE.sub(lambda _: build_styles(files.style_blocks), output)
    output = _SPECS_RE.sub(lambda _: build_specs(files.scripts), output)
    output = _CASES_RE.sub(lambda _: cases_text(), output)
    output = _HTML_RE.sub(lambda _: "\n".join(files.markup), output)
    output = _REQUIRE_CONFIG_RE.sub(lambda _: require_config, output)
    return _FRAMEWORKS_RE.sub(lambda _: frameworks, output)


def compose_pages(template: str, keys: Sequence[str]) -> str:
    """Fill the benchmark runner's page list placeholder."""
    return _PAGES_RE.sub(lambda _: build_pages(keys), template)


def template_path(name: str, project_root: Path, overrides: Mapping[str, str]) -> Path:
    """Pick the project override for ``name`` when it exists, else the bundled file."""
    override = overrides.get(name)
    if override:
        candidate = (project_root / PROJECT_TEMPLATE_DIR / override).resolve()
        if candidate.is_file():
            return candidate
    return CLIENT_DIR / f"{name}.html"


def load_template(name: str, project_root: Path, overrides: Mapping[str, str]) -> str:
    """Read a logical template, raising TemplateNotFoundError when it is missing."""
    path = template_path(name, project_root, overrides)
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError as error:
        raise TemplateNotFoundError(name, path) from error

"""Benchmark case parsing and suite code generation."""

from __future__ import annotations

import math
import re
from collections.abc import Sequence
from pathlib import Path

from specrunner.models import BenchmarkCase, BenchmarkOptions, CaseDescription, FileSet

DEFAULT_INIT_COUNT = 10

_JS_FENCES = {"js", "javascript"}
_FENCE_RE = re.compile(r"^\s*```\s*([A-Za-z0-9_+-]*)\s*$")
_TITLE_RE = re.compile(r"^#\s+(.+?)\s*#*\s*$")
_CASE_RE = re.compile(r"^##\s+(.+?)\s*#*\s*$")
_HEX_RE = re.compile(r"^[+-]?0[xX][0-9a-fA-F]+$")


def to_int32(value: object) -> int:
    """Coerce a value the way JavaScript's ``value | 0`` does."""
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        wrapped = value % 2**32
        return wrapped - 2**32 if wrapped >= 2**31 else wrapped
    if isinstance(value, float):
        number = value
    elif isinstance(value, str):
        number = _string_to_number(value)
    else:
        return 0
    if math.isnan(number) or math.isinf(number):
        return 0
    wrapped = int(number) % 2**32
    return wrapped - 2**32 if wrapped >= 2**31 else wrapped


def _string_to_number(text: str) -> float:
    stripped = text.strip()
    if not stripped:
        return 0.0
    if _HEX_RE.match(stripped):
        sign = -1 if stripped.startswith("-") else 1
        return float(sign * int(stripped.lstrip("+-"), 16))
    try:
        return float(stripped)
    except ValueError:
        return float("nan")


def js_string(text: str) -> str:
    """Quote text as a single-quoted JavaScript string literal."""
    escaped = (
        text.replace("\\", "\\\\").replace("'", "\\'").replace("\n", "\\n").replace("\r", "\\r")
    )
    return f"'{escaped}'"


def build_cases(case_file: CaseDescription, options: BenchmarkOptions) -> str:
    """Generate Benchmark.js suite code registering every case in declaration order."""
    code = f"\nsuite = new Benchmark.Suite({js_string(case_file.title)});\n"

    if case_file.setup:
        code += "Benchmark.prototype.setup = function () {\n" + case_file.setup + "\n};\n"

    if case_file.teardown:
        code += "Benchmark.prototype.teardown = function () {\n" + case_file.teardown + "\n};\n"

    count = to_int32(options.count) or DEFAULT_INIT_COUNT
    code += "".join(
        f"suite.add({js_string(item.name)}, function () {{\n"
        + "\n".join(item.js)
        + f"\n}},{{initCount: {count}}});\n"
        for item in case_file.cases
    )
    return code


def parse_case_file(text: str, default_title: str = "") -> CaseDescription:
    """Parse a Markdown benchmark file.

    The first ``#`` heading names the suite. Script fences before the first
    ``##`` heading are the setup and teardown code, in that order. Every ``##``
    heading opens a case whose script fences form its body. ``css`` and
    ``html`` fences anywhere become page assets.
    """
    title: str | None = None
    prelude: list[str] = []
    cases: list[tuple[str, list[str]]] = []
    style_blocks: list[str] = []
    markup: list[str] = []

    fence_lang: str | None = None
    fence_lines: list[str] = []

    for line in text.splitlines():
        fence = _FENCE_RE.match(line)
        if fence_lang is not None:
            if fence is not None and not fence.group(1):
                body = "\n".join(fence_lines)
                if fence_lang in _JS_FENCES:
                    (cases[-1][1] if cases else prelude).append(body)
                elif fence_lang == "css":
                    style_blocks.append(body)
                elif fence_lang == "html":
                    markup.append(body)
                fence_lang = None
                fence_lines = []
            else:
                fence_lines.append(line)
            continue

        if fence is not None:
            fence_lang = fence.group(1).lower()
            continue

        case_heading = _CASE_RE.match(line)
        if case_heading is not None:
            cases.append((case_heading.group(1), []))
            continue

        title_heading = _TITLE_RE.match(line)
        if title_heading is not None and title is None:
            title = title_heading.group(1)

    if fence_lang is not None:
        raise ValueError("Benchmark file has an unterminated code fence.")

    return CaseDescription(
        title=title or default_title,
        cases=tuple(BenchmarkCase(name=name, js=tuple(blocks)) for name, blocks in cases),
        setup=prelude[0] if len(prelude) > 0 else None,
        teardown=prelude[1] if len(prelude) > 1 else None,
        assets=FileSet(style_blocks=tuple(style_blocks), markup=tuple(markup)),
    )


def case_key(root: Path, path: Path) -> str:
    """Derive the cache key for a case file: its root-relative POSIX path."""
    resolved = path.resolve()
    if resolved.is_relative_to(root.resolve()):
        return resolved.relative_to(root.resolve()).as_posix()
    return resolved.as_posix().lstrip("/")


def read_case_files(root: Path, paths: Sequence[str]) -> dict[str, CaseDescription]:
    """Read and parse case files in argument order, keyed by derived identifier."""
    output: dict[str, CaseDescription] = {}
    for raw in paths:
        path = Path(raw)
        if not path.is_absolute():
            path = root / path
        text = path.read_text(encoding="utf-8")
        output[case_key(root, path)] = parse_case_file(text, default_title=path.stem)
    return output

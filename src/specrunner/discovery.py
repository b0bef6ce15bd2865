"""Deterministic discovery of spec, stylesheet and markup inputs."""

from __future__ import annotations

import functools
import os
import re
from dataclasses import dataclass
from pathlib import Path

from specrunner.config import FilesConfig
from specrunner.models import FileSet


@dataclass(slots=True, frozen=True)
class Discovery:
    """Discovered file set plus every absolute path it was built from."""

    files: FileSet
    sources: tuple[Path, ...]


def should_exclude(relative_path: str, exclude_globs: tuple[str, ...]) -> bool:
    """Return True when a path matches configured ignore globs."""
    return any(glob_match(relative_path, pattern) for pattern in exclude_globs)


def glob_match(relative_path: str, pattern: str) -> bool:
    """Match a root-relative path against a glob.

    ``*`` and ``?`` stay inside one path segment, ``**`` spans segments and
    ``**/`` also stands for zero directories. A leading ``/`` is ignored.
    """
    return _compile_glob(pattern).match(relative_path.lstrip("/")) is not None


@functools.lru_cache(maxsize=256)
def _compile_glob(pattern: str) -> re.Pattern[str]:
    body = pattern.lstrip("/")
    parts: list[str] = []
    index = 0
    while index < len(body):
        char = body[index]
        if body.startswith("**/", index):
            parts.append("(?:.*/)?")
            index += 3
        elif body.startswith("**", index):
            parts.append(".*")
            index += 2
        elif char == "*":
            parts.append("[^/]*")
            index += 1
        elif char == "?":
            parts.append("[^/]")
            index += 1
        elif char == "[" and "]" in body[index + 2 :]:
            end = body.index("]", index + 2)
            members = body[index + 1 : end]
            if members.startswith("!"):
                members = "^" + members[1:]
            escaped = members.replace("\\", "\\\\")
            parts.append(f"[{escaped}]")
            index = end + 1
        else:
            parts.append(re.escape(char))
            index += 1
    return re.compile("".join(parts) + r"\Z")


def discover_file_set(document_root: Path, config: FilesConfig) -> Discovery:
    """Resolve every configured glob against the document root."""
    root = document_root.resolve()
    available = list_files(root, config.exclude)

    scripts = _select(available, config.specs)
    stylesheets = _select(available, config.stylesheets)
    styles = _select(available, config.styles)
    markup = _select(available, config.html)

    sources = tuple(root / rel for rel in (*scripts, *stylesheets, *styles, *markup))
    files = FileSet(
        scripts=tuple(scripts),
        stylesheets=tuple(f"/{rel}" for rel in stylesheets),
        style_blocks=tuple(_read(root / rel) for rel in styles),
        markup=tuple(_read(root / rel) for rel in markup),
    )
    return Discovery(files=files, sources=sources)


def list_files(root: Path, exclude_globs: tuple[str, ...]) -> list[str]:
    """Walk the tree in sorted order, returning non-excluded root-relative paths."""
    output: list[str] = []
    excluded_dir_names = _excluded_dir_names(exclude_globs)
    stack: list[Path] = [root]
    while stack:
        current = stack.pop()
        try:
            with os.scandir(current) as entries:
                ordered_entries = sorted(entries, key=lambda item: item.name)
        except OSError:
            continue
        for entry in reversed(ordered_entries):
            full_path = Path(entry.path)
            relative = full_path.relative_to(root).as_posix()
            if entry.is_dir(follow_symlinks=False):
                if entry.name in excluded_dir_names and should_exclude(
                    f"{relative}/", exclude_globs
                ):
                    continue
                stack.append(full_path)
                continue
            if not entry.is_file(follow_symlinks=False):
                continue
            if should_exclude(relative, exclude_globs):
                continue
            output.append(relative)
    output.sort()
    return output


def _select(available: list[str], patterns: tuple[str, ...]) -> list[str]:
    """Collect matches pattern by pattern, keeping first-seen order."""
    selected: list[str] = []
    seen: set[str] = set()
    for pattern in patterns:
        for relative in available:
            if relative in seen or not glob_match(relative, pattern):
                continue
            seen.add(relative)
            selected.append(relative)
    return selected


def _read(path: Path) -> str:
    return path.read_text(encoding="utf-8")


def _excluded_dir_names(exclude_globs: tuple[str, ...]) -> set[str]:
    """Extract deterministic directory-name prunes from **/name/** glob patterns."""
    output: set[str] = set()
    for pattern in exclude_globs:
        if not pattern.startswith("**/") or not pattern.endswith("/**"):
            continue
        name = pattern[3:-3].strip("/")
        if not name:
            continue
        if any(char in name for char in "*?[]{}"):
            continue
        output.add(name)
    return output

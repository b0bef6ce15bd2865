"""Typed models shared by the page compositor and benchmark generator."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class FileSet:
    """Discovered harness inputs partitioned by role, each in discovery order."""

    scripts: tuple[str, ...] = ()
    stylesheets: tuple[str, ...] = ()
    style_blocks: tuple[str, ...] = ()
    markup: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class BenchmarkCase:
    """One named benchmark body."""

    name: str
    js: tuple[str, ...]


@dataclass(slots=True, frozen=True)
class CaseDescription:
    """A benchmark suite parsed from one case file."""

    title: str
    cases: tuple[BenchmarkCase, ...]
    setup: str | None = None
    teardown: str | None = None
    assets: FileSet = FileSet()


@dataclass(slots=True, frozen=True)
class BenchmarkOptions:
    """Generator options; ``count`` keeps whatever the caller passed."""

    count: object = None

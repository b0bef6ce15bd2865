"""Artifact cache and the build passes that fill it."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from specrunner.benchmark import read_case_files
from specrunner.compositor import compose, compose_pages, load_template, render_frameworks
from specrunner.config import HarnessConfig
from specrunner.discovery import discover_file_set
from specrunner.models import BenchmarkOptions

logger = logging.getLogger(__name__)

BENCHMARK_FRAMEWORKS = ("benchmark",)
_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


class ArtifactMissingError(LookupError):
    """Raised when a page is requested before it was built."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Artifact not built: {key}")
        self.key = key


@dataclass(slots=True)
class ArtifactCache:
    """Generated pages keyed by logical name; entries are only ever replaced whole."""

    _entries: dict[str, str] = field(default_factory=dict)

    def put(self, key: str, content: str) -> None:
        self._entries[key] = content

    def get(self, key: str) -> str:
        try:
            return self._entries[key]
        except KeyError:
            raise ArtifactMissingError(key) from None

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def keys(self) -> tuple[str, ...]:
        return tuple(self._entries.keys())


@dataclass(slots=True, frozen=True)
class BuildOutcome:
    """Result of one build pass; ``built`` is False when there was nothing to build."""

    built: bool
    keys: tuple[str, ...] = ()
    watched: tuple[Path, ...] = ()
    reason: str | None = None


def base36(value: int) -> str:
    """Render a non-negative integer in base 36, like ``Number#toString(36)``."""
    if value == 0:
        return "0"
    digits: list[str] = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def serialize_require_config(require_config: Mapping[str, object]) -> str:
    return json.dumps(dict(require_config), separators=(",", ":"))


class ArtifactBuilder:
    """Compose runner, context and debug pages (or benchmark pages) into the cache."""

    def __init__(
        self,
        config: HarnessConfig,
        cache: ArtifactCache,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._cache = cache
        self._clock = clock

    def _template(self, name: str) -> str:
        return load_template(name, self._config.project_root, self._config.templates)

    def _nothing_to_build(self) -> bool:
        return self._config.run.single_run or not self._config.run.watch

    def _require_configs(self) -> tuple[str, str]:
        """Return the plain and the cache-busting debug require config."""
        plain = dict(self._config.require_config)
        debug = dict(plain)
        debug["urlArgs"] = "debug=" + base36(int(self._clock() * 1000))
        return serialize_require_config(plain), serialize_require_config(debug)

    def build(self) -> BuildOutcome:
        """Build the spec runner pages."""
        logger.debug("Build runner...")
        context_tpl = self._template("context")
        debug_tpl = self._template("debug")
        runner_tpl = self._template("runner")

        discovery = discover_file_set(self._config.document_root, self._config.files)
        if not discovery.files.scripts and self._nothing_to_build():
            return BuildOutcome(built=False, reason="no-specs")

        frameworks = render_frameworks(self._config.frameworks)
        require_config, debug_require_config = self._require_configs()

        self._cache.put("runner", runner_tpl)
        self._cache.put(
            "context", compose(context_tpl, discovery.files, frameworks, require_config)
        )
        self._cache.put(
            "debug", compose(debug_tpl, discovery.files, frameworks, debug_require_config)
        )
        logger.debug("Runner built with %d spec(s).", len(discovery.files.scripts))
        return BuildOutcome(
            built=True,
            keys=("runner", "context", "debug"),
            watched=discovery.sources,
        )

    def bench(self, paths: Sequence[str], count: object = None) -> BuildOutcome:
        """Build one context/debug page pair per benchmark case file."""
        logger.debug("Build benchmark runner...")
        context_tpl = self._template("bm-context")
        debug_tpl = self._template("bm-debug")
        runner_tpl = self._template("bm-runner")

        case_files = read_case_files(self._config.project_root, paths)
        if not case_files and self._nothing_to_build():
            return BuildOutcome(built=False, reason="no-benchmarks")

        frameworks = render_frameworks(BENCHMARK_FRAMEWORKS)
        require_config, debug_require_config = self._require_configs()
        options = BenchmarkOptions(
            count=count if count is not None else self._config.run.benchmark_count
        )

        keys: list[str] = []
        for key, case_file in case_files.items():
            self._cache.put(
                f"bm-context-{key}",
                compose(
                    context_tpl, case_file.assets, frameworks, require_config, case_file, options
                ),
            )
            self._cache.put(
                f"bm-debug-{key}",
                compose(
                    debug_tpl,
                    case_file.assets,
                    frameworks,
                    debug_require_config,
                    case_file,
                    options,
                ),
            )
            keys.extend((f"bm-context-{key}", f"bm-debug-{key}"))

        self._cache.put("bm-runner", compose_pages(runner_tpl, list(case_files)))
        keys.append("bm-runner")
        logger.debug("Benchmark runner built with %d case file(s).", len(case_files))
        root = self._config.project_root
        watched = tuple(
            (Path(raw) if Path(raw).is_absolute() else root / raw).resolve() for raw in paths
        )
        return BuildOutcome(built=True, keys=tuple(keys), watched=watched)

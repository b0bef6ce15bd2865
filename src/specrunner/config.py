"""Configuration loading and deterministic merge order."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path

CONFIG_FILE_NAME = "specrunner.toml"
DEFAULT_PORT = 8848
DEFAULT_BENCHMARK_COUNT = 10
MAX_PORT = 65_535

DEFAULT_SPEC_GLOBS = ("test/**/*.spec.js", "test/**/*Spec.js")
DEFAULT_EXCLUDE_GLOBS = ("**/node_modules/**", "**/.git/**")
DEFAULT_FRAMEWORKS = ("jasmine",)
DEFAULT_REQUIRE_CONFIG: dict[str, object] = {"baseUrl": "src"}
TEMPLATE_NAMES = ("runner", "context", "debug", "bm-runner", "bm-context", "bm-debug")


@dataclass(slots=True, frozen=True)
class FilesConfig:
    """Globs selecting the harness inputs, relative to the document root."""

    specs: tuple[str, ...]
    stylesheets: tuple[str, ...] = ()
    styles: tuple[str, ...] = ()
    html: tuple[str, ...] = ()
    exclude: tuple[str, ...] = DEFAULT_EXCLUDE_GLOBS


@dataclass(slots=True, frozen=True)
class CoverageConfig:
    """Instrumentation exclusion patterns."""

    exclude: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class RunConfig:
    """Run-mode switches."""

    watch: bool = False
    single_run: bool = True
    benchmark_count: int = DEFAULT_BENCHMARK_COUNT


@dataclass(slots=True, frozen=True)
class HarnessConfig:
    """Fully merged harness configuration."""

    project_root: Path
    document_root: Path
    data_dir: Path
    port: int
    files: FilesConfig
    coverage: CoverageConfig
    run: RunConfig
    frameworks: tuple[str, ...] = DEFAULT_FRAMEWORKS
    require_config: dict[str, object] = field(default_factory=dict)
    templates: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class CliOverrides:
    """Optional startup overrides applied at highest precedence."""

    data_dir: Path | None = None
    port: int | None = None
    watch: bool | None = None
    single_run: bool | None = None
    benchmark_count: int | None = None


def default_config(project_root: Path) -> HarnessConfig:
    """Build default config for a given project root."""
    resolved_root = project_root.resolve()
    return HarnessConfig(
        project_root=resolved_root,
        document_root=resolved_root,
        data_dir=resolved_root / ".specrunner",
        port=DEFAULT_PORT,
        files=FilesConfig(specs=DEFAULT_SPEC_GLOBS),
        coverage=CoverageConfig(),
        run=RunConfig(),
        frameworks=DEFAULT_FRAMEWORKS,
        require_config=dict(DEFAULT_REQUIRE_CONFIG),
        templates={},
    )


def load_project_config_file(project_root: Path) -> dict[str, object]:
    """Load optional specrunner.toml from the project root."""
    config_path = project_root / CONFIG_FILE_NAME
    if not config_path.exists():
        return {}
    with config_path.open("rb") as handle:
        payload = tomllib.load(handle)
    if not isinstance(payload, dict):
        raise ValueError(f"{CONFIG_FILE_NAME} must contain a top-level table.")
    return payload


def _get_table(payload: dict[str, object], key: str) -> dict[str, object]:
    value = payload.get(key, {})
    if not isinstance(value, dict):
        raise ValueError(f"Config section '{key}' must be a table.")
    return value


def _tuple_of_strings(value: object, section: str, field: str) -> tuple[str, ...]:
    if not isinstance(value, list):
        raise ValueError(f"Config field '{section}.{field}' must be a list of strings.")
    output: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ValueError(f"Config field '{section}.{field}' must contain only strings.")
        output.append(item)
    return tuple(output)


def _optional_bool(value: object, name: str, default: bool) -> bool:
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ValueError(f"Config field '{name}' must be a boolean.")
    return value


def merge_config(
    base: HarnessConfig, project_payload: dict[str, object], overrides: CliOverrides
) -> HarnessConfig:
    """Merge defaults, project config, then CLI/startup overrides."""
    server_payload = _get_table(project_payload, "server")
    files_payload = _get_table(project_payload, "files")
    coverage_payload = _get_table(project_payload, "coverage")
    run_payload = _get_table(project_payload, "run")
    frameworks_payload = _get_table(project_payload, "frameworks")
    templates_payload = _get_table(project_payload, "templates")
    require_payload = _get_table(project_payload, "require")

    port = _optional_positive_int_with_cap(
        server_payload.get("port"), "server.port", base.port, MAX_PORT
    )
    document_root = base.document_root
    if "document_root" in server_payload:
        raw_document_root = server_payload["document_root"]
        if not isinstance(raw_document_root, str) or not raw_document_root:
            raise ValueError("Config field 'server.document_root' must be a non-empty string.")
        document_root = (base.project_root / raw_document_root).resolve()

    files = base.files
    file_globs: dict[str, tuple[str, ...]] = {}
    for name in ("specs", "stylesheets", "styles", "html", "exclude"):
        if name in files_payload:
            file_globs[name] = _tuple_of_strings(files_payload[name], "files", name)
    if file_globs:
        files = FilesConfig(
            specs=file_globs.get("specs", files.specs),
            stylesheets=file_globs.get("stylesheets", files.stylesheets),
            styles=file_globs.get("styles", files.styles),
            html=file_globs.get("html", files.html),
            exclude=file_globs.get("exclude", files.exclude),
        )

    coverage = base.coverage
    if "exclude" in coverage_payload:
        coverage = CoverageConfig(
            exclude=_tuple_of_strings(coverage_payload["exclude"], "coverage", "exclude")
        )

    frameworks = base.frameworks
    if "enabled" in frameworks_payload:
        frameworks = _tuple_of_strings(frameworks_payload["enabled"], "frameworks", "enabled")

    templates = dict(base.templates)
    for name, value in templates_payload.items():
        if name not in TEMPLATE_NAMES:
            raise ValueError(
                f"Config field 'templates.{name}' is not a known template; "
                f"expected one of {', '.join(TEMPLATE_NAMES)}."
            )
        if not isinstance(value, str) or not value:
            raise ValueError(f"Config field 'templates.{name}' must be a non-empty string.")
        templates[name] = value

    require_config = dict(base.require_config)
    require_config.update(require_payload)

    run = RunConfig(
        watch=_optional_bool(run_payload.get("watch"), "run.watch", base.run.watch),
        single_run=_optional_bool(
            run_payload.get("single_run"), "run.single_run", base.run.single_run
        ),
        benchmark_count=_optional_int(
            run_payload.get("benchmark_count"), "run.benchmark_count", base.run.benchmark_count
        ),
    )

    merged = HarnessConfig(
        project_root=base.project_root,
        document_root=document_root,
        data_dir=base.data_dir,
        port=port,
        files=files,
        coverage=coverage,
        run=run,
        frameworks=frameworks,
        require_config=require_config,
        templates=templates,
    )
    return apply_cli_overrides(merged, overrides)


def apply_cli_overrides(config: HarnessConfig, overrides: CliOverrides) -> HarnessConfig:
    """Apply startup overrides at highest precedence."""
    port = _optional_positive_int_with_cap(overrides.port, "overrides.port", config.port, MAX_PORT)
    benchmark_count = _optional_int(
        overrides.benchmark_count, "overrides.benchmark_count", config.run.benchmark_count
    )
    run = RunConfig(
        watch=overrides.watch if overrides.watch is not None else config.run.watch,
        single_run=(
            overrides.single_run if overrides.single_run is not None else config.run.single_run
        ),
        benchmark_count=benchmark_count,
    )
    data_dir = overrides.data_dir or config.data_dir
    return HarnessConfig(
        project_root=config.project_root,
        document_root=config.document_root,
        data_dir=data_dir.resolve(),
        port=port,
        files=config.files,
        coverage=config.coverage,
        run=run,
        frameworks=config.frameworks,
        require_config=config.require_config,
        templates=config.templates,
    )


def load_effective_config(
    project_root: Path, overrides: CliOverrides | None = None
) -> HarnessConfig:
    """Load effective config using merge order defaults -> project config -> overrides."""
    resolved_root = project_root.resolve()
    base = default_config(resolved_root)
    payload = load_project_config_file(resolved_root)
    return merge_config(base, payload, overrides or CliOverrides())


def _optional_int(value: object, name: str, default: int) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"Config field '{name}' must be an integer.")
    return value


def _optional_positive_int_with_cap(
    value: object,
    name: str,
    default: int,
    cap: int | None,
) -> int:
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise ValueError(f"Config field '{name}' must be a positive integer.")
    if cap is not None and value > cap:
        raise ValueError(f"Config field '{name}' must be <= {cap}.")
    return value

"""Configuration loading and deterministic merge order."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path

from ai_lens.analysis.diff import DEFAULT_CODE_EXTENSIONS

CONFIG_FILE_NAME = "ai_lens.toml"

MAX_LINES_PER_FILE_CAP = 100_000
MAX_CACHE_SIZE_CAP = 1_000_000
MAX_RETENTION_MS_CAP = 24 * 60 * 60 * 1000
MAX_TRACKED_ITEMS_CAP = 1_000_000
MAX_PREFIX_STEPS_CAP = 1_000
MAX_VERSIONS_PER_FILE_CAP = 1_000
MAX_CAUSALITY_WINDOW_DAYS_CAP = 365
MAX_RECENT_COMMIT_COUNT_CAP = 100


@dataclass(slots=True, frozen=True)
class InferenceConfig:
    """Bounds for line evidence and opaque item tracking."""

    max_lines_per_file: int = 1_000
    max_cache_size: int = 5_000
    record_retention_ms: int = 300_000
    max_tracked_items: int = 10_000
    max_prefix_steps: int = 100


@dataclass(slots=True, frozen=True)
class SnapshotConfig:
    """Bounds for per-file document history."""

    max_versions_per_file: int = 50
    max_history_ms: int = 10 * 60 * 1000


@dataclass(slots=True, frozen=True)
class AnalysisConfig:
    """Commit correlation settings."""

    causality_window_days: int = 7
    recent_commit_count: int = 3
    code_extensions: tuple[str, ...] = DEFAULT_CODE_EXTENSIONS


@dataclass(slots=True, frozen=True)
class LensConfig:
    """Fully merged session configuration."""

    workspace_root: Path
    data_dir: Path
    inference: InferenceConfig
    snapshots: SnapshotConfig
    analysis: AnalysisConfig

    def to_public_dict(self) -> dict[str, object]:
        """Return serializable config snapshot for tool responses."""
        return {
            "workspace_root": str(self.workspace_root),
            "data_dir": str(self.data_dir),
            "inference": {
                "max_lines_per_file": self.inference.max_lines_per_file,
                "max_cache_size": self.inference.max_cache_size,
                "record_retention_ms": self.inference.record_retention_ms,
                "max_tracked_items": self.inference.max_tracked_items,
                "max_prefix_steps": self.inference.max_prefix_steps,
            },
            "snapshots": {
                "max_versions_per_file": self.snapshots.max_versions_per_file,
                "max_history_ms": self.snapshots.max_history_ms,
            },
            "analysis": {
                "causality_window_days": self.analysis.causality_window_days,
                "recent_commit_count": self.analysis.recent_commit_count,
                "code_extensions": list(self.analysis.code_extensions),
            },
        }


@dataclass(slots=True, frozen=True)
class CliOverrides:
    """Optional startup overrides applied at highest precedence."""

    data_dir: Path | None = None
    max_lines_per_file: int | None = None
    max_cache_size: int | None = None
    causality_window_days: int | None = None
    recent_commit_count: int | None = None


def default_config(workspace_root: Path) -> LensConfig:
    """Build default config for a given workspace root."""
    resolved_root = workspace_root.resolve()
    return LensConfig(
        workspace_root=resolved_root,
        data_dir=resolved_root / ".ai_lens",
        inference=InferenceConfig(),
        snapshots=SnapshotConfig(),
        analysis=AnalysisConfig(),
    )


def load_workspace_config_file(workspace_root: Path) -> dict[str, object]:
    """Load optional ai_lens.toml from the workspace root."""
    config_path = workspace_root / CONFIG_FILE_NAME
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


def _tuple_of_extensions(value: object, section: str, field: str) -> tuple[str, ...]:
    if not isinstance(value, list):
        raise ValueError(f"Config field '{section}.{field}' must be a list of strings.")
    output: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ValueError(f"Config field '{section}.{field}' must contain only strings.")
        if not item.startswith("."):
            raise ValueError(f"Config field '{section}.{field}' entries must start with '.'.")
        output.append(item.lower())
    return tuple(output)


def merge_config(
    base: LensConfig, workspace_payload: dict[str, object], overrides: CliOverrides
) -> LensConfig:
    """Merge defaults, workspace config, then CLI/startup overrides."""
    inference_payload = _get_table(workspace_payload, "inference")
    snapshots_payload = _get_table(workspace_payload, "snapshots")
    analysis_payload = _get_table(workspace_payload, "analysis")

    inference = InferenceConfig(
        max_lines_per_file=_optional_positive_int_with_cap(
            inference_payload.get("max_lines_per_file"),
            "inference.max_lines_per_file",
            base.inference.max_lines_per_file,
            MAX_LINES_PER_FILE_CAP,
        ),
        max_cache_size=_optional_positive_int_with_cap(
            inference_payload.get("max_cache_size"),
            "inference.max_cache_size",
            base.inference.max_cache_size,
            MAX_CACHE_SIZE_CAP,
        ),
        record_retention_ms=_optional_positive_int_with_cap(
            inference_payload.get("record_retention_ms"),
            "inference.record_retention_ms",
            base.inference.record_retention_ms,
            MAX_RETENTION_MS_CAP,
        ),
        max_tracked_items=_optional_positive_int_with_cap(
            inference_payload.get("max_tracked_items"),
            "inference.max_tracked_items",
            base.inference.max_tracked_items,
            MAX_TRACKED_ITEMS_CAP,
        ),
        max_prefix_steps=_optional_positive_int_with_cap(
            inference_payload.get("max_prefix_steps"),
            "inference.max_prefix_steps",
            base.inference.max_prefix_steps,
            MAX_PREFIX_STEPS_CAP,
        ),
    )
    if inference.max_cache_size < 2:
        raise ValueError("Config field 'inference.max_cache_size' must be >= 2.")

    snapshots = SnapshotConfig(
        max_versions_per_file=_optional_positive_int_with_cap(
            snapshots_payload.get("max_versions_per_file"),
            "snapshots.max_versions_per_file",
            base.snapshots.max_versions_per_file,
            MAX_VERSIONS_PER_FILE_CAP,
        ),
        max_history_ms=_optional_positive_int_with_cap(
            snapshots_payload.get("max_history_ms"),
            "snapshots.max_history_ms",
            base.snapshots.max_history_ms,
            MAX_RETENTION_MS_CAP,
        ),
    )

    code_extensions = base.analysis.code_extensions
    if "code_extensions" in analysis_payload:
        code_extensions = _tuple_of_extensions(
            analysis_payload["code_extensions"], "analysis", "code_extensions"
        )
    analysis = AnalysisConfig(
        causality_window_days=_optional_positive_int_with_cap(
            analysis_payload.get("causality_window_days"),
            "analysis.causality_window_days",
            base.analysis.causality_window_days,
            MAX_CAUSALITY_WINDOW_DAYS_CAP,
        ),
        recent_commit_count=_optional_positive_int_with_cap(
            analysis_payload.get("recent_commit_count"),
            "analysis.recent_commit_count",
            base.analysis.recent_commit_count,
            MAX_RECENT_COMMIT_COUNT_CAP,
        ),
        code_extensions=code_extensions,
    )

    merged = LensConfig(
        workspace_root=base.workspace_root,
        data_dir=base.data_dir,
        inference=inference,
        snapshots=snapshots,
        analysis=analysis,
    )
    return apply_cli_overrides(merged, overrides)


def apply_cli_overrides(config: LensConfig, overrides: CliOverrides) -> LensConfig:
    """Apply startup overrides at highest precedence."""
    inference = InferenceConfig(
        max_lines_per_file=_optional_positive_int_with_cap(
            overrides.max_lines_per_file,
            "overrides.max_lines_per_file",
            config.inference.max_lines_per_file,
            MAX_LINES_PER_FILE_CAP,
        ),
        max_cache_size=_optional_positive_int_with_cap(
            overrides.max_cache_size,
            "overrides.max_cache_size",
            config.inference.max_cache_size,
            MAX_CACHE_SIZE_CAP,
        ),
        record_retention_ms=config.inference.record_retention_ms,
        max_tracked_items=config.inference.max_tracked_items,
        max_prefix_steps=config.inference.max_prefix_steps,
    )
    if inference.max_cache_size < 2:
        raise ValueError("Config field 'overrides.max_cache_size' must be >= 2.")
    analysis = AnalysisConfig(
        causality_window_days=_optional_positive_int_with_cap(
            overrides.causality_window_days,
            "overrides.causality_window_days",
            config.analysis.causality_window_days,
            MAX_CAUSALITY_WINDOW_DAYS_CAP,
        ),
        recent_commit_count=_optional_positive_int_with_cap(
            overrides.recent_commit_count,
            "overrides.recent_commit_count",
            config.analysis.recent_commit_count,
            MAX_RECENT_COMMIT_COUNT_CAP,
        ),
        code_extensions=config.analysis.code_extensions,
    )
    data_dir = overrides.data_dir or config.data_dir
    return LensConfig(
        workspace_root=config.workspace_root,
        data_dir=data_dir.resolve(),
        inference=inference,
        snapshots=config.snapshots,
        analysis=analysis,
    )


def load_effective_config(
    workspace_root: Path, overrides: CliOverrides | None = None
) -> LensConfig:
    """Load effective config using merge order defaults -> workspace config -> overrides."""
    resolved_root = workspace_root.resolve()
    base = default_config(resolved_root)
    payload = load_workspace_config_file(resolved_root)
    return merge_config(base, payload, overrides or CliOverrides())


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

"""Minimal strict schemas for YAML config validation."""

from __future__ import annotations

import math

from school_demand.common.constants import AMBIGUITY_POLICIES, BOUNDARY_POLICIES, DATASETS, DEFAULT_AGE_COLUMNS
from school_demand.common.errors import ConfigError

ANALYSIS_REQUIRED_KEYS = {
    "target_crs",
    "outlier_threshold",
    "boundary_policy",
    "ambiguity_policy",
    "point_filters",
    "output",
}
ANALYSIS_KEYS = ANALYSIS_REQUIRED_KEYS | {"age_columns"}

DATASET_REQUIRED_KEYS = {
    "schools": {"filename", "url", "crs", "id_column", "x_column", "y_column", "capacity_column"},
    "census": {"filename", "url", "id_column"},
    "settlements": {"filename", "url", "id_property", "name_property"},
}

DATASET_OPTIONAL_KEYS = {
    "schools": {"name_column"},
    "census": set(),
    "settlements": {"crs"},
}


def _assert_mapping(obj: object, ctx: str) -> dict:
    if not isinstance(obj, dict):
        raise ConfigError(f"{ctx} must be a mapping")
    return obj


def _assert_required_keys(obj: dict, required: set[str], ctx: str) -> None:
    missing = required - set(obj)
    if missing:
        missing_str = ", ".join(sorted(missing))
        raise ConfigError(f"Missing keys in {ctx}: {missing_str}")


def _assert_no_unknown_keys(obj: dict, known: set[str], ctx: str, allow_unknown: bool) -> None:
    if allow_unknown:
        return
    unknown = set(obj) - known
    if unknown:
        unknown_str = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown keys in {ctx}: {unknown_str}")


def validate_threshold(value: object) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"outlier_threshold must be a number, got {value!r}")
    if not math.isfinite(value):
        raise ConfigError(f"outlier_threshold must be finite, got {value!r}")
    return float(value)


def validate_analysis_config(cfg: object, *, allow_unknown: bool = False) -> dict:
    cfg = _assert_mapping(cfg, "analysis config")
    _assert_required_keys(cfg, ANALYSIS_REQUIRED_KEYS, "analysis config")
    _assert_no_unknown_keys(cfg, ANALYSIS_KEYS, "analysis config", allow_unknown)
    cfg.setdefault("age_columns", list(DEFAULT_AGE_COLUMNS))

    if not isinstance(cfg["target_crs"], str) or not cfg["target_crs"].strip():
        raise ConfigError("target_crs must be a non-empty string")
    validate_threshold(cfg["outlier_threshold"])

    columns = cfg["age_columns"]
    if not isinstance(columns, list) or not columns:
        raise ConfigError("age_columns must be a non-empty list")
    if not all(isinstance(column, str) and column for column in columns):
        raise ConfigError("age_columns entries must be non-empty strings")
    dupes = {column for column in columns if columns.count(column) > 1}
    if dupes:
        raise ConfigError(f"Duplicate age columns: {', '.join(sorted(dupes))}")

    if cfg["boundary_policy"] not in BOUNDARY_POLICIES:
        raise ConfigError(f"boundary_policy must be one of {', '.join(BOUNDARY_POLICIES)}")
    if cfg["ambiguity_policy"] not in AMBIGUITY_POLICIES:
        raise ConfigError(f"ambiguity_policy must be one of {', '.join(AMBIGUITY_POLICIES)}")

    filters = cfg["point_filters"] or []
    if not isinstance(filters, list):
        raise ConfigError("point_filters must be a list")
    for idx, entry in enumerate(filters):
        _assert_required_keys(_assert_mapping(entry, f"point_filters[{idx}]"), {"name"}, f"point_filters[{idx}]")
    cfg["point_filters"] = filters

    output = _assert_mapping(cfg["output"], "output")
    _assert_required_keys(output, {"ratio_filename", "exclusions_filename"}, "output")
    if output["ratio_filename"] == output["exclusions_filename"]:
        raise ConfigError("ratio_filename and exclusions_filename must differ")

    return cfg


def validate_sources_config(cfg: object, *, allow_unknown: bool = False) -> dict:
    cfg = _assert_mapping(cfg, "sources config")
    _assert_required_keys(cfg, {"datasets"}, "sources config")
    _assert_no_unknown_keys(cfg, {"datasets"}, "sources config", allow_unknown)

    datasets = _assert_mapping(cfg["datasets"], "datasets")
    _assert_required_keys(datasets, set(DATASETS), "datasets")
    _assert_no_unknown_keys(datasets, set(DATASETS), "datasets", allow_unknown)

    for name in DATASETS:
        ctx = f"datasets.{name}"
        dataset = _assert_mapping(datasets[name], ctx)
        required = DATASET_REQUIRED_KEYS[name]
        _assert_required_keys(dataset, required, ctx)
        _assert_no_unknown_keys(dataset, required | DATASET_OPTIONAL_KEYS[name], ctx, allow_unknown)
        if not dataset["filename"]:
            raise ConfigError(f"{ctx}.filename must not be empty")

    if not datasets["schools"]["crs"]:
        raise ConfigError("datasets.schools.crs must name the CRS of the point coordinates")

    return cfg

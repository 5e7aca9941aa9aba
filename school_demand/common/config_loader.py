"""Configuration loading and validation."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from school_demand.common.errors import ConfigError
from school_demand.common.fs import read_yaml
from school_demand.common.schema import validate_analysis_config, validate_sources_config

ANALYSIS_FILENAME = "analysis.yml"
SOURCES_FILENAME = "sources.yml"


@dataclass(frozen=True)
class ConfigBundle:
    analysis: dict
    sources: dict

    def dataset(self, name: str) -> dict:
        return self.sources["datasets"][name]


def _deep_merge(base: Any, overlay: Any) -> Any:
    if isinstance(base, dict) and isinstance(overlay, dict):
        merged = dict(base)
        for key, value in overlay.items():
            if key in merged:
                merged[key] = _deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged
    return overlay


def _load_yaml_with_overlay(path: Path, overlay_path: Path | None) -> dict:
    if not path.exists():
        raise ConfigError(f"Missing config file: {path}")
    base = read_yaml(path)
    if not isinstance(base, dict):
        raise ConfigError(f"Config file must contain a mapping: {path}")
    if overlay_path is None or not overlay_path.exists():
        return base
    overlay = read_yaml(overlay_path)
    if overlay is None:
        return base
    if not isinstance(overlay, dict):
        raise ConfigError(f"Overlay config must contain a mapping: {overlay_path}")
    return _deep_merge(base, overlay)


def load_all_configs(
    config_dir: Path,
    *,
    allow_unknown: bool = False,
    overlay_config_dir: Path | None = None,
) -> ConfigBundle:
    def _overlay(name: str) -> Path | None:
        return (overlay_config_dir / name) if overlay_config_dir is not None else None

    analysis = validate_analysis_config(
        _load_yaml_with_overlay(config_dir / ANALYSIS_FILENAME, _overlay(ANALYSIS_FILENAME)),
        allow_unknown=allow_unknown,
    )
    sources = validate_sources_config(
        _load_yaml_with_overlay(config_dir / SOURCES_FILENAME, _overlay(SOURCES_FILENAME)),
        allow_unknown=allow_unknown,
    )
    return ConfigBundle(analysis=analysis, sources=sources)

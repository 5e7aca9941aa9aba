"""Data-quality report and run summary."""

from __future__ import annotations

from collections import Counter
from pathlib import Path

from school_demand.common.constants import EXCLUSION_REASONS, REJECTED_SAMPLE_LIMIT
from school_demand.common.fs import read_json, write_json
from school_demand.common.models import RejectedRow


def report_dir(data_dir: Path) -> Path:
    return data_dir / "out" / "reports"


def _rejected_by_reason(rejected: list[RejectedRow]) -> dict[str, dict[str, int]]:
    out: dict[str, Counter] = {}
    for row in rejected:
        # Geometry validity reasons carry a detail suffix; count on the prefix.
        reason = row.reason.split(":", 1)[0]
        out.setdefault(row.dataset, Counter())[reason] += 1
    return {dataset: dict(sorted(counts.items())) for dataset, counts in sorted(out.items())}


def build_quality_report(
    *,
    run_id: str,
    run_date: str,
    parameters: dict,
    counts: dict[str, int],
    rejected: list[RejectedRow],
    filtered: dict[str, tuple[str, ...]],
    unmatched_points: tuple[str, ...],
    ambiguous: list[dict],
    unmatched_census_keys: tuple[str, ...],
    excluded_reasons: list[str],
) -> dict:
    excluded_counts = {reason: 0 for reason in EXCLUSION_REASONS}
    for reason in excluded_reasons:
        excluded_counts[reason] = excluded_counts.get(reason, 0) + 1

    warnings: list[str] = []
    if rejected:
        warnings.append("REJECTED_INPUT_ROWS")
    if any(filtered.values()):
        warnings.append("POINTS_FILTERED")
    if unmatched_points:
        warnings.append("POINTS_UNMATCHED")
    if ambiguous:
        warnings.append("AMBIGUOUS_JOINS")
    if unmatched_census_keys:
        warnings.append("UNMATCHED_CENSUS_ROWS")
    if excluded_reasons:
        warnings.append("SETTLEMENTS_EXCLUDED")

    return {
        "run_id": run_id,
        "run_date": run_date,
        "parameters": parameters,
        "counts": counts,
        "rejected": _rejected_by_reason(rejected),
        "rejected_samples": [row.to_dict() for row in rejected[:REJECTED_SAMPLE_LIMIT]],
        "filtered": {name: list(ids) for name, ids in sorted(filtered.items())},
        "join": {
            "unmatched_points": list(unmatched_points),
            "ambiguous": ambiguous,
        },
        "unmatched_census_keys": list(unmatched_census_keys[:REJECTED_SAMPLE_LIMIT]),
        "excluded_settlements": excluded_counts,
        "warnings": warnings,
        "errors": [],
    }


def write_quality_report(data_dir: Path, payload: dict) -> Path:
    path = report_dir(data_dir) / "quality_report.json"
    write_json(path, payload)
    return path


def write_run_summary(data_dir: Path, run_id: str, run_date: str, stages: dict[str, str]) -> Path:
    quality_path = report_dir(data_dir) / "quality_report.json"
    warning_count = 0
    error_count = sum(1 for status in stages.values() if status != "ok")
    counts: dict = {}

    if "analyse" in stages and stages["analyse"] == "ok":
        if quality_path.exists():
            report = read_json(quality_path)
            counts = report.get("counts", {})
            warning_count = len(report.get("warnings", []))
            error_count += len(report.get("errors", []))
        else:
            error_count += 1

    status = "success"
    if error_count > 0:
        status = "error"
    elif warning_count > 0:
        status = "partial"

    summary_path = report_dir(data_dir) / "run_summary.json"
    payload = {
        "run_id": run_id,
        "run_date": run_date,
        "status": status,
        "stages": stages,
        "counts": counts,
        "warning_count": warning_count,
        "error_count": error_count,
    }
    write_json(summary_path, payload)
    return summary_path

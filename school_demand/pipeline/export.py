"""Ratio and exclusion table export."""

from __future__ import annotations

from pathlib import Path

from school_demand.common.fs import write_csv
from school_demand.common.models import ExcludedSettlement, RatioRecord

RATIO_HEADERS = [
    "settlement_id",
    "settlement_name",
    "total_schoolchildren",
    "total_school_places",
    "ratio",
    "outlier",
]

EXCLUSION_HEADERS = [
    "settlement_id",
    "settlement_name",
    "reason",
    "total_schoolchildren",
    "total_school_places",
]


def _serialize_value(value: object) -> object:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return repr(value)
    return value


def _ratio_row(record: RatioRecord) -> dict:
    return {
        "settlement_id": record.settlement_id,
        "settlement_name": record.name,
        "total_schoolchildren": record.total_schoolchildren,
        "total_school_places": record.total_school_places,
        "ratio": record.ratio,
        "outlier": record.outlier,
    }


def _exclusion_row(record: ExcludedSettlement) -> dict:
    return {
        "settlement_id": record.settlement_id,
        "settlement_name": record.name,
        "reason": record.reason,
        "total_schoolchildren": record.total_schoolchildren,
        "total_school_places": record.total_school_places,
    }


def write_ratio_table(path: Path, records: tuple[RatioRecord, ...] | list[RatioRecord]) -> Path:
    rows = [_ratio_row(record) for record in sorted(records, key=lambda record: record.settlement_id)]
    write_csv(path, RATIO_HEADERS, [{key: _serialize_value(value) for key, value in row.items()} for row in rows])
    return path


def write_exclusions_table(
    path: Path,
    records: tuple[ExcludedSettlement, ...] | list[ExcludedSettlement],
) -> Path:
    rows = [
        _exclusion_row(record)
        for record in sorted(records, key=lambda record: (record.reason, record.settlement_id))
    ]
    write_csv(path, EXCLUSION_HEADERS, [{key: _serialize_value(value) for key, value in row.items()} for row in rows])
    return path

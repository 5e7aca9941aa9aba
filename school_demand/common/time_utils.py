"""UTC-focused helpers for run identifiers and run metadata."""

from __future__ import annotations

from datetime import date, datetime, timezone

from school_demand.common.errors import ConfigError


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def generate_run_id() -> str:
    # Sortable and filesystem safe; used to name the run log.
    return utc_now().strftime("run-%Y%m%dT%H%M%S%fZ")


def parse_run_date(value: str | None) -> str:
    if not value:
        return utc_now().date().isoformat()
    try:
        parsed = date.fromisoformat(value)
    except ValueError as exc:
        raise ConfigError(f"Invalid run date: {value!r}") from exc
    return parsed.isoformat()


def utc_timestamp_iso() -> str:
    return utc_now().isoformat(timespec="milliseconds")

"""Per-settlement demand: the number of school-age children."""

from __future__ import annotations

from school_demand.common.errors import ConfigError, InputValidationError, MissingColumnError
from school_demand.common.models import DemandRecord, FeatureCollection, PolygonFeature
from school_demand.pipeline.loader import parse_number


def _age_count(settlement: PolygonFeature, column: str) -> int | float:
    if column not in settlement.attributes:
        raise MissingColumnError(f"Settlement {settlement.feature_id} has no {column!r} attribute")
    value = parse_number(settlement.attributes[column])
    if value is None:
        raise InputValidationError(
            f"Settlement {settlement.feature_id} has a non-numeric {column!r}: {settlement.attributes[column]!r}"
        )
    return value


def aggregate_demand(
    settlements: FeatureCollection[PolygonFeature],
    age_columns: list[str] | tuple[str, ...],
) -> tuple[DemandRecord, ...]:
    """Sum exactly the named age columns for every settlement.

    A missing column is an error, never a zero.
    """
    if not age_columns:
        raise ConfigError("age_columns must name at least one column")

    return tuple(
        DemandRecord(
            settlement_id=settlement.feature_id,
            name=settlement.name,
            total_schoolchildren=sum(_age_count(settlement, column) for column in age_columns),
        )
        for settlement in settlements.features
    )

"""Per-settlement supply: school places from the joined schools."""

from __future__ import annotations

from collections import defaultdict

from school_demand.common.errors import ContractError
from school_demand.common.models import FeatureCollection, JoinResult, PointFeature, SupplyRecord


def aggregate_supply(
    points: FeatureCollection[PointFeature],
    join: JoinResult,
) -> tuple[SupplyRecord, ...]:
    capacity_by_point = {point.feature_id: point.capacity for point in points.features}
    places: dict[str, int | float] = defaultdict(int)
    counts: dict[str, int] = defaultdict(int)

    for record in join.records:
        if record.point_id not in capacity_by_point:
            raise ContractError(f"Join references unknown point {record.point_id}")
        places[record.settlement_id] += capacity_by_point[record.point_id]
        counts[record.settlement_id] += 1

    return tuple(
        SupplyRecord(settlement_id=key, total_school_places=places[key], school_count=counts[key])
        for key in sorted(places)
    )

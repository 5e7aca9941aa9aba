"""Demand/supply ratio per settlement and outlier classification."""

from __future__ import annotations

from school_demand.common.models import (
    DemandRecord,
    ExcludedSettlement,
    RatioAnalysis,
    RatioRecord,
    SupplyRecord,
)
from school_demand.common.schema import validate_threshold


def analyse_ratios(
    demand: tuple[DemandRecord, ...] | list[DemandRecord],
    supply: tuple[SupplyRecord, ...] | list[SupplyRecord],
    threshold: float,
) -> RatioAnalysis:
    """Inner-join demand and supply on settlement id and flag ``ratio > threshold``.

    Settlements that would produce an undefined ratio never reach the
    records; they are listed in ``excluded`` with one of ``no_supply_data``,
    ``zero_supply`` or ``no_demand_data``.
    """
    threshold = validate_threshold(threshold)
    demand_by_id = {record.settlement_id: record for record in demand}
    supply_by_id = {record.settlement_id: record for record in supply}

    records: list[RatioRecord] = []
    excluded: list[ExcludedSettlement] = []

    for settlement_id in sorted(set(demand_by_id) | set(supply_by_id)):
        demand_record = demand_by_id.get(settlement_id)
        supply_record = supply_by_id.get(settlement_id)

        if supply_record is None:
            excluded.append(
                ExcludedSettlement(
                    settlement_id=settlement_id,
                    name=demand_record.name,
                    reason="no_supply_data",
                    total_schoolchildren=demand_record.total_schoolchildren,
                    total_school_places=None,
                )
            )
            continue
        if demand_record is None:
            excluded.append(
                ExcludedSettlement(
                    settlement_id=settlement_id,
                    name=None,
                    reason="no_demand_data",
                    total_schoolchildren=None,
                    total_school_places=supply_record.total_school_places,
                )
            )
            continue
        if supply_record.total_school_places == 0:
            excluded.append(
                ExcludedSettlement(
                    settlement_id=settlement_id,
                    name=demand_record.name,
                    reason="zero_supply",
                    total_schoolchildren=demand_record.total_schoolchildren,
                    total_school_places=supply_record.total_school_places,
                )
            )
            continue

        ratio = demand_record.total_schoolchildren / supply_record.total_school_places
        records.append(
            RatioRecord(
                settlement_id=settlement_id,
                name=demand_record.name,
                total_schoolchildren=demand_record.total_schoolchildren,
                total_school_places=supply_record.total_school_places,
                ratio=ratio,
                outlier=ratio > threshold,
            )
        )

    return RatioAnalysis(records=tuple(records), excluded=tuple(excluded))

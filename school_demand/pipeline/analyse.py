"""Analyse stage: settlement demand, supply, ratio and outliers."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from school_demand.common.config_loader import ConfigBundle
from school_demand.common.errors import StageError
from school_demand.common.logging import log_event, log_warning
from school_demand.common.models import (
    DemandRecord,
    FeatureCollection,
    JoinResult,
    PointFeature,
    PolygonFeature,
    RatioAnalysis,
    SupplyRecord,
)
from school_demand.common.schema import validate_threshold
from school_demand.fetch.runner import dataset_path
from school_demand.pipeline.demographics import aggregate_demand
from school_demand.pipeline.export import write_exclusions_table, write_ratio_table
from school_demand.pipeline.filters import apply_point_filters, build_point_filters
from school_demand.pipeline.loader import (
    attach_attributes,
    load_attribute_table,
    load_points_csv,
    load_polygons_geojson,
)
from school_demand.pipeline.ratio import analyse_ratios
from school_demand.pipeline.reports import build_quality_report, write_quality_report
from school_demand.pipeline.reproject import reproject
from school_demand.pipeline.spatial_join import spatial_join
from school_demand.pipeline.supply import aggregate_supply


@dataclass(frozen=True)
class SettlementAnalysis:
    points: FeatureCollection[PointFeature]
    settlements: FeatureCollection[PolygonFeature]
    demand: tuple[DemandRecord, ...]
    join: JoinResult
    supply: tuple[SupplyRecord, ...]
    ratios: RatioAnalysis


def analyse_settlements(
    points: FeatureCollection[PointFeature],
    settlements: FeatureCollection[PolygonFeature],
    *,
    target_crs: str,
    age_columns: list[str] | tuple[str, ...],
    threshold: float,
    boundary_policy: str = "exclude",
    ambiguity_policy: str = "first",
) -> SettlementAnalysis:
    """Run the in-memory part of the pipeline on already loaded collections."""
    points = reproject(points, target_crs)
    settlements = reproject(settlements, target_crs)

    demand = aggregate_demand(settlements, age_columns)
    join = spatial_join(
        points,
        settlements,
        boundary_policy=boundary_policy,
        ambiguity_policy=ambiguity_policy,
    )
    supply = aggregate_supply(points, join)
    ratios = analyse_ratios(demand, supply, threshold)

    return SettlementAnalysis(
        points=points,
        settlements=settlements,
        demand=demand,
        join=join,
        supply=supply,
        ratios=ratios,
    )


def _input_path(data_dir: Path, bundle: ConfigBundle, name: str) -> Path:
    path = dataset_path(data_dir, bundle.dataset(name))
    if not path.exists():
        raise StageError(f"Dataset {name} not found at {path}; run the fetch stage first")
    return path


def run_analysis(
    bundle: ConfigBundle,
    data_dir: Path,
    run_id: str,
    run_date: str,
    *,
    threshold: float | None = None,
    logger: logging.Logger | None = None,
) -> dict:
    analysis_cfg = bundle.analysis
    schools_cfg = bundle.dataset("schools")
    census_cfg = bundle.dataset("census")
    settlements_cfg = bundle.dataset("settlements")
    threshold = validate_threshold(analysis_cfg["outlier_threshold"] if threshold is None else threshold)

    schools = load_points_csv(
        _input_path(data_dir, bundle, "schools"),
        dataset="schools",
        crs=schools_cfg["crs"],
        id_column=schools_cfg["id_column"],
        x_column=schools_cfg["x_column"],
        y_column=schools_cfg["y_column"],
        capacity_column=schools_cfg["capacity_column"],
        name_column=schools_cfg.get("name_column"),
    )
    log_event(
        logger,
        "loaded schools",
        run_id=run_id,
        stage="analyse",
        dataset="schools",
        event="LOADED",
        status="ok",
        rows_in=len(schools.collection) + len(schools.rejected),
        rows_out=len(schools.collection),
    )

    filtered = apply_point_filters(schools.collection, build_point_filters(analysis_cfg["point_filters"]))
    if filtered.excluded_count:
        log_event(
            logger,
            "filtered schools",
            run_id=run_id,
            stage="analyse",
            dataset="schools",
            event="FILTERED",
            status="ok",
            rows_in=len(schools.collection),
            rows_out=len(filtered.collection),
        )

    census = load_attribute_table(
        _input_path(data_dir, bundle, "census"),
        dataset="census",
        id_column=census_cfg["id_column"],
    )
    boundaries = load_polygons_geojson(
        _input_path(data_dir, bundle, "settlements"),
        dataset="settlements",
        id_property=settlements_cfg["id_property"],
        name_property=settlements_cfg["name_property"],
        crs=settlements_cfg.get("crs"),
    )
    settlements, unmatched_census_keys = attach_attributes(boundaries, census, dataset="settlements")
    log_event(
        logger,
        "loaded settlements",
        run_id=run_id,
        stage="analyse",
        dataset="settlements",
        event="LOADED",
        status="ok",
        rows_in=len(boundaries.collection) + len(boundaries.rejected),
        rows_out=len(settlements.collection),
    )

    result = analyse_settlements(
        filtered.collection,
        settlements.collection,
        target_crs=analysis_cfg["target_crs"],
        age_columns=analysis_cfg["age_columns"],
        threshold=threshold,
        boundary_policy=analysis_cfg["boundary_policy"],
        ambiguity_policy=analysis_cfg["ambiguity_policy"],
    )

    if result.join.unmatched:
        log_warning(
            logger,
            f"{len(result.join.unmatched)} schools lie within no settlement",
            run_id=run_id,
            stage="analyse",
            dataset="schools",
            event="JOIN_UNMATCHED",
            status="warning",
            rows_in=result.join.point_count,
            rows_out=len(result.join.records),
        )
    for match in result.join.ambiguous:
        log_warning(
            logger,
            f"school {match.point_id} lies within {', '.join(match.candidates)}; assigned to {match.chosen}",
            run_id=run_id,
            stage="analyse",
            dataset="schools",
            event="JOIN_AMBIGUOUS",
            status="warning",
        )
    if result.ratios.excluded:
        log_warning(
            logger,
            f"{len(result.ratios.excluded)} settlements excluded from the ratio table",
            run_id=run_id,
            stage="analyse",
            dataset="settlements",
            event="SETTLEMENTS_EXCLUDED",
            status="warning",
        )

    output_cfg = analysis_cfg["output"]
    ratio_path = write_ratio_table(data_dir / "out" / output_cfg["ratio_filename"], result.ratios.records)
    exclusions_path = write_exclusions_table(
        data_dir / "out" / output_cfg["exclusions_filename"],
        result.ratios.excluded,
    )

    rejected = [*schools.rejected, *census.rejected, *settlements.rejected]
    report = build_quality_report(
        run_id=run_id,
        run_date=run_date,
        parameters={
            "target_crs": result.settlements.crs,
            "outlier_threshold": threshold,
            "age_columns": list(analysis_cfg["age_columns"]),
            "boundary_policy": analysis_cfg["boundary_policy"],
            "ambiguity_policy": analysis_cfg["ambiguity_policy"],
        },
        counts={
            "schools_loaded": len(schools.collection),
            "schools_rejected": len(schools.rejected),
            "schools_filtered": filtered.excluded_count,
            "schools_joined": len(result.join.records),
            "schools_unmatched": len(result.join.unmatched),
            "schools_ambiguous": len(result.join.ambiguous),
            "census_rows": len(census.rows),
            "census_rejected": len(census.rejected),
            "census_unmatched": len(unmatched_census_keys),
            "settlements_loaded": len(settlements.collection),
            "settlements_rejected": len(settlements.rejected),
            "settlements_in_ratio_table": len(result.ratios.records),
            "settlements_excluded": len(result.ratios.excluded),
            "outliers": result.ratios.outlier_count,
        },
        rejected=rejected,
        filtered=filtered.excluded,
        unmatched_points=result.join.unmatched,
        ambiguous=[match.to_dict() for match in result.join.ambiguous],
        unmatched_census_keys=unmatched_census_keys,
        excluded_reasons=[record.reason for record in result.ratios.excluded],
    )
    report_path = write_quality_report(data_dir, report)

    return {
        "ratio_path": ratio_path,
        "exclusions_path": exclusions_path,
        "report_path": report_path,
        "report": report,
        "analysis": result,
    }

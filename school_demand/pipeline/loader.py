"""Parse raw school, census and boundary inputs into typed feature collections.

Rows that cannot be used are rejected with a reason and returned next to
the valid collection; nothing is dropped without a record. A missing
column that every row depends on fails the whole load instead.
"""

from __future__ import annotations

import json
import math
from pathlib import Path

from school_demand.common.errors import ConfigError, CrsUndeclaredError, InputSchemaError
from school_demand.common.fs import read_csv
from school_demand.common.geometry import declared_crs, is_finite_pair, polygon_from_geojson
from school_demand.common.models import (
    AttributeTable,
    FeatureCollection,
    LoadResult,
    PointFeature,
    PolygonFeature,
    RejectedRow,
)
from school_demand.pipeline.reproject import normalise_crs

# Header is line 1 of a CSV, so the first data row is line 2.
FIRST_DATA_ROW = 2


def parse_number(value: object) -> int | float | None:
    """Parse an integer or finite decimal; return None for blanks and junk."""
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else None
    text = str(value).strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        parsed = float(text)
    except ValueError:
        return None
    return parsed if math.isfinite(parsed) else None


def _require_columns(header: list[str], required: list[str], dataset: str, path: Path) -> None:
    missing = [column for column in required if column not in header]
    if missing:
        raise InputSchemaError(f"{dataset}: {path} is missing required columns: {', '.join(missing)}")


def _clean_id(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def load_points_csv(
    path: Path,
    *,
    dataset: str,
    crs: str,
    id_column: str,
    x_column: str,
    y_column: str,
    capacity_column: str,
    name_column: str | None = None,
) -> LoadResult[PointFeature]:
    if not crs:
        raise CrsUndeclaredError(f"{dataset}: no CRS configured for point coordinates")
    normalised_crs = normalise_crs(crs)

    header, rows = read_csv(path)
    required = [id_column, x_column, y_column, capacity_column]
    if name_column:
        required.append(name_column)
    _require_columns(header, required, dataset, path)

    features: list[PointFeature] = []
    rejected: list[RejectedRow] = []
    row_numbers: dict[str, int] = {}

    for row_number, row in enumerate(rows, start=FIRST_DATA_ROW):
        feature_id = _clean_id(row.get(id_column))
        if feature_id is None:
            rejected.append(RejectedRow(dataset, row_number, "missing_id"))
            continue
        if feature_id in row_numbers:
            rejected.append(RejectedRow(dataset, row_number, "duplicate_id", feature_id))
            continue

        x = parse_number(row.get(x_column))
        y = parse_number(row.get(y_column))
        if x is None or y is None or not is_finite_pair(float(x), float(y)):
            rejected.append(RejectedRow(dataset, row_number, "invalid_coordinates", feature_id))
            continue

        capacity = parse_number(row.get(capacity_column))
        if capacity is None:
            rejected.append(RejectedRow(dataset, row_number, "invalid_capacity", feature_id))
            continue

        name = _clean_id(row.get(name_column)) if name_column else None
        row_numbers[feature_id] = row_number
        features.append(
            PointFeature(
                feature_id=feature_id,
                x=float(x),
                y=float(y),
                capacity=capacity,
                attributes=dict(row),
                name=name,
            )
        )

    return LoadResult(
        collection=FeatureCollection(crs=normalised_crs, features=tuple(features)),
        rejected=tuple(rejected),
        row_numbers=row_numbers,
    )


def load_attribute_table(path: Path, *, dataset: str, id_column: str) -> AttributeTable:
    header, rows = read_csv(path)
    _require_columns(header, [id_column], dataset, path)

    table: dict[str, dict[str, str]] = {}
    rejected: list[RejectedRow] = []
    for row_number, row in enumerate(rows, start=FIRST_DATA_ROW):
        key = _clean_id(row.get(id_column))
        if key is None:
            rejected.append(RejectedRow(dataset, row_number, "missing_id"))
            continue
        if key in table:
            rejected.append(RejectedRow(dataset, row_number, "duplicate_id", key))
            continue
        table[key] = dict(row)

    return AttributeTable(key_column=id_column, rows=table, rejected=tuple(rejected))


def _resolve_geojson_crs(payload: dict, configured: str | None, dataset: str, path: Path) -> str:
    in_file = declared_crs(payload)
    if in_file is None and not configured:
        raise CrsUndeclaredError(f"{dataset}: {path} declares no CRS and none is configured")
    if in_file is None:
        return normalise_crs(configured)
    file_crs = normalise_crs(in_file)
    if configured and normalise_crs(configured) != file_crs:
        raise ConfigError(f"{dataset}: configured CRS {configured} disagrees with {in_file} declared in {path}")
    return file_crs


def load_polygons_geojson(
    path: Path,
    *,
    dataset: str,
    id_property: str,
    name_property: str,
    crs: str | None = None,
) -> LoadResult[PolygonFeature]:
    with path.open("r", encoding="utf-8") as f:
        try:
            payload = json.load(f)
        except json.JSONDecodeError as exc:
            raise InputSchemaError(f"{dataset}: {path} is not valid JSON") from exc

    if not isinstance(payload, dict) or payload.get("type") != "FeatureCollection":
        raise InputSchemaError(f"{dataset}: {path} is not a GeoJSON FeatureCollection")
    collection_crs = _resolve_geojson_crs(payload, crs, dataset, path)

    features: list[PolygonFeature] = []
    rejected: list[RejectedRow] = []
    row_numbers: dict[str, int] = {}

    for row_number, feature in enumerate(payload.get("features") or [], start=1):
        if not isinstance(feature, dict):
            rejected.append(RejectedRow(dataset, row_number, "malformed_feature"))
            continue
        properties = feature.get("properties") or {}
        if not isinstance(properties, dict):
            rejected.append(RejectedRow(dataset, row_number, "malformed_feature"))
            continue
        feature_id = _clean_id(properties.get(id_property))
        if feature_id is None:
            rejected.append(RejectedRow(dataset, row_number, "missing_id"))
            continue
        if feature_id in row_numbers:
            rejected.append(RejectedRow(dataset, row_number, "duplicate_id", feature_id))
            continue

        name = _clean_id(properties.get(name_property))
        if name is None:
            rejected.append(RejectedRow(dataset, row_number, "missing_name", feature_id))
            continue

        geometry, reason = polygon_from_geojson(feature.get("geometry"))
        if geometry is None:
            rejected.append(RejectedRow(dataset, row_number, reason, feature_id))
            continue

        row_numbers[feature_id] = row_number
        features.append(
            PolygonFeature(
                feature_id=feature_id,
                name=name,
                geometry=geometry,
                attributes=dict(properties),
            )
        )

    return LoadResult(
        collection=FeatureCollection(crs=collection_crs, features=tuple(features)),
        rejected=tuple(rejected),
        row_numbers=row_numbers,
    )


def attach_attributes(
    polygons: LoadResult[PolygonFeature],
    table: AttributeTable,
    *,
    dataset: str,
) -> tuple[LoadResult[PolygonFeature], tuple[str, ...]]:
    """Merge attribute rows onto polygons sharing the same identifier.

    Returns the merged polygons and the attribute keys that matched no
    polygon. Polygons without an attribute row are rejected.
    """
    merged: list[PolygonFeature] = []
    rejected = list(polygons.rejected)
    matched: set[str] = set()

    for idx, polygon in enumerate(polygons.collection.features, start=1):
        row = table.rows.get(polygon.feature_id)
        if row is None:
            row_number = polygons.row_numbers.get(polygon.feature_id, idx)
            rejected.append(RejectedRow(dataset, row_number, "missing_attributes", polygon.feature_id))
            continue
        matched.add(polygon.feature_id)
        merged.append(
            PolygonFeature(
                feature_id=polygon.feature_id,
                name=polygon.name,
                geometry=polygon.geometry,
                attributes={**polygon.attributes, **row},
            )
        )

    unmatched_keys = tuple(sorted(set(table.rows) - matched))
    result = LoadResult(
        collection=polygons.collection.replace_features(merged),
        rejected=tuple(rejected),
        row_numbers={key: polygons.row_numbers[key] for key in matched if key in polygons.row_numbers},
    )
    return result, unmatched_keys

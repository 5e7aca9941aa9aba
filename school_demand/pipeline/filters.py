"""Named, config-driven predicates applied to school points before the join.

Each configured filter keeps the points for which its predicate holds and
reports the ones it removed under its own name.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from school_demand.common.errors import ConfigError
from school_demand.common.models import FeatureCollection, PointFeature

Predicate = Callable[[PointFeature], bool]


@dataclass(frozen=True)
class PointFilter:
    name: str
    predicate: Predicate


@dataclass(frozen=True)
class FilterResult:
    collection: FeatureCollection[PointFeature]
    excluded: dict[str, tuple[str, ...]]

    @property
    def excluded_count(self) -> int:
        return sum(len(ids) for ids in self.excluded.values())


def capacity_non_negative(point: PointFeature) -> bool:
    return point.capacity >= 0


def capacity_positive(point: PointFeature) -> bool:
    return point.capacity > 0


def attribute_in(column: str, values: list) -> Predicate:
    allowed = {str(value).strip() for value in values}

    def _predicate(point: PointFeature) -> bool:
        value = point.attributes.get(column)
        return value is not None and str(value).strip() in allowed

    return _predicate


def _build_one(entry: dict, idx: int) -> PointFilter:
    name = entry.get("name")
    label = entry.get("id") or name
    if name == "capacity_non_negative":
        return PointFilter(label, capacity_non_negative)
    if name == "capacity_positive":
        return PointFilter(label, capacity_positive)
    if name == "attribute_in":
        column = entry.get("column")
        values = entry.get("values")
        if not column or not isinstance(values, list) or not values:
            raise ConfigError(f"point_filters[{idx}] attribute_in needs a column and a non-empty values list")
        return PointFilter(label, attribute_in(column, values))
    raise ConfigError(f"point_filters[{idx}] has unknown filter name: {name!r}")


def build_point_filters(entries: list[dict]) -> list[PointFilter]:
    filters = [_build_one(entry, idx) for idx, entry in enumerate(entries)]
    names = [point_filter.name for point_filter in filters]
    dupes = {name for name in names if names.count(name) > 1}
    if dupes:
        raise ConfigError(f"Duplicate point filter ids: {', '.join(sorted(dupes))}; set a distinct 'id'")
    return filters


def apply_point_filters(
    collection: FeatureCollection[PointFeature],
    filters: list[PointFilter],
) -> FilterResult:
    kept: list[PointFeature] = []
    excluded: dict[str, list[str]] = {point_filter.name: [] for point_filter in filters}

    for point in collection.features:
        # A point is attributed to the first filter that rejects it.
        failed = next((f for f in filters if not f.predicate(point)), None)
        if failed is None:
            kept.append(point)
        else:
            excluded[failed.name].append(point.feature_id)

    return FilterResult(
        collection=collection.replace_features(kept),
        excluded={name: tuple(ids) for name, ids in excluded.items()},
    )

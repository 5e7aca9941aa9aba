"""Data models used across the pipeline.

Every record is frozen; stages build new records instead of editing the
ones they receive.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Generic, TypeVar, Union

from shapely.geometry import MultiPolygon, Point, Polygon


@dataclass(frozen=True)
class PointFeature:
    feature_id: str
    x: float
    y: float
    capacity: int | float
    attributes: dict[str, Any] = field(default_factory=dict, compare=False)
    name: str | None = None

    @property
    def geometry(self) -> Point:
        return Point(self.x, self.y)


@dataclass(frozen=True)
class PolygonFeature:
    feature_id: str
    name: str
    geometry: Union[Polygon, MultiPolygon] = field(compare=False)
    attributes: dict[str, Any] = field(default_factory=dict, compare=False)


F = TypeVar("F", PointFeature, PolygonFeature)


@dataclass(frozen=True)
class FeatureCollection(Generic[F]):
    crs: str
    features: tuple[F, ...] = ()

    def __len__(self) -> int:
        return len(self.features)

    def ids(self) -> list[str]:
        return [feature.feature_id for feature in self.features]

    def replace_features(self, features) -> "FeatureCollection[F]":
        return FeatureCollection(crs=self.crs, features=tuple(features))


@dataclass(frozen=True)
class RejectedRow:
    dataset: str
    row_number: int
    reason: str
    identifier: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class LoadResult(Generic[F]):
    collection: FeatureCollection[F]
    rejected: tuple[RejectedRow, ...] = ()
    # Source row of each loaded feature, keyed by feature id.
    row_numbers: dict[str, int] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class AttributeTable:
    key_column: str
    rows: dict[str, dict[str, str]]
    rejected: tuple[RejectedRow, ...] = ()


@dataclass(frozen=True)
class DemandRecord:
    settlement_id: str
    name: str
    total_schoolchildren: int | float


@dataclass(frozen=True)
class JoinRecord:
    point_id: str
    settlement_id: str


@dataclass(frozen=True)
class AmbiguousMatch:
    point_id: str
    candidates: tuple[str, ...]
    chosen: str

    def to_dict(self) -> dict[str, Any]:
        return {"point_id": self.point_id, "candidates": list(self.candidates), "chosen": self.chosen}


@dataclass(frozen=True)
class JoinResult:
    records: tuple[JoinRecord, ...]
    unmatched: tuple[str, ...] = ()
    ambiguous: tuple[AmbiguousMatch, ...] = ()

    @property
    def point_count(self) -> int:
        return len(self.records) + len(self.unmatched)


@dataclass(frozen=True)
class SupplyRecord:
    settlement_id: str
    total_school_places: int | float
    school_count: int


@dataclass(frozen=True)
class RatioRecord:
    settlement_id: str
    name: str
    total_schoolchildren: int | float
    total_school_places: int | float
    ratio: float
    outlier: bool

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class ExcludedSettlement:
    settlement_id: str
    name: str | None
    reason: str
    total_schoolchildren: int | float | None
    total_school_places: int | float | None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RatioAnalysis:
    records: tuple[RatioRecord, ...]
    excluded: tuple[ExcludedSettlement, ...] = ()

    @property
    def outlier_count(self) -> int:
        return sum(1 for record in self.records if record.outlier)

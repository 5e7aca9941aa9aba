"""Point-in-polygon join of schools to settlements."""

from __future__ import annotations

from shapely.strtree import STRtree

from school_demand.common.constants import AMBIGUITY_POLICIES, BOUNDARY_POLICIES
from school_demand.common.errors import ConfigError, JoinAmbiguityError
from school_demand.common.models import (
    AmbiguousMatch,
    FeatureCollection,
    JoinRecord,
    JoinResult,
    PointFeature,
    PolygonFeature,
)
from school_demand.pipeline.reproject import assert_same_crs

# STRtree evaluates predicate(point, polygon).
PREDICATE_BY_BOUNDARY_POLICY = {
    "exclude": "within",
    "include": "covered_by",
}


def spatial_join(
    points: FeatureCollection[PointFeature],
    polygons: FeatureCollection[PolygonFeature],
    *,
    boundary_policy: str = "exclude",
    ambiguity_policy: str = "first",
) -> JoinResult:
    """Match every point to the settlement whose interior contains it.

    ``boundary_policy`` decides whether a point lying exactly on a boundary
    counts as inside (``include``) or not (``exclude``). A point inside
    several polygons goes to the earliest polygon in input order under
    ``ambiguity_policy="first"`` and is recorded as ambiguous; ``"error"``
    raises instead. Points inside no polygon are listed as unmatched.
    """
    if boundary_policy not in BOUNDARY_POLICIES:
        raise ConfigError(f"Unknown boundary_policy: {boundary_policy!r}")
    if ambiguity_policy not in AMBIGUITY_POLICIES:
        raise ConfigError(f"Unknown ambiguity_policy: {ambiguity_policy!r}")
    assert_same_crs(points, polygons)

    if not polygons.features:
        return JoinResult(records=(), unmatched=tuple(points.ids()))

    tree = STRtree([polygon.geometry for polygon in polygons.features])
    predicate = PREDICATE_BY_BOUNDARY_POLICY[boundary_policy]

    records: list[JoinRecord] = []
    unmatched: list[str] = []
    ambiguous: list[AmbiguousMatch] = []

    for point in points.features:
        hits = sorted(int(idx) for idx in tree.query(point.geometry, predicate=predicate))
        if not hits:
            unmatched.append(point.feature_id)
            continue

        chosen = polygons.features[hits[0]].feature_id
        if len(hits) > 1:
            candidates = tuple(polygons.features[idx].feature_id for idx in hits)
            if ambiguity_policy == "error":
                raise JoinAmbiguityError(
                    f"Point {point.feature_id} lies within several settlements: {', '.join(candidates)}"
                )
            ambiguous.append(AmbiguousMatch(point_id=point.feature_id, candidates=candidates, chosen=chosen))

        records.append(JoinRecord(point_id=point.feature_id, settlement_id=chosen))

    return JoinResult(records=tuple(records), unmatched=tuple(unmatched), ambiguous=tuple(ambiguous))

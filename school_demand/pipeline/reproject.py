"""Coordinate reference system normalisation and reprojection."""

from __future__ import annotations

from functools import lru_cache

from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError
from shapely.ops import transform

from school_demand.common.errors import ConfigError, CrsMismatchError, StageError
from school_demand.common.geometry import is_finite_pair
from school_demand.common.models import FeatureCollection, PointFeature, PolygonFeature


@lru_cache(maxsize=None)
def normalise_crs(value: str) -> str:
    """Return ``AUTHORITY:CODE`` for any identifier pyproj understands.

    ``urn:ogc:def:crs:EPSG::2157``, ``EPSG:2157`` and ``epsg:2157`` all
    normalise to ``EPSG:2157``.
    """
    try:
        crs = CRS.from_user_input(value)
    except CRSError as exc:
        raise ConfigError(f"Unknown coordinate reference system: {value!r}") from exc
    authority = crs.to_authority()
    if authority is None:
        return crs.to_string()
    return f"{authority[0]}:{authority[1]}"


@lru_cache(maxsize=None)
def _transformer(source: str, target: str) -> Transformer:
    return Transformer.from_crs(CRS.from_user_input(source), CRS.from_user_input(target), always_xy=True)


def assert_same_crs(*collections: FeatureCollection) -> str:
    crs_values = {normalise_crs(collection.crs) for collection in collections}
    if len(crs_values) != 1:
        raise CrsMismatchError(f"Collections are in different CRSs: {', '.join(sorted(crs_values))}")
    return crs_values.pop()


def _reproject_point(feature: PointFeature, transformer: Transformer) -> PointFeature:
    x, y = transformer.transform(feature.x, feature.y)
    if not is_finite_pair(x, y):
        raise StageError(f"Point {feature.feature_id} has no valid position in the target CRS")
    return PointFeature(
        feature_id=feature.feature_id,
        x=float(x),
        y=float(y),
        capacity=feature.capacity,
        attributes=feature.attributes,
        name=feature.name,
    )


def _reproject_polygon(feature: PolygonFeature, transformer: Transformer) -> PolygonFeature:
    geometry = transform(transformer.transform, feature.geometry)
    min_x, min_y, max_x, max_y = geometry.bounds
    if not (is_finite_pair(min_x, min_y) and is_finite_pair(max_x, max_y)):
        raise StageError(f"Polygon {feature.feature_id} has no valid position in the target CRS")
    return PolygonFeature(
        feature_id=feature.feature_id,
        name=feature.name,
        geometry=geometry,
        attributes=feature.attributes,
    )


def reproject(collection: FeatureCollection, target_crs: str) -> FeatureCollection:
    target = normalise_crs(target_crs)
    source = normalise_crs(collection.crs)
    if source == target:
        return collection

    transformer = _transformer(source, target)
    features = []
    for feature in collection.features:
        if isinstance(feature, PointFeature):
            features.append(_reproject_point(feature, transformer))
        else:
            features.append(_reproject_polygon(feature, transformer))
    return FeatureCollection(crs=target, features=tuple(features))

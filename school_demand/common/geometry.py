"""Geometry helpers."""

from __future__ import annotations

import math
from typing import Any

from shapely.errors import GEOSException
from shapely.geometry import shape
from shapely.validation import explain_validity

POLYGON_TYPES = ("Polygon", "MultiPolygon")


def declared_crs(payload: dict[str, Any]) -> str | None:
    """Return the CRS name carried by a GeoJSON ``crs`` member, if any."""
    crs = payload.get("crs")
    if not isinstance(crs, dict):
        return None
    properties = crs.get("properties") or {}
    name = properties.get("name")
    if isinstance(name, str) and name.strip():
        return name.strip()
    return None


def _ring_is_closed(ring: Any) -> bool:
    if not isinstance(ring, list) or len(ring) < 4:
        return False
    first, last = ring[0], ring[-1]
    return list(first[:2]) == list(last[:2])


def _polygon_rings(geometry: dict[str, Any]) -> list:
    coordinates = geometry.get("coordinates") or []
    if geometry.get("type") == "Polygon":
        return list(coordinates)
    rings: list = []
    for polygon in coordinates:
        rings.extend(polygon)
    return rings


def polygon_from_geojson(geometry: dict[str, Any] | None):
    """Build a shapely polygon, returning ``(geometry, None)`` or ``(None, reason)``.

    Rings must be explicitly closed in the source.
    """
    if not geometry:
        return None, "missing_geometry"
    if not isinstance(geometry, dict):
        return None, "malformed_geometry"
    geom_type = geometry.get("type")
    if geom_type not in POLYGON_TYPES:
        return None, "unsupported_geometry"

    try:
        rings = _polygon_rings(geometry)
        if not rings:
            return None, "empty_geometry"
        closed = all(_ring_is_closed(ring) for ring in rings)
    except (TypeError, IndexError):
        return None, "malformed_geometry"
    if not closed:
        return None, "unclosed_ring"

    try:
        polygon = shape(geometry)
    except (ValueError, TypeError, AttributeError, GEOSException):
        return None, "malformed_geometry"
    if polygon.is_empty:
        return None, "empty_geometry"
    if not polygon.is_valid:
        return None, f"invalid_geometry: {explain_validity(polygon)}"
    return polygon, None


def is_finite_pair(x: float, y: float) -> bool:
    return math.isfinite(x) and math.isfinite(y)

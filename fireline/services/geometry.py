"""
geometry.py — GeoJSON upload parsing and region/point containment.

parse_geojson() turns the text of a user-selected .geojson file into a
single geometry dict suitable for a Region. Accepted inputs:

  - a bare Polygon or MultiPolygon geometry
  - a Feature wrapping one of those
  - a FeatureCollection; all polygonal features are merged into one
    MultiPolygon so the upload becomes one subscription region

Anything else raises ParseError. Parsing has no side effects, so a bad
file never touches existing region state.

points_within() answers "does this region contain any known risk point",
which is what the create-time fire-risk warning uses.
"""

import json
import logging
from typing import Any, Iterable, Sequence

from shapely.errors import GEOSException
from shapely.geometry import MultiPolygon, Point, mapping, shape
from shapely.geometry.base import BaseGeometry

from fireline.core.errors import ParseError
from fireline.models.risk import RiskPoint

logger = logging.getLogger(__name__)

_POLYGONAL = {"Polygon", "MultiPolygon"}


def parse_geojson(text: str) -> dict[str, Any]:
    try:
        document = json.loads(text)
    except (json.JSONDecodeError, TypeError) as exc:
        raise ParseError("Invalid GeoJSON file: not valid JSON") from exc

    if not isinstance(document, dict):
        raise ParseError("Invalid GeoJSON file: expected an object")

    geometries = [_to_shape(g) for g in _collect_geometries(document)]
    if not geometries:
        raise ParseError("Invalid GeoJSON file: no polygon found")

    if len(geometries) == 1:
        return mapping(geometries[0])

    polygons = []
    for geom in geometries:
        polygons.extend(geom.geoms if isinstance(geom, MultiPolygon) else [geom])
    return mapping(MultiPolygon(polygons))


def to_shape(geometry: dict[str, Any]) -> BaseGeometry:
    """Build a shapely geometry from a GeoJSON dict (any geometry type)."""
    try:
        return shape(geometry)
    except (GEOSException, ValueError, TypeError, KeyError, IndexError, AttributeError) as exc:
        raise ParseError(f"Invalid geometry: {exc}") from exc


def points_within(geometry: dict[str, Any], points: Iterable[RiskPoint]) -> list[RiskPoint]:
    """Risk points that fall inside (or on the edge of) `geometry`."""
    try:
        region = to_shape(geometry)
    except ParseError:
        logger.warning("Risk check skipped for unreadable geometry")
        return []
    return [p for p in points if region.covers(Point(p.longitude, p.latitude))]


# ── Internals ─────────────────────────────────────────────────────────────────

def _collect_geometries(document: dict[str, Any]) -> Sequence[dict[str, Any]]:
    kind = document.get("type")
    if kind in _POLYGONAL:
        return [document]
    if kind == "Feature":
        geometry = document.get("geometry")
        if isinstance(geometry, dict) and geometry.get("type") in _POLYGONAL:
            return [geometry]
        raise ParseError("Invalid GeoJSON file: feature has no polygon geometry")
    if kind == "FeatureCollection":
        features = document.get("features")
        if not isinstance(features, list):
            raise ParseError("Invalid GeoJSON file: features must be a list")
        found = []
        for feature in features:
            geometry = feature.get("geometry") if isinstance(feature, dict) else None
            if isinstance(geometry, dict) and geometry.get("type") in _POLYGONAL:
                found.append(geometry)
        return found
    raise ParseError(f"Invalid GeoJSON file: unsupported type {kind!r}")


def _to_shape(geometry: dict[str, Any]) -> BaseGeometry:
    geom = to_shape(geometry)
    if geom.is_empty:
        raise ParseError("Invalid GeoJSON file: empty polygon")
    return geom

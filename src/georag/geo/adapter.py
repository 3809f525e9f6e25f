"""Geometry adapter: validity checks, repair, reprojection and geodesic distance.

Geometries cross the adapter boundary as GeoJSON mappings (plain dicts with
list coordinates) so they serialise unchanged into any store backend. Inside
the adapter they are shapely geometries; CRS math is delegated to pyproj.

Canonical bytes (used by the index hash) are 2D little-endian WKB of the
normalized geometry.
"""

from __future__ import annotations

import logging
import math
from abc import ABC, abstractmethod
from functools import lru_cache
from typing import Any

import numpy as np
import pyproj
import shapely
from shapely.geometry import Point, mapping, shape
from shapely.geometry.base import BaseGeometry
from shapely.ops import nearest_points, transform

logger = logging.getLogger(__name__)

_WGS84 = 4326
# Polar radius: the smallest earth radius, so angular envelopes are never too small.
_MIN_EARTH_RADIUS_M = 6_356_752.0
_ENVELOPE_MARGIN = 1.01
# Edge densification (degrees) before projecting around a query point.
_SEGMENT_DEGREES = 0.01

_GEOD = pyproj.Geod(ellps="WGS84")


class GeometryAdapter(ABC):
    """Capability port for geometry and CRS primitives used by the core."""

    @abstractmethod
    def validate(self, geometry: dict[str, Any]) -> bool:
        """Return True if *geometry* is a well-formed, valid, non-empty geometry."""

    @abstractmethod
    def validation_reason(self, geometry: dict[str, Any]) -> str:
        """Human-readable reason *geometry* is invalid ("" when valid)."""

    @abstractmethod
    def fix(self, geometry: dict[str, Any]) -> dict[str, Any]:
        """Attempt to repair *geometry*. Raises ValueError if it cannot be parsed."""

    @abstractmethod
    def reproject(self, geometry: dict[str, Any], from_crs: int, to_crs: int) -> dict[str, Any]:
        """Transform *geometry* between EPSG codes. Raises ValueError on failure."""

    @abstractmethod
    def geodesic_distance(self, a: dict[str, Any], b: dict[str, Any], crs: int = _WGS84) -> float:
        """Geodesic distance in meters between the closest points of *a* and *b*."""

    @abstractmethod
    def normalize(self, geometry: dict[str, Any]) -> dict[str, Any]:
        """Return the canonical form of *geometry* (2D, normalized ring/part order)."""

    @abstractmethod
    def bounds(self, geometry: dict[str, Any]) -> tuple[float, float, float, float]:
        """Return ``(min_x, min_y, max_x, max_y)``."""

    @abstractmethod
    def canonical_bytes(self, geometry: dict[str, Any]) -> bytes:
        """Deterministic byte encoding of *geometry* for hashing."""

    @abstractmethod
    def search_envelope(
        self, x: float, y: float, meters: float, crs: int = _WGS84
    ) -> tuple[float, float, float, float]:
        """Bounding box (in *crs*) guaranteed to contain every point within *meters* of (x, y)."""


class ShapelyGeometryAdapter(GeometryAdapter):
    """GeometryAdapter backed by shapely (GEOS) and pyproj (PROJ)."""

    def validate(self, geometry: dict[str, Any]) -> bool:
        return self.validation_reason(geometry) == ""

    def validation_reason(self, geometry: dict[str, Any]) -> str:
        try:
            geom = to_shape(geometry)
        except ValueError as exc:
            return str(exc)
        if geom.is_empty:
            return "Geometry is empty"
        if not _finite(geom):
            return "Coordinates must be finite"
        if not geom.is_valid:
            return shapely.is_valid_reason(geom)
        return ""

    def fix(self, geometry: dict[str, Any]) -> dict[str, Any]:
        geom = to_shape(geometry)
        if not _finite(geom):
            # make_valid cannot repair NaN/inf coordinates; leave it for validate() to reject.
            return geometry
        return to_mapping(shapely.make_valid(geom))

    def reproject(self, geometry: dict[str, Any], from_crs: int, to_crs: int) -> dict[str, Any]:
        if int(from_crs) == int(to_crs):
            return geometry
        geom = to_shape(geometry)
        try:
            projected = transform(_transformer(int(from_crs), int(to_crs)).transform, geom)
        except (pyproj.exceptions.ProjError, pyproj.exceptions.CRSError) as exc:
            raise ValueError(f"Cannot reproject EPSG:{from_crs} -> EPSG:{to_crs}: {exc}") from exc
        if not _finite(projected):
            raise ValueError(f"Reprojection EPSG:{from_crs} -> EPSG:{to_crs} produced non-finite coordinates")
        return to_mapping(projected)

    def geodesic_distance(self, a: dict[str, Any], b: dict[str, Any], crs: int = _WGS84) -> float:
        geom_a = to_shape(self.reproject(a, crs, _WGS84))
        geom_b = to_shape(self.reproject(b, crs, _WGS84))
        if geom_a.intersects(geom_b):
            return 0.0
        if isinstance(geom_b, Point) and not isinstance(geom_a, Point):
            geom_a, geom_b = geom_b, geom_a
        if isinstance(geom_a, Point):
            return _distance_from_point(geom_a, geom_b)
        # Neither side is a point: closest points are picked in lon/lat space, so
        # this can overestimate the true geodesic minimum slightly.
        p_a, p_b = nearest_points(geom_a, geom_b)
        _, _, meters = _GEOD.inv(p_a.x, p_a.y, p_b.x, p_b.y)
        return float(meters)

    def normalize(self, geometry: dict[str, Any]) -> dict[str, Any]:
        geom = shapely.force_2d(to_shape(geometry))
        return to_mapping(shapely.normalize(geom))

    def bounds(self, geometry: dict[str, Any]) -> tuple[float, float, float, float]:
        min_x, min_y, max_x, max_y = to_shape(geometry).bounds
        return (float(min_x), float(min_y), float(max_x), float(max_y))

    def canonical_bytes(self, geometry: dict[str, Any]) -> bytes:
        geom = shapely.normalize(shapely.force_2d(to_shape(geometry)))
        return shapely.to_wkb(geom, output_dimension=2, byte_order=1, include_srid=False)

    def search_envelope(
        self, x: float, y: float, meters: float, crs: int = _WGS84
    ) -> tuple[float, float, float, float]:
        if int(crs) != _WGS84:
            lon, lat = _transformer(int(crs), _WGS84).transform(x, y)
        else:
            lon, lat = x, y

        angle = math.degrees(meters / _MIN_EARTH_RADIUS_M) * _ENVELOPE_MARGIN
        min_lat = max(-90.0, lat - angle)
        max_lat = min(90.0, lat + angle)
        widest_lat = max(abs(min_lat), abs(max_lat))

        ratio = math.sin(math.radians(angle)) / math.cos(math.radians(widest_lat)) if widest_lat < 90.0 else 2.0
        if ratio >= 1.0:
            min_lon, max_lon = -180.0, 180.0
        else:
            dlon = math.degrees(math.asin(ratio)) * _ENVELOPE_MARGIN
            min_lon, max_lon = lon - dlon, lon + dlon
            if min_lon < -180.0 or max_lon > 180.0:
                # Antimeridian crossing: fall back to the full longitude range.
                min_lon, max_lon = -180.0, 180.0

        if int(crs) == _WGS84:
            return (min_lon, min_lat, max_lon, max_lat)
        return tuple(  # type: ignore[return-value]
            float(v)
            for v in _transformer(_WGS84, int(crs)).transform_bounds(
                min_lon, min_lat, max_lon, max_lat, densify_pts=21
            )
        )


# ---------------------------------------------------------------------------
# Conversion helpers
# ---------------------------------------------------------------------------


def to_shape(geometry: dict[str, Any]) -> BaseGeometry:
    """Parse a GeoJSON mapping into a shapely geometry.

    Raises:
        ValueError: If *geometry* is not a parseable GeoJSON geometry.
    """
    if not isinstance(geometry, dict) or "type" not in geometry:
        raise ValueError(f"Not a GeoJSON geometry: {geometry!r}")
    try:
        return shape(geometry)
    except (ValueError, TypeError, KeyError, IndexError, AttributeError, shapely.errors.GEOSException) as exc:
        raise ValueError(f"Malformed {geometry.get('type')} geometry: {exc}") from exc


def to_mapping(geom: BaseGeometry) -> dict[str, Any]:
    """shapely geometry → GeoJSON mapping with lists (not tuples) for coordinates."""
    return _listify(mapping(geom))


def _listify(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _listify(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_listify(v) for v in value]
    return value


def _finite(geom: BaseGeometry) -> bool:
    coords = shapely.get_coordinates(geom)
    return bool(np.isfinite(coords).all())


@lru_cache(maxsize=64)
def _transformer(from_crs: int, to_crs: int) -> pyproj.Transformer:
    return pyproj.Transformer.from_crs(
        pyproj.CRS.from_epsg(from_crs), pyproj.CRS.from_epsg(to_crs), always_xy=True
    )


def _distance_from_point(origin: Point, geom: BaseGeometry) -> float:
    """Geodesic distance in meters from *origin* to the closest point of *geom*.

    Distances from the centre of an azimuthal equidistant projection are
    geodesic, so *geom* is densified, projected around *origin* and measured
    from (0, 0).
    """
    if isinstance(geom, Point):
        _, _, meters = _GEOD.inv(origin.x, origin.y, geom.x, geom.y)
        return float(meters)
    projected = transform(
        _aeqd_transformer(origin.x, origin.y).transform,
        shapely.segmentize(geom, _SEGMENT_DEGREES),
    )
    return float(shapely.distance(Point(0.0, 0.0), projected))


@lru_cache(maxsize=64)
def _aeqd_transformer(lon: float, lat: float) -> pyproj.Transformer:
    aeqd = pyproj.CRS.from_dict({"proj": "aeqd", "lon_0": lon, "lat_0": lat, "datum": "WGS84", "units": "m"})
    return pyproj.Transformer.from_crs(pyproj.CRS.from_epsg(_WGS84), aeqd, always_xy=True)

"""Tests for the shapely/pyproj geometry adapter."""

from __future__ import annotations

import math

import numpy as np
import pytest
from pyproj import Geod

from georag.geo.adapter import ShapelyGeometryAdapter, to_mapping, to_shape

adapter = ShapelyGeometryAdapter()
_GEOD = Geod(ellps="WGS84")

BOWTIE = {"type": "Polygon", "coordinates": [[[0, 0], [2, 2], [2, 0], [0, 2], [0, 0]]]}
SQUARE = {"type": "Polygon", "coordinates": [[[0, 0], [1, 0], [1, 1], [0, 1], [0, 0]]]}


# ---------------------------------------------------------------------------
# validate / fix
# ---------------------------------------------------------------------------


def test_valid_polygon() -> None:
    assert adapter.validate(SQUARE)
    assert adapter.validation_reason(SQUARE) == ""


def test_self_intersecting_polygon_is_invalid() -> None:
    assert not adapter.validate(BOWTIE)
    assert "Self-intersection" in adapter.validation_reason(BOWTIE)


def test_fix_repairs_bowtie() -> None:
    fixed = adapter.fix(BOWTIE)
    assert adapter.validate(fixed)
    assert fixed["type"] in ("MultiPolygon", "Polygon")


def test_non_finite_coordinates_are_invalid_and_unfixable() -> None:
    geom = {"type": "Point", "coordinates": [math.nan, 1.0]}
    assert not adapter.validate(geom)
    assert not adapter.validate(adapter.fix(geom))


def test_malformed_geometry_reason() -> None:
    assert adapter.validation_reason({"coordinates": [1, 2]}) != ""
    assert not adapter.validate({"type": "Polygon", "coordinates": [[[0, 0], [1, 1], [0, 0]]]})


def test_to_shape_rejects_non_mapping() -> None:
    with pytest.raises(ValueError):
        to_shape("POINT (1 2)")  # type: ignore[arg-type]


def test_to_mapping_uses_lists() -> None:
    mapping = to_mapping(to_shape(SQUARE))
    assert isinstance(mapping["coordinates"], list)
    assert isinstance(mapping["coordinates"][0][0], list)


# ---------------------------------------------------------------------------
# reproject
# ---------------------------------------------------------------------------


def test_reproject_same_crs_is_identity() -> None:
    geom = {"type": "Point", "coordinates": [4.9, 52.37]}
    assert adapter.reproject(geom, 4326, 4326) is geom


def test_reproject_to_web_mercator_and_back() -> None:
    geom = {"type": "Point", "coordinates": [4.9, 52.37]}
    projected = adapter.reproject(geom, 4326, 3857)
    x, y = projected["coordinates"]
    assert x == pytest.approx(545_465.0, abs=5.0)
    assert y > 6_800_000
    back = adapter.reproject(projected, 3857, 4326)
    assert back["coordinates"][0] == pytest.approx(4.9, abs=1e-9)
    assert back["coordinates"][1] == pytest.approx(52.37, abs=1e-9)


def test_reproject_unknown_crs_raises_value_error() -> None:
    with pytest.raises(ValueError):
        adapter.reproject({"type": "Point", "coordinates": [0, 0]}, 4326, 999_999)


# ---------------------------------------------------------------------------
# geodesic distance
# ---------------------------------------------------------------------------


def test_geodesic_distance_one_degree_latitude() -> None:
    a = {"type": "Point", "coordinates": [0.0, 0.0]}
    b = {"type": "Point", "coordinates": [0.0, 1.0]}
    assert adapter.geodesic_distance(a, b) == pytest.approx(110_574, rel=1e-3)


def test_geodesic_distance_is_zero_for_contained_point() -> None:
    inside = {"type": "Point", "coordinates": [0.5, 0.5]}
    assert adapter.geodesic_distance(inside, SQUARE) == 0.0


def test_geodesic_distance_to_polygon_edge() -> None:
    outside = {"type": "Point", "coordinates": [0.5, 2.0]}
    # Closest point is (0.5, 1.0): one degree of latitude.
    assert adapter.geodesic_distance(outside, SQUARE) == pytest.approx(110_575, rel=1e-3)


def test_geodesic_distance_to_line_uses_geodesic_closest_point() -> None:
    # The closest point on the meridian lies poleward of the planar foot (10, 60).
    origin = {"type": "Point", "coordinates": [0.0, 60.0]}
    meridian = {"type": "LineString", "coordinates": [[10.0, 50.0], [10.0, 70.0]]}
    lats = np.linspace(50.0, 70.0, 20_001)
    _, _, dists = _GEOD.inv(np.zeros_like(lats), np.full_like(lats, 60.0), np.full_like(lats, 10.0), lats)
    _, _, planar_foot = _GEOD.inv(0.0, 60.0, 10.0, 60.0)

    meters = adapter.geodesic_distance(origin, meridian)
    assert meters == pytest.approx(float(dists.min()), abs=50.0)
    assert meters < planar_foot - 1_000
    assert adapter.geodesic_distance(meridian, origin) == meters


# ---------------------------------------------------------------------------
# normalize / canonical bytes / bounds
# ---------------------------------------------------------------------------


def test_normalize_drops_z() -> None:
    geom = {"type": "Point", "coordinates": [1.0, 2.0, 3.0]}
    assert adapter.normalize(geom)["coordinates"] == [1.0, 2.0]


def test_canonical_bytes_ignore_ring_start_and_orientation() -> None:
    rotated = {"type": "Polygon", "coordinates": [[[1, 0], [1, 1], [0, 1], [0, 0], [1, 0]]]}
    reversed_ring = {"type": "Polygon", "coordinates": [[[0, 0], [0, 1], [1, 1], [1, 0], [0, 0]]]}
    expected = adapter.canonical_bytes(SQUARE)
    assert adapter.canonical_bytes(rotated) == expected
    assert adapter.canonical_bytes(reversed_ring) == expected


def test_canonical_bytes_are_little_endian_wkb() -> None:
    data = adapter.canonical_bytes({"type": "Point", "coordinates": [1.0, 2.0]})
    assert data[0] == 1  # NDR byte order marker
    assert len(data) == 21


def test_bounds() -> None:
    assert adapter.bounds(SQUARE) == (0.0, 0.0, 1.0, 1.0)


# ---------------------------------------------------------------------------
# search envelope
# ---------------------------------------------------------------------------


def test_search_envelope_contains_points_at_distance() -> None:
    min_x, min_y, max_x, max_y = adapter.search_envelope(4.9, 52.37, 10_000)
    assert min_x < 4.9 < max_x
    assert min_y < 52.37 < max_y
    # ~10 km north / east are inside the envelope.
    assert max_y - 52.37 > 10_000 / 111_000
    assert max_x - 4.9 > 10_000 / (111_000 * math.cos(math.radians(52.37)))


def test_search_envelope_near_pole_spans_all_longitudes() -> None:
    min_x, _, max_x, max_y = adapter.search_envelope(0.0, 89.99, 50_000)
    assert (min_x, max_x) == (-180.0, 180.0)
    assert max_y == 90.0


def test_search_envelope_across_antimeridian_spans_all_longitudes() -> None:
    min_x, _, max_x, _ = adapter.search_envelope(179.99, 0.0, 10_000)
    assert (min_x, max_x) == (-180.0, 180.0)

"""Tests for the STR-tree spatial index."""

from __future__ import annotations

import random

import pytest

from georag.geo.adapter import ShapelyGeometryAdapter
from georag.geo.spatial_index import SpatialIndex
from georag.models import BBox, DistanceFilter, IndexedGeometry, SpatialFilter

adapter = ShapelyGeometryAdapter()


def _entry(key: str, geometry: dict) -> IndexedGeometry:
    return IndexedGeometry(key, geometry, adapter.bounds(geometry))


def _point(key: str, x: float, y: float) -> IndexedGeometry:
    return _entry(key, {"type": "Point", "coordinates": [x, y]})


@pytest.fixture
def index() -> SpatialIndex:
    return SpatialIndex.build(
        [
            _point("ds/amsterdam#0", 4.90, 52.37),
            _point("ds/rotterdam#0", 4.48, 51.92),
            _point("ds/paris#0", 2.35, 48.85),
            _entry(
                "ds/line#0",
                {"type": "LineString", "coordinates": [[4.0, 52.0], [4.0, 53.0]]},
            ),
        ],
        adapter,
    )


def test_empty_filter_matches_everything(index: SpatialIndex) -> None:
    assert index.query(SpatialFilter()) == index.keys()
    assert len(index) == 4


def test_bbox_query(index: SpatialIndex) -> None:
    matched = index.query(SpatialFilter(bbox=BBox(4.5, 52.0, 5.5, 53.0)))
    assert matched == {"ds/amsterdam#0"}


def test_bbox_touching_boundary_matches(index: SpatialIndex) -> None:
    matched = index.query(SpatialFilter(bbox=BBox(4.90, 52.37, 5.0, 52.5)))
    assert "ds/amsterdam#0" in matched


def test_degenerate_vertical_line_envelope_is_found(index: SpatialIndex) -> None:
    matched = index.query(SpatialFilter(bbox=BBox(3.9, 52.4, 4.1, 52.6)))
    assert matched == {"ds/line#0"}


def test_bbox_matching_nothing(index: SpatialIndex) -> None:
    assert index.query(SpatialFilter(bbox=BBox(-10.0, -10.0, -9.0, -9.0))) == set()


def test_distance_query(index: SpatialIndex) -> None:
    # Amsterdam - Rotterdam is ~57 km.
    near = DistanceFilter(4.90, 52.37, 10, "km")
    assert index.query(SpatialFilter(near=near)) == {"ds/amsterdam#0"}
    wide = DistanceFilter(4.90, 52.37, 70, "km")
    assert index.query(SpatialFilter(near=wide)) == {"ds/amsterdam#0", "ds/rotterdam#0", "ds/line#0"}


def test_bbox_and_distance_are_intersected(index: SpatialIndex) -> None:
    spatial_filter = SpatialFilter(
        bbox=BBox(4.4, 51.8, 4.6, 52.0),
        near=DistanceFilter(4.90, 52.37, 70, "km"),
    )
    assert index.query(spatial_filter) == {"ds/rotterdam#0"}


def test_empty_index() -> None:
    empty = SpatialIndex.build([], adapter)
    assert empty.query(SpatialFilter(bbox=BBox(0, 0, 1, 1))) == set()
    assert empty.query(SpatialFilter(near=DistanceFilter(0, 0, 1000))) == set()
    assert len(empty) == 0


def test_duplicate_keys_rejected() -> None:
    with pytest.raises(ValueError):
        SpatialIndex.build([_point("ds/a#0", 0, 0), _point("ds/a#0", 1, 1)], adapter)


def test_tree_query_agrees_with_linear_scan() -> None:
    rng = random.Random(42)
    entries = []
    for i in range(300):
        x, y = rng.uniform(-20, 20), rng.uniform(30, 60)
        if i % 3 == 0:
            size = rng.uniform(0.01, 2.0)
            geometry = {
                "type": "Polygon",
                "coordinates": [[[x, y], [x + size, y], [x + size, y + size], [x, y + size], [x, y]]],
            }
            entries.append(_entry(f"ds/p{i}#0", geometry))
        elif i % 3 == 1:
            geometry = {"type": "LineString", "coordinates": [[x, y], [x + rng.uniform(0.5, 5), y + rng.uniform(0.5, 5)]]}
            entries.append(_entry(f"ds/p{i}#0", geometry))
        else:
            entries.append(_point(f"ds/p{i}#0", x, y))
    index = SpatialIndex.build(entries, adapter)

    for _ in range(25):
        x0, y0 = rng.uniform(-20, 15), rng.uniform(30, 55)
        bbox = BBox(x0, y0, x0 + rng.uniform(0.5, 8), y0 + rng.uniform(0.5, 8))
        near = DistanceFilter(rng.uniform(-20, 20), rng.uniform(30, 60), rng.uniform(10, 400), "km")
        for spatial_filter in (
            SpatialFilter(bbox=bbox),
            SpatialFilter(near=near),
            SpatialFilter(bbox=bbox, near=near),
        ):
            assert index.query(spatial_filter) == index.linear_query(spatial_filter)


def test_bbox_excludes_geometry_whose_envelope_overlaps_but_shape_does_not() -> None:
    diagonal = _entry("lines/diag#0", {"type": "LineString", "coordinates": [[0.0, 0.0], [10.0, 10.0]]})
    l_shape = _entry(
        "areas/l#0",
        {
            "type": "Polygon",
            "coordinates": [[[20.0, 0.0], [30.0, 0.0], [30.0, 2.0], [22.0, 2.0], [22.0, 10.0], [20.0, 10.0], [20.0, 0.0]]],
        },
    )
    index = SpatialIndex.build([diagonal, l_shape], adapter)

    corner = SpatialFilter(bbox=BBox(8.0, 0.0, 10.0, 2.0))
    assert index.query(corner) == set()
    assert index.linear_query(corner) == set()

    notch = SpatialFilter(bbox=BBox(25.0, 5.0, 29.0, 9.0))
    assert index.query(notch) == set()
    assert index.linear_query(notch) == set()

    crossing = SpatialFilter(bbox=BBox(4.0, 4.0, 6.0, 6.0))
    assert index.query(crossing) == {"lines/diag#0"}
    assert index.query(SpatialFilter(bbox=BBox(21.0, 1.0, 29.0, 9.0))) == {"areas/l#0"}

"""STR-tree spatial index over the indexed geometries of one generation."""

from __future__ import annotations

import logging
from typing import Iterable

import shapely
from shapely.geometry import LineString, Point, box
from shapely.geometry.base import BaseGeometry

from georag.geo.adapter import GeometryAdapter, ShapelyGeometryAdapter, to_shape
from georag.models import BBox, DistanceFilter, IndexedGeometry, SpatialFilter

logger = logging.getLogger(__name__)


class SpatialIndex:
    """Immutable bulk-loaded index; a new generation gets a new instance.

    The tree is built over the geometries themselves. A bbox query returns
    only geometries that intersect the box, not merely their envelopes.
    Distance queries use the tree for candidate selection and refine with
    the adapter's geodesic distance.
    """

    def __init__(
        self,
        entries: tuple[IndexedGeometry, ...],
        adapter: GeometryAdapter,
        crs: int = 4326,
    ) -> None:
        self._entries = entries
        self._adapter = adapter
        self._crs = crs
        self._shapes = tuple(to_shape(e.geometry) for e in entries)
        self._tree = shapely.STRtree(self._shapes) if entries else None

    @classmethod
    def build(
        cls,
        geometries: Iterable[IndexedGeometry],
        adapter: GeometryAdapter | None = None,
        crs: int = 4326,
    ) -> SpatialIndex:
        entries = tuple(geometries)
        keys = [e.chunk_key for e in entries]
        if len(set(keys)) != len(keys):
            raise ValueError("SpatialIndex.build: duplicate chunk keys")
        logger.debug("Building spatial index over %d geometries", len(entries))
        return cls(entries, adapter or ShapelyGeometryAdapter(), crs)

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def crs(self) -> int:
        return self._crs

    def keys(self) -> set[str]:
        return {e.chunk_key for e in self._entries}

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def query(self, spatial_filter: SpatialFilter) -> set[str]:
        """Return chunk keys matching every predicate of *spatial_filter*.

        An empty filter matches everything.
        """
        if spatial_filter.is_empty:
            return self.keys()
        result: set[str] | None = None
        if spatial_filter.bbox is not None:
            result = self._tree_bbox(spatial_filter.bbox.as_tuple())
        if spatial_filter.near is not None:
            near = self._near(spatial_filter.near, within=result)
            result = near if result is None else result & near
        return result or set()

    def linear_query(self, spatial_filter: SpatialFilter) -> set[str]:
        """Full scan with the same semantics as query()."""
        matched: set[str] = set()
        for i, entry in enumerate(self._entries):
            if spatial_filter.bbox is not None and not self._shapes[i].intersects(_envelope(spatial_filter.bbox)):
                continue
            if spatial_filter.near is not None and not self._within(spatial_filter.near, entry):
                continue
            matched.add(entry.chunk_key)
        return matched

    def _tree_bbox(self, bounds: tuple[float, float, float, float]) -> set[str]:
        if self._tree is None:
            return set()
        indices = self._tree.query(_envelope(bounds), predicate="intersects")
        return {self._entries[int(i)].chunk_key for i in indices}

    def _near(self, near: DistanceFilter, within: set[str] | None) -> set[str]:
        if self._tree is None:
            return set()
        envelope = self._adapter.search_envelope(near.x, near.y, near.meters, self._crs)
        matched: set[str] = set()
        for i in self._tree.query(_envelope(envelope)):
            entry = self._entries[int(i)]
            if within is not None and entry.chunk_key not in within:
                continue
            if self._within(near, entry):
                matched.add(entry.chunk_key)
        return matched

    def _within(self, near: DistanceFilter, entry: IndexedGeometry) -> bool:
        point = {"type": "Point", "coordinates": [near.x, near.y]}
        return self._adapter.geodesic_distance(point, entry.geometry, self._crs) <= near.meters


def _envelope(bounds: tuple[float, float, float, float] | BBox) -> BaseGeometry:
    if isinstance(bounds, BBox):
        bounds = bounds.as_tuple()
    min_x, min_y, max_x, max_y = bounds
    # Degenerate boxes (points, axis-aligned lines) need a matching geometry type.
    if min_x == max_x and min_y == max_y:
        return Point(min_x, min_y)
    if min_x == max_x or min_y == max_y:
        return LineString([(min_x, min_y), (max_x, max_y)])
    return box(min_x, min_y, max_x, max_y)

"""GeoRAG geometry layer: adapter port and spatial index."""

from georag.geo.adapter import GeometryAdapter, ShapelyGeometryAdapter
from georag.geo.spatial_index import SpatialIndex

__all__ = [
    "GeometryAdapter",
    "ShapelyGeometryAdapter",
    "SpatialIndex",
]

"""GeoRAG ingestion: input readers and chunkers."""

from georag.ingest.chunker import BaseChunker, ChunkDraft, FixedWindowChunker
from georag.ingest.documents import point_geometry, read_document, read_pdf_document, read_text_document
from georag.ingest.geojson import ParsedDataset, feature_text, parse_geojson, read_geojson
from georag.ingest.gpx import GPX_KINDS, parse_gpx, read_gpx
from georag.ingest.kml import parse_kml, read_kml

__all__ = [
    "BaseChunker",
    "ChunkDraft",
    "FixedWindowChunker",
    "GPX_KINDS",
    "ParsedDataset",
    "feature_text",
    "parse_geojson",
    "parse_gpx",
    "parse_kml",
    "point_geometry",
    "read_document",
    "read_geojson",
    "read_gpx",
    "read_kml",
    "read_pdf_document",
    "read_text_document",
]

"""GeoJSON reader: FeatureCollection, single Feature or bare Geometry -> RawDocuments."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from georag.models import RawDocument

DEFAULT_CRS = 4326


@dataclass
class ParsedDataset:
    """Parsed vector input (GeoJSON, GPX or KML).

    Attributes:
        name: Dataset name (file stem for files).
        crs: EPSG code of the coordinates; GeoJSON may declare it in the legacy
            ``crs`` member, GPX and KML are always 4326.
        documents: One RawDocument per feature, in file order.
    """

    name: str
    crs: int = DEFAULT_CRS
    documents: list[RawDocument] = field(default_factory=list)


def read_geojson(path: Path | str) -> ParsedDataset:
    """Read a GeoJSON file.

    Raises:
        ValueError: If the file is not valid JSON or not a GeoJSON object.
    """
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Failed to parse GeoJSON {path}: {exc}") from exc
    return parse_geojson(data, name=path.stem, source=str(path))


def parse_geojson(data: dict[str, Any], name: str = "unnamed", source: str = "") -> ParsedDataset:
    if not isinstance(data, dict):
        raise ValueError("GeoJSON root must be an object")
    kind = data.get("type")

    if kind == "FeatureCollection":
        features = data.get("features")
        if not isinstance(features, list):
            raise ValueError("FeatureCollection has no 'features' array")
        taken = {str(f["id"]) for f in features if isinstance(f, dict) and f.get("id") is not None}
        documents = [_feature_to_document(f, i, source, taken) for i, f in enumerate(features)]
        return ParsedDataset(name=name, crs=_crs_of(data), documents=documents)

    if kind == "Feature":
        return ParsedDataset(name=name, crs=_crs_of(data), documents=[_feature_to_document(data, 0, source, set())])

    if kind in _GEOMETRY_TYPES:
        document = RawDocument(id="0", text="", geometry=data, source=source)
        return ParsedDataset(name=name, crs=_crs_of(data), documents=[document])

    raise ValueError(f"Unsupported GeoJSON type: {kind!r}")


_GEOMETRY_TYPES = frozenset(
    {
        "Point",
        "MultiPoint",
        "LineString",
        "MultiLineString",
        "Polygon",
        "MultiPolygon",
        "GeometryCollection",
    }
)


def _feature_to_document(feature: dict[str, Any], idx: int, source: str, taken: set[str]) -> RawDocument:
    if not isinstance(feature, dict) or feature.get("type") != "Feature":
        raise ValueError(f"Feature #{idx} is not a GeoJSON Feature")
    feature_id = feature.get("id")
    properties = feature.get("properties") or {}
    return RawDocument(
        id=str(feature_id) if feature_id is not None else _fallback_id(idx, taken),
        text=feature_text(properties),
        geometry=feature.get("geometry"),
        properties=dict(properties),
        source=f"{source}#{feature_id if feature_id is not None else idx}" if source else "",
    )


def _fallback_id(idx: int, taken: set[str]) -> str:
    """Positional id for a feature without one, avoiding explicit ids in the file."""
    candidate = str(idx)
    suffix = 1
    while candidate in taken:
        candidate = f"{idx}-{suffix}"
        suffix += 1
    taken.add(candidate)
    return candidate


def feature_text(properties: dict[str, Any]) -> str:
    """Searchable text of a feature.

    Priority: ``content``; ``"name: description"``; ``name``; ``description``.
    """
    content = _str_prop(properties, "content")
    if content:
        return content
    name = _str_prop(properties, "name")
    description = _str_prop(properties, "description")
    if name and description:
        return f"{name}: {description}"
    return name or description


def _str_prop(properties: dict[str, Any], key: str) -> str:
    value = properties.get(key)
    return value.strip() if isinstance(value, str) else ""


def _crs_of(data: dict[str, Any]) -> int:
    """EPSG code from a legacy ``{"crs": {"properties": {"name": "EPSG:xxxx"}}}`` member."""
    crs = data.get("crs")
    if not isinstance(crs, dict):
        return DEFAULT_CRS
    name = (crs.get("properties") or {}).get("name")
    if not isinstance(name, str):
        return DEFAULT_CRS
    code = name.rsplit(":", 1)[-1]
    return int(code) if code.isdigit() else DEFAULT_CRS

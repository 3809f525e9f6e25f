"""KML reader: Placemarks -> RawDocuments.

Documents and Folders are walked in file order; the names of enclosing
Folders are joined with ``/`` into the ``folder_path`` property. Placemarks
without geometry are skipped and do not consume an id. KML coordinates are
always WGS84 (EPSG:4326).
"""

from __future__ import annotations

import warnings
from pathlib import Path
from typing import Any

from bs4 import BeautifulSoup, Tag, XMLParsedAsHTMLWarning

from georag.ingest.geojson import ParsedDataset, feature_text
from georag.models import RawDocument

warnings.filterwarnings("ignore", category=XMLParsedAsHTMLWarning)

KML_CRS = 4326

# html.parser lower-cases tag names.
_CONTAINERS = ("document", "folder")
_GEOMETRIES = ("point", "linestring", "linearring", "polygon", "multigeometry")


def read_kml(path: Path | str) -> ParsedDataset:
    """Read a KML file.

    Raises:
        ValueError: No ``<kml>`` root, or malformed coordinates.
    """
    path = Path(path)
    return parse_kml(path.read_text(encoding="utf-8"), name=path.stem, source=str(path))


def parse_kml(text: str, name: str = "unnamed", source: str = "") -> ParsedDataset:
    root = BeautifulSoup(text, "html.parser").find("kml")
    if root is None:
        raise ValueError("Not a KML document: no <kml> element")
    documents: list[RawDocument] = []
    _walk(root, [], documents, source)
    return ParsedDataset(name=name, crs=KML_CRS, documents=documents)


def _walk(container: Tag, folder_path: list[str], out: list[RawDocument], source: str) -> None:
    for child in container.find_all(True, recursive=False):
        if child.name == "placemark":
            document = _placemark(child, len(out), folder_path, source)
            if document is not None:
                out.append(document)
        elif child.name == "folder":
            folder_name = _child_text(child, "name")
            _walk(child, [*folder_path, folder_name] if folder_name else folder_path, out, source)
        elif child.name in _CONTAINERS:
            _walk(child, folder_path, out, source)


def _placemark(placemark: Tag, idx: int, folder_path: list[str], source: str) -> RawDocument | None:
    geom_tag = next((c for c in placemark.find_all(True, recursive=False) if c.name in _GEOMETRIES), None)
    if geom_tag is None:
        return None

    properties: dict[str, Any] = {}
    name = _child_text(placemark, "name")
    if name:
        properties["name"] = name
    description = _child_text(placemark, "description")
    if description:
        # Descriptions are often HTML balloons.
        properties["description"] = BeautifulSoup(description, "html.parser").get_text(" ", strip=True)
    if folder_path:
        properties["folder_path"] = "/".join(folder_path)
    properties.update(_extended_data(placemark))

    doc_id = f"placemark_{idx}"
    return RawDocument(
        id=doc_id,
        text=feature_text(properties),
        geometry=_geometry(geom_tag),
        properties=properties,
        source=f"{source}#{doc_id}" if source else "",
    )


def _extended_data(placemark: Tag) -> dict[str, str]:
    extended = placemark.find("extendeddata", recursive=False)
    if extended is None:
        return {}
    data: dict[str, str] = {}
    for item in extended.find_all("data"):
        key = item.get("name")
        value = item.find("value")
        if key and value is not None:
            data[key] = value.get_text(strip=True)
    for item in extended.find_all("simpledata"):
        key = item.get("name")
        if key:
            data[key] = item.get_text(strip=True)
    return data


def _geometry(tag: Tag) -> dict[str, Any]:
    if tag.name == "point":
        return {"type": "Point", "coordinates": _coordinates(tag)[0]}
    if tag.name in ("linestring", "linearring"):
        return {"type": "LineString", "coordinates": _coordinates(tag)}
    if tag.name == "polygon":
        rings = []
        for boundary in ("outerboundaryis", "innerboundaryis"):
            for ring_holder in tag.find_all(boundary, recursive=False):
                rings.append(_coordinates(ring_holder))
        return {"type": "Polygon", "coordinates": rings}
    members = [_geometry(c) for c in tag.find_all(True, recursive=False) if c.name in _GEOMETRIES]
    return {"type": "GeometryCollection", "geometries": members}


def _coordinates(tag: Tag) -> list[list[float]]:
    holder = tag.find("coordinates")
    if holder is None:
        raise ValueError(f"KML <{tag.name}> has no <coordinates>")
    coords: list[list[float]] = []
    for token in holder.get_text().split():
        try:
            coords.append([float(part) for part in token.split(",")])
        except ValueError as exc:
            raise ValueError(f"Malformed KML coordinate tuple: {token!r}") from exc
        if len(coords[-1]) not in (2, 3):
            raise ValueError(f"Malformed KML coordinate tuple: {token!r}")
    if not coords:
        raise ValueError(f"KML <{tag.name}> has empty <coordinates>")
    return coords


def _child_text(tag: Tag, name: str) -> str | None:
    child = tag.find(name, recursive=False)
    if child is None:
        return None
    return child.get_text(strip=True) or None

"""GPX reader: waypoints, track segments and routes -> RawDocuments.

GPX coordinates are always WGS84 (EPSG:4326). Waypoints become Points; each
track segment and each route becomes a LineString. Elevation is kept as a
third coordinate; when one point of a line has it, missing ones get 0.0.
"""

from __future__ import annotations

import warnings
from pathlib import Path
from typing import Any

from bs4 import BeautifulSoup, Tag, XMLParsedAsHTMLWarning

from georag.ingest.geojson import ParsedDataset, feature_text
from georag.models import RawDocument

# html.parser is enough for GPX; tag names come back lower-cased.
warnings.filterwarnings("ignore", category=XMLParsedAsHTMLWarning)

GPX_CRS = 4326
GPX_KINDS: tuple[str, ...] = ("all", "waypoints", "tracks", "routes")


def read_gpx(path: Path | str, kind: str = "all") -> ParsedDataset:
    """Read a GPX file; *kind* selects waypoints, tracks, routes or all.

    Raises:
        ValueError: Unknown *kind*, no ``<gpx>`` root, or bad coordinates.
    """
    path = Path(path)
    return parse_gpx(path.read_text(encoding="utf-8"), name=path.stem, source=str(path), kind=kind)


def parse_gpx(text: str, name: str = "unnamed", source: str = "", kind: str = "all") -> ParsedDataset:
    if kind not in GPX_KINDS:
        raise ValueError(f"Invalid GPX kind '{kind}'. Valid options: {', '.join(GPX_KINDS)}")
    root = BeautifulSoup(text, "html.parser").find("gpx")
    if root is None:
        raise ValueError("Not a GPX document: no <gpx> element")

    documents: list[RawDocument] = []
    if kind in ("all", "waypoints"):
        for idx, wpt in enumerate(root.find_all("wpt", recursive=False)):
            coords = _coords(wpt)
            properties = _described(wpt, "waypoint")
            time = _child_text(wpt, "time")
            if time:
                properties["time"] = time
            if len(coords) == 3:
                properties["elevation"] = coords[2]
            documents.append(_document(f"waypoint_{idx}", {"type": "Point", "coordinates": coords}, properties, source))

    if kind in ("all", "tracks"):
        for t_idx, trk in enumerate(root.find_all("trk", recursive=False)):
            for s_idx, seg in enumerate(trk.find_all("trkseg", recursive=False)):
                properties = _described(trk, "track")
                properties["segment"] = s_idx
                geometry = _line(seg.find_all("trkpt", recursive=False))
                documents.append(_document(f"track_{t_idx}_{s_idx}", geometry, properties, source))

    if kind in ("all", "routes"):
        for idx, rte in enumerate(root.find_all("rte", recursive=False)):
            geometry = _line(rte.find_all("rtept", recursive=False))
            documents.append(_document(f"route_{idx}", geometry, _described(rte, "route"), source))

    return ParsedDataset(name=name, crs=GPX_CRS, documents=documents)


def _document(doc_id: str, geometry: dict[str, Any], properties: dict[str, Any], source: str) -> RawDocument:
    return RawDocument(
        id=doc_id,
        text=feature_text(properties),
        geometry=geometry,
        properties=properties,
        source=f"{source}#{doc_id}" if source else "",
    )


def _described(tag: Tag, kind: str) -> dict[str, Any]:
    properties: dict[str, Any] = {"type": kind}
    for key, child in (("name", "name"), ("description", "desc")):
        value = _child_text(tag, child)
        if value:
            properties[key] = value
    return properties


def _child_text(tag: Tag, name: str) -> str | None:
    child = tag.find(name, recursive=False)
    if child is None:
        return None
    return child.get_text(strip=True) or None


def _coords(point: Tag) -> list[float]:
    try:
        coords = [float(point["lon"]), float(point["lat"])]
    except (KeyError, ValueError) as exc:
        raise ValueError(f"GPX <{point.name}> needs numeric 'lat' and 'lon' attributes") from exc
    elevation = _child_text(point, "ele")
    if elevation is not None:
        try:
            coords.append(float(elevation))
        except ValueError as exc:
            raise ValueError(f"GPX <{point.name}> has a non-numeric <ele>: {elevation!r}") from exc
    return coords


def _line(points: list[Tag]) -> dict[str, Any]:
    coords = [_coords(p) for p in points]
    if any(len(c) == 3 for c in coords):
        coords = [c if len(c) == 3 else [*c, 0.0] for c in coords]
    return {"type": "LineString", "coordinates": coords}

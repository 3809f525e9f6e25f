"""Tests for the GPX reader."""

from __future__ import annotations

from pathlib import Path

import pytest

from georag.ingest.gpx import parse_gpx, read_gpx

GPX = """<?xml version="1.0" encoding="UTF-8"?>
<gpx version="1.1" creator="test" xmlns="http://www.topografix.com/GPX/1/1">
  <wpt lat="52.37" lon="4.89">
    <ele>2.5</ele>
    <name>Dam Square</name>
    <desc>Central square</desc>
    <time>2024-05-01T10:00:00Z</time>
  </wpt>
  <wpt lat="51.92" lon="4.48">
    <name>Rotterdam</name>
  </wpt>
  <trk>
    <name>Canal walk</name>
    <trkseg>
      <trkpt lat="52.0" lon="4.0"><ele>1.0</ele></trkpt>
      <trkpt lat="52.1" lon="4.1"></trkpt>
    </trkseg>
    <trkseg>
      <trkpt lat="52.2" lon="4.2"></trkpt>
      <trkpt lat="52.3" lon="4.3"></trkpt>
    </trkseg>
  </trk>
  <rte>
    <name>Ferry</name>
    <rtept lat="53.0" lon="5.0"></rtept>
    <rtept lat="53.1" lon="5.1"></rtept>
  </rte>
</gpx>
"""


def test_reads_waypoints_tracks_and_routes(tmp_path: Path) -> None:
    path = tmp_path / "walk.gpx"
    path.write_text(GPX, encoding="utf-8")
    dataset = read_gpx(path)

    assert dataset.name == "walk"
    assert dataset.crs == 4326
    assert [d.id for d in dataset.documents] == [
        "waypoint_0",
        "waypoint_1",
        "track_0_0",
        "track_0_1",
        "route_0",
    ]
    assert dataset.documents[0].source == f"{path}#waypoint_0"


def test_waypoint_properties_and_text() -> None:
    dam = parse_gpx(GPX, kind="waypoints").documents[0]

    assert dam.geometry == {"type": "Point", "coordinates": [4.89, 52.37, 2.5]}
    assert dam.properties == {
        "type": "waypoint",
        "name": "Dam Square",
        "description": "Central square",
        "time": "2024-05-01T10:00:00Z",
        "elevation": 2.5,
    }
    assert dam.text == "Dam Square: Central square"


def test_track_segments_fill_missing_elevation() -> None:
    first, second = parse_gpx(GPX, kind="tracks").documents

    assert first.geometry == {"type": "LineString", "coordinates": [[4.0, 52.0, 1.0], [4.1, 52.1, 0.0]]}
    assert first.properties == {"type": "track", "name": "Canal walk", "segment": 0}
    assert second.geometry["coordinates"] == [[4.2, 52.2], [4.3, 52.3]]
    assert second.properties["segment"] == 1


def test_kind_selects_features() -> None:
    routes = parse_gpx(GPX, kind="routes").documents
    assert [d.id for d in routes] == ["route_0"]
    assert routes[0].text == "Ferry"


def test_unknown_kind_is_rejected() -> None:
    with pytest.raises(ValueError, match="Invalid GPX kind"):
        parse_gpx(GPX, kind="everything")


def test_not_a_gpx_document() -> None:
    with pytest.raises(ValueError, match="no <gpx> element"):
        parse_gpx("<kml></kml>")


def test_missing_coordinates_are_rejected() -> None:
    with pytest.raises(ValueError, match="numeric 'lat' and 'lon'"):
        parse_gpx('<gpx><wpt lat="52.0"><name>x</name></wpt></gpx>')

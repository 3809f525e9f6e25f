"""Tests for the KML reader."""

from __future__ import annotations

from pathlib import Path

import pytest

from georag.ingest.kml import parse_kml, read_kml

KML = """<?xml version="1.0" encoding="UTF-8"?>
<kml xmlns="http://www.opengis.net/kml/2.2">
  <Document>
    <name>Harbours</name>
    <Placemark>
      <name>Amsterdam</name>
      <Point><coordinates>4.89,52.37,0</coordinates></Point>
    </Placemark>
    <Folder>
      <name>South</name>
      <Folder>
        <name>Zeeland</name>
        <Placemark>
          <name>Vlissingen</name>
          <description>Ferry port</description>
          <ExtendedData>
            <Data name="operator"><value>PZC</value></Data>
          </ExtendedData>
          <LineString>
            <coordinates>
              3.57,51.44 3.60,51.45
            </coordinates>
          </LineString>
        </Placemark>
      </Folder>
      <Placemark>
        <name>No geometry</name>
      </Placemark>
      <Placemark>
        <name>Rotterdam</name>
        <Polygon>
          <outerBoundaryIs><LinearRing><coordinates>4,51 5,51 5,52 4,52 4,51</coordinates></LinearRing></outerBoundaryIs>
          <innerBoundaryIs><LinearRing><coordinates>4.2,51.2 4.4,51.2 4.4,51.4 4.2,51.2</coordinates></LinearRing></innerBoundaryIs>
        </Polygon>
      </Placemark>
    </Folder>
  </Document>
</kml>
"""


def test_reads_placemarks_in_order(tmp_path: Path) -> None:
    path = tmp_path / "harbours.kml"
    path.write_text(KML, encoding="utf-8")
    dataset = read_kml(path)

    assert dataset.name == "harbours"
    assert dataset.crs == 4326
    assert [d.properties["name"] for d in dataset.documents] == ["Amsterdam", "Vlissingen", "Rotterdam"]
    # The placemark without geometry consumes no id.
    assert [d.id for d in dataset.documents] == ["placemark_0", "placemark_1", "placemark_2"]
    assert dataset.documents[2].source == f"{path}#placemark_2"


def test_point_and_top_level_placemark() -> None:
    amsterdam = parse_kml(KML).documents[0]
    assert amsterdam.geometry == {"type": "Point", "coordinates": [4.89, 52.37, 0.0]}
    assert "folder_path" not in amsterdam.properties
    assert amsterdam.text == "Amsterdam"


def test_nested_folder_path_and_extended_data() -> None:
    vlissingen = parse_kml(KML).documents[1]
    assert vlissingen.geometry == {"type": "LineString", "coordinates": [[3.57, 51.44], [3.60, 51.45]]}
    assert vlissingen.properties == {
        "name": "Vlissingen",
        "description": "Ferry port",
        "folder_path": "South/Zeeland",
        "operator": "PZC",
    }
    assert vlissingen.text == "Vlissingen: Ferry port"


def test_polygon_keeps_holes() -> None:
    rotterdam = parse_kml(KML).documents[2]
    assert rotterdam.properties["folder_path"] == "South"
    assert rotterdam.geometry["type"] == "Polygon"
    outer, hole = rotterdam.geometry["coordinates"]
    assert outer[0] == outer[-1] == [4.0, 51.0]
    assert len(hole) == 4


def test_multigeometry_becomes_collection() -> None:
    text = """<kml><Placemark><name>pair</name><MultiGeometry>
      <Point><coordinates>1,2</coordinates></Point>
      <LinearRing><coordinates>0,0 1,0 1,1 0,0</coordinates></LinearRing>
    </MultiGeometry></Placemark></kml>"""
    geometry = parse_kml(text).documents[0].geometry
    assert geometry == {
        "type": "GeometryCollection",
        "geometries": [
            {"type": "Point", "coordinates": [1.0, 2.0]},
            {"type": "LineString", "coordinates": [[0.0, 0.0], [1.0, 0.0], [1.0, 1.0], [0.0, 0.0]]},
        ],
    }


def test_html_description_is_reduced_to_text() -> None:
    text = "<kml><Placemark><name>Pier</name><description>&lt;b&gt;Old&lt;/b&gt; pier</description><Point><coordinates>1,2</coordinates></Point></Placemark></kml>"
    assert parse_kml(text).documents[0].properties["description"] == "Old pier"


def test_malformed_coordinates_are_rejected() -> None:
    with pytest.raises(ValueError, match="Malformed KML coordinate"):
        parse_kml("<kml><Placemark><Point><coordinates>east,north</coordinates></Point></Placemark></kml>")


def test_not_a_kml_document() -> None:
    with pytest.raises(ValueError, match="no <kml> element"):
        parse_kml("<gpx></gpx>")

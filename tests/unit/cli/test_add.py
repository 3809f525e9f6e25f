"""Tests for georag add."""

from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from georag.cli.main import app

runner = CliRunner()


def _add(project: Path, *args: str):
    return runner.invoke(app, ["add", *args, "-C", str(project)])


def test_add_geojson(cli_project: Path) -> None:
    result = _add(cli_project, str(cli_project / "places.geojson"))
    assert result.exit_code == 0, result.output
    assert "Added dataset" in result.output
    assert "places" in result.output
    assert "3 documents" in result.output


def test_add_with_name_and_id(cli_project: Path) -> None:
    result = _add(cli_project, str(cli_project / "places.geojson"), "--name", "Dutch Ports", "--id", "ports")
    assert result.exit_code == 0, result.output
    listing = runner.invoke(app, ["datasets", "-C", str(cli_project)])
    assert "ports" in listing.output
    assert "Dutch" in listing.output


def test_add_duplicate_dataset_fails(cli_project: Path) -> None:
    _add(cli_project, str(cli_project / "places.geojson"))
    result = _add(cli_project, str(cli_project / "places.geojson"))
    assert result.exit_code == 1
    assert "already exists" in result.output
    assert "georag remove places" in result.output


def test_add_text_document_with_point(cli_project: Path) -> None:
    notes = cli_project / "survey.md"
    notes.write_text("Dike inspection near the harbour.", encoding="utf-8")
    result = _add(cli_project, str(notes), "--point", "4.9,52.37")
    assert result.exit_code == 0, result.output
    assert "1 documents" in result.output


def test_add_text_document_with_geometry(cli_project: Path) -> None:
    notes = cli_project / "area.txt"
    notes.write_text("Polder survey.", encoding="utf-8")
    polygon = {"type": "Polygon", "coordinates": [[[4, 52], [5, 52], [5, 53], [4, 53], [4, 52]]]}
    result = _add(cli_project, str(notes), "--geometry", json.dumps(polygon))
    assert result.exit_code == 0, result.output


def test_add_text_document_requires_location(cli_project: Path) -> None:
    notes = cli_project / "survey.md"
    notes.write_text("text", encoding="utf-8")
    result = _add(cli_project, str(notes))
    assert result.exit_code == 1
    assert "need a location" in result.output


def test_add_rejects_point_and_geometry_together(cli_project: Path) -> None:
    notes = cli_project / "survey.md"
    notes.write_text("text", encoding="utf-8")
    result = _add(cli_project, str(notes), "--point", "1,2", "--geometry", '{"type": "Point", "coordinates": [1, 2]}')
    assert result.exit_code == 1
    assert "not both" in result.output


def test_add_rejects_malformed_point(cli_project: Path) -> None:
    notes = cli_project / "survey.md"
    notes.write_text("text", encoding="utf-8")
    result = _add(cli_project, str(notes), "--point", "north")
    assert result.exit_code == 1
    assert "--point must be" in result.output


def test_add_missing_file(cli_project: Path) -> None:
    result = _add(cli_project, str(cli_project / "nope.geojson"))
    assert result.exit_code == 1
    assert "File not found" in result.output


def test_add_invalid_geojson(cli_project: Path) -> None:
    broken = cli_project / "broken.geojson"
    broken.write_text('{"type": "Topology"}', encoding="utf-8")
    result = _add(cli_project, str(broken))
    assert result.exit_code == 1
    assert "Cannot read GeoJSON" in result.output


def test_add_without_database(tmp_path: Path) -> None:
    source = tmp_path / "places.geojson"
    source.write_text('{"type": "FeatureCollection", "features": []}', encoding="utf-8")
    empty_fc = runner.invoke(app, ["add", str(source), "-C", str(tmp_path)])
    assert empty_fc.exit_code == 0
    assert "No documents" in empty_fc.output

    source.write_text(
        '{"type": "Feature", "geometry": {"type": "Point", "coordinates": [0, 0]}, "properties": {"name": "x"}}',
        encoding="utf-8",
    )
    result = runner.invoke(app, ["add", str(source), "-C", str(tmp_path)])
    assert result.exit_code == 1
    assert "No database found" in result.output


def test_add_to_unknown_workspace(cli_project: Path) -> None:
    result = _add(cli_project, str(cli_project / "places.geojson"), "--workspace", "elsewhere")
    assert result.exit_code == 1
    assert "Workspace 'elsewhere' not found" in result.output


def test_add_rejects_invalid_dataset_id(cli_project: Path) -> None:
    result = _add(cli_project, str(cli_project / "places.geojson"), "--id", "has/slash")
    assert result.exit_code == 1
    assert result.exception is None or isinstance(result.exception, SystemExit)
    assert "Invalid dataset id" in result.output
    assert "--id my-dataset" in result.output


def test_add_rejects_duplicate_feature_ids(cli_project: Path) -> None:
    point = {"type": "Point", "coordinates": [4.9, 52.37]}
    source = cli_project / "dupes.geojson"
    source.write_text(
        json.dumps(
            {
                "type": "FeatureCollection",
                "features": [
                    {"type": "Feature", "id": "x", "geometry": point, "properties": {"name": "a"}},
                    {"type": "Feature", "id": "x", "geometry": point, "properties": {"name": "b"}},
                ],
            }
        ),
        encoding="utf-8",
    )
    result = _add(cli_project, str(source))
    assert result.exit_code == 1
    assert result.exception is None or isinstance(result.exception, SystemExit)
    assert "Duplicate document id 'x'" in result.output


def test_add_features_without_ids_next_to_explicit_numeric_ids(cli_project: Path) -> None:
    point = {"type": "Point", "coordinates": [4.9, 52.37]}
    source = cli_project / "mixed.geojson"
    source.write_text(
        json.dumps(
            {
                "type": "FeatureCollection",
                "features": [
                    {"type": "Feature", "id": "1", "geometry": point, "properties": {"name": "a"}},
                    {"type": "Feature", "geometry": point, "properties": {"name": "b"}},
                ],
            }
        ),
        encoding="utf-8",
    )
    result = _add(cli_project, str(source))
    assert result.exit_code == 0, result.output
    assert "2 documents" in result.output


GPX_TRACK = """<gpx version="1.1">
  <wpt lat="52.37" lon="4.89"><name>Start</name></wpt>
  <trk><name>Dike walk</name><trkseg>
    <trkpt lat="52.37" lon="4.89"></trkpt>
    <trkpt lat="52.40" lon="4.95"></trkpt>
  </trkseg></trk>
</gpx>
"""


def test_add_gpx(cli_project: Path) -> None:
    gpx = cli_project / "walk.gpx"
    gpx.write_text(GPX_TRACK, encoding="utf-8")
    result = _add(cli_project, str(gpx))
    assert result.exit_code == 0, result.output
    assert "2 documents" in result.output
    assert "EPSG:4326" in result.output


def test_add_gpx_tracks_only(cli_project: Path) -> None:
    gpx = cli_project / "walk.gpx"
    gpx.write_text(GPX_TRACK, encoding="utf-8")
    result = _add(cli_project, str(gpx), "--gpx-type", "tracks")
    assert result.exit_code == 0, result.output
    assert "1 documents" in result.output


def test_add_gpx_rejects_unknown_type(cli_project: Path) -> None:
    gpx = cli_project / "walk.gpx"
    gpx.write_text(GPX_TRACK, encoding="utf-8")
    result = _add(cli_project, str(gpx), "--gpx-type", "segments")
    assert result.exit_code == 1
    assert "--gpx-type" in result.output


def test_add_kml(cli_project: Path) -> None:
    kml = cli_project / "pins.kml"
    kml.write_text(
        "<kml><Document><Folder><name>Ports</name>"
        "<Placemark><name>Harlingen</name><Point><coordinates>5.41,53.17</coordinates></Point></Placemark>"
        "</Folder></Document></kml>",
        encoding="utf-8",
    )
    result = _add(cli_project, str(kml))
    assert result.exit_code == 0, result.output
    assert "Added dataset" in result.output
    assert "1 documents" in result.output


def test_add_unreadable_kml(cli_project: Path) -> None:
    kml = cli_project / "broken.kml"
    kml.write_text("<kml><Placemark><Point><coordinates>x,y</coordinates></Point></Placemark></kml>", encoding="utf-8")
    result = _add(cli_project, str(kml))
    assert result.exit_code == 1
    assert "Cannot read KML" in result.output

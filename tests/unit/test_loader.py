import json
from pathlib import Path

import pytest

from school_demand.common.errors import ConfigError, CrsUndeclaredError, InputSchemaError
from school_demand.common.models import AttributeTable
from school_demand.pipeline.loader import (
    attach_attributes,
    load_attribute_table,
    load_points_csv,
    load_polygons_geojson,
    parse_number,
)

SQUARE = [[[0, 0], [10, 0], [10, 10], [0, 10], [0, 0]]]


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def _load_points(path: Path, **overrides):
    kwargs = {
        "dataset": "schools",
        "crs": "EPSG:2157",
        "id_column": "Roll Number",
        "x_column": "Easting",
        "y_column": "Northing",
        "capacity_column": "Total Pupils",
        "name_column": "Official Name",
    }
    kwargs.update(overrides)
    return load_points_csv(path, **kwargs)


def _feature(guid, coordinates=SQUARE, name="Town", geom_type="Polygon"):
    return {
        "type": "Feature",
        "properties": {"GUID": guid, "SETTL_NAME": name},
        "geometry": {"type": geom_type, "coordinates": coordinates},
    }


def _write_geojson(path: Path, features: list[dict], crs: str | None = "urn:ogc:def:crs:EPSG::2157") -> Path:
    payload = {"type": "FeatureCollection", "features": features}
    if crs is not None:
        payload["crs"] = {"type": "name", "properties": {"name": crs}}
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_parse_number_handles_ints_floats_and_junk():
    assert parse_number("12") == 12
    assert isinstance(parse_number("12"), int)
    assert parse_number(" 2.5 ") == 2.5
    assert parse_number("") is None
    assert parse_number("n/a") is None
    assert parse_number("nan") is None
    assert parse_number("inf") is None
    assert parse_number(None) is None


def test_load_points_rejects_and_counts_bad_rows(tmp_path: Path):
    path = _write(
        tmp_path / "schools.csv",
        "Roll Number,Official Name,Easting,Northing,Total Pupils\n"
        "1A,One,600000,700000,120\n"
        ",No Id,600000,700000,10\n"
        "2B,No X,,700000,10\n"
        "3C,Bad Capacity,600000,700000,lots\n"
        "1A,Duplicate,600100,700100,10\n"
        "4D,Four,600200,700200,35.5\n",
    )

    result = _load_points(path)

    assert result.collection.crs == "EPSG:2157"
    assert result.collection.ids() == ["1A", "4D"]
    assert result.collection.features[0].capacity == 120
    assert result.collection.features[0].name == "One"
    assert result.collection.features[1].capacity == 35.5
    assert [(row.row_number, row.reason) for row in result.rejected] == [
        (3, "missing_id"),
        (4, "invalid_coordinates"),
        (5, "invalid_capacity"),
        (6, "duplicate_id"),
    ]
    assert len(result.collection) + len(result.rejected) == 6
    assert result.row_numbers == {"1A": 2, "4D": 7}


def test_load_points_missing_required_column_fails_whole_load(tmp_path: Path):
    path = _write(tmp_path / "schools.csv", "Roll Number,Easting,Northing\n1A,1,2\n")

    with pytest.raises(InputSchemaError):
        _load_points(path, name_column=None)


def test_load_points_column_names_are_case_sensitive(tmp_path: Path):
    path = _write(tmp_path / "schools.csv", "roll number,Easting,Northing,Total Pupils\n1A,1,2,3\n")

    with pytest.raises(InputSchemaError):
        _load_points(path, name_column=None)


def test_load_points_requires_a_crs(tmp_path: Path):
    path = _write(tmp_path / "schools.csv", "Roll Number,Easting,Northing,Total Pupils\n1A,1,2,3\n")

    with pytest.raises(CrsUndeclaredError):
        _load_points(path, crs="", name_column=None)


def test_load_points_tolerates_byte_order_mark(tmp_path: Path):
    path = tmp_path / "schools.csv"
    path.write_text("Roll Number,Easting,Northing,Total Pupils\n1A,1,2,3\n", encoding="utf-8-sig")

    result = _load_points(path, name_column=None)

    assert result.collection.ids() == ["1A"]


def test_load_polygons_reads_declared_crs_and_rejects_bad_geometry(tmp_path: Path):
    bowtie = [[[0, 0], [10, 10], [10, 0], [0, 10], [0, 0]]]
    unclosed = [[[0, 0], [10, 0], [10, 10], [0, 10]]]
    path = _write_geojson(
        tmp_path / "settlements.geojson",
        [
            _feature("A"),
            _feature("B", coordinates=bowtie),
            _feature("C", coordinates=unclosed),
            _feature("D", coordinates=[0, 0], geom_type="Point"),
            _feature(None),
            _feature("A"),
            _feature("E", name=""),
            _feature("F", coordinates=[SQUARE], geom_type="MultiPolygon"),
        ],
    )

    result = load_polygons_geojson(path, dataset="settlements", id_property="GUID", name_property="SETTL_NAME")

    assert result.collection.crs == "EPSG:2157"
    assert result.collection.ids() == ["A", "F"]
    reasons = {row.identifier: row.reason for row in result.rejected}
    assert reasons["B"].startswith("invalid_geometry")
    assert reasons["C"] == "unclosed_ring"
    assert reasons["D"] == "unsupported_geometry"
    assert reasons[None] == "missing_id"
    assert reasons["A"] == "duplicate_id"
    assert reasons["E"] == "missing_name"


def test_load_polygons_uses_configured_crs_when_file_declares_none(tmp_path: Path):
    path = _write_geojson(tmp_path / "settlements.geojson", [_feature("A")], crs=None)

    result = load_polygons_geojson(
        path, dataset="settlements", id_property="GUID", name_property="SETTL_NAME", crs="epsg:2157"
    )

    assert result.collection.crs == "EPSG:2157"


def test_load_polygons_without_any_crs_fails_fast(tmp_path: Path):
    path = _write_geojson(tmp_path / "settlements.geojson", [_feature("A")], crs=None)

    with pytest.raises(CrsUndeclaredError):
        load_polygons_geojson(path, dataset="settlements", id_property="GUID", name_property="SETTL_NAME")


def test_load_polygons_rejects_conflicting_crs(tmp_path: Path):
    path = _write_geojson(tmp_path / "settlements.geojson", [_feature("A")])

    with pytest.raises(ConfigError):
        load_polygons_geojson(
            path, dataset="settlements", id_property="GUID", name_property="SETTL_NAME", crs="EPSG:4326"
        )


def test_load_polygons_rejects_non_feature_collection(tmp_path: Path):
    path = _write(tmp_path / "settlements.geojson", json.dumps({"type": "Feature"}))

    with pytest.raises(InputSchemaError):
        load_polygons_geojson(path, dataset="settlements", id_property="GUID", name_property="SETTL_NAME")


def test_load_attribute_table_rejects_blank_and_duplicate_keys(tmp_path: Path):
    path = _write(tmp_path / "census.csv", "GUID,T1_1AGE5T\nA,1\n,2\nA,3\nB,4\n")

    table = load_attribute_table(path, dataset="census", id_column="GUID")

    assert sorted(table.rows) == ["A", "B"]
    assert table.rows["A"]["T1_1AGE5T"] == "1"
    assert [row.reason for row in table.rejected] == ["missing_id", "duplicate_id"]


def test_attach_attributes_merges_rows_and_reports_leftovers(tmp_path: Path):
    path = _write_geojson(tmp_path / "settlements.geojson", [_feature("A"), _feature("B")])
    polygons = load_polygons_geojson(path, dataset="settlements", id_property="GUID", name_property="SETTL_NAME")
    table = AttributeTable(key_column="GUID", rows={"A": {"GUID": "A", "T1_1AGE5T": "7"}, "Z": {"GUID": "Z"}})

    merged, unmatched = attach_attributes(polygons, table, dataset="settlements")

    assert merged.collection.ids() == ["A"]
    assert merged.collection.features[0].attributes["T1_1AGE5T"] == "7"
    assert merged.collection.features[0].attributes["SETTL_NAME"] == "Town"
    assert [(row.identifier, row.reason) for row in merged.rejected] == [("B", "missing_attributes")]
    assert unmatched == ("Z",)
    assert "T1_1AGE5T" not in polygons.collection.features[0].attributes


def test_load_polygons_rejects_malformed_features_without_aborting(tmp_path: Path):
    string_geometry = {"type": "Feature", "properties": {"GUID": "G", "SETTL_NAME": "Gee"}, "geometry": "POLYGON"}
    list_properties = {"type": "Feature", "properties": ["GUID", "H"], "geometry": _feature("H")["geometry"]}
    path = _write_geojson(
        tmp_path / "settlements.geojson",
        [["not", "a", "feature"], "feature", string_geometry, list_properties, _feature("A")],
    )

    result = load_polygons_geojson(path, dataset="settlements", id_property="GUID", name_property="SETTL_NAME")

    assert result.collection.ids() == ["A"]
    assert [(row.row_number, row.reason, row.identifier) for row in result.rejected] == [
        (1, "malformed_feature", None),
        (2, "malformed_feature", None),
        (3, "malformed_geometry", "G"),
        (4, "malformed_feature", None),
    ]


def test_attach_attributes_reports_source_row_of_unmatched_polygon(tmp_path: Path):
    path = _write_geojson(tmp_path / "settlements.geojson", [_feature(""), _feature("B"), _feature("C")])
    polygons = load_polygons_geojson(path, dataset="settlements", id_property="GUID", name_property="SETTL_NAME")
    table = AttributeTable(key_column="GUID", rows={"B": {"GUID": "B"}})

    merged, _ = attach_attributes(polygons, table, dataset="settlements")

    assert [(row.row_number, row.reason, row.identifier) for row in merged.rejected] == [
        (1, "missing_id", None),
        (3, "missing_attributes", "C"),
    ]
    assert merged.row_numbers == {"B": 2}

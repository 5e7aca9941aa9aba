import copy

import pytest

from school_demand.common.constants import DEFAULT_AGE_COLUMNS
from school_demand.common.errors import ConfigError
from school_demand.common.schema import validate_analysis_config, validate_sources_config

BASE_ANALYSIS = {
    "target_crs": "EPSG:2157",
    "outlier_threshold": 1.6,
    "age_columns": ["T1_1AGE5T", "T1_1AGE6T"],
    "boundary_policy": "exclude",
    "ambiguity_policy": "first",
    "point_filters": [{"name": "capacity_non_negative"}],
    "output": {"ratio_filename": "a.csv", "exclusions_filename": "b.csv"},
}

BASE_SOURCES = {
    "datasets": {
        "schools": {
            "filename": "schools.csv",
            "url": None,
            "crs": "EPSG:2157",
            "id_column": "Roll Number",
            "x_column": "Easting",
            "y_column": "Northing",
            "capacity_column": "Total Pupils",
        },
        "census": {"filename": "census.csv", "url": None, "id_column": "GUID"},
        "settlements": {"filename": "s.geojson", "url": None, "id_property": "GUID", "name_property": "NAME"},
    }
}


def _analysis(**changes):
    cfg = copy.deepcopy(BASE_ANALYSIS)
    cfg.update(changes)
    return cfg


def test_validate_analysis_config_accepts_valid_shape():
    validated = validate_analysis_config(_analysis())
    assert validated["boundary_policy"] == "exclude"


def test_validate_analysis_config_treats_null_filters_as_empty():
    validated = validate_analysis_config(_analysis(point_filters=None))
    assert validated["point_filters"] == []


@pytest.mark.parametrize(
    "changes",
    [
        {"outlier_threshold": "high"},
        {"outlier_threshold": True},
        {"age_columns": []},
        {"age_columns": ["T1_1AGE5T", "T1_1AGE5T"]},
        {"boundary_policy": "touch"},
        {"ambiguity_policy": "random"},
        {"point_filters": [{"column": "Level"}]},
        {"output": {"ratio_filename": "a.csv", "exclusions_filename": "a.csv"}},
        {"target_crs": ""},
    ],
)
def test_validate_analysis_config_rejects_bad_values(changes):
    with pytest.raises(ConfigError):
        validate_analysis_config(_analysis(**changes))


def test_validate_analysis_config_rejects_unknown_key_by_default():
    bad = _analysis(unexpected=True)
    with pytest.raises(ConfigError):
        validate_analysis_config(bad)
    validate_analysis_config(_analysis(extra=1), allow_unknown=True)


def test_validate_analysis_config_rejects_missing_key():
    bad = _analysis()
    del bad["target_crs"]
    with pytest.raises(ConfigError):
        validate_analysis_config(bad)


def test_validate_analysis_config_defaults_to_primary_school_ages():
    cfg = _analysis()
    del cfg["age_columns"]

    validated = validate_analysis_config(cfg)

    assert validated["age_columns"] == list(DEFAULT_AGE_COLUMNS)
    assert validated["age_columns"][0] == "T1_1AGE5T"
    assert validated["age_columns"][-1] == "T1_1AGE12T"


def test_validate_sources_config_accepts_valid_shape():
    validated = validate_sources_config(copy.deepcopy(BASE_SOURCES))
    assert validated["datasets"]["census"]["id_column"] == "GUID"


def test_validate_sources_config_requires_point_crs():
    bad = copy.deepcopy(BASE_SOURCES)
    bad["datasets"]["schools"]["crs"] = None
    with pytest.raises(ConfigError):
        validate_sources_config(bad)


def test_validate_sources_config_rejects_missing_dataset():
    bad = copy.deepcopy(BASE_SOURCES)
    del bad["datasets"]["census"]
    with pytest.raises(ConfigError):
        validate_sources_config(bad)


def test_validate_sources_config_rejects_unknown_dataset_key():
    bad = copy.deepcopy(BASE_SOURCES)
    bad["datasets"]["settlements"]["layer"] = 2
    with pytest.raises(ConfigError):
        validate_sources_config(bad)

"""
Tests for record enrichment, filtering, search and sorting.
"""

import copy

import pytest

from police_data_service.processing.records import (
    extract_borough,
    filter_options,
    filter_records,
    process_records,
    search_records,
    sort_records,
)

RECORDS = [
    {
        "datetime": "2024-01-05T10:30:00+00:00",
        "type": "Person search",
        "outcome": "Arrest",
        "object_of_search": "Controlled drugs",
        "age_range": "18-24",
        "gender": "Male",
        "self_defined_ethnicity": "Other ethnic group - Not stated",
        "location": {"latitude": "51.5", "longitude": "-0.13", "street": {"id": 1, "name": "On or near Camden High Street"}},
    },
    {
        "datetime": "2024-01-20T16:00:00+00:00",
        "type": "Vehicle search",
        "outcome": None,
        "object_of_search": "Stolen goods",
        "age_range": None,
        "gender": "Female",
        "self_defined_ethnicity": None,
        "location": None,
    },
    {
        "datetime": "2024-01-12T09:15:00+00:00",
        "type": "person and vehicle search",
        "outcome": "A no further action disposal",
        "object_of_search": "Offensive weapons",
        "age_range": "25-34",
        "gender": "Male",
        "self_defined_ethnicity": "Asian/Asian British - Any other Asian background",
        "location": {"street": {"name": "On or near Parking Area"}},
    },
]


def test_process_records_adds_keys_without_mutating():
    original = copy.deepcopy(RECORDS)

    processed = process_records(RECORDS, "2024-01")

    assert RECORDS == original
    assert len(processed) == 3

    first = processed[0]
    assert first["id"] == "2024-01-0-1704450600000"
    assert first["date"] == "2024-01-05"
    assert first["month"] == "2024-01"
    assert first["year"] == 2024
    assert first["borough"] == "Camden"
    assert first["type"] == "Person search"

    assert processed[1]["borough"] == "Unknown"
    assert processed[1]["id"].startswith("2024-01-1-")


def test_extract_borough_is_case_insensitive():
    assert extract_borough("on or near TOWER HAMLETS road") == "Tower Hamlets"
    assert extract_borough("") == "Unknown"


def test_filter_records_by_field():
    result = filter_records(RECORDS, gender=["Male"])

    assert [record["type"] for record in result] == ["Person search", "person and vehicle search"]


def test_filter_null_field_never_matches_non_empty_list():
    result = filter_records(RECORDS, outcome=["Arrest", "A no further action disposal"])

    assert len(result) == 2
    assert all(record["outcome"] is not None for record in result)


def test_empty_filter_list_is_no_constraint():
    assert filter_records(RECORDS, gender=[], outcome=[]) == RECORDS


def test_filter_combines_criteria():
    result = filter_records(RECORDS, gender=["Male"], age_range=["25-34"])

    assert len(result) == 1
    assert result[0]["object_of_search"] == "Offensive weapons"


def test_filter_by_date_range_is_inclusive():
    result = filter_records(RECORDS, date_range={"start": "2024-01-05", "end": "2024-01-12"})

    assert [record["datetime"][:10] for record in result] == ["2024-01-05", "2024-01-12"]


def test_filter_rejects_unknown_criteria():
    with pytest.raises(ValueError):
        filter_records(RECORDS, borough=["Camden"])


def test_filter_options_are_sorted_and_non_null():
    options = filter_options(RECORDS)

    assert options["genders"] == ["Female", "Male"]
    assert options["outcomes"] == ["A no further action disposal", "Arrest"]
    assert options["ageRanges"] == ["18-24", "25-34"]
    assert set(options) == {"searchTypes", "ageRanges", "genders", "ethnicities", "outcomes", "objectsOfSearch"}


def test_search_matches_street_name_and_columns():
    assert len(search_records(RECORDS, "camden")) == 1
    assert len(search_records(RECORDS, "VEHICLE")) == 2
    assert len(search_records(RECORDS, "asian")) == 1
    assert search_records(RECORDS, "nothing matches this") == []


def test_blank_search_returns_everything():
    assert search_records(RECORDS, "   ") == RECORDS
    assert search_records(RECORDS, "") == RECORDS


def test_sort_by_datetime_descending_by_default():
    result = sort_records(RECORDS)

    assert [record["datetime"][:10] for record in result] == ["2024-01-20", "2024-01-12", "2024-01-05"]


def test_sort_strings_case_insensitively_with_nulls_first_ascending():
    result = sort_records(RECORDS, field="type", direction="asc")
    assert [record["type"] for record in result] == ["person and vehicle search", "Person search", "Vehicle search"]

    result = sort_records(RECORDS, field="outcome", direction="asc")
    assert result[0]["outcome"] is None


def test_sort_rejects_bad_arguments():
    with pytest.raises(ValueError):
        sort_records(RECORDS, field="location")
    with pytest.raises(ValueError):
        sort_records(RECORDS, direction="sideways")

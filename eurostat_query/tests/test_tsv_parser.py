from __future__ import annotations

import pytest

from eurostat_query.exceptions import ResponseFormatError
from eurostat_query.models import Observation
from eurostat_query.services.tsv_parser import (
    RowTableBuilder,
    parse_header,
    parse_observation,
    parse_tsv,
)

AL_TSV = (
    "freq,unit,sex,age,geo\\TIME_PERIOD\t2000\t2001\n"
    "A,NR,F,TOTAL,AL\t1526762\t1535822\n"
)


def test_two_observations_reference_one_combination():
    table = parse_tsv(AL_TSV)

    assert table.dimension_names == ("freq", "unit", "sex", "age", "geo")
    assert table.combinations == (("A", "NR", "F", "TOTAL", "AL"),)
    assert table.observations == (
        Observation(0, "2000", 1526762.0),
        Observation(0, "2001", 1535822.0),
    )
    assert list(table.rows()) == [
        ("A", "NR", "F", "TOTAL", "AL", "2000", 1526762.0),
        ("A", "NR", "F", "TOTAL", "AL", "2001", 1535822.0),
    ]


def test_header_names_are_lower_cased_and_periods_trimmed():
    header = parse_header("FREQ,Unit,GEO\\TIME_PERIOD\t2020-Q1 \t2020-Q2 ")
    assert header.dimension_names == ["freq", "unit", "geo"]
    assert header.time_periods == ["2020-Q1", "2020-Q2"]


def test_missing_marker_is_a_format_error():
    with pytest.raises(ResponseFormatError) as exc_info:
        parse_tsv("freq,unit,geo\t2000\nA,NR,AL\t1\n")
    assert "TIME_PERIOD" in exc_info.value.message
    assert exc_info.value.line_number == 1


def test_empty_body_is_a_format_error():
    with pytest.raises(ResponseFormatError):
        parse_tsv("")


@pytest.mark.parametrize("field", ["", ":", " : ", "   "])
def test_missing_values_are_absent(field):
    assert parse_observation(field) is None


@pytest.mark.parametrize("field", ["12.3 p", "n/a", "1e"])
def test_unparseable_values_are_dropped(field):
    assert parse_observation(field) is None


def test_numbers_parse_as_float():
    assert parse_observation(" 42 ") == 42.0
    assert parse_observation("-0.5") == -0.5


def test_sample_response(demo_tsv):
    table = parse_tsv(demo_tsv)
    assert len(table.combinations) == 3
    assert [(o.combo_index, o.time_period, o.value) for o in table.observations] == [
        (0, "2000", 1526762.0),
        (0, "2001", 1535822.0),
        (1, "2000", 42108971.0),
        (2, "2001", 5210000.0),
    ]
    assert table.cardinality == 4


def test_geo_level_is_inserted_after_geo(demo_tsv):
    table = parse_tsv(demo_tsv, derive_geo_level=True)
    assert table.dimension_names == ("freq", "unit", "sex", "age", "geo", "geo_level")
    assert [c[5] for c in table.combinations] == ["country", "country", "nuts1"]
    assert table.columns[-2:] == ["time_period", "observation_value"]


def test_wrong_field_count_is_a_format_error():
    body = "geo\\TIME_PERIOD\t2000\t2001\nAL\t1\n"
    with pytest.raises(ResponseFormatError) as exc_info:
        parse_tsv(body)
    assert exc_info.value.line_number == 2


def test_wrong_dimension_count_is_a_format_error():
    body = "freq,geo\\TIME_PERIOD\t2000\nA\t1\n"
    with pytest.raises(ResponseFormatError):
        parse_tsv(body)


def test_dedupe_skips_rows_seen_in_an_earlier_response():
    builder = RowTableBuilder(dedupe=True)
    assert builder.add_response(AL_TSV) == 2
    assert builder.add_response(AL_TSV) == 0

    once = parse_tsv(AL_TSV)
    assert builder.build() == once
    assert builder.duplicates_skipped == 2


def test_dedupe_keeps_new_periods_of_a_known_combination():
    builder = RowTableBuilder(dedupe=True)
    builder.add_response(AL_TSV)
    builder.add_response(
        "freq,unit,sex,age,geo\\TIME_PERIOD\t2001\t2002\n"
        "A,NR,F,TOTAL,AL\t9\t1537000\n"
    )
    table = builder.build()
    assert [(o.time_period, o.value) for o in table.observations] == [
        ("2000", 1526762.0),
        ("2001", 1535822.0),
        ("2002", 1537000.0),
    ]


def test_without_dedupe_duplicates_are_kept():
    builder = RowTableBuilder()
    builder.add_response(AL_TSV)
    builder.add_response(AL_TSV)
    assert builder.build().cardinality == 4


def test_mismatched_headers_across_responses():
    builder = RowTableBuilder(dedupe=True)
    builder.add_response(AL_TSV)
    with pytest.raises(ResponseFormatError):
        builder.add_response("geo\\TIME_PERIOD\t2000\nAL\t1\n")


def test_empty_builder_uses_catalog_dimension_names():
    builder = RowTableBuilder(["freq", "geo", "geo_level"], derive_geo_level=True)
    table = builder.build()
    assert table.dimension_names == ("freq", "geo", "geo_level")
    assert len(table) == 0

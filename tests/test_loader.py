from __future__ import annotations

import json
import math
from datetime import datetime, timedelta, timezone

import pytest

from evie.loader import (
    DatasetLoadError,
    features_from_document,
    load_geojson,
    normalize,
    parse_date_ms,
    resolve_category,
    resolve_timestamp,
)
from evie.models import DEFAULT_CATEGORY, MAX_DATE_MS, MIN_DATE_MS, format_date_ms

JAN_1_2020_MS = 1577836800000


def _with_coords(coords):
    return {"type": "Feature", "geometry": {"type": "Point", "coordinates": coords}, "properties": {}}


def test_malformed_geometry_is_dropped_and_valid_kept():
    bad = [
        None,
        [1.0],
        [1.0, 2.0, 3.0],
        ["1", "2"],
        [math.nan, 1.0],
        [1.0, math.inf],
        [True, 1.0],
        "1,2",
    ]
    raw = [_with_coords(c) for c in bad]
    raw.append({"type": "Feature", "properties": {"event_type": "Raid"}})
    raw.append({"type": "Feature", "geometry": None, "properties": {}})
    raw.append("not a feature")
    raw.append(_with_coords([-3.5, 14.25]))
    raw.append(_with_coords([0, 0]))

    records = normalize(raw)

    assert len(records) == 2
    assert (records[0].longitude, records[0].latitude) == (-3.5, 14.25)
    assert (records[1].longitude, records[1].latitude) == (0.0, 0.0)
    assert [r.record_id for r in records] == [0, 1]


def test_normalize_preserves_input_order_and_keeps_undated(make_feature):
    raw = [
        make_feature(1, 1, event_type="A", event_date="2020-01-01"),
        make_feature(2, 2, event_type="B"),
        make_feature(3, 3, event_type="C", event_date="garbage"),
    ]
    records = normalize(raw)
    assert [r.category for r in records] == ["A", "B", "C"]
    assert records[0].timestamp_ms == JAN_1_2020_MS
    assert records[1].timestamp_ms is None
    assert records[0].has_timestamp and not records[1].has_timestamp
    assert records[2].timestamp_ms is None


def test_timestamp_prefers_numeric_ms_field():
    props = {"event_date_ms": 1000, "event_date": "2020-01-01"}
    assert resolve_timestamp(props) == 1000


def test_timestamp_accepts_numeric_string_ms():
    assert resolve_timestamp({"event_date_ms": " 1577836800000 "}) == JAN_1_2020_MS


def test_timestamp_falls_back_to_date_string():
    assert resolve_timestamp({"event_date_ms": "n/a", "event_date": "2020-01-01"}) == JAN_1_2020_MS
    assert resolve_timestamp({"event_date_ms": math.nan, "event_date": "2020-01-01"}) == JAN_1_2020_MS
    assert resolve_timestamp({"event_date_ms": True, "event_date": "2020-01-01"}) == JAN_1_2020_MS


def test_timestamp_unresolvable_is_none():
    assert resolve_timestamp({}) is None
    assert resolve_timestamp({"event_date": ""}) is None
    assert resolve_timestamp({"event_date": "yesterday-ish"}) is None
    assert resolve_timestamp({"event_date": 20200101}) is None


def test_parse_date_ms_handles_time_and_zone():
    assert parse_date_ms("2020-01-01T12:00:00Z") == JAN_1_2020_MS + 12 * 3600 * 1000
    assert parse_date_ms("2020-01-01T02:00:00+02:00") == JAN_1_2020_MS
    assert parse_date_ms(None) is None


def test_pre_1677_date_never_raises(make_feature):
    expected = (datetime(1500, 6, 1, tzinfo=timezone.utc) - datetime(1970, 1, 1, tzinfo=timezone.utc)) // timedelta(milliseconds=1)
    # pandas builds without non-nanosecond support cannot represent it and leave it undated
    assert resolve_timestamp({"event_date": "1500-06-01"}) in (expected, None)

    records = normalize([make_feature(event_date="1500-06-01", event_type="Raid")])
    assert len(records) == 1
    if records[0].has_timestamp:
        assert records[0].date_label() == "1500-06-01"


@pytest.mark.parametrize("word", ["now", "today", "Today", " now ", "tomorrow"])
def test_relative_date_words_stay_unresolved(word):
    assert parse_date_ms(word) is None
    assert resolve_timestamp({"event_date": word}) is None


@pytest.mark.parametrize("value", [1e20, -1e20, "1e20", 10 ** 18])
def test_timestamp_outside_datetime_range_is_unresolved(value):
    assert resolve_timestamp({"event_date_ms": value}) is None
    assert resolve_timestamp({"event_date_ms": value, "event_date": "2020-01-01"}) == JAN_1_2020_MS


def test_format_date_ms_covers_whole_datetime_range():
    assert format_date_ms(JAN_1_2020_MS) == "2020-01-01"
    assert format_date_ms(MIN_DATE_MS) == "0001-01-01"
    assert format_date_ms(MAX_DATE_MS) == "9999-12-31"
    assert format_date_ms(-86_400_000) == "1969-12-31"


@pytest.mark.parametrize("props", [{}, {"event_type": None}, {"event_type": ""}, {"event_type": "   "}])
def test_category_defaults_to_event(props):
    assert resolve_category(props) == DEFAULT_CATEGORY == "Event"


def test_category_is_coerced_to_string():
    assert resolve_category({"event_type": 5}) == "5"
    assert resolve_category({"event_type": " Riots "}) == "Riots"


def test_display_fields_pass_through(make_feature):
    r = normalize([make_feature(fatalities=3, actor1="A", notes="n", unrelated="x")])[0]
    assert r.display_fields["fatalities"] == 3
    assert r.display_fields["actor1"] == "A"
    assert "unrelated" not in r.display_fields
    with pytest.raises(TypeError):
        r.display_fields["fatalities"] = 4


def test_single_feature_document_becomes_one_element_list(make_feature):
    f = make_feature(event_type="Raid")
    assert features_from_document(f) == [f]


@pytest.mark.parametrize("doc", [
    [],
    "text",
    {"type": "Point", "coordinates": [0, 0]},
    {"type": "FeatureCollection"},
    {"type": "FeatureCollection", "features": {"a": 1}},
])
def test_invalid_documents_raise(doc):
    with pytest.raises(DatasetLoadError):
        features_from_document(doc)


def test_load_geojson_reads_file(tmp_path, scenario_doc):
    path = tmp_path / "events.geojson"
    path.write_text(json.dumps(scenario_doc), encoding="utf-8")
    records = load_geojson(path)
    assert [r.category for r in records] == ["Raid", "Protest", "Raid"]


def test_load_geojson_failures_raise_load_error(tmp_path):
    with pytest.raises(DatasetLoadError):
        load_geojson(tmp_path / "missing.geojson")

    broken = tmp_path / "broken.geojson"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(DatasetLoadError):
        load_geojson(broken)

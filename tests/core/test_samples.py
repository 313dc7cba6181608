"""
Tests for the wire models and timestamp helpers.
"""
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from pgprom.core.domain.samples import MatchType, ReadRequest, Sample, WriteRequest
from pgprom.core.timestamps import MAX_MS, MIN_MS, format_timestamp, to_milliseconds, to_timestamp


def test_write_request_flattens_to_samples():
    request = WriteRequest(timeseries=[
        {
            "labels": [{"name": "__name__", "value": "up"}, {"name": "job", "value": "node"}],
            "samples": [{"timestamp_ms": 1000, "value": 1}, {"timestamp_ms": 2000, "value": 0}],
        },
        {
            "labels": [{"name": "job", "value": "nameless"}],
            "samples": [{"timestamp_ms": 3000, "value": 5}],
        },
    ])

    assert request.to_samples() == [
        Sample(timestamp=1000, name="up", labels={"job": "node"}, value=1.0),
        Sample(timestamp=2000, name="up", labels={"job": "node"}, value=0.0),
        Sample(timestamp=3000, name="", labels={"job": "nameless"}, value=5.0),
    ]


def test_duplicate_label_names_rejected():
    with pytest.raises(ValidationError):
        WriteRequest(timeseries=[{
            "labels": [{"name": "job", "value": "a"}, {"name": "job", "value": "b"}],
            "samples": [],
        }])


def test_read_request_parses_match_types():
    request = ReadRequest(queries=[{
        "matchers": [{"name": "job", "type": "REGEX_MATCH", "value": "n.*"}],
        "start_timestamp_ms": 0,
        "end_timestamp_ms": 10,
    }])
    assert request.queries[0].matchers[0].type is MatchType.REGEX_MATCH


def test_read_request_rejects_unknown_match_type():
    with pytest.raises(ValidationError):
        ReadRequest(queries=[{
            "matchers": [{"name": "job", "type": "FUZZY", "value": "n"}],
            "start_timestamp_ms": 0,
            "end_timestamp_ms": 10,
        }])


def test_timestamp_round_trip():
    assert to_timestamp(1500) == datetime(1970, 1, 1, 0, 0, 1, 500000, tzinfo=timezone.utc)
    assert to_milliseconds(to_timestamp(1_700_000_000_123)) == 1_700_000_000_123
    assert to_milliseconds(to_timestamp(-1500)) == -1500


def test_format_timestamp_keeps_milliseconds():
    assert format_timestamp(1500) == "1970-01-01T00:00:01.500+00:00"
    assert format_timestamp(0) == "1970-01-01T00:00:00.000+00:00"


def test_format_timestamp_clamps_to_infinity():
    # Prometheus sends these for open-ended ranges.
    assert format_timestamp(-9223372036854775) == "-infinity"
    assert format_timestamp(9223372036854775) == "infinity"
    assert format_timestamp(MIN_MS - 1) == "-infinity"
    assert format_timestamp(MAX_MS + 1) == "infinity"
    assert format_timestamp(MIN_MS) == "0001-01-01T00:00:00.000+00:00"
    assert format_timestamp(MAX_MS) == "9999-12-31T23:59:59.999+00:00"

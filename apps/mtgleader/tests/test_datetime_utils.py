"""
Unit tests for watermark datetime helpers.
"""

from datetime import datetime, timedelta, timezone

import pytest
import pytz

from mtgleader.utils.datetime_utils import (
    as_utc,
    format_updated_at,
    parse_updated_at,
    to_unix_nanos,
    truncate_to_millis,
)


def test_parse_and_format_updated_at():
    parsed = parse_updated_at("2024-03-05T07:08:09.123Z")
    assert parsed == datetime(2024, 3, 5, 7, 8, 9, 123000, tzinfo=pytz.UTC)
    assert format_updated_at(parsed) == "2024-03-05T07:08:09.123Z"
    assert format_updated_at(None) is None


@pytest.mark.parametrize("raw", [
    "",
    "2024-03-05T07:08:09Z",
    "2024-03-05T07:08:09.12Z",
    "2024-03-05T07:08:09.123456Z",
    "2024-03-05T07:08:09.123+00:00",
    "2024-03-05 07:08:09.123Z",
    "2024-13-05T07:08:09.123Z",
])
def test_parse_updated_at_rejects_other_forms(raw):
    with pytest.raises(ValueError):
        parse_updated_at(raw)


def test_truncate_to_millis_converts_to_utc():
    plus_two = timezone(timedelta(hours=2))
    value = datetime(2024, 1, 1, 14, 0, 0, 123999, tzinfo=plus_two)
    assert truncate_to_millis(value) == datetime(2024, 1, 1, 12, 0, 0, 123000, tzinfo=pytz.UTC)


def test_as_utc_handles_naive_values():
    naive = datetime(2024, 1, 1, 12, 0, 0)
    assert as_utc(naive).tzinfo is pytz.UTC
    assert as_utc(None) is None


def test_to_unix_nanos():
    assert to_unix_nanos(None) == 0
    value = datetime(1970, 1, 1, 0, 0, 1, 500000, tzinfo=pytz.UTC)
    assert to_unix_nanos(value) == 1_500_000_000

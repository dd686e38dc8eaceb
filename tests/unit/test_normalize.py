"""Unit tests for asset_group_sync.normalize."""

from datetime import datetime

import pytest

from asset_group_sync.normalize import (
    TimestampParseError,
    format_canonical_ts,
    format_extract_ts,
    parse_any_ts,
    parse_extract_ts,
    parse_optional_extract_ts,
    trim,
)


class TestTrim:
    def test_strips_whitespace(self):
        assert trim("  hello  ") == "hello"

    def test_empty_string_returns_none(self):
        assert trim("") is None

    def test_whitespace_only_returns_none(self):
        assert trim("   ") is None

    def test_none_returns_none(self):
        assert trim(None) is None


class TestParseExtractTs:
    def test_morning(self):
        assert parse_extract_ts("05/01/2025 08:00:00 AM") == datetime(2025, 5, 1, 8, 0, 0)

    def test_afternoon(self):
        assert parse_extract_ts("04/15/2025 01:30:15 PM") == datetime(2025, 4, 15, 13, 30, 15)

    def test_midnight(self):
        assert parse_extract_ts("05/01/2025 12:00:00 AM") == datetime(2025, 5, 1, 0, 0, 0)

    def test_noon(self):
        assert parse_extract_ts("05/01/2025 12:00:00 PM") == datetime(2025, 5, 1, 12, 0, 0)

    def test_lowercase_marker_accepted(self):
        assert parse_extract_ts("05/01/2025 09:00:00 pm") == datetime(2025, 5, 1, 21, 0, 0)

    def test_surrounding_whitespace_ignored(self):
        assert parse_extract_ts("  05/01/2025 08:00:00 AM ") == datetime(2025, 5, 1, 8)

    @pytest.mark.parametrize("value", [
        "not a date",
        "2025-05-01 08:00:00",
        "05/01/2025 13:00:00 PM",
        "05/01/2025 00:00:00 AM",
        "02/30/2025 08:00:00 AM",
        "5/1/2025 08:00:00 AM",
        "05/01/2025 08:00:00",
    ])
    def test_invalid_raises(self, value):
        with pytest.raises(TimestampParseError):
            parse_extract_ts(value)

    def test_error_is_value_error(self):
        assert issubclass(TimestampParseError, ValueError)


class TestParseOptionalExtractTs:
    def test_empty_is_absent(self):
        assert parse_optional_extract_ts("") is None

    def test_blank_is_absent(self):
        assert parse_optional_extract_ts("   ") is None

    def test_present_parses(self):
        assert parse_optional_extract_ts("05/01/2025 10:00:00 AM") == datetime(2025, 5, 1, 10)

    def test_malformed_raises(self):
        with pytest.raises(TimestampParseError):
            parse_optional_extract_ts("yesterday")


class TestFormatting:
    def test_canonical_form(self):
        assert format_canonical_ts(datetime(2025, 5, 1, 8, 30, 5)) == "2025-05-01T08:30:05"

    def test_canonical_round_trip_to_the_second(self):
        ts = datetime(2025, 12, 31, 23, 59, 59)
        assert parse_any_ts(format_canonical_ts(ts)) == ts

    def test_extract_form(self):
        assert format_extract_ts(datetime(2025, 5, 1, 13, 5, 0)) == "05/01/2025 01:05:00 PM"
        assert format_extract_ts(datetime(2025, 5, 1, 0, 5, 0)) == "05/01/2025 12:05:00 AM"

    def test_extract_round_trip(self):
        ts = datetime(2025, 5, 1, 12, 0, 1)
        assert parse_extract_ts(format_extract_ts(ts)) == ts


class TestParseAnyTs:
    def test_canonical(self):
        assert parse_any_ts("2025-05-01T08:30:00") == datetime(2025, 5, 1, 8, 30)

    def test_legacy(self):
        assert parse_any_ts("05/01/2025 08:30:00 AM") == datetime(2025, 5, 1, 8, 30)

    def test_garbage_raises(self):
        with pytest.raises(TimestampParseError):
            parse_any_ts("last tuesday")

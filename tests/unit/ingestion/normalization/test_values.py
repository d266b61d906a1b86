"""
Unit tests for the value normalizers.

Tests for date, time, category, cost and coordinate coercion.
"""

from datetime import date, datetime

import pytest

from touchgrass.ingestion.normalization.values import (
    normalize_category,
    normalize_coordinates,
    normalize_cost,
    normalize_date,
    normalize_time,
    split_time_range,
)
from touchgrass.schemas.event import FixedCost, FreeCost, VariableCost


class TestNormalizeDate:
    """Tests for normalize_date."""

    def test_plain_iso_date_unchanged(self):
        """YYYY-MM-DD is already canonical."""
        assert normalize_date("2024-03-15") == "2024-03-15"

    def test_iso_datetime_keeps_calendar_date(self):
        """The time part is dropped."""
        assert normalize_date("2024-03-15T19:00:00") == "2024-03-15"

    def test_offset_is_not_converted(self):
        """A late-evening local time must not roll over to the next UTC day."""
        assert normalize_date("2024-03-15T23:30:00-05:00") == "2024-03-15"
        assert normalize_date("2024-03-15T23:30:00Z") == "2024-03-15"

    def test_unparseable_returns_none(self):
        """Garbage is absent, not an error."""
        assert normalize_date("not a date") is None

    def test_impossible_calendar_date(self):
        assert normalize_date("2024-02-30") is None

    def test_free_text_month_name(self):
        """Crawler output like 'January 15, 2024 at 7:00 PM'."""
        assert normalize_date("January 15, 2024 at 7:00 PM") == "2024-01-15"
        assert normalize_date("Sat, Jun 15th 2024") == "2024-06-15"

    def test_us_slash_format(self):
        assert normalize_date("06/15/2024") == "2024-06-15"

    def test_date_objects(self):
        assert normalize_date(datetime(2024, 6, 15, 20, 0)) == "2024-06-15"
        assert normalize_date(date(2024, 6, 15)) == "2024-06-15"

    def test_epoch_milliseconds(self):
        assert normalize_date(1718409600000) == "2024-06-15"

    @pytest.mark.parametrize("value", [None, "", "   ", True, {"date": "2024-01-01"}])
    def test_empty_and_unsupported_values(self, value):
        assert normalize_date(value) is None


class TestNormalizeTime:
    """Tests for normalize_time."""

    def test_24_hour_passthrough(self):
        assert normalize_time("19:00") == "19:00"

    def test_pads_single_digit_hour(self):
        assert normalize_time("9:05") == "09:05"

    def test_am_pm_forms(self):
        """12-hour forms convert to 24-hour."""
        assert normalize_time("7:00 PM") == "19:00"
        assert normalize_time("7pm") == "19:00"
        assert normalize_time("12:30 am") == "00:30"
        assert normalize_time("12 PM") == "12:00"

    def test_iso_time_with_seconds(self):
        assert normalize_time("19:00:00") == "19:00"

    def test_unparseable_returns_input(self):
        """Unlike dates, a time that cannot be parsed is kept as written."""
        assert normalize_time("doors at seven") == "doors at seven"

    def test_out_of_range_returns_input(self):
        assert normalize_time("25:00") == "25:00"

    def test_empty_is_none(self):
        assert normalize_time("") is None
        assert normalize_time(None) is None

    def test_fallback_differs_from_dates(self):
        """Bad dates become absent while bad times survive unchanged."""
        assert normalize_date("not a time") is None
        assert normalize_time("not a time") == "not a time"


class TestSplitTimeRange:
    """Tests for split_time_range."""

    def test_range_with_both_periods(self):
        assert split_time_range("10am-2pm") == ("10:00", "14:00")

    def test_end_period_applies_to_start(self):
        assert split_time_range("7-11pm") == ("19:00", "23:00")

    def test_spaced_range(self):
        assert split_time_range("7:30 PM - 9:30 PM") == ("19:30", "21:30")

    def test_single_time(self):
        assert split_time_range("8 PM") == ("20:00", None)

    def test_sunset_keyword(self):
        assert split_time_range("Sunset") == ("sunset", None)

    def test_missing(self):
        assert split_time_range(None) == (None, None)
        assert split_time_range("  ") == (None, None)


class TestNormalizeCategory:
    """Tests for normalize_category."""

    def test_maps_synonyms_in_order(self, synonyms):
        """Each token maps through the table; order is preserved."""
        assert normalize_category("jazz, Food", synonyms) == "Music,Food & Drink"

    def test_repeated_labels_kept_once(self, synonyms):
        assert normalize_category("jazz, music, concert", synonyms) == "Music"

    def test_unknown_token_kept_as_written(self, synonyms):
        assert normalize_category("Comedy, jazz", synonyms) == "Comedy,Music"

    def test_list_input(self, synonyms):
        assert normalize_category(["Jazz", "Drink"], synonyms) == "Music,Food & Drink"

    @pytest.mark.parametrize("value", [None, "", " , ", []])
    def test_empty_defaults_to_general(self, synonyms, value):
        assert normalize_category(value, synonyms) == "General"

    def test_idempotent(self, synonyms):
        """Normalizing an already-normalized category changes nothing."""
        once = normalize_category("jazz, Food, Comedy", synonyms)
        assert normalize_category(once, synonyms) == once


class TestNormalizeCost:
    """Tests for normalize_cost."""

    def test_free_text(self):
        cost = normalize_cost("free")
        assert isinstance(cost, FreeCost)
        assert cost.type == "free"
        assert cost.amount == 0
        assert cost.currency == "USD"

    def test_free_inside_text(self):
        assert isinstance(normalize_cost("Free admission!"), FreeCost)

    def test_dollar_amount(self):
        cost = normalize_cost("$45")
        assert isinstance(cost, FixedCost)
        assert cost.type == "fixed"
        assert cost.amount == 45.0
        assert cost.currency == "USD"

    def test_dollar_amount_with_thousands(self):
        assert normalize_cost("Tickets from $1,250.50").amount == 1250.5

    def test_mapping_defaults(self):
        """A mapping without a type is a fixed cost in USD."""
        cost = normalize_cost({"amount": 10})
        assert isinstance(cost, FixedCost)
        assert cost.amount == 10
        assert cost.currency == "USD"

    def test_variable_mapping_keeps_text_amount(self):
        cost = normalize_cost({"type": "variable", "amount": "10-20"})
        assert isinstance(cost, VariableCost)
        assert cost.amount == "10-20"

    def test_unknown_type_is_dropped(self):
        assert normalize_cost({"type": "donation", "amount": 5}) is None

    @pytest.mark.parametrize("value", [{"amount": [1]}, {"currency": 5, "amount": 10}])
    def test_malformed_mapping_is_dropped(self, value):
        assert normalize_cost(value) is None

    @pytest.mark.parametrize("value", [None, "", "TBD", 45, True])
    def test_unusable_values(self, value):
        assert normalize_cost(value) is None


class TestNormalizeCoordinates:
    """Tests for normalize_coordinates."""

    def test_string_pair(self):
        assert normalize_coordinates("38.9, -77.0") == "38.9,-77.0"

    def test_list_pair(self):
        assert normalize_coordinates([38.9, -77.0]) == "38.9,-77.0"

    def test_mapping(self):
        assert normalize_coordinates({"latitude": 38.9, "longitude": -77.0}) == "38.9,-77.0"
        assert normalize_coordinates({"lat": 38.9, "lng": -77.0}) == "38.9,-77.0"

    @pytest.mark.parametrize("value", [None, "", "somewhere", [38.9], {"lat": 38.9}])
    def test_unusable_values(self, value):
        assert normalize_coordinates(value) is None

    @pytest.mark.parametrize(
        "value",
        [
            ["abc", "def"],
            [38.9, "west"],
            {"lat": "north", "lng": -77.0},
            {"latitude": True, "longitude": 1},
            "38.9, nowhere",
        ],
    )
    def test_non_numeric_parts(self, value):
        assert normalize_coordinates(value) is None

    def test_numeric_strings_in_list(self):
        assert normalize_coordinates([" 38.9", "-77.0 "]) == "38.9,-77.0"

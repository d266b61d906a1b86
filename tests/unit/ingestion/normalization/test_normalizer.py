"""
Unit tests for the EventNormalizer.

Tests for per-record outcomes, batch isolation, ordering and group
expansion.
"""

from unittest.mock import patch

import pytest

from touchgrass.ingestion.normalization import EventNormalizer, Normalized, Skip
from touchgrass.schemas.group import GroupItemKind


class TestNormalize:
    """Tests for normalizing a single record."""

    def test_returns_normalized(self, normalizer, raw_crawler_event):
        outcome = normalizer.normalize(raw_crawler_event(), "crawler", index=3)

        assert isinstance(outcome, Normalized)
        assert outcome.index == 3
        assert outcome.event.title == "Jazz Fest"
        assert outcome.event.category == "Music"
        assert outcome.event.id is None

    def test_missing_title_is_skipped(self, normalizer, raw_crawler_event):
        outcome = normalizer.normalize(raw_crawler_event(title="  "), "crawler", index=1)

        assert isinstance(outcome, Skip)
        assert outcome.index == 1
        assert outcome.reason == "missing title"

    def test_non_object_is_skipped(self, normalizer):
        outcome = normalizer.normalize("just a string", "crawler")

        assert isinstance(outcome, Skip)
        assert "not an object" in outcome.reason

    def test_transform_failure_is_skipped(self, normalizer):
        """A record the source transform chokes on does not raise."""
        raw = {"name": "Broken", "venue": "not a mapping"}
        outcome = normalizer.normalize(raw, "openwebninja")

        assert isinstance(outcome, Skip)
        assert outcome.reason.startswith("openwebninja transform failed")

    def test_model_validation_failure_is_skipped(self, normalizer):
        outcome = normalizer.normalize({"title": "Odd", "socials": "nope"}, "manual")

        assert isinstance(outcome, Skip)
        assert outcome.reason.startswith("invalid canonical event: socials")

    def test_non_list_ticket_links_is_skipped(self, normalizer):
        outcome = normalizer.normalize({"title": "Broken", "ticket_links": 5}, "manual", index=3)

        assert isinstance(outcome, Skip)
        assert outcome.index == 3
        assert outcome.reason.startswith("invalid canonical event: ticket_links")

    def test_unexpected_model_error_is_skipped(self, normalizer):
        with patch(
            "touchgrass.ingestion.normalization.normalizer.CanonicalEvent.model_validate",
            side_effect=TypeError("boom"),
        ):
            outcome = normalizer.normalize({"title": "Odd"}, "manual")

        assert isinstance(outcome, Skip)
        assert outcome.reason == "invalid canonical event: boom"

    def test_malformed_cost_keeps_record(self, normalizer, raw_crawler_event):
        outcome = normalizer.normalize(raw_crawler_event(cost={"amount": [1]}), "crawler")

        assert isinstance(outcome, Normalized)
        assert outcome.event.cost is None

    def test_batch_source_fills_missing_source(self, normalizer):
        outcome = normalizer.normalize({"title": "Seed Event"}, "manual")
        assert outcome.event.source == "manual"

    def test_camel_case_flag(self, normalizer, raw_crawler_event):
        outcome = normalizer.normalize(raw_crawler_event(isPublic="false"), "crawler")
        assert outcome.event.is_public is False

    def test_renormalizing_is_a_no_op(self, normalizer, raw_crawler_event):
        """Feeding a canonical event back in yields the same event."""
        first = normalizer.normalize(raw_crawler_event(), "crawler").event
        again = normalizer.normalize(first.model_dump(mode="json"), "manual").event

        assert again.model_dump() == first.model_dump()

    def test_skip_to_dict(self):
        skip = Skip(index=2, reason="missing title", raw={"x": 1})
        assert skip.to_dict() == {"index": 2, "reason": "missing title"}


class TestNormalizeBatch:
    """Tests for batch normalization."""

    def test_one_bad_record_does_not_fail_the_batch(self, normalizer, raw_crawler_event):
        raws = [raw_crawler_event(title=f"Event {i}") for i in range(10)]
        raws[4] = raw_crawler_event(title=None)

        report = normalizer.normalize_batch(raws, "crawler")

        assert report.normalized_count == 9
        assert report.skipped_count == 1
        assert report.skips[0].index == 4

    def test_non_iterable_field_does_not_fail_the_batch(self, normalizer):
        raws = [{"title": f"Event {i}"} for i in range(10)]
        raws[3] = {"title": "Broken", "ticket_links": 5}

        report = normalizer.normalize_batch(raws, "manual")

        assert report.normalized_count == 9
        assert [s.index for s in report.skips] == [3]

    def test_output_order_matches_input_with_workers(
        self, synonyms, source_aliases, raw_crawler_event
    ):
        normalizer = EventNormalizer(
            synonyms=synonyms, source_aliases=source_aliases, max_workers=4
        )
        raws = [raw_crawler_event(title=f"Event {i}") for i in range(40)]

        report = normalizer.normalize_batch(raws, "crawler")

        assert [e.title for e in report.events] == [f"Event {i}" for i in range(40)]

    def test_empty_batch(self, normalizer):
        report = normalizer.normalize_batch([], "crawler")
        assert report.normalized_count == 0
        assert report.skipped_count == 0


class TestNormalizeGroups:
    """Tests for group normalization."""

    @pytest.fixture
    def raw_group(self):
        return {
            "title": "Morning Run Club",
            "description": "Easy 5k",
            "category": "festival",
            "isPublic": "true",
            "schedules": [
                {
                    "days": ["Monday", "Wednesday"],
                    "time": "6:30 AM",
                    "location": "Lincoln Memorial",
                },
                {"days": "Saturday", "time": "8:00 AM", "location": "Hains Point"},
            ],
        }

    def test_expands_definition(self, normalizer, raw_group):
        items = normalizer.normalize_group(raw_group)

        assert [i.sk for i in items] == [
            "GROUP_INFO",
            "SCHEDULE#Monday_630AM_LincolnMemorial",
            "SCHEDULE#Wednesday_630AM_LincolnMemorial",
            "SCHEDULE#Saturday_800AM_HainsPoint",
        ]
        assert {i.pk for i in items} == {"GROUP#morning-run-club"}
        assert items[0].kind == GroupItemKind.INFO
        assert items[0].description == "Easy 5k"
        assert items[1].kind == GroupItemKind.SCHEDULE
        assert items[1].schedule_day == "Monday"
        assert items[1].schedule_location == "Lincoln Memorial"
        assert all(i.category == "Festival" for i in items)

    def test_same_slot_at_two_locations_stays_distinct(self, normalizer):
        raw = {
            "title": "Chess Club",
            "schedules": [
                {"days": ["Friday"], "time": "18:00", "location": "Library"},
                {"days": ["Friday"], "time": "18:00", "location": "Cafe"},
            ],
        }
        items = normalizer.normalize_group(raw)
        assert len({i.sk for i in items}) == 3

    def test_pre_keyed_item(self, normalizer):
        raw = {
            "pk": "GROUP#chess-club",
            "sk": "GROUP_INFO",
            "title": "Chess Club",
            "category": "jazz",
        }
        items = normalizer.normalize_group(raw)

        assert len(items) == 1
        assert items[0].pk == "GROUP#chess-club"
        assert items[0].category == "Music"

    def test_batch_skips_invalid_group(self, normalizer, raw_group):
        report = normalizer.normalize_groups([raw_group, {"schedules": []}])

        assert report.normalized_count == 4
        assert report.skipped_count == 1
        assert report.skips[0].index == 1
        assert report.skips[0].reason.startswith("invalid group: title")

    def test_unexpected_group_error_is_skipped(self, normalizer, raw_group):
        with patch(
            "touchgrass.ingestion.normalization.normalizer.GroupDefinition.model_validate",
            side_effect=TypeError("boom"),
        ):
            report = normalizer.normalize_groups([raw_group])

        assert report.normalized_count == 0
        assert report.skips[0].reason == "invalid group: boom"

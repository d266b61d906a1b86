"""
Unit tests for per-source transforms and dispatch.

Tests for SourceKind resolution, the transform registry and each source's
field mapping.
"""

import pytest

from touchgrass.ingestion.normalization.sources import (
    TRANSFORM_REGISTRY,
    RawRecord,
    SourceKind,
    transform_record,
)
from touchgrass.schemas.event import FixedCost, FreeCost


class TestSourceKindResolve:
    """Tests for SourceKind.resolve."""

    def test_kind_name_matches_case_insensitively(self):
        assert SourceKind.resolve("OpenWebNinja") == SourceKind.OPENWEBNINJA

    def test_alias(self, source_aliases):
        assert SourceKind.resolve("DCImprov", source_aliases) == SourceKind.CRAWLER

    def test_unknown_source_is_passthrough(self, source_aliases):
        assert SourceKind.resolve("mystery-site", source_aliases) == SourceKind.PASSTHROUGH

    def test_missing_source_is_passthrough(self):
        assert SourceKind.resolve(None) == SourceKind.PASSTHROUGH


class TestTransformRegistry:
    """Tests for register_transform and transform_record."""

    def test_every_kind_has_a_transform(self):
        assert set(TRANSFORM_REGISTRY) == set(SourceKind)

    def test_missing_transform_raises(self, monkeypatch, synonyms):
        monkeypatch.delitem(TRANSFORM_REGISTRY, SourceKind.EVENTBRITE)
        record = RawRecord(kind=SourceKind.EVENTBRITE, payload={"title": "x"})

        with pytest.raises(KeyError, match="eventbrite"):
            transform_record(record, synonyms)


class TestOpenWebNinjaTransform:
    """Tests for the events API shape."""

    @pytest.fixture
    def raw(self):
        return {
            "event_id": "L2F1dGhvcml0eS9ob3Jpem9u",
            "name": "Jazz Night",
            "description": "Live quartet",
            "start_time": "2024-06-15 19:00",
            "end_time": "2024-06-15 22:00",
            "is_virtual": False,
            "link": "https://example.com/jazz-night",
            "thumbnail": "https://example.com/jazz.jpg",
            "publisher": "example.com",
            "ticket_links": [
                {"source": "Tix", "link": "https://tix.example.com/1"},
                "not-a-mapping",
            ],
            "venue": {
                "name": "Blues Alley",
                "address": "1073 Wisconsin Ave NW, Washington, DC",
                "coordinates": {"latitude": 38.9046, "longitude": -77.0618},
            },
            "category": "jazz",
        }

    def test_maps_fields(self, raw, synonyms):
        fields = transform_record(RawRecord(SourceKind.OPENWEBNINJA, raw), synonyms)

        assert fields["title"] == "Jazz Night"
        assert fields["start_date"] == "2024-06-15"
        assert fields["start_time"] == "19:00"
        assert fields["end_date"] == "2024-06-15"
        assert fields["end_time"] == "22:00"
        assert fields["venue"] == "Blues Alley"
        assert fields["location"] == "1073 Wisconsin Ave NW, Washington, DC"
        assert fields["coordinates"] == "38.9046,-77.0618"
        assert fields["category"] == "Music"
        assert fields["image_url"] == "https://example.com/jazz.jpg"
        assert fields["socials"] == {"website": "https://example.com/jazz-night"}
        assert fields["ticket_links"] == ["https://tix.example.com/1"]
        assert fields["external_id"] == "L2F1dGhvcml0eS9ob3Jpem9u"
        assert fields["source"] == "openwebninja"

    def test_missing_venue(self, raw, synonyms):
        del raw["venue"]
        fields = transform_record(RawRecord(SourceKind.OPENWEBNINJA, raw), synonyms)
        assert fields["venue"] is None
        assert fields["location"] is None


class TestCrawlerTransform:
    """Tests for generic crawler output."""

    def test_maps_fields(self, raw_crawler_event, synonyms):
        fields = transform_record(RawRecord(SourceKind.CRAWLER, raw_crawler_event()), synonyms)

        assert fields["start_date"] == "2024-06-15"
        assert fields["start_time"] == "19:00"
        assert fields["category"] == "Music"
        assert isinstance(fields["cost"], FixedCost)
        assert fields["cost"].amount == 45.0
        assert fields["socials"] == {"website": "https://example.com/jazz-fest"}

    def test_free_text_date_and_camel_case_flag(self, raw_crawler_event, synonyms):
        raw = raw_crawler_event(start_date="Saturday, June 15, 2024", isPublic="false")
        fields = transform_record(RawRecord(SourceKind.CRAWLER, raw), synonyms)

        assert fields["start_date"] == "2024-06-15"
        assert fields["is_public"] == "false"


class TestListingTransforms:
    """Tests for sources that publish a single time range and a price."""

    def test_clockoutdc_time_range_and_free_price(self, synonyms):
        raw = {
            "title": "Happy Hour",
            "date": "2024-06-15",
            "time": "5-7pm",
            "price": "Free",
            "category": "drink",
        }
        fields = transform_record(RawRecord(SourceKind.CLOCKOUTDC, raw), synonyms)

        assert fields["start_time"] == "17:00"
        assert fields["end_time"] == "19:00"
        assert isinstance(fields["cost"], FreeCost)
        assert fields["category"] == "Food & Drink"

    def test_eventbrite_sunset(self, synonyms):
        raw = {"title": "Rooftop Yoga", "start_date": "2024-06-15", "time": "sunset"}
        fields = transform_record(RawRecord(SourceKind.EVENTBRITE, raw), synonyms)

        assert fields["start_time"] == "sunset"
        assert fields["end_time"] is None
        assert fields["category"] == "General"

    def test_washingtonian(self, synonyms):
        raw = {
            "title": "Folk Festival",
            "date": "June 15, 2024",
            "time": "11 AM",
            "venue": "National Mall",
            "category": "festival",
        }
        fields = transform_record(RawRecord(SourceKind.WASHINGTONIAN, raw), synonyms)

        assert fields["start_date"] == "2024-06-15"
        assert fields["start_time"] == "11:00"
        assert fields["location"] == "National Mall"
        assert fields["category"] == "Festival"


class TestPassthroughTransform:
    """Tests for already-canonical input."""

    def test_drops_identity_and_timestamps(self, synonyms):
        raw = {
            "id": "EVENT-OLD-id",
            "created_at": 1,
            "updated_at": 2,
            "title": "Seed Event",
            "date": "June 15, 2024",
            "category": "food",
        }
        fields = transform_record(RawRecord(SourceKind.PASSTHROUGH, raw), synonyms)

        assert "id" not in fields
        assert "created_at" not in fields
        assert "updated_at" not in fields
        assert fields["start_date"] == "2024-06-15"
        assert fields["category"] == "Food & Drink"

    def test_keeps_other_fields(self, synonyms):
        raw = {"title": "Seed Event", "organizer_id": "org-1", "url": "https://x.example"}
        fields = transform_record(RawRecord(SourceKind.PASSTHROUGH, raw), synonyms)

        assert fields["organizer_id"] == "org-1"
        assert fields["url"] == "https://x.example"

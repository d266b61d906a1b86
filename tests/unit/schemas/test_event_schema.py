"""
Unit tests for the schema modules.

Tests for schema components:
- Cost variants and the discriminated union
- CanonicalEvent validation and defaults
- Group definitions and stored group items
"""

import pytest
from pydantic import ValidationError

from touchgrass.schemas.event import (
    COST_VARIANTS,
    CanonicalEvent,
    CostType,
    FixedCost,
    FreeCost,
    VariableCost,
    coerce_flag,
)
from touchgrass.schemas.group import (
    GroupDefinition,
    GroupItem,
    GroupItemKind,
    ScheduleEntry,
)


class TestCoerceFlag:
    """Tests for coerce_flag helper."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, True),
            ("true", True),
            ("False", False),
            ("0", False),
            ("yes", True),
            (False, False),
        ],
    )
    def test_coerce_flag(self, value, expected):
        assert coerce_flag(value, default=True) is expected


class TestCost:
    """Tests for the cost variants."""

    def test_variants_registered(self):
        assert set(COST_VARIANTS) == {t.value for t in CostType}

    def test_discriminator_selects_variant(self):
        event = CanonicalEvent(title="Gala", cost={"type": "variable", "amount": 20})
        assert isinstance(event.cost, VariableCost)

    def test_defaults(self):
        cost = FreeCost()
        assert (cost.type, cost.currency, cost.amount) == ("free", "USD", 0)

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            CanonicalEvent(title="Gala", cost={"type": "donation", "amount": 5})

    def test_frozen(self):
        cost = FixedCost(amount=10)
        with pytest.raises(ValidationError):
            cost.amount = 20


class TestCanonicalEvent:
    """Tests for CanonicalEvent validation."""

    def test_minimal(self):
        event = CanonicalEvent(title="  Jazz Fest  ")

        assert event.title == "Jazz Fest"
        assert event.category == "General"
        assert event.is_public is True
        assert event.id is None
        assert event.created_at is None
        assert event.socials == {}

    @pytest.mark.parametrize("title", [None, "", "   ", 42])
    def test_title_required(self, title):
        with pytest.raises(ValidationError):
            CanonicalEvent(title=title)

    def test_category_list_is_joined(self):
        event = CanonicalEvent(title="Gala", category=["Music", " Festival "])
        assert event.category == "Music,Festival"
        assert event.categories == ["Music", "Festival"]

    def test_empty_category_defaults(self):
        assert CanonicalEvent(title="Gala", category="  ").category == "General"

    def test_is_public_aliases_and_strings(self):
        assert CanonicalEvent(title="Gala", isPublic="false").is_public is False
        assert CanonicalEvent(title="Gala", is_public=None).is_public is True

    def test_socials_drop_empty_values(self):
        event = CanonicalEvent(title="Gala", socials={"website": "https://x", "instagram": ""})
        assert event.socials == {"website": "https://x"}

    def test_extra_fields_ignored(self):
        event = CanonicalEvent(title="Gala", pk="EVENT-X", title_prefix="gal")
        assert not hasattr(event, "pk")


class TestGroupSchemas:
    """Tests for group models."""

    def test_schedule_single_day(self):
        assert ScheduleEntry(days="Monday", time="9 AM").days == ["Monday"]

    def test_definition_requires_title(self):
        with pytest.raises(ValidationError):
            GroupDefinition(title=" ")

    def test_definition_camel_case_flag(self):
        assert GroupDefinition(title="Run Club", isPublic="false").is_public is False

    def test_item_kind(self):
        info = GroupItem(pk="GROUP#run-club", sk="GROUP_INFO", title="Run Club")
        slot = GroupItem(
            pk="GROUP#run-club",
            sk="SCHEDULE#Monday_630AM_Park",
            title="Run Club",
            scheduleDay="Monday",
        )

        assert info.kind == GroupItemKind.INFO
        assert slot.kind == GroupItemKind.SCHEDULE
        assert slot.schedule_day == "Monday"

# touchgrass/schemas/event.py
"""
Canonical Event Schema for the TouchGrass ingestion core.

This schema normalizes events from heterogeneous sources (the OpenWebNinja
events API, site crawlers, manual seed files) into a unified data model.

The canonical event is what gets stored and what the search index projects;
no component downstream of the normalizer interprets source-specific shapes.
"""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)

DEFAULT_CATEGORY = "General"
DEFAULT_CURRENCY = "USD"


def coerce_flag(value: Any, default: bool) -> Any:
    """Map None to the default and 'true'/'false' strings to booleans."""
    if value is None:
        return default
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes"):
            return True
        if lowered in ("false", "0", "no"):
            return False
    return value


# ============================================================================
# COST: tagged variant
# ============================================================================


class CostType(str, Enum):
    """Discriminator values for the cost variant."""

    FREE = "free"
    FIXED = "fixed"
    VARIABLE = "variable"


class _CostBase(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    currency: str = DEFAULT_CURRENCY
    # Structured source input is kept as given; the index coerces it to a number
    amount: Union[float, str] = 0


class FreeCost(_CostBase):
    """Free admission."""

    type: Literal["free"] = "free"


class FixedCost(_CostBase):
    """A single known price."""

    type: Literal["fixed"] = "fixed"


class VariableCost(_CostBase):
    """A price that varies (tiers, donation, sliding scale)."""

    type: Literal["variable"] = "variable"


Cost = Annotated[Union[FreeCost, FixedCost, VariableCost], Field(discriminator="type")]

COST_VARIANTS: Dict[str, type] = {
    CostType.FREE.value: FreeCost,
    CostType.FIXED.value: FixedCost,
    CostType.VARIABLE.value: VariableCost,
}


# ============================================================================
# CANONICAL EVENT
# ============================================================================


class CanonicalEvent(BaseModel):
    """
    The normalized representation used for storage and indexing.

    `id` stays empty until the identity generator assigns the deterministic
    key; `created_at`/`updated_at` stay empty until the record is first stored.
    """

    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        json_schema_extra={
            "example": {
                "title": "Jazz Fest",
                "start_date": "2024-06-15",
                "start_time": "19:00",
                "venue": "The Wharf",
                "category": "Music,Festival",
                "cost": {"type": "fixed", "currency": "USD", "amount": 45},
                "source": "crawler",
            }
        },
    )

    id: Optional[str] = None
    title: str

    description: Optional[str] = None
    location: Optional[str] = None
    venue: Optional[str] = None
    coordinates: Optional[str] = Field(
        default=None, description="Canonical 'lat,lng' string"
    )

    start_date: Optional[str] = Field(default=None, description="YYYY-MM-DD")
    end_date: Optional[str] = Field(default=None, description="YYYY-MM-DD")
    start_time: Optional[str] = Field(default=None, description="HH:MM when parseable")
    end_time: Optional[str] = Field(default=None, description="HH:MM when parseable")

    category: str = Field(
        default=DEFAULT_CATEGORY,
        description="Comma-joined ordered set of canonical category labels",
    )
    cost: Optional[Cost] = None

    image_url: Optional[str] = None
    url: Optional[str] = None
    socials: Dict[str, str] = Field(default_factory=dict)

    source: Optional[str] = None
    external_id: Optional[str] = None
    organizer_id: Optional[str] = None
    publisher: Optional[str] = None
    ticket_links: List[str] = Field(default_factory=list)

    is_public: bool = Field(
        default=True, validation_alias=AliasChoices("is_public", "isPublic")
    )
    is_virtual: Optional[bool] = None
    confidence: Optional[float] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("title", mode="before")
    @classmethod
    def require_title(cls, v: Any) -> str:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("title is required and must be a non-empty string")
        return v.strip()

    @field_validator("category", mode="before")
    @classmethod
    def default_category(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_CATEGORY
        if isinstance(v, (list, tuple)):
            joined = ",".join(str(c).strip() for c in v if str(c).strip())
            return joined or DEFAULT_CATEGORY
        return v

    @field_validator("is_public", mode="before")
    @classmethod
    def coerce_is_public(cls, v: Any) -> Any:
        return coerce_flag(v, default=True)

    @field_validator("is_virtual", mode="before")
    @classmethod
    def coerce_is_virtual(cls, v: Any) -> Any:
        return None if v is None else coerce_flag(v, default=False)

    @field_validator("socials", mode="before")
    @classmethod
    def clean_socials(cls, v: Any) -> Any:
        if not v:
            return {}
        if isinstance(v, dict):
            return {str(k): str(val) for k, val in v.items() if val}
        return v

    @field_validator("ticket_links", mode="before")
    @classmethod
    def clean_ticket_links(cls, v: Any) -> Any:
        if not v:
            return []
        if isinstance(v, str):
            return [v]
        if not isinstance(v, (list, tuple)):
            raise ValueError(f"ticket_links must be a list, got {type(v).__name__}")
        return [str(link) for link in v if link]

    @property
    def categories(self) -> List[str]:
        """Category labels as discrete tokens, in stored order."""
        return [c.strip() for c in self.category.split(",") if c.strip()]

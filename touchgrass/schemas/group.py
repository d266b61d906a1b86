# touchgrass/schemas/group.py
"""
Group schema: recurring-meeting groups.

A group is stored as one GROUP_INFO item plus one SCHEDULE item per
(day, time, location) entry, all sharing the group's partition key.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from touchgrass.schemas.event import DEFAULT_CATEGORY, coerce_flag


class GroupItemKind(str, Enum):
    """Kind of stored group item, derived from its sort key."""

    INFO = "GROUP_INFO"
    SCHEDULE = "SCHEDULE"


class ScheduleEntry(BaseModel):
    """One recurring slot of a group definition."""

    model_config = ConfigDict(extra="ignore")

    days: List[str] = Field(default_factory=list)
    time: str = ""
    location: Optional[str] = None

    @field_validator("days", mode="before")
    @classmethod
    def wrap_single_day(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return v


class GroupDefinition(BaseModel):
    """A group as seed files and crawlers describe it, before key expansion."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: str
    description: str = ""
    category: Any = None
    image_url: Optional[str] = None
    socials: Dict[str, str] = Field(default_factory=dict)
    is_public: bool = Field(
        default=True, validation_alias=AliasChoices("is_public", "isPublic")
    )
    schedules: List[ScheduleEntry] = Field(default_factory=list)

    @field_validator("title", mode="before")
    @classmethod
    def require_title(cls, v: Any) -> str:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("title is required and must be a non-empty string")
        return v.strip()

    @field_validator("is_public", mode="before")
    @classmethod
    def coerce_is_public(cls, v: Any) -> Any:
        return coerce_flag(v, default=True)


class GroupItem(BaseModel):
    """A single stored group item (GROUP_INFO or SCHEDULE#...)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    pk: str
    sk: str
    title: str
    description: str = ""
    category: str = DEFAULT_CATEGORY
    image_url: Optional[str] = None
    socials: Dict[str, str] = Field(default_factory=dict)
    is_public: bool = Field(
        default=True, validation_alias=AliasChoices("is_public", "isPublic")
    )

    schedule_day: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("schedule_day", "scheduleDay")
    )
    schedule_time: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("schedule_time", "scheduleTime")
    )
    schedule_location: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("schedule_location", "scheduleLocation"),
    )

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("title", mode="before")
    @classmethod
    def require_title(cls, v: Any) -> str:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("title is required and must be a non-empty string")
        return v.strip()

    @field_validator("is_public", mode="before")
    @classmethod
    def coerce_is_public(cls, v: Any) -> Any:
        return coerce_flag(v, default=True)

    @field_validator("socials", mode="before")
    @classmethod
    def clean_socials(cls, v: Any) -> Any:
        if not v:
            return {}
        return v

    @property
    def kind(self) -> GroupItemKind:
        if self.sk == GroupItemKind.INFO.value:
            return GroupItemKind.INFO
        return GroupItemKind.SCHEDULE

"""
Per-source field mapping.

Each source kind has exactly one transform, registered with
@register_transform. A transform receives the raw payload plus the category
synonym table and returns a dict of CanonicalEvent fields; validation into
the model happens in the normalizer.

Adding a source means adding a SourceKind member and one registered
transform; transform_record refuses kinds that have no transform.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from touchgrass.ingestion.normalization.values import (
    normalize_category,
    normalize_coordinates,
    normalize_cost,
    normalize_date,
    normalize_time,
    split_time_range,
)


class SourceKind(str, Enum):
    """Closed set of raw-record shapes the normalizer understands."""

    OPENWEBNINJA = "openwebninja"
    WASHINGTONIAN = "washingtonian"
    CRAWLER = "crawler"
    CLOCKOUTDC = "clockoutdc"
    EVENTBRITE = "eventbrite"
    PASSTHROUGH = "passthrough"

    @classmethod
    def resolve(
        cls, source: str | None, aliases: Mapping[str, str] | None = None
    ) -> "SourceKind":
        """
        Map a batch source tag to a kind.

        The tag is matched case-insensitively against the kinds, then against
        the configured aliases. Anything else is treated as already canonical.
        """
        tag = (source or "").strip().lower()
        aliases = aliases or {}
        for candidate in (tag, aliases.get(tag, "")):
            try:
                return cls(candidate)
            except ValueError:
                continue
        return cls.PASSTHROUGH


@dataclass(frozen=True)
class RawRecord:
    """A raw payload tagged with the kind that knows how to read it."""

    kind: SourceKind
    payload: Mapping[str, Any]


Transform = Callable[[Mapping[str, Any], Mapping[str, str]], dict[str, Any]]
TRANSFORM_REGISTRY: dict[SourceKind, Transform] = {}


def register_transform(kind: SourceKind):
    """
    Decorator to register the transform for a source kind.

    Usage:
        @register_transform(SourceKind.CRAWLER)
        def transform_crawler(raw, synonyms) -> dict:
            ...
    """

    def decorator(func: Transform) -> Transform:
        TRANSFORM_REGISTRY[kind] = func
        return func

    return decorator


def transform_record(record: RawRecord, synonyms: Mapping[str, str]) -> dict[str, Any]:
    """Dispatch a raw record to its registered transform."""
    transform = TRANSFORM_REGISTRY.get(record.kind)
    if transform is None:
        raise KeyError(f"No transform registered for source kind '{record.kind.value}'")
    return transform(record.payload, synonyms)


def _website(url: Any) -> dict[str, str]:
    return {"website": url} if url else {}


def _split_datetime(value: Any) -> tuple[Any, Any]:
    """Split "YYYY-MM-DD HH:MM" into its date and time parts."""
    if not isinstance(value, str) or not value.strip():
        return None, None
    parts = value.strip().split(" ", 1)
    return parts[0], (parts[1] if len(parts) > 1 else None)


# ============================================================================
# TRANSFORMS
# ============================================================================


@register_transform(SourceKind.OPENWEBNINJA)
def transform_openwebninja(
    raw: Mapping[str, Any], synonyms: Mapping[str, str]
) -> dict[str, Any]:
    """Events API shape: name, start_time "YYYY-MM-DD HH:MM", nested venue."""
    start_date, start_time = _split_datetime(raw.get("start_time"))
    end_date, end_time = _split_datetime(raw.get("end_time"))
    venue = raw.get("venue") or {}

    return {
        "title": raw.get("name"),
        "description": raw.get("description"),
        "start_date": normalize_date(start_date),
        "end_date": normalize_date(end_date),
        "start_time": normalize_time(start_time),
        "end_time": normalize_time(end_time),
        "location": venue.get("address") or venue.get("name"),
        "venue": venue.get("name"),
        "coordinates": normalize_coordinates(venue.get("coordinates")),
        "category": normalize_category(raw.get("category"), synonyms),
        "is_virtual": raw.get("is_virtual"),
        "url": raw.get("link"),
        "socials": _website(raw.get("link")),
        "image_url": raw.get("thumbnail"),
        "publisher": raw.get("publisher"),
        "ticket_links": [
            link.get("link")
            for link in raw.get("ticket_links") or []
            if isinstance(link, Mapping)
        ],
        "external_id": raw.get("event_id"),
        "source": SourceKind.OPENWEBNINJA.value,
        "is_public": True,
    }


@register_transform(SourceKind.WASHINGTONIAN)
def transform_washingtonian(
    raw: Mapping[str, Any], synonyms: Mapping[str, str]
) -> dict[str, Any]:
    return {
        "title": raw.get("title"),
        "description": raw.get("description"),
        "start_date": normalize_date(raw.get("date")),
        "start_time": normalize_time(raw.get("time")),
        "location": raw.get("location") or raw.get("venue"),
        "venue": raw.get("venue"),
        "category": normalize_category(raw.get("category"), synonyms),
        "url": raw.get("url"),
        "socials": _website(raw.get("url")),
        "image_url": raw.get("image_url"),
        "source": SourceKind.WASHINGTONIAN.value,
        "is_public": True,
    }


@register_transform(SourceKind.CRAWLER)
def transform_crawler(
    raw: Mapping[str, Any], synonyms: Mapping[str, str]
) -> dict[str, Any]:
    """Generic crawler output: nearly canonical, dates may be free text."""
    return {
        "title": raw.get("title"),
        "description": raw.get("description"),
        "start_date": normalize_date(raw.get("start_date") or raw.get("date")),
        "end_date": normalize_date(raw.get("end_date")),
        "start_time": normalize_time(raw.get("start_time")),
        "end_time": normalize_time(raw.get("end_time")),
        "location": raw.get("location"),
        "venue": raw.get("venue"),
        "category": normalize_category(raw.get("category"), synonyms),
        "image_url": raw.get("image_url"),
        "url": raw.get("url"),
        "cost": normalize_cost(raw.get("cost")),
        "socials": raw.get("socials") or _website(raw.get("url")),
        "confidence": raw.get("confidence"),
        "is_public": raw.get("is_public", raw.get("isPublic")),
        "source": SourceKind.CRAWLER.value,
    }


@register_transform(SourceKind.CLOCKOUTDC)
def transform_clockoutdc(
    raw: Mapping[str, Any], synonyms: Mapping[str, str]
) -> dict[str, Any]:
    """Listing shape with a single "time" range like "10am-2pm" and a price."""
    start_time, end_time = split_time_range(raw.get("time"))
    return {
        "title": raw.get("title"),
        "description": raw.get("description"),
        "start_date": normalize_date(raw.get("date")),
        "start_time": start_time,
        "end_time": end_time,
        "location": raw.get("location"),
        "venue": raw.get("venue"),
        "category": normalize_category(raw.get("category"), synonyms),
        "url": raw.get("url"),
        "cost": normalize_cost(raw.get("price")),
        "socials": _website(raw.get("url")),
        "source": SourceKind.CLOCKOUTDC.value,
        "is_public": True,
    }


@register_transform(SourceKind.EVENTBRITE)
def transform_eventbrite(
    raw: Mapping[str, Any], synonyms: Mapping[str, str]
) -> dict[str, Any]:
    start_time, end_time = split_time_range(raw.get("time"))
    return {
        "title": raw.get("title"),
        "description": raw.get("description"),
        "start_date": normalize_date(raw.get("start_date") or raw.get("date")),
        "end_date": normalize_date(raw.get("end_date")),
        "start_time": start_time,
        "end_time": end_time,
        "location": raw.get("location"),
        "venue": raw.get("venue"),
        "category": normalize_category(raw.get("category"), synonyms),
        "url": raw.get("url"),
        "cost": normalize_cost(raw.get("price")),
        "image_url": raw.get("image_url"),
        "socials": _website(raw.get("url")),
        "source": SourceKind.EVENTBRITE.value,
        "is_public": True,
    }


@register_transform(SourceKind.PASSTHROUGH)
def transform_passthrough(
    raw: Mapping[str, Any], synonyms: Mapping[str, str]
) -> dict[str, Any]:
    """
    Already-canonical input (manual and seed files).

    Fields are kept as given, but the value normalizers still run so that
    dates, category and cost satisfy the canonical invariants.
    """
    fields = dict(raw)
    # Identity and timestamps are assigned downstream
    for key in ("id", "created_at", "updated_at"):
        fields.pop(key, None)
    fields["start_date"] = normalize_date(raw.get("start_date") or raw.get("date"))
    fields["end_date"] = normalize_date(raw.get("end_date"))
    fields["start_time"] = normalize_time(raw.get("start_time"))
    fields["end_time"] = normalize_time(raw.get("end_time"))
    fields["category"] = normalize_category(raw.get("category"), synonyms)
    fields["cost"] = normalize_cost(raw.get("cost"))
    fields["coordinates"] = normalize_coordinates(raw.get("coordinates"))
    return fields

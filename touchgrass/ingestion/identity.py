"""
Deterministic identity for canonical records.

Keys are pure functions of record content: the same (source, title,
start_date) always yields the same event id, so re-ingesting a listing
lands on the record created the first time.

Undated events that share a source and title collapse onto one id. That is
an accepted limitation of content-derived keys.
"""

from __future__ import annotations

import re

from touchgrass.schemas.event import CanonicalEvent

EVENT_KEY_PREFIX = "EVENT-"
GROUP_KEY_PREFIX = "GROUP#"
GROUP_INFO_SK = "GROUP_INFO"
SCHEDULE_SK_PREFIX = "SCHEDULE#"

UNTITLED_SLUG = "untitled-event"

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_NON_ALNUM_ANY_CASE_RE = re.compile(r"[^A-Za-z0-9]")
_TIME_SEPARATORS_RE = re.compile(r"[:\s]")


def slugify(text: str | None) -> str:
    """Lowercase, collapse non-alphanumeric runs to "-", trim hyphens."""
    if not text:
        return ""
    return _NON_ALNUM_RE.sub("-", text.lower()).strip("-")


def identity_for(event: CanonicalEvent, source: str | None = None) -> str:
    """
    Compute the deterministic id of an event.

    Format: EVENT-[SOURCE-]<title-slug>[-YYYY-MM-DD]

    Args:
        event: Canonical event (only title, source and start_date are read)
        source: Batch source tag; falls back to event.source

    Returns:
        The id string, stable across calls and processes
    """
    parts = [EVENT_KEY_PREFIX.rstrip("-")]

    tag = (source or event.source or "").strip()
    if tag:
        parts.append(tag.upper())

    parts.append(slugify(event.title) or UNTITLED_SLUG)

    if event.start_date:
        parts.append(event.start_date)

    return "-".join(parts)


def group_partition_key(title: str) -> str:
    """Partition key shared by every item of one group."""
    return f"{GROUP_KEY_PREFIX}{slugify(title) or UNTITLED_SLUG}"


def schedule_sort_key(day: str, time: str | None, location: str | None) -> str:
    """
    Sort key of one schedule entry.

    Time loses ":" and whitespace, location keeps alphanumerics only, so
    the same day/time at two locations stays two distinct items.
    """
    time_part = _TIME_SEPARATORS_RE.sub("", time or "")
    location_part = _NON_ALNUM_ANY_CASE_RE.sub("", location or "")
    return f"{SCHEDULE_SK_PREFIX}{day}_{time_part}_{location_part}"

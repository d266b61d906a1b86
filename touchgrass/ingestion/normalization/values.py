"""
Value normalizers.

Pure functions that coerce loosely-typed source values into the canonical
representations used by CanonicalEvent. None of them raise on bad input:
dates and coordinates fall back to None, times fall back to the original
input, categories fall back to "General".
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from datetime import date, datetime, timezone
from typing import Any

from pydantic import ValidationError

from touchgrass.schemas.event import (
    COST_VARIANTS,
    DEFAULT_CATEGORY,
    DEFAULT_CURRENCY,
    FixedCost,
    FreeCost,
    VariableCost,
)

logger = logging.getLogger(__name__)

CostValue = FreeCost | FixedCost | VariableCost

# Reference day used to anchor bare time strings before parsing
TIME_REFERENCE_DATE = "2000-01-01"

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_EMBEDDED_ISO_DATE_RE = re.compile(r"(\d{4}-\d{2}-\d{2})")
_MONTH_DAY_YEAR_RE = re.compile(
    r"\b(January|February|March|April|May|June|July|August|September|October|"
    r"November|December|Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sept|Sep|Oct|Nov|Dec)\.?"
    r"\s+(\d{1,2})(?:st|nd|rd|th)?,?\s+(\d{4})\b",
    re.IGNORECASE,
)
_MONTHS = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}
_DATE_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%m/%d/%y",
    "%d %B %Y",
    "%d %b %Y",
)

_HH_MM_RE = re.compile(r"^(\d{1,2}):(\d{2})$")
_AM_PM_RE = re.compile(r"^(\d{1,2})(?::(\d{2}))?\s*([ap])\.?\s*m\.?$", re.IGNORECASE)
_TIME_RANGE_RE = re.compile(
    r"^(\d{1,2}(?::\d{2})?)\s*([ap]m)?\s*-\s*(\d{1,2}(?::\d{2})?)\s*([ap]m)$"
)
_DOLLAR_AMOUNT_RE = re.compile(r"\$\s*(\d+(?:,\d{3})*(?:\.\d+)?)")


# ============================================================================
# DATES
# ============================================================================


def normalize_date(value: Any) -> str | None:
    """
    Normalize a date-like value to YYYY-MM-DD.

    Accepts ISO strings with a time part, plain YYYY-MM-DD, datetime/date
    objects, epoch milliseconds and free text such as
    "January 15, 2024 at 7:00 PM". The calendar date is kept as written:
    no timezone conversion is applied.

    Returns:
        "YYYY-MM-DD", or None if the value cannot be parsed
    """
    if value is None or value == "" or isinstance(value, bool):
        return None

    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc).date().isoformat()
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None

    if "T" in text:
        parsed = _parse_iso_datetime(text)
        if parsed:
            return parsed.date().isoformat()

    if _ISO_DATE_RE.match(text):
        try:
            return date.fromisoformat(text).isoformat()
        except ValueError:
            return None

    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue

    return _parse_free_text_date(text)


def _parse_iso_datetime(text: str) -> datetime | None:
    clean = text
    if clean.endswith("Z"):
        clean = clean[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(clean)
    except ValueError:
        return None


def _parse_free_text_date(text: str) -> str | None:
    """Find a month-name date or an embedded ISO date inside free text."""
    match = _MONTH_DAY_YEAR_RE.search(text)
    if match:
        month = _MONTHS[match.group(1)[:3].lower()]
        try:
            return date(int(match.group(3)), month, int(match.group(2))).isoformat()
        except ValueError:
            return None

    match = _EMBEDDED_ISO_DATE_RE.search(text)
    if match:
        try:
            return date.fromisoformat(match.group(1)).isoformat()
        except ValueError:
            return None

    return None


# ============================================================================
# TIMES
# ============================================================================


def normalize_time(value: Any) -> Any:
    """
    Normalize a time-of-day value to 24-hour HH:MM.

    Accepts "HH:MM", "HH:MM AM/PM", "7pm" and anything datetime.fromisoformat
    understands once anchored to a reference date ("19:00:00", "19:00:00Z").

    Unlike normalize_date, a value that cannot be parsed is returned
    unchanged rather than dropped.

    Returns:
        "HH:MM", the original input, or None for empty input
    """
    if value is None:
        return None
    if not isinstance(value, str):
        return value

    text = value.strip()
    if not text:
        return None

    match = _HH_MM_RE.match(text)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        if hour < 24 and minute < 60:
            return f"{hour:02d}:{minute:02d}"
        return value

    match = _AM_PM_RE.match(text)
    if match:
        hour = int(match.group(1))
        minute = int(match.group(2) or 0)
        if not 1 <= hour <= 12 or minute >= 60:
            return value
        period = match.group(3).lower()
        if period == "p" and hour != 12:
            hour += 12
        if period == "a" and hour == 12:
            hour = 0
        return f"{hour:02d}:{minute:02d}"

    anchored = _parse_iso_datetime(f"{TIME_REFERENCE_DATE}T{text}")
    if anchored:
        return anchored.strftime("%H:%M")

    return value


def split_time_range(value: Any) -> tuple[Any, Any]:
    """
    Split a listing's time text into (start_time, end_time).

    Handles "10am-2pm", "7-11pm" (the end period applies to the start),
    "7:30 PM - 9:30 PM", single times and the keyword "sunset".
    """
    if not isinstance(value, str) or not value.strip():
        return None, None

    text = value.strip().lower()
    if "sunset" in text:
        return "sunset", None

    if "-" not in text:
        return normalize_time(value), None

    match = _TIME_RANGE_RE.match(text)
    if match:
        start, start_period, end, end_period = match.groups()
        return (
            normalize_time(start + (start_period or end_period or "")),
            normalize_time(end + end_period),
        )

    parts = text.split("-")
    if len(parts) == 2:
        return normalize_time(parts[0].strip()), normalize_time(parts[1].strip())
    return value, None


# ============================================================================
# CATEGORIES
# ============================================================================


def normalize_category(value: Any, synonyms: Mapping[str, str]) -> str:
    """
    Map raw category text onto canonical labels.

    Tokens are split on commas, looked up lowercase and trimmed in the
    synonym table, and rejoined in their original order. Unknown tokens are
    kept as written; repeated labels are kept once.

    Args:
        value: Comma-separated string or list of strings
        synonyms: Lowercase token -> canonical label

    Returns:
        Comma-joined labels, "General" when nothing usable is present
    """
    if not value:
        return DEFAULT_CATEGORY

    items = value if isinstance(value, (list, tuple)) else [value]
    labels: list[str] = []
    for item in items:
        if item is None:
            continue
        for token in str(item).split(","):
            token = token.strip()
            if not token:
                continue
            label = synonyms.get(token.lower(), token)
            if label not in labels:
                labels.append(label)

    return ",".join(labels) if labels else DEFAULT_CATEGORY


# ============================================================================
# COST
# ============================================================================


def normalize_cost(value: Any) -> CostValue | None:
    """
    Coerce raw cost data into one of the cost variants.

    - strings mentioning "free" -> FreeCost
    - strings with a $-prefixed number -> FixedCost in USD
    - mappings -> passed through with type "fixed", currency "USD" and
      amount 0 filled in when missing
    - anything else (including an unknown "type") -> None
    """
    if value is None or value == "" or isinstance(value, bool):
        return None

    if isinstance(value, (FreeCost, FixedCost, VariableCost)):
        return value

    if isinstance(value, str):
        text = value.lower()
        if "free" in text:
            return FreeCost()
        match = _DOLLAR_AMOUNT_RE.search(text)
        if match:
            return FixedCost(
                currency=DEFAULT_CURRENCY,
                amount=float(match.group(1).replace(",", "")),
            )
        return None

    if isinstance(value, Mapping):
        cost_type = str(value.get("type") or "fixed").strip().lower()
        variant = COST_VARIANTS.get(cost_type)
        if variant is None:
            logger.debug(f"Dropping cost with unknown type '{cost_type}'")
            return None
        try:
            return variant(
                currency=value.get("currency") or DEFAULT_CURRENCY,
                amount=value.get("amount") or 0,
            )
        except ValidationError as e:
            logger.debug(f"Dropping malformed {cost_type} cost: {e.error_count()} errors")
            return None

    return None


# ============================================================================
# COORDINATES
# ============================================================================


def normalize_coordinates(value: Any) -> str | None:
    """
    Normalize coordinates to a "lat,lng" string.

    Accepts "lat,lng" strings, [lat, lng] pairs and mappings with
    latitude/longitude (or lat/lng) keys.
    """
    if value is None or value == "":
        return None

    if isinstance(value, str):
        parts = [p.strip() for p in value.split(",")]
        if len(parts) != 2:
            return None
        return _format_pair(parts[0], parts[1])

    if isinstance(value, (list, tuple)):
        if len(value) < 2:
            return None
        return _format_pair(value[0], value[1])

    if isinstance(value, Mapping):
        lat = value.get("latitude", value.get("lat"))
        lng = value.get("longitude", value.get("lng"))
        return _format_pair(lat, lng)

    return None


def _format_pair(lat: Any, lng: Any) -> str | None:
    if lat is None or lng is None or isinstance(lat, bool) or isinstance(lng, bool):
        return None
    lat_text, lng_text = str(lat).strip(), str(lng).strip()
    if not (_is_number(lat_text) and _is_number(lng_text)):
        return None
    return f"{lat_text},{lng_text}"


def _is_number(text: str) -> bool:
    try:
        float(text)
    except ValueError:
        return False
    return True

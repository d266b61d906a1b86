"""
Event normalizer.

Turns a batch of raw source records into canonical events. Every record is
handled independently: a record that cannot be normalized becomes a Skip
with a reason instead of failing the batch, and all outcomes are collected
into a NormalizationReport that callers can assert on.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from touchgrass.configs.config import Config
from touchgrass.ingestion.identity import (
    GROUP_INFO_SK,
    group_partition_key,
    schedule_sort_key,
)
from touchgrass.ingestion.normalization.sources import (
    RawRecord,
    SourceKind,
    transform_record,
)
from touchgrass.ingestion.normalization.values import normalize_category
from touchgrass.schemas.event import CanonicalEvent
from touchgrass.schemas.group import GroupDefinition, GroupItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Normalized:
    """A record that normalized cleanly."""

    index: int
    event: CanonicalEvent


@dataclass(frozen=True)
class Skip:
    """A record excluded from the batch, with the reason it was excluded."""

    index: int
    reason: str
    raw: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {"index": self.index, "reason": self.reason}


@dataclass
class NormalizationReport:
    """Per-batch outcome: normalized records in input order plus skips."""

    events: list[Any] = field(default_factory=list)
    skips: list[Skip] = field(default_factory=list)

    @property
    def normalized_count(self) -> int:
        return len(self.events)

    @property
    def skipped_count(self) -> int:
        return len(self.skips)


class EventNormalizer:
    """
    Normalize raw records from any supported source.

    The category synonym table and the source alias table are injected; when
    omitted they are read from ingestion.yaml.

    Example:
        >>> normalizer = EventNormalizer(synonyms={"jazz": "Music"})
        >>> report = normalizer.normalize_batch(raw_events, source="crawler")
        >>> report.normalized_count, report.skipped_count
    """

    def __init__(
        self,
        synonyms: Mapping[str, str] | None = None,
        source_aliases: Mapping[str, str] | None = None,
        max_workers: int = 1,
        config: Config | None = None,
    ):
        if synonyms is None or source_aliases is None:
            config = config or Config()
        self.synonyms = dict(
            synonyms if synonyms is not None else config.category_synonyms()
        )
        self.source_aliases = dict(
            source_aliases if source_aliases is not None else config.source_aliases()
        )
        self.max_workers = max(1, int(max_workers))

    def resolve_kind(self, source: str | None) -> SourceKind:
        return SourceKind.resolve(source, self.source_aliases)

    # ========================================================================
    # EVENTS
    # ========================================================================

    def normalize(
        self, raw: Any, source: str | None, index: int = 0
    ) -> Normalized | Skip:
        """
        Normalize a single raw record.

        Never raises for record-level problems; they come back as Skip.
        """
        if not isinstance(raw, Mapping):
            return self._skip(index, f"record is not an object ({type(raw).__name__})", raw)

        record = RawRecord(kind=self.resolve_kind(source), payload=raw)
        try:
            fields = transform_record(record, self.synonyms)
        except Exception as e:
            return self._skip(index, f"{record.kind.value} transform failed: {e}", raw)

        title = fields.get("title")
        if not isinstance(title, str) or not title.strip():
            return self._skip(index, "missing title", raw)

        if not fields.get("source") and source:
            fields["source"] = source

        try:
            event = CanonicalEvent.model_validate(fields)
        except ValidationError as e:
            return self._skip(index, f"invalid canonical event: {_first_error(e)}", raw)
        except Exception as e:
            return self._skip(index, f"invalid canonical event: {e}", raw)

        return Normalized(index=index, event=event)

    def normalize_batch(
        self, raws: Sequence[Any], source: str | None
    ) -> NormalizationReport:
        """
        Normalize a batch of raw records.

        Records are independent, so they are processed on a thread pool when
        max_workers > 1. Output order always matches input order.
        """
        outcomes = self._map(lambda pair: self.normalize(pair[1], source, pair[0]), raws)

        report = NormalizationReport()
        for outcome in outcomes:
            if isinstance(outcome, Skip):
                report.skips.append(outcome)
            else:
                report.events.append(outcome.event)

        logger.info(
            f"Normalized {report.normalized_count}/{len(raws)} records "
            f"from source '{source}' ({report.skipped_count} skipped)"
        )
        return report

    # ========================================================================
    # GROUPS
    # ========================================================================

    def normalize_group(self, raw: Any, index: int = 0) -> list[GroupItem] | Skip:
        """
        Normalize one raw group into its stored items.

        Raw groups come either pre-keyed (a single item carrying pk/sk) or as
        a definition with schedules, which expands into one GROUP_INFO item
        and one SCHEDULE item per (day, time, location).
        """
        if not isinstance(raw, Mapping):
            return self._skip(index, f"record is not an object ({type(raw).__name__})", raw)

        try:
            if raw.get("pk") and raw.get("sk"):
                fields = dict(raw)
                fields["category"] = normalize_category(raw.get("category"), self.synonyms)
                return [GroupItem.model_validate(fields)]
            return self._expand_group(GroupDefinition.model_validate(raw))
        except ValidationError as e:
            return self._skip(index, f"invalid group: {_first_error(e)}", raw)
        except Exception as e:
            return self._skip(index, f"invalid group: {e}", raw)

    def normalize_groups(self, raws: Sequence[Any]) -> NormalizationReport:
        """Normalize a batch of groups; report.events holds GroupItem values."""
        outcomes = self._map(lambda pair: self.normalize_group(pair[1], pair[0]), raws)

        report = NormalizationReport()
        for outcome in outcomes:
            if isinstance(outcome, Skip):
                report.skips.append(outcome)
            else:
                report.events.extend(outcome)

        logger.info(
            f"Normalized {len(raws) - report.skipped_count}/{len(raws)} groups "
            f"into {report.normalized_count} items ({report.skipped_count} skipped)"
        )
        return report

    def _expand_group(self, group: GroupDefinition) -> list[GroupItem]:
        pk = group_partition_key(group.title)
        category = normalize_category(group.category, self.synonyms)
        shared = {
            "pk": pk,
            "title": group.title,
            "category": category,
            "is_public": group.is_public,
        }

        items = [
            GroupItem(
                **shared,
                sk=GROUP_INFO_SK,
                description=group.description,
                image_url=group.image_url,
                socials=group.socials,
            )
        ]
        for schedule in group.schedules:
            for day in schedule.days:
                items.append(
                    GroupItem(
                        **shared,
                        sk=schedule_sort_key(day, schedule.time, schedule.location),
                        schedule_day=day,
                        schedule_time=schedule.time,
                        schedule_location=schedule.location,
                    )
                )
        return items

    # ========================================================================
    # HELPERS
    # ========================================================================

    def _map(self, func, raws: Sequence[Any]) -> list[Any]:
        pairs = list(enumerate(raws))
        if self.max_workers <= 1 or len(pairs) <= 1:
            return [func(pair) for pair in pairs]
        with ThreadPoolExecutor(max_workers=self.max_workers) as ex:
            # map() yields results in submission order
            return list(ex.map(func, pairs))

    @staticmethod
    def _skip(index: int, reason: str, raw: Any) -> Skip:
        logger.warning(f"Skipping record {index}: {reason}")
        return Skip(index=index, reason=reason, raw=raw)


def _first_error(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg')}" if location else str(first.get("msg"))

"""
Search index projection.

Stored records are projected into one document collection holding both
events and groups (told apart by the "type" keyword). Documents are written
under the record's deterministic id, so indexing the same record again
overwrites the previous document instead of adding a second one. The index
is a derived view: it can always be rebuilt from the store.
"""

from __future__ import annotations

import itertools
import logging
import re
import time
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any

from touchgrass.ingestion.errors import TransientIndexError
from touchgrass.ingestion.identity import (
    EVENT_KEY_PREFIX,
    GROUP_INFO_SK,
    GROUP_KEY_PREFIX,
)
from touchgrass.ingestion.normalization.values import normalize_date
from touchgrass.ingestion.persist import EventRepository, now_ms
from touchgrass.ingestion.retry import RetryPolicy
from touchgrass.ingestion.search import Document, SearchEngine
from touchgrass.schemas.event import DEFAULT_CURRENCY

logger = logging.getLogger(__name__)

DEFAULT_INDEX_NAME = "events-groups-index"
UNKNOWN_COST_TYPE = "unknown"

_NUMERIC_PREFIX_RE = re.compile(r"^\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)")


def _analyzed_text(exact_match: bool = True) -> dict[str, Any]:
    field_mapping: dict[str, Any] = {"type": "text", "analyzer": "text_analyzer"}
    if exact_match:
        field_mapping["fields"] = {"keyword": {"type": "keyword"}}
    return field_mapping


INDEX_SETTINGS: dict[str, Any] = {
    "settings": {
        "number_of_shards": 1,
        "number_of_replicas": 0,
        "analysis": {
            "analyzer": {
                "text_analyzer": {
                    "type": "custom",
                    "tokenizer": "standard",
                    "filter": ["lowercase", "stop", "snowball"],
                }
            }
        },
    },
    "mappings": {
        "properties": {
            "id": {"type": "keyword"},
            "type": {"type": "keyword"},
            "title": _analyzed_text(),
            "description": _analyzed_text(),
            "location": _analyzed_text(),
            "venue": _analyzed_text(),
            "category": {"type": "keyword"},
            "cost": {
                "properties": {
                    "type": {"type": "keyword"},
                    "amount": {"type": "float"},
                    "currency": {"type": "keyword"},
                }
            },
            "image_url": {"type": "keyword"},
            "url": {"type": "keyword"},
            "socials": {"type": "object"},
            "source": {"type": "keyword"},
            "isPublic": {"type": "boolean"},
            "createdAt": {"type": "long"},
            "date": {"type": "date"},
            "start_date": {"type": "date"},
            "end_date": {"type": "date"},
            "start_time": {"type": "keyword"},
            "end_time": {"type": "keyword"},
            "scheduleDay": {"type": "keyword"},
            "scheduleTime": {"type": "keyword"},
            "scheduleLocation": _analyzed_text(),
            "schedules": {
                "properties": {
                    "day": {"type": "keyword"},
                    "time": {"type": "keyword"},
                    "location": {"type": "keyword"},
                }
            },
        }
    },
}


# ============================================================================
# FIELD COERCION
# ============================================================================


def coerce_amount(value: Any) -> float:
    """Best-effort number: numbers as-is, leading numeric text parsed, else 0.0."""
    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = _NUMERIC_PREFIX_RE.match(value)
        if match:
            try:
                return float(match.group(1))
            except ValueError:
                return 0.0
    return 0.0


def coerce_bool(value: Any) -> bool:
    """Native boolean from bools and "true"/"false" text; missing means True."""
    if value is None:
        return True
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def split_categories(value: Any) -> list[str]:
    """Explode the stored comma-joined category into discrete tokens."""
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return [str(c).strip() for c in value if str(c).strip()]
    return [c.strip() for c in str(value).split(",") if c.strip()]


def _created_at(record: dict[str, Any]) -> int:
    value = record.get("created_at", record.get("createdAt"))
    return int(value) if isinstance(value, (int, float)) else now_ms()


def _is_public(record: dict[str, Any]) -> bool:
    return coerce_bool(record.get("is_public", record.get("isPublic")))


# ============================================================================
# PROJECTION
# ============================================================================


def project_event(record: dict[str, Any]) -> Document:
    """Project a stored event record into its search document."""
    cost = record.get("cost") if isinstance(record.get("cost"), dict) else {}
    doc: Document = {
        "id": record.get("pk") or record.get("id"),
        "type": "event",
        "title": record.get("title") or "",
        "description": record.get("description") or "",
        "category": split_categories(record.get("category")),
        "location": record.get("location") or "",
        "venue": record.get("venue") or "",
        "cost": {
            "type": cost.get("type") or UNKNOWN_COST_TYPE,
            "amount": coerce_amount(cost.get("amount")),
            "currency": cost.get("currency") or DEFAULT_CURRENCY,
        },
        "image_url": record.get("image_url") or "",
        "url": record.get("url"),
        "socials": record.get("socials") or {},
        "isPublic": _is_public(record),
        "createdAt": _created_at(record),
        "start_time": record.get("start_time"),
        "end_time": record.get("end_time"),
        "source": record.get("source"),
    }

    # Date fields are only sent when they parse; the engine rejects bad dates
    dates = {
        "date": normalize_date(record.get("date") or record.get("start_date")),
        "start_date": normalize_date(record.get("start_date") or record.get("date")),
        "end_date": normalize_date(record.get("end_date")),
    }
    doc.update({k: v for k, v in dates.items() if v})
    return doc


def project_group(info: dict[str, Any], schedules: list[dict[str, Any]]) -> Document:
    """Project a group (its GROUP_INFO item plus SCHEDULE items) into one document."""
    entries = [
        {
            "day": s.get("schedule_day", s.get("scheduleDay")),
            "time": s.get("schedule_time", s.get("scheduleTime")),
            "location": s.get("schedule_location", s.get("scheduleLocation")),
        }
        for s in schedules
    ]
    first = entries[0] if entries else {}
    return {
        "id": info["pk"],
        "type": "group",
        "title": info.get("title") or "",
        "description": info.get("description") or "",
        "category": split_categories(info.get("category")),
        "location": first.get("location") or "",
        "image_url": info.get("image_url") or "",
        "socials": info.get("socials") or {},
        "isPublic": _is_public(info),
        "createdAt": _created_at(info),
        "scheduleDay": first.get("day"),
        "scheduleTime": first.get("time"),
        "scheduleLocation": first.get("location"),
        "schedules": entries,
    }


def _split_group(items: list[dict[str, Any]]) -> tuple[dict[str, Any], list[dict[str, Any]]]:
    info = next((i for i in items if i.get("sk") == GROUP_INFO_SK), None)
    schedules = [i for i in items if i.get("sk") != GROUP_INFO_SK]
    # A group seen without its info item still gets a document
    return (info or items[0]), schedules


def _group_by_pk(items: Iterable[dict[str, Any]]) -> Iterator[tuple[str, list[dict[str, Any]]]]:
    """Group items by pk; input must already be ordered by (pk, sk)."""
    for pk, group in itertools.groupby(items, key=lambda i: i["pk"]):
        yield pk, list(group)


# ============================================================================
# INDEXER
# ============================================================================


@dataclass
class IndexReport:
    """Per-batch indexing outcome."""

    indexed_ids: list[str] = field(default_factory=list)
    failed_ids: list[str] = field(default_factory=list)
    duplicate_ids: list[str] = field(default_factory=list)

    @property
    def indexed_count(self) -> int:
        return len(self.indexed_ids)


class EventIndexer:
    """
    Writes projected documents into the search engine.

    Transient engine errors are retried with backoff; once retries run out
    the document id is reported as failed and the batch carries on.
    IndexUnavailableError is never caught here.
    """

    def __init__(
        self,
        engine: SearchEngine,
        index_name: str = DEFAULT_INDEX_NAME,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.engine = engine
        self.index_name = index_name
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    def ensure_schema(self) -> bool:
        """Create the index with INDEX_SETTINGS if absent. Returns True if created."""
        if self.engine.index_exists(self.index_name):
            logger.debug(f"Index '{self.index_name}' already exists")
            return False
        self.engine.create_index(self.index_name, INDEX_SETTINGS)
        logger.info(f"Created index '{self.index_name}'")
        return True

    def upsert(self, record: dict[str, Any]) -> str:
        """
        Index one event record under its deterministic id.

        Raises:
            TransientIndexError: when throttling outlasts the retry budget
            IndexUnavailableError: when the engine cannot be reached
        """
        doc = project_event(record)
        self._put(doc["id"], doc)
        return doc["id"]

    def upsert_many(self, records: Iterable[dict[str, Any]]) -> IndexReport:
        report = IndexReport()
        for record in records:
            doc = project_event(record)
            self._put_reporting(doc, report)
        logger.info(
            f"Indexed {report.indexed_count} events into '{self.index_name}' "
            f"({len(report.failed_ids)} failed)"
        )
        return report

    def upsert_groups(self, items: Iterable[dict[str, Any]]) -> IndexReport:
        """Index group items, one document per group pk."""
        report = IndexReport()
        ordered = sorted(items, key=lambda i: (i["pk"], i["sk"]))
        for _, group_items in _group_by_pk(ordered):
            info, schedules = _split_group(group_items)
            self._put_reporting(project_group(info, schedules), report)
        logger.info(
            f"Indexed {report.indexed_count} groups into '{self.index_name}' "
            f"({len(report.failed_ids)} failed)"
        )
        return report

    def rebuild_all(self, repository: EventRepository, page_size: int = 100) -> IndexReport:
        """
        Drop and recreate the index, then re-project every stored record.

        Records are streamed page by page. An id already indexed in this
        pass is skipped and listed in duplicate_ids.
        """
        logger.info(f"Rebuilding index '{self.index_name}'")
        self.engine.delete_index(self.index_name)
        self.ensure_schema()

        report = IndexReport()
        seen: set[str] = set()

        for record in repository.scan_by_key_prefix(EVENT_KEY_PREFIX, page_size=page_size):
            doc_id = record.get("pk") or record.get("id")
            if doc_id in seen:
                report.duplicate_ids.append(doc_id)
                continue
            seen.add(doc_id)
            self._put_reporting(project_event(record), report)

        groups = repository.scan_by_key_prefix(GROUP_KEY_PREFIX, page_size=page_size)
        for pk, group_items in _group_by_pk(groups):
            if pk in seen:
                report.duplicate_ids.append(pk)
                continue
            seen.add(pk)
            info, schedules = _split_group(group_items)
            self._put_reporting(project_group(info, schedules), report)

        logger.info(
            f"Rebuilt '{self.index_name}': {report.indexed_count} documents indexed, "
            f"{len(report.failed_ids)} failed, {len(report.duplicate_ids)} duplicates skipped"
        )
        return report

    def _put_reporting(self, doc: Document, report: IndexReport) -> None:
        try:
            self._put(doc["id"], doc)
        except TransientIndexError as e:
            logger.warning(f"Giving up on indexing {doc['id']}: {e}")
            report.failed_ids.append(doc["id"])
            return
        report.indexed_ids.append(doc["id"])

    def _put(self, doc_id: str, doc: Document) -> None:
        attempt = 0
        while True:
            try:
                self.engine.put_document(self.index_name, doc_id, doc)
                return
            except TransientIndexError:
                attempt += 1
                if attempt > self.retry_policy.max_retries:
                    raise
                delay = self.retry_policy.compute_backoff_s(attempt)
                logger.warning(f"Indexing {doc_id} throttled, retrying in {delay:.2f}s")
                self._sleep(delay)

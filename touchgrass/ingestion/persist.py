# Persistence layer for canonical records
"""
Persistence Layer for Event Ingestion.

Maps canonical events and group items onto store items and writes them
create-if-absent: the first writer of a deterministic id wins, and every
later write of the same id is a successful no-op rather than an error.
Stored records are never updated by the pipeline.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import time
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field

from touchgrass.ingestion.errors import TransientStoreError
from touchgrass.ingestion.identity import identity_for
from touchgrass.ingestion.retry import RetryPolicy
from touchgrass.ingestion.storage.base import (
    Item,
    Key,
    KeyValueStore,
    SecondaryIndex,
    item_key,
)
from touchgrass.schemas.event import CanonicalEvent
from touchgrass.schemas.group import GroupItem

logger = logging.getLogger(__name__)

TITLE_PREFIX_LENGTH = 3


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class CreateResult:
    """Outcome of a single conditional create."""

    created: bool
    id: str
    record: Item | None = None


@dataclass
class BatchCreateReport:
    """
    Outcome of a batch of conditional creates.

    Every input id lands in exactly one of created_ids, existing_ids or
    failed_ids; failed ids are keys whose retries were exhausted.
    """

    created_ids: list[str] = field(default_factory=list)
    existing_ids: list[str] = field(default_factory=list)
    failed_ids: list[str] = field(default_factory=list)

    @property
    def created_count(self) -> int:
        return len(self.created_ids)

    @property
    def existing_count(self) -> int:
        return len(self.existing_ids)

    @property
    def persisted_ids(self) -> list[str]:
        """Ids that are now present in the store, created or not."""
        return self.created_ids + self.existing_ids


# ============================================================================
# RECORD MAPPING
# ============================================================================


def event_to_record(event: CanonicalEvent, event_id: str, timestamp_ms: int) -> Item:
    """
    Build the stored item for an event.

    Events are self-keyed (pk == sk == id). Timestamps are epoch
    milliseconds and are only ever set here, at creation.
    """
    record = event.model_dump(mode="json", exclude={"id", "created_at", "updated_at"})
    record.update(
        {
            "pk": event_id,
            "sk": event_id,
            "id": event_id,
            "created_at": timestamp_ms,
            "updated_at": timestamp_ms,
            "event_date": event.start_date,
            "title_prefix": event.title.strip().lower()[:TITLE_PREFIX_LENGTH],
        }
    )
    return record


def group_item_to_record(item: GroupItem, timestamp_ms: int) -> Item:
    record = item.model_dump(mode="json", exclude={"created_at", "updated_at"})
    record["created_at"] = timestamp_ms
    record["updated_at"] = timestamp_ms
    return record


def record_to_event(record: Item) -> CanonicalEvent:
    """Rebuild a CanonicalEvent from a stored event item."""
    return CanonicalEvent.model_validate(record)


def group_record_id(record: Item) -> str:
    """Report id of a group item: its pk and sk joined by "|"."""
    return f"{record['pk']}|{record['sk']}"


# ============================================================================
# CONTINUATION TOKENS
# ============================================================================


def encode_continuation_token(key: Key) -> str:
    payload = json.dumps([key[0], key[1]]).encode("utf-8")
    return base64.urlsafe_b64encode(payload).decode("ascii")


def decode_continuation_token(token: str) -> Key:
    try:
        pk, sk = json.loads(base64.urlsafe_b64decode(token.encode("ascii")))
    except (binascii.Error, UnicodeError, ValueError, TypeError) as e:
        raise ValueError(f"Invalid continuation token: {token!r}") from e
    return str(pk), str(sk)


# ============================================================================
# REPOSITORY
# ============================================================================


class EventRepository:
    """
    Create-if-absent persistence over a KeyValueStore.

    Batch writes go out in chunks of at most batch_size items. A chunk is
    finished, retries included, before the next one starts, and the
    repository pauses write_pacing_seconds between chunks to stay under
    the store's write throughput.
    """

    def __init__(
        self,
        store: KeyValueStore,
        batch_size: int = 25,
        retry_policy: RetryPolicy | None = None,
        write_pacing_seconds: float = 0.1,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.store = store
        self.batch_size = max(1, min(batch_size, store.max_batch_size))
        self.retry_policy = retry_policy or RetryPolicy()
        self.write_pacing_seconds = write_pacing_seconds
        self._sleep = sleep
        self._clock = clock

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_if_absent(
        self, event: CanonicalEvent, source: str | None = None
    ) -> CreateResult:
        """
        Conditionally create one event.

        An existing id yields created=False together with the stored record;
        that is the normal idempotent outcome, not a failure.

        Raises:
            TransientStoreError: when throttling outlasts the retry budget
            StoreUnavailableError: when the store cannot be reached
        """
        event_id = identity_for(event, source)
        record = event_to_record(event, event_id, self._clock())

        attempt = 0
        while True:
            try:
                created = self.store.put_if_absent(record)
                break
            except TransientStoreError as e:
                attempt += 1
                if attempt > self.retry_policy.max_retries:
                    logger.error(f"Giving up on {event_id} after {attempt - 1} retries: {e}")
                    raise
                delay = self.retry_policy.compute_backoff_s(attempt)
                logger.warning(f"Write of {event_id} throttled, retrying in {delay:.2f}s")
                self._sleep(delay)

        if created:
            logger.debug(f"Created {event_id}")
            return CreateResult(created=True, id=event_id, record=record)

        logger.debug(f"{event_id} already exists; keeping the stored record")
        return CreateResult(created=False, id=event_id, record=self.get(event_id))

    def batch_create_if_absent(
        self, events: Iterable[CanonicalEvent], source: str | None = None
    ) -> BatchCreateReport:
        """
        Conditionally create many events.

        An id repeated inside the batch is written once and every further
        occurrence counts as existing.
        """
        timestamp = self._clock()
        pending = [
            (event_id, event_to_record(event, event_id, timestamp))
            for event_id, event in ((identity_for(e, source), e) for e in events)
        ]
        report = self._write_batch(pending)
        logger.info(
            f"Persisted {len(pending)} events: {report.created_count} created, "
            f"{report.existing_count} existing, {len(report.failed_ids)} failed"
        )
        return report

    def create_group_items(self, items: Iterable[GroupItem]) -> BatchCreateReport:
        """Conditionally create group items, keyed by (pk, sk)."""
        timestamp = self._clock()
        pending = []
        for item in items:
            record = group_item_to_record(item, timestamp)
            pending.append((group_record_id(record), record))
        report = self._write_batch(pending)
        logger.info(
            f"Persisted {len(pending)} group items: {report.created_count} created, "
            f"{report.existing_count} existing, {len(report.failed_ids)} failed"
        )
        return report

    def _write_batch(self, pending: list[tuple[str, Item]]) -> BatchCreateReport:
        report = BatchCreateReport()

        unique: list[Item] = []
        ids_by_key: dict[Key, str] = {}
        for record_id, record in pending:
            key = item_key(record)
            if key in ids_by_key:
                report.existing_ids.append(record_id)
                continue
            ids_by_key[key] = record_id
            unique.append(record)

        chunks = [
            unique[i : i + self.batch_size] for i in range(0, len(unique), self.batch_size)
        ]
        for position, chunk in enumerate(chunks):
            self._write_chunk(chunk, ids_by_key, report)
            if position < len(chunks) - 1 and self.write_pacing_seconds > 0:
                self._sleep(self.write_pacing_seconds)

        return report

    def _write_chunk(
        self, chunk: list[Item], ids_by_key: dict[Key, str], report: BatchCreateReport
    ) -> None:
        remaining = chunk
        attempt = 0
        while remaining:
            try:
                outcome = self.store.batch_put_if_absent(remaining)
                report.created_ids.extend(ids_by_key[item_key(i)] for i in outcome.written)
                report.existing_ids.extend(ids_by_key[item_key(i)] for i in outcome.existing)
                remaining = outcome.unprocessed
            except TransientStoreError as e:
                logger.warning(f"Batch write of {len(remaining)} items throttled: {e}")

            if not remaining:
                return

            attempt += 1
            if attempt > self.retry_policy.max_retries:
                failed = [ids_by_key[item_key(i)] for i in remaining]
                logger.error(
                    f"{len(failed)} items still unprocessed after "
                    f"{self.retry_policy.max_retries} retries: {failed}"
                )
                report.failed_ids.extend(failed)
                return

            delay = self.retry_policy.compute_backoff_s(attempt)
            logger.warning(
                f"Retrying {len(remaining)} unprocessed items in {delay:.2f}s "
                f"(attempt {attempt}/{self.retry_policy.max_retries})"
            )
            self._sleep(delay)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, event_id: str) -> Item | None:
        return self.store.get(event_id, event_id)

    def get_many(self, event_ids: Iterable[str]) -> list[Item]:
        """Return stored records for the ids that exist, in input order."""
        records = []
        for event_id in event_ids:
            record = self.get(event_id)
            if record is not None:
                records.append(record)
        return records

    def get_group(self, pk: str) -> list[Item]:
        """Every stored item of one group, GROUP_INFO first."""
        return [r for r in self.scan_by_key_prefix(pk) if r["pk"] == pk]

    def scan_pages(
        self, prefix: str, page_size: int = 100, start_token: str | None = None
    ) -> Iterator[tuple[list[Item], str | None]]:
        """
        Yield (records, continuation_token) pages for a key prefix.

        Passing a yielded token back as start_token resumes after that page.
        The final page carries a None token.
        """
        start_key = decode_continuation_token(start_token) if start_token else None
        while True:
            page = self.store.scan(prefix, limit=page_size, start_key=start_key)
            token = encode_continuation_token(page.last_key) if page.last_key else None
            yield page.items, token
            if page.last_key is None:
                return
            start_key = page.last_key

    def scan_by_key_prefix(
        self, prefix: str, page_size: int = 100, start_token: str | None = None
    ) -> Iterator[Item]:
        """Lazily yield every record whose key starts with prefix."""
        for records, _ in self.scan_pages(prefix, page_size, start_token):
            yield from records

    def query_by_created_at(self, created_at_ms: int) -> list[Item]:
        return self.store.query(SecondaryIndex.CREATED_AT, created_at_ms)

    def query_by_organizer(
        self, organizer_id: str, event_date: str | None = None
    ) -> list[Item]:
        return self.store.query(SecondaryIndex.ORGANIZER_DATE, organizer_id, event_date)

    def query_by_category(self, category: str, title: str | None = None) -> list[Item]:
        return self.store.query(SecondaryIndex.CATEGORY_TITLE, category, title)


"""
Key-value store contract.

The store holds items addressed by (pk, sk). The only write primitive is a
conditional create: an item is written only if no item exists under its
key. That predicate is what keeps two concurrent runs from creating two
records for one deterministic id.

Implementations:
    - InMemoryStore (storage/memory.py)
    - PostgresStore (storage/postgres.py)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

Item = dict[str, Any]
Key = tuple[str, str]

DEFAULT_MAX_BATCH_SIZE = 25


class SecondaryIndex(str, Enum):
    """Secondary access paths that must be queryable without a scan."""

    CREATED_AT = "created_at"
    ORGANIZER_DATE = "organizer_date"
    CATEGORY_TITLE = "category_title"

    @property
    def hash_attribute(self) -> str:
        return _INDEX_ATTRIBUTES[self][0]

    @property
    def range_attribute(self) -> str:
        return _INDEX_ATTRIBUTES[self][1]


_INDEX_ATTRIBUTES = {
    SecondaryIndex.CREATED_AT: ("created_at", "pk"),
    SecondaryIndex.ORGANIZER_DATE: ("organizer_id", "event_date"),
    SecondaryIndex.CATEGORY_TITLE: ("category", "title"),
}


def item_key(item: Item) -> Key:
    """Return the (pk, sk) key of an item."""
    return item["pk"], item["sk"]


@dataclass
class BatchWriteOutcome:
    """
    Result of one conditional batch write.

    written: items created by this call
    existing: items whose key was already present (left untouched)
    unprocessed: items the store did not get to (throttling); retryable
    """

    written: list[Item] = field(default_factory=list)
    existing: list[Item] = field(default_factory=list)
    unprocessed: list[Item] = field(default_factory=list)


@dataclass
class ScanPage:
    """One page of a prefix scan; last_key is None on the final page."""

    items: list[Item] = field(default_factory=list)
    last_key: Key | None = None


class KeyValueStore(ABC):
    """
    Abstract base class for the key-value store.

    Subclasses must implement:
        - put_if_absent(): conditional single write
        - batch_put_if_absent(): conditional batch write (<= max_batch_size)
        - get(): point read
        - scan(): ordered, paginated prefix scan over pk
        - query(): lookup on a SecondaryIndex
    """

    max_batch_size: int = DEFAULT_MAX_BATCH_SIZE

    @abstractmethod
    def put_if_absent(self, item: Item) -> bool:
        """
        Write item only if its key is absent.

        Returns:
            True if written, False if the key already existed

        Raises:
            TransientStoreError: on throttling
            StoreUnavailableError: when the store cannot be reached
        """

    @abstractmethod
    def batch_put_if_absent(self, items: list[Item]) -> BatchWriteOutcome:
        """Conditionally write up to max_batch_size items."""

    @abstractmethod
    def get(self, pk: str, sk: str) -> Item | None:
        """Return the item stored under (pk, sk), or None."""

    @abstractmethod
    def scan(
        self, prefix: str, limit: int = 100, start_key: Key | None = None
    ) -> ScanPage:
        """
        Return items whose pk starts with prefix, ordered by (pk, sk).

        Args:
            prefix: pk prefix to match
            limit: maximum number of items in the page
            start_key: exclusive lower bound (last_key of the previous page)
        """

    @abstractmethod
    def query(
        self, index: SecondaryIndex, hash_value: Any, range_value: Any = None
    ) -> list[Item]:
        """Return items matching a secondary index, ordered by its range attribute."""

    def ensure_schema(self) -> None:
        """Create backing tables/indexes if the backend needs them."""
        return None

    def close(self) -> None:
        """Release backend resources."""
        return None

    def _check_batch_size(self, items: list[Item]) -> None:
        if len(items) > self.max_batch_size:
            raise ValueError(
                f"Batch of {len(items)} items exceeds the store limit of {self.max_batch_size}"
            )

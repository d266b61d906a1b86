"""In-process KeyValueStore, used by tests and the default local setup."""

from __future__ import annotations

import copy
import logging
import threading
from collections import defaultdict
from collections.abc import Callable
from typing import Any

from touchgrass.ingestion.errors import TransientStoreError
from touchgrass.ingestion.storage.base import (
    BatchWriteOutcome,
    Item,
    Key,
    KeyValueStore,
    ScanPage,
    SecondaryIndex,
    item_key,
)

logger = logging.getLogger(__name__)

ThrottleHook = Callable[[Item], bool]


class InMemoryStore(KeyValueStore):
    """
    Thread-safe dict-backed store with secondary indexes kept as dicts.

    Args:
        throttle: Optional hook called per item before it is written. When it
            returns True the item is throttled: batch writes report it as
            unprocessed and single writes raise TransientStoreError.
    """

    def __init__(self, throttle: ThrottleHook | None = None):
        self.throttle = throttle
        self._items: dict[Key, Item] = {}
        self._indexes: dict[SecondaryIndex, dict[Any, list[Key]]] = {
            index: defaultdict(list) for index in SecondaryIndex
        }
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._items)

    def put_if_absent(self, item: Item) -> bool:
        if self.throttle and self.throttle(item):
            raise TransientStoreError(f"Write throttled for {item_key(item)}")
        with self._lock:
            return self._insert(item)

    def batch_put_if_absent(self, items: list[Item]) -> BatchWriteOutcome:
        self._check_batch_size(items)
        outcome = BatchWriteOutcome()
        with self._lock:
            for item in items:
                if self.throttle and self.throttle(item):
                    outcome.unprocessed.append(item)
                elif self._insert(item):
                    outcome.written.append(item)
                else:
                    outcome.existing.append(item)
        return outcome

    def get(self, pk: str, sk: str) -> Item | None:
        with self._lock:
            item = self._items.get((pk, sk))
            return copy.deepcopy(item) if item is not None else None

    def scan(
        self, prefix: str, limit: int = 100, start_key: Key | None = None
    ) -> ScanPage:
        with self._lock:
            keys = sorted(k for k in self._items if k[0].startswith(prefix))
            if start_key is not None:
                keys = [k for k in keys if k > tuple(start_key)]
            page_keys = keys[:limit]
            items = [copy.deepcopy(self._items[k]) for k in page_keys]
        last_key = page_keys[-1] if len(keys) > limit else None
        return ScanPage(items=items, last_key=last_key)

    def query(
        self, index: SecondaryIndex, hash_value: Any, range_value: Any = None
    ) -> list[Item]:
        with self._lock:
            keys = list(self._indexes[index].get(hash_value, []))
            items = [copy.deepcopy(self._items[k]) for k in keys]

        range_attr = index.range_attribute
        if range_value is not None:
            items = [i for i in items if i.get(range_attr) == range_value]
        return sorted(items, key=lambda i: (str(i.get(range_attr) or ""), item_key(i)))

    def _insert(self, item: Item) -> bool:
        """Conditional insert; caller holds the lock."""
        key = item_key(item)
        if key in self._items:
            logger.debug(f"Key {key} already present; not overwritten")
            return False

        stored = copy.deepcopy(item)
        self._items[key] = stored
        for index in SecondaryIndex:
            hash_value = stored.get(index.hash_attribute)
            if hash_value is not None:
                self._indexes[index][hash_value].append(key)
        return True

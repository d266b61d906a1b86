"""Key-value store backends for canonical records."""

from .base import BatchWriteOutcome, KeyValueStore, ScanPage, SecondaryIndex
from .memory import InMemoryStore

__all__ = [
    "BatchWriteOutcome",
    "InMemoryStore",
    "KeyValueStore",
    "ScanPage",
    "SecondaryIndex",
]

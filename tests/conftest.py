"""
Shared pytest fixtures for the TouchGrass ingestion test suite.

Provides in-memory backends and factory fixtures for canonical events, raw
records and a fully wired orchestrator.
"""

from typing import Optional

import pytest

from touchgrass.ingestion.indexing import EventIndexer
from touchgrass.ingestion.normalization import EventNormalizer
from touchgrass.ingestion.orchestrator import IngestionOrchestrator
from touchgrass.ingestion.persist import EventRepository
from touchgrass.ingestion.retry import RetryPolicy
from touchgrass.ingestion.run_history import InMemoryRunRegistry
from touchgrass.ingestion.search import InMemorySearchEngine
from touchgrass.ingestion.storage.memory import InMemoryStore
from touchgrass.schemas.event import CanonicalEvent

FIXED_NOW_MS = 1_718_000_000_000


@pytest.fixture
def synonyms():
    """Small category synonym table used across tests."""
    return {
        "jazz": "Music",
        "music": "Music",
        "concert": "Music",
        "food": "Food & Drink",
        "drink": "Food & Drink",
        "festival": "Festival",
    }


@pytest.fixture
def source_aliases():
    return {"manual": "passthrough", "dcimprov": "crawler"}


@pytest.fixture
def normalizer(synonyms, source_aliases):
    """Single-threaded normalizer with the test tables injected."""
    return EventNormalizer(synonyms=synonyms, source_aliases=source_aliases)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def sleeps():
    """Records every delay the code under test asked to sleep for."""
    return []


@pytest.fixture
def retry_policy():
    return RetryPolicy(max_retries=3, base_delay_s=0.1)


@pytest.fixture
def repository(store, retry_policy, sleeps):
    """Repository over the in-memory store; sleeping is recorded, not done."""
    return EventRepository(
        store,
        retry_policy=retry_policy,
        write_pacing_seconds=0.1,
        sleep=sleeps.append,
        clock=lambda: FIXED_NOW_MS,
    )


@pytest.fixture
def engine():
    return InMemorySearchEngine()


@pytest.fixture
def indexer(engine, retry_policy, sleeps):
    return EventIndexer(engine, retry_policy=retry_policy, sleep=sleeps.append)


@pytest.fixture
def orchestrator(normalizer, repository, indexer):
    """Fully wired orchestrator on in-memory backends."""
    return IngestionOrchestrator(
        normalizer, repository, indexer, registry=InMemoryRunRegistry()
    )


@pytest.fixture
def create_event():
    """
    Return a function that creates CanonicalEvent objects with sensible defaults.

    Example:
        event = create_event(title="Jazz Fest", start_date="2024-06-15")
    """

    def _create_event(
        title: str = "Test Event",
        start_date: Optional[str] = "2024-06-15",
        **kwargs,
    ) -> CanonicalEvent:
        defaults = {
            "title": title,
            "start_date": start_date,
            "start_time": "19:00",
            "venue": "Test Venue",
            "category": "Music",
            "source": "crawler",
        }
        defaults.update(kwargs)
        return CanonicalEvent(**defaults)

    return _create_event


@pytest.fixture
def raw_crawler_event():
    """Return a function building raw crawler records."""

    def _raw(title: str = "Jazz Fest", **kwargs) -> dict:
        raw = {
            "title": title,
            "start_date": "2024-06-15",
            "start_time": "7:00 PM",
            "venue": "The Wharf",
            "category": "jazz",
            "cost": "$45",
            "url": "https://example.com/jazz-fest",
        }
        raw.update(kwargs)
        return raw

    return _raw

"""
Search engine contract and backends.

The index adapter only needs document-level operations with an explicit
document id: writing the same id twice overwrites the first document.

Implementations:
    - InMemorySearchEngine: dict-backed, used by tests and local runs
    - OpenSearchClient: OpenSearch REST API over httpx
"""

from __future__ import annotations

import copy
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any
from urllib.parse import quote

import httpx

from touchgrass.configs.settings import Settings
from touchgrass.ingestion.errors import IndexUnavailableError, TransientIndexError

logger = logging.getLogger(__name__)

Document = dict[str, Any]

TRANSIENT_STATUS_CODES = frozenset({429, 502, 503, 504})


class SearchEngine(ABC):
    """
    Abstract base class for the document search engine.

    Errors:
        TransientIndexError: throttling; the request may be retried
        IndexUnavailableError: engine unreachable or request rejected
    """

    @abstractmethod
    def index_exists(self, name: str) -> bool:
        """Return True if the index exists."""

    @abstractmethod
    def create_index(self, name: str, body: dict[str, Any]) -> None:
        """Create an index with settings and mappings."""

    @abstractmethod
    def delete_index(self, name: str) -> None:
        """Delete an index; a missing index is not an error."""

    @abstractmethod
    def put_document(self, name: str, doc_id: str, body: Document) -> None:
        """Write a document under an explicit id, replacing any previous one."""

    @abstractmethod
    def get_document(self, name: str, doc_id: str) -> Document | None:
        """Return the document source, or None."""

    @abstractmethod
    def count(self, name: str) -> int:
        """Number of documents in the index."""

    def close(self) -> None:
        return None


class InMemorySearchEngine(SearchEngine):
    """Thread-safe dict-backed engine with the same overwrite semantics."""

    def __init__(self) -> None:
        self.indices: dict[str, dict[str, Document]] = {}
        self.index_bodies: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def index_exists(self, name: str) -> bool:
        return name in self.indices

    def create_index(self, name: str, body: dict[str, Any]) -> None:
        with self._lock:
            if name in self.indices:
                raise IndexUnavailableError(f"Index '{name}' already exists")
            self.indices[name] = {}
            self.index_bodies[name] = copy.deepcopy(body)

    def delete_index(self, name: str) -> None:
        with self._lock:
            self.indices.pop(name, None)
            self.index_bodies.pop(name, None)

    def put_document(self, name: str, doc_id: str, body: Document) -> None:
        with self._lock:
            # Writing to a missing index creates it, as the REST API does
            self.indices.setdefault(name, {})[doc_id] = copy.deepcopy(body)

    def get_document(self, name: str, doc_id: str) -> Document | None:
        doc = self.indices.get(name, {}).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    def count(self, name: str) -> int:
        return len(self.indices.get(name, {}))

    def documents(self, name: str) -> dict[str, Document]:
        return copy.deepcopy(self.indices.get(name, {}))


class OpenSearchClient(SearchEngine):
    """
    Minimal OpenSearch REST client.

    Args:
        base_url: Cluster endpoint, e.g. "https://search.example.com"
        username/password: Optional basic-auth credentials
        timeout: Request timeout in seconds
        transport: Optional httpx transport (tests pass httpx.MockTransport)
    """

    def __init__(
        self,
        base_url: str,
        username: str | None = None,
        password: str | None = None,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.auth = (username, password) if username and password else None
        self.timeout = timeout
        self.transport = transport
        self._client: httpx.Client | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "OpenSearchClient":
        if not settings.SEARCH_URL:
            raise ValueError("SEARCH_URL is required for the opensearch search backend")
        password = (
            settings.SEARCH_PASSWORD.get_secret_value() if settings.SEARCH_PASSWORD else None
        )
        return cls(
            settings.SEARCH_URL,
            username=settings.SEARCH_USERNAME,
            password=password,
            timeout=settings.SEARCH_TIMEOUT,
        )

    def _get_client(self) -> httpx.Client:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.base_url,
                auth=self.auth,
                timeout=self.timeout,
                headers={"Accept": "application/json"},
                transport=self.transport,
            )
        return self._client

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = self._get_client().request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise TransientIndexError(f"{method} {path} timed out: {e}") from e
        except httpx.HTTPError as e:
            raise IndexUnavailableError(f"{method} {path} failed: {e}") from e

        if response.status_code in TRANSIENT_STATUS_CODES:
            raise TransientIndexError(
                f"{method} {path} returned {response.status_code}: {response.text[:200]}"
            )
        return response

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_error:
            raise IndexUnavailableError(
                f"{response.request.method} {response.request.url.path} returned "
                f"{response.status_code}: {response.text[:200]}"
            )

    def index_exists(self, name: str) -> bool:
        response = self._request("HEAD", f"/{_segment(name)}")
        if response.status_code == 404:
            return False
        self._raise_for_status(response)
        return True

    def create_index(self, name: str, body: dict[str, Any]) -> None:
        response = self._request("PUT", f"/{_segment(name)}", json=body)
        self._raise_for_status(response)
        logger.info(f"Created index '{name}'")

    def delete_index(self, name: str) -> None:
        response = self._request("DELETE", f"/{_segment(name)}")
        if response.status_code == 404:
            logger.debug(f"Index '{name}' did not exist; nothing to delete")
            return
        self._raise_for_status(response)
        logger.info(f"Deleted index '{name}'")

    def put_document(self, name: str, doc_id: str, body: Document) -> None:
        response = self._request(
            "PUT", f"/{_segment(name)}/_doc/{_segment(doc_id)}", json=body
        )
        self._raise_for_status(response)

    def get_document(self, name: str, doc_id: str) -> Document | None:
        response = self._request("GET", f"/{_segment(name)}/_doc/{_segment(doc_id)}")
        if response.status_code == 404:
            return None
        self._raise_for_status(response)
        return response.json().get("_source")

    def count(self, name: str) -> int:
        response = self._request("GET", f"/{_segment(name)}/_count")
        self._raise_for_status(response)
        return int(response.json().get("count", 0))

    def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None


def _segment(value: str) -> str:
    # Ids contain "#" and "|" for group documents
    return quote(value, safe="")

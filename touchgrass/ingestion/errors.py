"""
Error taxonomy for the ingestion pipeline.

Record-level problems (malformed raw input, already-stored ids) are not
exceptions: they are reported as outcome values. The classes below cover
infrastructure failures and invalid run input.
"""


class IngestionError(Exception):
    """Base class for ingestion errors."""


class RequestValidationError(IngestionError):
    """The ingestion request itself is malformed (not a single record)."""


# ----------------------------------------------------------------------------
# Store
# ----------------------------------------------------------------------------


class StoreError(IngestionError):
    """Base class for key-value store errors."""


class TransientStoreError(StoreError):
    """Throttling or a temporary failure; the write may be retried."""


class StoreUnavailableError(StoreError):
    """The store cannot be reached; the current stage must fail."""


# ----------------------------------------------------------------------------
# Search index
# ----------------------------------------------------------------------------


class SearchIndexError(IngestionError):
    """Base class for search index errors."""


class TransientIndexError(SearchIndexError):
    """Throttling or a temporary failure; the request may be retried."""


class IndexUnavailableError(SearchIndexError):
    """The search engine cannot be reached or rejected the request."""


# ----------------------------------------------------------------------------
# Runs
# ----------------------------------------------------------------------------


class DuplicateRunError(IngestionError):
    """A run with the same name was already started."""

    def __init__(self, run_name: str):
        super().__init__(f"Run '{run_name}' already exists")
        self.run_name = run_name


class RunNotFoundError(IngestionError):
    """No run is recorded under the requested name."""

    def __init__(self, run_name: str):
        super().__init__(f"Run '{run_name}' not found")
        self.run_name = run_name

"""
Ingestion Orchestrator.

Runs one ingestion batch through three sequential stages:

    Normalize -> Persist -> Index

Each stage is a plain callable that receives the previous stage's output.
A stage that raises halts the run: later stages do not start, nothing is
rolled back, and the run is recorded as failed with the stage and cause.
A record persisted but never indexed is repaired by rebuilding the index.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

from touchgrass.configs.config import Config
from touchgrass.configs.settings import Settings, get_settings
from touchgrass.ingestion.errors import RequestValidationError
from touchgrass.ingestion.identity import identity_for
from touchgrass.ingestion.indexing import EventIndexer, IndexReport
from touchgrass.ingestion.normalization.normalizer import (
    EventNormalizer,
    NormalizationReport,
)
from touchgrass.ingestion.persist import BatchCreateReport, EventRepository, group_record_id
from touchgrass.ingestion.retry import RetryPolicy
from touchgrass.ingestion.run_history import (
    InMemoryRunRegistry,
    JsonFileRunRegistry,
    RunRegistry,
    RunStatus,
)
from touchgrass.ingestion.search import InMemorySearchEngine, OpenSearchClient, SearchEngine
from touchgrass.ingestion.storage.base import KeyValueStore
from touchgrass.ingestion.storage.memory import InMemoryStore
from touchgrass.monitoring.logging import with_context

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    EVENT = "event"
    GROUP = "group"


class Stage(str, Enum):
    NORMALIZE = "normalize"
    PERSIST = "persist"
    INDEX = "index"


class IngestionRequest(BaseModel):
    """Input of one ingestion run."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    events: List[Any]
    source: str
    event_type: EventType = Field(
        default=EventType.EVENT,
        validation_alias=AliasChoices("eventType", "event_type"),
        serialization_alias="eventType",
    )

    @field_validator("source", mode="before")
    @classmethod
    def require_source(cls, v: Any) -> str:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("source is required and must be a non-empty string")
        return v.strip()


# ============================================================================
# STAGE OUTPUTS
# ============================================================================


@dataclass
class NormalizeOutput:
    request: IngestionRequest
    report: NormalizationReport


@dataclass
class PersistOutput:
    request: IngestionRequest
    report: NormalizationReport
    persist_report: BatchCreateReport
    # Event ids (or group pks) present in the store after this stage, input order
    ids: list[str] = field(default_factory=list)


@dataclass
class IndexOutput:
    persisted: PersistOutput
    saved_records: list[dict[str, Any]]
    index_report: IndexReport

    def to_output(self) -> dict[str, Any]:
        persist_report = self.persisted.persist_report
        return {
            "eventIds": self.persisted.ids,
            "savedEvents": self.saved_records,
            "normalizedCount": self.persisted.report.normalized_count,
            "persistedCount": persist_report.created_count + persist_report.existing_count,
            "createdCount": persist_report.created_count,
            "existingCount": persist_report.existing_count,
            "indexedCount": self.index_report.indexed_count,
            "skipped": [skip.to_dict() for skip in self.persisted.report.skips],
            "failedIds": persist_report.failed_ids,
            "indexFailedIds": self.index_report.failed_ids,
        }


@dataclass
class IngestionRunResult:
    """What a caller gets back from IngestionOrchestrator.run()."""

    run_name: str
    status: RunStatus
    output: dict[str, Any]

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatus.SUCCEEDED


StageFn = Callable[[Any], Any]


# ============================================================================
# ORCHESTRATOR
# ============================================================================


class IngestionOrchestrator:
    """
    Chains Normalize -> Persist -> Index for one batch per run.

    Responsibilities:
    - Reject a run name that was already used
    - Run the stages in order, passing each output to the next stage
    - Record the last stage, the output or the failure in the run registry
    """

    def __init__(
        self,
        normalizer: EventNormalizer,
        repository: EventRepository,
        indexer: EventIndexer,
        registry: RunRegistry | None = None,
        stages: Sequence[tuple[Stage, StageFn]] | None = None,
    ) -> None:
        self.normalizer = normalizer
        self.repository = repository
        self.indexer = indexer
        self.registry = registry or InMemoryRunRegistry()
        self.stages = list(stages) if stages is not None else self.default_stages()

    def default_stages(self) -> list[tuple[Stage, StageFn]]:
        return [
            (Stage.NORMALIZE, self.normalize_stage),
            (Stage.PERSIST, self.persist_stage),
            (Stage.INDEX, self.index_stage),
        ]

    # ========================================================================
    # EXECUTION
    # ========================================================================

    def run(self, payload: Any, run_name: str) -> IngestionRunResult:
        """
        Execute one ingestion run.

        Args:
            payload: {"events": [...], "source": str, "eventType": "event" | "group"}
            run_name: Caller-supplied unique run identity

        Returns:
            IngestionRunResult; on failure its output is {error, cause, stage}

        Raises:
            DuplicateRunError: if run_name was already used
        """
        request_record = payload if isinstance(payload, dict) else {"payload": repr(payload)}
        self.registry.start(run_name, request_record)

        source = payload.get("source") if isinstance(payload, dict) else None
        value: Any = payload
        stage: Stage | None = None
        try:
            for stage, stage_fn in self.stages:
                self.registry.mark_stage(run_name, stage.value)
                log = with_context(logger, run_id=run_name, source=source, stage=stage.value)
                log.info(f"Starting stage '{stage.value}'")
                value = stage_fn(value)
        except Exception as e:
            failed_stage = stage.value if stage else None
            error = {"error": type(e).__name__, "cause": str(e), "stage": failed_stage}
            with_context(logger, run_id=run_name, source=source, stage=failed_stage).error(
                f"Run '{run_name}' failed in stage '{failed_stage}': {e}", exc_info=True
            )
            self.registry.fail(run_name, error)
            return IngestionRunResult(run_name=run_name, status=RunStatus.FAILED, output=error)

        output = value.to_output() if hasattr(value, "to_output") else value
        self.registry.complete(run_name, output)
        return IngestionRunResult(run_name=run_name, status=RunStatus.SUCCEEDED, output=output)

    # ========================================================================
    # STAGES
    # ========================================================================

    def normalize_stage(self, payload: Any) -> NormalizeOutput:
        try:
            request = IngestionRequest.model_validate(payload)
        except ValidationError as e:
            raise RequestValidationError(f"Invalid ingestion request: {e}") from e

        if request.event_type == EventType.GROUP:
            report = self.normalizer.normalize_groups(request.events)
        else:
            report = self.normalizer.normalize_batch(request.events, request.source)
        return NormalizeOutput(request=request, report=report)

    def persist_stage(self, normalized: NormalizeOutput) -> PersistOutput:
        request, report = normalized.request, normalized.report

        if request.event_type == EventType.GROUP:
            persist_report = self.repository.create_group_items(report.events)
            failed = set(persist_report.failed_ids)
            ids = _unique(
                item.pk
                for item in report.events
                if group_record_id({"pk": item.pk, "sk": item.sk}) not in failed
            )
        else:
            persist_report = self.repository.batch_create_if_absent(
                report.events, source=request.source
            )
            failed = set(persist_report.failed_ids)
            ids = _unique(
                event_id
                for event_id in (identity_for(e, request.source) for e in report.events)
                if event_id not in failed
            )

        return PersistOutput(
            request=request, report=report, persist_report=persist_report, ids=ids
        )

    def index_stage(self, persisted: PersistOutput) -> IndexOutput:
        self.indexer.ensure_schema()

        # Index what the store holds, which is the first writer's content
        if persisted.request.event_type == EventType.GROUP:
            records = [item for pk in persisted.ids for item in self.repository.get_group(pk)]
            index_report = self.indexer.upsert_groups(records)
        else:
            records = self.repository.get_many(persisted.ids)
            index_report = self.indexer.upsert_many(records)

        return IndexOutput(
            persisted=persisted, saved_records=records, index_report=index_report
        )


def _unique(values) -> list[str]:
    seen: set[str] = set()
    ordered = []
    for value in values:
        if value not in seen:
            seen.add(value)
            ordered.append(value)
    return ordered


# ============================================================================
# WIRING
# ============================================================================


def build_store(settings: Settings) -> KeyValueStore:
    if settings.STORE_BACKEND == "postgres":
        from touchgrass.ingestion.storage.postgres import PostgresStore

        return PostgresStore.from_settings(settings)
    return InMemoryStore()


def build_search_engine(settings: Settings) -> SearchEngine:
    if settings.SEARCH_BACKEND == "opensearch":
        return OpenSearchClient.from_settings(settings)
    return InMemorySearchEngine()


def build_registry(settings: Settings) -> RunRegistry:
    if settings.RUN_HISTORY_DIR:
        return JsonFileRunRegistry(settings.RUN_HISTORY_DIR)
    return InMemoryRunRegistry()


def build_orchestrator(settings: Settings | None = None) -> IngestionOrchestrator:
    """
    Factory function to create an orchestrator from settings.

    Args:
        settings: Optional Settings; defaults to get_settings()

    Returns:
        Configured IngestionOrchestrator
    """
    settings = settings or get_settings()
    retry_policy = RetryPolicy(
        max_retries=settings.MAX_RETRIES, base_delay_s=settings.RETRY_BASE_DELAY
    )

    normalizer = EventNormalizer(
        config=Config(settings), max_workers=settings.NORMALIZE_WORKERS
    )
    repository = EventRepository(
        build_store(settings),
        batch_size=settings.BATCH_SIZE,
        retry_policy=retry_policy,
        write_pacing_seconds=settings.WRITE_PACING_SECONDS,
    )
    indexer = EventIndexer(
        build_search_engine(settings),
        index_name=settings.SEARCH_INDEX,
        retry_policy=retry_policy,
    )
    logger.info(
        f"Built orchestrator (store={settings.STORE_BACKEND}, "
        f"search={settings.SEARCH_BACKEND}, index={settings.SEARCH_INDEX})"
    )
    return IngestionOrchestrator(
        normalizer, repository, indexer, registry=build_registry(settings)
    )

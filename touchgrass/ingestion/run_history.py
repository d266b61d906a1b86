"""
Run history for ingestion runs.

Every run is recorded under its caller-supplied name. Starting a run
reserves the name; any later attempt to start a run with the same name is
rejected, whether the first run is still going or long finished. The
recorded request, last stage and output (or error) stay inspectable after
the run ends.
"""

from __future__ import annotations

import json
import logging
import os
import re
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from touchgrass.ingestion.errors import (
    DuplicateRunError,
    RequestValidationError,
    RunNotFoundError,
)

logger = logging.getLogger(__name__)

_RUN_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")


class RunStatus(str, Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class RunRecord(BaseModel):
    """Recorded state of one ingestion run."""

    run_name: str
    status: RunStatus = RunStatus.RUNNING
    request: Dict[str, Any] = Field(default_factory=dict)
    stage: Optional[str] = Field(default=None, description="Last stage that started")
    output: Optional[Dict[str, Any]] = None
    error: Optional[Dict[str, Any]] = None
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    finished_at: Optional[datetime] = None


def validate_run_name(run_name: Any) -> str:
    if not isinstance(run_name, str) or not _RUN_NAME_RE.match(run_name):
        raise RequestValidationError(
            f"Invalid run name {run_name!r}: use 1-128 letters, digits, '.', '_' or '-'"
        )
    return run_name


class RunRegistry(ABC):
    """
    Abstract run registry.

    Subclasses must implement _reserve, _save and _load_all; the lifecycle
    methods are shared.
    """

    def start(self, run_name: str, request: Dict[str, Any]) -> RunRecord:
        """
        Reserve run_name and record the request.

        Raises:
            DuplicateRunError: if a run with this name was ever started
        """
        validate_run_name(run_name)
        record = RunRecord(run_name=run_name, request=request)
        self._reserve(record)
        logger.info(f"Started run '{run_name}'")
        return record

    def mark_stage(self, run_name: str, stage: str) -> RunRecord:
        record = self.get(run_name)
        record.stage = stage
        record.updated_at = datetime.now(UTC)
        self._save(record)
        return record

    def complete(self, run_name: str, output: Dict[str, Any]) -> RunRecord:
        record = self.get(run_name)
        now = datetime.now(UTC)
        record.status = RunStatus.SUCCEEDED
        record.output = output
        record.updated_at = now
        record.finished_at = now
        self._save(record)
        logger.info(f"Run '{run_name}' succeeded")
        return record

    def fail(self, run_name: str, error: Dict[str, Any]) -> RunRecord:
        record = self.get(run_name)
        now = datetime.now(UTC)
        record.status = RunStatus.FAILED
        record.error = error
        record.updated_at = now
        record.finished_at = now
        self._save(record)
        logger.info(f"Run '{run_name}' failed at stage '{record.stage}'")
        return record

    def get(self, run_name: str) -> RunRecord:
        record = self._load(run_name)
        if record is None:
            raise RunNotFoundError(run_name)
        return record

    def list_runs(self) -> List[RunRecord]:
        """All recorded runs, oldest first."""
        return sorted(self._load_all(), key=lambda r: (r.started_at, r.run_name))

    @abstractmethod
    def _reserve(self, record: RunRecord) -> None:
        """Atomically store a new record; raise DuplicateRunError if the name exists."""

    @abstractmethod
    def _save(self, record: RunRecord) -> None:
        """Overwrite an existing record."""

    @abstractmethod
    def _load(self, run_name: str) -> Optional[RunRecord]:
        """Return the record or None."""

    @abstractmethod
    def _load_all(self) -> List[RunRecord]:
        """Return every record."""


class InMemoryRunRegistry(RunRegistry):
    """Lock-guarded registry living for the life of the process."""

    def __init__(self) -> None:
        self._runs: Dict[str, RunRecord] = {}
        self._lock = threading.Lock()

    def _reserve(self, record: RunRecord) -> None:
        with self._lock:
            if record.run_name in self._runs:
                raise DuplicateRunError(record.run_name)
            self._runs[record.run_name] = record.model_copy(deep=True)

    def _save(self, record: RunRecord) -> None:
        with self._lock:
            self._runs[record.run_name] = record.model_copy(deep=True)

    def _load(self, run_name: str) -> Optional[RunRecord]:
        with self._lock:
            record = self._runs.get(run_name)
            return record.model_copy(deep=True) if record else None

    def _load_all(self) -> List[RunRecord]:
        with self._lock:
            return [r.model_copy(deep=True) for r in self._runs.values()]


class JsonFileRunRegistry(RunRegistry):
    """
    One JSON file per run under a directory.

    The record is written to a private temp file first and then hard-linked
    into place. Linking fails if the name exists, so exactly one of two
    processes starting the same run name wins. Readers never see a partially
    written record.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, run_name: str) -> Path:
        return self.directory / f"{run_name}.json"

    def _reserve(self, record: RunRecord) -> None:
        path = self._path(record.run_name)
        tmp_path = self.directory / f".{record.run_name}.{uuid.uuid4().hex}.reserve"
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(record.model_dump_json(indent=2))
        try:
            os.link(tmp_path, path)
        except FileExistsError as e:
            raise DuplicateRunError(record.run_name) from e
        finally:
            tmp_path.unlink()

    def _save(self, record: RunRecord) -> None:
        path = self._path(record.run_name)
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(record.model_dump_json(indent=2))
        os.replace(tmp_path, path)

    def _load(self, run_name: str) -> Optional[RunRecord]:
        validate_run_name(run_name)
        path = self._path(run_name)
        if not path.exists():
            return None
        return self._read(path)

    def _load_all(self) -> List[RunRecord]:
        return [self._read(path) for path in sorted(self.directory.glob("*.json"))]

    @staticmethod
    def _read(path: Path) -> RunRecord:
        with open(path, encoding="utf-8") as f:
            return RunRecord.model_validate(json.load(f))

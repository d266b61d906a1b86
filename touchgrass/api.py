"""
touchgrass.api.

FastAPI entrypoint for the ingestion core.

Responsibilities
----------------
• Starting ingestion runs
• Inspecting recorded runs (input, last stage, output or error)
• Rebuilding the search index from the store
• Health monitoring

Run with ``uvicorn touchgrass.api:app``.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Body, Depends, FastAPI, HTTPException
from fastapi.responses import JSONResponse

from touchgrass import __version__
from touchgrass.configs.settings import get_settings
from touchgrass.ingestion.errors import (
    DuplicateRunError,
    RequestValidationError,
    RunNotFoundError,
)
from touchgrass.ingestion.orchestrator import IngestionOrchestrator, build_orchestrator
from touchgrass.monitoring.logging import configure_logging

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# APP INITIALIZATION
# ---------------------------------------------------------------------------

# Process-wide orchestrator; the in-memory backends live as long as it does
_ORCHESTRATOR: IngestionOrchestrator | None = None


def get_orchestrator() -> IngestionOrchestrator:
    """
    Get or build the orchestrator from settings.

    Returns
    -------
    IngestionOrchestrator
        The process-wide orchestrator.
    """
    global _ORCHESTRATOR
    if _ORCHESTRATOR is None:
        _ORCHESTRATOR = build_orchestrator(get_settings())
    return _ORCHESTRATOR


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging on startup and release backends on shutdown."""
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL, json_logs=settings.LOG_JSON)

    yield

    global _ORCHESTRATOR
    if _ORCHESTRATOR is not None:
        _ORCHESTRATOR.repository.store.close()
        _ORCHESTRATOR.indexer.engine.close()
        _ORCHESTRATOR = None


app = FastAPI(
    title="TouchGrass Ingestion API",
    version=__version__,
    description="Normalize, persist and index event listings.",
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# HEALTH ENDPOINT
# ---------------------------------------------------------------------------


@app.get("/health", tags=["Monitoring"])
def health_check() -> dict[str, str]:
    """
    Check API health.

    Returns
    -------
    dict
        Service status indicator.
    """
    return {"status": "ok"}


# ---------------------------------------------------------------------------
# INGESTION ENDPOINTS
# ---------------------------------------------------------------------------


@app.post("/ingestions", tags=["Ingestion"])
def start_ingestion(
    payload: dict[str, Any] = Body(...),
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
) -> JSONResponse:
    """
    Run one ingestion batch.

    The body is ``{runName?, events, source, eventType}``. Without a
    ``runName`` a unique one is generated.

    Returns
    -------
    JSONResponse
        200 with the run output, 422 when the request itself is invalid,
        500 when a later stage failed. The body is always
        ``{runName, status, output}``.

    Raises
    ------
    HTTPException
        409 if the run name was already used.
    """
    request = dict(payload)
    run_name = request.pop("runName", None) or f"run-{uuid.uuid4().hex}"

    try:
        result = orchestrator.run(request, run_name)
    except DuplicateRunError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except RequestValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    status_code = 200
    if not result.succeeded:
        status_code = 422 if result.output.get("error") == "RequestValidationError" else 500

    return JSONResponse(
        status_code=status_code,
        content={
            "runName": result.run_name,
            "status": result.status.value,
            "output": result.output,
        },
    )


@app.get("/ingestions", tags=["Ingestion"])
def list_ingestions(
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
) -> list[dict[str, Any]]:
    """List recorded runs, oldest first."""
    return [run.model_dump(mode="json") for run in orchestrator.registry.list_runs()]


@app.get("/ingestions/{run_name}", tags=["Ingestion"])
def get_ingestion(
    run_name: str,
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """
    Inspect one run.

    Raises
    ------
    HTTPException
        404 if no run is recorded under this name.
    """
    try:
        return orchestrator.registry.get(run_name).model_dump(mode="json")
    except (RunNotFoundError, RequestValidationError) as e:
        raise HTTPException(status_code=404, detail=str(e))


# ---------------------------------------------------------------------------
# INDEX ENDPOINTS
# ---------------------------------------------------------------------------


@app.post("/index/rebuild", tags=["Index"])
def rebuild_index(
    orchestrator: IngestionOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    """Drop the search index and re-project every stored record."""
    report = orchestrator.indexer.rebuild_all(orchestrator.repository)
    return {
        "indexedCount": report.indexed_count,
        "failedIds": report.failed_ids,
        "duplicateIds": report.duplicate_ids,
    }

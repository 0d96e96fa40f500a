"""FastAPI server for Serials.

Exposes the scan operations consumed by the admin UI:
- GET  /api/sources
- POST /api/sources/{source_id}/scan
- GET  /api/sources/{source_id}/status
- GET  /api/sources/{source_id}/chapters
- GET  /api/sources/{source_id}/last-scan
- GET  /api/sources/{source_id}/scans
- GET  /api/sources/{source_id}/changes
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .config import SerialsConfig, get_config
from .domain import ChangeKind, ScanStatus
from .errors import (
    FetchFailed,
    PersistFailed,
    ScanAlreadyInProgress,
    ScanError,
    SourceDisabled,
    SourceNotFound,
    StoreUnavailable,
)
from .fetcher import HtmlListingFetcher
from .logging_config import get_logger
from .orchestrator import ScanOrchestrator
from .store import SqlScanHistoryStore

logger = get_logger(__name__)


# --- Response models ---


class ChangeOut(BaseModel):
    model_config = {"from_attributes": True}

    kind: ChangeKind
    chapter_id: str
    old_title: Optional[str] = None
    new_title: Optional[str] = None
    old_url: Optional[str] = None
    new_url: Optional[str] = None


class ScanOut(BaseModel):
    model_config = {"from_attributes": True}

    id: Optional[int] = None
    source_id: str
    date: datetime
    total: int
    new: List[str]
    updated: List[str]
    removed: List[str]
    changes: List[ChangeOut]


class ChapterOut(BaseModel):
    model_config = {"from_attributes": True}

    id: str
    title: str
    url: Optional[str]
    position: int
    fingerprint: str
    removed: bool


class StatusOut(BaseModel):
    source_id: str
    status: ScanStatus


class SourceOut(BaseModel):
    id: str
    name: str
    author: str
    url: str
    disabled: bool
    status: ScanStatus
    last_scan: Optional[ScanOut] = None


# --- Wiring ---


def build_orchestrator(config: SerialsConfig) -> ScanOrchestrator:
    fetcher = HtmlListingFetcher(
        timeout=config.fetcher.timeout_seconds,
        user_agent=config.fetcher.user_agent,
    )
    return ScanOrchestrator(SqlScanHistoryStore(), fetcher, scanner=config.scanner)


@asynccontextmanager
async def _lifespan(app: FastAPI):
    if getattr(app.state, "orchestrator", None) is None:
        app.state.orchestrator = build_orchestrator(get_config())
    yield
    orchestrator = app.state.orchestrator
    await orchestrator.wait_idle()
    close = getattr(orchestrator.fetcher, "close", None)
    if close is not None:
        await close()


app = FastAPI(title="Serials", lifespan=_lifespan)
app.state.orchestrator = None


def get_orchestrator(request: Request) -> ScanOrchestrator:
    orchestrator = request.app.state.orchestrator
    if orchestrator is None:
        raise HTTPException(status_code=503, detail="Scanner not initialised")
    return orchestrator


_ERROR_STATUS = {
    SourceNotFound: 404,
    ScanAlreadyInProgress: 409,
    SourceDisabled: 422,
    FetchFailed: 502,
    PersistFailed: 503,
    StoreUnavailable: 503,
}


@app.exception_handler(ScanError)
async def _scan_error_handler(request: Request, exc: ScanError) -> JSONResponse:
    status_code = _ERROR_STATUS.get(type(exc), 500)
    return JSONResponse(
        status_code=status_code,
        content={
            "error": type(exc).__name__,
            "source_id": exc.source_id,
            "detail": exc.message,
            "suggestion": exc.suggestion,
        },
    )


async def _require_source(orchestrator: ScanOrchestrator, source_id: str) -> None:
    if await orchestrator.store.load_source(source_id) is None:
        raise SourceNotFound(source_id)


# --- Routes ---


@app.get("/api/sources", response_model=List[SourceOut])
async def list_sources(orchestrator: ScanOrchestrator = Depends(get_orchestrator)):
    sources = await orchestrator.store.list_sources()
    result = []
    for source in sources:
        last = await orchestrator.last_scan(source.id)
        result.append(SourceOut(
            id=source.id,
            name=source.name,
            author=source.author,
            url=source.url,
            disabled=source.disabled,
            status=orchestrator.current_status(source.id),
            last_scan=ScanOut.model_validate(last) if last else None,
        ))
    return result


@app.post("/api/sources/{source_id}/scan", response_model=ScanOut)
async def run_scan(source_id: str, orchestrator: ScanOrchestrator = Depends(get_orchestrator)):
    scan = await orchestrator.run_scan(source_id)
    return ScanOut.model_validate(scan)


@app.get("/api/sources/{source_id}/status", response_model=StatusOut)
async def scan_status(source_id: str, orchestrator: ScanOrchestrator = Depends(get_orchestrator)):
    await _require_source(orchestrator, source_id)
    return StatusOut(source_id=source_id, status=orchestrator.current_status(source_id))


@app.get("/api/sources/{source_id}/chapters", response_model=List[ChapterOut])
async def list_chapters(
    source_id: str,
    include_removed: bool = Query(True),
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
):
    await _require_source(orchestrator, source_id)
    chapters = await orchestrator.chapters(source_id)
    if not include_removed:
        chapters = [c for c in chapters if not c.removed]
    return [ChapterOut.model_validate(c) for c in chapters]


@app.get("/api/sources/{source_id}/last-scan", response_model=ScanOut)
async def last_scan(source_id: str, orchestrator: ScanOrchestrator = Depends(get_orchestrator)):
    await _require_source(orchestrator, source_id)
    scan = await orchestrator.last_scan(source_id)
    if scan is None:
        raise HTTPException(status_code=404, detail="Source has not been scanned yet")
    return ScanOut.model_validate(scan)


@app.get("/api/sources/{source_id}/scans", response_model=List[ScanOut])
async def list_scans(
    source_id: str,
    limit: int = Query(20, ge=1, le=200),
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
):
    await _require_source(orchestrator, source_id)
    return [ScanOut.model_validate(s) for s in await orchestrator.scans(source_id, limit)]


@app.get("/api/sources/{source_id}/changes", response_model=List[ChangeOut])
async def list_changes(
    source_id: str,
    limit: int = Query(100, ge=1, le=1000),
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
):
    await _require_source(orchestrator, source_id)
    return [ChangeOut.model_validate(c) for c in await orchestrator.changes(source_id, limit)]


def run_server(config: SerialsConfig, host: Optional[str], port: Optional[int]) -> None:
    """Run the FastAPI app with Uvicorn."""
    import uvicorn

    effective_host = host or config.server_host
    effective_port = port or config.server_port

    app.state.orchestrator = build_orchestrator(config)
    logger.info(f"Serials API at http://{effective_host}:{effective_port}/api/sources")

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    uvicorn.run(
        app,
        host=effective_host,
        port=effective_port,
        log_level="info",
        log_config=None,
    )

"""Scan history store: where chapters and scan records live between scans.

``ScanHistoryStore`` is what the orchestrator depends on. ``SqlScanHistoryStore``
backs it with the SQLite database; session work runs in a worker thread so the
event loop only suspends while it waits.
"""

from __future__ import annotations

import asyncio
from typing import Callable, List, Optional, Protocol, Sequence, TypeVar

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from .database import get_engine
from .domain import Change, Chapter, Scan, SourceSnapshot
from .errors import StoreError
from .logging_config import get_logger
from .repository import Repository, scan_from_record, snapshot_from_source

logger = get_logger(__name__)

T = TypeVar("T")


class ScanHistoryStore(Protocol):
    async def load_source(self, source_id: str) -> Optional[SourceSnapshot]:
        ...

    async def list_sources(self) -> List[SourceSnapshot]:
        ...

    async def load_chapters(self, source_id: str) -> List[Chapter]:
        ...

    async def save_scan(
        self, source_id: str, chapters: Sequence[Chapter], scan: Scan
    ) -> Scan:
        """Persist ``chapters`` and append ``scan`` as one atomic unit.

        Returns the stored scan (with its id). Raises StoreError, in which
        case nothing was written.
        """
        ...

    async def last_scan(self, source_id: str) -> Optional[Scan]:
        ...

    async def list_scans(self, source_id: str, limit: int = 20) -> List[Scan]:
        ...

    async def list_changes(self, source_id: str, limit: int = 100) -> List[Change]:
        ...


class SqlScanHistoryStore:
    """ScanHistoryStore over SQLModel sessions."""

    def __init__(self, engine: Optional[Engine] = None):
        self._engine = engine

    @property
    def engine(self) -> Engine:
        return self._engine or get_engine()

    def _run(self, work: Callable[[Repository], T]) -> T:
        with Session(self.engine) as session:
            repo = Repository(session)
            try:
                return work(repo)
            except SQLAlchemyError as exc:
                repo.rollback()
                raise StoreError(f"{type(exc).__name__}: {exc}") from exc

    async def _call(self, work: Callable[[Repository], T]) -> T:
        return await asyncio.to_thread(self._run, work)

    async def load_source(self, source_id: str) -> Optional[SourceSnapshot]:
        def work(repo: Repository) -> Optional[SourceSnapshot]:
            source = repo.get_source(source_id)
            return snapshot_from_source(source) if source else None

        return await self._call(work)

    async def list_sources(self) -> List[SourceSnapshot]:
        return await self._call(
            lambda repo: [snapshot_from_source(s) for s in repo.list_sources()]
        )

    async def load_chapters(self, source_id: str) -> List[Chapter]:
        return await self._call(lambda repo: repo.get_chapters(source_id))

    def save_scan_sync(
        self, source_id: str, chapters: Sequence[Chapter], scan: Scan
    ) -> Scan:
        def work(repo: Repository) -> Scan:
            if repo.get_source(source_id) is None:
                raise StoreError(f"Source '{source_id}' no longer exists")
            repo.replace_chapters(source_id, chapters)
            record = repo.add_scan(scan)
            stored = scan_from_record(record)
            repo.commit()
            return stored

        try:
            return self._run(work)
        except StoreError:
            logger.error(f"✗ Scan of {source_id} rolled back")
            raise

    async def save_scan(
        self, source_id: str, chapters: Sequence[Chapter], scan: Scan
    ) -> Scan:
        return await asyncio.to_thread(self.save_scan_sync, source_id, chapters, scan)

    async def last_scan(self, source_id: str) -> Optional[Scan]:
        return await self._call(lambda repo: repo.get_last_scan(source_id))

    async def list_scans(self, source_id: str, limit: int = 20) -> List[Scan]:
        return await self._call(lambda repo: repo.list_scans(source_id, limit))

    async def list_changes(self, source_id: str, limit: int = 100) -> List[Change]:
        return await self._call(lambda repo: repo.list_changes(source_id, limit))


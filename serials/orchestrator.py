"""Scan orchestrator: per-source scan lifecycle.

Each source is either IDLE or SCANNING. ``run_scan`` flips a source to
SCANNING before its first ``await``, so a second call for the same source is
rejected with ScanAlreadyInProgress instead of being queued. Every exit path,
success or failure, returns the source to IDLE.

A scan runs as a task owned by the orchestrator. Callers await it through
``asyncio.shield``: abandoning the call does not cancel the scan, which still
completes and persists.
"""

from __future__ import annotations

import asyncio
import functools
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Set, Union

from .config import ScannerConfig
from .diff import diff
from .domain import Change, Chapter, Scan, ScanStatus, SourceSnapshot
from .errors import (
    FetchError,
    FetchFailed,
    PersistFailed,
    ScanAlreadyInProgress,
    ScanError,
    SourceDisabled,
    SourceNotFound,
    StoreError,
    StoreUnavailable,
)
from .fetcher import ListingFetcher
from .logging_config import get_logger
from .reconciler import reconcile
from .store import ScanHistoryStore

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScanOrchestrator:
    def __init__(
        self,
        store: ScanHistoryStore,
        fetcher: ListingFetcher,
        scanner: Optional[ScannerConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.fetcher = fetcher
        self.scanner = scanner or ScannerConfig()
        self.clock = clock
        self._scanning: Set[str] = set()
        self._tasks: Set[asyncio.Task] = set()

    # --- Status ---

    def current_status(self, source_id: str) -> ScanStatus:
        if source_id in self._scanning:
            return ScanStatus.SCANNING
        return ScanStatus.IDLE

    def _begin(self, source_id: str) -> None:
        if source_id in self._scanning:
            logger.warning(f"[SCAN] {source_id} already scanning, rejected")
            raise ScanAlreadyInProgress(source_id)
        self._scanning.add(source_id)

    def _finish(self, source_id: str) -> None:
        self._scanning.discard(source_id)

    # --- Scanning ---

    async def run_scan(self, source_id: str) -> Scan:
        """Scan one source and return the stored Scan record.

        Raises ScanAlreadyInProgress, SourceNotFound, SourceDisabled,
        StoreUnavailable, FetchFailed or PersistFailed. Stored state is untouched on failure.
        """
        self._begin(source_id)
        task = asyncio.create_task(self._scan(source_id), name=f"scan:{source_id}")
        self._tasks.add(task)
        task.add_done_callback(functools.partial(self._on_task_done, source_id))
        return await asyncio.shield(task)

    def _on_task_done(self, source_id: str, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            # Cancelled before its first step: _scan's finally never ran
            self._finish(source_id)
            return
        # Retrieve the exception so an abandoned scan never goes unreported
        exc = task.exception()
        if exc is not None and not isinstance(exc, ScanError):
            logger.error(f"✗ {task.get_name()} crashed: {exc!r}")

    async def _load(self, source_id: str) -> tuple[SourceSnapshot, List[Chapter]]:
        try:
            source = await self.store.load_source(source_id)
            if source is None:
                raise SourceNotFound(source_id)
            if source.disabled:
                raise SourceDisabled(source_id)
            return source, await self.store.load_chapters(source_id)
        except StoreError as exc:
            logger.error(f"✗ {source_id} - reading stored state failed: {exc.message}")
            raise StoreUnavailable(source_id, exc.message) from exc

    async def _scan(self, source_id: str) -> Scan:
        try:
            source, stored = await self._load(source_id)

            logger.info(f"[SCAN] {source.name} ({len(stored)} stored chapters)")

            try:
                fetched = await self.fetcher.fetch(source)
            except FetchError as exc:
                logger.error(f"✗ {source.name} - fetch failed: {exc.message}")
                raise FetchFailed(source_id, exc.message) from exc

            settings = source.settings
            result = diff(
                stored,
                fetched,
                url_unstable=settings.url_unstable,
                base_url=source.url,
                tracking_params=self.scanner.tracking_params,
            )
            outcome = reconcile(
                source,
                stored,
                result,
                scanned_at=self.clock(),
                removal_policy=settings.removal_policy or self.scanner.removal_policy,
                preserve_order=(
                    settings.preserve_order
                    if settings.preserve_order is not None
                    else self.scanner.preserve_order
                ),
            )

            try:
                scan = await self.store.save_scan(source_id, outcome.chapters, outcome.scan)
            except StoreError as exc:
                raise PersistFailed(source_id, exc.message) from exc

            logger.info(
                f"✓ {source.name}: {scan.total} remote, [+] {len(scan.new)} new, "
                f"[~] {len(scan.updated)} updated, [-] {len(scan.removed)} removed"
                + (f", [!] {len(outcome.warnings)} duplicate keys" if outcome.warnings else "")
            )
            return scan
        finally:
            self._finish(source_id)

    async def run_all(
        self, source_ids: Optional[Iterable[str]] = None
    ) -> Dict[str, Union[Scan, ScanError]]:
        """Scan several sources one after another (all enabled ones by default).

        Failures are collected per source instead of aborting the batch.
        """
        if source_ids is None:
            sources = await self.store.list_sources()
            source_ids = [s.id for s in sources if not s.disabled]

        outcomes: Dict[str, Union[Scan, ScanError]] = {}
        for source_id in source_ids:
            try:
                outcomes[source_id] = await self.run_scan(source_id)
            except ScanError as exc:
                outcomes[source_id] = exc
        return outcomes

    async def wait_idle(self) -> None:
        """Wait for every in-flight scan, including abandoned ones."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # --- Read accessors ---

    async def chapters(self, source_id: str) -> List[Chapter]:
        return await self.store.load_chapters(source_id)

    async def last_scan(self, source_id: str) -> Optional[Scan]:
        return await self.store.last_scan(source_id)

    async def scans(self, source_id: str, limit: int = 20) -> List[Scan]:
        return await self.store.list_scans(source_id, limit)

    async def changes(self, source_id: str, limit: int = 100) -> List[Change]:
        return await self.store.list_changes(source_id, limit)

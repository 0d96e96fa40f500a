"""Shared fixtures: in-memory collaborators and a temporary SQLite database."""

from __future__ import annotations

import asyncio
import dataclasses
from datetime import datetime, timezone
from typing import List, Optional, Sequence

import pytest

from serials.domain import Change, Chapter, RawEntry, Scan, SourceSnapshot
from serials.errors import StoreError
from serials.identity import fingerprint


FIXED_NOW = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def make_chapter(
    chapter_id: str,
    url: Optional[str],
    title: str = "",
    position: int = 0,
    source_id: str = "src",
    removed: bool = False,
) -> Chapter:
    title = title or chapter_id
    return Chapter(
        id=chapter_id,
        source_id=source_id,
        title=title,
        url=url,
        position=position,
        fingerprint=fingerprint(title, url),
        removed=removed,
    )


class MemoryStore:
    """ScanHistoryStore keeping whole snapshots in dicts.

    ``fail_saves`` makes save_scan raise StoreError before writing anything;
    source ids in ``fail_reads`` make load_chapters raise StoreError.
    """

    def __init__(self):
        self.sources: dict = {}
        self.chapters: dict = {}
        self.scans: dict = {}
        self.fail_saves = False
        self.fail_reads: set = set()
        self.save_calls = 0

    def add_source(self, source: SourceSnapshot, chapters: Sequence[Chapter] = ()) -> None:
        self.sources[source.id] = source
        self.chapters[source.id] = tuple(chapters)
        self.scans.setdefault(source.id, ())

    async def load_source(self, source_id: str) -> Optional[SourceSnapshot]:
        return self.sources.get(source_id)

    async def list_sources(self) -> List[SourceSnapshot]:
        return sorted(self.sources.values(), key=lambda s: s.name)

    async def load_chapters(self, source_id: str) -> List[Chapter]:
        await asyncio.sleep(0)
        if source_id in self.fail_reads:
            raise StoreError("database is locked")
        return list(self.chapters.get(source_id, ()))

    async def save_scan(self, source_id: str, chapters: Sequence[Chapter], scan: Scan) -> Scan:
        self.save_calls += 1
        await asyncio.sleep(0)
        if self.fail_saves:
            raise StoreError("disk full")
        history = self.scans.get(source_id, ())
        stored = dataclasses.replace(scan, id=len(history) + 1)
        self.chapters[source_id] = tuple(chapters)
        self.scans[source_id] = history + (stored,)
        return stored

    async def last_scan(self, source_id: str) -> Optional[Scan]:
        history = self.scans.get(source_id, ())
        return history[-1] if history else None

    async def list_scans(self, source_id: str, limit: int = 20) -> List[Scan]:
        return list(reversed(self.scans.get(source_id, ())))[:limit]

    async def list_changes(self, source_id: str, limit: int = 100) -> List[Change]:
        changes: List[Change] = []
        for scan in reversed(self.scans.get(source_id, ())):
            changes.extend(reversed(scan.changes))
        return changes[:limit]


class FakeFetcher:
    """Returns canned listings per source id; can block until released."""

    def __init__(self):
        self.listings: dict = {}
        self.calls: List[str] = []
        self.gate: Optional[asyncio.Event] = None
        self.started: Optional[asyncio.Event] = None

    def set(self, source_id: str, listing) -> None:
        self.listings[source_id] = listing

    async def fetch(self, source: SourceSnapshot) -> List[RawEntry]:
        self.calls.append(source.id)
        if self.started is not None:
            self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        listing = self.listings.get(source.id, [])
        if isinstance(listing, Exception):
            raise listing
        return list(listing)

    async def close(self) -> None:
        pass


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def fake_fetcher() -> FakeFetcher:
    return FakeFetcher()


@pytest.fixture
def source() -> SourceSnapshot:
    return SourceSnapshot(id="src", name="Test Serial", url="https://example.com/toc/")


@pytest.fixture
def test_db(tmp_path, monkeypatch):
    """Point serials.database at a temporary SQLite file and create the schema."""
    from serials import database

    db_file = tmp_path / "serials.db"
    monkeypatch.setattr("serials.database.DB_PATH", db_file, raising=True)
    engine = database.make_engine(f"sqlite:///{db_file}")
    monkeypatch.setattr("serials.database.engine", engine, raising=True)

    database.init_db()
    yield engine
    engine.dispose()


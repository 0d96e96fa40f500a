"""Data Access Layer for Serials.

Encapsulates database operations using SQLModel/SQLAlchemy and converts
between table rows and the immutable values in ``domain``.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from sqlmodel import Session, col, func, select

from .domain import Change, ChangeKind, Chapter, ImportSettings, Scan, SourceSnapshot
from .models import ChangeRecord, ScanRecord, Source, StoredChapter


def chapter_from_row(row: StoredChapter) -> Chapter:
    return Chapter(
        id=row.id,
        source_id=row.source_id,
        title=row.title,
        url=row.url,
        position=row.position,
        fingerprint=row.fingerprint,
        removed=row.removed,
    )


def change_from_row(row: ChangeRecord) -> Change:
    return Change(
        kind=ChangeKind(row.kind),
        chapter_id=row.chapter_id,
        old_title=row.old_title,
        new_title=row.new_title,
        old_url=row.old_url,
        new_url=row.new_url,
    )


def scan_from_record(record: ScanRecord) -> Scan:
    return Scan(
        id=record.id,
        source_id=record.source_id,
        date=record.date,
        total=record.total,
        new=tuple(record.new_ids),
        updated=tuple(record.updated_ids),
        removed=tuple(record.removed_ids),
        changes=tuple(change_from_row(c) for c in sorted(record.changes, key=lambda c: c.id)),
    )


def snapshot_from_source(source: Source) -> SourceSnapshot:
    return SourceSnapshot(
        id=source.id,
        name=source.name,
        author=source.author,
        url=source.url,
        disabled=source.disabled,
        settings=ImportSettings.model_validate(source.import_settings or {}),
    )


class Repository:
    """Data access for sources, chapters and scan history.

    Nothing is committed here; callers control the transaction.
    """

    def __init__(self, session: Session):
        self.session = session

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    # --- Sources ---

    def create_source(
        self,
        *,
        name: str,
        url: str,
        author: str = "",
        image_url: str = "",
        settings: Optional[ImportSettings] = None,
        disabled: bool = False,
    ) -> Source:
        source = Source(
            name=name,
            url=url,
            author=author,
            image_url=image_url,
            disabled=disabled,
            import_settings=(settings or ImportSettings()).model_dump(
                mode="json", exclude_none=True
            ),
        )
        self.session.add(source)
        self.session.flush()
        self.session.refresh(source)
        return source

    def get_source(self, source_id: str) -> Optional[Source]:
        return self.session.get(Source, source_id)

    def list_sources(self) -> List[Source]:
        return list(self.session.exec(select(Source).order_by(Source.name)).all())

    # --- Chapters ---

    def get_chapters(self, source_id: str) -> List[Chapter]:
        statement = (
            select(StoredChapter)
            .where(StoredChapter.source_id == source_id)
            .order_by(StoredChapter.position)
        )
        return [chapter_from_row(row) for row in self.session.exec(statement).all()]

    def count_chapters(self, source_id: str, include_removed: bool = True) -> int:
        statement = (
            select(func.count())
            .select_from(StoredChapter)
            .where(StoredChapter.source_id == source_id)
        )
        if not include_removed:
            statement = statement.where(StoredChapter.removed == False)  # noqa: E712
        return self.session.exec(statement).one()

    def replace_chapters(self, source_id: str, chapters: Sequence[Chapter]) -> None:
        """Make the stored chapter set of ``source_id`` equal ``chapters``.

        Rows missing from ``chapters`` are deleted; the rest are updated in
        place or inserted.
        """
        statement = select(StoredChapter).where(StoredChapter.source_id == source_id)
        existing = {row.id: row for row in self.session.exec(statement).all()}
        wanted = {c.id for c in chapters}

        for chapter_id, row in existing.items():
            if chapter_id not in wanted:
                self.session.delete(row)

        for chapter in chapters:
            row = existing.get(chapter.id)
            if row is None:
                row = StoredChapter(id=chapter.id, source_id=source_id,
                                    title=chapter.title, url=chapter.url,
                                    position=chapter.position,
                                    fingerprint=chapter.fingerprint,
                                    removed=chapter.removed)
            else:
                row.title = chapter.title
                row.url = chapter.url
                row.position = chapter.position
                row.fingerprint = chapter.fingerprint
                row.removed = chapter.removed
            self.session.add(row)

        self.session.flush()

    # --- Scans / changes ---

    def add_scan(self, scan: Scan) -> ScanRecord:
        """Append a scan record and its change rows."""
        record = ScanRecord(
            source_id=scan.source_id,
            date=scan.date,
            total=scan.total,
            new_ids=list(scan.new),
            updated_ids=list(scan.updated),
            removed_ids=list(scan.removed),
        )
        self.session.add(record)
        self.session.flush()

        for change in scan.changes:
            self.session.add(ChangeRecord(
                scan_id=record.id,
                source_id=scan.source_id,
                kind=change.kind.value,
                chapter_id=change.chapter_id,
                old_title=change.old_title,
                new_title=change.new_title,
                old_url=change.old_url,
                new_url=change.new_url,
            ))
        self.session.flush()
        self.session.refresh(record)
        return record

    def list_scans(self, source_id: str, limit: int = 20) -> List[Scan]:
        statement = (
            select(ScanRecord)
            .where(ScanRecord.source_id == source_id)
            .order_by(col(ScanRecord.id).desc())
            .limit(limit)
        )
        return [scan_from_record(r) for r in self.session.exec(statement).all()]

    def get_last_scan(self, source_id: str) -> Optional[Scan]:
        scans = self.list_scans(source_id, limit=1)
        return scans[0] if scans else None

    def list_changes(self, source_id: str, limit: int = 100) -> List[Change]:
        """Most recent changes first."""
        statement = (
            select(ChangeRecord)
            .where(ChangeRecord.source_id == source_id)
            .order_by(col(ChangeRecord.id).desc())
            .limit(limit)
        )
        return [change_from_row(r) for r in self.session.exec(statement).all()]

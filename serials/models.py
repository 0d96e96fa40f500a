"""SQLModel database models for Serials."""

import uuid
from datetime import datetime, timezone
from typing import Optional, List

from sqlalchemy import Column, JSON
from sqlmodel import Field, SQLModel, Relationship


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SourceBase(SQLModel):
    name: str
    author: str = ""
    url: str
    image_url: str = ""
    disabled: bool = False
    import_settings: dict = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))


class Source(SourceBase, table=True):
    __tablename__ = "sources"
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    created_at: datetime = Field(default_factory=_utcnow)

    # Relationships
    chapters: List["StoredChapter"] = Relationship(
        back_populates="source",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )
    scans: List["ScanRecord"] = Relationship(
        back_populates="source",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


class StoredChapter(SQLModel, table=True):
    __tablename__ = "chapters"
    id: str = Field(primary_key=True)
    source_id: str = Field(foreign_key="sources.id", index=True)
    title: str
    url: Optional[str] = None
    position: int
    fingerprint: str
    removed: bool = False

    source: Optional[Source] = Relationship(back_populates="chapters")


class ScanRecord(SQLModel, table=True):
    __tablename__ = "scans"
    id: Optional[int] = Field(default=None, primary_key=True)
    source_id: str = Field(foreign_key="sources.id", index=True)
    date: datetime
    total: int = 0
    new_ids: list = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    updated_ids: list = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    removed_ids: list = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    source: Optional[Source] = Relationship(back_populates="scans")
    changes: List["ChangeRecord"] = Relationship(
        back_populates="scan",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


class ChangeRecord(SQLModel, table=True):
    __tablename__ = "changes"
    id: Optional[int] = Field(default=None, primary_key=True)
    scan_id: int = Field(foreign_key="scans.id", index=True)
    source_id: str = Field(foreign_key="sources.id", index=True)
    kind: str
    chapter_id: str
    old_title: Optional[str] = None
    new_title: Optional[str] = None
    old_url: Optional[str] = None
    new_url: Optional[str] = None

    scan: Optional[ScanRecord] = Relationship(back_populates="changes")

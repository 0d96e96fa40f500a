"""Value types passed between the reconciliation steps.

Everything here is immutable. The diff engine and reconciler take these
snapshots and return new ones; only the store turns them into rows.
"""

from __future__ import annotations

import dataclasses
import enum
from datetime import datetime
from typing import NamedTuple, Optional

from pydantic import BaseModel


class RemovalPolicy(str, enum.Enum):
    RETAIN = "retain"
    PRUNE = "prune"


class ImportKind(str, enum.Enum):
    TOC = "TOCSettings"
    MENU = "MenuSettings"


class ChangeKind(str, enum.Enum):
    NEW = "new"
    UPDATED = "updated"
    REMOVED = "removed"


class ScanStatus(str, enum.Enum):
    IDLE = "idle"
    SCANNING = "scanning"


class ImportSettings(BaseModel):
    """Per-source scan configuration, stored as JSON on the source row.

    ``removal_policy`` and ``preserve_order`` fall back to the ``[scanner]``
    defaults from config.ini when left unset.
    """

    model_config = {"extra": "ignore", "frozen": True}

    tag: ImportKind = ImportKind.TOC
    selector: Optional[str] = None
    url_unstable: bool = False
    removal_policy: Optional[RemovalPolicy] = None
    preserve_order: Optional[bool] = None


class ChapterKey(NamedTuple):
    kind: str
    value: str

    def __str__(self) -> str:
        return f"{self.kind}:{self.value}"


@dataclasses.dataclass(frozen=True)
class RawEntry:
    """A chapter candidate as the fetcher saw it."""

    title: str
    url: Optional[str] = None
    order: Optional[int] = None


@dataclasses.dataclass(frozen=True)
class Chapter:
    id: str
    source_id: str
    title: str
    url: Optional[str]
    position: int
    fingerprint: str
    removed: bool = False


@dataclasses.dataclass(frozen=True)
class SourceSnapshot:
    """Read-only view of a source, enough to fetch and reconcile it."""

    id: str
    name: str
    url: str
    settings: ImportSettings = dataclasses.field(default_factory=ImportSettings)
    disabled: bool = False
    author: str = ""


@dataclasses.dataclass(frozen=True)
class Change:
    kind: ChangeKind
    chapter_id: str
    old_title: Optional[str] = None
    new_title: Optional[str] = None
    old_url: Optional[str] = None
    new_url: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class Scan:
    source_id: str
    date: datetime
    total: int
    new: tuple[str, ...] = ()
    updated: tuple[str, ...] = ()
    removed: tuple[str, ...] = ()
    changes: tuple[Change, ...] = ()
    id: Optional[int] = None


@dataclasses.dataclass(frozen=True)
class DuplicateKeyWarning:
    """Two fetched entries resolved to one key; ``dropped`` lost to ``kept``."""

    key: ChapterKey
    dropped: RawEntry
    kept: RawEntry

    def __str__(self) -> str:
        return (
            f"duplicate chapter key {self.key}: dropped {self.dropped.title!r}, "
            f"kept {self.kept.title!r}"
        )

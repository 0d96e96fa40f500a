"""Diff engine: align stored chapters with a freshly fetched listing.

Every stored chapter ends up in exactly one of unchanged / updated / removed,
and every surviving fetched entry in exactly one of unchanged / updated / new.
Classification depends only on content, with one exception: when two fetched
entries share a key, the later one in fetch order wins.
"""

from __future__ import annotations

import dataclasses
import enum
from typing import Iterable, Optional, Sequence

from .domain import Chapter, ChapterKey, DuplicateKeyWarning, RawEntry
from .identity import DEFAULT_TRACKING_PARAMS, key_of
from .logging_config import get_logger

logger = get_logger(__name__)


class Classification(str, enum.Enum):
    UNCHANGED = "unchanged"
    UPDATED = "updated"
    NEW = "new"


@dataclasses.dataclass(frozen=True)
class DiffEntry:
    """One fetched entry and what it matched.

    ``stored`` is None only for new entries.
    """

    kind: Classification
    key: ChapterKey
    entry: RawEntry
    stored: Optional[Chapter] = None
    title_changed: bool = False
    url_changed: bool = False
    restored: bool = False


@dataclasses.dataclass(frozen=True)
class DiffResult:
    entries: tuple[DiffEntry, ...]
    removed: tuple[Chapter, ...]
    total: int
    warnings: tuple[DuplicateKeyWarning, ...] = ()

    def _of_kind(self, kind: Classification) -> tuple[DiffEntry, ...]:
        return tuple(e for e in self.entries if e.kind == kind)

    @property
    def unchanged(self) -> tuple[DiffEntry, ...]:
        return self._of_kind(Classification.UNCHANGED)

    @property
    def updated(self) -> tuple[DiffEntry, ...]:
        return self._of_kind(Classification.UPDATED)

    @property
    def new(self) -> tuple[DiffEntry, ...]:
        return self._of_kind(Classification.NEW)

    @property
    def is_empty(self) -> bool:
        """True when nothing was added, edited or removed."""
        return not self.updated and not self.new and not self.removed


def _dedupe(
    keyed: list[tuple[ChapterKey, RawEntry]],
) -> tuple[list[tuple[ChapterKey, RawEntry]], list[DuplicateKeyWarning]]:
    """Drop earlier entries whose key reappears later in fetch order."""
    last_index: dict[ChapterKey, int] = {}
    for index, (key, _) in enumerate(keyed):
        last_index[key] = index

    survivors = []
    warnings = []
    for index, (key, entry) in enumerate(keyed):
        winner = last_index[key]
        if index == winner:
            survivors.append((key, entry))
            continue
        warning = DuplicateKeyWarning(key=key, dropped=entry, kept=keyed[winner][1])
        logger.warning(f"[DUP] {warning}")
        warnings.append(warning)
    return survivors, warnings


def diff(
    stored: Sequence[Chapter],
    fetched: Sequence[RawEntry],
    *,
    url_unstable: bool = False,
    base_url: Optional[str] = None,
    tracking_params: Iterable[str] = DEFAULT_TRACKING_PARAMS,
) -> DiffResult:
    """Classify the differences between ``stored`` and ``fetched``.

    An empty ``fetched`` sequence is a valid listing: every stored chapter is
    classified removed. Fetch failures never reach this function.
    """
    tracking_params = tuple(tracking_params)

    def _key(item) -> ChapterKey:
        return key_of(
            item,
            url_unstable=url_unstable,
            base_url=base_url,
            tracking_params=tracking_params,
        )

    # Several stored chapters can share a key after a settings change; the
    # first by position is the match candidate, the rest end up removed.
    by_key: dict[ChapterKey, list[Chapter]] = {}
    for chapter in sorted(stored, key=lambda c: c.position):
        by_key.setdefault(_key(chapter), []).append(chapter)

    survivors, warnings = _dedupe([(_key(entry), entry) for entry in fetched])

    entries = []
    for key, entry in survivors:
        candidates = by_key.get(key)
        if not candidates:
            entries.append(DiffEntry(kind=Classification.NEW, key=key, entry=entry))
            continue

        match = candidates.pop(0)
        if not candidates:
            del by_key[key]

        title_changed = entry.title != match.title
        url_changed = (entry.url or None) != (match.url or None)
        restored = match.removed
        if title_changed or url_changed or restored:
            kind = Classification.UPDATED
        else:
            kind = Classification.UNCHANGED
        entries.append(
            DiffEntry(
                kind=kind,
                key=key,
                entry=entry,
                stored=match,
                title_changed=title_changed,
                url_changed=url_changed,
                restored=restored,
            )
        )

    leftover = [chapter for chapters in by_key.values() for chapter in chapters]
    removed = tuple(sorted(leftover, key=lambda c: c.position))

    return DiffResult(
        entries=tuple(entries),
        removed=removed,
        total=len(fetched),
        warnings=tuple(warnings),
    )

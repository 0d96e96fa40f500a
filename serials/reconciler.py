"""Reconciler: turn a diff into the next chapter list and a Scan record.

Pure: no clock, no I/O. The caller passes ``scanned_at`` and persists the
result.
"""

from __future__ import annotations

import dataclasses
from datetime import datetime
from typing import Optional, Sequence

from .diff import Classification, DiffEntry, DiffResult
from .domain import (
    Change,
    ChangeKind,
    Chapter,
    DuplicateKeyWarning,
    RemovalPolicy,
    Scan,
    SourceSnapshot,
)
from .identity import chapter_id_for, fingerprint


@dataclasses.dataclass(frozen=True)
class Reconciliation:
    chapters: tuple[Chapter, ...]
    scan: Scan
    warnings: tuple[DuplicateKeyWarning, ...] = ()


def _updated_chapter(item: DiffEntry) -> tuple[Chapter, Change]:
    stored = item.stored
    title = item.entry.title if item.title_changed else stored.title
    url = item.entry.url if item.url_changed else stored.url
    chapter = dataclasses.replace(
        stored,
        title=title,
        url=url,
        fingerprint=fingerprint(title, url),
        removed=False,
    )
    change = Change(
        kind=ChangeKind.UPDATED,
        chapter_id=stored.id,
        old_title=stored.title if item.title_changed else None,
        new_title=title if item.title_changed else None,
        old_url=stored.url if item.url_changed else None,
        new_url=url if item.url_changed else None,
    )
    return chapter, change


def _new_chapter(source_id: str, item: DiffEntry, taken: set[str]) -> Chapter:
    chapter_id = chapter_id_for(source_id, item.key)
    # A pruned chapter may have left its id behind under a different key
    suffix = 1
    while chapter_id in taken:
        chapter_id = chapter_id_for(source_id, item.key) + f"-{suffix}"
        suffix += 1
    taken.add(chapter_id)
    return Chapter(
        id=chapter_id,
        source_id=source_id,
        title=item.entry.title,
        url=item.entry.url,
        position=-1,
        fingerprint=fingerprint(item.entry.title, item.entry.url),
    )


def _interleave(
    existing: list[Chapter],
    diff_result: DiffResult,
    created: dict[int, Chapter],
) -> list[Chapter]:
    """Place new chapters next to their fetch-order neighbours.

    A new chapter goes right after the nearest preceding matched chapter; with
    no preceding match it goes before the nearest following one; with no match
    at all it is appended.
    """
    after: dict[str, list[Chapter]] = {}
    before: dict[str, list[Chapter]] = {}
    tail: list[Chapter] = []

    entries = diff_result.entries
    matched_ids = [e.stored.id if e.stored is not None else None for e in entries]

    for index, item in enumerate(entries):
        if item.kind != Classification.NEW:
            continue
        chapter = created[index]
        previous = next(
            (cid for cid in reversed(matched_ids[:index]) if cid is not None), None
        )
        if previous is not None:
            after.setdefault(previous, []).append(chapter)
            continue
        following = next(
            (cid for cid in matched_ids[index + 1:] if cid is not None), None
        )
        if following is not None:
            before.setdefault(following, []).append(chapter)
        else:
            tail.append(chapter)

    ordered: list[Chapter] = []
    for chapter in existing:
        ordered.extend(before.get(chapter.id, ()))
        ordered.append(chapter)
        ordered.extend(after.get(chapter.id, ()))
    ordered.extend(tail)

    return [dataclasses.replace(c, position=i) for i, c in enumerate(ordered)]


def reconcile(
    source: SourceSnapshot,
    stored: Sequence[Chapter],
    diff_result: DiffResult,
    *,
    scanned_at: datetime,
    removal_policy: Optional[RemovalPolicy] = None,
    preserve_order: Optional[bool] = None,
) -> Reconciliation:
    """Apply ``diff_result`` to ``stored`` for ``source``.

    ``removal_policy`` / ``preserve_order`` override the source's own import
    settings when given; otherwise those settings apply, and unset settings
    default to RETAIN and append-order.
    """
    settings = source.settings
    if removal_policy is None:
        removal_policy = settings.removal_policy or RemovalPolicy.RETAIN
    if preserve_order is None:
        preserve_order = bool(settings.preserve_order)

    replacements: dict[str, Chapter] = {}
    changes: list[Change] = []
    new_ids: list[str] = []
    updated_ids: list[str] = []
    removed_ids: list[str] = []

    taken = {c.id for c in stored}
    created: dict[int, Chapter] = {}

    for index, item in enumerate(diff_result.entries):
        if item.kind == Classification.UPDATED:
            chapter, change = _updated_chapter(item)
            replacements[chapter.id] = chapter
            changes.append(change)
            updated_ids.append(chapter.id)
        elif item.kind == Classification.NEW:
            chapter = _new_chapter(source.id, item, taken)
            created[index] = chapter
            changes.append(Change(
                kind=ChangeKind.NEW,
                chapter_id=chapter.id,
                new_title=chapter.title,
                new_url=chapter.url,
            ))
            new_ids.append(chapter.id)

    dropped: set[str] = set()
    for chapter in diff_result.removed:
        removed_ids.append(chapter.id)
        if not chapter.removed:
            changes.append(Change(
                kind=ChangeKind.REMOVED,
                chapter_id=chapter.id,
                old_title=chapter.title,
                old_url=chapter.url,
            ))
        if removal_policy == RemovalPolicy.PRUNE:
            dropped.add(chapter.id)
        else:
            replacements[chapter.id] = dataclasses.replace(chapter, removed=True)

    existing = [
        replacements.get(c.id, c)
        for c in sorted(stored, key=lambda c: c.position)
        if c.id not in dropped
    ]

    if preserve_order:
        chapters = _interleave(existing, diff_result, created)
    else:
        next_position = max((c.position for c in existing), default=-1) + 1
        appended = [
            dataclasses.replace(created[i], position=next_position + n)
            for n, i in enumerate(sorted(created))
        ]
        chapters = existing + appended

    scan = Scan(
        source_id=source.id,
        date=scanned_at,
        total=diff_result.total,
        new=tuple(new_ids),
        updated=tuple(updated_ids),
        removed=tuple(removed_ids),
        changes=tuple(changes),
    )
    return Reconciliation(
        chapters=tuple(chapters), scan=scan, warnings=diff_result.warnings
    )

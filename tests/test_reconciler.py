"""Tests for the reconciler."""

import pytest

from serials.diff import diff
from serials.domain import (
    ChangeKind,
    ImportSettings,
    RawEntry,
    RemovalPolicy,
    SourceSnapshot,
)
from serials.identity import fingerprint
from serials.reconciler import reconcile

from conftest import FIXED_NOW, make_chapter


def _run(source, stored, fetched, **kwargs):
    result = diff(stored, fetched, base_url=source.url)
    return reconcile(source, stored, result, scanned_at=FIXED_NOW, **kwargs)


def test_example_rename_and_new(source):
    stored = [make_chapter("a", "/c1", title="Chapter 1")]
    fetched = [
        RawEntry(title="Chapter One", url="/c1"),
        RawEntry(title="Chapter 2", url="/c2"),
    ]

    out = _run(source, stored, fetched)

    assert out.scan.total == 2
    assert out.scan.updated == ("a",)
    assert len(out.scan.new) == 1
    assert out.scan.removed == ()
    assert out.scan.date == FIXED_NOW

    by_id = {c.id: c for c in out.chapters}
    assert by_id["a"].title == "Chapter One"
    assert by_id["a"].position == 0
    assert by_id["a"].fingerprint == fingerprint("Chapter One", "/c1")
    new_chapter = by_id[out.scan.new[0]]
    assert new_chapter.url == "/c2"
    assert new_chapter.position == 1

    update = next(c for c in out.scan.changes if c.kind == ChangeKind.UPDATED)
    assert (update.old_title, update.new_title) == ("Chapter 1", "Chapter One")
    assert update.old_url is None and update.new_url is None


def test_empty_fetch_retains_removed_by_default(source):
    stored = [make_chapter("a", "/c1")]

    out = _run(source, stored, [])

    assert out.scan.total == 0
    assert out.scan.removed == ("a",)
    assert [c.id for c in out.chapters] == ["a"]
    assert out.chapters[0].removed
    assert [c.kind for c in out.scan.changes] == [ChangeKind.REMOVED]


def test_prune_policy_drops_removed(source):
    stored = [make_chapter("a", "/c1"), make_chapter("b", "/c2", position=1)]

    out = _run(source, stored, [RawEntry(title="b", url="/c2")], removal_policy=RemovalPolicy.PRUNE)

    assert [c.id for c in out.chapters] == ["b"]
    assert out.scan.removed == ("a",)


def test_policy_from_source_settings():
    source = SourceSnapshot(
        id="src", name="s", url="https://example.com/toc/",
        settings=ImportSettings(removal_policy=RemovalPolicy.PRUNE),
    )
    out = _run(source, [make_chapter("a", "/c1")], [])
    assert out.chapters == ()


def test_reconcile_is_idempotent(source):
    stored = [make_chapter("a", "/c1", title="Chapter 1")]
    fetched = [
        RawEntry(title="Chapter One", url="/c1"),
        RawEntry(title="Chapter 2", url="/c2"),
    ]

    first = _run(source, stored, fetched)
    second = _run(source, list(first.chapters), fetched)

    assert second.scan.new == ()
    assert second.scan.updated == ()
    assert second.scan.changes == ()
    assert second.chapters == first.chapters


def test_reconcile_is_deterministic(source):
    stored = [make_chapter("a", "/c1")]
    fetched = [RawEntry(title="x", url="/c5"), RawEntry(title="a", url="/c1")]
    assert _run(source, stored, fetched) == _run(source, stored, fetched)


def test_new_chapters_appended_in_fetch_order(source):
    stored = [make_chapter("a", "/c1", position=0), make_chapter("b", "/c2", position=1)]
    fetched = [
        RawEntry(title="zero", url="/c0"),
        RawEntry(title="a", url="/c1"),
        RawEntry(title="b", url="/c2"),
        RawEntry(title="three", url="/c3"),
    ]

    out = _run(source, stored, fetched)

    assert [c.title for c in out.chapters] == ["a", "b", "zero", "three"]
    assert [c.position for c in out.chapters] == [0, 1, 2, 3]


def test_preserve_order_interleaves(source):
    stored = [
        make_chapter("a", "/c1", position=0),
        make_chapter("b", "/c3", position=1),
    ]
    fetched = [
        RawEntry(title="prologue", url="/c0"),
        RawEntry(title="a", url="/c1"),
        RawEntry(title="two", url="/c2"),
        RawEntry(title="b", url="/c3"),
        RawEntry(title="four", url="/c4"),
    ]

    out = _run(source, stored, fetched, preserve_order=True)

    assert [c.title for c in out.chapters] == ["prologue", "a", "two", "b", "four"]
    assert [c.position for c in out.chapters] == [0, 1, 2, 3, 4]


def test_preserve_order_with_nothing_matched_appends(source):
    stored = [make_chapter("a", "/c1")]
    fetched = [RawEntry(title="x", url="/x1"), RawEntry(title="y", url="/x2")]

    out = _run(source, stored, fetched, preserve_order=True)

    assert [c.title for c in out.chapters] == ["a", "x", "y"]
    assert out.chapters[0].removed


def test_restore_clears_removed_marker(source):
    stored = [make_chapter("a", "/c1", removed=True)]

    out = _run(source, stored, [RawEntry(title="a", url="/c1")])

    assert not out.chapters[0].removed
    assert out.scan.updated == ("a",)


def test_already_removed_not_reported_again(source):
    stored = [make_chapter("a", "/c1", removed=True)]

    out = _run(source, stored, [])

    assert out.scan.removed == ("a",)
    assert out.scan.changes == ()


@pytest.mark.parametrize("policy", [RemovalPolicy.RETAIN, RemovalPolicy.PRUNE])
def test_no_chapter_lost_without_record(source, policy):
    stored = [make_chapter(f"c{i}", f"/c{i}", position=i) for i in range(4)]
    fetched = [RawEntry(title="c0", url="/c0"), RawEntry(title="c2!", url="/c2")]

    out = _run(source, stored, fetched, removal_policy=policy)

    kept = {c.id for c in out.chapters}
    recorded = set(out.scan.removed)
    assert recorded == {"c1", "c3"}
    assert {"c0", "c2"} <= kept
    if policy == RemovalPolicy.RETAIN:
        assert kept == {"c0", "c1", "c2", "c3"}
    else:
        assert kept == {"c0", "c2"}


def test_duplicate_key_warnings_carried(source):
    fetched = [
        RawEntry(title="First", url="/c1"),
        RawEntry(title="Second", url="/c1/"),
    ]

    out = _run(source, [], fetched)

    assert [w.dropped.title for w in out.warnings] == ["First"]
    assert [c.title for c in out.chapters] == ["Second"]
    assert out.scan.total == 2


def test_no_warnings_for_clean_listing(source):
    out = _run(source, [], [RawEntry(title="One", url="/c1")])
    assert out.warnings == ()

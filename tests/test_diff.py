"""Tests for the diff engine."""

import itertools
import logging

from serials.diff import Classification, diff
from serials.domain import RawEntry

from conftest import make_chapter


def _ids(entries):
    return [e.stored.id for e in entries]


def test_example_rename_and_new():
    stored = [make_chapter("a", "/c1", title="Chapter 1")]
    fetched = [
        RawEntry(title="Chapter One", url="/c1"),
        RawEntry(title="Chapter 2", url="/c2"),
    ]

    result = diff(stored, fetched)

    assert _ids(result.updated) == ["a"]
    assert [e.entry.url for e in result.new] == ["/c2"]
    assert result.removed == ()
    assert result.total == 2

    updated = result.updated[0]
    assert updated.title_changed
    assert not updated.url_changed


def test_unchanged_listing_is_empty_diff():
    stored = [make_chapter("a", "/c1", position=0), make_chapter("b", "/c2", position=1)]
    fetched = [RawEntry(title="a", url="/c1"), RawEntry(title="b", url="/c2")]

    result = diff(stored, fetched)

    assert result.is_empty
    assert _ids(result.unchanged) == ["a", "b"]


def test_url_change_under_same_key_is_update():
    stored = [make_chapter("a", "https://example.com/c1", title="One")]
    fetched = [RawEntry(title="One", url="https://example.com/c1/?utm_source=rss")]

    result = diff(stored, fetched)

    assert len(result.updated) == 1
    assert result.updated[0].url_changed
    assert not result.updated[0].title_changed


def test_empty_fetch_removes_everything():
    stored = [make_chapter("a", "/c1"), make_chapter("b", "/c2", position=1)]

    result = diff(stored, [])

    assert [c.id for c in result.removed] == ["a", "b"]
    assert result.entries == ()
    assert result.total == 0


def test_duplicate_keys_later_entry_wins(caplog):
    fetched = [
        RawEntry(title="First copy", url="/c1"),
        RawEntry(title="Chapter 2", url="/c2"),
        RawEntry(title="Second copy", url="/c1/"),
    ]

    with caplog.at_level(logging.WARNING, logger="serials.diff"):
        result = diff([], fetched)

    assert [e.entry.title for e in result.new] == ["Chapter 2", "Second copy"]
    assert len(result.warnings) == 1
    assert result.warnings[0].dropped.title == "First copy"
    assert result.warnings[0].kept.title == "Second copy"
    assert "duplicate chapter key" in caplog.text
    # total counts what the remote listed, duplicates included
    assert result.total == 3


def test_restored_chapter_is_updated():
    stored = [make_chapter("a", "/c1", removed=True)]
    result = diff(stored, [RawEntry(title="a", url="/c1")])

    assert _ids(result.updated) == ["a"]
    assert result.updated[0].restored


def test_title_keys_when_url_unstable():
    stored = [make_chapter("a", "/c1?sid=1", title="Chapter 1")]
    fetched = [RawEntry(title="Chapter 1", url="/c1?sid=2")]

    result = diff(stored, fetched, url_unstable=True)

    assert _ids(result.updated) == ["a"]
    assert result.updated[0].url_changed
    assert result.new == ()


def test_stored_key_collision_keeps_partition():
    # Two stored chapters that share a title key once matching switches to titles
    stored = [
        make_chapter("a", "/c1", title="Interlude", position=0),
        make_chapter("b", "/c9", title="Interlude", position=1),
    ]
    result = diff(stored, [RawEntry(title="Interlude", url="/c1")], url_unstable=True)

    assert _ids(result.unchanged) == ["a"]
    assert [c.id for c in result.removed] == ["b"]


def test_classification_ignores_fetch_order():
    stored = [make_chapter("a", "/c1", title="A"), make_chapter("b", "/c2", title="B", position=1)]
    fetched = [
        RawEntry(title="A!", url="/c1"),
        RawEntry(title="B", url="/c2"),
        RawEntry(title="C", url="/c3"),
    ]

    def summary(result):
        return (
            sorted(_ids(result.unchanged)),
            sorted(_ids(result.updated)),
            sorted(e.entry.url for e in result.new),
            sorted(c.id for c in result.removed),
        )

    expected = summary(diff(stored, fetched))
    for order in itertools.permutations(fetched):
        assert summary(diff(stored, list(order))) == expected


def test_partition_property():
    stored = [
        make_chapter("a", "/c1", position=0),
        make_chapter("b", "/c2", position=1),
        make_chapter("c", "/c3", position=2),
        make_chapter("d", None, title="Afterword", position=3),
    ]
    fetched = [
        RawEntry(title="a", url="/c1"),
        RawEntry(title="b (edited)", url="/c2"),
        RawEntry(title="new", url="/c4"),
        RawEntry(title="afterword", url=None),
    ]

    result = diff(stored, fetched)

    stored_classified = (
        _ids(result.unchanged) + _ids(result.updated) + [c.id for c in result.removed]
    )
    assert sorted(stored_classified) == ["a", "b", "c", "d"]
    assert len(result.entries) == len(fetched)
    kinds = {e.entry.title: e.kind for e in result.entries}
    assert kinds == {
        "a": Classification.UNCHANGED,
        "b (edited)": Classification.UPDATED,
        "new": Classification.NEW,
        "afterword": Classification.UPDATED,
    }

"""Tests for chapter identity resolution."""

from serials.domain import ChapterKey, RawEntry
from serials.identity import (
    chapter_id_for,
    fingerprint,
    key_of,
    normalize_title,
    normalize_url,
)

from conftest import make_chapter


def test_normalize_url_lowercases_and_strips_trailing_slash():
    assert normalize_url("HTTPS://Example.COM/Story/Chapter-1/") == "https://example.com/story/chapter-1"


def test_normalize_url_drops_tracking_params_and_sorts_query():
    url = "https://example.com/read?utm_source=feed&chapter=2&fbclid=abc&book=7"
    assert normalize_url(url) == "https://example.com/read?book=7&chapter=2"


def test_normalize_url_drops_default_port_keeps_others():
    assert normalize_url("http://example.com:80/c1") == "http://example.com/c1"
    assert normalize_url("http://example.com:8080/c1") == "http://example.com:8080/c1"


def test_normalize_url_resolves_relative_against_base():
    assert normalize_url("/c1", base_url="https://example.com/toc/") == "https://example.com/c1"
    assert normalize_url("c2/", base_url="https://example.com/toc/") == "https://example.com/toc/c2"


def test_normalize_url_keeps_fragment():
    assert normalize_url("https://example.com/toc#ch-3") == "https://example.com/toc#ch-3"


def test_normalize_url_custom_tracking_params():
    url = "https://example.com/c1?session=xyz&page=1"
    assert normalize_url(url, tracking_params=("session",)) == "https://example.com/c1?page=1"


def test_normalize_title_collapses_whitespace_and_case():
    assert normalize_title("  Chapter\t One\n") == "chapter one"
    assert normalize_title("ＣＨＡＰＴＥＲ 1") == "chapter 1"


def test_key_of_uses_url_when_present():
    entry = RawEntry(title="Chapter One", url="https://example.com/c1/")
    assert key_of(entry) == ChapterKey("url", "https://example.com/c1")


def test_key_of_same_for_entry_and_chapter():
    entry = RawEntry(title="Renamed", url="https://EXAMPLE.com/c1?utm_medium=x")
    chapter = make_chapter("a", "https://example.com/c1", title="Chapter 1")
    assert key_of(entry) == key_of(chapter)


def test_key_of_falls_back_to_title_without_url():
    assert key_of(RawEntry(title="Prologue", url=None)) == ChapterKey("title", "prologue")
    assert key_of(RawEntry(title="Prologue", url="   ")) == ChapterKey("title", "prologue")


def test_key_of_url_unstable_uses_title():
    entry = RawEntry(title="Chapter 1", url="https://example.com/c1?sid=123")
    assert key_of(entry, url_unstable=True) == ChapterKey("title", "chapter 1")


def test_fingerprint_changes_with_title_or_url():
    base = fingerprint("Chapter 1", "/c1")
    assert base == fingerprint("Chapter 1", "/c1")
    assert base != fingerprint("Chapter One", "/c1")
    assert base != fingerprint("Chapter 1", "/c2")


def test_chapter_id_for_is_deterministic_and_source_scoped():
    key = ChapterKey("url", "https://example.com/c1")
    assert chapter_id_for("src", key) == chapter_id_for("src", key)
    assert chapter_id_for("src", key) != chapter_id_for("other", key)

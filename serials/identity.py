"""Chapter identity: match remote entries to stored chapters across scans.

A chapter is identified by its normalized remote URL. Sources whose URLs are
not stable (session ids in the path, rotating mirrors) are configured as
``url_unstable`` and fall back to a normalized title key instead.
"""

from __future__ import annotations

import hashlib
import re
import unicodedata
import uuid
from typing import Iterable, Optional, Union
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

from .domain import Chapter, ChapterKey, RawEntry

DEFAULT_TRACKING_PARAMS: tuple[str, ...] = (
    "utm_*",
    "fbclid",
    "gclid",
    "mc_cid",
    "mc_eid",
    "ref",
    "ref_src",
)

_DEFAULT_PORTS = {"http": 80, "https": 443}
_WHITESPACE = re.compile(r"\s+")


def _is_tracking_param(name: str, tracking_params: Iterable[str]) -> bool:
    name = name.lower()
    for pattern in tracking_params:
        pattern = pattern.lower()
        if pattern.endswith("*"):
            if name.startswith(pattern[:-1]):
                return True
        elif name == pattern:
            return True
    return False


def normalize_url(
    url: str,
    base_url: Optional[str] = None,
    tracking_params: Iterable[str] = DEFAULT_TRACKING_PARAMS,
) -> str:
    """Canonical form of a chapter URL.

    Example:
        >>> normalize_url("HTTPS://Example.com/Story/Ch-1/?utm_source=x&b=2&a=1")
        'https://example.com/story/ch-1?a=1&b=2'
    """
    url = url.strip()
    if base_url:
        url = urljoin(base_url, url)

    parts = urlsplit(url)
    scheme = parts.scheme.lower()
    try:
        port = parts.port
        host = (parts.hostname or "").lower()
    except ValueError:
        # Malformed port: keep the netloc as-is rather than failing the scan
        port = None
        host = parts.netloc.lower()
    if port is not None and _DEFAULT_PORTS.get(scheme) != port:
        host = f"{host}:{port}"

    path = parts.path.lower().rstrip("/")

    query = [
        (k, v)
        for k, v in parse_qsl(parts.query, keep_blank_values=True)
        if not _is_tracking_param(k, tracking_params)
    ]
    query.sort()

    return urlunsplit((scheme, host, path, urlencode(query), parts.fragment))


def normalize_title(title: str) -> str:
    """NFKC, case-folded, whitespace collapsed."""
    title = unicodedata.normalize("NFKC", title)
    return _WHITESPACE.sub(" ", title).strip().casefold()


def key_of(
    entry: Union[RawEntry, Chapter],
    *,
    url_unstable: bool = False,
    base_url: Optional[str] = None,
    tracking_params: Iterable[str] = DEFAULT_TRACKING_PARAMS,
) -> ChapterKey:
    """Return the identity key for a fetched entry or a stored chapter."""
    url = (entry.url or "").strip()
    if url and not url_unstable:
        return ChapterKey("url", normalize_url(url, base_url, tracking_params))
    return ChapterKey("title", normalize_title(entry.title))


def fingerprint(title: str, url: Optional[str]) -> str:
    """Content hash used to spot edits without comparing every field."""
    raw = f"{title}\n{url or ''}"
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


def chapter_id_for(source_id: str, key: ChapterKey) -> str:
    """Deterministic identifier for a chapter first seen under ``key``."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"{source_id}#{key}"))

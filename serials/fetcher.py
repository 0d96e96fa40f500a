"""Remote listing fetchers.

The orchestrator only knows ``ListingFetcher``: give it a source, get back the
chapter entries in page order, or a ``FetchError``. An empty list is a
successful fetch of an empty table of contents.

``HtmlListingFetcher`` is the stock implementation. It downloads the source's
table-of-contents URL and reads entries according to the source's import
settings:

- ``TOCSettings``: every ``<a href>`` matched by ``selector`` (default: all
  links on the page) is a chapter.
- ``MenuSettings``: every ``<option>`` of the chapter ``<select>`` matched by
  ``selector`` (default: the first ``select`` on the page) is a chapter; the
  option value is the chapter URL.
"""

from __future__ import annotations

from typing import List, Optional, Protocol
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup
from soupsieve import SelectorSyntaxError

from .domain import ImportKind, ImportSettings, RawEntry, SourceSnapshot
from .errors import FetchError
from .logging_config import get_logger

logger = get_logger(__name__)


class ListingFetcher(Protocol):
    async def fetch(self, source: SourceSnapshot) -> List[RawEntry]:
        ...


def _clean(text: str) -> str:
    return " ".join(text.split())


def _parse_toc(soup: BeautifulSoup, selector: Optional[str], base_url: str) -> List[RawEntry]:
    links = soup.select(selector) if selector else soup.find_all("a")
    entries = []
    for node in links:
        # Selectors may target containers (li, td) instead of the links themselves
        anchor = node if node.name == "a" else node.find("a")
        if anchor is None:
            continue
        href = (anchor.get("href") or "").strip()
        title = _clean(anchor.get_text(" ", strip=True))
        if not href or href.startswith(("javascript:", "mailto:")) or not title:
            continue
        entries.append(RawEntry(title=title, url=urljoin(base_url, href), order=len(entries)))
    return entries


def _parse_menu(soup: BeautifulSoup, selector: Optional[str], base_url: str) -> List[RawEntry]:
    menu = soup.select_one(selector) if selector else soup.find("select")
    if menu is None:
        raise FetchError(f"No chapter menu matching {selector or 'select'!r}")
    options = menu.find_all("option") if menu.name == "select" else menu.select("option")
    entries = []
    for option in options:
        value = (option.get("value") or "").strip()
        title = _clean(option.get_text(" ", strip=True))
        if not title:
            continue
        url = urljoin(base_url, value) if value else None
        entries.append(RawEntry(title=title, url=url, order=len(entries)))
    return entries


def parse_listing(html: str, settings: ImportSettings, base_url: str) -> List[RawEntry]:
    """Extract chapter entries from a table-of-contents page."""
    soup = BeautifulSoup(html, "lxml")
    if settings.tag == ImportKind.MENU:
        return _parse_menu(soup, settings.selector, base_url)
    return _parse_toc(soup, settings.selector, base_url)


class HtmlListingFetcher:
    """Fetch a source's table of contents over HTTP and parse it.

    No retries: a failed request surfaces as FetchError and the caller
    decides whether to scan again.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        user_agent: str = "serials-scanner/0.1",
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers={"User-Agent": user_agent},
            timeout=timeout,
            follow_redirects=True,
        )

    async def fetch(self, source: SourceSnapshot) -> List[RawEntry]:
        try:
            response = await self._client.get(source.url)
        except httpx.TimeoutException as exc:
            raise FetchError(f"Timed out fetching {source.url}") from exc
        except httpx.HTTPError as exc:
            raise FetchError(f"Transport error fetching {source.url}: {exc}") from exc

        if response.status_code != 200:
            raise FetchError(f"HTTP {response.status_code}: {source.url}")

        try:
            entries = parse_listing(response.text, source.settings, str(response.url))
        except SelectorSyntaxError as exc:
            raise FetchError(
                f"Cannot parse {source.url}: {exc}",
                "Check the selector in the source's import settings.",
            ) from exc
        logger.debug(f"Parsed {len(entries)} entries from {source.url}")
        return entries

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> HtmlListingFetcher:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, TypeVar
from urllib.parse import quote

import httpx
from selectolax.parser import HTMLParser

from .config import (
    LETTERBOXD_BASE,
    USER_AGENT,
    HTTP_TIMEOUT,
    PAGE_DELAY,
    MAX_PAGES,
    SEARCH_RESULT_LIMIT,
)
from .errors import ErrorKind, ScraperError
from .parsing import (
    DiaryCheck,
    DiaryEntry,
    FilmDetails,
    FilmPageStats,
    FilmRef,
    ProfileStats,
    ReviewEntry,
    SearchResult,
    detect_page_error,
    has_next_page,
    parse_diary_page,
    parse_director_films,
    parse_director_search,
    parse_favorites,
    parse_film_details,
    parse_film_page_stats,
    parse_film_search,
    parse_liked_page,
    parse_profile_stats,
    parse_reviews_page,
    parse_watchlist_page,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Page:
    url: str
    status_code: int
    tree: HTMLParser

    @property
    def missing(self) -> bool:
        return self.status_code == 404


class LetterboxdScraper:
    """
    Async scraper for a user's public Letterboxd pages.

    Pages are fetched strictly one at a time with ``delay`` seconds between
    successive pages of the same listing. Use as an async context manager, or
    pass an existing ``httpx.AsyncClient`` (which the caller then owns).
    """
    BASE = LETTERBOXD_BASE

    def __init__(self, client: httpx.AsyncClient | None = None, delay: float = PAGE_DELAY,
                 max_pages: int = MAX_PAGES):
        self.delay = delay
        self.max_pages = max_pages
        self.client = client
        self._owns_client = client is None

    async def __aenter__(self):
        if self.client is None:
            self.client = httpx.AsyncClient(
                headers={"User-Agent": USER_AGENT},
                follow_redirects=True,
                timeout=HTTP_TIMEOUT,
            )
            self._owns_client = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    async def close(self):
        if self.client is not None and self._owns_client:
            await self.client.aclose()
            self.client = None

    # --- Fetcher ----------------------------------------------------------

    async def _fetch(self, url: str, headers: dict | None = None) -> Page:
        """
        GET ``url``. 200 and 404 are normal outcomes; anything else raises.
        No retries are attempted.
        """
        if self.client is None:
            raise RuntimeError("LetterboxdScraper must be used as an async context manager or given a client")

        try:
            resp = await self.client.get(url, headers={"User-Agent": USER_AGENT, **(headers or {})})
        except httpx.TransportError as exc:
            logger.error(f"Request error on {url}: {type(exc).__name__}: {exc}")
            raise ScraperError(ErrorKind.CONNECTION_ERROR, url, detail=str(exc)) from exc

        if resp.status_code not in (200, 404):
            logger.error(f"HTTP {resp.status_code} on {url}")
            raise ScraperError(ErrorKind.UNEXPECTED_STATUS, url, status_code=resp.status_code)

        return Page(url=url, status_code=resp.status_code, tree=HTMLParser(resp.text))

    async def _get_page(self, url: str) -> Page:
        """Fetch a single page, raising PRIVATE/NOT_FOUND when the page reports either."""
        page = await self._fetch(url)
        kind = detect_page_error(page.tree)
        if kind is not None:
            raise ScraperError(kind, url)
        if page.missing:
            raise ScraperError(ErrorKind.NOT_FOUND, url, status_code=404)
        return page

    # --- Paginator --------------------------------------------------------

    async def _paginate(
        self,
        url_for_page: Callable[[int], str],
        extract: Callable[[HTMLParser], list[T]],
        label: str,
        follow_next_link: bool = False,
    ) -> list[T]:
        """
        Fetch pages 1, 2, 3... until a page yields no records or returns 404.

        Page 1 failures raise; a failure on a later page ends the loop and keeps
        what was collected. PRIVATE/NOT_FOUND markers raise on any page so no
        partial data leaks out. Exceeding ``max_pages`` raises PAGINATION_LIMIT.
        """
        collected: list[T] = []

        for page_number in range(1, self.max_pages + 1):
            if page_number > 1 and self.delay:
                await asyncio.sleep(self.delay)

            url = url_for_page(page_number)
            try:
                page = await self._fetch(url)
            except ScraperError:
                if page_number == 1:
                    raise
                logger.error(f"{label}: aborting at page {page_number}, keeping {len(collected)} records")
                return collected

            kind = detect_page_error(page.tree)
            if kind is ErrorKind.PRIVATE or (kind is ErrorKind.NOT_FOUND and page_number == 1):
                raise ScraperError(kind, url)
            if page.missing or kind is ErrorKind.NOT_FOUND:
                if page_number == 1:
                    raise ScraperError(ErrorKind.NOT_FOUND, url, status_code=page.status_code)
                logger.debug(f"{label}: page {page_number} missing, done")
                break

            records = extract(page.tree)
            if not records:
                logger.debug(f"{label}: page {page_number} empty, done")
                break

            collected.extend(records)
            logger.debug(f"{label}: page {page_number}: {len(records)} records")

            if follow_next_link and not has_next_page(page.tree):
                break
        else:
            logger.error(f"{label}: reached page limit ({self.max_pages})")
            raise ScraperError(ErrorKind.PAGINATION_LIMIT, url_for_page(self.max_pages),
                               detail=f"more than {self.max_pages} pages")

        logger.info(f"{label}: {len(collected)} records")
        return collected

    # --- Diary ------------------------------------------------------------

    async def fetch_diary(self, username: str) -> list[DiaryEntry]:
        """Full diary across all pages, de-duplicated by viewing id (first occurrence wins)."""
        entries = await self._paginate(
            lambda n: f"{self.BASE}/{username}/films/diary/page/{n}/",
            parse_diary_page,
            f"Diary of {username}",
        )
        seen: set[str] = set()
        unique = []
        for entry in entries:
            if entry.viewing_id in seen:
                continue
            seen.add(entry.viewing_id)
            unique.append(entry)
        return unique

    async def fetch_recent_diary(self, username: str) -> list[DiaryEntry]:
        """First diary page only, most recent viewing first."""
        page = await self._get_page(f"{self.BASE}/{username}/films/diary/")
        return parse_diary_page(page.tree)

    async def fetch_daily_diary(self, username: str, day: date) -> list[DiaryEntry]:
        url = f"{self.BASE}/{username}/films/diary/for/{day.year}/{day.month:02d}/{day.day:02d}/"
        page = await self._fetch(url)
        if page.missing:
            logger.debug(f"No diary entries for {username} on {day.isoformat()}")
            return []
        kind = detect_page_error(page.tree)
        if kind is ErrorKind.PRIVATE:
            raise ScraperError(kind, url)
        if kind is ErrorKind.NOT_FOUND:
            return []
        return parse_diary_page(page.tree)

    async def check_film_in_diary(self, username: str, slug: str) -> DiaryCheck:
        """Walk the diary newest-first and stop at the first viewing of ``slug``."""
        for page_number in range(1, self.max_pages + 1):
            if page_number > 1 and self.delay:
                await asyncio.sleep(self.delay)
            url = f"{self.BASE}/{username}/films/diary/page/{page_number}/"
            page = await self._fetch(url)
            kind = detect_page_error(page.tree)
            if kind is ErrorKind.PRIVATE:
                raise ScraperError(kind, url)
            if page.missing or kind is ErrorKind.NOT_FOUND:
                return DiaryCheck(watched=False)

            entries = parse_diary_page(page.tree)
            if not entries:
                return DiaryCheck(watched=False)
            for entry in entries:
                if entry.slug == slug:
                    watched_on = entry.watched_date.isoformat() if entry.watched_date else None
                    return DiaryCheck(watched=True, rating=entry.rating, date=watched_on)

        raise ScraperError(ErrorKind.PAGINATION_LIMIT, detail=f"more than {self.max_pages} pages")

    # --- Other listings ---------------------------------------------------

    async def fetch_reviews(self, username: str) -> list[ReviewEntry]:
        return await self._paginate(
            lambda n: f"{self.BASE}/{username}/films/reviews/page/{n}/",
            lambda tree: parse_reviews_page(tree, username),
            f"Reviews of {username}",
            follow_next_link=True,
        )

    async def fetch_recent_reviews(self, username: str) -> list[ReviewEntry]:
        """First reviews page only, newest first."""
        page = await self._get_page(f"{self.BASE}/{username}/films/reviews/")
        return parse_reviews_page(page.tree, username)

    async def fetch_liked_films(self, username: str) -> list[FilmRef]:
        return await self._paginate(
            lambda n: f"{self.BASE}/{username}/likes/films/page/{n}/",
            parse_liked_page,
            f"Likes of {username}",
            follow_next_link=True,
        )

    async def fetch_watchlist(self, username: str) -> list[str]:
        return await self._paginate(
            lambda n: f"{self.BASE}/{username}/watchlist/page/{n}/",
            parse_watchlist_page,
            f"Watchlist of {username}",
        )

    async def fetch_favorites(self, username: str) -> list[FilmRef]:
        page = await self._get_page(f"{self.BASE}/{username}/")
        favorites = parse_favorites(page.tree)
        if not favorites:
            logger.debug(f"No favorites found for {username}")
        return favorites

    async def fetch_profile_stats(self, username: str) -> ProfileStats:
        url = f"{self.BASE}/{username}/"
        page = await self._get_page(url)
        return parse_profile_stats(page.tree, url)

    async def check_user_exists(self, username: str) -> str:
        """Return 'SUCCESS', 'PRIVATE', 'NOT_FOUND' or 'ERROR'."""
        try:
            await self._get_page(f"{self.BASE}/{username}/")
        except ScraperError as exc:
            if exc.kind in (ErrorKind.PRIVATE, ErrorKind.NOT_FOUND):
                return exc.kind.name
            return "ERROR"
        return "SUCCESS"

    # --- Films ------------------------------------------------------------

    async def fetch_film_details(self, slug: str) -> FilmDetails | None:
        """Title/year/poster for a film; None when the film is absent or unreadable."""
        url = f"{self.BASE}/film/{slug}/"
        page = await self._fetch(url)
        if page.missing or detect_page_error(page.tree) is not None:
            logger.info(f"Film '{slug}' not found")
            return None
        return parse_film_details(page.tree, slug)

    async def fetch_film_page_stats(self, slug: str) -> FilmPageStats:
        page = await self._get_page(f"{self.BASE}/film/{slug}/")
        return parse_film_page_stats(page.tree, slug)

    async def search(self, query: str) -> list[SearchResult]:
        """Film and director search; directors are listed first."""
        encoded = quote(query, safe="")
        ajax = {"X-Requested-With": "XMLHttpRequest"}
        results: list[SearchResult] = []

        films_url = f"{self.BASE}/s/search/films/{encoded}/"
        people_url = f"{self.BASE}/s/search/cast-crew/{encoded}/"
        film_page, people_page = await asyncio.gather(
            self._fetch(films_url, headers=ajax),
            self._fetch(people_url, headers=ajax),
            return_exceptions=True,
        )

        for page, parser in ((people_page, parse_director_search), (film_page, parse_film_search)):
            if isinstance(page, ScraperError):
                logger.warning(f"Search request failed: {page}")
                continue
            if isinstance(page, BaseException):
                raise page
            if page.status_code == 200:
                results.extend(parser(page.tree))

        return results[:SEARCH_RESULT_LIMIT]

    async def fetch_director_films(self, director_path: str) -> list[FilmRef]:
        url = f"{self.BASE}{director_path.rstrip('/')}/films/"
        try:
            page = await self._fetch(url, headers={"X-Requested-With": "XMLHttpRequest"})
        except ScraperError as exc:
            logger.error(f"Director films fetch failed for {director_path}: {exc}")
            return []
        if page.missing:
            return []
        return parse_director_films(page.tree)


async def _with_scraper(method: str, *args, **kwargs):
    async with LetterboxdScraper() as scraper:
        return await getattr(scraper, method)(*args, **kwargs)


async def fetch_diary(username: str) -> list[DiaryEntry]:
    return await _with_scraper("fetch_diary", username)


async def fetch_reviews(username: str) -> list[ReviewEntry]:
    return await _with_scraper("fetch_reviews", username)


async def fetch_favorites(username: str) -> list[FilmRef]:
    return await _with_scraper("fetch_favorites", username)


async def fetch_liked_films(username: str) -> list[FilmRef]:
    return await _with_scraper("fetch_liked_films", username)


async def fetch_watchlist(username: str) -> list[str]:
    return await _with_scraper("fetch_watchlist", username)


async def fetch_film_details(slug: str) -> FilmDetails | None:
    return await _with_scraper("fetch_film_details", slug)

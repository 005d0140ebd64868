"""
Page extractors for Letterboxd HTML.

Each ``parse_*`` function takes one parsed page and returns normalized records.
Markup on the site drifts, so most fields are read through an ordered chain of
strategies (see ``first_of``); the first strategy yielding a value wins.
Selectors are module-level constants so they can be swapped when the site
changes without touching the extraction logic.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Iterable, Optional

from selectolax.parser import HTMLParser, Node

from .config import LETTERBOXD_BASE, FAVORITES_LIMIT
from .errors import ErrorKind

logger = logging.getLogger(__name__)

Strategy = Callable[[Node], Optional[object]]

# --- Selectors -------------------------------------------------------------

DIARY_ROW_SELECTORS = ("tr.diary-entry-row",)
REVIEW_ROW_SELECTORS = (
    ".listitem.js-listitem article.production-viewing",
    "article.production-viewing",
)
FAVORITE_ROW_SELECTORS = (
    "#favourites .poster-list li.favourite-film-poster-container",
    "section.profile-favorites li.poster-container",
    "#favourites li.griditem",
)
LIKED_ROW_SELECTORS = (
    "ul.poster-list li .poster.film-poster[data-film-slug]",
    "li.poster-container div[data-film-slug]",
    "li.griditem div.react-component[data-item-slug]",
)
WATCHLIST_ROW_SELECTORS = (
    "li.poster-container .film-poster",
    "li.griditem div.react-component",
)
NEXT_PAGE_SELECTOR = ".pagination .next"

NOT_FOUND_PHRASES = (
    "Sorry, we can’t find the page you’ve requested.",
    "Sorry, we can't find the page you've requested.",
    "The page you were looking for doesn't exist",
)
PRIVATE_PHRASES = (
    "This profile is private",
    "This account is private",
)
PRIVATE_TITLE_PHRASES = ("Profile is Private",)
NOT_FOUND_TITLE_PHRASES = ("Page Not Found",)

_FILM_HREF_RE = re.compile(r"/film/([a-z0-9-]+)/")
_TITLE_YEAR_RE = re.compile(r"^(.*)\s\((\d{4})\)$")
_YEAR_RE = re.compile(r"\b(18|19|20|21)\d{2}\b")
_DAY_PATH_RE = re.compile(r"/(\d{4})/(\d{2})/(\d{2})/?$")
_RATED_CLASS_RE = re.compile(r"rated-(\d+)")
_VIEWING_ID_RE = re.compile(r":(\d+)/")
_CSS_URL_RE = re.compile(r"url\([\"']?(.+?)[\"']?\)")


# --- Records ---------------------------------------------------------------

@dataclass(frozen=True)
class DiaryEntry:
    slug: str
    title: str
    year: int | None
    rating: float | None
    watched_date: date | None
    viewing_id: str
    review_url: str | None = None

    @property
    def url(self) -> str:
        return f"{LETTERBOXD_BASE}/film/{self.slug}/"


@dataclass(frozen=True)
class ReviewEntry:
    film_title: str
    film_year: int | None
    film_slug: str
    review_url: str
    review_text: str
    review_date: str | None
    rating: float | None


@dataclass(frozen=True)
class FilmRef:
    """A film reference in site order (favorites, likes)."""
    title: str
    year: int | None
    slug: str
    url: str


@dataclass(frozen=True)
class FilmDetails:
    slug: str
    title: str
    year: int
    poster_url: str | None = None
    directors: list[str] = field(default_factory=list)
    genres: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class FilmPageStats:
    slug: str
    high_res_poster: str | None
    backdrop: str | None
    likes_count: int | None
    watches_count: int | None
    director: str | None
    average_rating: float | None
    ratings_count: int | None


@dataclass
class ProfileStats:
    profile_url: str
    total_films_watched: str = "N/A"
    films_this_year: str = "N/A"
    following: str = "N/A"
    followers: str = "N/A"
    watchlist_count: str = "N/A"
    tags_list: list[str] = field(default_factory=list)
    avatar_url: str | None = None


@dataclass(frozen=True)
class SearchResult:
    type: str  # "film" or "director"
    title: str | None = None
    year: str | None = None
    slug: str | None = None
    name: str | None = None
    page_url: str | None = None


@dataclass(frozen=True)
class DiaryCheck:
    watched: bool
    rating: float | None = None
    date: str | None = None


# --- Strategy helpers ------------------------------------------------------

def first_of(*strategies: Strategy) -> Strategy:
    """
    Combine extraction strategies; the first one returning a non-None value wins.

    Strategies that raise ValueError/AttributeError are treated as misses.
    """
    def run(node: Node):
        for strategy in strategies:
            try:
                value = strategy(node)
            except (ValueError, AttributeError) as exc:
                logger.debug(f"Strategy {getattr(strategy, '__name__', strategy)} failed: {exc}")
                continue
            if value is not None and value != "":
                return value
        return None
    return run


def attr(selector: str | None, name: str) -> Strategy:
    """Read attribute ``name`` from ``selector`` (or the node itself when selector is None)."""
    def read(node: Node):
        target = node if selector is None else node.css_first(selector)
        if target is None:
            return None
        value = target.attributes.get(name)
        return value.strip() if value else None
    read.__name__ = f"attr({selector!r}, {name!r})"
    return read


def text(selector: str) -> Strategy:
    def read(node: Node):
        target = node.css_first(selector)
        if target is None:
            return None
        return target.text(strip=True) or None
    read.__name__ = f"text({selector!r})"
    return read


def mapped(strategy: Strategy, fn: Callable[[str], object]) -> Strategy:
    """Post-process a strategy's value; ``fn`` returning None counts as a miss."""
    def run(node: Node):
        value = strategy(node)
        return fn(value) if value is not None else None
    run.__name__ = f"mapped({getattr(strategy, '__name__', strategy)})"
    return run


def select_rows(tree: HTMLParser | Node, selectors: Iterable[str]) -> list[Node]:
    """Return rows matched by the first selector in ``selectors`` that matches anything."""
    for selector in selectors:
        rows = tree.css(selector)
        if rows:
            return rows
    return []


# --- Field converters ------------------------------------------------------

def scale_rating(value) -> float | None:
    """
    Convert the site's internal 0-10 scale to stars (value / 2).

    An explicit 0 stays 0.0; absent input returns None. Values outside the
    0-10 range are rejected.
    """
    if value is None:
        return None
    try:
        raw = int(str(value).strip())
    except ValueError:
        logger.warning(f"Unexpected rating value '{value}'")
        return None
    if not 0 <= raw <= 10:
        logger.warning(f"Rating value outside range [0-10]: {raw}")
        return None
    return raw / 2


def rating_from_class(class_attr: str | None) -> float | None:
    if not class_attr:
        return None
    match = _RATED_CLASS_RE.search(class_attr)
    if not match:
        return None
    return scale_rating(match.group(1))


def slug_from_href(href: str | None) -> str | None:
    if not href:
        return None
    match = _FILM_HREF_RE.search(href)
    return match.group(1) if match else None


def split_title_year(name: str | None) -> tuple[str | None, int | None]:
    """Split 'Title (2019)' into ('Title', 2019); names without a year keep year None."""
    if not name:
        return None, None
    match = _TITLE_YEAR_RE.match(name.strip())
    if match:
        return match.group(1).strip(), int(match.group(2))
    return name.strip(), None


def parse_year(value: str | None) -> int | None:
    if not value:
        return None
    match = _YEAR_RE.search(value)
    return int(match.group(0)) if match else None


def date_from_day_path(href: str | None) -> date | None:
    """Derive a date from a day link such as '/user/films/diary/for/2024/03/09/'."""
    if not href:
        return None
    match = _DAY_PATH_RE.search(href)
    if not match:
        return None
    return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))


def parse_iso_date(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00")).date()
    except ValueError:
        return None


def parse_count(value: str | None) -> int | None:
    """Parse '1,234' or 'Watched by 1,234 members' style counts."""
    if not value:
        return None
    match = re.search(r"[\d,]+", value)
    if not match:
        return None
    digits = match.group(0).replace(",", "")
    return int(digits) if digits else None


def absolute_url(href: str | None) -> str | None:
    if not href:
        return None
    if href.startswith("http"):
        return href
    return f"{LETTERBOXD_BASE}{href}"


# --- Field chains ----------------------------------------------------------

_film_slug = first_of(
    attr("td.td-film-details .film-poster", "data-film-slug"),
    attr("[data-film-slug]", "data-film-slug"),
    attr("div.react-component", "data-item-slug"),
    mapped(attr("h2.name a", "href"), slug_from_href),
    mapped(attr("h3 a", "href"), slug_from_href),
)

_poster_slug = first_of(
    attr(None, "data-film-slug"),
    attr(None, "data-item-slug"),
    attr("[data-film-slug]", "data-film-slug"),
    attr("[data-item-slug]", "data-item-slug"),
    mapped(attr("a[href*='/film/']", "href"), slug_from_href),
)

_poster_name = first_of(
    attr(None, "data-film-name"),
    attr(None, "data-item-name"),
    attr("[data-film-name]", "data-film-name"),
    attr("[data-item-name]", "data-item-name"),
    attr("img", "alt"),
)

_row_title = first_of(
    text("h2.name a"),
    text("h3.headline-3 a"),
    attr("td.td-film-details .film-poster img", "alt"),
    attr("img", "alt"),
)

_row_year = first_of(
    mapped(text(".releasedate a"), parse_year),
    mapped(text("td.td-released span"), parse_year),
    mapped(text("span.releasedate"), parse_year),
    mapped(attr("[data-film-name]", "data-film-name"), lambda v: split_title_year(v)[1]),
    mapped(attr("img", "alt"), lambda v: split_title_year(v)[1]),
)

_row_rating = first_of(
    mapped(attr(".td-rating input.rateit-field", "value"), scale_rating),
    mapped(attr(".td-rating .rateit-range", "aria-valuenow"), scale_rating),
    mapped(attr("span.rating", "class"), rating_from_class),
)

_watched_date = first_of(
    mapped(attr(None, "data-viewing-date"), parse_iso_date),
    mapped(attr("td.td-day a", "href"), date_from_day_path),
    mapped(attr("time.timestamp", "datetime"), parse_iso_date),
)

_viewing_id = first_of(
    attr(None, "data-viewing-id"),
    attr("[data-viewing-id]", "data-viewing-id"),
    mapped(attr(".js-review .body-text", "data-full-text-url"),
           lambda v: (_VIEWING_ID_RE.search(v) or [None, None])[1]),
)


# --- Page checks -----------------------------------------------------------

# Member-written text that may quote the site's error phrases
USER_CONTENT_SELECTOR = ".body-text, .review, .film-detail-content, td.td-film-details"


def _page_message_text(tree: HTMLParser) -> str:
    """Text of the main content area with member-written text left out."""
    container = tree.css_first("#content") or tree.css_first("body")
    if container is None:
        return ""
    message = container.text()
    for node in container.css(USER_CONTENT_SELECTOR):
        message = message.replace(node.text(), " ", 1)
    return message


def detect_page_error(tree: HTMLParser) -> ErrorKind | None:
    """Return PRIVATE/NOT_FOUND when the page says so, before any field extraction."""
    title_el = tree.css_first("title")
    page_title = title_el.text() if title_el else ""
    body_text = _page_message_text(tree)

    if any(p in page_title for p in PRIVATE_TITLE_PHRASES) or any(p in body_text for p in PRIVATE_PHRASES):
        return ErrorKind.PRIVATE
    if any(p in page_title for p in NOT_FOUND_TITLE_PHRASES) or any(p in body_text for p in NOT_FOUND_PHRASES):
        return ErrorKind.NOT_FOUND
    return None


def has_next_page(tree: HTMLParser) -> bool:
    return tree.css_first(NEXT_PAGE_SELECTOR) is not None


# --- Page parsers ----------------------------------------------------------

def parse_diary_row(row: Node) -> DiaryEntry | None:
    """Parse one diary table row; rows missing slug, viewing id or date are dropped."""
    slug = _film_slug(row)
    viewing_id = _viewing_id(row)
    watched = _watched_date(row)
    title = _row_title(row) or slug

    if not slug or not viewing_id or watched is None:
        logger.warning(
            f"Skipping diary row '{title}' ({ErrorKind.PARSE_INCOMPLETE.name}: "
            f"slug={slug!r}, viewing_id={viewing_id!r}, date={watched})"
        )
        return None

    review_link = row.css_first("td.td-review a.icon-review, td.td-review a[href*='/film/']")
    review_url = absolute_url(review_link.attributes.get("href")) if review_link else None

    return DiaryEntry(
        slug=slug,
        title=title,
        year=_row_year(row),
        rating=_row_rating(row),
        watched_date=watched,
        viewing_id=viewing_id,
        review_url=review_url,
    )


def parse_diary_page(tree: HTMLParser) -> list[DiaryEntry]:
    rows = select_rows(tree, DIARY_ROW_SELECTORS)
    entries = [entry for entry in (parse_diary_row(r) for r in rows) if entry is not None]
    if len(entries) < len(rows):
        logger.debug(f"Diary page: kept {len(entries)}/{len(rows)} rows")
    return entries


def parse_review_row(row: Node, username: str) -> ReviewEntry | None:
    link = row.css_first("h2.name a") or row.css_first("h2 a")
    href = link.attributes.get("href") if link else None
    slug = first_of(
        lambda _: slug_from_href(href),
        attr("[data-film-slug]", "data-film-slug"),
        attr("div.react-component", "data-item-slug"),
    )(row)
    title = (link.text(strip=True) if link else None) or _row_title(row) or slug

    if not slug:
        logger.warning(f"Skipping review '{title}' ({ErrorKind.PARSE_INCOMPLETE.name}: no slug)")
        return None

    body = row.css_first(".js-review .body-text") or row.css_first(".body-text")
    review_text = ""
    review_url = absolute_url(href) or f"{LETTERBOXD_BASE}/{username}/film/{slug}/"
    if body is not None:
        paragraphs = [p.text(strip=True) for p in body.css("p")]
        review_text = "\n\n".join(p for p in paragraphs if p) or body.text(strip=True)

        full_text_url = body.attributes.get("data-full-text-url")
        match = _VIEWING_ID_RE.search(full_text_url) if full_text_url else None
        if match:
            review_url = f"{LETTERBOXD_BASE}/{username}/film/{slug}/{match.group(1)}/"

        if body.css_first(".js-collapsible-text-toggle") is not None and not review_text.endswith("..."):
            review_text += "..."

    time_el = row.css_first("time.timestamp") or row.css_first("time")
    review_date = None
    if time_el is not None:
        review_date = time_el.attributes.get("datetime") or time_el.text(strip=True) or None

    return ReviewEntry(
        film_title=title,
        film_year=_row_year(row),
        film_slug=slug,
        review_url=review_url,
        review_text=review_text,
        review_date=review_date,
        rating=mapped(attr("span.rating", "class"), rating_from_class)(row),
    )


def parse_reviews_page(tree: HTMLParser, username: str) -> list[ReviewEntry]:
    rows = select_rows(tree, REVIEW_ROW_SELECTORS)
    return [r for r in (parse_review_row(row, username) for row in rows) if r is not None]


def parse_poster_item(node: Node) -> FilmRef | None:
    """Parse a poster tile (favorites, likes); tiles without a slug are dropped."""
    slug = _poster_slug(node)
    title, year = split_title_year(_poster_name(node))
    if not slug:
        logger.warning(f"Skipping poster '{title}' ({ErrorKind.PARSE_INCOMPLETE.name}: no slug)")
        return None
    return FilmRef(
        title=title or "N/A",
        year=year,
        slug=slug,
        url=f"{LETTERBOXD_BASE}/film/{slug}/",
    )


def parse_favorites(tree: HTMLParser, limit: int = FAVORITES_LIMIT) -> list[FilmRef]:
    favorites = []
    for node in select_rows(tree, FAVORITE_ROW_SELECTORS):
        film = parse_poster_item(node)
        if film is not None:
            favorites.append(film)
        if len(favorites) >= limit:
            break
    return favorites


def parse_liked_page(tree: HTMLParser) -> list[FilmRef]:
    return [f for f in (parse_poster_item(n) for n in select_rows(tree, LIKED_ROW_SELECTORS)) if f]


def parse_watchlist_page(tree: HTMLParser) -> list[str]:
    slugs = []
    for node in select_rows(tree, WATCHLIST_ROW_SELECTORS):
        slug = _poster_slug(node)
        if slug:
            slugs.append(slug)
        else:
            logger.warning(f"Skipping watchlist item ({ErrorKind.PARSE_INCOMPLETE.name}: no slug)")
    return slugs


def _og_title(tree: HTMLParser) -> str | None:
    og = tree.css_first("meta[property='og:title']")
    return og.attributes.get("content") if og else None


def parse_film_details(tree: HTMLParser, slug: str) -> FilmDetails | None:
    """Title, year and poster from a film page. Returns None when title or year is missing."""
    og_title = _og_title(tree)
    title = first_of(
        text("h1 .name.prettify"),
        text("h1.headline-1"),
        lambda _: split_title_year(og_title)[0],
    )(tree)
    year = first_of(
        mapped(text("span.releasedate a"), parse_year),
        mapped(text("small.number a, div.releaseyear a"), parse_year),
        mapped(text("a[href*='/films/year/']"), parse_year),
        lambda _: split_title_year(og_title)[1],
    )(tree)

    if not title or year is None:
        logger.warning(f"Film page '{slug}' missing title or year (title={title!r}, year={year})")
        return None

    poster_url = first_of(
        mapped(attr(".film-poster.poster", "style"),
               lambda s: (_CSS_URL_RE.search(s) or [None, None])[1] if "background-image" in s else None),
        attr(".film-poster img.image", "src"),
        attr("meta[property='og:image']", "content"),
    )(tree)

    directors = list(dict.fromkeys(a.text(strip=True) for a in tree.css("a[href*='/director/']") if a.text(strip=True)))
    genres = list(dict.fromkeys(a.text(strip=True) for a in tree.css("a[href*='/films/genre/']") if a.text(strip=True)))

    return FilmDetails(slug=slug, title=title, year=year, poster_url=poster_url,
                       directors=directors, genres=genres)


def _largest_from_srcset(srcset: str | None) -> str | None:
    if not srcset:
        return None
    urls = [part.strip().split(" ")[0] for part in srcset.split(",") if part.strip()]
    return urls[-1] if urls else None


def parse_film_page_stats(tree: HTMLParser, slug: str) -> FilmPageStats:
    modal_img = "#poster-modal .modal-body .poster img.image"
    high_res = first_of(
        mapped(attr(modal_img, "srcset"), _largest_from_srcset),
        attr(modal_img, "src"),
        mapped(attr("a[data-js-trigger='postermodal']", "href"),
               lambda h: absolute_url(re.sub(r"/image-\d+/$", "/", h))),
    )(tree)

    def tooltip_count(selector: str, phrase: str):
        def read(node: Node):
            value = attr(selector, "data-original-title")(node)
            if not value or phrase not in value:
                return None
            return parse_count(value.split(phrase, 1)[1])
        return read

    rating_el = tree.css_first("span.average-rating a.display-rating")
    average_rating = None
    ratings_count = None
    if rating_el is not None:
        try:
            average_rating = float(rating_el.text(strip=True))
        except ValueError:
            average_rating = None
        original = rating_el.attributes.get("data-original-title") or ""
        match = re.search(r"based on ([\d,]+)(?:&nbsp;|\s+)ratings", original)
        if match:
            ratings_count = parse_count(match.group(1))
    if average_rating is None:
        meta = tree.css_first("meta[name='twitter:data2']")
        if meta is not None:
            try:
                average_rating = float((meta.attributes.get("content") or "").split()[0])
            except (ValueError, IndexError):
                average_rating = None

    return FilmPageStats(
        slug=slug,
        high_res_poster=high_res,
        backdrop=attr("#backdrop", "data-backdrop")(tree),
        likes_count=tooltip_count(".production-statistic.-likes a.tooltip", "Liked by")(tree),
        watches_count=tooltip_count(".production-statistic.-watches a.tooltip", "Watched by")(tree),
        director=first_of(
            text("p.credits span.creatorlist a span.prettify"),
            text("a[href*='/director/']"),
        )(tree),
        average_rating=average_rating,
        ratings_count=ratings_count,
    )


_PROFILE_STAT_LINKS = {
    "total_films_watched": "a[href$='/films/']",
    "films_this_year": "a[href*='/films/diary/for/']",
    "following": "a[href$='/following/']",
    "followers": "a[href$='/followers/']",
}


def parse_profile_stats(tree: HTMLParser, profile_url: str) -> ProfileStats:
    """Each field is independent; a missing section leaves its 'N/A' default."""
    stats = ProfileStats(profile_url=profile_url)

    stats.avatar_url = first_of(
        attr("div.profile-avatar span.avatar img", "src"),
        attr(".profile-avatar img", "src"),
    )(tree)
    if stats.avatar_url is None:
        logger.debug("Profile avatar not found")

    container = tree.css_first("div.profile-stats") or tree.css_first(".profile-stats")
    if container is not None:
        for field_name, link_selector in _PROFILE_STAT_LINKS.items():
            value = first_of(
                text(f"h4.profile-statistic {link_selector} .value"),
                text(f".profile-statistic {link_selector} .value"),
            )(container)
            if value:
                setattr(stats, field_name, value)
    else:
        logger.debug("Profile stats block not found")

    watchlist = first_of(
        text("section.watchlist-aside a.all-link"),
        text("section.watchlist-aside .all-link"),
    )(tree)
    if watchlist:
        stats.watchlist_count = watchlist

    for section in tree.css("section"):
        if section.css_first("h3.section-heading a[href$='/tags/']") is None:
            continue
        stats.tags_list = [a.text(strip=True) for a in section.css("ul.tags li a") if a.text(strip=True)]
        break

    return stats


def parse_film_search(tree: HTMLParser) -> list[SearchResult]:
    results = []
    for item in tree.css("li.search-result.-production"):
        poster = item.css_first("div.film-poster") or item.css_first("[data-film-slug]")
        title = attr("img", "alt")(poster) if poster else None
        slug = poster.attributes.get("data-film-slug") if poster else None
        year = text("h2.headline-2 a small.metadata")(item)
        if title and slug:
            results.append(SearchResult(type="film", title=title, year=year, slug=slug))
    return results


def parse_director_search(tree: HTMLParser) -> list[SearchResult]:
    results = []
    for item in tree.css("li.search-result.-contributor"):
        link = item.css_first("h2.title-2 a") or item.css_first("h2 a")
        if link is None:
            continue
        name = link.text(strip=True)
        page_url = link.attributes.get("href")
        if name and page_url and page_url.startswith("/director/"):
            results.append(SearchResult(type="director", name=name, page_url=page_url))
    return results


def parse_director_films(tree: HTMLParser) -> list[FilmRef]:
    films = []
    for node in select_rows(tree, ("li.poster-container div.film-poster", "li.griditem div.react-component")):
        film = parse_poster_item(node)
        if film is not None:
            films.append(film)
    return films

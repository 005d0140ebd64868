"""
Chat command handlers.

Each handler takes a CommandContext (who invoked it and where) plus the
injected BotServices, and returns a Reply. Binding these to a chat SDK is
left to the host application; the CLI drives them directly.
"""
import asyncio
import logging
import random
from dataclasses import dataclass, field
from datetime import date, timedelta
from functools import wraps
from typing import Callable

import numpy as np

from . import database
from .config import (
    COLOR_HELP,
    COMPARE_PAGE_SIZE,
    GRID_DEFAULT_COLS,
    GRID_DEFAULT_ROWS,
    GRID_MAX_CELLS,
    LETTERBOXD_BASE,
    MAX_RATING_DIFFERENCE,
    QUIZ_MIN_VOTE_COUNT,
    QUIZ_OPTION_COUNT,
    SENT_VIEWINGS_RETENTION_DAYS,
    TASTE_HIGHLIGHTS,
)
from .errors import ScraperError
from .grid import build_grid_png
from .parsing import DiaryEntry, FilmRef
from .presenter import (
    Embed,
    compare_embed,
    daily_notification_embed,
    diary_embed,
    diary_list_embed,
    favorites_embed,
    film_check_embed,
    film_label,
    grid_embed,
    movie_embed,
    person_embed,
    profile_embed,
    quiz_embed,
    quiz_reveal_embed,
    review_embed,
    search_embed,
    similar_embed,
    soundtrack_embed,
    taste_embed,
    top_embed,
)
from .scraper import LetterboxdScraper
from .sessions import SessionActiveError, SessionRegistry
from .tmdb import TMDBClient, poster_url, random_quote
from .utils import InvalidInput, normalize_string, validate_username

logger = logging.getLogger(__name__)

NOT_LINKED = "You need to link your Letterboxd account first with /link."
GRID_FILENAME = "grid.png"


@dataclass
class CommandContext:
    discord_id: str
    channel_id: str | None = None
    guild_id: str | None = None
    display_name: str | None = None

    @property
    def mention(self) -> str:
        return self.display_name or f"<@{self.discord_id}>"


@dataclass
class Attachment:
    filename: str
    data: bytes


@dataclass
class Reply:
    content: str = ""
    embeds: list[Embed] = field(default_factory=list)
    files: list[Attachment] = field(default_factory=list)
    ephemeral: bool = False
    choices: list[tuple[str, str]] = field(default_factory=list)  # (value, label)

    def to_text(self) -> str:
        parts = [self.content] if self.content else []
        parts.extend(embed.to_text() for embed in self.embeds)
        parts.extend(f"{label} [{value}]" for value, label in self.choices)
        return "\n\n".join(parts)


@dataclass
class Notification:
    guild_id: str
    channel_id: str
    reply: Reply


@dataclass
class BotServices:
    scraper: LetterboxdScraper
    tmdb: TMDBClient
    sessions: SessionRegistry
    rng: random.Random = field(default_factory=random.Random)
    today: Callable[[], date] = date.today


def replies_on_error(func):
    """Translate page-level scraper failures and rejected input into an ephemeral reply."""
    @wraps(func)
    async def wrapper(*args, **kwargs) -> Reply:
        try:
            return await func(*args, **kwargs)
        except ScraperError as exc:
            logger.warning(f"{func.__name__} failed: {exc}")
            return Reply(content=exc.user_message, ephemeral=True)
        except InvalidInput as exc:
            return Reply(content=str(exc), ephemeral=True)
    return wrapper


def _resolve_username(ctx: CommandContext, username: str | None) -> str | None:
    if username:
        return validate_username(username)
    return database.get_linked_username(ctx.discord_id)


async def _enrich(services: BotServices, title: str | None, year: int | None):
    if not title:
        return None
    return await services.tmdb.enrich_movie(title, year)


# --- Accounts -----------------------------------------------------------------

async def link(ctx: CommandContext, services: BotServices, username: str) -> Reply:
    try:
        username = validate_username(username)
    except InvalidInput as exc:
        return Reply(content=str(exc), ephemeral=True)

    status = await services.scraper.check_user_exists(username)
    if status == "PRIVATE":
        return Reply(content=f"The Letterboxd profile `{username}` is private and cannot be linked.", ephemeral=True)
    if status == "NOT_FOUND":
        return Reply(content=f"Letterboxd user `{username}` was not found.", ephemeral=True)
    if status != "SUCCESS":
        return Reply(content="Could not verify that Letterboxd account right now. Try again later.", ephemeral=True)

    database.link_user(ctx.discord_id, username)
    return Reply(content=f"Your account is now linked to Letterboxd user `{username}`.", ephemeral=True)


async def unlink(ctx: CommandContext, services: BotServices) -> Reply:
    if database.unlink_user(ctx.discord_id):
        return Reply(content="Your Letterboxd account has been unlinked.", ephemeral=True)
    return Reply(content="You have no linked Letterboxd account.", ephemeral=True)


async def setchannel(ctx: CommandContext, services: BotServices, channel_id: str | None = None) -> Reply:
    if ctx.guild_id is None:
        return Reply(content="This command can only be used in a server.", ephemeral=True)
    channel_id = channel_id or ctx.channel_id
    if channel_id is None:
        return Reply(content="No channel given.", ephemeral=True)
    database.set_notification_channel(ctx.guild_id, channel_id)
    return Reply(content=f"Daily diary notifications will be sent to <#{channel_id}>.")


# --- Diary and reviews ------------------------------------------------------

@replies_on_error
async def diary(ctx: CommandContext, services: BotServices, username: str | None = None,
                day: date | None = None) -> Reply:
    """Films the user logged on ``day`` (today by default)."""
    username = _resolve_username(ctx, username)
    if username is None:
        return Reply(content=NOT_LINKED, ephemeral=True)

    day = day or services.today()
    entries = await services.scraper.fetch_daily_diary(username, day)
    if not entries:
        return Reply(content=f"{username} has not logged any films on {day.isoformat()}.")

    movies = await asyncio.gather(*(_enrich(services, e.title, e.year) for e in entries))
    title = f"Diary of {username} for {day.strftime('%d %b %Y')} 🗓️"
    return Reply(embeds=[diary_list_embed(list(zip(entries, movies)), username, title)])


@replies_on_error
async def last(ctx: CommandContext, services: BotServices, username: str | None = None) -> Reply:
    username = _resolve_username(ctx, username)
    if username is None:
        return Reply(content=NOT_LINKED, ephemeral=True)

    entries = await services.scraper.fetch_recent_diary(username)
    if not entries:
        return Reply(content=f"{username} has no diary entries yet.")

    latest = entries[0]
    movie = await _enrich(services, latest.title, latest.year)
    return Reply(embeds=[diary_embed(latest, movie, username)])


@replies_on_error
async def review(ctx: CommandContext, services: BotServices, username: str | None = None,
                 film: str | None = None) -> Reply:
    """
    Latest review, or the latest review of a film whose title contains ``film``.

    Without a film filter only the first reviews page is read; with one the
    whole review history is searched.
    """
    username = _resolve_username(ctx, username)
    if username is None:
        return Reply(content=NOT_LINKED, ephemeral=True)

    if film:
        needle = film.lower()
        reviews = [r for r in await services.scraper.fetch_reviews(username) if needle in r.film_title.lower()]
        if not reviews:
            return Reply(content=f"No review of \"{film}\" found for {username}.")
    else:
        reviews = await services.scraper.fetch_recent_reviews(username)
        if not reviews:
            return Reply(content=f"{username} has not written any reviews yet.")

    latest = reviews[0]
    movie = await _enrich(services, latest.film_title, latest.film_year)
    content = ""
    if film and len(reviews) > 1:
        others = ", ".join(film_label(r.film_title, r.film_year) for r in reviews[1:])
        content = f"{len(reviews)} reviews match \"{film}\". Showing the most recent; also found: {others}"
    return Reply(content=content, embeds=[review_embed(latest, movie, username)])


@replies_on_error
async def favorites(ctx: CommandContext, services: BotServices, username: str | None = None) -> Reply:
    username = _resolve_username(ctx, username)
    if username is None:
        return Reply(content=NOT_LINKED, ephemeral=True)

    films = await services.scraper.fetch_favorites(username)
    embed = favorites_embed(films, username)
    if films:
        movie = await _enrich(services, films[0].title, films[0].year)
        if movie is not None:
            embed.thumbnail = poster_url(movie.poster_path, "w185")
    return Reply(embeds=[embed])


@replies_on_error
async def profile(ctx: CommandContext, services: BotServices, username: str | None = None) -> Reply:
    username = _resolve_username(ctx, username)
    if username is None:
        return Reply(content=NOT_LINKED, ephemeral=True)

    stats = await services.scraper.fetch_profile_stats(username)
    return Reply(embeds=[profile_embed(stats, username)])


@replies_on_error
async def watchlist(ctx: CommandContext, services: BotServices, username: str | None = None) -> Reply:
    username = _resolve_username(ctx, username)
    if username is None:
        return Reply(content=NOT_LINKED, ephemeral=True)

    slugs = await services.scraper.fetch_watchlist(username)
    if not slugs:
        return Reply(content=f"{username}'s watchlist is empty.")
    sample = services.rng.sample(slugs, min(5, len(slugs)))
    lines = "\n".join(f"- {LETTERBOXD_BASE}/film/{slug}/" for slug in sample)
    return Reply(content=f"{username} has {len(slugs)} films on their watchlist. A few of them:\n{lines}")


# --- Grids --------------------------------------------------------------------

GRID_KINDS = ("likes",) + tuple(database.WATCHED_PERIODS)


@replies_on_error
async def grid(ctx: CommandContext, services: BotServices, kind: str = "likes", username: str | None = None,
               cols: int = GRID_DEFAULT_COLS, rows: int = GRID_DEFAULT_ROWS) -> Reply:
    """Poster grid of liked films, or of films watched in a period (from synced diaries)."""
    if kind not in GRID_KINDS:
        return Reply(content=f"Unknown grid type '{kind}'. Choose one of: {', '.join(GRID_KINDS)}.", ephemeral=True)
    if cols < 1 or rows < 1 or cols * rows > GRID_MAX_CELLS:
        return Reply(content=f"Grid must have between 1 and {GRID_MAX_CELLS} cells.", ephemeral=True)

    username = _resolve_username(ctx, username)
    if username is None:
        return Reply(content=NOT_LINKED, ephemeral=True)

    if kind == "likes":
        films = await services.scraper.fetch_liked_films(username)
        title = f"Liked films of {username}"
    else:
        watched = database.WATCHED_PERIODS[kind](username, services.today())
        films = [
            FilmRef(title=r["title"], year=r["year"], slug=r["slug"], url=f"{LETTERBOXD_BASE}/film/{r['slug']}/")
            for r in watched
        ]
        title = f"Films watched by {username} ({kind})"

    if not films:
        return Reply(content=f"No films found for {username} ({kind}).")

    films = films[: cols * rows]
    movies = await asyncio.gather(*(_enrich(services, f.title, f.year) for f in films))
    urls = [poster_url(m.poster_path, "w342") if m else None for m in movies]

    try:
        png = await build_grid_png(urls, cols, rows)
    except (OSError, ValueError) as exc:
        logger.error(f"Grid generation failed for {username}: {exc}")
        return Reply(embeds=[grid_embed(title, films, None)])

    return Reply(embeds=[grid_embed(title, films, GRID_FILENAME)], files=[Attachment(GRID_FILENAME, png)])


# --- Two-user comparisons -------------------------------------------------------

def _first_by_slug(entries: list[DiaryEntry]) -> dict[str, DiaryEntry]:
    """Most recent viewing per film (diaries are scraped newest first)."""
    by_slug: dict[str, DiaryEntry] = {}
    for entry in entries:
        by_slug.setdefault(entry.slug, entry)
    return by_slug


def common_films(diary1: list[DiaryEntry], diary2: list[DiaryEntry]) -> list[dict]:
    """Films present in both diaries, in the first diary's order."""
    first, second = _first_by_slug(diary1), _first_by_slug(diary2)
    return [
        {
            "slug": slug,
            "title": entry.title,
            "year": entry.year,
            "rating1": entry.rating,
            "rating2": second[slug].rating,
        }
        for slug, entry in first.items()
        if slug in second
    ]


def taste_compatibility(common: list[dict], highlights: int = TASTE_HIGHLIGHTS):
    """
    Compatibility percentage from films both users rated.

    100% means identical ratings; each half star of average disagreement
    costs 100 / 9 points. Returns (percentage, rated_films, agreed, disagreed).
    """
    # A stored 0 is the site's "no rating" value, not a half-star score
    rated = [c for c in common if c["rating1"] and c["rating2"]]
    if not rated:
        return 0.0, [], [], []

    diffs = np.abs(np.array([c["rating1"] for c in rated]) - np.array([c["rating2"] for c in rated]))
    percentage = max(0.0, 100.0 - float(diffs.mean()) / MAX_RATING_DIFFERENCE * 100.0)

    order = np.argsort(diffs, kind="stable")
    agreed = [rated[i] for i in order[:highlights]]
    disagreed = [rated[i] for i in order[::-1][:highlights]]
    return round(percentage, 2), rated, agreed, disagreed


async def _two_diaries(ctx: CommandContext, services: BotServices, other: str, username: str | None):
    first = _resolve_username(ctx, username)
    if first is None:
        return None
    second = validate_username(other)
    diary1 = await services.scraper.fetch_diary(first)
    diary2 = await services.scraper.fetch_diary(second)
    return first, second, diary1, diary2


@replies_on_error
async def compare(ctx: CommandContext, services: BotServices, other: str, username: str | None = None,
                  page: int = 0) -> Reply:
    result = await _two_diaries(ctx, services, other, username)
    if result is None:
        return Reply(content=NOT_LINKED, ephemeral=True)
    name1, name2, diary1, diary2 = result

    for name, entries in ((name1, diary1), (name2, diary2)):
        if not entries:
            return Reply(content=f"{name}'s diary is empty.")

    common = common_films(diary1, diary2)
    if not common:
        return Reply(content=f"{name1} and {name2} have no films in common.")

    last_page = (len(common) - 1) // COMPARE_PAGE_SIZE
    page = min(max(page, 0), last_page)
    return Reply(embeds=[compare_embed(common, page, COMPARE_PAGE_SIZE, name1, name2)])


@replies_on_error
async def taste(ctx: CommandContext, services: BotServices, other: str, username: str | None = None) -> Reply:
    result = await _two_diaries(ctx, services, other, username)
    if result is None:
        return Reply(content=NOT_LINKED, ephemeral=True)
    name1, name2, diary1, diary2 = result

    percentage, rated, agreed, disagreed = taste_compatibility(common_films(diary1, diary2))
    if not rated:
        return Reply(content=f"{name1} and {name2} have not rated any of the same films.")
    return Reply(embeds=[taste_embed(name1, name2, percentage, len(rated), agreed, disagreed)])


# --- Film lookups -------------------------------------------------------------

async def _first_film(services: BotServices, query: str):
    results = await services.scraper.search(query)
    return next((r for r in results if r.type == "film" and r.slug), None)


@replies_on_error
async def checkfilm(ctx: CommandContext, services: BotServices, film: str, username: str | None = None) -> Reply:
    """Whether a user (or every linked user) has logged ``film``."""
    if username:
        users = [validate_username(username)]
    else:
        users = list(dict.fromkeys(database.get_all_links().values()))
    if not users:
        return Reply(content="Nobody has linked a Letterboxd account yet.", ephemeral=True)

    hit = await _first_film(services, film)
    if hit is None:
        return Reply(content=f"No film found for \"{film}\".")

    details = await services.scraper.fetch_film_details(hit.slug)
    if details is None:
        return Reply(content=f"Could not load the Letterboxd page for \"{film}\".")

    results = []
    for user in users:
        try:
            results.append((user, await services.scraper.check_film_in_diary(user, details.slug)))
        except ScraperError as exc:
            logger.warning(f"Diary check failed for {user}: {exc}")
            results.append((user, None))

    try:
        stats = await services.scraper.fetch_film_page_stats(details.slug)
    except ScraperError as exc:
        logger.warning(f"Film page stats unavailable for {details.slug}: {exc}")
        stats = None

    movie = await _enrich(services, details.title, details.year)
    return Reply(embeds=[film_check_embed(details, movie, results, stats)])


async def similar(ctx: CommandContext, services: BotServices, title: str, year: int | None = None,
                  cols: int = GRID_DEFAULT_COLS, rows: int = GRID_DEFAULT_ROWS) -> Reply:
    movie = await services.tmdb.enrich_movie(title, year)
    if movie is None:
        return Reply(content=f"Could not find \"{title}\" on TMDB.")

    films = (await services.tmdb.similar_movies(movie.id))[: cols * rows]
    if not films:
        return Reply(embeds=[similar_embed(movie, [], None)])

    urls = [poster_url(m.get("poster_path"), "w342") for m in films]
    try:
        png = await build_grid_png(urls, cols, rows)
    except (OSError, ValueError) as exc:
        logger.error(f"Similar grid failed for {movie.title}: {exc}")
        return Reply(embeds=[similar_embed(movie, films, None)])
    return Reply(embeds=[similar_embed(movie, films, GRID_FILENAME)], files=[Attachment(GRID_FILENAME, png)])


@replies_on_error
async def search(ctx: CommandContext, services: BotServices, query: str) -> Reply:
    results = await services.scraper.search(query)
    if not results:
        return Reply(content=f"No results found for \"{query}\".")

    embeds = [search_embed(query, results)]
    top = results[0]
    if top.type == "director" and top.page_url:
        person = await services.tmdb.search_person(top.name)
        details = await services.tmdb.person_details(person.id) if person else None
        films = await services.scraper.fetch_director_films(top.page_url)
        if details is not None:
            embeds.append(person_embed(details, films))
    elif top.type == "film":
        movie = await _enrich(services, top.title, int(top.year) if top.year and top.year.isdigit() else None)
        if movie is not None:
            embeds.append(movie_embed(movie))
    return Reply(embeds=embeds)


async def soundtrack(ctx: CommandContext, services: BotServices, title: str, year: int | None = None) -> Reply:
    movie = await services.tmdb.enrich_movie(title, year)
    if movie is None:
        return Reply(content=f"Could not find \"{title}\" on TMDB.")
    details = await services.tmdb.soundtrack_details(movie.id)
    return Reply(embeds=[soundtrack_embed(movie, details)])


# --- Quiz -----------------------------------------------------------------------

@dataclass
class QuizState:
    answer: dict
    options: list[dict]
    content_type: str
    letterboxd_url: str | None = None


def _quiz_label(movie: dict) -> str:
    year = (movie.get("release_date") or "")[:4] or "N/A"
    return f"{movie.get('title')} ({year})"


async def _letterboxd_url_for(services: BotServices, movie: dict) -> str | None:
    year = (movie.get("release_date") or "")[:4] or None
    try:
        results = await services.scraper.search(movie.get("title", ""))
    except ScraperError as exc:
        logger.warning(f"Letterboxd lookup for quiz answer failed: {exc}")
        return None
    target = normalize_string(movie.get("title"))
    for r in results:
        if r.type == "film" and normalize_string(r.title) == target and (not r.year or r.year == year):
            return f"{LETTERBOXD_BASE}/film/{r.slug}/"
    return None


async def quiz(ctx: CommandContext, services: BotServices) -> Reply:
    """Start a guess-the-movie round in this channel."""
    if services.sessions.get(ctx.channel_id) is not None:
        return Reply(content="There is already an active movie quiz in this channel.", ephemeral=True)

    movies = await services.tmdb.discover_movies(sort_by="popularity.desc", vote_count_gte=QUIZ_MIN_VOTE_COUNT)
    eligible = list({m["id"]: m for m in movies if m.get("overview") and m.get("poster_path")}.values())
    if len(eligible) < QUIZ_OPTION_COUNT:
        return Reply(content="Not enough suitable movies found for the quiz. Please try again later.")

    options = services.rng.sample(eligible, QUIZ_OPTION_COUNT)
    answer = services.rng.choice(options)
    roll = services.rng.random()
    content_type = "synopsis" if roll < 0.4 else "poster" if roll < 0.8 else "both"

    state = QuizState(answer=answer, options=options, content_type=content_type,
                      letterboxd_url=await _letterboxd_url_for(services, answer))
    try:
        services.sessions.create(ctx.channel_id, state)
    except SessionActiveError:
        return Reply(content="There is already an active movie quiz in this channel.", ephemeral=True)

    logger.info(f"Quiz started in channel {ctx.channel_id} ({content_type})")
    return Reply(
        embeds=[quiz_embed(answer, content_type)],
        choices=[(str(m["id"]), _quiz_label(m)) for m in options],
    )


def _answer_url(state: QuizState) -> str:
    return state.letterboxd_url or f"https://www.themoviedb.org/movie/{state.answer['id']}"


async def quiz_guess(ctx: CommandContext, services: BotServices, choice: str) -> Reply:
    session = services.sessions.get(ctx.channel_id)
    if session is None:
        return Reply(content="There is no active quiz in this channel.", ephemeral=True)

    state: QuizState = session.state
    if str(choice) != str(state.answer["id"]):
        return Reply(content="Incorrect guess! Try again or wait for others.", ephemeral=True)

    services.sessions.close(ctx.channel_id)
    logger.info(f"Quiz in channel {ctx.channel_id} won by {ctx.discord_id}")
    return Reply(embeds=[quiz_reveal_embed(state.answer, ctx.mention, _answer_url(state))])


def expire_quizzes(services: BotServices) -> list[tuple[str, Reply]]:
    """Close timed-out quizzes; returns (channel_id, reveal) for each."""
    return [
        (session.key, Reply(embeds=[quiz_reveal_embed(session.state.answer, None, _answer_url(session.state))]))
        for session in services.sessions.expire_stale()
    ]


# --- Server ranking -----------------------------------------------------------

async def sync_user(services: BotServices, discord_id: str, username: str) -> tuple[int, int]:
    """Scrape a full diary into the database; returns (processed, newly_inserted)."""
    entries = await services.scraper.fetch_diary(username)
    inserted = database.save_diary_entries(discord_id, username, entries)
    database.update_last_sync(discord_id)
    return len(entries), inserted


@replies_on_error
async def sync(ctx: CommandContext, services: BotServices) -> Reply:
    username = database.get_linked_username(ctx.discord_id)
    if username is None:
        return Reply(content=NOT_LINKED, ephemeral=True)

    processed, inserted = await sync_user(services, ctx.discord_id, username)
    if processed == 0:
        return Reply(content="Your Letterboxd diary seems to be empty. Nothing to sync.", ephemeral=True)
    return Reply(
        content=f"Sync complete! {processed} diary entries processed, {inserted} new.",
        ephemeral=True,
    )


async def top(ctx: CommandContext, services: BotServices, limit: int = 5) -> Reply:
    rows = database.top_films(limit)
    if not rows:
        return Reply(content="Not enough films in the database yet. Use sync to add your films!")
    movie = await _enrich(services, rows[0]["title"], rows[0]["year"])
    return Reply(embeds=[top_embed(rows, movie)])


# --- Daily notifications --------------------------------------------------------

async def daily_check(services: BotServices, day: date | None = None) -> list[Notification]:
    """
    Collect today's new diary viewings from every linked user.

    Viewings are grouped per film and each group is announced in every guild
    with a notification channel. Viewing ids already announced are skipped,
    and new ones are marked as sent.
    """
    channels = database.get_guild_configs()
    if not channels:
        logger.info("Daily check skipped: no guild has a notification channel")
        return []

    day = day or services.today()
    groups: dict[str, dict] = {}
    new_viewings: list[str] = []

    for discord_id, username in database.get_all_links().items():
        try:
            entries = await services.scraper.fetch_daily_diary(username, day)
        except ScraperError as exc:
            logger.warning(f"Daily diary check failed for {username}: {exc}")
            continue

        for entry in entries:
            if entry.viewing_id in new_viewings or database.is_viewing_sent(entry.viewing_id):
                continue
            new_viewings.append(entry.viewing_id)
            group = groups.setdefault(entry.slug, {
                "title": entry.title, "year": entry.year, "slug": entry.slug,
                "users": [], "reviews": [], "poster_url": None,
            })
            if username not in group["users"]:
                group["users"].append(username)
            if entry.review_url and all(r["username"] != username for r in group["reviews"]):
                group["reviews"].append({"username": username, "url": entry.review_url})

    movies = await asyncio.gather(*(_enrich(services, g["title"], g["year"]) for g in groups.values()))
    for group, movie in zip(groups.values(), movies):
        if movie is not None:
            group["poster_url"] = poster_url(movie.poster_path, "w185")

    notifications = [
        Notification(guild_id, channel_id, Reply(embeds=[daily_notification_embed(group)]))
        for guild_id, channel_id in channels.items()
        for group in groups.values()
    ]

    for viewing_id in new_viewings:
        database.mark_viewing_sent(viewing_id, day)
    purged = database.purge_sent_viewings(day - timedelta(days=SENT_VIEWINGS_RETENTION_DAYS))
    if purged:
        logger.debug(f"Purged {purged} old sent-viewing markers")

    logger.info(f"Daily check: {len(new_viewings)} new viewings across {len(groups)} films")
    return notifications


# --- Help -----------------------------------------------------------------------

HELP_TEXT = {
    "link": "Link your Letterboxd account",
    "unlink": "Remove your linked account",
    "setchannel": "Choose the channel for daily diary notifications",
    "diary": "Films you logged today",
    "last": "Your most recently logged film",
    "review": "Your latest review, or your review of a given film",
    "favorites": "Your four favorite films",
    "profile": "Your Letterboxd profile stats",
    "watchlist": "A sample from your watchlist",
    "grid": "Poster grid of liked or recently watched films",
    "compare": "Films you have in common with another user",
    "taste": "Rating compatibility with another user",
    "checkfilm": "Who has watched a film",
    "similar": "Films similar to a given one",
    "search": "Search Letterboxd for films and directors",
    "soundtrack": "Composers and trailers for a film",
    "quiz": "Guess the movie from its synopsis or poster",
    "sync": "Save your diary for the server ranking",
    "top": "Most watched films in this server",
}


async def help_command(ctx: CommandContext, services: BotServices) -> Reply:
    quote, film = random_quote(services.rng)
    embed = Embed(title="Letterboxd Bot Commands", color=COLOR_HELP, footer=f"\"{quote}\" ({film})")
    for name, description in HELP_TEXT.items():
        embed.add_field(f"/{name}", description)
    return Reply(embeds=[embed], ephemeral=True)

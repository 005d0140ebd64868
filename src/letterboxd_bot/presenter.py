"""
Rendering of scraped and enriched data into chat messages.

Builders never fail on missing enrichment: absent metadata is shown as "N/A".
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime

from .config import (
    COLOR_COMPARE,
    COLOR_DAILY,
    COLOR_DIARY,
    COLOR_FAVORITES,
    COLOR_PROFILE,
    COLOR_QUIZ,
    COLOR_REVIEW,
    COLOR_SOUNDTRACK,
    EMBED_DESCRIPTION_LIMIT,
    LETTERBOXD_BASE,
    OVERVIEW_PREVIEW_CHARS,
    REVIEW_PREVIEW_CHARS,
)
from .parsing import (
    DiaryCheck,
    DiaryEntry,
    FilmDetails,
    FilmPageStats,
    FilmRef,
    ProfileStats,
    ReviewEntry,
    SearchResult,
)
from .tmdb import EnrichedMovie, Person, SoundtrackDetails, poster_url

logger = logging.getLogger(__name__)

NA = "N/A"


@dataclass
class EmbedField:
    name: str
    value: str
    inline: bool = False


@dataclass
class Embed:
    title: str
    description: str = ""
    url: str | None = None
    color: int | None = None
    fields: list[EmbedField] = field(default_factory=list)
    thumbnail: str | None = None
    image: str | None = None
    footer: str | None = None

    def add_field(self, name: str, value: str | None, inline: bool = False) -> "Embed":
        self.fields.append(EmbedField(name, value if value else NA, inline))
        return self

    def to_dict(self) -> dict:
        data = {"title": self.title, "description": self.description[:EMBED_DESCRIPTION_LIMIT]}
        if self.url:
            data["url"] = self.url
        if self.color is not None:
            data["color"] = self.color
        if self.fields:
            data["fields"] = [{"name": f.name, "value": f.value, "inline": f.inline} for f in self.fields]
        if self.thumbnail:
            data["thumbnail"] = {"url": self.thumbnail}
        if self.image:
            data["image"] = {"url": self.image}
        if self.footer:
            data["footer"] = {"text": self.footer}
        return data

    def to_text(self) -> str:
        lines = [self.title]
        if self.url:
            lines.append(self.url)
        if self.description:
            lines.append(self.description)
        for f in self.fields:
            lines.append(f"{f.name}: {f.value}")
        if self.footer:
            lines.append(self.footer)
        return "\n".join(lines)


# --- Formatting helpers ----------------------------------------------------

def stars(rating: float | None) -> str:
    """Render a half-star rating as stars, e.g. 3.5 -> '⭐⭐⭐½'."""
    if not rating:
        return "Not Rated"
    full = int(rating)
    half = "½" if rating - full >= 0.5 else ""
    return "⭐" * full + half


_DATE_FORMATS = ("%d %b %Y", "%b %d, %Y", "%d %B %Y", "%B %d, %Y")


def _parse_date_string(value: str) -> datetime | None:
    value = value.strip()
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def format_date(value: date | datetime | str | None) -> str:
    """Format as '09 Mar 24'; anything unparseable becomes 'N/A'."""
    if not value:
        return NA
    if isinstance(value, str):
        value = _parse_date_string(value)
        if value is None:
            return NA
    return value.strftime("%d %b %y")


def film_label(title: str | None, year: int | str | None) -> str:
    title = title or NA
    return f"{title} ({year})" if year else title


def truncate(value: str, limit: int) -> str:
    if len(value) <= limit:
        return value
    return value[:limit].rstrip() + "..."


def _genres(movie: EnrichedMovie | None) -> str:
    if movie is None or not movie.genres:
        return NA
    return ", ".join(movie.genres)


def _vote(movie: EnrichedMovie | None) -> str:
    if movie is None or not movie.vote_average:
        return NA
    votes = f"{movie.vote_count:,} Votes" if movie.vote_count else NA
    return f"{movie.vote_average:.1f} ({votes})"


# --- Builders --------------------------------------------------------------

def diary_embed(entry: DiaryEntry, movie: EnrichedMovie | None, username: str) -> Embed:
    embed = Embed(
        title=f"Last Film by {username} 🎬",
        url=entry.url,
        color=COLOR_DIARY,
        description=(
            f"**Film:** {film_label(entry.title, entry.year)}\n"
            f"**Watched:** {format_date(entry.watched_date)}\n"
            f"**Rating:** {stars(entry.rating)}\n"
        ),
    )
    embed.image = poster_url(movie.poster_path) if movie else None
    embed.add_field("Rating (TMDB)", _vote(movie), inline=True)
    embed.add_field("Genres (TMDB)", _genres(movie), inline=True)
    overview = movie.overview if movie else ""
    embed.add_field("Synopsis (TMDB)", truncate(overview, OVERVIEW_PREVIEW_CHARS) if overview else NA)
    return embed


def diary_list_embed(pairs: list[tuple[DiaryEntry, EnrichedMovie | None]], username: str,
                     title: str | None = None) -> Embed:
    embed = Embed(title=title or f"Diary of {username} 🗓️", color=COLOR_DAILY)
    if not pairs:
        embed.description = "No films logged."
        return embed

    lines = []
    for entry, movie in pairs:
        lines.append(f"**- {film_label(entry.title, entry.year)}** · {format_date(entry.watched_date)}")
        lines.append(f"  Rating: {stars(entry.rating)}")
        lines.append(f"  Genres (TMDB): {_genres(movie)}")
        lines.append(f"  [View on Letterboxd]({entry.url})\n")
    embed.description = "\n".join(lines)[:EMBED_DESCRIPTION_LIMIT]

    first_movie = pairs[0][1]
    if first_movie is not None:
        embed.thumbnail = poster_url(first_movie.poster_path, "w92")
    return embed


def review_embed(review: ReviewEntry, movie: EnrichedMovie | None, username: str) -> Embed:
    description = (
        f"**Film:** {film_label(review.film_title, review.film_year)}\n"
        f"**Genres:** {_genres(movie)}\n"
        f"**Written:** {format_date(review.review_date)}\n"
        f"**Rating:** {stars(review.rating)}\n\n"
    )
    if len(review.review_text) > REVIEW_PREVIEW_CHARS:
        description += f"{review.review_text[:REVIEW_PREVIEW_CHARS]}...\n"
        description += f"[Read full review here]({review.review_url})\n"
    else:
        description += f"{review.review_text}\n"

    return Embed(
        title=f"Latest Review by {username} 📝",
        url=review.review_url,
        color=COLOR_REVIEW,
        description=description,
        thumbnail=poster_url(movie.poster_path, "w92") if movie else None,
    )


def favorites_embed(favorites: list[FilmRef], username: str) -> Embed:
    if not favorites:
        return Embed(title=f"Favorite Films of {username} ❤️", color=COLOR_FAVORITES,
                     description="No favorite films found.")
    lines = [
        f"{i}. **[{film_label(film.title, film.year)}]({film.url})**"
        for i, film in enumerate(favorites, start=1)
    ]
    return Embed(title=f"Favorite Films of {username} ❤️", color=COLOR_FAVORITES,
                 description="\n".join(lines))


def profile_embed(stats: ProfileStats, username: str) -> Embed:
    embed = Embed(
        title=f"Letterboxd Profile of {username}",
        url=stats.profile_url,
        color=COLOR_PROFILE,
        thumbnail=stats.avatar_url,
    )
    embed.add_field("🎬 Films Watched", stats.total_films_watched, inline=True)
    embed.add_field("📅 Films This Year", stats.films_this_year, inline=True)
    embed.add_field("🤝 Following", stats.following, inline=True)
    embed.add_field("👥 Followers", stats.followers, inline=True)
    embed.add_field("👀 Watchlist", stats.watchlist_count, inline=True)
    embed.add_field("🏷️ Tags Used", ", ".join(stats.tags_list) if stats.tags_list else "None", inline=True)
    return embed


def grid_embed(title: str, films: list[FilmRef], attachment_name: str | None) -> Embed:
    embed = Embed(title=title, color=COLOR_FAVORITES)
    embed.description = "\n".join(f"{i}. {film_label(f.title, f.year)}" for i, f in enumerate(films, 1))
    if attachment_name:
        embed.image = f"attachment://{attachment_name}"
    else:
        embed.footer = "An error occurred while generating the grid image."
    return embed


def compare_embed(common: list[dict], page: int, page_size: int, name1: str, name2: str) -> Embed:
    total_pages = max(1, -(-len(common) // page_size))
    start = page * page_size
    lines = [
        f"**{film_label(item['title'], item['year'])}**\n"
        f"  {name1}: {stars(item['rating1']) if item['rating1'] is not None else NA} | "
        f"{name2}: {stars(item['rating2']) if item['rating2'] is not None else NA}"
        for item in common[start:start + page_size]
    ]
    return Embed(
        title=f"Films in common: {name1} & {name2}",
        color=COLOR_COMPARE,
        description="\n".join(lines) or "No films in common.",
        footer=f"Page {page + 1} of {total_pages} · {len(common)} films in common",
    )


def taste_embed(name1: str, name2: str, percentage: float, common_count: int,
                agreed: list[dict], disagreed: list[dict]) -> Embed:
    embed = Embed(
        title=f"Taste Compatibility: {name1} & {name2}",
        color=COLOR_COMPARE,
        description=f"**{percentage:.2f}%** compatible across {common_count} films rated by both.",
    )

    def fmt(items: list[dict]) -> str:
        return "\n".join(
            f"{film_label(i['title'], i['year'])}: {stars(i['rating1'])} vs {stars(i['rating2'])}"
            for i in items
        )

    embed.add_field("🤝 Most Agreed", fmt(agreed))
    embed.add_field("⚔️ Most Disagreed", fmt(disagreed))
    return embed


def film_check_embed(details: FilmDetails, movie: EnrichedMovie | None,
                     results: list[tuple[str, DiaryCheck | None]], stats: FilmPageStats | None = None) -> Embed:
    """``results`` holds (username, DiaryCheck) pairs; None marks a user whose diary could not be read."""
    thumbnail = poster_url(movie.poster_path, "w342") if movie else None
    embed = Embed(
        title=f"Who watched {film_label(details.title, details.year)}?",
        url=f"{LETTERBOXD_BASE}/film/{details.slug}/",
        color=COLOR_DIARY,
        thumbnail=thumbnail or (stats.high_res_poster if stats else None) or details.poster_url,
    )
    lines = []
    for username, check in results:
        if check is None:
            lines.append(f"**{username}**: could not check")
        elif check.watched:
            lines.append(f"**{username}**: ✅ {stars(check.rating)} · {format_date(check.date)}")
        else:
            lines.append(f"**{username}**: ❌ not watched")
    embed.description = "\n".join(lines) or "No linked users."

    if stats is not None:
        average = f"{stats.average_rating:.2f}" if stats.average_rating is not None else None
        embed.add_field("Average (Letterboxd)", average, inline=True)
        embed.add_field("Watched by", f"{stats.watches_count:,}" if stats.watches_count else None, inline=True)
        embed.add_field("Liked by", f"{stats.likes_count:,}" if stats.likes_count else None, inline=True)
    return embed


def similar_embed(movie: EnrichedMovie, similar: list[dict], attachment_name: str | None) -> Embed:
    embed = Embed(
        title=f"Films similar to {film_label(movie.title, movie.release_year)}",
        url=f"https://www.themoviedb.org/movie/{movie.id}",
        color=COLOR_COMPARE,
    )
    embed.description = "\n".join(
        f"{i}. {film_label(m.get('title'), (m.get('release_date') or '')[:4] or None)}"
        for i, m in enumerate(similar, 1)
    ) or "No similar films found."
    if attachment_name:
        embed.image = f"attachment://{attachment_name}"
    return embed


def search_embed(query: str, results: list[SearchResult]) -> Embed:
    lines = []
    for r in results:
        if r.type == "director":
            lines.append(f"🎬 Director: [{r.name}]({LETTERBOXD_BASE}{r.page_url})")
        else:
            lines.append(f"🎞️ [{film_label(r.title, r.year)}]({LETTERBOXD_BASE}/film/{r.slug}/)")
    return Embed(title=f"Search results for \"{query}\"", color=COLOR_COMPARE,
                 description="\n".join(lines) or "No results found.")


def movie_embed(movie: EnrichedMovie) -> Embed:
    embed = Embed(
        title=film_label(movie.title, movie.release_year),
        url=f"https://www.themoviedb.org/movie/{movie.id}",
        color=COLOR_DIARY,
        description=truncate(movie.overview, OVERVIEW_PREVIEW_CHARS) if movie.overview else NA,
        image=poster_url(movie.poster_path),
    )
    embed.add_field("Directors", ", ".join(movie.directors), inline=True)
    embed.add_field("Genres", _genres(movie), inline=True)
    embed.add_field("Rating (TMDB)", _vote(movie), inline=True)
    return embed


def person_embed(person: Person, films: list[FilmRef]) -> Embed:
    embed = Embed(
        title=person.name,
        url=f"https://www.themoviedb.org/person/{person.id}",
        color=COLOR_COMPARE,
        description=truncate(person.biography, OVERVIEW_PREVIEW_CHARS) if person.biography else NA,
        thumbnail=poster_url(person.profile_path, "w185"),
    )
    embed.add_field("Born", " · ".join(p for p in (person.birthday, person.place_of_birth) if p), inline=True)
    embed.add_field("Known for", person.known_for_department, inline=True)
    embed.add_field("Films", "\n".join(film_label(f.title, f.year) for f in films[:15]))
    return embed


def soundtrack_embed(movie: EnrichedMovie, details: SoundtrackDetails) -> Embed:
    embed = Embed(
        title=f"Soundtrack Details for {film_label(movie.title, movie.release_year or NA)} 🎵",
        url=f"https://www.themoviedb.org/movie/{movie.id}",
        color=COLOR_SOUNDTRACK,
        thumbnail=poster_url(movie.poster_path, "w185"),
    )
    embed.add_field("Composers", ", ".join(details.composers))
    embed.add_field("Trailers", "\n".join(details.trailers[:3]))
    return embed


def quiz_embed(movie: dict, content_type: str) -> Embed:
    embed = Embed(title="🎬 Guess the Movie!", color=COLOR_QUIZ,
                  footer="Pick your answer from the options below.")
    if content_type in ("synopsis", "both"):
        embed.description = truncate(movie.get("overview") or NA, OVERVIEW_PREVIEW_CHARS)
    if content_type in ("poster", "both"):
        embed.image = poster_url(movie.get("poster_path"))
    return embed


def quiz_reveal_embed(movie: dict, winner: str | None, letterboxd_url: str | None) -> Embed:
    year = (movie.get("release_date") or "")[:4] or None
    embed = Embed(
        title=f"The answer was {film_label(movie.get('title'), year)}!",
        url=letterboxd_url,
        color=COLOR_QUIZ,
        thumbnail=poster_url(movie.get("poster_path"), "w185"),
    )
    embed.description = f"🏆 {winner} got it right!" if winner else "Nobody guessed it this time."
    return embed


def daily_notification_embed(film: dict) -> Embed:
    """``film`` groups one film's new viewings: title, year, slug, users, reviews, poster."""
    users = ", ".join(film["users"])
    embed = Embed(
        title=f"🍿 {film_label(film['title'], film['year'])}",
        url=f"{LETTERBOXD_BASE}/film/{film['slug']}/",
        color=COLOR_DAILY,
        description=f"Watched today by {users}",
        thumbnail=film.get("poster_url"),
    )
    if film.get("reviews"):
        embed.add_field("Reviews", "\n".join(f"[{r['username']}]({r['url']})" for r in film["reviews"]))
    return embed


def top_embed(rows: list[dict], movie: EnrichedMovie | None) -> Embed:
    embed = Embed(title="🏆 Most Watched in this Server", color=COLOR_DIARY)
    medals = ["🥇", "🥈", "🥉"]
    embed.description = "\n".join(
        f"{medals[i] if i < len(medals) else f'**#{i + 1}**'} "
        f"**[{film_label(r['title'], r['year'])}]({LETTERBOXD_BASE}/film/{r['slug']}/)** - {r['watch_count']} watched"
        for i, r in enumerate(rows)
    ) or "No synced diary entries yet. Use sync to add your films!"
    if movie is not None:
        embed.thumbnail = poster_url(movie.poster_path, "w185")
    return embed

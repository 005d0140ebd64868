"""TMDB API client used to enrich scraped films with metadata."""
import asyncio
import logging
import random
from dataclasses import dataclass, field

import httpx

from .config import (
    TMDB_API_KEY,
    TMDB_BASE_URL,
    TMDB_IMAGE_BASE_URL,
    TMDB_LANGUAGE,
    TMDB_TIMEOUT,
)

logger = logging.getLogger(__name__)

MOVIE_QUOTES = [
    ("Here's looking at you, kid.", "Casablanca"),
    ("May the Force be with you.", "Star Wars"),
    ("You talking to me?", "Taxi Driver"),
    ("I'll be back.", "The Terminator"),
    ("There's no place like home.", "The Wizard of Oz"),
    ("You're gonna need a bigger boat.", "Jaws"),
    ("Why so serious?", "The Dark Knight"),
    ("Life is like a box of chocolates.", "Forrest Gump"),
    ("I see dead people.", "The Sixth Sense"),
    ("Just keep swimming.", "Finding Nemo"),
    ("To infinity and beyond!", "Toy Story"),
    ("Wax on, wax off.", "The Karate Kid"),
]


@dataclass(frozen=True)
class EnrichedMovie:
    id: int
    title: str
    overview: str
    poster_path: str | None
    vote_average: float
    release_date: str | None
    genres: list[str] = field(default_factory=list)
    directors: list[str] = field(default_factory=list)
    vote_count: int = 0
    original_title: str | None = None

    @property
    def release_year(self) -> int | None:
        if not self.release_date:
            return None
        try:
            return int(self.release_date[:4])
        except ValueError:
            return None


@dataclass(frozen=True)
class Person:
    id: int
    name: str
    known_for_department: str | None = None
    biography: str = ""
    birthday: str | None = None
    place_of_birth: str | None = None
    profile_path: str | None = None


@dataclass(frozen=True)
class SoundtrackDetails:
    composers: list[str]
    trailers: list[str]


def poster_url(poster_path: str | None, size: str = "w500") -> str | None:
    """Full image URL for a TMDB poster path, or None."""
    if not poster_path:
        return None
    return f"{TMDB_IMAGE_BASE_URL}{size}{poster_path}"


def random_quote(rng: random.Random | None = None) -> tuple[str, str]:
    return (rng or random).choice(MOVIE_QUOTES)


class TMDBClient:
    """
    Thin async client for The Movie Database API.

    Lookups never raise on "not found" or transport failure: they log and
    return None or an empty list, leaving the fallback to the caller.
    """

    def __init__(self, api_key: str = TMDB_API_KEY, client: httpx.AsyncClient | None = None,
                 language: str = TMDB_LANGUAGE):
        self.api_key = api_key
        self.language = language
        self.client = client
        self._owns_client = client is None
        self._genre_cache: dict[int, str] | None = None

    async def __aenter__(self):
        if self.client is None:
            self.client = httpx.AsyncClient(timeout=TMDB_TIMEOUT)
            self._owns_client = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    async def close(self):
        if self.client is not None and self._owns_client:
            await self.client.aclose()
            self.client = None

    async def _get(self, endpoint: str, params: dict | None = None) -> dict | None:
        """Make a GET request to TMDB API."""
        if not self.api_key:
            logger.warning(f"TMDB_API_KEY not configured; skipping {endpoint}")
            return None
        if self.client is None:
            raise RuntimeError("TMDBClient must be used as an async context manager or given a client")

        request_params = {"api_key": self.api_key, "language": self.language}
        if params:
            request_params.update(params)

        try:
            response = await self.client.get(f"{TMDB_BASE_URL}{endpoint}", params=request_params)
            if response.status_code == 404:
                logger.debug(f"TMDB 404 for {endpoint}")
                return None
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"TMDB API error for {endpoint}: {e}")
            return None

    # --- Movies -----------------------------------------------------------

    async def search_movie(self, title: str, year: int | None = None) -> list[dict]:
        """Search for a movie by title and optionally year."""
        params = {"query": title}
        if year:
            params["year"] = str(year)
        data = await self._get("/search/movie", params)
        if data:
            return data.get("results", [])
        return []

    async def movie_details(self, movie_id: int) -> dict | None:
        return await self._get(f"/movie/{movie_id}")

    async def movie_credits(self, movie_id: int) -> dict:
        return await self._get(f"/movie/{movie_id}/credits") or {"cast": [], "crew": []}

    async def movie_videos(self, movie_id: int) -> list[dict]:
        data = await self._get(f"/movie/{movie_id}/videos")
        return data.get("results", []) if data else []

    async def similar_movies(self, movie_id: int) -> list[dict]:
        data = await self._get(f"/movie/{movie_id}/similar")
        return data.get("results", []) if data else []

    async def genre_list(self) -> dict[int, str]:
        if self._genre_cache is None:
            data = await self._get("/genre/movie/list")
            if not data:
                return {}
            self._genre_cache = {g["id"]: g["name"] for g in data.get("genres", [])}
        return self._genre_cache

    async def discover_movies(self, **filters) -> list[dict]:
        """
        Discover movies by filters, e.g. ``sort_by="popularity.desc"``,
        ``vote_count_gte=100``, ``with_genres="27,53"``.

        Keyword names use underscores; a trailing ``_gte``/``_lte`` becomes
        TMDB's dotted form (``vote_count.gte``).
        """
        params = {}
        for key, value in filters.items():
            if value is None:
                continue
            for suffix in ("_gte", "_lte"):
                if key.endswith(suffix):
                    key = f"{key[: -len(suffix)]}.{suffix[1:]}"
                    break
            params[key] = value
        data = await self._get("/discover/movie", params)
        return data.get("results", []) if data else []

    async def enrich_movie(self, title: str, year: int | None = None) -> EnrichedMovie | None:
        """
        Best-effort enrichment: take the first search hit for (title, year).

        No disambiguation beyond the first result. Returns None when the search
        has no hits.
        """
        results = await self.search_movie(title, year)
        if not results:
            logger.info(f"Could not find '{title}' ({year}) on TMDB")
            return None

        hit = results[0]
        details, credits = await asyncio.gather(
            self.movie_details(hit["id"]),
            self.movie_credits(hit["id"]),
        )

        if details:
            genres = [g["name"] for g in details.get("genres", []) if g.get("name")]
            source = details
        else:
            logger.warning(f"TMDB details unavailable for {hit['id']}; using search result")
            genre_map = await self.genre_list()
            genres = [genre_map[g] for g in hit.get("genre_ids", []) if g in genre_map]
            source = hit

        directors = [p["name"] for p in credits.get("crew", []) if p.get("job") == "Director"]

        return EnrichedMovie(
            id=source["id"],
            title=source.get("title") or title,
            overview=source.get("overview") or "",
            poster_path=source.get("poster_path"),
            vote_average=float(source.get("vote_average") or 0.0),
            release_date=source.get("release_date") or None,
            genres=genres,
            directors=list(dict.fromkeys(directors)),
            vote_count=int(source.get("vote_count") or 0),
            original_title=source.get("original_title"),
        )

    async def soundtrack_details(self, movie_id: int) -> SoundtrackDetails:
        credits, videos = await asyncio.gather(self.movie_credits(movie_id), self.movie_videos(movie_id))
        composers = list(dict.fromkeys(
            p["name"] for p in credits.get("crew", [])
            if p.get("job") in ("Original Music Composer", "Music", "Composer")
        ))
        trailers = [
            f"https://www.youtube.com/watch?v={v['key']}"
            for v in videos
            if v.get("site") == "YouTube" and v.get("type") == "Trailer" and v.get("key")
        ]
        return SoundtrackDetails(composers=composers, trailers=trailers)

    # --- People -----------------------------------------------------------

    async def search_person(self, name: str) -> Person | None:
        data = await self._get("/search/person", {"query": name})
        results = data.get("results", []) if data else []
        if not results:
            return None
        hit = results[0]
        return Person(
            id=hit["id"],
            name=hit.get("name", name),
            known_for_department=hit.get("known_for_department"),
            profile_path=hit.get("profile_path"),
        )

    async def person_details(self, person_id: int) -> Person | None:
        data = await self._get(f"/person/{person_id}")
        if not data:
            return None
        return Person(
            id=data["id"],
            name=data.get("name", ""),
            known_for_department=data.get("known_for_department"),
            biography=data.get("biography") or "",
            birthday=data.get("birthday"),
            place_of_birth=data.get("place_of_birth"),
            profile_path=data.get("profile_path"),
        )


async def enrich_movie(title: str, year: int | None = None) -> EnrichedMovie | None:
    async with TMDBClient() as client:
        return await client.enrich_movie(title, year)

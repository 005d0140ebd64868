import random

import httpx
import pytest

from letterboxd_bot import tmdb

SEARCH_HITS = {
    "results": [
        {"id": 1, "title": "Heat", "overview": "Cops and robbers.", "poster_path": "/heat.jpg",
         "vote_average": 7.9, "vote_count": 6000, "release_date": "1995-12-15", "genre_ids": [80]},
        {"id": 2, "title": "Heat", "release_date": "1986-03-14"},
    ]
}
DETAILS = {
    "id": 1, "title": "Heat", "overview": "A group of professional bank robbers...",
    "poster_path": "/heat-hd.jpg", "vote_average": 7.92, "vote_count": 6543,
    "release_date": "1995-12-15", "genres": [{"id": 80, "name": "Crime"}, {"id": 18, "name": "Drama"}],
    "original_title": "Heat",
}
CREDITS = {
    "cast": [{"name": "Al Pacino"}],
    "crew": [
        {"name": "Michael Mann", "job": "Director"},
        {"name": "Michael Mann", "job": "Director"},
        {"name": "Elliot Goldenthal", "job": "Original Music Composer"},
    ],
}


def _client(routes, seen=None):
    def handler(request):
        if seen is not None:
            seen.append(request)
        route = routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json={"status_message": "not found"})
        if isinstance(route, httpx.Response):
            return route
        return httpx.Response(200, json=route)

    return tmdb.TMDBClient(api_key="key", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


@pytest.mark.asyncio
async def test_enrich_movie_uses_first_search_hit():
    client = _client({
        "/3/search/movie": SEARCH_HITS,
        "/3/movie/1": DETAILS,
        "/3/movie/1/credits": CREDITS,
    })

    movie = await client.enrich_movie("Heat", 1995)

    assert movie.id == 1
    assert movie.genres == ["Crime", "Drama"]
    assert movie.directors == ["Michael Mann"]
    assert movie.poster_path == "/heat-hd.jpg"
    assert movie.vote_count == 6543
    assert movie.release_year == 1995


@pytest.mark.asyncio
async def test_enrich_movie_sends_key_language_and_year():
    seen = []
    client = _client({"/3/search/movie": {"results": []}}, seen)

    assert await client.enrich_movie("Nothing Here", 2001) is None

    params = seen[0].url.params
    assert params["api_key"] == "key"
    assert params["language"] == "en-US"
    assert params["query"] == "Nothing Here"
    assert params["year"] == "2001"


@pytest.mark.asyncio
async def test_enrich_movie_falls_back_to_search_hit_when_details_fail():
    client = _client({
        "/3/search/movie": SEARCH_HITS,
        "/3/movie/1": httpx.Response(500, text="error"),
        "/3/genre/movie/list": {"genres": [{"id": 80, "name": "Crime"}]},
    })

    movie = await client.enrich_movie("Heat")

    assert movie.overview == "Cops and robbers."
    assert movie.poster_path == "/heat.jpg"
    assert movie.genres == ["Crime"]
    assert movie.directors == []


@pytest.mark.asyncio
async def test_missing_api_key_skips_requests():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=SEARCH_HITS)

    client = tmdb.TMDBClient(api_key="", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    assert await client.enrich_movie("Heat") is None
    assert seen == []


@pytest.mark.asyncio
async def test_discover_movies_uses_dotted_filters():
    seen = []
    client = _client({"/3/discover/movie": {"results": [{"id": 7}]}}, seen)

    results = await client.discover_movies(sort_by="popularity.desc", vote_count_gte=100, with_genres=None)

    assert results == [{"id": 7}]
    params = seen[0].url.params
    assert params["vote_count.gte"] == "100"
    assert params["sort_by"] == "popularity.desc"
    assert "with_genres" not in params


@pytest.mark.asyncio
async def test_soundtrack_details_collects_composers_and_trailers():
    client = _client({
        "/3/movie/1/credits": CREDITS,
        "/3/movie/1/videos": {"results": [
            {"site": "YouTube", "type": "Trailer", "key": "abc"},
            {"site": "YouTube", "type": "Teaser", "key": "def"},
            {"site": "Vimeo", "type": "Trailer", "key": "ghi"},
        ]},
    })

    details = await client.soundtrack_details(1)

    assert details.composers == ["Elliot Goldenthal"]
    assert details.trailers == ["https://www.youtube.com/watch?v=abc"]


@pytest.mark.asyncio
async def test_person_lookup():
    client = _client({
        "/3/search/person": {"results": [{"id": 9, "name": "Michael Mann", "known_for_department": "Directing"}]},
        "/3/person/9": {"id": 9, "name": "Michael Mann", "biography": "Director.", "birthday": "1943-02-05"},
    })

    person = await client.search_person("michael mann")
    details = await client.person_details(person.id)

    assert person.known_for_department == "Directing"
    assert details.biography == "Director."
    assert await client.person_details(10) is None


def test_poster_url_and_quotes():
    assert tmdb.poster_url("/x.jpg", "w342") == "https://image.tmdb.org/t/p/w342/x.jpg"
    assert tmdb.poster_url(None) is None
    assert tmdb.random_quote(random.Random(1)) in tmdb.MOVIE_QUOTES

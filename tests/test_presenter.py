from datetime import date

from letterboxd_bot import presenter
from letterboxd_bot.parsing import DiaryEntry, ProfileStats, ReviewEntry
from letterboxd_bot.tmdb import EnrichedMovie


def _movie(**overrides):
    values = dict(id=1, title="Heat", overview="Cops and robbers.", poster_path="/heat.jpg",
                  vote_average=7.9, release_date="1995-12-15", genres=["Crime", "Drama"],
                  directors=["Michael Mann"], vote_count=6543)
    values.update(overrides)
    return EnrichedMovie(**values)


def _entry(rating=4.5):
    return DiaryEntry(slug="heat", title="Heat", year=1995, rating=rating,
                      watched_date=date(2024, 3, 9), viewing_id="1")


def test_stars():
    assert presenter.stars(3.5) == "⭐⭐⭐½"
    assert presenter.stars(5.0) == "⭐⭐⭐⭐⭐"
    assert presenter.stars(0.5) == "½"
    assert presenter.stars(0.0) == "Not Rated"
    assert presenter.stars(None) == "Not Rated"


def test_format_date_accepts_dates_and_strings():
    assert presenter.format_date(date(2024, 3, 9)) == "09 Mar 24"
    assert presenter.format_date("2024-02-01T10:00:00Z") == "01 Feb 24"
    assert presenter.format_date("9 Mar 2024") == "09 Mar 24"
    assert presenter.format_date("yesterday") == "N/A"
    assert presenter.format_date(None) == "N/A"


def test_diary_embed_without_enrichment_shows_placeholders():
    embed = presenter.diary_embed(_entry(), None, "alice")

    assert embed.title == "Last Film by alice 🎬"
    assert embed.url == "https://letterboxd.com/film/heat/"
    assert "**Rating:** ⭐⭐⭐⭐½" in embed.description
    assert "**Watched:** 09 Mar 24" in embed.description
    assert embed.image is None
    assert [f.value for f in embed.fields] == ["N/A", "N/A", "N/A"]


def test_diary_embed_with_enrichment():
    embed = presenter.diary_embed(_entry(), _movie(), "alice")

    assert embed.image == "https://image.tmdb.org/t/p/w500/heat.jpg"
    values = {f.name: f.value for f in embed.fields}
    assert values["Rating (TMDB)"] == "7.9 (6,543 Votes)"
    assert values["Genres (TMDB)"] == "Crime, Drama"


def test_review_embed_truncates_long_text():
    review = ReviewEntry(film_title="Heat", film_year=1995, film_slug="heat",
                         review_url="https://letterboxd.com/alice/film/heat/",
                         review_text="x" * 800, review_date=None, rating=None)

    embed = presenter.review_embed(review, None, "alice")

    assert "x" * 700 + "..." in embed.description
    assert "[Read full review here](https://letterboxd.com/alice/film/heat/)" in embed.description
    assert "**Written:** N/A" in embed.description
    assert "**Rating:** Not Rated" in embed.description


def test_profile_embed_fields():
    stats = ProfileStats(profile_url="https://letterboxd.com/alice/", total_films_watched="1,024")

    embed = presenter.profile_embed(stats, "alice")

    values = {f.name: f.value for f in embed.fields}
    assert values["🎬 Films Watched"] == "1,024"
    assert values["👥 Followers"] == "N/A"
    assert values["🏷️ Tags Used"] == "None"


def test_compare_embed_pages():
    common = [
        {"slug": f"f{i}", "title": f"Film {i}", "year": 2000 + i, "rating1": 3.0, "rating2": None}
        for i in range(12)
    ]

    embed = presenter.compare_embed(common, page=1, page_size=10, name1="alice", name2="bob")

    assert "Film 10" in embed.description
    assert "Film 9 " not in embed.description
    assert "bob: N/A" in embed.description
    assert embed.footer.startswith("Page 2 of 2")


def test_top_embed_uses_medals_then_ranks():
    rows = [{"slug": f"f{i}", "title": f"Film {i}", "year": None, "watch_count": 5 - i} for i in range(4)]

    lines = presenter.top_embed(rows, None).description.splitlines()

    assert lines[0].startswith("🥇")
    assert lines[2].startswith("🥉")
    assert lines[3].startswith("**#4**")
    assert lines[3].endswith("- 2 watched")


def test_embed_to_dict_omits_empty_parts():
    embed = presenter.Embed(title="T", description="d" * 5000, color=1)
    embed.add_field("Empty", "")

    data = embed.to_dict()

    assert len(data["description"]) == 4096
    assert data["fields"] == [{"name": "Empty", "value": "N/A", "inline": False}]
    assert "thumbnail" not in data and "url" not in data


def test_grid_embed_reports_failed_image():
    assert presenter.grid_embed("Likes", [], "grid.png").image == "attachment://grid.png"
    failed = presenter.grid_embed("Likes", [], None)
    assert failed.image is None
    assert "error" in failed.footer

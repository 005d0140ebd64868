from datetime import date

from selectolax.parser import HTMLParser

from letterboxd_bot import parsing
from letterboxd_bot.errors import ErrorKind

from conftest import PRIVATE_PAGE, diary_page, diary_row


def test_scale_rating_halves_internal_scale():
    assert parsing.scale_rating("7") == 3.5
    assert parsing.scale_rating(10) == 5.0
    assert parsing.scale_rating("1") == 0.5


def test_scale_rating_keeps_explicit_zero_distinct_from_absent():
    assert parsing.scale_rating("0") == 0.0
    assert parsing.scale_rating(None) is None


def test_scale_rating_rejects_out_of_range_and_garbage():
    assert parsing.scale_rating("12") is None
    assert parsing.scale_rating("-1") is None
    assert parsing.scale_rating("abc") is None


def test_rating_from_class():
    assert parsing.rating_from_class("rating -green rated-8") == 4.0
    assert parsing.rating_from_class("rating") is None
    assert parsing.rating_from_class(None) is None


def test_split_title_year_and_helpers():
    assert parsing.split_title_year("Perfect Blue (1997)") == ("Perfect Blue", 1997)
    assert parsing.split_title_year("Untitled") == ("Untitled", None)
    assert parsing.slug_from_href("/alice/film/perfect-blue/") == "perfect-blue"
    assert parsing.slug_from_href("/alice/") is None
    assert parsing.date_from_day_path("/alice/films/diary/for/2024/03/09/") == date(2024, 3, 9)
    assert parsing.parse_count("Watched by 12,345 members") == 12345
    assert parsing.absolute_url("/film/x/") == "https://letterboxd.com/film/x/"


def test_first_of_returns_first_non_empty_value():
    node = HTMLParser("<div><span class='a'></span><span class='b'>B</span></div>").css_first("div")
    chain = parsing.first_of(
        parsing.text("span.a"),
        parsing.text("span.missing"),
        parsing.text("span.b"),
    )
    assert chain(node) == "B"


def test_first_of_treats_raising_strategy_as_miss():
    def broken(_node):
        raise ValueError("bad markup")

    node = HTMLParser("<div data-x='1'></div>").css_first("div")
    assert parsing.first_of(broken, parsing.attr(None, "data-x"))(node) == "1"
    assert parsing.first_of(broken)(node) is None


def test_parse_diary_page_extracts_fields():
    html = diary_page(
        diary_row("perfect-blue", "101", "2024-03-09", title="Perfect Blue", year=1997, rating=7),
        diary_row("paprika", "102", "2024-03-08", title="Paprika", year=2006),
    )
    entries = parsing.parse_diary_page(HTMLParser(html))

    assert [e.slug for e in entries] == ["perfect-blue", "paprika"]
    first = entries[0]
    assert first.title == "Perfect Blue"
    assert first.year == 1997
    assert first.rating == 3.5
    assert first.watched_date == date(2024, 3, 9)
    assert first.viewing_id == "101"
    assert first.url == "https://letterboxd.com/film/perfect-blue/"
    assert entries[1].rating is None


def test_diary_rating_prefers_input_value_over_range():
    html = """
    <table><tbody>
      <tr class="diary-entry-row" data-viewing-id="5" data-viewing-date="2024-01-02">
        <td class="td-film-details"><div class="film-poster" data-film-slug="heat"></div></td>
        <td class="td-rating">
          <input class="rateit-field" value="9">
          <div class="rateit-range" aria-valuenow="2"></div>
        </td>
      </tr>
    </tbody></table>
    """
    [entry] = parsing.parse_diary_page(HTMLParser(html))
    assert entry.rating == 4.5
    assert entry.watched_date == date(2024, 1, 2)


def test_rows_missing_mandatory_fields_are_dropped():
    rows = [
        diary_row("film-a", "1", "2024-03-09"),
        diary_row(None, "2", "2024-03-09"),
        diary_row("film-c", None, "2024-03-09"),
        diary_row("film-d", "4", "2024-03-07"),
    ]
    entries = parsing.parse_diary_page(HTMLParser(diary_page(*rows)))

    assert len(entries) == len(rows) - 2
    assert [e.slug for e in entries] == ["film-a", "film-d"]


def test_detect_page_error_private_and_not_found():
    assert parsing.detect_page_error(HTMLParser(PRIVATE_PAGE)) is ErrorKind.PRIVATE

    not_found = "<html><head><title>Page Not Found • Letterboxd</title></head><body></body></html>"
    assert parsing.detect_page_error(HTMLParser(not_found)) is ErrorKind.NOT_FOUND

    body_not_found = "<html><body><p>Sorry, we can’t find the page you’ve requested.</p></body></html>"
    assert parsing.detect_page_error(HTMLParser(body_not_found)) is ErrorKind.NOT_FOUND

    assert parsing.detect_page_error(HTMLParser(diary_page())) is None


def test_parse_reviews_page():
    html = """
    <html><body>
      <article class="production-viewing">
        <h2 class="name"><a href="/alice/film/heat/">Heat</a></h2>
        <span class="releasedate"><a>1995</a></span>
        <span class="rating rated-9"></span>
        <time class="timestamp" datetime="2024-02-01T10:00:00Z">Feb 01</time>
        <div class="js-review">
          <div class="body-text" data-full-text-url="/s/full-text/viewing:555/">
            <p>First paragraph.</p><p>Second.</p>
            <a class="js-collapsible-text-toggle">more</a>
          </div>
        </div>
      </article>
      <article class="production-viewing"><h2 class="name"><a href="/alice/">No film</a></h2></article>
    </body></html>
    """
    [review] = parsing.parse_reviews_page(HTMLParser(html), "alice")

    assert review.film_slug == "heat"
    assert review.film_title == "Heat"
    assert review.film_year == 1995
    assert review.rating == 4.5
    assert review.review_text == "First paragraph.\n\nSecond...."
    assert review.review_url == "https://letterboxd.com/alice/film/heat/555/"
    assert review.review_date == "2024-02-01T10:00:00Z"


def test_parse_favorites_caps_at_four_in_page_order():
    items = "".join(
        f'<li class="favourite-film-poster-container">'
        f'<div class="film-poster" data-film-slug="fav-{i}" data-film-name="Fav {i} (200{i})"></div></li>'
        for i in range(6)
    )
    html = f'<html><body><section id="favourites"><ul class="poster-list">{items}</ul></section></body></html>'

    favorites = parsing.parse_favorites(HTMLParser(html))

    assert [f.slug for f in favorites] == ["fav-0", "fav-1", "fav-2", "fav-3"]
    assert favorites[1].title == "Fav 1"
    assert favorites[1].year == 2001


def test_parse_liked_page_drops_tiles_without_slug():
    html = """
    <ul class="poster-list">
      <li><div class="poster film-poster" data-film-slug="alien"><img alt="Alien"></div></li>
      <li><div class="poster film-poster" data-film-slug=""><img alt="Broken"></div></li>
      <li><div class="poster film-poster" data-film-slug="aliens"><img alt="Aliens"></div></li>
    </ul>
    """
    liked = parsing.parse_liked_page(HTMLParser(html))
    assert [f.slug for f in liked] == ["alien", "aliens"]
    assert liked[0].title == "Alien"


def test_parse_watchlist_page_reads_react_tiles():
    html = """
    <ul>
      <li class="griditem"><div class="react-component" data-item-slug="dune-part-two"></div></li>
      <li class="griditem"><div class="react-component" data-item-slug="arrival"></div></li>
    </ul>
    """
    assert parsing.parse_watchlist_page(HTMLParser(html)) == ["dune-part-two", "arrival"]


def test_parse_film_details_falls_back_to_og_title():
    html = """
    <html><head>
      <meta property="og:title" content="Perfect Blue (1997)">
      <meta property="og:image" content="https://a.ltrbxd.com/pb.jpg">
    </head><body>
      <a href="/director/satoshi-kon/">Satoshi Kon</a>
      <a href="/films/genre/animation/">Animation</a>
    </body></html>
    """
    details = parsing.parse_film_details(HTMLParser(html), "perfect-blue")

    assert details.title == "Perfect Blue"
    assert details.year == 1997
    assert details.poster_url == "https://a.ltrbxd.com/pb.jpg"
    assert details.directors == ["Satoshi Kon"]
    assert details.genres == ["Animation"]


def test_parse_film_details_without_year_is_none():
    html = "<html><body><h1 class='headline-1'>Mystery</h1></body></html>"
    assert parsing.parse_film_details(HTMLParser(html), "mystery") is None


def test_parse_profile_stats_defaults_missing_sections():
    html = """
    <html><body>
      <div class="profile-avatar"><span class="avatar"><img src="https://a.ltrbxd.com/avatar.jpg"></span></div>
      <div class="profile-stats">
        <h4 class="profile-statistic"><a href="/alice/films/"><span class="value">1,024</span></a></h4>
        <h4 class="profile-statistic"><a href="/alice/followers/"><span class="value">88</span></a></h4>
      </div>
    </body></html>
    """
    stats = parsing.parse_profile_stats(HTMLParser(html), "https://letterboxd.com/alice/")

    assert stats.total_films_watched == "1,024"
    assert stats.followers == "88"
    assert stats.following == "N/A"
    assert stats.watchlist_count == "N/A"
    assert stats.tags_list == []
    assert stats.avatar_url == "https://a.ltrbxd.com/avatar.jpg"


def test_parse_search_results():
    films_html = """
    <ul>
      <li class="search-result -production">
        <div class="film-poster" data-film-slug="heat"><img alt="Heat"></div>
        <h2 class="headline-2"><a href="/film/heat/">Heat <small class="metadata">1995</small></a></h2>
      </li>
    </ul>
    """
    people_html = """
    <ul>
      <li class="search-result -contributor"><h2 class="title-2"><a href="/director/michael-mann/">Michael Mann</a></h2></li>
      <li class="search-result -contributor"><h2 class="title-2"><a href="/actor/al-pacino/">Al Pacino</a></h2></li>
    </ul>
    """
    [film] = parsing.parse_film_search(HTMLParser(films_html))
    assert (film.title, film.year, film.slug) == ("Heat", "1995", "heat")

    [director] = parsing.parse_director_search(HTMLParser(people_html))
    assert director.name == "Michael Mann"
    assert director.page_url == "/director/michael-mann/"


def test_parse_film_page_stats():
    html = """
    <html><body>
      <div id="backdrop" data-backdrop="https://a.ltrbxd.com/backdrop.jpg"></div>
      <div id="poster-modal"><div class="modal-body"><div class="poster">
        <img class="image" src="https://a.ltrbxd.com/heat-230.jpg"
             srcset="https://a.ltrbxd.com/heat-460.jpg 1x, https://a.ltrbxd.com/heat-1000.jpg 2x">
      </div></div></div>
      <p class="credits"><span class="creatorlist"><a href="/director/michael-mann/"><span class="prettify">Michael Mann</span></a></span></p>
      <ul>
        <li class="production-statistic -watches"><a class="tooltip" data-original-title="Watched by 512,345 members">512K</a></li>
        <li class="production-statistic -likes"><a class="tooltip" data-original-title="Liked by 120,000 members">120K</a></li>
      </ul>
      <span class="average-rating">
        <a class="display-rating" data-original-title="Weighted average of 4.13 based on 300,000 ratings">4.13</a>
      </span>
    </body></html>
    """
    stats = parsing.parse_film_page_stats(HTMLParser(html), "heat")

    assert stats.high_res_poster == "https://a.ltrbxd.com/heat-1000.jpg"
    assert stats.backdrop == "https://a.ltrbxd.com/backdrop.jpg"
    assert stats.watches_count == 512345
    assert stats.likes_count == 120000
    assert stats.director == "Michael Mann"
    assert stats.average_rating == 4.13
    assert stats.ratings_count == 300000


def test_parse_film_page_stats_falls_back_to_meta_rating():
    html = """
    <html><head><meta name="twitter:data2" content="3.87 out of 5"></head><body></body></html>
    """
    stats = parsing.parse_film_page_stats(HTMLParser(html), "x")

    assert stats.average_rating == 3.87
    assert stats.high_res_poster is None
    assert stats.likes_count is None

import importlib
import sys
from pathlib import Path

import httpx
import pytest

# Ensure the package under test is importable without installation
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


@pytest.fixture
def fresh_config(monkeypatch, tmp_path):
    """
    Reload config with a temporary database path to keep tests isolated.
    """
    db_path = tmp_path / "test.db"
    monkeypatch.setenv("LETTERBOXD_BOT_DB", str(db_path))
    import letterboxd_bot.config as config

    importlib.reload(config)
    return config


@pytest.fixture
def fresh_db(monkeypatch, tmp_path):
    """
    Point the database module at a temp DB and cleanly close the pool after use.
    """
    db_path = tmp_path / "test.db"
    monkeypatch.setenv("LETTERBOXD_BOT_DB", str(db_path))

    import letterboxd_bot.database as database

    database.close_pool()
    monkeypatch.setattr(database, "DB_PATH", db_path)
    database.init_db()

    yield database
    database.close_pool()


def diary_row(slug, viewing_id, day, title="Film", year=2001, rating=None, rating_input=None):
    """One diary table row in the site's markup."""
    rating_html = f'<div class="rateit-range" aria-valuenow="{rating}"></div>' if rating is not None else ""
    if rating_input is not None:
        rating_html = f'<input class="rateit-field" value="{rating_input}">'
    slug_attr = f'data-film-slug="{slug}"' if slug else ""
    viewing_attr = f'data-viewing-id="{viewing_id}"' if viewing_id else ""
    film_href = f"/alice/film/{slug}/" if slug else "#"
    return f"""
    <tr class="diary-entry-row" {viewing_attr}>
      <td class="td-day"><a href="/alice/films/diary/for/{day.replace('-', '/')}/">{day[-2:]}</a></td>
      <td class="td-film-details">
        <div class="film-poster" {slug_attr}><img alt="{title}"></div>
        <h3 class="headline-3"><a href="{film_href}">{title}</a></h3>
      </td>
      <td class="td-released"><span>{year}</span></td>
      <td class="td-rating">{rating_html}</td>
    </tr>
    """


def diary_page(*rows, next_link=False):
    pagination = '<div class="pagination"><a class="next" href="#">Older</a></div>' if next_link else ""
    return f"""
    <html><head><title>Alice’s diary</title></head><body>
      <table id="diary-table"><tbody>{''.join(rows)}</tbody></table>
      {pagination}
    </body></html>
    """


EMPTY_PAGE = "<html><head><title>Diary</title></head><body><table><tbody></tbody></table></body></html>"
PRIVATE_PAGE = "<html><head><title>Alice</title></head><body><p>This profile is private.</p></body></html>"


@pytest.fixture
def mock_client():
    """Build an AsyncClient whose requests are answered by ``routes`` (path -> response or callable)."""

    def build(routes: dict, default_status: int = 404):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            route = routes.get(request.url.path)
            if route is None:
                return httpx.Response(default_status, text=EMPTY_PAGE)
            if callable(route):
                return route(request)
            if isinstance(route, httpx.Response):
                return route
            return httpx.Response(200, text=route)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        client.seen = seen
        return client

    return build

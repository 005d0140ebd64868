import sys
from datetime import date

import pytest

from letterboxd_bot import cli
from letterboxd_bot.commands import Attachment, Notification, Reply


@pytest.fixture
def offline(monkeypatch):
    """Run handlers without opening HTTP clients or touching a real database."""
    async def fake_with_services(run):
        return await run(None)

    monkeypatch.setattr(cli, "_with_services", fake_with_services)
    monkeypatch.setattr(cli, "init_db", lambda: None)


def test_cli_dispatch_top(monkeypatch):
    called = {}

    def fake_top(args):
        called["command"] = args.command
        called["limit"] = args.limit

    monkeypatch.setattr(cli, "cmd_top", fake_top)
    monkeypatch.setattr(sys, "argv", ["prog", "top", "--limit", "3"])

    cli.main()
    assert called == {"command": "top", "limit": 3}


def test_diary_command_passes_context_and_date(monkeypatch, capsys, offline):
    captured = {}

    async def fake_diary(ctx, services, username, day):
        captured.update(user=ctx.discord_id, channel=ctx.channel_id, username=username, day=day)
        return Reply(content="diary ok")

    monkeypatch.setattr(cli.commands, "diary", fake_diary)
    monkeypatch.setattr(sys, "argv", ["prog", "--user-id", "7", "diary", "alice", "--date", "2024-03-09"])

    cli.main()

    assert captured == {"user": "7", "channel": "cli", "username": "alice", "day": date(2024, 3, 9)}
    assert "diary ok" in capsys.readouterr().out


def test_compare_page_is_one_based(monkeypatch, offline):
    captured = {}

    async def fake_compare(ctx, services, other, username, page):
        captured.update(other=other, username=username, page=page)
        return Reply(content="")

    monkeypatch.setattr(cli.commands, "compare", fake_compare)
    monkeypatch.setattr(sys, "argv", ["prog", "compare", "bob", "--username", "alice", "--page", "2"])

    cli.main()
    assert captured == {"other": "bob", "username": "alice", "page": 1}


def test_grid_writes_attachment_to_output(monkeypatch, tmp_path, offline):
    captured = {}

    async def fake_grid(ctx, services, kind, username, cols, rows):
        captured.update(kind=kind, cols=cols, rows=rows)
        return Reply(content="grid", files=[Attachment("grid.png", b"\x89PNG")])

    target = tmp_path / "out" / "likes.png"
    monkeypatch.setattr(cli.commands, "grid", fake_grid)
    monkeypatch.setattr(sys, "argv", ["prog", "grid", "alice", "--kind", "weekly", "--cols", "4", "-o", str(target)])

    cli.main()

    assert captured == {"kind": "weekly", "cols": 4, "rows": 3}
    assert target.read_bytes() == b"\x89PNG"


def test_sync_all_skips_failing_users(monkeypatch, capsys, offline):
    from letterboxd_bot.errors import ErrorKind, ScraperError

    async def fake_sync_user(services, discord_id, username):
        if username == "secret":
            raise ScraperError(ErrorKind.PRIVATE)
        return 10, 4

    monkeypatch.setattr(cli, "get_all_links", lambda: {"1": "alice", "2": "secret", "3": "bob"})
    monkeypatch.setattr(cli.commands, "sync_user", fake_sync_user)
    monkeypatch.setattr(sys, "argv", ["prog", "sync", "--all"])

    cli.main()

    assert "Sync complete: 8 new diary entries" in capsys.readouterr().out


def test_daily_check_prints_each_notification(monkeypatch, capsys, offline):
    async def fake_daily_check(services, day):
        assert day == date(2024, 3, 9)
        return [Notification("g1", "c1", Reply(content="Heat watched"))]

    monkeypatch.setattr(cli.commands, "daily_check", fake_daily_check)
    monkeypatch.setattr(sys, "argv", ["prog", "daily-check", "--date", "2024-03-09"])

    cli.main()

    out = capsys.readouterr().out
    assert "[guild g1 / channel c1]" in out
    assert "Heat watched" in out


def test_unknown_grid_kind_is_rejected(monkeypatch):
    monkeypatch.setattr(sys, "argv", ["prog", "grid", "--kind", "hourly"])

    with pytest.raises(SystemExit):
        cli.main()

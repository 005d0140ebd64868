import argparse
import asyncio
import atexit
import logging
from datetime import date
from pathlib import Path

from tqdm import tqdm

from . import commands
from .commands import BotServices, CommandContext, Reply
from .config import GRID_DEFAULT_COLS, GRID_DEFAULT_ROWS, QUIZ_TIMEOUT_SECONDS
from .database import close_pool, get_all_links, init_db
from .errors import ScraperError
from .scraper import LetterboxdScraper
from .sessions import SessionRegistry
from .tmdb import TMDBClient

logger = logging.getLogger(__name__)

# Register cleanup on exit
atexit.register(close_pool)


async def _with_services(run):
    """Open the HTTP clients, build the services bundle and await ``run(services)``."""
    async with LetterboxdScraper() as scraper, TMDBClient() as tmdb:
        services = BotServices(scraper=scraper, tmdb=tmdb, sessions=SessionRegistry(QUIZ_TIMEOUT_SECONDS))
        return await run(services)


def _context(args: argparse.Namespace) -> CommandContext:
    return CommandContext(discord_id=args.user_id, channel_id=args.channel_id, guild_id=args.guild_id)


def _emit(reply: Reply, output: Path | None = None) -> None:
    print(reply.to_text())
    for attachment in reply.files:
        target = output or Path(attachment.filename)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(attachment.data)
        print(f"Saved {attachment.filename} to {target}")


def _run(args: argparse.Namespace, handler, *handler_args, **handler_kwargs) -> Reply:
    init_db()
    ctx = _context(args)
    reply = asyncio.run(_with_services(lambda services: handler(ctx, services, *handler_args, **handler_kwargs)))
    _emit(reply, getattr(args, "output", None))
    return reply


def cmd_link(args):
    _run(args, commands.link, args.username)


def cmd_unlink(args):
    _run(args, commands.unlink)


def cmd_setchannel(args):
    _run(args, commands.setchannel, args.channel)


def cmd_diary(args):
    day = date.fromisoformat(args.date) if args.date else None
    _run(args, commands.diary, args.username, day)


def cmd_last(args):
    _run(args, commands.last, args.username)


def cmd_review(args):
    _run(args, commands.review, args.username, args.film)


def cmd_favorites(args):
    _run(args, commands.favorites, args.username)


def cmd_profile(args):
    _run(args, commands.profile, args.username)


def cmd_watchlist(args):
    _run(args, commands.watchlist, args.username)


def cmd_likes(args):
    _run(args, commands.grid, "likes", args.username, args.cols, args.rows)


def cmd_grid(args):
    _run(args, commands.grid, args.kind, args.username, args.cols, args.rows)


def cmd_compare(args):
    _run(args, commands.compare, args.other, args.username, args.page - 1)


def cmd_taste(args):
    _run(args, commands.taste, args.other, args.username)


def cmd_checkfilm(args):
    _run(args, commands.checkfilm, args.film, args.username)


def cmd_similar(args):
    _run(args, commands.similar, args.title, args.year)


def cmd_search(args):
    _run(args, commands.search, args.query)


def cmd_soundtrack(args):
    _run(args, commands.soundtrack, args.title, args.year)


def cmd_top(args):
    _run(args, commands.top, args.limit)


def cmd_help(args):
    _run(args, commands.help_command)


async def _play_quiz(ctx: CommandContext, services: BotServices) -> None:
    start = await commands.quiz(ctx, services)
    _emit(start)
    if not start.choices:
        return

    while True:
        guess = await asyncio.to_thread(input, "Your guess (id): ")
        expired = commands.expire_quizzes(services)
        if expired:
            print("Time's up!")
            _emit(expired[0][1])
            return
        reply = await commands.quiz_guess(ctx, services, guess.strip())
        _emit(reply)
        if not reply.ephemeral:
            return


def cmd_quiz(args):
    ctx = _context(args)
    asyncio.run(_with_services(lambda services: _play_quiz(ctx, services)))


async def _sync_all(services: BotServices) -> int:
    links = get_all_links()
    total_new = 0
    for discord_id, username in tqdm(links.items(), total=len(links), desc="Users"):
        try:
            processed, inserted = await commands.sync_user(services, discord_id, username)
        except ScraperError as exc:
            logger.warning(f"Skipping {username}: {exc}")
            continue
        logger.info(f"  {username}: {processed} entries, {inserted} new")
        total_new += inserted
    return total_new


def cmd_sync(args):
    if not args.all:
        _run(args, commands.sync)
        return

    init_db()
    total_new = asyncio.run(_with_services(_sync_all))
    print(f"Sync complete: {total_new} new diary entries")


def cmd_daily_check(args):
    init_db()
    day = date.fromisoformat(args.date) if args.date else None

    notifications = asyncio.run(_with_services(lambda services: commands.daily_check(services, day)))
    if not notifications:
        print("No new diary entries today.")
    for notification in notifications:
        print(f"[guild {notification.guild_id} / channel {notification.channel_id}]")
        _emit(notification.reply)


def main():
    parser = argparse.ArgumentParser(description="Letterboxd companion bot")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    parser.add_argument("--user-id", default="local", help="Chat user id the command runs as")
    parser.add_argument("--channel-id", default="cli", help="Channel id the command runs in")
    parser.add_argument("--guild-id", default=None, help="Server id the command runs in")
    subparsers = parser.add_subparsers(dest="command", required=True)

    link_parser = subparsers.add_parser("link", help="Link a Letterboxd account")
    link_parser.add_argument("username", help="Letterboxd username")
    link_parser.set_defaults(func=cmd_link)

    unlink_parser = subparsers.add_parser("unlink", help="Remove the linked account")
    unlink_parser.set_defaults(func=cmd_unlink)

    channel_parser = subparsers.add_parser("setchannel", help="Set the daily notification channel (needs --guild-id)")
    channel_parser.add_argument("channel", nargs="?", help="Channel id (defaults to --channel-id)")
    channel_parser.set_defaults(func=cmd_setchannel)

    # Single-user views; username defaults to the linked account
    for name, func, help_text in (
        ("last", cmd_last, "Most recently logged film"),
        ("favorites", cmd_favorites, "Four favorite films"),
        ("profile", cmd_profile, "Profile stats"),
        ("watchlist", cmd_watchlist, "Watchlist sample"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("username", nargs="?", help="Letterboxd username")
        sub.set_defaults(func=func)

    review_parser = subparsers.add_parser("review", help="Latest review")
    review_parser.add_argument("username", nargs="?", help="Letterboxd username")
    review_parser.add_argument("--film", help="Only reviews of films whose title contains this text")
    review_parser.set_defaults(func=cmd_review)

    diary_parser = subparsers.add_parser("diary", help="Films logged on a day")
    diary_parser.add_argument("username", nargs="?", help="Letterboxd username")
    diary_parser.add_argument("--date", help="Day as YYYY-MM-DD (default: today)")
    diary_parser.set_defaults(func=cmd_diary)

    for name, func, help_text in (
        ("likes", cmd_likes, "Poster grid of liked films"),
        ("grid", cmd_grid, "Poster grid of liked or watched films"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("username", nargs="?", help="Letterboxd username")
        if name == "grid":
            sub.add_argument("--kind", choices=commands.GRID_KINDS, default="likes", help="Grid source")
        sub.add_argument("--cols", type=int, default=GRID_DEFAULT_COLS, help="Columns")
        sub.add_argument("--rows", type=int, default=GRID_DEFAULT_ROWS, help="Rows")
        sub.add_argument("--output", "-o", type=Path, default=Path("grid.png"), help="Where to write the PNG")
        sub.set_defaults(func=func)

    compare_parser = subparsers.add_parser("compare", help="Films two users have in common")
    compare_parser.add_argument("other", help="Other Letterboxd username")
    compare_parser.add_argument("--username", help="First user (default: linked account)")
    compare_parser.add_argument("--page", type=int, default=1, help="Result page")
    compare_parser.set_defaults(func=cmd_compare)

    taste_parser = subparsers.add_parser("taste", help="Rating compatibility between two users")
    taste_parser.add_argument("other", help="Other Letterboxd username")
    taste_parser.add_argument("--username", help="First user (default: linked account)")
    taste_parser.set_defaults(func=cmd_taste)

    checkfilm_parser = subparsers.add_parser("checkfilm", help="Who has watched a film")
    checkfilm_parser.add_argument("film", help="Film title to search")
    checkfilm_parser.add_argument("--username", help="Only check this user (default: every linked user)")
    checkfilm_parser.set_defaults(func=cmd_checkfilm)

    similar_parser = subparsers.add_parser("similar", help="Films similar to a given one")
    similar_parser.add_argument("title", help="Film title")
    similar_parser.add_argument("--year", type=int, help="Release year")
    similar_parser.add_argument("--output", "-o", type=Path, default=Path("similar.png"), help="Where to write the PNG")
    similar_parser.set_defaults(func=cmd_similar)

    search_parser = subparsers.add_parser("search", help="Search films and directors")
    search_parser.add_argument("query", help="Search text")
    search_parser.set_defaults(func=cmd_search)

    soundtrack_parser = subparsers.add_parser("soundtrack", help="Composers and trailers for a film")
    soundtrack_parser.add_argument("title", help="Film title")
    soundtrack_parser.add_argument("--year", type=int, help="Release year")
    soundtrack_parser.set_defaults(func=cmd_soundtrack)

    sync_parser = subparsers.add_parser("sync", help="Store the full diary for the server ranking")
    sync_parser.add_argument("--all", action="store_true", help="Sync every linked user")
    sync_parser.set_defaults(func=cmd_sync)

    daily_parser = subparsers.add_parser("daily-check", help="Announce new diary entries to configured channels")
    daily_parser.add_argument("--date", help="Day as YYYY-MM-DD (default: today)")
    daily_parser.set_defaults(func=cmd_daily_check)

    top_parser = subparsers.add_parser("top", help="Most watched films across synced diaries")
    top_parser.add_argument("--limit", type=int, default=5, help="Number of films")
    top_parser.set_defaults(func=cmd_top)

    quiz_parser = subparsers.add_parser("quiz", help="Guess the movie from its synopsis or poster")
    quiz_parser.set_defaults(func=cmd_quiz)

    help_parser = subparsers.add_parser("help", help="List the bot commands")
    help_parser.set_defaults(func=cmd_help)

    args = parser.parse_args()

    # Configure logging based on verbosity
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    args.func(args)


if __name__ == "__main__":
    main()

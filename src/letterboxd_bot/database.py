import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from typing import Iterable

from .config import DB_PATH
from .parsing import DiaryEntry

logger = logging.getLogger(__name__)


class ConnectionPool:
    """
    Thread-safe SQLite connection pool.

    - One connection per thread (SQLite threading requirement)
    - Periodic health checks via SELECT 1
    - Dead thread connections are closed on the next cleanup tick
    - Transaction nesting depth tracked per thread
    """

    def __init__(self, db_path, health_check_interval: int = 300, cleanup_interval: int = 60):
        self._db_path = db_path
        self._health_check_interval = health_check_interval
        self._cleanup_interval = cleanup_interval

        self._lock = threading.Lock()
        self._connections: dict[int, sqlite3.Connection] = {}
        self._last_health_check: dict[int, float] = {}
        self._transaction_depth: dict[int, int] = {}
        self._last_cleanup = time.time()

    def _create_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA busy_timeout = 5000")
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute("PRAGMA synchronous = NORMAL")
        return conn

    def _health_check(self, conn: sqlite3.Connection) -> bool:
        try:
            conn.execute("SELECT 1").fetchone()
            return True
        except sqlite3.Error:
            return False

    def _maybe_cleanup(self):
        now = time.time()
        if now - self._last_cleanup < self._cleanup_interval:
            return

        self._last_cleanup = now
        alive_threads = {t.ident for t in threading.enumerate()}
        dead_threads = set(self._connections) - alive_threads

        for thread_id in dead_threads:
            conn = self._connections.pop(thread_id)
            self._last_health_check.pop(thread_id, None)
            self._transaction_depth.pop(thread_id, None)
            try:
                conn.close()
            except sqlite3.Error as e:
                logger.warning(f"Error closing connection for thread {thread_id}: {e}")

        if dead_threads:
            logger.debug(f"Connection pool cleanup: removed {len(dead_threads)} dead connections")

    def get_connection(self) -> sqlite3.Connection:
        """Get a connection for the current thread, creating if necessary."""
        thread_id = threading.get_ident()
        now = time.time()

        with self._lock:
            self._maybe_cleanup()
            conn = self._connections.get(thread_id)

            if conn is not None and now - self._last_health_check.get(thread_id, 0) > self._health_check_interval:
                if self._health_check(conn):
                    self._last_health_check[thread_id] = now
                else:
                    logger.warning(f"Connection for thread {thread_id} failed health check, replacing")
                    try:
                        conn.close()
                    except sqlite3.Error as e:
                        logger.warning(f"Error closing connection for thread {thread_id}: {e}")
                    conn = None

            if conn is None:
                conn = self._create_connection()
                self._connections[thread_id] = conn
                self._last_health_check[thread_id] = now
                self._transaction_depth[thread_id] = 0
                logger.debug(f"Created connection for thread {thread_id}")

            return conn

    def get_transaction_depth(self) -> int:
        return self._transaction_depth.get(threading.get_ident(), 0)

    def increment_transaction_depth(self):
        thread_id = threading.get_ident()
        with self._lock:
            self._transaction_depth[thread_id] = self._transaction_depth.get(thread_id, 0) + 1

    def decrement_transaction_depth(self):
        thread_id = threading.get_ident()
        with self._lock:
            self._transaction_depth[thread_id] = max(0, self._transaction_depth.get(thread_id, 1) - 1)

    def close_all(self):
        """Close all connections (call on application shutdown)."""
        with self._lock:
            for thread_id, conn in list(self._connections.items()):
                try:
                    conn.close()
                except sqlite3.Error as e:
                    logger.warning(f"Error closing connection for thread {thread_id}: {e}")
            self._connections.clear()
            self._last_health_check.clear()
            self._transaction_depth.clear()
            logger.info("Connection pool closed")


_pool: ConnectionPool | None = None
_pool_lock = threading.Lock()


def _get_pool() -> ConnectionPool:
    """Get or create the global connection pool."""
    global _pool
    if _pool is None:
        with _pool_lock:
            if _pool is None:
                DB_PATH.parent.mkdir(exist_ok=True, parents=True)
                _pool = ConnectionPool(DB_PATH)
    return _pool


@contextmanager
def get_db(read_only: bool = False):
    """
    Get database connection with proper transaction handling.

    Args:
        read_only: If True, skip commit on exit

    Only the outermost context commits or rolls back; nested calls share
    the enclosing transaction.
    """
    pool = _get_pool()
    conn = pool.get_connection()

    is_outermost = pool.get_transaction_depth() == 0
    pool.increment_transaction_depth()

    try:
        yield conn
        if is_outermost and not read_only:
            conn.commit()
    except Exception:
        if is_outermost:
            conn.rollback()
        raise
    finally:
        pool.decrement_transaction_depth()


def close_pool():
    """Close the connection pool. Call on application shutdown."""
    global _pool
    if _pool is not None:
        _pool.close_all()
        _pool = None


def init_db() -> None:
    DB_PATH.parent.mkdir(exist_ok=True, parents=True)
    with get_db() as conn:
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS user_links (
                discord_id TEXT PRIMARY KEY,
                letterboxd_username TEXT NOT NULL,
                last_sync_date TEXT,
                linked_at TEXT DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS guild_configs (
                guild_id TEXT PRIMARY KEY,
                notification_channel_id TEXT
            );

            CREATE TABLE IF NOT EXISTS diary_entries (
                discord_id TEXT NOT NULL,
                viewing_id TEXT NOT NULL,
                letterboxd_username TEXT NOT NULL,
                slug TEXT NOT NULL,
                title TEXT,
                year INTEGER,
                rating REAL,
                watched_date TEXT,
                review_url TEXT,
                PRIMARY KEY (discord_id, viewing_id)
            );

            CREATE TABLE IF NOT EXISTS sent_viewings (
                viewing_id TEXT PRIMARY KEY,
                sent_date TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_diary_slug ON diary_entries(slug);
            CREATE INDEX IF NOT EXISTS idx_diary_user_date ON diary_entries(letterboxd_username, watched_date);
            CREATE INDEX IF NOT EXISTS idx_links_username ON user_links(letterboxd_username);
        """)


# --- Account links -----------------------------------------------------------

def link_user(discord_id: str, username: str) -> None:
    """Link (or relink) a chat user to a Letterboxd account."""
    with get_db() as conn:
        conn.execute("""
            INSERT INTO user_links (discord_id, letterboxd_username, linked_at)
            VALUES (?, ?, ?)
            ON CONFLICT(discord_id) DO UPDATE SET
                letterboxd_username = excluded.letterboxd_username,
                last_sync_date = NULL,
                linked_at = excluded.linked_at
        """, (str(discord_id), username, datetime.now().isoformat()))
    logger.info(f"Linked {discord_id} to {username}")


def unlink_user(discord_id: str) -> bool:
    """Remove a link; returns False when there was nothing to remove."""
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM user_links WHERE discord_id = ?", (str(discord_id),))
        return cursor.rowcount > 0


def get_linked_username(discord_id: str) -> str | None:
    with get_db(read_only=True) as conn:
        row = conn.execute(
            "SELECT letterboxd_username FROM user_links WHERE discord_id = ?", (str(discord_id),)
        ).fetchone()
    return row["letterboxd_username"] if row else None


def get_all_links() -> dict[str, str]:
    """discord_id -> letterboxd username, in link order."""
    with get_db(read_only=True) as conn:
        rows = conn.execute(
            "SELECT discord_id, letterboxd_username FROM user_links ORDER BY linked_at, discord_id"
        ).fetchall()
    return {r["discord_id"]: r["letterboxd_username"] for r in rows}


def update_last_sync(discord_id: str, when: datetime | None = None) -> None:
    with get_db() as conn:
        conn.execute(
            "UPDATE user_links SET last_sync_date = ? WHERE discord_id = ?",
            ((when or datetime.now()).isoformat(), str(discord_id)),
        )


# --- Guild configuration -----------------------------------------------------

def set_notification_channel(guild_id: str, channel_id: str) -> None:
    with get_db() as conn:
        conn.execute("""
            INSERT INTO guild_configs (guild_id, notification_channel_id) VALUES (?, ?)
            ON CONFLICT(guild_id) DO UPDATE SET notification_channel_id = excluded.notification_channel_id
        """, (str(guild_id), str(channel_id)))


def get_guild_configs() -> dict[str, str]:
    """guild_id -> notification channel, only for guilds that configured one."""
    with get_db(read_only=True) as conn:
        rows = conn.execute(
            "SELECT guild_id, notification_channel_id FROM guild_configs "
            "WHERE notification_channel_id IS NOT NULL ORDER BY guild_id"
        ).fetchall()
    return {r["guild_id"]: r["notification_channel_id"] for r in rows}


# --- Diary storage -----------------------------------------------------------

def save_diary_entries(discord_id: str, username: str, entries: Iterable[DiaryEntry]) -> int:
    """
    Store diary entries for a linked user.

    Rows are keyed by (discord_id, viewing_id), so re-syncing the same diary
    is a no-op. Returns the number of newly inserted rows.
    """
    rows = [
        (
            str(discord_id), e.viewing_id, username, e.slug, e.title, e.year, e.rating,
            e.watched_date.isoformat() if e.watched_date else None, e.review_url,
        )
        for e in entries
    ]
    if not rows:
        return 0

    with get_db() as conn:
        before = conn.total_changes
        conn.executemany("""
            INSERT OR IGNORE INTO diary_entries
                (discord_id, viewing_id, letterboxd_username, slug, title, year, rating, watched_date, review_url)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, rows)
        inserted = conn.total_changes - before

    logger.info(f"Saved {inserted} new diary entries for {username} ({len(rows)} processed)")
    return inserted


def get_watched_films(user: str, since: date, until: date | None = None) -> list[dict]:
    """
    Films a user watched on or after ``since``, newest first.

    ``user`` may be a Letterboxd username or a linked discord id.
    """
    until = until or date.today()
    with get_db(read_only=True) as conn:
        rows = conn.execute("""
            SELECT d.slug, d.title, d.year, d.rating, d.watched_date, d.viewing_id
            FROM diary_entries d
            WHERE (d.letterboxd_username = ? COLLATE NOCASE OR d.discord_id = ?)
              AND d.watched_date >= ? AND d.watched_date <= ?
            ORDER BY d.watched_date DESC, d.viewing_id DESC
        """, (user, str(user), since.isoformat(), until.isoformat())).fetchall()
    return [dict(r) for r in rows]


def get_daily_watched_films(user: str, today: date | None = None) -> list[dict]:
    today = today or date.today()
    return get_watched_films(user, today, today)


def get_weekly_watched_films(user: str, today: date | None = None) -> list[dict]:
    today = today or date.today()
    return get_watched_films(user, today - timedelta(days=7), today)


def get_monthly_watched_films(user: str, today: date | None = None) -> list[dict]:
    today = today or date.today()
    return get_watched_films(user, today - timedelta(days=30), today)


def get_annual_watched_films(user: str, today: date | None = None) -> list[dict]:
    today = today or date.today()
    return get_watched_films(user, today - timedelta(days=365), today)


WATCHED_PERIODS = {
    "daily": get_daily_watched_films,
    "weekly": get_weekly_watched_films,
    "monthly": get_monthly_watched_films,
    "annual": get_annual_watched_films,
}


def top_films(limit: int = 5) -> list[dict]:
    """Most-logged films across all synced diaries."""
    with get_db(read_only=True) as conn:
        rows = conn.execute("""
            SELECT slug, MAX(title) AS title, MAX(year) AS year, COUNT(*) AS watch_count
            FROM diary_entries
            GROUP BY slug
            ORDER BY watch_count DESC, slug
            LIMIT ?
        """, (limit,)).fetchall()
    return [dict(r) for r in rows]


# --- Daily notification dedup -----------------------------------------------

def mark_viewing_sent(viewing_id: str, sent_date: date | None = None) -> None:
    with get_db() as conn:
        conn.execute(
            "INSERT OR IGNORE INTO sent_viewings (viewing_id, sent_date) VALUES (?, ?)",
            (viewing_id, (sent_date or date.today()).isoformat()),
        )


def is_viewing_sent(viewing_id: str) -> bool:
    with get_db(read_only=True) as conn:
        row = conn.execute("SELECT 1 FROM sent_viewings WHERE viewing_id = ?", (viewing_id,)).fetchone()
    return row is not None


def purge_sent_viewings(before: date) -> int:
    """Drop dedup markers older than ``before``."""
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM sent_viewings WHERE sent_date < ?", (before.isoformat(),))
        return cursor.rowcount

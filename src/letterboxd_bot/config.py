"""
Configuration constants for the Letterboxd bot.

This module centralizes all magic numbers and configurable parameters.
Values can be overridden via environment variables.
"""
import os
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def _get_float_env(key: str, default: float, min_val: float = 0) -> float:
    """
    Safely parse float from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set or invalid
        min_val: Minimum allowed value

    Returns:
        Validated float value
    """
    try:
        val = float(os.environ.get(key, default))
        if val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


def _get_int_env(key: str, default: int, min_val: int = 1) -> int:
    """
    Safely parse integer from environment variable with validation.

    Args:
        key: Environment variable name
        default: Default value if not set or invalid
        min_val: Minimum allowed value

    Returns:
        Validated integer value
    """
    try:
        val = int(os.environ.get(key, default))
        if val < min_val:
            logger.warning(f"{key}={val} is below minimum {min_val}, using {min_val}")
            return min_val
        return val
    except ValueError:
        logger.warning(f"Invalid {key}='{os.environ.get(key)}', using default {default}")
        return default


# Database Configuration
DB_PATH = Path(os.environ.get("LETTERBOXD_BOT_DB", "data/letterboxd_bot.db"))

# Source site
LETTERBOXD_BASE = "https://letterboxd.com"
USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)
HTTP_TIMEOUT = _get_float_env("LETTERBOXD_HTTP_TIMEOUT", 30.0, min_val=1.0)

# Pagination
PAGE_DELAY = _get_float_env("LETTERBOXD_PAGE_DELAY", 1.0, min_val=0.0)  # Seconds between page fetches
MAX_PAGES = _get_int_env("LETTERBOXD_MAX_PAGES", 200, min_val=1)
SEARCH_RESULT_LIMIT = 25

# Movie database (TMDB)
TMDB_API_KEY = os.environ.get("TMDB_API_KEY", "")
TMDB_BASE_URL = "https://api.themoviedb.org/3"
TMDB_IMAGE_BASE_URL = "https://image.tmdb.org/t/p/"
TMDB_LANGUAGE = os.environ.get("TMDB_LANGUAGE", "en-US")
TMDB_TIMEOUT = _get_float_env("TMDB_TIMEOUT", 10.0, min_val=1.0)

# Presentation
FAVORITES_LIMIT = 4
REVIEW_PREVIEW_CHARS = 700
OVERVIEW_PREVIEW_CHARS = 500
EMBED_DESCRIPTION_LIMIT = 4096
COMPARE_PAGE_SIZE = 10
TASTE_HIGHLIGHTS = 3
MAX_RATING_DIFFERENCE = 4.5  # 5.0 - 0.5

# Poster grid
GRID_CELL_WIDTH = 230
GRID_CELL_HEIGHT = 345
GRID_GAP = 0
GRID_DEFAULT_COLS = 3
GRID_DEFAULT_ROWS = 3
GRID_MAX_CELLS = 25

# Embed colours
COLOR_DIARY = 0xFFFF00
COLOR_REVIEW = 0xAA00AA
COLOR_DAILY = 0x00FF00
COLOR_FAVORITES = 0xFF00FF
COLOR_PROFILE = 0xFFFFFF
COLOR_COMPARE = 0x0099FF
COLOR_SOUNDTRACK = 0x3498DB
COLOR_QUIZ = 0xF1C40F
COLOR_HELP = 0x00E054

# Daily notifications
SENT_VIEWINGS_RETENTION_DAYS = 7

# Games
QUIZ_TIMEOUT_SECONDS = _get_int_env("QUIZ_TIMEOUT_SECONDS", 60, min_val=5)
QUIZ_OPTION_COUNT = 10
QUIZ_MIN_VOTE_COUNT = 100

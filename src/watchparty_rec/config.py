"""
Configuration constants for the watch-party recommender.

This module centralizes all magic numbers and configurable parameters.
Runtime settings can be overridden via environment variables; scoring
constants are fixed so that recommendations stay reproducible.
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


# Room Store
DB_PATH = Path(os.environ.get("WATCHPARTY_DB", "data/watchparty.db"))

# Catalog Service (TMDB-compatible)
TMDB_API_KEY = os.environ.get("TMDB_API_KEY", "")
TMDB_BASE_URL = os.environ.get("TMDB_BASE_URL", "https://api.themoviedb.org/3").rstrip("/")
TMDB_IMAGE_BASE = "https://image.tmdb.org/t/p"

HTTP_TIMEOUT = _get_float_env("WATCHPARTY_HTTP_TIMEOUT", 8.0, min_val=1.0)
# Budget for one discovery page including retries; starts once the page has a request slot
PAGE_TIMEOUT = _get_float_env("WATCHPARTY_PAGE_TIMEOUT", 20.0, min_val=0.1)
if PAGE_TIMEOUT < HTTP_TIMEOUT:
    logger.warning(f"WATCHPARTY_PAGE_TIMEOUT={PAGE_TIMEOUT} is below the HTTP timeout, using {HTTP_TIMEOUT}")
    PAGE_TIMEOUT = HTTP_TIMEOUT
DEFAULT_MAX_CONCURRENT = _get_int_env("WATCHPARTY_MAX_CONCURRENT", 5, min_val=1)
MAX_HTTP_RETRIES = _get_int_env("WATCHPARTY_MAX_RETRIES", 3, min_val=1)
RETRY_INITIAL_DELAY = 0.5
# Cap on a server-provided Retry-After (seconds); kept well inside a page's budget
MAX_RETRY_AFTER = min(5.0, PAGE_TIMEOUT / 4)
DEFAULT_RETRY_AFTER = 2

# Rooms
ROOM_CODE_LETTERS = 3
ROOM_CODE_DIGITS = 3
MAX_PARTICIPANTS = 5
REQUIRED_SEED_MOVIES = 3

# Profile Builder
EXPLICIT_GENRE_SCORE = 10.0
SEED_GENRE_SCORE = 5.0     # First contribution to a genre not yet in the map
SEED_GENRE_BOOST = 3.0     # Every later contribution to a genre already present
KEYWORD_MIN_MOVIES = 2
YEAR_RANGE_BACK = 5
YEAR_RANGE_FORWARD = 3
YEAR_FLOOR = 1980
RATING_SLACK = 1.5
MIN_RATING_FLOOR = 6.0
DEFAULT_SEED_RUNTIME = 120  # Used when the catalog has no runtime for a seed movie

# Candidate Retriever
TOP_GENRES = 5
MIN_VOTE_COUNT = 300
MOVIES_PER_PAGE = 20
MAX_PAGE_REQUESTS = 10
INDIVIDUAL_POOL_SIZE = 200
GROUP_POOL_SIZE = 300

# Genre-only fallback flow (no seed-movie profiles yet)
FALLBACK_PAGES = 3
FALLBACK_MIN_VOTE_COUNT = 500
FALLBACK_MIN_VOTE_AVERAGE = 7.0

# Scorer caps
GENRE_SCORE_CAP = 30.0
RUNTIME_SCORE_MAX = 10.0
RUNTIME_SCORE_DIVISOR = 10.0
YEAR_SCORE_MAX = 10.0
YEAR_SCORE_DIVISOR = 5.0
RATING_BONUS_MULTIPLIER = 2.0
RATING_BONUS_MAX = 10.0
POPULARITY_DIVISOR = 100.0
POPULARITY_BONUS_MAX = 5.0

# Votes that put a movie on the shared watchlist
WATCHLIST_VOTES = ("liked", "maybe")
VOTE_TYPES = ("liked", "maybe", "discarded")

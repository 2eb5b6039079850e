"""
Candidate Retriever.

Turns a preference profile into a bounded, deduplicated pool of catalog
movies by fanning out paginated discovery queries.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Awaitable, Callable

from .catalog import Movie
from .config import (
    TOP_GENRES,
    MIN_VOTE_COUNT,
    MOVIES_PER_PAGE,
    MAX_PAGE_REQUESTS,
    INDIVIDUAL_POOL_SIZE,
    PAGE_TIMEOUT,
)
from .errors import ConfigurationError, UpstreamUnavailable
from .profile import PreferenceProfile

logger = logging.getLogger(__name__)


def top_genres(profile: PreferenceProfile, n: int = TOP_GENRES) -> list[int]:
    """Highest scoring genres; ties keep the mapping's insertion order."""
    ranked = sorted(profile.genre_scores.items(), key=lambda item: -item[1])
    return [genre_id for genre_id, _ in ranked[:n]]


def pages_for(max_movies: int) -> int:
    return min(math.ceil(max_movies / MOVIES_PER_PAGE), MAX_PAGE_REQUESTS)


def merge_pages(pages: list[list[Movie]], max_movies: int | None = None) -> list[Movie]:
    """Concatenate pages in page order, keep the first copy of each id, truncate."""
    seen: dict[int, Movie] = {}
    for movies in pages:
        for movie in movies:
            if movie.id not in seen:
                seen[movie.id] = movie
    merged = list(seen.values())
    return merged if max_movies is None else merged[:max_movies]


async def gather_pages(
    fetch_page: Callable[[int], Awaitable[list[Movie]]],
    n_pages: int,
    page_timeout: float = PAGE_TIMEOUT,
    max_concurrent: int | None = None,
) -> list[list[Movie]]:
    """
    Request pages 1..n_pages concurrently and wait for all of them.

    At most ``max_concurrent`` pages are in flight (unbounded when None), and
    a page's ``page_timeout`` only starts once it is in flight, so pages
    queued behind slow siblings are not timed out while waiting.

    A page that raises or times out is dropped and logged; its siblings are
    unaffected. ConfigurationError is raised as is, since no page can
    succeed with a bad setup. Raises UpstreamUnavailable only when no page
    succeeded. Successful pages come back in page order.
    """
    if n_pages <= 0:
        return []

    limiter = asyncio.Semaphore(max_concurrent) if max_concurrent else None

    async def _fetch(page: int) -> list[Movie]:
        if limiter is None:
            return await asyncio.wait_for(fetch_page(page), timeout=page_timeout)
        async with limiter:
            return await asyncio.wait_for(fetch_page(page), timeout=page_timeout)

    results = await asyncio.gather(
        *(_fetch(page) for page in range(1, n_pages + 1)),
        return_exceptions=True,
    )

    pages: list[list[Movie]] = []
    failures: list[BaseException] = []
    for page, result in enumerate(results, start=1):
        if isinstance(result, (asyncio.CancelledError, ConfigurationError)):
            raise result
        if isinstance(result, BaseException):
            logger.warning(f"Dropping page {page}: {type(result).__name__}: {result}")
            failures.append(result)
            continue
        pages.append(result)

    if not pages:
        raise UpstreamUnavailable(
            f"All {n_pages} catalog pages failed; last error: {failures[-1]!r}"
        ) from failures[-1]

    if failures:
        logger.warning(f"{len(pages)}/{n_pages} pages succeeded")
    return pages


async def fetch_candidate_movies(
    catalog,
    profile: PreferenceProfile,
    max_movies: int = INDIVIDUAL_POOL_SIZE,
    page_timeout: float = PAGE_TIMEOUT,
) -> list[Movie]:
    """
    Fetch candidate movies for a profile.

    Args:
        catalog: Object exposing an async ``discover(...)`` (normally a CatalogClient)
        profile: Individual or group preference profile
        max_movies: Pool size cap (200 individual, 300 group)
        page_timeout: Per-page timeout in seconds; a timeout counts as a failure

    Filters: the profile's top 5 genres (any of them), at least 300 votes,
    rating at or above the profile's floor, release year inside its range.
    """
    genres = top_genres(profile)
    min_year, max_year = profile.preferred_year_range

    def fetch_page(page: int):
        return catalog.discover(
            genre_ids=genres,
            min_vote_count=MIN_VOTE_COUNT,
            min_vote_average=profile.min_rating,
            min_year=min_year,
            max_year=max_year,
            page=page,
        )

    pages = await gather_pages(
        fetch_page,
        pages_for(max_movies),
        page_timeout=page_timeout,
        # Match the client's request slots so queued pages are not on the clock
        max_concurrent=getattr(catalog, "max_concurrent", None),
    )
    candidates = merge_pages(pages, max_movies)
    logger.info(f"Fetched {len(candidates)} candidates for genres {genres}")
    return candidates

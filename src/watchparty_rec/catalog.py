"""
Catalog Client: async adapter over a TMDB-compatible movie metadata API.

Pure I/O. The only logic here is request shaping, retries, and mapping
the JSON payloads onto ``Movie`` / ``MovieDetails`` records.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, asdict
from typing import Any

import httpx

from .config import (
    TMDB_API_KEY,
    TMDB_BASE_URL,
    HTTP_TIMEOUT,
    DEFAULT_MAX_CONCURRENT,
    MAX_HTTP_RETRIES,
    RETRY_INITIAL_DELAY,
    MAX_RETRY_AFTER,
    DEFAULT_RETRY_AFTER,
)
from .errors import ConfigurationError, NotFound, UpstreamUnavailable
from .utils import async_retry_with_backoff

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Movie:
    id: int
    title: str
    genre_ids: tuple[int, ...] = ()
    release_date: str | None = None
    vote_average: float = 0.0
    runtime: int | None = None
    popularity: float | None = None
    poster_path: str | None = None
    overview: str | None = None
    vote_count: int | None = None

    @property
    def release_year(self) -> int | None:
        """Year part of the ISO release date, None if absent or malformed."""
        if not self.release_date:
            return None
        head = self.release_date[:4]
        return int(head) if head.isdigit() else None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["genre_ids"] = list(self.genre_ids)
        return data

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "Movie":
        return cls(**_movie_fields(payload))

    @classmethod
    def from_tmdb(cls, payload: dict[str, Any]) -> "Movie":
        """Accepts both list results (``genre_ids``) and detail payloads (``genres``)."""
        return cls(**_movie_fields(payload))


@dataclass(frozen=True)
class MovieDetails(Movie):
    keywords: tuple[str, ...] = field(default=())

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["keywords"] = list(self.keywords)
        return data

    @classmethod
    def from_tmdb(cls, payload: dict[str, Any]) -> "MovieDetails":
        keywords_block = payload.get("keywords") or {}
        if isinstance(keywords_block, dict):
            raw = keywords_block.get("keywords") or []
        else:
            raw = keywords_block
        keywords = tuple(
            k["name"] if isinstance(k, dict) else str(k)
            for k in raw
            if (k.get("name") if isinstance(k, dict) else k)
        )
        return cls(**_movie_fields(payload), keywords=keywords)


def _movie_fields(payload: dict[str, Any]) -> dict[str, Any]:
    if "genre_ids" in payload and payload["genre_ids"] is not None:
        genre_ids = tuple(int(g) for g in payload["genre_ids"])
    else:
        genre_ids = tuple(int(g["id"]) for g in payload.get("genres") or [] if "id" in g)

    runtime = payload.get("runtime")
    popularity = payload.get("popularity")
    return {
        "id": int(payload["id"]),
        "title": payload.get("title") or payload.get("original_title") or "",
        "genre_ids": genre_ids,
        "release_date": payload.get("release_date") or None,
        "vote_average": float(payload.get("vote_average") or 0.0),
        # 0 means "unknown" in TMDB payloads
        "runtime": int(runtime) if runtime else None,
        "popularity": float(popularity) if popularity is not None else None,
        "poster_path": payload.get("poster_path"),
        "overview": payload.get("overview"),
        "vote_count": payload.get("vote_count"),
    }


class TransientCatalogError(UpstreamUnavailable):
    """Failure worth retrying (timeout, transport error, 429, 5xx)."""


class CatalogClient:
    """
    Async client for the Catalog Service.

    Use as an async context manager, or pass an existing ``httpx.AsyncClient``
    (which the caller then owns and closes).
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = TMDB_BASE_URL,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        timeout: float = HTTP_TIMEOUT,
        max_retries: int = MAX_HTTP_RETRIES,
        retry_delay: float = RETRY_INITIAL_DELAY,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = TMDB_API_KEY if api_key is None else api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_concurrent = max_concurrent
        self.semaphore = asyncio.Semaphore(max_concurrent)
        self.client = client
        self._owns_client = client is None

        # v4 read access tokens are JWTs; v3 keys go in the query string
        if self.api_key.startswith("eyJ"):
            self.headers = {"Authorization": f"Bearer {self.api_key}", "Accept": "application/json"}
            self._key_param = {}
        else:
            self.headers = {"Accept": "application/json"}
            self._key_param = {"api_key": self.api_key} if self.api_key else {}

        self._get_json = async_retry_with_backoff(
            max_retries=max_retries,
            initial_delay=retry_delay,
            exceptions=(TransientCatalogError,),
        )(self._get_json_once)

    async def __aenter__(self):
        if self.client is None:
            self.client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True)
            self._owns_client = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()
        return False

    async def aclose(self) -> None:
        if self.client is not None and self._owns_client:
            await self.client.aclose()
            self.client = None

    async def _get_json_once(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        if not self.api_key:
            raise ConfigurationError("Catalog API key is not configured. Set TMDB_API_KEY.")
        if self.client is None:
            raise RuntimeError("CatalogClient must be used as an async context manager")

        url = f"{self.base_url}{path}"
        async with self.semaphore:
            try:
                resp = await self.client.get(
                    url,
                    params={**self._key_param, **params},
                    headers=self.headers,
                    timeout=self.timeout,
                )
            except httpx.TimeoutException as exc:
                raise TransientCatalogError(f"Timeout on {path}") from exc
            except httpx.HTTPError as exc:
                raise TransientCatalogError(f"Request error on {path}: {type(exc).__name__}: {exc}") from exc

        if resp.status_code == 404:
            raise NotFound(f"Catalog resource not found: {path}")

        if resp.status_code == 429:
            try:
                retry_after = int(resp.headers.get("Retry-After", DEFAULT_RETRY_AFTER))
            except ValueError:
                retry_after = DEFAULT_RETRY_AFTER
            retry_after = min(retry_after, MAX_RETRY_AFTER)
            logger.warning(f"Rate limited on {path}, waiting {retry_after}s")
            await asyncio.sleep(retry_after)
            raise TransientCatalogError(f"Rate limited on {path}")

        if resp.status_code >= 500:
            raise TransientCatalogError(f"HTTP {resp.status_code} on {path}")

        if resp.status_code == 401:
            raise ConfigurationError("Catalog rejected the API key (HTTP 401)")

        if resp.status_code >= 400:
            raise UpstreamUnavailable(f"HTTP {resp.status_code} on {path}")

        try:
            return resp.json()
        except ValueError as exc:
            raise UpstreamUnavailable(f"Malformed JSON from {path}") from exc

    async def fetch_by_id(self, movie_id: int) -> MovieDetails:
        """Movie details with keywords appended. Raises NotFound for unknown ids."""
        data = await self._get_json(f"/movie/{int(movie_id)}", {"append_to_response": "keywords"})
        logger.debug(f"Fetched details for movie {movie_id}")
        return MovieDetails.from_tmdb(data)

    async def search_by_title(self, query: str, page: int = 1) -> list[Movie]:
        if not query or not query.strip():
            return []
        data = await self._get_json(
            "/search/movie",
            {"query": query.strip(), "page": page, "include_adult": "false"},
        )
        return [Movie.from_tmdb(m) for m in data.get("results", [])]

    async def discover(
        self,
        genre_ids=None,
        min_vote_count: int | None = None,
        min_vote_average: float | None = None,
        min_year: int | None = None,
        max_year: int | None = None,
        page: int = 1,
    ) -> list[Movie]:
        """Filtered discovery, best rated first. Omitted filters are not sent."""
        params: dict[str, Any] = {
            "sort_by": "vote_average.desc",
            "include_adult": "false",
            "page": page,
        }
        if genre_ids:
            # "|" is OR on the discover endpoint
            params["with_genres"] = "|".join(str(g) for g in genre_ids)
        if min_vote_count is not None:
            params["vote_count.gte"] = min_vote_count
        if min_vote_average is not None:
            params["vote_average.gte"] = min_vote_average
        if min_year is not None:
            params["primary_release_date.gte"] = f"{min_year}-01-01"
        if max_year is not None:
            params["primary_release_date.lte"] = f"{max_year}-12-31"

        data = await self._get_json("/discover/movie", params)
        return [Movie.from_tmdb(m) for m in data.get("results", [])]

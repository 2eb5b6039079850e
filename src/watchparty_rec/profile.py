import asyncio
import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from statistics import fmean
from typing import Any

from .catalog import CatalogClient, MovieDetails
from .config import (
    REQUIRED_SEED_MOVIES,
    EXPLICIT_GENRE_SCORE,
    SEED_GENRE_SCORE,
    SEED_GENRE_BOOST,
    KEYWORD_MIN_MOVIES,
    YEAR_RANGE_BACK,
    YEAR_RANGE_FORWARD,
    YEAR_FLOOR,
    RATING_SLACK,
    MIN_RATING_FLOOR,
    DEFAULT_SEED_RUNTIME,
)
from .errors import ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeedMovie:
    """Snapshot of a liked movie, taken once when the participant picks it."""
    id: int
    title: str
    genre_ids: tuple[int, ...]
    keywords: tuple[str, ...]
    runtime: int
    release_year: int
    vote_average: float
    poster_path: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "poster_path": self.poster_path,
            "genre_ids": list(self.genre_ids),
            "keywords": list(self.keywords),
            "runtime": self.runtime,
            "release_year": self.release_year,
            "vote_average": self.vote_average,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "SeedMovie":
        return cls(
            id=int(payload["id"]),
            title=payload.get("title", ""),
            genre_ids=tuple(int(g) for g in payload.get("genre_ids", [])),
            keywords=tuple(payload.get("keywords", [])),
            runtime=int(payload.get("runtime") or 0),
            release_year=int(payload.get("release_year") or 0),
            vote_average=float(payload.get("vote_average") or 0.0),
            poster_path=payload.get("poster_path"),
        )


@dataclass(frozen=True)
class PreferenceProfile:
    """Scoring parameters derived from a participant's (or a group's) inputs."""
    genre_scores: dict[int, float] = field(default_factory=dict)
    keywords: tuple[str, ...] = ()
    preferred_runtime: float = 0.0
    preferred_year_range: tuple[int, int] = (YEAR_FLOOR, YEAR_FLOOR)
    min_rating: float = MIN_RATING_FLOOR

    def __post_init__(self) -> None:
        min_year, max_year = self.preferred_year_range
        if min_year > max_year:
            raise ValidationError(f"Invalid year range {self.preferred_year_range}: start is after end")
        if self.min_rating < MIN_RATING_FLOOR:
            raise ValidationError(f"Minimum rating {self.min_rating} is below the {MIN_RATING_FLOOR} floor")

    def to_dict(self) -> dict[str, Any]:
        return {
            # JSON object keys must be strings
            "genreScores": {str(k): v for k, v in self.genre_scores.items()},
            "keywords": list(self.keywords),
            "preferredRuntime": self.preferred_runtime,
            "preferredYearRange": list(self.preferred_year_range),
            "minRating": self.min_rating,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "PreferenceProfile":
        min_year, max_year = payload["preferredYearRange"]
        return cls(
            genre_scores={int(k): float(v) for k, v in payload.get("genreScores", {}).items()},
            keywords=tuple(payload.get("keywords", [])),
            preferred_runtime=float(payload["preferredRuntime"]),
            preferred_year_range=(int(min_year), int(max_year)),
            min_rating=float(payload["minRating"]),
        )


# The group profile has the same shape as an individual one
GroupProfile = PreferenceProfile


@dataclass(frozen=True)
class UserPreferences:
    """One participant's submitted onboarding. Replaced wholesale on resubmission."""
    participant_id: str
    selected_genres: tuple[int, ...]
    seed_movies: tuple[SeedMovie, ...]
    profile: PreferenceProfile | None = None
    created_at: str = ""

    def ensure_profile(self) -> PreferenceProfile:
        """Stored profile, or one built on demand from the raw inputs."""
        if self.profile is not None:
            return self.profile
        return build_preference_profile(self.seed_movies, self.selected_genres)

    def to_dict(self) -> dict[str, Any]:
        return {
            "participantId": self.participant_id,
            "selectedGenres": list(self.selected_genres),
            "seedMovies": [m.to_dict() for m in self.seed_movies],
            "profile": self.profile.to_dict() if self.profile else None,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "UserPreferences":
        profile = payload.get("profile")
        return cls(
            participant_id=payload["participantId"],
            selected_genres=tuple(int(g) for g in payload.get("selectedGenres", [])),
            seed_movies=tuple(SeedMovie.from_dict(m) for m in payload.get("seedMovies", [])),
            profile=PreferenceProfile.from_dict(profile) if profile else None,
            created_at=payload.get("createdAt", ""),
        )


def round_half_up(value: float) -> int:
    """Round .5 upward (``round()`` would round half to even)."""
    return math.floor(value + 0.5)


def _validate_inputs(seed_movies, selected_genres) -> None:
    if len(seed_movies) != REQUIRED_SEED_MOVIES:
        raise ValidationError(
            f"Exactly {REQUIRED_SEED_MOVIES} seed movies are required, got {len(seed_movies)}"
        )
    if not selected_genres:
        raise ValidationError("At least one genre must be selected")


def _genre_scores(seed_movies, selected_genres) -> dict[int, float]:
    """
    Explicit picks first, then seed movies in input order.

    A seed genre not yet in the map is written at 5; a genre already present
    (from an explicit pick or an earlier seed) gets +3. The result depends on
    iteration order, so both passes must stay in this order.
    """
    scores: dict[int, float] = {}

    for genre_id in selected_genres:
        scores[int(genre_id)] = EXPLICIT_GENRE_SCORE

    for movie in seed_movies:
        for genre_id in dict.fromkeys(movie.genre_ids):
            if genre_id in scores:
                scores[genre_id] += SEED_GENRE_BOOST
            else:
                scores[genre_id] = SEED_GENRE_SCORE

    return scores


def _common_keywords(seed_movies) -> tuple[str, ...]:
    counts: Counter[str] = Counter()
    for movie in seed_movies:
        counts.update(dict.fromkeys(movie.keywords))
    return tuple(kw for kw, count in counts.items() if count >= KEYWORD_MIN_MOVIES)


def _year_range(years: list[int], current_year: int) -> tuple[int, int]:
    ceiling = current_year + 1

    def _clamp(year: int) -> int:
        return min(max(year, YEAR_FLOOR), ceiling)

    # Clamping both bounds into the same window keeps min <= max
    return _clamp(min(years) - YEAR_RANGE_BACK), _clamp(max(years) + YEAR_RANGE_FORWARD)


def build_preference_profile(
    seed_movies,
    selected_genres,
    current_year: int | None = None,
) -> PreferenceProfile:
    """
    Build a preference profile from exactly three seed movies and the
    participant's explicit genre picks.

    Args:
        seed_movies: Sequence of 3 SeedMovie
        selected_genres: Non-empty collection of genre ids
        current_year: Year used for the upper clamp of the year range
            (defaults to the current UTC year)

    Raises:
        ValidationError: wrong seed count or empty genre selection

    Scoring parameters:
    - Genres: explicit pick = 10, first seed appearance = 5, later hits +3
    - Keywords: kept when shared by at least 2 of the 3 seeds
    - Runtime: mean of seed runtimes, rounded
    - Years: [oldest - 5, newest + 3], clamped to [1980, current year + 1]
    - Rating floor: mean seed rating - 1.5, never below 6.0
    """
    seed_movies = tuple(seed_movies)
    selected_genres = tuple(dict.fromkeys(selected_genres))
    _validate_inputs(seed_movies, selected_genres)

    if current_year is None:
        current_year = datetime.now(timezone.utc).year

    profile = PreferenceProfile(
        genre_scores=_genre_scores(seed_movies, selected_genres),
        keywords=_common_keywords(seed_movies),
        preferred_runtime=round_half_up(fmean(m.runtime for m in seed_movies)),
        preferred_year_range=_year_range([m.release_year for m in seed_movies], current_year),
        min_rating=max(fmean(m.vote_average for m in seed_movies) - RATING_SLACK, MIN_RATING_FLOOR),
    )
    logger.debug(
        f"Built profile: {len(profile.genre_scores)} genres, {len(profile.keywords)} keywords, "
        f"years {profile.preferred_year_range}, min rating {profile.min_rating:.2f}"
    )
    return profile


def seed_movie_from_details(details: MovieDetails) -> SeedMovie:
    """Snapshot catalog details as a seed movie."""
    return SeedMovie(
        id=details.id,
        title=details.title,
        genre_ids=tuple(dict.fromkeys(details.genre_ids)),
        keywords=tuple(details.keywords),
        runtime=details.runtime or DEFAULT_SEED_RUNTIME,
        release_year=details.release_year or 0,
        vote_average=details.vote_average,
        poster_path=details.poster_path,
    )


async def fetch_seed_movies(catalog: CatalogClient, movie_ids) -> list[SeedMovie]:
    """
    Enrich exactly three seed movie ids with catalog details and keywords.

    Lookups run concurrently. If any lookup fails the whole enrichment fails
    with that error; a profile is never built from fewer than three movies.
    """
    movie_ids = [int(m) for m in movie_ids]
    if len(movie_ids) != REQUIRED_SEED_MOVIES:
        raise ValidationError(
            f"Exactly {REQUIRED_SEED_MOVIES} seed movies are required, got {len(movie_ids)}"
        )
    if len(set(movie_ids)) != len(movie_ids):
        raise ValidationError("Seed movies must be distinct")

    results = await asyncio.gather(
        *(catalog.fetch_by_id(movie_id) for movie_id in movie_ids),
        return_exceptions=True,
    )

    seeds: list[SeedMovie] = []
    for movie_id, result in zip(movie_ids, results):
        if isinstance(result, BaseException):
            logger.error(f"Failed to fetch seed movie {movie_id}: {type(result).__name__}: {result}")
            raise result
        seeds.append(seed_movie_from_details(result))
    return seeds


def build_user_preferences(
    participant_id: str,
    selected_genres,
    seed_movies,
    current_year: int | None = None,
) -> UserPreferences:
    """Validate inputs, build the profile and stamp the submission time."""
    selected_genres = tuple(dict.fromkeys(int(g) for g in selected_genres))
    seed_movies = tuple(seed_movies)
    profile = build_preference_profile(seed_movies, selected_genres, current_year=current_year)
    return UserPreferences(
        participant_id=participant_id,
        selected_genres=selected_genres,
        seed_movies=seed_movies,
        profile=profile,
        created_at=datetime.now(timezone.utc).isoformat(),
    )

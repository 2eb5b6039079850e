"""
Scorer: deterministic relevance of one movie against one profile.

No I/O and no hidden state; identical inputs always produce the same float.
Components are always summed in the same order.
"""

from __future__ import annotations

from dataclasses import dataclass

from .catalog import Movie
from .config import (
    GENRE_SCORE_CAP,
    RUNTIME_SCORE_MAX,
    RUNTIME_SCORE_DIVISOR,
    YEAR_SCORE_MAX,
    YEAR_SCORE_DIVISOR,
    RATING_BONUS_MULTIPLIER,
    RATING_BONUS_MAX,
    POPULARITY_DIVISOR,
    POPULARITY_BONUS_MAX,
)
from .profile import PreferenceProfile


@dataclass(frozen=True)
class ScoreBreakdown:
    genre: float
    runtime: float
    year: float
    rating: float
    popularity: float

    @property
    def total(self) -> float:
        return self.genre + self.runtime + self.year + self.rating + self.popularity

    def reasons(self, genre_names=None) -> list[str]:
        """Short explanations for the strongest components."""
        reasons = []
        if self.genre >= GENRE_SCORE_CAP:
            reasons.append("Strong genre match")
        elif self.genre > 0:
            reasons.append(f"Genre match: {self.genre:.0f}/{GENRE_SCORE_CAP:.0f}")
        if genre_names:
            reasons.append(f"Genres: {', '.join(genre_names)}")
        if self.runtime >= RUNTIME_SCORE_MAX * 0.8:
            reasons.append("Runtime close to your usual")
        if self.year >= YEAR_SCORE_MAX * 0.8:
            reasons.append("From your favourite era")
        if self.rating >= RATING_BONUS_MAX * 0.5:
            reasons.append("Well above your rating bar")
        if self.popularity >= POPULARITY_BONUS_MAX:
            reasons.append("Popular right now")
        return reasons


def _genre_component(movie: Movie, profile: PreferenceProfile) -> float:
    total = sum(profile.genre_scores.get(g, 0.0) for g in movie.genre_ids)
    return min(total, GENRE_SCORE_CAP)


def _runtime_component(movie: Movie, profile: PreferenceProfile) -> float:
    if not movie.runtime:
        return 0.0
    diff = abs(movie.runtime - profile.preferred_runtime)
    return max(RUNTIME_SCORE_MAX - diff / RUNTIME_SCORE_DIVISOR, 0.0)


def _year_component(movie: Movie, profile: PreferenceProfile) -> float:
    year = movie.release_year
    if year is None:
        return 0.0
    min_year, max_year = profile.preferred_year_range
    mid = (min_year + max_year) / 2
    return max(YEAR_SCORE_MAX - abs(year - mid) / YEAR_SCORE_DIVISOR, 0.0)


def _rating_component(movie: Movie, profile: PreferenceProfile) -> float:
    bonus = (movie.vote_average - profile.min_rating) * RATING_BONUS_MULTIPLIER
    return min(max(bonus, 0.0), RATING_BONUS_MAX)


def _popularity_component(movie: Movie) -> float:
    if not movie.popularity:
        return 0.0
    return min(movie.popularity / POPULARITY_DIVISOR, POPULARITY_BONUS_MAX)


def score_breakdown(movie: Movie, profile: PreferenceProfile) -> ScoreBreakdown:
    return ScoreBreakdown(
        genre=_genre_component(movie, profile),
        runtime=_runtime_component(movie, profile),
        year=_year_component(movie, profile),
        rating=_rating_component(movie, profile),
        popularity=_popularity_component(movie),
    )


def score_movie(movie: Movie, profile: PreferenceProfile) -> float:
    """
    Relevance of ``movie`` for ``profile`` (roughly 0-65).

    Components:
    - Genre match: sum of profile genre scores for the movie's genres, capped at 30
    - Runtime: 10 minus 1 point per 10 minutes away from the preferred runtime
    - Year: 10 minus 1 point per 5 years away from the middle of the year range
    - Rating: 2 points per rating point above the profile's floor, capped at 10
    - Popularity: popularity / 100, capped at 5
    Unknown runtime, release year or popularity contribute 0.
    """
    return score_breakdown(movie, profile).total

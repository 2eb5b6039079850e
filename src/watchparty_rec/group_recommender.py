"""
Group recommendation engine for watch parties.

Merges every participant's preference profile into one group profile and
ranks a shared candidate pool against it.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from statistics import fmean

from .catalog import Movie
from .config import GROUP_POOL_SIZE
from .errors import ValidationError
from .profile import GroupProfile, PreferenceProfile, UserPreferences, round_half_up
from .recommender import RankedMovie, rank_candidates
from .retriever import fetch_candidate_movies

logger = logging.getLogger(__name__)


@dataclass
class GroupRecommendations:
    """Outcome of one group run: the profile used, ranked movies and their scores."""

    profile: GroupProfile
    movies: list[Movie] = field(default_factory=list)
    scores: dict[int, float] = field(default_factory=dict)

    @property
    def ranked(self) -> list[RankedMovie]:
        return [RankedMovie(movie, self.scores[movie.id]) for movie in self.movies]


def aggregate_profiles(profiles: list[PreferenceProfile]) -> GroupProfile:
    """
    Combine N individual profiles into one group profile.

    - Genres: mean over all N participants (a missing genre counts as 0)
    - Keywords: kept when present in at least ceil(N/2) profiles
    - Runtime: mean preferred runtime, rounded
    - Years: union of all ranges (earliest start, latest end)
    - Rating floor: mean of the individual floors
    """
    if not profiles:
        raise ValidationError("Cannot aggregate an empty set of profiles")

    n = len(profiles)

    genre_totals: dict[int, float] = defaultdict(float)
    for profile in profiles:
        for genre_id, score in profile.genre_scores.items():
            genre_totals[genre_id] += score
    genre_scores = {genre_id: total / n for genre_id, total in genre_totals.items()}

    keyword_counts: dict[str, int] = defaultdict(int)
    for profile in profiles:
        for keyword in dict.fromkeys(profile.keywords):
            keyword_counts[keyword] += 1
    threshold = math.ceil(n / 2)
    keywords = tuple(kw for kw, count in keyword_counts.items() if count >= threshold)

    group = GroupProfile(
        genre_scores=genre_scores,
        keywords=keywords,
        preferred_runtime=round_half_up(fmean(p.preferred_runtime for p in profiles)),
        preferred_year_range=(
            min(p.preferred_year_range[0] for p in profiles),
            max(p.preferred_year_range[1] for p in profiles),
        ),
        min_rating=fmean(p.min_rating for p in profiles),
    )
    logger.debug(
        f"Aggregated {n} profiles: {len(genre_scores)} genres, {len(keywords)} shared keywords, "
        f"years {group.preferred_year_range}"
    )
    return group


async def generate_group_recommendations(
    catalog,
    all_preferences: list[UserPreferences],
    max_movies: int = GROUP_POOL_SIZE,
) -> GroupRecommendations:
    """
    Ranked movies for the whole room.

    Profiles missing from stored preferences are built on demand. The result
    is computed in full before being returned; nothing partial escapes.
    """
    if not all_preferences:
        raise ValidationError("No user preferences to aggregate")

    profiles = [prefs.ensure_profile() for prefs in all_preferences]
    group_profile = aggregate_profiles(profiles)

    candidates = await fetch_candidate_movies(catalog, group_profile, max_movies=max_movies)
    ranked = rank_candidates(candidates, group_profile)

    logger.info(f"Group of {len(profiles)}: ranked {len(ranked)} movies")
    return GroupRecommendations(
        profile=group_profile,
        movies=[r.movie for r in ranked],
        scores={r.movie.id: r.score for r in ranked},
    )

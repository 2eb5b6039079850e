import logging
from dataclasses import dataclass

from .catalog import Movie
from .config import INDIVIDUAL_POOL_SIZE
from .profile import PreferenceProfile, UserPreferences
from .retriever import fetch_candidate_movies
from .scoring import score_movie

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RankedMovie:
    movie: Movie
    score: float


def rank_candidates(candidates: list[Movie], profile: PreferenceProfile) -> list[RankedMovie]:
    """Score every candidate and sort best first; equal scores keep candidate order."""
    scored = [RankedMovie(movie, score_movie(movie, profile)) for movie in candidates]
    # list.sort is stable, so ties stay in retrieval order
    scored.sort(key=lambda ranked: -ranked.score)
    return scored


async def generate_recommendations(
    catalog,
    user_preferences: UserPreferences,
    max_movies: int = INDIVIDUAL_POOL_SIZE,
) -> list[RankedMovie]:
    """
    Ranked recommendations for a single participant.

    Builds the profile on demand if the preferences don't carry one yet,
    then retrieves, scores and sorts candidates.
    """
    profile = user_preferences.ensure_profile()
    candidates = await fetch_candidate_movies(catalog, profile, max_movies=max_movies)
    ranked = rank_candidates(candidates, profile)
    logger.info(f"Ranked {len(ranked)} movies for {user_preferences.participant_id}")
    return ranked

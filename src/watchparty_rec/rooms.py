"""
Room-level flows: save a participant's preferences, (re)generate the room's
ranked movie list, the genre-only fallback, manual additions and voting.

Room Store calls block, so async flows run them in a worker thread. A
regeneration writes its result in one update after the whole pipeline has
finished. Two regenerations of the same room racing each other are not
coordinated: whichever writes last wins.
"""

from __future__ import annotations

import asyncio
import logging

from .catalog import Movie
from .config import (
    FALLBACK_PAGES,
    FALLBACK_MIN_VOTE_COUNT,
    FALLBACK_MIN_VOTE_AVERAGE,
    GROUP_POOL_SIZE,
    VOTE_TYPES,
)
from .database import RoomStore
from .errors import IncompleteProfile, NotFound, ValidationError
from .group_recommender import GroupRecommendations, generate_group_recommendations
from .profile import UserPreferences, build_user_preferences, fetch_seed_movies
from .ranking import compile_watchlist, rank_movies
from .retriever import gather_pages, merge_pages

logger = logging.getLogger(__name__)


def _participant(room: dict, participant_id: str) -> dict:
    participant = room.get("participants", {}).get(participant_id)
    if participant is None:
        raise NotFound(f"Participant '{participant_id}' is not in room '{room['roomId']}'")
    return participant


def _movie_list(room: dict, field: str = "movieList") -> list[Movie]:
    return [Movie.from_dict(m) for m in room.get(field, [])]


def _room_watchlist(room: dict) -> list[Movie]:
    return compile_watchlist(_movie_list(room), room.get("votes", {}), _movie_list(room, "addedMovies"))


def room_preferences(room: dict) -> list[UserPreferences]:
    """
    Preferences of every participant, in join order.

    Raises IncompleteProfile (with readiness counts) unless every participant
    has completed onboarding.
    """
    participants = sorted(room.get("participants", {}).values(), key=lambda p: p.get("joinedAt", ""))
    stored = room.get("userPreferences", {})
    ready = [p for p in participants if p.get("hasCompletedPreferences") and p["id"] in stored]

    if not participants or len(ready) < len(participants):
        raise IncompleteProfile(len(ready), len(participants))

    return [UserPreferences.from_dict(stored[p["id"]]) for p in ready]


async def save_preferences(
    store: RoomStore,
    catalog,
    room_id: str,
    participant_id: str,
    selected_genres,
    seed_movie_ids,
) -> UserPreferences:
    """
    Enrich the seed movies, build the participant's profile and persist it.

    Any failed seed lookup fails the whole save; nothing is written.
    """
    selected_genres = [int(g) for g in selected_genres]
    if not selected_genres:
        raise ValidationError("At least one genre must be selected")

    room = await asyncio.to_thread(store.get_room, room_id)
    _participant(room, participant_id)

    seeds = await fetch_seed_movies(catalog, seed_movie_ids)
    prefs = build_user_preferences(participant_id, selected_genres, seeds)

    await asyncio.to_thread(store.update_room, room_id, {
        f"userPreferences.{participant_id}": prefs.to_dict(),
        f"participants.{participant_id}.genres": list(prefs.selected_genres),
        f"participants.{participant_id}.hasCompletedPreferences": True,
    })
    logger.info(f"Saved preferences for {participant_id} in room {room_id}")
    return prefs


async def regenerate_recommendations(
    store: RoomStore,
    catalog,
    room_id: str,
    max_movies: int = GROUP_POOL_SIZE,
) -> GroupRecommendations:
    """Rebuild the room's ranked movie list from every participant's profile."""
    room = await asyncio.to_thread(store.get_room, room_id)
    all_preferences = room_preferences(room)

    result = await generate_group_recommendations(catalog, all_preferences, max_movies=max_movies)

    genres = list(dict.fromkeys(g for prefs in all_preferences for g in prefs.selected_genres))
    await asyncio.to_thread(store.update_room, room_id, {
        "movieList": [m.to_dict() for m in result.movies],
        "recommendationScores": {str(movie_id): score for movie_id, score in result.scores.items()},
        "preferences": {"genres": genres},
    })
    logger.info(f"Room {room_id}: stored {len(result.movies)} recommendations")
    return result


async def rank_room_by_genres(
    store: RoomStore,
    catalog,
    room_id: str,
    genre_ids,
    pages: int = FALLBACK_PAGES,
) -> list[Movie]:
    """
    Genre-only flow for rooms without seed-movie profiles: fetch a few pages
    of well-rated movies in the genres, rank them, store the list.
    """
    genre_ids = [int(g) for g in genre_ids]
    if not genre_ids:
        raise ValidationError("Genre ids are required")

    await asyncio.to_thread(store.get_room, room_id)

    def fetch_page(page: int):
        return catalog.discover(
            genre_ids=genre_ids,
            min_vote_count=FALLBACK_MIN_VOTE_COUNT,
            min_vote_average=FALLBACK_MIN_VOTE_AVERAGE,
            page=page,
        )

    fetched = await gather_pages(fetch_page, pages, max_concurrent=getattr(catalog, "max_concurrent", None))
    movies = merge_pages(fetched)
    ranked = rank_movies(movies, genre_ids)

    await asyncio.to_thread(store.update_room, room_id, {
        "movieList": [m.to_dict() for m in ranked],
        "preferences": {"genres": genre_ids},
    })
    logger.info(f"Room {room_id}: stored {len(ranked)} genre-ranked movies")
    return ranked


async def add_movie(store: RoomStore, catalog, room_id: str, movie_id: int) -> list[Movie]:
    """
    Put a movie on the room's watchlist by catalog id.

    The movie is appended to the movie list unless it is already there, and
    it stays on the watchlist whatever the votes say. Returns the new
    watchlist.
    """
    await asyncio.to_thread(store.get_room, room_id)
    details = await catalog.fetch_by_id(int(movie_id))
    movie = Movie.from_dict(details.to_dict())

    room = await asyncio.to_thread(store.get_room, room_id)
    movie_list = _movie_list(room)
    added = _movie_list(room, "addedMovies")

    fields = {}
    if all(m.id != movie.id for m in movie_list):
        fields["movieList"] = [m.to_dict() for m in movie_list + [movie]]
        room["movieList"] = fields["movieList"]
    if all(m.id != movie.id for m in added):
        fields["addedMovies"] = [m.to_dict() for m in added + [movie]]
        room["addedMovies"] = fields["addedMovies"]

    watchlist = _room_watchlist(room)
    fields["watchlist"] = [m.to_dict() for m in watchlist]
    await asyncio.to_thread(store.update_room, room_id, fields)
    logger.info(f"Room {room_id}: added '{movie.title}' ({movie.id}) to the watchlist")
    return watchlist


def record_vote(store: RoomStore, room_id: str, participant_id: str, movie_id: int, vote: str) -> list[Movie]:
    """
    Record one swipe and refresh the shared watchlist.

    Each vote is its own field, so votes by different participants (or on
    different movies) never overwrite each other. Returns the new watchlist.
    """
    if vote not in VOTE_TYPES:
        raise ValidationError(f"Invalid vote '{vote}'. Must be one of: {', '.join(VOTE_TYPES)}")

    room = store.get_room(room_id)
    _participant(room, participant_id)
    movie_id = int(movie_id)

    store.update_room(room_id, {f"votes.{participant_id}.{movie_id}": vote})

    room = store.get_room(room_id)
    watchlist = _room_watchlist(room)
    store.update_room(room_id, {"watchlist": [m.to_dict() for m in watchlist]})
    return watchlist


def room_watchlist(store: RoomStore, room_id: str) -> list[Movie]:
    room = store.get_room(room_id)
    return _room_watchlist(room)

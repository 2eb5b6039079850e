"""Profile-free ranking and watchlist helpers. Pure functions over data in hand."""

from __future__ import annotations

from .catalog import Movie
from .config import WATCHLIST_VOTES


def _sort_key(movie: Movie, selected: frozenset[int]):
    year = movie.release_year
    overlap = sum(1 for g in movie.genre_ids if g in selected)
    # Negated so a single ascending sort gives: rating desc, year desc (unknown last), overlap desc
    return (-movie.vote_average, year is None, -(year or 0), -overlap)


def rank_movies(movies: list[Movie], selected_genres) -> list[Movie]:
    """
    Rank an already fetched pool when no seed-movie profile exists.

    Order: rating (higher first), then release year (newer first), then the
    number of genres shared with ``selected_genres``. Returns a new list.
    """
    selected = frozenset(int(g) for g in selected_genres)
    return sorted(movies, key=lambda m: _sort_key(m, selected))


def compile_watchlist(
    movie_list: list[Movie],
    votes: dict[str, dict],
    added_movies: list[Movie] | None = None,
) -> list[Movie]:
    """
    Movies any participant voted liked or maybe, plus manually added ones.

    Movies from ``movie_list`` come first, in list order. Added movies that
    are no longer in the list (a regeneration replaced it) follow in the
    order they were added. Added movies stay regardless of votes.

    ``votes`` maps participant id -> {movie id: vote}; movie ids may be str
    (as stored in JSON) or int.
    """
    added_movies = added_movies or []
    wanted: set[int] = {movie.id for movie in added_movies}
    for participant_votes in (votes or {}).values():
        for movie_id, vote in (participant_votes or {}).items():
            if vote in WATCHLIST_VOTES:
                wanted.add(int(movie_id))

    watchlist: dict[int, Movie] = {}
    for movie in movie_list:
        if movie.id in wanted and movie.id not in watchlist:
            watchlist[movie.id] = movie
    for movie in added_movies:
        watchlist.setdefault(movie.id, movie)
    return list(watchlist.values())

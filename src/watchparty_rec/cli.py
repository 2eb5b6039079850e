import argparse
import asyncio
import json
import logging
import sys

from tqdm import tqdm

from .catalog import CatalogClient, Movie
from .config import INDIVIDUAL_POOL_SIZE, GROUP_POOL_SIZE, VOTE_TYPES
from .database import RoomStore
from .errors import IncompleteProfile, NotFound, WatchPartyError
from .genres import GenreTable
from .profile import UserPreferences
from .recommender import generate_recommendations
from .rooms import (
    add_movie,
    save_preferences,
    regenerate_recommendations,
    rank_room_by_genres,
    record_vote,
    room_watchlist,
)
from .scoring import score_breakdown

logger = logging.getLogger(__name__)

GENRES = GenreTable()


def _parse_genres(tokens: list[str] | None, table: GenreTable = GENRES) -> list[int]:
    """Accept genre ids or names ("Science Fiction" must be quoted)."""
    genres = []
    for token in tokens or []:
        try:
            genres.append(table.resolve(token))
        except ValueError as exc:
            raise argparse.ArgumentTypeError(str(exc)) from exc
    return genres


def _movie_line(movie: Movie, table: GenreTable = GENRES) -> str:
    year = movie.release_year or "?"
    genres = ", ".join(table.describe(movie.genre_ids)) or "-"
    return f"{movie.title} ({year}) [id {movie.id}] - {movie.vote_average:.1f}/10 - {genres}"


def _run(coro):
    return asyncio.run(coro)


def cmd_genres(args: argparse.Namespace) -> None:
    """List known genres."""
    for genre_id, name in sorted(GENRES, key=lambda item: item[1]):
        logger.info(f"  {genre_id:>6}  {name}")


def cmd_search(args: argparse.Namespace) -> None:
    """Search the catalog by title (for picking seed movies)."""
    async def _search():
        async with CatalogClient() as catalog:
            return await catalog.search_by_title(args.query, page=args.page)

    movies = _run(_search())
    if not movies:
        logger.info(f"No movies found for '{args.query}'")
        return
    for movie in movies:
        logger.info(f"  {_movie_line(movie)}")


def cmd_create_room(args: argparse.Namespace) -> None:
    room = RoomStore().create_room(args.code)
    logger.info(f"Room code: {room['roomId']}")


def cmd_join(args: argparse.Namespace) -> None:
    participant = RoomStore().add_participant(args.room, args.nickname, participant_id=args.id)
    logger.info(f"{participant['nickname']} joined {args.room} as {participant['id']}")


def cmd_preferences(args: argparse.Namespace) -> None:
    """Save a participant's genres and three seed movies."""
    store = RoomStore()
    genres = _parse_genres(args.genres)

    async def _save():
        async with CatalogClient() as catalog:
            return await save_preferences(store, catalog, args.room, args.participant, genres, args.seeds)

    prefs = _run(_save())
    profile = prefs.profile
    logger.info(f"Saved preferences for {args.participant}")
    logger.info(f"  Seeds: {', '.join(m.title for m in prefs.seed_movies)}")
    top = sorted(profile.genre_scores.items(), key=lambda item: -item[1])[:5]
    logger.info(f"  Genres: {', '.join(f'{GENRES.name(g)} ({s:g})' for g, s in top)}")
    if profile.keywords:
        logger.info(f"  Shared keywords: {', '.join(profile.keywords)}")
    logger.info(f"  Runtime ~{profile.preferred_runtime:g} min, years {profile.preferred_year_range[0]}-"
                f"{profile.preferred_year_range[1]}, min rating {profile.min_rating:.2f}")

    room = store.get_room(args.room)
    participants = room.get("participants", {}).values()
    ready = sum(1 for p in participants if p.get("hasCompletedPreferences"))
    logger.info(f"  {ready}/{len(participants)} participants ready")


def _output_ranked(ranked, profile, args: argparse.Namespace) -> None:
    ranked = ranked[:args.limit]
    if args.format == "json":
        print(json.dumps([
            {**item.movie.to_dict(), "score": round(item.score, 3)} for item in ranked
        ], indent=2))
        return

    for i, item in enumerate(ranked, 1):
        logger.info(f"{i}. {_movie_line(item.movie)}")
        logger.info(f"   Score: {item.score:.1f}")
        if args.explain:
            breakdown = score_breakdown(item.movie, profile)
            logger.info(
                f"   genre {breakdown.genre:.1f} | runtime {breakdown.runtime:.1f} | year {breakdown.year:.1f}"
                f" | rating {breakdown.rating:.1f} | popularity {breakdown.popularity:.1f}"
            )
            reasons = breakdown.reasons(GENRES.describe(item.movie.genre_ids))
            if reasons:
                logger.info(f"   Why: {'; '.join(reasons)}")


def cmd_recommend(args: argparse.Namespace) -> None:
    """Regenerate the group recommendations of one or more rooms."""
    store = RoomStore()

    async def _regenerate_all():
        results = {}
        async with CatalogClient() as catalog:
            for room_id in tqdm(args.rooms, desc="Rooms", disable=len(args.rooms) < 2):
                try:
                    results[room_id] = await regenerate_recommendations(
                        store, catalog, room_id, max_movies=args.pool_size
                    )
                except IncompleteProfile as exc:
                    if len(args.rooms) == 1:
                        raise
                    logger.warning(f"Skipping {room_id}: {exc}")
        return results

    results = _run(_regenerate_all())
    for room_id, result in results.items():
        if args.format != "json":
            logger.info(f"\n{'=' * 60}")
            logger.info(f"Room {room_id}: {len(result.movies)} movies")
            logger.info(f"{'=' * 60}\n")
        _output_ranked(result.ranked, result.profile, args)


def cmd_recommend_user(args: argparse.Namespace) -> None:
    """Show one participant's individual recommendations (not stored)."""
    room = RoomStore().get_room(args.room)
    stored = room.get("userPreferences", {}).get(args.participant)
    if not stored:
        raise NotFound(f"{args.participant} has not submitted preferences in {args.room}")
    prefs = UserPreferences.from_dict(stored)

    async def _recommend():
        async with CatalogClient() as catalog:
            return await generate_recommendations(catalog, prefs, max_movies=args.pool_size)

    ranked = _run(_recommend())
    _output_ranked(ranked, prefs.ensure_profile(), args)


def cmd_rank(args: argparse.Namespace) -> None:
    """Genre-only ranking for rooms without seed movies."""
    store = RoomStore()
    genres = _parse_genres(args.genres)

    async def _rank():
        async with CatalogClient() as catalog:
            return await rank_room_by_genres(store, catalog, args.room, genres)

    movies = _run(_rank())
    logger.info(f"Stored {len(movies)} movies for room {args.room}")
    for i, movie in enumerate(movies[:args.limit], 1):
        logger.info(f"{i}. {_movie_line(movie)}")


def cmd_vote(args: argparse.Namespace) -> None:
    watchlist = record_vote(RoomStore(), args.room, args.participant, args.movie_id, args.vote)
    logger.info(f"Recorded '{args.vote}' for movie {args.movie_id}; watchlist has {len(watchlist)} movies")


def cmd_add_movie(args: argparse.Namespace) -> None:
    """Add a movie to the room's watchlist by catalog id."""
    store = RoomStore()

    async def _add():
        async with CatalogClient() as catalog:
            return await add_movie(store, catalog, args.room, args.movie_id)

    watchlist = _run(_add())
    logger.info(f"Added movie {args.movie_id}; watchlist has {len(watchlist)} movies")


def cmd_watchlist(args: argparse.Namespace) -> None:
    watchlist = room_watchlist(RoomStore(), args.room)
    if args.format == "json":
        print(json.dumps([m.to_dict() for m in watchlist], indent=2))
        return
    if not watchlist:
        logger.info("Watchlist is empty")
        return
    for i, movie in enumerate(watchlist, 1):
        logger.info(f"{i}. {_movie_line(movie)}")


def cmd_show(args: argparse.Namespace) -> None:
    """Show a room's participants and progress."""
    room = RoomStore().get_room(args.room)
    if args.format == "json":
        print(json.dumps(room, indent=2))
        return

    participants = list(room.get("participants", {}).values())
    logger.info(f"Room {room['roomId']} (created {room['createdAt']})")
    for p in participants:
        status = "ready" if p.get("hasCompletedPreferences") else "onboarding"
        logger.info(f"  {p['nickname']} [{p['id']}] - {status}")
    logger.info(f"  Movies in list: {len(room.get('movieList', []))}")
    logger.info(f"  Watchlist: {len(room.get('watchlist', []))}")


def _add_output_args(parser: argparse.ArgumentParser, default_limit: int = 20) -> None:
    parser.add_argument("--limit", type=int, default=default_limit, help="Number of movies to show")
    parser.add_argument("--format", choices=["text", "json"], default="text", help="Output format")
    parser.add_argument("--explain", action="store_true", help="Show the score breakdown for each movie")


def main():
    parser = argparse.ArgumentParser(description="Watch-party movie recommender")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    genres_parser = subparsers.add_parser("genres", help="List genre ids and names")
    genres_parser.set_defaults(func=cmd_genres)

    search_parser = subparsers.add_parser("search", help="Search movies by title")
    search_parser.add_argument("query", help="Title to search for")
    search_parser.add_argument("--page", type=int, default=1, help="Result page")
    search_parser.set_defaults(func=cmd_search)

    create_parser = subparsers.add_parser("create-room", help="Create a new room")
    create_parser.add_argument("--code", help="Use this room code instead of a generated one")
    create_parser.set_defaults(func=cmd_create_room)

    join_parser = subparsers.add_parser("join", help="Join a room")
    join_parser.add_argument("room", help="Room code")
    join_parser.add_argument("nickname", help="Display name (unique in the room)")
    join_parser.add_argument("--id", help="Participant id (generated if omitted)")
    join_parser.set_defaults(func=cmd_join)

    prefs_parser = subparsers.add_parser("preferences", help="Submit genres and 3 seed movies")
    prefs_parser.add_argument("room", help="Room code")
    prefs_parser.add_argument("participant", help="Participant id")
    prefs_parser.add_argument("--genres", nargs="+", required=True, help="Genre ids or names")
    prefs_parser.add_argument("--seeds", nargs=3, type=int, required=True, metavar="MOVIE_ID",
                              help="Exactly three catalog ids of movies you like")
    prefs_parser.set_defaults(func=cmd_preferences)

    rec_parser = subparsers.add_parser("recommend", help="Generate group recommendations for rooms")
    rec_parser.add_argument("rooms", nargs="+", help="Room code(s)")
    rec_parser.add_argument("--pool-size", type=int, default=GROUP_POOL_SIZE, help="Candidate pool size")
    _add_output_args(rec_parser)
    rec_parser.set_defaults(func=cmd_recommend)

    user_parser = subparsers.add_parser("recommend-user", help="Individual recommendations for one participant")
    user_parser.add_argument("room", help="Room code")
    user_parser.add_argument("participant", help="Participant id")
    user_parser.add_argument("--pool-size", type=int, default=INDIVIDUAL_POOL_SIZE, help="Candidate pool size")
    _add_output_args(user_parser)
    user_parser.set_defaults(func=cmd_recommend_user)

    rank_parser = subparsers.add_parser("rank", help="Genre-only ranking (no seed movies)")
    rank_parser.add_argument("room", help="Room code")
    rank_parser.add_argument("--genres", nargs="+", required=True, help="Genre ids or names")
    rank_parser.add_argument("--limit", type=int, default=20, help="Number of movies to show")
    rank_parser.set_defaults(func=cmd_rank)

    vote_parser = subparsers.add_parser("vote", help="Vote on a movie")
    vote_parser.add_argument("room", help="Room code")
    vote_parser.add_argument("participant", help="Participant id")
    vote_parser.add_argument("movie_id", type=int, help="Movie id")
    vote_parser.add_argument("vote", choices=VOTE_TYPES, help="Vote")
    vote_parser.set_defaults(func=cmd_vote)

    add_parser = subparsers.add_parser("add-movie", help="Add a movie to the watchlist by catalog id")
    add_parser.add_argument("room", help="Room code")
    add_parser.add_argument("movie_id", type=int, help="Movie id")
    add_parser.set_defaults(func=cmd_add_movie)

    watchlist_parser = subparsers.add_parser("watchlist", help="Show the room's shared watchlist")
    watchlist_parser.add_argument("room", help="Room code")
    watchlist_parser.add_argument("--format", choices=["text", "json"], default="text", help="Output format")
    watchlist_parser.set_defaults(func=cmd_watchlist)

    show_parser = subparsers.add_parser("show", help="Show room status")
    show_parser.add_argument("room", help="Room code")
    show_parser.add_argument("--format", choices=["text", "json"], default="text", help="Output format")
    show_parser.set_defaults(func=cmd_show)

    args = parser.parse_args()

    # Configure logging based on verbosity
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        args.func(args)
    except argparse.ArgumentTypeError as exc:
        parser.error(str(exc))
    except WatchPartyError as exc:
        logger.error(f"{exc.code}: {exc}")
        sys.exit(1)


if __name__ == "__main__":
    main()

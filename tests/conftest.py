import importlib
import sys
from pathlib import Path

import pytest

# Ensure the package under test is importable without installation
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from watchparty_rec.catalog import Movie, MovieDetails  # noqa: E402
from watchparty_rec.errors import NotFound  # noqa: E402
from watchparty_rec.profile import SeedMovie  # noqa: E402


@pytest.fixture
def fresh_config(monkeypatch, tmp_path):
    """
    Reload config with a temporary database path to keep tests isolated.
    """
    db_path = tmp_path / "test.db"
    monkeypatch.setenv("WATCHPARTY_DB", str(db_path))
    import watchparty_rec.config as config

    importlib.reload(config)
    yield config
    monkeypatch.undo()
    importlib.reload(config)


@pytest.fixture
def room_store(tmp_path):
    from watchparty_rec.database import RoomStore

    return RoomStore(tmp_path / "rooms.db")


def make_movie(movie_id, genres=(18,), year=2010, rating=7.5, runtime=120, popularity=50.0, title=None):
    return Movie(
        id=movie_id,
        title=title or f"Movie {movie_id}",
        genre_ids=tuple(genres),
        release_date=f"{year}-06-01" if year else None,
        vote_average=rating,
        runtime=runtime,
        popularity=popularity,
    )


def make_seed(movie_id, genres=(18,), keywords=(), runtime=120, year=2010, rating=7.5):
    return SeedMovie(
        id=movie_id,
        title=f"Seed {movie_id}",
        genre_ids=tuple(genres),
        keywords=tuple(keywords),
        runtime=runtime,
        release_year=year,
        vote_average=rating,
    )


class FakeCatalog:
    """
    In-memory stand-in for CatalogClient.

    ``pages`` maps page number -> list of movies (or an exception to raise);
    ``details`` maps movie id -> MovieDetails.
    """

    def __init__(self, pages=None, details=None):
        self.pages = pages or {}
        self.details = details or {}
        self.discover_calls = []
        self.fetched_ids = []

    async def discover(self, genre_ids=None, min_vote_count=None, min_vote_average=None,
                       min_year=None, max_year=None, page=1):
        self.discover_calls.append({
            "genre_ids": list(genre_ids or []),
            "min_vote_count": min_vote_count,
            "min_vote_average": min_vote_average,
            "min_year": min_year,
            "max_year": max_year,
            "page": page,
        })
        result = self.pages.get(page, [])
        if isinstance(result, BaseException):
            raise result
        return list(result)

    async def fetch_by_id(self, movie_id):
        self.fetched_ids.append(movie_id)
        if movie_id not in self.details:
            raise NotFound(f"movie {movie_id}")
        return self.details[movie_id]

    async def search_by_title(self, query, page=1):
        q = query.strip().lower()
        return [d for d in self.details.values() if q and q in d.title.lower()]


def make_details(movie_id, genres=(18,), keywords=(), runtime=120, year=2010, rating=7.5, title=None):
    return MovieDetails(
        id=movie_id,
        title=title or f"Movie {movie_id}",
        genre_ids=tuple(genres),
        release_date=f"{year}-03-15",
        vote_average=rating,
        runtime=runtime,
        popularity=20.0,
        keywords=tuple(keywords),
    )


@pytest.fixture
def fake_catalog():
    return FakeCatalog

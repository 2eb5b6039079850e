import pytest

from watchparty_rec import profile as profile_mod
from watchparty_rec.catalog import MovieDetails
from watchparty_rec.errors import NotFound, ValidationError
from watchparty_rec.profile import (
    PreferenceProfile,
    UserPreferences,
    build_preference_profile,
    build_user_preferences,
    fetch_seed_movies,
    round_half_up,
    seed_movie_from_details,
)

from conftest import FakeCatalog, make_details, make_seed


def test_end_to_end_profile_values():
    seeds = [
        make_seed(1, genres=(28,), runtime=120, rating=8.0, year=1999),
        make_seed(2, genres=(28,), runtime=130, rating=8.2, year=2010),
        make_seed(3, genres=(28,), runtime=140, rating=7.6, year=2021),
    ]

    profile = build_preference_profile(seeds, [28], current_year=2026)

    assert profile.preferred_runtime == 130
    assert profile.min_rating == pytest.approx(23.8 / 3 - 1.5)
    assert profile.preferred_year_range == (1994, 2024)
    assert profile.genre_scores[28] >= 10


def test_genre_scores_explicit_then_seed_order():
    seeds = [
        make_seed(1, genres=(28, 12)),
        make_seed(2, genres=(12, 35)),
        make_seed(3, genres=(35, 28)),
    ]

    profile = build_preference_profile(seeds, [28, 18], current_year=2026)

    # 28: explicit 10, +3, +3; 12: 5 then +3; 35: 5 then +3; 18: explicit only
    assert profile.genre_scores == {28: 16.0, 18: 10.0, 12: 8.0, 35: 8.0}


def test_duplicate_genre_inside_one_movie_counts_once():
    seeds = [make_seed(1, genres=(12, 12)), make_seed(2, genres=(35,)), make_seed(3, genres=(35,))]

    profile = build_preference_profile(seeds, [18], current_year=2026)

    assert profile.genre_scores[12] == 5.0


def test_build_profile_is_pure():
    seeds = [make_seed(1, keywords=("heist",)), make_seed(2, keywords=("heist",)), make_seed(3)]

    first = build_preference_profile(seeds, [18], current_year=2026)
    second = build_preference_profile(seeds, [18], current_year=2026)

    assert first == second


def test_keywords_need_two_seed_movies():
    seeds = [
        make_seed(1, keywords=("space", "robot", "robot")),
        make_seed(2, keywords=("space", "dream")),
        make_seed(3, keywords=("heist",)),
    ]

    profile = build_preference_profile(seeds, [878], current_year=2026)

    # "robot" appears twice but in a single movie
    assert profile.keywords == ("space",)


def test_min_rating_never_below_floor():
    seeds = [make_seed(i, rating=5.0) for i in (1, 2, 3)]

    profile = build_preference_profile(seeds, [18], current_year=2026)

    assert profile.min_rating == 6.0


def test_year_range_clamped_to_window():
    old = [make_seed(1, year=1950), make_seed(2, year=1960), make_seed(3, year=1970)]
    new = [make_seed(1, year=2025), make_seed(2, year=2026), make_seed(3, year=2026)]

    assert build_preference_profile(old, [18], current_year=2026).preferred_year_range == (1980, 1980)
    assert build_preference_profile(new, [18], current_year=2026).preferred_year_range == (2020, 2027)


def test_runtime_rounds_half_up():
    seeds = [make_seed(1, runtime=100), make_seed(2, runtime=101), make_seed(3, runtime=101)]
    assert build_preference_profile(seeds, [18], current_year=2026).preferred_runtime == 101

    assert round_half_up(100.5) == 101
    assert round_half_up(100.4) == 100


@pytest.mark.parametrize("count", [2, 4])
def test_wrong_seed_count_rejected(count):
    seeds = [make_seed(i) for i in range(count)]
    with pytest.raises(ValidationError):
        build_preference_profile(seeds, [18])


def test_empty_genres_rejected():
    seeds = [make_seed(i) for i in range(3)]
    with pytest.raises(ValidationError):
        build_preference_profile(seeds, [])


def test_seed_movie_from_details_defaults():
    details = MovieDetails(id=7, title="No Runtime", genre_ids=(18, 18), release_date=None, keywords=("a",))

    seed = seed_movie_from_details(details)

    assert seed.runtime == 120
    assert seed.release_year == 0
    assert seed.genre_ids == (18,)
    assert seed.keywords == ("a",)


def test_preferences_round_trip_through_dict():
    seeds = [make_seed(i, genres=(18, 35)) for i in (1, 2, 3)]
    prefs = build_user_preferences("p1", [18, 18, 35], seeds, current_year=2026)

    restored = UserPreferences.from_dict(prefs.to_dict())

    assert prefs.selected_genres == (18, 35)
    assert restored == prefs
    assert prefs.to_dict()["profile"]["genreScores"]["18"] == pytest.approx(19.0)


def test_ensure_profile_builds_missing_profile():
    seeds = tuple(make_seed(i) for i in (1, 2, 3))
    prefs = UserPreferences("p1", (18,), seeds, profile=None)

    assert isinstance(prefs.ensure_profile(), PreferenceProfile)
    assert prefs.ensure_profile().genre_scores[18] == 19.0


@pytest.mark.asyncio
async def test_fetch_seed_movies_enriches_in_order():
    catalog = FakeCatalog(details={
        i: make_details(i, genres=(28,), keywords=("k",), year=2000 + i) for i in (10, 20, 30)
    })

    seeds = await fetch_seed_movies(catalog, [30, 10, 20])

    assert [s.id for s in seeds] == [30, 10, 20]
    assert seeds[0].release_year == 2030
    assert seeds[1].keywords == ("k",)


@pytest.mark.asyncio
async def test_fetch_seed_movies_fails_when_any_lookup_fails():
    catalog = FakeCatalog(details={10: make_details(10), 20: make_details(20)})

    with pytest.raises(NotFound):
        await fetch_seed_movies(catalog, [10, 20, 99])


@pytest.mark.asyncio
async def test_fetch_seed_movies_validates_ids():
    catalog = FakeCatalog()

    with pytest.raises(ValidationError):
        await fetch_seed_movies(catalog, [1, 2])
    with pytest.raises(ValidationError):
        await fetch_seed_movies(catalog, [1, 1, 2])
    assert catalog.fetched_ids == []


def test_profile_module_uses_utc_year_by_default(monkeypatch):
    seeds = [make_seed(i, year=2100) for i in (1, 2, 3)]

    class FixedDatetime:
        @staticmethod
        def now(tz=None):
            from datetime import datetime
            return datetime(2030, 1, 1, tzinfo=tz)

    monkeypatch.setattr(profile_mod, "datetime", FixedDatetime)

    profile = build_preference_profile(seeds, [18])
    assert profile.preferred_year_range == (2031, 2031)


def test_profile_rejects_inverted_year_range():
    with pytest.raises(ValidationError):
        PreferenceProfile(genre_scores={18: 10.0}, preferred_runtime=120,
                          preferred_year_range=(2020, 2000), min_rating=7.0)


def test_stored_profile_below_rating_floor_rejected():
    stored = {
        "genreScores": {"18": 10.0},
        "keywords": [],
        "preferredRuntime": 120,
        "preferredYearRange": [2000, 2010],
        "minRating": 4.5,
    }

    with pytest.raises(ValidationError):
        PreferenceProfile.from_dict(stored)

    stored["minRating"] = 6.0
    assert PreferenceProfile.from_dict(stored).min_rating == 6.0

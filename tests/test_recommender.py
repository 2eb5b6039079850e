import pytest

from watchparty_rec.errors import UpstreamUnavailable
from watchparty_rec.profile import PreferenceProfile, build_user_preferences
from watchparty_rec.recommender import generate_recommendations, rank_candidates

from conftest import FakeCatalog, make_movie, make_seed


def _profile():
    return PreferenceProfile(
        genre_scores={28: 16.0, 18: 10.0},
        preferred_runtime=120,
        preferred_year_range=(2000, 2020),
        min_rating=6.5,
    )


def test_rank_candidates_sorted_best_first():
    candidates = [
        make_movie(1, genres=(35,)),
        make_movie(2, genres=(28, 18)),
        make_movie(3, genres=(18,)),
    ]

    ranked = rank_candidates(candidates, _profile())

    assert [r.movie.id for r in ranked] == [2, 3, 1]
    assert ranked[0].score > ranked[1].score > ranked[2].score


def test_rank_candidates_ties_keep_retrieval_order():
    candidates = [make_movie(5), make_movie(3), make_movie(9)]

    ranked = rank_candidates(candidates, _profile())

    assert [r.movie.id for r in ranked] == [5, 3, 9]


@pytest.mark.asyncio
async def test_generate_recommendations_for_participant():
    seeds = [make_seed(i, genres=(28,), year=2010) for i in (1, 2, 3)]
    prefs = build_user_preferences("p1", [28], seeds, current_year=2026)
    catalog = FakeCatalog(pages={
        1: [make_movie(10, genres=(18,)), make_movie(11, genres=(28,))],
    })

    ranked = await generate_recommendations(catalog, prefs, max_movies=20)

    assert [r.movie.id for r in ranked] == [11, 10]
    assert catalog.discover_calls[0]["genre_ids"] == [28]


@pytest.mark.asyncio
async def test_generate_recommendations_propagates_total_failure():
    seeds = [make_seed(i) for i in (1, 2, 3)]
    prefs = build_user_preferences("p1", [18], seeds, current_year=2026)
    catalog = FakeCatalog(pages={1: RuntimeError("down")})

    with pytest.raises(UpstreamUnavailable):
        await generate_recommendations(catalog, prefs, max_movies=20)

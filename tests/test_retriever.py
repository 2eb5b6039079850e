import asyncio

import httpx
import pytest

from watchparty_rec import retriever
from watchparty_rec.catalog import CatalogClient
from watchparty_rec.errors import ConfigurationError, UpstreamUnavailable
from watchparty_rec.profile import PreferenceProfile

from conftest import FakeCatalog, make_movie


@pytest.fixture
def profile():
    return PreferenceProfile(
        genre_scores={28: 16.0, 12: 8.0, 35: 8.0, 18: 10.0, 27: 5.0, 53: 5.0},
        preferred_runtime=120,
        preferred_year_range=(1994, 2024),
        min_rating=6.5,
    )


def test_top_genres_ties_keep_insertion_order(profile):
    assert retriever.top_genres(profile) == [28, 18, 12, 35, 27]
    assert retriever.top_genres(profile, n=2) == [28, 18]


def test_pages_for_caps_requests():
    assert retriever.pages_for(200) == 10
    assert retriever.pages_for(300) == 10
    assert retriever.pages_for(45) == 3
    assert retriever.pages_for(20) == 1


def test_merge_pages_keeps_first_copy_and_truncates():
    first = make_movie(1, title="First copy")
    pages = [[first, make_movie(2)], [make_movie(1, title="Second copy"), make_movie(3)]]

    merged = retriever.merge_pages(pages)

    assert [m.id for m in merged] == [1, 2, 3]
    assert merged[0].title == "First copy"
    assert [m.id for m in retriever.merge_pages(pages, max_movies=2)] == [1, 2]


@pytest.mark.asyncio
async def test_fetch_candidates_sends_profile_filters(profile):
    catalog = FakeCatalog(pages={1: [make_movie(1)], 2: [make_movie(2)]})

    movies = await retriever.fetch_candidate_movies(catalog, profile, max_movies=40)

    assert [m.id for m in movies] == [1, 2]
    assert [c["page"] for c in catalog.discover_calls] == [1, 2]
    call = catalog.discover_calls[0]
    assert call["genre_ids"] == [28, 18, 12, 35, 27]
    assert call["min_vote_count"] == 300
    assert call["min_vote_average"] == 6.5
    assert (call["min_year"], call["max_year"]) == (1994, 2024)


@pytest.mark.asyncio
async def test_duplicates_across_pages_removed(profile):
    catalog = FakeCatalog(pages={
        1: [make_movie(1), make_movie(2)],
        2: [make_movie(2), make_movie(3)],
        3: [make_movie(1), make_movie(4)],
    })

    movies = await retriever.fetch_candidate_movies(catalog, profile, max_movies=60)

    assert [m.id for m in movies] == [1, 2, 3, 4]


@pytest.mark.asyncio
async def test_failed_page_is_dropped(profile, caplog):
    catalog = FakeCatalog(pages={
        1: [make_movie(1)],
        2: UpstreamUnavailable("boom"),
        3: [make_movie(3)],
    })

    movies = await retriever.fetch_candidate_movies(catalog, profile, max_movies=60)

    assert [m.id for m in movies] == [1, 3]
    assert "Dropping page 2" in caplog.text


@pytest.mark.asyncio
async def test_all_pages_failing_raises(profile):
    catalog = FakeCatalog(pages={p: RuntimeError("down") for p in range(1, 11)})

    with pytest.raises(UpstreamUnavailable):
        await retriever.fetch_candidate_movies(catalog, profile)


@pytest.mark.asyncio
async def test_slow_page_times_out_without_affecting_others():
    async def fetch_page(page):
        if page == 2:
            await asyncio.sleep(5)
        return [make_movie(page)]

    pages = await retriever.gather_pages(fetch_page, 3, page_timeout=0.05)

    assert [[m.id for m in p] for p in pages] == [[1], [3]]


@pytest.mark.asyncio
async def test_gather_pages_zero_pages():
    async def fetch_page(page):
        raise AssertionError("should not be called")

    assert await retriever.gather_pages(fetch_page, 0) == []


@pytest.mark.asyncio
async def test_pool_truncated_to_max_movies(profile):
    catalog = FakeCatalog(pages={
        p: [make_movie(p * 100 + i) for i in range(20)] for p in range(1, 11)
    })

    movies = await retriever.fetch_candidate_movies(catalog, profile, max_movies=50)

    assert len(movies) == 50
    assert len(catalog.discover_calls) == 3


def _slow_catalog(handler, max_concurrent=5):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    catalog = CatalogClient(api_key="k", base_url="http://catalog.test/3", max_concurrent=max_concurrent,
                            retry_delay=0.0, client=http)
    return catalog, http


@pytest.mark.asyncio
async def test_queued_pages_not_timed_out_while_waiting_for_a_slot(profile, caplog):
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(0.3)
        page = int(request.url.params["page"])
        return httpx.Response(200, json={"results": [{"id": page, "title": f"Page {page}", "genre_ids": [28]}]})

    # Each request fits the budget; two rounds of five do not
    catalog, http = _slow_catalog(handler, max_concurrent=5)
    async with http:
        movies = await retriever.fetch_candidate_movies(catalog, profile, max_movies=200, page_timeout=0.5)

    assert sorted(m.id for m in movies) == list(range(1, 11))
    assert "Dropping page" not in caplog.text


@pytest.mark.asyncio
async def test_rejected_api_key_is_not_reported_as_outage(profile):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"status_message": "Invalid API key"})

    catalog, http = _slow_catalog(handler)
    async with http:
        with pytest.raises(ConfigurationError):
            await retriever.fetch_candidate_movies(catalog, profile)


@pytest.mark.asyncio
async def test_gather_pages_limits_pages_in_flight():
    in_flight = {"now": 0, "peak": 0}

    async def fetch_page(page):
        in_flight["now"] += 1
        in_flight["peak"] = max(in_flight["peak"], in_flight["now"])
        await asyncio.sleep(0.01)
        in_flight["now"] -= 1
        return [make_movie(page)]

    pages = await retriever.gather_pages(fetch_page, 7, max_concurrent=2)

    assert len(pages) == 7
    assert in_flight["peak"] == 2

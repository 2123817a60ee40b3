"""
Integration tests for the full catalog fetch and the store maintenance jobs
"""

from datetime import datetime, timedelta

import pytest

from availarr.models.content import ContentKind
from availarr.services.catalog_client import CatalogPage
from availarr.jobs.fetch_all import FetchAllJob
from availarr.jobs.maintenance import cleanup_old_content, collect_status, refill
from availarr.jobs.runtime import JobRuntime

pytestmark = pytest.mark.integration


def listing(endpoint, page_number):
    base = 1000 if "tv" in endpoint else 0
    return CatalogPage(
        page=page_number,
        items=[{"id": base + page_number * 10 + i, "title": f"{endpoint} {i}", "name": f"{endpoint} {i}"} for i in range(3)],
        total_pages=3,
    )


@pytest.fixture
def catalog(mock_catalog):
    mock_catalog.fetch_page.side_effect = listing
    mock_catalog.get_total_pages.return_value = 3
    return mock_catalog


@pytest.fixture
def runtime(store, mock_prober, catalog, tmp_path):
    # Odd ids are unavailable
    mock_prober.verdict.side_effect = lambda kind, tmdb_id: tmdb_id % 2 == 0
    return JobRuntime(store, mock_prober, catalog, checkpoint_dir=tmp_path)


class TestFetchAll:

    @pytest.mark.asyncio
    async def test_only_available_titles_stored(self, runtime, store):
        results = await FetchAllJob(runtime, concurrency=2, page_chunk=2).run()

        assert results[ContentKind.MOVIE].processed == 9
        assert results[ContentKind.SERIES].processed == 9
        assert store.count(available=False) == 0
        assert store.count(ContentKind.MOVIE) == results[ContentKind.MOVIE].available
        assert store.find_one(ContentKind.MOVIE, 10) is not None
        assert store.find_one(ContentKind.MOVIE, 11) is None

    @pytest.mark.asyncio
    async def test_walks_discover_endpoints(self, runtime, catalog):
        await FetchAllJob(runtime, page_chunk=2).run()

        endpoints = {call.args[0] for call in catalog.fetch_page.await_args_list}
        assert endpoints == {"discover/movie", "discover/tv"}
        assert catalog.fetch_page.await_count == 6

    @pytest.mark.asyncio
    async def test_recently_checked_titles_not_reprobed(self, runtime, store, mock_prober):
        store.upsert(ContentKind.MOVIE, 10, {"id": 10, "title": "Fresh"}, True, datetime.utcnow() - timedelta(minutes=30))

        await FetchAllJob(runtime).run_kind(ContentKind.MOVIE)

        probed = [call.args[1] for call in mock_prober.verdict.await_args_list]
        assert 10 not in probed
        assert len(probed) == 8

    @pytest.mark.asyncio
    async def test_stale_record_that_fails_is_deleted(self, runtime, store):
        store.upsert(ContentKind.MOVIE, 11, {"id": 11, "title": "Pulled"}, True, datetime.utcnow() - timedelta(hours=2))

        await FetchAllJob(runtime).run_kind(ContentKind.MOVIE)

        assert store.find_one(ContentKind.MOVIE, 11) is None

    @pytest.mark.asyncio
    async def test_max_pages_and_failed_pages(self, runtime, catalog, store):
        def first_page_fails(endpoint, page_number):
            if page_number == 1:
                return CatalogPage(page=1, failed=True)
            return listing(endpoint, page_number)

        catalog.fetch_page.side_effect = first_page_fails
        stats = await FetchAllJob(runtime, max_pages=2).run_kind(ContentKind.MOVIE)

        assert catalog.fetch_page.await_count == 2
        assert stats.processed == 3

    @pytest.mark.asyncio
    async def test_dry_run(self, runtime, store):
        await FetchAllJob(runtime, dry_run=True).run()

        assert store.count() == 0


class TestRefill:

    @pytest.mark.asyncio
    async def test_wipes_then_rebuilds_from_popular(self, runtime, store, catalog):
        store.upsert(ContentKind.MOVIE, 999, {"id": 999, "title": "Old"}, True)

        results = await refill(runtime, max_pages=2, concurrency=3)

        assert store.find_one(ContentKind.MOVIE, 999) is None
        endpoints = [call.args for call in catalog.fetch_page.await_args_list]
        assert endpoints == [("movie/popular", 1), ("movie/popular", 2), ("tv/popular", 1), ("tv/popular", 2)]
        assert results[ContentKind.MOVIE].processed == 6
        assert store.count(available=False) == 0


class TestCleanupAndStatus:

    def test_cleanup_removes_stale_records(self, store):
        store.upsert(ContentKind.MOVIE, 1, {"id": 1, "title": "Old"}, True, datetime.utcnow() - timedelta(days=8))
        store.upsert(ContentKind.MOVIE, 2, {"id": 2, "title": "Recent"}, True, datetime.utcnow() - timedelta(days=1))

        assert cleanup_old_content(store, 7) == 1
        assert store.find_one(ContentKind.MOVIE, 1) is None
        assert store.find_one(ContentKind.MOVIE, 2) is not None

    def test_collect_status(self, store):
        store.upsert(ContentKind.MOVIE, 1, {"id": 1, "title": "Heat"}, True)
        store.upsert(ContentKind.MOVIE, 2, {"id": 2, "title": "Ronin"}, False)
        store.upsert(ContentKind.SERIES, 3, {"id": 3, "name": "Lost"}, True)

        stats = collect_status(store)

        assert stats["total"] == 3
        assert stats["by_kind"]["movie"] == {"total": 2, "available": 1, "unavailable": 1}
        assert stats["by_kind"]["tvshow"]["available"] == 1
        assert [movie["title"] for movie in stats["recent_available_movies"]] == ["Heat"]

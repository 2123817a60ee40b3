"""
Unit tests for ContentStore against an in-memory SQLite database.
"""

from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from availarr.models.content import ContentKind, ContentRecord, SeasonRecord, EpisodeRecord
from availarr.services.exceptions import StoreWriteError

NOW = datetime(2026, 3, 1, 12, 0, 0)


def seed(store, kind, tmdb_id, popularity=1.0, available=True, checked_at=NOW):
    key = 'title' if kind is ContentKind.MOVIE else 'name'
    return store.upsert(
        kind, tmdb_id, {"id": tmdb_id, key: f"Title {tmdb_id}", "popularity": popularity}, available, checked_at
    )


class TestUpsert:

    def test_insert_then_update_same_row(self, store):
        first = seed(store, ContentKind.MOVIE, 550, available=False)
        second = store.upsert(ContentKind.MOVIE, 550, {"id": 550, "title": "Fight Club"}, True, NOW)

        assert first.id == second.id
        assert store.count() == 1
        assert second.available is True
        assert second.title == "Fight Club"

    def test_same_id_different_kind_are_distinct(self, store):
        seed(store, ContentKind.MOVIE, 100)
        seed(store, ContentKind.SERIES, 100)

        assert store.count() == 2
        assert store.find_one(ContentKind.SERIES, 100).title == "Title 100"

    def test_popularity_is_denormalized(self, store):
        record = seed(store, ContentKind.MOVIE, 1, popularity=42.5)

        assert record.popularity == 42.5

    def test_touch_and_mark_unavailable(self, store):
        record = seed(store, ContentKind.MOVIE, 1, checked_at=NOW - timedelta(days=1))

        store.touch(record, NOW)
        assert record.last_checked == NOW
        assert record.available is True

        store.mark_unavailable(record, NOW)
        assert store.find_one(ContentKind.MOVIE, 1).available is False


class TestQueries:

    def test_find_sorted_by_popularity_with_exclusions(self, store):
        seed(store, ContentKind.SERIES, 1, popularity=5)
        seed(store, ContentKind.SERIES, 2, popularity=50)
        seed(store, ContentKind.SERIES, 3, popularity=20)
        seed(store, ContentKind.SERIES, 4, popularity=99, available=False)

        records = store.find(ContentKind.SERIES, available=True, exclude_ids=[3], sort="popularity")

        assert [r.tmdb_id for r in records] == [2, 1]

    def test_find_skip_and_limit(self, store):
        for tmdb_id in range(1, 6):
            seed(store, ContentKind.MOVIE, tmdb_id, popularity=tmdb_id)

        records = store.find(ContentKind.MOVIE, sort="popularity", skip=1, limit=2)

        assert [r.tmdb_id for r in records] == [4, 3]

    def test_iter_batches_covers_every_record_once(self, store):
        for tmdb_id in range(1, 8):
            seed(store, ContentKind.MOVIE, tmdb_id)

        batches = list(store.iter_batches(3))

        assert [len(batch) for batch in batches] == [3, 3, 1]
        assert sorted(r.tmdb_id for batch in batches for r in batch) == list(range(1, 8))

    def test_iter_batches_survives_deletions(self, store):
        """Deleting records of the current batch does not skip later ones."""
        for tmdb_id in range(1, 7):
            seed(store, ContentKind.MOVIE, tmdb_id)

        seen = []
        for batch in store.iter_batches(2):
            for record in batch:
                seen.append(record.tmdb_id)
                store.delete_one(ContentKind.MOVIE, record.tmdb_id)

        assert seen == [1, 2, 3, 4, 5, 6]
        assert store.count() == 0

    def test_list_available_pages(self, store):
        for tmdb_id in range(1, 6):
            seed(store, ContentKind.MOVIE, tmdb_id, popularity=tmdb_id)
        seed(store, ContentKind.MOVIE, 6, available=False)

        records, total_pages = store.list_available(ContentKind.MOVIE, page=2, limit=2)

        assert total_pages == 3
        assert [r.tmdb_id for r in records] == [3, 2]

    def test_get_stats(self, store):
        seed(store, ContentKind.MOVIE, 1)
        seed(store, ContentKind.MOVIE, 2, available=False)
        seed(store, ContentKind.SERIES, 3)
        store.db.add(ContentRecord(tmdb_id=4, content_type="movie", data={}, available=False))
        store.db.commit()

        stats = store.get_stats()

        assert stats["total"] == 4
        assert stats["by_kind"]["movie"] == {"total": 3, "available": 1, "unavailable": 2}
        assert stats["by_kind"]["tvshow"]["available"] == 1
        assert stats["never_checked"] == 1
        assert [m["tmdb_id"] for m in stats["recent_available_movies"]] == [1]


class TestDeletes:

    def test_delete_one_missing_record(self, store):
        assert store.delete_one(ContentKind.MOVIE, 404) is False

    def test_delete_cascades_to_seasons_and_episodes(self, store):
        record = seed(store, ContentKind.SERIES, 1399)
        store.upsert_episode(record, 1, 1, True, NOW)

        assert store.delete_one(ContentKind.SERIES, 1399) is True
        assert store.db.query(SeasonRecord).count() == 0
        assert store.db.query(EpisodeRecord).count() == 0

    def test_delete_one_retries_failed_commit(self, store, test_db):
        """Deletes are retried with a fixed delay before succeeding."""
        seed(store, ContentKind.MOVIE, 550)
        attempts = []

        def flaky_commit(action):
            attempts.append(action)
            if len(attempts) < 3:
                test_db.rollback()
                raise StoreWriteError("database is locked")
            test_db.commit()

        with patch.object(store, '_commit', side_effect=flaky_commit), \
                patch('availarr.services.exceptions.time.sleep') as sleep:
            assert store.delete_one(ContentKind.MOVIE, 550) is True

        assert len(attempts) == 3
        assert sleep.call_count == 2
        assert store.find_one(ContentKind.MOVIE, 550) is None

    def test_delete_one_gives_up_after_three_attempts(self, store, test_db):
        seed(store, ContentKind.MOVIE, 550)
        attempts = []

        def failing_commit(action):
            attempts.append(action)
            test_db.rollback()
            raise StoreWriteError("database is locked")

        with patch.object(store, '_commit', side_effect=failing_commit), \
                patch('availarr.services.exceptions.time.sleep'):
            with pytest.raises(StoreWriteError):
                store.delete_one(ContentKind.MOVIE, 550)

        assert len(attempts) == 3

    def test_delete_older_than(self, store):
        seed(store, ContentKind.MOVIE, 1, checked_at=NOW - timedelta(days=8))
        seed(store, ContentKind.MOVIE, 2, checked_at=NOW - timedelta(days=6))

        deleted = store.delete_older_than(7, now=NOW)

        assert deleted == 1
        assert store.find_one(ContentKind.MOVIE, 1) is None
        assert store.find_one(ContentKind.MOVIE, 2) is not None

    def test_delete_many_by_kind(self, store):
        seed(store, ContentKind.MOVIE, 1)
        seed(store, ContentKind.SERIES, 2)

        assert store.delete_many(ContentKind.MOVIE) == 1
        assert store.count() == 1

    def test_failed_commit_rolls_back(self, store, test_db):
        with patch.object(test_db, 'commit', side_effect=OperationalError("x", {}, Exception("locked"))):
            with pytest.raises(StoreWriteError):
                seed(store, ContentKind.MOVIE, 1)


class TestSeasonsAndEpisodes:

    def test_set_seasons_is_find_or_append(self, store):
        record = seed(store, ContentKind.SERIES, 1399)

        store.set_seasons(record, [{"season_number": 1, "episode_count": 10}], True, NOW)
        store.set_seasons(record, [
            {"season_number": 1, "episode_count": 11},
            {"season_number": 2, "episode_count": 8},
        ], True, NOW)

        assert [(s.season_number, s.episode_count) for s in record.seasons] == [(1, 11), (2, 8)]
        assert store.db.query(SeasonRecord).count() == 2

    def test_bulk_set_seasons(self, store):
        first = seed(store, ContentKind.SERIES, 1)
        second = seed(store, ContentKind.SERIES, 2)

        count = store.bulk_set_seasons([
            (first, [{"season_number": 1, "episode_count": 3}]),
            (second, [{"season_number": 1, "episode_count": 5}, {"season_number": 2, "episode_count": 5}]),
        ], checked_at=NOW)

        assert count == 2
        assert store.db.query(SeasonRecord).count() == 3

    def test_upsert_episode_creates_season_and_episode_once(self, store):
        record = seed(store, ContentKind.SERIES, 1399)

        store.upsert_episode(record, 1, 4, False, NOW)
        store.upsert_episode(record, 1, 4, True, NOW)

        season = record.get_season(1)
        assert len(season.episodes) == 1
        assert season.get_episode(4).available is True
        assert season.available is True
        assert season.episode_count == 4

    def test_unavailable_episode_leaves_new_season_unavailable(self, store):
        record = seed(store, ContentKind.SERIES, 1399)

        store.upsert_episode(record, 3, 1, False, NOW)

        assert record.get_season(3).available is False

    def test_get_episode(self, store):
        record = seed(store, ContentKind.SERIES, 1399)
        store.upsert_episode(record, 1, 2, True, NOW)

        assert store.get_episode(record, 1, 2).episode_number == 2
        assert store.get_episode(record, 1, 3) is None
        assert store.get_episode(record, 9, 1) is None

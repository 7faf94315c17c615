"""Tests for the versioned history store and SQLite backend."""

import json
from datetime import timedelta

import pytest

from petition_monitor.errors import StoreConflict, StoreError
from petition_monitor.storage.backends import SQLiteBackend
from petition_monitor.storage.store import VersionedStore


class RacingBackend(SQLiteBackend):
    """SQLite backend where another writer sneaks in before the first N writes."""

    def __init__(self, db_path: str, races: int, interloper: dict):
        super().__init__(db_path)
        self.races = races
        self.interloper = interloper
        self.attempts = 0

    async def write(self, name, content, version):
        self.attempts += 1
        if self.races > 0:
            self.races -= 1
            current = await self.read(name)
            documents = json.loads(current.content) if current else []
            documents.append(self.interloper)
            await super().write(name, json.dumps(documents), current.version if current else None)
        return await super().write(name, content, version)


class TestSQLiteBackend:
    @pytest.mark.asyncio
    async def test_read_missing(self, sqlite_backend):
        assert await sqlite_backend.read("nothing.json") is None

    @pytest.mark.asyncio
    async def test_create_then_update(self, sqlite_backend):
        version = await sqlite_backend.write("blob.json", "one", None)
        new_version = await sqlite_backend.write("blob.json", "two", version)

        blob = await sqlite_backend.read("blob.json")
        assert blob.content == "two"
        assert blob.version == new_version != version

    @pytest.mark.asyncio
    async def test_stale_version_conflicts(self, sqlite_backend):
        stale = await sqlite_backend.write("blob.json", "one", None)
        await sqlite_backend.write("blob.json", "two", stale)

        with pytest.raises(StoreConflict):
            await sqlite_backend.write("blob.json", "three", stale)

        # Retry with a freshly read token succeeds
        fresh = await sqlite_backend.read("blob.json")
        await sqlite_backend.write("blob.json", "three", fresh.version)
        assert (await sqlite_backend.read("blob.json")).content == "three"

    @pytest.mark.asyncio
    async def test_concurrent_create_conflicts(self, sqlite_backend):
        await sqlite_backend.write("blob.json", "one", None)

        with pytest.raises(StoreConflict):
            await sqlite_backend.write("blob.json", "other", None)


class TestAppend:
    @pytest.mark.asyncio
    async def test_append_to_empty_store(self, store, make_record, t0):
        record = make_record(t0, 1_000)

        assert await store.append(record) is True

        assert await store.history() == [record]
        assert await store.latest() == record

    @pytest.mark.asyncio
    async def test_latest_is_tail_of_history(self, store, make_record, t0):
        for hours in range(3):
            await store.append(make_record(t0 + timedelta(hours=hours), 1_000 + hours))

        history = await store.history()
        assert [r.count for r in history] == [1_000, 1_001, 1_002]
        assert await store.latest() == history[-1]

    @pytest.mark.asyncio
    async def test_retention_drops_only_the_oldest(self, sqlite_backend, make_record, t0):
        store = VersionedStore(sqlite_backend, retention=8_640)
        documents = [
            make_record(t0 + timedelta(minutes=5 * i), i).model_dump(mode="json")
            for i in range(8_640)
        ]
        await sqlite_backend.write(store.history_name, json.dumps(documents), None)

        newest = make_record(t0 + timedelta(days=31), 9_999)
        length = await store.append_history(newest)

        history = await store.history()
        assert length == 8_640
        assert len(history) == 8_640
        assert history[0].count == 1
        assert [r.count for r in history[:-1]] == list(range(1, 8_640))
        assert history[-1] == newest

    @pytest.mark.asyncio
    async def test_conflict_is_retried_once(self, tmp_path, make_record, t0):
        interloper = make_record(t0, 500).model_dump(mode="json")
        backend = RacingBackend(str(tmp_path / "race.db"), races=1, interloper=interloper)
        store = VersionedStore(backend)

        await store.append(make_record(t0 + timedelta(minutes=5), 1_000))

        # Neither writer's record is lost
        assert [r.count for r in await store.history()] == [500, 1_000]
        assert (await store.latest()).count == 1_000

    @pytest.mark.asyncio
    async def test_repeated_conflict_is_surfaced(self, tmp_path, make_record, t0):
        interloper = make_record(t0, 500).model_dump(mode="json")
        backend = RacingBackend(str(tmp_path / "race.db"), races=2, interloper=interloper)
        store = VersionedStore(backend)

        with pytest.raises(StoreConflict):
            await store.append(make_record(t0 + timedelta(minutes=5), 1_000))

        assert backend.attempts == 2

    @pytest.mark.asyncio
    async def test_single_attempt_write_reports_conflict(self, tmp_path, make_record, t0):
        backend = RacingBackend(str(tmp_path / "race.db"), races=1, interloper={})
        store = VersionedStore(backend)

        with pytest.raises(StoreConflict):
            await store.append_latest(make_record(t0, 1_000))

    @pytest.mark.asyncio
    async def test_corrupt_history_is_not_overwritten(self, store, sqlite_backend, make_record, t0):
        await sqlite_backend.write(store.history_name, '{"not": "a list"}', None)

        with pytest.raises(StoreError):
            await store.append(make_record(t0, 1_000))

        assert (await sqlite_backend.read(store.history_name)).content == '{"not": "a list"}'


class TestDisabledStore:
    @pytest.mark.asyncio
    async def test_writes_are_skipped(self, make_record, t0):
        store = VersionedStore(None)

        assert store.enabled is False
        assert await store.append(make_record(t0, 1_000)) is False

    @pytest.mark.asyncio
    async def test_reads_find_nothing(self):
        store = VersionedStore(None)

        assert await store.latest() is None
        assert await store.history() == []
        assert await store.stats() is None


class TestReads:
    @pytest.mark.asyncio
    async def test_recent_history_window(self, store, make_record, t0):
        for hours in (0, 10, 20, 30):
            await store.append(make_record(t0 + timedelta(hours=hours), hours))

        now = t0 + timedelta(hours=30)
        recent = await store.recent_history(timedelta(hours=20), now=now)

        assert [r.count for r in recent] == [10, 20, 30]

    @pytest.mark.asyncio
    async def test_page_is_newest_first(self, store, make_record, t0):
        for i in range(5):
            await store.append(make_record(t0 + timedelta(minutes=5 * i), 100 * i))

        page, total = await store.page(limit=2, offset=1)

        assert total == 5
        assert [r.count for r in page] == [300, 200]

    @pytest.mark.asyncio
    async def test_stats(self, store, make_record, t0):
        for i, count in enumerate([100, 400, 250, 900]):
            await store.append(make_record(t0 + timedelta(hours=i), count))

        stats = await store.stats()

        assert stats["total_entries"] == 4
        assert stats["first_entry"] == t0
        assert stats["last_entry"] == t0 + timedelta(hours=3)
        assert stats["first_signatures"] == 100
        assert stats["latest_signatures"] == 900
        assert stats["min_signatures"] == 100
        assert stats["max_signatures"] == 900
        assert stats["avg_signatures"] == 412.5
        assert stats["total_growth"] == 800

    @pytest.mark.asyncio
    async def test_stats_single_entry_has_no_growth(self, store, make_record, t0):
        await store.append(make_record(t0, 100))
        assert (await store.stats())["total_growth"] == 0

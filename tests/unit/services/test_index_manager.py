"""Unit tests for the index lifecycle manager."""

import asyncio

import pytest

from entity_search.adapters.entity_loaders import InMemoryRecordSource, create_default_loaders
from entity_search.adapters.search_cache import SEARCH_CACHE_TAG, InMemorySearchCache
from entity_search.config import Settings
from entity_search.domain.model import DocKey, EntityType
from entity_search.exceptions import IndexNotReady, SourceUnavailable
from entity_search.services.index_manager import IndexLifecycleManager, IndexState


class GatedSource:
    """Record source whose fetches block until the gate opens."""

    def __init__(self, inner):
        self.inner = inner
        self.gate = asyncio.Event()
        self.gate.set()

    async def fetch_records(self, collection):
        await self.gate.wait()
        return await self.inner.fetch_records(collection)


class FlakySource:
    """Record source that fails for the listed collections."""

    def __init__(self, inner, failing=()):
        self.inner = inner
        self.failing = set(failing)

    async def fetch_records(self, collection):
        if collection in self.failing:
            raise ConnectionError(f"{collection} store unreachable")
        return await self.inner.fetch_records(collection)


class SlowSource:
    async def fetch_records(self, collection):
        await asyncio.sleep(10)
        return []


class BrokenCache:
    async def get(self, key):
        raise RuntimeError("cache down")

    async def set(self, key, value, *, ttl, tags=()):
        raise RuntimeError("cache down")

    async def invalidate_by_tags(self, tags):
        raise RuntimeError("cache down")


async def wait_for_build_start(manager, timeout=1.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not manager.build_in_progress:
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("build never started")
        await asyncio.sleep(0.005)


@pytest.mark.unit
class TestInitialBuild:
    def test_starts_in_building_state(self, index_manager):
        assert index_manager.state is IndexState.BUILDING
        with pytest.raises(IndexNotReady):
            _ = index_manager.snapshot

    @pytest.mark.asyncio
    async def test_build_publishes_every_entity_type(self, index_manager):
        snapshot = await index_manager.build_index()

        assert index_manager.state is IndexState.READY
        assert index_manager.snapshot is snapshot
        assert snapshot.generation == 1
        assert snapshot.documents_by_type() == {"exercise": 2, "system": 2, "equipment": 1, "user": 1}
        assert DocKey(EntityType.USER, "u-2") not in snapshot.documents

    @pytest.mark.asyncio
    async def test_start_builds_without_schedule_when_disabled(self, index_manager):
        await index_manager.start()

        assert index_manager.state is IndexState.READY
        assert index_manager.schedule is None

    @pytest.mark.asyncio
    async def test_start_arms_schedule_when_enabled(self, record_source):
        settings = Settings(index_refresh_interval_seconds=3600)
        manager = IndexLifecycleManager(create_default_loaders(record_source), settings=settings)

        await manager.start()
        try:
            assert manager.schedule is not None
            assert manager.schedule.running
        finally:
            await manager.shutdown()

        assert manager.schedule is None

    @pytest.mark.asyncio
    async def test_wait_until_ready_times_out(self, index_manager):
        with pytest.raises(IndexNotReady):
            await index_manager.wait_until_ready(timeout=0.01)

    @pytest.mark.asyncio
    async def test_wait_until_ready_returns_first_snapshot(self, index_manager):
        waiter = asyncio.create_task(index_manager.wait_until_ready(timeout=1))
        await asyncio.sleep(0)

        snapshot = await index_manager.build_index()

        assert await waiter is snapshot

    @pytest.mark.asyncio
    async def test_same_records_build_identical_indexes(self, index_manager):
        first = await index_manager.build_index()
        second = await index_manager.build_index()

        assert second.generation == first.generation + 1
        assert dict(first.documents) == dict(second.documents)
        assert list(first.word_index.terms()) == list(second.word_index.terms())


@pytest.mark.unit
class TestBuildFailures:
    @pytest.mark.asyncio
    async def test_loader_failure_aborts_first_build(self, record_source, settings):
        source = FlakySource(record_source, failing={"equipment"})
        manager = IndexLifecycleManager(create_default_loaders(source), settings=settings)

        with pytest.raises(SourceUnavailable) as exc_info:
            await manager.build_index()

        assert exc_info.value.entity_type == "equipment"
        assert manager.state is IndexState.BUILDING
        assert manager.stats().build_errors == 1

    @pytest.mark.asyncio
    async def test_failed_refresh_keeps_previous_snapshot(self, record_source, settings):
        source = FlakySource(record_source)
        manager = IndexLifecycleManager(create_default_loaders(source), settings=settings)
        published = await manager.build_index()

        source.failing = {"users"}
        with pytest.raises(SourceUnavailable):
            await manager.refresh()

        assert manager.snapshot is published
        assert manager.stats().generation == 1

    @pytest.mark.asyncio
    async def test_slow_loader_times_out(self, record_source):
        settings = Settings(loader_timeout_seconds=0.05)
        loaders = create_default_loaders(record_source)
        loaders[1].source = SlowSource()
        manager = IndexLifecycleManager(loaders, settings=settings)

        with pytest.raises(SourceUnavailable, match="timed out"):
            await manager.build_index()

    @pytest.mark.asyncio
    async def test_trigger_refresh_reports_failure(self, record_source, settings):
        source = FlakySource(record_source, failing={"systems"})
        manager = IndexLifecycleManager(create_default_loaders(source), settings=settings)

        outcome = await manager.trigger_refresh()

        assert outcome["success"] is False
        assert "system" in outcome["message"]


@pytest.mark.unit
class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_picks_up_source_changes(self, index_manager, record_source, sample_records):
        await index_manager.build_index()
        record_source.set_records("systems", [*sample_records["systems"], {"id": "sys-3", "name": "Radio Mast"}])

        snapshot = await index_manager.refresh()

        assert snapshot.generation == 2
        assert DocKey(EntityType.SYSTEM, "sys-3") in snapshot.documents

    @pytest.mark.asyncio
    async def test_refresh_invalidates_cached_results(self, record_source, settings):
        cache = InMemorySearchCache()
        manager = IndexLifecycleManager(create_default_loaders(record_source), cache=cache, settings=settings)
        await manager.build_index()
        await cache.set("search:1:abc", {"total": 0}, ttl=60, tags=[SEARCH_CACHE_TAG])

        await manager.refresh()

        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_cache_failure_does_not_fail_refresh(self, record_source, settings):
        manager = IndexLifecycleManager(create_default_loaders(record_source), cache=BrokenCache(), settings=settings)

        snapshot = await manager.refresh()

        assert snapshot.generation == 1

    @pytest.mark.asyncio
    async def test_readers_keep_old_snapshot_during_rebuild(self, record_source, settings):
        source = GatedSource(record_source)
        manager = IndexLifecycleManager(create_default_loaders(source), settings=settings)
        old = await manager.build_index()

        source.gate.clear()
        rebuild = asyncio.create_task(manager.refresh())
        await wait_for_build_start(manager)

        assert manager.snapshot is old
        outcome = await manager.trigger_refresh()
        assert outcome == {"success": False, "message": "Index build already running"}

        source.gate.set()
        new = await rebuild

        assert manager.snapshot is new
        assert new.generation == old.generation + 1
        assert len(old) == len(new)

    @pytest.mark.asyncio
    async def test_trigger_refresh_reports_success(self, index_manager):
        outcome = await index_manager.trigger_refresh()

        assert outcome["success"] is True
        assert outcome["generation"] == 1
        assert outcome["documents"] == 6


@pytest.mark.unit
class TestPeriodicRefresh:
    @pytest.mark.asyncio
    async def test_rejects_non_positive_interval(self, index_manager):
        with pytest.raises(ValueError):
            index_manager.schedule_periodic_refresh(0)

    @pytest.mark.asyncio
    async def test_runs_until_cancelled(self, index_manager):
        await index_manager.build_index()
        schedule = index_manager.schedule_periodic_refresh(0.01)

        await asyncio.sleep(0.1)
        schedule.cancel()
        await schedule.wait_closed()
        runs = schedule.runs

        await asyncio.sleep(0.05)

        assert runs >= 1
        assert schedule.runs == runs
        assert schedule.cancelled
        assert not schedule.running
        assert index_manager.stats().generation == runs + 1

    @pytest.mark.asyncio
    async def test_cancel_lets_in_flight_refresh_finish(self, record_source, settings):
        source = GatedSource(record_source)
        manager = IndexLifecycleManager(create_default_loaders(source), settings=settings)
        await manager.build_index()

        source.gate.clear()
        schedule = manager.schedule_periodic_refresh(0.01)
        await wait_for_build_start(manager)
        schedule.cancel()
        source.gate.set()
        await schedule.wait_closed()

        assert schedule.runs == 1
        assert manager.stats().generation == 2

    @pytest.mark.asyncio
    async def test_failed_scheduled_refresh_is_counted_and_retried(self, record_source, settings):
        source = FlakySource(record_source, failing={"exercises"})
        manager = IndexLifecycleManager(create_default_loaders(source), settings=settings)
        schedule = manager.schedule_periodic_refresh(0.01)

        await asyncio.sleep(0.05)
        source.failing = set()
        await manager.wait_until_ready(timeout=1)
        await manager.shutdown()

        assert schedule.errors >= 1
        assert manager.state is IndexState.READY

    @pytest.mark.asyncio
    async def test_rescheduling_cancels_previous_schedule(self, index_manager):
        first = index_manager.schedule_periodic_refresh(3600)
        second = index_manager.schedule_periodic_refresh(3600)

        await first.wait_closed()

        assert first.cancelled
        assert index_manager.schedule is second
        await index_manager.shutdown()


@pytest.mark.unit
class TestStats:
    def test_stats_before_first_build(self, index_manager):
        stats = index_manager.stats()

        assert stats.state == "building"
        assert stats.document_count == 0
        assert stats.last_built_at is None

    @pytest.mark.asyncio
    async def test_stats_after_build(self, index_manager):
        snapshot = await index_manager.build_index()

        stats = index_manager.stats()

        assert stats.state == "ready"
        assert stats.document_count == 6
        assert stats.term_count == len(snapshot.word_index)
        assert stats.facet_count == len(snapshot.facet_index)
        assert stats.generation == 1
        assert stats.build_count == 1
        assert stats.build_errors == 0
        assert stats.last_built_at == snapshot.built_at
        assert stats.documents_by_type["user"] == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_empty_sources_build_an_empty_ready_index(settings):
    manager = IndexLifecycleManager(create_default_loaders(InMemoryRecordSource()), settings=settings)

    snapshot = await manager.build_index()

    assert len(snapshot) == 0
    assert manager.state is IndexState.READY

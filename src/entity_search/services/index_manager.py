"""Index lifecycle: build, publish, refresh and schedule index snapshots."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from contextlib import suppress
from enum import Enum
import logging
import time
from typing import Any

from entity_search.adapters.entity_loaders import AbstractEntityLoader
from entity_search.adapters.search_cache import SEARCH_CACHE_TAG, SearchCache
from entity_search.config import Settings
from entity_search.domain.model import SearchableEntity
from entity_search.domain.search import IndexStats
from entity_search.exceptions import IndexNotReady, SourceUnavailable
from entity_search.observability.context import bound_fields
from entity_search.observability.metrics import (
    CACHE_ERRORS,
    INDEX_BUILD_DURATION,
    INDEX_BUILDS,
    INDEX_DOC_COUNT,
    track_latency,
)
from entity_search.observability.tracing import create_span
from entity_search.search.snapshot import IndexSnapshot, build_snapshot


logger = logging.getLogger(__name__)


class IndexState(str, Enum):
    BUILDING = "building"
    READY = "ready"


class RefreshSchedule:
    """Handle for a periodic refresh loop.

    ``cancel`` is cooperative: a pending wait ends immediately and an
    in-flight refresh is allowed to finish but is never followed by another.
    """

    def __init__(self, manager: IndexLifecycleManager, interval: float) -> None:
        self.interval = interval
        self.runs = 0
        self.errors = 0
        self._manager = manager
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run())

    @property
    def cancelled(self) -> bool:
        return self._stop_event.is_set()

    @property
    def running(self) -> bool:
        return not self._task.done()

    def cancel(self) -> None:
        self._stop_event.set()

    async def wait_closed(self) -> None:
        with suppress(asyncio.CancelledError):
            await self._task

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
                break
            except asyncio.TimeoutError:
                pass

            if self._stop_event.is_set():
                break

            try:
                await self._manager.refresh()
                self.runs += 1
            except SourceUnavailable as exc:
                self.errors += 1
                logger.error("Scheduled index refresh failed; keeping current snapshot: %s", exc)
            except Exception:  # pragma: no cover - defensive logging
                self.errors += 1
                logger.error("Scheduled index refresh crashed", exc_info=True)

        logger.info("Periodic index refresh stopped after %d runs", self.runs)


class IndexLifecycleManager:
    """Owns the active snapshot and every operation that replaces it.

    Builds go into fresh structures and are published by a single reference
    assignment, so readers holding the previous snapshot are unaffected.
    Builds are serialized; reads never wait on them.
    """

    def __init__(
        self,
        loaders: Sequence[AbstractEntityLoader],
        *,
        cache: SearchCache | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self._loaders = list(loaders)
        self._cache = cache
        self._snapshot: IndexSnapshot | None = None
        self._generation = 0
        self._building = False
        self._build_lock = asyncio.Lock()
        self._ready_event = asyncio.Event()
        self._schedule: RefreshSchedule | None = None
        self._build_count = 0
        self._build_errors = 0

    @property
    def state(self) -> IndexState:
        return IndexState.READY if self._snapshot is not None else IndexState.BUILDING

    @property
    def build_in_progress(self) -> bool:
        return self._building

    @property
    def snapshot(self) -> IndexSnapshot:
        """The active snapshot; raises IndexNotReady before the first build."""
        snapshot = self._snapshot
        if snapshot is None:
            raise IndexNotReady()
        return snapshot

    @property
    def schedule(self) -> RefreshSchedule | None:
        return self._schedule

    async def wait_until_ready(self, timeout: float | None = None) -> IndexSnapshot:
        """Block until the first snapshot is published (or ``timeout`` expires)."""
        if self._snapshot is None:
            try:
                await asyncio.wait_for(self._ready_event.wait(), timeout=timeout)
            except asyncio.TimeoutError as exc:
                raise IndexNotReady(f"Search index not ready after {timeout}s") from exc
        return self.snapshot

    async def start(self) -> IndexSnapshot:
        """Schedule periodic refresh (when enabled) and run the first build.

        The schedule is armed before building so a failed first build is
        retried on the next tick.
        """
        if self.settings.refresh_enabled() and self._schedule is None:
            self.schedule_periodic_refresh(self.settings.index_refresh_interval_seconds)
        return await self.build_index()

    async def shutdown(self) -> None:
        schedule = self._schedule
        if schedule is None:
            return
        schedule.cancel()
        await schedule.wait_closed()
        self._schedule = None

    async def build_index(self) -> IndexSnapshot:
        """Load every entity type, build a new snapshot and publish it.

        Any loader failure aborts the build and leaves the published snapshot
        untouched.
        """
        async with self._build_lock:
            self._building = True
            generation = self._generation + 1
            start = time.perf_counter()
            try:
                with (
                    bound_fields(operation="index_build", index_generation=generation),
                    track_latency(INDEX_BUILD_DURATION),
                    create_span("index.build", attributes={"index.loaders": len(self._loaders)}),
                ):
                    documents = await self._load_all()
                    snapshot = await asyncio.to_thread(build_snapshot, documents, generation=generation)
            except SourceUnavailable:
                self._build_errors += 1
                INDEX_BUILDS.labels(status="failed").inc()
                raise
            finally:
                self._building = False

            self._generation = generation
            self._snapshot = snapshot
            self._ready_event.set()
            self._build_count += 1

        INDEX_BUILDS.labels(status="success").inc()
        for entity_type, count in snapshot.documents_by_type().items():
            INDEX_DOC_COUNT.labels(entity_type=entity_type).set(count)
        logger.info(
            "Published index generation %d: %d documents, %d terms, %d facets in %.2fs",
            snapshot.generation,
            len(snapshot),
            len(snapshot.word_index),
            len(snapshot.facet_index),
            time.perf_counter() - start,
        )
        return snapshot

    async def refresh(self) -> IndexSnapshot:
        """Rebuild the index, then drop cached search results."""
        snapshot = await self.build_index()
        await self._invalidate_cached_results()
        return snapshot

    async def trigger_refresh(self) -> dict[str, Any]:
        """Administrative refresh that reports its outcome instead of raising."""
        if self._building:
            return {"success": False, "message": "Index build already running"}
        try:
            snapshot = await self.refresh()
        except SourceUnavailable as exc:
            return {"success": False, "message": str(exc)}
        return {
            "success": True,
            "message": f"Index generation {snapshot.generation} published",
            "generation": snapshot.generation,
            "documents": len(snapshot),
        }

    def schedule_periodic_refresh(self, interval: float) -> RefreshSchedule:
        """Run ``refresh`` every ``interval`` seconds until cancelled."""
        if interval <= 0:
            raise ValueError("Refresh interval must be positive")
        if self._schedule is not None:
            self._schedule.cancel()
        self._schedule = RefreshSchedule(self, interval)
        logger.info("Scheduled index refresh every %.0fs", interval)
        return self._schedule

    def stats(self) -> IndexStats:
        snapshot = self._snapshot
        if snapshot is None:
            return IndexStats(
                state=self.state.value,
                build_count=self._build_count,
                build_errors=self._build_errors,
            )
        return IndexStats(
            state=self.state.value,
            document_count=len(snapshot),
            term_count=len(snapshot.word_index),
            facet_count=len(snapshot.facet_index),
            generation=snapshot.generation,
            last_built_at=snapshot.built_at,
            documents_by_type=snapshot.documents_by_type(),
            build_count=self._build_count,
            build_errors=self._build_errors,
        )

    async def _load_all(self) -> list[SearchableEntity]:
        results = await asyncio.gather(
            *(self._load_one(loader) for loader in self._loaders),
            return_exceptions=True,
        )

        documents: list[SearchableEntity] = []
        failures: list[SourceUnavailable] = []
        for result in results:
            if isinstance(result, SourceUnavailable):
                failures.append(result)
            elif isinstance(result, BaseException):
                raise result
            else:
                documents.extend(result)

        if failures:
            for failure in failures:
                logger.error("Aborting index build: %s", failure)
            raise failures[0]
        return documents

    async def _load_one(self, loader: AbstractEntityLoader) -> list[SearchableEntity]:
        timeout = self.settings.loader_timeout_seconds
        try:
            return await asyncio.wait_for(loader.load(), timeout=timeout)
        except asyncio.TimeoutError as exc:
            raise SourceUnavailable(loader.entity_type.value, f"timed out after {timeout}s") from exc

    async def _invalidate_cached_results(self) -> None:
        if self._cache is None:
            return
        try:
            await self._cache.invalidate_by_tags([SEARCH_CACHE_TAG])
        except Exception as exc:
            CACHE_ERRORS.labels(operation="invalidate").inc()
            logger.warning("Search cache invalidation failed: %s", exc)

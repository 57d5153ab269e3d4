"""Search service orchestration layer.

Resolves the active snapshot, consults the result cache and runs the query
engine. The cache is purely an optimization: every cache failure is logged
and the query is answered directly.
"""

from __future__ import annotations

from collections.abc import Mapping
import hashlib
import logging
import time
from typing import Any

import orjson

from entity_search.adapters.search_cache import SEARCH_CACHE_TAG, SearchCache
from entity_search.config import Settings
from entity_search.domain.model import EntityType, SearchableEntity
from entity_search.domain.search import FacetValue, SearchQuery, SearchResult, SortBy
from entity_search.exceptions import EntitySearchError
from entity_search.observability.context import bound_fields
from entity_search.observability.metrics import CACHE_ERRORS, SEARCH_LATENCY, SEARCH_REQUESTS
from entity_search.observability.tracing import create_span
from entity_search.search.engine import QueryEngine
from entity_search.search.snapshot import IndexSnapshot
from entity_search.services.index_manager import IndexLifecycleManager


logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "search:"
DISCOVERY_FACETS: tuple[str, ...] = ("type", "status", "tags", "role", "location")


def build_cache_key(query: SearchQuery, generation: int) -> str:
    """Derive a cache key from the query's canonical serialization.

    The snapshot generation is part of the key so a result computed against
    an older snapshot can never be served for a newer one.
    """

    canonical = orjson.dumps(query.model_dump(mode="json", by_alias=True), option=orjson.OPT_SORT_KEYS)
    digest = hashlib.sha256(canonical).hexdigest()
    return f"{CACHE_KEY_PREFIX}{generation}:{digest}"


class SearchService:
    """High-level search entry point used by the hosting application."""

    def __init__(
        self,
        index_manager: IndexLifecycleManager,
        *,
        cache: SearchCache | None = None,
        settings: Settings | None = None,
        engine: QueryEngine | None = None,
    ) -> None:
        self.settings = settings or index_manager.settings
        self.index_manager = index_manager
        self.cache = cache if self.settings.search_cache_enabled else None
        self.engine = engine or QueryEngine(self.settings)

    async def search(self, query: SearchQuery) -> SearchResult:
        """Answer ``query`` against one consistent snapshot.

        Raises IndexNotReady before the first build unless
        ``first_build_wait_seconds`` allows waiting for it.
        """
        start = time.perf_counter()
        try:
            with create_span("search.query", attributes={"search.query_text": query.query_text}) as span:
                snapshot = await self._resolve_snapshot()
                with bound_fields(operation="search", index_generation=snapshot.generation):
                    key = build_cache_key(query, snapshot.generation)

                    cached = await self._cache_get(key)
                    if cached is not None:
                        span.set_attribute("search.cache_hit", True)
                        elapsed_ms = (time.perf_counter() - start) * 1000
                        SEARCH_REQUESTS.labels(status="cache_hit").inc()
                        SEARCH_LATENCY.labels(cache="hit").observe(elapsed_ms / 1000)
                        return cached.model_copy(update={"execution_time_ms": elapsed_ms})

                    result = self.engine.execute(snapshot, query)
                    span.set_attribute("search.total", result.total)
                    await self._cache_set(key, result)
        except EntitySearchError as exc:
            SEARCH_REQUESTS.labels(status=type(exc).__name__).inc()
            raise

        elapsed_ms = (time.perf_counter() - start) * 1000
        SEARCH_REQUESTS.labels(status="ok").inc()
        SEARCH_LATENCY.labels(cache="miss").observe(elapsed_ms / 1000)
        return result.model_copy(update={"execution_time_ms": elapsed_ms})

    async def quick_search(self, text: str, limit: int = 10) -> list[SearchableEntity]:
        """Relevance-ranked items across every entity type."""
        result = await self.search(SearchQuery(query_text=text, limit=limit, sort_by=SortBy.RELEVANCE))
        return result.items

    async def search_by_type(
        self,
        text: str,
        entity_type: EntityType | str,
        *,
        limit: int = 20,
        filters: Mapping[str, Any] | None = None,
    ) -> SearchResult:
        return await self.search(
            SearchQuery(query_text=text, entity_types=[entity_type], limit=limit, filters=filters)
        )

    async def get_suggestions(self, text: str) -> list[str]:
        result = await self.search(SearchQuery(query_text=text))
        return result.suggestions

    async def get_facets(self, text: str = "") -> dict[str, list[FacetValue]]:
        """Facet breakdowns for discovery UIs (type, status, tags, role, location)."""
        result = await self.search(SearchQuery(query_text=text, facets=DISCOVERY_FACETS))
        return result.facets

    async def _resolve_snapshot(self) -> IndexSnapshot:
        wait = self.settings.first_build_wait_seconds
        if wait > 0:
            return await self.index_manager.wait_until_ready(timeout=wait)
        return self.index_manager.snapshot

    async def _cache_get(self, key: str) -> SearchResult | None:
        if self.cache is None:
            return None
        try:
            cached = await self.cache.get(key)
        except Exception as exc:
            CACHE_ERRORS.labels(operation="get").inc()
            logger.warning("Search cache lookup failed for %s: %s", key, exc)
            return None
        if cached is None:
            return None
        if isinstance(cached, SearchResult):
            return cached
        try:
            return SearchResult.model_validate(cached)
        except ValueError as exc:
            CACHE_ERRORS.labels(operation="decode").inc()
            logger.warning("Discarding unreadable cached search result %s: %s", key, exc)
            return None

    async def _cache_set(self, key: str, result: SearchResult) -> None:
        if self.cache is None:
            return
        try:
            await self.cache.set(key, result, ttl=self.settings.search_cache_ttl_seconds, tags=[SEARCH_CACHE_TAG])
        except Exception as exc:
            CACHE_ERRORS.labels(operation="set").inc()
            logger.warning("Search cache store failed for %s: %s", key, exc)

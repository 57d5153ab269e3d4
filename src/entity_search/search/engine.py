"""Query engine: candidate selection, narrowing, ranking, paging, facets.

The engine only reads the snapshot it is handed. Callers resolve the active
snapshot once per query so a concurrent rebuild can never mix two index
states into one result.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from datetime import datetime, timedelta, timezone
import logging
import time

from entity_search.config import Settings
from entity_search.domain.model import DocKey, EntityType, SearchableEntity
from entity_search.domain.search import Equals, FacetValue, OneOf, Range, SearchQuery, SearchResult, SortBy, SortOrder
from entity_search.search.analyzers import tokenize
from entity_search.search.scoring import RelevanceScorer
from entity_search.search.snapshot import IndexSnapshot


logger = logging.getLogger(__name__)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def _timestamp_key(value: datetime | None) -> datetime:
    if value is None:
        return _OLDEST
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


_SORT_KEYS: dict[SortBy, Callable[[SearchableEntity], object]] = {
    SortBy.RELEVANCE: lambda doc: doc.search_score or 0.0,
    SortBy.TITLE: lambda doc: doc.title.casefold(),
    SortBy.CREATED: lambda doc: _timestamp_key(doc.created_at),
    SortBy.UPDATED: lambda doc: _timestamp_key(doc.updated_at),
}


class QueryEngine:
    """Answers SearchQuery values against an IndexSnapshot."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def execute(self, snapshot: IndexSnapshot, query: SearchQuery) -> SearchResult:
        """Run every query stage against ``snapshot`` and assemble the result."""
        start = time.perf_counter()

        candidates = self.select_candidates(snapshot, query.query_text)
        candidates = self.apply_filters(snapshot, candidates, query.filters)
        if query.entity_types:
            candidates = self.filter_by_entity_types(candidates, query.entity_types)

        scorer = RelevanceScorer(
            query.query_text,
            now=self._clock(),
            recency_window=timedelta(days=self.settings.recency_window_days),
        )
        scored = [document.with_score(scorer.score(document)) for document in snapshot.in_order(candidates)]
        ranked = self.sort_results(scored, query.sort_by, query.sort_order)
        page_items = ranked[query.offset : query.offset + query.limit]

        facets = self.generate_facets(snapshot, candidates, query.facets)
        suggestions = self.generate_suggestions(snapshot, query.query_text)

        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.debug(
            "Query %r matched %d documents (page %d, %d items) in %.2fms",
            query.query_text,
            len(ranked),
            query.page,
            len(page_items),
            elapsed_ms,
        )
        return SearchResult(
            items=page_items,
            total=len(ranked),
            facets=facets,
            suggestions=suggestions,
            execution_time_ms=elapsed_ms,
            page=query.page,
            limit=query.limit,
        )

    def select_candidates(self, snapshot: IndexSnapshot, query_text: str) -> set[DocKey]:
        """Union of exact and partial term matches; everything for an empty query."""
        terms = tokenize(query_text) if query_text.strip() else []
        if not terms:
            return snapshot.all_keys()

        word_index = snapshot.word_index
        candidates: set[DocKey] = set()
        for term in terms:
            candidates.update(word_index.lookup(term))
            candidates.update(word_index.partial_lookup(term))
        return candidates

    def apply_filters(
        self,
        snapshot: IndexSnapshot,
        candidates: set[DocKey],
        filters: Mapping[str, Equals | OneOf | Range],
    ) -> set[DocKey]:
        if not filters:
            return candidates
        matched: set[DocKey] = set()
        for key in candidates:
            metadata = snapshot.documents[key].metadata
            if all(constraint.matches(metadata.get(name)) for name, constraint in filters.items()):
                matched.add(key)
        return matched

    def filter_by_entity_types(self, candidates: set[DocKey], entity_types: Iterable[EntityType]) -> set[DocKey]:
        allowed = set(entity_types)
        return {key for key in candidates if key.type in allowed}

    def sort_results(
        self,
        documents: list[SearchableEntity],
        sort_by: SortBy,
        sort_order: SortOrder,
    ) -> list[SearchableEntity]:
        # sorted() is stable in both directions, so ties keep insertion order.
        return sorted(documents, key=_SORT_KEYS[sort_by], reverse=sort_order is SortOrder.DESC)

    def generate_facets(
        self,
        snapshot: IndexSnapshot,
        candidates: set[DocKey],
        facet_names: Sequence[str],
    ) -> dict[str, list[FacetValue]]:
        facets: dict[str, list[FacetValue]] = {}
        for name in facet_names:
            if name in facets:
                continue
            counts = snapshot.facet_index.values_for(name, candidates)
            ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
            facets[name] = [
                FacetValue(value=value, count=count) for value, count in ranked[: self.settings.max_facet_values]
            ]
        return facets

    def generate_suggestions(self, snapshot: IndexSnapshot, query_text: str) -> list[str]:
        """Complete the last query term from indexed terms sharing its prefix."""
        terms = tokenize(query_text)
        if not terms or self.settings.max_suggestions == 0:
            return []

        *head, last = terms
        suggestions: list[str] = []
        for indexed_term in snapshot.word_index.terms():
            if indexed_term != last and indexed_term.startswith(last):
                suggestion = " ".join([*head, indexed_term])
                if suggestion not in suggestions:
                    suggestions.append(suggestion)
                    if len(suggestions) >= self.settings.max_suggestions:
                        break
        return suggestions

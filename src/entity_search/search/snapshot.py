"""Immutable index snapshot: documents plus the indexes derived from them."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Set
from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from types import MappingProxyType

from entity_search.domain.model import DocKey, SearchableEntity
from entity_search.search.facet_index import FacetIndex
from entity_search.search.word_index import InvertedWordIndex


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndexSnapshot:
    """One complete, internally consistent index state.

    Published by reference replacement only; nothing mutates a snapshot
    after ``build_snapshot`` returns it.
    """

    documents: Mapping[DocKey, SearchableEntity]
    word_index: InvertedWordIndex
    facet_index: FacetIndex
    generation: int
    built_at: datetime

    def __len__(self) -> int:
        return len(self.documents)

    def all_keys(self) -> set[DocKey]:
        return set(self.documents)

    def in_order(self, keys: Set[DocKey]) -> Iterator[SearchableEntity]:
        """Yield the documents for ``keys`` in index insertion order."""
        for key, document in self.documents.items():
            if key in keys:
                yield document

    def documents_by_type(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for key in self.documents:
            counts[key.type.value] = counts.get(key.type.value, 0) + 1
        return counts


def build_snapshot(
    documents: Iterable[SearchableEntity],
    *,
    generation: int,
    built_at: datetime | None = None,
) -> IndexSnapshot:
    """Build the documents map and both indexes from one document list."""

    by_key: dict[DocKey, SearchableEntity] = {}
    for document in documents:
        if document.key in by_key:
            logger.warning("Duplicate document %s/%s; keeping the latest copy", document.type.value, document.id)
        by_key[document.key] = document

    ordered = list(by_key.values())
    return IndexSnapshot(
        documents=MappingProxyType(by_key),
        word_index=InvertedWordIndex().build(ordered),
        facet_index=FacetIndex().build(ordered),
        generation=generation,
        built_at=built_at or datetime.now(timezone.utc),
    )

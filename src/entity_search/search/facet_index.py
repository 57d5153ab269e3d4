"""Facet index: facet name -> facet value -> set of document keys."""

from __future__ import annotations

from collections.abc import Iterable, Set
import logging

from entity_search.domain.model import DocKey, SearchableEntity


logger = logging.getLogger(__name__)

TYPE_FACET = "type"
TAGS_FACET = "tags"
RESERVED_FACETS = frozenset({TYPE_FACET, TAGS_FACET})


class FacetIndex:
    """Value breakdowns over entity type, tags and string metadata fields.

    Values keep first-seen order within a facet, which is the tie-break
    order when two values have the same count.
    """

    def __init__(self) -> None:
        self._facets: dict[str, dict[str, frozenset[DocKey]]] = {}

    def build(self, documents: Iterable[SearchableEntity]) -> FacetIndex:
        facets: dict[str, dict[str, set[DocKey]]] = {}

        def add(facet: str, value: str, key: DocKey) -> None:
            facets.setdefault(facet, {}).setdefault(value, set()).add(key)

        for document in documents:
            key = document.key
            add(TYPE_FACET, document.type.value, key)
            for tag in document.tags:
                add(TAGS_FACET, tag, key)
            for name, value in document.metadata.items():
                # Only string metadata contributes; numbers, booleans and
                # structured values are filter-only. Metadata never feeds the
                # entity type or tag facets.
                if name not in RESERVED_FACETS and isinstance(value, str) and value:
                    add(name, value, key)

        self._facets = {
            name: {value: frozenset(keys) for value, keys in values.items()} for name, values in facets.items()
        }
        logger.debug("Facet index built with %d facets", len(self._facets))
        return self

    def values_for(self, facet: str, candidates: Set[DocKey] | None = None) -> dict[str, int]:
        """Return value -> count for ``facet``, restricted to ``candidates`` when given.

        Values with no candidate are omitted.
        """
        counts: dict[str, int] = {}
        for value, keys in self._facets.get(facet, {}).items():
            count = len(keys) if candidates is None else len(keys.intersection(candidates))
            if count:
                counts[value] = count
        return counts

    def facet_names(self) -> list[str]:
        return list(self._facets)

    def __len__(self) -> int:
        return len(self._facets)

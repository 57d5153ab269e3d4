"""Inverted word index: term -> set of document keys."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
import logging

from entity_search.domain.model import DocKey, SearchableEntity
from entity_search.search.analyzers import tokenize


logger = logging.getLogger(__name__)

_EMPTY: frozenset[DocKey] = frozenset()


class InvertedWordIndex:
    """Maps every distinct content term to the documents containing it.

    Terms keep first-seen order so suggestion output is deterministic.
    The index is built once and then only read; ``build`` replaces the
    postings wholesale rather than mutating them in place.
    """

    def __init__(self) -> None:
        self._postings: dict[str, frozenset[DocKey]] = {}

    def build(self, documents: Iterable[SearchableEntity]) -> InvertedWordIndex:
        postings: dict[str, set[DocKey]] = {}
        for document in documents:
            for term in tokenize(document.content):
                postings.setdefault(term, set()).add(document.key)
        self._postings = {term: frozenset(keys) for term, keys in postings.items()}
        logger.debug("Word index built with %d terms", len(self._postings))
        return self

    def lookup(self, term: str) -> frozenset[DocKey]:
        """Exact term match."""
        return self._postings.get(term, _EMPTY)

    def partial_lookup(self, term: str) -> set[DocKey]:
        """Documents with an indexed term containing, or contained in, ``term``."""
        matches: set[DocKey] = set()
        for indexed_term, keys in self._postings.items():
            if term in indexed_term or indexed_term in term:
                matches.update(keys)
        return matches

    def terms(self) -> Iterator[str]:
        return iter(self._postings)

    def __contains__(self, term: object) -> bool:
        return term in self._postings

    def __len__(self) -> int:
        return len(self._postings)

"""Text analysis shared by indexing and query parsing.

Text is split into word terms, then run through an ordered chain of term
filters. Document content and query text both go through ``tokenize`` so
the terms they produce always line up.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Sequence
import re
from typing import NamedTuple


class Term(NamedTuple):
    text: str
    start: int
    end: int


TermFilter = Callable[[Iterator[Term]], Iterator[Term]]

WORD_PATTERN = re.compile(r"\w+")

STOP_WORDS = frozenset(
    # articles and conjunctions
    {"the", "a", "an", "and", "or", "but"}
    # prepositions
    | {"in", "on", "at", "to", "for", "of", "with", "by", "from", "up", "about", "into", "through"}
    | {"during", "before", "after", "above", "below"}
    # auxiliaries and modals
    | {"is", "are", "was", "were", "be", "been", "being", "have", "has", "had", "do", "does", "did"}
    | {"will", "would", "could", "should", "may", "might", "must", "shall", "can"}
)


def split_words(text: str, pattern: re.Pattern[str] = WORD_PATTERN) -> Iterator[Term]:
    """Yield each pattern match; everything between matches is a separator."""
    for match in pattern.finditer(text):
        yield Term(match.group(0), match.start(), match.end())


def lowercase(terms: Iterator[Term]) -> Iterator[Term]:
    for term in terms:
        yield term if term.text.islower() else term._replace(text=term.text.lower())


def min_length(limit: int) -> TermFilter:
    """Filter dropping terms shorter than ``limit`` characters."""

    def keep_long_terms(terms: Iterator[Term]) -> Iterator[Term]:
        return (term for term in terms if len(term.text) >= limit)

    return keep_long_terms


def drop_stop_words(words: Iterable[str] = STOP_WORDS) -> TermFilter:
    vocabulary = frozenset(word.lower() for word in words)

    def without_stop_words(terms: Iterator[Term]) -> Iterator[Term]:
        return (term for term in terms if term.text not in vocabulary)

    return without_stop_words


class Analyzer:
    """A word splitter followed by an ordered chain of term filters."""

    def __init__(self, filters: Sequence[TermFilter] = (), *, pattern: re.Pattern[str] = WORD_PATTERN) -> None:
        self.filters = tuple(filters)
        self.pattern = pattern

    def terms(self, text: str) -> list[Term]:
        if not text:
            return []
        stream = split_words(text, self.pattern)
        for term_filter in self.filters:
            stream = term_filter(stream)
        return list(stream)

    def __call__(self, text: str) -> list[str]:
        return [term.text for term in self.terms(text)]


def standard_analyzer(*, min_chars: int = 3, stop_words: Iterable[str] = STOP_WORDS) -> Analyzer:
    """Lowercase, drop terms under ``min_chars`` characters, drop stop words."""
    return Analyzer([lowercase, min_length(min_chars), drop_stop_words(stop_words)])


_STANDARD = standard_analyzer()


def tokenize(text: str) -> list[str]:
    """Return the index terms of ``text`` in order, duplicates preserved."""
    return _STANDARD(text)

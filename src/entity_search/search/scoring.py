"""Hand-tuned additive relevance scoring.

Scores are computed per query and never stored on the canonical document.
Substring matches are scored the same regardless of position or length, so
very short query terms can dominate; the weights are kept for compatibility
with existing ranking expectations.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from entity_search.domain.model import SearchableEntity
from entity_search.search.analyzers import tokenize


@dataclass(frozen=True)
class ScoringWeights:
    title_contains_query: float = 10.0
    exact_term: float = 5.0
    partial_term: float = 2.0
    tag_match: float = 3.0
    recency_bonus: float = 1.0


DEFAULT_WEIGHTS = ScoringWeights()
EMPTY_QUERY_SCORE = 1.0


def _as_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class RelevanceScorer:
    """Scores documents against one analyzed query."""

    def __init__(
        self,
        query_text: str,
        *,
        now: datetime | None = None,
        recency_window: timedelta = timedelta(days=7),
        weights: ScoringWeights = DEFAULT_WEIGHTS,
    ) -> None:
        self.query_text = query_text.strip().lower()
        self.query_terms = tokenize(query_text)
        self.now = _as_aware(now or datetime.now(timezone.utc))
        self.recency_window = recency_window
        self.weights = weights

    def score(self, document: SearchableEntity) -> float:
        if not self.query_text:
            return EMPTY_QUERY_SCORE

        weights = self.weights
        score = 0.0
        if self.query_text in document.title.lower():
            score += weights.title_contains_query

        document_terms = tokenize(document.content)
        lowered_tags = [tag.lower() for tag in document.tags]
        for query_term in self.query_terms:
            # Exact matches are also counted as partial matches.
            exact = sum(1 for term in document_terms if term == query_term)
            partial = sum(1 for term in document_terms if query_term in term or term in query_term)
            tags = sum(1 for tag in lowered_tags if query_term in tag)
            score += exact * weights.exact_term + partial * weights.partial_term + tags * weights.tag_match

        if self.is_recent(document):
            score += weights.recency_bonus
        return score

    def is_recent(self, document: SearchableEntity) -> bool:
        if document.updated_at is None:
            return False
        return self.now - _as_aware(document.updated_at) < self.recency_window

"""In-memory multi-entity search and indexing engine.

Public surface:
- IndexLifecycleManager: builds, publishes and refreshes index snapshots
- SearchService: cached query entry point plus convenience helpers
- SearchQuery / SearchResult: query and result value objects
"""

from entity_search.domain.model import EntityType, SearchableEntity
from entity_search.domain.search import Equals, OneOf, Range, SearchQuery, SearchResult
from entity_search.exceptions import EntitySearchError, IndexNotReady, InvalidQuery, SourceUnavailable
from entity_search.services.index_manager import IndexLifecycleManager
from entity_search.services.search_service import SearchService


__all__ = [
    "EntitySearchError",
    "EntityType",
    "Equals",
    "IndexLifecycleManager",
    "IndexNotReady",
    "InvalidQuery",
    "OneOf",
    "Range",
    "SearchQuery",
    "SearchResult",
    "SearchService",
    "SearchableEntity",
    "SourceUnavailable",
]

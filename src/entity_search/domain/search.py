"""Domain models for search queries and results.

Following the value-object style of the rest of the domain layer:
- Queries and results are immutable (frozen=True)
- Filters are a small tagged variant (Equals, OneOf, Range) so malformed
  shapes fail at the query boundary with InvalidQuery
- Field aliases are camelCase so API payloads validate directly
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from entity_search.domain.model import EntityType, SearchableEntity
from entity_search.exceptions import InvalidQuery


DEFAULT_PAGE = 1
DEFAULT_LIMIT = 20
DEFAULT_FACETS: tuple[str, ...] = ("type", "tags", "status")

Scalar = str | int | float | bool


class SortBy(str, Enum):
    RELEVANCE = "relevance"
    TITLE = "title"
    CREATED = "created"
    UPDATED = "updated"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class Equals(BaseModel):
    """Exact match against a metadata value."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["equals"] = "equals"
    value: Scalar

    def matches(self, actual: Any) -> bool:
        return actual is not None and actual == self.value


class OneOf(BaseModel):
    """Membership match against a set of allowed metadata values."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["one_of"] = "one_of"
    values: tuple[Scalar, ...] = Field(min_length=1)

    def matches(self, actual: Any) -> bool:
        return actual is not None and actual in self.values


class Range(BaseModel):
    """Inclusive numeric range; a missing bound is unconstrained on that side."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["range"] = "range"
    min: float | None = Field(default=None, strict=True)
    max: float | None = Field(default=None, strict=True)

    @field_validator("min", "max", mode="before")
    @classmethod
    def _numeric_bound(cls, value: Any) -> Any:
        if value is not None and not _is_number(value):
            raise InvalidQuery(f"Range bound {value!r} is not a number")
        return value

    @model_validator(mode="after")
    def _check_bounds(self) -> Range:
        if self.min is None and self.max is None:
            raise InvalidQuery("Range filter needs at least one bound")
        if self.min is not None and self.max is not None and self.min > self.max:
            raise InvalidQuery(f"Range filter has min {self.min:g} greater than max {self.max:g}")
        return self

    def matches(self, actual: Any) -> bool:
        if not _is_number(actual):
            return False
        if self.min is not None and actual < self.min:
            return False
        if self.max is not None and actual > self.max:
            return False
        return True


Filter = Annotated[Equals | OneOf | Range, Field(discriminator="kind")]

_FILTER_KINDS: dict[str, type[BaseModel]] = {"equals": Equals, "one_of": OneOf, "range": Range}


def parse_filter(name: str, raw: Any) -> Equals | OneOf | Range | None:
    """Coerce a raw filter value into its variant.

    Returns None for unset values (None or empty string), which callers skip.
    Raises InvalidQuery for shapes that cannot be interpreted.
    """

    if isinstance(raw, (Equals, OneOf, Range)):
        return raw
    if raw is None or raw == "":
        return None
    if isinstance(raw, Mapping):
        if "kind" in raw:
            variant = _FILTER_KINDS.get(raw["kind"])
            if variant is None:
                raise InvalidQuery(f"Filter '{name}' has unknown kind {raw['kind']!r}")
            try:
                return variant.model_validate(raw)
            except ValidationError as exc:
                raise InvalidQuery(f"Filter '{name}' is malformed: {exc}") from exc
            except InvalidQuery as exc:
                raise InvalidQuery(f"Filter '{name}': {exc}") from exc
        return _parse_range(name, raw)
    if isinstance(raw, (list, tuple, set, frozenset)):
        values = [value for value in raw if value is not None]
        if not values:
            raise InvalidQuery(f"Filter '{name}' lists no values")
        for value in values:
            if not isinstance(value, (str, int, float, bool)):
                raise InvalidQuery(f"Filter '{name}' contains non-scalar value {value!r}")
        return OneOf(values=tuple(values))
    if isinstance(raw, (str, int, float, bool)):
        return Equals(value=raw)
    raise InvalidQuery(f"Filter '{name}' has unsupported type {type(raw).__name__}")


def _parse_range(name: str, raw: Mapping[str, Any]) -> Range:
    unknown = set(raw) - {"min", "max"}
    if unknown or not raw:
        raise InvalidQuery(f"Filter '{name}' must be a range with 'min' and/or 'max', got keys {sorted(raw)}")
    try:
        return Range(min=raw.get("min"), max=raw.get("max"))
    except InvalidQuery as exc:
        raise InvalidQuery(f"Filter '{name}': {exc}") from exc


class SearchQuery(BaseModel):
    """Value object describing one search request."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    query_text: str = ""
    filters: dict[str, Filter] = Field(default_factory=dict)
    entity_types: tuple[EntityType, ...] | None = None
    sort_by: SortBy = SortBy.RELEVANCE
    sort_order: SortOrder = SortOrder.DESC
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT
    facets: tuple[str, ...] = DEFAULT_FACETS

    @classmethod
    def from_params(cls, payload: Mapping[str, Any]) -> SearchQuery:
        """Validate an API payload, reporting any failure as InvalidQuery."""
        try:
            return cls.model_validate(dict(payload))
        except ValidationError as exc:
            raise InvalidQuery(str(exc)) from exc

    @field_validator("query_text", mode="before")
    @classmethod
    def _default_text(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("filters", mode="before")
    @classmethod
    def _parse_filters(cls, value: Any) -> dict[str, Any]:
        if value is None:
            return {}
        if not isinstance(value, Mapping):
            raise InvalidQuery(f"Filters must be a mapping, got {type(value).__name__}")
        parsed: dict[str, Any] = {}
        for name, raw in value.items():
            variant = parse_filter(str(name), raw)
            if variant is not None:
                parsed[str(name)] = variant
        return parsed

    @field_validator("entity_types", mode="before")
    @classmethod
    def _empty_types_mean_all(cls, value: Any) -> Any:
        if value is None or (not isinstance(value, str) and len(value) == 0):
            return None
        if isinstance(value, str):
            return (value,)
        return value

    @field_validator("page", "limit", mode="before")
    @classmethod
    def _unset_paging(cls, value: Any) -> Any:
        # None is normalized to the default in the after-validators below
        return 0 if value is None else value

    @field_validator("page")
    @classmethod
    def _normalize_page(cls, value: int) -> int:
        return DEFAULT_PAGE if value < 1 else value

    @field_validator("limit")
    @classmethod
    def _normalize_limit(cls, value: int) -> int:
        return DEFAULT_LIMIT if value <= 0 else value

    @field_validator("facets", mode="before")
    @classmethod
    def _default_facets(cls, value: Any) -> Any:
        if value is None:
            return DEFAULT_FACETS
        if isinstance(value, str):
            return (value,)
        return value

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class FacetValue(BaseModel):
    """One facet bucket: a value and how many candidates carry it."""

    model_config = ConfigDict(frozen=True)

    value: str
    count: int


class SearchResult(BaseModel):
    """Value object for a complete search response."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    items: list[SearchableEntity]
    total: int
    facets: dict[str, list[FacetValue]] = Field(default_factory=dict)
    suggestions: list[str] = Field(default_factory=list)
    execution_time_ms: float = 0.0
    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT


class IndexStats(BaseModel):
    """Observability snapshot of the active index."""

    model_config = ConfigDict(frozen=True)

    state: str
    document_count: int = 0
    term_count: int = 0
    facet_count: int = 0
    generation: int = 0
    last_built_at: datetime | None = None
    documents_by_type: dict[str, int] = Field(default_factory=dict)
    build_count: int = 0
    build_errors: int = 0

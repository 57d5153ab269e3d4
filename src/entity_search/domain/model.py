"""Document model for the search index.

A SearchableEntity is a normalized, type-tagged, denormalized snapshot of one
source record. Entities are immutable; query-specific scores are only ever set
on copies handed back in results.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from enum import Enum
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class EntityType(str, Enum):
    """Closed set of indexed entity types."""

    EXERCISE = "exercise"
    SYSTEM = "system"
    EQUIPMENT = "equipment"
    USER = "user"


class DocKey(NamedTuple):
    """Index key for a document; ids are only unique within a type."""

    type: EntityType
    id: str


class SearchableEntity(BaseModel):
    """Value object for one indexed document."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: str = Field(min_length=1)
    type: EntityType
    title: str = Field(min_length=1)
    description: str | None = None
    content: str = ""
    tags: tuple[str, ...] = ()
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    search_score: float | None = None

    @field_validator("content")
    @classmethod
    def _lowercase_content(cls, value: str) -> str:
        return value.lower()

    @field_validator("tags", mode="before")
    @classmethod
    def _clean_tags(cls, value: Any) -> tuple[str, ...]:
        if value is None:
            return ()
        if isinstance(value, str):
            value = [value]
        cleaned: list[str] = []
        for tag in value:
            if tag is None:
                continue
            text = str(tag).strip()
            if text and text not in cleaned:
                cleaned.append(text)
        return tuple(cleaned)

    @property
    def key(self) -> DocKey:
        return DocKey(self.type, self.id)

    def with_score(self, score: float) -> SearchableEntity:
        """Return a copy carrying a query-specific relevance score."""
        return self.model_copy(update={"search_score": score})


def join_content(parts: Iterable[Any]) -> str:
    """Join the non-empty textual parts of a record into lowercase content."""

    return " ".join(str(part) for part in parts if part not in (None, "")).lower()

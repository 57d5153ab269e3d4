"""Entity loaders: fetch raw records of one collection and project documents.

Loaders read through a RecordSource port so the relational store stays an
external collaborator. Tests and embedding hosts inject InMemoryRecordSource.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
import logging
from typing import Any, ClassVar, Protocol, runtime_checkable

import orjson
from pydantic import ValidationError

from entity_search.domain.model import EntityType, SearchableEntity, join_content
from entity_search.exceptions import SourceUnavailable


logger = logging.getLogger(__name__)

Record = Mapping[str, Any]


@runtime_checkable
class RecordSource(Protocol):
    """Read-only bulk access to the authoritative record store."""

    async def fetch_records(self, collection: str) -> Sequence[Record]:  # pragma: no cover - Protocol only
        """Return every current record of ``collection``."""


class InMemoryRecordSource:
    """Record source backed by plain dictionaries."""

    def __init__(self, collections: Mapping[str, Sequence[Record]] | None = None) -> None:
        self._collections: dict[str, list[Record]] = {
            name: list(records) for name, records in (collections or {}).items()
        }

    def set_records(self, collection: str, records: Iterable[Record]) -> None:
        self._collections[collection] = list(records)

    async def fetch_records(self, collection: str) -> Sequence[Record]:
        return list(self._collections.get(collection, []))


def parse_timestamp(value: Any) -> datetime | None:
    """Parse a record timestamp; unparseable values become None."""

    if value is None or value == "":
        return None
    try:
        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, date):
            parsed = datetime(value.year, value.month, value.day)
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            parsed = datetime.fromtimestamp(value, tz=timezone.utc)
        elif isinstance(value, str):
            parsed = datetime.fromisoformat(value.strip())
        else:
            raise TypeError(f"unsupported timestamp type {type(value).__name__}")
    except (TypeError, ValueError, OverflowError, OSError) as exc:
        logger.warning("Ignoring malformed timestamp %r: %s", value, exc)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_metadata_value(value: Any) -> Any:
    """Coerce a record value into a JSON-friendly scalar for filters/facets."""

    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return to_metadata_value(value.value)
    return str(value)


def to_number(value: Any) -> int | float | None:
    """Read a money or quantity field that may arrive as a number, Decimal or numeric text."""

    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            logger.warning("Ignoring non-numeric value %r", value)
    return None


def build_metadata(fields: Mapping[str, Any]) -> dict[str, Any]:
    metadata: dict[str, Any] = {}
    for name, raw in fields.items():
        value = to_metadata_value(raw)
        if value is not None:
            metadata[name] = value
    return metadata


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class AbstractEntityLoader(ABC):
    """Loads one entity type from its collection."""

    entity_type: ClassVar[EntityType]
    collection: ClassVar[str]

    def __init__(self, source: RecordSource) -> None:
        self.source = source

    async def load(self) -> list[SearchableEntity]:
        try:
            records = await self.source.fetch_records(self.collection)
        except SourceUnavailable:
            raise
        except Exception as exc:
            raise SourceUnavailable(self.entity_type.value, f"{exc.__class__.__name__}: {exc}") from exc

        documents: list[SearchableEntity] = []
        skipped = 0
        for record in records:
            if not self.include(record):
                continue
            try:
                documents.append(self.project(record))
            except (ValidationError, KeyError, TypeError, ValueError) as exc:
                skipped += 1
                logger.warning("Skipping %s record %r: %s", self.entity_type.value, record.get("id"), exc)

        logger.info(
            "Loaded %d %s documents from '%s' (%d skipped)",
            len(documents),
            self.entity_type.value,
            self.collection,
            skipped,
        )
        return documents

    def include(self, record: Record) -> bool:
        return True

    @abstractmethod
    def project(self, record: Record) -> SearchableEntity:
        """Project one raw record into a document."""


class ExerciseLoader(AbstractEntityLoader):
    entity_type = EntityType.EXERCISE
    collection = "exercises"

    def project(self, record: Record) -> SearchableEntity:
        systems = record.get("systems") or []
        system_names = [name for name in (self._system_name(link) for link in systems) if name]
        return SearchableEntity(
            id=str(record["id"]),
            type=self.entity_type,
            title=record["name"],
            description=_text(record.get("description")),
            content=join_content(
                [
                    record.get("name"),
                    record.get("description"),
                    record.get("location"),
                    record.get("status"),
                    " ".join(system_names),
                ]
            ),
            tags=[record.get("status"), record.get("location")],
            metadata=build_metadata(
                {
                    "startDate": record.get("start_date"),
                    "endDate": record.get("end_date"),
                    "totalBudget": to_number(record.get("total_budget")),
                    "systemsCount": len(systems),
                    "status": record.get("status"),
                    "location": record.get("location"),
                }
            ),
            created_at=parse_timestamp(record.get("created_at")),
            updated_at=parse_timestamp(record.get("updated_at")),
        )

    @staticmethod
    def _system_name(link: Any) -> str | None:
        if isinstance(link, str):
            return link
        if isinstance(link, Mapping):
            nested = link.get("system")
            if isinstance(nested, Mapping):
                return _text(nested.get("name"))
            return _text(link.get("name"))
        return None


class SystemLoader(AbstractEntityLoader):
    entity_type = EntityType.SYSTEM
    collection = "systems"

    HIGH_COST_THRESHOLD = 100_000

    def project(self, record: Record) -> SearchableEntity:
        base_price = to_number(record.get("base_price"))
        return SearchableEntity(
            id=str(record["id"]),
            type=self.entity_type,
            title=record["name"],
            description=_text(record.get("description")),
            content=join_content([record.get("name"), record.get("description")]),
            tags=[
                "licensed" if record.get("has_licensing") else "unlicensed",
                "high-cost" if (base_price or 0) > self.HIGH_COST_THRESHOLD else "low-cost",
            ],
            metadata=build_metadata(
                {
                    "basePrice": base_price,
                    "hasLicensing": record.get("has_licensing"),
                    "licensePrice": to_number(record.get("license_price")),
                    "leadTime": record.get("lead_time"),
                    "consumablesRate": to_number(record.get("consumables_rate")),
                }
            ),
            created_at=parse_timestamp(record.get("created_at")),
            updated_at=parse_timestamp(record.get("updated_at")),
        )


class EquipmentLoader(AbstractEntityLoader):
    entity_type = EntityType.EQUIPMENT
    collection = "equipment"

    FALLBACK_TITLE = "Unknown Equipment"

    def project(self, record: Record) -> SearchableEntity:
        product = self._product_info(record)
        classification = product.get("classification")
        level = classification.get("level") if isinstance(classification, Mapping) else None
        return SearchableEntity(
            id=str(record["id"]),
            type=self.entity_type,
            title=_text(product.get("name")) or self.FALLBACK_TITLE,
            description=_text(product.get("description")),
            content=join_content(
                [
                    product.get("name"),
                    product.get("model"),
                    product.get("type"),
                    record.get("location"),
                    record.get("status"),
                ]
            ),
            tags=[record.get("status"), product.get("type"), level],
            metadata=build_metadata(
                {
                    "model": product.get("model"),
                    "type": product.get("type"),
                    "status": record.get("status"),
                    "acquisitionCost": to_number(record.get("acquisition_cost")),
                    "location": record.get("location"),
                    "serialNumber": record.get("serial_number"),
                }
            ),
            created_at=parse_timestamp(record.get("created_at")),
            updated_at=parse_timestamp(record.get("updated_at")),
        )

    def _product_info(self, record: Record) -> Mapping[str, Any]:
        raw = record.get("product_info")
        if isinstance(raw, (str, bytes)):
            try:
                raw = orjson.loads(raw)
            except orjson.JSONDecodeError as exc:
                logger.warning("Equipment %r has unreadable product info: %s", record.get("id"), exc)
                return {}
        return raw if isinstance(raw, Mapping) else {}


class UserLoader(AbstractEntityLoader):
    entity_type = EntityType.USER
    collection = "users"

    ACTIVE_STATUS = "ACTIVE"

    def include(self, record: Record) -> bool:
        return record.get("status") == self.ACTIVE_STATUS

    def project(self, record: Record) -> SearchableEntity:
        return SearchableEntity(
            id=str(record["id"]),
            type=self.entity_type,
            title=_text(record.get("name")) or record["email"],
            content=join_content([record.get("name"), record.get("email"), record.get("role")]),
            tags=[record.get("role"), record.get("status")],
            metadata=build_metadata(
                {
                    "email": record.get("email"),
                    "role": record.get("role"),
                    "status": record.get("status"),
                }
            ),
            created_at=parse_timestamp(record.get("created_at")),
            updated_at=parse_timestamp(record.get("updated_at")),
        )


def create_default_loaders(source: RecordSource) -> list[AbstractEntityLoader]:
    """One loader per entity type, all reading from ``source``."""

    return [loader_cls(source) for loader_cls in (ExerciseLoader, SystemLoader, EquipmentLoader, UserLoader)]

"""Shared test fixtures and configuration."""

from collections.abc import Callable
from datetime import date, datetime, timezone
import os
from pathlib import Path
import sys
from typing import Any

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = REPO_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))


# Complete test environment that overrides every config value
TEST_ENV = {
    "INDEX_REFRESH_INTERVAL_SECONDS": "0",  # No background schedules in tests
    "LOADER_TIMEOUT_SECONDS": "5",
    "FIRST_BUILD_WAIT_SECONDS": "0",
    "SEARCH_CACHE_ENABLED": "true",
    "SEARCH_CACHE_TTL_SECONDS": "300",
    "RECENCY_WINDOW_DAYS": "7",
    "MAX_FACET_VALUES": "10",
    "MAX_SUGGESTIONS": "5",
    "LOG_LEVEL": "info",
    "LOG_JSON": "false",
}

for key, value in TEST_ENV.items():
    os.environ[key] = value

from entity_search.adapters.entity_loaders import InMemoryRecordSource, create_default_loaders
from entity_search.config import Settings
from entity_search.domain.model import EntityType, SearchableEntity
from entity_search.services.index_manager import IndexLifecycleManager


NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Pin the test environment before each test."""
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_entity() -> Callable[..., SearchableEntity]:
    """Factory for documents; content defaults to title plus description."""

    def _make(
        entity_type: EntityType | str,
        entity_id: str,
        title: str,
        *,
        description: str | None = None,
        content: str | None = None,
        tags: tuple[str, ...] | list[str] = (),
        metadata: dict[str, Any] | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ) -> SearchableEntity:
        if content is None:
            content = " ".join(part for part in (title, description) if part)
        return SearchableEntity(
            id=entity_id,
            type=entity_type,
            title=title,
            description=description,
            content=content,
            tags=tags,
            metadata=metadata or {},
            created_at=created_at,
            updated_at=updated_at,
        )

    return _make


@pytest.fixture
def sample_records() -> dict[str, list[dict[str, Any]]]:
    """Raw store records for every collection."""
    return {
        "exercises": [
            {
                "id": "ex-1",
                "name": "Night Raid Alpha",
                "description": "Coastal night operation",
                "location": "Fort Bragg",
                "status": "PLANNING",
                "start_date": date(2026, 11, 1),
                "end_date": date(2026, 11, 14),
                "total_budget": 250000,
                "systems": [{"system": {"name": "Recon Drone"}}],
                "created_at": "2026-01-05T10:00:00+00:00",
                "updated_at": "2026-10-18T09:00:00+00:00",
            },
            {
                "id": "ex-2",
                "name": "Desert Shield",
                "description": None,
                "location": "Nevada",
                "status": "ACTIVE",
                "total_budget": 90000,
                "systems": [],
                "created_at": "2025-03-01T08:00:00+00:00",
                "updated_at": "2025-04-01T08:00:00+00:00",
            },
        ],
        "systems": [
            {
                "id": "sys-1",
                "name": "Recon Drone",
                "description": "Long range reconnaissance platform",
                "base_price": 2500,
                "has_licensing": True,
                "license_price": 300,
                "lead_time": 14,
                "consumables_rate": 0.1,
                "created_at": "2025-06-01T00:00:00+00:00",
                "updated_at": "2025-06-02T00:00:00+00:00",
            },
            {
                "id": "sys-2",
                "name": "Helium Balloon Relay",
                "description": "Tethered communications relay",
                "base_price": 150000,
                "has_licensing": False,
                "created_at": "2025-07-01T00:00:00+00:00",
                "updated_at": "2025-07-02T00:00:00+00:00",
            },
        ],
        "equipment": [
            {
                "id": "eq-1",
                "product_info": {
                    "name": "Night Vision Goggles",
                    "model": "NV-7",
                    "type": "Optics",
                    "description": "Helmet mounted goggles",
                    "classification": {"level": "RESTRICTED"},
                },
                "location": "Depot 4",
                "status": "AVAILABLE",
                "acquisition_cost": 4200,
                "serial_number": "SN-0042",
                "created_at": "2025-02-01T00:00:00+00:00",
                "updated_at": "2025-02-01T00:00:00+00:00",
            }
        ],
        "users": [
            {
                "id": "u-1",
                "name": "Dana Reyes",
                "email": "dana.reyes@example.com",
                "role": "PLANNER",
                "status": "ACTIVE",
                "created_at": "2024-01-01T00:00:00+00:00",
                "updated_at": "2024-01-01T00:00:00+00:00",
            },
            {
                "id": "u-2",
                "name": "Former Member",
                "email": "former@example.com",
                "role": "VIEWER",
                "status": "INACTIVE",
            },
        ],
    }


@pytest.fixture
def record_source(sample_records) -> InMemoryRecordSource:
    return InMemoryRecordSource(sample_records)


@pytest.fixture
def index_manager(record_source, settings) -> IndexLifecycleManager:
    return IndexLifecycleManager(create_default_loaders(record_source), settings=settings)

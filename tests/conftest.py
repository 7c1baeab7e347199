"""Shared pytest fixtures for all tests."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import pytest

from catalog_builder.core.config import Settings, get_settings
from catalog_builder.core.logging import configure_logging


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Isolate tests from CATALOG_BUILDER_* variables and the settings cache."""
    for name in (
        "CATALOG_BUILDER_CONFIG_VERSION",
        "CATALOG_BUILDER_DEFAULT_ID_FIELD",
        "CATALOG_BUILDER_REFERENCE_DELIMITER",
        "CATALOG_BUILDER_DEFAULT_CHAIN_DEPTH",
        "CATALOG_BUILDER_MAX_CHAIN_RESULTS",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def rebind_logging() -> Iterator[None]:
    """Re-bind structlog to the live sys.stderr once per-test capture fixtures are torn down."""
    yield
    configure_logging()


@pytest.fixture
def settings() -> Settings:
    """Settings with defaults only."""
    return Settings(_env_file=None)  # type: ignore[call-arg]


@pytest.fixture
def products() -> list[dict[str, Any]]:
    """A small product catalog with mixed value types."""
    return [
        {"id": "P1", "name": "Desk Lamp", "category": "Lighting", "brand": "Lumo", "price": 40,
         "stock": 12, "active": True},
        {"id": "P2", "name": "Floor Lamp", "category": "Lighting", "brand": "Lumo", "price": 120,
         "stock": 0, "active": False},
        {"id": "P3", "name": "Office Chair", "category": "Seating", "brand": "Sitwell",
         "price": 250, "stock": 4, "active": True},
        {"id": "P4", "name": "Stool", "category": "Seating", "brand": "Oakline", "price": "35",
         "stock": 30, "active": True},
        {"id": "P5", "name": "Pendant", "category": "Lighting", "brand": "Brightly", "price": 85,
         "stock": None, "active": True},
        {"id": "P6", "name": "Bookshelf", "category": "Storage", "brand": "Oakline", "price": 180,
         "stock": 7, "active": False},
    ]

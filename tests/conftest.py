# tests/conftest.py
"""
Pytest Configuration and Shared Fixtures
========================================

Shared fixtures for the Gradian test suite: a temporary data directory
seeded with the bundled schemas, frozen clocks for timestamps and cache
expiry, the application container and a FastAPI test client.

Fixtures provided:
- data_dir: Seeded temporary data directory
- test_settings: AppSettings pointing at data_dir
- frozen_now / fake_clock: Controllable time sources
- application: GradianApplication wired to the fixtures above
- test_client: FastAPI test client around create_app(application=...)
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List

import pytest
from fastapi.testclient import TestClient

from gradian.api import create_app
from gradian.application import GradianApplication
from gradian.cache import CacheManager
from gradian.config import (
    AppSettings, CacheSettings, Environment, LoggingSettings, LogLevel,
    SecuritySettings, StorageSettings,
)
from gradian.schemas import SchemaRegistry
from gradian.seed import load_defaults
from gradian.storage import JsonCollectionStore

from . import TEST_COMPANY_ID, TEST_PEPPER

logging.getLogger("passlib").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


# ==================== PYTEST CONFIGURATION ====================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "api: marks tests as API tests"
    )


def pytest_collection_modifyitems(config, items):
    """Add markers based on test file names."""
    for item in items:
        if "test_api" in item.nodeid:
            item.add_marker(pytest.mark.api)
        elif "test_database" in item.nodeid or "test_cli" in item.nodeid:
            item.add_marker(pytest.mark.integration)


# ==================== CLOCKS ====================

class FrozenNow:
    """Wall clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


class FakeClock:
    """Monotonic clock for cache expiry."""

    def __init__(self, start: float = 1000.0):
        self.current = start

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def frozen_now() -> FrozenNow:
    return FrozenNow(datetime(2024, 6, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


# ==================== DATA FIXTURES ====================

def write_collection(data_dir: Path, collection: str, items: List[Dict[str, Any]]) -> None:
    (data_dir / f"all-{collection}.json").write_text(json.dumps(items, indent=2), encoding="utf-8")


def read_collection(data_dir: Path, collection: str) -> List[Dict[str, Any]]:
    return json.loads((data_dir / f"all-{collection}.json").read_text(encoding="utf-8"))


@pytest.fixture
def data_dir(tmp_path) -> Path:
    """Temporary data directory seeded with the bundled defaults."""
    directory = tmp_path / "data"
    directory.mkdir()
    for collection, items in load_defaults().items():
        write_collection(directory, collection, items)
    return directory


@pytest.fixture
def json_store(data_dir) -> JsonCollectionStore:
    return JsonCollectionStore(data_dir)


@pytest.fixture
def cache_manager(fake_clock) -> CacheManager:
    return CacheManager(CacheSettings(enabled=True, ttl_seconds=60), clock=fake_clock)


@pytest.fixture
def registry(json_store, cache_manager) -> SchemaRegistry:
    return SchemaRegistry(json_store, cache_manager, StorageSettings().soft_delete_policies)


# ==================== APPLICATION FIXTURES ====================

@pytest.fixture
def test_settings(data_dir) -> AppSettings:
    """
    Test configuration: JSON storage in the temporary data directory.

    Returns:
        AppSettings: Test configuration instance
    """
    return AppSettings(
        environment=Environment.TESTING,
        debug=True,
        storage=StorageSettings(data_dir=str(data_dir)),
        cache=CacheSettings(enabled=True, ttl_seconds=60),
        security=SecuritySettings(pepper=TEST_PEPPER),
        logging=LoggingSettings(level=LogLevel.WARNING),
    )


@pytest.fixture
def application(test_settings, frozen_now, fake_clock) -> GradianApplication:
    return GradianApplication(test_settings, now=frozen_now, clock=fake_clock)


@pytest.fixture
def test_client(application):
    """
    FastAPI test client; entering it runs the application lifespan.

    Yields:
        TestClient: Configured test client
    """
    with TestClient(create_app(application=application)) as client:
        logger.debug("Created FastAPI test client")
        yield client


# ==================== SAMPLE DATA ====================

@pytest.fixture
def vendor_data() -> Dict[str, Any]:
    return {
        "companyId": TEST_COMPANY_ID,
        "name": "Acme Supplies",
        "email": "sales@acme.example",
        "phone": "+1 555 0100",
        "rating": 4.5,
        "primaryCategory": "Office",
        "categories": ["Office", "Furniture"],
        "status": "ACTIVE",
    }


@pytest.fixture
def purchase_order_data() -> Dict[str, Any]:
    return {
        "companyId": TEST_COMPANY_ID,
        "poNumber": "PO-0001",
        "vendorId": "vendor-1",
        "category": "IT",
        "totalAmount": 1500,
    }


# ==================== TEST UTILITIES ====================

def assert_valid_ulid(value: str) -> None:
    """Assert that a string looks like a ULID."""
    alphabet = set("0123456789ABCDEFGHJKMNPQRSTVWXYZ")
    if not (isinstance(value, str) and len(value) == 26 and set(value) <= alphabet):
        pytest.fail(f"'{value}' is not a valid ULID")


def assert_valid_datetime(datetime_string: str) -> None:
    """Assert that a string is a valid ISO datetime."""
    try:
        datetime.fromisoformat(datetime_string.replace('Z', '+00:00'))
    except ValueError:
        pytest.fail(f"'{datetime_string}' is not a valid ISO datetime")


def assert_error_envelope(response_data: Dict[str, Any], code: str) -> None:
    assert response_data["success"] is False
    assert response_data["code"] == code
    assert response_data["error"]

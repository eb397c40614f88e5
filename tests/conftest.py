"""
Pytest configuration and shared fixtures

Fun fact: The name "conftest" comes from pytest's configuration testing
framework. Files named conftest.py are automatically discovered and their
fixtures are available to all tests in the same directory and subdirectories!
"""

import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

import pytest

from erp_relay.ingestion.store import IngestionStore
from erp_relay.kernel.time import TestTimeProvider
from erp_relay.simulator.config import SimulatorConfig
from erp_relay.simulator.generator import EventGenerator
from tests.helpers import TENANT


@pytest.fixture
def temp_db() -> Iterator[Path]:
    """Provide a temporary database file that's cleaned up after test"""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    yield db_path

    # Cleanup (WAL mode leaves two sidecar files)
    for path in (db_path, Path(f"{db_path}-wal"), Path(f"{db_path}-shm")):
        if path.exists():
            path.unlink()


@pytest.fixture
def test_time() -> TestTimeProvider:
    """
    Provide a controllable time provider for deterministic tests

    Default time: 2025-01-15 12:00:00 UTC (mid-month, so the bootstrap
    origin and "now" never coincide)
    """
    return TestTimeProvider(datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def sim_config() -> SimulatorConfig:
    """Seeded three-month simulator for the test tenant"""
    return SimulatorConfig(tenant_id=TENANT, seed=42, history_months=3)


@pytest.fixture
def generator(sim_config: SimulatorConfig, test_time: TestTimeProvider) -> EventGenerator:
    """Generator with history replayed up to test_time"""
    generator = EventGenerator(sim_config, time_provider=test_time)
    generator.bootstrap()
    return generator


@pytest.fixture
def store(temp_db: Path, test_time: TestTimeProvider) -> IngestionStore:
    """Provide a fresh ingestion store for each test"""
    return IngestionStore(temp_db, time_provider=test_time)

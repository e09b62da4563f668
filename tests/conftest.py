"""
Shared test fixtures and configuration for pytest.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, Tuple

import pytest

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from entity_sync.core.models import DatasetDefinition
from entity_sync.warehouse.client import WarehouseClient
from entity_sync.warehouse.connection import ConnectionProvider, WarehouseSession
from entity_sync.warehouse.refresh import SessionRefreshGuard


logger = logging.getLogger(__name__)

SNOWFLAKE_ENV = (
    "SNOWFLAKE_ACCOUNT",
    "SNOWFLAKE_USER",
    "SNOWFLAKE_PRIVATE_KEY",
    "SNOWFLAKE_WAREHOUSE",
    "SNOWFLAKE_DB",
    "SNOWFLAKE_SCHEMA",
)


# ============================================================================
# Environment detection
# ============================================================================

def is_snowflake_configured() -> bool:
    """Check if Snowflake credentials are available for testing."""
    return all(os.environ.get(name) for name in SNOWFLAKE_ENV)


# ============================================================================
# Fake warehouse
# ============================================================================

class FakeWarehouse:
    """
    Scripted stand-in for Snowflake shared by all fake connections.

    Every executed statement is recorded in order. Results and failures are
    matched by substring of the statement.
    """

    def __init__(self):
        self.executed: List[str] = []
        self.results: List[Tuple[str, Sequence[str], List[tuple]]] = []
        self.failures: List[List[Any]] = []
        self.connections: List["FakeConnection"] = []
        self.commits = 0
        self.rollbacks = 0
        self.on_execute: Optional[Callable[[str], None]] = None

    def add_result(self, match: str, rows: List[tuple], columns: Sequence[str] = ("VALUE",)) -> None:
        self.results.append((match, columns, rows))

    def fail_on(self, match: str, error: Exception, times: int = 1) -> None:
        """Raise error for the next `times` statements containing match."""
        self.failures.append([match, error, times])

    def statements(self, prefix: str) -> List[str]:
        return [s for s in self.executed if s.startswith(prefix)]

    def execute(self, statement: str):
        self.executed.append(statement)
        if self.on_execute is not None:
            self.on_execute(statement)
        for failure in self.failures:
            match, error, remaining = failure
            if remaining > 0 and match in statement:
                failure[2] -= 1
                raise error
        for match, columns, rows in self.results:
            if match in statement:
                return columns, rows
        return None, []


class FakeCursor:
    def __init__(self, warehouse: FakeWarehouse):
        self.warehouse = warehouse
        self.description = None
        self.rows: List[tuple] = []
        self.closed = False

    def execute(self, statement: str):
        columns, rows = self.warehouse.execute(statement)
        self.description = [(name,) for name in columns] if columns else None
        self.rows = list(rows)
        return self

    def fetchall(self) -> List[tuple]:
        return list(self.rows)

    def __iter__(self):
        return iter(self.rows)

    def close(self):
        self.closed = True


class FakeConnection:
    def __init__(self, warehouse: FakeWarehouse):
        self.warehouse = warehouse
        self.closed = False

    def cursor(self) -> FakeCursor:
        return FakeCursor(self.warehouse)

    def commit(self):
        self.warehouse.commits += 1

    def rollback(self):
        self.warehouse.rollbacks += 1

    def close(self):
        self.closed = True


class FakeProvider(ConnectionProvider):
    def __init__(self, warehouse: FakeWarehouse):
        self.warehouse = warehouse

    def connect(self) -> FakeConnection:
        conn = FakeConnection(self.warehouse)
        self.warehouse.connections.append(conn)
        return conn


# ============================================================================
# Pytest hooks
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "integration: Integration tests (requires Snowflake)")
    config.addinivalue_line("markers", "slow: Tests that take a long time to run")


def pytest_collection_modifyitems(config, items):
    """Automatically skip integration tests if Snowflake is not configured."""
    if is_snowflake_configured():
        return

    skip_snowflake = pytest.mark.skip(
        reason="Snowflake not configured (set " + ", ".join(SNOWFLAKE_ENV) + ")"
    )

    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_snowflake)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def warehouse() -> FakeWarehouse:
    """Fixture providing a fresh fake warehouse."""
    return FakeWarehouse()


@pytest.fixture
def provider(warehouse) -> FakeProvider:
    return FakeProvider(warehouse)


@pytest.fixture
def client(provider, tmp_path) -> WarehouseClient:
    """Fixture providing a warehouse client on a fake session."""
    return WarehouseClient(
        WarehouseSession(provider),
        SessionRefreshGuard(),
        default_database="testdb",
        default_schema="testschema",
        tmp_dir=tmp_path,
    )


@pytest.fixture
def people_definition() -> DatasetDefinition:
    """Fixture providing a mapped dataset definition."""
    return DatasetDefinition.from_dict({
        "name": "people",
        "source_config": {"table_name": "people"},
        "incoming_mapping_config": {
            "base_uri": "http://data.example.io/people/",
            "property_mappings": [
                {"property": "person_id", "datatype": "string", "is_identity": True},
                {"property": "name", "entity_property": "http://data.example.io/people/name"},
                {"property": "age", "entity_property": "http://data.example.io/people/age", "datatype": "int"},
            ],
        },
    })


@pytest.fixture
def sample_config_dict() -> dict:
    """Fixture providing a complete config document."""
    return {
        "layer_config": {
            "service_name": "entity-sync-test",
            "log_level": "DEBUG",
            "log_format": "text",
        },
        "system_config": {
            "snowflake_db": "testdb",
            "snowflake_schema": "testschema",
            "snowflake_user": "tester",
            "snowflake_account": "acct-1",
            "snowflake_warehouse": "wh",
            "snowflake_private_key": "bm90LWEta2V5",
            "memory_headroom": 100,
            "batch_size": 2,
        },
        "dataset_definitions": [
            {
                "name": "people",
                "source_config": {"table_name": "people", "since_column": "recorded"},
            },
        ],
    }


@pytest.fixture
def clean_env(monkeypatch):
    """Remove config environment overrides for the duration of a test."""
    for name in (
        "MEMORY_HEADROOM",
        "SNOWFLAKE_DB",
        "SNOWFLAKE_SCHEMA",
        "SNOWFLAKE_USER",
        "SNOWFLAKE_ACCOUNT",
        "SNOWFLAKE_WAREHOUSE",
        "SNOWFLAKE_PRIVATE_KEY",
        "LOG_LEVEL",
        "LOG_FORMAT",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch

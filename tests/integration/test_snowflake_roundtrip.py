"""
Integration tests against a real Snowflake account.

These tests verify that:
1. An incremental write lands in the live table and reads back
2. A full sync replaces the table contents
3. A since token from one page bounds the next

Requires SNOWFLAKE_ACCOUNT, SNOWFLAKE_USER, SNOWFLAKE_PRIVATE_KEY,
SNOWFLAKE_WAREHOUSE, SNOWFLAKE_DB and SNOWFLAKE_SCHEMA.
"""

import io
import json
import uuid

import pytest

from entity_sync.config.config_loader import SyncConfig
from entity_sync.memory_guard import MemoryGuard
from entity_sync.service import (
    HEADER_FULL_SYNC_END,
    HEADER_FULL_SYNC_ID,
    HEADER_FULL_SYNC_START,
    EntitySyncService,
)
from entity_sync.warehouse.connection import SnowflakeConnectionProvider


NAMESPACES = {"_": "http://data.example.io/it/"}


def wire(*ids):
    return io.BytesIO(json.dumps(
        [{"id": "@context", "namespaces": NAMESPACES}]
        + [{"id": i, "props": {"name": f"name-{i}"}} for i in ids]
    ).encode("utf-8"))


@pytest.fixture
def table_name():
    return f"IT_PEOPLE_{uuid.uuid4().hex[:8].upper()}"


@pytest.fixture
def snowflake_service(table_name, tmp_path):
    config = SyncConfig(config={
        "layer_config": {"service_name": "entity-sync-it"},
        "system_config": {"batch_size": 2},
        "dataset_definitions": [{
            "name": "people",
            "source_config": {
                "table_name": table_name,
                "raw_column": "ENTITY",
                "since_column": "recorded",
            },
        }],
    })
    provider = SnowflakeConnectionProvider.from_system_config(config.get_system_config())
    service = EntitySyncService(config, provider, memory_guard=MemoryGuard(files=()), tmp_dir=tmp_path)
    yield service

    with service.open_client() as client:
        names = client.names(service.dataset("people").definition)
        client.query_scalar(f"DROP TABLE IF EXISTS {names.qualified}")
        client.query_scalar(f"DROP STAGE IF EXISTS {names.stage()}")
        client.query_scalar(f"DROP STAGE IF EXISTS {names.stage('it_1')}_DONE")
    service.close()


def read_ids(service, since=""):
    out = io.StringIO()
    token = service.read("people", since=since, out=out)
    page = json.loads(out.getvalue())
    return sorted(e["id"] for e in page[1:-1]), token


@pytest.mark.integration
class TestSnowflakeRoundTrip:
    """Round trips through a real warehouse."""

    def test_incremental_write_and_read(self, snowflake_service):
        assert snowflake_service.write("people", wire("1", "2", "3")) == 3

        ids, token = read_ids(snowflake_service)

        assert ids == ["http://data.example.io/it/1", "http://data.example.io/it/2", "http://data.example.io/it/3"]
        assert token

    def test_since_token_bounds_next_page(self, snowflake_service):
        snowflake_service.write("people", wire("1"))
        _, token = read_ids(snowflake_service)

        snowflake_service.write("people", wire("2"))
        ids, next_token = read_ids(snowflake_service, since=token)

        assert ids == ["http://data.example.io/it/2"]
        assert next_token != token

        ids, last_token = read_ids(snowflake_service, since=next_token)
        assert ids == []
        assert last_token == next_token

    def test_full_sync_replaces_rows(self, snowflake_service):
        snowflake_service.write("people", wire("1", "2"))

        headers = {HEADER_FULL_SYNC_ID: "it-1", HEADER_FULL_SYNC_START: "true", HEADER_FULL_SYNC_END: "true"}
        snowflake_service.write("people", wire("3"), headers)

        ids, _ = read_ids(snowflake_service)
        assert ids == ["http://data.example.io/it/3"]

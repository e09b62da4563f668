"""
Unit tests for core models.

These tests verify the data models without external dependencies.
"""

import pytest

from entity_sync.core.exceptions import ConfigError
from entity_sync.core.models import (
    BatchInfo,
    DatasetDefinition,
    IncomingMappingConfig,
    OutgoingMappingConfig,
    implicit_definition,
)


class TestBatchInfo:
    """Tests for BatchInfo."""

    def test_sync_id_normalized(self):
        assert BatchInfo(sync_id="2024-09-01-a").sync_id == "2024_09_01_a"

    @pytest.mark.parametrize("sync_id", ["a b", "x;DROP", "a'b", "s.1", "é1", "1\n"])
    def test_sync_id_must_be_a_name(self, sync_id):
        with pytest.raises(ConfigError):
            BatchInfo(sync_id=sync_id)

    def test_defaults(self):
        info = BatchInfo()

        assert info.sync_id == ""
        assert not info.is_start_batch
        assert not info.is_last_batch


class TestDatasetDefinition:
    """Tests for DatasetDefinition."""

    def test_from_dict(self):
        definition = DatasetDefinition.from_dict({
            "name": "people",
            "source_config": {"table_name": "persons", "since_column": "updated", "raw_column": "DOC"},
            "incoming_mapping_config": {
                "base_uri": "http://ex/",
                "property_mappings": [{"property": "pk", "is_identity": True, "datatype": "int"}],
            },
            "outgoing_mapping_config": {
                "map_all": True,
                "constructions": [{"property": "x", "operation": "literal", "args": [1]}],
            },
        })

        assert definition.since_column == "updated"
        assert definition.raw_column == "DOC"
        assert definition.incoming_mapping_config.property_mappings[0].is_identity
        assert definition.incoming_mapping_config.property_mappings[0].datatype == "int"
        assert definition.outgoing_mapping_config.map_all
        assert definition.outgoing_mapping_config.constructions[0].args == ["1"]

    def test_dataset_name_alias(self):
        assert DatasetDefinition.from_dict({"dataset_name": "people"}).name == "people"

    def test_missing_mappings(self):
        definition = DatasetDefinition.from_dict({"name": "people"})

        assert definition.incoming_mapping_config is None
        assert definition.outgoing_mapping_config is None
        assert definition.raw_column is None
        assert definition.since_column is None

    @pytest.mark.parametrize("value,expected", [
        (True, True),
        (False, False),
        ("true", True),
        ("Yes", True),
        ("false", False),
        (None, False),
    ])
    def test_latest_active(self, value, expected):
        definition = DatasetDefinition(name="t", source_config={"latest_active": value})

        assert definition.latest_active is expected


class TestImplicitDefinition:
    """Tests for implicit_definition."""

    def test_three_part_name(self):
        definition = implicit_definition("db.sch.tbl")

        assert definition.name == "db.sch.tbl"
        assert definition.source_config == {
            "table_name": "tbl",
            "schema": "sch",
            "database": "db",
            "raw_column": "ENTITY",
        }
        assert definition.incoming_mapping_config == IncomingMappingConfig()
        assert definition.outgoing_mapping_config == OutgoingMappingConfig()

    @pytest.mark.parametrize("name", ["people", "a.b", "a.b.c.d"])
    def test_other_shapes(self, name):
        assert implicit_definition(name) is None

"""
Core data models for the entity sync engine.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .exceptions import ConfigError


CONTEXT_ID = "@context"
CONTINUATION_ID = "@continuation"

# sync ids end up in stage and table names
_SYNC_ID = re.compile(r"[A-Za-z0-9_]+\Z")

# Tagged property value: str, int, float, bool, None, a list of values or a
# nested entity.
PropertyValue = Union[str, int, float, bool, None, List["PropertyValue"], "Entity"]
ReferenceValue = Union[str, List[str]]


@dataclass
class Entity:
    """
    A uniquely identified record with properties and references.

    Attributes:
        id: Namespace qualified id (prefix:local) or full URI
        recorded: Monotonic version/timestamp, defaults to 0
        deleted: Deletion marker
        properties: Property name -> value
        references: Reference name -> id or ordered list of ids
    """
    id: str
    recorded: int = 0
    deleted: bool = False
    properties: Dict[str, PropertyValue] = field(default_factory=dict)
    references: Dict[str, ReferenceValue] = field(default_factory=dict)


@dataclass
class Continuation:
    """Terminal marker of a read page."""
    token: str = ""

    id: str = CONTINUATION_ID


@dataclass
class BatchInfo:
    """
    Full-sync batch information carried by write headers.

    Attributes:
        sync_id: Full sync id, normalized for warehouse object names
        is_start_batch: First request of the full sync
        is_last_batch: Last request of the full sync, triggers cutover
    """
    sync_id: str = ""
    is_start_batch: bool = False
    is_last_batch: bool = False

    def __post_init__(self):
        if self.sync_id:
            self.sync_id = self.sync_id.replace("-", "_")
            if not _SYNC_ID.match(self.sync_id):
                raise ConfigError(
                    f"full sync id {self.sync_id!r} may only contain letters, digits, '-' and '_'"
                )


@dataclass
class IncomingPropertyMapping:
    """
    Maps an entity property to a warehouse column on write.

    Attributes:
        property: Target column name
        entity_property: Source property (or reference) key in the staged line
        datatype: Column datatype, defaults to string
        is_identity: Column holds the entity id
        is_reference: Read from refs instead of props
        is_recorded: Column holds the recorded value
        is_deleted: Column holds the deleted flag
        custom: Optional overrides, e.g. {"expression": "now()::timestamp"}
    """
    property: str
    entity_property: str = ""
    datatype: str = ""
    is_identity: bool = False
    is_reference: bool = False
    is_recorded: bool = False
    is_deleted: bool = False
    custom: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IncomingPropertyMapping":
        return cls(
            property=data.get("property", ""),
            entity_property=data.get("entity_property", ""),
            datatype=data.get("datatype", "") or "",
            is_identity=bool(data.get("is_identity", False)),
            is_reference=bool(data.get("is_reference", False)),
            is_recorded=bool(data.get("is_recorded", False)),
            is_deleted=bool(data.get("is_deleted", False)),
            custom=dict(data.get("custom") or {}),
        )


@dataclass
class OutgoingPropertyMapping:
    """
    Maps a warehouse column to an entity field on read.

    Attributes:
        property: Source column name
        entity_property: Target property (or reference) name, relative to base_uri
        datatype: Optional datatype hint
        is_identity: Column value becomes the entity id
        is_reference: Column value becomes a reference
        is_recorded: Column value becomes entity.recorded
        is_deleted: Column value becomes entity.deleted
        uri_value_pattern: Template like http://x/id/{value}
        default_value: Value used when the column is null
        required: Fail the row if the column is null and has no default
    """
    property: str
    entity_property: str = ""
    datatype: str = ""
    is_identity: bool = False
    is_reference: bool = False
    is_recorded: bool = False
    is_deleted: bool = False
    uri_value_pattern: str = ""
    default_value: Any = None
    required: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OutgoingPropertyMapping":
        return cls(
            property=data.get("property", ""),
            entity_property=data.get("entity_property", ""),
            datatype=data.get("datatype", "") or "",
            is_identity=bool(data.get("is_identity", False)),
            is_reference=bool(data.get("is_reference", False)),
            is_recorded=bool(data.get("is_recorded", False)),
            is_deleted=bool(data.get("is_deleted", False)),
            uri_value_pattern=data.get("uri_value_pattern", "") or "",
            default_value=data.get("default_value"),
            required=bool(data.get("required", False)),
        )


@dataclass
class PropertyConstructor:
    """
    Derives a row value before outgoing mapping.

    Attributes:
        property: Name of the (new or replaced) row value
        operation: replace, concat, split, trim, tolower, toupper or literal
        args: Operation arguments; the first is usually the source column
    """
    property: str
    operation: str
    args: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PropertyConstructor":
        return cls(
            property=data.get("property", ""),
            operation=data.get("operation", ""),
            args=[str(a) for a in data.get("args") or []],
        )


@dataclass
class OutgoingMappingConfig:
    """Row-to-entity mapping used on reads."""
    base_uri: str = ""
    constructions: List[PropertyConstructor] = field(default_factory=list)
    property_mappings: List[OutgoingPropertyMapping] = field(default_factory=list)
    map_all: bool = False

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["OutgoingMappingConfig"]:
        if data is None:
            return None
        return cls(
            base_uri=data.get("base_uri", "") or "",
            constructions=[PropertyConstructor.from_dict(c) for c in data.get("constructions") or []],
            property_mappings=[
                OutgoingPropertyMapping.from_dict(m) for m in data.get("property_mappings") or []
            ],
            map_all=bool(data.get("map_all", False)),
        )


@dataclass
class IncomingMappingConfig:
    """Entity-to-column mapping used on writes."""
    base_uri: str = ""
    property_mappings: List[IncomingPropertyMapping] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["IncomingMappingConfig"]:
        if data is None:
            return None
        return cls(
            base_uri=data.get("base_uri", "") or "",
            property_mappings=[
                IncomingPropertyMapping.from_dict(m) for m in data.get("property_mappings") or []
            ],
        )


# source_config keys
TABLE_NAME = "table_name"
SCHEMA = "schema"
DATABASE = "database"
RAW_COLUMN = "raw_column"
SINCE_COLUMN = "since_column"
LATEST_ACTIVE = "latest_active"


@dataclass
class DatasetDefinition:
    """
    Configuration of one dataset.

    Attributes:
        name: Dataset name as used by clients
        source_config: Table coordinates and read/write options
            (database, schema, table_name, raw_column, since_column, latest_active)
        incoming_mapping_config: Write mapping; None means a single variant column
        outgoing_mapping_config: Read mapping; None means select *
    """
    name: str
    source_config: Dict[str, Any] = field(default_factory=dict)
    incoming_mapping_config: Optional[IncomingMappingConfig] = None
    outgoing_mapping_config: Optional[OutgoingMappingConfig] = None

    @property
    def raw_column(self) -> Optional[str]:
        return self.source_config.get(RAW_COLUMN) or None

    @property
    def since_column(self) -> Optional[str]:
        return self.source_config.get(SINCE_COLUMN) or None

    @property
    def latest_active(self) -> bool:
        value = self.source_config.get(LATEST_ACTIVE, False)
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes")
        return bool(value)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DatasetDefinition":
        return cls(
            name=data.get("name") or data.get("dataset_name") or "",
            source_config=dict(data.get("source_config") or {}),
            incoming_mapping_config=IncomingMappingConfig.from_dict(
                data.get("incoming_mapping_config")
            ),
            outgoing_mapping_config=OutgoingMappingConfig.from_dict(
                data.get("outgoing_mapping_config")
            ),
        )


def implicit_definition(name: str) -> Optional[DatasetDefinition]:
    """
    Interpret a dataset name of the form database.schema.table as a table spec.

    Returns None when the name has a different shape.
    """
    tokens = name.split(".")
    if len(tokens) != 3:
        return None
    return DatasetDefinition(
        name=name,
        source_config={
            TABLE_NAME: tokens[2],
            SCHEMA: tokens[1],
            DATABASE: tokens[0],
            RAW_COLUMN: "ENTITY",
        },
        incoming_mapping_config=IncomingMappingConfig(),
        outgoing_mapping_config=OutgoingMappingConfig(),
    )

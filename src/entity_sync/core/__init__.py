"""
Core subpackage for the entity sync engine.

Contains models, exceptions, and logging utilities.
"""

from .models import (
    BatchInfo,
    Continuation,
    DatasetDefinition,
    Entity,
    IncomingMappingConfig,
    IncomingPropertyMapping,
    OutgoingMappingConfig,
    OutgoingPropertyMapping,
    PropertyConstructor,
)
from .exceptions import (
    EntitySyncError,
    DecodeError,
    ConfigError,
    UnsupportedParameterError,
    WarehouseConnectionError,
    QueryError,
    StagingError,
    MemoryHeadroomError,
)

__all__ = [
    # Models
    "BatchInfo",
    "Continuation",
    "DatasetDefinition",
    "Entity",
    "IncomingMappingConfig",
    "IncomingPropertyMapping",
    "OutgoingMappingConfig",
    "OutgoingPropertyMapping",
    "PropertyConstructor",
    # Exceptions
    "EntitySyncError",
    "DecodeError",
    "ConfigError",
    "UnsupportedParameterError",
    "WarehouseConnectionError",
    "QueryError",
    "StagingError",
    "MemoryHeadroomError",
]

"""
Entity Sync: moves entity graphs between the entity wire format and Snowflake.

Subpackages:
    core:      models, exceptions and logging
    wire:      streaming parser and serializers of the entity wire format
    mapping:   column compilation (writes) and row mapping (reads)
    pipeline:  staging files and batch writers
    warehouse: Snowflake connections, statements and the session refresh guard
    read:      paged reads with since tokens
    config:    config loading and hot reload
"""

__version__ = "0.1.0"

from .dataset import Dataset
from .service import EntitySyncService, batch_info_from_headers

__all__ = [
    "__version__",
    "Dataset",
    "EntitySyncService",
    "batch_info_from_headers",
]

"""
Batch write pipeline: staging files and dataset writers.
"""

from .files import STAGED_SUFFIX, staging_file, write_gzipped_ndjson
from .writers import (
    DEFAULT_BATCH_SIZE,
    BatchWriter,
    FullSyncState,
    FullSyncWriter,
    IncrementalWriter,
)

__all__ = [
    "STAGED_SUFFIX",
    "staging_file",
    "write_gzipped_ndjson",
    "DEFAULT_BATCH_SIZE",
    "BatchWriter",
    "FullSyncState",
    "FullSyncWriter",
    "IncrementalWriter",
]

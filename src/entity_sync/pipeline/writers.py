"""
Batch writers: buffer entities, stage them in batches, load on close.

IncrementalWriter loads its staged files straight into the live table.
FullSyncWriter accumulates a whole dataset in a sync scoped stage across
requests and swaps it in on the last batch.
"""

import logging
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional

from ..core.models import BatchInfo, DatasetDefinition, Entity
from ..metrics import Metrics, NullMetrics
from ..wire.namespaces import NamespaceContext


logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50000


class BatchWriter(ABC):
    """
    Base class for dataset writers.

    Subclasses decide which stage batches go to and what happens on close.

    Attributes:
        client: WarehouseClient of the request
        definition: Dataset being written
        context: Namespace context of the incoming stream
        batch_size: Entities per staged file
        load_time: Value stored in the recorded column of loaded rows
        files: Names of the files staged so far
    """

    def __init__(
        self,
        client,
        definition: DatasetDefinition,
        context: NamespaceContext,
        batch_size: int = DEFAULT_BATCH_SIZE,
        metrics: Optional[Metrics] = None,
        load_time: Optional[int] = None,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be positive, got {batch_size}")
        self.client = client
        self.definition = definition
        self.context = context
        self.batch_size = batch_size
        self.metrics = metrics or NullMetrics()
        self.load_time = load_time if load_time is not None else time.time_ns()
        self.files: List[str] = []
        self.written = 0
        self._buffer: List[Entity] = []
        self._closed = False

    @property
    @abstractmethod
    def stage(self) -> str:
        """Stage the batches are uploaded to."""
        pass

    def write(self, entity: Entity) -> None:
        if self._closed:
            raise RuntimeError(f"Writer for {self.definition.name} is closed")
        self._buffer.append(entity)
        if len(self._buffer) >= self.batch_size:
            self.flush()

    def flush(self) -> None:
        """Stage the buffered entities as one file."""
        if not self._buffer:
            return
        batch = self._buffer
        staged = self.client.put_entities(self.definition.name, self.stage, batch, self.context)
        self.files.extend(staged)
        self.written += len(batch)
        self.metrics.incr("entities.written", len(batch), dataset=self.definition.name)
        self._buffer = []

    def close(self) -> None:
        """Flush the remaining entities and finish the load."""
        if self._closed:
            return
        self.flush()
        self._closed = True
        started = time.monotonic()
        self._finish()
        self.metrics.timing(
            "load.duration_ms", (time.monotonic() - started) * 1000, dataset=self.definition.name
        )

    @abstractmethod
    def _finish(self) -> None:
        pass


class IncrementalWriter(BatchWriter):
    """Appends to the live table (and upserts the latest table) on close."""

    def __init__(self, client, definition: DatasetDefinition, context: NamespaceContext, **kwargs):
        super().__init__(client, definition, context, **kwargs)
        self._stage = client.ensure_stage(definition)

    @property
    def stage(self) -> str:
        return self._stage

    def _finish(self) -> None:
        if not self.files:
            logger.debug(f"Nothing staged for {self.definition.name}, skipping load")
            return
        self.client.load(self.definition, self.files, self._stage, self.load_time)
        logger.info(f"Loaded {self.written} entities into {self.definition.name}")


class FullSyncState(Enum):
    """Progress of one full sync request."""
    NOT_STARTED = "not_started"
    STAGING = "staging"
    ACCUMULATING = "accumulating"
    CUTOVER = "cutover"
    DONE = "done"


class FullSyncWriter(BatchWriter):
    """
    One request of a full sync.

    The start batch clears leftovers of aborted syncs and prepares the side
    tables and stage. Every batch stages files. The last batch runs the
    cutover transaction. Requests in between leave the live table untouched.
    """

    def __init__(
        self,
        client,
        definition: DatasetDefinition,
        context: NamespaceContext,
        batch_info: BatchInfo,
        **kwargs,
    ):
        if not batch_info.sync_id:
            raise ValueError("Full sync requires a sync id")
        super().__init__(client, definition, context, **kwargs)
        self.batch_info = batch_info
        self.state = FullSyncState.NOT_STARTED

        if batch_info.is_start_batch:
            self.state = FullSyncState.STAGING
            self._stage = client.ensure_stage(definition, batch_info.sync_id)
            client.create_staging_tables(definition, self._stage)
        else:
            self._stage = client.fullsync_stage(definition, batch_info.sync_id)
        self.state = FullSyncState.ACCUMULATING

    @property
    def stage(self) -> str:
        return self._stage

    def _finish(self) -> None:
        if not self.batch_info.is_last_batch:
            logger.debug(
                f"Staged {len(self.files)} files for full sync {self.batch_info.sync_id} "
                f"of {self.definition.name}"
            )
            return
        self.state = FullSyncState.CUTOVER
        logger.info(f"Full sync {self.batch_info.sync_id} of {self.definition.name}: cutover")
        self.client.load_stage(self.definition, self._stage, self.load_time)
        self.state = FullSyncState.DONE

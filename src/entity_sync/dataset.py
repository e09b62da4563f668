"""
A configured dataset: write and read entry points.
"""

import logging
import time
from typing import IO, Any, Callable, Dict, Optional

from .core.exceptions import ConfigError
from .core.logging import SyncContext
from .core.models import BatchInfo, DatasetDefinition, Entity
from .metrics import Metrics, NullMetrics
from .pipeline.writers import DEFAULT_BATCH_SIZE, BatchWriter, FullSyncWriter, IncrementalWriter
from .read.query import EntityPage, ReadQuery
from .wire.parser import EntityParser


logger = logging.getLogger(__name__)


class Dataset:
    """
    One dataset bound to a way of opening warehouse clients.

    Every call opens its own client (and warehouse session) and releases it
    when the call, or the returned page, is finished.

    Attributes:
        definition: Current dataset definition snapshot
        open_client: Returns a new WarehouseClient
        batch_size: Entities per staged file
    """

    def __init__(
        self,
        definition: DatasetDefinition,
        open_client: Callable[[], Any],
        batch_size: int = DEFAULT_BATCH_SIZE,
        metrics: Optional[Metrics] = None,
    ):
        self.definition = definition
        self.open_client = open_client
        self.batch_size = batch_size
        self.metrics = metrics or NullMetrics()

    @property
    def name(self) -> str:
        return self.definition.name

    def metadata(self) -> Dict[str, Any]:
        return dict(self.definition.source_config)

    def _writer(self, client, parser: EntityParser, batch_info: Optional[BatchInfo], load_time: int) -> BatchWriter:
        kwargs = dict(batch_size=self.batch_size, metrics=self.metrics, load_time=load_time)
        if batch_info is None:
            return IncrementalWriter(client, self.definition, parser.context, **kwargs)
        if not batch_info.sync_id:
            raise ConfigError("full sync requests need a full sync id")
        return FullSyncWriter(client, self.definition, parser.context, batch_info, **kwargs)

    def write(self, stream: IO, batch_info: Optional[BatchInfo] = None) -> int:
        """
        Parse a wire-format stream and load it.

        Args:
            stream: Binary or text stream holding the entity array
            batch_info: Full sync batch info, None for an incremental write

        Returns:
            Number of entities written
        """
        load_time = time.time_ns()
        parser = EntityParser()
        sync_id = batch_info.sync_id if batch_info else None

        with SyncContext(dataset=self.name, sync_id=sync_id):
            with self.open_client() as client:
                writer = self._writer(client, parser, batch_info, load_time)
                for element in parser.iter_entities(stream):
                    if isinstance(element, Entity):
                        writer.write(element)
                writer.close()

        logger.info(f"Wrote {writer.written} entities to {self.name}")
        return writer.written

    def entities(self, since: str = "", limit: Any = None) -> EntityPage:
        """
        Read entities changed after the since token.

        The returned page holds an open cursor; iterate it or close it.
        """
        client = self.open_client()
        try:
            query = ReadQuery(client, self.definition, metrics=self.metrics).with_since(since)
            query.with_limit(limit)
            return query.run(release=client.close)
        except BaseException:
            client.close()
            raise

    def changes(self, since: str = "", limit: Any = None) -> EntityPage:
        """
        Page through the current entities.

        Deletion changes are not tracked separately, so this is the same as
        entities().
        """
        return self.entities(since, limit)

"""
Entity sync service: dataset lookup, writes and paged reads.

This is the surface an HTTP layer (or the CLI) calls into. It owns the
process-wide pieces: the connection provider, the session refresh guard,
the metrics sink and the current dataset definition snapshot. Long-running
hosts call watch_config() once to follow dataset definition changes.
"""

import logging
import sys
import threading
from pathlib import Path
from typing import IO, Any, Dict, List, Mapping, Optional

from .config.config_loader import SyncConfig
from .config.reloader import ConfigReloader, OAuthTokenProvider
from .core.exceptions import ConfigError
from .core.models import BatchInfo, DatasetDefinition, implicit_definition
from .dataset import Dataset
from .memory_guard import MB, MemoryGuard
from .metrics import Metrics, NullMetrics
from .warehouse.client import WarehouseClient
from .warehouse.connection import ConnectionProvider, WarehouseSession
from .warehouse.refresh import SessionRefreshGuard
from .wire.writer import EntityStreamWriter


logger = logging.getLogger(__name__)

HEADER_FULL_SYNC_START = "universal-data-api-full-sync-start"
HEADER_FULL_SYNC_END = "universal-data-api-full-sync-end"
HEADER_FULL_SYNC_ID = "universal-data-api-full-sync-id"


def _truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes")


def batch_info_from_headers(headers: Optional[Mapping[str, Any]]) -> Optional[BatchInfo]:
    """
    Read full sync headers.

    Returns:
        BatchInfo if any full sync header is present, else None
    """
    if not headers:
        return None
    lowered = {str(k).lower(): v for k, v in headers.items()}
    keys = (HEADER_FULL_SYNC_START, HEADER_FULL_SYNC_END, HEADER_FULL_SYNC_ID)
    if not any(k in lowered for k in keys):
        return None
    return BatchInfo(
        sync_id=str(lowered.get(HEADER_FULL_SYNC_ID) or ""),
        is_start_batch=_truthy(lowered.get(HEADER_FULL_SYNC_START, False)),
        is_last_batch=_truthy(lowered.get(HEADER_FULL_SYNC_END, False)),
    )


class EntitySyncService:
    """
    Entry point for dataset reads and writes.

    Example:
        >>> config = SyncConfig("config.yaml")
        >>> service = EntitySyncService(config, SnowflakeConnectionProvider.from_system_config(
        ...     config.get_system_config()))
        >>> service.write("people", open("people.json", "rb"))
    """

    def __init__(
        self,
        config: SyncConfig,
        provider: ConnectionProvider,
        metrics: Optional[Metrics] = None,
        memory_guard: Optional[MemoryGuard] = None,
        tmp_dir: Optional[Path] = None,
    ):
        config.validate()
        self.config = config
        self.provider = provider
        self.metrics = metrics or NullMetrics()
        self.memory_guard = memory_guard or MemoryGuard(config.memory_headroom)
        self.tmp_dir = tmp_dir
        self.guard = SessionRefreshGuard()
        self._lock = threading.Lock()
        self._definitions: Dict[str, DatasetDefinition] = {}
        self._reloader: Optional[ConfigReloader] = None
        self.update_configuration(config)

    @property
    def default_database(self) -> str:
        return self.config.get("system_config.snowflake_db", "")

    @property
    def default_schema(self) -> str:
        return self.config.get("system_config.snowflake_schema", "")

    def open_client(self) -> WarehouseClient:
        """Open a client on a new warehouse session."""
        return WarehouseClient(
            WarehouseSession(self.provider),
            self.guard,
            self.default_database,
            self.default_schema,
            metrics=self.metrics,
            tmp_dir=self.tmp_dir,
        )

    def update_configuration(self, config: SyncConfig) -> None:
        """Replace the dataset definitions with those of a new config snapshot."""
        definitions = {d.name: d for d in config.get_dataset_definitions()}
        with self._lock:
            added = definitions.keys() - self._definitions.keys()
            removed = self._definitions.keys() - definitions.keys()
            self._definitions = definitions
        for name in sorted(added):
            logger.info(f"Dataset {name} added")
        for name in sorted(removed):
            logger.info(f"Dataset {name} removed")

    def dataset_names(self) -> List[str]:
        with self._lock:
            return sorted(self._definitions)

    def _implicit(self, name: str) -> DatasetDefinition:
        # read mode: database.schema.table
        definition = implicit_definition(name)
        if definition is not None:
            logger.debug(f"Inferred implicit read table for {name}: {definition.source_config}")
            return definition

        # write mode: only the configured database and schema
        qualified = f"{self.default_database}.{self.default_schema}.{name.replace('.', '_')}"
        definition = implicit_definition(qualified)
        if definition is None:
            raise ConfigError(f"dataset {name} not found and cannot infer implicit target table from name")
        definition.name = name
        logger.debug(f"Inferred implicit write table for {name}: {definition.source_config}")
        return definition

    def dataset(self, name: str) -> Dataset:
        """
        Look up a dataset, falling back to an implicit table mapping.

        Raises:
            MemoryHeadroomError: if the process is low on memory
            ConfigError: if no mapping can be found or inferred
        """
        stats = self.memory_guard.check()
        if stats is not None:
            self.metrics.gauge("memory.headroom_mb", stats.headroom // MB)
        if not name:
            raise ConfigError("dataset name is required")
        with self._lock:
            definition = self._definitions.get(name)
        if definition is None:
            definition = self._implicit(name)
        return Dataset(definition, self.open_client, batch_size=self.config.batch_size, metrics=self.metrics)

    def write(self, name: str, stream: IO, headers: Optional[Mapping[str, Any]] = None) -> int:
        """Write a wire-format stream to a dataset; returns the entity count."""
        return self.dataset(name).write(stream, batch_info_from_headers(headers))

    def read(self, name: str, since: str = "", limit: Any = None, out: Optional[IO[str]] = None) -> str:
        """
        Write one page of a dataset to out (stdout by default) in wire format.

        Returns:
            The continuation token of the page
        """
        page = self.dataset(name).entities(since, limit)
        with page:
            writer = EntityStreamWriter(out if out is not None else sys.stdout)
            for entity in page:
                writer.write_entity(entity)
            writer.close(page.token)
        return page.token

    def watch_config(self) -> Optional[ConfigReloader]:
        """
        Start polling the config location for dataset definition changes.

        URL locations authenticate with the OAuth settings in
        layer_config.config_auth when present. Stopped by close().

        Returns:
            The running reloader, or None for a config not loaded from a location
        """
        if self.config.location is None:
            return None
        if self._reloader is None:
            token_provider = self.config.token_provider
            auth = self.config.get("layer_config.config_auth")
            if token_provider is None and auth:
                token_provider = OAuthTokenProvider.from_dict(auth)
            self._reloader = ConfigReloader(
                str(self.config.location),
                self.update_configuration,
                interval=self.config.refresh_interval,
                token_provider=token_provider,
                initial=self.config,
            )
            self._reloader.start()
        return self._reloader

    def close(self) -> None:
        if self._reloader is not None:
            self._reloader.stop()
            self._reloader = None
        self.provider.close()

"""
Warehouse client: stages, uploads and loads for one request.

Every public method is one guarded warehouse operation; private helpers are
never guarded themselves, so a retry never nests.
"""

import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List, Optional, Sequence, Tuple

import snowflake.connector

from ..core.exceptions import QueryError, StagingError
from ..core.models import DatasetDefinition, Entity
from ..mapping.columns import compile_columns
from ..metrics import Metrics, NullMetrics
from ..pipeline.files import staging_file, write_gzipped_ndjson
from ..wire.namespaces import NamespaceContext
from . import statements as sql
from .connection import WarehouseSession, translate_error
from .refresh import SessionRefreshGuard, with_session_refresh
from .statements import TableNames, table_names


logger = logging.getLogger(__name__)


class WarehouseClient:
    """
    Runs the dataset statements on one warehouse session.

    Attributes:
        session: Per-request session (connection can be swapped on refresh)
        guard: Process-wide session refresh guard
        default_database: snowflake_db from system config
        default_schema: snowflake_schema from system config
    """

    def __init__(
        self,
        session: WarehouseSession,
        guard: SessionRefreshGuard,
        default_database: str,
        default_schema: str,
        metrics: Optional[Metrics] = None,
        tmp_dir: Optional[Path] = None,
    ):
        self.session = session
        self.guard = guard
        self.default_database = default_database
        self.default_schema = default_schema
        self.metrics = metrics or NullMetrics()
        self.tmp_dir = tmp_dir

    def names(self, definition: DatasetDefinition) -> TableNames:
        return table_names(definition, self.default_database, self.default_schema)

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "WarehouseClient":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Low level execution
    # ------------------------------------------------------------------

    def _execute(self, cursor, statement: str) -> None:
        logger.debug(statement)
        try:
            cursor.execute(statement)
        except snowflake.connector.errors.Error as e:
            raise translate_error(e, statement) from e

    def _run(self, statement: str) -> List[Tuple]:
        cursor = self.session.connection.cursor()
        try:
            self._execute(cursor, statement)
            return cursor.fetchall() if cursor.description else []
        finally:
            cursor.close()

    @contextmanager
    def _transaction(self) -> Iterator[Any]:
        conn = self.session.connection
        cursor = conn.cursor()
        try:
            self._execute(cursor, "BEGIN")
            try:
                yield cursor
            except BaseException:
                try:
                    conn.rollback()
                except snowflake.connector.errors.Error as e:
                    logger.warning(f"Rollback failed: {e}")
                raise
            try:
                conn.commit()
            except snowflake.connector.errors.Error as e:
                raise translate_error(e, "COMMIT") from e
        finally:
            cursor.close()

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def fullsync_stage(self, definition: DatasetDefinition, sync_id: str) -> str:
        """Name of the stage of an ongoing full sync (no warehouse call)."""
        return self.names(definition).stage(sync_id)

    @with_session_refresh
    def ensure_stage(self, definition: DatasetDefinition, sync_id: str = "") -> str:
        """
        Create the dataset stage if missing and return its name.

        With a sync id, stale full-sync stages (and their side tables) of the
        dataset are dropped first and a sync scoped stage is created.
        """
        names = self.names(definition)
        if sync_id:
            logger.info(f"Full sync requested for {names.table}, id {sync_id}")
            self._drop_stale_fullsync_artifacts(names)

        stage = names.stage(sync_id)
        self._run(sql.create_stage(stage))
        return stage

    def _drop_stale_fullsync_artifacts(self, names: TableNames) -> None:
        cursor = self.session.connection.cursor()
        try:
            self._execute(cursor, sql.show_fullsync_stages(names))
            self._execute(cursor, sql.select_shown_names())
            shown = [row[0] for row in cursor.fetchall()]
        finally:
            cursor.close()

        prefix = names.fullsync_stage_prefix
        stale = [name for name in shown if name.upper().startswith(prefix)]

        if not stale:
            logger.info(f"No previous full sync stage found for {names.table}")
            return

        for name in stale:
            logger.info(f"Found previous full sync stage {name}. Dropping it before new full sync")
            qualified = f"{names.namespace}.{name}"
            self._run(sql.drop_stage(qualified))
            self._run(sql.drop_table(qualified, if_exists=True))
            self._run(sql.drop_table(qualified + sql.LATEST_SUFFIX, if_exists=True))

    @with_session_refresh
    def create_staging_tables(self, definition: DatasetDefinition, stage: str) -> None:
        """Create the full-sync side table (and side latest table) named after the stage."""
        columns = compile_columns(definition)
        self._run(sql.create_table(stage, columns))
        if definition.latest_active:
            self._run(sql.create_table(stage + sql.LATEST_SUFFIX, columns))

    @with_session_refresh
    def put_entities(
        self,
        dataset: str,
        stage: str,
        entities: Sequence[Entity],
        context: NamespaceContext,
    ) -> List[str]:
        """
        Upload a batch as one gzip NDJSON file into the stage.

        Returns:
            Names of the staged files
        """
        started = time.monotonic()
        with staging_file(dataset, self.tmp_dir) as path:
            write_gzipped_ndjson(path, entities, context)
            statement = sql.put_file(path.as_posix(), stage)
            cursor = self.session.connection.cursor()
            try:
                self._execute(cursor, statement)
            except QueryError as e:
                raise StagingError(f"Failed to upload {path.name} to {stage}: {e}") from e
            finally:
                cursor.close()

        self.metrics.timing("stage.upload_ms", (time.monotonic() - started) * 1000, dataset=dataset)
        self.metrics.incr("batches.staged", dataset=dataset)
        logger.debug(f"Uploaded {path.name} ({len(entities)} entities) to {stage}")
        return [path.name]

    # ------------------------------------------------------------------
    # Loads
    # ------------------------------------------------------------------

    @with_session_refresh
    def load(
        self,
        definition: DatasetDefinition,
        files: Sequence[str],
        stage: str,
        load_time: int,
    ) -> None:
        """Incremental load: COPY the given files into the live table (and MERGE latest)."""
        names = self.names(definition)
        columns = compile_columns(definition)
        logger.debug(f"Loading {', '.join(files)} into {names.qualified}")

        with self._transaction() as cursor:
            self._execute(cursor, sql.create_table(names.qualified, columns))
            if definition.latest_active:
                self._execute(cursor, sql.create_table(names.latest, columns))

            self._execute(
                cursor,
                sql.copy_into(names.qualified, columns, load_time, definition.name, stage, files),
            )
            if definition.latest_active:
                self._execute(
                    cursor,
                    sql.merge_latest(names.latest, columns, load_time, definition.name, stage, files),
                )

    @with_session_refresh
    def load_stage(self, definition: DatasetDefinition, stage: str, load_time: int) -> None:
        """
        Full-sync cutover in one transaction.

        COPY the whole stage into the side table, MERGE the side latest table,
        retire the stage and swap the side tables with the live tables.
        """
        names = self.names(definition)
        columns = compile_columns(definition)
        side = stage
        latest = definition.latest_active

        with self._transaction() as cursor:
            self._execute(cursor, sql.create_table(side, columns))
            if latest:
                self._execute(cursor, sql.create_table(side + sql.LATEST_SUFFIX, columns))

            logger.debug(f"Loading fs table {side}")
            self._execute(cursor, sql.copy_into(side, columns, load_time, definition.name, stage))
            if latest:
                self._execute(
                    cursor,
                    sql.merge_latest(side + sql.LATEST_SUFFIX, columns, load_time, definition.name, stage),
                )

            self._execute(cursor, sql.rename_stage(stage))
            logger.debug(f"Done with {side}. now swapping with {names.qualified}")
            self._swap_or_rename(cursor, side, names.qualified)
            if latest:
                self._swap_or_rename(cursor, side + sql.LATEST_SUFFIX, names.latest)

    def _swap_or_rename(self, cursor, side: str, live: str) -> None:
        try:
            self._execute(cursor, sql.swap_table(side, live))
        except QueryError as e:
            # first full sync ever: the live table does not exist yet
            logger.info(f"Swap of {side} with {live} failed ({e}), renaming instead")
            self._execute(cursor, sql.rename_table(side, live))
        else:
            # after the swap the side table holds the previous live rows
            self._execute(cursor, sql.drop_table(side))

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @with_session_refresh
    def query_scalar(self, statement: str) -> Any:
        rows = self._run(statement)
        if not rows:
            return None
        return rows[0][0]

    @with_session_refresh
    def query_rows(self, statement: str) -> Tuple[List[str], Any]:
        """
        Run a SELECT and return (column names, open cursor).

        The caller iterates and closes the cursor.
        """
        cursor = self.session.connection.cursor()
        try:
            self._execute(cursor, statement)
        except Exception:
            cursor.close()
            raise
        columns = [d[0] for d in cursor.description or []]
        return columns, cursor

"""
SQL statement builders for Snowflake.

All builders are pure string functions so the exact statements can be
asserted in tests. Identifiers come from trusted dataset configuration;
string literals are escaped.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..core.models import DATABASE, SCHEMA, TABLE_NAME, DatasetDefinition
from ..mapping.columns import ColumnMappings


FSID_MARKER = "_FSID_"
DONE_SUFFIX = "_DONE"
LATEST_SUFFIX = "_LATEST"

# every loaded table starts with these columns
BASE_COLUMNS = "id varchar, recorded integer, deleted boolean, dataset varchar"


def quote_literal(value: str) -> str:
    """Quote a SQL string literal."""
    return "'" + str(value).replace("'", "''") + "'"


@dataclass(frozen=True)
class TableNames:
    """
    Warehouse coordinates of a dataset.

    Attributes:
        database: Upper-cased database name
        schema: Upper-cased schema name
        table: Upper-cased live table name
    """
    database: str
    schema: str
    table: str

    @property
    def namespace(self) -> str:
        return f"{self.database}.{self.schema}"

    @property
    def qualified(self) -> str:
        return f"{self.database}.{self.schema}.{self.table}"

    @property
    def latest(self) -> str:
        return self.qualified + LATEST_SUFFIX

    @property
    def fullsync_stage_prefix(self) -> str:
        """Unqualified name prefix shared by every full-sync stage of this table."""
        return f"S_{self.table}{FSID_MARKER}"

    def stage(self, sync_id: str = "") -> str:
        """Stage for incremental loads, or the full-sync scoped stage when sync_id is set."""
        if sync_id:
            return f"{self.namespace}.{self.fullsync_stage_prefix}{sync_id}"
        return f"{self.namespace}.S_{self.table}"


def table_names(definition: DatasetDefinition, default_database: str, default_schema: str) -> TableNames:
    """
    Resolve the table coordinates of a dataset.

    The table defaults to the dataset name with '.' replaced by '_'; database
    and schema default to the system config values.
    """
    source = definition.source_config
    table = source.get(TABLE_NAME) or definition.name.replace(".", "_")
    database = source.get(DATABASE) or default_database
    schema = source.get(SCHEMA) or default_schema
    return TableNames(
        database=str(database).upper(),
        schema=str(schema).upper(),
        table=str(table).upper(),
    )


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------

def create_stage(stage: str) -> str:
    return (
        f"CREATE STAGE IF NOT EXISTS {stage} "
        "copy_options = (on_error=ABORT_STATEMENT) "
        "file_format = (TYPE='json' STRIP_OUTER_ARRAY = TRUE);"
    )


def put_file(path: str, stage: str) -> str:
    return f"PUT file://{path} @{stage} auto_compress=false overwrite=false"


def show_fullsync_stages(names: TableNames) -> str:
    # '_' matches any character in LIKE; callers filter the names exactly
    return f"SHOW STAGES LIKE '{names.fullsync_stage_prefix}%' IN {names.namespace}"


def select_shown_names() -> str:
    return 'select "name" FROM table(RESULT_SCAN(LAST_QUERY_ID()))'


def drop_stage(stage: str) -> str:
    return f"DROP STAGE {stage}"


def rename_stage(stage: str) -> str:
    return f"ALTER STAGE {stage} RENAME TO {stage}{DONE_SUFFIX}"


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------

def create_table(table: str, columns: ColumnMappings) -> str:
    return f"CREATE TABLE IF NOT EXISTS {table} ( {BASE_COLUMNS}, {', '.join(columns.column_types)} );"


def drop_table(table: str, if_exists: bool = False) -> str:
    return f"DROP TABLE {'IF EXISTS ' if if_exists else ''}{table}"


def swap_table(table: str, other: str) -> str:
    return f"ALTER TABLE {table} SWAP WITH {other}"


def rename_table(table: str, new_name: str) -> str:
    return f"ALTER TABLE {table} RENAME TO {new_name}"


# ---------------------------------------------------------------------------
# Loads
# ---------------------------------------------------------------------------

def _file_list(files: Sequence[str]) -> str:
    return ", ".join(quote_literal(name) for name in files)


def copy_into(
    table: str,
    columns: ColumnMappings,
    load_time: int,
    dataset: str,
    stage: str,
    files: Optional[Sequence[str]] = None,
) -> str:
    """COPY staged lines into a table, optionally restricted to the given files."""
    sql = (
        f"COPY INTO {table}(id, recorded, deleted, dataset, {', '.join(columns.columns)}) "
        f"FROM ( SELECT $1:id::varchar, {load_time}::integer, "
        f"coalesce($1:deleted::boolean, false), {quote_literal(dataset)}::varchar, "
        f"{', '.join(columns.extractions)} FROM @{stage}) "
        "FILE_FORMAT = (TYPE='json' COMPRESSION=GZIP)"
    )
    if files:
        sql += f" FILES = ({_file_list(files)})"
    return sql + ";"


def merge_latest(
    latest: str,
    columns: ColumnMappings,
    load_time: int,
    dataset: str,
    stage: str,
    files: Optional[Sequence[str]] = None,
) -> str:
    """
    Upsert staged lines into a latest table, one row per entity id.

    When an id occurs more than once in the staged files, the last
    occurrence wins (files sort in flush order, rows in file order).
    Deleted entities are kept as rows with deleted = true.
    """
    source = f"@{stage}"
    if files:
        source += f" (PATTERN => '.*({'|'.join(files)})')"
    return (
        f"MERGE INTO {latest} AS latest USING ( "
        f"SELECT $1:id::varchar as id, {load_time}::integer as recorded, "
        f"coalesce($1:deleted::boolean, false) as deleted, "
        f"{quote_literal(dataset)}::varchar as dataset, {', '.join(columns.extractions)} "
        f"FROM {source} "
        "QUALIFY ROW_NUMBER() OVER (PARTITION BY $1:id::varchar "
        "ORDER BY METADATA$FILENAME DESC, METADATA$FILE_ROW_NUMBER DESC) = 1 "
        ") AS src ON latest.id = src.id "
        "WHEN MATCHED THEN UPDATE SET latest.recorded = src.recorded, "
        "latest.deleted = src.deleted, latest.dataset = src.dataset, "
        f"{', '.join(columns.assignments)} "
        f"WHEN NOT MATCHED THEN INSERT (id, recorded, deleted, dataset, {', '.join(columns.columns)}) "
        f"VALUES (src.id, src.recorded, src.deleted, src.dataset, {', '.join(columns.source_columns)});"
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def max_query(column: str, table: str, lower: Optional[str] = None) -> str:
    sql = f"SELECT MAX({column}) FROM {table}"
    if lower:
        sql += f" WHERE {column} > {lower}"
    return sql


def select_query(
    columns: str,
    table: str,
    since_column: Optional[str] = None,
    lower: Optional[str] = None,
    upper: Optional[str] = None,
) -> str:
    sql = f"SELECT {columns} FROM {table}"
    if since_column and upper:
        if lower:
            sql += f" WHERE {since_column} > {lower} and {since_column} <= {upper}"
        else:
            sql += f" WHERE {since_column} <= {upper}"
    return sql


def session_setup() -> List[str]:
    """Statements run on every new warehouse session."""
    return ["USE SECONDARY ROLES ALL"]

"""
Mapping between entities and warehouse columns, in both directions.
"""

from .columns import ColumnMappings, compile_columns, projection_columns, sql_type
from .outgoing import RowMapper, apply_pattern

__all__ = [
    "ColumnMappings",
    "compile_columns",
    "projection_columns",
    "sql_type",
    "RowMapper",
    "apply_pattern",
]

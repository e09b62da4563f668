"""
Snowflake warehouse access: connections, statements and the session refresh guard.
"""

from .client import WarehouseClient
from .connection import (
    ConnectionProvider,
    SnowflakeConnectionProvider,
    WarehouseSession,
    encode_private_key,
    is_session_expired,
    load_private_key,
    translate_error,
)
from .refresh import SessionRefreshGuard, with_session_refresh
from .statements import TableNames, table_names

__all__ = [
    "WarehouseClient",
    "ConnectionProvider",
    "SnowflakeConnectionProvider",
    "WarehouseSession",
    "encode_private_key",
    "is_session_expired",
    "load_private_key",
    "translate_error",
    "SessionRefreshGuard",
    "with_session_refresh",
    "TableNames",
    "table_names",
]

"""
Custom exceptions for the entity sync engine.
"""

from typing import Optional


BAD_PARAMETER = "bad_parameter"
INTERNAL = "internal"


class EntitySyncError(Exception):
    """Base exception for all entity sync errors."""

    category = INTERNAL


class DecodeError(EntitySyncError):
    """
    Error decoding the entity wire format.

    Raised when:
    - Input is not valid JSON
    - Top level value is not an array
    - The @context entity is missing or not first
    - An entity id is missing, empty or not a string
    - A token field appears on a non-continuation entity
    - A field has the wrong type (recorded, deleted, props, refs)

    The whole stream fails, since framing trust is lost.
    """

    category = BAD_PARAMETER

    def __init__(self, message: str, position: Optional[int] = None):
        super().__init__(message)
        self.position = position


class ConfigError(EntitySyncError):
    """
    Error in dataset or system configuration.

    Raised when:
    - Configuration file or URL cannot be loaded
    - Required configuration values are not set
    - A dataset has no mapping and no implicit mapping can be inferred
    """

    category = BAD_PARAMETER


class UnsupportedParameterError(EntitySyncError):
    """
    Error for request parameters that are reserved but not supported.

    Raised when:
    - A read request passes a limit
    """

    category = BAD_PARAMETER


class WarehouseConnectionError(EntitySyncError):
    """
    Error connecting to the warehouse or keeping a session alive.

    Raised when:
    - Authentication fails (bad private key, unknown user)
    - The warehouse session expired (errno 390112 / 390114)
    """

    def __init__(
        self,
        message: str,
        errno: Optional[int] = None,
        session_expired: bool = False,
    ):
        super().__init__(message)
        self.errno = errno
        self.session_expired = session_expired


class QueryError(EntitySyncError):
    """
    Error executing a warehouse statement.

    Raised when:
    - A DDL, COPY, MERGE or SELECT statement fails
    - A result has an unexpected shape
    """

    def __init__(self, message: str, sql: Optional[str] = None, errno: Optional[int] = None):
        super().__init__(message)
        self.sql = sql
        self.errno = errno


class StagingError(EntitySyncError):
    """
    Error writing or uploading a staging file.

    Raised when:
    - The temporary file cannot be written
    - PUT into the stage fails
    """
    pass


class MemoryHeadroomError(EntitySyncError):
    """
    Request rejected because process memory headroom is too low.

    Raised when:
    - cgroup memory.max - memory.current is below the configured minimum
    """
    pass


def error_category(exc: BaseException) -> str:
    """Map an exception to 'bad_parameter' or 'internal'."""
    return getattr(exc, "category", INTERNAL)

"""
Snowflake connection provider and per-request warehouse sessions.
"""

import base64
import binascii
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import snowflake.connector
from cryptography.hazmat.primitives import serialization

from ..core.exceptions import ConfigError, QueryError, WarehouseConnectionError
from .statements import session_setup


logger = logging.getLogger(__name__)

# Snowflake: session token expired / master token expired
SESSION_EXPIRED_ERRNOS = (390112, 390114)


def is_session_expired(error: BaseException) -> bool:
    """Check whether a driver error means the session must be rebuilt."""
    return getattr(error, "errno", None) in SESSION_EXPIRED_ERRNOS


def translate_error(error: BaseException, statement: str) -> Exception:
    """Map a driver error to WarehouseConnectionError (expired session) or QueryError."""
    errno = getattr(error, "errno", None)
    if is_session_expired(error):
        return WarehouseConnectionError(str(error), errno=errno, session_expired=True)
    return QueryError(f"Statement failed: {error}", sql=statement, errno=errno)


def load_private_key(encoded: str):
    """
    Decode a base64 encoded DER PKCS8 private key.

    Args:
        encoded: Base64 (standard alphabet) of the DER bytes

    Returns:
        Private key object accepted by snowflake.connector.connect

    Raises:
        ConfigError: if the value is not valid base64 or not a PKCS8 key
    """
    try:
        der = base64.b64decode(encoded, validate=True)
        return serialization.load_der_private_key(der, password=None)
    except (binascii.Error, ValueError, TypeError) as e:
        raise ConfigError(f"snowflake_private_key is not a base64 DER PKCS8 key: {e}") from e


def encode_private_key(pem: bytes, passphrase: Optional[bytes] = None) -> str:
    """Convert a PEM private key to the base64 DER PKCS8 form used in config."""
    key = serialization.load_pem_private_key(pem, password=passphrase)
    der = key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return base64.b64encode(der).decode("ascii")


class ConnectionProvider(ABC):
    """
    Abstract source of warehouse connections.

    Each call to connect() returns a new, ready-to-use DB-API connection.
    """

    @abstractmethod
    def connect(self) -> Any:
        """Open a new connection."""
        pass

    def close(self) -> None:
        """Release provider resources. Optional."""
        pass


class SnowflakeConnectionProvider(ConnectionProvider):
    """
    Opens Snowflake connections with key-pair (JWT) authentication.
    """

    def __init__(
        self,
        account: str,
        user: str,
        private_key: Any,
        warehouse: str,
        database: str,
        schema: str,
        role: Optional[str] = None,
        login_timeout: int = 60,
        network_timeout: int = 60,
    ):
        self.params: Dict[str, Any] = {
            "account": account,
            "user": user,
            "authenticator": "SNOWFLAKE_JWT",
            "private_key": private_key,
            "warehouse": warehouse,
            "database": database,
            "schema": schema,
            "client_session_keep_alive": True,
            "login_timeout": login_timeout,
            "network_timeout": network_timeout,
        }
        if role:
            self.params["role"] = role

    @classmethod
    def from_system_config(cls, system_config: Dict[str, Any]) -> "SnowflakeConnectionProvider":
        """Build a provider from the validated system_config block."""
        return cls(
            account=system_config["snowflake_account"],
            user=system_config["snowflake_user"],
            private_key=load_private_key(system_config["snowflake_private_key"]),
            warehouse=system_config["snowflake_warehouse"],
            database=system_config["snowflake_db"],
            schema=system_config["snowflake_schema"],
            role=system_config.get("snowflake_role"),
        )

    def connect(self) -> Any:
        logger.info(
            f"Connecting to Snowflake account {self.params['account']} as {self.params['user']}"
        )
        try:
            conn = snowflake.connector.connect(**self.params)
        except snowflake.connector.errors.Error as e:
            raise WarehouseConnectionError(
                f"Failed to connect to Snowflake: {e}",
                errno=getattr(e, "errno", None),
                session_expired=is_session_expired(e),
            ) from e

        try:
            cursor = conn.cursor()
            try:
                for statement in session_setup():
                    cursor.execute(statement)
            finally:
                cursor.close()
        except snowflake.connector.errors.Error as e:
            conn.close()
            raise WarehouseConnectionError(
                f"Failed to set up Snowflake session: {e}",
                errno=getattr(e, "errno", None),
            ) from e
        return conn


class WarehouseSession:
    """
    Handle to the connection used by one request.

    The connection reference can be swapped by reconnect(); callers always
    go through .connection so a retried operation uses the new one.
    """

    def __init__(self, provider: ConnectionProvider):
        self.provider = provider
        self.connection = provider.connect()
        self.generation = 0

    def reconnect(self) -> None:
        """Open a fresh connection and swap it in, closing the old one."""
        old = self.connection
        self.connection = self.provider.connect()
        self.generation += 1
        logger.info(f"Warehouse session reconnected (generation {self.generation})")
        try:
            old.close()
        except snowflake.connector.errors.Error as e:
            logger.debug(f"Ignoring error closing expired connection: {e}")

    def close(self) -> None:
        try:
            self.connection.close()
        except snowflake.connector.errors.Error as e:
            logger.warning(f"Failed to close warehouse connection: {e}")

    def __enter__(self) -> "WarehouseSession":
        return self

    def __exit__(self, *args) -> None:
        self.close()

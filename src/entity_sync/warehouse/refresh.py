"""
Session refresh guard.

Snowflake sessions expire (errno 390112) after hours of idle keep-alive.
Every warehouse operation runs through the guard: on a session-expired
error the session is rebuilt under a lock and the operation is retried
exactly once. Any other error, or a second failure, propagates unchanged.
"""

import functools
import logging
import threading
from typing import Any, Callable, TypeVar

from ..core.exceptions import WarehouseConnectionError


logger = logging.getLogger(__name__)

T = TypeVar("T")


class SessionRefreshGuard:
    """
    Bounded (max one retry) reconnect-and-retry wrapper.

    One guard is shared by the process; its lock makes sure at most one
    reconnection runs at a time.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self.reconnects = 0

    def call(self, session, operation: Callable[[], T], name: str = "operation") -> T:
        """
        Run operation, retrying once after reconnect if the session expired.

        Args:
            session: WarehouseSession whose connection the operation uses
            operation: Callable taking no arguments
            name: Name for logging

        Returns:
            The operation result
        """
        generation = session.generation
        try:
            return operation()
        except WarehouseConnectionError as e:
            if not e.session_expired:
                raise
            logger.warning(f"{name}: warehouse session expired (errno {e.errno}), reconnecting")

        with self._lock:
            # another caller may already have replaced this session
            if session.generation == generation:
                session.reconnect()
                self.reconnects += 1

        logger.debug(f"{name}: retrying after reconnect")
        return operation()


def with_session_refresh(method: Callable[..., T]) -> Callable[..., T]:
    """
    Decorator for methods of objects carrying .guard and .session.

    Example:
        >>> class Client:
        ...     @with_session_refresh
        ...     def load(self, files): ...
    """

    @functools.wraps(method)
    def wrapper(self, *args: Any, **kwargs: Any) -> T:
        return self.guard.call(
            self.session,
            lambda: method(self, *args, **kwargs),
            name=method.__name__,
        )

    return wrapper

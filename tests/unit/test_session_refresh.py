"""
Unit tests for the session refresh guard.
"""

import threading

import pytest

from entity_sync.core.exceptions import QueryError, WarehouseConnectionError
from entity_sync.warehouse.refresh import SessionRefreshGuard, with_session_refresh


class StubSession:
    def __init__(self):
        self.generation = 0
        self.reconnects = 0

    def reconnect(self):
        self.reconnects += 1
        self.generation += 1


def expired():
    return WarehouseConnectionError("session expired", errno=390112, session_expired=True)


class Flaky:
    """Operation failing with the given errors before succeeding."""

    def __init__(self, *errors):
        self.errors = list(errors)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


class TestSessionRefreshGuard:
    """Tests for SessionRefreshGuard.call."""

    def test_success_no_reconnect(self):
        session = StubSession()
        operation = Flaky()

        assert SessionRefreshGuard().call(session, operation) == "ok"
        assert operation.calls == 1
        assert session.reconnects == 0

    def test_expired_retried_once(self):
        session = StubSession()
        guard = SessionRefreshGuard()
        operation = Flaky(expired())

        assert guard.call(session, operation) == "ok"
        assert operation.calls == 2
        assert session.reconnects == 1
        assert guard.reconnects == 1

    def test_other_error_propagates(self):
        session = StubSession()
        operation = Flaky(QueryError("bad sql"))

        with pytest.raises(QueryError):
            SessionRefreshGuard().call(session, operation)
        assert operation.calls == 1
        assert session.reconnects == 0

    def test_connection_error_not_expired_propagates(self):
        session = StubSession()
        operation = Flaky(WarehouseConnectionError("auth failed", errno=390100))

        with pytest.raises(WarehouseConnectionError):
            SessionRefreshGuard().call(session, operation)
        assert session.reconnects == 0

    def test_second_failure_propagates(self):
        """Test the retry is bounded to one attempt."""
        session = StubSession()
        operation = Flaky(expired(), expired())

        with pytest.raises(WarehouseConnectionError):
            SessionRefreshGuard().call(session, operation)
        assert operation.calls == 2
        assert session.reconnects == 1

    def test_already_refreshed_session_not_reconnected(self):
        session = StubSession()

        def operation():
            if session.generation == 0:
                # another caller refreshes while this one is failing
                session.generation = 1
                raise expired()
            return "ok"

        assert SessionRefreshGuard().call(session, operation) == "ok"
        assert session.reconnects == 0

    def test_concurrent_failures_single_reconnect(self):
        session = StubSession()
        guard = SessionRefreshGuard()
        barrier = threading.Barrier(5)
        results = []

        def operation():
            if session.generation == 0:
                barrier.wait(timeout=5)
                raise expired()
            return "ok"

        def worker():
            results.append(guard.call(session, operation))

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)

        assert results == ["ok"] * 5
        assert session.reconnects == 1


class TestWithSessionRefresh:
    """Tests for the with_session_refresh decorator."""

    class Client:
        def __init__(self, operation):
            self.guard = SessionRefreshGuard()
            self.session = StubSession()
            self.operation = operation

        @with_session_refresh
        def run(self, suffix=""):
            """Run the operation."""
            return self.operation() + suffix

    def test_retries_method(self):
        client = self.Client(Flaky(expired()))

        assert client.run(suffix="!") == "ok!"
        assert client.session.reconnects == 1

    def test_preserves_metadata(self):
        assert self.Client.run.__name__ == "run"
        assert self.Client.run.__doc__ == "Run the operation."

"""
Unit tests for the error taxonomy.
"""

import pytest

from entity_sync.core.exceptions import (
    BAD_PARAMETER,
    INTERNAL,
    ConfigError,
    DecodeError,
    MemoryHeadroomError,
    QueryError,
    StagingError,
    UnsupportedParameterError,
    WarehouseConnectionError,
    error_category,
)


class TestErrorCategory:
    """Tests for error_category."""

    @pytest.mark.parametrize("error,category", [
        (DecodeError("bad json", position=3), BAD_PARAMETER),
        (ConfigError("no mapping"), BAD_PARAMETER),
        (UnsupportedParameterError("limit"), BAD_PARAMETER),
        (WarehouseConnectionError("expired", errno=390112, session_expired=True), INTERNAL),
        (QueryError("failed", sql="SELECT 1", errno=1003), INTERNAL),
        (StagingError("put failed"), INTERNAL),
        (MemoryHeadroomError("low memory"), INTERNAL),
        (ValueError("other"), INTERNAL),
    ])
    def test_categories(self, error, category):
        assert error_category(error) == category

    def test_fields(self):
        error = QueryError("failed", sql="SELECT 1", errno=1003)

        assert error.sql == "SELECT 1"
        assert error.errno == 1003
        assert DecodeError("bad", position=7).position == 7

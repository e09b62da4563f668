"""
Unit tests for the memory headroom guard.
"""

import pytest

from entity_sync.core.exceptions import MemoryHeadroomError
from entity_sync.memory_guard import MB, MemoryGuard, read_memory_stats


@pytest.fixture
def cgroup(tmp_path):
    """Write a limit/usage file pair and return it as a files sequence."""
    def make(limit, current):
        limit_file = tmp_path / "memory.max"
        usage_file = tmp_path / "memory.current"
        limit_file.write_text(f"{limit}\n")
        usage_file.write_text(f"{current}\n")
        return ((str(limit_file), str(usage_file)),)
    return make


class TestReadMemoryStats:
    """Tests for read_memory_stats."""

    def test_reads_pair(self, cgroup):
        stats = read_memory_stats(cgroup(1000 * MB, 400 * MB))

        assert stats.limit == 1000 * MB
        assert stats.headroom == 600 * MB

    def test_unlimited(self, cgroup):
        assert read_memory_stats(cgroup("max", 400 * MB)) is None

    def test_missing_files(self, tmp_path):
        assert read_memory_stats(((str(tmp_path / "a"), str(tmp_path / "b")),)) is None

    def test_falls_back_to_next_pair(self, cgroup, tmp_path):
        files = ((str(tmp_path / "missing"), str(tmp_path / "missing")),) + cgroup(10, 5)

        assert read_memory_stats(files).headroom == 5


class TestMemoryGuard:
    """Tests for MemoryGuard.check."""

    def test_enough_headroom(self, cgroup):
        stats = MemoryGuard(headroom_mb=500, files=cgroup(1000 * MB, 400 * MB)).check()

        assert stats.headroom == 600 * MB

    def test_low_headroom(self, cgroup):
        guard = MemoryGuard(headroom_mb=500, files=cgroup(1000 * MB, 600 * MB))

        with pytest.raises(MemoryHeadroomError):
            guard.check()

    def test_no_cgroup(self):
        assert MemoryGuard(files=()).check() is None

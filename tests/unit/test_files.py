"""
Unit tests for temporary staging files.
"""

import gzip
import itertools
import json

import pytest

from entity_sync.core.models import Entity
from entity_sync.pipeline import files
from entity_sync.pipeline.files import staging_file, write_gzipped_ndjson
from entity_sync.wire.namespaces import NamespaceContext


class TestStagingFile:
    """Tests for the staging_file context manager."""

    def test_removed_on_exit(self, tmp_path):
        with staging_file("people", tmp_path) as path:
            assert path.exists()
            assert path.parent == tmp_path
            assert path.name.startswith("people_")
            assert path.name.endswith(".ndjson.gz")

        assert not path.exists()

    def test_removed_on_error(self, tmp_path):
        with pytest.raises(RuntimeError):
            with staging_file("people", tmp_path) as path:
                raise RuntimeError("boom")

        assert not path.exists()
        assert list(tmp_path.iterdir()) == []

    def test_prefix_sanitized(self, tmp_path):
        with staging_file("my.data/set", tmp_path) as path:
            assert path.name.startswith("my_data_set_")

    def test_names_sort_in_flush_order(self, tmp_path, monkeypatch):
        """Test later files sort after earlier ones even across digit counts."""
        clock = itertools.count(start=9)
        monkeypatch.setattr(files.time, "time_ns", lambda: next(clock))

        names = []
        for _ in range(3):
            with staging_file("people", tmp_path) as path:
                names.append(path.name)

        assert names == sorted(names)


class TestWriteGzippedNdjson:
    """Tests for write_gzipped_ndjson."""

    def test_writes_expanded_lines(self, tmp_path):
        context = NamespaceContext({"x": "http://example.io/x/"})
        path = tmp_path / "batch.ndjson.gz"

        count = write_gzipped_ndjson(path, [Entity(id="x:1"), Entity(id="x:2", deleted=True)], context)

        with gzip.open(path, "rt", encoding="utf-8") as f:
            lines = [json.loads(line) for line in f]
        assert count == 2
        assert [line["id"] for line in lines] == ["http://example.io/x/1", "http://example.io/x/2"]
        assert lines[1]["deleted"] is True

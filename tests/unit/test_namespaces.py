"""
Unit tests for the namespace context.
"""

import pytest

from entity_sync.core.exceptions import DecodeError
from entity_sync.wire.namespaces import NamespaceContext


@pytest.fixture
def context():
    return NamespaceContext({"x": "http://example.io/x/", "_": "http://example.io/default/"})


class TestResolve:
    """Tests for NamespaceContext.resolve."""

    def test_prefixed_value_unchanged(self, context):
        assert context.resolve("x:1") == "x:1"

    def test_known_uri_compacted(self, context):
        assert context.resolve("http://example.io/x/1") == "x:1"

    def test_hash_namespace(self, context):
        """Test URIs are split at the last # before the last /."""
        resolved = context.resolve("http://example.io/vocab#name")

        prefix, local = resolved.split(":")
        assert local == "name"
        assert context.namespaces[prefix] == "http://example.io/vocab#"

    def test_https_uri(self, context):
        resolved = context.resolve("https://secure.io/a/b")

        assert resolved.endswith(":b")
        assert context.expand(resolved) == "https://secure.io/a/b"

    def test_bare_value_uses_default(self, context):
        assert context.resolve("1") == "_:1"

    def test_empty_value_rejected(self, context):
        with pytest.raises(DecodeError):
            context.resolve("")

    def test_idempotent(self, context):
        """Test resolving a value twice, or via its expansion, gives the same id."""
        once = context.resolve("http://other.io/y/7")

        assert context.resolve(once) == once
        assert context.resolve(context.expand(once)) == once


class TestPrefixFor:
    """Tests for prefix minting."""

    def test_minted_prefix_reused(self):
        context = NamespaceContext()

        first = context.prefix_for("http://a.io/")
        second = context.prefix_for("http://a.io/")

        assert first == second == "ns0"

    def test_minted_prefix_skips_declared(self):
        """Test a minted prefix never overwrites a declared one."""
        context = NamespaceContext({"ns1": "http://declared.io/"})

        prefix = context.prefix_for("http://new.io/")

        assert prefix == "ns2"
        assert context.namespaces["ns1"] == "http://declared.io/"

    def test_first_prefix_wins_reverse_lookup(self):
        context = NamespaceContext()
        context.add("a", "http://same.io/")
        context.add("b", "http://same.io/")

        assert context.prefix_for("http://same.io/") == "a"


class TestExpand:
    """Tests for NamespaceContext.expand."""

    def test_expand_prefixed(self, context):
        assert context.expand("x:1") == "http://example.io/x/1"

    def test_expand_bare(self, context):
        assert context.expand("1") == "http://example.io/default/1"

    def test_uri_unchanged(self, context):
        assert context.expand("http://example.io/x/1") == "http://example.io/x/1"

    def test_unknown_prefix_unchanged(self, context):
        assert context.expand("zz:1") == "zz:1"

    def test_to_dict_is_copy(self, context):
        copy = context.to_dict()
        copy["new"] = "http://new.io/"

        assert "new" not in context.namespaces

"""
Namespace context for the entity wire format.

Ids and property/reference keys arrive either as ``prefix:local`` or as full
``http(s)://.../local`` URIs. Both resolve to the same canonical
``prefix:local`` form; unseen expansions mint synthetic prefixes
(``ns0``, ``ns1``, ...) that stay valid for the rest of the stream.
"""

import logging
from typing import Dict, Optional

from ..core.exceptions import DecodeError


logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "_"
URI_SCHEMES = ("http://", "https://")


class NamespaceContext:
    """
    Prefix to URI-expansion map with a reverse index.

    One instance is scoped to one stream.
    """

    def __init__(self, namespaces: Optional[Dict[str, str]] = None):
        self.namespaces: Dict[str, str] = {}
        self._reverse: Dict[str, str] = {}
        for prefix, expansion in (namespaces or {}).items():
            self.add(prefix, expansion)

    def add(self, prefix: str, expansion: str) -> None:
        """Register a prefix; the first prefix seen for an expansion wins the reverse lookup."""
        self.namespaces[prefix] = expansion
        self._reverse.setdefault(expansion, prefix)

    def prefix_for(self, expansion: str) -> str:
        """Return the prefix of an expansion, minting a synthetic one if unseen."""
        prefix = self._reverse.get(expansion)
        if prefix is not None:
            return prefix

        index = len(self.namespaces)
        prefix = f"ns{index}"
        while prefix in self.namespaces:
            index += 1
            prefix = f"ns{index}"

        logger.debug(f"Minted namespace prefix {prefix} for {expansion}")
        self.add(prefix, expansion)
        return prefix

    def resolve(self, value: str) -> str:
        """
        Resolve an id or key to its canonical prefix:local form.

        Raises:
            DecodeError: value is empty, or bare without a default namespace
        """
        if not value:
            raise DecodeError("empty value cannot be resolved to a namespace")

        if value.startswith(URI_SCHEMES):
            cut = value.rfind("#")
            if cut < 0:
                cut = value.rfind("/")
            expansion, local = value[: cut + 1], value[cut + 1 :]
            return f"{self.prefix_for(expansion)}:{local}"

        if ":" not in value:
            if DEFAULT_PREFIX not in self.namespaces:
                raise DecodeError(
                    f"no default namespace '{DEFAULT_PREFIX}' declared for bare value {value!r}"
                )
            return f"{DEFAULT_PREFIX}:{value}"

        return value

    def expand(self, curie: str) -> str:
        """
        Expand a prefix:local value to a full URI.

        Values that are already URIs, or whose prefix is unknown, are
        returned unchanged.
        """
        if curie.startswith(URI_SCHEMES):
            return curie
        prefix, sep, local = curie.partition(":")
        if not sep:
            prefix, local = DEFAULT_PREFIX, curie
        expansion = self.namespaces.get(prefix)
        if expansion is None:
            return curie
        return expansion + local

    def to_dict(self) -> Dict[str, str]:
        return dict(self.namespaces)

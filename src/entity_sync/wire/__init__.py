"""
Entity wire format: streaming parser, namespace context and serializers.
"""

from .namespaces import NamespaceContext
from .parser import EntityParser, parse_entities
from .writer import (
    EntityStreamWriter,
    entity_from_dict,
    entity_to_dict,
    staged_line,
    write_staged_lines,
)

__all__ = [
    "NamespaceContext",
    "EntityParser",
    "parse_entities",
    "EntityStreamWriter",
    "entity_from_dict",
    "entity_to_dict",
    "staged_line",
    "write_staged_lines",
]

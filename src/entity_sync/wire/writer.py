"""
Serializers for the entity wire format.

Two shapes are produced:
- staged lines: one JSON object per line, ids/keys/refs expanded to full
  URIs, always carrying recorded and deleted (gzip NDJSON staged for COPY)
- response pages: a JSON array opening with @context and closing with an
  @continuation marker
"""

import json
import logging
from typing import Any, Callable, Dict, IO, Iterable, Optional

from ..core.models import CONTEXT_ID, CONTINUATION_ID, Entity
from .namespaces import NamespaceContext


logger = logging.getLogger(__name__)


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def entity_to_dict(
    entity: Entity,
    expand: Optional[Callable[[str], str]] = None,
    always_flags: bool = False,
) -> Dict[str, Any]:
    """
    Convert an entity to its JSON object form.

    Args:
        entity: Entity to convert
        expand: Optional function applied to ids, keys and reference values
        always_flags: Emit recorded and deleted even when they hold defaults

    Returns:
        Dict with keys in wire order: id, recorded, deleted, refs, props
    """
    name = expand or (lambda value: value)

    data: Dict[str, Any] = {"id": name(entity.id)}
    if always_flags or entity.recorded:
        data["recorded"] = entity.recorded
    if always_flags or entity.deleted:
        data["deleted"] = entity.deleted

    refs = {}
    for key in sorted(entity.references):
        value = entity.references[key]
        if isinstance(value, list):
            refs[name(key)] = [name(v) for v in value]
        else:
            refs[name(key)] = name(value)
    data["refs"] = refs

    props = {}
    for key in sorted(entity.properties):
        props[name(key)] = _value_to_json(entity.properties[key], expand, always_flags)
    data["props"] = props
    return data


def _value_to_json(value: Any, expand, always_flags: bool) -> Any:
    if isinstance(value, Entity):
        return entity_to_dict(value, expand, always_flags)
    if isinstance(value, list):
        return [_value_to_json(v, expand, always_flags) for v in value]
    return value


def entity_from_dict(data: Dict[str, Any]) -> Entity:
    """
    Build an entity from a decoded JSON object without namespace resolution.

    Used for raw-column rows, which are already stored in expanded form.
    """
    props = {}
    for key, value in (data.get("props") or {}).items():
        if value is None:
            continue
        props[key] = _value_from_json(value)
    refs = {}
    for key, value in (data.get("refs") or {}).items():
        if value is not None:
            refs[key] = value
    return Entity(
        id=str(data.get("id", "")),
        recorded=int(data.get("recorded") or 0),
        deleted=bool(data.get("deleted") or False),
        properties=props,
        references=refs,
    )


def _value_from_json(value: Any) -> Any:
    if isinstance(value, dict) and "id" in value:
        return entity_from_dict(value)
    if isinstance(value, list):
        return [_value_from_json(v) for v in value]
    return value


def staged_line(entity: Entity, context: NamespaceContext) -> str:
    """Render one entity as a staged NDJSON line (without newline)."""
    return _dumps(entity_to_dict(entity, expand=context.expand, always_flags=True))


def write_staged_lines(out: IO[str], entities: Iterable[Entity], context: NamespaceContext) -> int:
    """
    Write entities as newline delimited JSON.

    Returns:
        Number of lines written
    """
    count = 0
    for entity in entities:
        out.write(staged_line(entity, context))
        out.write("\n")
        count += 1
    return count


class EntityStreamWriter:
    """
    Writes a response page in wire format.

    Example:
        >>> writer = EntityStreamWriter(sys.stdout)
        >>> writer.write_entity(entity)
        >>> writer.close(token="abc")
    """

    def __init__(self, out: IO[str], namespaces: Optional[Dict[str, str]] = None):
        self.out = out
        self.count = 0
        self.out.write("[\n")
        self.out.write(_dumps({"id": CONTEXT_ID, "namespaces": namespaces or {}}))

    def write_entity(self, entity: Entity) -> None:
        self.out.write(",\n")
        self.out.write(_dumps(entity_to_dict(entity)))
        self.count += 1

    def close(self, token: str = "") -> None:
        self.out.write(",\n")
        self.out.write(_dumps({"id": CONTINUATION_ID, "token": token}))
        self.out.write("]\n")

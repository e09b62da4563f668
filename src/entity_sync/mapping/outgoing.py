"""
Row to entity mapping for reads.
"""

import datetime
import decimal
import logging
from typing import Any, Callable, Dict, List, Optional

from ..core.exceptions import ConfigError, QueryError
from ..core.models import Entity, OutgoingMappingConfig, PropertyConstructor


logger = logging.getLogger(__name__)


def _json_value(value: Any) -> Any:
    """Convert driver values (Decimal, datetime, bytes) to JSON friendly values."""
    if isinstance(value, decimal.Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def apply_pattern(pattern: str, value: Any) -> str:
    """Fill a uri_value_pattern like http://x/id/{value}."""
    if not pattern:
        return str(value)
    return pattern.replace("{value}", str(value))


def _arg(args: List[str], index: int, operation: str) -> str:
    if len(args) <= index:
        raise ConfigError(f"construction '{operation}' needs at least {index + 1} arguments")
    return args[index]


def _text(value: Any) -> str:
    return "" if value is None else str(value)


def _replace(item, args):
    return _text(item.get(_arg(args, 0, "replace"))).replace(
        _arg(args, 1, "replace"), _arg(args, 2, "replace")
    )


def _concat(item, args):
    return "".join(_text(item.get(name)) for name in args)


def _split(item, args):
    return _text(item.get(_arg(args, 0, "split"))).split(_arg(args, 1, "split"))


def _trim(item, args):
    return _text(item.get(_arg(args, 0, "trim"))).strip()


def _tolower(item, args):
    return _text(item.get(_arg(args, 0, "tolower"))).lower()


def _toupper(item, args):
    return _text(item.get(_arg(args, 0, "toupper"))).upper()


def _literal(item, args):
    return _arg(args, 0, "literal")


CONSTRUCTIONS: Dict[str, Callable[[Dict[str, Any], List[str]], Any]] = {
    "replace": _replace,
    "concat": _concat,
    "split": _split,
    "trim": _trim,
    "tolower": _tolower,
    "toupper": _toupper,
    "literal": _literal,
}


class _Row(dict):
    """Row values with case-insensitive lookup (Snowflake upper-cases unquoted names)."""

    def get(self, key, default=None):
        if key in self:
            return self[key]
        lowered = str(key).lower()
        for name, value in self.items():
            if name.lower() == lowered:
                return value
        return default

    def put(self, key, value):
        lowered = str(key).lower()
        for name in self:
            if name.lower() == lowered:
                key = name
                break
        self[key] = value


class RowMapper:
    """
    Maps result rows to entities using an outgoing mapping config.

    Constructions run first and write their result back into the row, so
    mappings (and map_all) see the constructed values.
    """

    def __init__(self, config: Optional[OutgoingMappingConfig]):
        self.config = config or OutgoingMappingConfig()
        for construction in self.config.constructions:
            if construction.operation not in CONSTRUCTIONS:
                raise ConfigError(f"unknown construction operation '{construction.operation}'")

    def _construct(self, row: _Row, construction: PropertyConstructor) -> None:
        row.put(construction.property, CONSTRUCTIONS[construction.operation](row, construction.args))

    def map_row(self, row: Dict[str, Any]) -> Entity:
        """Map one row (column name -> value) to an entity."""
        item = _Row((name, _json_value(value)) for name, value in row.items())
        for construction in self.config.constructions:
            self._construct(item, construction)

        base_uri = self.config.base_uri
        entity = Entity(id="")

        if self.config.map_all:
            for name, value in item.items():
                if value is not None:
                    entity.properties[base_uri + name] = value

        for mapping in self.config.property_mappings:
            value = item.get(mapping.property)
            if value is None:
                value = mapping.default_value
            if value is None:
                if mapping.required:
                    raise QueryError(f"required column {mapping.property} is null")
                continue

            if mapping.is_identity:
                entity.id = apply_pattern(mapping.uri_value_pattern, value)
            elif mapping.is_reference:
                key = base_uri + (mapping.entity_property or mapping.property)
                if isinstance(value, list):
                    entity.references[key] = [apply_pattern(mapping.uri_value_pattern, v) for v in value]
                else:
                    entity.references[key] = apply_pattern(mapping.uri_value_pattern, value)
            elif mapping.is_recorded:
                entity.recorded = int(value)
            elif mapping.is_deleted:
                entity.deleted = bool(value)
            else:
                entity.properties[base_uri + (mapping.entity_property or mapping.property)] = value

        return entity

"""
Column mapping compiler.

Turns a dataset's property mappings into the positional SQL fragments used
by the load statements (COPY column lists, DDL, extraction expressions and
MERGE assignments) and into the projection used by reads.
"""

from dataclasses import dataclass, field
from typing import List

from ..core.models import DatasetDefinition


DEFAULT_DATATYPE = "string"

# names accepted in mapping configs that Snowflake spells differently
_TYPE_ALIASES = {
    "string": "varchar",
    "str": "varchar",
    "text": "varchar",
    "int": "integer",
    "long": "integer",
    "bool": "boolean",
    "double": "float",
}


def sql_type(datatype: str) -> str:
    """Return the warehouse type for a mapping datatype (defaults to varchar)."""
    name = (datatype or DEFAULT_DATATYPE).strip()
    return _TYPE_ALIASES.get(name.lower(), name)


@dataclass
class ColumnMappings:
    """
    Aligned SQL fragments, one entry per mapped column in configuration order.

    Attributes:
        columns: Target column names
        column_types: DDL fragments ("col type")
        extractions: Expressions over a staged line ($1), aliased to the column
        assignments: MERGE update fragments ("latest.col = src.col")
        source_columns: MERGE insert values ("src.col")
    """
    columns: List[str] = field(default_factory=list)
    column_types: List[str] = field(default_factory=list)
    extractions: List[str] = field(default_factory=list)
    assignments: List[str] = field(default_factory=list)
    source_columns: List[str] = field(default_factory=list)

    def add(self, column: str, column_type: str, extraction: str) -> None:
        self.columns.append(column)
        self.column_types.append(f"{column} {column_type}")
        self.extractions.append(f"{extraction} as {column}")
        self.assignments.append(f"latest.{column} = src.{column}")
        self.source_columns.append(f"src.{column}")


def compile_columns(definition: DatasetDefinition) -> ColumnMappings:
    """
    Compile the incoming mapping of a dataset.

    Without property mappings the whole staged line is kept in a single
    variant column named entity.
    """
    result = ColumnMappings()
    incoming = definition.incoming_mapping_config
    if incoming is None or not incoming.property_mappings:
        result.add("entity", "variant", "$1::variant")
        return result

    for mapping in incoming.property_mappings:
        t = sql_type(mapping.datatype)
        source_map = "refs" if mapping.is_reference else "props"
        expression = mapping.custom.get("expression") if mapping.custom else None

        if expression:
            # a literal SQL expression, e.g. "now()::timestamp" or "$1:props:x::string"
            result.add(mapping.property, t, str(expression))
        elif mapping.is_recorded:
            result.add(mapping.property, "INTEGER", "$1:recorded::integer")
        elif mapping.is_deleted:
            result.add(mapping.property, "BOOLEAN", "$1:deleted::boolean")
        elif mapping.is_identity:
            result.add(mapping.property, t, f"$1:id::{t}")
        else:
            result.add(
                mapping.property,
                t,
                f'$1:{source_map}:"{mapping.entity_property}"::{t}',
            )
    return result


def projection_columns(definition: DatasetDefinition) -> str:
    """
    Return the SELECT list for reads.

    Raw-column datasets select the JSON column, map_all (or no outgoing
    mapping) selects everything, otherwise the mapped columns in order.
    """
    if definition.raw_column:
        return definition.raw_column

    outgoing = definition.outgoing_mapping_config
    if outgoing is None or outgoing.map_all or not outgoing.property_mappings:
        return "*"
    return ", ".join(m.property for m in outgoing.property_mappings)

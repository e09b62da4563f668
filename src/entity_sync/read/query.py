"""
Paged reads with since tokens.

With a since column, a read first captures MAX(since_column) and then
selects only rows up to that value. The captured value becomes the next
token, so rows committed while a page is being read are neither part of
the page nor skipped by the next one.
"""

import base64
import binascii
import datetime
import decimal
import json
import logging
import re
from typing import Any, Callable, Iterator, List, Optional

import snowflake.connector

from ..core.exceptions import DecodeError, QueryError, UnsupportedParameterError
from ..core.models import DatasetDefinition, Entity
from ..mapping.columns import projection_columns
from ..mapping.outgoing import RowMapper
from ..metrics import Metrics, NullMetrics
from ..warehouse import statements as sql
from ..warehouse.connection import translate_error
from ..wire.writer import entity_from_dict


logger = logging.getLogger(__name__)

_NUMERIC_LITERAL = re.compile(r"-?[0-9]+(\.[0-9]+)?([eE][+-]?[0-9]+)?\Z")
_STRING_LITERAL = re.compile(r"'(?:[^']|'')*'\Z")


def sql_literal(value: Any) -> str:
    """
    Render a since-column value as a SQL literal.

    Numbers stay bare, timestamps and strings are single quoted.
    """
    if isinstance(value, bool):
        raise QueryError(f"unsupported since column value {value!r}")
    if isinstance(value, (int, float, decimal.Decimal)):
        return str(value)
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return sql.quote_literal(value.isoformat())
    return sql.quote_literal(str(value))


def encode_token(literal: str) -> str:
    """Encode a SQL literal as an opaque continuation token."""
    return base64.urlsafe_b64encode(literal.encode("utf-8")).decode("ascii").rstrip("=")


def decode_token(token: str) -> str:
    """
    Decode a continuation token back to its SQL literal.

    Raises:
        DecodeError: if the token is not one produced by encode_token
    """
    padded = token + "=" * (-len(token) % 4)
    try:
        literal = base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError) as e:
        raise DecodeError(f"invalid since token '{token}': {e}") from e
    if not (_NUMERIC_LITERAL.match(literal) or _STRING_LITERAL.match(literal)):
        raise DecodeError(f"invalid since token '{token}'")
    return literal


class EntityPage:
    """
    Entities of one read, decoded lazily from an open cursor.

    The token is known before iteration starts.
    """

    def __init__(
        self,
        token: str,
        cursor=None,
        columns: Optional[List[str]] = None,
        decode: Optional[Callable[[dict], Optional[Entity]]] = None,
        metrics: Optional[Metrics] = None,
        dataset: str = "",
        release: Optional[Callable[[], None]] = None,
        statement: str = "",
    ):
        self.token = token
        self.count = 0
        self._cursor = cursor
        self._columns = columns or []
        self._decode = decode
        self._metrics = metrics or NullMetrics()
        self._dataset = dataset
        self._release = release
        self._statement = statement

    def _rows(self) -> Iterator[tuple]:
        # result chunks are fetched lazily, so driver errors surface here
        try:
            yield from self._cursor
        except snowflake.connector.errors.Error as e:
            raise translate_error(e, self._statement) from e

    def __iter__(self) -> Iterator[Entity]:
        try:
            if self._cursor is None:
                return
            for row in self._rows():
                entity = self._decode(dict(zip(self._columns, row)))
                if entity is None:
                    continue
                self.count += 1
                yield entity
        finally:
            self.close()

    def close(self) -> None:
        """Close the cursor and release the session (idempotent)."""
        try:
            if self._cursor is not None:
                self._cursor.close()
                self._cursor = None
                self._metrics.incr("entities.read", self.count, dataset=self._dataset)
        finally:
            if self._release is not None:
                release, self._release = self._release, None
                release()

    def __enter__(self) -> "EntityPage":
        return self

    def __exit__(self, *args) -> None:
        self.close()


class ReadQuery:
    """
    Builder for one paged read of a dataset.

    Example:
        >>> page = ReadQuery(client, definition).with_since(token).run()
        >>> for entity in page: ...
        >>> page.token
    """

    def __init__(self, client, definition: DatasetDefinition, metrics: Optional[Metrics] = None):
        self.client = client
        self.definition = definition
        self.metrics = metrics or NullMetrics()
        self.since = ""

    def with_since(self, token: Optional[str]) -> "ReadQuery":
        self.since = token or ""
        return self

    def with_limit(self, limit: Any) -> "ReadQuery":
        if limit not in (None, "", 0):
            raise UnsupportedParameterError("limit is not supported")
        return self

    def _decoder(self) -> Callable[[dict], Optional[Entity]]:
        raw_column = self.definition.raw_column
        if raw_column:
            def decode_raw(row: dict) -> Optional[Entity]:
                value = row.get(raw_column)
                if value is None:
                    # result columns come back upper-cased
                    value = next(iter(row.values()), None)
                if value is None:
                    return None
                if isinstance(value, (str, bytes)):
                    try:
                        value = json.loads(value)
                    except ValueError as e:
                        raise QueryError(f"column {raw_column} does not hold JSON: {e}") from e
                return entity_from_dict(value)
            return decode_raw

        mapper = RowMapper(self.definition.outgoing_mapping_config)
        return mapper.map_row

    def run(self, release: Optional[Callable[[], None]] = None) -> EntityPage:
        """
        Run the MAX and SELECT statements and return the open page.

        Args:
            release: Called once when the page is closed
        """
        names = self.client.names(self.definition)
        table = names.qualified
        since_column = self.definition.since_column
        lower = decode_token(self.since) if self.since else None
        upper = None
        token = ""

        if since_column:
            max_value = self.client.query_scalar(sql.max_query(since_column, table, lower))
            if max_value is None:
                # nothing newer than the token
                logger.debug(f"No rows in {table} after {lower}")
                return EntityPage(
                    token=self.since, metrics=self.metrics, dataset=self.definition.name, release=release
                )
            upper = sql_literal(max_value)
            token = encode_token(upper)

        statement = sql.select_query(
            projection_columns(self.definition), table, since_column, lower, upper
        )
        columns, cursor = self.client.query_rows(statement)
        return EntityPage(
            token=token,
            cursor=cursor,
            columns=columns,
            decode=self._decoder(),
            metrics=self.metrics,
            dataset=self.definition.name,
            release=release,
            statement=statement,
        )

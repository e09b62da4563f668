"""
Streaming parser for the entity wire format.

The input is a JSON array whose first element is the ``@context`` entity::

    [{"id": "@context", "namespaces": {"x": "http://x/"}},
     {"id": "x:1", "props": {"x:name": "a"}, "refs": {"x:knows": "x:2"}},
     {"id": "@continuation", "token": "..."}]

Elements are pulled one at a time from the stream, so memory use is bounded
by the largest single entity rather than by the stream.
"""

import codecs
import json
import logging
import re
from typing import Any, Callable, Dict, IO, Iterator, List, Optional, Union

from ..core.exceptions import DecodeError
from ..core.models import CONTEXT_ID, CONTINUATION_ID, Continuation, Entity
from .namespaces import NamespaceContext


logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024
_WHITESPACE = re.compile(r"[ \t\n\r]*")
# what a cut-off literal, number or escape can leave at the end of the buffer
_PARTIAL_TAIL = re.compile(r"[\s\w.+\\-]*")

Element = Union[Entity, Continuation]


class _ArrayReader:
    """Pulls the elements of a top-level JSON array from a byte or text stream."""

    def __init__(self, stream: IO, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self._stream = stream
        self._chunk_size = chunk_size
        self._utf8 = codecs.getincrementaldecoder("utf-8")()
        self._json = json.JSONDecoder()
        self._buf = ""
        self._pos = 0
        self._offset = 0
        self._eof = False
        self._started = False
        self._finished = False
        self._count = 0

    def _fill(self, size: Optional[int] = None) -> bool:
        if self._eof:
            return False
        raw = self._stream.read(size or self._chunk_size)
        chunk = raw
        if isinstance(raw, bytes):
            try:
                chunk = self._utf8.decode(raw, final=not raw)
            except UnicodeDecodeError as e:
                raise DecodeError(f"invalid UTF-8 input: {e.reason}") from e
        if not raw:
            self._eof = True
            return False
        if not chunk:
            # only part of a multi-byte character so far
            return True
        # drop consumed text before growing the buffer
        if self._pos:
            self._offset += self._pos
            self._buf = self._buf[self._pos:]
            self._pos = 0
        self._buf += chunk
        return True

    def _peek(self) -> Optional[str]:
        while True:
            self._pos = _WHITESPACE.match(self._buf, self._pos).end()
            if self._pos < len(self._buf):
                return self._buf[self._pos]
            if not self._fill():
                return None

    def _error(self, message: str) -> DecodeError:
        return DecodeError(f"{message} at offset {self._offset + self._pos}", self._offset + self._pos)

    def _truncated(self, error: json.JSONDecodeError) -> bool:
        """Check whether a decode error may just mean the element is cut off."""
        if error.msg.startswith("Unterminated string"):
            return True
        return _PARTIAL_TAIL.fullmatch(self._buf, error.pos) is not None

    def _decode_value(self) -> Any:
        size = self._chunk_size
        while True:
            try:
                value, end = self._json.raw_decode(self._buf, self._pos)
            except json.JSONDecodeError as e:
                # only an error at the buffered tail can be cured by more input
                if self._truncated(e) and self._fill(size):
                    size *= 2
                    continue
                raise DecodeError(
                    f"malformed JSON: {e.msg} at offset {self._offset + e.pos}",
                    self._offset + e.pos,
                ) from e
            self._pos = end
            return value

    def next_element(self) -> Optional[Any]:
        """Return the next decoded array element, or None after the closing bracket."""
        if self._finished:
            return None

        char = self._peek()
        if not self._started:
            if char != "[":
                raise self._error("expected top-level JSON array")
            self._pos += 1
            self._started = True
            char = self._peek()

        if char is None:
            raise self._error("unexpected end of input, array not closed")

        if char == "]":
            self._pos += 1
            self._finished = True
            if self._peek() is not None:
                raise self._error("unexpected data after closing bracket")
            return None

        if self._count:
            if char != ",":
                raise self._error("expected ',' or ']'")
            self._pos += 1
            if self._peek() is None:
                raise self._error("unexpected end of input, array not closed")

        value = self._decode_value()
        self._count += 1
        return value


class EntityParser:
    """
    Decodes a wire-format stream into entities.

    One parser instance handles one stream: the namespace context and the key
    resolution cache live on the instance and are discarded with it.

    Example:
        >>> parser = EntityParser()
        >>> count = parser.parse(open("people.json", "rb"), entities.append)
    """

    def __init__(self, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.chunk_size = chunk_size
        self.context = NamespaceContext()
        self._keys: Dict[str, str] = {}

    def parse(self, stream: IO, emit: Callable[[Element], None]) -> int:
        """
        Decode the stream, calling emit for each entity in arrival order.

        A continuation marker is forwarded to emit but not counted.

        Returns:
            Number of data entities emitted

        Raises:
            DecodeError: on any malformed input; nothing after the error is emitted
        """
        count = 0
        for element in self.iter_entities(stream):
            emit(element)
            if isinstance(element, Entity):
                count += 1
        logger.debug(f"Parsed {count} entities")
        return count

    def iter_entities(self, stream: IO) -> Iterator[Element]:
        """Generator form of parse()."""
        reader = _ArrayReader(stream, self.chunk_size)

        first = reader.next_element()
        if first is None:
            raise DecodeError("missing @context entity")
        self._read_context(first)

        seen_continuation = False
        while True:
            raw = reader.next_element()
            if raw is None:
                return
            if seen_continuation:
                raise DecodeError("no entities allowed after @continuation")
            element = self._read_element(raw)
            if isinstance(element, Continuation):
                seen_continuation = True
            yield element

    def _read_context(self, raw: Any) -> None:
        if not isinstance(raw, dict) or raw.get("id") != CONTEXT_ID:
            raise DecodeError("first element must be the @context entity")
        namespaces = raw.get("namespaces") or {}
        if not isinstance(namespaces, dict):
            raise DecodeError("@context namespaces must be an object")
        for prefix, expansion in namespaces.items():
            if not isinstance(expansion, str):
                raise DecodeError(f"namespace expansion for {prefix!r} must be a string")
            self.context.add(prefix, expansion)

    def _read_element(self, raw: Any) -> Element:
        if not isinstance(raw, dict):
            raise DecodeError("array elements must be objects")

        entity_id = raw.get("id")
        if entity_id == CONTINUATION_ID:
            token = raw.get("token", "")
            if not isinstance(token, str):
                raise DecodeError("continuation token must be a string")
            return Continuation(token=token)
        if entity_id == CONTEXT_ID:
            raise DecodeError("@context must be the first element")
        return self._read_entity(raw)

    def _read_entity(self, raw: Dict[str, Any]) -> Entity:
        entity_id = raw.get("id")
        if not isinstance(entity_id, str) or not entity_id:
            raise DecodeError("entity id must be a non-empty string")
        if "token" in raw:
            raise DecodeError(f"token field only allowed on {CONTINUATION_ID}, found on {entity_id}")

        entity = Entity(id=self.context.resolve(entity_id))

        recorded = raw.get("recorded")
        if recorded is not None:
            if isinstance(recorded, bool) or not isinstance(recorded, int) or recorded < 0:
                raise DecodeError(f"recorded must be an unsigned integer on {entity_id}")
            entity.recorded = recorded

        deleted = raw.get("deleted")
        if deleted is not None:
            if not isinstance(deleted, bool):
                raise DecodeError(f"deleted must be a boolean on {entity_id}")
            entity.deleted = deleted

        props = raw.get("props")
        if props is not None:
            if not isinstance(props, dict):
                raise DecodeError(f"props must be an object on {entity_id}")
            for key, value in props.items():
                if value is None:
                    continue
                entity.properties[self._key(key)] = self._read_value(value)

        refs = raw.get("refs")
        if refs is not None:
            if not isinstance(refs, dict):
                raise DecodeError(f"refs must be an object on {entity_id}")
            for key, value in refs.items():
                entity.references[self._key(key)] = self._read_ref(key, value)

        return entity

    def _key(self, key: str) -> str:
        resolved = self._keys.get(key)
        if resolved is None:
            resolved = self.context.resolve(key)
            self._keys[key] = resolved
        return resolved

    def _read_value(self, value: Any) -> Any:
        if isinstance(value, dict):
            return self._read_entity(value)
        if isinstance(value, list):
            return [self._read_value(item) if item is not None else None for item in value]
        return value

    def _read_ref(self, key: str, value: Any) -> Union[str, List[str]]:
        if isinstance(value, str):
            return self.context.resolve(value)
        if isinstance(value, list):
            refs = []
            for item in value:
                if not isinstance(item, str):
                    raise DecodeError(f"reference array {key} must only contain strings")
                refs.append(self.context.resolve(item))
            return refs
        raise DecodeError(f"reference {key} must be a string or an array of strings")


def parse_entities(stream: IO) -> List[Entity]:
    """Decode a whole stream into a list of data entities (for small inputs and tests)."""
    entities: List[Entity] = []
    EntityParser().parse(stream, lambda e: entities.append(e) if isinstance(e, Entity) else None)
    return entities

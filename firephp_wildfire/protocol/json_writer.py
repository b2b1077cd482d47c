"""
Compact ASCII-only JSON writer.

The console extension decodes header values byte by byte, so every
character outside printable ASCII travels as a \\uXXXX escape; code points
above the basic plane are written as UTF-16 surrogate pairs.

A mapping whose keys are exactly 0..n-1 (in order) is written as an array,
any other mapping as an object. The empty mapping is an array too. This
decides the shape the browser shows, so it is part of the wire contract.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Mapping
from typing import Any, Callable, List, Optional

from .const import RESERVED_SELF_KEYS

logger = logging.getLogger(__name__)

RECURSION_LITERAL = '"** Recursion **"'

_SHORT_ESCAPES = {
    0x08: '\\b',
    0x09: '\\t',
    0x0A: '\\n',
    0x0C: '\\f',
    0x0D: '\\r',
    0x22: '\\"',
    0x2F: '\\/',
    0x5C: '\\\\',
}


def escape_string(text: str) -> str:
    """Quote `text` as a JSON string containing only ASCII."""
    out = ['"']
    for ch in text:
        cp = ord(ch)
        short = _SHORT_ESCAPES.get(cp)
        if short is not None:
            out.append(short)
        elif 0x20 <= cp <= 0x7F:
            out.append(ch)
        elif cp < 0x20:
            out.append('\\u%04x' % cp)
        elif cp <= 0xFFFF:
            out.append('\\u%04x' % cp)
        else:
            cp -= 0x10000
            out.append('\\u%04x\\u%04x' % (0xD800 | (cp >> 10), 0xDC00 | (cp & 0x3FF)))
    out.append('"')
    return ''.join(out)


def is_dense_sequence(mapping: Mapping) -> bool:
    """True when the keys are the integers 0..n-1 in order (or there are none)."""
    for expected, key in enumerate(mapping):
        if isinstance(key, bool) or not isinstance(key, int) or key != expected:
            return False
    return True


class JSONWriter:
    """
    Serialize an encoded tree to a compact ASCII JSON string.

    The writer keeps its own identity stack so it can be handed structures
    that never went through the value encoder. Values it cannot represent
    are written as null instead of failing the message.
    """

    def __init__(self):
        self._stack: List[int] = []

    def write(self, value: Any) -> str:
        self._stack = []
        return self._write(value)

    def _write(self, value: Any) -> str:
        if value is None:
            return 'null'
        if isinstance(value, bool):
            return 'true' if value else 'false'
        if isinstance(value, int):
            return str(int(value))
        if isinstance(value, float):
            if math.isnan(value) or math.isinf(value):
                return 'null'
            return repr(float(value))
        if isinstance(value, str):
            return escape_string(value)
        if isinstance(value, Mapping):
            return self._write_container(value, self._write_mapping)
        if isinstance(value, (list, tuple)):
            return self._write_container(value, self._write_list)
        return 'null'

    def _write_container(self, value: Any, writer: Callable[[Any], str]) -> str:
        if id(value) in self._stack:
            return RECURSION_LITERAL
        self._stack.append(id(value))
        try:
            return writer(value)
        finally:
            self._stack.pop()

    def _write_list(self, value: Any) -> str:
        return '[' + ','.join(self._write(item) for item in value) + ']'

    def _write_mapping(self, value: Mapping) -> str:
        if is_dense_sequence(value):
            return self._write_list(list(value.values()))
        parts = []
        for key, item in value.items():
            if key in RESERVED_SELF_KEYS and isinstance(item, Mapping) and item.get(key) is item:
                parts.append(escape_string(str(key)) + ':' + RECURSION_LITERAL)
                continue
            parts.append(escape_string(str(key)) + ':' + self._write(item))
        return '{' + ','.join(parts) + '}'


def _native_shape(value: Any) -> Any:
    if isinstance(value, Mapping):
        if is_dense_sequence(value):
            return [_native_shape(v) for v in value.values()]
        return {str(k): _native_shape(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_native_shape(v) for v in value]
    return value


def write_json(value: Any, use_native: bool = False, writer: Optional[JSONWriter] = None) -> str:
    """
    Serialize with either the standard json module or the hand-written writer.

    The native path escapes '/' differently but is otherwise equivalent;
    anything it rejects (cycles, NaN, unknown types) is retried with the
    hand-written writer.
    """
    if use_native:
        try:
            return json.dumps(
                _native_shape(value),
                ensure_ascii=True,
                allow_nan=False,
                separators=(',', ':'),
            )
        except (TypeError, ValueError, RecursionError) as e:
            logger.debug("Native JSON encoding failed, using fallback writer: %s", e)
    return (writer or JSONWriter()).write(value)

"""
Value Encoding.

This module turns arbitrary runtime values into a JSON-serializable tree
made of None, bool, int, float, str, list and dict. Structures that cannot
or should not be expanded (depth limits, reference cycles, filtered fields)
are replaced by Sentinel strings, so encoding a value never raises.
"""

from __future__ import annotations

import collections
import dataclasses
import datetime
import decimal
import inspect
import io
import logging
import pathlib
import socket
import typing
import uuid
from collections.abc import Mapping, Sequence, Set as AbstractSet
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from types import MemberDescriptorType, GetSetDescriptorType
from typing import Any, Dict, Iterator, List, NamedTuple, Optional, Tuple

from pydantic import BaseModel

from .const import RESERVED_SELF_KEYS
from .options import EncoderOptions, FieldFilter

logger = logging.getLogger(__name__)

PUBLIC = 'public'
PROTECTED = 'protected'
PRIVATE = 'private'
UNDECLARED = 'undeclared'

CLASS_NAME_KEY = '__className'


class Sentinel(str):
    """Placeholder text standing in for a value that was not expanded."""
    __slots__ = ()


EXCLUDED = Sentinel('** Excluded by Filter **')


def max_depth_sentinel(limit: int) -> Sentinel:
    return Sentinel(f'** Max Depth ({limit}) **')


def max_object_depth_sentinel(limit: int) -> Sentinel:
    return Sentinel(f'** Max Object Depth ({limit}) **')


def max_array_depth_sentinel(limit: int) -> Sentinel:
    return Sentinel(f'** Max Array Depth ({limit}) **')


def recursion_sentinel(name: str) -> Sentinel:
    return Sentinel(f'** Recursion ({name}) **')


# Rendered with str() rather than walked field by field.
_STRINGIFY_TYPES = (
    datetime.date, datetime.time, datetime.timedelta, datetime.tzinfo,
    decimal.Decimal, uuid.UUID, pathlib.PurePath, complex, Enum,
)
_RESOURCE_TYPES = (io.IOBase, socket.socket)
_SEQUENCE_TYPES = (list, tuple, set, frozenset, collections.deque)
_TEXT_TYPES = (str, bytes, bytearray, memoryview)
_DESCRIPTOR_TYPES = (property, classmethod, staticmethod, MemberDescriptorType, GetSetDescriptorType)


def ensure_text(value: Any) -> str:
    """
    Return `value` as well-formed text.

    Bytes are decoded as UTF-8 and fall back to Latin-1, which accepts any
    byte, so nothing is ever dropped. Strings carrying lone surrogates
    (e.g. from a surrogateescape decode) are repaired the same way.
    """
    if isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
        try:
            return raw.decode('utf-8')
        except UnicodeDecodeError:
            return raw.decode('latin-1')
    try:
        value.encode('utf-8')
        return value
    except UnicodeEncodeError:
        pass
    try:
        return ensure_text(value.encode('utf-8', 'surrogateescape'))
    except UnicodeEncodeError:
        return value.encode('utf-8', 'surrogatepass').decode('utf-8', 'replace')


@dataclass
class EncodeContext:
    """
    Transient state threaded through one top-level encode call.

    Attributes:
        object_depth: Nesting level counted in objects (reset inside arrays)
        array_depth: Nesting level counted in arrays (reset inside objects)
        total_depth: Overall nesting level
        object_stack: id() of every composite on the current descent path
    """
    object_depth: int = 1
    array_depth: int = 1
    total_depth: int = 1
    object_stack: List[int] = field(default_factory=list)

    def is_visiting(self, value: Any) -> bool:
        return id(value) in self.object_stack

    @contextmanager
    def visiting(self, value: Any) -> Iterator[None]:
        self.object_stack.append(id(value))
        try:
            yield
        finally:
            self.object_stack.pop()

    @contextmanager
    def descend(self, object_depth: int, array_depth: int) -> Iterator[None]:
        saved = (self.object_depth, self.array_depth, self.total_depth)
        self.object_depth = object_depth
        self.array_depth = array_depth
        self.total_depth += 1
        try:
            yield
        finally:
            self.object_depth, self.array_depth, self.total_depth = saved


class FieldSpec(NamedTuple):
    """A declared field: its attribute name, visibility and whether it lives on the class."""
    name: str
    visibility: str = PUBLIC
    static: bool = False

    def display_name(self, cls: type) -> str:
        return f"{self.visibility}:{'static:' if self.static else ''}{demangle(self.name, cls)}"


def visibility_of(name: str) -> str:
    if name.startswith('__') and not name.endswith('__'):
        return PRIVATE
    if name.startswith('_'):
        return PROTECTED
    return PUBLIC


def demangle(name: str, cls: type) -> str:
    """'_User__token' -> '__token' when User is in the class hierarchy."""
    for klass in cls.__mro__:
        prefix = f'_{klass.__name__.lstrip("_")}__'
        if name.startswith(prefix) and len(name) > len(prefix):
            return '__' + name[len(prefix):]
    return name


def _slot_names(cls: type) -> List[str]:
    names: List[str] = []
    for klass in reversed(cls.__mro__):
        slots = klass.__dict__.get('__slots__', ())
        if isinstance(slots, str):
            slots = (slots,)
        for name in slots:
            if name not in ('__dict__', '__weakref__') and name not in names:
                names.append(name)
    return names


def _is_classvar(annotation: Any) -> bool:
    if isinstance(annotation, str):
        return annotation.startswith(('ClassVar', 'typing.ClassVar'))
    return annotation is typing.ClassVar or typing.get_origin(annotation) is typing.ClassVar


def _is_pydantic_model(cls: type) -> bool:
    return isinstance(cls, type) and issubclass(cls, BaseModel)


def _schema_names(cls: type) -> List[Tuple[str, bool]]:
    """(attribute name, is_static) pairs the type declares, base classes first."""
    if dataclasses.is_dataclass(cls):
        return [(f.name, False) for f in dataclasses.fields(cls)]

    if _is_pydantic_model(cls):
        return [(name, False) for name in cls.model_fields]

    out: List[Tuple[str, bool]] = []
    seen = set()
    for klass in reversed(cls.__mro__):
        if klass is object:
            continue
        try:
            annotations = inspect.get_annotations(klass)
        except Exception:
            annotations = {}
        for name, annotation in annotations.items():
            if name not in seen:
                seen.add(name)
                out.append((name, _is_classvar(annotation)))
    for name in _slot_names(cls):
        if name not in seen:
            seen.add(name)
            out.append((name, False))
    return out


def describe_fields(obj: Any) -> List[FieldSpec]:
    """
    Ordered declared fields of an object.

    Explicit `__wildfire_fields__` wins; otherwise dataclass fields,
    pydantic model fields, class annotations and __slots__ are used. When
    none of these declare anything, the instance attributes are taken as
    the declaration. Class-level data attributes are appended as static
    fields.
    """
    cls = type(obj)
    explicit = getattr(cls, '__wildfire_fields__', None)
    if explicit is not None:
        specs = []
        for item in explicit:
            if isinstance(item, FieldSpec):
                specs.append(item)
            else:
                plain = demangle(str(item), cls)
                specs.append(FieldSpec(str(item), visibility_of(plain)))
        return specs

    schema = _schema_names(cls)
    if not schema:
        if isinstance(obj, BaseException):
            schema.append(('args', False))
        schema.extend((name, False) for name in getattr(obj, '__dict__', {}))

    specs = [FieldSpec(name, visibility_of(demangle(name, cls)), static) for name, static in schema]
    declared = {s.name for s in specs}
    if _is_pydantic_model(cls):
        return specs

    instance_dict = getattr(obj, '__dict__', {})
    for klass in reversed(cls.__mro__):
        if klass is object:
            continue
        for name, value in vars(klass).items():
            if name in declared or name in instance_dict:
                continue
            if (name.startswith('__') and name.endswith('__')) or name.startswith('_abc_'):
                continue
            if callable(value) or isinstance(value, _DESCRIPTOR_TYPES):
                continue
            declared.add(name)
            specs.append(FieldSpec(name, visibility_of(demangle(name, cls)), True))
    return specs


def _read_field(obj: Any, field_spec: FieldSpec) -> Any:
    if field_spec.static:
        return getattr(type(obj), field_spec.name)
    instance_dict = getattr(obj, '__dict__', None)
    if instance_dict is not None and field_spec.name in instance_dict:
        return instance_dict[field_spec.name]
    return getattr(obj, field_spec.name)


def undeclared_members(obj: Any, declared: set) -> List[Tuple[str, Any]]:
    """
    Members present on the instance but not declared by its type.

    Includes instance attributes outside the schema, pydantic extras and
    whatever an `extra_fields()` method returns.
    """
    cls = type(obj)
    members: List[Tuple[str, Any]] = []
    for name, value in getattr(obj, '__dict__', {}).items():
        if name not in declared:
            members.append((name, value))
    extra = getattr(obj, '__pydantic_extra__', None) if _is_pydantic_model(cls) else None
    if extra:
        members.extend(extra.items())

    extra_fields = getattr(obj, 'extra_fields', None)
    if callable(extra_fields):
        try:
            extras = extra_fields()
        except Exception as e:
            logger.debug("extra_fields() of %s failed: %s", cls.__name__, e)
            extras = None
        if isinstance(extras, Mapping):
            members.extend((str(k), v) for k, v in extras.items())

    seen = set(declared)
    out = []
    for name, value in members:
        if name not in seen:
            seen.add(name)
            out.append((name, value))
    return out


def _is_sequence(value: Any) -> bool:
    if isinstance(value, _SEQUENCE_TYPES):
        return True
    if isinstance(value, (range,) + _TEXT_TYPES):
        return False
    return isinstance(value, (Sequence, AbstractSet))


def _is_object_like(value: Any) -> bool:
    if isinstance(value, _STRINGIFY_TYPES + _RESOURCE_TYPES):
        return False
    if isinstance(value, type) or inspect.isroutine(value) or inspect.ismodule(value):
        return False
    cls = type(value)
    if getattr(cls, '__wildfire_fields__', None) is not None:
        return True
    return hasattr(value, '__dict__') or bool(_slot_names(cls))


def _is_self_reference(key: Any, value: Any) -> bool:
    """A reserved key mapping to a collection that contains itself under that key."""
    if key not in RESERVED_SELF_KEYS or not isinstance(value, Mapping):
        return False
    try:
        return value.get(key) is value
    except Exception:
        return False


def _encode_key(key: Any) -> Any:
    if isinstance(key, int) and not isinstance(key, bool):
        return int(key)
    if isinstance(key, _TEXT_TYPES):
        return ensure_text(key)
    try:
        return ensure_text(str(key))
    except Exception:
        return f'** Unprintable ({type(key).__name__}) **'


def _unique_key(encoded: Any, original: Any, taken: set) -> Any:
    """
    Keep `encoded` unless its text form is already used in the mapping.

    Distinct keys may render the same (1 and '1', a tuple and its str());
    the later one is suffixed with its type name so neither entry is lost.
    """
    text = str(encoded)
    if text not in taken:
        taken.add(text)
        return encoded
    base = f'{text} ({type(original).__name__})'
    candidate, n = base, 2
    while candidate in taken:
        candidate = f'{base} #{n}'
        n += 1
    taken.add(candidate)
    return candidate


class ValueEncoder:
    """
    Recursive, cycle-safe value encoder.

    Objects become dicts with a `__className` entry and one entry per
    field, keyed by visibility-prefixed names such as 'public:name' or
    'private:__token'. Mappings and sequences become dicts and lists.

    Example:
        encoder = ValueEncoder(EncoderOptions(max_depth=3))
        encoder.encode({"user": user})
        # {'user': {'__className': 'User', 'public:name': 'ann', ...}}
    """

    def __init__(
        self,
        options: Optional[EncoderOptions] = None,
        filters: Optional[FieldFilter] = None,
    ):
        self.options = options if options is not None else EncoderOptions()
        self.filters = filters if filters is not None else FieldFilter()

    def encode(self, value: Any, ctx: Optional[EncodeContext] = None) -> Any:
        """
        Encode a value into a JSON-serializable tree.

        Args:
            value: Any runtime value
            ctx: Context of an ongoing encode; a fresh one is created if None

        Returns:
            The encoded tree. Never raises.
        """
        if ctx is None:
            ctx = EncodeContext()
        try:
            return self._encode(value, ctx)
        except Exception as e:
            logger.debug("Could not encode %s: %r", type(value).__name__, e)
            return Sentinel(f'** Unencodable ({type(e).__name__}) **')

    def encode_table(self, rows: Any) -> Any:
        """Encode each cell of each sequence row on its own; other rows are dropped."""
        if not rows:
            return rows
        table = []
        for row in rows:
            if isinstance(row, (list, tuple)):
                table.append([self.encode(cell) for cell in row])
        return table

    def _encode(self, value: Any, ctx: EncodeContext) -> Any:
        opts = self.options
        if ctx.total_depth > opts.max_depth:
            return max_depth_sentinel(opts.max_depth)

        if value is None or isinstance(value, bool):
            return value
        if isinstance(value, int):
            return int(value)
        if isinstance(value, float):
            return float(value)
        if isinstance(value, _TEXT_TYPES):
            return ensure_text(value) if not isinstance(value, Sentinel) else value
        if isinstance(value, Mapping):
            return self._encode_mapping(value, ctx)
        if _is_sequence(value):
            return self._encode_sequence(value, ctx)
        if _is_object_like(value):
            return self._encode_object(value, ctx)
        return self._coerce(value)

    def _encode_mapping(self, value: Mapping, ctx: EncodeContext) -> Any:
        limit = self.options.max_array_depth
        if ctx.array_depth > limit:
            return max_array_depth_sentinel(limit)
        if ctx.is_visiting(value):
            return recursion_sentinel(type(value).__name__)

        result: Dict[Any, Any] = {}
        taken: set = set()
        with ctx.visiting(value):
            for key, val in value.items():
                encoded_key = _unique_key(_encode_key(key), key, taken)
                if _is_self_reference(key, val):
                    result[encoded_key] = recursion_sentinel(str(key))
                    continue
                with ctx.descend(object_depth=1, array_depth=ctx.array_depth + 1):
                    result[encoded_key] = self.encode(val, ctx)
        return result

    def _encode_sequence(self, value: Any, ctx: EncodeContext) -> Any:
        limit = self.options.max_array_depth
        if ctx.array_depth > limit:
            return max_array_depth_sentinel(limit)
        if ctx.is_visiting(value):
            return recursion_sentinel(type(value).__name__)

        result: List[Any] = []
        with ctx.visiting(value):
            for item in value:
                with ctx.descend(object_depth=1, array_depth=ctx.array_depth + 1):
                    result.append(self.encode(item, ctx))
        return result

    def _encode_object(self, obj: Any, ctx: EncodeContext) -> Any:
        limit = self.options.max_object_depth
        if ctx.object_depth > limit:
            return max_object_depth_sentinel(limit)

        cls = type(obj)
        class_name = cls.__name__
        # Identity, not equality: two equal objects are not a cycle.
        if ctx.is_visiting(obj):
            return recursion_sentinel(class_name)

        result: Dict[str, Any] = {CLASS_NAME_KEY: class_name}
        with ctx.visiting(obj):
            specs = describe_fields(obj)
            for field_spec in specs:
                result[field_spec.display_name(cls)] = self._encode_field(obj, field_spec, class_name, ctx)

            declared = {field_spec.name for field_spec in specs}
            for name, value in undeclared_members(obj, declared):
                display = f'{UNDECLARED}:{name}'
                if self.filters.excludes(class_name, demangle(name, cls)):
                    result[display] = EXCLUDED
                    continue
                with ctx.descend(object_depth=ctx.object_depth + 1, array_depth=1):
                    result[display] = self.encode(value, ctx)
        return result

    def _encode_field(self, obj: Any, field_spec: FieldSpec, class_name: str, ctx: EncodeContext) -> Any:
        if self.filters.excludes(class_name, demangle(field_spec.name, type(obj))):
            return EXCLUDED
        try:
            value = _read_field(obj, field_spec)
        except AttributeError:
            value = None
        except Exception as e:
            logger.debug("Field %s.%s is unreadable: %r", class_name, field_spec.name, e)
            return Sentinel(f'** Unreadable ({type(e).__name__}) **')
        with ctx.descend(object_depth=ctx.object_depth + 1, array_depth=1):
            return self.encode(value, ctx)

    @staticmethod
    def _coerce(value: Any) -> Any:
        if isinstance(value, _RESOURCE_TYPES):
            return Sentinel(f'** {value!r} **')
        try:
            return ensure_text(str(value))
        except Exception:
            return Sentinel(f'** Unprintable ({type(value).__name__}) **')

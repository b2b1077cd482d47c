import datetime
import json
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import pytest
from dataclasses import dataclass
from pydantic import BaseModel

from firephp_wildfire.protocol.encoder import (
    CLASS_NAME_KEY,
    EXCLUDED,
    Sentinel,
    ValueEncoder,
    demangle,
    visibility_of,
)
from firephp_wildfire.protocol.json_writer import JSONWriter
from firephp_wildfire.protocol.options import EncoderOptions, FieldFilter


class Node:
    def __init__(self, name):
        self.name = name
        self.next = None


class User:
    def __init__(self):
        self.name = 'ann'
        self.password = 'hunter2'


class Account:
    def __init__(self):
        self.owner = 'ann'
        self._balance = 10
        self.__pin = 1234


class Settings:
    VERSION = '1.2'

    def __init__(self):
        self.debug = True


class Exploding:
    __wildfire_fields__ = ['boom']

    @property
    def boom(self):
        raise RuntimeError('no')


class WithExtras:
    def __init__(self):
        self.a = 1

    def extra_fields(self):
        return {'computed': 42}


@dataclass
class Point:
    x: int
    y: int


class Model(BaseModel):
    a: int = 1
    b: str = 'x'


class TestValueEncoder:
    """Value encoding: shapes, limits and cycles."""

    def setup_method(self):
        self.encoder = ValueEncoder()

    def test_scalars_pass_through(self):
        assert self.encoder.encode(None) is None
        assert self.encoder.encode(True) is True
        assert self.encoder.encode(3) == 3
        assert self.encoder.encode(1.5) == 1.5
        assert self.encoder.encode('text') == 'text'

    def test_bytes_are_decoded(self):
        assert self.encoder.encode(b'caf\xc3\xa9') == 'café'
        # invalid UTF-8 falls back to Latin-1 instead of dropping bytes
        assert self.encoder.encode(b'\xff') == '\xff'

    def test_mapping_keeps_integer_keys(self):
        assert self.encoder.encode({1: 'a', 'b': 2}) == {1: 'a', 'b': 2}

    def test_colliding_keys_are_all_kept(self):
        assert self.encoder.encode({1: 'a', '1': 'b'}) == {1: 'a', '1 (str)': 'b'}
        assert self.encoder.encode({(1, 2): 'a', '(1, 2)': 'b'}) == {'(1, 2)': 'a', '(1, 2) (str)': 'b'}
        assert self.encoder.encode({'1 (str)': 'x', 1: 'a', '1': 'b'}) == {
            '1 (str)': 'x', 1: 'a', '1 (str) #2': 'b',
        }

    def test_colliding_keys_reach_the_wire(self):
        body = JSONWriter().write(self.encoder.encode({1: 'a', '1': 'b'}))
        assert json.loads(body) == {'1': 'a', '1 (str)': 'b'}

    def test_byte_keys_are_transcoded(self):
        assert self.encoder.encode({b'\xff': 1}) == {'\xff': 1}
        assert self.encoder.encode({b'caf\xc3\xa9': 1}) == {'café': 1}

    def test_lone_surrogates_are_repaired(self):
        encoded = self.encoder.encode('a\ud800b')
        encoded.encode('utf-8')
        assert encoded.startswith('a') and encoded.endswith('b')

        body = JSONWriter().write(encoded)
        assert body.isascii()
        assert json.loads(body) == encoded

    def test_surrogate_escaped_bytes_are_recovered(self):
        raw = b'caf\xe9'.decode('utf-8', 'surrogateescape')
        assert self.encoder.encode(raw) == 'caf\xe9'

    def test_sequences_become_lists(self):
        assert self.encoder.encode((1, 2)) == [1, 2]
        assert sorted(self.encoder.encode({3, 1})) == [1, 3]

    def test_object_fields_have_visibility_prefixes(self):
        encoded = self.encoder.encode(Account())
        assert encoded[CLASS_NAME_KEY] == 'Account'
        assert encoded['public:owner'] == 'ann'
        assert encoded['protected:_balance'] == 10
        assert encoded['private:__pin'] == 1234

    def test_static_class_attributes(self):
        encoded = self.encoder.encode(Settings())
        assert encoded['public:debug'] is True
        assert encoded['public:static:VERSION'] == '1.2'

    def test_dataclass_fields_and_undeclared_members(self):
        point = Point(1, 2)
        point.z = 3
        encoded = self.encoder.encode(point)
        assert encoded == {
            CLASS_NAME_KEY: 'Point',
            'public:x': 1,
            'public:y': 2,
            'undeclared:z': 3,
        }

    def test_pydantic_model_fields(self):
        assert self.encoder.encode(Model()) == {CLASS_NAME_KEY: 'Model', 'public:a': 1, 'public:b': 'x'}

    def test_extra_fields_are_undeclared(self):
        encoded = self.encoder.encode(WithExtras())
        assert encoded['public:a'] == 1
        assert encoded['undeclared:computed'] == 42

    def test_unreadable_field_becomes_sentinel(self):
        encoded = self.encoder.encode(Exploding())
        assert encoded['public:boom'] == '** Unreadable (RuntimeError) **'

    def test_stringified_types(self):
        assert self.encoder.encode(datetime.date(2020, 1, 2)) == '2020-01-02'

    def test_object_cycle(self):
        a, b = Node('a'), Node('b')
        a.next, b.next = b, a
        encoded = self.encoder.encode(a)
        assert encoded['public:next']['public:name'] == 'b'
        assert encoded['public:next']['public:next'] == '** Recursion (Node) **'

    def test_self_containing_list(self):
        items = [1]
        items.append(items)
        assert self.encoder.encode(items) == [1, '** Recursion (list) **']

    def test_equal_objects_are_not_a_cycle(self):
        shared = Point(1, 1)
        encoded = self.encoder.encode([shared, shared])
        assert encoded[0] == encoded[1]
        assert encoded[1]['public:x'] == 1

    def test_globals_self_reference(self):
        scope = {'x': 1}
        scope['GLOBALS'] = scope
        encoded = self.encoder.encode(scope)
        assert encoded['x'] == 1
        assert encoded['GLOBALS'] == '** Recursion (GLOBALS) **'

    def test_filtered_field_is_excluded(self):
        encoder = ValueEncoder(filters=FieldFilter({'User': ['password']}))
        encoded = encoder.encode(User())
        assert encoded['public:name'] == 'ann'
        assert encoded['public:password'] == EXCLUDED

    def test_sentinels_are_strings(self):
        assert isinstance(EXCLUDED, str)
        assert isinstance(EXCLUDED, Sentinel)


class TestDepthLimits:
    """Depth limits never raise; they leave a sentinel in the tree."""

    def _nested(self, levels):
        root = current = {}
        for _ in range(levels):
            current['k'] = {}
            current = current['k']
        return root

    def test_array_depth(self):
        encoded = ValueEncoder().encode(self._nested(20))
        for _ in range(5):
            encoded = encoded['k']
        assert encoded == '** Max Array Depth (5) **'

    def test_total_depth(self):
        options = EncoderOptions(max_depth=3, max_array_depth=50)
        encoded = ValueEncoder(options).encode(self._nested(20))
        for _ in range(3):
            encoded = encoded['k']
        assert encoded == '** Max Depth (3) **'

    def test_object_depth(self):
        a, b, c = Node('a'), Node('b'), Node('c')
        a.next, b.next = b, c
        encoded = ValueEncoder(EncoderOptions(max_object_depth=2)).encode(a)
        assert encoded['public:next']['public:name'] == 'b'
        assert encoded['public:next']['public:next'] == '** Max Object Depth (2) **'

    @pytest.mark.parametrize('levels', [0, 1, 5, 50])
    def test_depth_is_bounded(self, levels):
        options = EncoderOptions(max_depth=4, max_array_depth=4)
        encoded = ValueEncoder(options).encode(self._nested(levels))
        depth = 0
        while isinstance(encoded, dict) and 'k' in encoded:
            encoded = encoded['k']
            depth += 1
        assert depth <= 4


class TestEncodeTable:

    def test_rows_are_encoded_cell_by_cell(self):
        encoder = ValueEncoder()
        table = encoder.encode_table([['a', Point(1, 2)], 'not a row', [None]])
        assert table == [['a', {CLASS_NAME_KEY: 'Point', 'public:x': 1, 'public:y': 2}], [None]]

    def test_empty_table(self):
        assert ValueEncoder().encode_table([]) == []


class TestNames:

    def test_visibility(self):
        assert visibility_of('name') == 'public'
        assert visibility_of('_name') == 'protected'
        assert visibility_of('__name') == 'private'
        assert visibility_of('__dunder__') == 'protected'

    def test_demangle(self):
        assert demangle('_Account__pin', Account) == '__pin'
        assert demangle('owner', Account) == 'owner'

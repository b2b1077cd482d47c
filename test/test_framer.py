import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

import pytest

from firephp_wildfire.protocol.errors import ProtocolLimitExceeded
from firephp_wildfire.protocol.framer import MessageFramer, byte_length, reassemble, split_chunks


class TestMessageFramer:
    """Chunking of message bodies into indexed headers."""

    def setup_method(self):
        self.framer = MessageFramer()

    @pytest.mark.parametrize('length', [0, 4999, 5000, 5001, 12345])
    def test_round_trip(self, length):
        body = 'x' * length
        headers = self.framer.frame(1, 1, body)
        assert len(headers) == max(1, -(-length // 5000))
        assert reassemble([value for _, value in headers]) == body

    @pytest.mark.parametrize('length', [4999, 5000, 5001, 12345])
    def test_chunks_fit(self, length):
        for _, value in self.framer.frame(1, 1, 'y' * length):
            payload = value.rstrip('\\').rstrip('|')
            assert byte_length(payload.split('|', 1)[1]) <= 5000

    def test_single_chunk_format(self):
        assert self.framer.frame(7, 1, '["a"]') == [('X-Wf-1-1-1-7', '5|["a"]|')]

    def test_empty_body(self):
        assert self.framer.frame(1, 2, '') == [('X-Wf-1-2-1-1', '0||')]

    def test_multi_chunk_format(self):
        headers = self.framer.frame(3, 1, 'a' * 5000 + 'b' * 5000 + 'c')
        assert [name for name, _ in headers] == ['X-Wf-1-1-1-3', 'X-Wf-1-1-1-4', 'X-Wf-1-1-1-5']
        first, middle, last = [value for _, value in headers]
        assert first == '10001|' + 'a' * 5000 + '|\\'
        assert middle == '|' + 'b' * 5000 + '|\\'
        assert last == '|c|'

    def test_limit(self):
        self.framer.frame(99999, 1, 'x')
        with pytest.raises(ProtocolLimitExceeded):
            self.framer.frame(100000, 1, 'x')

    def test_limit_counts_every_chunk(self):
        with pytest.raises(ProtocolLimitExceeded) as exc_info:
            self.framer.frame(99999, 1, 'x' * 5001)
        assert exc_info.value.code == 'ERR_PROTOCOL_LIMIT'

    def test_index_header(self):
        assert MessageFramer.index_header(12) == ('X-Wf-1-Index', '12')


class TestSplitChunks:

    def test_ascii_slices(self):
        assert split_chunks('abcde', 2) == ['ab', 'cd', 'e']

    def test_never_cuts_a_code_point(self):
        assert split_chunks('ééé', 4) == ['éé', 'é']

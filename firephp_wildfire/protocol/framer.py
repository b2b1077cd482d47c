"""
Wildfire message framing.

A JSON body is carried in one or more indexed headers:

    X-Wf-1-<structure>-1-<index>: <length>|<body>|

Bodies longer than MAX_CHUNK_BYTES are split. The first chunk carries the
total length, every chunk but the last ends with a backslash meaning
"continued in the next header":

    X-Wf-1-1-1-7: 12345|<chunk 1>|\\
    X-Wf-1-1-1-8: |<chunk 2>|\\
    X-Wf-1-1-1-9: |<chunk 3>|
"""

from __future__ import annotations

from typing import List, Tuple

from .const import HEADER_INDEX, HEADER_MESSAGE, MAX_CHUNK_BYTES, MAX_MESSAGE_INDEX
from .errors import ProtocolLimitExceeded

Header = Tuple[str, str]

CONTINUATION = '\\'


def byte_length(text: str) -> int:
    return len(text.encode('utf-8'))


def split_chunks(body: str, size: int = MAX_CHUNK_BYTES) -> List[str]:
    """
    Split `body` into pieces of at most `size` UTF-8 bytes.

    Pieces never cut through a code point. Bodies produced by JSONWriter
    are pure ASCII, where this is plain slicing.
    """
    if body.isascii():
        return [body[i:i + size] for i in range(0, len(body), size)]
    chunks: List[str] = []
    current: List[str] = []
    current_size = 0
    for ch in body:
        n = len(ch.encode('utf-8', 'surrogatepass'))
        if current and current_size + n > size:
            chunks.append(''.join(current))
            current, current_size = [], 0
        current.append(ch)
        current_size += n
    if current:
        chunks.append(''.join(current))
    return chunks


class MessageFramer:
    """
    Turns JSON bodies into ordered header pairs.

    The framer is stateless: the caller owns the message index and advances
    it by the number of chunk headers returned.
    """

    def __init__(self, chunk_size: int = MAX_CHUNK_BYTES, max_index: int = MAX_MESSAGE_INDEX):
        self.chunk_size = chunk_size
        self.max_index = max_index

    def frame(self, message_index_base: int, structure_id: int, json_body: str) -> List[Header]:
        """
        Frame one message.

        Args:
            message_index_base: Index of the first chunk header
            structure_id: 1 for console messages, 2 for dumps
            json_body: Serialized message

        Returns:
            One (name, value) pair per chunk, in emission order

        Raises:
            ProtocolLimitExceeded: If any chunk would need an index above
                the protocol maximum; nothing is returned in that case
        """
        if byte_length(json_body) <= self.chunk_size:
            chunks = [json_body]
        else:
            chunks = [c for c in split_chunks(json_body, self.chunk_size) if c]

        last_index = message_index_base + len(chunks) - 1
        if last_index > self.max_index:
            raise ProtocolLimitExceeded(
                f'Maximum number ({self.max_index:,}) of messages reached!'
            )

        if len(chunks) == 1:
            name = HEADER_MESSAGE.format(structure_id=structure_id, index=message_index_base)
            return [(name, f'{byte_length(json_body)}|{json_body}|')]

        headers: List[Header] = []
        total = byte_length(json_body)
        for i, chunk in enumerate(chunks):
            prefix = str(total) if i == 0 else ''
            suffix = CONTINUATION if i < len(chunks) - 1 else ''
            name = HEADER_MESSAGE.format(structure_id=structure_id, index=message_index_base + i)
            headers.append((name, f'{prefix}|{chunk}|{suffix}'))
        return headers

    @staticmethod
    def index_header(last_index: int) -> Header:
        return HEADER_INDEX, str(last_index)


def reassemble(values: List[str]) -> str:
    """
    Rebuild a message body from its chunk header values.

    Inverse of MessageFramer.frame, mostly useful for tests and for
    inspecting captured responses.
    """
    body = []
    for value in values:
        if value.endswith(CONTINUATION):
            value = value[:-1]
        _, _, rest = value.partition('|')
        body.append(rest[:-1] if rest.endswith('|') else rest)
    return ''.join(body)

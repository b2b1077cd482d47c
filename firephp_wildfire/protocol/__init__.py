"""
Wildfire protocol core for firephp-wildfire.

This package turns logging calls into FirePHP console messages carried in
HTTP response headers (Wildfire JsonStream 0.2):

- ValueEncoder: runtime values -> JSON-safe tree, cycle and depth safe
- JSONWriter: tree -> compact ASCII-only JSON
- MessageFramer: JSON -> indexed, chunked response headers
- ProtocolSession: per-response logging verbs and gates
"""

from firephp_wildfire.protocol.const import (
    VERSION,
    MAX_CHUNK_BYTES,
    MAX_MESSAGE_INDEX,
    LogType,
)
from firephp_wildfire.protocol.errors import (
    WildfireError,
    InvalidArgument,
    ProtocolStateError,
    ProtocolLimitExceeded,
)
from firephp_wildfire.protocol.options import EncoderOptions, FieldFilter
from firephp_wildfire.protocol.encoder import ValueEncoder, EncodeContext, FieldSpec, Sentinel
from firephp_wildfire.protocol.json_writer import JSONWriter, write_json
from firephp_wildfire.protocol.framer import MessageFramer, reassemble
from firephp_wildfire.protocol.frames import StackFrame, capture_stack
from firephp_wildfire.protocol.session import ProtocolSession

__all__ = [
    # Constants
    "VERSION",
    "MAX_CHUNK_BYTES",
    "MAX_MESSAGE_INDEX",
    "LogType",
    # Errors
    "WildfireError",
    "InvalidArgument",
    "ProtocolStateError",
    "ProtocolLimitExceeded",
    # Encoding
    "EncoderOptions",
    "FieldFilter",
    "ValueEncoder",
    "EncodeContext",
    "FieldSpec",
    "Sentinel",
    "JSONWriter",
    "write_json",
    # Framing
    "MessageFramer",
    "reassemble",
    # Session
    "StackFrame",
    "capture_stack",
    "ProtocolSession",
]

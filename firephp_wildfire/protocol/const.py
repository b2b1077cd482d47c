"""
Wildfire wire constants.

Header names, structure URIs and the hard limits of the JsonStream 0.2
framing used by the FirePHP console extension.
"""

from __future__ import annotations

from enum import Enum

VERSION = '1.0b1rc1-py'

PROTOCOL_URI = 'http://meta.wildfirehq.org/Protocol/JsonStream/0.2'
PLUGIN_URI = 'http://meta.firephp.org/Wildfire/Plugin/FirePHP/Library-FirePHPCore/' + VERSION
STRUCTURE_CONSOLE_URI = 'http://meta.firephp.org/Wildfire/Structure/FirePHP/FirebugConsole/0.1'
STRUCTURE_DUMP_URI = 'http://meta.firephp.org/Wildfire/Structure/FirePHP/Dump/0.1'

HEADER_PROTOCOL = 'X-Wf-Protocol-1'
HEADER_PLUGIN = 'X-Wf-1-Plugin-1'
HEADER_STRUCTURE = 'X-Wf-1-Structure-{structure_id}'
HEADER_MESSAGE = 'X-Wf-1-{structure_id}-1-{index}'
HEADER_INDEX = 'X-Wf-1-Index'

STRUCTURE_CONSOLE = 1
STRUCTURE_DUMP = 2

STRUCTURE_URIS = {
    STRUCTURE_CONSOLE: STRUCTURE_CONSOLE_URI,
    STRUCTURE_DUMP: STRUCTURE_DUMP_URI,
}

# Header values are capped by most servers around 8k; chunks stay well under.
MAX_CHUNK_BYTES = 5000
MAX_MESSAGE_INDEX = 99999

MAX_DUMP_KEY_LENGTH = 100
DUMP_KEY_PATTERN = r'^[a-zA-Z0-9\-_.:]*$'

MIN_CLIENT_VERSION = '0.0.6'

# Keys whose value is allowed to contain itself (interpreter globals and the like).
RESERVED_SELF_KEYS = frozenset({'GLOBALS'})


class LogType(Enum):
    """Message types understood by the console structure."""
    LOG = 'LOG'
    INFO = 'INFO'
    WARN = 'WARN'
    ERROR = 'ERROR'
    DUMP = 'DUMP'
    TRACE = 'TRACE'
    EXCEPTION = 'EXCEPTION'
    TABLE = 'TABLE'
    GROUP_START = 'GROUP_START'
    GROUP_END = 'GROUP_END'

    @property
    def structure_id(self) -> int:
        return STRUCTURE_DUMP if self is LogType.DUMP else STRUCTURE_CONSOLE

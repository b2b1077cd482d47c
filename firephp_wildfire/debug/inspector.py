"""
Debug Inspector.

Convenience helpers on top of a ProtocolSession for poking at values
during development:

    debug = Debug(session)
    debug.dump(user, order)          # group labelled with the call site
    debug.inspect(user, 3.5, None)   # one table row per value
    debug.backtrace()
"""

from __future__ import annotations

import functools
import logging
import os
import sys
from collections.abc import Mapping
from typing import Any, Callable, Dict, List, Tuple, TYPE_CHECKING

from ..protocol.frames import StackFrame, capture_stack

if TYPE_CHECKING:
    from ..protocol.session import ProtocolSession

logger = logging.getLogger(__name__)

FILE_CACHE_SIZE = 32


@functools.lru_cache(maxsize=FILE_CACHE_SIZE)
def read_source_lines(path: str) -> Tuple[str, ...]:
    with open(path, encoding='utf-8', errors='replace') as f:
        return tuple(f.read().splitlines())


def get_type(value: Any) -> str:
    """Short human description of a value's type, as shown by inspect()."""
    if isinstance(value, (Mapping, list, tuple, set, frozenset)):
        return f"Array, {len(value)} elements"
    if isinstance(value, (str, bytes, bytearray)):
        return f"String, {len(value)} characters"
    if value is None:
        return "Null"
    if isinstance(value, bool):
        return "Boolean"
    if isinstance(value, float):
        return "Float"
    if isinstance(value, int):
        return "Integer"
    return f"Object: {type(value).__name__}"


class Debug:
    """
    Development helpers bound to one session.

    All sending goes through the session, so its gates apply: on a
    disabled session or an unsupported client these calls do nothing.
    """

    def __init__(self, session: "ProtocolSession"):
        self.session = session

    def firephp(self) -> "ProtocolSession":
        return self.session

    def _call_site(self) -> StackFrame:
        frames = capture_stack()
        return frames[0] if frames else StackFrame(file='(unknown)', line=0)

    def _where(self, frame: StackFrame) -> str:
        return f"{self.session.clean_path(frame.file)} @ line: {frame.line}"

    def dump(self, *values: Any) -> bool:
        """Log each value as 'Variable #i' inside a group named after the call site."""
        self.session.group_start(self._where(self._call_site()))
        for i, value in enumerate(values, start=1):
            self.session.log(value, f"Variable #{i}")
        return self.session.group_end()

    def inspect(self, *values: Any) -> bool:
        """Send a table with the type and value of each argument."""
        total = len(values)
        table: List[List[Any]] = [['Var #', 'Type', 'Value']]
        for i, value in enumerate(values, start=1):
            table.append([f"Debug #{i} of {total}", get_type(value), value])
        return self.session.table(self._where(self._call_site()), table)

    get_type = staticmethod(get_type)

    def backtrace(self) -> bool:
        """Send the caller's stack as a TRACE message."""
        frames = capture_stack()
        if not frames:
            return False
        return self.session.trace(self._where(frames[0]), frames)

    def modules(self) -> bool:
        """Dump the names of all loaded modules."""
        return self.dump(sorted(sys.modules))

    def headers(self, headers: Mapping[str, str]) -> bool:
        """Dump a request's headers (or a WSGI environ)."""
        return self.dump(dict(headers))

    @classmethod
    def file_lines(cls, path: str, line: int, padding: int = 5) -> Dict[int, str]:
        """
        Lines around `line` of a source file, keyed by line number.

        Args:
            path: Source file
            line: Line of interest (1-based)
            padding: Lines to include before and after

        Returns:
            Ordered {line number: text}; empty if the file cannot be read
        """
        try:
            lines = read_source_lines(path)
        except OSError as e:
            logger.debug("Cannot read %s: %s", path, e)
            return {}

        start = max(line - padding, 1)
        end = min(line + padding, len(lines))
        return {n: lines[n - 1] for n in range(start, end + 1)}

    @staticmethod
    def benchmark(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Dict[str, Any]:
        """
        Call `fn` and measure the CPU time it used.

        Returns:
            {'user': '0.001234', 'system': '0.000000', 'result': <return value>}
        """
        before = os.times()
        result = fn(*args, **kwargs) if callable(fn) else None
        after = os.times()
        return {
            'user': '%1.6f' % (after.user - before.user),
            'system': '%1.6f' % (after.system - before.system),
            'result': result,
        }

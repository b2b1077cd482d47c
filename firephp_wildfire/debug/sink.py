"""
Header Sinks.

This module provides the destinations for headers produced by a protocol
session: an ordered in-memory collector, a callback adapter, and a sink
that mirrors headers to the logging system.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterator, List, Optional, Protocol, Tuple, runtime_checkable


@runtime_checkable
class HeaderSink(Protocol):
    """
    Protocol for header sinks.

    A sink receives every header the session emits, in emission order.
    Setting a name that was already set replaces its value, like a
    response header would.
    """

    def set(self, name: str, value: str) -> None:
        """
        Set a response header.

        Args:
            name: Header name
            value: Header value (ASCII, no newlines)
        """
        ...


class ListHeaderSink:
    """
    Collect headers in memory, preserving first-set order.

    Example:
        sink = ListHeaderSink()
        session = ProtocolSession(sink)
        session.log("hello")
        for name, value in sink.items():
            response.headers[name] = value
    """

    def __init__(self):
        self._headers: Dict[str, str] = {}
        self._calls: List[Tuple[str, str]] = []

    def set(self, name: str, value: str) -> None:
        self._headers[name] = value
        self._calls.append((name, value))

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self._headers.get(name, default)

    def items(self) -> List[Tuple[str, str]]:
        """Current headers, one entry per name."""
        return list(self._headers.items())

    @property
    def calls(self) -> List[Tuple[str, str]]:
        """Every set() call in order, including replaced values."""
        return self._calls.copy()

    def message_headers(self, structure_id: Optional[int] = None) -> List[Tuple[str, str]]:
        """Chunk headers only (X-Wf-1-<sid>-1-<n>), in index order."""
        out = []
        for name, value in self._headers.items():
            parts = name.split('-')
            if len(parts) != 6 or parts[:2] != ['X', 'Wf'] or not parts[5].isdigit():
                continue
            if structure_id is not None and parts[3] != str(structure_id):
                continue
            out.append((int(parts[5]), name, value))
        out.sort()
        return [(name, value) for _, name, value in out]

    def clear(self) -> None:
        self._headers.clear()
        self._calls.clear()

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(self.items())

    def __len__(self) -> int:
        return len(self._headers)


class CallbackHeaderSink:
    """
    Forward headers to a callable, e.g. a framework response object.

    Example:
        sink = CallbackHeaderSink(lambda name, value: response.headers.__setitem__(name, value))
    """

    def __init__(self, callback: Callable[[str, str], None]):
        self._callback = callback

    def set(self, name: str, value: str) -> None:
        self._callback(name, value)


class LogHeaderSink:
    """
    Write headers to a logger instead of a response.

    Handy when no client is attached, or to see exactly what goes on the wire.
    """

    def __init__(
        self,
        logger_name: str = "firephp_wildfire.headers",
        level: int = logging.DEBUG,
        inner: Optional[HeaderSink] = None,
    ):
        """
        Initialize the log sink.

        Args:
            logger_name: Name of the logger to use
            level: Log level for each header
            inner: Optional sink that also receives every header
        """
        self._logger = logging.getLogger(logger_name)
        self._level = level
        self._inner = inner

    def set(self, name: str, value: str) -> None:
        self._logger.log(self._level, "%s: %s", name, value)
        if self._inner is not None:
            self._inner.set(name, value)

"""Exceptions raised by the session and framing layers.

Encoding never raises: depth and recursion limits degrade to sentinel
strings inside the payload. Only contract violations and protocol-state
problems surface as exceptions, and they always reach the direct caller.
"""

from __future__ import annotations

from typing import Optional

ERR_INVALID_ARGUMENT = "ERR_INVALID_ARGUMENT"
ERR_PROTOCOL_STATE = "ERR_PROTOCOL_STATE"
ERR_PROTOCOL_LIMIT = "ERR_PROTOCOL_LIMIT"


class WildfireError(Exception):
    """Base class for all errors raised by this package.

    The `.code` attribute is one of the ERR_* strings above.
    """

    code = ""

    def __init__(self, msg: str = "") -> None:
        super().__init__(msg or self.code)


class InvalidArgument(WildfireError, ValueError):
    """Malformed verb arguments: bad dump key, missing group label, unknown option."""

    code = ERR_INVALID_ARGUMENT


class ProtocolStateError(WildfireError, RuntimeError):
    """Headers can no longer be added because the response already started."""

    code = ERR_PROTOCOL_STATE

    def __init__(self, msg: str = "", filename: Optional[str] = None,
                 lineno: Optional[int] = None) -> None:
        super().__init__(msg)
        self.filename = filename
        self.lineno = lineno


class ProtocolLimitExceeded(WildfireError, RuntimeError):
    """The message index would run past what the wire format can carry."""

    code = ERR_PROTOCOL_LIMIT

"""Detect whether the requesting browser runs a FirePHP-capable extension."""

from __future__ import annotations

import re
from typing import Callable, Mapping, Optional, Tuple

from ..protocol.const import MIN_CLIENT_VERSION

_USER_AGENT_VERSION = re.compile(r'\sFirePHP/([.\d]*)\s?', re.IGNORECASE | re.DOTALL)
_HEADER_VERSION = re.compile(r'^([.\d]*)$')


def parse_version(version: str) -> Tuple[int, ...]:
    """'0.10.2' -> (0, 10, 2); empty or non-numeric parts count as 0."""
    return tuple(int(p) if p.isdigit() else 0 for p in version.split('.'))


def version_at_least(version: str, minimum: str = MIN_CLIENT_VERSION) -> bool:
    if not version:
        return False
    have, want = parse_version(version), parse_version(minimum)
    width = max(len(have), len(want))
    return have + (0,) * (width - len(have)) >= want + (0,) * (width - len(want))


def get_request_header(headers: Mapping[str, str], name: str) -> Optional[str]:
    """
    Case-insensitive header lookup.

    Accepts plain header mappings as well as WSGI environs, where
    'X-FirePHP-Version' appears as 'HTTP_X_FIREPHP_VERSION'.
    """
    wanted = name.lower()
    wsgi_key = 'HTTP_' + name.upper().replace('-', '_')
    for key, value in headers.items():
        if key.lower() == wanted or key == wsgi_key:
            return value
    return None


def detect_client_extension(headers: Mapping[str, str], minimum: str = MIN_CLIENT_VERSION) -> bool:
    """
    True when the request comes from a FirePHP extension of at least `minimum`.

    The extension announces itself either in the User-Agent
    ('... FirePHP/0.7.4') or in an X-FirePHP-Version header.
    """
    user_agent = get_request_header(headers, 'User-Agent') or ''
    m = _USER_AGENT_VERSION.search(user_agent)
    if m and version_at_least(m.group(1), minimum):
        return True

    header_version = get_request_header(headers, 'X-FirePHP-Version') or ''
    m = _HEADER_VERSION.match(header_version.strip())
    if m and version_at_least(m.group(1), minimum):
        return True
    return False


def request_probe(headers: Mapping[str, str], minimum: str = MIN_CLIENT_VERSION) -> Callable[[], bool]:
    """Build a `client_supports_protocol` predicate bound to one request."""
    result = detect_client_extension(headers, minimum)
    return lambda: result

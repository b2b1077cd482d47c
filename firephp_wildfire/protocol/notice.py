"""
Inline notice shown when headers can no longer be sent.

Only used while an error is already being reported: raising another
exception there would hide the original failure, so the problem is
written into the response body instead.
"""

from __future__ import annotations

from typing import Optional

from ..util.template_parser import template_parse

NOTICE_TEMPLATE = (
    '<div style="border: 2px solid red; font-family: Arial; font-size: 12px; '
    'background-color: lightgray; padding: 5px;">'
    '<span style="color: red; font-weight: bold;">FirePHP ERROR:</span> '
    'Headers already sent{% if filename %} in <b>{{ filename }}</b>{% endif %}'
    '{% if lineno %} on line <b>{{ lineno }}</b>{% endif %}. '
    'Cannot send log data to FirePHP. {{ hint | shorten(300) }}</div>'
)

DEFAULT_HINT = 'Buffer the response body until the debug headers have been added.'


def headers_sent_message(filename: Optional[str], lineno: Optional[int]) -> str:
    """Plain-text form used for exceptions and log records."""
    where = ''
    if filename:
        where += f' in {filename}'
    if lineno:
        where += f' on line {lineno}'
    return f'Headers already sent{where}. Cannot send log data to FirePHP. {DEFAULT_HINT}'


def render_headers_sent_notice(
    filename: Optional[str],
    lineno: Optional[int],
    hint: str = DEFAULT_HINT,
) -> str:
    """HTML snippet describing where output started. Values are escaped."""
    return template_parse(NOTICE_TEMPLATE, {
        'filename': filename,
        'lineno': lineno,
        'hint': hint,
    })

"""
Protocol Session.

One ProtocolSession lives for exactly one outgoing response. It owns the
message index, turns the logging verbs into Wildfire messages and hands
the resulting headers to a header sink. Sessions are never shared between
requests, so none of this is locked.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple, TYPE_CHECKING

from .const import (
    DUMP_KEY_PATTERN,
    HEADER_PLUGIN,
    HEADER_PROTOCOL,
    HEADER_STRUCTURE,
    MAX_DUMP_KEY_LENGTH,
    PLUGIN_URI,
    PROTOCOL_URI,
    STRUCTURE_URIS,
    LogType,
)
from .encoder import ValueEncoder, ensure_text
from .errors import InvalidArgument, ProtocolStateError
from .frames import StackFrame, capture_stack, coerce_frames, exception_origin, frames_from_traceback
from .framer import MessageFramer
from .json_writer import JSONWriter, escape_string, write_json
from .options import EncoderOptions, FieldFilter
from .notice import headers_sent_message, render_headers_sent_notice
from ..util.paths import clean_path

if TYPE_CHECKING:
    from ..debug.config import SessionConfig
    from ..debug.sink import HeaderSink

logger = logging.getLogger(__name__)

_DUMP_KEY = re.compile(DUMP_KEY_PATTERN)

ResponseState = Tuple[bool, Optional[str], Optional[int]]


def _never_started() -> ResponseState:
    return False, None, None


def _always_supported() -> bool:
    return True


def _check_dump_key(key: Any) -> None:
    if not isinstance(key, str):
        raise InvalidArgument('Key passed to dump() is not a string')
    if len(key) > MAX_DUMP_KEY_LENGTH:
        raise InvalidArgument(f'Key passed to dump() is longer than {MAX_DUMP_KEY_LENGTH} characters')
    if not _DUMP_KEY.fullmatch(key):
        raise InvalidArgument('Key passed to dump() contains invalid characters [a-zA-Z0-9-_\\.:]')


def resolve_type(type_: Any) -> LogType:
    if type_ is None:
        return LogType.LOG
    if isinstance(type_, LogType):
        return type_
    try:
        return LogType(str(type_).upper())
    except ValueError:
        raise InvalidArgument(f"Unknown message type: {type_!r}") from None


class ProtocolSession:
    """
    Per-response Wildfire logging session.

    Example:
        sink = ListHeaderSink()
        session = ProtocolSession(
            sink,
            client_supports_protocol=request_probe(request.headers),
        )
        session.log(order, "Order")
        with session.group_scope("SQL"):
            session.info(query)
        session.dump("user.id", 42)
    """

    def __init__(
        self,
        sink: "HeaderSink",
        client_supports_protocol: Optional[Callable[[], bool]] = None,
        response_started: Optional[Callable[[], Any]] = None,
        current_call_stack: Optional[Callable[[], Iterable[Any]]] = None,
        options: Optional[EncoderOptions] = None,
        filters: Optional[FieldFilter] = None,
        enabled: bool = True,
        path_roots: Optional[Dict[str, str]] = None,
        inline_writer: Optional[Callable[[str], Any]] = None,
        inline_notices: bool = True,
        framer: Optional[MessageFramer] = None,
    ):
        """
        Initialize the session.

        Args:
            sink: Receives every header, in order
            client_supports_protocol: Capability probe; defaults to always True
            response_started: Returns (started, filename, lineno) or a bool
            current_call_stack: Returns frames innermost first, for trace()
            options: Encoder limits
            filters: Per-type excluded fields
            enabled: Master switch
            path_roots: Path prefix -> label used to shorten file paths
            inline_writer: Receives the HTML notice when headers cannot be sent
                while an error is being handled
            inline_notices: Whether to use inline_writer at all
            framer: Message framer (limits are configurable for testing)
        """
        self._sink = sink
        self._client_supports_protocol = client_supports_protocol or _always_supported
        self._response_started = response_started or _never_started
        self._call_stack = current_call_stack or capture_stack
        self._encoder = ValueEncoder(
            options if options is not None else EncoderOptions(),
            filters if filters is not None else FieldFilter(),
        )
        self._writer = JSONWriter()
        self._framer = framer or MessageFramer()
        self._enabled = enabled
        self._path_roots = dict(path_roots or {})
        self._inline_writer = inline_writer
        self._inline_notices = inline_notices

        self._message_index = 1
        self._declared: set = set()
        self._error_depth = 0

    @classmethod
    def from_config(cls, config: "SessionConfig", sink: "HeaderSink", **collaborators: Any) -> "ProtocolSession":
        """
        Build a session from a SessionConfig.

        Args:
            config: Session configuration
            sink: Header sink
            **collaborators: Any other constructor argument (probes, writers)
        """
        return cls(
            sink,
            options=config.encoder.model_copy(),
            filters=config.field_filter(),
            enabled=config.enabled,
            path_roots=config.path_roots,
            inline_notices=config.inline_notices,
            **collaborators,
        )

    # -- state -----------------------------------------------------------

    @property
    def message_index(self) -> int:
        """Index the next chunk header will use."""
        return self._message_index

    @property
    def enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = bool(enabled)

    @property
    def encoder(self) -> ValueEncoder:
        return self._encoder

    def set_object_filter(self, class_name: str, names: Iterable[str]) -> None:
        self._encoder.filters.set(class_name, names)

    def set_options(self, options: Dict[str, Any]) -> None:
        self._encoder.options.update(options)

    def get_options(self) -> Dict[str, Any]:
        return self._encoder.options.to_dict()

    def set_option(self, name: str, value: Any) -> None:
        self._encoder.options.set(name, value)

    def get_option(self, name: str) -> Any:
        return self._encoder.options.get(name)

    @contextmanager
    def handling_error(self) -> Iterator["ProtocolSession"]:
        """
        Mark the enclosed calls as part of error reporting.

        Inside this block a response that already started does not raise
        ProtocolStateError; an inline notice is written instead.
        """
        self._error_depth += 1
        try:
            yield self
        finally:
            self._error_depth -= 1

    # -- verbs -----------------------------------------------------------

    def log(self, value: Any, label: Optional[str] = None, options: Optional[Mapping] = None) -> bool:
        return self.send(value, label, LogType.LOG, options)

    def info(self, value: Any, label: Optional[str] = None, options: Optional[Mapping] = None) -> bool:
        return self.send(value, label, LogType.INFO, options)

    def warn(self, value: Any, label: Optional[str] = None, options: Optional[Mapping] = None) -> bool:
        return self.send(value, label, LogType.WARN, options)

    def error(self, value: Any, label: Optional[str] = None, options: Optional[Mapping] = None) -> bool:
        return self.send(value, label, LogType.ERROR, options)

    def dump(self, key: str, value: Any, options: Optional[Mapping] = None) -> bool:
        """
        Send a named variable to the dump panel.

        Raises:
            InvalidArgument: If the key is not a string, longer than 100
                characters or contains characters outside [a-zA-Z0-9-_.:]
        """
        return self.send(value, key, LogType.DUMP, options)

    def trace(self, label: Optional[str] = None, frames: Optional[Iterable[Any]] = None) -> bool:
        """Send a stack trace of the caller (or of `frames`, innermost first)."""
        return self.send(list(frames) if frames is not None else None, label, LogType.TRACE)

    def table(self, label: str, table: Any, options: Optional[Mapping] = None) -> bool:
        """Send rows of cells; the first row is shown as the header."""
        return self.send(table, label, LogType.TABLE, options)

    def group_start(self, label: str, options: Optional[Mapping] = None) -> bool:
        """
        Open a console group.

        Options:
            Collapsed: Start the group collapsed (normalized to 'true'/'false')
            Color: CSS color of the group label
        """
        if not label:
            raise InvalidArgument('You must specify a label for the group!')
        options = self._check_options(options)
        if 'Collapsed' in options:
            options['Collapsed'] = 'true' if options['Collapsed'] else 'false'
        return self.send(None, label, LogType.GROUP_START, options)

    group = group_start

    def group_end(self) -> bool:
        return self.send(None, None, LogType.GROUP_END)

    @contextmanager
    def group_scope(self, label: str, options: Optional[Mapping] = None) -> Iterator["ProtocolSession"]:
        self.group_start(label, options)
        try:
            yield self
        finally:
            self.group_end()

    # -- core ------------------------------------------------------------

    def send(
        self,
        value: Any,
        label: Optional[str] = None,
        type: Any = None,
        options: Optional[Mapping] = None,
    ) -> bool:
        """
        Encode and emit one message.

        Args:
            value: Payload; an exception is always sent as an EXCEPTION message
            label: Optional label (required for GROUP_START and DUMP)
            type: LogType or its name; defaults to LOG
            options: Extra metadata merged into the message envelope

        Returns:
            True if headers were emitted, False if the session is disabled,
            the client cannot decode them, or an inline notice was written

        Raises:
            InvalidArgument: On malformed arguments
            ProtocolStateError: If the response already started
            ProtocolLimitExceeded: If the message index is exhausted
        """
        log_type = resolve_type(type)
        options = self._check_options(options)
        if log_type is LogType.GROUP_START and not label:
            raise InvalidArgument('You must specify a label for the group!')
        if log_type is LogType.DUMP:
            _check_dump_key(label)

        if not self._enabled:
            return False

        started, filename, lineno = self._response_state()
        if started:
            if self._error_depth:
                self._write_inline_notice(filename, lineno)
                return False
            raise ProtocolStateError(headers_sent_message(filename, lineno), filename, lineno)

        if not self._client_supports_protocol():
            return False

        skip_final_encode = False
        payload = value
        if isinstance(value, BaseException):
            payload = self._exception_payload(value)
            log_type = LogType.EXCEPTION
            skip_final_encode = True
        elif log_type is LogType.TRACE:
            payload = self._trace_payload(value, label)
            if payload is None:
                return False
            skip_final_encode = True
        elif log_type is LogType.TABLE:
            payload = self._table_payload(value)
            skip_final_encode = True

        body = self.json_encode(payload, skip_final_encode)
        if log_type is LogType.DUMP:
            message = '{' + escape_string(label) + ':' + body + '}'
        else:
            meta = dict(options)
            meta['Type'] = log_type.value
            if label is not None:
                meta['Label'] = label
            message = '[' + self.json_encode(meta) + ',' + body + ']'

        self._emit(log_type.structure_id, message)
        logger.debug("Sent %s message (%d bytes)", log_type.value, len(message))
        return True

    def json_encode(self, value: Any, skip_object_encode: bool = False) -> str:
        """Encode (unless already encoded) and serialize a value."""
        if not skip_object_encode:
            value = self._encoder.encode(value)
        return write_json(value, self._encoder.options.use_native_json, self._writer)

    def _emit(self, structure_id: int, message: str) -> None:
        headers = self._framer.frame(self._message_index, structure_id, message)

        self._declare(HEADER_PROTOCOL, PROTOCOL_URI)
        self._declare(HEADER_PLUGIN, PLUGIN_URI)
        self._declare(HEADER_STRUCTURE.format(structure_id=structure_id), STRUCTURE_URIS[structure_id])

        for name, value in headers:
            self._sink.set(name, value)
        self._message_index += len(headers)
        if len(headers) > 1:
            logger.debug("Message split into %d chunks", len(headers))
        self._sink.set(*self._framer.index_header(self._message_index - 1))

    def _declare(self, name: str, value: str) -> None:
        if name not in self._declared:
            self._sink.set(name, value)
            self._declared.add(name)

    def _check_options(self, options: Optional[Mapping]) -> Dict[str, Any]:
        if options is None:
            return {}
        if not isinstance(options, Mapping):
            raise InvalidArgument('Options must be defined as a mapping!')
        return dict(options)

    def _response_state(self) -> ResponseState:
        state = self._response_started()
        if isinstance(state, tuple):
            started = bool(state[0]) if state else False
            filename = state[1] if len(state) > 1 else None
            lineno = state[2] if len(state) > 2 else None
            return started, filename, lineno
        return bool(state), None, None

    def _write_inline_notice(self, filename: Optional[str], lineno: Optional[int]) -> None:
        logger.warning(headers_sent_message(filename, lineno))
        if self._inline_writer is None or not self._inline_notices:
            return
        try:
            self._inline_writer(render_headers_sent_notice(filename, lineno))
        except Exception as e:
            logger.warning("Could not write inline notice: %s", e)

    # -- payload synthesis -------------------------------------------------

    def clean_path(self, path: Optional[str]) -> str:
        return clean_path(path, self._path_roots)

    def _escape_trace(self, frames: List[StackFrame]) -> List[Dict[str, Any]]:
        trace = []
        for frame in frames:
            entry = frame.to_wire()
            if 'file' in entry:
                entry['file'] = self.clean_path(entry['file'])
            if 'args' in entry:
                entry['args'] = self._encoder.encode(entry['args'])
            for key in ('function', 'class', 'type'):
                if key in entry:
                    entry[key] = ensure_text(str(entry[key]))
            trace.append(entry)
        return trace

    def _exception_payload(self, exc: BaseException) -> Dict[str, Any]:
        origin = exception_origin(exc)
        file = self.clean_path(origin['file'])
        line = origin['line']
        try:
            text = ensure_text(str(exc))
        except Exception:
            text = f'** Unprintable ({type(exc).__name__}) **'
        return {
            'Class': type(exc).__name__,
            'Message': f'{file} @ line: {line} - {text}',
            'File': file,
            'Line': line,
            'Type': 'throw',
            'Trace': self._escape_trace(frames_from_traceback(exc.__traceback__)),
        }

    def _trace_payload(self, value: Any, label: Optional[str]) -> Optional[Dict[str, Any]]:
        raw = value if isinstance(value, (list, tuple)) else self._call_stack()
        frames = coerce_frames(raw or [])
        if not frames:
            return None
        first = frames[0]
        return {
            'Class': first.class_ or '',
            'Type': first.type or '',
            'Function': first.function or '',
            'Message': label,
            'File': self.clean_path(first.file) if first.file else '',
            'Line': first.line if first.line is not None else '',
            'Args': self._encoder.encode(first.args) if first.args is not None else '',
            'Trace': self._escape_trace(frames[1:]),
        }

    def _table_payload(self, value: Any) -> Any:
        # [label, rows] form: the rows sit in the second slot
        if isinstance(value, (list, tuple)) and len(value) == 2 and isinstance(value[0], str):
            return [value[0], self._encoder.encode_table(value[1])]
        return self._encoder.encode_table(value)

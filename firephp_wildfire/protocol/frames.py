"""
Call stack capture for trace and exception messages.

Frames are kept innermost first, the order the console expects: the first
frame is where the trace was requested (or the exception raised), followed
by its callers.
"""

from __future__ import annotations

import inspect
import os
import traceback
from types import FrameType, TracebackType
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import InvalidArgument
from ..util.paths import is_within

PACKAGE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


class StackFrame(BaseModel):
    """
    One entry of a call stack.

    Frames coming from an external stack provider may be plain dicts; they
    are validated into this model, and extra keys are kept.
    """
    model_config = ConfigDict(extra='allow', populate_by_name=True)

    file: Optional[str] = None
    line: Optional[int] = None
    function: Optional[str] = None
    class_: Optional[str] = Field(default=None, alias='class')
    type: Optional[str] = None
    args: Optional[List[Any]] = None

    @field_validator('line', mode='before')
    @classmethod
    def blank_line_is_unknown(cls, value: Any) -> Any:
        # Stack providers use an empty string for an unknown line.
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def to_wire(self) -> Dict[str, Any]:
        """Dict in console order with only the keys that are set."""
        out: Dict[str, Any] = {}
        for key, value in (('file', self.file), ('line', self.line),
                           ('function', self.function), ('class', self.class_),
                           ('type', self.type), ('args', self.args)):
            if value is not None:
                out[key] = value
        return out


def coerce_frames(frames: Iterable[Any]) -> List[StackFrame]:
    try:
        return [f if isinstance(f, StackFrame) else StackFrame.model_validate(f) for f in frames]
    except ValidationError as e:
        raise InvalidArgument(f"Invalid stack frame: {e.errors()[0]['msg']}") from e


def frame_from_python(frame: FrameType, lineno: Optional[int] = None) -> StackFrame:
    code = frame.f_code
    class_name = None
    call_type = None
    f_locals = frame.f_locals
    if 'self' in f_locals and code.co_varnames[:1] == ('self',):
        class_name = type(f_locals['self']).__name__
        call_type = '->'
    elif 'cls' in f_locals and code.co_varnames[:1] == ('cls',) and isinstance(f_locals['cls'], type):
        class_name = f_locals['cls'].__name__
        call_type = '::'

    args: List[Any] = []
    try:
        arginfo = inspect.getargvalues(frame)
    except (TypeError, ValueError):
        arginfo = None
    if arginfo is not None:
        names = list(arginfo.args)
        if call_type is not None and names:
            names = names[1:]
        args = [arginfo.locals[n] for n in names if n in arginfo.locals]
        if arginfo.varargs and arginfo.varargs in arginfo.locals:
            args.extend(arginfo.locals[arginfo.varargs])

    return StackFrame(
        file=code.co_filename,
        line=lineno if lineno is not None else frame.f_lineno,
        function=code.co_name,
        class_=class_name,
        type=call_type,
        args=args,
    )


def _is_internal(filename: str) -> bool:
    return is_within(filename, PACKAGE_DIR)


def capture_stack(skip: int = 0, frame: Optional[FrameType] = None) -> List[StackFrame]:
    """
    Snapshot the current call stack, innermost first.

    Leading frames that belong to this package are dropped so the first
    frame is always the caller's own code.

    Args:
        skip: Extra frames to drop after the package frames
        frame: Start from this frame instead of the current one
    """
    current = frame or inspect.currentframe()
    frames: List[StackFrame] = []
    try:
        while current is not None and _is_internal(current.f_code.co_filename):
            current = current.f_back
        while current is not None and skip > 0:
            current = current.f_back
            skip -= 1
        while current is not None:
            frames.append(frame_from_python(current))
            current = current.f_back
    finally:
        del current
    return frames


def frames_from_traceback(tb: Optional[TracebackType]) -> List[StackFrame]:
    """Traceback frames, innermost (the raise point) first."""
    frames = [frame_from_python(f, lineno) for f, lineno in traceback.walk_tb(tb)]
    frames.reverse()
    return frames


def exception_origin(exc: BaseException) -> Dict[str, Any]:
    """File and line where `exc` was raised, or empty values when unknown."""
    tb = exc.__traceback__
    if tb is None:
        return {'file': '', 'line': ''}
    last = traceback.extract_tb(tb)[-1]
    return {'file': last.filename, 'line': last.lineno}

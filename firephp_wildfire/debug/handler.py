"""
Error Reporting.

Forwards uncaught exceptions, warnings and log records to a session.

    reporter = ErrorReporter(session).install()
    logging.getLogger("app").addHandler(FirePHPHandler(session))
"""

from __future__ import annotations

import logging
import sys
import warnings
from types import TracebackType
from typing import Any, Callable, Optional, Type, TYPE_CHECKING

from ..protocol.errors import WildfireError
from ..protocol.frames import capture_stack

if TYPE_CHECKING:
    from ..protocol.session import ProtocolSession

logger = logging.getLogger(__name__)

DEFAULT_THROTTLE = 10
THROTTLE_NOTICE = 'Error throttling threshold was reached, no more full error reports are shown.'


class ErrorReporter:
    """
    Send exceptions, warnings and notices to the browser console.

    Every report runs inside session.handling_error(), so a response that
    already started produces an inline notice instead of a second exception.
    """

    def __init__(
        self,
        session: "ProtocolSession",
        throttle: int = DEFAULT_THROTTLE,
        show_notices: bool = True,
    ):
        """
        Initialize the reporter.

        Args:
            session: Session that receives the reports
            throttle: Number of warnings reported in full before going quiet
            show_notices: Whether notice() sends anything unless forced
        """
        self.session = session
        self.throttle = throttle
        self.show_notices = show_notices
        self.count = 0
        self._previous_excepthook: Optional[Callable[..., Any]] = None
        self._previous_showwarning: Optional[Callable[..., Any]] = None

    def report_exception(self, exc: BaseException) -> bool:
        """
        Send an exception with its origin and trace.

        Returns:
            True if it was sent; failures of the session are logged
        """
        logger.error("%s - %s", type(exc).__name__, exc)
        with self.session.handling_error():
            try:
                return self.session.error(exc)
            except WildfireError as e:
                logger.warning("Could not report %s: %s", type(exc).__name__, e)
                return False

    def report_warning(
        self,
        message: Any,
        category: Type[Warning] = UserWarning,
        filename: Optional[str] = None,
        lineno: Optional[int] = None,
    ) -> bool:
        """
        Send a warning, unless the throttle threshold was reached.

        The first report past the threshold is replaced by a single notice
        saying so; later ones are only logged.
        """
        file = self.session.clean_path(filename) or "(unknown)"
        where = f"{file} on line {lineno if lineno is not None else '(unknown)'}"
        logger.warning("%s - %s in %s", category.__name__, message, where)

        if self.count < self.throttle:
            self.count += 1
            with self.session.handling_error():
                try:
                    return self.session.warn(str(message), f"{category.__name__} - in {where}")
                except WildfireError as e:
                    logger.warning("Could not report warning: %s", e)
                    return False

        if self.count == self.throttle:
            self.count += 1
            return self.notice(THROTTLE_NOTICE, always_show=True, filename=filename, lineno=lineno)
        return False

    def notice(
        self,
        message: str,
        always_show: bool = False,
        filename: Optional[str] = None,
        lineno: Optional[int] = None,
    ) -> bool:
        """
        Send a short notice labelled with a source location.

        Args:
            message: Text to show
            always_show: Send even when show_notices is off
            filename: Location to report; defaults to the caller's
            lineno: Line to report with filename
        """
        if filename is None:
            frames = capture_stack()
            if frames:
                filename, lineno = frames[0].file, frames[0].line
        file = self.session.clean_path(filename) or '(unknown)'
        line = lineno if lineno is not None else '(unknown)'
        logger.debug("Notice - %s in %s on line %s", message, file, line)

        if not always_show and not self.show_notices:
            return False
        with self.session.handling_error():
            try:
                return self.session.warn(message, f"Notice - in {file} on line {line}")
            except WildfireError as e:
                logger.warning("Could not send notice: %s", e)
                return False

    def reset(self) -> None:
        self.count = 0

    def install(self) -> "ErrorReporter":
        """
        Hook sys.excepthook and warnings.showwarning.

        The previous hooks still run after ours. Returns self for chaining.
        """
        if self._previous_excepthook is None:
            self._previous_excepthook = sys.excepthook
            sys.excepthook = self._excepthook
        if self._previous_showwarning is None:
            self._previous_showwarning = warnings.showwarning
            warnings.showwarning = self._showwarning
        return self

    def uninstall(self) -> None:
        if self._previous_excepthook is not None:
            sys.excepthook = self._previous_excepthook
            self._previous_excepthook = None
        if self._previous_showwarning is not None:
            warnings.showwarning = self._previous_showwarning
            self._previous_showwarning = None

    def _excepthook(
        self,
        exc_type: Type[BaseException],
        exc: BaseException,
        tb: Optional[TracebackType],
    ) -> None:
        if exc.__traceback__ is None:
            exc = exc.with_traceback(tb)
        self.report_exception(exc)
        if self._previous_excepthook is not None:
            self._previous_excepthook(exc_type, exc, tb)

    def _showwarning(self, message, category, filename, lineno, file=None, line=None) -> None:
        self.report_warning(message, category, filename, lineno)
        if self._previous_showwarning is not None:
            self._previous_showwarning(message, category, filename, lineno, file, line)


class FirePHPHandler(logging.Handler):
    """
    logging.Handler that forwards records to a session.

    DEBUG goes to log, INFO to info, WARNING to warn, ERROR and CRITICAL
    to error. A record carrying exc_info sends the exception itself,
    labelled with the formatted message. The logger name is the label of
    every other record.
    """

    def __init__(self, session: "ProtocolSession", level: int = logging.NOTSET):
        super().__init__(level)
        self.session = session
        self._emitting = False

    def emit(self, record: logging.LogRecord) -> None:
        # Records logged by the session itself would loop back here.
        if self._emitting:
            return
        self._emitting = True
        try:
            message = record.getMessage()
            if record.exc_info and record.exc_info[1] is not None:
                self.session.error(record.exc_info[1], message)
            elif record.levelno >= logging.ERROR:
                self.session.error(message, record.name)
            elif record.levelno >= logging.WARNING:
                self.session.warn(message, record.name)
            elif record.levelno >= logging.INFO:
                self.session.info(message, record.name)
            else:
                self.session.log(message, record.name)
        except Exception:
            self.handleError(record)
        finally:
            self._emitting = False

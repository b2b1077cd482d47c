"""
Debug integration for firephp-wildfire.

Everything a web application needs around a ProtocolSession:

- config: SessionConfig and presets
- sink: where the headers go (response, callback, logger)
- capability: detect the FirePHP browser extension from request headers
- inspector: Debug helpers (dump, inspect, backtrace, benchmark)
- handler: ErrorReporter hooks and a logging.Handler
"""

from firephp_wildfire.debug.config import (
    SessionConfig,
    DEFAULT_OBJECT_FILTERS,
    default_config,
    get_preset,
    PRESETS,
)
from firephp_wildfire.debug.sink import (
    HeaderSink,
    ListHeaderSink,
    CallbackHeaderSink,
    LogHeaderSink,
)
from firephp_wildfire.debug.capability import (
    detect_client_extension,
    request_probe,
)
from firephp_wildfire.debug.inspector import Debug, get_type
from firephp_wildfire.debug.handler import ErrorReporter, FirePHPHandler

__all__ = [
    # Config
    "SessionConfig",
    "DEFAULT_OBJECT_FILTERS",
    "default_config",
    "get_preset",
    "PRESETS",
    # Sinks
    "HeaderSink",
    "ListHeaderSink",
    "CallbackHeaderSink",
    "LogHeaderSink",
    # Capability
    "detect_client_extension",
    "request_probe",
    # Adapters
    "Debug",
    "get_type",
    "ErrorReporter",
    "FirePHPHandler",
]

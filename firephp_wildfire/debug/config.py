"""
Session Configuration.

This module provides the configuration object for a Wildfire session:
encoder limits, per-type field filters, path cleaning roots and the
behaviour of the inline notice fallback, plus a few named presets.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..protocol.errors import InvalidArgument
from ..protocol.options import EncoderOptions, FieldFilter


# The session's own plumbing is never worth shipping to the browser.
DEFAULT_OBJECT_FILTERS: Dict[str, List[str]] = {
    "protocolsession": ["_sink", "_encoder", "_writer", "_framer", "_call_stack"],
}


@dataclass
class SessionConfig:
    """
    Configuration for a protocol session.

    Attributes:
        enabled: Master switch; a disabled session turns every verb into a no-op
        encoder: Depth limits and JSON writer selection
        object_filters: Type name -> field names excluded from encoding
        path_roots: Path prefix -> label, used to shorten file paths in traces
        inline_notices: Render an inline notice when headers cannot be sent
            from inside error handling
    """

    enabled: bool = True
    encoder: EncoderOptions = field(default_factory=EncoderOptions)
    object_filters: Dict[str, List[str]] = field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_OBJECT_FILTERS.items()}
    )
    path_roots: Dict[str, str] = field(default_factory=dict)
    inline_notices: bool = True

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SessionConfig":
        """
        Create a SessionConfig from a dictionary (e.g., from JSON).

        ```json
        {
          "preset": "verbose",
          "encoder": {"maxDepth": 15},
          "object_filters": {"User": ["password"]}
        }
        ```

        Args:
            data: Dictionary with configuration values

        Returns:
            SessionConfig instance
        """
        if not data:
            return cls()

        data = dict(data)
        preset_name = data.pop("preset", None)
        base_config = get_preset(preset_name) if preset_name else cls()

        unknown = set(data) - {"enabled", "encoder", "object_filters", "path_roots", "inline_notices"}
        if unknown:
            raise InvalidArgument(f"Unknown configuration keys: {sorted(unknown)}")

        encoder = base_config.encoder.model_copy()
        if data.get("encoder"):
            encoder.update(data["encoder"])

        object_filters = dict(base_config.object_filters)
        for type_name, names in (data.get("object_filters") or {}).items():
            object_filters[type_name] = list(names)

        return cls(
            enabled=data.get("enabled", base_config.enabled),
            encoder=encoder,
            object_filters=object_filters,
            path_roots=dict(data.get("path_roots", base_config.path_roots)),
            inline_notices=data.get("inline_notices", base_config.inline_notices),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "encoder": self.encoder.to_dict(),
            "object_filters": {k: list(v) for k, v in self.object_filters.items()},
            "path_roots": dict(self.path_roots),
            "inline_notices": self.inline_notices,
        }

    def field_filter(self) -> FieldFilter:
        return FieldFilter(self.object_filters)


def default_config() -> SessionConfig:
    return SessionConfig()


def verbose_config() -> SessionConfig:
    """
    Deeper limits for inspecting large object graphs.

    Produces noticeably more header traffic; local development only.
    """
    return SessionConfig(
        encoder=EncoderOptions(max_depth=20, max_object_depth=10, max_array_depth=10),
    )


def minimal_config() -> SessionConfig:
    """Shallow limits and no inline notices."""
    return SessionConfig(
        encoder=EncoderOptions(max_depth=4, max_object_depth=2, max_array_depth=2),
        inline_notices=False,
    )


PRESETS = {
    "default": default_config,
    "verbose": verbose_config,
    "minimal": minimal_config,
}


def get_preset(name: str) -> SessionConfig:
    """
    Get a preset configuration by name.

    Raises:
        InvalidArgument: If preset name is unknown
    """
    if name not in PRESETS:
        raise InvalidArgument(
            f"Unknown preset '{name}'. Available: {list(PRESETS.keys())}"
        )
    return PRESETS[name]()

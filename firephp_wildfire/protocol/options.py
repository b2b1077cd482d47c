"""
Encoder options and field filters.

Both objects are owned by a ValueEncoder and can be changed while a
session is live; the next message picks the new values up.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import InvalidArgument


# Option names as the PHP library spelled them; still accepted everywhere.
OPTION_ALIASES = {
    "maxDepth": "max_depth",
    "maxObjectDepth": "max_object_depth",
    "maxArrayDepth": "max_array_depth",
    "useNativeJsonEncode": "use_native_json",
}


def resolve_option_name(name: str) -> str:
    """
    Map an option name (snake_case or legacy camelCase) to its field name.

    Raises:
        InvalidArgument: If the option does not exist
    """
    resolved = OPTION_ALIASES.get(name, name)
    if resolved not in EncoderOptions.model_fields:
        raise InvalidArgument(f"Unknown option: {name}")
    return resolved


class EncoderOptions(BaseModel):
    """
    Structural limits applied while encoding values.

    Exceeding any of the depth limits never raises; the offending value is
    replaced by a sentinel string in the payload.
    """
    model_config = ConfigDict(extra='forbid', validate_assignment=True, populate_by_name=True)

    max_depth: int = Field(default=10, ge=0, alias="maxDepth")
    max_object_depth: int = Field(default=5, ge=0, alias="maxObjectDepth")
    max_array_depth: int = Field(default=5, ge=0, alias="maxArrayDepth")
    use_native_json: bool = Field(default=False, alias="useNativeJsonEncode")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "EncoderOptions":
        """Build options from a mapping, rejecting unknown names."""
        options = cls()
        options.update(data or {})
        return options

    def update(self, data: Dict[str, Any]) -> "EncoderOptions":
        """
        Merge option values in place.

        Args:
            data: Option name -> value

        Returns:
            Self for chaining

        Raises:
            InvalidArgument: On an unknown name or an invalid value
        """
        for name, value in data.items():
            self.set(name, value)
        return self

    def set(self, name: str, value: Any) -> None:
        resolved = resolve_option_name(name)
        try:
            setattr(self, resolved, value)
        except ValidationError as e:
            raise InvalidArgument(f"Invalid value for option {name}: {value!r}") from e

    def get(self, name: str) -> Any:
        return getattr(self, resolve_option_name(name))

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump()


class FieldFilter:
    """
    Per-type exclusion lists for object fields.

    Type names are matched case-insensitively. A filtered field keeps its
    slot in the encoded object but its value is never looked at.

    Example:
        filters = FieldFilter({"User": ["password"]})
        filters.excludes("user", "password")  # True
    """

    def __init__(self, filters: Optional[Dict[str, Iterable[str]]] = None):
        self._filters: Dict[str, Set[str]] = {}
        for type_name, names in (filters or {}).items():
            self.set(type_name, names)

    def set(self, type_name: str, names: Iterable[str]) -> "FieldFilter":
        """Replace the excluded names for a type. Returns self for chaining."""
        if isinstance(names, str):
            names = [names]
        self._filters[type_name.lower()] = set(names)
        return self

    def get(self, type_name: str) -> Set[str]:
        return set(self._filters.get(type_name.lower(), ()))

    def excludes(self, type_name: str, field_name: str) -> bool:
        names = self._filters.get(type_name.lower())
        return bool(names) and field_name in names

    def to_dict(self) -> Dict[str, List[str]]:
        return {k: sorted(v) for k, v in self._filters.items()}

    def __len__(self) -> int:
        return len(self._filters)

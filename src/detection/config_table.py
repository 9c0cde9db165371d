"""
Backend configuration table.

A flat string-keyed table that parametrizes one detector variant: model
paths, thresholds written as decimal text, backend selectors, and allow-lists
stored as repeated entries under one key, e.g.

    table = ConfigTable()
    table.add("modelBinary", "data/yolov8n.pt")
    table.add("confidenceThreshold", "0.5")
    table.add("white_list", "person")
    table.add("white_list", "car")
"""

from __future__ import annotations

from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple


class ConfigError(ValueError):
    """Raised when a configuration key is missing or malformed."""


_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


class ConfigTable:
    """Multimap of string keys to string values."""

    def __init__(self) -> None:
        self._entries: List[Tuple[str, str]] = []

    @classmethod
    def from_dict(cls, mapping: Optional[Mapping[str, Any]]) -> "ConfigTable":
        """
        Build a table from a mapping.

        List and tuple values become repeated entries under the same key.
        """
        table = cls()
        for key, value in (mapping or {}).items():
            if isinstance(value, (list, tuple)):
                for item in value:
                    table.add(key, item)
            else:
                table.add(key, value)
        return table

    def add(self, key: str, value: Any) -> None:
        """Append a value; the key may already be present."""
        if isinstance(value, bool):
            value = "1" if value else "0"
        self._entries.append((key, str(value)))

    def set(self, key: str, value: Any) -> None:
        """Replace every value under key with a single value."""
        self.remove(key)
        self.add(key, value)

    def remove(self, key: str) -> None:
        self._entries = [(k, v) for k, v in self._entries if k != key]

    def update(self, other: "ConfigTable") -> None:
        """Override keys present in other, keeping the rest."""
        for key in other.keys():
            self.remove(key)
        self._entries.extend(other.items())

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Return the first value stored under key."""
        for k, v in self._entries:
            if k == key:
                return v
        return default

    def get_all(self, key: str) -> List[str]:
        """Return every value under key, in insertion order."""
        return [v for k, v in self._entries if k == key]

    def require(self, key: str) -> str:
        value = self.get(key)
        if value is None or value == "":
            raise ConfigError(f"Missing required configuration key: {key}")
        return value

    def get_int(self, key: str, default: int) -> int:
        value = self.get(key)
        if value is None:
            return default
        try:
            return int(float(value))
        except ValueError as e:
            raise ConfigError(f"{key} must be an integer, got {value!r}") from e

    def get_float(self, key: str, default: float) -> float:
        value = self.get(key)
        if value is None:
            return default
        try:
            return float(value)
        except ValueError as e:
            raise ConfigError(f"{key} must be a number, got {value!r}") from e

    def get_bool(self, key: str, default: bool) -> bool:
        value = self.get(key)
        if value is None:
            return default
        lowered = value.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ConfigError(f"{key} must be a boolean flag, got {value!r}")

    def keys(self) -> List[str]:
        """Distinct keys in first-seen order."""
        seen: List[str] = []
        for k, _ in self._entries:
            if k not in seen:
                seen.append(k)
        return seen

    def items(self) -> List[Tuple[str, str]]:
        return list(self._entries)

    def to_dict(self) -> Dict[str, Any]:
        """Single values stay strings, repeated keys become lists."""
        out: Dict[str, Any] = {}
        for key in self.keys():
            values = self.get_all(key)
            out[key] = values[0] if len(values) == 1 else values
        return out

    def copy(self) -> "ConfigTable":
        table = ConfigTable()
        table._entries = list(self._entries)
        return table

    def __contains__(self, key: object) -> bool:
        return any(k == key for k, _ in self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(self._entries)

    def __repr__(self) -> str:
        return f"ConfigTable({self.to_dict()!r})"

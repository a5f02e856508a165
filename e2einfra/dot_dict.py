"""
Dictionary-like object with attribute access and dotted-path lookup.

Used for raw configuration data before it is validated into a
``SuiteConfig``, e.g. ``cfg.retry.attempts`` or ``cfg.get("retry.attempts")``.
"""

import builtins
from collections.abc import ItemsView, KeysView, ValuesView
from typing import Any


class DotDict:
    """
    Dictionary-like object with attribute-style access and nested structure support.

    Nested dictionaries (also inside lists) are converted to DotDict instances.
    """

    # Keys that would shadow commonly called methods
    _RESERVED_KEYS = frozenset({"set", "clear", "dict", "to_dict", "get", "has"})

    def __init__(self, **kwargs: Any) -> None:
        self.set(**kwargs)

    def set(self, **kwargs: Any) -> "DotDict":
        """
        Set multiple key-value pairs, with automatic nested object creation.

        Returns:
            self: For method chaining
        """
        for key, val in kwargs.items():
            self._set_item(key, val)
        return self

    def _set_item(self, key: Any, val: Any) -> None:
        if not isinstance(key, str):
            key = str(key)

        if key in self._RESERVED_KEYS:
            raise ValueError(
                f"Key '{key}' is reserved and cannot be used (would shadow method)"
            )

        if isinstance(val, dict):
            setattr(self, key, DotDict(**val))
        elif isinstance(val, list):
            setattr(self, key, list(map(self._map_entry, val)))
        else:
            setattr(self, key, val)

    def clear(self) -> None:
        """Clear all attributes from the object."""
        for k in list(self.__dict__.keys()):
            delattr(self, k)

    @staticmethod
    def _map_entry(entry: Any) -> Any:
        if isinstance(entry, dict):
            return DotDict(**entry)
        return entry

    def dict(self) -> dict[str, Any]:
        """Shallow conversion; nested DotDicts become dicts, lists are kept as-is."""
        result = {}
        for key, val in self.__dict__.items():
            result[key] = val.dict() if isinstance(val, DotDict) else val
        return result

    def to_dict(self) -> builtins.dict[str, Any]:
        """
        Recursively convert DotDict and all nested structures to plain dicts.

        This is what gets handed to pydantic for validation.
        """
        result: dict[str, Any] = {}
        for key, val in self.__dict__.items():
            if isinstance(val, DotDict):
                result[key] = val.to_dict()
            elif isinstance(val, list):
                result[key] = [
                    item.to_dict() if isinstance(item, DotDict) else item
                    for item in val
                ]
            else:
                result[key] = val
        return result

    def keys(self) -> KeysView[str]:
        return self.__dict__.keys()

    def values(self) -> ValuesView[Any]:
        return self.__dict__.values()

    def items(self) -> ItemsView[str, Any]:
        return self.__dict__.items()

    def __contains__(self, key: Any) -> bool:
        return key in self.__dict__

    def __getitem__(self, key: str) -> Any:
        """Dictionary-style access; missing keys return None."""
        return getattr(self, key) if key in self.__dict__ else None

    def __setitem__(self, key: str, val: Any) -> None:
        if key in self.__dict__:
            delattr(self, key)
        self._set_item(key, val)

    def __len__(self) -> int:
        return len(self.__dict__)

    def __str__(self) -> str:
        return str(self.dict())

    def __repr__(self) -> str:
        return f"DotDict({self.dict()!r})"

    def has(self, path: str) -> bool:
        """Check if a dot-separated path (e.g. "retry.attempts") exists."""
        if not path:
            return False

        cur: Any = self
        for item in path.split("."):
            if not item:
                continue
            if not isinstance(cur, DotDict) or item not in cur:
                return False
            cur = cur[item]
        return True

    def get(self, path: str, default: Any = None) -> Any:
        """
        Get value by dot-separated path.

        Follows dict.get() semantics: returns ``default`` if the path is not found.
        """
        if not path:
            return default

        cur: Any = self
        for item in (p for p in path.split(".") if p):
            if not isinstance(cur, DotDict) or item not in cur:
                return default
            cur = cur[item]
        return cur

"""Parameter source consumed by the CRUD operations.

Values are expected to be validated already (type conversion, ranges,
allowed sets). Params only offers lookup, with a few typed getters for
the reserved pagination and ordering names.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any

# Reserved parameter names
PAGE_NUMBER = "_pageNumber"
PAGE_SIZE = "_pageSize"
ORDER_BY = "_orderBy"
ORDER = "_order"


@dataclass(frozen=True)
class Range:
    """A two-sided range filter value.

    Bounds may be numbers or datetimes. Each side is inclusive when its
    *_closed flag is set.
    """

    left: Any
    right: Any
    left_closed: bool = True
    right_closed: bool = True


class Params:
    """Validated request parameters."""

    def __init__(self, values: Mapping[str, Any] | None = None):
        self._values: dict[str, Any] = dict(values or {})

    def has(self, name: str) -> bool:
        return name in self._values

    def get(self, name: str, default: Any = None) -> Any:
        return self._values.get(name, default)

    def set(self, name: str, value: Any) -> None:
        self._values[name] = value

    def delete(self, *names: str) -> None:
        for name in names:
            self._values.pop(name, None)

    def get_int(self, name: str, default: int = 0) -> int:
        value = self._values.get(name)
        if value is None:
            return default
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    def get_string_array(self, name: str) -> list[str]:
        """Return a list of strings; a plain string is split on commas."""
        value = self._values.get(name)
        if value is None:
            return []
        if isinstance(value, str):
            return [item for item in value.split(",") if item != ""]
        if isinstance(value, (list, tuple, set, frozenset)):
            return [str(item) for item in value]
        return [str(value)]

    def names(self) -> list[str]:
        return list(self._values.keys())

    def copy(self) -> Params:
        return Params(self._values)

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"Params({self._values!r})"

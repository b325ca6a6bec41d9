"""Record instances bound to a model definition.

Field presence is explicit: a field that was never set is absent, even
if a zero value would be a legal column value.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from metacrud.models.registry import ModelDefinition


class Record:
    """An addressable value of a registered model."""

    def __init__(self, definition: ModelDefinition, values: Mapping[str, Any] | None = None):
        self.definition = definition
        self._values: dict[str, Any] = {}
        if values:
            self.update(values)

    @property
    def model_name(self) -> str:
        return self.definition.name

    def has(self, field: str) -> bool:
        return field in self._values

    def get(self, field: str, default: Any = None) -> Any:
        return self._values.get(field, default)

    def set(self, field: str, value: Any) -> None:
        if field not in self.definition:
            raise KeyError(f"Model '{self.model_name}' has no field '{field}'")
        self._values[field] = value

    def unset(self, field: str) -> None:
        self._values.pop(field, None)

    def update(self, values: Mapping[str, Any]) -> None:
        for field, value in values.items():
            self.set(field, value)

    def to_dict(self) -> dict[str, Any]:
        """Flat mapping of present fields, in declaration order."""
        return {
            name: self._values[name]
            for name in self.definition.field_names()
            if name in self._values
        }

    def to_map(self) -> dict[str, Any]:
        """Nested mapping: embedded fields are grouped under the embed name."""
        result: dict[str, Any] = {}
        for f in self.definition.fields:
            if f.name not in self._values:
                continue
            if f.embed is None:
                result[f.name] = self._values[f.name]
            else:
                result.setdefault(f.embed, {})[f.name] = self._values[f.name]
        return result

    def __getitem__(self, field: str) -> Any:
        return self._values[field]

    def __setitem__(self, field: str, value: Any) -> None:
        self.set(field, value)

    def __contains__(self, field: object) -> bool:
        return field in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self.to_dict())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Record):
            return NotImplemented
        return self.model_name == other.model_name and self._values == other._values

    def __repr__(self) -> str:
        return f"Record({self.model_name!r}, {self.to_dict()!r})"


def flatten_map(mapping: Mapping[str, Any]) -> dict[str, Any]:
    """Lift the keys of nested mappings (embedded structures) to the top level."""
    flat: dict[str, Any] = {}
    for key, value in mapping.items():
        if isinstance(value, Mapping):
            flat.update(value)
        else:
            flat[key] = value
    return flat


def redact(record: Record, hidden: Iterable[str]) -> dict[str, Any]:
    """Flatten a record's map and drop the hidden keys."""
    values = flatten_map(record.to_map())
    for field in hidden:
        values.pop(field, None)
    return values

"""Model metadata registry.

A model is described once, at startup, by a schema mapping (usually
loaded from YAML):

    model: UserDetail
    table: user
    fields:
      - embed: User
        fields:
          - {name: UserId, type: uint32, tags: "pk rand:uint32:100-200"}
          - {name: Password, tags: "hidden"}
      - {name: GroupName}

Embedded structures are expanded in place. The first embed's name becomes
the main model name, which is used for output envelope keys and for the
default table name. Plain fields declared after an embed are reference
fields (they usually come from joined tables).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from metacrud.errors import ApiError, ErrorType, new_error
from metacrud.models.record import Record

logger = logging.getLogger(__name__)

FIELD_TYPES = frozenset(
    {
        "int",
        "int64",
        "uint",
        "uint32",
        "uint64",
        "float",
        "bool",
        "string",
        "strings",
        "timestamp",
        "ip",
        "cidr",
    }
)

UNSIGNED_TYPES = frozenset({"uint", "uint32", "uint64"})

# Hidden scopes
HIDDEN_LIST = "list"
HIDDEN_DETAIL = "detail"


class ModelDefinitionError(ValueError):
    """Raised when a model schema cannot be turned into a definition."""


@dataclass(frozen=True)
class ModelTag:
    """A single field annotation, e.g. ``rand:uint32:100-200``."""

    name: str
    params: tuple[str, ...] = ()


@dataclass(frozen=True)
class FieldDefinition:
    name: str
    type: str = "string"
    tags: tuple[ModelTag, ...] = ()
    embed: str | None = None  # Embedded structure this field came from


def parse_tags(tag_string: str) -> list[ModelTag]:
    """Parse a space-separated annotation string.

    Each item has the form ``name`` or ``name:p1,p2``. Only the first
    colon separates the name, so ``rand:uint32:100-200`` has the single
    parameter ``uint32:100-200``.
    """
    tags: list[ModelTag] = []
    for item in tag_string.split():
        name, sep, params = item.partition(":")
        if not name:
            continue
        tags.append(ModelTag(name, tuple(params.split(",")) if sep else ()))
    return tags


def snake_case(name: str) -> str:
    """Convert a CamelCase name to snake_case (``UserId`` -> ``user_id``)."""
    result = []
    for i, char in enumerate(name):
        if char.isupper() and i > 0:
            result.append("_")
        result.append(char.lower())
    return "".join(result)


NameMapper = Callable[[str], str]


class ModelDefinition:
    """Resolved metadata for one record type. Immutable once built."""

    def __init__(
        self,
        name: str,
        fields: list[FieldDefinition],
        main_model_name: str | None = None,
        table: str | None = None,
    ):
        self.name = name
        self.main_model_name = main_model_name or name
        self.table = table
        self._fields: dict[str, FieldDefinition] = {}
        self._main_fields: list[str] = []
        self._ref_fields: list[str] = []
        self._tag_fields: dict[str, list[str]] = {}

        seen_embed = False
        for f in fields:
            if f.name in self._fields:
                raise ModelDefinitionError(
                    f"Model '{name}' declares field '{f.name}' more than once"
                )
            self._fields[f.name] = f

            if f.embed is not None:
                seen_embed = True
                self._main_fields.append(f.name)
            elif seen_embed:
                self._ref_fields.append(f.name)
            else:
                self._main_fields.append(f.name)

            for tag in f.tags:
                names = self._tag_fields.setdefault(tag.name, [])
                if f.name not in names:
                    names.append(f.name)

    @property
    def fields(self) -> list[FieldDefinition]:
        return list(self._fields.values())

    def field_names(self) -> list[str]:
        """All field names in declaration order."""
        return list(self._fields.keys())

    def main_fields(self) -> list[str]:
        return list(self._main_fields)

    def ref_fields(self) -> list[str]:
        return list(self._ref_fields)

    def field(self, name: str) -> FieldDefinition | None:
        return self._fields.get(name)

    def tag_fields(self, tag_name: str) -> list[str]:
        """Fields carrying the given annotation, in declaration order."""
        return list(self._tag_fields.get(tag_name, []))

    def field_tags(self, field_name: str) -> list[ModelTag]:
        f = self._fields.get(field_name)
        return list(f.tags) if f else []

    def field_has_tag(self, field_name: str, tag_name: str) -> bool:
        return self.field_get_tag(field_name, tag_name) is not None

    def field_get_tag(self, field_name: str, tag_name: str) -> ModelTag | None:
        for tag in self.field_tags(field_name):
            if tag.name == tag_name:
                return tag
        return None

    @property
    def primary_keys(self) -> list[str]:
        return self.tag_fields("pk")

    def hidden_fields(self, scope: str) -> list[str]:
        """Fields redacted in the given view scope ("list" or "detail")."""
        hidden: list[str] = []
        for field_name in self.tag_fields("hidden"):
            for tag in self.field_tags(field_name):
                if tag.name != "hidden":
                    continue
                if not tag.params or tag.params[0] in ("*", scope):
                    hidden.append(field_name)
                    break
        return hidden

    def column_name(self, field_name: str, mapper: NameMapper = snake_case) -> str:
        """Physical column for a field; ``column:`` overrides the mapper."""
        tag = self.field_get_tag(field_name, "column")
        if tag and tag.params and tag.params[0]:
            return tag.params[0]
        return mapper(field_name)

    def table_name(self, mapper: NameMapper = snake_case) -> str:
        if self.table:
            return self.table
        return mapper(self.main_model_name)

    def new_record(self, values: Mapping[str, Any] | None = None, **kwargs: Any) -> Record:
        merged = dict(values or {})
        merged.update(kwargs)
        return Record(self, merged)

    def __contains__(self, field_name: object) -> bool:
        return field_name in self._fields

    def __repr__(self) -> str:
        return f"ModelDefinition({self.name!r}, fields={self.field_names()!r})"


def _resolve_field(data: Mapping[str, Any], embed: str | None = None) -> FieldDefinition:
    """Convert a field mapping to a FieldDefinition."""
    name = data.get("name")
    if not name:
        raise ModelDefinitionError(f"Field definition without a name: {dict(data)!r}")

    field_type = data.get("type", "string")
    if field_type not in FIELD_TYPES:
        raise ModelDefinitionError(f"Field '{name}' has unknown type '{field_type}'")

    tags = parse_tags(data.get("tags") or "")
    tag_names = {t.name for t in tags}

    # Shortcut keys
    column = data.get("column")
    if column and "column" not in tag_names:
        tags.append(ModelTag("column", (column,)))
    if data.get("primaryKey") and "pk" not in tag_names:
        tags.append(ModelTag("pk"))

    return FieldDefinition(name=name, type=field_type, tags=tuple(tags), embed=embed)


def resolve_model(data: Mapping[str, Any]) -> ModelDefinition:
    """Resolve a model schema mapping, expanding embedded structures."""
    name = data.get("model") or data.get("name")
    if not name:
        raise ModelDefinitionError("Model definition has no 'model' name")

    fields: list[FieldDefinition] = []
    main_model_name: str | None = None

    for item in data.get("fields") or []:
        if "embed" in item:
            embed_name = item["embed"]
            if not embed_name:
                raise ModelDefinitionError(f"Model '{name}' has an embed without a name")
            if main_model_name is None:
                main_model_name = embed_name
            for sub in item.get("fields") or []:
                fields.append(_resolve_field(sub, embed=embed_name))
        else:
            fields.append(_resolve_field(item))

    return ModelDefinition(
        name=name,
        fields=fields,
        main_model_name=main_model_name,
        table=data.get("table"),
    )


class ModelRegistry:
    """Holds every registered ModelDefinition, keyed by model name.

    Populated at startup and only read afterwards, so concurrent lookups
    need no locking.
    """

    def __init__(self) -> None:
        self.models: dict[str, ModelDefinition] = {}

    def register(self, schema: Mapping[str, Any] | ModelDefinition) -> ModelDefinition:
        """Register a model from a schema mapping (or a prebuilt definition).

        Raises:
            ModelDefinitionError: If the schema is malformed
        """
        if isinstance(schema, ModelDefinition):
            definition = schema
        else:
            definition = resolve_model(schema)
        self.models[definition.name] = definition
        logger.debug(
            "Registered model %s (%d fields, pk=%s)",
            definition.name,
            len(definition.field_names()),
            definition.primary_keys,
        )
        return definition

    def unregister(self, name: str) -> None:
        self.models.pop(name, None)

    def has(self, name: str) -> bool:
        return name in self.models

    def get(self, name: str) -> ModelDefinition | ApiError:
        """Get a definition, or a ModelNotRegistered error value."""
        definition = self.models.get(name)
        if definition is None:
            return new_error(
                ErrorType.INTERNAL_ERROR, "ModelNotRegistered", name
            ).with_message(f"Model {name} not registered!")
        return definition

    def names(self) -> list[str]:
        return list(self.models.keys())

    def new_record(self, name: str, values: Mapping[str, Any] | None = None, **kwargs: Any) -> Record:
        """Create an empty (or pre-filled) record of a registered model.

        Raises:
            KeyError: If the model is not registered
        """
        if name not in self.models:
            raise KeyError(f"Model '{name}' is not registered")
        return self.models[name].new_record(values, **kwargs)

"""Model metadata - definitions, records and the registry."""

from metacrud.models.loader import ModelLoader, load_models
from metacrud.models.record import Record
from metacrud.models.registry import (
    FieldDefinition,
    ModelDefinition,
    ModelDefinitionError,
    ModelRegistry,
    ModelTag,
    parse_tags,
    snake_case,
)

__all__ = [
    "FieldDefinition",
    "ModelDefinition",
    "ModelDefinitionError",
    "ModelLoader",
    "ModelRegistry",
    "ModelTag",
    "Record",
    "load_models",
    "parse_tags",
    "snake_case",
]

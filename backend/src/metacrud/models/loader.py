"""Load model definitions from YAML files."""

from pathlib import Path
from typing import Any

import yaml

from metacrud.models.registry import ModelDefinition, ModelRegistry


class ModelLoader:
    """Loads model documents from a directory of YAML files.

    Each file holds one document with a top-level ``model:`` key.
    Files without one are ignored.
    """

    def __init__(self, models_path: Path, registry: ModelRegistry | None = None):
        self.models_path = models_path
        self.registry = registry or ModelRegistry()

    def load_all(self) -> ModelRegistry:
        """Register every model found under models_path."""
        if not self.models_path.exists():
            return self.registry

        for yaml_file in sorted(self.models_path.glob("*.yaml")):
            self.load_file(yaml_file)
        return self.registry

    def load_file(self, yaml_file: Path) -> ModelDefinition | None:
        with open(yaml_file) as f:
            data: Any = yaml.safe_load(f)
        if not data or "model" not in data:
            return None
        return self.registry.register(data)


def load_models(models_path: Path, registry: ModelRegistry | None = None) -> ModelRegistry:
    """Convenience wrapper around ModelLoader.load_all()."""
    return ModelLoader(models_path, registry).load_all()

"""
models/validator.py: JSON Schema validation for model YAML files.

Usage:
    from metacrud.models.validator import validate_models_dir

    issues = validate_models_dir(Path("models"))
    for issue in issues:
        print(issue)

Schema validation is followed by a resolution pass, so problems the schema
cannot express (duplicate field names, for instance) are reported too.
Models without a primary key only produce a warning: they can be listed
and created, but not read, updated or deleted by key.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError

from metacrud.models.registry import ModelDefinitionError, resolve_model

_SCHEMA_PATH = Path(__file__).parent / "schemas" / "model.schema.json"


@dataclass
class ValidationIssue:
    """A single validation finding for a model YAML file."""

    file: Path
    message: str
    path: str = ""          # Location within the document, e.g. "fields[0]/type"
    severity: str = "error" # "error" | "warning"

    def __str__(self) -> str:
        loc = f" at {self.path}" if self.path else ""
        return f"[{self.severity.upper()}] {self.file}{loc}: {self.message}"


def _load_schema() -> dict[str, Any]:
    with _SCHEMA_PATH.open() as fh:
        return json.load(fh)


def _json_path(error: ValidationError) -> str:
    """Convert a jsonschema ValidationError path to a readable string."""
    parts = []
    for p in error.absolute_path:
        if isinstance(p, int):
            parts.append(f"[{p}]")
        else:
            parts.append(str(p))
    return "/".join(parts).replace("/[", "[")


def validate_model_file(
    yaml_path: Path,
    *,
    validator: Draft202012Validator | None = None,
) -> list[ValidationIssue]:
    """
    Validate a single model YAML file.

    Args:
        yaml_path: Path to the YAML file to validate.
        validator: Prebuilt schema validator. Built automatically if omitted.

    Returns:
        A list of :class:`ValidationIssue` objects (empty on success).
    """
    try:
        with yaml_path.open() as fh:
            doc = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        return [ValidationIssue(file=yaml_path, message=f"YAML parse error: {exc}")]

    if doc is None:
        return [
            ValidationIssue(file=yaml_path, message="File is empty or contains only whitespace")
        ]

    if validator is None:
        validator = Draft202012Validator(_load_schema())

    issues = [
        ValidationIssue(file=yaml_path, message=error.message, path=_json_path(error))
        for error in sorted(validator.iter_errors(doc), key=lambda e: list(e.path))
    ]
    if issues:
        return issues

    try:
        definition = resolve_model(doc)
    except ModelDefinitionError as exc:
        return [ValidationIssue(file=yaml_path, message=str(exc))]

    if not definition.primary_keys:
        issues.append(
            ValidationIssue(
                file=yaml_path,
                message=f"Model '{definition.name}' has no primary key",
                severity="warning",
            )
        )
    return issues


def validate_models_dir(models_dir: Path, *, strict: bool = False) -> list[ValidationIssue]:
    """
    Validate every ``*.yaml`` file in *models_dir*.

    Args:
        models_dir: Directory containing model YAML files.
        strict:     If ``True``, warnings are escalated to errors.

    Returns:
        A flat list of :class:`ValidationIssue` objects across all files.
    """
    if not models_dir.is_dir():
        return [
            ValidationIssue(
                file=models_dir,
                message=f"Models directory does not exist: {models_dir}",
            )
        ]

    validator = Draft202012Validator(_load_schema())
    all_issues: list[ValidationIssue] = []
    for yaml_file in sorted(models_dir.glob("*.yaml")):
        file_issues = validate_model_file(yaml_file, validator=validator)
        if strict:
            for issue in file_issues:
                if issue.severity == "warning":
                    issue.severity = "error"
        all_issues.extend(file_issues)
    return all_issues

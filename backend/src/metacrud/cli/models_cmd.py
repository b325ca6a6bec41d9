"""Model CLI commands: validate and show."""

from pathlib import Path

import click

from metacrud.models.loader import ModelLoader
from metacrud.models.registry import ModelDefinitionError
from metacrud.models.validator import validate_model_file, validate_models_dir


@click.group()
def models():
    """Model commands."""
    pass


def _load(path: Path):
    loader = ModelLoader(path)
    if path.is_file():
        loader.load_file(path)
        return loader.registry
    return loader.load_all()


@models.command()
@click.argument("path", type=click.Path(exists=True, path_type=Path))
@click.option(
    "--strict",
    is_flag=True,
    default=False,
    help="Treat warnings as errors.",
)
def validate(path: Path, strict: bool):
    """Validate model YAML files (a directory or a single file)."""
    if path.is_file():
        issues = validate_model_file(path)
        if strict:
            for issue in issues:
                issue.severity = "error"
    else:
        issues = validate_models_dir(path, strict=strict)

    errors = [i for i in issues if i.severity == "error"]
    warnings = [i for i in issues if i.severity == "warning"]

    for issue in issues:
        colour = "red" if issue.severity == "error" else "yellow"
        click.echo(click.style(str(issue), fg=colour))

    if errors:
        click.echo(
            click.style(
                f"\n{len(errors)} error(s) found"
                + (f", {len(warnings)} warning(s)" if warnings else ""),
                fg="red",
                bold=True,
            )
        )
        raise SystemExit(1)

    if warnings:
        click.echo(click.style(f"{len(warnings)} warning(s) found.", fg="yellow"))

    try:
        registry = _load(path)
    except ModelDefinitionError as e:
        click.echo(click.style(f"\nModel registration failed: {e}", fg="red"), err=True)
        raise SystemExit(1)

    click.echo(f"\nLoaded {len(registry.names())} models:")
    for name in sorted(registry.names()):
        definition = registry.models[name]
        click.echo(
            f"  ✓ {name} ({len(definition.field_names())} fields, "
            f"table: {definition.table_name()})"
        )

    click.echo(click.style("\nAll models are valid.", fg="green", bold=True))


@models.command()
@click.argument("path", type=click.Path(exists=True, path_type=Path))
@click.argument("model", required=False)
def show(path: Path, model: str | None):
    """Show loaded models, or the fields of one MODEL."""
    try:
        registry = _load(path)
    except ModelDefinitionError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        raise SystemExit(1)

    if model is None:
        for name in sorted(registry.names()):
            definition = registry.models[name]
            click.echo(f"{name}  table={definition.table_name()}  pk={','.join(definition.primary_keys) or '-'}")
        return

    if not registry.has(model):
        click.echo(f"Error: Model '{model}' not found in {path}", err=True)
        raise SystemExit(1)

    definition = registry.models[model]
    click.echo(f"Model: {definition.name}")
    click.echo(f"Main model: {definition.main_model_name}")
    click.echo(f"Table: {definition.table_name()}")
    click.echo(f"Primary key: {', '.join(definition.primary_keys) or '-'}")
    click.echo("Fields:")
    for field in definition.fields:
        tags = " ".join(
            tag.name + (":" + ",".join(tag.params) if tag.params else "") for tag in field.tags
        )
        embed = f" [{field.embed}]" if field.embed else ""
        click.echo(
            f"  {field.name:<20} {field.type:<10} "
            f"column={definition.column_name(field.name)}{embed}"
            + (f"  {tags}" if tags else "")
        )

"""metacrud CLI entry point."""

import click


@click.group()
def cli():
    """metacrud: declarative CRUD engine CLI."""
    pass


# Register subcommand groups
from metacrud.cli.models_cmd import models  # noqa: E402

cli.add_command(models)

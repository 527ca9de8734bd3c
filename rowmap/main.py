from __future__ import annotations

import sys

import typer

from rowmap.config import get_settings
from rowmap.domain.errors import RecordNotFoundError
from rowmap.domain.record import record_class_for
from rowmap.domain.schema_cache import SchemaCache
from rowmap.infrastructure.store import get_default_store
from rowmap.reporter import print_descriptors
from rowmap.utils.logging import configure_logging

app = typer.Typer(help="rowmap: schema-driven record mapping for relational tables.")


def _setup_logging() -> None:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"env={settings.app_env} log_level={settings.log_level} | "
        f"truncate_strings={settings.truncate_strings} "
        f"coerce_null_on_non_nullable={settings.coerce_null_on_non_nullable}"
    )


@app.command()
def describe(
    table: str = typer.Argument(..., help="Table to introspect."),
) -> None:
    """
    Introspect a table and print its column descriptors.
    """
    _setup_logging()
    descriptors = SchemaCache().resolve(table, get_default_store())
    print_descriptors(table, descriptors)


@app.command()
def show(
    table: str = typer.Argument(..., help="Table to read from."),
    identifier: int = typer.Argument(..., help="Value of the row's id column."),
) -> None:
    """
    Load one row and print its JSON projection.
    """
    _setup_logging()
    entity = record_class_for(table)
    try:
        record = entity(identifier)
    except RecordNotFoundError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)
    typer.echo(record.to_json())


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()

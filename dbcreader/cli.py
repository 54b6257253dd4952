"""Click CLI for reading DBC client database files."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import click

from dbcreader.config import (
    Config,
    get_config_path,
    load_config,
    resolve_schema,
    save_config,
)
from dbcreader.dbc.constants import LOCALIZATION
from dbcreader.dbc.errors import DBCError
from dbcreader.dbc.table import DBCTable

logger = logging.getLogger(__name__)

_DBC_PATH = click.Path(exists=True, dir_okay=False, path_type=Path)


class Context:
    """Holds the --schema override and the loaded user config."""

    def __init__(self, schema: Path | None = None, localization: int | None = None):
        self.schema_path = schema
        self._localization = localization
        self._config: Config | None = None

    @property
    def config(self) -> Config:
        if self._config is None:
            self._config = load_config()
            if self._localization is not None:
                self._config.localization = self._localization
        return self._config

    @contextmanager
    def open_table(self, path: Path) -> Iterator[DBCTable]:
        """Open a table with its resolved schema, turning read errors into CLI errors."""
        try:
            schema = resolve_schema(path, self.schema_path, self.config)
            with DBCTable(path, schema) as table:
                yield table
        except DBCError as e:
            raise click.ClickException(str(e)) from e


pass_ctx = click.make_pass_decorator(Context)


@click.group()
@click.option(
    "--schema", "-s", default=None,
    type=click.Path(exists=False, dir_okay=False, path_type=Path),
    help="Schema TOML file (default: <schema_dir>/<Table>.toml from config)",
)
@click.option("--localization", "-L", type=int, default=None,
              help="Locale copies stored after each localized string field")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(package_name="dbcreader")
@click.pass_context
def cli(ctx, schema: Optional[Path], localization: Optional[int], verbose: bool):
    """dbcreader - World of Warcraft DBC client database reader.

    Inspect, dump and export the records of .dbc tables, decoding fields
    through a schema file when one is available.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj = Context(schema=schema, localization=localization)


@cli.command()
def init():
    """Set up the schema directory and localization factor (interactive)."""
    config = load_config()

    if config.schema_dir:
        click.echo(f"Current schema directory: {config.schema_dir}")
    click.echo(f"Current localization factor: {config.localization or LOCALIZATION}\n")

    while True:
        dir_str = click.prompt("Schema directory", default=str(config.schema_dir or "")).strip().strip('"').strip("'")
        schema_dir = Path(dir_str)
        if schema_dir.is_dir():
            break
        click.echo(f"Directory not found: {schema_dir}")

    localization = click.prompt("Localization factor", default=config.localization or LOCALIZATION, type=int)

    saved_path = save_config(Config(schema_dir=schema_dir, localization=localization))
    click.echo(f"\nConfig saved to {saved_path}")
    click.echo("\nExample commands:")
    click.echo("  dbcreader info Spell.dbc")
    click.echo("  dbcreader dump Spell.dbc --record 0 --schema-fields")
    click.echo("  dbcreader --schema Spell.toml export Spell.dbc --format json")


@cli.command()
@click.argument("path", type=_DBC_PATH)
@pass_ctx
def info(ctx: Context, path: Path):
    """Show header information for a DBC table."""
    with ctx.open_table(path) as table:
        click.echo(f"File:        {table.path}")
        click.echo(f"Records:     {table.record_count:,}")
        click.echo(f"Fields:      {table.field_count}")
        click.echo(f"Record size: {table.record_size} bytes")
        click.echo(f"Strings:     {table.strings.count:,} ({table.string_block_size:,} bytes)")
        if table.schema is None:
            click.echo("Schema:      (none)")
        else:
            click.echo(f"Schema:      {len(table.schema)} fields, {table.schema.size} bytes per record")


@cli.command()
@click.argument("path", type=_DBC_PATH)
@click.option("--record", "-r", "positions", type=int, multiple=True,
              help="Record position to dump (repeatable, default: all)")
@click.option("--id", "record_id", type=int, default=None, help="Dump the record with this identifier")
@click.option("--schema-fields", "use_schema", is_flag=True, help="Decode through the schema instead of raw values")
@pass_ctx
def dump(ctx: Context, path: Path, positions: tuple[int, ...], record_id: Optional[int], use_schema: bool):
    """Dump records for inspection."""
    with ctx.open_table(path) as table:
        if record_id is not None:
            rec = table.find(record_id)
            if rec is None:
                click.echo(f"No record with id {record_id}.")
                return
            records = [rec]
        elif positions:
            try:
                records = [table.record(p) for p in positions]
            except IndexError as e:
                raise click.BadParameter(str(e), param_hint="--record") from e
        else:
            records = table.records()

        if use_schema and table.schema is None:
            click.echo("Warning: no schema attached, dumping raw values.", err=True)

        for rec in records:
            click.echo(f"#{rec.position} (offset {rec.offset}):")
            click.echo(rec.dump(use_schema))


@cli.command()
@click.argument("path", type=_DBC_PATH)
@click.option("--format", "fmt", type=click.Choice(["csv", "json"]), required=True)
@click.option("--output", "-o", type=click.Path(), help="Output file path")
@pass_ctx
def export(ctx: Context, path: Path, fmt: str, output: Optional[str]):
    """Export all records as CSV or JSON."""
    with ctx.open_table(path) as table:
        if table.schema is None:
            logger.info("No schema for %s, exporting raw values", path.name)

        if fmt == "csv":
            from dbcreader.export.csv_export import export_csv
            data = export_csv(table)
        else:
            from dbcreader.export.json_export import export_json
            data = export_json(table)

    if output:
        Path(output).write_text(data, encoding="utf-8")
        click.echo(f"Exported to {output}")
    else:
        click.echo(data)


@cli.command()
@click.argument("path", type=_DBC_PATH)
@click.option("--sample", type=int, default=256, help="Number of records to sample")
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Write schema TOML here")
@pass_ctx
def infer(ctx: Context, path: Path, sample: int, output: Optional[Path]):
    """Guess a schema from a table's contents."""
    from dbcreader.dbc.schema import infer_schema, save_schema

    with ctx.open_table(path) as table:
        localization = ctx.config.localization
        if localization is None:
            localization = LOCALIZATION
        schema = infer_schema(table, sample=sample, localization=localization)

    if output:
        save_schema(schema, output)
        click.echo(f"Schema written to {output}")
        return

    click.echo(f"{'Field':<10} {'Type':<10} {'Offset':>6}")
    click.echo("-" * 28)
    for slot in schema.slots:
        click.echo(f"{slot.name:<10} {slot.rule.kind.value:<10} {slot.offset:>6}")


@cli.group("strings")
def strings_group():
    """String block operations."""


@strings_group.command("search")
@click.argument("path", type=_DBC_PATH)
@click.argument("query")
@click.pass_obj
def strings_search(ctx: Context, path: Path, query: str):
    """Search the string block of a table."""
    with ctx.open_table(path) as table:
        results = table.strings.search(query)

    if not results:
        click.echo(f"No strings found matching '{query}'.")
        return

    click.echo(f"Found {len(results)} strings:\n")
    for offset, text in results:
        display = text[:100] + "..." if len(text) > 100 else text
        click.echo(f"  0x{offset:08X}: {display}")


@cli.command("config")
def show_config():
    """Show the config file location and values."""
    config = load_config()
    click.echo(f"Config file:  {get_config_path()}")
    click.echo(f"Schema dir:   {config.schema_dir or '(not set)'}")
    click.echo(f"Localization: {config.localization if config.localization is not None else '(per schema)'}")


def main():
    cli()


if __name__ == "__main__":
    main()

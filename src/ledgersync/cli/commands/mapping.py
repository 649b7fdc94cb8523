"""Column mapping management commands."""

from pathlib import Path

import click

from ledgersync.cli.column_options import MAP_OPTION_HELP, parse_column_mappings, read_csv_bytes
from ledgersync.cli.error_handling import handle_domain_error
from ledgersync.domain.column_mapping import ColumnMappingService, header_signature
from ledgersync.domain.csv_parser import CsvParser
from ledgersync.domain.column_detection import ColumnMappingDetector
from ledgersync.domain.errors import DomainError


@click.group()
def mapping_group():
    """Manage saved CSV column mappings."""
    pass


@mapping_group.command("save")
@click.argument("bank")
@click.argument("csv_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--map", "column_map", multiple=True, help=MAP_OPTION_HELP + " (defaults to detected columns)")
@click.option("--pattern", help="Optional pattern identifying the bank")
@click.pass_context
def save_mapping(ctx, bank: str, csv_file: str, column_map: tuple[str, ...], pattern: str | None):
    """Save the column mapping of CSV_FILE's header row for BANK."""
    service = ColumnMappingService(ctx.obj["db"])

    try:
        result = CsvParser().parse(read_csv_bytes(csv_file), Path(csv_file).name)
        mappings = parse_column_mappings(column_map)
        if mappings is None:
            mappings = ColumnMappingDetector().detect(result.headers, result.sample_rows).mappings
        rule = service.save_mapping(bank, header_signature(result.headers), mappings, pattern)
    except DomainError as e:
        handle_domain_error(ctx, e)

    click.echo(f"Saved column mapping for '{rule.bank_identifier}' (ID: {rule.id})")
    for header, field in rule.column_mappings.items():
        click.echo(f"  {header} -> {field}")


@mapping_group.command("list")
@click.pass_context
def list_mappings(ctx):
    """List saved column mappings, most recently used first."""
    service = ColumnMappingService(ctx.obj["db"])

    rules = service.list_mappings()
    if not rules:
        click.echo("No saved column mappings.")
        return

    click.echo("\nColumn mappings:")
    for rule in rules:
        click.echo(
            f"  {rule.bank_identifier} (ID: {rule.id}) used {rule.times_used} time(s), "
            f"last {rule.last_used_at:%Y-%m-%d}"
        )
        for header, field in rule.column_mappings.items():
            click.echo(f"    {header} -> {field}")


@mapping_group.command("delete")
@click.argument("mapping_id")
@click.pass_context
def delete_mapping(ctx, mapping_id: str):
    """Delete (deactivate) a saved column mapping."""
    service = ColumnMappingService(ctx.obj["db"])

    try:
        service.delete_mapping(mapping_id)
    except DomainError as e:
        handle_domain_error(ctx, e)

    click.echo(f"Deleted column mapping {mapping_id}")


def register_commands(cli):
    """Register mapping commands with main CLI."""
    cli.add_command(mapping_group, name="mapping")

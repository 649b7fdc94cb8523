"""CSV preview command."""

from pathlib import Path

import click

from ledgersync.cli.column_options import read_csv_bytes
from ledgersync.cli.error_handling import handle_domain_error
from ledgersync.domain.csv_import import CsvImportService
from ledgersync.domain.errors import DomainError


@click.command("preview")
@click.argument("csv_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--rows", default=5, show_default=True, help="Number of sample rows to show")
@click.pass_context
def preview_csv(ctx, csv_file: str, rows: int):
    """Preview a bank CSV file and its detected columns."""
    service = CsvImportService(ctx.obj["db"], ctx.obj["runner"])

    try:
        preview = service.preview_csv(read_csv_bytes(csv_file), Path(csv_file).name)
    except DomainError as e:
        handle_domain_error(ctx, e)

    click.echo(f"\nFile: {csv_file}")
    click.echo(f"  Encoding: {preview.detected_encoding}")
    click.echo(f"  Delimiter: {preview.detected_delimiter}")
    click.echo(f"  Rows: {preview.total_row_count}")

    detection = preview.column_detection
    click.echo("\nColumns:")
    for header in preview.headers:
        field = detection.mappings.get(header) if detection else None
        if field:
            confidence = detection.confidence_by_field.get(field, 0.0)
            click.echo(f"  {header:<30} -> {field} ({confidence:.0%})")
        else:
            click.echo(f"  {header:<30} -> (not detected)")

    if detection and detection.warnings:
        click.echo("\nWarnings:")
        for warning in detection.warnings:
            click.echo(f"  {warning}")

    if preview.sample_rows and rows > 0:
        click.echo("\nSample rows:")
        for row in preview.sample_rows[:rows]:
            click.echo("  " + " | ".join(row.get(h, "") for h in preview.headers))

    if preview.errors:
        click.echo(f"\nParse errors: {len(preview.errors)}")
        for error in preview.errors:
            click.echo(f"  Line {error.line_number}: {error.message}", err=True)


def register_commands(cli):
    """Register preview command with main CLI."""
    cli.add_command(preview_csv)

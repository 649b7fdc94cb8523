"""CSV import command."""

import asyncio
from pathlib import Path

import click

from ledgersync.cli.column_options import MAP_OPTION_HELP, parse_column_mappings, read_csv_bytes
from ledgersync.cli.error_handling import handle_domain_error, handle_ledger_error
from ledgersync.domain.column_mapping import header_signature
from ledgersync.domain.csv_import import CsvImportService
from ledgersync.domain.errors import DomainError, LedgerError


@click.command("import")
@click.argument("csv_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--account", required=True, help="Ledger account of the statement (e.g., 'Assets:Checking')")
@click.option("--map", "column_map", multiple=True, help=MAP_OPTION_HELP)
@click.option("--bank", help="Bank or export format name stored with the import")
@click.option("--default-category", help="Category for rows without a suggestion")
@click.option("--save-mapping", is_flag=True, help="Save the column mapping under --bank for future imports")
@click.option("--dry-run", is_flag=True, help="Show what would be imported without writing")
@click.option("--file", "ledger_file", type=click.Path(), help="Ledger file (defaults to configured file)")
@click.pass_context
def import_csv(
    ctx,
    csv_file: str,
    account: str,
    column_map: tuple[str, ...],
    bank: str | None,
    default_category: str | None,
    save_mapping: bool,
    dry_run: bool,
    ledger_file: str | None,
):
    """Import transactions from a bank CSV file into the ledger.

    Duplicates of already imported transactions are skipped. Each remaining
    row takes the category suggested by the best matching import rule, or
    --default-category.
    """
    settings = ctx.obj["settings"]
    ledger_file = ledger_file or settings.ledger_file
    service = CsvImportService(ctx.obj["db"], ctx.obj["runner"])

    if save_mapping and not bank:
        raise click.UsageError("--save-mapping requires --bank")

    try:
        session = service.start_import_session(
            read_csv_bytes(csv_file),
            Path(csv_file).name,
            account=account,
            user_id=settings.user_id,
            mapping=parse_column_mappings(column_map),
            bank_format=bank,
        )
        session.detect_columns()
        duplicates = session.check_duplicates()
        session.suggest_categories()

        if save_mapping:
            service.mapping_service.save_mapping(
                bank, header_signature(session.parse_result.headers), session.column_mapping
            )
            click.echo(f"Saved column mapping for '{bank}'")

        accepted = session.default_accepted_rows(default_category)

        if dry_run:
            for warning in session.warnings:
                click.echo(f"Warning: {warning}", err=True)
            click.echo(f"\nDry run for {csv_file}:")
            click.echo(f"  Rows: {session.parse_result.total_row_count}")
            click.echo(f"  Duplicates: {len(duplicates)}")
            for row in accepted:
                candidate = session.candidates[row.row_index]
                category = row.category_account or "(uncategorized)"
                click.echo(
                    f"  {candidate.date}  {candidate.payee[:30]:<30} {str(candidate.amount):>12}  {category}"
                )
            for message in session.row_errors.values():
                click.echo(f"  {message}", err=True)
            session.abort()
            return

        summary = asyncio.run(service.commit_import_session(session.id, accepted, ledger_file))
    except DomainError as e:
        handle_domain_error(ctx, e)
    except LedgerError as e:
        handle_ledger_error(ctx, e)

    click.echo("\nImport complete:")
    click.echo(f"  Imported: {summary.successful_imports} transactions")
    click.echo(f"  Skipped: {summary.duplicates_skipped} duplicates")
    if summary.errors:
        click.echo(f"  Errors: {summary.error_count}")
        for error in summary.errors:
            click.echo(f"    {error}", err=True)
    for warning in summary.warnings:
        click.echo(f"Warning: {warning}", err=True)

    if summary.audit.error_message:
        click.echo(f"Error: {summary.audit.error_message}", err=True)
        ctx.exit(1)


def register_commands(cli):
    """Register import command with main CLI."""
    cli.add_command(import_csv)

"""CLI error handling helpers."""

import click

from ledgersync.domain.errors import DomainError, LedgerError, describe_ledger_error


def handle_domain_error(ctx: click.Context, error: DomainError | ValueError) -> None:
    """Render a domain error and exit with failure."""
    click.echo(f"Error: {error}", err=True)
    ctx.exit(1)


def handle_ledger_error(ctx: click.Context, error: LedgerError) -> None:
    """Render an hledger failure with its diagnostics and exit with failure."""
    click.echo(f"Error: {describe_ledger_error(error)}", err=True)
    ctx.exit(1)

"""Balance and validation commands."""

import asyncio

import click

from ledgersync.cli.error_handling import handle_ledger_error
from ledgersync.domain.balance import BalanceService
from ledgersync.domain.entities import BalanceNode
from ledgersync.domain.errors import LedgerError


def print_balance_tree(nodes: tuple[BalanceNode, ...] | list[BalanceNode], indent: int = 0) -> None:
    """Recursively print balance tree."""
    for node in nodes:
        prefix = "  " * indent
        label = f"{prefix}{node.name}"
        click.echo(f"{label:<40} {str(node.balance):>14}")
        if node.children:
            print_balance_tree(node.children, indent + 1)


@click.command("balance")
@click.argument("accounts", nargs=-1)
@click.option("--file", "ledger_file", type=click.Path(), help="Ledger file (defaults to configured file)")
@click.pass_context
def show_balance(ctx, accounts: tuple[str, ...], ledger_file: str | None):
    """Show hierarchical account balances.

    ACCOUNTS are optional hledger account queries; an account matching any
    of them is included.
    """
    settings = ctx.obj["settings"]
    service = BalanceService(ctx.obj["runner"])
    ledger_file = ledger_file or settings.ledger_file

    try:
        tree = asyncio.run(service.get_balance_tree(ledger_file, list(accounts) or None))
    except FileNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)
    except LedgerError as e:
        handle_ledger_error(ctx, e)

    if not tree.roots:
        click.echo("No balances found.")
        return

    print_balance_tree(tree.roots)
    click.echo("-" * 55)
    click.echo(f"{'Total':<40} {str(tree.total_balance):>14}")


@click.command("validate")
@click.option("--file", "ledger_file", type=click.Path(), help="Ledger file (defaults to configured file)")
@click.pass_context
def validate_ledger(ctx, ledger_file: str | None):
    """Check the ledger file with hledger."""
    ledger_file = ledger_file or ctx.obj["settings"].ledger_file

    try:
        result = asyncio.run(ctx.obj["runner"].validate(ledger_file))
    except LedgerError as e:
        handle_ledger_error(ctx, e)

    if result.is_valid:
        click.echo(f"{ledger_file} is valid.")
        return

    click.echo(f"{ledger_file} has errors:", err=True)
    for error in result.errors:
        click.echo(f"  {error}", err=True)
    ctx.exit(1)


def register_commands(cli):
    """Register balance commands with main CLI."""
    cli.add_command(show_balance)
    cli.add_command(validate_ledger)

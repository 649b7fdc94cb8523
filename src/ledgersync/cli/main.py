"""Main CLI entry point."""

import logging

import click

from ledgersync.config import Settings
from ledgersync.database.factories import create_sqlite_database
from ledgersync.ledger.binary import BinaryLocator
from ledgersync.ledger.runner import LedgerProcessRunner

# Import and register all commands at module level
from ledgersync.cli.commands import (
    audit,
    balance,
    import_cmd,
    mapping,
    preview,
    rule,
)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@click.group()
@click.option(
    "--db-path",
    type=click.Path(),
    help="Path to database file (overrides LEDGERSYNC_DB_PATH environment variable)",
    envvar="LEDGERSYNC_DB_PATH",
)
@click.option(
    "--ledger-file",
    type=click.Path(),
    help="Ledger file (overrides LEDGERSYNC_LEDGER_FILE environment variable)",
    envvar="LEDGERSYNC_LEDGER_FILE",
)
@click.option(
    "--hledger",
    "hledger_path",
    type=click.Path(),
    help="Path to the hledger executable (overrides LEDGERSYNC_HLEDGER_PATH)",
    envvar="LEDGERSYNC_HLEDGER_PATH",
)
@click.option("--timeout", type=float, help="hledger command timeout in seconds")
@click.option("--user", "user_id", help="User recorded in the audit trail", envvar="LEDGERSYNC_USER_ID")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(
    ctx,
    db_path: str | None,
    ledger_file: str | None,
    hledger_path: str | None,
    timeout: float | None,
    user_id: str | None,
    verbose: bool,
):
    """ledgersync - keep a plain-text hledger journal in sync with bank statements.

    Query hierarchical balances, import bank CSV files with column detection,
    duplicate checks and category suggestions, and audit every change made to
    the ledger file.
    """
    ctx.ensure_object(dict)
    logging.basicConfig(level=logging.DEBUG if verbose else logging.WARNING, format=LOG_FORMAT)

    # Initialize services only when actually running a command
    # (not when showing help)
    if ctx.invoked_subcommand is not None:
        try:
            settings = Settings.from_env()
        except ValueError as e:
            raise click.UsageError(str(e)) from e

        settings = Settings(
            db_path=db_path or settings.db_path,
            ledger_file=ledger_file or settings.ledger_file,
            hledger_path=hledger_path or settings.hledger_path,
            hledger_sha256=settings.hledger_sha256,
            timeout=timeout if timeout is not None else settings.timeout,
            user_id=user_id or settings.user_id,
        )

        db = create_sqlite_database(database_path=settings.db_path)
        db.connect()
        db.initialize_schema()
        ctx.call_on_close(db.disconnect)

        ctx.obj["db"] = db
        ctx.obj["settings"] = settings
        ctx.obj["runner"] = LedgerProcessRunner(
            BinaryLocator(settings.hledger_path, settings.hledger_sha256),
            timeout=settings.timeout,
        )


# Register all commands
balance.register_commands(cli)
preview.register_commands(cli)
import_cmd.register_commands(cli)
mapping.register_commands(cli)
rule.register_commands(cli)
audit.register_commands(cli)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()

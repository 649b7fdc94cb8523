"""Ledger audit trail commands."""

import click

from ledgersync.domain.audit import LedgerAuditLog


@click.group()
def audit_group():
    """Inspect the ledger file audit trail."""
    pass


@audit_group.command("list")
@click.option("--file", "ledger_file", type=click.Path(), help="Only entries for this ledger file")
@click.option("--limit", type=int, default=20, show_default=True, help="Maximum entries to show")
@click.pass_context
def list_entries(ctx, ledger_file: str | None, limit: int):
    """List audit entries, newest first."""
    audit_log = LedgerAuditLog(ctx.obj["db"])

    entries = audit_log.list_entries(file_path=ledger_file, limit=limit)
    if not entries:
        click.echo("No audit entries found.")
        return

    for entry in entries:
        click.echo(
            f"{entry.timestamp:%Y-%m-%d %H:%M:%S}  {entry.operation.value:<11} "
            f"{entry.transaction_count:>4} txn  {str(entry.balance_checksum):>12}  "
            f"{entry.triggered_by.value:<9} {entry.user_id}"
        )
        click.echo(f"    {entry.file_path}  {entry.file_hash_before[:12]} -> {entry.file_hash_after[:12]}")
        if entry.error_message:
            click.echo(f"    Error: {entry.error_message.splitlines()[0]}")


@audit_group.command("verify")
@click.option("--file", "ledger_file", type=click.Path(), help="Ledger file (defaults to configured file)")
@click.pass_context
def verify_file(ctx, ledger_file: str | None):
    """Check whether the ledger file was edited outside ledgersync."""
    settings = ctx.obj["settings"]
    ledger_file = ledger_file or settings.ledger_file
    audit_log = LedgerAuditLog(ctx.obj["db"])

    entry = audit_log.detect_external_edit(ledger_file, settings.user_id)
    if entry is None:
        click.echo(f"{ledger_file} matches the audit trail.")
        return

    click.echo(
        f"{ledger_file} was modified outside ledgersync "
        f"({entry.file_hash_before[:12]} -> {entry.file_hash_after[:12]}); recorded as manual edit."
    )


def register_commands(cli):
    """Register audit commands with main CLI."""
    cli.add_command(audit_group, name="audit")

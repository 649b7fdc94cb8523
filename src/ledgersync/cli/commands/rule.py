"""Import rule management commands."""

import click

from ledgersync.cli.error_handling import handle_domain_error
from ledgersync.domain.entities import MatchType
from ledgersync.domain.errors import DomainError
from ledgersync.domain.import_rules import ImportRuleEngine


@click.group()
def rule_group():
    """Manage payee to category import rules."""
    pass


@rule_group.command("create")
@click.argument("pattern")
@click.argument("category")
@click.option(
    "--match",
    "match_type",
    type=click.Choice([m.value for m in MatchType], case_sensitive=False),
    default=MatchType.CONTAINS.value,
    show_default=True,
    help="How PATTERN is compared with payees",
)
@click.option("--priority", type=int, default=1, show_default=True, help="1 is the highest priority")
@click.pass_context
def create_rule(ctx, pattern: str, category: str, match_type: str, priority: int):
    """Suggest CATEGORY for payees matching PATTERN."""
    engine = ImportRuleEngine(ctx.obj["db"])

    try:
        rule = engine.create_rule(pattern, category, MatchType(match_type.lower()), priority)
    except DomainError as e:
        handle_domain_error(ctx, e)

    click.echo(f"Created rule {rule.id}: {rule.match_type.value} '{rule.payee_pattern}' -> {rule.suggested_category}")


@rule_group.command("list")
@click.option("--all", "include_inactive", is_flag=True, help="Include deactivated rules")
@click.pass_context
def list_rules(ctx, include_inactive: bool):
    """List import rules in priority order."""
    engine = ImportRuleEngine(ctx.obj["db"])

    rules = engine.list_rules(include_inactive=include_inactive)
    if not rules:
        click.echo("No import rules found.")
        return

    click.echo(f"\n{'Pri':>3}  {'Match':<11} {'Pattern':<25} {'Category':<28} {'Conf':>5}  {'Used':>4}")
    click.echo("-" * 84)
    for rule in rules:
        status = "" if rule.is_active else "  (inactive)"
        click.echo(
            f"{rule.priority:>3}  {rule.match_type.value:<11} {rule.payee_pattern[:25]:<25} "
            f"{rule.suggested_category[:28]:<28} {rule.confidence:>5.0%}  {rule.times_applied:>4}{status}"
        )
        click.echo(f"     ID: {rule.id}")


@rule_group.command("deactivate")
@click.argument("rule_id")
@click.pass_context
def deactivate_rule(ctx, rule_id: str):
    """Deactivate an import rule."""
    engine = ImportRuleEngine(ctx.obj["db"])

    try:
        engine.deactivate_rule(rule_id)
    except DomainError as e:
        handle_domain_error(ctx, e)

    click.echo(f"Deactivated rule {rule_id}")


def register_commands(cli):
    """Register rule commands with main CLI."""
    cli.add_command(rule_group, name="rule")

"""Audit trail commands."""

import click

from tallybook.utils.date_parser import parse_date


@click.group()
def audit_group():
    """Inspect the audit trail."""
    pass


@audit_group.command("list")
@click.option("--entity-type", help="Entity type (e.g., procurement, sale, payment)")
@click.option("--entity-id", help="Entity ID")
@click.option("--since", help="Only entries on or after this date (e.g., 2024-01-15, yesterday, last month)")
@click.option("--limit", type=int, default=50, show_default=True, help="Maximum entries to show")
@click.pass_context
def list_audit(ctx, entity_type: str | None, entity_id: str | None, since: str | None, limit: int):
    """List audit entries, newest first.

    Examples:
        tallybook audit list
        tallybook audit list --entity-type sale --entity-id 4
        tallybook audit list --since "last week"
    """
    try:
        since_date = parse_date(since) if since else None
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    entries = ctx.obj["services"].audit.list_entries(entity_type=entity_type, entity_id=entity_id)
    if since_date is not None:
        entries = [entry for entry in entries if entry.created_at.date() >= since_date]
    if not entries:
        click.echo("No audit entries found.")
        return

    for entry in entries[:limit]:
        actor = f" by {entry.performed_by}" if entry.performed_by else ""
        details = f" - {entry.details}" if entry.details else ""
        click.echo(
            f"{entry.created_at:%Y-%m-%d %H:%M:%S} | {entry.action.value:16s} | "
            f"{entry.entity_type} {entry.entity_id}{actor}{details}"
        )


def register_commands(cli):
    """Register audit commands with main CLI."""
    cli.add_command(audit_group, name="audit")

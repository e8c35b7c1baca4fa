"""Procurement commands."""

import click

from tallybook.cli.error_handling import handle_domain_error
from tallybook.domain.entities import ProcurementStatus
from tallybook.domain.errors import DomainError
from tallybook.utils.date_parser import parse_date


@click.group()
def procurement_group():
    """Transition and delete procurements."""
    pass


@procurement_group.command("set-status")
@click.argument("procurement_id", type=int)
@click.argument("status", type=click.Choice([s.value for s in ProcurementStatus]))
@click.option("--received-date", help="Date the goods arrived (default: today)")
@click.option("--actor", help="Name recorded in the audit trail")
@click.pass_context
def set_status(ctx, procurement_id: int, status: str, received_date: str | None, actor: str | None):
    """Move a procurement to a new status.

    Entering received/completed adds the items to stock; leaving those
    statuses takes them back out.

    Examples:
        tallybook procurement set-status 7 received
        tallybook procurement set-status 7 received --received-date yesterday
    """
    try:
        received = parse_date(received_date) if received_date else None
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        ctx.exit(1)

    try:
        procurement = ctx.obj["services"].procurements.update_status(
            procurement_id, ProcurementStatus(status), received_date=received, actor=actor
        )
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    click.echo(
        f"Procurement {procurement.id} is now {procurement.status.value} "
        f"(remaining {procurement.remaining_amount})"
    )


@procurement_group.command("delete")
@click.argument("procurement_id", type=int)
@click.option("--actor", help="Name recorded in the audit trail")
@click.pass_context
def delete_procurement(ctx, procurement_id: int, actor: str | None):
    """Delete a procurement and its payments."""
    try:
        ctx.obj["services"].procurements.delete_procurement(procurement_id, actor=actor)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    click.echo(f"Deleted procurement {procurement_id}")


def register_commands(cli):
    """Register procurement commands with main CLI."""
    cli.add_command(procurement_group, name="procurement")

"""Sale commands."""

import click

from tallybook.cli.error_handling import handle_domain_error
from tallybook.domain.entities import SaleStatus
from tallybook.domain.errors import DomainError


@click.group()
def sale_group():
    """Transition and delete sales."""
    pass


@sale_group.command("set-status")
@click.argument("sale_id", type=int)
@click.argument("status", type=click.Choice([s.value for s in SaleStatus]))
@click.option("--actor", help="Name recorded in the audit trail")
@click.pass_context
def set_status(ctx, sale_id: int, status: str, actor: str | None):
    """Move a sale to a new status.

    Examples:
        tallybook sale set-status 4 cancelled
    """
    try:
        sale = ctx.obj["services"].sales.update_status(sale_id, SaleStatus(status), actor=actor)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    click.echo(f"Sale {sale.id} is now {sale.status.value} (remaining {sale.remaining_amount})")


@sale_group.command("delete")
@click.argument("sale_id", type=int)
@click.option("--actor", help="Name recorded in the audit trail")
@click.pass_context
def delete_sale(ctx, sale_id: int, actor: str | None):
    """Delete a sale and its payments."""
    try:
        ctx.obj["services"].sales.delete_sale(sale_id, actor=actor)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    click.echo(f"Deleted sale {sale_id}")


def register_commands(cli):
    """Register sale commands with main CLI."""
    cli.add_command(sale_group, name="sale")

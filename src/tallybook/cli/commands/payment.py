"""Payment commands."""

import click

from tallybook.cli.error_handling import handle_domain_error
from tallybook.domain.errors import DomainError


@click.group()
def payment_group():
    """Manage payments."""
    pass


@payment_group.command("delete")
@click.argument("payment_id", type=int)
@click.option("--actor", help="Name recorded in the audit trail")
@click.pass_context
def delete_payment(ctx, payment_id: int, actor: str | None):
    """Delete a payment and re-sync what it settled.

    Examples:
        tallybook payment delete 12
    """
    try:
        payment = ctx.obj["services"].payments.delete_payment(payment_id, actor=actor)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    click.echo(f"Deleted payment {payment.id} of {payment.amount}")


@payment_group.command("list")
@click.option("--sale", "sale_id", type=int, help="Sale ID")
@click.option("--procurement", "procurement_id", type=int, help="Procurement ID")
@click.option("--asset", "asset_id", type=int, help="Asset ID")
@click.pass_context
def list_payments(ctx, sale_id: int | None, procurement_id: int | None, asset_id: int | None):
    """List the payments settling a sale, procurement or asset.

    Examples:
        tallybook payment list --sale 4
    """
    try:
        payments = ctx.obj["services"].payments.list_payments(
            sale_id=sale_id, procurement_id=procurement_id, asset_id=asset_id
        )
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    if not payments:
        click.echo("No payments found.")
        return
    for payment in payments:
        notes = f" - {payment.notes}" if payment.notes else ""
        click.echo(
            f"{payment.id:4d} | {payment.payment_date} | {payment.amount:>12} | "
            f"{payment.payment_method.value}{notes}"
        )


def register_commands(cli):
    """Register payment commands with main CLI."""
    cli.add_command(payment_group, name="payment")

"""Inventory commands."""

from decimal import Decimal, InvalidOperation

import click

from tallybook.cli.error_handling import handle_domain_error
from tallybook.domain.entities import ItemType
from tallybook.domain.errors import DomainError

ITEM_TYPES = [item_type.value for item_type in ItemType]


def parse_decimal(value: str) -> Decimal:
    """Parse a decimal CLI argument."""
    try:
        return Decimal(value)
    except InvalidOperation:
        raise click.BadParameter(f"Invalid number: {value}")


@click.group()
def inventory_group():
    """Inspect stock and produce finished goods."""
    pass


@inventory_group.command("lots")
@click.argument("item_type", type=click.Choice(ITEM_TYPES))
@click.argument("item_id", type=int)
@click.pass_context
def list_lots(ctx, item_type: str, item_id: int):
    """Show an item's stock, cost price and cost-lot history.

    Examples:
        tallybook inventory lots raw_material 3
    """
    inventory = ctx.obj["services"].inventory
    try:
        item = inventory.get_item(ItemType(item_type), item_id)
        lot_average = inventory.lot_average_cost(ItemType(item_type), item_id)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    click.echo(f"{item.name} ({item_type} {item.id})")
    click.echo(f"Stock: {item.current_stock}  Cost price: {item.cost_price}")
    click.echo(f"Average over live lots: {lot_average if lot_average is not None else '-'}")

    lots = ctx.obj["db"].list_cost_lots(ItemType(item_type), item_id)
    if not lots:
        click.echo("No cost lots found.")
        return
    click.echo("-" * 72)
    for lot in lots:
        source = f"{lot.source_type} {lot.source_id}" if lot.source_type else "-"
        click.echo(
            f"{lot.received_at} | qty {lot.quantity:>10} | reversed {lot.reversed_quantity:>10} | "
            f"cost {lot.unit_cost:>10} | {source}"
        )


@inventory_group.command("produce")
@click.argument("finished_good_id", type=int)
@click.argument("quantity")
@click.option("--actor", help="Name recorded in the audit trail")
@click.pass_context
def produce(ctx, finished_good_id: int, quantity: str, actor: str | None):
    """Produce finished goods from their bill of materials.

    Examples:
        tallybook inventory produce 2 10
    """
    qty = parse_decimal(quantity)
    try:
        item = ctx.obj["services"].inventory.produce(finished_good_id, qty, actor=actor)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    click.echo(f"Produced {qty} of {item.name}; stock now {item.current_stock}")


def register_commands(cli):
    """Register inventory commands with main CLI."""
    cli.add_command(inventory_group, name="inventory")

"""Running balance commands."""

import click

from tallybook.cli.error_handling import handle_domain_error
from tallybook.domain.entities import BalanceCheck, CounterpartyKind
from tallybook.domain.errors import DomainError


def _counterparty(vendor: int | None, client: int | None) -> tuple[CounterpartyKind, int] | None:
    if vendor is not None and client is not None:
        raise click.UsageError("Use either --vendor or --client, not both")
    if vendor is not None:
        return CounterpartyKind.VENDOR, vendor
    if client is not None:
        return CounterpartyKind.CLIENT, client
    return None


def print_check(check: BalanceCheck) -> None:
    """Print one balance check row."""
    status = "OK" if check.consistent else "MISMATCH"
    click.echo(
        f"{check.kind.value:6s} {check.counterparty_id:4d} | stored {check.stored:>12} | "
        f"ledger {check.replayed:>12} | derived {check.derived:>12} | {status}"
    )
    for note in check.notes:
        click.echo(f"    - {note}")


@click.group()
def balances_group():
    """Inspect and repair vendor/client running balances."""
    pass


@balances_group.command("check")
@click.option("--vendor", type=int, help="Vendor ID")
@click.option("--client", type=int, help="Client ID")
@click.pass_context
def check_balances(ctx, vendor: int | None, client: int | None):
    """Compare stored balances with the ledger and live transactions.

    Without --vendor or --client every counterparty is checked. Exits with
    status 1 when any balance is inconsistent.

    Examples:
        tallybook balances check
        tallybook balances check --vendor 3
    """
    ledger = ctx.obj["services"].ledger
    target = _counterparty(vendor, client)

    try:
        checks = [ledger.check(*target)] if target else ledger.check_all()
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    if not checks:
        click.echo("No vendors or clients found.")
        return
    for check in checks:
        print_check(check)
    if not all(check.consistent for check in checks):
        ctx.exit(1)


@balances_group.command("rebuild")
@click.option("--vendor", type=int, help="Vendor ID")
@click.option("--client", type=int, help="Client ID")
@click.pass_context
def rebuild_balance(ctx, vendor: int | None, client: int | None):
    """Reset a stored balance to the one derived from live transactions.

    Examples:
        tallybook balances rebuild --client 2
    """
    target = _counterparty(vendor, client)
    if target is None:
        raise click.UsageError("Specify --vendor or --client")

    try:
        check = ctx.obj["services"].ledger.rebuild(*target)
    except DomainError as e:
        handle_domain_error(ctx, e)
        return

    click.echo(f"Rebuilt {target[0].value} {target[1]} balance: {check.stored}")


def register_commands(cli):
    """Register balance commands with main CLI."""
    cli.add_command(balances_group, name="balances")

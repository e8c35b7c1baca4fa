"""Main CLI entry point."""

import logging

import click

from tallybook.database.factories import create_sqlite_database
from tallybook.domain.container import create_services

# Import and register all commands at module level
from tallybook.cli.commands import (
    audit,
    balances,
    inventory,
    payment,
    procurement,
    sale,
)

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


@click.group()
@click.option(
    "--db-path",
    type=click.Path(),
    help="Path to database file (overrides TALLYBOOK_DB_PATH environment variable)",
    envvar="TALLYBOOK_DB_PATH",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    show_default=True,
    envvar="TALLYBOOK_LOG_LEVEL",
    help="Logging level (overrides TALLYBOOK_LOG_LEVEL environment variable)",
)
@click.pass_context
def cli(ctx, db_path: str | None, log_level: str):
    """Tallybook - bookkeeping for small businesses.

    Operator commands for procurements, sales, payments, inventory and
    vendor/client running balances.
    """
    ctx.ensure_object(dict)
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Initialize database connection only when actually running a command
    # (not when showing help)
    if ctx.invoked_subcommand is not None:
        db = create_sqlite_database(database_path=db_path)
        db.connect()
        db.initialize_schema()
        ctx.obj["db"] = db
        ctx.obj["services"] = create_services(db)
        ctx.call_on_close(db.disconnect)


# Register all commands
audit.register_commands(cli)
balances.register_commands(cli)
inventory.register_commands(cli)
payment.register_commands(cli)
procurement.register_commands(cli)
sale.register_commands(cli)


def main():
    """Main entry point for CLI."""
    cli()


if __name__ == "__main__":
    main()

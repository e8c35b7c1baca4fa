"""Shared pytest fixtures for tallybook tests."""

import os
import tempfile
from decimal import Decimal

import pytest

from tallybook.database.factories import create_sqlite_database
from tallybook.domain.container import create_services
from tallybook.domain.entities import CounterpartyKind, ItemType, LineItemInput


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    db = create_sqlite_database(database_path=db_path)
    # Store the path for tests that need it
    db.database_path = db_path
    db.connect()
    db.initialize_schema()

    yield db

    db.disconnect()
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def services(temp_db):
    """Create the service bundle on a temporary database."""
    return create_services(temp_db)


@pytest.fixture
def vendor_id(services):
    """Create a vendor with a zero payable."""
    return services.ledger.create_counterparty(CounterpartyKind.VENDOR, "Acme Supplies")


@pytest.fixture
def client_id(services):
    """Create a client with a zero receivable."""
    return services.ledger.create_counterparty(CounterpartyKind.CLIENT, "Bright Retail")


@pytest.fixture
def empty_goods(services):
    """Two trading goods with no stock: (widget_id, gadget_id)."""
    widget = services.inventory.create_item(ItemType.TRADING_GOOD, "Widget")
    gadget = services.inventory.create_item(ItemType.TRADING_GOOD, "Gadget")
    return widget, gadget


@pytest.fixture
def lamp_id(services):
    """A trading good with 20 in stock at 40.00."""
    return services.inventory.create_item(
        ItemType.TRADING_GOOD, "Lamp", current_stock=Decimal("20"), cost_price=Decimal("40")
    )


@pytest.fixture
def shade_id(services):
    """A trading good with 10 in stock at 15.00."""
    return services.inventory.create_item(
        ItemType.TRADING_GOOD, "Shade", current_stock=Decimal("10"), cost_price=Decimal("15")
    )


@pytest.fixture
def steel_id(services):
    """A raw material with 50 in stock at 2.00."""
    return services.inventory.create_item(
        ItemType.RAW_MATERIAL, "Steel", current_stock=Decimal("50"), cost_price=Decimal("2")
    )


@pytest.fixture
def two_item_order(empty_goods):
    """Line items: 10 widgets at 5.00 and 5 gadgets at 10.00 (total 100.00)."""
    widget, gadget = empty_goods
    return [
        LineItemInput(item_id=widget, quantity=Decimal("10"), unit_price=Decimal("5")),
        LineItemInput(item_id=gadget, quantity=Decimal("5"), unit_price=Decimal("10")),
    ]


@pytest.fixture
def lamp_line(lamp_id):
    """Build sale line items for the lamp fixture."""

    def build(qty="5", price="100"):
        return LineItemInput(
            item_id=lamp_id,
            quantity=Decimal(qty),
            unit_price=Decimal(price),
            item_type=ItemType.TRADING_GOOD,
        )

    return build


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()

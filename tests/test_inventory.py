"""Tests for the inventory reconciler."""

import logging
from datetime import date
from decimal import Decimal

import pytest

from tallybook.domain.entities import AuditAction, ItemType, LineItem
from tallybook.domain.errors import InsufficientStockError, NotFoundError, ValidationError


def _line(item_id, qty, price="0", item_type=ItemType.TRADING_GOOD):
    qty, price = Decimal(qty), Decimal(price)
    return LineItem(item_type=item_type, item_id=item_id, quantity=qty, unit_price=price, amount=qty * price)


def test_apply_uses_weighted_average_cost(services, lamp_id):
    """Test receipt blends the existing cost with the line's unit price."""
    services.inventory.apply([_line(lamp_id, "10", "55")], ItemType.TRADING_GOOD, date(2024, 3, 1))

    lamp = services.inventory.get_item(ItemType.TRADING_GOOD, lamp_id)
    assert lamp.current_stock == Decimal("30")
    # (20 * 40 + 10 * 55) / 30
    assert lamp.cost_price == Decimal("45")
    assert lamp.last_received_at == date(2024, 3, 1)


def test_apply_to_empty_item_takes_line_price(services, empty_goods):
    """Test an item with no stock takes the received unit price."""
    widget, _ = empty_goods
    services.inventory.apply([_line(widget, "10", "5")], ItemType.TRADING_GOOD, date.today())

    item = services.inventory.get_item(ItemType.TRADING_GOOD, widget)
    assert item.current_stock == Decimal("10")
    assert item.cost_price == Decimal("5")


def test_reverse_keeps_cost_and_marks_lots(services, lamp_id):
    """Test reversal restores quantity, leaves cost price, and reverses the lot."""
    inventory = services.inventory
    inventory.apply(
        [_line(lamp_id, "10", "55")],
        ItemType.TRADING_GOOD,
        date.today(),
        source_type="procurement",
        source_id=7,
    )
    inventory.reverse([_line(lamp_id, "10", "55")], ItemType.TRADING_GOOD, source_type="procurement", source_id=7)

    lamp = inventory.get_item(ItemType.TRADING_GOOD, lamp_id)
    assert lamp.current_stock == Decimal("20")
    assert lamp.cost_price == Decimal("45")

    lots = services.db.list_cost_lots(ItemType.TRADING_GOOD, lamp_id, source_type="procurement", source_id=7)
    assert len(lots) == 1
    assert lots[0].reversed_quantity == Decimal("10")
    assert lots[0].live_quantity == Decimal("0")
    # Only the opening lot (20 at 40) is still live
    assert inventory.lot_average_cost(ItemType.TRADING_GOOD, lamp_id) == Decimal("40")


def test_reverse_floors_stock_at_zero(services, shade_id, caplog):
    """Test reversing more than is in stock floors at zero and warns."""
    with caplog.at_level(logging.WARNING, logger="tallybook.domain.inventory"):
        services.inventory.reverse([_line(shade_id, "25")], ItemType.TRADING_GOOD)

    shade = services.inventory.get_item(ItemType.TRADING_GOOD, shade_id)
    assert shade.current_stock == Decimal("0")
    assert "floored at 0" in caplog.text


def test_lot_average_cost_none_without_lots(services, empty_goods):
    """Test items that never received stock have no lot average."""
    widget, _ = empty_goods
    assert services.inventory.lot_average_cost(ItemType.TRADING_GOOD, widget) is None


def test_ensure_available_counts_credit(services, lamp_id):
    """Test items about to be restored count towards availability."""
    inventory = services.inventory
    with pytest.raises(InsufficientStockError) as excinfo:
        inventory.ensure_available([_line(lamp_id, "25")])
    assert "Insufficient stock for Lamp" in str(excinfo.value)
    assert "Requested: 25" in str(excinfo.value)

    inventory.ensure_available([_line(lamp_id, "25")], credit=[_line(lamp_id, "5")])


def test_ensure_available_aggregates_repeated_items(services, lamp_id):
    """Test two lines for the same item are checked together."""
    with pytest.raises(InsufficientStockError):
        services.inventory.ensure_available([_line(lamp_id, "15"), _line(lamp_id, "6")])


def test_deduct_and_restore(services, lamp_id, shade_id):
    """Test deduct then restore returns stock to where it was."""
    items = [_line(lamp_id, "5"), _line(shade_id, "10")]
    services.inventory.deduct(items)
    assert services.inventory.get_item(ItemType.TRADING_GOOD, lamp_id).current_stock == Decimal("15")
    assert services.inventory.get_item(ItemType.TRADING_GOOD, shade_id).current_stock == Decimal("0")

    services.inventory.restore(items)
    assert services.inventory.get_item(ItemType.TRADING_GOOD, lamp_id).current_stock == Decimal("20")
    assert services.inventory.get_item(ItemType.TRADING_GOOD, shade_id).current_stock == Decimal("10")


def test_deduct_is_all_or_nothing(services, lamp_id, shade_id):
    """Test a shortfall on one item leaves every item untouched."""
    with pytest.raises(InsufficientStockError):
        services.inventory.deduct([_line(lamp_id, "5"), _line(shade_id, "11")])

    assert services.inventory.get_item(ItemType.TRADING_GOOD, lamp_id).current_stock == Decimal("20")


def test_missing_item(services):
    """Test a missing inventory item raises NotFoundError."""
    with pytest.raises(NotFoundError) as excinfo:
        services.inventory.get_item(ItemType.TRADING_GOOD, 999)
    assert str(excinfo.value) == "trading_good not found: 999"


def test_create_item_rejects_negative_stock(services):
    """Test opening stock cannot be negative."""
    with pytest.raises(ValidationError):
        services.inventory.create_item(ItemType.TRADING_GOOD, "Broken", current_stock=Decimal("-1"))


class TestProduction:
    """Tests for producing finished goods from a bill of materials."""

    @pytest.fixture
    def bracket_id(self, services, steel_id):
        bracket = services.inventory.create_item(ItemType.FINISHED_GOOD, "Bracket")
        services.inventory.add_bom_component(bracket, steel_id, Decimal("2"))
        return bracket

    def test_produce_consumes_raw_materials(self, services, bracket_id, steel_id):
        """Test production deducts BOM quantities and adds finished stock."""
        bracket = services.inventory.produce(bracket_id, Decimal("10"))

        assert bracket.current_stock == Decimal("10")
        steel = services.inventory.get_item(ItemType.RAW_MATERIAL, steel_id)
        assert steel.current_stock == Decimal("30")

    def test_produce_with_insufficient_material(self, services, bracket_id, steel_id):
        """Test production fails without changing stock when material is short."""
        with pytest.raises(InsufficientStockError):
            services.inventory.produce(bracket_id, Decimal("30"))

        assert services.inventory.get_item(ItemType.RAW_MATERIAL, steel_id).current_stock == Decimal("50")
        assert services.inventory.get_item(ItemType.FINISHED_GOOD, bracket_id).current_stock == Decimal("0")

    def test_produce_requires_bom(self, services):
        """Test a finished good without a BOM cannot be produced."""
        empty = services.inventory.create_item(ItemType.FINISHED_GOOD, "Prototype")
        with pytest.raises(ValidationError) as excinfo:
            services.inventory.produce(empty, Decimal("1"))
        assert "no bill of materials" in str(excinfo.value)

    def test_produce_rejects_non_positive_quantity(self, services, bracket_id):
        """Test production quantity must be positive."""
        with pytest.raises(ValidationError):
            services.inventory.produce(bracket_id, Decimal("0"))

    def test_produce_is_audited(self, services, bracket_id):
        """Test a production run leaves a stock adjustment in the audit trail."""
        services.inventory.produce(bracket_id, Decimal("4"), actor="carol")

        entries = services.audit.list_entries("finished_good", bracket_id)
        assert len(entries) == 1
        entry = entries[0]
        assert entry.action == AuditAction.STOCK_ADJUSTMENT
        assert entry.performed_by == "carol"
        assert Decimal(entry.old_value["current_stock"]) == Decimal("0")
        assert Decimal(entry.new_value["current_stock"]) == Decimal("4")
        assert "Produced 4" in entry.details

    def test_failed_production_is_not_audited(self, services, bracket_id):
        """Test a rejected production run writes no audit entry."""
        with pytest.raises(InsufficientStockError):
            services.inventory.produce(bracket_id, Decimal("30"))

        assert services.audit.list_entries("finished_good", bracket_id) == []

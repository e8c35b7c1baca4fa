"""Tests for the procurement lifecycle service."""

from datetime import date
from decimal import Decimal

import pytest

from tallybook.domain.entities import (
    CounterpartyKind,
    ItemType,
    LineItemInput,
    PaymentInput,
    PaymentStatus,
    ProcurementStatus,
)
from tallybook.domain.errors import (
    ConflictError,
    NotFoundError,
    OverpaymentError,
    ValidationError,
)

VENDOR = CounterpartyKind.VENDOR
TRADING = ItemType.TRADING_GOOD


def _payable(services, vendor_id):
    return services.ledger.get_counterparty(VENDOR, vendor_id).balance


def _stock(services, item_id):
    return services.inventory.get_item(TRADING, item_id).current_stock


def test_round_trip(services, vendor_id, empty_goods, two_item_order):
    """Test create, pay, receive and delete keep vendor and stock in step."""
    widget, gadget = empty_goods
    procurements = services.procurements

    procurement = procurements.create_procurement(vendor_id, TRADING, two_item_order)
    assert procurement.total_amount == Decimal("100")
    assert procurement.payment_status == PaymentStatus.UNPAID
    assert procurement.total_amount == sum(i.amount for i in procurement.items) + procurement.tax_amount
    assert _payable(services, vendor_id) == Decimal("100")

    procurement = procurements.add_payment(procurement.id, PaymentInput(amount=Decimal("60")))
    assert procurement.total_paid == Decimal("60")
    assert procurement.remaining_amount == Decimal("40")
    assert procurement.payment_status == PaymentStatus.PARTIALLY_PAID
    assert _payable(services, vendor_id) == Decimal("40")

    procurement = procurements.update_status(procurement.id, ProcurementStatus.RECEIVED)
    assert procurement.received_date == date.today()
    assert _stock(services, widget) == Decimal("10")
    assert _stock(services, gadget) == Decimal("5")

    procurements.delete_procurement(procurement.id)
    assert _payable(services, vendor_id) == Decimal("0")
    assert _stock(services, widget) == Decimal("0")
    assert _stock(services, gadget) == Decimal("0")
    assert services.db.list_payments(procurement_id=procurement.id) == []
    with pytest.raises(NotFoundError):
        procurements.get_procurement(procurement.id)


def test_receive_then_unreceive_leaves_cost(services, vendor_id, lamp_id):
    """Test ordered -> received -> ordered moves stock but not cost back."""
    items = [LineItemInput(item_id=lamp_id, quantity=Decimal("10"), unit_price=Decimal("55"))]
    procurement = services.procurements.create_procurement(vendor_id, TRADING, items)
    assert _stock(services, lamp_id) == Decimal("20")

    services.procurements.update_status(procurement.id, ProcurementStatus.RECEIVED)
    lamp = services.inventory.get_item(TRADING, lamp_id)
    assert lamp.current_stock == Decimal("30")
    assert lamp.cost_price == Decimal("45")

    procurement = services.procurements.update_status(procurement.id, ProcurementStatus.ORDERED)
    lamp = services.inventory.get_item(TRADING, lamp_id)
    assert lamp.current_stock == Decimal("20")
    assert lamp.cost_price == Decimal("45")
    assert procurement.received_date is None


def test_create_received_with_initial_payment(services, vendor_id, empty_goods, two_item_order):
    """Test a procurement created as received applies stock and the payment at once."""
    widget, _ = empty_goods
    procurement = services.procurements.create_procurement(
        vendor_id,
        TRADING,
        two_item_order,
        status=ProcurementStatus.RECEIVED,
        tax_percentage=Decimal("18"),
        initial_payment=PaymentInput(amount=Decimal("18")),
    )

    assert procurement.total_amount == Decimal("118")
    assert procurement.total_paid == Decimal("18")
    assert procurement.remaining_amount == Decimal("100")
    assert _payable(services, vendor_id) == Decimal("100")
    assert _stock(services, widget) == Decimal("10")
    payments = services.db.list_payments(procurement_id=procurement.id)
    assert [p.amount for p in payments] == [Decimal("18")]
    assert payments[0].party_id == vendor_id


def test_initial_payment_cannot_exceed_total(services, vendor_id, two_item_order):
    """Test an up-front payment larger than the total is rejected."""
    with pytest.raises(OverpaymentError):
        services.procurements.create_procurement(
            vendor_id, TRADING, two_item_order, initial_payment=PaymentInput(amount=Decimal("101"))
        )
    assert services.procurements.list_procurements() == []


def test_cancel_and_restore_balance(services, vendor_id, two_item_order):
    """Test cancelling releases the remaining amount and un-cancelling restores it."""
    procurement = services.procurements.create_procurement(vendor_id, TRADING, two_item_order)
    services.procurements.add_payment(procurement.id, PaymentInput(amount=Decimal("30")))

    cancelled = services.procurements.update_status(procurement.id, ProcurementStatus.CANCELLED)
    assert cancelled.remaining_amount == Decimal("70")
    assert _payable(services, vendor_id) == Decimal("0")

    services.procurements.update_status(procurement.id, ProcurementStatus.ORDERED)
    assert _payable(services, vendor_id) == Decimal("70")


def test_cancel_received_procurement_reverses_stock(services, vendor_id, empty_goods, two_item_order):
    """Test cancelling a received procurement takes its items out of stock."""
    widget, _ = empty_goods
    procurement = services.procurements.create_procurement(
        vendor_id, TRADING, two_item_order, status=ProcurementStatus.RECEIVED
    )
    services.procurements.update_status(procurement.id, ProcurementStatus.CANCELLED)

    assert _stock(services, widget) == Decimal("0")
    assert _payable(services, vendor_id) == Decimal("0")


def test_update_items_while_received_replaces_receipt(services, vendor_id, empty_goods):
    """Test new items fully replace the old receipt while stock-affecting."""
    widget, _ = empty_goods
    items = [LineItemInput(item_id=widget, quantity=Decimal("10"), unit_price=Decimal("5"))]
    procurement = services.procurements.create_procurement(
        vendor_id, TRADING, items, status=ProcurementStatus.RECEIVED
    )

    updated = services.procurements.update_procurement(
        procurement.id,
        items=[LineItemInput(item_id=widget, quantity=Decimal("4"), unit_price=Decimal("5"))],
    )

    assert updated.total_amount == Decimal("20")
    assert _stock(services, widget) == Decimal("4")
    assert _payable(services, vendor_id) == Decimal("20")
    lots = services.db.list_cost_lots(TRADING, widget, source_type="procurement", source_id=procurement.id)
    assert [(lot.quantity, lot.reversed_quantity) for lot in lots] == [
        (Decimal("10"), Decimal("10")),
        (Decimal("4"), Decimal("0")),
    ]


def test_received_to_completed_keeps_stock(services, vendor_id, empty_goods, two_item_order):
    """Test moving between stock-affecting statuses does not double-count."""
    widget, _ = empty_goods
    procurement = services.procurements.create_procurement(
        vendor_id, TRADING, two_item_order, status=ProcurementStatus.RECEIVED
    )
    services.procurements.update_status(procurement.id, ProcurementStatus.COMPLETED)

    assert _stock(services, widget) == Decimal("10")


def test_receive_on_given_date(services, vendor_id, empty_goods, two_item_order):
    """Test a supplied received date is stamped on the procurement, the item and its cost lot."""
    widget, _ = empty_goods
    procurement = services.procurements.create_procurement(vendor_id, TRADING, two_item_order)

    received = services.procurements.update_status(
        procurement.id, ProcurementStatus.RECEIVED, received_date=date(2024, 3, 1)
    )

    assert received.received_date == date(2024, 3, 1)
    assert services.inventory.get_item(TRADING, widget).last_received_at == date(2024, 3, 1)
    lots = services.db.list_cost_lots(TRADING, widget, source_type="procurement", source_id=procurement.id)
    assert [lot.received_at for lot in lots] == [date(2024, 3, 1)]


def test_received_date_kept_and_corrected(services, vendor_id, empty_goods, two_item_order):
    """Test moving to completed keeps the received date unless a new one is given."""
    procurement = services.procurements.create_procurement(vendor_id, TRADING, two_item_order)
    services.procurements.update_status(
        procurement.id, ProcurementStatus.RECEIVED, received_date=date(2024, 3, 1)
    )

    completed = services.procurements.update_status(procurement.id, ProcurementStatus.COMPLETED)
    assert completed.received_date == date(2024, 3, 1)

    corrected = services.procurements.update_procurement(procurement.id, received_date=date(2024, 3, 5))
    assert corrected.received_date == date(2024, 3, 5)


def test_received_date_needs_stock_affecting_status(services, vendor_id, two_item_order):
    """Test a received date is rejected for a procurement that has not arrived."""
    procurement = services.procurements.create_procurement(vendor_id, TRADING, two_item_order)

    with pytest.raises(ValidationError) as excinfo:
        services.procurements.update_status(
            procurement.id, ProcurementStatus.ORDERED, received_date=date(2024, 3, 1)
        )
    assert "received or completed" in str(excinfo.value)
    assert services.procurements.get_procurement(procurement.id).received_date is None


def test_update_tax_recomputes_remaining(services, vendor_id, two_item_order):
    """Test totals are recomputed from items and the live payment sum."""
    procurement = services.procurements.create_procurement(vendor_id, TRADING, two_item_order)
    services.procurements.add_payment(procurement.id, PaymentInput(amount=Decimal("60")))

    updated = services.procurements.update_procurement(procurement.id, tax_percentage=Decimal("10"))

    assert updated.total_amount == Decimal("110")
    assert updated.remaining_amount == Decimal("50")
    assert _payable(services, vendor_id) == Decimal("50")


def test_change_vendor_moves_balance(services, vendor_id, two_item_order):
    """Test moving a procurement to another vendor moves its remaining amount."""
    other = services.ledger.create_counterparty(VENDOR, "Other Supplies")
    procurement = services.procurements.create_procurement(vendor_id, TRADING, two_item_order)

    services.procurements.update_procurement(procurement.id, vendor_id=other)

    assert _payable(services, vendor_id) == Decimal("0")
    assert _payable(services, other) == Decimal("100")


def test_invoice_number_unique_per_vendor(services, vendor_id, two_item_order):
    """Test the same invoice number cannot be reused for a vendor."""
    other = services.ledger.create_counterparty(VENDOR, "Other Supplies")
    services.procurements.create_procurement(vendor_id, TRADING, two_item_order, invoice_number="INV-1")

    with pytest.raises(ConflictError) as excinfo:
        services.procurements.create_procurement(vendor_id, TRADING, two_item_order, invoice_number="INV-1")
    assert "INV-1 already exists" in str(excinfo.value)

    services.procurements.create_procurement(other, TRADING, two_item_order, invoice_number="INV-1")


def test_finished_goods_cannot_be_procured(services, vendor_id, two_item_order):
    """Test only raw materials and trading goods can be procured."""
    with pytest.raises(ValidationError):
        services.procurements.create_procurement(vendor_id, ItemType.FINISHED_GOOD, two_item_order)


def test_missing_item_writes_nothing(services, vendor_id):
    """Test an unknown inventory item aborts before any write."""
    items = [LineItemInput(item_id=404, quantity=Decimal("1"), unit_price=Decimal("1"))]
    with pytest.raises(NotFoundError):
        services.procurements.create_procurement(vendor_id, TRADING, items)

    assert services.procurements.list_procurements() == []
    assert _payable(services, vendor_id) == Decimal("0")


def test_failure_midway_rolls_back(services, vendor_id, two_item_order, monkeypatch):
    """Test a failure after the first writes leaves no partial state."""

    def broken_apply(*args, **kwargs):
        raise RuntimeError("inventory offline")

    monkeypatch.setattr(services.inventory, "apply", broken_apply)

    with pytest.raises(RuntimeError):
        services.procurements.create_procurement(
            vendor_id,
            TRADING,
            two_item_order,
            status=ProcurementStatus.RECEIVED,
            initial_payment=PaymentInput(amount=Decimal("10")),
        )

    assert services.procurements.list_procurements() == []
    assert _payable(services, vendor_id) == Decimal("0")
    assert services.db.list_balance_entries(VENDOR, vendor_id) == []


def test_sync_from_payments_is_idempotent(services, vendor_id, two_item_order):
    """Test a second sync with no new payments changes nothing."""
    procurement = services.procurements.create_procurement(vendor_id, TRADING, two_item_order)
    services.procurements.add_payment(procurement.id, PaymentInput(amount=Decimal("25")))

    first = services.procurements.sync_from_payments(procurement.id)
    entries = len(services.db.list_balance_entries(VENDOR, vendor_id))
    second = services.procurements.sync_from_payments(procurement.id)

    assert (first.total_paid, first.remaining_amount, first.payment_status) == (
        second.total_paid,
        second.remaining_amount,
        second.payment_status,
    )
    assert len(services.db.list_balance_entries(VENDOR, vendor_id)) == entries


def test_add_payment_guards(services, vendor_id, two_item_order):
    """Test overpayment and fully-paid procurements are rejected."""
    procurement = services.procurements.create_procurement(vendor_id, TRADING, two_item_order)

    with pytest.raises(OverpaymentError) as excinfo:
        services.procurements.add_payment(procurement.id, PaymentInput(amount=Decimal("150")))
    assert "exceeds remaining balance" in str(excinfo.value)

    services.procurements.add_payment(procurement.id, PaymentInput(amount=Decimal("100")))
    with pytest.raises(OverpaymentError) as excinfo:
        services.procurements.add_payment(procurement.id, PaymentInput(amount=Decimal("1")))
    assert "no remaining balance" in str(excinfo.value)
    assert len(services.db.list_payments(procurement_id=procurement.id)) == 1


def test_delete_cancelled_procurement_keeps_balance(services, vendor_id, two_item_order):
    """Test deleting a cancelled procurement does not release its balance twice."""
    procurement = services.procurements.create_procurement(vendor_id, TRADING, two_item_order)
    services.procurements.update_status(procurement.id, ProcurementStatus.CANCELLED)
    services.procurements.delete_procurement(procurement.id)

    assert _payable(services, vendor_id) == Decimal("0")
    assert all(e.applied_delta == e.requested_delta for e in services.db.list_balance_entries(VENDOR, vendor_id))

"""Tests for the running-balance ledger."""

import logging
from decimal import Decimal

import pytest

from tallybook.domain.entities import CounterpartyKind, ItemType, ProcurementStatus
from tallybook.domain.errors import NotFoundError, ValidationError

VENDOR = CounterpartyKind.VENDOR
CLIENT = CounterpartyKind.CLIENT


def test_adjust_records_entry(services, vendor_id):
    """Test an adjustment updates the balance and appends an entry."""
    balance = services.ledger.adjust(VENDOR, vendor_id, Decimal("125.50"), reason="opening", source_type="test")

    assert balance == Decimal("125.50")
    assert services.ledger.get_counterparty(VENDOR, vendor_id).balance == Decimal("125.50")
    entries = services.db.list_balance_entries(VENDOR, vendor_id)
    assert len(entries) == 1
    assert entries[0].applied_delta == Decimal("125.50")
    assert entries[0].balance_after == Decimal("125.50")
    assert entries[0].reason == "opening"


def test_adjust_clamps_at_zero(services, client_id, caplog):
    """Test a decrease below zero is clamped and the applied delta recorded."""
    services.ledger.adjust(CLIENT, client_id, Decimal("30"), reason="sale")
    with caplog.at_level(logging.WARNING, logger="tallybook.domain.balance"):
        balance = services.ledger.adjust(CLIENT, client_id, Decimal("-50"), reason="refund")

    assert balance == Decimal("0")
    entry = services.db.list_balance_entries(CLIENT, client_id)[-1]
    assert entry.requested_delta == Decimal("-50")
    assert entry.applied_delta == Decimal("-30")
    assert "clamped at 0" in caplog.text


def test_zero_delta_writes_nothing(services, vendor_id):
    """Test a zero adjustment leaves no ledger entry."""
    services.ledger.adjust(VENDOR, vendor_id, Decimal("0"), reason="noop")
    assert services.db.list_balance_entries(VENDOR, vendor_id) == []


def test_adjust_missing_counterparty(services):
    """Test adjusting an unknown vendor raises NotFoundError."""
    with pytest.raises(NotFoundError) as excinfo:
        services.ledger.adjust(VENDOR, 99, Decimal("1"), reason="x")
    assert str(excinfo.value) == "Vendor 99 not found"


def test_create_counterparty_requires_name(services):
    """Test blank names are rejected."""
    with pytest.raises(ValidationError):
        services.ledger.create_counterparty(CLIENT, "  ")


def test_check_consistent_after_procurement(services, vendor_id, two_item_order):
    """Test stored, replayed and derived balances agree after normal use."""
    services.procurements.create_procurement(vendor_id, ItemType.TRADING_GOOD, two_item_order)

    check = services.ledger.check(VENDOR, vendor_id)
    assert check.consistent
    assert check.stored == Decimal("100")
    assert check.notes == []


def test_check_ignores_cancelled_transactions(services, vendor_id, two_item_order):
    """Test cancelled procurements do not count towards the derived balance."""
    procurement = services.procurements.create_procurement(vendor_id, ItemType.TRADING_GOOD, two_item_order)
    services.procurements.update_status(procurement.id, ProcurementStatus.CANCELLED)

    check = services.ledger.check(VENDOR, vendor_id)
    assert check.consistent
    assert check.derived == Decimal("0")


def test_rebuild_repairs_drift(services, vendor_id, two_item_order):
    """Test rebuild resets a drifted balance and the ledger agrees afterwards."""
    services.procurements.create_procurement(vendor_id, ItemType.TRADING_GOOD, two_item_order)
    services.db.set_counterparty_balance(VENDOR, vendor_id, Decimal("150"))

    drifted = services.ledger.check(VENDOR, vendor_id)
    assert not drifted.consistent
    assert drifted.stored == Decimal("150")
    assert drifted.replayed == Decimal("100")
    assert len(drifted.notes) == 2

    rebuilt = services.ledger.rebuild(VENDOR, vendor_id)
    assert rebuilt.consistent
    assert rebuilt.stored == Decimal("100")
    assert services.db.list_balance_entries(VENDOR, vendor_id)[-1].reason == "rebuild"


def test_check_all_covers_vendors_and_clients(services, vendor_id, client_id):
    """Test check_all reports every counterparty."""
    checks = services.ledger.check_all()
    assert [(c.kind, c.counterparty_id) for c in checks] == [(VENDOR, vendor_id), (CLIENT, client_id)]

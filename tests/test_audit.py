"""Tests for the audit trail."""

import logging
from decimal import Decimal

from tallybook.domain.entities import AuditAction, CounterpartyKind, ItemType, ProcurementStatus


def test_lifecycle_writes_entries(services, vendor_id, two_item_order):
    """Test creates and status changes are recorded newest first."""
    procurement = services.procurements.create_procurement(
        vendor_id, ItemType.TRADING_GOOD, two_item_order, actor="alice"
    )
    services.procurements.update_status(procurement.id, ProcurementStatus.RECEIVED, actor="bob")

    entries = services.audit.list_entries("procurement", procurement.id)
    assert [e.action for e in entries] == [AuditAction.STATUS_CHANGE, AuditAction.CREATE]

    change, create = entries
    assert create.performed_by == "alice"
    assert create.old_value is None
    assert create.new_value["status"] == "ordered"
    assert Decimal(create.new_value["total_amount"]) == Decimal("100")
    assert change.performed_by == "bob"
    assert change.old_value["status"] == "ordered"
    assert change.new_value["status"] == "received"


def test_failed_audit_does_not_fail_operation(services, temp_db, vendor_id, two_item_order, monkeypatch, caplog):
    """Test an audit write failure is logged and the business change is kept."""

    def broken_audit(*args, **kwargs):
        raise RuntimeError("audit table missing")

    monkeypatch.setattr(temp_db, "create_audit_entry", broken_audit)

    with caplog.at_level(logging.ERROR, logger="tallybook.domain.audit"):
        procurement = services.procurements.create_procurement(vendor_id, ItemType.TRADING_GOOD, two_item_order)

    assert "Failed to write audit entry" in caplog.text
    assert services.procurements.get_procurement(procurement.id).total_amount == Decimal("100")
    assert services.ledger.get_counterparty(CounterpartyKind.VENDOR, vendor_id).balance == Decimal("100")


def test_bad_audit_row_rolls_back_only_itself(services, temp_db, caplog):
    """Test an unwritable audit row leaves the surrounding unit of work intact."""
    with caplog.at_level(logging.ERROR, logger="tallybook.domain.audit"):
        with temp_db.transaction():
            vendor = services.ledger.create_counterparty(CounterpartyKind.VENDOR, "Late Supplies")
            entry_id = services.audit.log(
                AuditAction.CREATE, "vendor", vendor, new_value={"unserializable": object()}
            )

    assert entry_id is None
    assert "Failed to write audit entry" in caplog.text
    assert services.ledger.get_counterparty(CounterpartyKind.VENDOR, vendor).name == "Late Supplies"
    assert services.audit.list_entries("vendor") == []


def test_snapshot_of_plain_dict(services):
    """Test dict snapshots keep their keys and stringify decimals."""
    entry_id = services.audit.log(
        AuditAction.STOCK_ADJUSTMENT, "trading_good", 7, details="count", new_value={"stock": Decimal("3.5")}
    )

    (entry,) = services.audit.list_entries("trading_good", 7)
    assert entry.id == entry_id
    assert entry.entity_id == "7"
    assert entry.new_value == {"stock": "3.5"}

"""Procurement lifecycle service."""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional, Sequence

from tallybook.database.base import Database
from tallybook.domain.audit import AuditRecorder
from tallybook.domain.balance import BalanceLedger
from tallybook.domain.entities import (
    AccountType,
    AuditAction,
    CounterpartyKind,
    ItemType,
    LineItem,
    LineItemInput,
    PaymentInput,
    Procurement,
    ProcurementStatus,
    TransactionType,
)
from tallybook.domain.errors import (
    ConflictError,
    NotFoundError,
    ValidationError,
    duplicate_procurement_invoice,
    procurement_not_found,
)
from tallybook.domain.inventory import InventoryReconciler
from tallybook.domain.lifecycle import (
    InventoryEffect,
    effective_remaining,
    is_stock_affecting,
    procurement_transition,
)
from tallybook.domain.payment_reconciler import (
    PaymentReconciler,
    guard_initial_payment,
    guard_payment,
)
from tallybook.domain.totals import (
    ZERO,
    build_line_items,
    calculate_payment_status,
    money,
    procurement_totals,
)

logger = logging.getLogger(__name__)

PROCUREMENT_TYPES = (ItemType.RAW_MATERIAL, ItemType.TRADING_GOOD)
SOURCE = "procurement"

_UNSET = object()


class ProcurementService:
    """Create, edit, transition and delete purchase transactions.

    Every public mutation runs in one unit of work: the procurement row, its
    payments, the vendor's running balance and inventory change together or
    not at all.
    """

    def __init__(
        self,
        db: Database,
        inventory: InventoryReconciler,
        ledger: BalanceLedger,
        payments: PaymentReconciler,
        audit: AuditRecorder,
    ):
        """Initialize procurement service.

        Args:
            db: Database instance
            inventory: Inventory reconciler for stock receipts
            ledger: Balance ledger for vendor payables
            payments: Payment reconciler for payment syncs
            audit: Audit recorder
        """
        self.db = db
        self.inventory = inventory
        self.ledger = ledger
        self.payments = payments
        self.audit = audit

    def get_procurement(self, procurement_id: int) -> Procurement:
        """Get procurement by ID.

        Raises:
            NotFoundError: If the procurement does not exist
        """
        procurement = self.db.get_procurement(procurement_id)
        if procurement is None:
            raise NotFoundError(procurement_not_found(procurement_id))
        return procurement

    def list_procurements(self, vendor_id: Optional[int] = None) -> list[Procurement]:
        """List procurements, newest first."""
        return self.db.list_procurements(vendor_id=vendor_id)

    def _line_items(
        self, procurement_type: ItemType, items: Sequence[LineItemInput]
    ) -> tuple[LineItem, ...]:
        line_items = build_line_items(items, default_type=procurement_type)
        for item in line_items:
            self.inventory.get_item(procurement_type, item.item_id)
        return line_items

    def _check_invoice(
        self, vendor_id: int, invoice_number: Optional[str], exclude_id: Optional[int] = None
    ) -> None:
        if invoice_number and self.db.procurement_invoice_exists(
            vendor_id, invoice_number, exclude_id=exclude_id
        ):
            raise ConflictError(duplicate_procurement_invoice(invoice_number, vendor_id))

    def create_procurement(
        self,
        vendor_id: int,
        procurement_type: ItemType,
        items: Sequence[LineItemInput],
        procurement_date: Optional[date] = None,
        status: ProcurementStatus = ProcurementStatus.ORDERED,
        tax_percentage: Decimal = Decimal("0"),
        invoice_number: Optional[str] = None,
        notes: Optional[str] = None,
        initial_payment: Optional[PaymentInput] = None,
        actor: Optional[str] = None,
    ) -> Procurement:
        """Create a procurement.

        The vendor's payable grows by the remaining amount. A procurement
        created in a stock-affecting status is received into inventory at once.

        Args:
            vendor_id: Vendor ID
            procurement_type: raw_material or trading_good
            items: Line items; all must be of the procurement type
            procurement_date: Defaults to today
            status: Initial status
            tax_percentage: Tax applied to the subtotal
            invoice_number: Vendor invoice number, unique per vendor
            notes: Free-form notes
            initial_payment: Payment made when the order is placed
            actor: Who performed the action, for the audit trail

        Returns:
            Created procurement

        Raises:
            ValidationError: If the type or line items are invalid
            NotFoundError: If the vendor or an inventory item does not exist
            ConflictError: If the invoice number is already used for this vendor
            OverpaymentError: If the initial payment exceeds the total
        """
        procurement_type = ItemType(procurement_type)
        if procurement_type not in PROCUREMENT_TYPES:
            raise ValidationError(f"Cannot procure items of type {procurement_type.value}")
        status = ProcurementStatus(status)
        procurement_date = procurement_date or date.today()

        self.ledger.get_counterparty(CounterpartyKind.VENDOR, vendor_id)
        line_items = self._line_items(procurement_type, items)
        self._check_invoice(vendor_id, invoice_number)
        totals = procurement_totals(line_items, tax_percentage)
        if initial_payment is not None:
            guard_initial_payment(totals.total_amount, money(initial_payment.amount))

        received_date = procurement_date if is_stock_affecting(status) else None

        with self.db.transaction():
            procurement_id = self.db.create_procurement(
                procurement_type=procurement_type,
                vendor_id=vendor_id,
                procurement_date=procurement_date,
                items=line_items,
                status=status,
                subtotal=totals.subtotal,
                tax_percentage=money(tax_percentage),
                tax_amount=totals.tax_amount,
                total_amount=totals.total_amount,
                total_paid=ZERO,
                remaining_amount=totals.total_amount,
                payment_status=calculate_payment_status(totals.total_amount, ZERO).payment_status,
                invoice_number=invoice_number,
                notes=notes,
                received_date=received_date,
            )

            summary = calculate_payment_status(totals.total_amount, ZERO)
            if initial_payment is not None:
                self._create_payment(procurement_id, vendor_id, initial_payment, procurement_date)
                paid = self.db.sum_payments(procurement_id=procurement_id)
                summary = calculate_payment_status(totals.total_amount, paid)
                self.db.update_procurement(
                    procurement_id,
                    total_paid=summary.total_paid,
                    remaining_amount=summary.remaining_amount,
                    payment_status=summary.payment_status,
                )

            self.ledger.adjust(
                CounterpartyKind.VENDOR,
                vendor_id,
                effective_remaining(status, summary.remaining_amount),
                reason="procurement created",
                source_type=SOURCE,
                source_id=procurement_id,
            )

            if is_stock_affecting(status):
                self.inventory.apply(
                    line_items, procurement_type, received_date, source_type=SOURCE, source_id=procurement_id
                )

            procurement = self.get_procurement(procurement_id)
            self.audit.log(
                AuditAction.CREATE,
                SOURCE,
                procurement_id,
                details=f"Procurement of {len(line_items)} item(s) from vendor {vendor_id}",
                new_value=procurement,
                actor=actor,
            )

        logger.info(
            "Created procurement %s for vendor %s: total %s, status %s",
            procurement_id,
            vendor_id,
            procurement.total_amount,
            procurement.status.value,
        )
        return procurement

    def _create_payment(
        self, procurement_id: int, vendor_id: int, payment: PaymentInput, default_date: date
    ) -> int:
        return self.db.create_payment(
            amount=money(payment.amount),
            payment_method=payment.payment_method,
            payment_date=payment.payment_date or default_date,
            transaction_type=TransactionType.PURCHASE,
            account_type=AccountType.PAYABLE,
            party_id=vendor_id,
            party_type=CounterpartyKind.VENDOR,
            procurement_id=procurement_id,
            notes=payment.notes,
        )

    def update_procurement(
        self,
        procurement_id: int,
        vendor_id: Optional[int] = None,
        items: Optional[Sequence[LineItemInput]] = None,
        status: Optional[ProcurementStatus] = None,
        tax_percentage: Optional[Decimal] = None,
        procurement_date: Optional[date] = None,
        invoice_number=_UNSET,
        notes=_UNSET,
        received_date: Optional[date] = None,
        actor: Optional[str] = None,
    ) -> Procurement:
        """Update a procurement.

        Totals are recomputed from the (possibly new) items and the live sum
        of payments. Inventory follows the status transition table; while the
        procurement stays stock-affecting, new items replace the old receipt
        in full. The vendor's payable moves by the change in effective
        remaining.

        Returns:
            Updated procurement

        Raises:
            NotFoundError: If the procurement, vendor or an inventory item is missing
            ValidationError: If line items, the tax percentage or the received date are invalid
            ConflictError: If the invoice number is already used for the vendor
        """
        return self._update(
            procurement_id,
            AuditAction.UPDATE,
            actor,
            vendor_id=vendor_id,
            items=items,
            status=status,
            tax_percentage=tax_percentage,
            procurement_date=procurement_date,
            invoice_number=invoice_number,
            notes=notes,
            received_date=received_date,
        )

    def update_status(
        self,
        procurement_id: int,
        status: ProcurementStatus,
        received_date: Optional[date] = None,
        actor: Optional[str] = None,
    ) -> Procurement:
        """Move a procurement to a new status.

        Entering received/completed receives the items into stock, leaving them
        reverses the receipt. Cancelling releases the remaining amount from the
        vendor's payable; un-cancelling restores it.

        Args:
            procurement_id: Procurement ID
            status: New status
            received_date: Date the goods arrived, for received/completed;
                defaults to today when the items enter stock
            actor: Who performed the action, for the audit trail
        """
        return self._update(
            procurement_id, AuditAction.STATUS_CHANGE, actor, status=status, received_date=received_date
        )

    def _update(
        self,
        procurement_id: int,
        action: AuditAction,
        actor: Optional[str],
        vendor_id: Optional[int] = None,
        items: Optional[Sequence[LineItemInput]] = None,
        status: Optional[ProcurementStatus] = None,
        tax_percentage: Optional[Decimal] = None,
        procurement_date: Optional[date] = None,
        invoice_number=_UNSET,
        notes=_UNSET,
        received_date: Optional[date] = None,
    ) -> Procurement:
        old = self.get_procurement(procurement_id)

        new_vendor = old.vendor_id if vendor_id is None else vendor_id
        new_status = old.status if status is None else ProcurementStatus(status)
        new_tax = old.tax_percentage if tax_percentage is None else tax_percentage
        new_invoice = old.invoice_number if invoice_number is _UNSET else invoice_number

        if new_vendor != old.vendor_id:
            self.ledger.get_counterparty(CounterpartyKind.VENDOR, new_vendor)
        line_items = old.items if items is None else self._line_items(old.procurement_type, items)
        if new_vendor != old.vendor_id or new_invoice != old.invoice_number:
            self._check_invoice(new_vendor, new_invoice, exclude_id=procurement_id)
        totals = procurement_totals(line_items, new_tax)

        transition = procurement_transition(old.status, new_status)
        if received_date is not None and not is_stock_affecting(new_status):
            raise ValidationError(
                f"A received date needs a received or completed status, not {new_status.value}"
            )
        if transition.inventory == InventoryEffect.APPLY:
            received_date = received_date or date.today()
        elif transition.inventory == InventoryEffect.REVERSE:
            received_date = None
        elif received_date is None:
            received_date = old.received_date

        with self.db.transaction():
            paid = self.db.sum_payments(procurement_id=procurement_id)
            summary = calculate_payment_status(totals.total_amount, paid)

            changes = dict(
                vendor_id=new_vendor,
                status=new_status,
                subtotal=totals.subtotal,
                tax_percentage=money(new_tax),
                tax_amount=totals.tax_amount,
                total_amount=totals.total_amount,
                total_paid=summary.total_paid,
                remaining_amount=summary.remaining_amount,
                payment_status=summary.payment_status,
                invoice_number=new_invoice,
                received_date=received_date,
            )
            if items is not None:
                changes["items"] = line_items
            if procurement_date is not None:
                changes["procurement_date"] = procurement_date
            if notes is not _UNSET:
                changes["notes"] = notes
            self.db.update_procurement(procurement_id, **changes)

            self._apply_inventory(old, line_items, transition.inventory, items is not None, received_date)

            old_effective = effective_remaining(old.status, old.remaining_amount)
            new_effective = effective_remaining(new_status, summary.remaining_amount)
            if new_vendor != old.vendor_id:
                self.ledger.adjust(
                    CounterpartyKind.VENDOR,
                    old.vendor_id,
                    -old_effective,
                    reason="procurement moved to another vendor",
                    source_type=SOURCE,
                    source_id=procurement_id,
                )
                self.ledger.adjust(
                    CounterpartyKind.VENDOR,
                    new_vendor,
                    new_effective,
                    reason="procurement moved from another vendor",
                    source_type=SOURCE,
                    source_id=procurement_id,
                )
            else:
                self.ledger.adjust(
                    CounterpartyKind.VENDOR,
                    new_vendor,
                    new_effective - old_effective,
                    reason=f"procurement {action.value.lower()}",
                    source_type=SOURCE,
                    source_id=procurement_id,
                )

            procurement = self.get_procurement(procurement_id)
            self.audit.log(
                action,
                SOURCE,
                procurement_id,
                details=f"Status {old.status.value} -> {new_status.value}",
                old_value=old,
                new_value=procurement,
                actor=actor,
            )

        logger.info(
            "Updated procurement %s: status %s -> %s, remaining %s -> %s",
            procurement_id,
            old.status.value,
            new_status.value,
            old.remaining_amount,
            procurement.remaining_amount,
        )
        return procurement

    def _apply_inventory(
        self,
        old: Procurement,
        new_items: tuple[LineItem, ...],
        effect: InventoryEffect,
        items_changed: bool,
        received_date: Optional[date],
    ) -> None:
        item_type = old.procurement_type
        if effect == InventoryEffect.APPLY:
            self.inventory.apply(new_items, item_type, received_date, source_type=SOURCE, source_id=old.id)
        elif effect == InventoryEffect.REVERSE:
            self.inventory.reverse(old.items, item_type, source_type=SOURCE, source_id=old.id)
        elif effect == InventoryEffect.REAPPLY and items_changed:
            # Reverse before apply; the replacement is a full swap, not a diff.
            self.inventory.reverse(old.items, item_type, source_type=SOURCE, source_id=old.id)
            self.inventory.apply(
                new_items,
                item_type,
                received_date or date.today(),
                source_type=SOURCE,
                source_id=old.id,
            )

    def delete_procurement(self, procurement_id: int, actor: Optional[str] = None) -> None:
        """Delete a procurement with its payments.

        A received procurement is reversed out of stock first, and a
        non-cancelled one releases its remaining amount from the vendor.

        Raises:
            NotFoundError: If the procurement does not exist
        """
        procurement = self.get_procurement(procurement_id)

        with self.db.transaction():
            if is_stock_affecting(procurement.status):
                self.inventory.reverse(
                    procurement.items,
                    procurement.procurement_type,
                    source_type=SOURCE,
                    source_id=procurement_id,
                )
            if procurement.status != ProcurementStatus.CANCELLED:
                self.ledger.adjust(
                    CounterpartyKind.VENDOR,
                    procurement.vendor_id,
                    -procurement.remaining_amount,
                    reason="procurement deleted",
                    source_type=SOURCE,
                    source_id=procurement_id,
                )
            removed = self.db.delete_payments(procurement_id=procurement_id)
            self.db.delete_procurement(procurement_id)
            self.audit.log(
                AuditAction.DELETE,
                SOURCE,
                procurement_id,
                details=f"Deleted with {removed} payment(s)",
                old_value=procurement,
                actor=actor,
            )

        logger.info("Deleted procurement %s and %d payment(s)", procurement_id, removed)

    def add_payment(
        self, procurement_id: int, payment: PaymentInput, actor: Optional[str] = None
    ) -> Procurement:
        """Record a payment against a procurement, then sync it.

        Raises:
            NotFoundError: If the procurement does not exist
            OverpaymentError: If nothing is remaining or the payment exceeds it
        """
        procurement = self.get_procurement(procurement_id)
        amount = money(payment.amount)
        guard_payment(
            "Procurement",
            procurement_id,
            effective_remaining(procurement.status, procurement.remaining_amount),
            amount,
        )

        with self.db.transaction():
            payment_id = self._create_payment(procurement_id, procurement.vendor_id, payment, date.today())
            updated = self.payments.sync_procurement(procurement_id)
            self.audit.log(
                AuditAction.PAYMENT_RECEIVED,
                SOURCE,
                procurement_id,
                details=f"Payment {payment_id} of {amount}",
                old_value=procurement,
                new_value=updated,
                actor=actor,
            )

        logger.info("Recorded payment %s of %s on procurement %s", payment_id, amount, procurement_id)
        return updated

    def sync_from_payments(self, procurement_id: int) -> Procurement:
        """Recompute payment fields from the live payment rows."""
        return self.payments.sync_procurement(procurement_id)

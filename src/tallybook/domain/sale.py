"""Sale lifecycle service."""

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
    Sale,
    SaleStatus,
    TransactionType,
)
from tallybook.domain.errors import (
    ConflictError,
    NotFoundError,
    RawMaterialSaleError,
    ValidationError,
    duplicate_sale_invoice,
    raw_material_not_sellable,
    sale_not_found,
)
from tallybook.domain.inventory import InventoryReconciler
from tallybook.domain.lifecycle import InventoryEffect, effective_remaining, sale_transition
from tallybook.domain.payment_reconciler import (
    PaymentReconciler,
    guard_initial_payment,
    guard_payment,
)
from tallybook.domain.totals import ZERO, build_line_items, calculate_payment_status, money, sale_totals

logger = logging.getLogger(__name__)

SOURCE = "sale"

_UNSET = object()


def reject_raw_materials(items: Sequence[LineItemInput]) -> None:
    """Raise RawMaterialSaleError if any line item is a raw material."""
    for item in items:
        if item.item_type is not None and ItemType(item.item_type) == ItemType.RAW_MATERIAL:
            raise RawMaterialSaleError(raw_material_not_sellable(item.item_id))


class SaleService:
    """Create, edit, transition and delete sales.

    Stock is deducted for every sale that is not cancelled, independent of
    its other statuses. All checks run before the first write.
    """

    def __init__(
        self,
        db: Database,
        inventory: InventoryReconciler,
        ledger: BalanceLedger,
        payments: PaymentReconciler,
        audit: AuditRecorder,
    ):
        """Initialize sale service.

        Args:
            db: Database instance
            inventory: Inventory reconciler for stock deductions
            ledger: Balance ledger for client receivables
            payments: Payment reconciler for payment syncs
            audit: Audit recorder
        """
        self.db = db
        self.inventory = inventory
        self.ledger = ledger
        self.payments = payments
        self.audit = audit

    def get_sale(self, sale_id: int) -> Sale:
        """Get sale by ID.

        Raises:
            NotFoundError: If the sale does not exist
        """
        sale = self.db.get_sale(sale_id)
        if sale is None:
            raise NotFoundError(sale_not_found(sale_id))
        return sale

    def list_sales(self, client_id: Optional[int] = None) -> list[Sale]:
        """List sales, newest first."""
        return self.db.list_sales(client_id=client_id)

    def _line_items(self, items: Sequence[LineItemInput]) -> tuple[LineItem, ...]:
        reject_raw_materials(items)
        return build_line_items(items)

    def _check_invoice(self, invoice_number: str, exclude_id: Optional[int] = None) -> None:
        if not invoice_number or not invoice_number.strip():
            raise ValidationError("Invoice number is required")
        if self.db.sale_invoice_exists(invoice_number, exclude_id=exclude_id):
            raise ConflictError(duplicate_sale_invoice(invoice_number))

    def create_sale(
        self,
        client_id: int,
        invoice_number: str,
        items: Sequence[LineItemInput],
        sale_date: Optional[date] = None,
        status: SaleStatus = SaleStatus.PENDING,
        discount: Decimal = Decimal("0"),
        tax_percentage: Decimal = Decimal("0"),
        notes: Optional[str] = None,
        initial_payment: Optional[PaymentInput] = None,
        actor: Optional[str] = None,
    ) -> Sale:
        """Create a sale, deducting its items from stock.

        Args:
            client_id: Client ID
            invoice_number: Unique invoice number
            items: Line items; raw materials are rejected
            sale_date: Defaults to today
            status: pending or completed
            discount: Amount taken off the subtotal before tax
            tax_percentage: Tax applied after the discount
            notes: Free-form notes
            initial_payment: Payment received with the sale
            actor: Who performed the action, for the audit trail

        Returns:
            Created sale

        Raises:
            RawMaterialSaleError: If a line item is a raw material
            ValidationError: If the status, items, discount or tax are invalid
            ConflictError: If the invoice number already exists
            NotFoundError: If the client or an inventory item does not exist
            InsufficientStockError: If an item lacks stock
            OverpaymentError: If the initial payment exceeds the total
        """
        status = SaleStatus(status)
        if status == SaleStatus.CANCELLED:
            raise ValidationError("A sale cannot be created as cancelled")
        sale_date = sale_date or date.today()

        line_items = self._line_items(items)
        self._check_invoice(invoice_number)
        self.ledger.get_counterparty(CounterpartyKind.CLIENT, client_id)
        totals = sale_totals(line_items, discount, tax_percentage)
        self.inventory.ensure_available(line_items)
        if initial_payment is not None:
            guard_initial_payment(totals.total_amount, money(initial_payment.amount))

        with self.db.transaction():
            self.inventory.deduct(line_items)
            unpaid = calculate_payment_status(totals.total_amount, ZERO)
            sale_id = self.db.create_sale(
                client_id=client_id,
                invoice_number=invoice_number,
                sale_date=sale_date,
                items=line_items,
                status=status,
                subtotal=totals.subtotal,
                discount=totals.discount,
                tax_percentage=money(tax_percentage),
                tax_amount=totals.tax_amount,
                total_amount=totals.total_amount,
                total_paid=unpaid.total_paid,
                remaining_amount=unpaid.remaining_amount,
                payment_status=unpaid.payment_status,
                notes=notes,
            )

            summary = unpaid
            if initial_payment is not None:
                self._create_payment(sale_id, client_id, initial_payment, sale_date)
                summary = calculate_payment_status(
                    totals.total_amount, self.db.sum_payments(sale_id=sale_id)
                )
                self.db.update_sale(
                    sale_id,
                    total_paid=summary.total_paid,
                    remaining_amount=summary.remaining_amount,
                    payment_status=summary.payment_status,
                )

            self.ledger.adjust(
                CounterpartyKind.CLIENT,
                client_id,
                summary.remaining_amount,
                reason="sale created",
                source_type=SOURCE,
                source_id=sale_id,
            )

            sale = self.get_sale(sale_id)
            self.audit.log(
                AuditAction.CREATE,
                SOURCE,
                sale_id,
                details=f"Sale {invoice_number} to client {client_id}",
                new_value=sale,
                actor=actor,
            )

        logger.info(
            "Created sale %s (%s) for client %s: total %s",
            sale_id,
            invoice_number,
            client_id,
            sale.total_amount,
        )
        return sale

    def _create_payment(self, sale_id: int, client_id: int, payment: PaymentInput, default_date: date) -> int:
        return self.db.create_payment(
            amount=money(payment.amount),
            payment_method=payment.payment_method,
            payment_date=payment.payment_date or default_date,
            transaction_type=TransactionType.SALE,
            account_type=AccountType.RECEIVABLE,
            party_id=client_id,
            party_type=CounterpartyKind.CLIENT,
            sale_id=sale_id,
            notes=payment.notes,
        )

    def update_sale(
        self,
        sale_id: int,
        client_id: Optional[int] = None,
        items: Optional[Sequence[LineItemInput]] = None,
        invoice_number: Optional[str] = None,
        sale_date: Optional[date] = None,
        discount: Optional[Decimal] = None,
        tax_percentage: Optional[Decimal] = None,
        notes=_UNSET,
        actor: Optional[str] = None,
    ) -> Sale:
        """Update a sale.

        The old items are always restored to stock and the new items deducted,
        whatever the status. The original client's receivable is reverted and
        the new remaining amount applied to the (possibly new) client, whose
        payments are then reassigned.

        Returns:
            Updated sale

        Raises:
            ValidationError: If the sale is cancelled or the input is invalid
            RawMaterialSaleError: If a new line item is a raw material
            ConflictError: If the new invoice number already exists
            NotFoundError: If the sale, client or an inventory item is missing
            InsufficientStockError: If the new items lack stock
        """
        old = self.get_sale(sale_id)
        if old.status == SaleStatus.CANCELLED:
            raise ValidationError(f"Sale {sale_id} is cancelled; reactivate it before editing")

        new_client = old.client_id if client_id is None else client_id
        if new_client != old.client_id:
            self.ledger.get_counterparty(CounterpartyKind.CLIENT, new_client)
        line_items = old.items if items is None else self._line_items(items)
        if invoice_number is not None and invoice_number != old.invoice_number:
            self._check_invoice(invoice_number, exclude_id=sale_id)
        totals = sale_totals(
            line_items,
            old.discount if discount is None else discount,
            old.tax_percentage if tax_percentage is None else tax_percentage,
        )
        self.inventory.ensure_available(line_items, credit=old.items)

        with self.db.transaction():
            self.inventory.restore(old.items)
            self.inventory.deduct(line_items)

            summary = calculate_payment_status(totals.total_amount, self.db.sum_payments(sale_id=sale_id))
            changes = dict(
                client_id=new_client,
                items=line_items,
                subtotal=totals.subtotal,
                discount=totals.discount,
                tax_percentage=money(old.tax_percentage if tax_percentage is None else tax_percentage),
                tax_amount=totals.tax_amount,
                total_amount=totals.total_amount,
                total_paid=summary.total_paid,
                remaining_amount=summary.remaining_amount,
                payment_status=summary.payment_status,
            )
            if invoice_number is not None:
                changes["invoice_number"] = invoice_number
            if sale_date is not None:
                changes["sale_date"] = sale_date
            if notes is not _UNSET:
                changes["notes"] = notes
            self.db.update_sale(sale_id, **changes)

            if new_client != old.client_id:
                self.ledger.adjust(
                    CounterpartyKind.CLIENT,
                    old.client_id,
                    -old.remaining_amount,
                    reason="sale moved to another client",
                    source_type=SOURCE,
                    source_id=sale_id,
                )
                self.ledger.adjust(
                    CounterpartyKind.CLIENT,
                    new_client,
                    summary.remaining_amount,
                    reason="sale moved from another client",
                    source_type=SOURCE,
                    source_id=sale_id,
                )
                moved = self.db.reassign_sale_payments(sale_id, new_client)
                logger.info("Reassigned %d payment(s) of sale %s to client %s", moved, sale_id, new_client)
            else:
                self.ledger.adjust(
                    CounterpartyKind.CLIENT,
                    new_client,
                    summary.remaining_amount - old.remaining_amount,
                    reason="sale updated",
                    source_type=SOURCE,
                    source_id=sale_id,
                )

            sale = self.get_sale(sale_id)
            self.audit.log(AuditAction.UPDATE, SOURCE, sale_id, old_value=old, new_value=sale, actor=actor)

        logger.info("Updated sale %s: total %s -> %s", sale_id, old.total_amount, sale.total_amount)
        return sale

    def update_status(self, sale_id: int, status: SaleStatus, actor: Optional[str] = None) -> Sale:
        """Move a sale to a new status.

        Cancelling restores stock and releases the remaining amount from the
        client; reactivating re-checks and re-deducts stock and restores it.

        Raises:
            NotFoundError: If the sale does not exist
            InsufficientStockError: If reactivation finds too little stock
        """
        old = self.get_sale(sale_id)
        new_status = SaleStatus(status)
        if new_status == old.status:
            return old

        transition = sale_transition(old.status, new_status)
        if transition.inventory == InventoryEffect.APPLY:
            self.inventory.ensure_available(old.items)

        with self.db.transaction():
            if transition.inventory == InventoryEffect.REVERSE:
                self.inventory.restore(old.items)
            elif transition.inventory == InventoryEffect.APPLY:
                self.inventory.deduct(old.items)

            self.db.update_sale(sale_id, status=new_status)
            self.ledger.adjust(
                CounterpartyKind.CLIENT,
                old.client_id,
                effective_remaining(new_status, old.remaining_amount)
                - effective_remaining(old.status, old.remaining_amount),
                reason=f"sale {old.status.value} -> {new_status.value}",
                source_type=SOURCE,
                source_id=sale_id,
            )

            sale = self.get_sale(sale_id)
            self.audit.log(
                AuditAction.STATUS_CHANGE,
                SOURCE,
                sale_id,
                details=f"Status {old.status.value} -> {new_status.value}",
                old_value=old,
                new_value=sale,
                actor=actor,
            )

        logger.info("Sale %s status %s -> %s", sale_id, old.status.value, new_status.value)
        return sale

    def delete_sale(self, sale_id: int, actor: Optional[str] = None) -> None:
        """Delete a sale with its payments.

        Stock is restored and the client's receivable reduced by the remaining
        amount, unless the sale was cancelled and has already done both.

        Raises:
            NotFoundError: If the sale does not exist
        """
        sale = self.get_sale(sale_id)

        with self.db.transaction():
            if sale.status != SaleStatus.CANCELLED:
                self.inventory.restore(sale.items)
                self.ledger.adjust(
                    CounterpartyKind.CLIENT,
                    sale.client_id,
                    -sale.remaining_amount,
                    reason="sale deleted",
                    source_type=SOURCE,
                    source_id=sale_id,
                )
            removed = self.db.delete_payments(sale_id=sale_id)
            self.db.delete_sale(sale_id)
            self.audit.log(
                AuditAction.DELETE,
                SOURCE,
                sale_id,
                details=f"Deleted with {removed} payment(s)",
                old_value=sale,
                actor=actor,
            )

        logger.info("Deleted sale %s and %d payment(s)", sale_id, removed)

    def add_payment(self, sale_id: int, payment: PaymentInput, actor: Optional[str] = None) -> Sale:
        """Record a payment received against a sale, then sync it.

        Raises:
            NotFoundError: If the sale does not exist
            OverpaymentError: If nothing is remaining or the payment exceeds it
        """
        sale = self.get_sale(sale_id)
        amount = money(payment.amount)
        guard_payment("Sale", sale_id, effective_remaining(sale.status, sale.remaining_amount), amount)

        with self.db.transaction():
            payment_id = self._create_payment(sale_id, sale.client_id, payment, date.today())
            updated = self.payments.sync_sale(sale_id)
            self.audit.log(
                AuditAction.PAYMENT_RECEIVED,
                SOURCE,
                sale_id,
                details=f"Payment {payment_id} of {amount}",
                old_value=sale,
                new_value=updated,
                actor=actor,
            )

        logger.info("Recorded payment %s of %s on sale %s", payment_id, amount, sale_id)
        return updated

    def sync_from_payments(self, sale_id: int) -> Sale:
        """Recompute payment fields from the live payment rows."""
        return self.payments.sync_sale(sale_id)

"""Payment mutation service.

Creates, edits and deletes single payment rows, then re-synchronizes
whatever the payment belongs to: a sale, a procurement, an asset, or a
vendor's payable when the payment was made on account.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from tallybook.database.base import Database
from tallybook.domain.audit import AuditRecorder
from tallybook.domain.balance import BalanceLedger
from tallybook.domain.entities import (
    AccountType,
    AuditAction,
    CounterpartyKind,
    Payment,
    PaymentMethod,
    TransactionType,
)
from tallybook.domain.errors import (
    NotFoundError,
    ValidationError,
    asset_not_found,
    payment_not_found,
    procurement_not_found,
    sale_not_found,
)
from tallybook.domain.lifecycle import effective_remaining
from tallybook.domain.payment_reconciler import PaymentReconciler, guard_payment
from tallybook.domain.totals import money

logger = logging.getLogger(__name__)

SOURCE = "payment"


def is_on_account(payment: Payment) -> bool:
    """A purchase payment to a vendor that is not tied to a procurement or asset."""
    return (
        payment.transaction_type == TransactionType.PURCHASE
        and payment.procurement_id is None
        and payment.asset_id is None
        and payment.party_type == CounterpartyKind.VENDOR
        and payment.party_id is not None
    )


class PaymentService:
    """Service for recording, editing and deleting payments."""

    def __init__(
        self,
        db: Database,
        ledger: BalanceLedger,
        payments: PaymentReconciler,
        audit: AuditRecorder,
    ):
        """Initialize payment service.

        Args:
            db: Database instance
            ledger: Balance ledger for on-account vendor payments
            payments: Payment reconciler for sale/procurement/asset syncs
            audit: Audit recorder
        """
        self.db = db
        self.ledger = ledger
        self.payments = payments
        self.audit = audit

    def get_payment(self, payment_id: int) -> Payment:
        """Get payment by ID.

        Raises:
            NotFoundError: If the payment does not exist
        """
        payment = self.db.get_payment(payment_id)
        if payment is None:
            raise NotFoundError(payment_not_found(payment_id))
        return payment

    def list_payments(
        self,
        sale_id: Optional[int] = None,
        procurement_id: Optional[int] = None,
        asset_id: Optional[int] = None,
    ) -> list[Payment]:
        """List the payments settling one sale, procurement or asset, oldest first.

        Raises:
            ValidationError: If not exactly one link is given
            NotFoundError: If the linked record does not exist
        """
        links = [link for link in (sale_id, procurement_id, asset_id) if link is not None]
        if len(links) != 1:
            raise ValidationError("Specify exactly one of sale, procurement or asset")
        if sale_id is not None and self.db.get_sale(sale_id) is None:
            raise NotFoundError(sale_not_found(sale_id))
        if procurement_id is not None and self.db.get_procurement(procurement_id) is None:
            raise NotFoundError(procurement_not_found(procurement_id))
        if asset_id is not None and self.db.get_asset(asset_id) is None:
            raise NotFoundError(asset_not_found(asset_id))
        return self.db.list_payments(sale_id=sale_id, procurement_id=procurement_id, asset_id=asset_id)

    def record_payment(
        self,
        amount: Decimal,
        transaction_type: Optional[TransactionType] = None,
        payment_method: PaymentMethod = PaymentMethod.CASH,
        payment_date: Optional[date] = None,
        sale_id: Optional[int] = None,
        procurement_id: Optional[int] = None,
        asset_id: Optional[int] = None,
        vendor_id: Optional[int] = None,
        client_id: Optional[int] = None,
        notes: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> Payment:
        """Record a standalone payment.

        A payment linked to a sale or procurement is checked against its
        remaining balance and the transaction is synced. An asset payment
        re-derives the asset's payment status. A purchase payment to a vendor
        with no link reduces the vendor's payable directly.

        Args:
            amount: Payment amount
            transaction_type: Required for unlinked payments; inferred otherwise
            payment_method: How the payment was made
            payment_date: Defaults to today
            sale_id: Sale the payment settles
            procurement_id: Procurement the payment settles
            asset_id: Asset the payment settles
            vendor_id: Vendor paid, for unlinked or asset payments
            client_id: Client paying, for unlinked payments
            notes: Free-form notes
            actor: Who performed the action, for the audit trail

        Returns:
            Created payment

        Raises:
            ValidationError: If the links or amounts are inconsistent
            NotFoundError: If a linked record does not exist
            OverpaymentError: If the payment exceeds the remaining balance
        """
        amount = money(amount)
        links = [link for link in (sale_id, procurement_id, asset_id) if link is not None]
        if len(links) > 1:
            raise ValidationError("A payment can settle at most one sale, procurement or asset")
        if amount <= 0:
            raise ValidationError("Payment amount must be greater than 0")

        party_id, party_type = None, None
        if sale_id is not None:
            sale = self.db.get_sale(sale_id)
            if sale is None:
                raise NotFoundError(sale_not_found(sale_id))
            guard_payment("Sale", sale_id, effective_remaining(sale.status, sale.remaining_amount), amount)
            expected = TransactionType.SALE
            party_id, party_type = sale.client_id, CounterpartyKind.CLIENT
        elif procurement_id is not None:
            procurement = self.db.get_procurement(procurement_id)
            if procurement is None:
                raise NotFoundError(procurement_not_found(procurement_id))
            guard_payment(
                "Procurement",
                procurement_id,
                effective_remaining(procurement.status, procurement.remaining_amount),
                amount,
            )
            expected = TransactionType.PURCHASE
            party_id, party_type = procurement.vendor_id, CounterpartyKind.VENDOR
        elif asset_id is not None:
            asset = self.db.get_asset(asset_id)
            if asset is None:
                raise NotFoundError(asset_not_found(asset_id))
            guard_payment("Asset", asset_id, asset.remaining_amount, amount)
            expected = TransactionType.PURCHASE
            if asset.vendor_id is not None:
                party_id, party_type = asset.vendor_id, CounterpartyKind.VENDOR
        else:
            if transaction_type is None:
                raise ValidationError("Transaction type is required for an unlinked payment")
            expected = TransactionType(transaction_type)
            if vendor_id is not None and client_id is not None:
                raise ValidationError("A payment has a single counterparty")
            if vendor_id is not None:
                self.ledger.get_counterparty(CounterpartyKind.VENDOR, vendor_id)
                party_id, party_type = vendor_id, CounterpartyKind.VENDOR
            elif client_id is not None:
                self.ledger.get_counterparty(CounterpartyKind.CLIENT, client_id)
                party_id, party_type = client_id, CounterpartyKind.CLIENT

        if transaction_type is not None and TransactionType(transaction_type) != expected:
            raise ValidationError(
                f"Transaction type {TransactionType(transaction_type).value} does not match the linked record"
            )
        account_type = AccountType.RECEIVABLE if expected == TransactionType.SALE else AccountType.PAYABLE

        with self.db.transaction():
            payment_id = self.db.create_payment(
                amount=amount,
                payment_method=PaymentMethod(payment_method),
                payment_date=payment_date or date.today(),
                transaction_type=expected,
                account_type=account_type,
                party_id=party_id,
                party_type=party_type,
                sale_id=sale_id,
                procurement_id=procurement_id,
                asset_id=asset_id,
                notes=notes,
            )
            payment = self.get_payment(payment_id)
            self._reconcile(payment, on_account_delta=-amount)
            self.audit.log(AuditAction.CREATE, SOURCE, payment_id, new_value=payment, actor=actor)

        logger.info("Recorded %s payment %s of %s", expected.value, payment_id, amount)
        return payment

    def update_payment(
        self,
        payment_id: int,
        amount: Optional[Decimal] = None,
        payment_method: Optional[PaymentMethod] = None,
        payment_date: Optional[date] = None,
        notes: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> Payment:
        """Edit a payment and re-sync what it belongs to when the amount changes.

        Raises:
            NotFoundError: If the payment does not exist
            ValidationError: If the new amount is not positive
            OverpaymentError: If an increase exceeds the linked remaining balance
        """
        old = self.get_payment(payment_id)
        new_amount = old.amount if amount is None else money(amount)
        if new_amount <= 0:
            raise ValidationError("Payment amount must be greater than 0")
        diff = new_amount - old.amount
        if diff > 0:
            self._guard_increase(old, diff)

        with self.db.transaction():
            self.db.update_payment(
                payment_id,
                amount=new_amount,
                payment_method=payment_method,
                payment_date=payment_date,
                notes=notes,
            )
            payment = self.get_payment(payment_id)
            if diff != 0:
                self._reconcile(payment, on_account_delta=-diff)
            self.audit.log(
                AuditAction.UPDATE, SOURCE, payment_id, old_value=old, new_value=payment, actor=actor
            )

        logger.info("Updated payment %s: amount %s -> %s", payment_id, old.amount, new_amount)
        return payment

    def delete_payment(self, payment_id: int, actor: Optional[str] = None) -> Payment:
        """Delete a payment, then reverse its effect on what it belonged to.

        Returns:
            The deleted payment

        Raises:
            NotFoundError: If the payment does not exist
        """
        payment = self.get_payment(payment_id)

        with self.db.transaction():
            self.db.delete_payment(payment_id)
            self._reconcile(payment, on_account_delta=payment.amount)
            self.audit.log(AuditAction.DELETE, SOURCE, payment_id, old_value=payment, actor=actor)

        logger.info("Deleted payment %s of %s", payment_id, payment.amount)
        return payment

    def _guard_increase(self, payment: Payment, increase: Decimal) -> None:
        if payment.sale_id is not None:
            sale = self.db.get_sale(payment.sale_id)
            if sale is not None:
                guard_payment(
                    "Sale", sale.id, effective_remaining(sale.status, sale.remaining_amount), increase
                )
        elif payment.procurement_id is not None:
            procurement = self.db.get_procurement(payment.procurement_id)
            if procurement is not None:
                guard_payment(
                    "Procurement",
                    procurement.id,
                    effective_remaining(procurement.status, procurement.remaining_amount),
                    increase,
                )
        elif payment.asset_id is not None:
            asset = self.db.get_asset(payment.asset_id)
            if asset is not None:
                guard_payment("Asset", asset.id, asset.remaining_amount, increase)

    def _reconcile(self, payment: Payment, on_account_delta: Decimal) -> None:
        """Dispatch by transaction type, then refresh any linked asset."""
        if payment.transaction_type == TransactionType.SALE and payment.sale_id is not None:
            self.payments.sync_sale(payment.sale_id)
        elif payment.transaction_type == TransactionType.PURCHASE:
            if payment.procurement_id is not None:
                self.payments.sync_procurement(payment.procurement_id)
            elif is_on_account(payment):
                self.ledger.adjust(
                    CounterpartyKind.VENDOR,
                    payment.party_id,
                    on_account_delta,
                    reason="payment on account",
                    source_type=SOURCE,
                    source_id=payment.id,
                )

        if payment.asset_id is not None:
            self.payments.sync_asset(payment.asset_id)

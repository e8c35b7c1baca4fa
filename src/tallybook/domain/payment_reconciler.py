"""Re-derive paid/remaining/status fields from linked payment rows."""

import logging
from decimal import Decimal

from tallybook.database.base import Database
from tallybook.domain.balance import BalanceLedger
from tallybook.domain.entities import Asset, CounterpartyKind, Procurement, Sale
from tallybook.domain.errors import (
    NotFoundError,
    OverpaymentError,
    ValidationError,
    asset_not_found,
    nothing_remaining,
    payment_exceeds_remaining,
    procurement_not_found,
    sale_not_found,
)
from tallybook.domain.lifecycle import effective_remaining
from tallybook.domain.totals import calculate_payment_status, money

logger = logging.getLogger(__name__)


def guard_payment(entity: str, entity_id: int, remaining: Decimal, amount: Decimal) -> None:
    """Reject a payment that is not positive or exceeds the remaining balance.

    Raises:
        ValidationError: If the amount is not positive
        OverpaymentError: If nothing is remaining or the amount exceeds it
    """
    if amount <= 0:
        raise ValidationError("Payment amount must be greater than 0")
    if remaining <= 0:
        raise OverpaymentError(nothing_remaining(entity, entity_id))
    if amount > remaining:
        raise OverpaymentError(payment_exceeds_remaining(amount, remaining))


def guard_initial_payment(total_amount: Decimal, amount: Decimal) -> None:
    """Reject an up-front payment that is not positive or exceeds the total."""
    if amount <= 0:
        raise ValidationError("Payment amount must be greater than 0")
    if amount > total_amount:
        raise OverpaymentError(payment_exceeds_remaining(amount, total_amount))


class PaymentReconciler:
    """Self-healing sync of a transaction's payment fields.

    ``total_paid`` is always recomputed from the live sum of payment rows,
    never incremented, and the change in effective remaining is pushed to the
    counterparty's running balance.
    """

    def __init__(self, db: Database, ledger: BalanceLedger):
        """Initialize payment reconciler.

        Args:
            db: Database instance
            ledger: Balance ledger used for counterparty deltas
        """
        self.db = db
        self.ledger = ledger

    def sync_procurement(self, procurement_id: int) -> Procurement:
        """Recompute a procurement's payment fields and adjust the vendor.

        Returns:
            Updated procurement

        Raises:
            NotFoundError: If the procurement does not exist
        """
        with self.db.transaction():
            procurement = self.db.get_procurement(procurement_id)
            if procurement is None:
                raise NotFoundError(procurement_not_found(procurement_id))

            paid = self.db.sum_payments(procurement_id=procurement_id)
            summary = calculate_payment_status(procurement.total_amount, paid)
            self.db.update_procurement(
                procurement_id,
                total_paid=summary.total_paid,
                remaining_amount=summary.remaining_amount,
                payment_status=summary.payment_status,
            )

            diff = effective_remaining(procurement.status, summary.remaining_amount) - effective_remaining(
                procurement.status, procurement.remaining_amount
            )
            self.ledger.adjust(
                CounterpartyKind.VENDOR,
                procurement.vendor_id,
                diff,
                reason="procurement payments synced",
                source_type="procurement",
                source_id=procurement_id,
            )
            updated = self.db.get_procurement(procurement_id)

        logger.debug(
            "Synced procurement %s: paid %s, remaining %s",
            procurement_id,
            summary.total_paid,
            summary.remaining_amount,
        )
        return updated

    def sync_sale(self, sale_id: int) -> Sale:
        """Recompute a sale's payment fields and adjust the client.

        Returns:
            Updated sale

        Raises:
            NotFoundError: If the sale does not exist
        """
        with self.db.transaction():
            sale = self.db.get_sale(sale_id)
            if sale is None:
                raise NotFoundError(sale_not_found(sale_id))

            paid = self.db.sum_payments(sale_id=sale_id)
            summary = calculate_payment_status(sale.total_amount, paid)
            self.db.update_sale(
                sale_id,
                total_paid=summary.total_paid,
                remaining_amount=summary.remaining_amount,
                payment_status=summary.payment_status,
            )

            diff = effective_remaining(sale.status, summary.remaining_amount) - effective_remaining(
                sale.status, sale.remaining_amount
            )
            self.ledger.adjust(
                CounterpartyKind.CLIENT,
                sale.client_id,
                diff,
                reason="sale payments synced",
                source_type="sale",
                source_id=sale_id,
            )
            updated = self.db.get_sale(sale_id)

        logger.debug(
            "Synced sale %s: paid %s, remaining %s", sale_id, summary.total_paid, summary.remaining_amount
        )
        return updated

    def sync_asset(self, asset_id: int) -> Asset:
        """Recompute an asset's payment fields from its linked payments.

        Raises:
            NotFoundError: If the asset does not exist
        """
        with self.db.transaction():
            asset = self.db.get_asset(asset_id)
            if asset is None:
                raise NotFoundError(asset_not_found(asset_id))
            paid = self.db.sum_payments(asset_id=asset_id)
            summary = calculate_payment_status(asset.purchase_price, paid)
            self.db.update_asset_payment(
                asset_id,
                total_paid=summary.total_paid,
                remaining_amount=summary.remaining_amount,
                payment_status=summary.payment_status,
            )
            return self.db.get_asset(asset_id)

    def create_asset(self, name: str, purchase_price: Decimal, vendor_id=None) -> int:
        """Create an asset with unpaid payment fields.

        Returns:
            Asset ID
        """
        price = money(purchase_price)
        if price <= 0:
            raise ValidationError("Purchase price must be greater than 0")
        if vendor_id is not None:
            self.ledger.get_counterparty(CounterpartyKind.VENDOR, vendor_id)
        return self.db.create_asset(name, price, vendor_id=vendor_id)

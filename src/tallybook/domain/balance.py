"""Running-balance ledger for vendors and clients."""

import logging
from decimal import Decimal
from typing import Optional

from tallybook.database.base import Database
from tallybook.domain.entities import BalanceCheck, Counterparty, CounterpartyKind
from tallybook.domain.errors import NotFoundError, ValidationError, counterparty_not_found
from tallybook.domain.lifecycle import effective_remaining
from tallybook.domain.totals import ZERO, money

logger = logging.getLogger(__name__)


class BalanceLedger:
    """Applies signed deltas to a counterparty's running balance.

    The stored balance is kept for fast reads. Each adjustment also appends a
    balance entry, so the stored value can be replayed from the entries and
    compared against the balance derived from live transactions.
    """

    def __init__(self, db: Database):
        """Initialize balance ledger.

        Args:
            db: Database instance
        """
        self.db = db

    def create_counterparty(self, kind: CounterpartyKind, name: str) -> int:
        """Create a vendor or client with a zero balance.

        Returns:
            Counterparty ID
        """
        if not name or not name.strip():
            raise ValidationError("Name cannot be empty")
        if CounterpartyKind(kind) == CounterpartyKind.VENDOR:
            return self.db.create_vendor(name.strip())
        return self.db.create_client(name.strip())

    def get_counterparty(
        self, kind: CounterpartyKind, counterparty_id: int, for_update: bool = False
    ) -> Counterparty:
        """Get a vendor or client or raise NotFoundError."""
        counterparty = self.db.get_counterparty(kind, counterparty_id, for_update=for_update)
        if counterparty is None:
            raise NotFoundError(counterparty_not_found(CounterpartyKind(kind).value, counterparty_id))
        return counterparty

    def adjust(
        self,
        kind: CounterpartyKind,
        counterparty_id: int,
        delta: Decimal,
        reason: str,
        source_type: Optional[str] = None,
        source_id: Optional[int] = None,
    ) -> Decimal:
        """Add a signed delta to the running balance, clamped at zero.

        A zero delta writes nothing.

        Args:
            kind: Vendor or client
            counterparty_id: Counterparty ID
            delta: Signed amount to add
            reason: Short description recorded on the balance entry
            source_type: Transaction kind that caused the adjustment
            source_id: Transaction ID that caused the adjustment

        Returns:
            The new running balance

        Raises:
            NotFoundError: If the counterparty does not exist
        """
        delta = money(delta)
        with self.db.transaction():
            counterparty = self.get_counterparty(kind, counterparty_id, for_update=True)
            if delta == 0:
                return counterparty.balance

            new_balance = counterparty.balance + delta
            if new_balance < 0:
                logger.warning(
                    "%s %s balance clamped at 0 (balance %s, delta %s, reason %s)",
                    CounterpartyKind(kind).value,
                    counterparty_id,
                    counterparty.balance,
                    delta,
                    reason,
                )
                new_balance = ZERO
            applied = new_balance - counterparty.balance

            self.db.set_counterparty_balance(kind, counterparty_id, new_balance)
            self.db.add_balance_entry(
                kind,
                counterparty_id,
                requested_delta=delta,
                applied_delta=applied,
                balance_after=new_balance,
                reason=reason,
                source_type=source_type,
                source_id=source_id,
            )
        logger.debug(
            "%s %s balance %s -> %s (%s)",
            CounterpartyKind(kind).value,
            counterparty_id,
            counterparty.balance,
            new_balance,
            reason,
        )
        return new_balance

    def derived_balance(self, kind: CounterpartyKind, counterparty_id: int) -> Decimal:
        """Balance recomputed from live transactions.

        Vendors: effective remaining over procurements, less payments made on
        account without a procurement, floored at zero. Clients: effective
        remaining over sales.
        """
        if CounterpartyKind(kind) == CounterpartyKind.VENDOR:
            outstanding = sum(
                (
                    effective_remaining(p.status, p.remaining_amount)
                    for p in self.db.list_procurements(vendor_id=counterparty_id)
                ),
                ZERO,
            )
            outstanding -= self.db.sum_unlinked_vendor_payments(counterparty_id)
            return money(max(ZERO, outstanding))

        return money(
            sum(
                (
                    effective_remaining(s.status, s.remaining_amount)
                    for s in self.db.list_sales(client_id=counterparty_id)
                ),
                ZERO,
            )
        )

    def check(self, kind: CounterpartyKind, counterparty_id: int) -> BalanceCheck:
        """Compare stored, replayed and derived balances for a counterparty."""
        counterparty = self.get_counterparty(kind, counterparty_id)
        entries = self.db.list_balance_entries(kind, counterparty_id)
        replayed = money(sum((entry.applied_delta for entry in entries), ZERO))
        derived = self.derived_balance(kind, counterparty_id)

        notes = []
        if counterparty.balance != replayed:
            notes.append(f"stored {counterparty.balance} differs from ledger replay {replayed}")
        if counterparty.balance != derived:
            notes.append(f"stored {counterparty.balance} differs from transactions {derived}")
        if any(entry.applied_delta != entry.requested_delta for entry in entries):
            notes.append("ledger contains clamped adjustments")

        return BalanceCheck(
            kind=CounterpartyKind(kind),
            counterparty_id=counterparty_id,
            stored=money(counterparty.balance),
            replayed=replayed,
            derived=derived,
            notes=notes,
        )

    def check_all(self) -> list[BalanceCheck]:
        """Check every vendor, then every client."""
        return [
            self.check(kind, counterparty.id)
            for kind in (CounterpartyKind.VENDOR, CounterpartyKind.CLIENT)
            for counterparty in self.db.list_counterparties(kind)
        ]

    def rebuild(self, kind: CounterpartyKind, counterparty_id: int) -> BalanceCheck:
        """Reset the stored balance to the derived one, recording the correction.

        The correction entry brings the ledger replay in line with the derived
        balance as well, so a rebuilt counterparty checks out consistent.

        Returns:
            Balance check after the rebuild
        """
        with self.db.transaction():
            counterparty = self.get_counterparty(kind, counterparty_id, for_update=True)
            derived = self.derived_balance(kind, counterparty_id)
            replayed = sum(
                (entry.applied_delta for entry in self.db.list_balance_entries(kind, counterparty_id)),
                ZERO,
            )
            correction = money(derived - replayed)
            if correction != 0 or counterparty.balance != derived:
                self.db.set_counterparty_balance(kind, counterparty_id, derived)
                self.db.add_balance_entry(
                    kind,
                    counterparty_id,
                    requested_delta=correction,
                    applied_delta=correction,
                    balance_after=derived,
                    reason="rebuild",
                )
                logger.info(
                    "Rebuilt %s %s balance: %s -> %s",
                    CounterpartyKind(kind).value,
                    counterparty_id,
                    counterparty.balance,
                    derived,
                )
        return self.check(kind, counterparty_id)

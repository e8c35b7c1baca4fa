"""Status transition tables for procurements and sales.

What a status change does to inventory and to the counterparty's running
balance is looked up here rather than decided by ad-hoc conditionals in the
services.

Procurement inventory follows the stock-affecting classification: only
``received`` and ``completed`` have goods physically in stock. Sale inventory
is deducted for every non-cancelled status, so only the move into or out of
``cancelled`` touches stock.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Union

from tallybook.domain.entities import ProcurementStatus, SaleStatus


class InventoryEffect(str, Enum):
    """Stock effect of a transition.

    For a procurement APPLY receives stock and REVERSE un-receives it; for a
    sale APPLY deducts stock and REVERSE restores it. REAPPLY reverses the old
    item list, then applies the new one.
    """

    NONE = "none"
    APPLY = "apply"
    REVERSE = "reverse"
    REAPPLY = "reapply"


class BalanceEffect(str, Enum):
    """Running-balance effect of a transition, in terms of remaining amount."""

    NONE = "none"
    RELEASE = "release"
    RESTORE = "restore"


@dataclass(frozen=True)
class Transition:
    inventory: InventoryEffect
    balance: BalanceEffect


STOCK_AFFECTING_PROCUREMENT = frozenset({ProcurementStatus.RECEIVED, ProcurementStatus.COMPLETED})

NO_EFFECT = Transition(InventoryEffect.NONE, BalanceEffect.NONE)


def is_stock_affecting(status: ProcurementStatus) -> bool:
    return ProcurementStatus(status) in STOCK_AFFECTING_PROCUREMENT


def _procurement_transition(old: ProcurementStatus, new: ProcurementStatus) -> Transition:
    old_in, new_in = is_stock_affecting(old), is_stock_affecting(new)
    if new_in and not old_in:
        inventory = InventoryEffect.APPLY
    elif new_in and old_in:
        inventory = InventoryEffect.REAPPLY
    elif old_in:
        inventory = InventoryEffect.REVERSE
    else:
        inventory = InventoryEffect.NONE

    cancelled = ProcurementStatus.CANCELLED
    if new == cancelled and old != cancelled:
        balance = BalanceEffect.RELEASE
    elif old == cancelled and new != cancelled:
        balance = BalanceEffect.RESTORE
    else:
        balance = BalanceEffect.NONE
    return Transition(inventory, balance)


PROCUREMENT_TRANSITIONS: dict[tuple[ProcurementStatus, ProcurementStatus], Transition] = {
    (old, new): _procurement_transition(old, new)
    for old in ProcurementStatus
    for new in ProcurementStatus
}

SALE_TRANSITIONS: dict[tuple[SaleStatus, SaleStatus], Transition] = {
    (old, new): NO_EFFECT for old in SaleStatus for new in SaleStatus
}
SALE_TRANSITIONS.update(
    {
        (SaleStatus.PENDING, SaleStatus.CANCELLED): Transition(
            InventoryEffect.REVERSE, BalanceEffect.RELEASE
        ),
        (SaleStatus.COMPLETED, SaleStatus.CANCELLED): Transition(
            InventoryEffect.REVERSE, BalanceEffect.RELEASE
        ),
        (SaleStatus.CANCELLED, SaleStatus.PENDING): Transition(
            InventoryEffect.APPLY, BalanceEffect.RESTORE
        ),
        (SaleStatus.CANCELLED, SaleStatus.COMPLETED): Transition(
            InventoryEffect.APPLY, BalanceEffect.RESTORE
        ),
    }
)


def procurement_transition(old: ProcurementStatus, new: ProcurementStatus) -> Transition:
    return PROCUREMENT_TRANSITIONS[(ProcurementStatus(old), ProcurementStatus(new))]


def sale_transition(old: SaleStatus, new: SaleStatus) -> Transition:
    return SALE_TRANSITIONS[(SaleStatus(old), SaleStatus(new))]


def effective_remaining(
    status: Union[ProcurementStatus, SaleStatus], remaining_amount: Decimal
) -> Decimal:
    """Remaining amount as seen by the running balance; zero once cancelled."""
    if status.value == "cancelled":
        return Decimal("0.00")
    return remaining_amount

"""Money rounding and derived-total calculations.

Totals are always recomputed from line items and the live paid amount;
nothing here trusts a previously stored total.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from tallybook.domain.entities import ItemType, LineItem, LineItemInput, PaymentStatus
from tallybook.domain.errors import ValidationError

TWOPLACES = Decimal("0.01")
QTY_PLACES = Decimal("0.001")
COST_PLACES = Decimal("0.0001")
ZERO = Decimal("0.00")


def money(value) -> Decimal:
    """Quantize a value to 2 decimal places, half-up."""
    return Decimal(str(value or "0")).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def quantity(value) -> Decimal:
    """Quantize a stock quantity."""
    return Decimal(str(value or "0")).quantize(QTY_PLACES, rounding=ROUND_HALF_UP)


def unit_cost(value) -> Decimal:
    """Quantize a weighted-average unit cost."""
    return Decimal(str(value or "0")).quantize(COST_PLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PaymentSummary:
    """Derived payment fields for a transaction or asset."""

    total_paid: Decimal
    remaining_amount: Decimal
    payment_status: PaymentStatus


@dataclass(frozen=True)
class TransactionTotals:
    """Derived amount fields for a procurement or sale."""

    items: tuple[LineItem, ...]
    subtotal: Decimal
    discount: Decimal
    tax_amount: Decimal
    total_amount: Decimal


def calculate_payment_status(total_amount: Decimal, total_paid: Decimal) -> PaymentSummary:
    """Derive remaining amount and payment status.

    Remaining is never negative; a fully paid transaction has zero remaining
    even when overpaid.
    """
    total = money(total_amount)
    paid = money(total_paid)
    if paid == 0:
        status = PaymentStatus.UNPAID
    elif paid >= total:
        status = PaymentStatus.FULLY_PAID
    else:
        status = PaymentStatus.PARTIALLY_PAID

    remaining = ZERO if status == PaymentStatus.FULLY_PAID else max(ZERO, total - paid)
    return PaymentSummary(total_paid=paid, remaining_amount=remaining, payment_status=status)


def build_line_items(
    items: Iterable[LineItemInput], default_type: Optional[ItemType] = None
) -> tuple[LineItem, ...]:
    """Validate caller line items and compute their amounts.

    Args:
        items: Caller-supplied line items
        default_type: Item type to use when a line item carries none. When
            given, line items with a different type are rejected.

    Raises:
        ValidationError: If the list is empty, a quantity is not positive,
            a unit price is negative, or an item type is missing or mismatched
    """
    result = []
    for item in items:
        item_type = item.item_type or default_type
        if item_type is None:
            raise ValidationError(f"Line item {item.item_id} has no item type")
        item_type = ItemType(item_type)
        if default_type is not None and item_type != default_type:
            raise ValidationError(
                f"Line item {item.item_id} is a {item_type.value}, expected {default_type.value}"
            )

        qty = quantity(item.quantity)
        price = money(item.unit_price)
        if qty <= 0:
            raise ValidationError("Quantity must be greater than 0")
        if price < 0:
            raise ValidationError("Unit price cannot be negative")

        result.append(
            LineItem(
                item_type=item_type,
                item_id=item.item_id,
                quantity=qty,
                unit_price=price,
                amount=money(qty * price),
            )
        )

    if not result:
        raise ValidationError("At least one line item is required")
    return tuple(result)


def procurement_totals(items: tuple[LineItem, ...], tax_percentage: Decimal) -> TransactionTotals:
    """Compute procurement totals: subtotal plus tax on the subtotal."""
    _check_percentage(tax_percentage)
    subtotal = money(sum((item.amount for item in items), ZERO))
    tax_amount = money(subtotal * Decimal(str(tax_percentage)) / 100)
    return TransactionTotals(
        items=items,
        subtotal=subtotal,
        discount=ZERO,
        tax_amount=tax_amount,
        total_amount=money(subtotal + tax_amount),
    )


def sale_totals(
    items: tuple[LineItem, ...], discount: Decimal, tax_percentage: Decimal
) -> TransactionTotals:
    """Compute sale totals: tax applies to the subtotal after discount."""
    _check_percentage(tax_percentage)
    subtotal = money(sum((item.amount for item in items), ZERO))
    discount = money(discount)
    if discount < 0:
        raise ValidationError("Discount cannot be negative")
    if discount > subtotal:
        raise ValidationError("Discount cannot exceed the subtotal")

    taxable = subtotal - discount
    tax_amount = money(taxable * Decimal(str(tax_percentage)) / 100)
    return TransactionTotals(
        items=items,
        subtotal=subtotal,
        discount=discount,
        tax_amount=tax_amount,
        total_amount=money(taxable + tax_amount),
    )


def _check_percentage(tax_percentage: Decimal) -> None:
    pct = Decimal(str(tax_percentage))
    if pct < 0 or pct > 100:
        raise ValidationError("Tax percentage must be between 0 and 100")

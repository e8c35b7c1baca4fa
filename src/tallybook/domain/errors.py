"""Shared domain error messages and error types."""

from decimal import Decimal


class DomainError(ValueError):
    """Base class for domain-level errors.

    Subclasses provide semantic categories while preserving ValueError
    compatibility for existing error handling.
    """


class ValidationError(DomainError):
    """Invalid input or failed validation in domain logic."""


class NotFoundError(DomainError):
    """Requested domain entity does not exist."""


class DomainRuleViolation(DomainError):
    """A business rule refused the operation before anything was written."""


class ConflictError(DomainRuleViolation):
    """Domain conflict, such as uniqueness violations."""


class RawMaterialSaleError(DomainRuleViolation):
    """Raw materials are consumed internally and cannot be sold."""


class InsufficientStockError(DomainRuleViolation):
    """Requested quantity exceeds current stock."""


class OverpaymentError(DomainRuleViolation):
    """Payment would exceed the remaining balance."""


class ConcurrencyConflictError(DomainError):
    """The underlying session reported a conflicting concurrent write.

    Callers retry the whole operation; sub-steps are not idempotent.
    """


def procurement_not_found(procurement_id: int) -> str:
    """Return message for missing procurement."""
    return f"Procurement {procurement_id} not found"


def sale_not_found(sale_id: int) -> str:
    """Return message for missing sale."""
    return f"Sale {sale_id} not found"


def payment_not_found(payment_id: int) -> str:
    """Return message for missing payment."""
    return f"Payment {payment_id} not found"


def asset_not_found(asset_id: int) -> str:
    """Return message for missing asset."""
    return f"Asset {asset_id} not found"


def counterparty_not_found(kind: str, counterparty_id: int) -> str:
    """Return message for missing vendor or client."""
    return f"{kind.capitalize()} {counterparty_id} not found"


def inventory_item_not_found(item_type: str, item_id: int) -> str:
    """Return message for missing inventory record."""
    return f"{item_type} not found: {item_id}"


def duplicate_sale_invoice(invoice_number: str) -> str:
    """Return message for duplicate sale invoice number."""
    return f"Invoice number {invoice_number} already exists"


def duplicate_procurement_invoice(invoice_number: str, vendor_id: int) -> str:
    """Return message for duplicate procurement invoice number per vendor."""
    return f"Invoice number {invoice_number} already exists for vendor {vendor_id}"


def raw_material_not_sellable(item_id: int) -> str:
    """Return message when a sale line item references a raw material."""
    return (
        f"Raw material {item_id} cannot be sold directly. "
        "Raw materials may only be consumed in production."
    )


def insufficient_stock(name: str, available: Decimal, requested: Decimal) -> str:
    """Return message for insufficient stock."""
    return f"Insufficient stock for {name}. Available: {available}, Requested: {requested}"


def nothing_remaining(entity: str, entity_id: int) -> str:
    """Return message when a transaction is already fully paid."""
    return f"{entity} {entity_id} has no remaining balance to pay"


def payment_exceeds_remaining(amount: Decimal, remaining: Decimal) -> str:
    """Return message for a payment larger than the remaining balance."""
    return f"Payment amount ({amount}) exceeds remaining balance ({remaining})"

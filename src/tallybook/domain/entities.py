"""Domain model entities for tallybook.

These are pure data classes representing business concepts, independent of
database schema. Services read these, compute, and hand plain values back to
the database layer; nothing here talks to SQLAlchemy.
"""

from dataclasses import dataclass, field
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import Any, Optional


class ItemType(str, Enum):
    """Inventory item kinds. Same shape, different provenance."""

    RAW_MATERIAL = "raw_material"
    TRADING_GOOD = "trading_good"
    FINISHED_GOOD = "finished_good"


class CounterpartyKind(str, Enum):
    """Who a running balance belongs to."""

    VENDOR = "vendor"
    CLIENT = "client"


class ProcurementStatus(str, Enum):
    ORDERED = "ordered"
    PARTIALLY_RECEIVED = "partially_received"
    RECEIVED = "received"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    RETURNED = "returned"


class SaleStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PARTIALLY_PAID = "partially_paid"
    FULLY_PAID = "fully_paid"


class PaymentMethod(str, Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    CHEQUE = "cheque"
    UPI = "upi"
    CARD = "card"
    OTHER = "other"


class TransactionType(str, Enum):
    SALE = "sale"
    PURCHASE = "purchase"
    EXPENSE = "expense"


class AccountType(str, Enum):
    RECEIVABLE = "receivable"
    PAYABLE = "payable"


class AuditAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    STATUS_CHANGE = "STATUS_CHANGE"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    STOCK_ADJUSTMENT = "STOCK_ADJUSTMENT"


@dataclass(frozen=True)
class LineItemInput:
    """A line item as supplied by the caller, before amounts are computed.

    ``item_type`` may be omitted for procurements, where it is implied by the
    procurement type.
    """

    item_id: int
    quantity: Decimal
    unit_price: Decimal
    item_type: Optional[ItemType] = None


@dataclass(frozen=True)
class LineItem:
    """A persisted line item on a procurement or sale."""

    item_type: ItemType
    item_id: int
    quantity: Decimal
    unit_price: Decimal
    amount: Decimal


@dataclass(frozen=True)
class PaymentInput:
    """Payment details supplied with a create call or an add-payment call."""

    amount: Decimal
    payment_method: PaymentMethod = PaymentMethod.CASH
    payment_date: Optional[date] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class Counterparty:
    """Vendor or client with its single running balance.

    ``balance`` is ``outstandingPayable`` for vendors and
    ``outstandingBalance`` for clients.
    """

    id: int
    kind: CounterpartyKind
    name: str
    balance: Decimal
    created_at: datetime


@dataclass(frozen=True)
class InventoryItem:
    """Raw material, trading good or finished good stock record."""

    id: int
    item_type: ItemType
    name: str
    current_stock: Decimal
    cost_price: Decimal
    last_received_at: Optional[date]
    created_at: datetime


@dataclass(frozen=True)
class CostLot:
    """One receipt of stock at a unit cost."""

    id: int
    item_type: ItemType
    item_id: int
    quantity: Decimal
    reversed_quantity: Decimal
    unit_cost: Decimal
    received_at: date
    source_type: Optional[str]
    source_id: Optional[int]

    @property
    def live_quantity(self) -> Decimal:
        return self.quantity - self.reversed_quantity


@dataclass(frozen=True)
class BomComponent:
    """Raw material consumed per unit of a finished good."""

    finished_good_id: int
    raw_material_id: int
    quantity: Decimal


@dataclass(frozen=True)
class Procurement:
    """Purchase-from-vendor transaction."""

    id: int
    procurement_type: ItemType
    vendor_id: int
    procurement_date: date
    items: tuple[LineItem, ...]
    status: ProcurementStatus
    subtotal: Decimal
    tax_percentage: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    total_paid: Decimal
    remaining_amount: Decimal
    payment_status: PaymentStatus
    invoice_number: Optional[str]
    notes: Optional[str]
    received_date: Optional[date]
    created_at: datetime


@dataclass(frozen=True)
class Sale:
    """Sale-to-client transaction."""

    id: int
    client_id: int
    invoice_number: str
    sale_date: date
    items: tuple[LineItem, ...]
    status: SaleStatus
    subtotal: Decimal
    discount: Decimal
    tax_percentage: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    total_paid: Decimal
    remaining_amount: Decimal
    payment_status: PaymentStatus
    notes: Optional[str]
    created_at: datetime


@dataclass(frozen=True)
class Payment:
    """A single payment row.

    At most one of ``sale_id``, ``procurement_id`` and ``asset_id`` is set.
    """

    id: int
    amount: Decimal
    payment_method: PaymentMethod
    payment_date: date
    transaction_type: TransactionType
    account_type: AccountType
    party_id: Optional[int]
    party_type: Optional[CounterpartyKind]
    sale_id: Optional[int]
    procurement_id: Optional[int]
    asset_id: Optional[int]
    notes: Optional[str]
    created_at: datetime


@dataclass(frozen=True)
class Asset:
    """Fixed asset whose payment status is derived from linked payments."""

    id: int
    name: str
    vendor_id: Optional[int]
    purchase_price: Decimal
    total_paid: Decimal
    remaining_amount: Decimal
    payment_status: PaymentStatus
    created_at: datetime


@dataclass(frozen=True)
class BalanceEntry:
    """Append-only record of one running-balance adjustment."""

    id: int
    counterparty_kind: CounterpartyKind
    counterparty_id: int
    requested_delta: Decimal
    applied_delta: Decimal
    balance_after: Decimal
    reason: str
    source_type: Optional[str]
    source_id: Optional[int]
    created_at: datetime


@dataclass(frozen=True)
class AuditEntry:
    """Immutable audit record. Advisory only."""

    id: int
    action: AuditAction
    entity_type: str
    entity_id: str
    details: Optional[str]
    old_value: Optional[dict[str, Any]]
    new_value: Optional[dict[str, Any]]
    performed_by: Optional[str]
    created_at: datetime


@dataclass(frozen=True)
class BalanceCheck:
    """Stored vs replayed vs derived running balance for one counterparty."""

    kind: CounterpartyKind
    counterparty_id: int
    stored: Decimal
    replayed: Decimal
    derived: Decimal
    notes: list[str] = field(default_factory=list)

    @property
    def consistent(self) -> bool:
        return self.stored == self.replayed == self.derived

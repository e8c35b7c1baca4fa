"""Abstract database interface."""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import date
from decimal import Decimal
from typing import Any, Optional, Sequence

# Import entities directly to avoid circular import through domain/__init__.py
from tallybook.domain.entities import (
    Asset,
    AuditEntry,
    BalanceEntry,
    BomComponent,
    CostLot,
    Counterparty,
    CounterpartyKind,
    InventoryItem,
    ItemType,
    LineItem,
    Payment,
    Procurement,
    Sale,
)


class Database(ABC):
    """Abstract database interface for tallybook.

    Every write commits on its own unless it runs inside ``transaction()``,
    in which case it is only flushed and the outermost scope decides.
    """

    @abstractmethod
    def connect(self) -> None:
        """Connect to the database."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the database."""
        pass

    @abstractmethod
    def initialize_schema(self) -> None:
        """Initialize database schema (create tables)."""
        pass

    @abstractmethod
    def transaction(self) -> AbstractContextManager[None]:
        """Open an atomic unit of work.

        Nested calls join the outermost scope. The outermost scope commits on
        success and rolls back every write on any exception. Commit conflicts
        surface as ConcurrencyConflictError.
        """
        pass

    # Counterparty operations
    @abstractmethod
    def create_vendor(self, name: str, outstanding_payable: Decimal = Decimal("0")) -> int:
        """Create a vendor. Returns vendor ID."""
        pass

    @abstractmethod
    def create_client(self, name: str, outstanding_balance: Decimal = Decimal("0")) -> int:
        """Create a client. Returns client ID."""
        pass

    @abstractmethod
    def get_counterparty(
        self, kind: CounterpartyKind, counterparty_id: int, for_update: bool = False
    ) -> Optional[Counterparty]:
        """Get a vendor or client, optionally locking the row."""
        pass

    @abstractmethod
    def list_counterparties(self, kind: CounterpartyKind) -> list[Counterparty]:
        """List vendors or clients ordered by ID."""
        pass

    @abstractmethod
    def set_counterparty_balance(
        self, kind: CounterpartyKind, counterparty_id: int, balance: Decimal
    ) -> None:
        """Store a new running balance."""
        pass

    @abstractmethod
    def add_balance_entry(
        self,
        kind: CounterpartyKind,
        counterparty_id: int,
        requested_delta: Decimal,
        applied_delta: Decimal,
        balance_after: Decimal,
        reason: str,
        source_type: Optional[str] = None,
        source_id: Optional[int] = None,
    ) -> int:
        """Append a balance entry. Returns entry ID."""
        pass

    @abstractmethod
    def list_balance_entries(self, kind: CounterpartyKind, counterparty_id: int) -> list[BalanceEntry]:
        """List balance entries for a counterparty in insertion order."""
        pass

    # Inventory operations
    @abstractmethod
    def create_inventory_item(
        self,
        item_type: ItemType,
        name: str,
        current_stock: Decimal = Decimal("0"),
        cost_price: Decimal = Decimal("0"),
    ) -> int:
        """Create an inventory item. Returns item ID."""
        pass

    @abstractmethod
    def get_inventory_item(self, item_type: ItemType, item_id: int) -> Optional[InventoryItem]:
        """Get inventory item by type tag and ID."""
        pass

    @abstractmethod
    def update_inventory_item(
        self,
        item_type: ItemType,
        item_id: int,
        current_stock: Optional[Decimal] = None,
        cost_price: Optional[Decimal] = None,
        last_received_at: Optional[date] = None,
    ) -> None:
        """Update stock, cost and receipt date of an inventory item."""
        pass

    @abstractmethod
    def add_cost_lot(
        self,
        item_type: ItemType,
        item_id: int,
        quantity: Decimal,
        unit_cost: Decimal,
        received_at: date,
        source_type: Optional[str] = None,
        source_id: Optional[int] = None,
    ) -> int:
        """Append a cost lot. Returns lot ID."""
        pass

    @abstractmethod
    def list_cost_lots(
        self,
        item_type: ItemType,
        item_id: int,
        source_type: Optional[str] = None,
        source_id: Optional[int] = None,
    ) -> list[CostLot]:
        """List cost lots for an item, optionally for one source transaction."""
        pass

    @abstractmethod
    def set_lot_reversed_quantity(self, lot_id: int, reversed_quantity: Decimal) -> None:
        """Record how much of a lot has been reversed."""
        pass

    @abstractmethod
    def add_bom_component(self, finished_good_id: int, raw_material_id: int, quantity: Decimal) -> int:
        """Add a raw material to a finished good's bill of materials."""
        pass

    @abstractmethod
    def list_bom_components(self, finished_good_id: int) -> list[BomComponent]:
        """List bill of materials for a finished good."""
        pass

    # Procurement operations
    @abstractmethod
    def create_procurement(
        self,
        procurement_type: ItemType,
        vendor_id: int,
        procurement_date: date,
        items: Sequence[LineItem],
        status: str,
        subtotal: Decimal,
        tax_percentage: Decimal,
        tax_amount: Decimal,
        total_amount: Decimal,
        total_paid: Decimal,
        remaining_amount: Decimal,
        payment_status: str,
        invoice_number: Optional[str] = None,
        notes: Optional[str] = None,
        received_date: Optional[date] = None,
    ) -> int:
        """Create a procurement with its line items. Returns procurement ID."""
        pass

    @abstractmethod
    def get_procurement(self, procurement_id: int) -> Optional[Procurement]:
        """Get procurement by ID."""
        pass

    @abstractmethod
    def update_procurement(self, procurement_id: int, **changes: Any) -> None:
        """Update procurement columns. An ``items`` change replaces all line items."""
        pass

    @abstractmethod
    def delete_procurement(self, procurement_id: int) -> None:
        """Delete a procurement and its line items."""
        pass

    @abstractmethod
    def procurement_invoice_exists(
        self, vendor_id: int, invoice_number: str, exclude_id: Optional[int] = None
    ) -> bool:
        """Check if a vendor already has a procurement with this invoice number."""
        pass

    @abstractmethod
    def list_procurements(self, vendor_id: Optional[int] = None) -> list[Procurement]:
        """List procurements, optionally for one vendor."""
        pass

    # Sale operations
    @abstractmethod
    def create_sale(
        self,
        client_id: int,
        invoice_number: str,
        sale_date: date,
        items: Sequence[LineItem],
        status: str,
        subtotal: Decimal,
        discount: Decimal,
        tax_percentage: Decimal,
        tax_amount: Decimal,
        total_amount: Decimal,
        total_paid: Decimal,
        remaining_amount: Decimal,
        payment_status: str,
        notes: Optional[str] = None,
    ) -> int:
        """Create a sale with its line items. Returns sale ID."""
        pass

    @abstractmethod
    def get_sale(self, sale_id: int) -> Optional[Sale]:
        """Get sale by ID."""
        pass

    @abstractmethod
    def update_sale(self, sale_id: int, **changes: Any) -> None:
        """Update sale columns. An ``items`` change replaces all line items."""
        pass

    @abstractmethod
    def delete_sale(self, sale_id: int) -> None:
        """Delete a sale and its line items."""
        pass

    @abstractmethod
    def sale_invoice_exists(self, invoice_number: str, exclude_id: Optional[int] = None) -> bool:
        """Check if a sale with this invoice number exists."""
        pass

    @abstractmethod
    def list_sales(self, client_id: Optional[int] = None) -> list[Sale]:
        """List sales, optionally for one client."""
        pass

    # Payment operations
    @abstractmethod
    def create_payment(
        self,
        amount: Decimal,
        payment_method: str,
        payment_date: date,
        transaction_type: str,
        account_type: str,
        party_id: Optional[int] = None,
        party_type: Optional[str] = None,
        sale_id: Optional[int] = None,
        procurement_id: Optional[int] = None,
        asset_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> int:
        """Create a payment. Returns payment ID."""
        pass

    @abstractmethod
    def get_payment(self, payment_id: int) -> Optional[Payment]:
        """Get payment by ID."""
        pass

    @abstractmethod
    def update_payment(
        self,
        payment_id: int,
        amount: Optional[Decimal] = None,
        payment_method: Optional[str] = None,
        payment_date: Optional[date] = None,
        notes: Optional[str] = None,
    ) -> None:
        """Update payment fields."""
        pass

    @abstractmethod
    def delete_payment(self, payment_id: int) -> None:
        """Delete a payment."""
        pass

    @abstractmethod
    def list_payments(
        self,
        sale_id: Optional[int] = None,
        procurement_id: Optional[int] = None,
        asset_id: Optional[int] = None,
    ) -> list[Payment]:
        """List payments linked to a sale, procurement or asset."""
        pass

    @abstractmethod
    def sum_payments(
        self,
        sale_id: Optional[int] = None,
        procurement_id: Optional[int] = None,
        asset_id: Optional[int] = None,
    ) -> Decimal:
        """Live sum of payment amounts linked to a sale, procurement or asset."""
        pass

    @abstractmethod
    def delete_payments(self, sale_id: Optional[int] = None, procurement_id: Optional[int] = None) -> int:
        """Delete payments linked to a sale or procurement. Returns count."""
        pass

    @abstractmethod
    def reassign_sale_payments(self, sale_id: int, client_id: int) -> int:
        """Point every payment of a sale at a new client. Returns count."""
        pass

    @abstractmethod
    def sum_unlinked_vendor_payments(self, vendor_id: int) -> Decimal:
        """Sum purchase payments to a vendor that reference no procurement or asset."""
        pass

    # Asset operations
    @abstractmethod
    def create_asset(self, name: str, purchase_price: Decimal, vendor_id: Optional[int] = None) -> int:
        """Create an asset. Returns asset ID."""
        pass

    @abstractmethod
    def get_asset(self, asset_id: int) -> Optional[Asset]:
        """Get asset by ID."""
        pass

    @abstractmethod
    def update_asset_payment(
        self, asset_id: int, total_paid: Decimal, remaining_amount: Decimal, payment_status: str
    ) -> None:
        """Store derived payment fields on an asset."""
        pass

    # Audit operations
    @abstractmethod
    def create_audit_entry(
        self,
        action: str,
        entity_type: str,
        entity_id: str,
        details: Optional[str] = None,
        old_value: Optional[dict[str, Any]] = None,
        new_value: Optional[dict[str, Any]] = None,
        performed_by: Optional[str] = None,
    ) -> int:
        """Append an audit entry inside its own savepoint. Returns entry ID."""
        pass

    @abstractmethod
    def list_audit_entries(
        self, entity_type: Optional[str] = None, entity_id: Optional[str] = None
    ) -> list[AuditEntry]:
        """List audit entries, newest first."""
        pass

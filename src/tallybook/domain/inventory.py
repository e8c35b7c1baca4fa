"""Inventory reconciler.

Applies and reverses stock and weighted-average cost changes for the line
items of a procurement or sale. Every receipt is also recorded as a cost lot
so a reversal can be traced back to the receipt it undoes.
"""

import logging
from collections import OrderedDict
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from tallybook.database.base import Database
from tallybook.domain.audit import AuditRecorder
from tallybook.domain.entities import AuditAction, InventoryItem, ItemType, LineItem
from tallybook.domain.errors import (
    InsufficientStockError,
    NotFoundError,
    ValidationError,
    inventory_item_not_found,
    insufficient_stock,
)
from tallybook.domain.totals import quantity, unit_cost

logger = logging.getLogger(__name__)

OPENING_LOT = "opening"


def _aggregate(items: Iterable[LineItem]) -> "OrderedDict[tuple[ItemType, int], Decimal]":
    """Sum quantities per inventory record, keeping first-seen order."""
    totals: OrderedDict[tuple[ItemType, int], Decimal] = OrderedDict()
    for item in items:
        key = (ItemType(item.item_type), item.item_id)
        totals[key] = totals.get(key, Decimal("0")) + item.quantity
    return totals


class InventoryReconciler:
    """Stock and cost bookkeeping for inventory items."""

    def __init__(self, db: Database, audit: Optional[AuditRecorder] = None):
        """Initialize inventory reconciler.

        Args:
            db: Database instance
            audit: Audit recorder for production runs
        """
        self.db = db
        self.audit = audit

    def get_item(self, item_type: ItemType, item_id: int) -> InventoryItem:
        """Get an inventory item or raise NotFoundError."""
        item = self.db.get_inventory_item(item_type, item_id)
        if item is None:
            raise NotFoundError(inventory_item_not_found(ItemType(item_type).value, item_id))
        return item

    def create_item(
        self,
        item_type: ItemType,
        name: str,
        current_stock: Decimal = Decimal("0"),
        cost_price: Decimal = Decimal("0"),
        received_at: Optional[date] = None,
    ) -> int:
        """Create an inventory item, recording an opening lot when it has stock.

        Returns:
            Inventory item ID

        Raises:
            ValidationError: If stock or cost is negative
        """
        stock = quantity(current_stock)
        cost = unit_cost(cost_price)
        if stock < 0 or cost < 0:
            raise ValidationError("Opening stock and cost price cannot be negative")

        with self.db.transaction():
            item_id = self.db.create_inventory_item(item_type, name, current_stock=stock, cost_price=cost)
            if stock > 0:
                self.db.add_cost_lot(
                    item_type,
                    item_id,
                    quantity=stock,
                    unit_cost=cost,
                    received_at=received_at or date.today(),
                    source_type=OPENING_LOT,
                    source_id=item_id,
                )
        return item_id

    def apply(
        self,
        items: Iterable[LineItem],
        item_type: ItemType,
        effective_date: date,
        source_type: Optional[str] = None,
        source_id: Optional[int] = None,
    ) -> None:
        """Receive line items into stock at a weighted-average cost.

        Calling this twice for the same receipt double-counts stock; callers
        decide from the transaction status whether a receipt is pending.

        Args:
            items: Line items to receive
            item_type: Inventory type the items resolve against
            effective_date: Date stamped as last received and on the cost lot
            source_type: Owning transaction kind, recorded on the cost lot
            source_id: Owning transaction ID, recorded on the cost lot

        Raises:
            NotFoundError: If an inventory item does not exist
        """
        with self.db.transaction():
            for line in items:
                item = self.get_item(item_type, line.item_id)
                new_stock = item.current_stock + line.quantity
                if new_stock > 0:
                    total_value = item.current_stock * item.cost_price + line.quantity * line.unit_price
                    new_cost = unit_cost(total_value / new_stock)
                else:
                    new_cost = unit_cost(line.unit_price)

                self.db.update_inventory_item(
                    item_type,
                    item.id,
                    current_stock=quantity(new_stock),
                    cost_price=new_cost,
                    last_received_at=effective_date,
                )
                self.db.add_cost_lot(
                    item_type,
                    item.id,
                    quantity=line.quantity,
                    unit_cost=unit_cost(line.unit_price),
                    received_at=effective_date,
                    source_type=source_type,
                    source_id=source_id,
                )
                logger.debug(
                    "Received %s x %s %s: stock %s -> %s, cost %s -> %s",
                    line.quantity,
                    ItemType(item_type).value,
                    item.id,
                    item.current_stock,
                    new_stock,
                    item.cost_price,
                    new_cost,
                )

    def reverse(
        self,
        items: Iterable[LineItem],
        item_type: ItemType,
        source_type: Optional[str] = None,
        source_id: Optional[int] = None,
    ) -> None:
        """Take received line items back out of stock.

        Stock is floored at zero. The weighted-average cost price is left
        unchanged; the source's cost lots are marked reversed instead.

        Raises:
            NotFoundError: If an inventory item does not exist
        """
        with self.db.transaction():
            for line in items:
                item = self.get_item(item_type, line.item_id)
                new_stock = item.current_stock - line.quantity
                if new_stock < 0:
                    logger.warning(
                        "Stock for %s %s floored at 0 (had %s, reversing %s)",
                        ItemType(item_type).value,
                        item.id,
                        item.current_stock,
                        line.quantity,
                    )
                    new_stock = Decimal("0")
                self.db.update_inventory_item(item_type, item.id, current_stock=quantity(new_stock))
                if source_type is not None:
                    self._reverse_lots(item_type, item.id, line.quantity, source_type, source_id)
                logger.debug(
                    "Reversed %s x %s %s: stock %s -> %s",
                    line.quantity,
                    ItemType(item_type).value,
                    item.id,
                    item.current_stock,
                    new_stock,
                )

    def _reverse_lots(
        self,
        item_type: ItemType,
        item_id: int,
        amount: Decimal,
        source_type: str,
        source_id: Optional[int],
    ) -> None:
        lots = self.db.list_cost_lots(item_type, item_id, source_type=source_type, source_id=source_id)
        outstanding = amount
        for lot in reversed(lots):
            if outstanding <= 0:
                break
            take = min(lot.live_quantity, outstanding)
            if take <= 0:
                continue
            self.db.set_lot_reversed_quantity(lot.id, lot.reversed_quantity + take)
            outstanding -= take

    def lot_average_cost(self, item_type: ItemType, item_id: int) -> Optional[Decimal]:
        """Average unit cost over the item's unreversed cost lots.

        Returns:
            Average unit cost, or None when the item has no live lots
        """
        self.get_item(item_type, item_id)
        lots = [lot for lot in self.db.list_cost_lots(item_type, item_id) if lot.live_quantity > 0]
        total_qty = sum((lot.live_quantity for lot in lots), Decimal("0"))
        if total_qty == 0:
            return None
        total_value = sum((lot.live_quantity * lot.unit_cost for lot in lots), Decimal("0"))
        return unit_cost(total_value / total_qty)

    def ensure_available(
        self, items: Iterable[LineItem], credit: Iterable[LineItem] = ()
    ) -> None:
        """Check every requested quantity against current stock.

        Args:
            items: Line items about to be deducted
            credit: Line items that will be restored first, counted as available

        Raises:
            NotFoundError: If an inventory item does not exist
            InsufficientStockError: If any item lacks stock; nothing is written
        """
        credited = _aggregate(credit)
        for (item_type, item_id), requested in _aggregate(items).items():
            item = self.get_item(item_type, item_id)
            available = item.current_stock + credited.get((item_type, item_id), Decimal("0"))
            if available < requested:
                raise InsufficientStockError(insufficient_stock(item.name, available, requested))

    def deduct(self, items: Iterable[LineItem]) -> None:
        """Deduct sold line items from stock.

        Raises:
            InsufficientStockError: If stock would go negative
        """
        items = list(items)
        with self.db.transaction():
            self.ensure_available(items)
            for (item_type, item_id), amount in _aggregate(items).items():
                item = self.get_item(item_type, item_id)
                self.db.update_inventory_item(
                    item_type, item_id, current_stock=quantity(item.current_stock - amount)
                )
                logger.debug("Deducted %s x %s %s", amount, item_type.value, item_id)

    def restore(self, items: Iterable[LineItem]) -> None:
        """Put sold line items back into stock."""
        with self.db.transaction():
            for (item_type, item_id), amount in _aggregate(items).items():
                item = self.get_item(item_type, item_id)
                self.db.update_inventory_item(
                    item_type, item_id, current_stock=quantity(item.current_stock + amount)
                )
                logger.debug("Restored %s x %s %s", amount, item_type.value, item_id)

    def add_bom_component(self, finished_good_id: int, raw_material_id: int, qty: Decimal) -> int:
        """Add a raw material to a finished good's bill of materials."""
        qty = quantity(qty)
        if qty <= 0:
            raise ValidationError("BOM quantity must be greater than 0")
        self.get_item(ItemType.FINISHED_GOOD, finished_good_id)
        self.get_item(ItemType.RAW_MATERIAL, raw_material_id)
        with self.db.transaction():
            return self.db.add_bom_component(finished_good_id, raw_material_id, qty)

    def produce(self, finished_good_id: int, qty: Decimal, actor: Optional[str] = None) -> InventoryItem:
        """Produce finished goods by consuming raw materials from the BOM.

        Args:
            finished_good_id: Finished good ID
            qty: Number of units to produce
            actor: Who performed the action, for the audit trail

        Returns:
            Updated finished good

        Raises:
            ValidationError: If qty is not positive or the BOM is empty
            NotFoundError: If the finished good or a raw material is missing
            InsufficientStockError: If a raw material lacks stock
        """
        qty = quantity(qty)
        if qty <= 0:
            raise ValidationError("Production quantity must be greater than 0")

        with self.db.transaction():
            finished_good = self.get_item(ItemType.FINISHED_GOOD, finished_good_id)
            bom = self.db.list_bom_components(finished_good_id)
            if not bom:
                raise ValidationError(f"Finished good {finished_good_id} has no bill of materials")

            consumed = [
                LineItem(
                    item_type=ItemType.RAW_MATERIAL,
                    item_id=component.raw_material_id,
                    quantity=quantity(component.quantity * qty),
                    unit_price=Decimal("0"),
                    amount=Decimal("0"),
                )
                for component in bom
            ]
            self.deduct(consumed)
            self.db.update_inventory_item(
                ItemType.FINISHED_GOOD,
                finished_good_id,
                current_stock=quantity(finished_good.current_stock + qty),
            )
            produced = self.get_item(ItemType.FINISHED_GOOD, finished_good_id)
            if self.audit is not None:
                self.audit.log(
                    AuditAction.STOCK_ADJUSTMENT,
                    ItemType.FINISHED_GOOD.value,
                    finished_good_id,
                    details=f"Produced {qty} from {len(bom)} raw material(s)",
                    old_value=finished_good,
                    new_value=produced,
                    actor=actor,
                )

        logger.info("Produced %s of finished good %s", qty, finished_good_id)
        return produced

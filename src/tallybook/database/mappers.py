"""Mapper functions to convert between domain models and SQLAlchemy models.

This layer isolates the conversion logic, so the services keep working on
frozen entities while the schema is free to change underneath.
"""

from decimal import Decimal
from typing import Optional

from tallybook.domain import entities as domain
from tallybook.database.models import (
    Asset as ORMAsset,
    AuditLog as ORMAuditLog,
    BalanceEntry as ORMBalanceEntry,
    BomComponent as ORMBomComponent,
    Client as ORMClient,
    CostLot as ORMCostLot,
    Payment as ORMPayment,
    Procurement as ORMProcurement,
    Sale as ORMSale,
    Vendor as ORMVendor,
)


def _dec(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value or 0))


def vendor_to_domain(orm_vendor: ORMVendor) -> domain.Counterparty:
    """Convert SQLAlchemy Vendor model to domain Counterparty entity."""
    return domain.Counterparty(
        id=orm_vendor.id,
        kind=domain.CounterpartyKind.VENDOR,
        name=orm_vendor.name,
        balance=_dec(orm_vendor.outstanding_payable),
        created_at=orm_vendor.created_at,
    )


def client_to_domain(orm_client: ORMClient) -> domain.Counterparty:
    """Convert SQLAlchemy Client model to domain Counterparty entity."""
    return domain.Counterparty(
        id=orm_client.id,
        kind=domain.CounterpartyKind.CLIENT,
        name=orm_client.name,
        balance=_dec(orm_client.outstanding_balance),
        created_at=orm_client.created_at,
    )


def inventory_item_to_domain(orm_item, item_type: domain.ItemType) -> domain.InventoryItem:
    """Convert any of the three inventory models to a domain InventoryItem."""
    return domain.InventoryItem(
        id=orm_item.id,
        item_type=item_type,
        name=orm_item.name,
        current_stock=_dec(orm_item.current_stock),
        cost_price=_dec(orm_item.cost_price),
        last_received_at=orm_item.last_received_at,
        created_at=orm_item.created_at,
    )


def cost_lot_to_domain(orm_lot: ORMCostLot) -> domain.CostLot:
    """Convert SQLAlchemy CostLot model to domain CostLot entity."""
    return domain.CostLot(
        id=orm_lot.id,
        item_type=domain.ItemType(orm_lot.item_type),
        item_id=orm_lot.item_id,
        quantity=_dec(orm_lot.quantity),
        reversed_quantity=_dec(orm_lot.reversed_quantity),
        unit_cost=_dec(orm_lot.unit_cost),
        received_at=orm_lot.received_at,
        source_type=orm_lot.source_type,
        source_id=orm_lot.source_id,
    )


def bom_component_to_domain(orm_component: ORMBomComponent) -> domain.BomComponent:
    """Convert SQLAlchemy BomComponent model to domain BomComponent entity."""
    return domain.BomComponent(
        finished_good_id=orm_component.finished_good_id,
        raw_material_id=orm_component.raw_material_id,
        quantity=_dec(orm_component.quantity),
    )


def line_item_to_domain(orm_item) -> domain.LineItem:
    """Convert a procurement or sale line item row to a domain LineItem."""
    return domain.LineItem(
        item_type=domain.ItemType(orm_item.item_type),
        item_id=orm_item.item_id,
        quantity=_dec(orm_item.quantity),
        unit_price=_dec(orm_item.unit_price),
        amount=_dec(orm_item.amount),
    )


def procurement_to_domain(orm_procurement: ORMProcurement) -> domain.Procurement:
    """Convert SQLAlchemy Procurement model to domain Procurement entity."""
    return domain.Procurement(
        id=orm_procurement.id,
        procurement_type=domain.ItemType(orm_procurement.procurement_type),
        vendor_id=orm_procurement.vendor_id,
        procurement_date=orm_procurement.procurement_date,
        items=tuple(line_item_to_domain(item) for item in orm_procurement.items),
        status=domain.ProcurementStatus(orm_procurement.status),
        subtotal=_dec(orm_procurement.subtotal),
        tax_percentage=_dec(orm_procurement.tax_percentage),
        tax_amount=_dec(orm_procurement.tax_amount),
        total_amount=_dec(orm_procurement.total_amount),
        total_paid=_dec(orm_procurement.total_paid),
        remaining_amount=_dec(orm_procurement.remaining_amount),
        payment_status=domain.PaymentStatus(orm_procurement.payment_status),
        invoice_number=orm_procurement.invoice_number,
        notes=orm_procurement.notes,
        received_date=orm_procurement.received_date,
        created_at=orm_procurement.created_at,
    )


def sale_to_domain(orm_sale: ORMSale) -> domain.Sale:
    """Convert SQLAlchemy Sale model to domain Sale entity."""
    return domain.Sale(
        id=orm_sale.id,
        client_id=orm_sale.client_id,
        invoice_number=orm_sale.invoice_number,
        sale_date=orm_sale.sale_date,
        items=tuple(line_item_to_domain(item) for item in orm_sale.items),
        status=domain.SaleStatus(orm_sale.status),
        subtotal=_dec(orm_sale.subtotal),
        discount=_dec(orm_sale.discount),
        tax_percentage=_dec(orm_sale.tax_percentage),
        tax_amount=_dec(orm_sale.tax_amount),
        total_amount=_dec(orm_sale.total_amount),
        total_paid=_dec(orm_sale.total_paid),
        remaining_amount=_dec(orm_sale.remaining_amount),
        payment_status=domain.PaymentStatus(orm_sale.payment_status),
        notes=orm_sale.notes,
        created_at=orm_sale.created_at,
    )


def _party_type(value: Optional[str]) -> Optional[domain.CounterpartyKind]:
    return domain.CounterpartyKind(value) if value else None


def payment_to_domain(orm_payment: ORMPayment) -> domain.Payment:
    """Convert SQLAlchemy Payment model to domain Payment entity."""
    return domain.Payment(
        id=orm_payment.id,
        amount=_dec(orm_payment.amount),
        payment_method=domain.PaymentMethod(orm_payment.payment_method),
        payment_date=orm_payment.payment_date,
        transaction_type=domain.TransactionType(orm_payment.transaction_type),
        account_type=domain.AccountType(orm_payment.account_type),
        party_id=orm_payment.party_id,
        party_type=_party_type(orm_payment.party_type),
        sale_id=orm_payment.sale_id,
        procurement_id=orm_payment.procurement_id,
        asset_id=orm_payment.asset_id,
        notes=orm_payment.notes,
        created_at=orm_payment.created_at,
    )


def asset_to_domain(orm_asset: ORMAsset) -> domain.Asset:
    """Convert SQLAlchemy Asset model to domain Asset entity."""
    return domain.Asset(
        id=orm_asset.id,
        name=orm_asset.name,
        vendor_id=orm_asset.vendor_id,
        purchase_price=_dec(orm_asset.purchase_price),
        total_paid=_dec(orm_asset.total_paid),
        remaining_amount=_dec(orm_asset.remaining_amount),
        payment_status=domain.PaymentStatus(orm_asset.payment_status),
        created_at=orm_asset.created_at,
    )


def balance_entry_to_domain(orm_entry: ORMBalanceEntry) -> domain.BalanceEntry:
    """Convert SQLAlchemy BalanceEntry model to domain BalanceEntry entity."""
    return domain.BalanceEntry(
        id=orm_entry.id,
        counterparty_kind=domain.CounterpartyKind(orm_entry.counterparty_kind),
        counterparty_id=orm_entry.counterparty_id,
        requested_delta=_dec(orm_entry.requested_delta),
        applied_delta=_dec(orm_entry.applied_delta),
        balance_after=_dec(orm_entry.balance_after),
        reason=orm_entry.reason,
        source_type=orm_entry.source_type,
        source_id=orm_entry.source_id,
        created_at=orm_entry.created_at,
    )


def audit_entry_to_domain(orm_entry: ORMAuditLog) -> domain.AuditEntry:
    """Convert SQLAlchemy AuditLog model to domain AuditEntry entity."""
    return domain.AuditEntry(
        id=orm_entry.id,
        action=domain.AuditAction(orm_entry.action),
        entity_type=orm_entry.entity_type,
        entity_id=orm_entry.entity_id,
        details=orm_entry.details,
        old_value=orm_entry.old_value,
        new_value=orm_entry.new_value,
        performed_by=orm_entry.performed_by,
        created_at=orm_entry.created_at,
    )

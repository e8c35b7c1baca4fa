"""Wire the domain services around one database."""

from dataclasses import dataclass

from tallybook.database.base import Database
from tallybook.domain.audit import AuditRecorder
from tallybook.domain.balance import BalanceLedger
from tallybook.domain.inventory import InventoryReconciler
from tallybook.domain.payment import PaymentService
from tallybook.domain.payment_reconciler import PaymentReconciler
from tallybook.domain.procurement import ProcurementService
from tallybook.domain.sale import SaleService


@dataclass(frozen=True)
class Services:
    """Service bundle sharing one set of collaborators."""

    db: Database
    inventory: InventoryReconciler
    ledger: BalanceLedger
    reconciler: PaymentReconciler
    audit: AuditRecorder
    procurements: ProcurementService
    sales: SaleService
    payments: PaymentService


def create_services(db: Database) -> Services:
    """Build every service for a database, collaborators first."""
    audit = AuditRecorder(db)
    inventory = InventoryReconciler(db, audit)
    ledger = BalanceLedger(db)
    reconciler = PaymentReconciler(db, ledger)
    return Services(
        db=db,
        inventory=inventory,
        ledger=ledger,
        reconciler=reconciler,
        audit=audit,
        procurements=ProcurementService(db, inventory, ledger, reconciler, audit),
        sales=SaleService(db, inventory, ledger, reconciler, audit),
        payments=PaymentService(db, ledger, reconciler, audit),
    )

"""Domain layer for tallybook.

Services are imported lazily: the database layer imports the entity and
error modules from this package, and the services import the database layer.
"""

_SERVICES = {
    "AuditRecorder": "tallybook.domain.audit",
    "BalanceLedger": "tallybook.domain.balance",
    "InventoryReconciler": "tallybook.domain.inventory",
    "PaymentReconciler": "tallybook.domain.payment_reconciler",
    "PaymentService": "tallybook.domain.payment",
    "ProcurementService": "tallybook.domain.procurement",
    "SaleService": "tallybook.domain.sale",
    "Services": "tallybook.domain.container",
    "create_services": "tallybook.domain.container",
}

__all__ = sorted(_SERVICES)


def __getattr__(name):
    if name in _SERVICES:
        from importlib import import_module

        return getattr(import_module(_SERVICES[name]), name)
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")

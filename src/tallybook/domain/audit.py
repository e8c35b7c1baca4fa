"""Best-effort audit trail."""

import logging
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from tallybook.database.base import Database
from tallybook.domain.entities import AuditAction, AuditEntry

logger = logging.getLogger(__name__)


def _json_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (Decimal, date, datetime)):
        return str(value)
    if isinstance(value, dict):
        return {key: _json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_value(item) for item in value]
    return value


def snapshot(entity: Any) -> Optional[dict[str, Any]]:
    """Render a domain entity (or dict) as a JSON-safe dict."""
    if entity is None:
        return None
    if is_dataclass(entity):
        entity = asdict(entity)
    return _json_value(dict(entity))


class AuditRecorder:
    """Appends audit entries without ever failing the caller."""

    def __init__(self, db: Database):
        self.db = db

    def log(
        self,
        action: AuditAction,
        entity_type: str,
        entity_id: Any,
        details: Optional[str] = None,
        old_value: Any = None,
        new_value: Any = None,
        actor: Optional[str] = None,
    ) -> Optional[int]:
        """Record an action; returns the entry ID, or None if the write failed."""
        try:
            return self.db.create_audit_entry(
                action=AuditAction(action).value,
                entity_type=entity_type,
                entity_id=str(entity_id),
                details=details,
                old_value=snapshot(old_value),
                new_value=snapshot(new_value),
                performed_by=actor,
            )
        except Exception:
            logger.exception("Failed to write audit entry: %s %s %s", action, entity_type, entity_id)
            return None

    def list_entries(
        self, entity_type: Optional[str] = None, entity_id: Optional[Any] = None
    ) -> list[AuditEntry]:
        """List audit entries, newest first."""
        return self.db.list_audit_entries(
            entity_type=entity_type, entity_id=None if entity_id is None else str(entity_id)
        )

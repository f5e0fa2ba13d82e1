"""
Audit Log Service

Best-effort audit trail: (actor, action, table, record, before/after).

Audit writes happen after the business transaction has committed and are
never allowed to fail it. Errors are logged and swallowed.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from ..models.db_models import AuditLogDB, AuditAction, AuditTable

logger = logging.getLogger(__name__)


@dataclass
class AuditContext:
    """Who did it and from where."""
    user_id: Optional[str] = None
    username: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


def audit_context_from_request(request, user=None) -> AuditContext:
    """Build an AuditContext from a FastAPI request and optional staff user."""
    client_host = request.client.host if request.client else None
    forwarded = request.headers.get("x-forwarded-for")
    ip_address = forwarded.split(",")[0].strip() if forwarded else client_host
    return AuditContext(
        user_id=getattr(user, "id", None),
        username=getattr(user, "username", None),
        ip_address=ip_address,
        user_agent=(request.headers.get("user-agent") or "")[:500] or None,
    )


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class AuditLogService:
    """Writes audit rows. Never raises."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def record(
        self,
        action: AuditAction,
        table: AuditTable,
        record_id: Optional[str],
        old_values: Optional[Dict[str, Any]] = None,
        new_values: Optional[Dict[str, Any]] = None,
        context: Optional[AuditContext] = None,
    ) -> Optional[str]:
        """
        Record one audit entry.

        Returns the audit log id, or None when the write failed.
        """
        context = context or AuditContext()
        entry = AuditLogDB(
            id=str(uuid4()),
            user_id=context.user_id,
            action=action.value,
            table_name=table.value,
            record_id=record_id or "N/A",
            old_values=_jsonable(old_values or {}),
            new_values=_jsonable(new_values or {}),
            ip_address=context.ip_address,
            user_agent=context.user_agent,
        )
        try:
            self.db.add(entry)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Failed to create audit log for {table.value}/{record_id}: {e}")
            return None
        return entry.id

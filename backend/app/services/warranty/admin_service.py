"""
Warranty Admin Service

Staff-side operations on warranty records. Callers are authenticated staff;
authorization is enforced by the router dependencies, not here.
"""
import logging
from datetime import date, timedelta
from typing import Callable, Dict, Any, List, Optional
from uuid import uuid4

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models.db_models import (
    WarrantyRegistrationDB, WarrantyStep, WarrantyStatus,
    AuditAction, AuditTable, utcnow,
)
from ..audit_log_service import AuditLogService, AuditContext
from ..notification_service import NotificationService
from .errors import (
    WarrantyNotFoundError,
    WarrantyValidationError,
    WarrantyStateConflictError,
)
from .pii_codec import PIICodec, get_pii_codec
from .serializers import authorized_view
from .warranty_window import current_status, local_today, LIFETIME_END_DATE

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 100
EXPIRING_SOON_DAYS = 30


class WarrantyAdminService:
    """Batch creation, authorized reads and maintenance of warranty records."""

    def __init__(
        self,
        db_session: Session,
        codec: Optional[PIICodec] = None,
        today: Callable[[], date] = local_today,
    ):
        self.db = db_session
        self.codec = codec or get_pii_codec()
        self.today = today
        self.audit = AuditLogService(db_session)

    def _get(self, record_id: str) -> WarrantyRegistrationDB:
        record = self.db.query(WarrantyRegistrationDB).filter(
            WarrantyRegistrationDB.id == record_id,
            WarrantyRegistrationDB.deleted_at.is_(None),
        ).first()
        if record is None:
            raise WarrantyNotFoundError()
        return record

    def batch_create(self, count: int, context: Optional[AuditContext] = None) -> List[str]:
        """
        Create `count` blank records and return their ids.

        created_at and updated_at are set to the same instant; that equality
        is what marks a record as still blank.
        """
        if count < 1 or count > MAX_BATCH_SIZE:
            raise WarrantyValidationError(
                f"Count must be between 1 and {MAX_BATCH_SIZE}", field="count"
            )

        now = utcnow()
        ids = []
        for _ in range(count):
            record_id = str(uuid4())
            self.db.add(WarrantyRegistrationDB(
                id=record_id,
                step=int(WarrantyStep.BLANK),
                created_at=now,
                updated_at=now,
            ))
            ids.append(record_id)
        self.db.commit()

        logger.info(f"Batch created {count} blank warranty records")
        self.audit.record(
            action=AuditAction.CREATE,
            table=AuditTable.WARRANTY_REGISTRATIONS,
            record_id=None,
            new_values={"count": count, "ids": ids},
            context=context,
        )
        return ids

    def get_decrypted(self, record_id: str, context: Optional[AuditContext] = None) -> Dict[str, Any]:
        """Full record with identity and phone decrypted. Every read is audited."""
        record = self._get(record_id)
        data = authorized_view(record, self.codec, today=self.today())
        self.audit.record(
            action=AuditAction.VIEW,
            table=AuditTable.WARRANTY_REGISTRATIONS,
            record_id=record_id,
            context=context,
        )
        return data

    def resend_confirmation(
        self,
        record_id: str,
        notifier: Optional[NotificationService] = None,
        context: Optional[AuditContext] = None,
    ) -> bool:
        """
        Send the patient confirmation again, synchronously.

        Only established records qualify. NotificationError propagates so the
        caller can tell staff the send failed.
        """
        record = self._get(record_id)
        if record.step != int(WarrantyStep.ESTABLISHED):
            raise WarrantyStateConflictError("Only established warranties can receive a confirmation email")
        if not record.patient_email:
            raise WarrantyValidationError("Warranty has no patient email", field="patient_email")

        notifier = notifier or NotificationService(self.db)
        sent = notifier.send_warranty_confirmation(record)
        if sent:
            self.audit.record(
                action=AuditAction.UPDATE,
                table=AuditTable.WARRANTY_REGISTRATIONS,
                record_id=record_id,
                new_values={"confirmation_email_sent": True, "resend": True},
                context=context,
            )
        return sent

    def update_expired(self, context: Optional[AuditContext] = None) -> int:
        """Mark every active record whose end date has been reached as expired."""
        today = self.today()
        updated = self.db.query(WarrantyRegistrationDB).filter(
            WarrantyRegistrationDB.status == WarrantyStatus.ACTIVE.value,
            WarrantyRegistrationDB.warranty_end_date.isnot(None),
            WarrantyRegistrationDB.warranty_end_date <= today,
            WarrantyRegistrationDB.warranty_end_date != LIFETIME_END_DATE,
            WarrantyRegistrationDB.deleted_at.is_(None),
        ).update(
            {"status": WarrantyStatus.EXPIRED.value, "updated_at": utcnow()},
            synchronize_session=False,
        )
        self.db.commit()

        logger.info(f"Marked {updated} warranties as expired")
        if updated:
            self.audit.record(
                action=AuditAction.UPDATE,
                table=AuditTable.WARRANTY_REGISTRATIONS,
                record_id=None,
                new_values={"expired_count": updated, "as_of": today},
                context=context,
            )
        return updated

    def statistics(self) -> Dict[str, int]:
        """
        Counts of non-blank records by status as it reads today.

        Stored status lags the calendar until update_expired runs, so the
        classification is derived per record rather than grouped in SQL.
        `expiring_soon` counts active records whose coverage ends within
        EXPIRING_SOON_DAYS; lifetime coverage never counts.
        """
        today = self.today()
        horizon = today + timedelta(days=EXPIRING_SOON_DAYS)
        rows = self.db.query(
            WarrantyRegistrationDB.status,
            WarrantyRegistrationDB.warranty_end_date,
        ).filter(
            WarrantyRegistrationDB.deleted_at.is_(None),
            WarrantyRegistrationDB.created_at != WarrantyRegistrationDB.updated_at,
        ).all()

        stats = {status.value: 0 for status in WarrantyStatus}
        stats["expiring_soon"] = 0
        for status, end_date in rows:
            derived = current_status(status, end_date, today)
            stats[derived.value] += 1
            if (
                derived == WarrantyStatus.ACTIVE
                and end_date is not None
                and end_date != LIFETIME_END_DATE
                and end_date <= horizon
            ):
                stats["expiring_soon"] += 1
        stats["total"] = len(rows)

        stats["blank"] = self.db.query(func.count(WarrantyRegistrationDB.id)).filter(
            WarrantyRegistrationDB.deleted_at.is_(None),
            WarrantyRegistrationDB.created_at == WarrantyRegistrationDB.updated_at,
        ).scalar() or 0
        return stats

"""
Tests for staff-side warranty maintenance.
"""
from datetime import date, timedelta
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from app.models.db_models import AuditLogDB, WarrantyRegistrationDB, WarrantyStep, utcnow
from app.services.audit_log_service import AuditContext
from app.services.notification_service import NotificationError
from app.services.warranty.admin_service import WarrantyAdminService, MAX_BATCH_SIZE
from app.services.warranty.errors import (
    WarrantyNotFoundError,
    WarrantyStateConflictError,
    WarrantyValidationError,
)
from app.services.warranty.warranty_window import LIFETIME_END_DATE


TODAY = date(2025, 6, 1)


@pytest.fixture
def admin_service(db_session, codec):
    return WarrantyAdminService(db_session, codec=codec, today=lambda: TODAY)


@pytest.fixture
def make_record(db_session, codec):
    """A record past step 0, written directly."""
    def _make(step=WarrantyStep.ESTABLISHED, status="active", end_date=date(2029, 1, 1), email="p@example.com"):
        created = utcnow()
        record = WarrantyRegistrationDB(
            id=str(uuid4()),
            step=int(step),
            patient_name="王小明",
            patient_id_encrypted=codec.encrypt("A123456789"),
            patient_phone_encrypted=codec.encrypt("0912345678"),
            patient_email=email,
            product_serial_number="1000000-005",
            surgery_date=date(2024, 1, 1),
            warranty_years=5,
            warranty_start_date=date(2024, 1, 1),
            warranty_end_date=end_date,
            status=status,
            created_at=created,
            updated_at=created + timedelta(seconds=1),
        )
        db_session.add(record)
        db_session.commit()
        return record
    return _make


class TestBatchCreate:
    """Blank records handed out with implants."""

    def test_creates_blank_records(self, admin_service, db_session):
        ids = admin_service.batch_create(3, context=AuditContext(user_id="staff-1"))

        assert len(ids) == 3
        assert len(set(ids)) == 3
        records = db_session.query(WarrantyRegistrationDB).all()
        assert all(r.step == 0 for r in records)
        assert all(r.is_blank for r in records)
        assert all(r.status is None for r in records)

        audit = db_session.query(AuditLogDB).filter(AuditLogDB.action == "CREATE").one()
        assert audit.user_id == "staff-1"
        assert audit.new_values["count"] == 3

    @pytest.mark.parametrize("count", [0, -1, MAX_BATCH_SIZE + 1])
    def test_count_bounds(self, admin_service, count):
        with pytest.raises(WarrantyValidationError) as exc:
            admin_service.batch_create(count)
        assert exc.value.field == "count"

    def test_upper_bound_allowed(self, admin_service):
        assert len(admin_service.batch_create(MAX_BATCH_SIZE)) == MAX_BATCH_SIZE


class TestAuthorizedRead:
    """Decrypted view for staff."""

    def test_decrypts_pii(self, admin_service, make_record, db_session):
        record = make_record()

        view = admin_service.get_decrypted(record.id, context=AuditContext(user_id="staff-1"))

        assert view["patient_id"] == "A123456789"
        assert view["patient_phone"] == "0912345678"
        assert view["current_status"] == "active"
        assert view["is_lifetime"] is False

        audit = db_session.query(AuditLogDB).filter(AuditLogDB.action == "VIEW").one()
        assert audit.record_id == record.id

    def test_status_read_as_of_today(self, admin_service, make_record):
        record = make_record(end_date=date(2025, 1, 1))
        assert admin_service.get_decrypted(record.id)["current_status"] == "expired"

    def test_unknown_record(self, admin_service):
        with pytest.raises(WarrantyNotFoundError):
            admin_service.get_decrypted("missing")


class TestResendConfirmation:
    """Manual re-send of the patient email."""

    def test_resend(self, admin_service, make_record):
        record = make_record()
        notifier = MagicMock()
        notifier.send_warranty_confirmation.return_value = True

        assert admin_service.resend_confirmation(record.id, notifier=notifier) is True
        notifier.send_warranty_confirmation.assert_called_once()

    def test_not_established(self, admin_service, make_record):
        record = make_record(step=WarrantyStep.PATIENT_INFO_FILLED, status=None)
        with pytest.raises(WarrantyStateConflictError):
            admin_service.resend_confirmation(record.id, notifier=MagicMock())

    def test_no_email(self, admin_service, make_record):
        record = make_record(email=None)
        with pytest.raises(WarrantyValidationError):
            admin_service.resend_confirmation(record.id, notifier=MagicMock())

    def test_provider_failure_propagates(self, admin_service, make_record):
        record = make_record()
        notifier = MagicMock()
        notifier.send_warranty_confirmation.side_effect = NotificationError("503")

        with pytest.raises(NotificationError):
            admin_service.resend_confirmation(record.id, notifier=notifier)


class TestUpdateExpired:
    """Stored status catches up with the calendar."""

    def test_marks_reached_end_dates_only(self, admin_service, make_record, db_session):
        past = make_record(end_date=date(2025, 5, 31))
        ends_today = make_record(end_date=TODAY)
        tomorrow = make_record(end_date=date(2025, 6, 2))
        future = make_record(end_date=date(2029, 1, 1))
        lifetime = make_record(end_date=LIFETIME_END_DATE)
        cancelled = make_record(status="cancelled", end_date=date(2020, 1, 1))

        assert admin_service.update_expired() == 2

        db_session.expire_all()
        assert db_session.get(WarrantyRegistrationDB, past.id).status == "expired"
        assert db_session.get(WarrantyRegistrationDB, ends_today.id).status == "expired"
        assert db_session.get(WarrantyRegistrationDB, tomorrow.id).status == "active"
        assert db_session.get(WarrantyRegistrationDB, future.id).status == "active"
        assert db_session.get(WarrantyRegistrationDB, lifetime.id).status == "active"
        assert db_session.get(WarrantyRegistrationDB, cancelled.id).status == "cancelled"

    def test_nothing_to_do(self, admin_service):
        assert admin_service.update_expired() == 0


class TestStatistics:
    """Counts by current status; blank records counted apart."""

    def test_counts(self, admin_service, make_record, make_blank):
        make_blank()
        make_blank()
        make_record()
        make_record(end_date=date(2025, 1, 1))
        make_record(status="cancelled")
        make_record(step=WarrantyStep.SERIAL_VERIFIED, status=None)

        stats = admin_service.statistics()

        assert stats["total"] == 4
        assert stats["active"] == 1
        assert stats["expired"] == 1
        assert stats["cancelled"] == 1
        assert stats["unset"] == 1
        assert stats["blank"] == 2

    def test_expiring_soon(self, admin_service, make_record):
        make_record(end_date=date(2025, 6, 15))
        make_record(end_date=date(2025, 7, 1))  # 30 days out
        make_record(end_date=date(2025, 7, 2))
        make_record(end_date=LIFETIME_END_DATE)
        make_record(end_date=date(2025, 5, 1))
        make_record(end_date=TODAY)
        make_record(status="cancelled", end_date=date(2025, 6, 10))

        stats = admin_service.statistics()

        assert stats["expiring_soon"] == 2
        assert stats["active"] == 4
        assert stats["expired"] == 2

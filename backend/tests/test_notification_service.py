"""
Tests for establishment notifications (Mailgun).

Delivery problems are logged and swallowed in the patient flow; they never
undo an established warranty.
"""
from datetime import date
from unittest.mock import MagicMock, patch
from uuid import uuid4

import httpx
import pytest

from app.models.db_models import WarrantyRegistrationDB, WarrantyStep
from app.services.notification_service import (
    MailgunClient,
    NotificationError,
    NotificationService,
    dispatch_establishment_notifications,
)
from app.services.warranty.warranty_window import LIFETIME_END_DATE


@pytest.fixture
def established(db_session):
    record = WarrantyRegistrationDB(
        id=str(uuid4()),
        step=int(WarrantyStep.ESTABLISHED),
        patient_name="王小明",
        patient_email="patient@example.com",
        hospital_name="Taipei General",
        doctor_name="Dr. Lin",
        product_serial_number="1000000-005",
        serial_number_2="1000000-099",
        surgery_date=date(2024, 1, 1),
        warranty_years=5,
        warranty_start_date=date(2024, 1, 1),
        warranty_end_date=date(2029, 1, 1),
        status="active",
    )
    db_session.add(record)
    db_session.commit()
    return record


@pytest.fixture
def mailer():
    mock_mailer = MagicMock()
    mock_mailer.configured = True
    return mock_mailer


class TestMailgunClient:
    """HTTP call shape and failure mapping."""

    def _client_patch(self, response=None, error=None):
        http_client = MagicMock()
        if error is not None:
            http_client.post.side_effect = error
        else:
            http_client.post.return_value = response
        client_cls = MagicMock()
        client_cls.return_value.__enter__.return_value = http_client
        return client_cls, http_client

    def test_configured(self):
        assert MailgunClient(domain="mg.example.com", api_key="key").configured is True
        assert MailgunClient(domain="", api_key="key").configured is False

    def test_posts_to_messages_endpoint(self):
        client_cls, http_client = self._client_patch(response=MagicMock(status_code=200))
        mailgun = MailgunClient(domain="mg.example.com", api_key="key", base_url="https://api.mailgun.net/v3/")

        with patch("app.services.notification_service.httpx.Client", client_cls):
            mailgun.send("patient@example.com", "Subject", "Body")

        args, kwargs = http_client.post.call_args
        assert args[0] == "https://api.mailgun.net/v3/mg.example.com/messages"
        assert kwargs["auth"] == ("api", "key")
        assert kwargs["data"]["to"] == "patient@example.com"

    def test_non_2xx_raises(self):
        client_cls, _ = self._client_patch(response=MagicMock(status_code=401))
        mailgun = MailgunClient(domain="mg.example.com", api_key="bad")

        with patch("app.services.notification_service.httpx.Client", client_cls):
            with pytest.raises(NotificationError):
                mailgun.send("patient@example.com", "Subject", "Body")

    def test_transport_error_raises(self):
        client_cls, _ = self._client_patch(error=httpx.ConnectError("refused"))
        mailgun = MailgunClient(domain="mg.example.com", api_key="key")

        with patch("app.services.notification_service.httpx.Client", client_cls):
            with pytest.raises(NotificationError):
                mailgun.send("patient@example.com", "Subject", "Body")


class TestWarrantyConfirmation:
    """Patient email and sent flags."""

    def test_sends_and_flags(self, db_session, established, mailer):
        service = NotificationService(db_session, mailer=mailer)

        assert service.send_warranty_confirmation(established) is True

        to, subject, body = mailer.send.call_args[0]
        assert to == "patient@example.com"
        assert "王小明" in subject
        assert "1000000-005, 1000000-099" in body
        assert "2029-01-01" in body

        db_session.expire_all()
        stored = db_session.get(WarrantyRegistrationDB, established.id)
        assert stored.confirmation_email_sent is True
        assert stored.email_sent_at is not None

    def test_lifetime_wording(self, db_session, established, mailer):
        established.warranty_end_date = LIFETIME_END_DATE
        db_session.commit()

        NotificationService(db_session, mailer=mailer).send_warranty_confirmation(established)

        assert "Lifetime" in mailer.send.call_args[0][2]

    def test_not_configured(self, db_session, established):
        mailer = MagicMock()
        mailer.configured = False

        assert NotificationService(db_session, mailer=mailer).send_warranty_confirmation(established) is False
        mailer.send.assert_not_called()

    def test_no_email(self, db_session, established, mailer):
        established.patient_email = None
        db_session.commit()

        assert NotificationService(db_session, mailer=mailer).send_warranty_confirmation(established) is False
        mailer.send.assert_not_called()

    def test_provider_failure_leaves_flag(self, db_session, established, mailer):
        mailer.send.side_effect = NotificationError("Mailgun responded 500")

        with pytest.raises(NotificationError):
            NotificationService(db_session, mailer=mailer).send_warranty_confirmation(established)

        db_session.expire_all()
        assert db_session.get(WarrantyRegistrationDB, established.id).confirmation_email_sent is False


class TestDispatch:
    """Background task entry point."""

    def test_sends_both(self, session_factory, established, mailer):
        with patch("app.services.notification_service.COMPANY_NOTIFICATION_EMAIL", "ops@example.com"):
            dispatch_establishment_notifications(established.id, session_factory, mailer=mailer)

        recipients = [c[0][0] for c in mailer.send.call_args_list]
        assert recipients == ["patient@example.com", "ops@example.com"]

    def test_patient_failure_still_notifies_company(self, session_factory, established, mailer):
        mailer.send.side_effect = [NotificationError("boom"), None]

        with patch("app.services.notification_service.COMPANY_NOTIFICATION_EMAIL", "ops@example.com"):
            dispatch_establishment_notifications(established.id, session_factory, mailer=mailer)

        assert mailer.send.call_count == 2

    def test_unknown_record_swallowed(self, session_factory, mailer):
        dispatch_establishment_notifications("missing", session_factory, mailer=mailer)
        mailer.send.assert_not_called()

    def test_unexpected_error_swallowed(self, mailer):
        broken_factory = MagicMock()
        broken_factory.return_value.query.side_effect = RuntimeError("db down")

        dispatch_establishment_notifications("abc", broken_factory, mailer=mailer)

        broken_factory.return_value.close.assert_called_once()

"""
Notification Service

Sends the patient confirmation and the company notice when a warranty is
established, through the Mailgun HTTP API.

Patient-flow sends run as background tasks after the response is written;
a failure is logged and never reaches the patient. Nothing is retried here.
"""
import logging
from typing import Callable, Optional

import httpx
from sqlalchemy.orm import Session

from ..config import (
    MAILGUN_DOMAIN, MAILGUN_API_KEY, MAILGUN_FROM_EMAIL, MAILGUN_BASE_URL,
    NOTIFICATION_TIMEOUT_SEC, COMPANY_NAME, COMPANY_NOTIFICATION_EMAIL,
    EMAIL_TEMPLATE_SUBJECT, EMAIL_SENDER_NAME,
)
from ..models.db_models import WarrantyRegistrationDB, utcnow
from .warranty.warranty_window import LIFETIME_END_DATE

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    """Raised when the mail provider rejects or cannot be reached."""
    pass


class MailgunClient:
    """Minimal Mailgun messages API client."""

    def __init__(
        self,
        domain: str = MAILGUN_DOMAIN,
        api_key: str = MAILGUN_API_KEY,
        from_email: str = MAILGUN_FROM_EMAIL,
        base_url: str = MAILGUN_BASE_URL,
        timeout: float = NOTIFICATION_TIMEOUT_SEC,
    ):
        self.domain = domain
        self.api_key = api_key
        self.from_email = from_email
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.domain and self.api_key)

    def send(self, to: str, subject: str, text: str) -> None:
        data = {
            "from": f"{EMAIL_SENDER_NAME} <{self.from_email}>",
            "to": to,
            "subject": subject,
            "text": text,
        }
        try:
            with httpx.Client(timeout=self.timeout) as client:
                resp = client.post(
                    f"{self.base_url}/{self.domain}/messages",
                    auth=("api", self.api_key),
                    data=data,
                )
        except httpx.HTTPError as e:
            raise NotificationError(f"Mailgun request failed: {e}") from e

        if not 200 <= resp.status_code < 300:
            raise NotificationError(f"Mailgun responded {resp.status_code}")


def _format_end_date(record: WarrantyRegistrationDB) -> str:
    if record.warranty_end_date is None:
        return "-"
    if record.warranty_end_date == LIFETIME_END_DATE:
        return "Lifetime"
    return record.warranty_end_date.isoformat()


def _summary_lines(record: WarrantyRegistrationDB) -> list:
    serials = record.product_serial_number or "-"
    if record.serial_number_2:
        serials = f"{serials}, {record.serial_number_2}"
    return [
        f"Warranty ID: {record.id}",
        f"Serial number(s): {serials}",
        f"Hospital: {record.hospital_name or '-'}",
        f"Doctor: {record.doctor_name or '-'}",
        f"Surgery date: {record.surgery_date.isoformat() if record.surgery_date else '-'}",
        f"Warranty start: {record.warranty_start_date.isoformat() if record.warranty_start_date else '-'}",
        f"Warranty end: {_format_end_date(record)}",
    ]


class NotificationService:
    """Patient confirmation and company notice for established warranties."""

    def __init__(self, db_session: Session, mailer: Optional[MailgunClient] = None):
        self.db = db_session
        self.mailer = mailer or MailgunClient()

    def send_warranty_confirmation(self, record: WarrantyRegistrationDB) -> bool:
        """
        Email the patient and flag the record.

        Returns False when mail is not configured or the record has no email.
        Raises NotificationError when the provider fails.
        """
        if not self.mailer.configured:
            logger.warning("Mailgun not configured, skipping email sending")
            return False
        if not record.patient_email:
            logger.warning(f"Warranty {record.id} has no patient email, skipping confirmation")
            return False

        subject = (
            EMAIL_TEMPLATE_SUBJECT
            .replace("{patient_name}", record.patient_name or "")
            .replace("{company_name}", COMPANY_NAME)
        )
        body = "\n".join(
            [f"Dear {record.patient_name or 'patient'},", "", "Your implant warranty has been registered.", ""]
            + _summary_lines(record)
            + ["", COMPANY_NAME]
        )
        self.mailer.send(record.patient_email, subject, body)

        record.confirmation_email_sent = True
        record.email_sent_at = utcnow()
        try:
            self.db.commit()
        except Exception as e:
            # The email already went out
            self.db.rollback()
            logger.error(f"Failed to update email sent status for warranty {record.id}: {e}")

        logger.info(f"Warranty confirmation email sent for {record.id}")
        return True

    def send_company_notice(self, record: WarrantyRegistrationDB) -> bool:
        if not self.mailer.configured or not COMPANY_NOTIFICATION_EMAIL:
            logger.warning("Company notification not configured, skipping")
            return False

        subject = f"New warranty registration - {record.patient_name or record.id}"
        body = "\n".join(["A new warranty registration was established.", ""] + _summary_lines(record))
        self.mailer.send(COMPANY_NOTIFICATION_EMAIL, subject, body)
        return True


def dispatch_establishment_notifications(
    warranty_id: str,
    session_factory: Callable[[], Session],
    mailer: Optional[MailgunClient] = None,
) -> None:
    """
    Background task: confirmation to the patient, then notice to the company.

    Owns its session. Every failure is logged and swallowed.
    """
    db = session_factory()
    try:
        record = db.query(WarrantyRegistrationDB).filter(WarrantyRegistrationDB.id == warranty_id).first()
        if record is None:
            logger.error(f"Notification skipped, warranty {warranty_id} not found")
            return

        service = NotificationService(db, mailer=mailer)
        try:
            service.send_warranty_confirmation(record)
        except NotificationError as e:
            logger.error(f"Failed to send warranty confirmation email for {warranty_id}: {e}")

        try:
            service.send_company_notice(record)
        except NotificationError as e:
            logger.error(f"Failed to send company notification email for {warranty_id}: {e}")
    except Exception:
        logger.exception(f"Notification dispatch failed for warranty {warranty_id}")
    finally:
        db.close()

"""
Warranty record serialization.

Three views of one row:
- audit snapshot: no PII values at all, only whether they are set
- patient view: what the registering patient may see mid-flow, no PII
- authorized view: everything, identity and phone decrypted
"""
from datetime import date
from typing import Any, Dict, Optional

from ...models.db_models import WarrantyRegistrationDB
from .pii_codec import PIICodec
from .warranty_window import current_status, LIFETIME_END_DATE

_BASE_FIELDS = (
    "id",
    "step",
    "patient_name",
    "patient_birth_date",
    "patient_email",
    "hospital_name",
    "doctor_name",
    "surgery_date",
    "product_id",
    "product_id_2",
    "product_serial_number",
    "serial_number_2",
    "warranty_years",
    "warranty_start_date",
    "warranty_end_date",
    "status",
    "confirmation_email_sent",
    "email_sent_at",
    "created_at",
    "updated_at",
)


def _fmt(value: Any) -> Any:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


def warranty_snapshot(record: WarrantyRegistrationDB) -> Dict[str, Any]:
    """Audit before/after image."""
    snapshot = {name: _fmt(getattr(record, name)) for name in _BASE_FIELDS}
    snapshot["patient_id_set"] = bool(record.patient_id_encrypted)
    snapshot["patient_phone_set"] = bool(record.patient_phone_encrypted)
    return snapshot


def patient_view(record: WarrantyRegistrationDB) -> Dict[str, Any]:
    """Record as shown to the patient during registration."""
    data = {name: _fmt(getattr(record, name)) for name in _BASE_FIELDS}
    data["is_lifetime"] = record.warranty_end_date == LIFETIME_END_DATE
    return data


def authorized_view(
    record: WarrantyRegistrationDB,
    codec: PIICodec,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """Full record for staff, PII decrypted."""
    data = patient_view(record)
    data["patient_id"] = codec.decrypt_optional(record.patient_id_encrypted)
    data["patient_phone"] = codec.decrypt_optional(record.patient_phone_encrypted)
    if today is not None:
        data["current_status"] = current_status(record.status, record.warranty_end_date, today).value
    return data

"""
Warranty Registration Service

Orchestrates one patient registration request:
state machine check → serial validation → warranty window → PII encryption
→ conditional write → binding token → audit → (on confirm) notifications.

AUTHORITY MODEL:
- The patient never authenticates. Steps after the first are authorized
  only by the device-binding token issued at the previous step.
- The record id is not a secret. Possession of the token is.

Preconditions are all checked before the first write. The write itself
repeats the step check so a concurrent request that got there first turns
this one into a state conflict instead of an overwrite.
"""
import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, Any, Optional, Type

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models.db_models import (
    WarrantyRegistrationDB, SerialBindingDB, WarrantyStep, WarrantyStatus,
    AuditAction, AuditTable, NO_WARRANTY_YEARS, utcnow,
)
from ..audit_log_service import AuditLogService, AuditContext
from .binding_token import DeviceBindingToken
from .errors import (
    WarrantyNotFoundError,
    WarrantyStateConflictError,
    DuplicateSerialError,
    SurgeryDateInFutureError,
    SerialAlreadyUsedError,
    InvalidIdentityNumberError,
    BindingForbiddenError,
    WarrantyError,
    WarrantyValidationError,
)
from .pii_codec import PIICodec, get_pii_codec
from .serial_validator import SerialValidator
from .serializers import warranty_snapshot, patient_view
from .state_machine import RegistrationStateMachine
from .validators import is_valid_taiwan_id, sanitize_text
from .warranty_window import resolve_warranty_years, compute_end_date, local_today

logger = logging.getLogger(__name__)

# Minimum length of name, hospital and doctor once sanitized
MIN_TEXT_LENGTH = 2


@dataclass
class PatientInfo:
    """Step-2 payload. Field formats are validated at the HTTP boundary."""
    patient_name: str
    patient_id: str
    is_local_identity: bool
    patient_birth_date: date
    patient_phone: str
    patient_email: str
    hospital_name: str
    doctor_name: str


@dataclass
class TransitionResult:
    record: WarrantyRegistrationDB
    step: WarrantyStep
    binding_token: Optional[str] = None


@dataclass
class SerialAvailability:
    exists: bool
    product_id: Optional[str]


class WarrantyRegistrationService:
    """Patient-facing registration workflow."""

    def __init__(
        self,
        db_session: Session,
        codec: Optional[PIICodec] = None,
        binding: Optional[DeviceBindingToken] = None,
        today: Callable[[], date] = local_today,
    ):
        self.db = db_session
        self.codec = codec or get_pii_codec()
        self.binding = binding or DeviceBindingToken()
        self.today = today
        self.state_machine = RegistrationStateMachine()
        self.serials = SerialValidator(db_session)
        self.audit = AuditLogService(db_session)

    # =========================================================================
    # READS
    # =========================================================================

    def get_record(self, record_id: str) -> WarrantyRegistrationDB:
        record = self.db.query(WarrantyRegistrationDB).filter(
            WarrantyRegistrationDB.id == record_id,
            WarrantyRegistrationDB.deleted_at.is_(None),
        ).first()
        if record is None:
            raise WarrantyNotFoundError()
        return record

    def get_step(self, record_id: str) -> WarrantyStep:
        """Current step, read-only."""
        return self.state_machine.to_step(self.get_record(record_id).step)

    def get_in_progress(self, record_id: str) -> Dict[str, Any]:
        """Patient view of a record still being filled (steps 1 and 2)."""
        record = self.get_record(record_id)
        if record.step not in self.state_machine.steps_for("fill_patient_info"):
            raise self.state_machine.error_for("fill_patient_info")()
        return patient_view(record)

    def check_serial(self, record_id: str, serial_number: str) -> SerialAvailability:
        """
        Pre-flight availability check for the step-1 form.

        Only answers for records that have not verified serials yet, so the
        endpoint cannot be used to enumerate inventory through finished records.
        """
        if self.get_step(record_id) >= WarrantyStep.SERIAL_VERIFIED:
            raise BindingForbiddenError()

        serial_number = sanitize_text(serial_number)
        self.serials.check_format(serial_number, field="serial_number")

        product = self.serials.lookup_product(serial_number)
        if product is None or not product.is_active or product.deleted_at is not None:
            logger.info(f"Serial check rejected for {serial_number}")
            raise BindingForbiddenError()

        exists = self.serials.is_in_use(serial_number)
        return SerialAvailability(exists=exists, product_id=None if exists else product.id)

    # =========================================================================
    # STEP 1: BLANK → SERIAL_VERIFIED | VERIFIED_WITHOUT_WARRANTY
    # =========================================================================

    def register_serials(
        self,
        record_id: str,
        serial_number: str,
        serial_number_2: Optional[str],
        surgery_date: date,
        context: Optional[AuditContext] = None,
    ) -> TransitionResult:
        record = self.get_record(record_id)
        from_step = self.state_machine.require("register_serials", record.step, WarrantyStep.SERIAL_VERIFIED)

        if surgery_date > self.today():
            raise SurgeryDateInFutureError(field="surgery_date")

        serial_number = sanitize_text(serial_number)
        serial_number_2 = sanitize_text(serial_number_2) or None

        # Format before any lookup
        self.serials.check_format(serial_number, field="product_serial_number")
        if serial_number_2 is not None:
            self.serials.check_format(serial_number_2, field="product_serial_number_2")
            if serial_number_2 == serial_number:
                raise DuplicateSerialError(field="product_serial_number_2")

        first = self.serials.validate(serial_number, field="product_serial_number")
        second = None
        if serial_number_2 is not None:
            second = self.serials.validate(serial_number_2, field="product_serial_number_2")

        years = resolve_warranty_years(
            first.warranty_years, second.warranty_years if second else None
        )
        to_step = (
            WarrantyStep.VERIFIED_WITHOUT_WARRANTY if years == NO_WARRANTY_YEARS
            else WarrantyStep.SERIAL_VERIFIED
        )
        allowed, reason = self.state_machine.can_transition(from_step, to_step)
        if not allowed:
            raise WarrantyStateConflictError(reason)

        before = warranty_snapshot(record)
        values = {
            "step": int(to_step),
            "surgery_date": surgery_date,
            "product_id": first.product_id,
            "product_id_2": second.product_id if second else None,
            "product_serial_number": serial_number,
            "serial_number_2": serial_number_2,
            "warranty_years": years,
            "warranty_start_date": surgery_date,
            "warranty_end_date": compute_end_date(surgery_date, years),
        }

        try:
            self._conditional_update(record_id, from_step, values, self.state_machine.error_for("register_serials"))
            self.db.add(SerialBindingDB(serial_number=serial_number, warranty_id=record_id, slot=1))
            if serial_number_2 is not None:
                self.db.add(SerialBindingDB(serial_number=serial_number_2, warranty_id=record_id, slot=2))
            self.db.flush()
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            field = "product_serial_number"
            if serial_number_2 is not None and not self.serials.is_in_use(serial_number, exclude_warranty_id=record_id):
                field = "product_serial_number_2"
            logger.info(f"Serial binding lost race for warranty {record_id}")
            raise SerialAlreadyUsedError(field=field)
        except WarrantyError:
            self.db.rollback()
            raise

        self.db.refresh(record)
        logger.info(f"Warranty {record_id} moved {from_step.name} -> {to_step.name} ({years} years)")
        self._audit(record_id, before, record, context)

        token = None
        if self.state_machine.requires_binding(to_step):
            token = self.binding.issue(record_id, to_step)
        return TransitionResult(record=record, step=to_step, binding_token=token)

    # =========================================================================
    # STEP 2: SERIAL_VERIFIED | PATIENT_INFO_FILLED → PATIENT_INFO_FILLED
    # =========================================================================

    def fill_patient_info(
        self,
        record_id: str,
        info: PatientInfo,
        context: Optional[AuditContext] = None,
    ) -> TransitionResult:
        record = self.get_record(record_id)
        to_step = WarrantyStep.PATIENT_INFO_FILLED
        from_step = self.state_machine.require("fill_patient_info", record.step, to_step)

        texts = {
            name: sanitize_text(getattr(info, name)) or ""
            for name in ("patient_name", "hospital_name", "doctor_name")
        }
        for name, value in texts.items():
            if len(value) < MIN_TEXT_LENGTH:
                raise WarrantyValidationError(
                    f"Must be at least {MIN_TEXT_LENGTH} characters", field=name
                )

        patient_id = sanitize_text(info.patient_id)
        if info.is_local_identity and not is_valid_taiwan_id(patient_id):
            raise InvalidIdentityNumberError(field="patient_id")

        before = warranty_snapshot(record)
        values = {
            "step": int(to_step),
            "patient_name": texts["patient_name"],
            "patient_id_encrypted": self.codec.encrypt(patient_id.upper() if info.is_local_identity else patient_id),
            "patient_birth_date": info.patient_birth_date,
            "patient_phone_encrypted": self.codec.encrypt(sanitize_text(info.patient_phone)),
            "patient_email": sanitize_text(info.patient_email),
            "hospital_name": texts["hospital_name"],
            "doctor_name": texts["doctor_name"],
        }

        try:
            self._conditional_update(record_id, from_step, values, self.state_machine.error_for("fill_patient_info"))
            self.db.commit()
        except WarrantyError:
            self.db.rollback()
            raise

        self.db.refresh(record)
        logger.info(f"Warranty {record_id} patient info filled (from {from_step.name})")
        self._audit(record_id, before, record, context)

        return TransitionResult(record=record, step=to_step, binding_token=self.binding.issue(record_id, to_step))

    # =========================================================================
    # STEP 3: PATIENT_INFO_FILLED → ESTABLISHED
    # =========================================================================

    def confirm(
        self,
        record_id: str,
        context: Optional[AuditContext] = None,
        notify: Optional[Callable[[str], None]] = None,
    ) -> TransitionResult:
        """
        Establish the warranty.

        `notify` receives the record id once the write has committed; it is
        expected to hand the work off (e.g. BackgroundTasks.add_task) rather
        than send inline.
        """
        record = self.get_record(record_id)
        to_step = WarrantyStep.ESTABLISHED
        from_step = self.state_machine.require("confirm", record.step, to_step)

        before = warranty_snapshot(record)
        values = {"step": int(to_step), "status": WarrantyStatus.ACTIVE.value}

        try:
            self._conditional_update(record_id, from_step, values, self.state_machine.error_for("confirm"))
            self.db.commit()
        except WarrantyError:
            self.db.rollback()
            raise

        self.db.refresh(record)
        logger.info(f"Warranty {record_id} established")
        self._audit(record_id, before, record, context)

        if notify is not None:
            try:
                notify(record_id)
            except Exception as e:
                logger.error(f"Failed to schedule notifications for warranty {record_id}: {e}")

        return TransitionResult(record=record, step=to_step, binding_token=None)

    # =========================================================================
    # BINDING
    # =========================================================================

    def verify_binding(self, token: Optional[str], record_id: str, action: str) -> None:
        """Raise BindingForbiddenError unless `token` proves a step `action` starts from."""
        if not self.binding.verify(token, record_id, self.state_machine.steps_for(action)):
            raise BindingForbiddenError()

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _conditional_update(
        self,
        record_id: str,
        expected_step: WarrantyStep,
        values: Dict[str, Any],
        conflict_error: Type[WarrantyStateConflictError],
    ) -> None:
        """UPDATE ... WHERE id = :id AND step = :expected; zero rows is a conflict."""
        values = dict(values, updated_at=utcnow())
        rowcount = self.db.query(WarrantyRegistrationDB).filter(
            WarrantyRegistrationDB.id == record_id,
            WarrantyRegistrationDB.step == int(expected_step),
            WarrantyRegistrationDB.deleted_at.is_(None),
        ).update(values, synchronize_session=False)
        if rowcount != 1:
            logger.info(f"Warranty {record_id} left step {expected_step.name} before write")
            raise conflict_error()

    def _audit(
        self,
        record_id: str,
        before: Dict[str, Any],
        record: WarrantyRegistrationDB,
        context: Optional[AuditContext],
    ) -> None:
        self.audit.record(
            action=AuditAction.UPDATE,
            table=AuditTable.WARRANTY_REGISTRATIONS,
            record_id=record_id,
            old_values=before,
            new_values=warranty_snapshot(record),
            context=context,
        )

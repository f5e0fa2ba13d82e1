"""
Implant Warranty - Registration Workflow

Patient registration:
    BLANK → SERIAL_VERIFIED → PATIENT_INFO_FILLED → ESTABLISHED
    BLANK → VERIFIED_WITHOUT_WARRANTY (zero-year products)

Staff maintenance:
    batch creation, authorized decrypted reads, confirmation resend,
    expiry sweep, statistics
"""
from .errors import (
    WarrantyError,
    WarrantyValidationError,
    InvalidSerialFormatError,
    SerialNotFoundError,
    ProductUnavailableError,
    DuplicateSerialError,
    SurgeryDateInFutureError,
    InvalidIdentityNumberError,
    WarrantyStateConflictError,
    WarrantyAlreadyFilledError,
    WarrantyCannotBeFilledError,
    WarrantyCannotBeConfirmedError,
    SerialAlreadyUsedError,
    BindingForbiddenError,
    WarrantyNotFoundError,
    EncryptionConfigError,
    PIIDecryptionError,
)
from .state_machine import RegistrationStateMachine, STATE_CONFIG, ACTION_CONFIG
from .serial_validator import SerialValidator, SerialCheckResult
from .binding_token import DeviceBindingToken
from .pii_codec import PIICodec, get_pii_codec
from .warranty_window import (
    LIFETIME_END_DATE,
    resolve_warranty_years,
    compute_end_date,
    current_status,
    local_today,
)
from .registration_service import (
    WarrantyRegistrationService,
    PatientInfo,
    TransitionResult,
    SerialAvailability,
)
from .admin_service import WarrantyAdminService, MAX_BATCH_SIZE

__all__ = [
    # Errors
    "WarrantyError",
    "WarrantyValidationError",
    "InvalidSerialFormatError",
    "SerialNotFoundError",
    "ProductUnavailableError",
    "DuplicateSerialError",
    "SurgeryDateInFutureError",
    "InvalidIdentityNumberError",
    "WarrantyStateConflictError",
    "WarrantyAlreadyFilledError",
    "WarrantyCannotBeFilledError",
    "WarrantyCannotBeConfirmedError",
    "SerialAlreadyUsedError",
    "BindingForbiddenError",
    "WarrantyNotFoundError",
    "EncryptionConfigError",
    "PIIDecryptionError",
    # Workflow
    "RegistrationStateMachine",
    "STATE_CONFIG",
    "ACTION_CONFIG",
    "SerialValidator",
    "SerialCheckResult",
    "DeviceBindingToken",
    "PIICodec",
    "get_pii_codec",
    "LIFETIME_END_DATE",
    "resolve_warranty_years",
    "compute_end_date",
    "current_status",
    "local_today",
    # Services
    "WarrantyRegistrationService",
    "PatientInfo",
    "TransitionResult",
    "SerialAvailability",
    "WarrantyAdminService",
    "MAX_BATCH_SIZE",
]

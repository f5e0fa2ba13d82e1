"""
Warranty Registration Errors

Every failure the registration workflow can signal, grouped by category so
the HTTP layer can map a whole family to one status code:

- validation:         malformed input, attributed to a field (400)
- state_conflict:     wrong step, or serial already consumed (409)
- authorization:      missing/invalid device binding (403, no detail)
- not_found:          unknown record id (404)
- dependent_service:  encryption or storage failure (500, cause hidden)
"""
from typing import Optional


class WarrantyError(Exception):
    """Base class for warranty workflow errors."""
    category = "dependent_service"
    default_message = "Internal error"

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None):
        self.message = message or self.default_message
        self.field = field
        super().__init__(self.message)


# -----------------------------------------------------------------------------
# VALIDATION
# -----------------------------------------------------------------------------

class WarrantyValidationError(WarrantyError):
    category = "validation"
    default_message = "Invalid input"


class InvalidSerialFormatError(WarrantyValidationError):
    default_message = "Serial number must be in the format XXXXXXX-XXX"


class SerialNotFoundError(WarrantyValidationError):
    default_message = "Product serial number not valid"


class ProductUnavailableError(WarrantyValidationError):
    default_message = "Product is not active"


class DuplicateSerialError(WarrantyValidationError):
    default_message = "Two serial numbers cannot be the same"


class SurgeryDateInFutureError(WarrantyValidationError):
    default_message = "Surgery date cannot be in the future"


class InvalidIdentityNumberError(WarrantyValidationError):
    default_message = "Invalid identity number"


# -----------------------------------------------------------------------------
# STATE CONFLICT
# -----------------------------------------------------------------------------

class WarrantyStateConflictError(WarrantyError):
    category = "state_conflict"
    default_message = "Warranty is not in the expected state"


class WarrantyAlreadyFilledError(WarrantyStateConflictError):
    default_message = "Warranty has already been filled"


class WarrantyCannotBeFilledError(WarrantyStateConflictError):
    default_message = "Warranty can not be filled"


class WarrantyCannotBeConfirmedError(WarrantyStateConflictError):
    default_message = "Warranty can not be confirmed"


class SerialAlreadyUsedError(WarrantyStateConflictError):
    default_message = "Product serial number already registered"


# -----------------------------------------------------------------------------
# AUTHORIZATION / NOT FOUND / DEPENDENT SERVICE
# -----------------------------------------------------------------------------

class BindingForbiddenError(WarrantyError):
    category = "authorization"
    default_message = "Forbidden"


class WarrantyNotFoundError(WarrantyError):
    category = "not_found"
    default_message = "Warranty not found"


class EncryptionConfigError(WarrantyError):
    """Raised at startup when the PII key is missing or malformed."""
    category = "dependent_service"
    default_message = "Encryption key is not configured correctly"


class PIIDecryptionError(WarrantyError):
    category = "dependent_service"
    default_message = "Unable to decrypt stored value"

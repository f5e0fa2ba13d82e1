"""
Serial Validator

Decides whether a serial number may be bound to a warranty record and, if
so, which product it belongs to.

Checks run cheapest first:
1. Format (NNNNNNN-NNN), before any database access
2. Serial exists in inventory and is not deleted
3. Its product is active and not deleted
4. No warranty record already consumes it in either slot

The in-use check is advisory. Two registrations racing for one serial are
settled by the primary key on warranty_serial_bindings at write time.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models.db_models import (
    ProductDB, SerialDB, SerialBindingDB, WarrantyRegistrationDB, WarrantyStep
)
from .errors import (
    InvalidSerialFormatError, SerialNotFoundError, ProductUnavailableError, SerialAlreadyUsedError
)
from .validators import is_valid_serial_format

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SerialCheckResult:
    """A serial that is eligible for binding."""
    serial_number: str
    product_id: str
    warranty_years: int


class SerialValidator:
    """Inventory and consumption checks for product serial numbers."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def check_format(self, serial_number: Optional[str], field: str = "product_serial_number") -> str:
        if not is_valid_serial_format(serial_number):
            raise InvalidSerialFormatError(field=field)
        return serial_number

    def lookup_product(self, serial_number: str) -> Optional[ProductDB]:
        """Product of a live inventory serial, or None."""
        serial = self.db.query(SerialDB).filter(
            SerialDB.serial_number == serial_number,
            SerialDB.deleted_at.is_(None),
        ).first()
        if serial is None or serial.product_id is None:
            return None
        return self.db.query(ProductDB).filter(ProductDB.id == serial.product_id).first()

    def is_in_use(self, serial_number: str, exclude_warranty_id: Optional[str] = None) -> bool:
        """True when a non-blank, non-deleted warranty already references the serial."""
        binding_query = self.db.query(SerialBindingDB).filter(
            SerialBindingDB.serial_number == serial_number
        )
        if exclude_warranty_id:
            binding_query = binding_query.filter(SerialBindingDB.warranty_id != exclude_warranty_id)
        if binding_query.first() is not None:
            return True

        record_query = self.db.query(WarrantyRegistrationDB.id).filter(
            or_(
                WarrantyRegistrationDB.product_serial_number == serial_number,
                WarrantyRegistrationDB.serial_number_2 == serial_number,
            ),
            WarrantyRegistrationDB.step != int(WarrantyStep.BLANK),
            WarrantyRegistrationDB.deleted_at.is_(None),
        )
        if exclude_warranty_id:
            record_query = record_query.filter(WarrantyRegistrationDB.id != exclude_warranty_id)
        return record_query.first() is not None

    def validate(self, serial_number: Optional[str], field: str = "product_serial_number") -> SerialCheckResult:
        """
        Full eligibility check for one serial.

        Raises InvalidSerialFormatError, SerialNotFoundError,
        ProductUnavailableError or SerialAlreadyUsedError.
        """
        self.check_format(serial_number, field=field)

        product = self.lookup_product(serial_number)
        if product is None:
            logger.info(f"Serial {serial_number} not found in inventory")
            raise SerialNotFoundError(field=field)
        if not product.is_active or product.deleted_at is not None:
            logger.info(f"Serial {serial_number} belongs to inactive product {product.id}")
            raise ProductUnavailableError(field=field)

        if self.is_in_use(serial_number):
            raise SerialAlreadyUsedError(field=field)

        return SerialCheckResult(
            serial_number=serial_number,
            product_id=product.id,
            warranty_years=product.warranty_years,
        )

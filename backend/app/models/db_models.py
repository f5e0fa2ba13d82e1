"""
Implant Warranty - SQLAlchemy ORM Models
PostgreSQL database models for persistent storage
"""
from datetime import datetime, timezone
from enum import Enum, IntEnum
from sqlalchemy import (
    Column, String, Integer, DateTime, Date, Text, JSON, Boolean, ForeignKey, Index
)
from sqlalchemy.orm import relationship
from ..database import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# =============================================================================
# ENUMS
# =============================================================================

class WarrantyStep(IntEnum):
    """Registration progress of a warranty record. Stored as an integer."""
    BLANK = 0
    SERIAL_VERIFIED = 1
    PATIENT_INFO_FILLED = 2
    ESTABLISHED = 3
    VERIFIED_WITHOUT_WARRANTY = 9


class WarrantyStatus(str, Enum):
    """Warranty classification. A null column reads as UNSET."""
    UNSET = "unset"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class AuditAction(str, Enum):
    """Actions recorded in the audit trail."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    LOGIN = "LOGIN"
    VIEW = "VIEW"


class AuditTable(str, Enum):
    """Audited tables."""
    USERS = "users"
    WARRANTY_REGISTRATIONS = "warranty_registrations"
    AUTH = "auth"


class UserRole(str, Enum):
    ADMIN = "admin"
    STAFF = "staff"


# Product.warranty_years sentinels
LIFETIME_WARRANTY_YEARS = -1
NO_WARRANTY_YEARS = 0


# =============================================================================
# STAFF ACCOUNTS
# =============================================================================

class UserDB(Base):
    """Staff account for the admin surface."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)  # UUID
    username = Column(String(100), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=True, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=UserRole.STAFF.value)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


# =============================================================================
# INVENTORY
# =============================================================================

class ProductDB(Base):
    """Implant product model. warranty_years: -1 lifetime, 0 none, N years."""
    __tablename__ = "products"

    id = Column(String(36), primary_key=True)  # UUID
    model_number = Column(String(100), nullable=False)
    brand = Column(String(100), nullable=False)
    type = Column(String(50), nullable=False)
    size = Column(String(50), nullable=True)
    warranty_years = Column(Integer, nullable=False, default=NO_WARRANTY_YEARS)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    serials = relationship("SerialDB", back_populates="product")


class SerialDB(Base):
    """Inventory serial number, bound to exactly one product."""
    __tablename__ = "serials"

    id = Column(String(36), primary_key=True)  # UUID
    serial_number = Column(String(20), unique=True, nullable=False, index=True)
    full_serial_number = Column(String(100), nullable=True)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    product = relationship("ProductDB", back_populates="serials")


# =============================================================================
# WARRANTY REGISTRATION
# =============================================================================

class WarrantyRegistrationDB(Base):
    """
    One record per implantation event.

    Created blank by an admin batch operation, then filled by the patient.
    `step` is the discriminant: fields accumulate as it advances.
    Identity number and phone are only ever stored encrypted.
    """
    __tablename__ = "warranty_registrations"

    id = Column(String(36), primary_key=True)  # UUID
    step = Column(Integer, nullable=False, default=int(WarrantyStep.BLANK), index=True)

    # Patient (step 2)
    patient_name = Column(String(200), nullable=True)
    patient_id_encrypted = Column(Text, nullable=True)
    patient_birth_date = Column(Date, nullable=True)
    patient_phone_encrypted = Column(Text, nullable=True)
    patient_email = Column(String(255), nullable=True)
    hospital_name = Column(String(200), nullable=True)
    doctor_name = Column(String(200), nullable=True)

    # Device (step 1)
    surgery_date = Column(Date, nullable=True)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    product_id_2 = Column(String(36), ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    product_serial_number = Column(String(20), nullable=True, index=True)
    serial_number_2 = Column(String(20), nullable=True, index=True)

    # Warranty window
    warranty_years = Column(Integer, nullable=True)  # Effective length after reconciliation
    warranty_start_date = Column(Date, nullable=True)
    warranty_end_date = Column(Date, nullable=True)
    status = Column(String(20), nullable=True)

    # Notification flags
    confirmation_email_sent = Column(Boolean, nullable=False, default=False)
    email_sent_at = Column(DateTime, nullable=True)

    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    product = relationship("ProductDB", foreign_keys=[product_id])
    product_2 = relationship("ProductDB", foreign_keys=[product_id_2])
    serial_bindings = relationship(
        "SerialBindingDB", back_populates="warranty", cascade="all, delete-orphan"
    )

    @property
    def is_blank(self) -> bool:
        """Never touched since batch creation."""
        return self.created_at == self.updated_at


class SerialBindingDB(Base):
    """
    Serials consumed by warranty records.

    The primary key on serial_number is the write-time guard against two
    records claiming the same serial in either slot.
    """
    __tablename__ = "warranty_serial_bindings"

    serial_number = Column(String(20), primary_key=True)
    warranty_id = Column(
        String(36), ForeignKey("warranty_registrations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    slot = Column(Integer, nullable=False, default=1)  # 1 or 2
    created_at = Column(DateTime, default=utcnow)

    warranty = relationship("WarrantyRegistrationDB", back_populates="serial_bindings")


# =============================================================================
# AUDIT TRAIL
# =============================================================================

class AuditLogDB(Base):
    """Before/after record of every state-changing operation."""
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True)  # UUID
    user_id = Column(String(36), nullable=True, index=True)
    action = Column(String(20), nullable=False)
    table_name = Column(String(50), nullable=False)
    record_id = Column(String(36), nullable=True)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)

    __table_args__ = (
        Index("ix_audit_logs_table_record", "table_name", "record_id"),
    )

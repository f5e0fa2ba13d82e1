"""Implant Warranty - Data Models"""
from .db_models import (
    # Enums
    WarrantyStep, WarrantyStatus, AuditAction, AuditTable, UserRole,
    # Sentinels
    LIFETIME_WARRANTY_YEARS, NO_WARRANTY_YEARS,
    # Tables
    UserDB, ProductDB, SerialDB, WarrantyRegistrationDB, SerialBindingDB, AuditLogDB,
)

__all__ = [
    "WarrantyStep", "WarrantyStatus", "AuditAction", "AuditTable", "UserRole",
    "LIFETIME_WARRANTY_YEARS", "NO_WARRANTY_YEARS",
    "UserDB", "ProductDB", "SerialDB", "WarrantyRegistrationDB", "SerialBindingDB", "AuditLogDB",
]

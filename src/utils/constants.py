"""
Constants for the Clinic Back-Office application.

This module defines system-wide constants including:
- Application metadata
- Staff roles and the role sets allowed on each operation
- Inventory and prescription limits
- Audit notes and operator-facing error messages
"""

from typing import FrozenSet, List

# ============================================================================
# Application Metadata
# ============================================================================

APP_NAME = "Clinic Back-Office"
APP_VERSION = "0.1.0"
DATABASE_FILENAME = "clinic_backoffice.db"

# ============================================================================
# Staff Roles
# ============================================================================

ROLE_ADMIN = "admin"
ROLE_DOCTOR = "doctor"
ROLE_NURSE = "nurse"
ROLE_RECEPTIONIST = "receptionist"
ROLE_BILLING = "billing"

STAFF_ROLES: List[str] = [
    ROLE_ADMIN,
    ROLE_DOCTOR,
    ROLE_NURSE,
    ROLE_RECEPTIONIST,
    ROLE_BILLING,
]

STAFF_ROLE_LABELS = {
    ROLE_ADMIN: "Administrator",
    ROLE_DOCTOR: "Doctor",
    ROLE_NURSE: "Nurse",
    ROLE_RECEPTIONIST: "Receptionist",
    ROLE_BILLING: "Billing",
}

# Who may call what
CLINICAL_READ_ROLES: FrozenSet[str] = frozenset({ROLE_ADMIN, ROLE_DOCTOR, ROLE_RECEPTIONIST})
PRESCRIBING_ROLES: FrozenSet[str] = frozenset({ROLE_ADMIN, ROLE_DOCTOR, ROLE_RECEPTIONIST})
INVENTORY_WRITE_ROLES: FrozenSet[str] = frozenset({ROLE_ADMIN, ROLE_RECEPTIONIST})
PRESCRIPTION_DELETE_ROLES: FrozenSet[str] = frozenset({ROLE_ADMIN})

# ============================================================================
# Inventory
# ============================================================================

MIN_ITEM_NAME_LENGTH = 2
MAX_ITEM_NAME_LENGTH = 200
MAX_ITEM_DESCRIPTION_LENGTH = 200
MAX_ITEM_UNIT_LENGTH = 20

DEFAULT_LOW_STOCK_LIMIT = 5

UNKNOWN_ITEM_NAME = "Unknown item"
CONSUMPTION_NOTE = "Prescription consumption"
ITEM_REPLACED_NOTE = "Item replaced"

# ============================================================================
# Prescriptions
# ============================================================================

MAX_DOSAGE_LENGTH = 200
MAX_PRESCRIPTION_NOTES_LENGTH = 500

# Name stored on a line when the inventory item could not be resolved
FALLBACK_LINE_NAME = "Item"

LEGACY_PRESCRIPTIONS_FILENAME = "prescriptions.json"

# ============================================================================
# Storage Error Messages
# ============================================================================

INVENTORY_SCHEMA_MISSING_MESSAGE = (
    "Inventory tables are missing from the database. "
    "Ask an admin to apply the pending schema migrations."
)
PRESCRIPTIONS_SCHEMA_MISSING_MESSAGE = (
    "Prescriptions tables are missing. "
    "Ask an admin to apply the pending schema migrations."
)
CLINIC_SCHEMA_MISSING_MESSAGE = (
    "Clinic tables are missing from the database. "
    "Ask an admin to apply the pending schema migrations."
)

# SQLSTATE codes reported by PostgreSQL for missing relations/columns
UNDEFINED_TABLE_SQLSTATE = "42P01"
UNDEFINED_COLUMN_SQLSTATE = "42703"

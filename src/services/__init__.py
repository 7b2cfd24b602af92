"""Services package - Business logic layer for the clinic back-office.

This package contains all service modules that provide business logic
and database operations for the application.

Architecture:
- Services: Stateless functions organized by domain (stock ledger, consumption, prescriptions)
- Transactions: Managed via session_scope() context manager
- Exceptions: Consistent error handling via ServiceError hierarchy
- Validation: Input validation before database operations

Service Modules:
- inventory_service: Stock ledger with an adjustment audit trail
- consumption_service: All-or-nothing stock withdrawal for a batch of requirements
- prescription_service: Prescription issuance, queries and deletion
- prescription_import_service: One-off import of legacy JSON prescriptions

Infrastructure:
- exceptions: Custom exception classes for service layer errors
- database: Session management, storage error translation
- dto: Pagination structures
- logging_utils: Structured operation logging
"""

# Service modules
from . import (
    database,
    inventory_service,
    consumption_service,
    prescription_service,
    prescription_import_service,
)

# Consumption planner types
from .consumption_service import (
    Requirement,
    Shortage,
    ConsumptionResult,
)

# Pagination
from .dto import PaginationParams, PaginatedResult

# Exceptions
from .exceptions import (
    ServiceError,
    ValidationError,
    InventoryItemNotFound,
    PrescriptionNotFound,
    PatientNotFound,
    DoctorNotFound,
    InsufficientStockError,
    StockConflictError,
    DatabaseError,
    SchemaNotProvisionedError,
)

__all__ = [
    # Service modules
    "database",
    "inventory_service",
    "consumption_service",
    "prescription_service",
    "prescription_import_service",
    # Consumption planner types
    "Requirement",
    "Shortage",
    "ConsumptionResult",
    # Pagination
    "PaginationParams",
    "PaginatedResult",
    # Exceptions
    "ServiceError",
    "ValidationError",
    "InventoryItemNotFound",
    "PrescriptionNotFound",
    "PatientNotFound",
    "DoctorNotFound",
    "InsufficientStockError",
    "StockConflictError",
    "DatabaseError",
    "SchemaNotProvisionedError",
]

"""Service layer exception classes for the clinic back-office.

This module defines all custom exceptions used by the service layer to provide
consistent error handling across the application.

Exception Hierarchy:
    ServiceError (base)
    ├── ValidationError
    ├── InventoryItemNotFound
    ├── PrescriptionNotFound
    ├── PatientNotFound
    ├── DoctorNotFound
    ├── InsufficientStockError
    ├── StockConflictError
    └── DatabaseError
        └── SchemaNotProvisionedError
"""

from typing import List, Optional


class ServiceError(Exception):
    """Base exception for all service layer errors.

    All service-specific exceptions should inherit from this class.
    """

    pass


class ValidationError(ServiceError):
    """Raised when caller-supplied data fails validation.

    Raised before any storage access, so nothing has been written.
    """

    def __init__(self, errors: list):
        self.errors = list(errors)
        error_msg = "; ".join(self.errors)
        super().__init__(f"Validation failed: {error_msg}")


class InventoryItemNotFound(ServiceError):
    """Raised when an inventory item cannot be found by ID."""

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Inventory item with ID {item_id} not found")


class PrescriptionNotFound(ServiceError):
    """Raised when a prescription cannot be found by ID."""

    def __init__(self, prescription_id: str):
        self.prescription_id = prescription_id
        super().__init__(f"Prescription with ID {prescription_id} not found")


class PatientNotFound(ServiceError):
    """Raised when a prescription references a patient that doesn't exist."""

    def __init__(self, patient_id: str):
        self.patient_id = patient_id
        super().__init__("Patient not found")


class DoctorNotFound(ServiceError):
    """Raised when the prescriber doesn't exist or doesn't carry the doctor role."""

    def __init__(self, doctor_id: str):
        self.doctor_id = doctor_id
        super().__init__("Doctor not found")


class InsufficientStockError(ServiceError):
    """Raised when a consumption batch cannot be fulfilled.

    Carries the full shortage list so callers can report every short item,
    not only the first one.

    Attributes:
        shortages: List of Shortage records
    """

    def __init__(self, shortages: list):
        self.shortages = list(shortages)
        parts = [
            f"{s.name}: requested {s.requested}, available {s.available}"
            for s in self.shortages
        ]
        super().__init__("Insufficient stock for " + "; ".join(parts))

    def to_list(self) -> List[dict]:
        return [shortage.to_dict() for shortage in self.shortages]


class StockConflictError(ServiceError):
    """Raised when a compare-and-swap stock write finds the quantity changed."""

    def __init__(self, item_id: str, expected: int, actual: Optional[int] = None):
        self.item_id = item_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Stock for item {item_id} changed concurrently: "
            f"expected {expected}, found {actual}"
        )


class DatabaseError(ServiceError):
    """Raised when a database operation fails."""

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(f"Database error: {message}")


class SchemaNotProvisionedError(DatabaseError):
    """Raised when the tables a service needs don't exist yet.

    This is an operational problem, not a missing record: the message tells
    an operator to apply pending schema migrations.
    """

    def __init__(self, message: str, original_error: Exception = None):
        self.operator_message = message
        self.original_error = original_error
        ServiceError.__init__(self, message)

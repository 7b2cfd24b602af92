"""
Database models package.

This package contains all SQLAlchemy ORM models for the application.
"""

from .base import Base, BaseModel
from .staff_member import StaffMember
from .patient import Patient
from .inventory_item import InventoryItem
from .inventory_adjustment import InventoryAdjustment
from .prescription import Prescription, PrescriptionLine

__all__ = [
    "Base",
    "BaseModel",
    "StaffMember",
    "Patient",
    "InventoryItem",
    "InventoryAdjustment",
    "Prescription",
    "PrescriptionLine",
]

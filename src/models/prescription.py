"""
Prescription models.

A Prescription is a patient/doctor-linked order made of one or more
PrescriptionLine rows, each drawing a quantity from inventory. Line names
are snapshots taken when the prescription is issued, so historical records
stay readable after an inventory item is renamed or removed.
"""

from sqlalchemy import Column, Integer, String, Text, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship

from .base import BaseModel
from src.utils.constants import FALLBACK_LINE_NAME
from src.utils.datetime_utils import to_iso


class Prescription(BaseModel):
    """
    Prescription header.

    Attributes:
        patient_id: FK to Patient
        doctor_id: FK to StaffMember carrying the doctor role
        notes: Optional free text
        created_by: Staff member who issued it, when known
        lines: Ordered PrescriptionLine collection
    """

    __tablename__ = "prescriptions"

    patient_id = Column(
        String(36), ForeignKey("patients.id", ondelete="CASCADE"), nullable=False
    )
    doctor_id = Column(
        String(36), ForeignKey("staff_members.id", ondelete="RESTRICT"), nullable=False
    )
    notes = Column(Text, nullable=True)
    created_by = Column(
        String(36), ForeignKey("staff_members.id", ondelete="SET NULL"), nullable=True
    )

    # Relationships
    patient = relationship("Patient")
    doctor = relationship("StaffMember", foreign_keys=[doctor_id])
    lines = relationship(
        "PrescriptionLine",
        back_populates="prescription",
        order_by="PrescriptionLine.position",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("idx_prescription_patient", "patient_id"),
        Index("idx_prescription_doctor", "doctor_id"),
        Index("idx_prescription_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"Prescription(id={self.id}, "
            f"patient_id={self.patient_id}, "
            f"lines={len(self.lines)})"
        )

    def to_dict(self, include_relationships: bool = True) -> dict:
        """
        Convert prescription to its API representation.

        Args:
            include_relationships: If True, include patient/doctor display names

        Returns:
            Dictionary with header fields and ordered lines
        """
        result = {
            "id": self.id,
            "patient_id": self.patient_id,
            "doctor_id": self.doctor_id,
            "notes": self.notes,
            "created_at": to_iso(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
        }
        if include_relationships:
            result["patient_name"] = self.patient.full_name if self.patient else None
            result["doctor_name"] = self.doctor.full_name if self.doctor else None
        return result


class PrescriptionLine(BaseModel):
    """
    One medication line of a prescription.

    Attributes:
        prescription_id: FK to Prescription
        inventory_item_id: FK to InventoryItem (NULL once the item is removed)
        name: Item name captured at issue time
        dosage: Dosage instructions (e.g., "1 tab TID")
        quantity: Units dispensed, always positive
        position: Order of the line within its prescription
    """

    __tablename__ = "prescription_lines"

    prescription_id = Column(
        String(36), ForeignKey("prescriptions.id", ondelete="CASCADE"), nullable=False
    )
    inventory_item_id = Column(
        String(36), ForeignKey("inventory_items.id", ondelete="SET NULL"), nullable=True
    )
    name = Column(String(200), nullable=False, default=FALLBACK_LINE_NAME)
    dosage = Column(String(200), nullable=False)
    quantity = Column(Integer, nullable=False)
    position = Column(Integer, nullable=False, default=0)

    # Relationships
    prescription = relationship("Prescription", back_populates="lines")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_prescription_line_quantity_positive"),
        Index("idx_prescription_line_prescription", "prescription_id"),
    )

    def to_dict(self) -> dict:
        return {
            "item_id": self.inventory_item_id or "",
            "name": self.name or FALLBACK_LINE_NAME,
            "dosage": self.dosage,
            "quantity": int(self.quantity or 0),
        }

"""
Patient model.

Patient records are maintained by the patient-records module; this core only
needs enough of them to reference a patient from a prescription and to show
the patient's name.
"""

from sqlalchemy import Column, String, Index

from .base import BaseModel


class Patient(BaseModel):
    """
    Patient reference record.

    Attributes:
        full_name: Display name
        mrn: Medical record number, when assigned
    """

    __tablename__ = "patients"

    full_name = Column(String(200), nullable=False)
    mrn = Column(String(50), nullable=True, unique=True)

    __table_args__ = (Index("idx_patient_full_name", "full_name"),)

    def __repr__(self) -> str:
        """String representation of patient."""
        mrn = f" [{self.mrn}]" if self.mrn else ""
        return f"Patient(id={self.id}, full_name='{self.full_name}'{mrn})"

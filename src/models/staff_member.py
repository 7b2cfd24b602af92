"""
StaffMember model.

Staff accounts are provisioned elsewhere; the back-office core reads them to
authorize callers, to check that a prescriber carries the doctor role, and to
attribute ledger changes.
"""

from sqlalchemy import Column, String, Index, CheckConstraint

from .base import BaseModel
from src.utils.constants import STAFF_ROLES, STAFF_ROLE_LABELS, ROLE_DOCTOR


class StaffMember(BaseModel):
    """
    Staff member reference record.

    Attributes:
        full_name: Display name
        email: Login email, when known
        role: One of STAFF_ROLES
    """

    __tablename__ = "staff_members"

    full_name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=True, unique=True)
    role = Column(String(32), nullable=False)

    __table_args__ = (
        CheckConstraint(
            "role IN (" + ", ".join(f"'{role}'" for role in STAFF_ROLES) + ")",
            name="ck_staff_role_valid",
        ),
        Index("idx_staff_role", "role"),
    )

    def __repr__(self) -> str:
        return f"StaffMember(id={self.id}, full_name='{self.full_name}', role='{self.role}')"

    @property
    def role_label(self) -> str:
        return STAFF_ROLE_LABELS.get(self.role, self.role)

    @property
    def is_doctor(self) -> bool:
        return self.role == ROLE_DOCTOR

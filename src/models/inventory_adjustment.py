"""
InventoryAdjustment model for the stock ledger's audit trail.

Every change to InventoryItem.quantity made through the stock ledger creates
exactly one InventoryAdjustment in the same transaction. Records are
append-only: nothing updates or deletes them.
"""

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    ForeignKey,
    Index,
    CheckConstraint,
)
from sqlalchemy.orm import relationship

from .base import BaseModel
from src.utils.datetime_utils import to_iso


class InventoryAdjustment(BaseModel):
    """
    Immutable audit record for a stock ledger mutation.

    Attributes:
        item_id: FK to the InventoryItem that changed
        delta: Requested change (negative for consumption). This is the
            delta the caller asked for, even when the ledger clamped the
            result at zero.
        previous_quantity: Quantity before the change
        new_quantity: Quantity after the change (never negative)
        note: Optional free text (e.g., "Prescription consumption")
        created_by: Staff member who made the change, when known

    Note:
        ``new_quantity - previous_quantity`` differs from ``delta`` only when
        a withdrawal was clamped at zero.
    """

    __tablename__ = "inventory_adjustments"

    item_id = Column(
        String(36),
        ForeignKey("inventory_items.id", ondelete="CASCADE"),
        nullable=False,
    )

    delta = Column(Integer, nullable=False)
    previous_quantity = Column(Integer, nullable=False)
    new_quantity = Column(Integer, nullable=False)
    note = Column(Text, nullable=True)

    created_by = Column(
        String(36), ForeignKey("staff_members.id", ondelete="SET NULL"), nullable=True
    )

    # Relationships
    inventory_item = relationship("InventoryItem", back_populates="adjustments")

    __table_args__ = (
        Index("idx_adjustment_item", "item_id"),
        Index("idx_adjustment_created_at", "created_at"),
        CheckConstraint("new_quantity >= 0", name="ck_adjustment_new_quantity_non_negative"),
    )

    def __repr__(self) -> str:
        """String representation of adjustment."""
        return (
            f"InventoryAdjustment(id={self.id}, "
            f"item_id={self.item_id}, "
            f"delta={self.delta:+d})"
        )

    @property
    def was_clamped(self) -> bool:
        """True when the ledger applied less than the requested withdrawal."""
        return (self.new_quantity - self.previous_quantity) != self.delta

    def to_dict(self) -> dict:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "item_id": self.item_id,
            "delta": self.delta,
            "previous_quantity": self.previous_quantity,
            "new_quantity": self.new_quantity,
            "was_clamped": self.was_clamped,
            "note": self.note,
            "created_by": self.created_by,
            "created_at": to_iso(self.created_at),
        }

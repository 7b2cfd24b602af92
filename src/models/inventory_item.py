"""
InventoryItem model for the clinic's stock ledger.

Each record is one stocked item (a medication, a dressing, ...) with its
on-hand quantity and the threshold under which it is reported as low stock.
Quantities only move through the stock ledger service, which pairs every
change with an InventoryAdjustment audit record.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship

from .base import BaseModel
from src.utils.datetime_utils import utc_now, to_iso


class InventoryItem(BaseModel):
    """
    InventoryItem model representing stock on hand.

    Attributes:
        name: Display name (e.g., "Paracetamol 500mg")
        description: Optional free text
        unit: Optional unit label (e.g., "tabs", "box")
        quantity: Quantity on hand, never negative
        low_stock_threshold: Items at or below this quantity are low stock
        updated_by: Staff member who last changed the item
        last_updated: Last modification timestamp
    """

    __tablename__ = "inventory_items"

    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    unit = Column(String(20), nullable=True)

    quantity = Column(Integer, nullable=False, default=0)
    low_stock_threshold = Column(Integer, nullable=False, default=0)

    updated_by = Column(
        String(36), ForeignKey("staff_members.id", ondelete="SET NULL"), nullable=True
    )
    last_updated = Column(DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now)

    # Relationships
    adjustments = relationship(
        "InventoryAdjustment",
        back_populates="inventory_item",
        order_by="InventoryAdjustment.created_at",
    )

    __table_args__ = (
        CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
        CheckConstraint(
            "low_stock_threshold >= 0", name="ck_inventory_threshold_non_negative"
        ),
        Index("idx_inventory_item_name", "name"),
    )

    def __repr__(self) -> str:
        """String representation of inventory item."""
        return (
            f"InventoryItem(id={self.id}, "
            f"name='{self.name}', "
            f"quantity={self.quantity})"
        )

    @property
    def is_low_stock(self) -> bool:
        """True when quantity has fallen to the low-stock threshold or below."""
        return (self.quantity or 0) <= (self.low_stock_threshold or 0)

    def to_dict(self) -> dict:
        """
        Convert inventory item to its API representation.

        Returns:
            Dictionary with camel-cased lowStockThreshold for the UI
        """
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "unit": self.unit,
            "quantity": int(self.quantity or 0),
            "lowStockThreshold": int(self.low_stock_threshold or 0),
            "is_low_stock": self.is_low_stock,
            "updated_at": to_iso(self.last_updated),
        }

"""Request bodies for the inventory and prescription routes."""
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt, field_validator

from src.utils.constants import (
    MAX_DOSAGE_LENGTH,
    MAX_ITEM_DESCRIPTION_LENGTH,
    MAX_ITEM_NAME_LENGTH,
    MAX_ITEM_UNIT_LENGTH,
    MAX_PRESCRIPTION_NOTES_LENGTH,
    MIN_ITEM_NAME_LENGTH,
)


class InventoryItemCreate(BaseModel):
    """New item, or full replacement when id names an existing one."""

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    id: Optional[str] = Field(None, min_length=1)
    name: str = Field(..., min_length=MIN_ITEM_NAME_LENGTH, max_length=MAX_ITEM_NAME_LENGTH)
    description: Optional[str] = Field(None, max_length=MAX_ITEM_DESCRIPTION_LENGTH)
    unit: Optional[str] = Field(None, max_length=MAX_ITEM_UNIT_LENGTH)
    quantity: StrictInt = Field(0, ge=0)
    low_stock_threshold: StrictInt = Field(0, ge=0, alias="lowStockThreshold")


class InventoryQuantityUpdate(BaseModel):
    """Either a signed delta or an absolute quantity; quantity wins when both are sent."""

    id: str = Field(..., min_length=1)
    delta: Optional[StrictInt] = None
    quantity: Optional[StrictInt] = Field(None, ge=0)
    note: Optional[str] = None


class PrescriptionLineIn(BaseModel):
    item_id: str = Field(..., min_length=1)
    dosage: str = Field(..., min_length=1, max_length=MAX_DOSAGE_LENGTH)
    quantity: StrictInt = Field(..., gt=0)

    @field_validator("dosage", mode="before")
    @classmethod
    def strip_dosage(cls, value):
        return value.strip() if isinstance(value, str) else value


class PrescriptionCreate(BaseModel):
    patient_id: str = Field(..., min_length=1)
    doctor_id: str = Field(..., min_length=1)
    notes: Optional[str] = Field(None, max_length=MAX_PRESCRIPTION_NOTES_LENGTH)
    lines: List[PrescriptionLineIn] = Field(..., min_length=1)

    @field_validator("notes", mode="before")
    @classmethod
    def blank_notes_to_none(cls, value):
        if isinstance(value, str):
            return value.strip() or None
        return value

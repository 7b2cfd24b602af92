"""Inventory routes: stock list, low-stock alerts, item upsert and quantity changes."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.api.deps import StaffContext, require_roles
from src.api.schemas import InventoryItemCreate, InventoryQuantityUpdate
from src.services import inventory_service
from src.utils.config import get_config
from src.utils.constants import CLINICAL_READ_ROLES, INVENTORY_WRITE_ROLES

router = APIRouter()


@router.get("")
def list_inventory(staff: StaffContext = Depends(require_roles(CLINICAL_READ_ROLES))):
    items = inventory_service.list_items()
    return {"ok": True, "items": [item.to_dict() for item in items]}


@router.get("/low-stock")
def list_low_stock(
    limit: Optional[int] = Query(None, ge=1),
    staff: StaffContext = Depends(require_roles(CLINICAL_READ_ROLES)),
):
    """Items at or below their threshold, lowest quantity first."""
    if limit is None:
        limit = get_config().low_stock_limit
    items = inventory_service.get_low_stock_items(limit=limit)
    return {"ok": True, "items": [item.to_dict() for item in items]}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_inventory_item(
    payload: InventoryItemCreate,
    staff: StaffContext = Depends(require_roles(INVENTORY_WRITE_ROLES)),
):
    item = inventory_service.add_item(payload.model_dump(), actor_id=staff.id)
    return {"ok": True, "item": item.to_dict()}


@router.patch("")
def update_inventory_quantity(
    payload: InventoryQuantityUpdate,
    staff: StaffContext = Depends(require_roles(INVENTORY_WRITE_ROLES)),
):
    """Set an absolute quantity, or apply a signed delta. A zero delta is not a change."""
    if payload.quantity is not None:
        item = inventory_service.set_quantity(
            payload.id, payload.quantity, note=payload.note, actor_id=staff.id
        )
    elif payload.delta:
        item = inventory_service.adjust_quantity(
            payload.id, payload.delta, note=payload.note, actor_id=staff.id
        )
    else:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Provide delta or quantity")
    return {"ok": True, "item": item.to_dict()}


@router.get("/{item_id}/adjustments")
def list_adjustments(
    item_id: str,
    limit: Optional[int] = Query(None, ge=1),
    staff: StaffContext = Depends(require_roles(INVENTORY_WRITE_ROLES)),
):
    adjustments = inventory_service.get_adjustment_history(item_id=item_id, limit=limit)
    return {"ok": True, "adjustments": [adj.to_dict() for adj in adjustments]}

"""Prescription routes: issue, list, fetch and delete."""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from src.api.deps import StaffContext, require_roles
from src.api.schemas import PrescriptionCreate
from src.services import prescription_service
from src.services.dto import PaginationParams
from src.utils.constants import (
    CLINICAL_READ_ROLES,
    PRESCRIBING_ROLES,
    PRESCRIPTION_DELETE_ROLES,
)

router = APIRouter()


@router.get("")
def list_prescriptions(
    page: Optional[int] = Query(None, ge=1),
    per_page: int = Query(50, ge=1, le=1000),
    patient_id: Optional[str] = Query(None),
    staff: StaffContext = Depends(require_roles(CLINICAL_READ_ROLES)),
):
    """Newest first. Without ?page every prescription is returned."""
    pagination = PaginationParams(page=page, per_page=per_page) if page is not None else None
    result = prescription_service.list_prescriptions(pagination, patient_id=patient_id)
    return {
        "ok": True,
        "prescriptions": result.items,
        "total": result.total,
        "page": result.page,
        "pages": result.pages,
    }


@router.post("")
def create_prescription(
    payload: PrescriptionCreate,
    staff: StaffContext = Depends(require_roles(PRESCRIBING_ROLES)),
):
    """
    Issue a prescription and withdraw its stock.

    Unknown patient or a prescriber without the doctor role is rejected
    before any stock is touched.
    """
    prescription_service.verify_participants(payload.patient_id, payload.doctor_id)
    prescription = prescription_service.issue_prescription(
        payload.patient_id,
        payload.doctor_id,
        [line.model_dump() for line in payload.lines],
        payload.notes,
        actor_id=staff.id,
    )
    return {"ok": True, "prescription": prescription}


@router.get("/{prescription_id}")
def get_prescription(
    prescription_id: str,
    staff: StaffContext = Depends(require_roles(CLINICAL_READ_ROLES)),
):
    return {"ok": True, "prescription": prescription_service.get_prescription(prescription_id)}


@router.delete("/{prescription_id}")
def delete_prescription(
    prescription_id: str,
    staff: StaffContext = Depends(require_roles(PRESCRIPTION_DELETE_ROLES)),
):
    prescription_service.delete_prescription(prescription_id)
    return {"ok": True}

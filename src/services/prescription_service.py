"""
Prescription Writer Service.

Issues prescriptions against the stock ledger. A prescription is only ever
stored together with the inventory withdrawal it implies:

1. Validate the request (lines, dosages, quantities, notes)
2. Snapshot line names from the current inventory
3. Consume the aggregated quantities (all-or-nothing)
4. Persist the header, then its lines

All four steps share one transaction, so a failure while writing lines
rolls back the header and the stock decrements with it.

Patient/doctor existence is the request layer's check (verify_participants),
not issue_prescription's.
"""

import logging
from contextlib import nullcontext
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import joinedload, selectinload

from src.models import Patient, Prescription, PrescriptionLine, StaffMember
from src.services.consumption_service import (
    _consume_impl,
    aggregate_requirements,
    run_with_stock_retries,
)
from src.services.database import session_scope, translate_storage_errors
from src.services.dto import PaginatedResult, PaginationParams
from src.services.exceptions import (
    DoctorNotFound,
    InsufficientStockError,
    PatientNotFound,
    PrescriptionNotFound,
    ValidationError,
)
from src.services.inventory_service import _list_items_by_ids_impl
from src.services.logging_utils import get_service_logger, log_operation
from src.utils.constants import (
    FALLBACK_LINE_NAME,
    MAX_DOSAGE_LENGTH,
    MAX_PRESCRIPTION_NOTES_LENGTH,
    PRESCRIPTIONS_SCHEMA_MISSING_MESSAGE,
    ROLE_DOCTOR,
)

logger = get_service_logger(__name__)


# =============================================================================
# Validation
# =============================================================================


def validate_prescription_request(
    patient_id: Any,
    doctor_id: Any,
    lines: Any,
    notes: Any = None,
) -> List[Dict[str, Any]]:
    """
    Validate an issuance request before touching storage.

    Returns:
        Normalized lines: dicts with item_id, dosage (trimmed) and quantity

    Raises:
        ValidationError: With every problem found, not only the first
    """
    errors = []
    if not isinstance(patient_id, str) or not patient_id.strip():
        errors.append("Patient is required")
    if not isinstance(doctor_id, str) or not doctor_id.strip():
        errors.append("Doctor is required")
    if notes is not None and (not isinstance(notes, str) or len(notes) > MAX_PRESCRIPTION_NOTES_LENGTH):
        errors.append(f"Notes must be at most {MAX_PRESCRIPTION_NOTES_LENGTH} characters")

    normalized = []
    if not isinstance(lines, (list, tuple)) or not lines:
        errors.append("At least one line is required")
        lines = []

    for index, line in enumerate(lines, start=1):
        if not isinstance(line, dict):
            errors.append(f"Line {index}: expected an object")
            continue
        item_id = line.get("item_id")
        dosage = line.get("dosage")
        quantity = line.get("quantity")

        if not isinstance(item_id, str) or not item_id.strip():
            errors.append(f"Line {index}: item is required")
        if not isinstance(dosage, str) or not dosage.strip():
            errors.append(f"Line {index}: dosage is required")
        elif len(dosage.strip()) > MAX_DOSAGE_LENGTH:
            errors.append(f"Line {index}: dosage must be at most {MAX_DOSAGE_LENGTH} characters")
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            errors.append(f"Line {index}: quantity must be a positive whole number")

        if isinstance(dosage, str):
            dosage = dosage.strip()
        normalized.append({"item_id": item_id, "dosage": dosage, "quantity": quantity})

    if errors:
        raise ValidationError(errors)
    return normalized


# =============================================================================
# Participants
# =============================================================================


@translate_storage_errors(PRESCRIPTIONS_SCHEMA_MISSING_MESSAGE)
def verify_participants(patient_id: str, doctor_id: str, session=None) -> Dict[str, str]:
    """
    Check that the patient exists and the prescriber is a doctor.

    Returns:
        Dict with keys:
            - "patient_name": str
            - "doctor_name": str

    Raises:
        PatientNotFound: If the patient doesn't exist
        DoctorNotFound: If the staff member doesn't exist or isn't a doctor
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        patient = session.get(Patient, patient_id) if patient_id else None
        if patient is None:
            raise PatientNotFound(patient_id)

        doctor = session.get(StaffMember, doctor_id) if doctor_id else None
        if doctor is None or doctor.role != ROLE_DOCTOR:
            raise DoctorNotFound(doctor_id)

        return {"patient_name": patient.full_name, "doctor_name": doctor.full_name}


# =============================================================================
# Issuance
# =============================================================================


@translate_storage_errors(PRESCRIPTIONS_SCHEMA_MISSING_MESSAGE)
def issue_prescription(
    patient_id: str,
    doctor_id: str,
    lines: List[Dict[str, Any]],
    notes: Optional[str] = None,
    *,
    actor_id: Optional[str] = None,
    session=None,
) -> Dict[str, Any]:
    """
    Issue a prescription and withdraw its quantities from inventory.

    Transaction boundary: Multi-step operation (atomic).
    Stock check, stock decrements, audit rows, header and lines are written
    in one transaction. On any failure nothing is kept.

    Identical requests are not deduplicated: calling twice issues two
    prescriptions and consumes stock twice.

    Args:
        patient_id: Patient the prescription is for
        doctor_id: Prescribing doctor
        lines: List of dicts with item_id, dosage and quantity
        notes: Optional free text (max 500 characters)
        actor_id: Staff member issuing the prescription
        session: Optional database session. When given, the caller owns the
            transaction and stock conflicts are not retried here.

    Returns:
        Dict with keys:
            - "id": str
            - "patient_id": str
            - "doctor_id": str
            - "notes": Optional[str]
            - "created_at": str (ISO 8601)
            - "lines": List[Dict] - item_id, name, dosage, quantity
            - "patient_name": Optional[str]
            - "doctor_name": Optional[str]

    Raises:
        ValidationError: If the request is malformed
        InsufficientStockError: If any item is short; carries every shortage
        StockConflictError: If optimistic locking is on and retries ran out
    """
    if isinstance(notes, str):
        notes = notes.strip() or None
    normalized = validate_prescription_request(patient_id, doctor_id, lines, notes)
    if session is not None:
        return _issue_prescription_impl(patient_id, doctor_id, normalized, notes, actor_id, session)

    def attempt() -> Dict[str, Any]:
        with session_scope() as own_session:
            return _issue_prescription_impl(
                patient_id, doctor_id, normalized, notes, actor_id, own_session
            )

    return run_with_stock_retries("issue_prescription", attempt)


def _issue_prescription_impl(
    patient_id: str,
    doctor_id: str,
    lines: List[Dict[str, Any]],
    notes: Optional[str],
    actor_id: Optional[str],
    session,
) -> Dict[str, Any]:
    """Implementation for issue_prescription.

    Transaction boundary: Inherits session from caller.
    """
    # Names are captured before consumption so lines keep the name they were issued under
    items = _list_items_by_ids_impl([line["item_id"] for line in lines], session)
    names = {item.id: item.name for item in items}

    result = _consume_impl(aggregate_requirements(lines), actor_id, session)
    if not result.ok:
        log_operation(
            logger,
            operation="issue_prescription",
            outcome="insufficient_stock",
            level=logging.WARNING,
            patient_id=patient_id,
            short_items=[s.item_id for s in result.shortages],
        )
        raise InsufficientStockError(result.shortages)

    header = _persist_header(patient_id, doctor_id, notes, actor_id, session)
    _persist_lines(header, lines, names, session)

    log_operation(
        logger,
        operation="issue_prescription",
        outcome="success",
        prescription_id=header.id,
        patient_id=patient_id,
        doctor_id=doctor_id,
        line_count=len(lines),
    )
    return header.to_dict()


def _persist_header(
    patient_id: str,
    doctor_id: str,
    notes: Optional[str],
    actor_id: Optional[str],
    session,
) -> Prescription:
    header = Prescription(
        patient_id=patient_id,
        doctor_id=doctor_id,
        notes=notes,
        created_by=actor_id,
    )
    session.add(header)
    session.flush()
    return header


def _persist_lines(
    header: Prescription,
    lines: List[Dict[str, Any]],
    names: Dict[str, str],
    session,
) -> None:
    for position, line in enumerate(lines):
        header.lines.append(
            PrescriptionLine(
                inventory_item_id=line["item_id"],
                name=names.get(line["item_id"]) or FALLBACK_LINE_NAME,
                dosage=line["dosage"],
                quantity=line["quantity"],
                position=position,
            )
        )
    session.flush()


# =============================================================================
# Queries and Deletion
# =============================================================================


def _prescription_query(session):
    return session.query(Prescription).options(
        joinedload(Prescription.patient),
        joinedload(Prescription.doctor),
        selectinload(Prescription.lines),
    )


@translate_storage_errors(PRESCRIPTIONS_SCHEMA_MISSING_MESSAGE)
def get_prescription(prescription_id: str, session=None) -> Dict[str, Any]:
    """
    Get one prescription with its lines and participant names.

    Raises:
        PrescriptionNotFound: If no prescription has this ID
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        prescription = (
            _prescription_query(session).filter(Prescription.id == prescription_id).first()
        )
        if prescription is None:
            raise PrescriptionNotFound(prescription_id)
        return prescription.to_dict()


@translate_storage_errors(PRESCRIPTIONS_SCHEMA_MISSING_MESSAGE)
def list_prescriptions(
    pagination: Optional[PaginationParams] = None,
    *,
    patient_id: Optional[str] = None,
    session=None,
) -> PaginatedResult[Dict[str, Any]]:
    """
    List prescriptions newest first, enriched with patient and doctor names.

    Args:
        pagination: Page to return; None returns every prescription as one page
        patient_id: Optional filter by patient
        session: Optional database session

    Returns:
        PaginatedResult whose items are prescription dicts
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        query = session.query(Prescription)
        if patient_id:
            query = query.filter(Prescription.patient_id == patient_id)
        total = query.count()

        query = _prescription_query(session)
        if patient_id:
            query = query.filter(Prescription.patient_id == patient_id)
        query = query.order_by(Prescription.created_at.desc(), Prescription.id.desc())

        if pagination is None:
            rows = query.all()
            return PaginatedResult(
                items=[row.to_dict() for row in rows],
                total=total,
                page=1,
                per_page=max(total, 1),
            )

        rows = query.offset(pagination.offset()).limit(pagination.per_page).all()
        return PaginatedResult(
            items=[row.to_dict() for row in rows],
            total=total,
            page=pagination.page,
            per_page=pagination.per_page,
        )


@translate_storage_errors(PRESCRIPTIONS_SCHEMA_MISSING_MESSAGE)
def delete_prescription(prescription_id: str, session=None) -> None:
    """
    Delete a prescription and its lines.

    Stock consumed at issue time is not restored.

    Raises:
        PrescriptionNotFound: If no prescription has this ID
    """
    cm = nullcontext(session) if session is not None else session_scope()
    with cm as session:
        prescription = session.get(Prescription, prescription_id) if prescription_id else None
        if prescription is None:
            raise PrescriptionNotFound(prescription_id)
        session.delete(prescription)
        session.flush()

    log_operation(logger, operation="delete_prescription", outcome="success", prescription_id=prescription_id)

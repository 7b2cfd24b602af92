"""
Tests for prescription_service.

Covers issuance end to end (validation, stock consumption, persistence),
rollback when line persistence fails, participant checks, and the
get/list/delete operations.
"""

import pytest
from sqlalchemy.exc import SQLAlchemyError

from src.models import InventoryAdjustment, InventoryItem, Prescription, PrescriptionLine
from src.services import inventory_service, prescription_service
from src.services.dto import PaginationParams
from src.services.exceptions import (
    DatabaseError,
    DoctorNotFound,
    InsufficientStockError,
    PatientNotFound,
    PrescriptionNotFound,
    SchemaNotProvisionedError,
    ValidationError,
)
from src.utils.constants import PRESCRIPTIONS_SCHEMA_MISSING_MESSAGE


def _line(item_id, quantity, dosage="1 tab TID"):
    return {"item_id": item_id, "dosage": dosage, "quantity": quantity}


def _quantity(session, item_id):
    return session.get(InventoryItem, item_id).quantity


# =============================================================================
# Issuance
# =============================================================================


class TestIssuePrescription:
    """Tests for issue_prescription()"""

    def test_single_line_consumes_stock(self, test_db, patient, doctor, paracetamol):
        result = prescription_service.issue_prescription(
            patient.id, doctor.id, [_line(paracetamol.id, 10)], actor_id=doctor.id
        )

        assert result["id"]
        assert result["patient_id"] == patient.id
        assert result["doctor_id"] == doctor.id
        assert result["patient_name"] == "Jordan Blake"
        assert result["doctor_name"] == "Dr. Amina Yusuf"
        assert result["created_at"]
        assert result["lines"] == [
            {
                "item_id": paracetamol.id,
                "name": "Paracetamol 500mg",
                "dosage": "1 tab TID",
                "quantity": 10,
            }
        ]

        session = test_db()
        assert _quantity(session, paracetamol.id) == 90
        adjustments = session.query(InventoryAdjustment).all()
        assert len(adjustments) == 1
        assert adjustments[0].delta == -10
        assert session.query(Prescription).count() == 1

    def test_shortage_rejects_whole_prescription(
        self, test_db, patient, doctor, paracetamol, amoxicillin
    ):
        with pytest.raises(InsufficientStockError) as exc_info:
            prescription_service.issue_prescription(
                patient.id,
                doctor.id,
                [_line(paracetamol.id, 10), _line(amoxicillin.id, 8)],
            )

        assert exc_info.value.to_list() == [
            {"item_id": amoxicillin.id, "name": "Amoxicillin 250mg", "requested": 8, "available": 5}
        ]
        session = test_db()
        assert _quantity(session, paracetamol.id) == 100
        assert _quantity(session, amoxicillin.id) == 5
        assert session.query(InventoryAdjustment).count() == 0
        assert session.query(Prescription).count() == 0

    def test_repeated_item_lines_are_aggregated(self, test_db, patient, doctor, gauze):
        result = prescription_service.issue_prescription(
            patient.id,
            doctor.id,
            [_line(gauze.id, 4, "apply AM"), _line(gauze.id, 4, "apply PM")],
        )

        assert [line["dosage"] for line in result["lines"]] == ["apply AM", "apply PM"]
        session = test_db()
        assert _quantity(session, gauze.id) == 2
        assert [adj.delta for adj in session.query(InventoryAdjustment).all()] == [-8]

    def test_repeated_item_lines_short_in_aggregate(self, test_db, patient, doctor, gauze):
        with pytest.raises(InsufficientStockError) as exc_info:
            prescription_service.issue_prescription(
                patient.id, doctor.id, [_line(gauze.id, 6), _line(gauze.id, 6)]
            )
        assert exc_info.value.shortages[0].requested == 12
        assert _quantity(test_db(), gauze.id) == 10

    def test_unknown_item_is_a_shortage(self, test_db, patient, doctor):
        with pytest.raises(InsufficientStockError) as exc_info:
            prescription_service.issue_prescription(patient.id, doctor.id, [_line("ghost", 1)])
        assert exc_info.value.shortages[0].name == "Unknown item"

    def test_line_names_are_snapshots(self, test_db, patient, doctor, gauze):
        result = prescription_service.issue_prescription(patient.id, doctor.id, [_line(gauze.id, 1)])
        inventory_service.add_item({"id": gauze.id, "name": "Sterile gauze", "quantity": 9})

        stored = prescription_service.get_prescription(result["id"])
        assert stored["lines"][0]["name"] == "Gauze pads"

    def test_notes_are_trimmed(self, test_db, patient, doctor, gauze):
        result = prescription_service.issue_prescription(
            patient.id, doctor.id, [_line(gauze.id, 1)], notes="  after meals  "
        )
        assert result["notes"] == "after meals"

        blank = prescription_service.issue_prescription(
            patient.id, doctor.id, [_line(gauze.id, 1)], notes="   "
        )
        assert blank["notes"] is None

    def test_identical_requests_are_not_deduplicated(self, test_db, patient, doctor, gauze):
        lines = [_line(gauze.id, 2)]
        first = prescription_service.issue_prescription(patient.id, doctor.id, lines)
        second = prescription_service.issue_prescription(patient.id, doctor.id, lines)

        assert first["id"] != second["id"]
        assert _quantity(test_db(), gauze.id) == 6


class TestIssueValidation:
    """Malformed requests fail before any storage access."""

    @pytest.mark.parametrize(
        "lines",
        [
            [],
            None,
            [{"item_id": "x", "dosage": "1 tab", "quantity": 0}],
            [{"item_id": "x", "dosage": "1 tab", "quantity": -2}],
            [{"item_id": "x", "dosage": "1 tab", "quantity": 1.5}],
            [{"item_id": "x", "dosage": "   ", "quantity": 1}],
            [{"item_id": "x", "dosage": "d" * 201, "quantity": 1}],
            [{"item_id": "", "dosage": "1 tab", "quantity": 1}],
            ["not a line"],
        ],
    )
    def test_invalid_lines(self, test_db, patient, doctor, gauze, lines):
        with pytest.raises(ValidationError):
            prescription_service.issue_prescription(patient.id, doctor.id, lines)
        session = test_db()
        assert session.query(Prescription).count() == 0
        assert _quantity(session, gauze.id) == 10

    def test_notes_too_long(self, test_db, patient, doctor, gauze):
        with pytest.raises(ValidationError):
            prescription_service.issue_prescription(
                patient.id, doctor.id, [_line(gauze.id, 1)], notes="n" * 501
            )

    def test_missing_participants(self, test_db, gauze):
        with pytest.raises(ValidationError) as exc_info:
            prescription_service.issue_prescription("", None, [_line(gauze.id, 1)])
        assert "Patient is required" in exc_info.value.errors
        assert "Doctor is required" in exc_info.value.errors

    def test_dosage_is_trimmed(self):
        lines = prescription_service.validate_prescription_request(
            "p", "d", [{"item_id": "x", "dosage": "  2 caps BID ", "quantity": 1}]
        )
        assert lines == [{"item_id": "x", "dosage": "2 caps BID", "quantity": 1}]


class TestOrphanPrevention:
    """A failure writing lines leaves no header and no stock change behind."""

    def test_line_failure_rolls_back_everything(
        self, test_db, patient, doctor, paracetamol, monkeypatch
    ):
        def failing_persist_lines(header, lines, names, session):
            raise SQLAlchemyError("disk I/O error")

        monkeypatch.setattr(prescription_service, "_persist_lines", failing_persist_lines)

        with pytest.raises(DatabaseError):
            prescription_service.issue_prescription(
                patient.id, doctor.id, [_line(paracetamol.id, 10)]
            )

        session = test_db()
        assert session.query(Prescription).count() == 0
        assert session.query(PrescriptionLine).count() == 0
        assert session.query(InventoryAdjustment).count() == 0
        assert _quantity(session, paracetamol.id) == 100

    def test_every_stored_header_has_lines(self, test_db, patient, doctor, gauze, paracetamol):
        prescription_service.issue_prescription(patient.id, doctor.id, [_line(gauze.id, 1)])
        prescription_service.issue_prescription(
            patient.id, doctor.id, [_line(gauze.id, 1), _line(paracetamol.id, 3)]
        )
        session = test_db()
        for header in session.query(Prescription).all():
            assert len(header.lines) >= 1


# =============================================================================
# Participants
# =============================================================================


class TestVerifyParticipants:
    """Tests for verify_participants()"""

    def test_returns_names(self, test_db, patient, doctor):
        names = prescription_service.verify_participants(patient.id, doctor.id)
        assert names == {"patient_name": "Jordan Blake", "doctor_name": "Dr. Amina Yusuf"}

    def test_unknown_patient(self, test_db, doctor):
        with pytest.raises(PatientNotFound) as exc_info:
            prescription_service.verify_participants("nobody", doctor.id)
        assert str(exc_info.value) == "Patient not found"

    def test_unknown_doctor(self, test_db, patient):
        with pytest.raises(DoctorNotFound):
            prescription_service.verify_participants(patient.id, "nobody")

    def test_staff_without_doctor_role(self, test_db, patient, nurse):
        with pytest.raises(DoctorNotFound) as exc_info:
            prescription_service.verify_participants(patient.id, nurse.id)
        assert str(exc_info.value) == "Doctor not found"


# =============================================================================
# Queries and deletion
# =============================================================================


class TestGetPrescription:
    """Tests for get_prescription()"""

    def test_round_trip(self, test_db, patient, doctor, gauze):
        issued = prescription_service.issue_prescription(
            patient.id, doctor.id, [_line(gauze.id, 2)], notes="follow up"
        )
        fetched = prescription_service.get_prescription(issued["id"])
        assert fetched == issued

    def test_not_found(self, test_db):
        with pytest.raises(PrescriptionNotFound):
            prescription_service.get_prescription("missing-id")


class TestListPrescriptions:
    """Tests for list_prescriptions()"""

    def test_newest_first_with_names(self, test_db, patient, doctor, gauze):
        first = prescription_service.issue_prescription(patient.id, doctor.id, [_line(gauze.id, 1)])
        second = prescription_service.issue_prescription(patient.id, doctor.id, [_line(gauze.id, 1)])

        result = prescription_service.list_prescriptions()
        assert result.total == 2
        assert [p["id"] for p in result.items] == [second["id"], first["id"]]
        assert result.items[0]["patient_name"] == "Jordan Blake"
        assert result.items[0]["doctor_name"] == "Dr. Amina Yusuf"

    def test_pagination(self, test_db, patient, doctor, gauze):
        for _ in range(3):
            prescription_service.issue_prescription(patient.id, doctor.id, [_line(gauze.id, 1)])

        page = prescription_service.list_prescriptions(PaginationParams(page=2, per_page=2))
        assert page.total == 3
        assert page.pages == 2
        assert len(page.items) == 1
        assert page.has_prev and not page.has_next

    def test_empty(self, test_db):
        result = prescription_service.list_prescriptions()
        assert result.items == []
        assert result.total == 0


class TestDeletePrescription:
    """Tests for delete_prescription()"""

    def test_deletes_header_and_lines_without_restocking(self, test_db, patient, doctor, gauze):
        issued = prescription_service.issue_prescription(patient.id, doctor.id, [_line(gauze.id, 3)])
        prescription_service.delete_prescription(issued["id"])

        session = test_db()
        assert session.query(Prescription).count() == 0
        assert session.query(PrescriptionLine).count() == 0
        assert _quantity(session, gauze.id) == 7

    def test_not_found(self, test_db):
        with pytest.raises(PrescriptionNotFound):
            prescription_service.delete_prescription("missing-id")


class TestSchemaMissing:
    def test_issue_without_tables(self, unprovisioned_db):
        with pytest.raises(SchemaNotProvisionedError) as exc_info:
            prescription_service.issue_prescription("p", "d", [_line("x", 1)])
        assert exc_info.value.operator_message == PRESCRIPTIONS_SCHEMA_MISSING_MESSAGE

    def test_list_without_tables(self, unprovisioned_db):
        with pytest.raises(SchemaNotProvisionedError):
            prescription_service.list_prescriptions()

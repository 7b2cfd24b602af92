"""
Legacy prescription import.

One-off migration of the JSON prescription file kept by the pre-database
version of the clinic system into the prescriptions tables. Each record is
written in its own transaction: a record whose header or lines fail is
reported and left out entirely, and the rest of the file still imports.

Imported prescriptions are historical, so no stock is consumed.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from src.models import Prescription, PrescriptionLine
from src.services.database import is_schema_missing, session_scope, translate_storage_errors
from src.services.exceptions import ValidationError
from src.services.logging_utils import get_service_logger, log_operation
from src.utils.config import get_config
from src.utils.constants import (
    FALLBACK_LINE_NAME,
    LEGACY_PRESCRIPTIONS_FILENAME,
    PRESCRIPTIONS_SCHEMA_MISSING_MESSAGE,
)

logger = get_service_logger(__name__)


class MigrationResult:
    """Result of a legacy import: counts plus the id and reason of every failure."""

    def __init__(self):
        self.total = 0
        self.migrated = 0
        self.existing = 0
        self.skipped: List[Dict[str, str]] = []

    def add_skip(self, record_id: str, reason: str):
        self.skipped.append({"id": record_id, "reason": reason})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "migrated": self.migrated,
            "existing": self.existing,
            "skipped": list(self.skipped),
        }

    def get_summary(self) -> str:
        lines = [
            f"Legacy prescriptions: {self.total}",
            f"  Migrated: {self.migrated}",
            f"  Already present: {self.existing}",
            f"  Skipped: {len(self.skipped)}",
        ]
        for skip in self.skipped:
            lines.append(f"    - {skip['id']}: {skip['reason']}")
        return "\n".join(lines)


def default_legacy_path() -> Path:
    """Legacy file location: next to the SQLite database file."""
    return get_config().database_path.parent / LEGACY_PRESCRIPTIONS_FILENAME


def _read_legacy_file(path: Path) -> List[Any]:
    if not path.exists():
        logger.info(f"No legacy prescription file at {path}")
        return []
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ValidationError([f"Invalid JSON in {path.name}: {e}"])
    if not isinstance(data, list):
        raise ValidationError([f"{path.name} must contain a list of prescriptions"])
    return data


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _build_prescription(record: Dict[str, Any]) -> Prescription:
    """Map a legacy record to an unsaved Prescription with its lines."""
    prescription = Prescription(
        id=record["id"],
        patient_id=record.get("patient_id"),
        doctor_id=record.get("doctor_id"),
        notes=record.get("notes"),
    )
    created_at = _parse_timestamp(record.get("created_at"))
    if created_at is not None:
        prescription.created_at = created_at
        prescription.updated_at = created_at

    for position, line in enumerate(record.get("lines") or []):
        prescription.lines.append(
            PrescriptionLine(
                inventory_item_id=line.get("item_id") or None,
                name=line.get("name") or FALLBACK_LINE_NAME,
                dosage=line.get("dosage"),
                quantity=line.get("quantity"),
                position=position,
            )
        )
    return prescription


@translate_storage_errors(PRESCRIPTIONS_SCHEMA_MISSING_MESSAGE)
def import_legacy_prescriptions(path: Optional[Union[str, Path]] = None) -> MigrationResult:
    """
    Import prescriptions from the legacy JSON file.

    Records whose id already exists are left alone and counted as existing.
    Records that fail to insert are listed in result.skipped with the
    reason; their header and lines are rolled back together.

    Args:
        path: Legacy file; defaults to prescriptions.json in the data directory

    Returns:
        MigrationResult

    Raises:
        ValidationError: If the file isn't a JSON list
        SchemaNotProvisionedError: If the prescriptions tables don't exist
    """
    path = Path(path) if path is not None else default_legacy_path()
    records = _read_legacy_file(path)

    result = MigrationResult()
    result.total = len(records)

    for record in records:
        record_id = record.get("id") if isinstance(record, dict) else None
        if not record_id:
            result.add_skip(str(record_id or ""), "Record has no id")
            continue

        try:
            with session_scope() as session:
                if session.get(Prescription, record_id) is not None:
                    result.existing += 1
                    continue
                session.add(_build_prescription(record))
                session.flush()
        except SQLAlchemyError as e:
            if is_schema_missing(e):
                raise
            reason = str(getattr(e, "orig", None) or e)
            log_operation(
                logger,
                operation="import_legacy_prescriptions",
                outcome="record_skipped",
                level=logging.WARNING,
                prescription_id=record_id,
                reason=reason,
            )
            result.add_skip(record_id, reason)
            continue
        except (TypeError, ValueError, AttributeError) as e:
            result.add_skip(record_id, f"Malformed record: {e}")
            continue

        result.migrated += 1

    log_operation(
        logger,
        operation="import_legacy_prescriptions",
        outcome="complete",
        total=result.total,
        migrated=result.migrated,
        existing=result.existing,
        skipped=len(result.skipped),
    )
    return result

"""FastAPI dependencies: DB session, current staff member, role guards.

The default staff resolver trusts an X-Staff-Id header set by the
authenticating proxy in front of the API. Deployments with their own
identity provider replace get_current_staff through
app.dependency_overrides; services never see roles.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Generator, Iterable, Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.models import StaffMember
from src.services.database import get_session, is_schema_missing
from src.services.exceptions import DatabaseError, SchemaNotProvisionedError
from src.utils.constants import CLINIC_SCHEMA_MISSING_MESSAGE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StaffContext:
    """The authenticated caller, as seen by route handlers."""

    id: str
    role: str
    full_name: Optional[str] = None


def get_db() -> Generator[Session, None, None]:
    """Get database session."""
    db = get_session()
    try:
        yield db
    finally:
        db.close()


def get_current_staff(
    x_staff_id: Optional[str] = Header(None),
    db: Session = Depends(get_db),
) -> StaffContext:
    """Load the calling staff member named by the X-Staff-Id header."""
    if not x_staff_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    try:
        staff = db.get(StaffMember, x_staff_id)
    except SQLAlchemyError as e:
        if is_schema_missing(e):
            raise SchemaNotProvisionedError(CLINIC_SCHEMA_MISSING_MESSAGE, e) from e
        raise DatabaseError(str(e), e) from e

    if staff is None:
        logger.warning(f"Unknown staff id presented: {x_staff_id}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return StaffContext(id=staff.id, role=staff.role, full_name=staff.full_name)


def require_roles(roles: Iterable[str]) -> Callable[..., StaffContext]:
    """
    Build a dependency that admits only staff carrying one of roles.

    Example:
        @router.delete("/{prescription_id}")
        def delete(staff: StaffContext = Depends(require_roles({"admin"}))):
            ...
    """
    allowed = frozenset(roles)

    def guard(staff: StaffContext = Depends(get_current_staff)) -> StaffContext:
        if staff.role not in allowed:
            logger.warning(f"Forbidden: role '{staff.role}' not in {sorted(allowed)}")
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return staff

    return guard

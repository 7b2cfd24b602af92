"""
Stock Ledger Service.

Authoritative on-hand quantity per inventory item, with an auditable
mutation path: every quantity change made here is paired with exactly one
InventoryAdjustment row written in the same transaction.

Key Functions:
- Query Functions: get_item, list_items, list_items_by_ids,
  get_low_stock_items, get_adjustment_history
- Mutation Functions: adjust_quantity (creates audit trail), set_quantity,
  add_item

Session Pattern:
All functions accept an optional `session` parameter. If provided, the function
uses the caller's session (for transaction atomicity). If None, the function
creates its own session via session_scope().
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import update

from src.models import InventoryItem, InventoryAdjustment
from src.services.database import session_scope, translate_storage_errors
from src.services.exceptions import (
    InventoryItemNotFound,
    StockConflictError,
    ValidationError,
)
from src.services.logging_utils import get_service_logger, log_operation
from src.utils.constants import (
    INVENTORY_SCHEMA_MISSING_MESSAGE,
    ITEM_REPLACED_NOTE,
    MIN_ITEM_NAME_LENGTH,
    MAX_ITEM_NAME_LENGTH,
    MAX_ITEM_DESCRIPTION_LENGTH,
    MAX_ITEM_UNIT_LENGTH,
)
from src.utils.datetime_utils import utc_now

logger = get_service_logger(__name__)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _clean_text(value: Optional[str]) -> Optional[str]:
    """Trim a text field, mapping blank strings to None."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _non_negative_int(value: Any) -> int:
    """Coerce to a non-negative integer; unparseable values count as 0."""
    try:
        return max(0, int(value or 0))
    except (TypeError, ValueError):
        return 0


# =============================================================================
# Query Functions
# =============================================================================


@translate_storage_errors(INVENTORY_SCHEMA_MISSING_MESSAGE)
def get_item(item_id: str, session=None) -> InventoryItem:
    """
    Point lookup of an inventory item.

    Args:
        item_id: Inventory item ID
        session: Optional SQLAlchemy session for transactional composition.

    Returns:
        InventoryItem

    Raises:
        InventoryItemNotFound: If no item has this ID
        SchemaNotProvisionedError: If the inventory tables don't exist
    """
    if session is not None:
        return _get_item_impl(item_id, session)
    with session_scope() as session:
        return _get_item_impl(item_id, session)


def _get_item_impl(item_id: str, session) -> InventoryItem:
    item = session.get(InventoryItem, item_id) if item_id else None
    if item is None:
        raise InventoryItemNotFound(item_id)
    return item


@translate_storage_errors(INVENTORY_SCHEMA_MISSING_MESSAGE)
def list_items(session=None) -> List[InventoryItem]:
    """
    List every inventory item ordered by name.

    Transaction boundary: Read-only operation.
    """
    if session is not None:
        return _list_items_impl(session)
    with session_scope() as session:
        return _list_items_impl(session)


def _list_items_impl(session) -> List[InventoryItem]:
    return session.query(InventoryItem).order_by(InventoryItem.name.asc()).all()


@translate_storage_errors(INVENTORY_SCHEMA_MISSING_MESSAGE)
def list_items_by_ids(item_ids: Iterable[str], session=None) -> List[InventoryItem]:
    """
    Batch lookup of inventory items.

    IDs that don't exist are simply absent from the result; callers decide
    whether that is an error.

    Args:
        item_ids: IDs to fetch (duplicates allowed)
        session: Optional SQLAlchemy session for transactional composition.

    Returns:
        List of InventoryItem (no particular order)
    """
    ids = list(dict.fromkeys(i for i in item_ids if i))
    if not ids:
        return []
    if session is not None:
        return _list_items_by_ids_impl(ids, session)
    with session_scope() as session:
        return _list_items_by_ids_impl(ids, session)


def _list_items_by_ids_impl(ids: List[str], session) -> List[InventoryItem]:
    return session.query(InventoryItem).filter(InventoryItem.id.in_(ids)).all()


@translate_storage_errors(INVENTORY_SCHEMA_MISSING_MESSAGE)
def get_low_stock_items(limit: Optional[int] = None, session=None) -> List[InventoryItem]:
    """
    Get items whose quantity is at or below their low-stock threshold.

    Args:
        limit: Maximum number of items to return; None returns all
        session: Optional SQLAlchemy session for transactional composition.

    Returns:
        List of InventoryItem, lowest quantity first
    """
    if session is not None:
        return _get_low_stock_items_impl(limit, session)
    with session_scope() as session:
        return _get_low_stock_items_impl(limit, session)


def _get_low_stock_items_impl(limit: Optional[int], session) -> List[InventoryItem]:
    query = (
        session.query(InventoryItem)
        .filter(InventoryItem.quantity <= InventoryItem.low_stock_threshold)
        .order_by(InventoryItem.quantity.asc(), InventoryItem.name.asc())
    )
    if limit is not None:
        query = query.limit(limit)
    return query.all()


@translate_storage_errors(INVENTORY_SCHEMA_MISSING_MESSAGE)
def get_adjustment_history(
    item_id: Optional[str] = None,
    limit: Optional[int] = None,
    session=None,
) -> List[InventoryAdjustment]:
    """
    Read the adjustment audit trail, newest first.

    Args:
        item_id: Restrict to one item. Raises if the item doesn't exist.
        limit: Maximum number of records; None returns all
        session: Optional SQLAlchemy session for transactional composition.

    Raises:
        InventoryItemNotFound: If item_id is given and unknown
    """
    if session is not None:
        return _get_adjustment_history_impl(item_id, limit, session)
    with session_scope() as session:
        return _get_adjustment_history_impl(item_id, limit, session)


def _get_adjustment_history_impl(
    item_id: Optional[str], limit: Optional[int], session
) -> List[InventoryAdjustment]:
    query = session.query(InventoryAdjustment)
    if item_id is not None:
        _get_item_impl(item_id, session)
        query = query.filter(InventoryAdjustment.item_id == item_id)
    query = query.order_by(InventoryAdjustment.created_at.desc())
    if limit is not None:
        query = query.limit(limit)
    return query.all()


# =============================================================================
# Mutation Functions
# =============================================================================


@translate_storage_errors(INVENTORY_SCHEMA_MISSING_MESSAGE)
def adjust_quantity(
    item_id: str,
    delta: int,
    *,
    note: Optional[str] = None,
    actor_id: Optional[str] = None,
    expected_quantity: Optional[int] = None,
    session=None,
) -> InventoryItem:
    """
    Apply a signed delta to an item's quantity and record it in the audit trail.

    Transaction boundary: Multi-step operation (atomic).
    Steps executed in one transaction:
        1. Fetch the item
        2. Write quantity = max(0, quantity + delta)
        3. Create the InventoryAdjustment record
        4. Flush

    The result is floored at zero rather than rejected: a withdrawal larger
    than the stock on hand empties the item. Callers that need a hard
    failure on insufficient stock must check first (see
    consumption_service.consume). The audit record keeps the delta that was
    requested, not the clamped one.

    When expected_quantity is given the write is a compare-and-swap: it
    applies only if the stored quantity still equals expected_quantity.

    Args:
        item_id: Inventory item ID
        delta: Signed change (negative to withdraw)
        note: Optional audit note
        actor_id: Staff member making the change
        expected_quantity: Quantity the caller last observed (optimistic locking)
        session: Optional SQLAlchemy session for transactional composition.

    Returns:
        The updated InventoryItem

    Raises:
        ValidationError: If delta is not an integer
        InventoryItemNotFound: If no item has this ID
        StockConflictError: If expected_quantity no longer matches
    """
    if not _is_int(delta):
        raise ValidationError(["Delta must be a whole number"])
    if session is not None:
        return _adjust_quantity_impl(item_id, delta, note, actor_id, expected_quantity, session)
    with session_scope() as session:
        return _adjust_quantity_impl(item_id, delta, note, actor_id, expected_quantity, session)


def _adjust_quantity_impl(
    item_id: str,
    delta: int,
    note: Optional[str],
    actor_id: Optional[str],
    expected_quantity: Optional[int],
    session,
) -> InventoryItem:
    """Implementation for adjust_quantity.

    Transaction boundary: Inherits session from caller.
    """
    item = _get_item_impl(item_id, session)

    if expected_quantity is None:
        previous_quantity = int(item.quantity or 0)
        new_quantity = max(0, previous_quantity + delta)
        item.quantity = new_quantity
        item.updated_by = actor_id
        item.last_updated = utc_now()
    else:
        previous_quantity = expected_quantity
        new_quantity = max(0, previous_quantity + delta)
        result = session.execute(
            update(InventoryItem)
            .where(
                InventoryItem.id == item_id,
                InventoryItem.quantity == expected_quantity,
            )
            .values(quantity=new_quantity, updated_by=actor_id, last_updated=utc_now())
            .execution_options(synchronize_session=False)
        )
        session.refresh(item)
        if result.rowcount != 1:
            log_operation(
                logger,
                operation="adjust_quantity",
                outcome="stock_conflict",
                level=logging.WARNING,
                item_id=item_id,
                expected_quantity=expected_quantity,
                actual_quantity=item.quantity,
            )
            raise StockConflictError(item_id, expected_quantity, item.quantity)

    adjustment = InventoryAdjustment(
        item_id=item_id,
        delta=delta,
        previous_quantity=previous_quantity,
        new_quantity=new_quantity,
        note=note,
        created_by=actor_id,
    )
    session.add(adjustment)
    session.flush()

    log_operation(
        logger,
        operation="adjust_quantity",
        outcome="success",
        level=logging.DEBUG,
        item_id=item_id,
        delta=delta,
        previous_quantity=previous_quantity,
        new_quantity=new_quantity,
        adjustment_id=adjustment.id,
    )
    return item


@translate_storage_errors(INVENTORY_SCHEMA_MISSING_MESSAGE)
def set_quantity(
    item_id: str,
    quantity: int,
    *,
    note: Optional[str] = None,
    actor_id: Optional[str] = None,
    session=None,
) -> InventoryItem:
    """
    Set an item's quantity to an absolute value.

    Computes delta = max(0, quantity) - current and delegates to
    adjust_quantity, so the change lands in the audit trail like any other.

    Raises:
        ValidationError: If quantity is not an integer
        InventoryItemNotFound: If no item has this ID
    """
    if not _is_int(quantity):
        raise ValidationError(["Quantity must be a whole number"])
    if session is not None:
        return _set_quantity_impl(item_id, quantity, note, actor_id, session)
    with session_scope() as session:
        return _set_quantity_impl(item_id, quantity, note, actor_id, session)


def _set_quantity_impl(
    item_id: str, quantity: int, note: Optional[str], actor_id: Optional[str], session
) -> InventoryItem:
    item = _get_item_impl(item_id, session)
    delta = max(0, quantity) - int(item.quantity or 0)
    return _adjust_quantity_impl(item_id, delta, note, actor_id, None, session)


def _validate_item_fields(fields: Dict[str, Any]) -> List[str]:
    errors = []
    name = _clean_text(fields.get("name"))
    if not name:
        errors.append("Name is required")
    elif len(name) < MIN_ITEM_NAME_LENGTH:
        errors.append(f"Name must be at least {MIN_ITEM_NAME_LENGTH} characters")
    elif len(name) > MAX_ITEM_NAME_LENGTH:
        errors.append(f"Name must be at most {MAX_ITEM_NAME_LENGTH} characters")

    description = _clean_text(fields.get("description"))
    if description and len(description) > MAX_ITEM_DESCRIPTION_LENGTH:
        errors.append(f"Description must be at most {MAX_ITEM_DESCRIPTION_LENGTH} characters")

    unit = _clean_text(fields.get("unit"))
    if unit and len(unit) > MAX_ITEM_UNIT_LENGTH:
        errors.append(f"Unit must be at most {MAX_ITEM_UNIT_LENGTH} characters")
    return errors


@translate_storage_errors(INVENTORY_SCHEMA_MISSING_MESSAGE)
def add_item(
    fields: Dict[str, Any],
    *,
    actor_id: Optional[str] = None,
    session=None,
) -> InventoryItem:
    """
    Create an inventory item, or replace it when an existing id is supplied.

    Accepted keys: id, name, description, unit, quantity, low_stock_threshold
    (lowStockThreshold is accepted as an alias). Text fields are trimmed and
    blank ones stored as NULL; quantity and threshold default to 0 and are
    floored at 0. Replacing an item with a different quantity records the
    change as an "Item replaced" adjustment.

    Args:
        fields: Item attributes
        actor_id: Staff member making the change
        session: Optional SQLAlchemy session for transactional composition.

    Returns:
        The created or replaced InventoryItem

    Raises:
        ValidationError: If the name is missing or a field is too long
    """
    errors = _validate_item_fields(fields)
    if errors:
        raise ValidationError(errors)
    if session is not None:
        return _add_item_impl(fields, actor_id, session)
    with session_scope() as session:
        return _add_item_impl(fields, actor_id, session)


def _add_item_impl(fields: Dict[str, Any], actor_id: Optional[str], session) -> InventoryItem:
    threshold = fields.get("low_stock_threshold", fields.get("lowStockThreshold"))
    values = {
        "name": _clean_text(fields.get("name")),
        "description": _clean_text(fields.get("description")),
        "unit": _clean_text(fields.get("unit")),
        "quantity": _non_negative_int(fields.get("quantity")),
        "low_stock_threshold": _non_negative_int(threshold),
        "updated_by": actor_id,
        "last_updated": utc_now(),
    }

    item_id = _clean_text(fields.get("id"))
    item = session.get(InventoryItem, item_id) if item_id else None
    created = item is None
    if created:
        item = InventoryItem(id=item_id, **values) if item_id else InventoryItem(**values)
        session.add(item)
        session.flush()
    else:
        # Quantity changes on replace go through the audited path
        new_quantity = values.pop("quantity")
        for key, value in values.items():
            setattr(item, key, value)
        delta = new_quantity - int(item.quantity or 0)
        if delta:
            _adjust_quantity_impl(item.id, delta, ITEM_REPLACED_NOTE, actor_id, None, session)
        else:
            session.flush()

    log_operation(
        logger,
        operation="add_item",
        outcome="created" if created else "replaced",
        item_id=item.id,
        quantity=item.quantity,
    )
    return item

"""
Consumption Planner Service.

Turns a list of stock requirements into an all-or-nothing withdrawal from
the stock ledger:

1. Aggregate requirements by item (first-seen order preserved)
2. Check every aggregated requirement against one batch read of the items
3. Decide: any shortage returns the full shortage list, ledger untouched
4. Commit: one adjust_quantity call (and one audit record) per item

Check and commit share one transaction. With optimistic locking enabled
(CLINIC_OPTIMISTIC_LOCKING), the commit writes are compare-and-swap against
the quantities observed during the check, and a conflict restarts the whole
batch when the planner owns the transaction.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

from src.services.database import session_scope, translate_storage_errors
from src.services.exceptions import StockConflictError, ValidationError
from src.services.inventory_service import _adjust_quantity_impl, _list_items_by_ids_impl
from src.services.logging_utils import get_service_logger, log_operation
from src.utils.config import get_config
from src.utils.constants import (
    CONSUMPTION_NOTE,
    INVENTORY_SCHEMA_MISSING_MESSAGE,
    UNKNOWN_ITEM_NAME,
)

logger = get_service_logger(__name__)

T = TypeVar("T")


@dataclass
class Requirement:
    """A quantity of one inventory item needed by a caller."""

    item_id: str
    quantity: int


@dataclass
class Shortage:
    """An aggregated requirement the ledger cannot currently fulfil."""

    item_id: str
    name: str
    requested: int
    available: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_id": self.item_id,
            "name": self.name,
            "requested": self.requested,
            "available": self.available,
        }


@dataclass
class ConsumptionResult:
    """
    Outcome of a consume() call.

    Attributes:
        shortages: Every short item; empty when the batch was committed
        consumed: Aggregated requirements that were withdrawn (empty on shortage)
    """

    shortages: List[Shortage] = field(default_factory=list)
    consumed: List[Requirement] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.shortages


def _coerce_requirement(raw: Any) -> Requirement:
    if isinstance(raw, Requirement):
        return raw
    if isinstance(raw, dict):
        return Requirement(item_id=raw.get("item_id"), quantity=raw.get("quantity"))
    item_id, quantity = raw
    return Requirement(item_id=item_id, quantity=quantity)


def aggregate_requirements(requirements: Iterable[Any]) -> List[Requirement]:
    """
    Validate requirements and merge those that name the same item.

    Accepts Requirement instances, dicts with item_id/quantity keys, or
    (item_id, quantity) pairs.

    Args:
        requirements: Requirements in caller order

    Returns:
        One Requirement per distinct item, in first-seen order

    Raises:
        ValidationError: If an item_id is blank or a quantity is not a
            positive integer
    """
    totals: Dict[str, int] = {}
    errors = []
    for index, raw in enumerate(requirements, start=1):
        try:
            requirement = _coerce_requirement(raw)
        except (TypeError, ValueError):
            errors.append(f"Requirement {index}: expected item_id and quantity")
            continue

        item_id = requirement.item_id
        quantity = requirement.quantity
        if not isinstance(item_id, str) or not item_id.strip():
            errors.append(f"Requirement {index}: item_id is required")
            continue
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            errors.append(f"Requirement {index}: quantity must be a positive whole number")
            continue
        totals[item_id] = totals.get(item_id, 0) + quantity

    if errors:
        raise ValidationError(errors)
    return [Requirement(item_id=item_id, quantity=qty) for item_id, qty in totals.items()]


def _find_shortages(aggregated: List[Requirement], session):
    """Return (shortages, observed quantities by item id) for one batch read."""
    items = _list_items_by_ids_impl([r.item_id for r in aggregated], session)
    by_id = {item.id: item for item in items}

    shortages = []
    observed = {}
    for requirement in aggregated:
        item = by_id.get(requirement.item_id)
        if item is None:
            shortages.append(
                Shortage(
                    item_id=requirement.item_id,
                    name=UNKNOWN_ITEM_NAME,
                    requested=requirement.quantity,
                    available=0,
                )
            )
            continue
        available = int(item.quantity or 0)
        observed[item.id] = available
        if available < requirement.quantity:
            shortages.append(
                Shortage(
                    item_id=item.id,
                    name=item.name,
                    requested=requirement.quantity,
                    available=available,
                )
            )
    return shortages, observed


@translate_storage_errors(INVENTORY_SCHEMA_MISSING_MESSAGE)
def check_availability(requirements: Iterable[Any], session=None) -> List[Shortage]:
    """
    Dry run of consume(): report shortages without writing anything.

    Returns:
        List of Shortage (empty when everything is available)

    Raises:
        ValidationError: If a requirement is malformed
    """
    aggregated = aggregate_requirements(requirements)
    if not aggregated:
        return []
    if session is not None:
        return _find_shortages(aggregated, session)[0]
    with session_scope() as session:
        return _find_shortages(aggregated, session)[0]


def run_with_stock_retries(operation: str, func: Callable[[], T]) -> T:
    """
    Call func, restarting it after a StockConflictError.

    func must open and own its transaction so that each attempt re-reads
    the ledger from scratch. Gives up after consume_max_retries attempts and
    re-raises the last conflict.
    """
    attempts = get_config().consume_max_retries
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except StockConflictError as e:
            if attempt >= attempts:
                log_operation(
                    logger,
                    operation=operation,
                    outcome="stock_conflict_exhausted",
                    level=logging.ERROR,
                    item_id=e.item_id,
                    attempts=attempt,
                )
                raise
            log_operation(
                logger,
                operation=operation,
                outcome="stock_conflict_retry",
                level=logging.WARNING,
                item_id=e.item_id,
                attempt=attempt,
            )


@translate_storage_errors(INVENTORY_SCHEMA_MISSING_MESSAGE)
def consume(
    requirements: Iterable[Any],
    *,
    actor_id: Optional[str] = None,
    session=None,
) -> ConsumptionResult:
    """
    Withdraw every requirement from the ledger, or nothing at all.

    Transaction boundary: Multi-step operation (atomic).
    The check and every decrement run in one transaction. When a shortage
    is found the result carries the shortages and no write has happened.

    Args:
        requirements: Requirements (see aggregate_requirements for forms)
        actor_id: Staff member recorded on the audit rows
        session: Optional SQLAlchemy session. When given, the caller owns the
            transaction and stock conflicts are not retried here.

    Returns:
        ConsumptionResult

    Raises:
        ValidationError: If a requirement is malformed
        StockConflictError: If optimistic locking is on and retries ran out
    """
    aggregated = aggregate_requirements(requirements)
    if not aggregated:
        return ConsumptionResult()
    if session is not None:
        return _consume_impl(aggregated, actor_id, session)

    def attempt() -> ConsumptionResult:
        with session_scope() as own_session:
            return _consume_impl(aggregated, actor_id, own_session)

    return run_with_stock_retries("consume", attempt)


def _consume_impl(
    aggregated: List[Requirement], actor_id: Optional[str], session
) -> ConsumptionResult:
    """Implementation for consume over already-aggregated requirements.

    Transaction boundary: Inherits session from caller.
    """
    shortages, observed = _find_shortages(aggregated, session)
    if shortages:
        log_operation(
            logger,
            operation="consume",
            outcome="insufficient_stock",
            level=logging.WARNING,
            short_items=[s.item_id for s in shortages],
        )
        return ConsumptionResult(shortages=shortages)

    use_cas = get_config().optimistic_locking
    for requirement in aggregated:
        _adjust_quantity_impl(
            requirement.item_id,
            -requirement.quantity,
            CONSUMPTION_NOTE,
            actor_id,
            observed[requirement.item_id] if use_cas else None,
            session,
        )

    log_operation(
        logger,
        operation="consume",
        outcome="success",
        item_count=len(aggregated),
        total_units=sum(r.quantity for r in aggregated),
    )
    return ConsumptionResult(consumed=aggregated)

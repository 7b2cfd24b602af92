"""
Tests for consumption_service (all-or-nothing stock withdrawal).

Covers aggregation, the check/decide/commit phases, the dry-run
check_availability(), and the optimistic-locking retry loop.
"""

import pytest

from src.models import InventoryAdjustment, InventoryItem
from src.services import consumption_service, inventory_service
from src.services.consumption_service import Requirement, Shortage
from src.services.exceptions import StockConflictError, ValidationError
from src.utils.config import reset_config
from src.utils.constants import CONSUMPTION_NOTE, UNKNOWN_ITEM_NAME


def _quantity(session, item_id):
    return session.get(InventoryItem, item_id).quantity


class TestAggregateRequirements:
    """Tests for aggregate_requirements()"""

    def test_merges_same_item_in_first_seen_order(self):
        result = consumption_service.aggregate_requirements(
            [
                {"item_id": "b", "quantity": 2},
                Requirement("a", 1),
                ("b", 3),
            ]
        )
        assert result == [Requirement("b", 5), Requirement("a", 1)]

    def test_empty(self):
        assert consumption_service.aggregate_requirements([]) == []

    @pytest.mark.parametrize("quantity", [0, -1, 2.5, "3", True, None])
    def test_rejects_non_positive_or_non_integer(self, quantity):
        with pytest.raises(ValidationError):
            consumption_service.aggregate_requirements([{"item_id": "a", "quantity": quantity}])

    def test_rejects_blank_item_id(self):
        with pytest.raises(ValidationError) as exc_info:
            consumption_service.aggregate_requirements([Requirement("  ", 1)])
        assert "item_id is required" in str(exc_info.value)

    def test_reports_every_bad_requirement(self):
        with pytest.raises(ValidationError) as exc_info:
            consumption_service.aggregate_requirements(
                [Requirement("a", 0), Requirement("b", 1), Requirement("", 2)]
            )
        assert len(exc_info.value.errors) == 2


class TestConsume:
    """Tests for consume()"""

    def test_empty_requirements_write_nothing(self, test_db, gauze):
        result = consumption_service.consume([])
        assert result.ok
        assert result.shortages == []
        assert test_db().query(InventoryAdjustment).count() == 0

    def test_decrements_and_audits_each_item(self, test_db, paracetamol, gauze, doctor):
        result = consumption_service.consume(
            [Requirement(paracetamol.id, 10), Requirement(gauze.id, 3)],
            actor_id=doctor.id,
        )
        assert result.ok
        assert result.consumed == [Requirement(paracetamol.id, 10), Requirement(gauze.id, 3)]

        session = test_db()
        assert _quantity(session, paracetamol.id) == 90
        assert _quantity(session, gauze.id) == 7

        adjustments = session.query(InventoryAdjustment).all()
        assert len(adjustments) == 2
        assert {adj.note for adj in adjustments} == {CONSUMPTION_NOTE}
        assert {adj.created_by for adj in adjustments} == {doctor.id}

    def test_duplicate_lines_aggregate_into_one_decrement(self, test_db, gauze):
        result = consumption_service.consume([Requirement(gauze.id, 4), Requirement(gauze.id, 4)])
        assert result.ok

        session = test_db()
        assert _quantity(session, gauze.id) == 2
        adjustments = session.query(InventoryAdjustment).all()
        assert [adj.delta for adj in adjustments] == [-8]

    def test_aggregate_exceeding_stock_is_short(self, test_db, gauze):
        result = consumption_service.consume([Requirement(gauze.id, 6), Requirement(gauze.id, 6)])
        assert result.shortages == [Shortage(gauze.id, "Gauze pads", 12, 10)]
        assert _quantity(test_db(), gauze.id) == 10

    def test_any_shortage_leaves_every_item_untouched(self, test_db, paracetamol, amoxicillin):
        result = consumption_service.consume(
            [Requirement(paracetamol.id, 10), Requirement(amoxicillin.id, 8)]
        )

        assert not result.ok
        assert result.consumed == []
        assert result.shortages == [Shortage(amoxicillin.id, "Amoxicillin 250mg", 8, 5)]

        session = test_db()
        assert _quantity(session, paracetamol.id) == 100
        assert _quantity(session, amoxicillin.id) == 5
        assert session.query(InventoryAdjustment).count() == 0

    def test_reports_every_short_item(self, test_db, amoxicillin, gauze):
        result = consumption_service.consume(
            [Requirement(amoxicillin.id, 6), Requirement("ghost", 1), Requirement(gauze.id, 11)]
        )
        assert [s.item_id for s in result.shortages] == [amoxicillin.id, "ghost", gauze.id]

    def test_unknown_item_shortage(self, test_db):
        result = consumption_service.consume([Requirement("ghost", 2)])
        assert result.shortages == [Shortage("ghost", UNKNOWN_ITEM_NAME, 2, 0)]
        assert result.shortages[0].to_dict() == {
            "item_id": "ghost",
            "name": UNKNOWN_ITEM_NAME,
            "requested": 2,
            "available": 0,
        }

    def test_exact_quantity_empties_item(self, test_db, amoxicillin):
        assert consumption_service.consume([Requirement(amoxicillin.id, 5)]).ok
        assert _quantity(test_db(), amoxicillin.id) == 0

    def test_validation_happens_before_storage(self, test_db, gauze):
        with pytest.raises(ValidationError):
            consumption_service.consume([Requirement(gauze.id, 1), Requirement(gauze.id, 0)])
        assert _quantity(test_db(), gauze.id) == 10

    def test_joins_caller_transaction(self, test_db, gauze):
        session = test_db()
        assert consumption_service.consume([Requirement(gauze.id, 4)], session=session).ok
        session.rollback()

        assert _quantity(session, gauze.id) == 10
        assert session.query(InventoryAdjustment).count() == 0


class TestCheckAvailability:
    """Tests for check_availability()"""

    def test_reports_without_writing(self, test_db, amoxicillin, gauze):
        shortages = consumption_service.check_availability(
            [Requirement(amoxicillin.id, 8), Requirement(gauze.id, 1)]
        )
        assert shortages == [Shortage(amoxicillin.id, "Amoxicillin 250mg", 8, 5)]
        assert test_db().query(InventoryAdjustment).count() == 0

    def test_all_available(self, test_db, gauze):
        assert consumption_service.check_availability([Requirement(gauze.id, 10)]) == []


class TestOptimisticLocking:
    """Compare-and-swap commit and the retry loop."""

    def test_commit_uses_observed_quantities(self, test_db, gauze, optimistic_locking):
        assert consumption_service.consume([Requirement(gauze.id, 4)]).ok

        adj = test_db().query(InventoryAdjustment).one()
        assert adj.previous_quantity == 10
        assert adj.new_quantity == 6

    def test_conflict_is_retried(self, test_db, gauze, optimistic_locking, monkeypatch):
        real_adjust = consumption_service._adjust_quantity_impl
        calls = {"count": 0}

        def flaky_adjust(item_id, delta, note, actor_id, expected_quantity, session):
            calls["count"] += 1
            if calls["count"] == 1:
                raise StockConflictError(item_id, expected_quantity, expected_quantity - 1)
            return real_adjust(item_id, delta, note, actor_id, expected_quantity, session)

        monkeypatch.setattr(consumption_service, "_adjust_quantity_impl", flaky_adjust)

        assert consumption_service.consume([Requirement(gauze.id, 4)]).ok
        assert calls["count"] == 2
        assert _quantity(test_db(), gauze.id) == 6

    def test_conflict_propagates_after_retries(self, test_db, gauze, optimistic_locking, monkeypatch):
        monkeypatch.setenv("CLINIC_CONSUME_MAX_RETRIES", "2")
        reset_config()
        calls = {"count": 0}

        def always_conflict(item_id, delta, note, actor_id, expected_quantity, session):
            calls["count"] += 1
            raise StockConflictError(item_id, expected_quantity, 0)

        monkeypatch.setattr(consumption_service, "_adjust_quantity_impl", always_conflict)

        with pytest.raises(StockConflictError):
            consumption_service.consume([Requirement(gauze.id, 4)])
        assert calls["count"] == 2
        assert _quantity(test_db(), gauze.id) == 10

    def test_caller_owned_transaction_is_not_retried(
        self, test_db, gauze, optimistic_locking, monkeypatch
    ):
        calls = {"count": 0}

        def always_conflict(item_id, delta, note, actor_id, expected_quantity, session):
            calls["count"] += 1
            raise StockConflictError(item_id, expected_quantity, 0)

        monkeypatch.setattr(consumption_service, "_adjust_quantity_impl", always_conflict)

        with pytest.raises(StockConflictError):
            consumption_service.consume([Requirement(gauze.id, 4)], session=test_db())
        assert calls["count"] == 1

    def test_locking_off_passes_no_expected_quantity(self, test_db, gauze, monkeypatch):
        seen = []
        real_adjust = consumption_service._adjust_quantity_impl

        def spy(item_id, delta, note, actor_id, expected_quantity, session):
            seen.append(expected_quantity)
            return real_adjust(item_id, delta, note, actor_id, expected_quantity, session)

        monkeypatch.setattr(consumption_service, "_adjust_quantity_impl", spy)
        consumption_service.consume([Requirement(gauze.id, 1)])
        assert seen == [None]


class TestStockNeverNegative:
    """Repeated consumption can empty an item but never drive it below zero."""

    def test_sequence_of_batches(self, test_db, amoxicillin):
        results = [consumption_service.consume([Requirement(amoxicillin.id, 2)]) for _ in range(4)]
        assert [r.ok for r in results] == [True, True, False, False]

        session = test_db()
        assert _quantity(session, amoxicillin.id) == 1
        adjustments = session.query(InventoryAdjustment).all()
        assert all(adj.new_quantity >= 0 for adj in adjustments)
        assert len(adjustments) == 2

    def test_ledger_clamp_and_planner_agree(self, test_db, gauze):
        inventory_service.adjust_quantity(gauze.id, -50)
        result = consumption_service.consume([Requirement(gauze.id, 1)])
        assert result.shortages == [Shortage(gauze.id, "Gauze pads", 1, 0)]


class TestAuditParity:
    """Successful consumptions leave one audit row each that sum to the stock change."""

    def test_deltas_sum_to_quantity_change(self, test_db, paracetamol, gauze):
        session = test_db()
        before = {
            paracetamol.id: _quantity(session, paracetamol.id),
            gauze.id: _quantity(session, gauze.id),
        }
        session.close()

        batches = [
            [Requirement(paracetamol.id, 7)],
            [Requirement(paracetamol.id, 3), Requirement(gauze.id, 2)],
            [Requirement(gauze.id, 4)],
            [Requirement(paracetamol.id, 15)],
        ]
        for batch in batches:
            assert consumption_service.consume(batch).ok

        session = test_db()
        adjustments = session.query(InventoryAdjustment).all()
        assert len(adjustments) == 5
        for item_id in before:
            deltas = [adj.delta for adj in adjustments if adj.item_id == item_id]
            assert sum(deltas) == _quantity(session, item_id) - before[item_id]
        assert _quantity(session, paracetamol.id) == 75
        assert _quantity(session, gauze.id) == 4

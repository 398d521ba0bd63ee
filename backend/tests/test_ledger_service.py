# Overview: Pytest coverage for stock movements, low-stock flags, and ledger verification.

"""
Stock Ledger Tests

Verifies that:
1. in/out/adjustment arithmetic holds for every recorded movement
2. 'out' is strict: stock never goes negative and a refusal writes nothing
3. is_low_stock follows current_stock <= reorder_point on every movement
4. Untracked categories and bad input are refused before any write
5. verify_ledger reports no violations after normal use, and finds tampering
"""

import pytest
from sqlalchemy import text

from stockledger.models import Category, StockMovement
from stockledger.errors import (
    NotFoundError,
    NotStockTrackedError,
    InvalidMovementTypeError,
    InvalidReferenceTypeError,
    InvalidQuantityError,
    InsufficientStockError,
)
from stockledger.services import ledger_service, receiving_service


def _movement_count(db_session, category_id):
    return db_session.query(StockMovement).filter_by(category_id=category_id).count()


class TestApplyMovement:

    def test_opening_stock_is_a_movement(self, db_session, net_category):
        """Opening stock is booked as an adjustment so the log explains current_stock."""
        movements, total = ledger_service.list_movements(category_id=net_category.id)

        assert total == 1
        assert movements[0].movement_type == "adjustment"
        assert movements[0].before_stock == 0
        assert movements[0].after_stock == 25
        assert movements[0].quantity == 25
        assert movements[0].notes == "Opening stock"

    def test_in_adds_quantity(self, db_session, net_category):
        result = ledger_service.apply_movement(
            category_id=net_category.id, movement_type="in", quantity=7, actor="tester"
        )

        assert result.before_stock == 25
        assert result.after_stock == 32
        assert result.current_stock == 32
        assert result.movement.quantity == 7
        assert result.movement.created_by == "tester"
        assert db_session.get(Category, net_category.id).current_stock == 32

    def test_out_subtracts_quantity(self, db_session, net_category):
        result = ledger_service.apply_movement(category_id=net_category.id, movement_type="out", quantity=5)

        assert result.before_stock == 25
        assert result.after_stock == 20
        assert result.movement.signed_quantity == -5

    def test_adjustment_sets_target_and_stores_delta(self, db_session, net_category):
        """Adjustment quantity is a target level; the log keeps |after - before|."""
        down = ledger_service.apply_movement(category_id=net_category.id, movement_type="adjustment", quantity=18)
        assert down.after_stock == 18
        assert down.movement.quantity == 7

        up = ledger_service.apply_movement(category_id=net_category.id, movement_type="adjustment", quantity=30)
        assert up.after_stock == 30
        assert up.movement.quantity == 12

    def test_adjustment_to_same_level_records_zero_quantity(self, db_session, net_category):
        result = ledger_service.apply_movement(category_id=net_category.id, movement_type="adjustment", quantity=25)

        assert result.movement.quantity == 0
        assert result.before_stock == result.after_stock == 25

    def test_adjustment_to_zero_is_allowed(self, db_session, net_category):
        result = ledger_service.apply_movement(category_id=net_category.id, movement_type="adjustment", quantity=0)

        assert result.after_stock == 0
        assert result.is_low_stock is True

    def test_result_to_dict(self, db_session, net_category):
        payload = ledger_service.apply_movement(
            category_id=net_category.id, movement_type="in", quantity=1
        ).to_dict()

        assert payload["updated_stock"] == 26
        assert payload["is_low_stock"] is False
        assert payload["movement"]["reference_type"] == "manual"
        assert payload["category"]["code"] == "NET"


class TestStrictOut:

    def test_out_of_entire_stock_succeeds(self, db_session, net_category):
        result = ledger_service.apply_movement(category_id=net_category.id, movement_type="out", quantity=25)

        assert result.after_stock == 0
        assert result.is_low_stock is True

    def test_out_beyond_stock_is_refused_without_writes(self, db_session, net_category):
        ledger_service.apply_movement(category_id=net_category.id, movement_type="out", quantity=25)
        before_count = _movement_count(db_session, net_category.id)

        with pytest.raises(InsufficientStockError) as exc_info:
            ledger_service.apply_movement(category_id=net_category.id, movement_type="out", quantity=1)

        assert exc_info.value.available == 0
        assert exc_info.value.requested == 1
        assert exc_info.value.code == "insufficient_stock"
        assert _movement_count(db_session, net_category.id) == before_count
        assert db_session.get(Category, net_category.id).current_stock == 0


class TestLowStock:

    def test_low_stock_follows_reorder_point(self, db_session, net_category, supplier):
        """25 -> out 20 -> 5 (low) -> receive 10 -> 15 (not low)."""
        assert net_category.is_low_stock is False

        out = ledger_service.apply_movement(category_id=net_category.id, movement_type="out", quantity=20)
        assert out.current_stock == 5
        assert out.is_low_stock is True

        receipt, results = receiving_service.create_receipt(
            supplier_id=supplier.id,
            actor="tester",
            items=[{"category_id": net_category.id, "quantity": 10, "unit_price_cents": 150}],
        )
        assert results[0].movement.current_stock == 15
        assert results[0].movement.is_low_stock is False

        category = db_session.get(Category, net_category.id)
        assert category.current_stock == 15
        assert category.is_low_stock is False

    def test_exactly_at_reorder_point_is_low(self, db_session, net_category):
        result = ledger_service.apply_movement(category_id=net_category.id, movement_type="adjustment", quantity=10)

        assert result.is_low_stock is True


class TestRefusals:

    def test_untracked_category(self, db_session, fur_category):
        with pytest.raises(NotStockTrackedError):
            ledger_service.apply_movement(category_id=fur_category.id, movement_type="in", quantity=1)

        assert _movement_count(db_session, fur_category.id) == 0

    def test_missing_category(self, db_session):
        with pytest.raises(NotFoundError):
            ledger_service.apply_movement(category_id=424242, movement_type="in", quantity=1)

    def test_invalid_movement_type(self, db_session, net_category):
        with pytest.raises(InvalidMovementTypeError):
            ledger_service.apply_movement(category_id=net_category.id, movement_type="transfer", quantity=1)

    def test_invalid_reference_type(self, db_session, net_category):
        with pytest.raises(InvalidReferenceTypeError):
            ledger_service.apply_movement(
                category_id=net_category.id, movement_type="in", quantity=1, reference_type="sale"
            )

    @pytest.mark.parametrize("movement_type, quantity", [
        ("in", 0),
        ("out", 0),
        ("in", -3),
        ("adjustment", -1),
        ("in", 1.5),
        ("in", True),
    ])
    def test_invalid_quantity(self, db_session, net_category, movement_type, quantity):
        with pytest.raises(InvalidQuantityError):
            ledger_service.apply_movement(
                category_id=net_category.id, movement_type=movement_type, quantity=quantity
            )

        assert db_session.get(Category, net_category.id).current_stock == 25


class TestAdjustByDelta:

    def test_positive_delta(self, db_session, net_category):
        result = ledger_service.adjust_by_delta(category_id=net_category.id, delta=5)

        assert result.after_stock == 30
        assert result.movement.movement_type == "adjustment"
        assert result.movement.reference_type == "bulk_adjustment"

    def test_negative_delta_floors_at_zero(self, db_session, net_category):
        result = ledger_service.adjust_by_delta(category_id=net_category.id, delta=-1000)

        assert result.after_stock == 0
        assert result.movement.quantity == 25


class TestReadSide:

    def test_list_movements_filters_and_orders(self, db_session, net_category, ton_category):
        ledger_service.apply_movement(category_id=net_category.id, movement_type="in", quantity=1)
        ledger_service.apply_movement(category_id=net_category.id, movement_type="out", quantity=2)

        movements, total = ledger_service.list_movements(category_id=net_category.id)
        assert total == 3
        assert [m.movement_type for m in movements] == ["out", "in", "adjustment"]

        outs, out_total = ledger_service.list_movements(movement_type="out")
        assert out_total == 1
        assert outs[0].category_id == net_category.id

        page, total_all = ledger_service.list_movements(limit=2, offset=0)
        assert total_all == 4
        assert len(page) == 2

    def test_get_movement(self, db_session, net_category):
        result = ledger_service.apply_movement(category_id=net_category.id, movement_type="in", quantity=1)

        assert ledger_service.get_movement(result.movement.id).after_stock == 26
        with pytest.raises(NotFoundError):
            ledger_service.get_movement(999999)

    def test_stock_summary_lists_low_stock_first(self, db_session, net_category, ton_category, fur_category):
        ledger_service.apply_movement(category_id=ton_category.id, movement_type="out", quantity=2)

        summary = ledger_service.get_stock_summary()
        assert summary["total_categories"] == 2
        assert summary["low_stock_count"] == 1
        assert [c["code"] for c in summary["categories"]] == ["TON", "NET"]

        low_only = ledger_service.get_stock_summary(low_stock_only=True)
        assert [c["code"] for c in low_only["categories"]] == ["TON"]

    def test_low_stock_alert_urgency(self, db_session, net_category, ton_category):
        ledger_service.apply_movement(category_id=ton_category.id, movement_type="out", quantity=3)
        ledger_service.apply_movement(category_id=net_category.id, movement_type="adjustment", quantity=4)

        alerts = ledger_service.get_low_stock_alerts()
        by_code = {a["code"]: a for a in alerts["alerts"]}

        assert by_code["TON"]["urgency"] == "critical"
        assert by_code["TON"]["shortage"] == 2
        assert by_code["NET"]["urgency"] == "high"
        assert by_code["NET"]["shortage"] == 6
        assert alerts["critical_count"] == 1
        assert alerts["high_count"] == 1


class TestVerifyLedger:

    def test_clean_after_mixed_activity(self, db_session, net_category, ton_category, supplier):
        ledger_service.apply_movement(category_id=net_category.id, movement_type="out", quantity=20)
        ledger_service.apply_movement(category_id=net_category.id, movement_type="adjustment", quantity=12)
        ledger_service.adjust_by_delta(category_id=ton_category.id, delta=-10)
        receiving_service.create_receipt(
            supplier_id=supplier.id,
            actor="tester",
            items=[{"category_id": net_category.id, "quantity": 4}],
        )

        assert ledger_service.verify_ledger() == []

    def test_detects_counter_drift(self, db_session, net_category):
        db_session.execute(
            text("UPDATE categories SET current_stock = 99 WHERE id = :id"), {"id": net_category.id}
        )
        db_session.commit()

        violations = ledger_service.verify_ledger()

        assert len(violations) >= 1
        assert any("current_stock 99" in v["problem"] for v in violations)


def test_recent_movements_newest_first(db_session, net_category):
    ledger_service.apply_movement(category_id=net_category.id, movement_type="in", quantity=3)

    recent = ledger_service.get_recent_movements(limit=1)

    assert len(recent) == 1
    assert recent[0].after_stock == 28

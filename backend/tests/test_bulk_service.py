# Overview: Pytest coverage for bulk adjustments and per-entry failure isolation.

from stockledger.models import Category, StockMovement
from stockledger.services import bulk_service, ledger_service


class TestApplyBulk:

    def test_entries_are_isolated(self, db_session, net_category, ton_category):
        """A missing category fails alone; its neighbours are still applied."""
        result = bulk_service.apply_bulk(
            [
                {"category_id": net_category.id, "delta": 5},
                {"category_id": 424242, "delta": 5},
                {"category_id": ton_category.id, "delta": -1000},
            ],
            actor="tester",
        )

        first, missing, clamped = result.results
        assert first["success"] is True
        assert first["before_stock"] == 25
        assert first["after_stock"] == 30
        assert first["change"] == 5

        assert missing["success"] is False
        assert missing["error_code"] == "not_found"
        assert missing["after_stock"] is None

        assert clamped["success"] is True
        assert clamped["after_stock"] == 0
        assert clamped["change"] == -3

        assert result.summary == {"total": 3, "successful": 2, "failed": 1}

        # Applied entries are committed despite the failure in between
        db_session.expire_all()
        assert db_session.get(Category, net_category.id).current_stock == 30
        assert db_session.get(Category, ton_category.id).current_stock == 0
        assert ledger_service.verify_ledger() == []

    def test_untracked_and_bad_delta_are_reported(self, db_session, fur_category, net_category):
        result = bulk_service.apply_bulk(
            [
                {"category_id": fur_category.id, "delta": 1},
                {"category_id": net_category.id, "delta": "ten"},
            ]
        )

        assert [r["error_code"] for r in result.results] == ["not_stock_tracked", "invalid_quantity"]
        assert result.failed == 2

    def test_movements_are_bulk_adjustments_with_default_notes(self, db_session, net_category):
        bulk_service.apply_bulk([{"category_id": net_category.id, "delta": 4}], actor="tester")

        movement = (
            db_session.query(StockMovement)
            .filter_by(category_id=net_category.id)
            .order_by(StockMovement.id.desc())
            .first()
        )
        assert movement.movement_type == "adjustment"
        assert movement.reference_type == "bulk_adjustment"
        assert movement.notes == "Bulk adjustment: +4"
        assert movement.created_by == "tester"

    def test_custom_notes_and_empty_batch(self, db_session, net_category):
        result = bulk_service.apply_bulk([{"category_id": net_category.id, "delta": -2, "notes": "Cycle count"}])
        assert result.results[0]["movement"]["notes"] == "Cycle count"

        empty = bulk_service.apply_bulk([])
        assert empty.to_dict() == {"results": [], "summary": {"total": 0, "successful": 0, "failed": 0}}

    def test_malformed_entries_do_not_stop_the_batch(self, db_session, net_category, ton_category):
        result = bulk_service.apply_bulk(
            [
                {"category_id": net_category.id, "delta": 1},
                None,
                "NET+5",
                {"category_id": ton_category.id, "delta": 2},
            ]
        )

        assert [r["success"] for r in result.results] == [True, False, False, True]
        assert result.results[1]["error_code"] == "invalid_entry"
        assert result.results[1]["category_id"] is None
        assert "NoneType" in result.results[1]["error"]
        assert result.results[2]["error_code"] == "invalid_entry"
        assert result.summary == {"total": 4, "successful": 2, "failed": 2}

        db_session.expire_all()
        assert db_session.get(Category, net_category.id).current_stock == 26
        assert db_session.get(Category, ton_category.id).current_stock == 5

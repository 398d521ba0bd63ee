# Overview: Pytest coverage for category configuration edits around the ledger.

import pytest

from stockledger.models import Category, StockMovement
from stockledger.errors import (
    NotFoundError,
    CategoryValidationError,
    StockFieldLockedError,
    LinkedProductsExistError,
)
from stockledger.services import category_service, ledger_service


class TestCreateCategory:

    def test_code_is_normalized(self, db_session):
        category = category_service.create_category(name="Monitors", code=" mon ", has_stock=True, max_stock=5)

        assert category.code == "MON"

    @pytest.mark.parametrize("code", ["M", "MONI", "M1", ""])
    def test_bad_code(self, db_session, code):
        with pytest.raises(CategoryValidationError):
            category_service.create_category(name="Monitors", code=code)

    def test_duplicate_code_and_name(self, db_session, net_category):
        with pytest.raises(CategoryValidationError):
            category_service.create_category(name="Other", code="NET")
        with pytest.raises(CategoryValidationError):
            category_service.create_category(name="Network Cable", code="NCB")

    def test_min_above_max(self, db_session):
        with pytest.raises(CategoryValidationError):
            category_service.create_category(name="Monitors", code="MON", has_stock=True, min_stock=5, max_stock=2)

    @pytest.mark.parametrize("field", ["min_stock", "max_stock", "reorder_point", "opening_stock"])
    def test_none_stock_field_is_rejected(self, db_session, field):
        stock_fields = {"max_stock": 5, field: None}

        with pytest.raises(CategoryValidationError):
            category_service.create_category(name="Monitors", code="MON", has_stock=True, **stock_fields)

    def test_untracked_pins_stock_fields(self, db_session):
        category = category_service.create_category(
            name="Chairs", code="CHR", has_stock=False, min_stock=3, max_stock=9, reorder_point=2, unit="piece"
        )

        assert (category.min_stock, category.max_stock, category.reorder_point) == (0, 0, 0)
        assert category.unit is None
        assert category.is_low_stock is False

    def test_opening_stock_requires_tracking(self, db_session):
        with pytest.raises(CategoryValidationError):
            category_service.create_category(name="Chairs", code="CHR", opening_stock=4)


class TestUpdateCategory:

    def test_stock_fields_are_locked(self, db_session, net_category):
        with pytest.raises(StockFieldLockedError):
            category_service.update_category(net_category.id, current_stock=100)
        with pytest.raises(StockFieldLockedError):
            category_service.update_category(net_category.id, is_low_stock=True)

    def test_reorder_point_rederives_low_stock(self, db_session, net_category):
        updated = category_service.update_category(net_category.id, reorder_point=30)

        assert updated.current_stock == 25
        assert updated.is_low_stock is True
        assert ledger_service.verify_ledger() == []

    def test_disabling_tracking_with_stock_on_hand(self, db_session, net_category):
        with pytest.raises(StockFieldLockedError):
            category_service.update_category(net_category.id, has_stock=False)

        ledger_service.apply_movement(category_id=net_category.id, movement_type="out", quantity=25)
        updated = category_service.update_category(net_category.id, has_stock=False)

        assert updated.has_stock is False
        assert updated.reorder_point == 0
        assert updated.is_low_stock is False

    def test_code_change_invalidates_cache(self, db_session, net_category, cache):
        assert category_service.get_category_by_code("NET", cache=cache).id == net_category.id

        category_service.update_category(net_category.id, code="CBL", cache=cache)

        with pytest.raises(NotFoundError):
            category_service.get_category_by_code("NET", cache=cache)
        assert category_service.get_category_by_code("cbl", cache=cache).id == net_category.id

    def test_unknown_field(self, db_session, net_category):
        with pytest.raises(CategoryValidationError):
            category_service.update_category(net_category.id, colour="blue")

    @pytest.mark.parametrize("field", ["min_stock", "max_stock", "reorder_point"])
    def test_none_stock_field_is_rejected(self, db_session, net_category, field):
        with pytest.raises(CategoryValidationError):
            category_service.update_category(net_category.id, **{field: None})

        assert db_session.get(Category, net_category.id).reorder_point == 10


class TestDeleteCategory:

    def test_products_block_delete(self, db_session, fur_category, fur_products):
        with pytest.raises(LinkedProductsExistError) as exc_info:
            category_service.delete_category(fur_category.id)

        assert exc_info.value.count == 2

    def test_movement_history_blocks_delete(self, db_session, net_category):
        with pytest.raises(CategoryValidationError):
            category_service.delete_category(net_category.id)

        assert db_session.query(StockMovement).filter_by(category_id=net_category.id).count() == 1

    def test_delete_unused(self, db_session, fur_category, cache):
        category_service.get_category_by_code("FUR", cache=cache)

        category_service.delete_category(fur_category.id, cache=cache)

        assert db_session.query(Category).count() == 0
        with pytest.raises(NotFoundError):
            category_service.get_category_by_code("FUR", cache=cache)


def test_category_stats(db_session, net_category, ton_category, fur_category):
    ledger_service.apply_movement(category_id=ton_category.id, movement_type="out", quantity=2)

    stats = category_service.get_category_stats()

    assert stats == {"total": 3, "with_stock": 2, "low_stock": 1, "total_stock_units": 26}

# Overview: Service-layer operations for categories; stock configuration edits outside the ledger.

"""
Category Service

WHY: Category edits touch the same row the ledger writes. This module may
change every column EXCEPT current_stock and is_low_stock's inputs from
movements; those belong to ledger_service.

RULES:
- has_stock=False pins min/max/current/reorder to 0, unit to None, is_low_stock to False.
- Opening stock on a tracked category is booked through the ledger as an
  adjustment, so current_stock always matches the last movement.
- Editing reorder_point re-derives is_low_stock from the existing current_stock.
- Tracking cannot be switched off while stock is on hand.
"""

from __future__ import annotations

import re

from flask import current_app

from ..extensions import db
from ..cache import TTLCache
from ..models import Category, Product, ProductSequence, StockMovement, ReferenceType, MovementType
from ..errors import (
    NotFoundError,
    CategoryValidationError,
    StockFieldLockedError,
    LinkedProductsExistError,
)
from .concurrency import run_with_retry
from .ledger_service import compute_is_low_stock, _apply_movement_inner


CODE_PATTERN = re.compile(r"^[A-Z]{2,3}$")

EDITABLE_FIELDS = {"name", "code", "has_stock", "min_stock", "max_stock", "reorder_point", "unit", "notes"}
LEDGER_FIELDS = {"current_stock", "is_low_stock"}


def _cache_key(code: str) -> str:
    return f"category-code:{code}"


def _normalize_code(code: str) -> str:
    normalized = (code or "").strip().upper()
    if not CODE_PATTERN.match(normalized):
        raise CategoryValidationError("Category code must be 2-3 letters")
    return normalized


def _validate_non_negative(**values) -> None:
    for name, value in values.items():
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise CategoryValidationError(f"{name} must be a non-negative integer")


def _pin_untracked(category: Category) -> None:
    category.min_stock = 0
    category.max_stock = 0
    category.current_stock = 0
    category.reorder_point = 0
    category.unit = None
    category.is_low_stock = False


def get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if category is None:
        raise NotFoundError(f"Category {category_id} not found")
    return category


def get_category_by_code(code: str, *, cache: TTLCache | None = None) -> Category:
    """
    Look up a category by code.

    When a cache is passed, the code -> id mapping is served from it; the row
    itself is always loaded fresh so stock values are never stale.
    """
    normalized = (code or "").strip().upper()

    def _load_id():
        return db.session.query(Category.id).filter_by(code=normalized).scalar()

    if cache is not None:
        category_id = cache.get_or_load(_cache_key(normalized), _load_id)
    else:
        category_id = _load_id()

    category = db.session.get(Category, category_id) if category_id is not None else None
    if category is None or category.code != normalized:
        if cache is not None:
            cache.invalidate(_cache_key(normalized))
        raise NotFoundError(f"Category {normalized} not found")
    return category


def list_categories(*, has_stock: bool | None = None) -> list[Category]:
    query = db.session.query(Category)
    if has_stock is not None:
        query = query.filter(Category.has_stock.is_(has_stock))
    return query.order_by(Category.name.asc()).all()


def _ensure_unique(*, name: str | None, code: str | None, exclude_id: int | None = None) -> None:
    if code is not None:
        query = db.session.query(Category.id).filter(Category.code == code)
        if exclude_id is not None:
            query = query.filter(Category.id != exclude_id)
        if query.first():
            raise CategoryValidationError("Category code already exists")
    if name is not None:
        query = db.session.query(Category.id).filter(Category.name == name)
        if exclude_id is not None:
            query = query.filter(Category.id != exclude_id)
        if query.first():
            raise CategoryValidationError("Category name already exists")


def create_category(
    *,
    name: str,
    code: str,
    has_stock: bool = False,
    min_stock: int = 0,
    max_stock: int = 0,
    reorder_point: int = 0,
    unit: str | None = None,
    opening_stock: int = 0,
    actor=None,
    notes: str | None = None,
) -> Category:
    """
    Create a category.

    Raises:
        CategoryValidationError: bad code, duplicate name/code, min > max, negatives
    """
    name = (name or "").strip()
    if not name:
        raise CategoryValidationError("Category name is required")
    code = _normalize_code(code)
    _validate_non_negative(
        min_stock=min_stock, max_stock=max_stock, reorder_point=reorder_point, opening_stock=opening_stock
    )
    if has_stock and min_stock > max_stock:
        raise CategoryValidationError("Minimum stock cannot be greater than maximum stock")
    if not has_stock and opening_stock:
        raise CategoryValidationError("Opening stock requires stock tracking")

    def _op():
        _ensure_unique(name=name, code=code)

        category = Category(
            name=name,
            code=code,
            has_stock=bool(has_stock),
            min_stock=min_stock,
            max_stock=max_stock,
            current_stock=0,
            reorder_point=reorder_point,
            unit=unit,
            notes=notes,
        )
        if category.has_stock:
            category.is_low_stock = compute_is_low_stock(0, reorder_point)
        else:
            _pin_untracked(category)

        db.session.add(category)
        db.session.flush()

        if category.has_stock and opening_stock:
            _apply_movement_inner(
                category_id=category.id,
                movement_type=MovementType.ADJUSTMENT,
                quantity=opening_stock,
                reference_type=ReferenceType.MANUAL,
                actor=actor,
                notes="Opening stock",
            )

        db.session.commit()
        return category

    category = run_with_retry(_op)
    current_app.logger.info("Created category %s (has_stock=%s)", category.code, category.has_stock)
    return category


def update_category(category_id: int, *, actor=None, cache: TTLCache | None = None, **fields) -> Category:
    """
    Update category configuration.

    current_stock and is_low_stock are refused: stock only changes through
    ledger movements. Any change to reorder_point re-derives is_low_stock.

    Raises:
        NotFoundError, CategoryValidationError, StockFieldLockedError
    """
    locked = LEDGER_FIELDS & set(fields)
    if locked:
        raise StockFieldLockedError(
            f"{', '.join(sorted(locked))} can only change through stock movements"
        )
    unknown = set(fields) - EDITABLE_FIELDS
    if unknown:
        raise CategoryValidationError(f"Unknown category fields: {', '.join(sorted(unknown))}")

    def _op():
        category = get_category(category_id)
        old_code = category.code

        new_code = _normalize_code(fields["code"]) if fields.get("code") else category.code
        new_name = fields["name"].strip() if fields.get("name") else category.name
        _ensure_unique(
            name=new_name if new_name != category.name else None,
            code=new_code if new_code != category.code else None,
            exclude_id=category.id,
        )

        new_has_stock = bool(fields["has_stock"]) if fields.get("has_stock") is not None else category.has_stock
        if category.has_stock and not new_has_stock and category.current_stock != 0:
            raise StockFieldLockedError(
                "Cannot disable stock tracking while stock is on hand; move it out first"
            )

        category.name = new_name
        category.code = new_code
        if "notes" in fields:
            category.notes = fields["notes"]

        if new_has_stock:
            min_stock = fields.get("min_stock", category.min_stock)
            max_stock = fields.get("max_stock", category.max_stock)
            reorder_point = fields.get("reorder_point", category.reorder_point)
            _validate_non_negative(min_stock=min_stock, max_stock=max_stock, reorder_point=reorder_point)
            if min_stock > max_stock:
                raise CategoryValidationError("Minimum stock cannot be greater than maximum stock")

            category.has_stock = True
            category.min_stock = min_stock
            category.max_stock = max_stock
            category.reorder_point = reorder_point
            if "unit" in fields:
                category.unit = fields["unit"]
            category.is_low_stock = compute_is_low_stock(category.current_stock, reorder_point)
        else:
            category.has_stock = False
            _pin_untracked(category)

        db.session.commit()
        return category, old_code

    category, old_code = run_with_retry(_op)
    if cache is not None:
        cache.invalidate(_cache_key(old_code))
        cache.invalidate(_cache_key(category.code))
    current_app.logger.info("Updated category %s by %s", category.code, actor)
    return category


def delete_category(category_id: int, *, cache: TTLCache | None = None) -> None:
    """
    Delete a category with no products and no movement history.

    Raises:
        NotFoundError, LinkedProductsExistError, CategoryValidationError
    """
    def _op():
        category = get_category(category_id)

        product_count = db.session.query(Product).filter_by(category_id=category.id).count()
        if product_count:
            raise LinkedProductsExistError(
                f"Cannot delete category. {product_count} products are using this category",
                product_count,
            )
        if db.session.query(StockMovement.id).filter_by(category_id=category.id).first():
            raise CategoryValidationError("Cannot delete category with stock movement history")

        code = category.code
        db.session.query(ProductSequence).filter_by(category_id=category.id).delete()
        db.session.delete(category)
        db.session.commit()
        return code

    code = run_with_retry(_op)
    if cache is not None:
        cache.invalidate(_cache_key(code))
    current_app.logger.info("Deleted category %s", code)


def get_category_stats() -> dict:
    tracked = list_categories(has_stock=True)
    return {
        "total": db.session.query(Category).count(),
        "with_stock": len(tracked),
        "low_stock": sum(1 for c in tracked if c.is_low_stock),
        "total_stock_units": sum(c.current_stock for c in tracked),
    }

# Overview: Service-layer operations for the stock ledger; the only writer of movements and category stock.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import Category, StockMovement, MovementType, ReferenceType
from ..errors import (
    NotFoundError,
    NotStockTrackedError,
    InvalidMovementTypeError,
    InvalidReferenceTypeError,
    InvalidQuantityError,
    InsufficientStockError,
)
from stockledger.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
"""
Stock Ledger Invariants (authoritative)

Ownership:
- This module is the ONLY code that writes StockMovement rows or mutates
  Category.current_stock / Category.is_low_stock.
- Every call writes exactly one movement and one category update, in the
  same DB transaction. On any failure neither is written.

Arithmetic:
- in:         after = before + quantity              (quantity > 0)
- out:        after = before - quantity              (quantity > 0, after >= 0 or InsufficientStock)
- adjustment: after = quantity (target level)        (quantity >= 0)
              stored quantity = |after - before|
- is_low_stock = after <= reorder_point, recomputed on every movement.

Concurrency:
- The category row is read with SELECT ... FOR UPDATE and written through
  the version counter; lost races raise StaleDataError and are retried.
"""


@dataclass
class MovementResult:
    """Outcome of one ledger write, enough for callers to render without re-querying."""
    movement: StockMovement
    category: Category
    current_stock: int
    is_low_stock: bool

    @property
    def before_stock(self) -> int:
        return self.movement.before_stock

    @property
    def after_stock(self) -> int:
        return self.movement.after_stock

    def to_dict(self) -> dict:
        return {
            "movement": self.movement.to_dict(),
            "category": self.category.to_dict(),
            "updated_stock": self.current_stock,
            "is_low_stock": self.is_low_stock,
        }


def compute_is_low_stock(current_stock: int, reorder_point: int) -> bool:
    return current_stock <= reorder_point


def parse_movement_type(value) -> MovementType:
    try:
        return MovementType(value)
    except ValueError:
        raise InvalidMovementTypeError(
            "Invalid movement type. Must be: in, out, or adjustment"
        ) from None


def parse_reference_type(value) -> ReferenceType:
    try:
        return ReferenceType(value)
    except ValueError:
        allowed = ", ".join(r.value for r in ReferenceType)
        raise InvalidReferenceTypeError(
            f"Invalid reference type. Must be one of: {allowed}"
        ) from None


def _validate_quantity(movement_type: MovementType, quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidQuantityError("Quantity must be an integer")
    if movement_type is MovementType.ADJUSTMENT:
        if quantity < 0:
            raise InvalidQuantityError("Adjustment target cannot be negative")
    elif quantity <= 0:
        raise InvalidQuantityError("Quantity must be greater than 0")
    return quantity


def _get_tracked_category(category_id: int, *, lock: bool = True) -> Category:
    query = db.session.query(Category).filter_by(id=category_id)
    if lock:
        query = lock_for_update(query)
    category = query.first()
    if category is None:
        raise NotFoundError(f"Category {category_id} not found")
    if not category.has_stock:
        raise NotStockTrackedError(f"Category {category.code} does not track stock")
    return category


def _actor_label(actor) -> str | None:
    if actor is None:
        return None
    return str(actor)


def _record_movement(
    category: Category,
    *,
    movement_type: MovementType,
    stored_quantity: int,
    after_stock: int,
    reference_type: ReferenceType,
    reference_id: int | None,
    actor,
    notes: str | None,
) -> StockMovement:
    """Append the movement and update the aggregate. Caller owns the transaction."""
    movement = StockMovement(
        category_id=category.id,
        movement_type=movement_type.value,
        quantity=stored_quantity,
        reference_type=reference_type.value,
        reference_id=reference_id,
        before_stock=category.current_stock,
        after_stock=after_stock,
        movement_date=utcnow(),
        created_by=_actor_label(actor),
        notes=notes,
    )
    db.session.add(movement)

    category.current_stock = after_stock
    category.is_low_stock = compute_is_low_stock(after_stock, category.reorder_point)

    db.session.flush()
    return movement


def _apply_movement_inner(
    *,
    category_id: int,
    movement_type,
    quantity,
    reference_type=ReferenceType.MANUAL,
    reference_id: int | None = None,
    actor=None,
    notes: str | None = None,
) -> MovementResult:
    """Core movement logic without retry or commit.

    Called by apply_movement() and by the receiving service, which needs the
    movement inside its own unit of work.
    """
    mtype = parse_movement_type(movement_type)
    rtype = parse_reference_type(reference_type)
    quantity = _validate_quantity(mtype, quantity)

    category = _get_tracked_category(category_id)
    before = category.current_stock

    if mtype is MovementType.IN:
        after = before + quantity
        stored = quantity
    elif mtype is MovementType.OUT:
        after = before - quantity
        if after < 0:
            raise InsufficientStockError(category.id, before, quantity)
        stored = quantity
    else:
        # Target-level semantics: the log keeps the delta actually applied
        after = quantity
        stored = abs(after - before)

    movement = _record_movement(
        category,
        movement_type=mtype,
        stored_quantity=stored,
        after_stock=after,
        reference_type=rtype,
        reference_id=reference_id,
        actor=actor,
        notes=notes,
    )
    return MovementResult(
        movement=movement,
        category=category,
        current_stock=category.current_stock,
        is_low_stock=category.is_low_stock,
    )


def _log_result(result: MovementResult) -> None:
    movement = result.movement
    current_app.logger.info(
        "Stock movement %s on %s (%s): %s -> %s%s",
        movement.movement_type,
        result.category.code,
        movement.reference_type,
        movement.before_stock,
        movement.after_stock,
        " [low stock]" if result.is_low_stock else "",
    )


def apply_movement(
    *,
    category_id: int,
    movement_type,
    quantity,
    reference_type=ReferenceType.MANUAL,
    reference_id: int | None = None,
    actor=None,
    notes: str | None = None,
) -> MovementResult:
    """
    Apply one stock movement to a category.

    For 'in'/'out' quantity is the amount moved; for 'adjustment' it is the
    target absolute stock level.

    Raises:
        InvalidMovementTypeError, InvalidReferenceTypeError, InvalidQuantityError,
        NotFoundError, NotStockTrackedError, InsufficientStockError
    """
    def _op():
        result = _apply_movement_inner(
            category_id=category_id,
            movement_type=movement_type,
            quantity=quantity,
            reference_type=reference_type,
            reference_id=reference_id,
            actor=actor,
            notes=notes,
        )
        db.session.commit()
        return result

    result = run_with_retry(_op)
    _log_result(result)
    return result


def _adjust_by_delta_inner(
    *,
    category_id: int,
    delta: int,
    reference_type=ReferenceType.BULK_ADJUSTMENT,
    reference_id: int | None = None,
    actor=None,
    notes: str | None = None,
) -> MovementResult:
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise InvalidQuantityError("Delta must be an integer")

    # Read current stock under the same lock the adjustment is written with
    category = _get_tracked_category(category_id)
    target = max(0, category.current_stock + delta)

    return _apply_movement_inner(
        category_id=category_id,
        movement_type=MovementType.ADJUSTMENT,
        quantity=target,
        reference_type=reference_type,
        reference_id=reference_id,
        actor=actor,
        notes=notes,
    )


def adjust_by_delta(
    *,
    category_id: int,
    delta: int,
    reference_type=ReferenceType.BULK_ADJUSTMENT,
    reference_id: int | None = None,
    actor=None,
    notes: str | None = None,
) -> MovementResult:
    """
    Shift stock by a signed delta, flooring at zero, recorded as an adjustment.

    Unlike an 'out' movement, a delta that would go negative is clamped
    rather than rejected.
    """
    def _op():
        result = _adjust_by_delta_inner(
            category_id=category_id,
            delta=delta,
            reference_type=reference_type,
            reference_id=reference_id,
            actor=actor,
            notes=notes,
        )
        db.session.commit()
        return result

    result = run_with_retry(_op)
    _log_result(result)
    return result


# =============================================================================
# Read side
# =============================================================================

def get_movement(movement_id: int) -> StockMovement:
    movement = db.session.get(StockMovement, movement_id)
    if movement is None:
        raise NotFoundError(f"Stock movement {movement_id} not found")
    return movement


def list_movements(
    *,
    category_id: int | None = None,
    movement_type: str | None = None,
    reference_type: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[StockMovement], int]:
    """
    List movements, newest first.

    Date filters are inclusive on both ends.

    Returns:
        Tuple of (list of movements, total count)
    """
    query = db.session.query(StockMovement)

    if category_id is not None:
        query = query.filter(StockMovement.category_id == category_id)
    if movement_type:
        query = query.filter(StockMovement.movement_type == parse_movement_type(movement_type).value)
    if reference_type:
        query = query.filter(StockMovement.reference_type == parse_reference_type(reference_type).value)
    if start is not None:
        query = query.filter(StockMovement.movement_date >= start)
    if end is not None:
        query = query.filter(StockMovement.movement_date <= end)

    total = query.count()

    query = query.order_by(StockMovement.movement_date.desc(), StockMovement.id.desc())
    return query.offset(offset).limit(limit).all(), total


def get_recent_movements(limit: int = 10) -> list[StockMovement]:
    movements, _ = list_movements(limit=limit)
    return movements


def get_stock_summary(*, low_stock_only: bool = False) -> dict:
    query = db.session.query(Category).filter(Category.has_stock.is_(True))
    if low_stock_only:
        query = query.filter(Category.is_low_stock.is_(True))

    categories = query.order_by(
        Category.is_low_stock.desc(),
        Category.current_stock.asc(),
        Category.name.asc(),
    ).all()

    return {
        "total_categories": len(categories),
        "low_stock_count": sum(1 for c in categories if c.is_low_stock),
        "out_of_stock_count": sum(1 for c in categories if c.current_stock == 0),
        "categories": [c.to_dict() for c in categories],
    }


def _alert_urgency(category: Category) -> str:
    if category.current_stock == 0:
        return "critical"
    if category.current_stock <= category.reorder_point * 0.5:
        return "high"
    return "medium"


def get_low_stock_alerts() -> dict:
    categories = (
        db.session.query(Category)
        .filter(Category.has_stock.is_(True), Category.is_low_stock.is_(True))
        .order_by(Category.current_stock.asc(), Category.name.asc())
        .all()
    )

    alerts = []
    for category in categories:
        row = category.to_dict()
        row["urgency"] = _alert_urgency(category)
        row["shortage"] = max(0, category.min_stock - category.current_stock)
        alerts.append(row)

    return {
        "alerts": alerts,
        "total_alerts": len(alerts),
        "critical_count": sum(1 for a in alerts if a["urgency"] == "critical"),
        "high_count": sum(1 for a in alerts if a["urgency"] == "high"),
    }


def _movement_violation(movement: StockMovement) -> str | None:
    delta = movement.after_stock - movement.before_stock
    if movement.quantity < 0:
        return "negative quantity"
    if movement.movement_type == MovementType.IN.value and delta != movement.quantity:
        return "in movement does not add its quantity"
    if movement.movement_type == MovementType.OUT.value and delta != -movement.quantity:
        return "out movement does not subtract its quantity"
    if movement.movement_type == MovementType.ADJUSTMENT.value and abs(delta) != movement.quantity:
        return "adjustment quantity is not |after - before|"
    if movement.movement_type not in {m.value for m in MovementType}:
        return f"unknown movement type {movement.movement_type!r}"
    return None


def verify_ledger() -> list[dict]:
    """
    Re-check the ledger invariants over the whole movement log.

    Reports per-row arithmetic errors, breaks in the before/after chain, and
    categories whose current_stock differs from their last movement.
    """
    violations: list[dict] = []

    for category in db.session.query(Category).order_by(Category.id).all():
        previous = None
        movements = category.stock_movements.order_by(StockMovement.id.asc())
        for movement in movements:
            problem = _movement_violation(movement)
            if problem:
                violations.append({"category_id": category.id, "movement_id": movement.id, "problem": problem})
            if previous is not None and movement.before_stock != previous.after_stock:
                violations.append({
                    "category_id": category.id,
                    "movement_id": movement.id,
                    "problem": f"before_stock {movement.before_stock} does not follow previous after_stock {previous.after_stock}",
                })
            previous = movement

        expected = previous.after_stock if previous is not None else 0
        if category.current_stock != expected:
            violations.append({
                "category_id": category.id,
                "movement_id": previous.id if previous is not None else None,
                "problem": f"current_stock {category.current_stock} != last after_stock {expected}",
            })
        if category.has_stock and category.is_low_stock != compute_is_low_stock(
            category.current_stock, category.reorder_point
        ):
            violations.append({
                "category_id": category.id,
                "movement_id": None,
                "problem": "is_low_stock does not match current_stock <= reorder_point",
            })

    return violations

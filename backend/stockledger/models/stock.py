from __future__ import annotations

from enum import Enum

from ..extensions import db
from stockledger.time_utils import to_utc_z, utcnow


class MovementType(str, Enum):
    IN = "in"
    OUT = "out"
    ADJUSTMENT = "adjustment"


class ReferenceType(str, Enum):
    """Closed set of sources that may move category stock."""
    MANUAL = "manual"
    PURCHASE_RECEIPT = "purchase_receipt"
    PURCHASE_RECEIPT_REVERSAL = "purchase_receipt_reversal"
    PURCHASE_RECEIPT_ITEM_REMOVAL = "purchase_receipt_item_removal"
    BULK_ADJUSTMENT = "bulk_adjustment"


class StockMovement(db.Model):
    """
    Append-only stock movement log.

    INVARIANTS:
    - Rows are never updated or deleted.
    - quantity is non-negative; direction comes from movement_type.
    - in:  after_stock = before_stock + quantity
    - out: after_stock = before_stock - quantity
    - adjustment: quantity = |after_stock - before_stock|
    - The latest row for a category has after_stock == Category.current_stock.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_stock_movements_quantity_nonneg"),
        db.CheckConstraint("after_stock >= 0", name="ck_stock_movements_after_nonneg"),
        db.Index("ix_stock_movements_category_date", "category_id", "movement_date"),
        db.Index("ix_stock_movements_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(20), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    reference_type = db.Column(db.String(40), nullable=False, default=ReferenceType.MANUAL.value)
    reference_id = db.Column(db.Integer, nullable=True)

    before_stock = db.Column(db.Integer, nullable=False)
    after_stock = db.Column(db.Integer, nullable=False)

    movement_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    created_by = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    category = db.relationship("Category", backref=db.backref("stock_movements", lazy="dynamic"))

    @property
    def signed_quantity(self) -> int:
        return self.after_stock - self.before_stock

    def __repr__(self) -> str:
        return (
            f"<StockMovement id={self.id} category_id={self.category_id} "
            f"{self.movement_type} {self.before_stock}->{self.after_stock}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category_id": self.category_id,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "before_stock": self.before_stock,
            "after_stock": self.after_stock,
            "movement_date": to_utc_z(self.movement_date),
            "created_by": self.created_by,
            "notes": self.notes,
        }

from __future__ import annotations

from ..extensions import db
from stockledger.time_utils import to_utc_z


class PurchaseReceipt(db.Model):
    """
    Purchase receipt header.

    LIFECYCLE:
    - pending:   items may be added/removed, receipt may be deleted
    - completed: immutable except status -> cancelled
    - cancelled: terminal for status, may still be deleted

    INVARIANT: total_amount_cents == sum(item.total_price_cents), with removals
    clamped at zero.
    """
    __tablename__ = "purchase_receipts"
    __table_args__ = (
        db.UniqueConstraint("receipt_number", name="uq_purchase_receipts_number"),
        db.Index("ix_purchase_receipts_status_date", "status", "receipt_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # e.g. RCP-20261017-001
    receipt_number = db.Column(db.String(50), nullable=False)
    po_number = db.Column(db.String(50), nullable=True)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    receipt_date = db.Column(db.DateTime(timezone=True), nullable=False)

    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default="completed", index=True)

    created_by = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    supplier = db.relationship("Supplier", backref=db.backref("receipts", lazy=True))
    items = db.relationship(
        "PurchaseReceiptItem",
        back_populates="receipt",
        cascade="all, delete-orphan",
        order_by="PurchaseReceiptItem.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "receipt_number": self.receipt_number,
            "po_number": self.po_number,
            "supplier_id": self.supplier_id,
            "receipt_date": to_utc_z(self.receipt_date),
            "total_amount_cents": self.total_amount_cents,
            "status": self.status,
            "created_by": self.created_by,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PurchaseReceiptItem(db.Model):
    __tablename__ = "purchase_receipt_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_receipt_items_quantity_pos"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    receipt_id = db.Column(db.Integer, db.ForeignKey("purchase_receipts.id"), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    total_price_cents = db.Column(db.Integer, nullable=False, default=0)

    serial_numbers = db.Column(db.Text, nullable=True)
    condition = db.Column(db.String(20), nullable=False, default="New")
    notes = db.Column(db.Text, nullable=True)

    receipt = db.relationship("PurchaseReceipt", back_populates="items")
    category = db.relationship("Category")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "receipt_id": self.receipt_id,
            "category_id": self.category_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
            "serial_numbers": self.serial_numbers,
            "condition": self.condition,
            "notes": self.notes,
        }

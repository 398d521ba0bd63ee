from __future__ import annotations

from ..extensions import db
from stockledger.time_utils import to_utc_z, utcnow


class Transaction(db.Model):
    """
    Groups asset-level movements (check_out, check_in, repair, lost, transfer)
    under one reference number.

    LIFECYCLE: open -> closed. Closed transactions are read-only until
    explicitly reopened.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_type_date", "transaction_type", "transaction_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_type = db.Column(db.String(20), nullable=False)

    # e.g. CH-20261017-004; not unique, check_out and check_in share a prefix
    reference_no = db.Column(db.String(50), nullable=True, index=True)

    first_person = db.Column(db.String(100), nullable=False)
    second_person = db.Column(db.String(100), nullable=True)
    location = db.Column(db.String(100), nullable=False)

    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    notes = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="open", index=True)

    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    items = db.relationship(
        "TransactionItem",
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="TransactionItem.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_type": self.transaction_type,
            "reference_no": self.reference_no,
            "first_person": self.first_person,
            "second_person": self.second_person,
            "location": self.location,
            "transaction_date": to_utc_z(self.transaction_date),
            "notes": self.notes,
            "status": self.status,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


class TransactionItem(db.Model):
    __tablename__ = "transaction_items"
    __table_args__ = (
        db.UniqueConstraint("transaction_id", "product_id", name="uq_transaction_items_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    product_id = db.Column(db.String(20), db.ForeignKey("products.product_id"), nullable=False, index=True)

    condition_before = db.Column(db.String(20), nullable=True)
    condition_after = db.Column(db.String(20), nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    notes = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="processed")

    transaction = db.relationship("Transaction", back_populates="items")
    product = db.relationship("Product", backref=db.backref("transaction_items", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "product_id": self.product_id,
            "condition_before": self.condition_before,
            "condition_after": self.condition_after,
            "quantity": self.quantity,
            "notes": self.notes,
            "status": self.status,
        }

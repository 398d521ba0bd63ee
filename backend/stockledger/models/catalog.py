from __future__ import annotations

from ..extensions import db
from stockledger.time_utils import to_utc_z


class Category(db.Model):
    """
    Stock-keeping category and its aggregate stock counter.

    STOCK FIELDS:
    - current_stock and is_low_stock are written ONLY by the ledger service,
      in the same DB transaction as the StockMovement that explains them.
    - min_stock, max_stock, reorder_point and unit are ordinary editable fields;
      editing reorder_point re-derives is_low_stock from current_stock.
    - has_stock=False pins every stock field to zero/null and forbids movements.

    CONCURRENCY:
    version_id is SQLAlchemy's version counter, so every UPDATE is a
    compare-and-swap on (id, version_id). A lost race raises StaleDataError
    and the caller's retry loop re-reads the row.
    """
    __tablename__ = "categories"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_categories_code"),
        db.UniqueConstraint("name", name="uq_categories_name"),
        db.Index("ix_categories_stock_low", "has_stock", "is_low_stock"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(50), nullable=False)

    # 2-3 uppercase letters, also the prefix of minted product ids
    code = db.Column(db.String(3), nullable=False)

    has_stock = db.Column(db.Boolean, nullable=False, default=False)
    min_stock = db.Column(db.Integer, nullable=False, default=0)
    max_stock = db.Column(db.Integer, nullable=False, default=0)
    current_stock = db.Column(db.Integer, nullable=False, default=0)
    reorder_point = db.Column(db.Integer, nullable=False, default=0)
    is_low_stock = db.Column(db.Boolean, nullable=False, default=False)
    unit = db.Column(db.String(20), nullable=True)

    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Category id={self.id} code={self.code!r} stock={self.current_stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "has_stock": self.has_stock,
            "min_stock": self.min_stock,
            "max_stock": self.max_stock,
            "current_stock": self.current_stock,
            "reorder_point": self.reorder_point,
            "is_low_stock": self.is_low_stock,
            "unit": self.unit,
            "notes": self.notes,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Supplier(db.Model):
    __tablename__ = "suppliers"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    contact_person = db.Column(db.String(100), nullable=True)
    phone = db.Column(db.String(30), nullable=True)
    email = db.Column(db.String(100), nullable=True)
    address = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact_person": self.contact_person,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    A single serialized asset.

    Products are NOT counted in Category.current_stock. They are tracked by
    status/location; a category with has_stock=False may still own products.

    ID FORMAT: <CATEGORY CODE><zero-padded number>, e.g. "NET007".
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category_status", "category_id", "status"),
    )

    product_id = db.Column(db.String(20), primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)

    brand = db.Column(db.String(50), nullable=True)
    model = db.Column(db.String(50), nullable=True)
    serial_number = db.Column(db.String(100), nullable=True)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)
    po_number = db.Column(db.String(50), nullable=True)

    # Set when the product was generated by a purchase receipt line
    receipt_item_id = db.Column(
        db.Integer, db.ForeignKey("purchase_receipt_items.id"), nullable=True, index=True
    )

    description = db.Column(db.Text, nullable=True)
    location = db.Column(db.String(100), nullable=True)

    status = db.Column(db.String(20), nullable=False, default="Available", index=True)
    condition = db.Column(db.String(20), nullable=False, default="New")
    quantity = db.Column(db.Integer, nullable=False, default=1)

    purchase_date = db.Column(db.Date, nullable=True)
    purchase_price_cents = db.Column(db.Integer, nullable=True)
    last_maintenance_date = db.Column(db.Date, nullable=True)

    ticketing_id = db.Column(db.String(50), nullable=True)
    is_linked_to_ticketing = db.Column(db.Boolean, nullable=False, default=False)

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    supplier = db.relationship("Supplier")
    receipt_item = db.relationship("PurchaseReceiptItem", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product {self.product_id} status={self.status!r}>"

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "category_id": self.category_id,
            "brand": self.brand,
            "model": self.model,
            "serial_number": self.serial_number,
            "supplier_id": self.supplier_id,
            "po_number": self.po_number,
            "receipt_item_id": self.receipt_item_id,
            "description": self.description,
            "location": self.location,
            "status": self.status,
            "condition": self.condition,
            "quantity": self.quantity,
            "purchase_date": self.purchase_date.isoformat() if self.purchase_date else None,
            "purchase_price_cents": self.purchase_price_cents,
            "last_maintenance_date": (
                self.last_maintenance_date.isoformat() if self.last_maintenance_date else None
            ),
            "ticketing_id": self.ticketing_id,
            "is_linked_to_ticketing": self.is_linked_to_ticketing,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductSequence(db.Model):
    """
    Per-category counter for minting product ids.

    next_number is a hint, not a guarantee: ids entered by hand can occupy a
    number, so allocation still skips ids that already exist.
    """
    __tablename__ = "product_sequences"

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), primary_key=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "category_id": self.category_id,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }

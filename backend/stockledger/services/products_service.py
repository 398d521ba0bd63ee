# Overview: Service-layer operations for serialized products; creation with minted ids and guarded deletion.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Category, Product, TransactionItem
from ..errors import NotFoundError, LinkedTransactionsExistError, ProductValidationError
from stockledger.time_utils import normalize_datetime
from .concurrency import run_with_retry
from .sequence_service import next_product_id


STATUS_AVAILABLE = "Available"
STATUS_IN_USE = "In Use"
STATUS_MAINTENANCE = "Maintenance"
STATUS_REPAIR = "Repair"
STATUS_DAMAGED = "Damaged"
STATUS_LOST = "Lost"
STATUS_DISPOSED = "Disposed"

PRODUCT_STATUSES = {
    STATUS_AVAILABLE,
    STATUS_IN_USE,
    STATUS_MAINTENANCE,
    STATUS_REPAIR,
    STATUS_DAMAGED,
    STATUS_LOST,
    STATUS_DISPOSED,
}


def get_product(product_id: str) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def list_products(
    *,
    category_id: int | None = None,
    status: str | None = None,
    receipt_item_id: int | None = None,
) -> list[Product]:
    query = db.session.query(Product)
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if status:
        query = query.filter(Product.status == status)
    if receipt_item_id is not None:
        query = query.filter(Product.receipt_item_id == receipt_item_id)
    return query.order_by(Product.product_id.asc()).all()


def create_product(
    *,
    category_id: int,
    actor=None,
    product_id: str | None = None,
    brand: str | None = None,
    model: str | None = None,
    serial_number: str | None = None,
    supplier_id: int | None = None,
    location: str | None = None,
    condition: str = "New",
    status: str = STATUS_AVAILABLE,
    purchase_date=None,
    purchase_price_cents: int | None = None,
    notes: str | None = None,
) -> Product:
    """
    Register a serialized product. Stock counters are not touched.

    Without product_id, the next free id for the category is minted.
    """
    if status not in PRODUCT_STATUSES:
        raise ProductValidationError(f"Invalid product status: {status}")

    def _op():
        category = db.session.get(Category, category_id)
        if category is None:
            raise NotFoundError(f"Category {category_id} not found")

        if product_id:
            if db.session.get(Product, product_id) is not None:
                raise ProductValidationError(f"Product id {product_id} already exists")
            pid = product_id
        else:
            pid = next_product_id(category)

        product = Product(
            product_id=pid,
            category_id=category.id,
            brand=brand,
            model=model,
            serial_number=serial_number,
            supplier_id=supplier_id,
            location=location,
            condition=condition,
            status=status,
            purchase_date=normalize_datetime(purchase_date).date() if purchase_date else None,
            purchase_price_cents=purchase_price_cents,
            notes=notes,
        )
        db.session.add(product)
        db.session.commit()
        return product

    product = run_with_retry(_op)
    current_app.logger.info("Created product %s by %s", product.product_id, actor)
    return product


def delete_product(product_id: str) -> None:
    """
    Delete a product with no transaction history.

    This is also how products generated by a receipt line are removed so
    that the line (or receipt) can be reversed.

    Raises:
        NotFoundError, LinkedTransactionsExistError
    """
    def _op():
        product = get_product(product_id)
        count = db.session.query(TransactionItem).filter_by(product_id=product.product_id).count()
        if count:
            raise LinkedTransactionsExistError(
                f"Cannot delete product. Product has {count} transaction records"
            )
        db.session.delete(product)
        db.session.commit()

    run_with_retry(_op)
    current_app.logger.info("Deleted product %s", product_id)

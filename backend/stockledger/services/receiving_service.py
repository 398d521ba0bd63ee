# Overview: Service-layer operations for purchase receipts; turns receipt lines into ledger movements and back.

"""
Receiving Service

WHY: Purchase receipts are the main source of inbound stock. Every line on a
receipt for a stock-tracked category books an 'in' movement; removing the
line or deleting the receipt books the compensating 'out' movement.

LIFECYCLE:
1. pending:   lines may be added/removed, receipt may be deleted
2. completed: immutable except status -> cancelled (default for new receipts)
3. cancelled: no further status changes

RECONCILIATION:
- Removing a line:   out movement, reference_type=purchase_receipt_item_removal
- Deleting receipt:  out movement per line, reference_type=purchase_receipt_reversal
- Both are refused while serialized products trace back to the line(s);
  those products must be deleted first.
- Reversals are strict 'out' movements: if the received stock has since been
  consumed, InsufficientStockError aborts the whole operation.

All checks that can fail (not found, locked, linked products) run before the
first write. Everything else shares the ledger's all-or-nothing unit of work.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import (
    Category,
    Product,
    PurchaseReceipt,
    PurchaseReceiptItem,
    Supplier,
    MovementType,
    ReferenceType,
)
from ..errors import (
    NotFoundError,
    ReceiptLockedError,
    ReceiptValidationError,
    LinkedProductsExistError,
)
from stockledger.time_utils import normalize_datetime
from .concurrency import run_with_retry
from .ledger_service import MovementResult, _apply_movement_inner
from .sequence_service import next_reference_number, next_product_id
from .products_service import STATUS_AVAILABLE


STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"

RECEIPT_STATUSES = {STATUS_PENDING, STATUS_COMPLETED, STATUS_CANCELLED}

RECEIPT_PREFIX = "RCP"


@dataclass
class ReceiveResult:
    """What one received line produced."""
    receipt: PurchaseReceipt
    item: PurchaseReceiptItem
    movement: MovementResult | None = None
    products: list[Product] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "receipt": self.receipt.to_dict(),
            "item": self.item.to_dict(),
            "movement": self.movement.to_dict() if self.movement else None,
            "products": [p.to_dict() for p in self.products],
        }


@dataclass
class ReversalResult:
    """Compensating movements booked when lines leave a receipt."""
    receipt_id: int
    receipt_number: str
    total_amount_cents: int
    movements: list[MovementResult] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "receipt_id": self.receipt_id,
            "receipt_number": self.receipt_number,
            "total_amount_cents": self.total_amount_cents,
            "movements": [m.to_dict() for m in self.movements],
        }


def get_receipt(receipt_id: int) -> PurchaseReceipt:
    receipt = db.session.get(PurchaseReceipt, receipt_id)
    if receipt is None:
        raise NotFoundError(f"Purchase receipt {receipt_id} not found")
    return receipt


def get_receipt_with_items(receipt_id: int) -> dict:
    receipt = get_receipt(receipt_id)
    result = receipt.to_dict()
    result["items"] = [item.to_dict() for item in receipt.items]
    result["supplier"] = receipt.supplier.to_dict() if receipt.supplier else None
    result["total_quantity"] = sum(item.quantity for item in receipt.items)
    return result


def list_receipts(
    *,
    status: str | None = None,
    supplier_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[PurchaseReceipt], int]:
    query = db.session.query(PurchaseReceipt)
    if status:
        query = query.filter(PurchaseReceipt.status == status)
    if supplier_id:
        query = query.filter(PurchaseReceipt.supplier_id == supplier_id)

    total = query.count()
    query = query.order_by(PurchaseReceipt.receipt_date.desc(), PurchaseReceipt.id.desc())
    return query.offset(offset).limit(limit).all(), total


def _get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if category is None:
        raise NotFoundError(f"Category {category_id} not found")
    return category


def _validate_line(quantity, unit_price_cents) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ReceiptValidationError("Quantity must be a positive integer")
    if isinstance(unit_price_cents, bool) or not isinstance(unit_price_cents, int) or unit_price_cents < 0:
        raise ReceiptValidationError("Unit price cannot be negative")


def _split_serials(serial_numbers: str | None) -> list[str]:
    if not serial_numbers:
        return []
    return [s.strip() for s in re.split(r"[,\n]", serial_numbers) if s.strip()]


def _count_linked_products(item_ids: list[int]) -> int:
    if not item_ids:
        return 0
    return db.session.query(Product).filter(Product.receipt_item_id.in_(item_ids)).count()


def _generate_products(receipt: PurchaseReceipt, item: PurchaseReceiptItem, category: Category) -> list[Product]:
    serials = _split_serials(item.serial_numbers)
    products = []
    for index in range(item.quantity):
        product = Product(
            product_id=next_product_id(category),
            category_id=category.id,
            supplier_id=receipt.supplier_id,
            serial_number=serials[index] if index < len(serials) else None,
            po_number=receipt.po_number,
            receipt_item_id=item.id,
            status=STATUS_AVAILABLE,
            condition=item.condition,
            quantity=1,
            purchase_date=receipt.receipt_date.date() if receipt.receipt_date else None,
            purchase_price_cents=item.unit_price_cents,
        )
        db.session.add(product)
        db.session.flush()
        products.append(product)
    return products


def _receive_item_inner(
    receipt: PurchaseReceipt,
    category: Category,
    *,
    quantity: int,
    unit_price_cents: int,
    actor,
    generate_products: bool = False,
    serial_numbers: str | None = None,
    condition: str | None = None,
    notes: str | None = None,
    movement_note: str,
) -> ReceiveResult:
    """Core receive logic without retry or commit."""
    total_price = quantity * unit_price_cents
    item = PurchaseReceiptItem(
        category_id=category.id,
        quantity=quantity,
        unit_price_cents=unit_price_cents,
        total_price_cents=total_price,
        serial_numbers=serial_numbers,
        condition=condition or "New",
        notes=notes,
    )
    receipt.items.append(item)
    db.session.flush()

    receipt.total_amount_cents = (receipt.total_amount_cents or 0) + total_price

    movement = None
    if category.has_stock:
        movement = _apply_movement_inner(
            category_id=category.id,
            movement_type=MovementType.IN,
            quantity=quantity,
            reference_type=ReferenceType.PURCHASE_RECEIPT,
            reference_id=receipt.id,
            actor=actor,
            notes=movement_note,
        )

    products = _generate_products(receipt, item, category) if generate_products else []

    return ReceiveResult(receipt=receipt, item=item, movement=movement, products=products)


def _reverse_item_inner(
    receipt: PurchaseReceipt,
    item: PurchaseReceiptItem,
    *,
    reference_type: ReferenceType,
    actor,
    movement_note: str,
) -> MovementResult | None:
    """Core reversal logic without retry or commit. Linked products must already be checked."""
    receipt.total_amount_cents = max(0, (receipt.total_amount_cents or 0) - (item.total_price_cents or 0))

    category = _get_category(item.category_id)
    if not category.has_stock:
        return None

    return _apply_movement_inner(
        category_id=category.id,
        movement_type=MovementType.OUT,
        quantity=item.quantity,
        reference_type=reference_type,
        reference_id=receipt.id,
        actor=actor,
        notes=movement_note,
    )


def create_receipt(
    *,
    supplier_id: int,
    actor,
    po_number: str | None = None,
    receipt_number: str | None = None,
    receipt_date: datetime | str | None = None,
    status: str = STATUS_COMPLETED,
    notes: str | None = None,
    items: list[dict] | None = None,
) -> tuple[PurchaseReceipt, list[ReceiveResult]]:
    """
    Create a purchase receipt and receive its lines in one unit of work.

    Each item dict takes: category_id, quantity, unit_price_cents, and
    optionally generate_products, serial_numbers, condition, notes.

    Raises:
        NotFoundError: supplier or any line's category missing
        ReceiptValidationError: bad status, duplicate receipt number, bad line
    """
    if status not in RECEIPT_STATUSES:
        raise ReceiptValidationError(f"Invalid status. Must be one of: {', '.join(sorted(RECEIPT_STATUSES))}")
    items = items or []
    for line in items:
        if line.get("category_id") is None:
            raise ReceiptValidationError("Each item needs a category_id")
        _validate_line(line.get("quantity"), line.get("unit_price_cents", 0))

    def _op():
        if db.session.get(Supplier, supplier_id) is None:
            raise NotFoundError(f"Supplier {supplier_id} not found")

        categories = {line["category_id"]: _get_category(line["category_id"]) for line in items}

        def _taken(number: str) -> bool:
            return db.session.query(PurchaseReceipt.id).filter_by(receipt_number=number).first() is not None

        if receipt_number:
            if _taken(receipt_number):
                raise ReceiptValidationError("Receipt number already exists")
            number = receipt_number
        else:
            number = next_reference_number(
                document_type="purchase_receipt", prefix=RECEIPT_PREFIX, is_taken=_taken
            )

        receipt = PurchaseReceipt(
            receipt_number=number,
            po_number=po_number,
            supplier_id=supplier_id,
            receipt_date=normalize_datetime(receipt_date),
            total_amount_cents=0,
            status=status,
            created_by=str(actor) if actor is not None else None,
            notes=notes,
        )
        db.session.add(receipt)
        db.session.flush()

        results = [
            _receive_item_inner(
                receipt,
                categories[line["category_id"]],
                quantity=line["quantity"],
                unit_price_cents=line.get("unit_price_cents", 0),
                actor=actor,
                generate_products=bool(line.get("generate_products")),
                serial_numbers=line.get("serial_numbers"),
                condition=line.get("condition"),
                notes=line.get("notes"),
                movement_note=f"Purchase receipt: {number}",
            )
            for line in items
        ]

        db.session.commit()
        return receipt, results

    receipt, results = run_with_retry(_op)
    current_app.logger.info(
        "Created purchase receipt %s with %s lines (total %s cents)",
        receipt.receipt_number, len(results), receipt.total_amount_cents,
    )
    return receipt, results


def receive_item(
    *,
    receipt_id: int,
    category_id: int,
    quantity: int,
    unit_price_cents: int = 0,
    actor,
    generate_products: bool = False,
    serial_numbers: str | None = None,
    condition: str | None = None,
    notes: str | None = None,
) -> ReceiveResult:
    """
    Add a line to a non-completed receipt and receive it.

    Stock-tracked categories get an 'in' movement; generate_products mints
    one serialized product per unit regardless of stock tracking.

    Raises:
        NotFoundError, ReceiptLockedError, ReceiptValidationError
    """
    _validate_line(quantity, unit_price_cents)

    def _op():
        receipt = get_receipt(receipt_id)
        if receipt.status == STATUS_COMPLETED:
            raise ReceiptLockedError("Cannot add items to completed receipt")
        category = _get_category(category_id)

        result = _receive_item_inner(
            receipt,
            category,
            quantity=quantity,
            unit_price_cents=unit_price_cents,
            actor=actor,
            generate_products=generate_products,
            serial_numbers=serial_numbers,
            condition=condition,
            notes=notes,
            movement_note=f"Added to receipt: {receipt.receipt_number}",
        )
        db.session.commit()
        return result

    result = run_with_retry(_op)
    current_app.logger.info(
        "Received %s x category %s on receipt %s", quantity, category_id, result.receipt.receipt_number
    )
    return result


def reverse_item(*, receipt_id: int, item_id: int, actor) -> ReversalResult:
    """
    Remove a line from a non-completed receipt, reversing its stock.

    Raises:
        NotFoundError, ReceiptLockedError, LinkedProductsExistError,
        InsufficientStockError
    """
    def _op():
        receipt = get_receipt(receipt_id)
        if receipt.status == STATUS_COMPLETED:
            raise ReceiptLockedError("Cannot remove items from completed receipt")

        item = (
            db.session.query(PurchaseReceiptItem)
            .filter_by(id=item_id, receipt_id=receipt.id)
            .first()
        )
        if item is None:
            raise NotFoundError(f"Receipt item {item_id} not found")

        linked = _count_linked_products([item.id])
        if linked:
            raise LinkedProductsExistError(
                f"Cannot remove item. {linked} products are linked to this item", linked
            )

        movement = _reverse_item_inner(
            receipt,
            item,
            reference_type=ReferenceType.PURCHASE_RECEIPT_ITEM_REMOVAL,
            actor=actor,
            movement_note=f"Removed from receipt: {receipt.receipt_number}",
        )
        receipt.items.remove(item)
        db.session.commit()

        return ReversalResult(
            receipt_id=receipt.id,
            receipt_number=receipt.receipt_number,
            total_amount_cents=receipt.total_amount_cents,
            movements=[movement] if movement else [],
        )

    result = run_with_retry(_op)
    current_app.logger.info("Removed item %s from receipt %s", item_id, result.receipt_number)
    return result


def delete_receipt(receipt_id: int, *, actor) -> ReversalResult:
    """
    Delete a non-completed receipt, reversing the stock of every line.

    Raises:
        NotFoundError, ReceiptLockedError, LinkedProductsExistError,
        InsufficientStockError
    """
    def _op():
        receipt = get_receipt(receipt_id)
        if receipt.status == STATUS_COMPLETED:
            raise ReceiptLockedError("Cannot delete completed purchase receipt")

        linked = _count_linked_products([item.id for item in receipt.items])
        if linked:
            raise LinkedProductsExistError(
                f"Cannot delete receipt. {linked} products are linked to this receipt", linked
            )

        movements = []
        for item in list(receipt.items):
            movement = _reverse_item_inner(
                receipt,
                item,
                reference_type=ReferenceType.PURCHASE_RECEIPT_REVERSAL,
                actor=actor,
                movement_note=f"Reversal of receipt: {receipt.receipt_number}",
            )
            if movement:
                movements.append(movement)

        result = ReversalResult(
            receipt_id=receipt.id,
            receipt_number=receipt.receipt_number,
            total_amount_cents=receipt.total_amount_cents,
            movements=movements,
        )
        db.session.delete(receipt)
        db.session.commit()
        return result

    result = run_with_retry(_op)
    current_app.logger.info(
        "Deleted receipt %s with %s reversal movements", result.receipt_number, len(result.movements)
    )
    return result


def update_receipt(receipt_id: int, *, actor, **fields) -> PurchaseReceipt:
    """
    Update receipt header fields.

    A completed receipt only accepts a status change to cancelled.

    Raises:
        NotFoundError, ReceiptLockedError, ReceiptValidationError
    """
    allowed = {"receipt_number", "po_number", "supplier_id", "receipt_date", "status", "notes"}
    unknown = set(fields) - allowed
    if unknown:
        raise ReceiptValidationError(f"Unknown receipt fields: {', '.join(sorted(unknown))}")

    new_status = fields.get("status")
    if new_status is not None and new_status not in RECEIPT_STATUSES:
        raise ReceiptValidationError(f"Invalid status. Must be one of: {', '.join(sorted(RECEIPT_STATUSES))}")

    def _op():
        receipt = get_receipt(receipt_id)

        if receipt.status == STATUS_COMPLETED:
            if new_status != STATUS_CANCELLED or set(fields) - {"status", "notes"}:
                raise ReceiptLockedError("Cannot modify completed purchase receipt")
        if receipt.status == STATUS_CANCELLED and new_status not in (None, STATUS_CANCELLED):
            raise ReceiptLockedError("Cancelled receipts cannot change status")

        number = fields.get("receipt_number")
        if number and number != receipt.receipt_number:
            exists = db.session.query(PurchaseReceipt.id).filter_by(receipt_number=number).first()
            if exists:
                raise ReceiptValidationError("Receipt number already exists")
            receipt.receipt_number = number

        supplier_id = fields.get("supplier_id")
        if supplier_id and supplier_id != receipt.supplier_id:
            if db.session.get(Supplier, supplier_id) is None:
                raise NotFoundError(f"Supplier {supplier_id} not found")
            receipt.supplier_id = supplier_id

        if fields.get("po_number"):
            receipt.po_number = fields["po_number"]
        if fields.get("receipt_date"):
            receipt.receipt_date = normalize_datetime(fields["receipt_date"])
        if "notes" in fields:
            receipt.notes = fields["notes"]
        if new_status:
            receipt.status = new_status

        db.session.commit()
        return receipt

    receipt = run_with_retry(_op)
    current_app.logger.info("Updated receipt %s (status=%s) by %s", receipt.receipt_number, receipt.status, actor)
    return receipt

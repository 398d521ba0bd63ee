# Overview: Service-layer operations for asset transactions; applies and reverts product status side effects.

"""
Transaction Service

WHY: Serialized assets are tracked by status and location, not quantity.
Checking an asset out, in, to repair, lost or to another location mutates
the Product row. These transitions never touch Category stock: asset state
and fungible stock are separate ledgers.

LIFECYCLE: open -> closed
- Items may be added/removed only while open.
- Closing requires at least one item.
- A closed transaction is read-only until explicitly reopened.

SIDE EFFECTS PER ITEM:
    check_out  status=In Use,  location=transaction.location, ticket link set if given
    check_in   status=Available, condition=condition_after, ticket link cleared
    repair     status=Repair,  last_maintenance_date=today
    lost       status=Lost,    last_maintenance_date=today
    transfer   location=transaction.location

COMPENSATION: removing a check_out item, or deleting an open check_out
transaction, returns the product to Available and clears the ticket link.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Product, Transaction, TransactionItem
from ..errors import (
    NotFoundError,
    TransactionClosedError,
    AlreadyClosedError,
    TransactionStateError,
    InvalidTransactionTypeError,
    DuplicateItemError,
)
from stockledger.time_utils import normalize_datetime, utcnow
from .concurrency import run_with_retry
from .sequence_service import next_reference_number
from .products_service import (
    get_product,
    STATUS_AVAILABLE,
    STATUS_IN_USE,
    STATUS_REPAIR,
    STATUS_LOST,
)


TYPE_CHECK_OUT = "check_out"
TYPE_CHECK_IN = "check_in"
TYPE_REPAIR = "repair"
TYPE_LOST = "lost"
TYPE_TRANSFER = "transfer"

TRANSACTION_TYPES = {TYPE_CHECK_OUT, TYPE_CHECK_IN, TYPE_REPAIR, TYPE_LOST, TYPE_TRANSFER}

STATUS_OPEN = "open"
STATUS_CLOSED = "closed"


def _validate_type(transaction_type: str) -> None:
    if transaction_type not in TRANSACTION_TYPES:
        raise InvalidTransactionTypeError(
            f"Invalid transaction type. Must be one of: {', '.join(sorted(TRANSACTION_TYPES))}"
        )


def _ensure_open(transaction: Transaction, action: str) -> None:
    if transaction.status == STATUS_CLOSED:
        raise TransactionClosedError(f"Cannot {action} closed transaction")


def _clear_ticket(product: Product) -> None:
    product.ticketing_id = None
    product.is_linked_to_ticketing = False


def apply_item_effect(
    transaction: Transaction,
    product: Product,
    *,
    condition_after: str | None = None,
    ticketing_id: str | None = None,
) -> Product:
    """Mutate the product for one new transaction item. Caller owns the transaction."""
    kind = transaction.transaction_type

    if kind == TYPE_CHECK_OUT:
        product.status = STATUS_IN_USE
        product.location = transaction.location
        if ticketing_id:
            product.ticketing_id = ticketing_id
            product.is_linked_to_ticketing = True
    elif kind == TYPE_CHECK_IN:
        product.status = STATUS_AVAILABLE
        product.condition = condition_after or product.condition
        _clear_ticket(product)
    elif kind == TYPE_REPAIR:
        product.status = STATUS_REPAIR
        product.last_maintenance_date = utcnow().date()
    elif kind == TYPE_LOST:
        product.status = STATUS_LOST
        product.last_maintenance_date = utcnow().date()
    elif kind == TYPE_TRANSFER:
        product.location = transaction.location

    return product


def revert_item_effect(transaction: Transaction, product: Product) -> Product:
    """Undo a check_out on removal; other types are not reverted."""
    if transaction.transaction_type == TYPE_CHECK_OUT:
        product.status = STATUS_AVAILABLE
        _clear_ticket(product)
    return product


def get_transaction(transaction_id: int) -> Transaction:
    transaction = db.session.get(Transaction, transaction_id)
    if transaction is None:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    return transaction


def list_transactions(
    *,
    transaction_type: str | None = None,
    status: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Transaction], int]:
    query = db.session.query(Transaction)
    if transaction_type:
        query = query.filter(Transaction.transaction_type == transaction_type)
    if status:
        query = query.filter(Transaction.status == status)

    total = query.count()
    query = query.order_by(Transaction.transaction_date.desc(), Transaction.id.desc())
    return query.offset(offset).limit(limit).all(), total


def _add_item_inner(
    transaction: Transaction,
    product: Product,
    *,
    condition_before: str | None = None,
    condition_after: str | None = None,
    quantity: int = 1,
    notes: str | None = None,
    ticketing_id: str | None = None,
) -> TransactionItem:
    if any(existing.product_id == product.product_id for existing in transaction.items):
        raise DuplicateItemError(f"Product {product.product_id} already exists in this transaction")

    item = TransactionItem(
        product_id=product.product_id,
        condition_before=condition_before or product.condition,
        condition_after=condition_after or product.condition,
        quantity=quantity or 1,
        notes=notes,
        status="processed",
    )
    transaction.items.append(item)
    apply_item_effect(transaction, product, condition_after=condition_after, ticketing_id=ticketing_id)
    db.session.flush()
    return item


def create_transaction(
    *,
    transaction_type: str,
    first_person: str,
    location: str,
    actor,
    second_person: str | None = None,
    reference_no: str | None = None,
    transaction_date=None,
    notes: str | None = None,
    items: list[dict] | None = None,
) -> Transaction:
    """
    Create an open transaction and apply each item's product side effect.

    Each item dict takes product_id and optionally condition_before,
    condition_after, quantity, notes, ticketing_id. A missing product aborts
    the whole creation.

    Raises:
        InvalidTransactionTypeError, NotFoundError, DuplicateItemError
    """
    _validate_type(transaction_type)
    if not first_person or not location:
        raise TransactionStateError("first_person and location are required")
    items = items or []

    def _op():
        products = [get_product(line["product_id"]) for line in items]

        number = reference_no or next_reference_number(
            document_type=f"transaction:{transaction_type}",
            prefix=transaction_type.upper()[:2],
        )

        transaction = Transaction(
            transaction_type=transaction_type,
            reference_no=number,
            first_person=first_person,
            second_person=second_person,
            location=location,
            transaction_date=normalize_datetime(transaction_date),
            notes=notes,
            status=STATUS_OPEN,
            created_by=str(actor) if actor is not None else None,
        )
        db.session.add(transaction)
        db.session.flush()

        for line, product in zip(items, products):
            _add_item_inner(
                transaction,
                product,
                condition_before=line.get("condition_before"),
                condition_after=line.get("condition_after"),
                quantity=line.get("quantity", 1),
                notes=line.get("notes"),
                ticketing_id=line.get("ticketing_id"),
            )

        db.session.commit()
        return transaction

    transaction = run_with_retry(_op)
    current_app.logger.info(
        "Created %s transaction %s with %s items",
        transaction.transaction_type, transaction.reference_no, len(items),
    )
    return transaction


def add_transaction_item(
    *,
    transaction_id: int,
    product_id: str,
    actor,
    condition_before: str | None = None,
    condition_after: str | None = None,
    quantity: int = 1,
    notes: str | None = None,
    ticketing_id: str | None = None,
) -> TransactionItem:
    """
    Add an item to an open transaction and apply its side effect.

    Raises:
        NotFoundError, TransactionClosedError, DuplicateItemError
    """
    def _op():
        transaction = get_transaction(transaction_id)
        _ensure_open(transaction, "add items to")
        product = get_product(product_id)

        item = _add_item_inner(
            transaction,
            product,
            condition_before=condition_before,
            condition_after=condition_after,
            quantity=quantity,
            notes=notes,
            ticketing_id=ticketing_id,
        )
        db.session.commit()
        return item

    item = run_with_retry(_op)
    current_app.logger.info("Added product %s to transaction %s by %s", product_id, transaction_id, actor)
    return item


def remove_transaction_item(*, transaction_id: int, item_id: int, actor) -> Product:
    """
    Remove an item from an open transaction, reverting a check_out.

    Raises:
        NotFoundError, TransactionClosedError
    """
    def _op():
        transaction = get_transaction(transaction_id)
        _ensure_open(transaction, "remove items from")

        item = next((i for i in transaction.items if i.id == item_id), None)
        if item is None:
            raise NotFoundError(f"Transaction item {item_id} not found")

        product = get_product(item.product_id)
        revert_item_effect(transaction, product)
        transaction.items.remove(item)
        db.session.commit()
        return product

    product = run_with_retry(_op)
    current_app.logger.info(
        "Removed item %s from transaction %s by %s (product %s now %s)",
        item_id, transaction_id, actor, product.product_id, product.status,
    )
    return product


def delete_transaction(transaction_id: int, *, actor) -> list[Product]:
    """
    Delete an open transaction, reverting check_out side effects.

    Raises:
        NotFoundError, TransactionClosedError
    """
    def _op():
        transaction = get_transaction(transaction_id)
        _ensure_open(transaction, "delete")

        reverted = []
        for item in transaction.items:
            product = db.session.get(Product, item.product_id)
            if product is not None:
                reverted.append(revert_item_effect(transaction, product))

        db.session.delete(transaction)
        db.session.commit()
        return reverted

    reverted = run_with_retry(_op)
    current_app.logger.info("Deleted transaction %s by %s", transaction_id, actor)
    return reverted


def close_transaction(transaction_id: int, *, actor) -> Transaction:
    """
    Raises:
        NotFoundError, AlreadyClosedError, TransactionStateError (no items)
    """
    def _op():
        transaction = get_transaction(transaction_id)
        if transaction.status == STATUS_CLOSED:
            raise AlreadyClosedError("Transaction already closed")
        if not transaction.items:
            raise TransactionStateError("Cannot close transaction without items")

        transaction.status = STATUS_CLOSED
        db.session.commit()
        return transaction

    transaction = run_with_retry(_op)
    current_app.logger.info("Closed transaction %s by %s", transaction.reference_no, actor)
    return transaction


def reopen_transaction(transaction_id: int, *, actor) -> Transaction:
    def _op():
        transaction = get_transaction(transaction_id)
        if transaction.status != STATUS_CLOSED:
            raise TransactionStateError("Only closed transactions can be reopened")

        transaction.status = STATUS_OPEN
        db.session.commit()
        return transaction

    transaction = run_with_retry(_op)
    current_app.logger.info("Reopened transaction %s by %s", transaction.reference_no, actor)
    return transaction


def update_transaction(transaction_id: int, *, actor, **fields) -> Transaction:
    """
    Edit header fields of an open transaction.

    Raises:
        NotFoundError, TransactionClosedError, TransactionStateError
    """
    allowed = {"reference_no", "first_person", "second_person", "location", "transaction_date", "notes"}
    unknown = set(fields) - allowed
    if unknown:
        raise TransactionStateError(f"Unknown transaction fields: {', '.join(sorted(unknown))}")

    def _op():
        transaction = get_transaction(transaction_id)
        _ensure_open(transaction, "modify")

        for name in ("reference_no", "first_person", "second_person", "location"):
            if fields.get(name):
                setattr(transaction, name, fields[name])
        if fields.get("transaction_date"):
            transaction.transaction_date = normalize_datetime(fields["transaction_date"])
        if "notes" in fields:
            transaction.notes = fields["notes"]

        db.session.commit()
        return transaction

    transaction = run_with_retry(_op)
    current_app.logger.info("Updated transaction %s by %s", transaction.reference_no, actor)
    return transaction

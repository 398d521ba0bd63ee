# Overview: Service-layer operations for reference numbers and product ids; encapsulates sequence allocation.

from __future__ import annotations

from datetime import datetime
from typing import Callable

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Category, DocumentSequence, Product, ProductSequence
from ..errors import SequenceError
from stockledger.time_utils import day_stamp


def _bump_daily_number(document_type: str, sequence_date: str) -> int | None:
    """Take the next number with a single UPDATE; None when the day has no row yet."""
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.sequence_date == sequence_date,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        return None

    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type, sequence_date=sequence_date)
        .scalar()
    )
    return current - 1


def _allocate_daily_number(document_type: str, sequence_date: str) -> int:
    """
    Atomically take the next number for (document_type, sequence_date).

    Uses UPDATE ... SET next_number = next_number + 1 so two callers can
    never receive the same number. Runs inside the caller's transaction.
    The first allocation of a day inserts the row under a SAVEPOINT; if a
    concurrent writer inserted it first, the unique (document_type,
    sequence_date) constraint fails, only the savepoint is rolled back and
    the UPDATE path is taken against the winner's row.
    """
    number = _bump_daily_number(document_type, sequence_date)
    if number is not None:
        return number

    try:
        with db.session.begin_nested():
            db.session.add(
                DocumentSequence(document_type=document_type, sequence_date=sequence_date, next_number=2)
            )
            db.session.flush()
        return 1
    except IntegrityError:
        current_app.logger.info(
            "Sequence row for %s on %s created concurrently; retrying update", document_type, sequence_date
        )

    number = _bump_daily_number(document_type, sequence_date)
    if number is None:
        raise SequenceError(f"Could not allocate a number for {document_type} on {sequence_date}")
    return number


def next_reference_number(
    *,
    document_type: str,
    prefix: str,
    when: datetime | None = None,
    pad: int = 3,
    is_taken: Callable[[str], bool] | None = None,
) -> str:
    """
    Allocate the next reference number of the form <PREFIX>-<YYYYMMDD>-<seq>.

    The sequence is scoped to one document type and one calendar day. When
    is_taken is given, numbers already used (e.g. entered by hand) are skipped.
    Does not commit; the number belongs to the caller's unit of work.
    """
    if not document_type:
        raise SequenceError("document_type is required")
    if not prefix:
        raise SequenceError("prefix is required")

    stamp = day_stamp(when)
    while True:
        number = _allocate_daily_number(document_type, stamp)
        candidate = f"{prefix}-{stamp}-{number:0{pad}d}"
        if is_taken is None or not is_taken(candidate):
            return candidate


def format_product_id(code: str, number: int, pad: int = 3) -> str:
    return f"{code}{number:0{pad}d}"


def _product_id_exists(product_id: str) -> bool:
    return db.session.query(Product.product_id).filter_by(product_id=product_id).first() is not None


def _lock_product_sequence(category_id: int) -> ProductSequence | None:
    return (
        db.session.query(ProductSequence)
        .filter_by(category_id=category_id)
        .with_for_update()
        .populate_existing()
        .first()
    )


def next_product_id(category: Category) -> str:
    """
    Mint the next unused product id for a category, e.g. NET001, NET002.

    The per-category counter avoids scanning every existing id; the
    existence check only runs for the candidate itself and skips ids that
    were created by hand. A counter row inserted concurrently is picked up
    after the savepoint rolls back. Does not commit.
    """
    seq = _lock_product_sequence(category.id)
    if seq is None:
        try:
            with db.session.begin_nested():
                db.session.add(ProductSequence(category_id=category.id, next_number=1))
                db.session.flush()
        except IntegrityError:
            current_app.logger.info("Product sequence for category %s created concurrently", category.code)
        seq = _lock_product_sequence(category.id)
        if seq is None:
            raise SequenceError(f"Could not create product sequence for category {category.code}")

    number = seq.next_number
    candidate = format_product_id(category.code, number)
    while _product_id_exists(candidate):
        number += 1
        candidate = format_product_id(category.code, number)

    seq.next_number = number + 1
    db.session.flush()
    return candidate

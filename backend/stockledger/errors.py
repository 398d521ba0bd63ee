# Overview: Error taxonomy shared by the ledger, receiving, transaction and bulk services.

from __future__ import annotations


class StockLedgerError(Exception):
    """
    Base class for validation failures surfaced verbatim to callers.

    Every subclass carries a stable machine-readable ``code`` so that the
    bulk processor can report failures as data.
    """
    code = "stock_ledger_error"

    def to_dict(self) -> dict:
        return {"code": self.code, "message": str(self)}


class NotFoundError(StockLedgerError):
    """Raised when a category, receipt, transaction or product is absent."""
    code = "not_found"


class NotStockTrackedError(StockLedgerError):
    """Raised when a movement targets a category with has_stock=False."""
    code = "not_stock_tracked"


class InvalidMovementTypeError(StockLedgerError):
    """Raised when movement_type is not one of in/out/adjustment."""
    code = "invalid_movement_type"


class InvalidQuantityError(StockLedgerError):
    """Raised when a quantity is not a usable integer for the movement."""
    code = "invalid_quantity"


class InsufficientStockError(StockLedgerError):
    """Raised when a strict 'out' movement would take stock below zero."""
    code = "insufficient_stock"

    def __init__(self, category_id: int, available: int, requested: int):
        super().__init__(
            f"Insufficient stock for category {category_id}: "
            f"{available} available, {requested} requested"
        )
        self.category_id = category_id
        self.available = available
        self.requested = requested


class TransactionClosedError(StockLedgerError):
    """Raised when a closed transaction is edited or its items are touched."""
    code = "transaction_closed"


class AlreadyClosedError(TransactionClosedError):
    """Raised when closing a transaction that is already closed."""
    code = "already_closed"


class TransactionStateError(StockLedgerError):
    """Raised when a transaction state transition is not allowed."""
    code = "invalid_transaction_state"


class InvalidTransactionTypeError(StockLedgerError):
    code = "invalid_transaction_type"


class DuplicateItemError(StockLedgerError):
    """Raised when a product is added twice to the same transaction."""
    code = "duplicate_item"


class ReceiptLockedError(StockLedgerError):
    """Raised when a completed receipt is edited, deleted or has items changed."""
    code = "receipt_locked"


class ReceiptValidationError(StockLedgerError):
    code = "invalid_receipt"


class LinkedProductsExistError(StockLedgerError):
    """Raised when deletion is blocked by serialized products."""
    code = "linked_products_exist"

    def __init__(self, message: str, count: int):
        super().__init__(message)
        self.count = count


class LinkedTransactionsExistError(StockLedgerError):
    """Raised when a product cannot be deleted because it has transaction history."""
    code = "linked_transactions_exist"


class CategoryValidationError(StockLedgerError):
    code = "invalid_category"


class StockFieldLockedError(StockLedgerError):
    """Raised when current_stock/is_low_stock would be edited outside the ledger."""
    code = "stock_field_locked"


class SequenceError(StockLedgerError):
    """Raised when sequence allocation fails."""
    code = "sequence_error"


class InvalidReferenceTypeError(StockLedgerError):
    """Raised when reference_type is not one of the known movement sources."""
    code = "invalid_reference_type"


class ProductValidationError(StockLedgerError):
    code = "invalid_product"


class InvalidBulkEntryError(StockLedgerError):
    """Bulk entry is not an object with category_id and delta."""
    code = "invalid_entry"

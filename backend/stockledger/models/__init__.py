from .catalog import Category, Supplier, Product, ProductSequence
from .stock import StockMovement, MovementType, ReferenceType
from .purchasing import PurchaseReceipt, PurchaseReceiptItem
from .transactions import Transaction, TransactionItem
from .documents import DocumentSequence

__all__ = [
    'Category', 'Supplier', 'Product', 'ProductSequence',
    'StockMovement', 'MovementType', 'ReferenceType',
    'PurchaseReceipt', 'PurchaseReceiptItem',
    'Transaction', 'TransactionItem',
    'DocumentSequence',
]

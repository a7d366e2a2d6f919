from .catalog import Category, Product
from .inventory import StockAdjustment, ADJUSTMENT_REASONS, REASON_ADD, REASON_REMOVE, REASON_SALE
from .sales import Sale, SaleItem
from .documents import DocumentSequence

__all__ = [
    'Category', 'Product',
    'StockAdjustment', 'ADJUSTMENT_REASONS', 'REASON_ADD', 'REASON_REMOVE', 'REASON_SALE',
    'Sale', 'SaleItem',
    'DocumentSequence',
]

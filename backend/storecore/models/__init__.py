from .catalog import Category, Product
from .ledger import StockLedgerEntry, StockAlert
from .sales import Sale, SaleLine, Payment
from .purchasing import Supplier, Purchase, PurchaseLine, SupplierPayment
from .customers import Customer
from .audit import AuditLog
from .auth import User, SessionToken
from .documents import DocumentSequence

__all__ = [
    'Category', 'Product',
    'StockLedgerEntry', 'StockAlert',
    'Sale', 'SaleLine', 'Payment',
    'Supplier', 'Purchase', 'PurchaseLine', 'SupplierPayment',
    'Customer',
    'AuditLog',
    'User', 'SessionToken',
    'DocumentSequence',
]

from .catalog import Product, Currency, BusinessSettings, User
from .sales import CompletedOrder, OrderLine, RefundTransaction, RefundLine
from .purchasing import PurchaseOrder, PurchaseOrderLine
from .registers import CashDrawerSession, CashDrawerActivity
from .documents import DocumentSequence, AuditLogEntry

__all__ = [
    'Product', 'Currency', 'BusinessSettings', 'User',
    'CompletedOrder', 'OrderLine', 'RefundTransaction', 'RefundLine',
    'PurchaseOrder', 'PurchaseOrderLine',
    'CashDrawerSession', 'CashDrawerActivity',
    'DocumentSequence', 'AuditLogEntry',
]

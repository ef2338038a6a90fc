from .catalog import Product, Client
from .inventory import InventoryRecord, InventoryMovement, Reception, ReceptionItem
from .sales import Order, OrderItem, Invoice, InvoiceItem, Transaction
from .documents import ClientReturn, ClientReturnItem, CreditNote, DocumentSequence, AuditLog
from .settings import CompanySetting

__all__ = [
    'Product', 'Client',
    'InventoryRecord', 'InventoryMovement', 'Reception', 'ReceptionItem',
    'Order', 'OrderItem', 'Invoice', 'InvoiceItem', 'Transaction',
    'ClientReturn', 'ClientReturnItem', 'CreditNote', 'DocumentSequence', 'AuditLog',
    'CompanySetting',
]

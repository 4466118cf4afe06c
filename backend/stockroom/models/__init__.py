from .stores import Store, DocumentSequence
from .access import User, StoreAccessProfile, UserStoreAssignment
from .catalog import Article, Sale, SaleLine
from .inventory import StoreStock, StockMovement, PurchaseOrder, PurchaseOrderLine
from .communications import Notification, OutboxEntry

__all__ = [
    'Store', 'DocumentSequence',
    'User', 'StoreAccessProfile', 'UserStoreAssignment',
    'Article', 'Sale', 'SaleLine',
    'StoreStock', 'StockMovement', 'PurchaseOrder', 'PurchaseOrderLine',
    'Notification', 'OutboxEntry',
]

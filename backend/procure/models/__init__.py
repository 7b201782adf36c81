from .catalog import Category, Product, Supplier
from .staff import Staff
from .orders import Order, PurchaseOrder
from .notifications import Notification
from .documents import DocumentSequence

__all__ = [
    'Category', 'Product', 'Supplier',
    'Staff',
    'Order', 'PurchaseOrder',
    'Notification',
    'DocumentSequence',
]

from .auth import User
from .inventory import Product, InventoryTransaction, PRODUCT_CATEGORIES, TRANSACTION_TYPES
from .deliveries import Delivery, DeliveryItem, DELIVERY_STATUSES, DELIVERY_PRIORITIES

__all__ = [
    'User',
    'Product', 'InventoryTransaction', 'PRODUCT_CATEGORIES', 'TRANSACTION_TYPES',
    'Delivery', 'DeliveryItem', 'DELIVERY_STATUSES', 'DELIVERY_PRIORITIES',
]

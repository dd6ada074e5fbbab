from .stores import Store, StoreConfig, DocumentSequence
from .inventory import Product
from .customers import Customer, LoyaltyTransaction
from .bills import Bill, BillItem, BillPayment, HeldBill

__all__ = [
    'Store', 'StoreConfig', 'DocumentSequence',
    'Product',
    'Customer', 'LoyaltyTransaction',
    'Bill', 'BillItem', 'BillPayment', 'HeldBill',
]

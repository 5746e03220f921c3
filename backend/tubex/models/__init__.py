from .tenancy import Company, Warehouse
from .catalog import Product
from .inventory import Inventory, Batch
from .orders import Order, OrderItem, Invoice, Payment
from .auth import User, SessionToken
from .security import SecurityEvent, RateLimitCounter
from .ledger import LedgerEvent

__all__ = [
    'Company', 'Warehouse',
    'Product',
    'Inventory', 'Batch',
    'Order', 'OrderItem', 'Invoice', 'Payment',
    'User', 'SessionToken',
    'SecurityEvent', 'RateLimitCounter',
    'LedgerEvent',
]

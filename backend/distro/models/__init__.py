from .accounts import User, Employee
from .catalog import Product
from .shops import Shop
from .orders import Order, OrderItem, OrderTransaction
from .ledger import LedgerEntry

__all__ = [
    'User', 'Employee',
    'Product',
    'Shop',
    'Order', 'OrderItem', 'OrderTransaction',
    'LedgerEntry',
]

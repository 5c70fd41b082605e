from .tenancy import Business
from .inventory import Product, Inventory, StockReservation
from .shifts import Shift
from .sales import Sale, SaleItem, SaleActivityLog, DailySequence

__all__ = [
    'Business',
    'Product', 'Inventory', 'StockReservation',
    'Shift',
    'Sale', 'SaleItem', 'SaleActivityLog', 'DailySequence',
]

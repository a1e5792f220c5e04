from .inventory import Item, StockAdjustment
from .sales import Invoice, InvoiceLine
from .returns import SalesReturn, ReturnLine
from .settings import Setting

__all__ = [
    'Item', 'StockAdjustment',
    'Invoice', 'InvoiceLine',
    'SalesReturn', 'ReturnLine',
    'Setting',
]

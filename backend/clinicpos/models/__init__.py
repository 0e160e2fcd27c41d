from .catalog import Patient, Product, Lens
from .documents import DocumentSequence
from .discounts import DiscountRequest
from .quotes import Quote, QuoteItem
from .orders import Order, OrderItem
from .sales import Sale, SaleItem, SalePayment, PartialPayment, SaleLensPriceAdjustment
from .inventory import Warehouse, WarehouseLocation, InventoryItem, InventoryTransfer
from .laboratory import Laboratory, LaboratoryOrder, LaboratoryOrderStatus

__all__ = [
    'Patient', 'Product', 'Lens',
    'DocumentSequence',
    'DiscountRequest',
    'Quote', 'QuoteItem',
    'Order', 'OrderItem',
    'Sale', 'SaleItem', 'SalePayment', 'PartialPayment', 'SaleLensPriceAdjustment',
    'Warehouse', 'WarehouseLocation', 'InventoryItem', 'InventoryTransfer',
    'Laboratory', 'LaboratoryOrder', 'LaboratoryOrderStatus',
]

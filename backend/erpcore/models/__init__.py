from .tenancy import Branch, DocumentSequence, AuditEvent
from .catalog import Uom, Category, Brand, Product, ProductUom
from .inventory import Supplier, StockBalance, InventoryTransaction, InventoryTransactionItem
from .credit import CreditCustomer, CreditNote, CreditPayment
from .formulas import Formula, FormulaComponent

__all__ = [
    'Branch', 'DocumentSequence', 'AuditEvent',
    'Uom', 'Category', 'Brand', 'Product', 'ProductUom',
    'Supplier', 'StockBalance', 'InventoryTransaction', 'InventoryTransactionItem',
    'CreditCustomer', 'CreditNote', 'CreditPayment',
    'Formula', 'FormulaComponent',
]

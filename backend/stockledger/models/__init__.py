from .tenancy import Store, DocumentSequence
from .inventory import (
    Product, SimpleProduct, RawMaterialProduct, ComboSetProduct, ComboComponent,
    StockEntry, Supplier, supplier_products, PurchaseOrder, PurchaseOrderLine,
    PRODUCT_KIND_SIMPLE, PRODUCT_KIND_RAW_MATERIAL, PRODUCT_KIND_COMBO_SET, PRODUCT_KINDS,
    COMBO_COMPONENT_NAMES, ENTRY_INITIAL_STOCK, ENTRY_RESTOCK, ENTRY_ADJUSTMENT, ENTRY_TYPES,
)
from .customers import Customer
from .sales import (
    Sale, SaleItem, SalePayment, SaleRefund, SaleRefundItem,
    PAYMENT_STATUS_PAID, PAYMENT_STATUS_PARTIAL, PAYMENT_STATUS_PENDING, OPEN_PAYMENT_STATUSES,
)
from .accounting import (
    Account, Transaction, TransactionEntry, Expense,
    ACCOUNT_TYPES, TRANSACTION_INCOME, TRANSACTION_EXPENSE, TRANSACTION_TYPES,
    ENTRY_DEBIT, ENTRY_CREDIT, REFERENCE_TYPES,
)

__all__ = [
    'Store', 'DocumentSequence',
    'Product', 'SimpleProduct', 'RawMaterialProduct', 'ComboSetProduct', 'ComboComponent',
    'StockEntry', 'Supplier', 'supplier_products', 'PurchaseOrder', 'PurchaseOrderLine',
    'Customer',
    'Sale', 'SaleItem', 'SalePayment', 'SaleRefund', 'SaleRefundItem',
    'Account', 'Transaction', 'TransactionEntry', 'Expense',
]

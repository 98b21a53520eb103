from models.app_config import AppConfig
from models.audit_log import AuditLog
from models.suppliers import Supplier
from models.products import Product
from models.product_variants import ProductVariant
from models.supplier_products import SupplierProduct
from models.stock_movements import StockMovement
from models.purchase_orders import PurchaseOrder, PurchaseOrderStatus
from models.purchase_order_items import PurchaseOrderItem
from models.purchase_order_sequences import PurchaseOrderSequence

__all__ = ['AppConfig', 'AuditLog', 'Product', 'ProductVariant', 'PurchaseOrder', 'PurchaseOrderItem', 'PurchaseOrderSequence', 'PurchaseOrderStatus', 'StockMovement', 'Supplier', 'SupplierProduct',]

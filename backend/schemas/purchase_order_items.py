from pydantic import BaseModel
from typing import Optional
from decimal import Decimal
from datetime import datetime
from schemas.products import ProductSummary

class PurchaseOrderItemBase(BaseModel):
    product_id: int
    variant_id: Optional[int] = None
    quantity: int
    unit_cost: Decimal

class PurchaseOrderItemCreateRequest(PurchaseOrderItemBase):
    # Used when creating a PO; quantity/cost are checked by the service so the
    # error message can name the product
    pass

class PurchaseOrderItemUpdateRequest(PurchaseOrderItemBase):
    # Items carrying the id of an existing line are updated in place,
    # items without one are added, lines left out are removed
    id: Optional[int] = None
    received_qty: Optional[int] = None

class PurchaseOrderItem(PurchaseOrderItemBase):
    id: int
    purchase_order_id: int
    total_cost: Decimal
    received_qty: int
    product: Optional[ProductSummary] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

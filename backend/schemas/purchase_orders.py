from pydantic import BaseModel
from typing import Optional, List, Dict
from datetime import datetime
from decimal import Decimal
from models.purchase_orders import PurchaseOrderStatus # Import the enum
from schemas.purchase_order_items import (
    PurchaseOrderItem,
    PurchaseOrderItemCreateRequest,
    PurchaseOrderItemUpdateRequest,
)
from schemas.suppliers import Supplier

class PurchaseOrderCreate(BaseModel):
    supplier_id: int
    expected_date: Optional[datetime] = None
    tax_amount: Decimal = Decimal("0")
    shipping_cost: Decimal = Decimal("0")
    notes: Optional[str] = None
    items: List[PurchaseOrderItemCreateRequest]

class PurchaseOrderUpdate(BaseModel):
    status: Optional[PurchaseOrderStatus] = None
    expected_date: Optional[datetime] = None
    received_date: Optional[datetime] = None
    tax_amount: Optional[Decimal] = None
    shipping_cost: Optional[Decimal] = None
    notes: Optional[str] = None
    approved_by: Optional[str] = None
    items: Optional[List[PurchaseOrderItemUpdateRequest]] = None
    # total_amount is system-calculated, not updated directly

class PurchaseOrderReceive(BaseModel):
    received_date: Optional[datetime] = None

class PurchaseOrderFilters(BaseModel):
    supplier_id: Optional[int] = None
    status: Optional[PurchaseOrderStatus] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None
    expected_before: Optional[datetime] = None

class PurchaseOrder(BaseModel):
    id: int
    po_number: str
    supplier_id: int
    status: PurchaseOrderStatus
    order_date: datetime
    expected_date: Optional[datetime] = None
    received_date: Optional[datetime] = None
    total_amount: Decimal
    tax_amount: Decimal
    shipping_cost: Decimal
    notes: Optional[str] = None
    ordered_by: str
    approved_by: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    supplier: Optional[Supplier] = None
    items: List[PurchaseOrderItem] = []

    class Config:
        from_attributes = True

class StatusTotals(BaseModel):
    count: int = 0
    total_value: Decimal = Decimal("0")

class PurchaseOrderSummary(BaseModel):
    total: int
    draft: int
    ordered: int
    received: int
    cancelled: int
    total_value: Decimal
    pending_value: Decimal
    by_status: Dict[str, StatusTotals]

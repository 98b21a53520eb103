# backend/routers/purchase_orders.py

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
import logging

from database import get_db
from utils.auth_utils import get_current_user, get_user_identifier
from models.purchase_orders import PurchaseOrderStatus
from schemas.purchase_orders import (
    PurchaseOrder as PurchaseOrderSchema,
    PurchaseOrderCreate,
    PurchaseOrderUpdate,
    PurchaseOrderReceive,
    PurchaseOrderFilters,
    PurchaseOrderSummary,
)
from services.inventory_reconciliation import build_reconciler
from services.purchase_orders import PurchaseOrderService

router = APIRouter(prefix="/purchase-orders", tags=["Purchase Orders"])
logger = logging.getLogger("purchase_orders")


def get_purchase_order_service(db: Session = Depends(get_db)) -> PurchaseOrderService:
    """Build the service for this request with the configured reconciliation policy."""
    return PurchaseOrderService(db, reconciler=build_reconciler(db))


@router.get("/", response_model=List[PurchaseOrderSchema])
def read_purchase_orders(
    skip: int = 0,
    limit: int = 100,
    supplier_id: Optional[int] = None,
    status: Optional[PurchaseOrderStatus] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    min_amount: Optional[Decimal] = None,
    max_amount: Optional[Decimal] = None,
    service: PurchaseOrderService = Depends(get_purchase_order_service),
):
    """Retrieve a list of purchase orders with various filters, newest first."""
    filters = PurchaseOrderFilters(
        supplier_id=supplier_id,
        status=status,
        start_date=start_date,
        end_date=end_date,
        min_amount=min_amount,
        max_amount=max_amount,
    )
    return service.list_purchase_orders(filters, skip=skip, limit=limit)


@router.get("/summary", response_model=PurchaseOrderSummary)
def read_purchase_order_summary(service: PurchaseOrderService = Depends(get_purchase_order_service)):
    """Counts and totals per status plus the value still on order."""
    return service.get_summary()


@router.get("/overdue", response_model=List[PurchaseOrderSchema])
def read_overdue_purchase_orders(service: PurchaseOrderService = Depends(get_purchase_order_service)):
    return service.get_overdue()


@router.get("/pending", response_model=List[PurchaseOrderSchema])
def read_pending_purchase_orders(service: PurchaseOrderService = Depends(get_purchase_order_service)):
    return service.get_pending()


@router.get("/by-number/{po_number}", response_model=PurchaseOrderSchema)
def read_purchase_order_by_number(po_number: str, service: PurchaseOrderService = Depends(get_purchase_order_service)):
    return service.get_purchase_order_by_number(po_number)


@router.get("/{po_id}", response_model=PurchaseOrderSchema)
def read_purchase_order(po_id: int, service: PurchaseOrderService = Depends(get_purchase_order_service)):
    """Retrieve a single purchase order by ID, with supplier and items."""
    return service.get_purchase_order(po_id)


@router.post("/", response_model=PurchaseOrderSchema, status_code=status.HTTP_201_CREATED)
def create_purchase_order(
    po: PurchaseOrderCreate,
    user: dict = Depends(get_current_user),
    service: PurchaseOrderService = Depends(get_purchase_order_service),
):
    """Create a new draft purchase order with associated items."""
    return service.create_purchase_order(po, ordered_by=get_user_identifier(user))


@router.patch("/{po_id}", response_model=PurchaseOrderSchema)
def update_purchase_order(
    po_id: int,
    po_update: PurchaseOrderUpdate,
    user: dict = Depends(get_current_user),
    service: PurchaseOrderService = Depends(get_purchase_order_service),
):
    """Update an existing purchase order (partial update).
    Setting status to 'received' performs the full receipt, stock included."""
    return service.update_purchase_order(po_id, po_update, user_id=get_user_identifier(user))


@router.delete("/{po_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_purchase_order(
    po_id: int,
    user: dict = Depends(get_current_user),
    service: PurchaseOrderService = Depends(get_purchase_order_service),
):
    """Delete a purchase order. Only draft orders can be deleted; others should be cancelled."""
    service.delete_purchase_order(po_id, user_id=get_user_identifier(user))


@router.post("/{po_id}/receive", response_model=PurchaseOrderSchema)
def receive_purchase_order(
    po_id: int,
    body: Optional[PurchaseOrderReceive] = None,
    user: dict = Depends(get_current_user),
    service: PurchaseOrderService = Depends(get_purchase_order_service),
):
    """Receive an ordered purchase order into stock."""
    received_date = body.received_date if body else None
    return service.receive_purchase_order(po_id, received_date=received_date, user_id=get_user_identifier(user))

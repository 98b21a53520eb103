from sqlalchemy import Column, Integer, String, Text, Numeric, DateTime, ForeignKey, Enum
from sqlalchemy.orm import relationship
from database import Base
import enum
from models.audit_mixin import TimestampMixin
from utils.time_utils import now_local

class PurchaseOrderStatus(enum.Enum):
    DRAFT = "draft"
    ORDERED = "ordered"
    RECEIVED = "received"
    CANCELLED = "cancelled"

class PurchaseOrder(Base, TimestampMixin):
    __tablename__ = "purchase_orders"

    id = Column(Integer, primary_key=True, index=True)
    po_number = Column(String, unique=True, nullable=False, index=True) # PO-YYYYMM-NNNN
    supplier_id = Column(Integer, ForeignKey("suppliers.id"), nullable=False, index=True)
    status = Column(
        Enum(PurchaseOrderStatus, values_callable=lambda e: [s.value for s in e], name="purchase_order_status"),
        default=PurchaseOrderStatus.DRAFT,
        nullable=False,
        index=True,
    )
    order_date = Column(DateTime(timezone=True), default=now_local, nullable=False, index=True)
    expected_date = Column(DateTime(timezone=True), nullable=True)
    received_date = Column(DateTime(timezone=True), nullable=True)
    total_amount = Column(Numeric(12, 2), default=0, nullable=False) # items + tax + shipping, system-calculated
    tax_amount = Column(Numeric(12, 2), default=0, nullable=False)
    shipping_cost = Column(Numeric(12, 2), default=0, nullable=False)
    notes = Column(Text, nullable=True)
    ordered_by = Column(String, nullable=False)
    approved_by = Column(String, nullable=True)

    # Relationships
    supplier = relationship("Supplier", back_populates="purchase_orders")
    items = relationship("PurchaseOrderItem", back_populates="purchase_order", order_by="PurchaseOrderItem.id", cascade="all, delete-orphan")

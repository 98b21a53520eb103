from sqlalchemy import Column, Integer, String, Text, Numeric, Boolean
from sqlalchemy.orm import relationship
from database import Base
from models.audit_mixin import TimestampMixin

class Product(Base, TimestampMixin):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    base_sku = Column(String, unique=True, nullable=False)
    description = Column(Text, nullable=True)
    base_price = Column(Numeric(12, 2), default=0, nullable=False)
    base_cost = Column(Numeric(12, 2), nullable=True)
    has_variants = Column(Boolean, default=False, nullable=False)

    # Relationships
    variants = relationship("ProductVariant", back_populates="product", order_by="ProductVariant.id", cascade="all, delete-orphan")
    suppliers = relationship("SupplierProduct", back_populates="product")
    purchase_order_items = relationship("PurchaseOrderItem", back_populates="product")

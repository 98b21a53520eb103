from sqlalchemy import Column, Integer, String, Numeric, Boolean, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from database import Base
from models.audit_mixin import TimestampMixin

class SupplierProduct(Base, TimestampMixin):
    """Links a product to a supplier it can be sourced from."""
    __tablename__ = "supplier_products"
    __table_args__ = (UniqueConstraint('supplier_id', 'product_id', name='_supplier_product_uc'),)

    id = Column(Integer, primary_key=True, index=True)
    supplier_id = Column(Integer, ForeignKey("suppliers.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    sku = Column(String, nullable=True) # Supplier's own SKU
    cost = Column(Numeric(12, 2), nullable=False)
    lead_time = Column(Integer, nullable=True) # days
    min_order_qty = Column(Integer, default=1, nullable=False)
    is_preferred = Column(Boolean, default=False, nullable=False)

    supplier = relationship("Supplier", back_populates="products")
    product = relationship("Product", back_populates="suppliers")

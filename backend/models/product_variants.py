from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from database import Base
from models.audit_mixin import TimestampMixin

class ProductVariant(Base, TimestampMixin):
    __tablename__ = "product_variants"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    sku = Column(String, unique=True, nullable=False)
    color = Column(String, nullable=True)
    size = Column(String, nullable=True)
    price = Column(Numeric(12, 2), nullable=False)
    stock = Column(Integer, default=0, nullable=False) # Authoritative on-hand count
    reorder_point = Column(Integer, default=10, nullable=False)
    last_restocked = Column(DateTime(timezone=True), nullable=True)

    product = relationship("Product", back_populates="variants")
    stock_movements = relationship("StockMovement", back_populates="variant")

from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from database import Base
from utils.time_utils import now_local

class StockMovement(Base):
    """Immutable audit entry for a change to a variant's stock."""
    __tablename__ = "stock_movements"
    __table_args__ = (Index('ix_stock_movements_variant_created', 'variant_id', 'created_at'),)

    id = Column(Integer, primary_key=True, index=True)
    variant_id = Column(Integer, ForeignKey("product_variants.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String, nullable=False, index=True) # "restock", "sale", "adjustment" etc.
    quantity = Column(Integer, nullable=False) # Positive or negative
    previous_stock = Column(Integer, nullable=False)
    new_stock = Column(Integer, nullable=False)
    reason = Column(String, nullable=True)
    reference_id = Column(Integer, nullable=True) # e.g. purchase order id
    user_id = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=now_local, nullable=False)

    variant = relationship("ProductVariant", back_populates="stock_movements")

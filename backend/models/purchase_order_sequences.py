from sqlalchemy import Column, Integer, String
from database import Base

class PurchaseOrderSequence(Base):
    """Last issued purchase order sequence value for one calendar month."""
    __tablename__ = "purchase_order_sequences"

    period = Column(String(6), primary_key=True) # YYYYMM
    last_value = Column(Integer, default=0, nullable=False)

from pydantic import BaseModel
from typing import Optional
from decimal import Decimal

class ProductSummary(BaseModel):
    id: int
    name: str
    base_sku: str
    description: Optional[str] = None
    base_price: Decimal
    base_cost: Optional[Decimal] = None
    has_variants: bool

    class Config:
        from_attributes = True

from pydantic import BaseModel
from typing import Optional
from datetime import datetime

class StockMovement(BaseModel):
    id: int
    variant_id: int
    type: str
    quantity: int
    previous_stock: int
    new_stock: int
    reason: Optional[str] = None
    reference_id: Optional[int] = None
    user_id: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True

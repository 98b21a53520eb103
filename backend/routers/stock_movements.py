from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional

from database import get_db
from crud import products as crud_products
from crud import stock_movements as crud
from schemas.stock_movements import StockMovement

router = APIRouter(prefix="/stock-movements", tags=["Stock Movements"])

@router.get("/variant/{variant_id}", response_model=List[StockMovement])
def read_stock_movements(variant_id: int, type: Optional[str] = None, skip: int = 0, limit: int = 100, db: Session = Depends(get_db)):
    if crud_products.get_product_variant(db, variant_id) is None:
        raise HTTPException(status_code=404, detail="Variant not found")
    return crud.get_stock_movements(db, variant_id, movement_type=type, skip=skip, limit=limit)

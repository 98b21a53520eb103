from sqlalchemy.orm import Session
from models.stock_movements import StockMovement
from typing import Optional
from utils.time_utils import now_local

def get_stock_movements(
    db: Session,
    variant_id: int,
    movement_type: Optional[str] = None,
    skip: int = 0,
    limit: int = 100
):
    query = db.query(StockMovement).filter(StockMovement.variant_id == variant_id)

    if movement_type:
        query = query.filter(StockMovement.type == movement_type)

    return query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc()).offset(skip).limit(limit).all()


def create_stock_movement(
    db: Session,
    variant_id: int,
    movement_type: str,
    quantity: int,
    previous_stock: int,
    new_stock: int,
    reason: Optional[str] = None,
    reference_id: Optional[int] = None,
    user_id: Optional[str] = None,
    notes: Optional[str] = None
):
    """Stage a stock movement record; committing is left to the caller."""
    movement = StockMovement(
        variant_id=variant_id,
        type=movement_type,
        quantity=quantity,
        previous_stock=previous_stock,
        new_stock=new_stock,
        reason=reason,
        reference_id=reference_id,
        user_id=user_id,
        notes=notes,
        created_at=now_local()
    )
    db.add(movement)
    db.flush()
    return movement

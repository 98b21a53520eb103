from decimal import Decimal
from sqlalchemy import func
from sqlalchemy.orm import Session

from models.purchase_orders import PurchaseOrder, PurchaseOrderStatus
from schemas.purchase_orders import PurchaseOrderSummary, StatusTotals

CENT = Decimal("0.01")


def get_purchase_order_summary(db: Session) -> PurchaseOrderSummary:
    """
    Counts and monetary totals per status, recomputed from the current rows.

    ``pending_value`` is the value of orders placed with suppliers but not yet
    received (status ``ordered``).
    """
    rows = db.query(
        PurchaseOrder.status,
        func.count(PurchaseOrder.id),
        func.sum(PurchaseOrder.total_amount),
    ).group_by(PurchaseOrder.status).all()

    by_status = {status.value: StatusTotals() for status in PurchaseOrderStatus}
    for status, count, total in rows:
        by_status[status.value] = StatusTotals(
            count=count or 0,
            total_value=Decimal(str(total or 0)).quantize(CENT),
        )

    total_value = sum((totals.total_value for totals in by_status.values()), Decimal(0))

    return PurchaseOrderSummary(
        total=sum(totals.count for totals in by_status.values()),
        draft=by_status[PurchaseOrderStatus.DRAFT.value].count,
        ordered=by_status[PurchaseOrderStatus.ORDERED.value].count,
        received=by_status[PurchaseOrderStatus.RECEIVED.value].count,
        cancelled=by_status[PurchaseOrderStatus.CANCELLED.value].count,
        total_value=total_value.quantize(CENT),
        pending_value=by_status[PurchaseOrderStatus.ORDERED.value].total_value,
        by_status=by_status,
    )

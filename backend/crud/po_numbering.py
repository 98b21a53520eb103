"""
Purchase order number allocation.

Numbers look like ``PO-YYYYMM-NNNN``: the calendar month of the order date and
a sequence that restarts every month. The last issued value of each month is
kept in ``purchase_order_sequences`` and bumped under a row lock inside the
caller's transaction, so a rolled back order never consumes a number and two
writers cannot read the same value. The first allocation of a month seeds the
row from the highest number already issued for that month.

Two writers creating the very first order of a month can still race on the
insert of the sequence row; the primary key (and the unique ``po_number``
column) turns that into an ``IntegrityError`` which the service retries.
"""
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from models.purchase_orders import PurchaseOrder
from models.purchase_order_sequences import PurchaseOrderSequence
from utils.time_utils import as_local, now_local

PO_NUMBER_PREFIX = "PO"


def period_for(order_date: datetime) -> str:
    return as_local(order_date).strftime("%Y%m")


def format_po_number(period: str, sequence: int) -> str:
    return f"{PO_NUMBER_PREFIX}-{period}-{sequence:04d}"


def parse_po_sequence(po_number: str, period: str) -> Optional[int]:
    prefix = f"{PO_NUMBER_PREFIX}-{period}-"
    if not po_number or not po_number.startswith(prefix):
        return None
    suffix = po_number[len(prefix):]
    return int(suffix) if suffix.isdigit() else None


def _highest_issued_sequence(db: Session, period: str) -> int:
    prefix = f"{PO_NUMBER_PREFIX}-{period}-"
    numbers = db.query(PurchaseOrder.po_number).filter(PurchaseOrder.po_number.like(f"{prefix}%")).all()
    sequences = [parse_po_sequence(number, period) for (number,) in numbers]
    return max((s for s in sequences if s is not None), default=0)


def allocate_po_number(db: Session, order_date: Optional[datetime] = None) -> str:
    period = period_for(order_date or now_local())

    sequence = (
        db.query(PurchaseOrderSequence)
        .filter(PurchaseOrderSequence.period == period)
        .with_for_update()
        .first()
    )
    if sequence is None:
        sequence = PurchaseOrderSequence(period=period, last_value=_highest_issued_sequence(db, period))
        db.add(sequence)

    sequence.last_value += 1
    db.flush()
    return format_po_number(period, sequence.last_value)

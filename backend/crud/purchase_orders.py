from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, NamedTuple, Optional

from sqlalchemy.orm import Session, selectinload

from models.purchase_orders import PurchaseOrder
from models.purchase_order_items import PurchaseOrderItem
from schemas.purchase_orders import PurchaseOrderCreate, PurchaseOrderFilters
from schemas.purchase_order_items import PurchaseOrderItemUpdateRequest

CENT = Decimal("0.01")


class ItemChanges(NamedTuple):
    added: List[PurchaseOrderItem]
    updated: List[PurchaseOrderItem]
    removed: List[PurchaseOrderItem]


def _money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(quantity: int, unit_cost) -> Decimal:
    # Priced from the stored unit cost so total_cost == quantity * unit_cost
    return _money(Decimal(quantity) * _money(unit_cost))


def calculate_total(items: Iterable, tax_amount, shipping_cost) -> Decimal:
    """Order total: sum of quantity * unit cost over the lines, plus tax and shipping."""
    items_total = sum((line_total(item.quantity, item.unit_cost) for item in items), Decimal(0))
    return _money(items_total + _money(tax_amount) + _money(shipping_cost))


def recompute_total(db_po: PurchaseOrder) -> Decimal:
    db_po.total_amount = calculate_total(db_po.items, db_po.tax_amount, db_po.shipping_cost)
    return db_po.total_amount


def _with_details(query):
    return query.options(
        # Eagerly load the supplier relationship
        selectinload(PurchaseOrder.supplier),
        # And for each item, eagerly load its related product
        selectinload(PurchaseOrder.items).selectinload(PurchaseOrderItem.product),
    )


def get_purchase_order(db: Session, po_id: int, for_update: bool = False):
    query = _with_details(db.query(PurchaseOrder)).filter(PurchaseOrder.id == po_id)
    if for_update:
        query = query.with_for_update()
    return query.first()


def get_purchase_order_by_number(db: Session, po_number: str):
    return _with_details(db.query(PurchaseOrder)).filter(PurchaseOrder.po_number == po_number).first()


def get_purchase_orders(
    db: Session,
    filters: Optional[PurchaseOrderFilters] = None,
    skip: int = 0,
    limit: Optional[int] = 100
):
    """Retrieve purchase orders matching the filters, newest order date first."""
    query = _with_details(db.query(PurchaseOrder))
    filters = filters or PurchaseOrderFilters()

    if filters.supplier_id:
        query = query.filter(PurchaseOrder.supplier_id == filters.supplier_id)
    if filters.status:
        query = query.filter(PurchaseOrder.status == filters.status)
    if filters.start_date:
        query = query.filter(PurchaseOrder.order_date >= filters.start_date)
    if filters.end_date:
        query = query.filter(PurchaseOrder.order_date <= filters.end_date)
    if filters.min_amount is not None:
        query = query.filter(PurchaseOrder.total_amount >= filters.min_amount)
    if filters.max_amount is not None:
        query = query.filter(PurchaseOrder.total_amount <= filters.max_amount)
    if filters.expected_before:
        query = query.filter(
            PurchaseOrder.expected_date.isnot(None),
            PurchaseOrder.expected_date < filters.expected_before
        )

    return query.order_by(PurchaseOrder.order_date.desc(), PurchaseOrder.id.desc()).offset(skip).limit(limit).all()


def create_purchase_order(db: Session, po_number: str, po: PurchaseOrderCreate, ordered_by: str, order_date):
    """Stage a new draft order with its lines and computed total."""
    db_po = PurchaseOrder(
        po_number=po_number,
        supplier_id=po.supplier_id,
        order_date=order_date,
        expected_date=po.expected_date,
        tax_amount=_money(po.tax_amount),
        shipping_cost=_money(po.shipping_cost),
        notes=po.notes,
        ordered_by=ordered_by,
        created_by=ordered_by,
        updated_by=ordered_by,
    )
    for item_data in po.items:
        db_po.items.append(
            PurchaseOrderItem(
                product_id=item_data.product_id,
                variant_id=item_data.variant_id,
                quantity=item_data.quantity,
                unit_cost=_money(item_data.unit_cost),
                total_cost=line_total(item_data.quantity, item_data.unit_cost),
                received_qty=0,
            )
        )
    recompute_total(db_po)
    db.add(db_po)
    db.flush() # Flush to get db_po.id and item ids
    return db_po


def apply_purchase_order_items(db: Session, db_po: PurchaseOrder, items: List[PurchaseOrderItemUpdateRequest]) -> ItemChanges:
    """
    Bring the order's lines in line with ``items`` and recompute the total.

    Lines are matched by id: known ids are updated in place (keeping their
    identity and received quantity unless a new one is given), entries without
    an id are added and existing lines that are not mentioned are removed.
    """
    existing = {item.id: item for item in db_po.items}
    wanted_ids = {item.id for item in items if item.id is not None}

    removed = [item for item_id, item in existing.items() if item_id not in wanted_ids]
    for item in removed:
        db_po.items.remove(item) # delete-orphan cascade removes the row

    added, updated = [], []
    for item_data in items:
        if item_data.id is not None:
            db_item = existing[item_data.id]
            db_item.product_id = item_data.product_id
            db_item.variant_id = item_data.variant_id
            db_item.quantity = item_data.quantity
            db_item.unit_cost = _money(item_data.unit_cost)
            db_item.total_cost = line_total(item_data.quantity, item_data.unit_cost)
            if item_data.received_qty is not None:
                db_item.received_qty = item_data.received_qty
            updated.append(db_item)
        else:
            db_item = PurchaseOrderItem(
                product_id=item_data.product_id,
                variant_id=item_data.variant_id,
                quantity=item_data.quantity,
                unit_cost=_money(item_data.unit_cost),
                total_cost=line_total(item_data.quantity, item_data.unit_cost),
                received_qty=item_data.received_qty or 0,
            )
            db_po.items.append(db_item)
            added.append(db_item)

    recompute_total(db_po)
    db.flush()
    return ItemChanges(added=added, updated=updated, removed=removed)


def update_purchase_order_fields(db: Session, db_po: PurchaseOrder, fields: dict):
    """Apply plain column updates; the total follows tax and shipping."""
    for key, value in fields.items():
        if key in ("tax_amount", "shipping_cost"):
            value = _money(value)
        setattr(db_po, key, value)
    recompute_total(db_po)
    db.flush()
    return db_po


def delete_purchase_order(db: Session, db_po: PurchaseOrder):
    # Items go with the order through the delete-orphan cascade
    db.delete(db_po)
    db.flush()

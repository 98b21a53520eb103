"""
Purchase order lifecycle.

Orders move ``draft -> ordered -> received``; ``draft`` and ``ordered`` may
also be cancelled. ``received`` and ``cancelled`` are terminal. Every write
runs in the session's single transaction: validation happens before anything
is staged, and any failure rolls the whole operation back.
"""
import logging
import os
from datetime import datetime
from typing import Dict, List, Optional, Set

from dotenv import load_dotenv
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from crud import products as crud_products
from crud import purchase_orders as crud_purchase_orders
from crud import suppliers as crud_suppliers
from crud.audit_log import create_audit_log
from crud.po_numbering import allocate_po_number
from crud.purchase_order_reports import get_purchase_order_summary
from exceptions import GuardError, NotFoundError, PurchaseOrderError, ReconciliationError, ValidationError
from models.purchase_orders import PurchaseOrder, PurchaseOrderStatus
from models.suppliers import Supplier
from schemas.audit_log import AuditLogCreate
from schemas.purchase_orders import PurchaseOrderCreate, PurchaseOrderFilters, PurchaseOrderSummary, PurchaseOrderUpdate
from services.inventory_reconciliation import InventoryReconciler
from utils import sqlalchemy_to_dict
from utils.time_utils import as_local, now_local

load_dotenv()

logger = logging.getLogger("purchase_orders")

PO_NUMBER_MAX_RETRIES = int(os.getenv("PO_NUMBER_MAX_RETRIES", "3"))

ALLOWED_TRANSITIONS: Dict[PurchaseOrderStatus, Set[PurchaseOrderStatus]] = {
    PurchaseOrderStatus.DRAFT: {PurchaseOrderStatus.ORDERED, PurchaseOrderStatus.CANCELLED},
    PurchaseOrderStatus.ORDERED: {PurchaseOrderStatus.RECEIVED, PurchaseOrderStatus.CANCELLED},
    PurchaseOrderStatus.RECEIVED: set(),
    PurchaseOrderStatus.CANCELLED: set(),
}

ITEM_EDITABLE_STATUSES = {PurchaseOrderStatus.DRAFT, PurchaseOrderStatus.ORDERED}

# Columns that can be cleared with an explicit null
NULLABLE_FIELDS = {"expected_date", "notes", "approved_by"}

# Unique constraints a concurrent order-number allocation can collide on
NUMBER_COLLISION_MARKERS = ("po_number", "purchase_order_sequences")


def _is_number_collision(error: IntegrityError) -> bool:
    return any(marker in str(error.orig) for marker in NUMBER_COLLISION_MARKERS)


class PurchaseOrderService:

    def __init__(
        self,
        db: Session,
        reconciler: Optional[InventoryReconciler] = None,
        max_number_retries: int = PO_NUMBER_MAX_RETRIES,
    ):
        self.db = db
        self.reconciler = reconciler or InventoryReconciler()
        self.max_number_retries = max(1, max_number_retries)

    # --- Reads ---

    def list_purchase_orders(self, filters: Optional[PurchaseOrderFilters] = None, skip: int = 0, limit: int = 100) -> List[PurchaseOrder]:
        return crud_purchase_orders.get_purchase_orders(self.db, filters, skip=skip, limit=limit)

    def get_purchase_order(self, po_id: int) -> PurchaseOrder:
        db_po = crud_purchase_orders.get_purchase_order(self.db, po_id)
        if db_po is None:
            raise NotFoundError(f"Purchase order {po_id} not found")
        return db_po

    def get_purchase_order_by_number(self, po_number: str) -> PurchaseOrder:
        db_po = crud_purchase_orders.get_purchase_order_by_number(self.db, po_number)
        if db_po is None:
            raise NotFoundError(f"Purchase order {po_number} not found")
        return db_po

    def get_summary(self) -> PurchaseOrderSummary:
        return get_purchase_order_summary(self.db)

    def get_overdue(self, now: Optional[datetime] = None) -> List[PurchaseOrder]:
        """Ordered but not received, with an expected date already in the past."""
        filters = PurchaseOrderFilters(status=PurchaseOrderStatus.ORDERED, expected_before=now or now_local())
        return crud_purchase_orders.get_purchase_orders(self.db, filters, limit=None)

    def get_pending(self) -> List[PurchaseOrder]:
        filters = PurchaseOrderFilters(status=PurchaseOrderStatus.ORDERED)
        return crud_purchase_orders.get_purchase_orders(self.db, filters, limit=None)

    # --- Writes ---

    def create_purchase_order(self, data: PurchaseOrderCreate, ordered_by: str) -> PurchaseOrder:
        supplier = self._validate_supplier(data.supplier_id)
        self._validate_charges(data.tax_amount, data.shipping_cost)
        if not data.items:
            raise ValidationError("Purchase order must contain at least one item.")
        self._validate_items(supplier, data.items)
        data = data.model_copy(update={"expected_date": as_local(data.expected_date)})

        order_date = now_local()
        for attempt in range(1, self.max_number_retries + 1):
            try:
                po_number = allocate_po_number(self.db, order_date)
                db_po = crud_purchase_orders.create_purchase_order(self.db, po_number, data, ordered_by, order_date)
                self._audit(db_po, ordered_by, 'CREATE', old_values={})
                self.db.commit()
                break
            except IntegrityError as e:
                self.db.rollback()
                if not _is_number_collision(e):
                    logger.exception(f"Purchase order creation for supplier {supplier.id} violated a constraint: {e.orig}")
                    raise
                if attempt == self.max_number_retries:
                    logger.exception(f"Could not allocate a purchase order number after {attempt} attempts")
                    raise
                logger.warning(f"Purchase order number collision on attempt {attempt}, retrying")
            except SQLAlchemyError:
                self.db.rollback()
                logger.exception(f"Purchase order creation for supplier {supplier.id} failed")
                raise

        logger.info(f"Purchase Order {db_po.po_number} (ID: {db_po.id}) created for Supplier ID {supplier.id} by user {ordered_by}")
        return self.get_purchase_order(db_po.id)

    def update_purchase_order(self, po_id: int, data: PurchaseOrderUpdate, user_id: str) -> PurchaseOrder:
        """
        Partial update. Setting the status to ``received`` runs the full
        receive transition (stock and movements) in the same transaction, so
        the stock effect cannot be skipped by a generic update.
        """
        db_po = crud_purchase_orders.get_purchase_order(self.db, po_id, for_update=True)
        if db_po is None:
            raise NotFoundError(f"Purchase order {po_id} not found")

        patch = data.model_dump(exclude_unset=True, exclude={"items", "status"})
        current_status = db_po.status
        target_status = data.status if "status" in data.model_fields_set else None
        status_changes = target_status is not None and target_status != current_status
        receiving = status_changes and target_status == PurchaseOrderStatus.RECEIVED

        # Validate everything before staging any change
        if status_changes:
            self._check_transition(db_po, target_status)
        received_date = as_local(patch.pop("received_date", None))
        for field, value in patch.items():
            if value is None and field not in NULLABLE_FIELDS:
                raise ValidationError(f"{field} cannot be empty")
        if patch.get("expected_date") is not None:
            patch["expected_date"] = as_local(patch["expected_date"])
        self._validate_charges(patch.get("tax_amount"), patch.get("shipping_cost"))
        if "received_date" in data.model_fields_set and not receiving:
            if current_status != PurchaseOrderStatus.RECEIVED:
                raise ValidationError("received_date can only be set when the order is received")
            if received_date is None:
                raise ValidationError("A received order must keep its received_date")
            patch["received_date"] = received_date
        if data.items is not None:
            if current_status not in ITEM_EDITABLE_STATUSES:
                raise GuardError(f"Items of a {current_status.value} purchase order cannot be changed")
            if not data.items:
                raise ValidationError("Purchase order must contain at least one item.")
            self._validate_items(db_po.supplier, data.items, existing_ids={item.id for item in db_po.items})

        old_values = sqlalchemy_to_dict(db_po)
        try:
            if data.items is not None:
                changes = crud_purchase_orders.apply_purchase_order_items(self.db, db_po, data.items)
                logger.info(
                    f"PO {db_po.po_number} items: {len(changes.added)} added, "
                    f"{len(changes.updated)} updated, {len(changes.removed)} removed"
                )
            crud_purchase_orders.update_purchase_order_fields(self.db, db_po, patch)
            if receiving:
                self._apply_receipt(db_po, received_date, user_id)
            elif status_changes:
                db_po.status = target_status
            db_po.updated_at = now_local()
            db_po.updated_by = user_id
            self._audit(db_po, user_id, 'UPDATE', old_values=old_values)
            self.db.commit()
        except PurchaseOrderError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception(f"Update of purchase order {po_id} failed")
            if receiving:
                raise ReconciliationError(
                    f"Receiving purchase order {old_values['po_number']} failed; no stock was changed"
                ) from e
            raise

        logger.info(f"Purchase Order (ID: {po_id}) updated by user {user_id}")
        return self.get_purchase_order(po_id)

    def delete_purchase_order(self, po_id: int, user_id: str) -> None:
        db_po = crud_purchase_orders.get_purchase_order(self.db, po_id, for_update=True)
        if db_po is None:
            raise NotFoundError(f"Purchase order {po_id} not found")

        if db_po.status != PurchaseOrderStatus.DRAFT:
            raise GuardError(
                f"Purchase order {db_po.po_number} is '{db_po.status.value}'. Only draft purchase orders can be deleted."
            )

        old_values = sqlalchemy_to_dict(db_po)
        po_number = db_po.po_number
        try:
            crud_purchase_orders.delete_purchase_order(self.db, db_po)
            create_audit_log(self.db, AuditLogCreate(
                table_name='purchase_orders',
                record_id=po_id,
                changed_by=user_id,
                action='DELETE',
                old_values=old_values,
                new_values=None
            ))
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception(f"Deletion of purchase order {po_id} failed")
            raise
        logger.info(f"Purchase Order {po_number} (ID: {po_id}) deleted by user {user_id}")

    def receive_purchase_order(self, po_id: int, received_date: Optional[datetime] = None, user_id: str = "system") -> PurchaseOrder:
        """
        Receive an ordered purchase order: raise stock for every line, record
        the movements and mark the order received, all or nothing.
        """
        db_po = crud_purchase_orders.get_purchase_order(self.db, po_id, for_update=True)
        if db_po is None:
            raise NotFoundError(f"Purchase order {po_id} not found")

        if db_po.status != PurchaseOrderStatus.ORDERED:
            raise GuardError(
                f"Only ordered purchase orders can be received; {db_po.po_number} is '{db_po.status.value}'"
            )

        old_values = sqlalchemy_to_dict(db_po)
        try:
            movements = self._apply_receipt(db_po, received_date, user_id)
            db_po.updated_at = now_local()
            db_po.updated_by = user_id
            self._audit(db_po, user_id, 'RECEIVE', old_values=old_values)
            self.db.commit()
        except PurchaseOrderError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception(f"Receipt of purchase order {old_values['po_number']} rolled back")
            raise ReconciliationError(
                f"Receiving purchase order {old_values['po_number']} failed; no stock was changed"
            ) from e

        logger.info(f"Purchase Order (ID: {po_id}) received by user {user_id}: {len(movements)} stock movements recorded")
        return self.get_purchase_order(po_id)

    # --- Internals ---

    def _apply_receipt(self, db_po: PurchaseOrder, received_date: Optional[datetime], user_id: str):
        try:
            movements = self.reconciler.apply(self.db, db_po, user_id)
        except SQLAlchemyError as e:
            raise ReconciliationError(
                f"Receiving purchase order {db_po.po_number} failed; no stock was changed"
            ) from e
        db_po.status = PurchaseOrderStatus.RECEIVED
        db_po.received_date = as_local(received_date) if received_date else now_local()
        return movements

    def _check_transition(self, db_po: PurchaseOrder, target_status: PurchaseOrderStatus):
        current_status = db_po.status
        if target_status in ALLOWED_TRANSITIONS[current_status]:
            return
        if target_status == PurchaseOrderStatus.RECEIVED:
            raise GuardError(
                f"Only ordered purchase orders can be received; {db_po.po_number} is '{current_status.value}'"
            )
        raise GuardError(
            f"Purchase order {db_po.po_number} cannot move from '{current_status.value}' to '{target_status.value}'"
        )

    def _validate_supplier(self, supplier_id: int) -> Supplier:
        supplier = crud_suppliers.get_supplier(self.db, supplier_id)
        if supplier is None:
            raise ValidationError(f"Supplier {supplier_id} not found")
        if not supplier.is_active:
            raise ValidationError(f"Supplier {supplier.name} is inactive")
        return supplier

    def _validate_charges(self, tax_amount, shipping_cost):
        if tax_amount is not None and tax_amount < 0:
            raise ValidationError("Tax amount cannot be negative")
        if shipping_cost is not None and shipping_cost < 0:
            raise ValidationError("Shipping cost cannot be negative")

    def _validate_items(self, supplier: Supplier, items, existing_ids: Optional[Set[int]] = None):
        seen_ids = set()
        for item in items:
            item_id = getattr(item, "id", None)
            if item_id is not None:
                if item_id not in (existing_ids or set()):
                    raise ValidationError(f"Item {item_id} does not belong to this purchase order")
                if item_id in seen_ids:
                    raise ValidationError(f"Item {item_id} appears more than once")
                seen_ids.add(item_id)

            product = crud_products.get_product(self.db, item.product_id)
            if product is None:
                raise ValidationError(f"Product {item.product_id} not found")

            # Check if supplier supplies this product
            if crud_suppliers.get_supplier_product(self.db, supplier.id, product.id) is None:
                raise ValidationError(f"Product {product.name} is not supplied by {supplier.name}")

            if item.unit_cost is None or item.unit_cost <= 0:
                raise ValidationError(f"Invalid unit cost for product {product.name}")
            if item.unit_cost != item.unit_cost.quantize(crud_purchase_orders.CENT):
                raise ValidationError(f"Unit cost for product {product.name} cannot have more than 2 decimal places")
            if item.quantity is None or item.quantity <= 0:
                raise ValidationError(f"Invalid quantity for product {product.name}")

            received_qty = getattr(item, "received_qty", None)
            if received_qty is not None and received_qty < 0:
                raise ValidationError(f"Invalid received quantity for product {product.name}")

            if item.variant_id is not None:
                variant = crud_products.get_product_variant(self.db, item.variant_id)
                if variant is None or variant.product_id != product.id:
                    raise ValidationError(f"Variant {item.variant_id} does not belong to product {product.name}")

    def _audit(self, db_po: PurchaseOrder, user_id: str, action: str, old_values: dict):
        create_audit_log(self.db, AuditLogCreate(
            table_name='purchase_orders',
            record_id=db_po.id,
            changed_by=user_id,
            action=action,
            old_values=old_values,
            new_values=sqlalchemy_to_dict(db_po)
        ))

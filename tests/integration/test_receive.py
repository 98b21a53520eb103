"""
Integration tests for receiving purchase orders into stock.
"""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
import pytz
from sqlalchemy.exc import OperationalError

from exceptions import AmbiguousVariantError, GuardError, ReconciliationError, UnresolvedVariantError
from models.product_variants import ProductVariant
from models.purchase_orders import PurchaseOrderStatus
from models.stock_movements import StockMovement
from schemas.purchase_orders import PurchaseOrderUpdate
from services.inventory_reconciliation import InventoryReconciler, VariantResolutionPolicy
from services.purchase_orders import PurchaseOrderService


def _stock(db_session, variant_id):
    db_session.expire_all()
    return db_session.query(ProductVariant).filter(ProductVariant.id == variant_id).one().stock


def _movements(db_session, variant_id=None):
    query = db_session.query(StockMovement)
    if variant_id is not None:
        query = query.filter(StockMovement.variant_id == variant_id)
    return query.order_by(StockMovement.id).all()


def _place(service, data):
    db_po = service.create_purchase_order(data, ordered_by="clerk")
    return service.update_purchase_order(db_po.id, PurchaseOrderUpdate(status=PurchaseOrderStatus.ORDERED), user_id="clerk")


@pytest.mark.integration
class TestReceivePurchaseOrder:

    def test_receipt_raises_stock_and_records_movements(self, service, ordered_po, catalog, db_session):
        variant_a_id, variant_b_id = catalog.variant_a.id, catalog.variant_b.id
        po_number = ordered_po.po_number

        received = service.receive_purchase_order(ordered_po.id, user_id="storekeeper")

        assert received.status == PurchaseOrderStatus.RECEIVED
        assert received.received_date is not None
        assert [item.received_qty for item in received.items] == [5, 2]
        assert _stock(db_session, variant_a_id) == 8
        assert _stock(db_session, variant_b_id) == 2

        movements = _movements(db_session)
        assert len(movements) == 2
        tote = _movements(db_session, variant_a_id)[0]
        assert tote.type == "restock"
        assert (tote.quantity, tote.previous_stock, tote.new_stock) == (5, 3, 8)
        assert tote.reason == f"Purchase order {po_number}"
        assert tote.notes == "Purchase order receipt"
        assert tote.reference_id == received.id
        assert tote.user_id == "storekeeper"

    def test_receipt_marks_variants_restocked(self, service, ordered_po, catalog, db_session):
        variant_a_id = catalog.variant_a.id
        service.receive_purchase_order(ordered_po.id, user_id="storekeeper")
        db_session.expire_all()
        assert db_session.get(ProductVariant, variant_a_id).last_restocked is not None

    def test_explicit_received_date_is_kept(self, service, ordered_po):
        when = datetime(2024, 3, 5, 9, 30, tzinfo=pytz.UTC)
        received = service.receive_purchase_order(ordered_po.id, received_date=when, user_id="storekeeper")
        assert received.received_date.replace(tzinfo=None) == when.replace(tzinfo=None)

    def test_offset_received_date_is_stored_in_application_time(self, service, ordered_po):
        when = pytz.FixedOffset(330).localize(datetime(2024, 3, 5, 15, 0))
        received = service.receive_purchase_order(ordered_po.id, received_date=when, user_id="storekeeper")
        assert received.received_date.replace(tzinfo=None) == datetime(2024, 3, 5, 9, 30)

    def test_second_receipt_is_refused(self, service, ordered_po, db_session):
        service.receive_purchase_order(ordered_po.id, user_id="storekeeper")

        with pytest.raises(GuardError, match="Only ordered purchase orders can be received"):
            service.receive_purchase_order(ordered_po.id, user_id="storekeeper")
        assert len(_movements(db_session)) == 2

    def test_draft_cannot_be_received(self, service, make_order_data, db_session):
        draft = service.create_purchase_order(make_order_data(), ordered_by="clerk")
        with pytest.raises(GuardError):
            service.receive_purchase_order(draft.id, user_id="storekeeper")
        with pytest.raises(GuardError):
            service.update_purchase_order(draft.id, PurchaseOrderUpdate(status=PurchaseOrderStatus.RECEIVED), user_id="clerk")
        assert _movements(db_session) == []

    def test_received_is_terminal(self, service, ordered_po):
        service.receive_purchase_order(ordered_po.id, user_id="storekeeper")
        with pytest.raises(GuardError, match="cannot move from 'received' to 'cancelled'"):
            service.update_purchase_order(ordered_po.id, PurchaseOrderUpdate(status=PurchaseOrderStatus.CANCELLED), user_id="clerk")

    def test_update_to_received_applies_stock(self, service, ordered_po, catalog, db_session):
        variant_a_id = catalog.variant_a.id
        received = service.update_purchase_order(
            ordered_po.id, PurchaseOrderUpdate(status=PurchaseOrderStatus.RECEIVED), user_id="clerk"
        )
        assert received.status == PurchaseOrderStatus.RECEIVED
        assert received.received_date is not None
        assert _stock(db_session, variant_a_id) == 8
        assert len(_movements(db_session)) == 2

    def test_received_date_can_be_corrected_afterwards(self, service, ordered_po):
        service.receive_purchase_order(ordered_po.id, user_id="storekeeper")
        corrected = datetime(2024, 1, 2, tzinfo=pytz.UTC)
        updated = service.update_purchase_order(ordered_po.id, PurchaseOrderUpdate(received_date=corrected), user_id="clerk")
        assert updated.received_date.replace(tzinfo=None) == corrected.replace(tzinfo=None)

    def test_lines_for_the_same_variant_are_combined(self, service, make_order_data, catalog, db_session):
        variant_a_id = catalog.variant_a.id
        db_po = _place(service, make_order_data(items=[
            {"product_id": catalog.product_a.id, "quantity": 5, "unit_cost": "10"},
            {"product_id": catalog.product_a.id, "variant_id": variant_a_id, "quantity": 4, "unit_cost": "9"},
        ]))

        service.receive_purchase_order(db_po.id, user_id="storekeeper")

        movements = _movements(db_session, variant_a_id)
        assert len(movements) == 1
        assert (movements[0].quantity, movements[0].previous_stock, movements[0].new_stock) == (9, 3, 12)

    def test_receipt_is_audited(self, service, ordered_po, db_session):
        from crud.audit_log import get_audit_logs

        service.receive_purchase_order(ordered_po.id, user_id="storekeeper")
        logs = get_audit_logs(db_session, "purchase_orders", ordered_po.id)
        assert logs[-1].action == "RECEIVE"
        assert logs[-1].old_values["status"] == "ordered"
        assert logs[-1].new_values["status"] == "received"

    def test_summary_counts_received_value(self, service, ordered_po):
        service.receive_purchase_order(ordered_po.id, user_id="storekeeper")
        summary = service.get_summary()
        assert summary.received == 1
        assert summary.pending_value == Decimal("0.00")
        assert summary.by_status["received"].total_value == Decimal("110.00")


@pytest.mark.integration
class TestReceiptAtomicity:

    def test_movement_failure_rolls_everything_back(self, service, ordered_po, catalog, db_session, monkeypatch):
        import services.inventory_reconciliation as reconciliation_module

        variant_a_id, variant_b_id = catalog.variant_a.id, catalog.variant_b.id
        real_create = reconciliation_module.create_stock_movement
        calls = []

        def failing_create(db, **kwargs):
            calls.append(kwargs["variant_id"])
            if len(calls) == 2:
                raise OperationalError("INSERT INTO stock_movements", {}, Exception("disk I/O error"))
            return real_create(db, **kwargs)

        monkeypatch.setattr(reconciliation_module, "create_stock_movement", failing_create)

        with pytest.raises(ReconciliationError, match="no stock was changed"):
            service.receive_purchase_order(ordered_po.id, user_id="storekeeper")

        assert len(calls) == 2
        assert _stock(db_session, variant_a_id) == 3
        assert _stock(db_session, variant_b_id) == 0
        assert _movements(db_session) == []
        unchanged = service.get_purchase_order(ordered_po.id)
        assert unchanged.status == PurchaseOrderStatus.ORDERED
        assert unchanged.received_date is None
        assert all(item.received_qty == 0 for item in unchanged.items)

    def test_failed_receipt_can_be_retried(self, service, ordered_po, catalog, db_session, monkeypatch):
        import services.inventory_reconciliation as reconciliation_module

        variant_a_id = catalog.variant_a.id
        real_create = reconciliation_module.create_stock_movement

        def broken_create(db, **kwargs):
            raise OperationalError("INSERT INTO stock_movements", {}, Exception("database is locked"))

        monkeypatch.setattr(reconciliation_module, "create_stock_movement", broken_create)
        with pytest.raises(ReconciliationError):
            service.receive_purchase_order(ordered_po.id, user_id="storekeeper")

        monkeypatch.setattr(reconciliation_module, "create_stock_movement", real_create)
        received = service.receive_purchase_order(ordered_po.id, user_id="storekeeper")

        assert received.status == PurchaseOrderStatus.RECEIVED
        assert _stock(db_session, variant_a_id) == 8


@pytest.mark.integration
class TestVariantResolutionOnReceipt:

    def test_ambiguous_line_refuses_the_whole_receipt(self, service, make_order_data, catalog, db_session):
        variant_a_id = catalog.variant_a.id
        db_po = _place(service, make_order_data(items=[
            {"product_id": catalog.product_a.id, "quantity": 5, "unit_cost": "10"},
            {"product_id": catalog.product_multi.id, "quantity": 2, "unit_cost": "6"},
        ]))

        with pytest.raises(AmbiguousVariantError, match="Crew Tee has 2 variants"):
            service.receive_purchase_order(db_po.id, user_id="storekeeper")

        assert _stock(db_session, variant_a_id) == 3
        assert _movements(db_session) == []
        assert service.get_purchase_order(db_po.id).status == PurchaseOrderStatus.ORDERED

    def test_first_variant_policy(self, db_session, make_order_data, catalog):
        service = PurchaseOrderService(db_session, reconciler=InventoryReconciler(VariantResolutionPolicy.FIRST_VARIANT))
        small_id, medium_id = [variant.id for variant in catalog.product_multi.variants]
        db_po = _place(service, make_order_data(items=[
            {"product_id": catalog.product_multi.id, "quantity": 2, "unit_cost": "6"},
        ]))

        service.receive_purchase_order(db_po.id, user_id="storekeeper")

        assert _stock(db_session, small_id) == 2
        assert _stock(db_session, medium_id) == 0

    def test_explicit_variant_is_credited(self, service, make_order_data, catalog, db_session):
        small_id, medium_id = [variant.id for variant in catalog.product_multi.variants]
        db_po = _place(service, make_order_data(items=[
            {"product_id": catalog.product_multi.id, "variant_id": medium_id, "quantity": 4, "unit_cost": "6"},
        ]))

        service.receive_purchase_order(db_po.id, user_id="storekeeper")

        assert _stock(db_session, medium_id) == 4
        assert _stock(db_session, small_id) == 0

    def test_product_without_variants_is_refused_by_default(self, service, make_order_data, catalog):
        db_po = _place(service, make_order_data(items=[
            {"product_id": catalog.product_bare.id, "quantity": 1, "unit_cost": "50"},
        ]))
        with pytest.raises(UnresolvedVariantError, match="Gift Card has no variant"):
            service.receive_purchase_order(db_po.id, user_id="storekeeper")

    def test_product_without_variants_is_skipped_when_allowed(self, db_session, make_order_data, catalog):
        service = PurchaseOrderService(db_session, reconciler=InventoryReconciler(allow_unstocked_products=True))
        variant_a_id = catalog.variant_a.id
        db_po = _place(service, make_order_data(items=[
            {"product_id": catalog.product_a.id, "quantity": 1, "unit_cost": "10"},
            {"product_id": catalog.product_bare.id, "quantity": 1, "unit_cost": "50"},
        ]))

        received = service.receive_purchase_order(db_po.id, user_id="storekeeper")

        assert received.status == PurchaseOrderStatus.RECEIVED
        assert _stock(db_session, variant_a_id) == 4
        assert len(_movements(db_session)) == 1


@pytest.mark.integration
def test_overdue_excludes_received_orders(service, make_order_data):
    from utils.time_utils import now_local

    db_po = _place(service, make_order_data(expected_date=now_local() - timedelta(days=1)))
    assert [po.id for po in service.get_overdue()] == [db_po.id]

    service.receive_purchase_order(db_po.id, user_id="storekeeper")
    assert service.get_overdue() == []

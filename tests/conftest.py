"""
Pytest configuration and shared fixtures for the Retail Back Office test suite.
"""
import os
import tempfile
from decimal import Decimal
from types import SimpleNamespace
from typing import Generator

# Must be set before any backend module reads its configuration
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["APP_TIMEZONE"] = "UTC"
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="backoffice_logs_"))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base
import models  # noqa: F401
from models import Product, ProductVariant, Supplier, SupplierProduct
from schemas.purchase_orders import PurchaseOrderCreate
from schemas.purchase_order_items import PurchaseOrderItemCreateRequest
from services.inventory_reconciliation import InventoryReconciler
from services.purchase_orders import PurchaseOrderService


@pytest.fixture
def engine():
    """Provide an isolated in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def catalog(db_session: Session) -> SimpleNamespace:
    """
    A supplier with sourced products covering every variant shape:

    - ``product_a`` / ``product_b``: one variant each
    - ``product_multi``: two variants
    - ``product_bare``: no variants
    - ``product_unsourced``: one variant, not linked to the supplier
    """
    supplier = Supplier(name="Acme Wholesale", contact_name="Jo Smith", email="orders@acme.test", is_active=True)
    inactive_supplier = Supplier(name="Dormant Traders", is_active=False)
    db_session.add_all([supplier, inactive_supplier])

    def product(name, sku, variant_skus, stock=0):
        db_product = Product(name=name, base_sku=sku, base_price=Decimal("20.00"), has_variants=len(variant_skus) > 1)
        for variant_sku in variant_skus:
            db_product.variants.append(
                ProductVariant(sku=variant_sku, price=Decimal("20.00"), stock=stock)
            )
        db_session.add(db_product)
        return db_product

    product_a = product("Canvas Tote", "TOTE", ["TOTE-STD"], stock=3)
    product_b = product("Water Bottle", "BOTTLE", ["BOTTLE-STD"])
    product_multi = product("Crew Tee", "TEE", ["TEE-S", "TEE-M"])
    product_bare = product("Gift Card", "GIFT", [])
    product_unsourced = product("Umbrella", "UMB", ["UMB-STD"])
    db_session.flush()

    for sourced in (product_a, product_b, product_multi, product_bare):
        db_session.add(SupplierProduct(supplier_id=supplier.id, product_id=sourced.id, cost=Decimal("10.00")))
    db_session.add(SupplierProduct(supplier_id=inactive_supplier.id, product_id=product_a.id, cost=Decimal("9.00")))
    db_session.commit()

    return SimpleNamespace(
        supplier=supplier,
        inactive_supplier=inactive_supplier,
        product_a=product_a,
        variant_a=product_a.variants[0],
        product_b=product_b,
        variant_b=product_b.variants[0],
        product_multi=product_multi,
        product_bare=product_bare,
        product_unsourced=product_unsourced,
    )


@pytest.fixture
def service(db_session: Session) -> PurchaseOrderService:
    return PurchaseOrderService(db_session, reconciler=InventoryReconciler())


@pytest.fixture
def make_order_data(catalog):
    """Build a create payload; defaults to the two-line order used throughout."""
    def _make(items=None, supplier_id=None, tax="3", shipping="7", **kwargs):
        if items is None:
            items = [
                {"product_id": catalog.product_a.id, "quantity": 5, "unit_cost": "10"},
                {"product_id": catalog.product_b.id, "quantity": 2, "unit_cost": "25"},
            ]
        return PurchaseOrderCreate(
            supplier_id=supplier_id or catalog.supplier.id,
            tax_amount=Decimal(tax),
            shipping_cost=Decimal(shipping),
            items=[PurchaseOrderItemCreateRequest(**item) for item in items],
            **kwargs,
        )
    return _make


@pytest.fixture
def ordered_po(service, make_order_data):
    """A draft order moved to 'ordered', ready to be received."""
    from models.purchase_orders import PurchaseOrderStatus
    from schemas.purchase_orders import PurchaseOrderUpdate

    db_po = service.create_purchase_order(make_order_data(), ordered_by="clerk")
    return service.update_purchase_order(db_po.id, PurchaseOrderUpdate(status=PurchaseOrderStatus.ORDERED), user_id="clerk")


@pytest.fixture
def client(engine, session_factory):
    """FastAPI test client bound to the test database with a fixed user."""
    from fastapi.testclient import TestClient
    from database import get_db
    from main import app
    from utils.auth_utils import get_current_user

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = lambda: {"sub": "u-1", "username": "tester"}
    yield TestClient(app)
    app.dependency_overrides.clear()


# Configure pytest markers
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "api: API tests")

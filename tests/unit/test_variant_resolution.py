"""
Unit tests for the variant resolution policies of the inventory reconciler.
"""
from types import SimpleNamespace

import pytest

from crud import app_config as crud_app_config
from exceptions import AmbiguousVariantError, UnresolvedVariantError
from schemas.app_config import AppConfigCreate
from services.inventory_reconciliation import (
    ALLOW_UNSTOCKED_CONFIG,
    VARIANT_POLICY_CONFIG,
    InventoryReconciler,
    VariantResolutionPolicy,
    build_reconciler,
)


def _item(product, variant_id=None, quantity=1):
    return SimpleNamespace(product=product, product_id=product.id, variant_id=variant_id, quantity=quantity)


@pytest.mark.unit
class TestResolveVariant:

    def test_single_variant_is_used(self, db_session, catalog):
        variant = InventoryReconciler().resolve_variant(db_session, _item(catalog.product_a))
        assert variant.id == catalog.variant_a.id

    def test_explicit_variant_is_used(self, db_session, catalog):
        chosen = catalog.product_multi.variants[1]
        variant = InventoryReconciler().resolve_variant(db_session, _item(catalog.product_multi, chosen.id))
        assert variant.id == chosen.id

    def test_explicit_variant_of_another_product_is_refused(self, db_session, catalog):
        with pytest.raises(UnresolvedVariantError):
            InventoryReconciler().resolve_variant(db_session, _item(catalog.product_a, catalog.variant_b.id))

    def test_ambiguous_product_requires_explicit_variant(self, db_session, catalog):
        with pytest.raises(AmbiguousVariantError, match="Crew Tee has 2 variants"):
            InventoryReconciler().resolve_variant(db_session, _item(catalog.product_multi))

    def test_first_variant_policy_picks_lowest_id(self, db_session, catalog):
        reconciler = InventoryReconciler(variant_policy=VariantResolutionPolicy.FIRST_VARIANT)
        variant = reconciler.resolve_variant(db_session, _item(catalog.product_multi))
        assert variant.id == min(v.id for v in catalog.product_multi.variants)

    def test_product_without_variants_is_refused_by_default(self, db_session, catalog):
        with pytest.raises(UnresolvedVariantError, match="Gift Card"):
            InventoryReconciler().resolve_variant(db_session, _item(catalog.product_bare))

    def test_product_without_variants_can_be_skipped(self, db_session, catalog):
        reconciler = InventoryReconciler(allow_unstocked_products=True)
        assert reconciler.resolve_variant(db_session, _item(catalog.product_bare)) is None


@pytest.mark.unit
class TestPlan:

    def test_lines_for_the_same_variant_are_combined(self, db_session, catalog):
        order = SimpleNamespace(items=[
            _item(catalog.product_a, quantity=2),
            _item(catalog.product_b, quantity=1),
            _item(catalog.product_a, catalog.variant_a.id, quantity=4),
        ])
        plan = InventoryReconciler().plan(db_session, order)
        assert plan == {catalog.variant_a.id: 6, catalog.variant_b.id: 1}


@pytest.mark.unit
class TestBuildReconciler:

    def test_defaults(self, db_session):
        reconciler = build_reconciler(db_session)
        assert reconciler.variant_policy == VariantResolutionPolicy.REQUIRE_EXPLICIT
        assert reconciler.allow_unstocked_products is False

    def test_app_config_overrides_defaults(self, db_session):
        crud_app_config.create_config(db_session, AppConfigCreate(name=VARIANT_POLICY_CONFIG, value="first_variant"), user_id="admin")
        crud_app_config.create_config(db_session, AppConfigCreate(name=ALLOW_UNSTOCKED_CONFIG, value="true"), user_id="admin")

        reconciler = build_reconciler(db_session)
        assert reconciler.variant_policy == VariantResolutionPolicy.FIRST_VARIANT
        assert reconciler.allow_unstocked_products is True

    def test_unknown_policy_falls_back_to_strict(self, db_session):
        crud_app_config.create_config(db_session, AppConfigCreate(name=VARIANT_POLICY_CONFIG, value="random"), user_id="admin")
        assert build_reconciler(db_session).variant_policy == VariantResolutionPolicy.REQUIRE_EXPLICIT

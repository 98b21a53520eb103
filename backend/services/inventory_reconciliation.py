"""
Inventory reconciliation for received purchase orders.

``InventoryReconciler.apply`` turns the lines of a purchase order into stock
increments and ``restock`` movements. It only stages changes in the caller's
session: the purchase order service commits them together with the status
change, or rolls everything back.

Lines without an explicit variant are resolved through a named policy:

- ``require_explicit``: a product with several variants must be received
  into a variant chosen on the line, otherwise the receipt is refused.
- ``first_variant``: credit the lowest-id variant of the product.

Products without any variant either refuse the receipt or, when
``allow_unstocked_products`` is set, are skipped with a warning.
"""
import enum
import logging
import os
from typing import Dict, List, Optional

from dotenv import load_dotenv
from sqlalchemy.orm import Session

from crud import app_config as crud_app_config
from crud import products as crud_products
from crud.stock_movements import create_stock_movement
from exceptions import AmbiguousVariantError, UnresolvedVariantError
from models.product_variants import ProductVariant
from models.purchase_orders import PurchaseOrder
from models.purchase_order_items import PurchaseOrderItem
from utils.time_utils import now_local

load_dotenv()

logger = logging.getLogger("inventory_reconciliation")

RESTOCK_MOVEMENT = "restock"

# app_config rows override these environment defaults
VARIANT_POLICY_CONFIG = "po_variant_resolution_policy"
ALLOW_UNSTOCKED_CONFIG = "po_allow_unstocked_products"


class VariantResolutionPolicy(str, enum.Enum):
    REQUIRE_EXPLICIT = "require_explicit"
    FIRST_VARIANT = "first_variant"


DEFAULT_VARIANT_POLICY = os.getenv("PO_VARIANT_RESOLUTION_POLICY", VariantResolutionPolicy.REQUIRE_EXPLICIT.value)
DEFAULT_ALLOW_UNSTOCKED = os.getenv("PO_ALLOW_UNSTOCKED_PRODUCTS", "false")


def _as_bool(value: str) -> bool:
    return str(value).strip().lower() in ("1", "true", "yes", "on")


class InventoryReconciler:

    def __init__(
        self,
        variant_policy: VariantResolutionPolicy = VariantResolutionPolicy.REQUIRE_EXPLICIT,
        allow_unstocked_products: bool = False,
    ):
        self.variant_policy = VariantResolutionPolicy(variant_policy)
        self.allow_unstocked_products = allow_unstocked_products

    def resolve_variant(self, db: Session, item: PurchaseOrderItem) -> Optional[ProductVariant]:
        """Pick the variant a line credits, or None for a skipped unstocked product."""
        product = item.product or crud_products.get_product(db, item.product_id)
        product_name = product.name if product else f"#{item.product_id}"

        if item.variant_id is not None:
            variant = crud_products.get_product_variant(db, item.variant_id)
            if variant is None or variant.product_id != item.product_id:
                raise UnresolvedVariantError(
                    f"Variant {item.variant_id} does not belong to product {product_name}"
                )
            return variant

        variants = crud_products.get_product_variants(db, item.product_id)
        if len(variants) == 1:
            return variants[0]

        if len(variants) > 1:
            if self.variant_policy == VariantResolutionPolicy.FIRST_VARIANT:
                logger.warning(
                    f"Product {product_name} has {len(variants)} variants and none was chosen; "
                    f"crediting first variant {variants[0].sku}"
                )
                return variants[0]
            raise AmbiguousVariantError(
                f"Product {product_name} has {len(variants)} variants; choose the variant to receive into"
            )

        if self.allow_unstocked_products:
            logger.warning(f"Product {product_name} has no variants; stock not updated for this line")
            return None
        raise UnresolvedVariantError(f"Product {product_name} has no variant to receive stock into")

    def plan(self, db: Session, db_po: PurchaseOrder) -> Dict[int, int]:
        """Quantity to add per variant id, in line order. Raises before anything is written."""
        deltas: Dict[int, int] = {}
        for item in db_po.items:
            variant = self.resolve_variant(db, item)
            if variant is None:
                continue
            deltas[variant.id] = deltas.get(variant.id, 0) + item.quantity
        return deltas

    def apply(self, db: Session, db_po: PurchaseOrder, user_id: str) -> List:
        """
        Stage stock increments and one restock movement per variant touched.

        Stock is raised with a relative ``stock = stock + n`` update while the
        variant row is locked, so concurrent sales or adjustments are not lost.
        """
        deltas = self.plan(db, db_po)
        received_at = now_local()
        movements = []

        for variant_id, quantity in deltas.items():
            variant = (
                db.query(ProductVariant)
                .filter(ProductVariant.id == variant_id)
                .with_for_update()
                .one()
            )
            previous_stock = variant.stock or 0

            db.query(ProductVariant).filter(ProductVariant.id == variant_id).update(
                {
                    ProductVariant.stock: ProductVariant.stock + quantity,
                    ProductVariant.last_restocked: received_at,
                },
                synchronize_session=False,
            )
            db.refresh(variant)

            movements.append(create_stock_movement(
                db,
                variant_id=variant_id,
                movement_type=RESTOCK_MOVEMENT,
                quantity=quantity,
                previous_stock=previous_stock,
                new_stock=variant.stock,
                reason=f"Purchase order {db_po.po_number}",
                reference_id=db_po.id,
                user_id=user_id,
                notes="Purchase order receipt",
            ))
            logger.info(
                f"Variant {variant.sku} restocked {previous_stock} -> {variant.stock} from {db_po.po_number} by {user_id}"
            )

        for item in db_po.items:
            item.received_qty = item.quantity
        db.flush()
        return movements


def build_reconciler(db: Session) -> InventoryReconciler:
    """Reconciler configured from app_config, falling back to the environment."""
    policy = crud_app_config.get_config_value(db, VARIANT_POLICY_CONFIG, DEFAULT_VARIANT_POLICY)
    allow_unstocked = crud_app_config.get_config_value(db, ALLOW_UNSTOCKED_CONFIG, DEFAULT_ALLOW_UNSTOCKED)
    try:
        variant_policy = VariantResolutionPolicy(policy)
    except ValueError:
        logger.warning(f"Unknown variant resolution policy '{policy}', using {VariantResolutionPolicy.REQUIRE_EXPLICIT.value}")
        variant_policy = VariantResolutionPolicy.REQUIRE_EXPLICIT
    return InventoryReconciler(variant_policy=variant_policy, allow_unstocked_products=_as_bool(allow_unstocked))

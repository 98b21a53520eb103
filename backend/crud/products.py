from sqlalchemy.orm import Session
from models.products import Product
from models.product_variants import ProductVariant

def get_product(db: Session, product_id: int):
    return db.query(Product).filter(Product.id == product_id).first()

def get_product_variants(db: Session, product_id: int):
    # Ordered by id so "first variant" is stable across databases
    return db.query(ProductVariant).filter(ProductVariant.product_id == product_id).order_by(ProductVariant.id).all()

def get_product_variant(db: Session, variant_id: int):
    return db.query(ProductVariant).filter(ProductVariant.id == variant_id).first()

from sqlalchemy.orm import Session
from models.suppliers import Supplier
from models.supplier_products import SupplierProduct

def get_supplier(db: Session, supplier_id: int):
    return db.query(Supplier).filter(Supplier.id == supplier_id).first()

def get_supplier_product(db: Session, supplier_id: int, product_id: int):
    return db.query(SupplierProduct).filter(
        SupplierProduct.supplier_id == supplier_id,
        SupplierProduct.product_id == product_id
    ).first()

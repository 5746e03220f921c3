from __future__ import annotations

from ..extensions import db
from tubex.time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data.

    MULTI-TENANT: ownership depends on the viewing company's type.
    - supplier companies own products where supplier_id == company.id
    - dealer companies own products where dealer_id == company.id
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("supplier_id", "sku", name="uq_products_supplier_sku"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    dealer_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=True, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(16), nullable=False, default="unit")
    status = db.Column(db.String(16), nullable=False, default="active")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    supplier = db.relationship("Company", foreign_keys=[supplier_id])
    dealer = db.relationship("Company", foreign_keys=[dealer_id])

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} supplier_id={self.supplier_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "dealer_id": self.dealer_id,
            "sku": self.sku,
            "name": self.name,
            "unit": self.unit,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }

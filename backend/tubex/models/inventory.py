from __future__ import annotations

from ..extensions import db
from tubex.time_utils import to_utc_z, to_iso_date


def _qty(value):
    return str(value) if value is not None else None


class Inventory(db.Model):
    """
    Current stock of one product in one warehouse for one company.

    INVARIANTS:
    - Unique on (product_id, warehouse_id, company_id)
    - quantity >= 0; only the inventory service mutates it
    - Rows are never deleted while batches reference them
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.UniqueConstraint("product_id", "warehouse_id", "company_id", name="uq_inventory_product_warehouse_company"),
        db.CheckConstraint("quantity >= 0", name="ck_inventory_quantity_non_negative"),
        db.Index("ix_inventory_company_warehouse", "company_id", "warehouse_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)

    quantity = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    unit = db.Column(db.String(16), nullable=False, default="unit")

    min_threshold = db.Column(db.Numeric(12, 2), nullable=True)
    max_threshold = db.Column(db.Numeric(12, 2), nullable=True)
    reorder_point = db.Column(db.Numeric(12, 2), nullable=True)
    reorder_quantity = db.Column(db.Numeric(12, 2), nullable=True)
    auto_reorder = db.Column(db.Boolean, nullable=False, default=False)
    last_reorder_date = db.Column(db.DateTime(timezone=True), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="active")

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("inventory_rows", lazy=True))
    warehouse = db.relationship("Warehouse", backref=db.backref("inventory_rows", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<Inventory id={self.id} product_id={self.product_id} "
            f"warehouse_id={self.warehouse_id} quantity={self.quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "company_id": self.company_id,
            "quantity": _qty(self.quantity),
            "unit": self.unit,
            "min_threshold": _qty(self.min_threshold),
            "max_threshold": _qty(self.max_threshold),
            "reorder_point": _qty(self.reorder_point),
            "reorder_quantity": _qty(self.reorder_quantity),
            "auto_reorder": self.auto_reorder,
            "last_reorder_date": to_utc_z(self.last_reorder_date),
            "status": self.status,
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
        }


class Batch(db.Model):
    """
    Dated lot of a product's stock.

    INVARIANTS:
    - batch_number is unique per company, not globally
    - company_id matches the owning warehouse's company_id
    - Append-only ledger: batches are retired via status, never deleted or merged
    - Expired batches are never allocated
    """
    __tablename__ = "batches"
    __table_args__ = (
        db.UniqueConstraint("batch_number", "company_id", name="uq_batches_number_company"),
        db.CheckConstraint("quantity >= 0", name="ck_batches_quantity_non_negative"),
        db.Index("ix_batches_product_warehouse_company", "product_id", "warehouse_id", "company_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    batch_number = db.Column(db.String(64), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)

    quantity = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    unit = db.Column(db.String(16), nullable=False, default="unit")
    manufacturing_date = db.Column(db.Date, nullable=True)
    expiry_date = db.Column(db.Date, nullable=True, index=True)

    # active, depleted, expired, quarantined
    status = db.Column(db.String(16), nullable=False, default="active", index=True)

    # "metadata" is reserved on declarative models
    batch_metadata = db.Column("metadata", db.JSON, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")
    warehouse = db.relationship("Warehouse", backref=db.backref("batches", lazy=True))

    def __repr__(self) -> str:
        return f"<Batch id={self.id} number={self.batch_number!r} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "batch_number": self.batch_number,
            "product_id": self.product_id,
            "warehouse_id": self.warehouse_id,
            "company_id": self.company_id,
            "quantity": _qty(self.quantity),
            "unit": self.unit,
            "manufacturing_date": to_iso_date(self.manufacturing_date),
            "expiry_date": to_iso_date(self.expiry_date),
            "status": self.status,
            "metadata": self.batch_metadata,
            "created_at": to_utc_z(self.created_at),
        }

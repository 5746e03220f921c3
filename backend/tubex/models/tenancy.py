from __future__ import annotations

from sqlalchemy.orm import validates

from ..extensions import db
from tubex.time_utils import to_utc_z


COMPANY_TYPES = ("dealer", "supplier")
COMPANY_STATUSES = ("pending_verification", "active", "suspended", "rejected")


class Company(db.Model):
    """
    Multi-tenant root: every tenant is a Company (dealer or supplier).

    DESIGN:
    - Companies are the tenant boundary
    - Users, warehouses, batches, inventory, orders, invoices and payments
      carry company_id
    - Only companies with status='active' may pass the access guard
    """
    __tablename__ = "companies"
    __table_args__ = (
        db.CheckConstraint("type IN ('dealer', 'supplier')", name="ck_companies_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(16), nullable=False, index=True)
    status = db.Column(db.String(32), nullable=False, default="pending_verification", index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def __repr__(self) -> str:
        return f"<Company id={self.id} name={self.name!r} type={self.type}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Warehouse(db.Model):
    """
    Warehouse owned by exactly one company.

    MULTI-TENANT: company_id is set at creation and can never be reassigned.
    """
    __tablename__ = "warehouses"
    __table_args__ = (
        db.UniqueConstraint("company_id", "name", name="uq_warehouses_company_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    type = db.Column(db.String(32), nullable=False, default="main")
    capacity = db.Column(db.Numeric(14, 2), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="active")

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    company = db.relationship("Company", backref=db.backref("warehouses", lazy=True, passive_deletes=True))

    __mapper_args__ = {"version_id_col": version_id}

    @validates("company_id")
    def _validate_company_id(self, key, value):
        if self.company_id is not None and value != self.company_id:
            raise ValueError("warehouse ownership cannot be reassigned")
        return value

    def __repr__(self) -> str:
        return f"<Warehouse id={self.id} name={self.name!r} company_id={self.company_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "type": self.type,
            "capacity": str(self.capacity) if self.capacity is not None else None,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }

from __future__ import annotations

from ..extensions import db
from tubex.time_utils import to_utc_z


ORDER_STATUS_PENDING = "pending"
ORDER_STATUS_CONFIRMED = "confirmed"
ORDER_STATUS_FULFILLED = "fulfilled"
ORDER_STATUS_CANCELLED = "cancelled"


class Order(db.Model):
    """
    Order placed by a customer company with a selling company.

    MULTI-TENANT: company_id is the selling tenant that owns the order and
    the warehouse its stock is drawn from.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_company_status", "company_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    customer_company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=True, index=True)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("warehouses.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_PENDING, index=True)
    total_amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    fulfilled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    items = db.relationship("OrderItem", backref="order", lazy=True, order_by="OrderItem.id")

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "company_id": self.company_id,
            "customer_company_id": self.customer_company_id,
            "warehouse_id": self.warehouse_id,
            "status": self.status,
            "total_amount": str(self.total_amount) if self.total_amount is not None else None,
            "fulfilled_at": to_utc_z(self.fulfilled_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class OrderItem(db.Model):
    __tablename__ = "order_items"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Numeric(12, 2), nullable=False)
    unit_price = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "quantity": str(self.quantity),
            "unit_price": str(self.unit_price),
        }


class Invoice(db.Model):
    __tablename__ = "invoices"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default="draft")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("invoices", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "order_id": self.order_id,
            "amount": str(self.amount),
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }


class Payment(db.Model):
    """
    Payment received by a company.

    INVARIANT: company_id equals the company_id of the linked order/invoice.
    """
    __tablename__ = "payments"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=True, index=True)
    amount = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    reconciliation_status = db.Column(db.String(16), nullable=False, default="pending")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("payments", lazy=True))
    invoice = db.relationship("Invoice", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "order_id": self.order_id,
            "invoice_id": self.invoice_id,
            "amount": str(self.amount),
            "reconciliation_status": self.reconciliation_status,
            "created_at": to_utc_z(self.created_at),
        }

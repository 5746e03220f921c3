# Overview: Relational store adapter; thin repositories over the SQLAlchemy session.

"""
Relational Store Adapter

Repositories give services and the access guard a narrow query surface
(find/create/update/remove/count) that is passed in at construction time
instead of being resolved inside each check. Transactions are driven by
services.concurrency.run_in_transaction.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import Batch, Company, Inventory, Invoice, Order, Payment, Product, Warehouse
from .concurrency import apply_lock


class Repository:
    def __init__(self, model, session=None):
        self.model = model
        self._session = session

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    def query(self):
        return self.session.query(self.model)

    def find_one(self, *, lock: str | None = None, **filters):
        return apply_lock(self.query().filter_by(**filters), lock).first()

    def find(self, *, order_by=None, lock: str | None = None, **filters) -> list:
        q = self.query().filter_by(**filters)
        if order_by is not None:
            q = q.order_by(*order_by) if isinstance(order_by, (list, tuple)) else q.order_by(order_by)
        return apply_lock(q, lock).all()

    def count(self, **filters) -> int:
        return self.query().filter_by(**filters).count()

    def create(self, **values):
        obj = self.model(**values)
        self.session.add(obj)
        self.session.flush()
        return obj

    def update(self, obj, **values):
        for key, value in values.items():
            setattr(obj, key, value)
        self.session.flush()
        return obj

    def remove(self, obj) -> None:
        self.session.delete(obj)
        self.session.flush()


@dataclass
class Repositories:
    company: Repository
    warehouse: Repository
    product: Repository
    inventory: Repository
    batch: Repository
    order: Repository
    invoice: Repository
    payment: Repository

    @classmethod
    def for_session(cls, session=None) -> "Repositories":
        return cls(
            company=Repository(Company, session),
            warehouse=Repository(Warehouse, session),
            product=Repository(Product, session),
            inventory=Repository(Inventory, session),
            batch=Repository(Batch, session),
            order=Repository(Order, session),
            invoice=Repository(Invoice, session),
            payment=Repository(Payment, session),
        )

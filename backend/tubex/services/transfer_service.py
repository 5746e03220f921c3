# Overview: Service-layer operations for warehouse-to-warehouse stock transfers.

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from ..errors import NotFound, TransactionConflict, ValidationError
from ..extensions import db
from ..models import Batch, Company, Inventory, Product, Warehouse
from .concurrency import lock_for_update, run_in_transaction
from .inventory_service import _positive_quantity, _quantity, _require_available
from .ledger_service import append_ledger_event
from .tenant_service import default_policy
"""
Transfer Invariants

- A transfer moves quantity between two warehouses of the same company; the
  sum across both rows is unchanged.
- Both inventory rows are locked FOR UPDATE in ascending warehouse id order,
  so opposing transfers (A->B and B->A) cannot deadlock each other.
- Source shortfall fails the whole transfer; nothing is written.
- A missing target row is created inside the same transaction.
- Named batches are re-pointed to the target warehouse. Batch quantities are
  not split.
"""


@dataclass
class TransferResult:
    product_id: int
    quantity: Decimal
    source: Inventory
    target: Inventory
    moved_batches: list[Batch] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "quantity": str(self.quantity),
            "source": self.source.to_dict(),
            "target": self.target.to_dict(),
            "moved_batches": [b.to_dict() for b in self.moved_batches],
        }


def _require_company_warehouses(company_id: int, warehouse_ids: list[int]) -> None:
    found = {
        w.id: w
        for w in db.session.query(Warehouse).filter(Warehouse.id.in_(warehouse_ids)).all()
    }
    for warehouse_id in warehouse_ids:
        warehouse = found.get(warehouse_id)
        if warehouse is None or warehouse.company_id != company_id:
            raise NotFound("Warehouse not found or access denied")


def _require_company_product(company_id: int, product_id: int) -> Product:
    company = db.session.get(Company, company_id)
    product = db.session.get(Product, product_id)
    if company is None or not default_policy.owns_product(product, company_id, company.type):
        raise NotFound("Product not found or access denied")
    return product


def transfer_stock(
    company_id: int,
    source_warehouse_id: int,
    target_warehouse_id: int,
    product_id: int,
    quantity,
    batch_numbers: list[str] | None = None,
    *,
    actor_user_id: int | None = None,
) -> TransferResult:
    """
    Move stock of one product between two of the company's warehouses.

    Raises ValidationError, NotFound, InsufficientStock,
    TransactionConflict.
    """
    qty = _positive_quantity(quantity)
    if source_warehouse_id == target_warehouse_id:
        raise ValidationError("Source and target warehouses must differ")

    def _op():
        _require_company_warehouses(company_id, [source_warehouse_id, target_warehouse_id])
        product = _require_company_product(company_id, product_id)

        rows: dict[int, Inventory | None] = {}
        for warehouse_id in sorted((source_warehouse_id, target_warehouse_id)):
            rows[warehouse_id] = lock_for_update(
                db.session.query(Inventory).filter_by(
                    product_id=product_id,
                    warehouse_id=warehouse_id,
                    company_id=company_id,
                )
            ).first()

        source = rows[source_warehouse_id]
        available = _quantity(source.quantity) if source is not None else Decimal("0.00")
        _require_available(available, qty, what="stock in source warehouse")

        target = rows[target_warehouse_id]
        if target is None:
            target = Inventory(
                product_id=product_id,
                warehouse_id=target_warehouse_id,
                company_id=company_id,
                quantity=Decimal("0.00"),
                unit=source.unit or product.unit,
            )
            db.session.add(target)
            try:
                db.session.flush()
            except IntegrityError as exc:
                # A concurrent transfer created the row first; a retry will lock it
                raise TransactionConflict("Concurrent update conflict, please retry") from exc

        source.quantity = available - qty
        target.quantity = _quantity(target.quantity) + qty

        moved: list[Batch] = []
        if batch_numbers:
            wanted = set(batch_numbers)
            moved = lock_for_update(
                db.session.query(Batch).filter(
                    Batch.batch_number.in_(wanted),
                    Batch.company_id == company_id,
                    Batch.product_id == product_id,
                    Batch.warehouse_id == source_warehouse_id,
                )
            ).all()
            missing = wanted - {b.batch_number for b in moved}
            if missing:
                raise NotFound(
                    "Batch not found in source warehouse",
                    batch_numbers=sorted(missing),
                )
            for batch in moved:
                batch.warehouse_id = target_warehouse_id

        append_ledger_event(
            company_id=company_id,
            event_type="inventory.transferred",
            entity_type="inventory",
            entity_id=source.id,
            actor_user_id=actor_user_id,
            payload={
                "product_id": product_id,
                "quantity": str(qty),
                "source_warehouse_id": source_warehouse_id,
                "target_warehouse_id": target_warehouse_id,
                "target_inventory_id": target.id,
                "batch_numbers": sorted(b.batch_number for b in moved),
            },
        )
        db.session.flush()
        return TransferResult(
            product_id=product_id,
            quantity=qty,
            source=source,
            target=target,
            moved_batches=moved,
        )

    return run_in_transaction(_op)

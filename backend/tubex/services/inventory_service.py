# Overview: Service-layer operations for inventory; encapsulates stock mutation and batch lifecycle.

# backend/tubex/services/inventory_service.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..errors import (
    DuplicateBatchNumber,
    Expired,
    InsufficientInventory,
    InsufficientStock,
    IntegrityViolation,
    NotFound,
    ValidationError,
)
from ..extensions import db
from ..models import Batch, Company, Inventory, Product, Warehouse
from ..validation import QUANTITY_PLACES, to_quantity
from tubex.time_utils import today, utcnow
from .concurrency import lock_for_read, lock_for_update, run_in_transaction
from .ledger_service import REORDER_TRIGGERED, append_ledger_event
from .tenant_service import default_policy
"""
Tubex Inventory Invariants (authoritative)

Storage:
- Inventory.quantity is the single source of truth for on-hand stock of one
  product in one warehouse for one company.
- Quantities are Decimal with two places (Numeric(12, 2)); no float math.

Business invariants:
- quantity never goes negative. A rejected adjustment has no side effects:
  no batch row, no reorder stamp, no ledger event.
- Positive adjustments with batch info append a new Batch. Batches are never
  merged, even when a number is reused (reuse is DuplicateBatchNumber).
- Negative adjustments draw down active, unexpired batches in
  earliest-expiry-first order; emptied batches are retired as 'depleted'.
  Stock not covered by batches is untracked and simply leaves no batch trail.
- Expired batches are never allocated.
- auto_reorder + quantity <= reorder_point stamps last_reorder_date and
  appends an 'inventory.reorder_triggered' ledger event. Purchase orders are
  created by the external procurement consumer, not here.

Concurrency:
- Every mutation runs inside run_in_transaction: all effects commit or none do.
- The row being mutated is taken with SELECT ... FOR UPDATE.
- validate_stock_availability(lock=True) takes FOR SHARE to close the
  check-then-act window for callers inside a transaction.
- Lock/serialization losers surface as TransactionConflict; nothing here retries.
"""


logger = logging.getLogger(__name__)

BATCH_STATUS_ACTIVE = "active"
BATCH_STATUS_DEPLETED = "depleted"
BATCH_STATUS_EXPIRED = "expired"

ZERO = Decimal("0.00")


@dataclass(frozen=True)
class BatchInfo:
    batch_number: str
    manufacturing_date: date | None = None
    expiry_date: date | None = None


def _quantity(value) -> Decimal:
    """Normalize a stored Numeric to a two-place Decimal."""
    if value is None:
        return ZERO
    return Decimal(value).quantize(QUANTITY_PLACES)


def _positive_quantity(value, field_name: str = "quantity") -> Decimal:
    qty = to_quantity(value, field_name)
    if qty <= 0:
        raise ValidationError(f"{field_name} must be greater than 0")
    return qty


def _require_available(available: Decimal, requested: Decimal, what: str = "stock") -> None:
    if available < requested:
        raise InsufficientStock(
            f"Insufficient {what}. Available: {available}, Requested: {requested}",
            available=available,
            requested=requested,
        )


def _is_expired(batch: Batch, on: date | None = None) -> bool:
    if batch.status == BATCH_STATUS_EXPIRED:
        return True
    return batch.expiry_date is not None and batch.expiry_date < (on or today())


def validate_stock_availability(
    product_id: int,
    warehouse_id: int,
    quantity,
    *,
    company_id: int | None = None,
    lock: bool = False,
) -> Inventory:
    """
    Check that the inventory row for (product, warehouse) holds at least
    `quantity`.

    lock=True takes a pessimistic read lock; pass it when the caller will act
    on the result inside the same transaction.

    Raises NotFound when no row exists, InsufficientStock when short.
    """
    requested = _positive_quantity(quantity)

    q = db.session.query(Inventory).filter_by(product_id=product_id, warehouse_id=warehouse_id)
    if company_id is not None:
        q = q.filter_by(company_id=company_id)
    if lock:
        q = lock_for_read(q)
    inventory = q.first()

    if inventory is None:
        raise NotFound("Inventory record not found")

    _require_available(_quantity(inventory.quantity), requested)
    return inventory


def validate_batch_availability(
    batch_number: str,
    quantity,
    *,
    company_id: int | None = None,
    lock: bool = False,
    as_of: date | None = None,
) -> Batch:
    """
    Check that a batch can supply `quantity`.

    Expiry is checked before quantity so an expired batch reports Expired even
    when it still holds more than requested.
    """
    requested = _positive_quantity(quantity)

    q = db.session.query(Batch).filter_by(batch_number=batch_number)
    if company_id is not None:
        q = q.filter_by(company_id=company_id)
    if lock:
        q = lock_for_read(q)
    batch = q.first()

    if batch is None:
        raise NotFound("Batch not found")

    if _is_expired(batch, as_of):
        raise Expired(
            "Cannot use expired batch",
            batch_number=batch.batch_number,
            expiry_date=batch.expiry_date.isoformat() if batch.expiry_date else None,
        )

    _require_available(_quantity(batch.quantity), requested, what="batch quantity")
    return batch


def check_low_stock_thresholds(inventory_id: int, *, company_id: int | None = None) -> dict:
    """
    is_low is True iff min_threshold is set and quantity <= min_threshold.
    A missing threshold is not a low-stock signal.
    """
    q = db.session.query(Inventory).filter_by(id=inventory_id)
    if company_id is not None:
        q = q.filter_by(company_id=company_id)
    inventory = q.first()
    if inventory is None:
        raise NotFound("Inventory record not found")

    current = _quantity(inventory.quantity)
    threshold = _quantity(inventory.min_threshold) if inventory.min_threshold is not None else None

    return {
        "is_low": threshold is not None and current <= threshold,
        "current_quantity": current,
        "threshold": threshold,
    }


def stock_inventory(
    *,
    company_id: int,
    product_id: int,
    warehouse_id: int,
    unit: str | None = None,
    min_threshold=None,
    max_threshold=None,
    reorder_point=None,
    reorder_quantity=None,
    auto_reorder: bool = False,
) -> Inventory:
    """
    Create the inventory row for a product in a warehouse, starting at zero.

    Stock is added afterwards through adjust_inventory_quantity so every unit
    has an adjustment (and optionally a batch) behind it.
    """
    def _op():
        warehouse = db.session.query(Warehouse).filter_by(id=warehouse_id).first()
        if warehouse is None or warehouse.company_id != company_id:
            raise NotFound("Warehouse not found or access denied")

        company = db.session.get(Company, company_id)
        product = db.session.get(Product, product_id)
        if company is None or not default_policy.owns_product(product, company_id, company.type):
            raise NotFound("Product not found or access denied")

        existing = db.session.query(Inventory).filter_by(
            product_id=product_id, warehouse_id=warehouse_id, company_id=company_id
        ).first()
        if existing is not None:
            raise IntegrityViolation("Inventory already exists for this product and warehouse")

        inventory = Inventory(
            product_id=product_id,
            warehouse_id=warehouse_id,
            company_id=company_id,
            quantity=ZERO,
            unit=unit or product.unit,
            min_threshold=min_threshold,
            max_threshold=max_threshold,
            reorder_point=reorder_point,
            reorder_quantity=reorder_quantity,
            auto_reorder=auto_reorder,
        )
        db.session.add(inventory)
        try:
            db.session.flush()
        except IntegrityError:
            raise IntegrityViolation("Inventory already exists for this product and warehouse")
        return inventory

    return run_in_transaction(_op)


def _create_batch(
    inventory: Inventory,
    quantity: Decimal,
    reason: str | None,
    batch_info: BatchInfo,
    actor_user_id: int | None,
) -> Batch:
    if not batch_info.batch_number:
        raise ValidationError("batch_number is required")
    if (
        batch_info.manufacturing_date
        and batch_info.expiry_date
        and batch_info.expiry_date < batch_info.manufacturing_date
    ):
        raise ValidationError("expiry_date cannot be before manufacturing_date")

    if inventory.warehouse is None or inventory.warehouse.company_id != inventory.company_id:
        raise IntegrityViolation("Inventory warehouse does not belong to the inventory's company")

    duplicate = db.session.query(Batch.id).filter_by(
        batch_number=batch_info.batch_number,
        company_id=inventory.company_id,
    ).first()
    if duplicate is not None:
        raise DuplicateBatchNumber(
            "Batch number already exists for this company",
            batch_number=batch_info.batch_number,
        )

    batch = Batch(
        batch_number=batch_info.batch_number,
        product_id=inventory.product_id,
        warehouse_id=inventory.warehouse_id,
        company_id=inventory.company_id,
        quantity=quantity,
        unit=inventory.unit,
        manufacturing_date=batch_info.manufacturing_date,
        expiry_date=batch_info.expiry_date,
        status=BATCH_STATUS_ACTIVE,
        batch_metadata={
            "reason": reason,
            "adjustment_date": utcnow().isoformat(),
            "adjusted_by": actor_user_id,
        },
    )
    db.session.add(batch)
    try:
        db.session.flush()
    except IntegrityError:
        # Lost a race with a concurrent insert of the same number
        raise DuplicateBatchNumber(
            "Batch number already exists for this company",
            batch_number=batch_info.batch_number,
        )
    return batch


def allocate_from_batches(
    *,
    product_id: int,
    warehouse_id: int,
    company_id: int,
    quantity: Decimal,
    reason: str | None,
) -> tuple[list[dict], Decimal]:
    """
    Draw `quantity` down from active, unexpired batches, earliest expiry first
    (batches without expiry last, then oldest first).

    Returns (allocations, unallocated). Allocations are
    {"batch_id", "batch_number", "quantity"} dicts.
    """
    batches = lock_for_update(
        db.session.query(Batch).filter(
            Batch.product_id == product_id,
            Batch.warehouse_id == warehouse_id,
            Batch.company_id == company_id,
            Batch.status == BATCH_STATUS_ACTIVE,
            Batch.quantity > 0,
            or_(Batch.expiry_date.is_(None), Batch.expiry_date >= today()),
        ).order_by(
            Batch.expiry_date.is_(None),
            Batch.expiry_date.asc(),
            Batch.created_at.asc(),
            Batch.id.asc(),
        )
    ).all()

    remaining = quantity
    allocations = []
    for batch in batches:
        if remaining <= 0:
            break
        available = _quantity(batch.quantity)
        deduction = min(available, remaining)
        batch.quantity = available - deduction
        remaining -= deduction

        if batch.quantity == 0:
            batch.status = BATCH_STATUS_DEPLETED
        batch.batch_metadata = {
            **(batch.batch_metadata or {}),
            "last_deduction": {
                "amount": str(deduction),
                "date": utcnow().isoformat(),
                "reason": reason,
            },
        }
        allocations.append({
            "batch_id": batch.id,
            "batch_number": batch.batch_number,
            "quantity": str(deduction),
        })

    return allocations, remaining


def restore_batch_allocations(allocations: list[dict], *, company_id: int, reason: str | None) -> None:
    """Inverse of allocate_from_batches: put the recorded amounts back."""
    if not allocations:
        return
    ids = [a["batch_id"] for a in allocations]
    batches = {
        b.id: b
        for b in lock_for_update(
            db.session.query(Batch).filter(Batch.id.in_(ids), Batch.company_id == company_id)
        ).all()
    }
    for allocation in allocations:
        batch = batches.get(allocation["batch_id"])
        if batch is None:
            raise IntegrityViolation(f"Batch {allocation['batch_id']} missing while restoring allocation")
        batch.quantity = _quantity(batch.quantity) + Decimal(allocation["quantity"])
        if batch.status == BATCH_STATUS_DEPLETED:
            batch.status = BATCH_STATUS_ACTIVE
        batch.batch_metadata = {
            **(batch.batch_metadata or {}),
            "last_restore": {
                "amount": allocation["quantity"],
                "date": utcnow().isoformat(),
                "reason": reason,
            },
        }


def maybe_trigger_reorder(inventory: Inventory, *, actor_user_id: int | None = None) -> bool:
    """
    Stamp last_reorder_date and emit the reorder event when auto_reorder is on
    and quantity has reached the reorder point. Returns True when triggered.
    """
    if not inventory.auto_reorder or inventory.reorder_point is None:
        return False

    current = _quantity(inventory.quantity)
    reorder_point = _quantity(inventory.reorder_point)
    if current > reorder_point:
        return False

    now = utcnow()
    inventory.last_reorder_date = now
    append_ledger_event(
        company_id=inventory.company_id,
        event_type=REORDER_TRIGGERED,
        entity_type="inventory",
        entity_id=inventory.id,
        actor_user_id=actor_user_id,
        occurred_at=now,
        payload={
            "product_id": inventory.product_id,
            "warehouse_id": inventory.warehouse_id,
            "current_quantity": str(current),
            "reorder_point": str(reorder_point),
            "reorder_quantity": str(inventory.reorder_quantity) if inventory.reorder_quantity is not None else None,
        },
    )
    logger.info(
        "Low stock alert: product %s in warehouse %s needs reorder. Current: %s, reorder point: %s",
        inventory.product_id,
        inventory.warehouse_id,
        current,
        reorder_point,
    )
    return True


def adjust_inventory_quantity(
    inventory_id: int,
    company_id: int,
    adjustment,
    reason: str | None,
    batch_info: BatchInfo | None = None,
    *,
    actor_user_id: int | None = None,
) -> Inventory:
    """
    Apply a signed adjustment to one inventory row.

    All effects (quantity, batch row or batch draw-down, reorder stamp and
    ledger events) commit together or not at all.

    Raises NotFound, InsufficientInventory, DuplicateBatchNumber,
    ValidationError, TransactionConflict.
    """
    delta = to_quantity(adjustment, "adjustment")
    if delta == 0:
        raise ValidationError("adjustment must be non-zero")
    if delta < 0 and batch_info is not None:
        raise ValidationError("batch info only applies to positive adjustments")

    def _op():
        inventory = lock_for_update(
            db.session.query(Inventory).filter_by(id=inventory_id, company_id=company_id)
        ).first()
        if inventory is None:
            raise NotFound("Inventory item not found")

        current = _quantity(inventory.quantity)
        new_quantity = current + delta
        if new_quantity < 0:
            raise InsufficientInventory(
                f"Insufficient inventory. Available: {current}, Requested: {-delta}",
                available=current,
                requested=-delta,
            )

        inventory.quantity = new_quantity

        batch = None
        allocations: list[dict] = []
        if delta > 0 and batch_info is not None:
            batch = _create_batch(inventory, delta, reason, batch_info, actor_user_id)
        elif delta < 0:
            allocations, _untracked = allocate_from_batches(
                product_id=inventory.product_id,
                warehouse_id=inventory.warehouse_id,
                company_id=company_id,
                quantity=-delta,
                reason=reason,
            )

        reorder_triggered = maybe_trigger_reorder(inventory, actor_user_id=actor_user_id)

        append_ledger_event(
            company_id=company_id,
            event_type="inventory.adjusted",
            entity_type="inventory",
            entity_id=inventory.id,
            actor_user_id=actor_user_id,
            note=reason,
            payload={
                "adjustment": str(delta),
                "previous_quantity": str(current),
                "new_quantity": str(new_quantity),
                "batch_id": batch.id if batch else None,
                "allocations": allocations,
                "reorder_triggered": reorder_triggered,
            },
        )
        db.session.flush()
        return inventory

    return run_in_transaction(_op)


def get_expiring_batches(company_id: int, days: int = 30, *, company_type: str | None = None) -> list[Batch]:
    """Active, non-empty batches expiring between today and today + days (inclusive)."""
    if days < 0:
        raise ValidationError("days must be >= 0")

    start = today()
    end = start + timedelta(days=days)
    q = db.session.query(Batch).filter(
        Batch.company_id == company_id,
        Batch.status == BATCH_STATUS_ACTIVE,
        Batch.quantity > 0,
        Batch.expiry_date.isnot(None),
        Batch.expiry_date >= start,
        Batch.expiry_date <= end,
    )
    if company_type is not None:
        q = q.join(Product, Product.id == Batch.product_id).filter(
            default_policy.product_criterion(company_id, company_type)
        )
    return q.order_by(Batch.expiry_date.asc(), Batch.id.asc()).all()


def retire_expired_batches(company_id: int) -> int:
    """Mark active batches past their expiry date as 'expired'. Returns count."""
    def _op():
        batches = lock_for_update(
            db.session.query(Batch).filter(
                Batch.company_id == company_id,
                Batch.status == BATCH_STATUS_ACTIVE,
                Batch.expiry_date.isnot(None),
                Batch.expiry_date < today(),
            )
        ).all()
        for batch in batches:
            batch.status = BATCH_STATUS_EXPIRED
        return len(batches)

    return run_in_transaction(_op)

# Overview: Order fulfilment and cancellation; the inventory side effects of an order's lifecycle.

from __future__ import annotations

from collections import OrderedDict
from decimal import Decimal

from ..errors import IntegrityViolation, NotFound, ValidationError
from ..extensions import db
from ..models import Inventory, LedgerEvent, Order
from ..models.orders import (
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_CONFIRMED,
    ORDER_STATUS_FULFILLED,
    ORDER_STATUS_PENDING,
)
from tubex.time_utils import utcnow
from .concurrency import lock_for_update, run_in_transaction
from .inventory_service import (
    _quantity,
    allocate_from_batches,
    maybe_trigger_reorder,
    restore_batch_allocations,
    validate_stock_availability,
)
from .ledger_service import append_ledger_event


ORDER_FULFILLED = "order.fulfilled"
ORDER_CANCELLED = "order.cancelled"

FULFILLABLE_STATUSES = (ORDER_STATUS_PENDING, ORDER_STATUS_CONFIRMED)


def _load_order_for_update(order_id: int, company_id: int) -> Order:
    order = lock_for_update(
        db.session.query(Order).filter_by(id=order_id, company_id=company_id)
    ).first()
    if order is None:
        raise NotFound("Order not found or access denied")
    return order


def _quantities_by_product(order: Order) -> "OrderedDict[int, Decimal]":
    # One lock and one decrement per product, in ascending id order
    totals: dict[int, Decimal] = {}
    for item in order.items:
        totals[item.product_id] = totals.get(item.product_id, Decimal("0.00")) + _quantity(item.quantity)
    return OrderedDict(sorted(totals.items()))


def fulfill_order(order_id: int, company_id: int, *, actor_user_id: int | None = None) -> Order:
    """
    Decrement inventory for every item of an order, all or nothing.

    Each product's availability is checked under a read lock before the row
    is written, so a concurrent order cannot take the same units between the
    check and the decrement.
    """
    def _op():
        order = _load_order_for_update(order_id, company_id)
        if order.status not in FULFILLABLE_STATUSES:
            raise ValidationError(f"Cannot fulfill order in '{order.status}' status")
        if not order.items:
            raise ValidationError("Order has no items")

        lines = []
        for product_id, quantity in _quantities_by_product(order).items():
            inventory = validate_stock_availability(
                product_id,
                order.warehouse_id,
                quantity,
                company_id=company_id,
                lock=True,
            )
            inventory = lock_for_update(
                db.session.query(Inventory).filter_by(id=inventory.id)
            ).populate_existing().one()

            inventory.quantity = _quantity(inventory.quantity) - quantity
            allocations, untracked = allocate_from_batches(
                product_id=product_id,
                warehouse_id=order.warehouse_id,
                company_id=company_id,
                quantity=quantity,
                reason=f"order {order.id} fulfilment",
            )
            maybe_trigger_reorder(inventory, actor_user_id=actor_user_id)
            lines.append({
                "product_id": product_id,
                "inventory_id": inventory.id,
                "quantity": str(quantity),
                "allocations": allocations,
                "untracked": str(untracked),
            })

        order.status = ORDER_STATUS_FULFILLED
        order.fulfilled_at = utcnow()

        append_ledger_event(
            company_id=company_id,
            event_type=ORDER_FULFILLED,
            entity_type="order",
            entity_id=order.id,
            actor_user_id=actor_user_id,
            occurred_at=order.fulfilled_at,
            payload={"warehouse_id": order.warehouse_id, "lines": lines},
        )
        db.session.flush()
        return order

    return run_in_transaction(_op)


def _fulfilment_record(order: Order) -> LedgerEvent:
    event = (
        db.session.query(LedgerEvent)
        .filter_by(company_id=order.company_id, entity_type="order", entity_id=order.id, event_type=ORDER_FULFILLED)
        .order_by(LedgerEvent.id.desc())
        .first()
    )
    if event is None or not event.payload:
        raise IntegrityViolation("Fulfilled order has no fulfilment record", order_id=order.id)
    return event


def cancel_order(order_id: int, company_id: int, *, actor_user_id: int | None = None) -> Order:
    """
    Cancel an order. A fulfilled order gets back exactly the quantities its
    fulfilment took, including the batch draw-downs.
    """
    def _op():
        order = _load_order_for_update(order_id, company_id)
        if order.status == ORDER_STATUS_CANCELLED:
            raise ValidationError("Order is already cancelled")

        restored = []
        if order.status == ORDER_STATUS_FULFILLED:
            record = _fulfilment_record(order)
            lines = sorted(record.payload.get("lines", []), key=lambda line: line["product_id"])
            for line in lines:
                inventory = lock_for_update(
                    db.session.query(Inventory).filter_by(id=line["inventory_id"], company_id=company_id)
                ).first()
                if inventory is None:
                    raise IntegrityViolation(
                        "Inventory row missing while restoring cancelled order",
                        inventory_id=line["inventory_id"],
                    )
                inventory.quantity = _quantity(inventory.quantity) + Decimal(line["quantity"])
                restore_batch_allocations(
                    line.get("allocations") or [],
                    company_id=company_id,
                    reason=f"order {order.id} cancellation",
                )
                restored.append({"product_id": line["product_id"], "quantity": line["quantity"]})

        previous_status = order.status
        order.status = ORDER_STATUS_CANCELLED
        order.cancelled_at = utcnow()

        append_ledger_event(
            company_id=company_id,
            event_type=ORDER_CANCELLED,
            entity_type="order",
            entity_id=order.id,
            actor_user_id=actor_user_id,
            occurred_at=order.cancelled_at,
            payload={"previous_status": previous_status, "restored": restored},
        )
        db.session.flush()
        return order

    return run_in_transaction(_op)

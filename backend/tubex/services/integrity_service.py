# Overview: Read-only data integrity checks over tenant-scoped relationships.

"""
Data Integrity Validator

Point checks (validate_*) raise on the first problem and are meant to run
before a write. run_comprehensive_integrity_check() scans one company and
reports every problem it finds instead of raising.

Nothing in this module writes to the database.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from flask import current_app
from sqlalchemy import func
from sqlalchemy.orm import aliased

from ..errors import DuplicateBatchNumber, IntegrityViolation, NotFound
from ..extensions import db
from ..models import Batch, Company, Inventory, Invoice, Order, Payment, Product, Warehouse
from tubex.time_utils import to_utc_z, utcnow
from .inventory_service import BATCH_STATUS_ACTIVE, _quantity
from .store import Repositories


logger = logging.getLogger(__name__)

CONSISTENCY_TOLERANCE = Decimal("0.01")


def validate_batch_ownership(batch_id: int, company_id: int) -> Batch:
    batch = db.session.get(Batch, batch_id)
    if batch is None:
        raise NotFound("Batch not found")
    if batch.company_id != company_id:
        raise IntegrityViolation("Batch does not belong to company", batch_id=batch_id)
    warehouse = db.session.get(Warehouse, batch.warehouse_id)
    if warehouse is None:
        raise IntegrityViolation("Batch references a missing warehouse", batch_id=batch_id)
    if warehouse.company_id != company_id:
        raise IntegrityViolation("Batch warehouse belongs to another company", batch_id=batch_id)
    return batch


def validate_payment_ownership(payment_id: int, company_id: int) -> Payment:
    payment = db.session.get(Payment, payment_id)
    if payment is None:
        raise NotFound("Payment not found")
    if payment.company_id != company_id:
        raise IntegrityViolation("Payment does not belong to company", payment_id=payment_id)

    if payment.order_id is not None:
        order = db.session.get(Order, payment.order_id)
        if order is None:
            raise IntegrityViolation("Payment references a missing order", payment_id=payment_id)
        if order.company_id != company_id:
            raise IntegrityViolation("Payment order belongs to another company", payment_id=payment_id)

    if payment.invoice_id is not None:
        invoice = db.session.get(Invoice, payment.invoice_id)
        if invoice is None:
            raise IntegrityViolation("Payment references a missing invoice", payment_id=payment_id)
        if invoice.company_id != company_id:
            raise IntegrityViolation("Payment invoice belongs to another company", payment_id=payment_id)

    return payment


def validate_inventory_relationships(inventory_id: int, company_id: int) -> Inventory:
    inventory = db.session.get(Inventory, inventory_id)
    if inventory is None:
        raise NotFound("Inventory record not found")
    if inventory.company_id != company_id:
        raise IntegrityViolation("Inventory does not belong to company", inventory_id=inventory_id)

    warehouse = db.session.get(Warehouse, inventory.warehouse_id)
    if warehouse is None:
        raise IntegrityViolation("Inventory references a missing warehouse", inventory_id=inventory_id)
    if warehouse.company_id != company_id:
        raise IntegrityViolation("Inventory warehouse belongs to another company", inventory_id=inventory_id)

    if db.session.get(Product, inventory.product_id) is None:
        raise IntegrityViolation("Inventory references a missing product", inventory_id=inventory_id)

    return inventory


def validate_unique_batch_number(batch_number: str, company_id: int, exclude_batch_id: int | None = None) -> None:
    q = db.session.query(Batch.id).filter_by(batch_number=batch_number, company_id=company_id)
    if exclude_batch_id is not None:
        q = q.filter(Batch.id != exclude_batch_id)
    if q.first() is not None:
        raise DuplicateBatchNumber(
            "Batch number already exists for this company",
            batch_number=batch_number,
        )


def validate_batch_inventory_consistency(product_id: int, warehouse_id: int, company_id: int) -> dict:
    """
    Compare the sum of active batch quantities with the inventory quantity.

    Without an inventory row the pair is consistent only if there are no
    active batches either.
    """
    inventory = db.session.query(Inventory).filter_by(
        product_id=product_id, warehouse_id=warehouse_id, company_id=company_id
    ).first()

    batch_total = _quantity(
        db.session.query(func.coalesce(func.sum(Batch.quantity), 0))
        .filter(
            Batch.product_id == product_id,
            Batch.warehouse_id == warehouse_id,
            Batch.company_id == company_id,
            Batch.status == BATCH_STATUS_ACTIVE,
        )
        .scalar()
    )

    if inventory is None:
        return {
            "is_consistent": batch_total == 0,
            "inventory_quantity": None,
            "batch_total": batch_total,
            "discrepancy": batch_total,
        }

    inventory_quantity = _quantity(inventory.quantity)
    discrepancy = abs(inventory_quantity - batch_total)
    return {
        "is_consistent": discrepancy < CONSISTENCY_TOLERANCE,
        "inventory_quantity": inventory_quantity,
        "batch_total": batch_total,
        "discrepancy": discrepancy,
    }


def _orphaned_batches(repositories: Repositories, company_id: int) -> list[int]:
    """Batches whose owning company no longer exists."""
    rows = (
        repositories.batch.query()
        .with_entities(Batch.id)
        .outerjoin(Company, Company.id == Batch.company_id)
        .filter(Batch.company_id == company_id, Company.id.is_(None))
        .order_by(Batch.id)
        .all()
    )
    return [r.id for r in rows]


def _dangling_batches(repositories: Repositories, company_id: int) -> list[int]:
    rows = (
        repositories.batch.query()
        .with_entities(Batch.id)
        .outerjoin(Warehouse, Warehouse.id == Batch.warehouse_id)
        .outerjoin(Product, Product.id == Batch.product_id)
        .filter(Batch.company_id == company_id)
        .filter((Warehouse.id.is_(None)) | (Product.id.is_(None)))
        .order_by(Batch.id)
        .all()
    )
    return [r.id for r in rows]


def _orphaned_payments(repositories: Repositories, company_id: int) -> list[int]:
    """Payments whose owning company no longer exists."""
    rows = (
        repositories.payment.query()
        .with_entities(Payment.id)
        .outerjoin(Company, Company.id == Payment.company_id)
        .filter(Payment.company_id == company_id, Company.id.is_(None))
        .order_by(Payment.id)
        .all()
    )
    return [r.id for r in rows]


def _dangling_payments(repositories: Repositories, company_id: int) -> list[int]:
    rows = (
        repositories.payment.query()
        .with_entities(Payment.id)
        .outerjoin(Order, Order.id == Payment.order_id)
        .outerjoin(Invoice, Invoice.id == Payment.invoice_id)
        .filter(Payment.company_id == company_id)
        .filter(
            (Payment.order_id.isnot(None) & Order.id.is_(None))
            | (Payment.invoice_id.isnot(None) & Invoice.id.is_(None))
        )
        .order_by(Payment.id)
        .all()
    )
    return [r.id for r in rows]


def _cross_company_inventory(repositories: Repositories, company_id: int) -> list[int]:
    rows = (
        repositories.inventory.query()
        .with_entities(Inventory.id)
        .join(Warehouse, Warehouse.id == Inventory.warehouse_id)
        .filter(Inventory.company_id == company_id, Warehouse.company_id != company_id)
        .order_by(Inventory.id)
        .all()
    )
    return [r.id for r in rows]


def _cross_company_batches(repositories: Repositories, company_id: int) -> list[int]:
    rows = (
        repositories.batch.query()
        .with_entities(Batch.id)
        .join(Warehouse, Warehouse.id == Batch.warehouse_id)
        .filter(Batch.company_id == company_id, Warehouse.company_id != company_id)
        .order_by(Batch.id)
        .all()
    )
    return [r.id for r in rows]


def _cross_company_payments(repositories: Repositories, company_id: int) -> list[int]:
    linked_order = aliased(Order)
    linked_invoice = aliased(Invoice)
    rows = (
        repositories.payment.query()
        .with_entities(Payment.id)
        .outerjoin(linked_order, linked_order.id == Payment.order_id)
        .outerjoin(linked_invoice, linked_invoice.id == Payment.invoice_id)
        .filter(Payment.company_id == company_id)
        .filter(
            (linked_order.id.isnot(None) & (linked_order.company_id != company_id))
            | (linked_invoice.id.isnot(None) & (linked_invoice.company_id != company_id))
        )
        .order_by(Payment.id)
        .all()
    )
    return [r.id for r in rows]


def _duplicate_batch_numbers(repositories: Repositories, company_id: int) -> list[str]:
    rows = (
        repositories.batch.query()
        .with_entities(Batch.batch_number)
        .filter(Batch.company_id == company_id)
        .group_by(Batch.batch_number)
        .having(func.count(Batch.id) > 1)
        .order_by(Batch.batch_number)
        .all()
    )
    return [r.batch_number for r in rows]


def run_comprehensive_integrity_check(repositories: Repositories, company_id: int) -> dict:
    """
    Scan one company for broken relationships.

    Returns {"is_valid", "errors", "warnings", "checked_at"}; is_valid is
    True iff errors is empty. A failing query is reported as an error rather
    than raised, so one broken check does not hide the others.
    """
    errors: list[str] = []
    warnings: list[str] = []

    try:
        orphaned = _orphaned_batches(repositories, company_id)
        if orphaned:
            errors.append(f"Found {len(orphaned)} orphaned batches: {orphaned}")

        orphaned = _orphaned_payments(repositories, company_id)
        if orphaned:
            errors.append(f"Found {len(orphaned)} orphaned payments: {orphaned}")

        dangling = _dangling_batches(repositories, company_id)
        if dangling:
            errors.append(f"Found {len(dangling)} batches referencing a missing warehouse or product: {dangling}")

        dangling = _dangling_payments(repositories, company_id)
        if dangling:
            errors.append(f"Found {len(dangling)} payments referencing a missing order or invoice: {dangling}")

        crossed = _cross_company_inventory(repositories, company_id)
        if crossed:
            errors.append(f"Found {len(crossed)} inventory records in warehouses of another company: {crossed}")

        crossed = _cross_company_batches(repositories, company_id)
        if crossed:
            errors.append(f"Found {len(crossed)} batches in warehouses of another company: {crossed}")

        crossed = _cross_company_payments(repositories, company_id)
        if crossed:
            errors.append(f"Found {len(crossed)} payments linked to another company's order or invoice: {crossed}")

        duplicates = _duplicate_batch_numbers(repositories, company_id)
        if duplicates:
            errors.append(f"Found duplicate batch numbers: {duplicates}")

        batch_limit = current_app.config.get("INTEGRITY_BATCH_WARN_THRESHOLD", 10000)
        batch_count = repositories.batch.count(company_id=company_id)
        if batch_count > batch_limit:
            warnings.append(f"Large number of batches ({batch_count}) may impact performance")

        payment_limit = current_app.config.get("INTEGRITY_PAYMENT_WARN_THRESHOLD", 5000)
        payment_count = repositories.payment.count(company_id=company_id)
        if payment_count > payment_limit:
            warnings.append(f"Large number of payments ({payment_count}) may impact performance")
    except Exception as exc:
        logger.exception("Integrity check failed for company %s", company_id)
        errors.append(f"Integrity check failed: {exc}")

    return {
        "is_valid": not errors,
        "errors": errors,
        "warnings": warnings,
        "checked_at": to_utc_z(utcnow()),
    }

# Overview: Flask API routes for inventory and batch operations; parses input and returns JSON responses.

# backend/tubex/routes/inventory.py
from flask import Blueprint, g, jsonify, request

from ..decorators import (
    audit_security_event,
    company_rate_limit,
    require_auth,
    require_company_access,
    require_resource_ownership,
)
from ..errors import ValidationError
from ..services import inventory_service
from ..services.concurrency import run_with_retry
from ..services.inventory_service import BatchInfo
from ..services.tenant_service import get_guard
from ..validation import PayloadPolicy, validate_payload


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/companies/<int:company_id>")


STOCK_POLICY = PayloadPolicy(
    fields={
        "product_id": "int",
        "warehouse_id": "int",
        "unit": "str",
        "min_threshold": "decimal",
        "max_threshold": "decimal",
        "reorder_point": "decimal",
        "reorder_quantity": "decimal",
        "auto_reorder": "bool",
    },
    required=frozenset({"product_id", "warehouse_id"}),
    max_lengths={"unit": 16},
)

ADJUST_POLICY = PayloadPolicy(
    fields={
        "adjustment": "decimal",
        "reason": "str",
        "batch_number": "str",
        "manufacturing_date": "date",
        "expiry_date": "date",
    },
    required=frozenset({"adjustment", "reason"}),
    max_lengths={"reason": 255, "batch_number": 64},
)

STOCK_AVAILABILITY_POLICY = PayloadPolicy(
    fields={"product_id": "int", "warehouse_id": "int", "quantity": "decimal"},
    required=frozenset({"product_id", "warehouse_id", "quantity"}),
)

BATCH_AVAILABILITY_POLICY = PayloadPolicy(
    fields={"batch_number": "str", "quantity": "decimal"},
    required=frozenset({"batch_number", "quantity"}),
    max_lengths={"batch_number": 64},
)


def _inventory_payload(inventory) -> dict:
    return {
        "inventory": inventory.to_dict(),
        "stock_status": _stock_status(inventory.id, inventory.company_id),
    }


def _stock_status(inventory_id: int, company_id: int) -> dict:
    status = inventory_service.check_low_stock_thresholds(inventory_id, company_id=company_id)
    return {
        "is_low": status["is_low"],
        "current_quantity": str(status["current_quantity"]),
        "threshold": str(status["threshold"]) if status["threshold"] is not None else None,
    }


@inventory_bp.get("/inventory/<int:inventory_id>")
@require_auth
@require_company_access
@company_rate_limit()
@require_resource_ownership("inventory", "inventory_id")
def get_inventory_route(company_id: int, inventory_id: int):
    return jsonify(_inventory_payload(g.resource)), 200


@inventory_bp.post("/inventory")
@require_auth
@require_company_access
@company_rate_limit()
@audit_security_event("INVENTORY_STOCKED")
def stock_inventory_route(company_id: int):
    """
    Start tracking a product in a warehouse (quantity 0).

    Returns:
        201: Inventory created
        404: Warehouse or product not visible to the company
        409: Inventory already exists
    """
    data = validate_payload(request.get_json(silent=True), STOCK_POLICY)

    guard = get_guard()
    guard.validate_resource_ownership("warehouse", data["warehouse_id"], g.tenant)
    guard.validate_resource_ownership("product", data["product_id"], g.tenant)

    inventory = inventory_service.stock_inventory(
        company_id=company_id,
        product_id=data["product_id"],
        warehouse_id=data["warehouse_id"],
        unit=data.get("unit"),
        min_threshold=data.get("min_threshold"),
        max_threshold=data.get("max_threshold"),
        reorder_point=data.get("reorder_point"),
        reorder_quantity=data.get("reorder_quantity"),
        auto_reorder=bool(data.get("auto_reorder")),
    )
    return jsonify(_inventory_payload(inventory)), 201


@inventory_bp.post("/inventory/<int:inventory_id>/adjust")
@require_auth
@require_company_access
@company_rate_limit()
@audit_security_event("INVENTORY_ADJUSTED")
@require_resource_ownership("inventory", "inventory_id")
def adjust_inventory_route(company_id: int, inventory_id: int):
    """
    Request body:
    {
        "adjustment": decimal (signed, non-zero),
        "reason": str,
        "batch_number": str (optional, positive adjustments only),
        "manufacturing_date": "YYYY-MM-DD" (optional),
        "expiry_date": "YYYY-MM-DD" (optional)
    }

    Returns:
        200: {"inventory", "stock_status"}
        400: Invalid request or insufficient inventory
        409: Duplicate batch number or concurrent update (retryable)
    """
    data = validate_payload(request.get_json(silent=True), ADJUST_POLICY)

    batch_info = None
    if data.get("batch_number"):
        batch_info = BatchInfo(
            batch_number=data["batch_number"],
            manufacturing_date=data.get("manufacturing_date"),
            expiry_date=data.get("expiry_date"),
        )
    elif data.get("manufacturing_date") or data.get("expiry_date"):
        raise ValidationError("batch_number is required when batch dates are given")

    inventory = run_with_retry(lambda: inventory_service.adjust_inventory_quantity(
        inventory_id,
        company_id,
        data["adjustment"],
        data["reason"],
        batch_info,
        actor_user_id=g.principal.id,
    ))
    return jsonify(_inventory_payload(inventory)), 200


@inventory_bp.get("/inventory/<int:inventory_id>/low-stock")
@require_auth
@require_company_access
@company_rate_limit()
@require_resource_ownership("inventory", "inventory_id")
def low_stock_route(company_id: int, inventory_id: int):
    return jsonify(_stock_status(inventory_id, company_id)), 200


@inventory_bp.post("/inventory/availability")
@require_auth
@require_company_access
@company_rate_limit()
def stock_availability_route(company_id: int):
    data = validate_payload(request.get_json(silent=True), STOCK_AVAILABILITY_POLICY)
    get_guard().validate_resource_ownership("warehouse", data["warehouse_id"], g.tenant)

    inventory = inventory_service.validate_stock_availability(
        data["product_id"],
        data["warehouse_id"],
        data["quantity"],
        company_id=company_id,
    )
    return jsonify({
        "available": True,
        "available_quantity": str(inventory.quantity),
        "requested": str(data["quantity"]),
    }), 200


@inventory_bp.post("/batches/availability")
@require_auth
@require_company_access
@company_rate_limit()
def batch_availability_route(company_id: int):
    data = validate_payload(request.get_json(silent=True), BATCH_AVAILABILITY_POLICY)

    batch = inventory_service.validate_batch_availability(
        data["batch_number"],
        data["quantity"],
        company_id=company_id,
    )
    return jsonify({
        "available": True,
        "batch": batch.to_dict(),
        "requested": str(data["quantity"]),
    }), 200


@inventory_bp.get("/batches/expiring")
@require_auth
@require_company_access
@company_rate_limit()
def expiring_batches_route(company_id: int):
    days = request.args.get("days", default=30, type=int)
    batches = inventory_service.get_expiring_batches(
        company_id,
        days,
        company_type=g.tenant.company_type,
    )
    return jsonify({"days": days, "batches": [b.to_dict() for b in batches]}), 200

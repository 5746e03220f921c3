# Overview: Flask API routes for stock transfers; parses input and returns JSON responses.

# backend/tubex/routes/transfers.py
from flask import Blueprint, g, jsonify, request

from ..decorators import audit_security_event, company_rate_limit, require_auth, require_company_access
from ..services import transfer_service
from ..services.concurrency import run_with_retry
from ..validation import PayloadPolicy, validate_payload


transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/companies/<int:company_id>/transfers")

TRANSFER_POLICY = PayloadPolicy(
    fields={
        "source_warehouse_id": "int",
        "target_warehouse_id": "int",
        "product_id": "int",
        "quantity": "decimal",
        "batch_numbers": "str_list",
    },
    required=frozenset({"source_warehouse_id", "target_warehouse_id", "product_id", "quantity"}),
)


@transfers_bp.route("", methods=["POST"])
@require_auth
@require_company_access
@company_rate_limit()
@audit_security_event("STOCK_TRANSFERRED")
def create_transfer(company_id: int):
    """
    Move stock between two of the company's warehouses.

    Request body:
    {
        "source_warehouse_id": int,
        "target_warehouse_id": int,
        "product_id": int,
        "quantity": decimal,
        "batch_numbers": [str] (optional)
    }

    Returns:
        200: Transfer applied
        400: Invalid request or insufficient stock
        404: Warehouse, product or batch not visible to the company
        409: Concurrent update (retryable)
    """
    data = validate_payload(request.get_json(silent=True), TRANSFER_POLICY)

    result = run_with_retry(lambda: transfer_service.transfer_stock(
        company_id,
        data["source_warehouse_id"],
        data["target_warehouse_id"],
        data["product_id"],
        data["quantity"],
        data.get("batch_numbers"),
        actor_user_id=g.principal.id,
    ))
    return jsonify(result.to_dict()), 200

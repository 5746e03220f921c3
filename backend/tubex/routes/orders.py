# Overview: Flask API routes for orders; fulfilment and cancellation drive inventory.

# backend/tubex/routes/orders.py
from flask import Blueprint, g, jsonify

from ..decorators import (
    audit_security_event,
    company_rate_limit,
    require_auth,
    require_company_access,
    require_resource_ownership,
)
from ..services import order_service
from ..services.concurrency import run_with_retry


orders_bp = Blueprint("orders", __name__, url_prefix="/api/companies/<int:company_id>/orders")


@orders_bp.get("/<int:order_id>")
@require_auth
@require_company_access
@company_rate_limit()
@require_resource_ownership("order", "order_id")
def get_order_route(company_id: int, order_id: int):
    return jsonify(g.resource.to_dict()), 200


@orders_bp.post("/<int:order_id>/fulfill")
@require_auth
@require_company_access
@company_rate_limit()
@audit_security_event("ORDER_FULFILLED")
@require_resource_ownership("order", "order_id")
def fulfill_order_route(company_id: int, order_id: int):
    """
    Returns:
        200: Order fulfilled
        400: Wrong status or insufficient stock
        409: Concurrent update (retryable)
    """
    order = run_with_retry(
        lambda: order_service.fulfill_order(order_id, company_id, actor_user_id=g.principal.id)
    )
    return jsonify(order.to_dict()), 200


@orders_bp.post("/<int:order_id>/cancel")
@require_auth
@require_company_access
@company_rate_limit()
@audit_security_event("ORDER_CANCELLED")
@require_resource_ownership("order", "order_id")
def cancel_order_route(company_id: int, order_id: int):
    order = run_with_retry(
        lambda: order_service.cancel_order(order_id, company_id, actor_user_id=g.principal.id)
    )
    return jsonify(order.to_dict()), 200

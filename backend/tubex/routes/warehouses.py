# Overview: Flask API routes for warehouses; read-only, tenant-scoped.

# backend/tubex/routes/warehouses.py
from flask import Blueprint, g, jsonify

from ..decorators import company_rate_limit, require_auth, require_company_access, require_resource_ownership


warehouses_bp = Blueprint("warehouses", __name__, url_prefix="/api/companies/<int:company_id>/warehouses")


@warehouses_bp.get("/<int:warehouse_id>")
@require_auth
@require_company_access
@company_rate_limit()
@require_resource_ownership("warehouse", "warehouse_id")
def get_warehouse_route(company_id: int, warehouse_id: int):
    return jsonify(g.resource.to_dict()), 200

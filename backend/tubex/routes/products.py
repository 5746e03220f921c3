# Overview: Flask API routes for products; read-only, visible per company type.

# backend/tubex/routes/products.py
from flask import Blueprint, g, jsonify

from ..decorators import company_rate_limit, require_auth, require_company_access, require_resource_ownership


products_bp = Blueprint("products", __name__, url_prefix="/api/companies/<int:company_id>/products")


@products_bp.get("/<int:product_id>")
@require_auth
@require_company_access
@company_rate_limit()
@require_resource_ownership("product", "product_id")
def get_product_route(company_id: int, product_id: int):
    """Suppliers see products they supply, dealers see products they carry."""
    return jsonify(g.resource.to_dict()), 200

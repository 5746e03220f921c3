# Overview: Flask API route for the per-company integrity report (admin only).

# backend/tubex/routes/integrity.py
from flask import Blueprint, jsonify

from ..decorators import (
    audit_security_event,
    company_rate_limit,
    require_auth,
    require_company_access,
    require_role,
)
from ..services.integrity_service import run_comprehensive_integrity_check
from ..services.store import Repositories


integrity_bp = Blueprint("integrity", __name__, url_prefix="/api/companies/<int:company_id>/integrity")


@integrity_bp.get("")
@require_auth
@require_company_access
@require_role("admin")
@company_rate_limit()
@audit_security_event("INTEGRITY_CHECK_RUN")
def integrity_report_route(company_id: int):
    report = run_comprehensive_integrity_check(Repositories.for_session(), company_id)
    return jsonify(report), 200

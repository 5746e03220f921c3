# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/tubex/routes/auth.py
"""
Authentication API routes

Login is scoped to a company: the same email may exist in several
companies, each with its own password.
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..services import auth_service, session_service
from ..services.security_service import record_request_event
from ..validation import PayloadPolicy, validate_payload


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")

LOGIN_POLICY = PayloadPolicy(
    fields={"company_id": "int", "email": "str", "password": "str"},
    required=frozenset({"company_id", "email", "password"}),
    max_lengths={"email": 255, "password": 255},
)


@auth_bp.post("/login")
def login_route():
    """
    Authenticate and create a session token.

    Request body: {"company_id": int, "email": str, "password": str}

    Returns:
        200: {"token", "user"}
        400: Invalid request
        401: Invalid credentials
    """
    data = validate_payload(request.get_json(silent=True), LOGIN_POLICY)

    user = auth_service.authenticate(data["email"], data["password"], data["company_id"])
    if user is None:
        record_request_event(
            "LOGIN_FAILED",
            success=False,
            reason="Invalid credentials",
            target_type="company",
            target_id=data["company_id"],
            details={"email": data["email"]},
        )
        return jsonify({"error": "Invalid credentials", "code": "AUTHENTICATION_REQUIRED"}), 401

    session, token = session_service.create_session(
        user_id=user.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )

    return jsonify({
        "token": token,
        "expires_at": session.expires_at.isoformat() + "Z",
        "user": user.to_dict(),
    }), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    token = request.headers["Authorization"].split(" ", 1)[1]
    session_service.revoke_session(token)
    record_request_event("LOGOUT", principal=g.principal)
    return jsonify({"status": "logged_out"}), 200

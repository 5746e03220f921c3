# Overview: Request decorators for API routes; authentication, tenant guard, throttling and audit.

from functools import wraps

from flask import current_app, g, jsonify, request

from .errors import AccessDenied, RateLimited
from .services import session_service
from .services.rate_limit_service import CompanyRateLimiter, build_store
from .services.security_service import record_request_event
from .services.tenant_service import TenantContext, get_current_context, get_guard


RATE_LIMITED_EVENT = "RATE_LIMITED"


def require_auth(f):
    """
    Require a bearer session and establish tenant context.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.principal: Principal(id, company_id, role, email)
    - g.tenant: TenantContext for the access guard
    - g.session_context: The full SessionContext object

    Returns 401 when the header is missing or the session is invalid.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required", "code": "AUTHENTICATION_REQUIRED"}), 401

        token = auth_header.split(" ", 1)[1]
        context = session_service.validate_session(token)

        if not context:
            return jsonify({"error": "Invalid or expired token", "code": "AUTHENTICATION_REQUIRED"}), 401

        g.current_user = context.user
        g.principal = context.principal
        g.tenant = TenantContext(principal=context.principal)
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_company_access(f):
    """
    Require that the route's <company_id> is the principal's company.

    Must run after @require_auth.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        get_guard().validate_company_access(get_current_context(), kwargs.get("company_id"))
        return f(*args, **kwargs)

    return decorated_function


def require_resource_ownership(resource_type: str, id_arg: str):
    """
    Load the resource named by the route argument `id_arg` and require that
    the tenant owns it. The loaded object is exposed as g.resource.

    Must run after @require_company_access.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            g.resource = get_guard().validate_resource_ownership(
                resource_type,
                kwargs.get(id_arg),
                getattr(g, "tenant", None),
            )
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_role(*roles):
    """Require the principal's role to be one of `roles`."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            principal = get_current_context().principal
            if principal.role not in roles:
                record_request_event(
                    "ROLE_DENIED",
                    success=False,
                    reason=f"Requires one of: {', '.join(roles)}",
                )
                raise AccessDenied("Insufficient role", required_roles=list(roles))
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def _get_rate_limiter(max_requests: int, window_seconds: int) -> CompanyRateLimiter:
    limiters = current_app.extensions.setdefault("tubex.rate_limiters", {})
    key = (max_requests, window_seconds)
    limiter = limiters.get(key)
    if limiter is None:
        store = build_store(current_app.config.get("RATE_LIMIT_BACKEND", "memory"))
        limiter = limiters[key] = CompanyRateLimiter(max_requests, window_seconds, store=store)
    return limiter


def company_rate_limit(max_requests: int | None = None, window_seconds: int | None = None):
    """
    Fixed-window throttle per company.

    Defaults come from RATE_LIMIT_MAX_REQUESTS / RATE_LIMIT_WINDOW_SECONDS.
    Must run after @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            limiter = _get_rate_limiter(
                max_requests or current_app.config["RATE_LIMIT_MAX_REQUESTS"],
                window_seconds or current_app.config["RATE_LIMIT_WINDOW_SECONDS"],
            )
            context = get_current_context()
            decision = limiter.hit(context.company_id)
            if not decision.allowed:
                record_request_event(
                    RATE_LIMITED_EVENT,
                    success=False,
                    reason=f"Company {context.company_id} exceeded {limiter.max_requests} requests "
                           f"per {limiter.window_seconds}s",
                )
                raise RateLimited(
                    "Rate limit exceeded",
                    retry_after=int(decision.retry_after) + 1,
                )
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def audit_security_event(event: str, details: dict | None = None):
    """Record a security event for the request before the handler runs."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            record_request_event(
                event,
                success=True,
                details={**(details or {}), "route_args": {k: v for k, v in kwargs.items()}},
            )
            return f(*args, **kwargs)

        return decorated_function
    return decorator

# Overview: Security audit logging; writes append-only SecurityEvent rows with tenant context.

"""
Security Event Logging

Every cross-tenant denial, throttled request and audited route writes a
SecurityEvent row carrying the principal, company, role, client address,
target URL/method, timestamp and event details.

FAILURE POLICY:
record_request_event() never fails the request when the audit write fails,
unless AUDIT_FAIL_CLOSED is set. The failure itself is logged through the
app logger so it can be alerted on.
"""

from __future__ import annotations

from datetime import timedelta

from flask import current_app, g, has_request_context, request

from ..extensions import db
from ..models import SecurityEvent
from tubex.time_utils import utcnow


def log_security_event(
    *,
    event_type: str,
    success: bool,
    user_id: int | None = None,
    company_id: int | None = None,
    user_role: str | None = None,
    resource: str | None = None,
    action: str | None = None,
    target_type: str | None = None,
    target_id=None,
    reason: str | None = None,
    details: dict | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SecurityEvent:
    """Append a security event and commit it immediately."""
    event = SecurityEvent(
        event_type=event_type,
        success=success,
        user_id=user_id,
        company_id=company_id,
        user_role=user_role,
        resource=resource,
        action=action,
        target_type=target_type,
        target_id=str(target_id) if target_id is not None else None,
        reason=reason,
        details=details,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow(),
    )
    db.session.add(event)
    db.session.commit()
    return event


def record_request_event(
    event_type: str,
    *,
    success: bool = True,
    reason: str | None = None,
    target_type: str | None = None,
    target_id=None,
    details: dict | None = None,
    principal=None,
) -> SecurityEvent | None:
    """
    Audit the current request, pulling principal and client info from the
    request context.

    Returns None when the write failed and the failure was swallowed.
    """
    if principal is None and has_request_context():
        principal = getattr(g, "principal", None)

    fields = dict(
        event_type=event_type,
        success=success,
        reason=reason,
        target_type=target_type,
        target_id=target_id,
        details=details,
        user_id=principal.id if principal else None,
        company_id=principal.company_id if principal else None,
        user_role=principal.role if principal else None,
    )
    if has_request_context():
        fields.update(
            resource=request.url[:255],
            action=request.method,
            ip_address=request.remote_addr,
            user_agent=(request.headers.get("User-Agent") or "")[:512] or None,
        )

    try:
        return log_security_event(**fields)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to write security audit event %s", event_type)
        if current_app.config.get("AUDIT_FAIL_CLOSED"):
            raise
        return None


def list_company_events(company_id: int, *, event_type: str | None = None, limit: int = 100) -> list[SecurityEvent]:
    q = db.session.query(SecurityEvent).filter_by(company_id=company_id)
    if event_type:
        q = q.filter_by(event_type=event_type)
    return q.order_by(SecurityEvent.occurred_at.desc(), SecurityEvent.id.desc()).limit(limit).all()


def cleanup_security_events(retention_days: int) -> int:
    """Delete security events older than the retention window. Returns rows deleted."""
    if retention_days < 1:
        raise ValueError("retention_days must be >= 1")
    cutoff = utcnow() - timedelta(days=retention_days)
    deleted = (
        db.session.query(SecurityEvent)
        .filter(SecurityEvent.occurred_at < cutoff)
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return int(deleted or 0)

from __future__ import annotations

from ..extensions import db
from tubex.time_utils import to_utc_z


class SecurityEvent(db.Model):
    """
    Security event audit log with tenant context.

    IMMUTABLE: Never update or delete (except retention cleanup). Append-only.
    company_id and user_id are plain columns, not foreign keys, so events
    survive the deletion of the principal that produced them.
    """
    __tablename__ = "security_events"
    __table_args__ = (
        db.Index("ix_security_events_company_occurred", "company_id", "occurred_at"),
        db.Index("ix_security_events_user_type", "user_id", "event_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    company_id = db.Column(db.Integer, nullable=True, index=True)
    user_id = db.Column(db.Integer, nullable=True, index=True)
    user_role = db.Column(db.String(16), nullable=True)

    # CROSS_TENANT_ACCESS_DENIED, RATE_LIMITED, LOGIN_FAILED, INVENTORY_ADJUST, ...
    event_type = db.Column(db.String(64), nullable=False, index=True)
    resource = db.Column(db.String(255), nullable=True)  # request URL
    action = db.Column(db.String(16), nullable=True)     # HTTP method
    target_type = db.Column(db.String(32), nullable=True)
    target_id = db.Column(db.String(64), nullable=True)

    success = db.Column(db.Boolean, nullable=False, index=True)
    reason = db.Column(db.Text, nullable=True)
    details = db.Column(db.JSON, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "user_id": self.user_id,
            "user_role": self.user_role,
            "event_type": self.event_type,
            "resource": self.resource,
            "action": self.action,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "success": self.success,
            "reason": self.reason,
            "details": self.details,
            "ip_address": self.ip_address,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class RateLimitCounter(db.Model):
    """Fixed-window request counter per company, shared by all app instances."""
    __tablename__ = "rate_limit_counters"

    company_id = db.Column(db.Integer, primary_key=True, autoincrement=False)
    count = db.Column(db.Integer, nullable=False, default=0)
    window_resets_at = db.Column(db.DateTime(timezone=True), nullable=False)

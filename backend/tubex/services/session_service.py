# Overview: Service-layer operations for session tokens; resolves a bearer token to a tenant principal.

"""
Session Token Management

WHY: The access guard needs a trusted principal (user id, company id, role)
for every request. Sessions capture company_id at login and it never
changes for the session lifetime.

SECURITY FEATURES:
- 32-byte random tokens from secrets.token_hex
- Only the SHA-256 hash is stored
- Absolute and idle timeouts from SESSION_ABSOLUTE_TIMEOUT_HOURS and
  SESSION_IDLE_TIMEOUT_HOURS
- Revoked on logout, idle timeout, or when the user or company is
  deactivated
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..errors import AuthenticationRequired
from ..extensions import db
from ..models import Company, SessionToken, User
from tubex.time_utils import utcnow
from .tenant_service import Principal


@dataclass
class SessionContext:
    user: User
    session: SessionToken
    principal: Principal


def _absolute_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_ABSOLUTE_TIMEOUT_HOURS", 24))


def _idle_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_IDLE_TIMEOUT_HOURS", 2))


def generate_token() -> str:
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    # Tokens are high-entropy, so a fast hash is enough
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Create a session for a user of an active company.

    Returns (session_record, plaintext_token); only the hash is stored.
    """
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        raise AuthenticationRequired("User not found or inactive")

    company = db.session.get(Company, user.company_id)
    if company is None or not company.is_active:
        raise AuthenticationRequired("Company is not active")

    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user.id,
        company_id=user.company_id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + _absolute_timeout(),
        user_agent=user_agent[:512] if user_agent else None,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a plaintext token to its SessionContext.

    Returns None when the token is unknown, revoked or expired, when the user
    has been deactivated since login, or when the company row is gone. Idle,
    deactivation and deletion cases revoke the session as a side effect.

    A company that is merely not active keeps its sessions; the access guard
    rejects its requests with CompanyInactive until it is reactivated.
    """
    now = utcnow()
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if session is None:
        return None

    if session.expires_at < now:
        return None

    if now - session.last_used_at > _idle_timeout():
        _revoke(session, "Idle timeout")
        return None

    user = session.user
    if user is None or not user.is_active:
        _revoke(session, "User account deactivated")
        return None

    company = session.company
    if company is None:
        _revoke(session, "Company deleted")
        return None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(
        user=user,
        session=session,
        principal=Principal(
            id=user.id,
            company_id=session.company_id,
            role=user.role,
            email=user.email,
        ),
    )


def revoke_session(token: str, reason: str = "User logout") -> bool:
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()
    if session is None:
        return False
    _revoke(session, reason)
    return True


def revoke_all_user_sessions(user_id: int, reason: str = "Revoke all sessions") -> int:
    """Revoke every active session of a user. Returns the count."""
    now = utcnow()
    sessions = db.session.query(SessionToken).filter_by(user_id=user_id, is_revoked=False).all()
    for session in sessions:
        session.is_revoked = True
        session.revoked_at = now
        session.revoked_reason = reason
    db.session.commit()
    return len(sessions)

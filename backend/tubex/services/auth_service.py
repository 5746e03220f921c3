# Overview: Service-layer operations for auth; password hashing, user creation and credential checks.

"""
Authentication Service with Multi-Tenant Support

WHY: Every action must be attributable to a user of exactly one company.

MULTI-TENANT: Users belong to exactly one company (company_id). Email
uniqueness is company-scoped, so login is scoped by company too.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters with upper, lower, digit and special char
- Session tokens managed separately (see session_service.py)
- Authentication fails for users of non-active companies
"""

import re

import bcrypt
from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import Company, User
from ..models.auth import USER_ROLES
from tubex.time_utils import utcnow


class PasswordValidationError(ValidationError):
    """Raised when a password doesn't meet strength requirements."""
    code = "WEAK_PASSWORD"


def validate_password_strength(password: str) -> None:
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Timing-safe bcrypt check.

    A malformed stored hash is treated as a mismatch.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(email: str, password: str, company_id: int, role: str = "staff") -> User:
    """
    Create a user in a company.

    Raises ValidationError when the company is missing, the role is unknown
    or the email is taken within the company; PasswordValidationError for
    weak passwords.
    """
    if role not in USER_ROLES:
        raise ValidationError(f"Unknown role: {role}")

    company = db.session.get(Company, company_id)
    if company is None:
        raise ValidationError("Company not found")

    email = email.strip().lower()
    existing = db.session.query(User).filter_by(company_id=company_id, email=email).first()
    if existing:
        raise ValidationError("Email already exists in this company")

    user = User(
        company_id=company_id,
        email=email,
        password_hash=hash_password(password),
        role=role,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str, company_id: int) -> User | None:
    """
    Check credentials within one company.

    Returns the User, or None for unknown email, wrong password, inactive
    user or non-active company. Stamps last_login_at on success.
    """
    user = db.session.query(User).filter(
        User.company_id == company_id,
        User.email == email.strip().lower(),
        User.is_active.is_(True),
    ).first()
    if user is None:
        return None

    if not verify_password(password, user.password_hash):
        return None

    company = db.session.get(Company, user.company_id)
    if company is None or not company.is_active:
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user

# Overview: Typed error taxonomy shared by the access guard, inventory engine and HTTP layer.

"""
Tubex error taxonomy.

Every domain failure is raised as a TubexError subclass carrying:
- code: stable machine-readable identifier (e.g. "INSUFFICIENT_STOCK")
- status_code: HTTP status the boundary maps it to
- details: extra JSON-safe context for the client (never cross-tenant data)

Only TransactionConflict is retryable. Everything else needs caller or user
intervention.
"""

from __future__ import annotations

from decimal import Decimal


class TubexError(Exception):
    code = "ERROR"
    status_code = 500
    retryable = False

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.message, "code": self.code}
        for key, value in self.details.items():
            body[key] = str(value) if isinstance(value, Decimal) else value
        if self.retryable:
            body["retryable"] = True
        return body


class ValidationError(TubexError, ValueError):
    """400-level input problem."""
    code = "VALIDATION_ERROR"
    status_code = 400


class AuthenticationRequired(TubexError):
    code = "AUTHENTICATION_REQUIRED"
    status_code = 401


class NotFound(TubexError):
    """Resource absent, or not visible to the requesting tenant."""
    code = "NOT_FOUND"
    status_code = 404


class AccessDenied(TubexError):
    """Resource exists but belongs to another tenant or needs another role."""
    code = "ACCESS_DENIED"
    status_code = 403


class CompanyInactive(TubexError):
    code = "COMPANY_INACTIVE"
    status_code = 403


class InsufficientStock(TubexError):
    code = "INSUFFICIENT_STOCK"
    status_code = 400

    def __init__(self, message: str, *, available, requested, **details):
        super().__init__(message, available=available, requested=requested, **details)
        self.available = available
        self.requested = requested


class InsufficientInventory(InsufficientStock):
    code = "INSUFFICIENT_INVENTORY"


class Expired(TubexError):
    code = "BATCH_EXPIRED"
    status_code = 400


class DuplicateBatchNumber(TubexError):
    code = "DUPLICATE_BATCH_NUMBER"
    status_code = 409


class TransactionConflict(TubexError):
    """Concurrent write lost a lock/version race. Safe to retry."""
    code = "TRANSACTION_CONFLICT"
    status_code = 409
    retryable = True


class RateLimited(TubexError):
    code = "RATE_LIMITED"
    status_code = 429


class IntegrityViolation(TubexError):
    """Raised by point integrity checks when a relationship is inconsistent."""
    code = "INTEGRITY_VIOLATION"
    status_code = 409


class InternalConsistencyViolation(TubexError):
    """A guard-ordering contract was violated by the calling code."""
    code = "INTERNAL_CONSISTENCY_VIOLATION"
    status_code = 500

"""
Ledger error taxonomy.

Every business-rule failure raised by the services is a LedgerError. Routes
render them verbatim with their status code; nothing here is retried except
ConcurrencyConflict, which the transaction helper raises only after its retry
budget is spent.

Each error carries a `details` dict naming the account or leg that failed and
the figures involved, so callers never get a generic failure.
"""

from __future__ import annotations

from decimal import Decimal


def _jsonable(value):
    if isinstance(value, Decimal):
        return str(value)
    return value


class LedgerError(Exception):
    """Base class for business-rule failures."""

    code = "LEDGER_ERROR"
    status_code = 400

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.code,
            "details": {k: _jsonable(v) for k, v in self.details.items()},
        }


class ValidationError(LedgerError):
    """400-level input problem."""
    code = "VALIDATION_ERROR"


class InvalidAmount(LedgerError):
    code = "INVALID_AMOUNT"


class AccountNotFound(LedgerError):
    code = "ACCOUNT_NOT_FOUND"
    status_code = 404


class SessionNotFound(LedgerError):
    code = "SESSION_NOT_FOUND"
    status_code = 404


class AccountInactive(LedgerError):
    code = "ACCOUNT_INACTIVE"
    status_code = 409


class InsufficientCredit(LedgerError):
    code = "INSUFFICIENT_CREDIT"
    status_code = 409


class InsufficientFunds(LedgerError):
    code = "INSUFFICIENT_FUNDS"
    status_code = 409


class UnbalancedPayment(LedgerError):
    code = "UNBALANCED_PAYMENT"


class SessionAlreadyOpen(LedgerError):
    code = "SESSION_ALREADY_OPEN"
    status_code = 409


class SessionAlreadyClosed(LedgerError):
    code = "SESSION_ALREADY_CLOSED"
    status_code = 409


class AccountHasMovements(LedgerError):
    """Accounts are never hard-deleted while a movement references them."""
    code = "ACCOUNT_HAS_MOVEMENTS"
    status_code = 409


class ConcurrencyConflict(LedgerError):
    code = "CONCURRENCY_CONFLICT"
    status_code = 409


class WithdrawalLimitExceeded(LedgerError):
    """The caller's role may not take this much cash out of a drawer."""
    code = "WITHDRAWAL_LIMIT_EXCEEDED"
    status_code = 403

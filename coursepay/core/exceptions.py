# coursepay/core/exceptions.py
"""Billing error taxonomy.

Services raise these internally; public service operations convert them into
result objects with ``success=False`` so API handlers and batch jobs branch on
``success`` instead of catching exceptions.
"""


class BillingError(Exception):
    """Base class for payment and subscription errors"""
    error_code = "BILLING_ERROR"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BillingError):
    """Malformed payment or subscription request"""
    error_code = "VALIDATION_ERROR"
    status_code = 422


class GatewayError(BillingError):
    """Gateway unconfigured, unreachable or rejected the call"""
    error_code = "GATEWAY_ERROR"
    status_code = 502


class InvalidSignature(BillingError):
    """Webhook signature did not verify"""
    error_code = "INVALID_SIGNATURE"


class NotFoundError(BillingError):
    error_code = "NOT_FOUND"
    status_code = 404


class InvalidStateError(BillingError):
    """Operation not allowed in the record's current state"""
    error_code = "INVALID_STATE"
    status_code = 409


class InsufficientBalance(BillingError):
    error_code = "INSUFFICIENT_BALANCE"
    status_code = 402


class LedgerError(BillingError):
    """Atomic ledger operation did not apply in full"""
    error_code = "LEDGER_ERROR"
    status_code = 409


class PersistenceError(BillingError):
    """Write to the store failed"""
    error_code = "PERSISTENCE_ERROR"
    status_code = 500


def status_for_error_code(error_code: str | None) -> int:
    """HTTP status for a result's ``error_code``; unknown codes are 400."""
    for cls in BillingError.__subclasses__():
        if cls.error_code == error_code:
            return cls.status_code
    return BillingError.status_code

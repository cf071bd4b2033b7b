"""Typed failures raised by the quota faucet services."""

from __future__ import annotations

from decimal import Decimal


class FaucetError(Exception):
    """Base class for every failure reported to faucet callers."""

    code = "faucet_error"
    http_status = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidAmount(FaucetError):
    """Amount or limit is not a finite positive number."""

    code = "invalid_amount"
    http_status = 400


class RequestLimitExceeded(FaucetError):
    """Single-call amount is above the account's per-call cap."""

    code = "request_limit_exceeded"
    http_status = 403

    def __init__(self, amount: Decimal, request_limit: Decimal):
        super().__init__(f"Requested {amount} exceeds request limit {request_limit}")
        self.amount = amount
        self.request_limit = request_limit


class AccountLimitExceeded(FaucetError):
    """Cumulative spend would exceed the account's cap."""

    code = "account_limit_exceeded"
    http_status = 403

    def __init__(self, amount: Decimal, remaining: Decimal):
        super().__init__(f"Requested {amount} exceeds remaining account limit {remaining}")
        self.amount = amount
        self.remaining = remaining


class Unauthorized(FaucetError):
    """Missing or insufficiently scoped capability grant."""

    code = "unauthorized"
    http_status = 401


class LedgerTransferFailed(FaucetError):
    """The external ledger rejected the transfer."""

    code = "ledger_transfer_failed"
    http_status = 502


class InvalidIdempotencyKey(FaucetError):
    """Idempotency key is not 8-255 characters of letters, digits, '-' or '_'."""

    code = "invalid_idempotency_key"
    http_status = 400


class IdempotencyConflict(FaucetError):
    """An idempotency key was reused with different request parameters."""

    code = "idempotency_conflict"
    http_status = 409


__all__ = [
    "FaucetError",
    "InvalidAmount",
    "RequestLimitExceeded",
    "AccountLimitExceeded",
    "Unauthorized",
    "LedgerTransferFailed",
    "InvalidIdempotencyKey",
    "IdempotencyConflict",
]

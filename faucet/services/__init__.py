"""Services module initialization."""

from __future__ import annotations

from .authorization import (
    ADMIN_LIMIT,
    DISBURSE,
    TRANSFER,
    AuthPolicy,
    CapabilityAuthority,
    CapabilityGrant,
    capability_authority,
)
from .errors import (
    AccountLimitExceeded,
    FaucetError,
    IdempotencyConflict,
    InvalidAmount,
    InvalidIdempotencyKey,
    LedgerTransferFailed,
    RequestLimitExceeded,
    Unauthorized,
)
from .ledger_client import BaseLedgerClient, InMemoryLedger, get_ledger_client
from .limit_ledger import AccountQuota, GlobalPolicy, LimitLedger
from .quota_engine import AccountLocks, QuotaEngine, account_locks, idempotency_locks

__all__ = [
    # Authorization
    "ADMIN_LIMIT",
    "DISBURSE",
    "TRANSFER",
    "AuthPolicy",
    "CapabilityAuthority",
    "CapabilityGrant",
    "capability_authority",
    # Errors
    "FaucetError",
    "InvalidAmount",
    "RequestLimitExceeded",
    "AccountLimitExceeded",
    "Unauthorized",
    "LedgerTransferFailed",
    "InvalidIdempotencyKey",
    "IdempotencyConflict",
    # Ledgers
    "BaseLedgerClient",
    "InMemoryLedger",
    "get_ledger_client",
    "AccountQuota",
    "GlobalPolicy",
    "LimitLedger",
    # Engine
    "AccountLocks",
    "QuotaEngine",
    "account_locks",
    "idempotency_locks",
]

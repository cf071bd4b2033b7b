"""Type definitions for services module."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal, NotRequired, TypedDict


class TransactionResultDict(TypedDict):
    """Result of a ledger transfer."""

    success: bool
    tx_hash: NotRequired[str]
    ledger_index: NotRequired[int]
    fee: NotRequired[Decimal]  # Use Decimal for financial precision
    amount: NotRequired[Decimal]
    error: NotRequired[str]


class TransferReceiptDict(TypedDict):
    """Receipt returned by a committed disbursement or return."""

    direction: Literal["disburse", "return"]
    account: str
    amount: Decimal
    tx_hash: str | None
    ledger_index: int | None
    spent: Decimal
    replayed: bool


class LimitsDict(TypedDict):
    """Public view of an account's limits."""

    account_limit: Decimal
    request_limit: Decimal
    account_limit_remaining: Decimal


class PolicyDict(TypedDict):
    """Global default limits."""

    default_request_limit: Decimal
    default_account_limit: Decimal


class TransferHistoryItemDict(TypedDict):
    """Single entry in an account's transfer log."""

    id: int
    direction: str
    amount: Decimal
    tx_hash: str | None
    status: Literal["confirmed", "failed"]
    error: str | None
    timestamp: datetime


class FaucetStatusDict(TypedDict):
    """Faucet account and policy summary."""

    faucet_account: str
    balance: Decimal | None
    policy: PolicyDict

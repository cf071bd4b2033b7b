"""Pydantic request and response models."""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from faucet.constants import MAX_DECIMAL_PLACES, MIN_DROP
from faucet.services.authorization import CAPABILITIES


def validate_precision(v: Decimal | None) -> Decimal | None:
    """Reject amounts finer than one drop.

    Sign is checked by the quota engine so it can report InvalidAmount.
    """
    if v is None:
        return v
    if not v.is_finite():
        raise ValueError("Amount must be a finite number")
    try:
        quantized = v.quantize(MIN_DROP)
    except InvalidOperation as e:
        raise ValueError("Amount is out of range") from e
    if quantized != v:
        raise ValueError(f"Amounts support at most {MAX_DECIMAL_PLACES} decimal places")
    return v


class AccountModel(BaseModel):
    """Base for bodies naming a target account."""

    model_config = ConfigDict(str_strip_whitespace=True)

    account: str = Field(..., min_length=1, max_length=255)


class AuthPolicyModel(BaseModel):
    """Recipient authorization proof: key set plus signature threshold."""

    keys: list[str] = Field(..., min_length=1)
    threshold: int = Field(1, ge=1)

    @model_validator(mode="after")
    def validate_threshold(self) -> "AuthPolicyModel":
        if self.threshold > len(self.keys):
            raise ValueError("Threshold cannot exceed the number of keys")
        return self


class FaucetRequest(AccountModel):
    """Disbursement request."""

    amount: Decimal
    auth_policy: AuthPolicyModel | None = None

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        return validate_precision(v)


class ReturnRequest(AccountModel):
    """Return of funds to the faucet."""

    amount: Decimal

    @field_validator("amount")
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        return validate_precision(v)


class TransferReceiptResponse(BaseModel):
    """Receipt of a committed transfer."""

    direction: Literal["disburse", "return"]
    account: str
    amount: Decimal
    tx_hash: str | None = None
    ledger_index: int | None = None
    spent: Decimal
    replayed: bool = False


class LimitUpdate(BaseModel):
    """New value for a per-account limit."""

    limit: Decimal

    @field_validator("limit")
    @classmethod
    def validate_limit(cls, v: Decimal) -> Decimal:
        return validate_precision(v)


class LimitsResponse(BaseModel):
    """Per-account limits."""

    account: str
    account_limit: Decimal
    request_limit: Decimal
    account_limit_remaining: Decimal


class PolicyUpdate(BaseModel):
    """New global defaults; omitted fields keep their value."""

    default_request_limit: Decimal | None = None
    default_account_limit: Decimal | None = None

    @field_validator("default_request_limit", "default_account_limit")
    @classmethod
    def validate_limits(cls, v: Decimal | None) -> Decimal | None:
        return validate_precision(v)


class PolicyResponse(BaseModel):
    """Global default limits."""

    default_request_limit: Decimal
    default_account_limit: Decimal


class CapabilityRequest(BaseModel):
    """Request to mint a capability token."""

    model_config = ConfigDict(str_strip_whitespace=True)

    capability: str
    source: str | None = None
    target: str | None = None
    max_amount: Decimal | None = None
    ttl_seconds: int | None = Field(None, ge=1, le=86400)

    @field_validator("capability")
    @classmethod
    def validate_capability(cls, v: str) -> str:
        if v not in CAPABILITIES:
            raise ValueError(f"Unknown capability, expected one of {', '.join(CAPABILITIES)}")
        return v

    @field_validator("max_amount")
    @classmethod
    def validate_max_amount(cls, v: Decimal | None) -> Decimal | None:
        return validate_precision(v)


class CapabilityResponse(BaseModel):
    """Minted capability token."""

    token: str
    capability: str
    source: str | None = None
    target: str | None = None
    max_amount: Decimal | None = None
    expires_at: datetime | None = None


class TransferHistoryItem(BaseModel):
    """Transfer log entry."""

    id: int
    direction: str
    amount: Decimal
    tx_hash: str | None = None
    status: str
    error: str | None = None
    timestamp: datetime


class TransferHistoryResponse(BaseModel):
    """Transfer log page."""

    transfers: list[TransferHistoryItem]
    total_count: int


class FaucetStatusResponse(BaseModel):
    """Faucet account, balance and policy."""

    faucet_account: str
    balance: Decimal | None = None
    policy: PolicyResponse


class HealthCheckResponse(BaseModel):
    """Health check response model."""

    status: str
    service: str
    version: str
    database: bool
    ledger: bool

"""SQLAlchemy models for the quota faucet."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()
# Base class for all models

# Amounts are stored with the ledger's precision (6 decimal places for XRP)
Amount = Numeric(20, 6, asdecimal=True)


class FaucetPolicy(Base):
    """Singleton row holding the global default limits."""

    __tablename__ = "faucet_policy"

    id = Column(Integer, primary_key=True)
    default_request_limit = Column(Amount, nullable=False)
    default_account_limit = Column(Amount, nullable=False)

    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<FaucetPolicy(request_limit={self.default_request_limit}, "
            f"account_limit={self.default_account_limit})>"
        )


class AccountQuotaRecord(Base):
    """Per-account quota record.

    Limit columns are NULL when the account follows the global policy.
    """

    __tablename__ = "account_quotas"

    id = Column(Integer, primary_key=True)
    account = Column(String(255), unique=True, nullable=False, index=True)

    account_limit = Column(Amount, nullable=True, default=None)
    request_limit = Column(Amount, nullable=True, default=None)
    spent = Column(Amount, nullable=False, default=0)

    # Timestamps
    created_at = Column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<AccountQuotaRecord(account={self.account}, spent={self.spent})>"


class FaucetTransfer(Base):
    """Audit log of disbursements and returns."""

    __tablename__ = "faucet_transfers"

    id = Column(Integer, primary_key=True)

    direction = Column(String(20), nullable=False)  # disburse, return
    account = Column(String(255), nullable=False, index=True)
    amount = Column(Amount, nullable=False)

    # Set only on confirmed disbursements
    idempotency_key = Column(String(255), unique=True, index=True, nullable=True, default=None)
    request_hash = Column(String(64), nullable=True, default=None)

    # Ledger details
    tx_hash = Column(String(255), nullable=True, default=None)
    ledger_index = Column(Integer, nullable=True, default=None)

    # Status tracking
    status = Column(String(50), default="confirmed", nullable=False)
    error_message = Column(Text, nullable=True, default=None)
    spent_after = Column(Amount, nullable=True, default=None)

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        index=True,
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<FaucetTransfer(id={self.id}, direction={self.direction}, "
            f"account={self.account}, amount={self.amount}, status={self.status})>"
        )


__all__ = [
    "Base",
    "FaucetPolicy",
    "AccountQuotaRecord",
    "FaucetTransfer",
]

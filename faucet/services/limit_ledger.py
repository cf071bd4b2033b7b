"""Limit ledger: keyed store of per-account quota records."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session

from ..config import settings
from ..database.models import AccountQuotaRecord, FaucetPolicy

logger = logging.getLogger(__name__)

POLICY_ROW_ID = 1


@dataclass(frozen=True)
class GlobalPolicy:
    """Default limits for accounts without an override."""

    default_request_limit: Decimal
    default_account_limit: Decimal

    @classmethod
    def from_settings(cls) -> GlobalPolicy:
        return cls(
            default_request_limit=settings.DEFAULT_REQUEST_LIMIT,
            default_account_limit=settings.DEFAULT_ACCOUNT_LIMIT,
        )


@dataclass
class AccountQuota:
    """An account's quota, resolved against the global policy."""

    account: str
    policy: GlobalPolicy
    spent: Decimal = Decimal("0")
    account_limit_override: Decimal | None = None
    request_limit_override: Decimal | None = None
    stored: bool = False

    @property
    def account_limit(self) -> Decimal:
        if self.account_limit_override is not None:
            return self.account_limit_override
        return self.policy.default_account_limit

    @property
    def request_limit(self) -> Decimal:
        if self.request_limit_override is not None:
            return self.request_limit_override
        return self.policy.default_request_limit

    @property
    def remaining(self) -> Decimal:
        return self.account_limit - self.spent


class LimitLedger:
    """Reads and writes quota state. No authorization logic lives here.

    ``put`` only flushes; the caller owns the transaction and commits once
    the matching ledger transfer has gone through.
    """

    def __init__(self, db: Session, seed_policy: GlobalPolicy | None = None) -> None:
        self.db = db
        self.seed_policy = seed_policy or GlobalPolicy.from_settings()

    def get_policy(self) -> GlobalPolicy:
        """Current global policy, falling back to the configured seed values."""
        row = self.db.get(FaucetPolicy, POLICY_ROW_ID)
        if row is None:
            return self.seed_policy
        return GlobalPolicy(
            default_request_limit=Decimal(row.default_request_limit),
            default_account_limit=Decimal(row.default_account_limit),
        )

    def set_policy(self, policy: GlobalPolicy) -> None:
        row = self.db.get(FaucetPolicy, POLICY_ROW_ID)
        if row is None:
            row = FaucetPolicy(id=POLICY_ROW_ID)
            self.db.add(row)
        row.default_request_limit = policy.default_request_limit
        row.default_account_limit = policy.default_account_limit
        self.db.flush()

    def get(self, account: str, for_update: bool = False) -> AccountQuota:
        """Return the stored quota, or a fresh one built from the policy.

        A miss does not write anything.
        """
        query = self.db.query(AccountQuotaRecord).filter(AccountQuotaRecord.account == account)
        if for_update:
            query = query.with_for_update()
        record = query.first()
        policy = self.get_policy()

        if record is None:
            return AccountQuota(account=account, policy=policy)

        return AccountQuota(
            account=account,
            policy=policy,
            spent=Decimal(record.spent),
            account_limit_override=(
                Decimal(record.account_limit) if record.account_limit is not None else None
            ),
            request_limit_override=(
                Decimal(record.request_limit) if record.request_limit is not None else None
            ),
            stored=True,
        )

    def put(self, account: str, quota: AccountQuota) -> None:
        """Replace the stored record for ``account``."""
        record = (
            self.db.query(AccountQuotaRecord).filter(AccountQuotaRecord.account == account).first()
        )
        if record is None:
            record = AccountQuotaRecord(account=account)
            self.db.add(record)
            logger.debug(f"Creating quota record for {account}")

        record.spent = quota.spent
        record.account_limit = quota.account_limit_override
        record.request_limit = quota.request_limit_override
        self.db.flush()
        quota.stored = True

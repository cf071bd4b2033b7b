"""Quota engine: admission control and limit administration for the faucet."""

from __future__ import annotations

import asyncio
import logging
import weakref
from contextlib import nullcontext
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..constants import MAX_DECIMAL_PLACES, MIN_DROP
from ..database.models import FaucetTransfer
from ..utils.idempotency import IdempotencyKey
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
    IdempotencyConflict,
    InvalidAmount,
    InvalidIdempotencyKey,
    LedgerTransferFailed,
    RequestLimitExceeded,
)
from .ledger_client import BaseLedgerClient
from .limit_ledger import AccountQuota, GlobalPolicy, LimitLedger
from .types import (
    FaucetStatusDict,
    LimitsDict,
    PolicyDict,
    TransferHistoryItemDict,
    TransferReceiptDict,
)

logger = logging.getLogger(__name__)


class AccountLocks:
    """One asyncio lock per key; operations on one key never interleave.

    Entries live only while some coroutine holds or awaits the lock.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def get(self, key: str) -> asyncio.Lock:
        return self._locks.setdefault(key, asyncio.Lock())

    def __len__(self) -> int:
        return len(self._locks)


# Shared by every engine in the process
account_locks = AccountLocks()
idempotency_locks = AccountLocks()


def to_amount(value: Any, what: str = "Amount") -> Decimal:
    """Coerce ``value`` to a finite positive Decimal or raise InvalidAmount."""
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvalidAmount(f"{what} is not a number: {value!r}") from e

    if not amount.is_finite() or amount <= 0:
        raise InvalidAmount(f"{what} must be positive, got {value}")
    try:
        whole_drops = amount.quantize(MIN_DROP) == amount
    except InvalidOperation as e:
        raise InvalidAmount(f"{what} is out of range: {value}") from e
    if not whole_drops:
        raise InvalidAmount(f"{what} supports at most {MAX_DECIMAL_PLACES} decimal places")
    return amount


class QuotaEngine:
    """Disburses and accepts funds while enforcing per-account quotas.

    Every mutating operation is one transaction: quota changes are flushed
    to the session and committed only after the ledger transfer succeeded.
    """

    def __init__(
        self,
        db: Session,
        ledger: BaseLedgerClient,
        authority: CapabilityAuthority | None = None,
        locks: AccountLocks | None = None,
        key_locks: AccountLocks | None = None,
        seed_policy: GlobalPolicy | None = None,
    ) -> None:
        self.db = db
        self.ledger = ledger
        self.limits = LimitLedger(db, seed_policy)
        self.authority = authority or capability_authority
        self.locks = locks if locks is not None else account_locks
        self.key_locks = key_locks if key_locks is not None else idempotency_locks

    @property
    def faucet_account(self) -> str:
        return self.ledger.faucet_account

    # ------------------------------------------------------------------
    # Funds movement
    # ------------------------------------------------------------------

    async def request(
        self,
        account: str,
        recipient_auth_proof: AuthPolicy | None,
        amount: Decimal,
        grant: CapabilityGrant | None,
        idempotency_key: str | None = None,
    ) -> TransferReceiptDict:
        """Disburse ``amount`` from the faucet to ``account``.

        Raises
        ------
            InvalidAmount: amount is not positive
            Unauthorized: grant does not cover (faucet, account, amount)
            RequestLimitExceeded: amount is above the per-call cap
            AccountLimitExceeded: spent + amount is above the account cap
            LedgerTransferFailed: the ledger rejected the transfer
            InvalidIdempotencyKey: malformed idempotency key
            IdempotencyConflict: key reused with different parameters

        """
        amount = to_amount(amount)
        self.authority.require_capability(
            grant, DISBURSE, source=self.faucet_account, target=account, amount=amount
        )
        if idempotency_key is not None and not IdempotencyKey.validate(idempotency_key):
            raise InvalidIdempotencyKey("Invalid idempotency key format")

        # A key is checked and consumed under its own lock, whatever the account
        key_lock = self.key_locks.get(idempotency_key) if idempotency_key else nullcontext()
        async with key_lock, self.locks.get(account):
            try:
                if idempotency_key is not None:
                    replay = self._replay(idempotency_key, account, amount)
                    if replay is not None:
                        return replay

                quota = self.limits.get(account, for_update=True)

                if amount > quota.request_limit:
                    raise RequestLimitExceeded(amount, quota.request_limit)
                if quota.spent + amount > quota.account_limit:
                    raise AccountLimitExceeded(amount, quota.remaining)

                try:
                    await self.ledger.create_or_get_account(account, recipient_auth_proof)
                except ValueError as e:
                    raise self._record_failure("disburse", account, amount, str(e)) from e

                result = await self.ledger.transfer(self.faucet_account, account, amount, grant)
                if not result["success"]:
                    raise self._record_failure(
                        "disburse", account, amount, result.get("error", "Transfer failed")
                    )

                quota.spent += amount
                self.limits.put(account, quota)
                self._record_transfer(
                    "disburse",
                    quota,
                    amount,
                    result,
                    idempotency_key=idempotency_key,
                    request_hash=(
                        IdempotencyKey.request_hash(account, amount) if idempotency_key else None
                    ),
                )
                self._commit_after_transfer(account, result)
            except Exception:
                self.db.rollback()
                raise

        logger.info(f"Disbursed {amount} to {account} (spent {quota.spent}/{quota.account_limit})")
        return self._receipt("disburse", quota, amount, result)

    async def return_funds(
        self,
        account: str,
        amount: Decimal,
        grant: CapabilityGrant | None,
    ) -> TransferReceiptDict:
        """Move ``amount`` from ``account`` back to the faucet.

        ``spent`` drops by ``min(amount, spent)``: it floors at zero and the
        full amount still reaches the faucet.
        """
        amount = to_amount(amount)
        self.authority.require_capability(
            grant, TRANSFER, source=account, target=self.faucet_account, amount=amount
        )

        async with self.locks.get(account):
            try:
                quota = self.limits.get(account, for_update=True)

                result = await self.ledger.transfer(account, self.faucet_account, amount, grant)
                if not result["success"]:
                    raise self._record_failure(
                        "return", account, amount, result.get("error", "Transfer failed")
                    )

                quota.spent = max(quota.spent - amount, Decimal("0"))
                self.limits.put(account, quota)
                self._record_transfer("return", quota, amount, result)
                self._commit_after_transfer(account, result)
            except Exception:
                self.db.rollback()
                raise

        logger.info(f"Returned {amount} from {account} (spent {quota.spent}/{quota.account_limit})")
        return self._receipt("return", quota, amount, result)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    async def set_request_limit(
        self, account: str, new_limit: Decimal, grant: CapabilityGrant | None
    ) -> LimitsDict:
        """Override the per-call cap of ``account``."""
        new_limit = to_amount(new_limit, "Request limit")
        self.authority.require_capability(grant, ADMIN_LIMIT, target=account)

        async with self.locks.get(account):
            try:
                quota = self.limits.get(account, for_update=True)
                quota.request_limit_override = new_limit
                self.limits.put(account, quota)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        logger.info(f"Request limit for {account} set to {new_limit}")
        return self._limits_view(quota)

    async def set_account_limit(
        self, account: str, new_limit: Decimal, grant: CapabilityGrant | None
    ) -> LimitsDict:
        """Override the cumulative cap of ``account``.

        A cap below what the account already holds is rejected.
        """
        new_limit = to_amount(new_limit, "Account limit")
        self.authority.require_capability(grant, ADMIN_LIMIT, target=account)

        async with self.locks.get(account):
            try:
                quota = self.limits.get(account, for_update=True)
                if new_limit < quota.spent:
                    raise InvalidAmount(
                        f"Account limit {new_limit} is below current spend {quota.spent}"
                    )
                quota.account_limit_override = new_limit
                self.limits.put(account, quota)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        logger.info(f"Account limit for {account} set to {new_limit}")
        return self._limits_view(quota)

    def set_default_limits(
        self,
        grant: CapabilityGrant | None,
        request_limit: Decimal | None = None,
        account_limit: Decimal | None = None,
    ) -> PolicyDict:
        """Raise the global defaults.

        Defaults may only go up: lowering the default account limit could
        push accounts without an override over their cap.
        """
        if request_limit is None and account_limit is None:
            raise InvalidAmount("Nothing to update")
        self.authority.require_capability(grant, ADMIN_LIMIT, target=None)

        try:
            current = self.limits.get_policy()
            policy = GlobalPolicy(
                default_request_limit=(
                    to_amount(request_limit, "Default request limit")
                    if request_limit is not None
                    else current.default_request_limit
                ),
                default_account_limit=(
                    to_amount(account_limit, "Default account limit")
                    if account_limit is not None
                    else current.default_account_limit
                ),
            )
            if policy.default_request_limit < current.default_request_limit:
                raise InvalidAmount("Default request limit can only be raised")
            if policy.default_account_limit < current.default_account_limit:
                raise InvalidAmount("Default account limit can only be raised")

            self.limits.set_policy(policy)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Default limits set to request={policy.default_request_limit}, "
            f"account={policy.default_account_limit}"
        )
        return self._policy_view(policy)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_limits(self, account: str) -> LimitsDict:
        """Public view of an account's limits. No side effects."""
        return self._limits_view(self.limits.get(account))

    def get_policy(self) -> PolicyDict:
        return self._policy_view(self.limits.get_policy())

    def list_transfers(
        self, account: str, limit: int = 10, offset: int = 0
    ) -> list[TransferHistoryItemDict]:
        """Transfer log for ``account``, newest first."""
        transfers = (
            self.db.query(FaucetTransfer)
            .filter(FaucetTransfer.account == account)
            .order_by(desc(FaucetTransfer.created_at), desc(FaucetTransfer.id))
            .offset(offset)
            .limit(limit)
            .all()
        )
        return [
            {
                "id": int(tx.id),
                "direction": tx.direction,
                "amount": Decimal(tx.amount),
                "tx_hash": tx.tx_hash,
                "status": tx.status,
                "error": tx.error_message,
                "timestamp": tx.created_at,
            }
            for tx in transfers
        ]

    async def get_faucet_status(self) -> FaucetStatusDict:
        return {
            "faucet_account": self.faucet_account,
            "balance": await self.ledger.get_balance(self.faucet_account),
            "policy": self.get_policy(),
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _replay(self, idempotency_key: str, account: str, amount: Decimal) -> TransferReceiptDict | None:
        existing = (
            self.db.query(FaucetTransfer)
            .filter(FaucetTransfer.idempotency_key == idempotency_key)
            .first()
        )
        if existing is None:
            return None

        if existing.request_hash != IdempotencyKey.request_hash(account, amount):
            raise IdempotencyConflict("Idempotency key was already used for a different request")

        logger.info(f"Replaying disbursement for idempotency key {idempotency_key}")
        return {
            "direction": "disburse",
            "account": existing.account,
            "amount": Decimal(existing.amount),
            "tx_hash": existing.tx_hash,
            "ledger_index": existing.ledger_index,
            "spent": Decimal(existing.spent_after),
            "replayed": True,
        }

    def _record_transfer(
        self,
        direction: str,
        quota: AccountQuota,
        amount: Decimal,
        result: dict[str, Any],
        idempotency_key: str | None = None,
        request_hash: str | None = None,
    ) -> None:
        self.db.add(
            FaucetTransfer(
                direction=direction,
                account=quota.account,
                amount=amount,
                idempotency_key=idempotency_key,
                request_hash=request_hash,
                tx_hash=result.get("tx_hash"),
                ledger_index=result.get("ledger_index"),
                status="confirmed",
                spent_after=quota.spent,
            )
        )

    def _record_failure(
        self, direction: str, account: str, amount: Decimal, error: str
    ) -> LedgerTransferFailed:
        """Discard pending quota changes and log the failed transfer."""
        self.db.rollback()
        logger.error(f"Ledger rejected {direction} of {amount} for {account}: {error}")
        self.db.add(
            FaucetTransfer(
                direction=direction,
                account=account,
                amount=amount,
                status="failed",
                error_message=error,
            )
        )
        self.db.commit()
        return LedgerTransferFailed(error)

    def _commit_after_transfer(self, account: str, result: dict[str, Any]) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError:
            # Funds have moved but the quota did not; needs manual reconciliation
            logger.critical(
                f"Transfer {result.get('tx_hash')} for {account} succeeded "
                f"but the quota update could not be committed",
                exc_info=True,
            )
            raise

    @staticmethod
    def _receipt(
        direction: str, quota: AccountQuota, amount: Decimal, result: dict[str, Any]
    ) -> TransferReceiptDict:
        return {
            "direction": direction,  # type: ignore[typeddict-item]
            "account": quota.account,
            "amount": amount,
            "tx_hash": result.get("tx_hash"),
            "ledger_index": result.get("ledger_index"),
            "spent": quota.spent,
            "replayed": False,
        }

    @staticmethod
    def _limits_view(quota: AccountQuota) -> LimitsDict:
        return {
            "account_limit": quota.account_limit,
            "request_limit": quota.request_limit,
            "account_limit_remaining": quota.remaining,
        }

    @staticmethod
    def _policy_view(policy: GlobalPolicy) -> PolicyDict:
        return {
            "default_request_limit": policy.default_request_limit,
            "default_account_limit": policy.default_account_limit,
        }

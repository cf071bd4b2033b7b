"""External ledger clients.

The quota engine talks to the value-transfer ledger only through
``BaseLedgerClient``. Transfers return a ``TransactionResultDict`` instead of
raising, so the engine decides how a rejected transfer is reported.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from decimal import Decimal

from ..config import settings
from .authorization import DISBURSE, TRANSFER, AuthPolicy, CapabilityGrant
from .types import TransactionResultDict

logger = logging.getLogger(__name__)


class BaseLedgerClient(ABC):
    """Interface to the external value-transfer ledger."""

    def __init__(self, faucet_account: str) -> None:
        self.faucet_account = faucet_account

    @abstractmethod
    async def create_or_get_account(self, account: str, auth_policy: AuthPolicy | None = None) -> str:
        """Make sure ``account`` exists, creating it under ``auth_policy`` if needed."""

    @abstractmethod
    async def transfer(
        self,
        source: str,
        target: str,
        amount: Decimal,
        grant: CapabilityGrant | None,
    ) -> TransactionResultDict:
        """Move ``amount`` from ``source`` to ``target``."""

    @abstractmethod
    async def get_balance(self, account: str) -> Decimal | None:
        """Balance of ``account``, or None when it cannot be determined."""

    def grant_covers_transfer(
        self,
        grant: CapabilityGrant | None,
        source: str,
        target: str,
        amount: Decimal,
    ) -> bool:
        """Check the grant scopes exactly this movement of funds."""
        name = DISBURSE if source == self.faucet_account else TRANSFER
        return grant is not None and grant.covers(name, source=source, target=target, amount=amount)


class InMemoryLedger(BaseLedgerClient):
    """Process-local ledger used for development and tests."""

    def __init__(self, faucet_account: str, initial_balance: Decimal = Decimal("0")) -> None:
        super().__init__(faucet_account)
        self.balances: dict[str, Decimal] = {faucet_account: initial_balance}
        self.ledger_index = 0

    async def create_or_get_account(self, account: str, auth_policy: AuthPolicy | None = None) -> str:
        if account not in self.balances:
            self.balances[account] = Decimal("0")
            logger.info(f"Created ledger account {account}")
        return account

    async def transfer(
        self,
        source: str,
        target: str,
        amount: Decimal,
        grant: CapabilityGrant | None,
    ) -> TransactionResultDict:
        if amount <= 0:
            return {"success": False, "error": "Amount must be positive"}

        if not self.grant_covers_transfer(grant, source, target, amount):
            return {"success": False, "error": "Transfer not covered by capability grant"}

        for account in (source, target):
            if account not in self.balances:
                return {"success": False, "error": f"Unknown account {account}"}

        if self.balances[source] < amount:
            logger.warning(
                f"Insufficient balance: {source} has {self.balances[source]}, needs {amount}"
            )
            return {
                "success": False,
                "error": f"Insufficient balance. Available: {self.balances[source]}",
            }

        self.balances[source] -= amount
        self.balances[target] += amount
        self.ledger_index += 1

        return {
            "success": True,
            "tx_hash": uuid.uuid4().hex.upper(),
            "ledger_index": self.ledger_index,
            "fee": Decimal("0"),
            "amount": amount,
        }

    async def get_balance(self, account: str) -> Decimal | None:
        return self.balances.get(account)


_ledger_client: BaseLedgerClient | None = None


def get_ledger_client() -> BaseLedgerClient:
    """Return the process-wide ledger client for the configured backend."""
    global _ledger_client

    if _ledger_client is None:
        if settings.LEDGER_BACKEND == "xrpl":
            from .xrp_service import XRPLedgerClient

            _ledger_client = XRPLedgerClient()
        else:
            _ledger_client = InMemoryLedger(
                settings.FAUCET_ACCOUNT, initial_balance=settings.FAUCET_INITIAL_BALANCE
            )
        logger.info(f"Using {type(_ledger_client).__name__} for faucet {_ledger_client.faucet_account}")

    return _ledger_client

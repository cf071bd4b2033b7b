"""XRP Ledger backend for the faucet."""

from __future__ import annotations

import logging
from decimal import Decimal

import httpx
from xrpl.asyncio.clients import AsyncJsonRpcClient
from xrpl.asyncio.transaction import autofill, sign, submit_and_wait
from xrpl.core.addresscodec import is_valid_classic_address
from xrpl.models.requests import AccountInfo
from xrpl.models.transactions import Payment
from xrpl.utils import drops_to_xrp, xrp_to_drops
from xrpl.wallet import Wallet as XRPLWallet

from ..config import settings
from ..constants import ACCOUNT_RESERVE, STANDARD_FEE
from ..utils.encryption import encryption_service
from .authorization import AuthPolicy, CapabilityGrant
from .ledger_client import BaseLedgerClient
from .types import TransactionResultDict

logger = logging.getLogger(__name__)


class XRPLedgerClient(BaseLedgerClient):
    """Custodial XRP Ledger client.

    The faucet wallet and every recipient wallet registered through
    ``create_or_get_account`` are held as encrypted seeds; the client signs
    payments on their behalf once a capability grant covers the payment.
    """

    def __init__(
        self,
        json_rpc_url: str | None = None,
        faucet_encrypted_secret: str | None = None,
    ) -> None:
        """Initialize XRP client connection and the faucet wallet."""
        secret = faucet_encrypted_secret or settings.FAUCET_ENCRYPTED_SECRET
        if not secret:
            raise ValueError("FAUCET_ENCRYPTED_SECRET is required for the xrpl ledger backend")

        faucet_wallet = self.wallet_from_secret(secret)
        super().__init__(faucet_wallet.classic_address)

        self.json_rpc_url = json_rpc_url or settings.XRP_JSON_RPC_URL
        self.network = settings.XRP_NETWORK
        self.client = AsyncJsonRpcClient(self.json_rpc_url)
        self.wallets: dict[str, XRPLWallet] = {faucet_wallet.classic_address: faucet_wallet}
        logger.info(f"Initialized XRP ledger client for network: {self.network}")

    @staticmethod
    def wallet_from_secret(encrypted_secret: str) -> XRPLWallet:
        """Reconstruct wallet from encrypted secret."""
        try:
            secret = encryption_service.decrypt(encrypted_secret)
            return XRPLWallet.from_seed(secret)
        except Exception as e:
            logger.error(f"Failed to reconstruct wallet from secret: {e}")
            raise ValueError(f"Invalid encrypted secret: {e}") from e

    @staticmethod
    def validate_address(address: str) -> bool:
        """Validate if a string is a classic XRP address."""
        return bool(address) and is_valid_classic_address(address)

    async def create_or_get_account(self, account: str, auth_policy: AuthPolicy | None = None) -> str:
        """Register the signing wallet for ``account``.

        XRP accounts come into existence with their first funding payment, so
        only the custodial key is recorded here. The auth policy carries the
        account's encrypted seed.

        Raises
        ------
            ValueError: invalid address, unsupported policy or mismatched seed

        """
        if not self.validate_address(account):
            raise ValueError(f"Invalid XRP address: {account}")

        if auth_policy is not None:
            if auth_policy.threshold != 1 or len(auth_policy.keys) != 1:
                raise ValueError("Multi-signature auth policies are not supported on XRPL")
            wallet = self.wallet_from_secret(auth_policy.keys[0])
            if wallet.classic_address != account:
                raise ValueError("Auth policy key does not control the account")
            self.wallets[account] = wallet
            logger.debug(f"Registered signing wallet for {account}")

        return account

    async def fund_from_testnet_faucet(self, address: str | None = None) -> bool:
        """Top up an address (the faucet by default) from the TestNet faucet."""
        address = address or self.faucet_account
        try:
            logger.info(f"Attempting to fund wallet {address} with TestNet XRP")

            async with httpx.AsyncClient() as client:
                response = await client.post(
                    settings.XRP_FAUCET_URL,
                    json={"destination": address},
                    timeout=30.0,
                )

            if response.status_code == 200:
                logger.info(f"Successfully funded wallet {address}")
                return True
            logger.error(f"TestNet faucet error: {response.text}")
            return False
        except httpx.HTTPError as e:
            logger.error(f"Error funding wallet {address}: {e}")
            return False

    async def get_balance(self, account: str) -> Decimal | None:
        """Get XRP balance for an address.

        Returns balance in XRP (not drops).
        """
        try:
            request = AccountInfo(account=account, ledger_index="validated")
            response = await self.client.request(request)

            if response.is_successful():
                balance_drops = response.result["account_data"]["Balance"]
                return Decimal(drops_to_xrp(balance_drops))

            # Not yet activated: no funding payment has reached it
            if response.result.get("error") == "actNotFound":
                return Decimal("0")

            logger.warning(f"Failed to get balance for {account}: {response.result}")
            return None

        except Exception as e:
            logger.error(f"Error getting balance for {account}: {e}")
            return None

    async def transfer(
        self,
        source: str,
        target: str,
        amount: Decimal,
        grant: CapabilityGrant | None,
    ) -> TransactionResultDict:
        """Send XRP from ``source`` to ``target``.

        Returns
        -------
            Dictionary with transaction result

        """
        if amount <= 0:
            return {"success": False, "error": "Amount must be positive"}

        if not self.grant_covers_transfer(grant, source, target, amount):
            return {"success": False, "error": "Transfer not covered by capability grant"}

        if not self.validate_address(target):
            return {"success": False, "error": f"Invalid XRP address: {target}"}

        wallet = self.wallets.get(source)
        if wallet is None:
            return {"success": False, "error": f"No signing key held for {source}"}

        try:
            sender_balance = await self.get_balance(source)
            if sender_balance is None:
                return {"success": False, "error": "Unable to verify balance"}

            # Check available balance (total - reserve - fee)
            required_balance = amount + STANDARD_FEE + ACCOUNT_RESERVE
            if sender_balance < required_balance:
                available = max(sender_balance - ACCOUNT_RESERVE - STANDARD_FEE, Decimal("0"))
                logger.warning(
                    f"Insufficient balance: has {sender_balance}, "
                    f"needs {required_balance}, available {available}"
                )
                return {
                    "success": False,
                    "error": (
                        f"Insufficient balance. Available: {available} XRP "
                        f"(Reserve: {ACCOUNT_RESERVE} XRP must remain)"
                    ),
                }

            payment = Payment(
                account=source,
                destination=target,
                amount=xrp_to_drops(amount),
            )

            # Autofill sets Fee/Sequence/LastLedgerSequence
            prepared = await autofill(payment, self.client)
            signed_tx = sign(prepared, wallet)
            response = await submit_and_wait(signed_tx, self.client)

            if not response.is_successful():
                return {
                    "success": False,
                    "error": response.result.get("engine_result_message", "Transaction failed"),
                }

            result = response.result
            tx_json = result.get("tx_json") or {}
            fee_drops = result.get("Fee") or tx_json.get("Fee") or "0"

            return {
                "success": True,
                "tx_hash": result.get("hash") or tx_json.get("hash"),
                "ledger_index": result.get("ledger_index") or tx_json.get("ledger_index"),
                "fee": Decimal(drops_to_xrp(fee_drops)),
                "amount": amount,
            }

        except Exception as e:
            logger.error(f"XRP transfer {source} -> {target} failed: {e}")
            return {"success": False, "error": str(e)}

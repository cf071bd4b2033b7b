"""Tests for the XRP Ledger backend with the network mocked out."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from xrpl.models.response import Response, ResponseStatus
from xrpl.wallet import Wallet

from faucet.services.authorization import DISBURSE, TRANSFER, AuthPolicy, CapabilityGrant
from faucet.services.xrp_service import XRPLedgerClient
from faucet.utils.encryption import encryption_service


def account_info(balance_drops):
    return Response(
        status=ResponseStatus.SUCCESS,
        result={"account_data": {"Balance": balance_drops}},
    )


class TestXRPLedgerClient:
    """Test the custodial XRPL client."""

    @pytest.fixture
    def faucet_wallet(self):
        return Wallet.create()

    @pytest.fixture
    def recipient(self):
        return Wallet.create()

    @pytest.fixture
    def client(self, faucet_wallet):
        return XRPLedgerClient(
            json_rpc_url="http://localhost:5005",
            faucet_encrypted_secret=encryption_service.encrypt(faucet_wallet.seed),
        )

    def grant_to(self, client, target, max_amount="100"):
        return CapabilityGrant(
            DISBURSE, source=client.faucet_account, target=target, max_amount=Decimal(max_amount)
        )

    def test_faucet_account_from_secret(self, client, faucet_wallet):
        assert client.faucet_account == faucet_wallet.classic_address
        assert faucet_wallet.classic_address in client.wallets

    def test_missing_secret_rejected(self):
        with patch("faucet.services.xrp_service.settings") as mock_settings:
            mock_settings.FAUCET_ENCRYPTED_SECRET = ""
            with pytest.raises(ValueError, match="FAUCET_ENCRYPTED_SECRET"):
                XRPLedgerClient()

    def test_validate_address_rejects_malicious_input(self, recipient):
        malicious_inputs = [
            "'; DROP TABLE users; --",
            "<script>alert('xss')</script>",
            "../../etc/passwd",
            "\x00\x01\x02",
            "A" * 1000,
            "",
        ]

        for malicious_input in malicious_inputs:
            assert not XRPLedgerClient.validate_address(malicious_input)
        assert XRPLedgerClient.validate_address(recipient.classic_address)

    @pytest.mark.asyncio
    async def test_create_account_rejects_invalid_address(self, client):
        with pytest.raises(ValueError, match="Invalid XRP address"):
            await client.create_or_get_account("not-an-address")

    @pytest.mark.asyncio
    async def test_create_account_registers_signing_wallet(self, client, recipient):
        policy = AuthPolicy(keys=(encryption_service.encrypt(recipient.seed),))

        account = await client.create_or_get_account(recipient.classic_address, policy)

        assert account == recipient.classic_address
        assert client.wallets[recipient.classic_address].seed == recipient.seed

    @pytest.mark.asyncio
    async def test_create_account_rejects_foreign_key(self, client, recipient):
        policy = AuthPolicy(keys=(encryption_service.encrypt(Wallet.create().seed),))

        with pytest.raises(ValueError, match="does not control"):
            await client.create_or_get_account(recipient.classic_address, policy)

    @pytest.mark.asyncio
    async def test_create_account_rejects_multisig(self, client, recipient):
        policy = AuthPolicy(keys=("k1", "k2"), threshold=2)

        with pytest.raises(ValueError, match="Multi-signature"):
            await client.create_or_get_account(recipient.classic_address, policy)

    @pytest.mark.asyncio
    async def test_get_balance_in_xrp(self, client):
        client.client.request = AsyncMock(return_value=account_info("25500000"))

        assert await client.get_balance(client.faucet_account) == Decimal("25.5")

    @pytest.mark.asyncio
    async def test_get_balance_unfunded_account(self, client, recipient):
        client.client.request = AsyncMock(
            return_value=Response(status=ResponseStatus.ERROR, result={"error": "actNotFound"})
        )

        assert await client.get_balance(recipient.classic_address) == Decimal("0")

    @pytest.mark.asyncio
    async def test_transfer_without_grant(self, client, recipient):
        client.client.request = AsyncMock()

        result = await client.transfer(
            client.faucet_account, recipient.classic_address, Decimal("5"), None
        )

        assert result["success"] is False
        assert "capability" in result["error"]
        client.client.request.assert_not_called()

    @pytest.mark.asyncio
    async def test_transfer_grant_for_wrong_direction(self, client, recipient):
        grant = CapabilityGrant(
            TRANSFER,
            source=client.faucet_account,
            target=recipient.classic_address,
            max_amount=Decimal("100"),
        )

        result = await client.transfer(
            client.faucet_account, recipient.classic_address, Decimal("5"), grant
        )

        assert result["success"] is False

    @pytest.mark.asyncio
    async def test_transfer_without_signing_key(self, client, recipient):
        grant = CapabilityGrant(
            TRANSFER,
            source=recipient.classic_address,
            target=client.faucet_account,
            max_amount=Decimal("100"),
        )

        result = await client.transfer(
            recipient.classic_address, client.faucet_account, Decimal("5"), grant
        )

        assert result == {
            "success": False,
            "error": f"No signing key held for {recipient.classic_address}",
        }

    @pytest.mark.asyncio
    async def test_transfer_keeps_reserve(self, client, recipient):
        client.client.request = AsyncMock(return_value=account_info("5000000"))

        result = await client.transfer(
            client.faucet_account,
            recipient.classic_address,
            Decimal("4.5"),
            self.grant_to(client, recipient.classic_address),
        )

        assert result["success"] is False
        assert "Reserve" in result["error"]

    @pytest.mark.asyncio
    async def test_successful_transfer(self, client, recipient):
        client.client.request = AsyncMock(return_value=account_info("50000000"))
        submitted = Response(
            status=ResponseStatus.SUCCESS,
            result={"hash": "ABC123", "ledger_index": 42, "tx_json": {"Fee": "12"}},
        )

        with patch("faucet.services.xrp_service.autofill", new=AsyncMock()) as mock_autofill, patch(
            "faucet.services.xrp_service.sign"
        ) as mock_sign, patch(
            "faucet.services.xrp_service.submit_and_wait", new=AsyncMock(return_value=submitted)
        ):
            result = await client.transfer(
                client.faucet_account,
                recipient.classic_address,
                Decimal("10"),
                self.grant_to(client, recipient.classic_address),
            )

        assert result["success"] is True
        assert result["tx_hash"] == "ABC123"
        assert result["ledger_index"] == 42
        assert result["fee"] == Decimal("0.000012")

        payment = mock_autofill.call_args.args[0]
        assert payment.destination == recipient.classic_address
        assert payment.amount == "10000000"
        assert mock_sign.call_args.args[1] is client.wallets[client.faucet_account]

    @pytest.mark.asyncio
    async def test_rejected_submission(self, client, recipient):
        client.client.request = AsyncMock(return_value=account_info("50000000"))
        rejected = Response(
            status=ResponseStatus.ERROR,
            result={"engine_result_message": "Destination does not exist"},
        )

        with patch("faucet.services.xrp_service.autofill", new=AsyncMock()), patch(
            "faucet.services.xrp_service.sign"
        ), patch(
            "faucet.services.xrp_service.submit_and_wait", new=AsyncMock(return_value=rejected)
        ):
            result = await client.transfer(
                client.faucet_account,
                recipient.classic_address,
                Decimal("10"),
                self.grant_to(client, recipient.classic_address),
            )

        assert result == {"success": False, "error": "Destination does not exist"}

    @pytest.mark.asyncio
    async def test_fund_from_testnet_faucet(self, client):
        mock_http = AsyncMock()
        mock_http.post.return_value = MagicMock(status_code=200)

        with patch("faucet.services.xrp_service.httpx.AsyncClient") as mock_client_cls:
            mock_client_cls.return_value.__aenter__.return_value = mock_http
            funded = await client.fund_from_testnet_faucet()

        assert funded is True
        assert mock_http.post.call_args.kwargs["json"] == {"destination": client.faucet_account}

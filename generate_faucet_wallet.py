#!/usr/bin/env python
"""Generate a faucet wallet for the XRP Ledger backend.
Creates a new wallet, prints its seed encrypted with ENCRYPTION_KEY for use as
FAUCET_ENCRYPTED_SECRET, and funds it from the TestNet faucet.
"""

import asyncio

from xrpl.wallet import Wallet

from faucet.config import settings
from faucet.services.xrp_service import XRPLedgerClient
from faucet.utils.encryption import encryption_service

# ANSI color codes
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
BLUE = "\033[94m"
RESET = "\033[0m"


def print_banner():
    """Print banner."""
    print(
        f"""
{BLUE}================================================
       XRP Faucet Wallet Generator
================================================{RESET}
    """
    )


async def main():
    """Execute the main function."""
    print_banner()

    if not settings.ENCRYPTION_KEY:
        print(f"{RED}[ERR] ENCRYPTION_KEY must be set so the faucet can decrypt its seed{RESET}")
        print(f"  Generate one with: {settings.generate_encryption_key()}")
        return

    print(f"{YELLOW}Generating new XRP wallet...{RESET}")
    wallet = Wallet.create()
    encrypted_secret = encryption_service.encrypt(wallet.seed)
    print(f"{GREEN}[OK] Wallet generated successfully!{RESET}")
    print(f"  Address: {wallet.classic_address}")

    client = XRPLedgerClient(faucet_encrypted_secret=encrypted_secret)

    if settings.XRP_NETWORK == "testnet":
        print(f"\n{YELLOW}Funding wallet from TestNet faucet...{RESET}")
        if await client.fund_from_testnet_faucet():
            # Wait for the funding payment to validate
            await asyncio.sleep(5)
            print(f"{GREEN}[OK] Wallet funded{RESET}")
        else:
            print(f"{YELLOW}WARNING: funding failed, fund it manually at {settings.XRP_FAUCET_URL}{RESET}")

    balance = await client.get_balance(client.faucet_account)
    print(f"  Balance: {balance if balance is not None else 'unknown'} XRP")

    print(f"\n{BLUE}Add these to your .env:{RESET}")
    print("LEDGER_BACKEND=xrpl")
    print(f"FAUCET_ENCRYPTED_SECRET={encrypted_secret}")


if __name__ == "__main__":
    asyncio.run(main())

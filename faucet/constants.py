"""Ledger constants for XRP operations."""

from __future__ import annotations

from decimal import Decimal

# XRP Network Constants (TestNet values)
ACCOUNT_RESERVE = Decimal("1")  # Base reserve for account
STANDARD_FEE = Decimal("0.00001")  # Typical network fee

# XRP supports 6 decimal places (1 drop = 0.000001 XRP)
MAX_DECIMAL_PLACES = 6
MIN_DROP = Decimal("0.000001")

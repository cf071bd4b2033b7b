"""Idempotency key helpers for disbursement requests."""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal


class IdempotencyKey:
    """Validate idempotency keys and fingerprint the requests they guard."""

    MIN_LENGTH = 8
    MAX_LENGTH = 255

    @classmethod
    def validate(cls, key: str) -> bool:
        """Validate idempotency key format."""
        if not key or len(key) < cls.MIN_LENGTH or len(key) > cls.MAX_LENGTH:
            return False
        # Allow alphanumeric, hyphens, and underscores
        return all(c.isascii() and (c.isalnum() or c in "-_") for c in key)

    @staticmethod
    def request_hash(account: str, amount: Decimal) -> str:
        """SHA256 fingerprint of the parameters a key was first used with."""
        # normalize() so 20 and 20.000000 hash the same
        normalized = json.dumps(
            {"account": account, "amount": str(amount.normalize())}, sort_keys=True
        )
        return hashlib.sha256(normalized.encode()).hexdigest()

"""Capability-scoped authorization.

A capability grant names one operation and the exact bounds it authorizes:
the source account, the target account and the maximum amount. Grants are
handed to callers as encrypted tokens and checked before every mutating
operation; the ledger clients check them again before moving funds.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation

from ..config import settings
from ..utils.encryption import EncryptionService, encryption_service
from .errors import Unauthorized

logger = logging.getLogger(__name__)

ADMIN_LIMIT = "ADMIN_LIMIT"
DISBURSE = "DISBURSE"
TRANSFER = "TRANSFER"

CAPABILITIES = (ADMIN_LIMIT, DISBURSE, TRANSFER)

# Capabilities that move funds must carry all three bounds
BOUNDED_CAPABILITIES = (DISBURSE, TRANSFER)


@dataclass(frozen=True)
class AuthPolicy:
    """Key set and signature threshold guarding an account on the ledger."""

    keys: tuple[str, ...]
    threshold: int = 1

    def __post_init__(self) -> None:
        if not self.keys:
            raise ValueError("Auth policy needs at least one key")
        if not 1 <= self.threshold <= len(self.keys):
            raise ValueError(f"Threshold must be between 1 and {len(self.keys)}")


@dataclass(frozen=True)
class CapabilityGrant:
    """A scoped permission. ``None`` bounds are unrestricted."""

    name: str
    source: str | None = None
    target: str | None = None
    max_amount: Decimal | None = None
    expires_at: datetime | None = field(default=None, compare=False)

    def is_expired(self, now: datetime | None = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or datetime.now(timezone.utc)) >= self.expires_at

    def covers(
        self,
        name: str,
        source: str | None = None,
        target: str | None = None,
        amount: Decimal | None = None,
    ) -> bool:
        """Whether this grant authorizes ``name`` on the given bounds."""
        if self.name != name or self.is_expired():
            return False
        if name in BOUNDED_CAPABILITIES and (
            self.source is None or self.target is None or self.max_amount is None
        ):
            return False
        if self.source is not None and self.source != source:
            return False
        if self.target is not None and self.target != target:
            return False
        if self.max_amount is not None:
            if amount is None or amount > self.max_amount:
                return False
        return True


class CapabilityAuthority:
    """Issues capability tokens and checks grants against requested bounds."""

    def __init__(
        self,
        encryption: EncryptionService | None = None,
        ttl_seconds: int | None = None,
    ) -> None:
        self.encryption = encryption or encryption_service
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.CAPABILITY_TTL_SECONDS

    def issue(
        self,
        name: str,
        source: str | None = None,
        target: str | None = None,
        max_amount: Decimal | None = None,
        ttl_seconds: int | None = None,
    ) -> tuple[str, CapabilityGrant]:
        """Mint a grant and its token.

        Raises
        ------
            ValueError: unknown capability or missing bounds

        """
        if name not in CAPABILITIES:
            raise ValueError(f"Unknown capability: {name}")
        if name in BOUNDED_CAPABILITIES and (source is None or target is None or max_amount is None):
            raise ValueError(f"{name} grants must name source, target and max_amount")
        if max_amount is not None and (not max_amount.is_finite() or max_amount <= 0):
            raise ValueError("max_amount must be positive")

        ttl = ttl_seconds if ttl_seconds is not None else self.ttl_seconds
        grant = CapabilityGrant(
            name=name,
            source=source,
            target=target,
            max_amount=max_amount,
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=ttl),
        )
        payload = {
            "cap": grant.name,
            "src": grant.source,
            "tgt": grant.target,
            "max": str(grant.max_amount) if grant.max_amount is not None else None,
            "exp": grant.expires_at.isoformat() if grant.expires_at else None,
        }
        token = self.encryption.encrypt(json.dumps(payload, sort_keys=True))
        logger.info(f"Issued {name} grant (source={source}, target={target}, max={max_amount})")
        return token, grant

    def decode(self, token: str) -> CapabilityGrant:
        """Verify a token and rebuild its grant."""
        try:
            payload = json.loads(self.encryption.decrypt(token))
            max_amount = payload.get("max")
            expires_at = payload.get("exp")
            grant = CapabilityGrant(
                name=payload["cap"],
                source=payload.get("src"),
                target=payload.get("tgt"),
                max_amount=Decimal(max_amount) if max_amount is not None else None,
                expires_at=datetime.fromisoformat(expires_at) if expires_at else None,
            )
        except (ValueError, KeyError, TypeError, InvalidOperation) as e:
            logger.warning(f"Rejected capability token: {e}")
            raise Unauthorized("Invalid capability token") from e

        if grant.is_expired():
            raise Unauthorized("Capability token has expired")
        return grant

    def require_capability(
        self,
        grant: CapabilityGrant | None,
        name: str,
        source: str | None = None,
        target: str | None = None,
        amount: Decimal | None = None,
    ) -> CapabilityGrant:
        """Fail the operation unless ``grant`` covers ``name`` on these bounds."""
        if grant is None:
            raise Unauthorized(f"{name} capability required")
        if not grant.covers(name, source=source, target=target, amount=amount):
            logger.warning(
                f"Grant {grant.name} does not cover {name} "
                f"(source={source}, target={target}, amount={amount})"
            )
            raise Unauthorized(f"Grant does not cover {name} for the requested bounds")
        return grant


# Global capability authority instance
capability_authority = CapabilityAuthority()

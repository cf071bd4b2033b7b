"""Utils module initialization."""

from __future__ import annotations

from .encryption import EncryptionService, encryption_service
from .idempotency import IdempotencyKey

__all__ = [
    "EncryptionService",
    "encryption_service",
    "IdempotencyKey",
]

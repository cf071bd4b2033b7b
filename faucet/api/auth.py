"""API authentication: API keys for callers, capability tokens for operations."""

import secrets

from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader

from faucet.config import settings
from faucet.services.authorization import CapabilityGrant, capability_authority

ROLE_ADMIN = "admin"
ROLE_CLIENT = "client"

api_key_header = APIKeyHeader(name="X-API-Key")
capability_header = APIKeyHeader(name="X-Capability", auto_error=False)


def _matches(candidate: str, expected: str) -> bool:
    return bool(expected) and secrets.compare_digest(candidate.encode(), expected.encode())


async def verify_api_key(api_key: str = Security(api_key_header)) -> str:
    """Verify the API key and return the caller's role."""
    if _matches(api_key, settings.ADMIN_API_KEY):
        return ROLE_ADMIN

    if _matches(api_key, settings.CLIENT_API_KEY):
        return ROLE_CLIENT

    raise HTTPException(status_code=401, detail="Invalid API key")


async def get_capability(token: str | None = Security(capability_header)) -> CapabilityGrant | None:
    """Decode the X-Capability token, if any.

    A missing token yields None; the quota engine then rejects the operation.
    """
    if not token:
        return None
    return capability_authority.decode(token)

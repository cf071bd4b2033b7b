"""API routes"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from sqlalchemy.orm import Session

from faucet.api.auth import ROLE_ADMIN, get_capability, verify_api_key
from faucet.api.middleware import get_idempotency_key, limiter, rate_limit_requests
from faucet.api.schemas import (
    CapabilityRequest,
    CapabilityResponse,
    FaucetRequest,
    FaucetStatusResponse,
    HealthCheckResponse,
    LimitsResponse,
    LimitUpdate,
    PolicyResponse,
    PolicyUpdate,
    ReturnRequest,
    TransferHistoryItem,
    TransferHistoryResponse,
    TransferReceiptResponse,
)
from faucet.config import settings
from faucet.database.connection import check_database_health, get_db
from faucet.services.authorization import (
    ADMIN_LIMIT,
    DISBURSE,
    TRANSFER,
    AuthPolicy,
    CapabilityGrant,
    capability_authority,
)
from faucet.services.ledger_client import BaseLedgerClient, get_ledger_client
from faucet.services.quota_engine import QuotaEngine

logger = logging.getLogger(__name__)

# Create router
router = APIRouter(prefix="/api/v1", tags=["Faucet"])

Grant = Annotated[CapabilityGrant | None, Depends(get_capability)]


def get_ledger() -> BaseLedgerClient:
    """Dependency for the configured ledger client."""
    return get_ledger_client()


def get_quota_engine(
    db: Session = Depends(get_db), ledger: BaseLedgerClient = Depends(get_ledger)
) -> QuotaEngine:
    """Dependency building a quota engine bound to the request's session."""
    return QuotaEngine(db, ledger)


Engine = Annotated[QuotaEngine, Depends(get_quota_engine)]


@router.post(
    "/capabilities",
    response_model=CapabilityResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        201: {"description": "Capability token issued"},
        400: {"description": "Missing or invalid bounds"},
        401: {"description": "Invalid API key"},
        403: {"description": "Capability not available to this API key"},
    },
)
async def issue_capability(
    body: CapabilityRequest,
    role: Annotated[str, Depends(verify_api_key)],
    ledger: Annotated[BaseLedgerClient, Depends(get_ledger)],
) -> CapabilityResponse:
    """Mint a capability token for the caller's role."""
    source, target = body.source, body.target
    if body.capability == DISBURSE and source is None:
        source = ledger.faucet_account
    if body.capability == TRANSFER and target is None:
        target = ledger.faucet_account

    if role != ROLE_ADMIN:
        allowed = (body.capability == DISBURSE and source == ledger.faucet_account) or (
            body.capability == TRANSFER and target == ledger.faucet_account
        )
        if not allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"{body.capability} grant not available to this API key",
            )

    try:
        token, grant = capability_authority.issue(
            body.capability,
            source=source,
            target=target,
            max_amount=body.max_amount,
            ttl_seconds=body.ttl_seconds,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    return CapabilityResponse(
        token=token,
        capability=grant.name,
        source=grant.source,
        target=grant.target,
        max_amount=grant.max_amount,
        expires_at=grant.expires_at,
    )


@router.post(
    "/faucet/request",
    response_model=TransferReceiptResponse,
    responses={
        200: {"description": "Funds disbursed"},
        400: {"description": "Invalid amount"},
        401: {"description": "Missing or insufficient capability"},
        403: {"description": "Request or account limit exceeded"},
        409: {"description": "Idempotency key reused for another request"},
        502: {"description": "Ledger rejected the transfer"},
    },
)
@limiter.limit(rate_limit_requests)
async def request_funds(
    request: Request,
    response: Response,
    body: FaucetRequest,
    engine: Engine,
    grant: Grant,
    idempotency_key: Annotated[str | None, Depends(get_idempotency_key)],
) -> TransferReceiptResponse:
    """Disburse funds from the faucet within the account's limits."""
    auth_policy = (
        AuthPolicy(keys=tuple(body.auth_policy.keys), threshold=body.auth_policy.threshold)
        if body.auth_policy
        else None
    )
    receipt = await engine.request(
        body.account, auth_policy, body.amount, grant, idempotency_key=idempotency_key
    )
    return TransferReceiptResponse(**receipt)


@router.post(
    "/faucet/return",
    response_model=TransferReceiptResponse,
    responses={
        200: {"description": "Funds returned"},
        400: {"description": "Invalid amount"},
        401: {"description": "Missing or insufficient capability"},
        502: {"description": "Ledger rejected the transfer"},
    },
)
async def return_funds(body: ReturnRequest, engine: Engine, grant: Grant) -> TransferReceiptResponse:
    """Return funds to the faucet, lowering the account's spend."""
    receipt = await engine.return_funds(body.account, body.amount, grant)
    return TransferReceiptResponse(**receipt)


@router.get("/faucet/status", response_model=FaucetStatusResponse)
async def faucet_status(engine: Engine) -> FaucetStatusResponse:
    """Faucet account, its ledger balance and the global policy."""
    return FaucetStatusResponse(**(await engine.get_faucet_status()))


@router.get("/limits/{account}", response_model=LimitsResponse)
async def get_limits(account: str, engine: Engine) -> LimitsResponse:
    """Publicly readable limits of an account."""
    return LimitsResponse(account=account, **engine.get_limits(account))


@router.put(
    "/limits/{account}/request-limit",
    response_model=LimitsResponse,
    responses={401: {"description": f"{ADMIN_LIMIT} capability required"}},
)
async def set_request_limit(
    account: str, body: LimitUpdate, engine: Engine, grant: Grant
) -> LimitsResponse:
    """Override an account's per-request cap."""
    limits = await engine.set_request_limit(account, body.limit, grant)
    return LimitsResponse(account=account, **limits)


@router.put(
    "/limits/{account}/account-limit",
    response_model=LimitsResponse,
    responses={401: {"description": f"{ADMIN_LIMIT} capability required"}},
)
async def set_account_limit(
    account: str, body: LimitUpdate, engine: Engine, grant: Grant
) -> LimitsResponse:
    """Override an account's cumulative cap."""
    limits = await engine.set_account_limit(account, body.limit, grant)
    return LimitsResponse(account=account, **limits)


@router.get("/policy", response_model=PolicyResponse)
async def get_policy(engine: Engine) -> PolicyResponse:
    """Global default limits."""
    return PolicyResponse(**engine.get_policy())


@router.put(
    "/policy",
    response_model=PolicyResponse,
    responses={401: {"description": f"{ADMIN_LIMIT} capability required"}},
)
async def set_policy(body: PolicyUpdate, engine: Engine, grant: Grant) -> PolicyResponse:
    """Raise the global default limits."""
    policy = engine.set_default_limits(
        grant,
        request_limit=body.default_request_limit,
        account_limit=body.default_account_limit,
    )
    return PolicyResponse(**policy)


@router.get(
    "/transfers/{account}",
    response_model=TransferHistoryResponse,
    dependencies=[Depends(verify_api_key)],
)
async def list_transfers(
    account: str,
    engine: Engine,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> TransferHistoryResponse:
    """Transfer log of an account with pagination."""
    history = engine.list_transfers(account, limit=limit, offset=offset)
    transfers = [TransferHistoryItem(**item) for item in history]
    return TransferHistoryResponse(transfers=transfers, total_count=len(transfers))


@router.get(
    "/health",
    response_model=HealthCheckResponse,
    responses={
        200: {"description": "Service is healthy"},
        503: {"description": "Service is unhealthy"},
    },
)
async def health_check(
    db: Annotated[Session, Depends(get_db)],
    ledger: Annotated[BaseLedgerClient, Depends(get_ledger)],
) -> HealthCheckResponse:
    """Health check endpoint for monitoring."""
    db_healthy = check_database_health(db)

    ledger_healthy = False
    try:
        ledger_healthy = await ledger.get_balance(ledger.faucet_account) is not None
    except Exception as e:
        logger.error(f"Ledger health check failed: {str(e)}")

    response = HealthCheckResponse(
        status="healthy" if db_healthy and ledger_healthy else "unhealthy",
        service=settings.APP_NAME,
        version=settings.APP_VERSION,
        database=db_healthy,
        ledger=ledger_healthy,
    )

    if not (db_healthy and ledger_healthy):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=response.model_dump()
        )

    return response

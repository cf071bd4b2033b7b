"""Main FastAPI application."""

import logging
import time
from contextlib import asynccontextmanager

import uvicorn  # type: ignore
from fastapi import FastAPI, Request  # type: ignore
from fastapi.middleware.cors import CORSMiddleware  # type: ignore
from fastapi.responses import JSONResponse  # type: ignore

from .api.middleware import setup_rate_limiting
from .api.routes import router
from .config import initialize_settings, settings
from .database.connection import (
    close_database_connections,
    init_database,
    initialize_database_engine,
)
from .services.errors import FaucetError
from .services.ledger_client import get_ledger_client

# Configure logging
logging.basicConfig(
    level=logging.INFO if not settings.DEBUG else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):  # noqa: ARG001
    """Manage application lifecycle."""
    initialize_settings()

    logger.info(f"🚀 Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"🌍 Environment: {settings.ENVIRONMENT}")
    logger.info(f"💾 Database: {settings.DATABASE_URL[:30]}...")
    logger.info(f"🪙 Ledger backend: {settings.LEDGER_BACKEND} ({settings.XRP_NETWORK})")
    logger.info(
        f"📏 Default limits: request={settings.DEFAULT_REQUEST_LIMIT}, "
        f"account={settings.DEFAULT_ACCOUNT_LIMIT}"
    )

    try:
        initialize_database_engine(settings.DATABASE_URL, settings.DEBUG)
        init_database()
        logger.info("✅ Database initialized successfully")
    except Exception as e:
        logger.error(f"❌ Database initialization failed: {e}")
        raise

    if not settings.ENCRYPTION_KEY:
        if settings.ENVIRONMENT == "production":
            raise ValueError("ENCRYPTION_KEY required in production")
        logger.warning("⚠️ ENCRYPTION_KEY not set - capability tokens expire with this process")

    ledger = get_ledger_client()
    logger.info(f"✅ Faucet account: {ledger.faucet_account}")

    if settings.LEDGER_BACKEND == "xrpl" and settings.XRP_AUTO_FUND_FAUCET:
        if settings.XRP_NETWORK == "testnet":
            await ledger.fund_from_testnet_faucet()  # type: ignore[attr-defined]
        else:
            logger.warning("⚠️ XRP_AUTO_FUND_FAUCET ignored outside testnet")

    yield

    logger.info("👋 Shutting down application...")
    close_database_connections()
    logger.info("✅ Application shutdown completed")


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
)

if settings.ENVIRONMENT == "production":
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[],
        allow_credentials=False,
        allow_methods=["GET", "POST", "PUT"],
        allow_headers=["Content-Type", "X-API-Key", "X-Capability", "Idempotency-Key"],
    )
else:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

setup_rate_limiting(app)


@app.middleware("http")
async def timing_middleware(request: Request, call_next):
    """Add processing time and service version headers."""
    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time

    response.headers["X-Process-Time"] = str(duration)
    response.headers["X-Service-Version"] = settings.APP_VERSION
    return response


app.include_router(router)


@app.exception_handler(FaucetError)
async def faucet_error_handler(request: Request, exc: FaucetError):  # noqa: ARG001
    """Report typed faucet failures with their code."""
    return JSONResponse(
        status_code=exc.http_status,
        content={"error": exc.code, "detail": exc.message},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):  # noqa: ARG001
    """Global exception handler."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": str(exc) if settings.DEBUG else "Internal server error"},
    )


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "health": "/api/v1/health",
        "environment": settings.ENVIRONMENT,
        "ledger_backend": settings.LEDGER_BACKEND,
    }


if __name__ == "__main__":
    uvicorn.run(
        "faucet.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG,
        log_level="info" if not settings.DEBUG else "debug",
    )

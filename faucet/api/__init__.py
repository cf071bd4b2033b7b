"""HTTP API for the faucet."""

from .routes import router

__all__ = ["router"]

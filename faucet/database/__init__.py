"""Database module initialization."""

from __future__ import annotations

from .connection import (
    check_database_health,
    close_database_connections,
    get_db,
    init_database,
    initialize_database_engine,
)
from .models import (
    AccountQuotaRecord,
    Base,
    FaucetPolicy,
    FaucetTransfer,
)

__all__ = [
    # Models
    "Base",
    "FaucetPolicy",
    "AccountQuotaRecord",
    "FaucetTransfer",
    # Connection utilities
    "initialize_database_engine",
    "init_database",
    "get_db",
    "check_database_health",
    "close_database_connections",
]

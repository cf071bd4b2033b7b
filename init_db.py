#!/usr/bin/env python
"""Database initialization script for deployment.
Runs migrations and stores the configured default limits as the global policy.

Usage:
    python init_db.py
"""

import logging
import sys

from faucet.config import initialize_settings
from faucet.database import connection
from faucet.services.limit_ledger import GlobalPolicy, LimitLedger

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def main():
    """Initialize the faucet database."""
    try:
        logger.info("🚀 Starting database initialization...")

        settings = initialize_settings()
        logger.info(f"Environment: {settings.ENVIRONMENT}")
        logger.info(f"Database URL: {settings.DATABASE_URL[:30]}...")

        connection.initialize_database_engine(settings.DATABASE_URL, settings.DEBUG)
        connection.init_database()
        logger.info("✅ Database schema initialized")

        db = connection.SessionLocal()
        try:
            if not connection.check_database_health(db):
                logger.error("❌ Database health check failed")
                sys.exit(1)

            limits = LimitLedger(db)
            # Keep a policy that an admin has already raised
            policy = limits.get_policy()
            if policy == GlobalPolicy.from_settings():
                limits.set_policy(policy)
                db.commit()
            logger.info(
                f"✅ Global policy: request={policy.default_request_limit}, "
                f"account={policy.default_account_limit}"
            )
        finally:
            db.close()

        logger.info("🎉 Database initialization completed successfully!")

    except Exception as e:
        logger.error(f"❌ Database initialization failed: {e}", exc_info=True)
        sys.exit(1)
    finally:
        connection.close_database_connections()


if __name__ == "__main__":
    main()

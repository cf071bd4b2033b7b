import os
from decimal import Decimal

from pydantic import Field  # type: ignore[import-not-found]
from pydantic_settings import BaseSettings, SettingsConfigDict  # type: ignore[import-not-found]


class Settings(BaseSettings):
    """Application configuration using Pydantic v2."""

    model_config = SettingsConfigDict(
        env_file=[".env.local", ".env.development", ".env"],
        case_sensitive=True,
        extra="ignore",  # Ignore extra fields to avoid validation errors
    )

    # Application
    APP_NAME: str = "XRP Quota Faucet"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = Field(default=False)
    ENVIRONMENT: str = Field(default="development")

    # Database - Auto-detect based on environment
    DATABASE_URL: str = Field(default="")

    # Security - these should be overridden via environment variables
    ENCRYPTION_KEY: str = Field(default="")
    CLIENT_API_KEY: str = Field(default="")
    ADMIN_API_KEY: str = Field(default="")
    CAPABILITY_TTL_SECONDS: int = Field(default=300)

    # Ledger backend: "memory" for development, "xrpl" for the XRP Ledger
    LEDGER_BACKEND: str = Field(default="memory")

    # XRP Ledger
    XRP_NETWORK: str = Field(default="testnet")
    XRP_JSON_RPC_URL: str = Field(default="https://s.altnet.rippletest.net:51234")
    XRP_FAUCET_URL: str = Field(default="https://faucet.altnet.rippletest.net/accounts")
    XRP_AUTO_FUND_FAUCET: bool = Field(default=False)

    # Faucet account
    FAUCET_ACCOUNT: str = Field(default="faucet")
    FAUCET_ENCRYPTED_SECRET: str = Field(default="")
    FAUCET_INITIAL_BALANCE: Decimal = Field(default=Decimal("1000000"))  # memory backend only

    # Quota defaults (seed values for the global policy)
    DEFAULT_REQUEST_LIMIT: Decimal = Field(default=Decimal("20"))
    DEFAULT_ACCOUNT_LIMIT: Decimal = Field(default=Decimal("100"))

    # API
    API_HOST: str = Field(default="127.0.0.1")
    API_PORT: int = Field(default=8000)
    API_PREFIX: str = Field(default="/api/v1")
    REQUEST_RATE_LIMIT: str = Field(default="30/minute")

    def configure_for_environment(self) -> None:
        """Configure settings based on environment - call this explicitly after creation."""
        if not self.DATABASE_URL:
            if self.ENVIRONMENT == "production":
                self.DATABASE_URL = os.getenv("DATABASE_URL", "")
                if self.DATABASE_URL.startswith("postgres://"):
                    # SQLAlchemy needs postgresql://
                    self.DATABASE_URL = self.DATABASE_URL.replace("postgres://", "postgresql://", 1)
                if not self.DATABASE_URL:
                    raise ValueError("DATABASE_URL must be set in production environment")
            else:
                self.DATABASE_URL = "sqlite:///./faucet.db"

        if self.LEDGER_BACKEND not in ("memory", "xrpl"):
            raise ValueError(f"Unknown LEDGER_BACKEND: {self.LEDGER_BACKEND}")

        self._configure_security_settings()

    def ensure_encryption_key(self) -> str:
        """Ensure encryption key exists, generate if needed."""
        if not self.ENCRYPTION_KEY:
            self.ENCRYPTION_KEY = self.generate_encryption_key()
        return self.ENCRYPTION_KEY

    def _configure_security_settings(self) -> None:
        """Configure API keys based on environment."""
        import secrets

        if self.ENVIRONMENT != "production":
            if not self.CLIENT_API_KEY:
                self.CLIENT_API_KEY = f"dev-client-{secrets.token_urlsafe(16)}"
            if not self.ADMIN_API_KEY:
                self.ADMIN_API_KEY = f"dev-admin-{secrets.token_urlsafe(16)}"
        else:
            if not self.CLIENT_API_KEY or not self.ADMIN_API_KEY:
                raise ValueError("CLIENT_API_KEY and ADMIN_API_KEY must be set in production")

    @staticmethod
    def generate_encryption_key() -> str:
        """Generate a new Fernet encryption key."""
        from cryptography.fernet import Fernet

        return Fernet.generate_key().decode()


# Create settings instance
settings = Settings()


def initialize_settings():
    """Initialize and configure settings - must be called before using settings."""
    settings.configure_for_environment()
    return settings

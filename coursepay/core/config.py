# coursepay/core/config.py
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,  # Environment vars are uppercase
        extra="ignore",      # Ignore unexpected vars instead of raising
    )

    # Core application settings
    DATABASE_URL: str
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    HOST: str = "0.0.0.0"
    PORT: int = 8101
    DEBUG: bool = False
    ENVIRONMENT: str = "development"
    LOG_FILE: str = "coursepay.log"
    LOG_MAX_BYTES: int = 10 * 1024 * 1024
    LOG_BACKUP_COUNT: int = 5
    # Webhook and refund audit trail; empty disables the separate file
    AUDIT_LOG_FILE: str | None = "coursepay-audit.log"

    # CORS settings
    ALLOWED_ORIGINS: list[str] = ["*"]  # In production, specify actual origins
    ALLOW_CREDENTIALS: bool = True
    ALLOWED_METHODS: list[str] = ["*"]
    ALLOWED_HEADERS: list[str] = ["*"]

    # JWT verification (tokens are issued by the LMS auth service)
    JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"

    # Shared secret for the cron trigger of billing jobs
    CRON_SECRET: str | None = None

    # Payment gateway credentials. Rows in payment_gateway_configs take precedence.
    RAZORPAY_KEY_ID: str | None = None
    RAZORPAY_KEY_SECRET: str | None = None
    RAZORPAY_WEBHOOK_SECRET: str | None = None
    STRIPE_SECRET_KEY: str | None = None
    STRIPE_WEBHOOK_SECRET: str | None = None

    # Billing policy
    PAYMENT_EXPIRY_MINUTES: int = 15
    RENEWAL_BATCH_SIZE: int = 100
    DEFAULT_SUBSCRIPTION_GATEWAY: str = "razorpay"
    DEFAULT_CURRENCY: str = "INR"


def _validate_settings(settings: Settings) -> None:
    """Validate critical application settings."""
    if not settings.DATABASE_URL:
        raise ValueError("DATABASE_URL is required")
    if not settings.JWT_SECRET:
        raise ValueError("JWT_SECRET is required")
    if settings.DEFAULT_SUBSCRIPTION_GATEWAY not in ("razorpay", "stripe", "wallet"):
        raise ValueError("DEFAULT_SUBSCRIPTION_GATEWAY must be razorpay, stripe or wallet")

    # Environment-specific validations
    if settings.ENVIRONMENT == "production" and settings.DEBUG:
        print("WARNING: DEBUG is enabled in production. Consider setting DEBUG=False.")
    if settings.ENVIRONMENT == "production" and not settings.CRON_SECRET:
        raise ValueError("CRON_SECRET is required in production")


# Initialize settings with error handling
try:
    settings = Settings()
    _validate_settings(settings)
except Exception as e:
    print(f"Error initializing settings: {e}")
    raise

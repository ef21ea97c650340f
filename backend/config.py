"""
Configuration management for the Storefront Order Service.

Loads settings from .env via pydantic-settings.

Notes:
    - STRIPE_TEST_MODE swaps every provider call for a simulated response
    - DATABASE_URL empty means orders live in process memory only
    - validate_production_settings() blocks test mode and open CORS in production
"""
import logging
from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── Application ─────────────────────────────────────────────────
    environment: str = "development"

    # ── Database ────────────────────────────────────────────────────
    # Empty → in-memory order store (degraded, process lifetime only)
    database_url: str = ""

    # ── Stripe ──────────────────────────────────────────────────────
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    stripe_test_mode: bool = False
    default_currency: str = "usd"

    # ── Orders ──────────────────────────────────────────────────────
    shipping_cost: Decimal = Decimal("10.00")  # flat, per order
    order_storage_type: str = "internal"       # internal | s3 | api

    # ── Object storage (ORDER_STORAGE_TYPE=s3) ──────────────────────
    aws_s3_bucket: str = ""
    aws_s3_region: str = "us-east-1"
    aws_access_key_id: str = ""
    aws_secret_access_key: str = ""

    # ── External order API (ORDER_STORAGE_TYPE=api) ────────────────
    database_api_url: str = ""
    database_api_key: str = ""

    # ── Admin panel sink / internal ingestion ───────────────────────
    admin_panel_api_url: str = ""
    admin_panel_api_key: str = ""
    internal_api_key: str = ""

    # ── Email (Resend) ──────────────────────────────────────────────
    resend_api_key: str = ""
    resend_from_email: str = "Your Brand <onboarding@resend.dev>"
    admin_email: str = ""

    # ── Auth (admin session JWT) ────────────────────────────────────
    jwt_secret: str = ""
    jwt_issuer: str = "storefront-admin"
    jwt_expires_minutes: int = 60 * 24 * 7
    auth_cookie_name: str = "admin-auth-token"

    # ── Outbound calls ──────────────────────────────────────────────
    outbound_timeout_seconds: float = 10.0

    # ── CORS ────────────────────────────────────────────────────────
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # allow unknown .env keys without crashing
    )

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    @property
    def database_configured(self) -> bool:
        return bool(self.database_url)

    @property
    def cookie_secure(self) -> bool:
        return self.environment == "production"

    def validate_production_settings(self):
        """
        Validate settings for production safety.

        Called during app startup. Production refuses to boot with simulated
        payments, wildcard CORS or a missing session secret; other environments
        only warn.
        """
        if self.environment == "production":
            if "*" in self.cors_origins:
                raise ValueError(
                    "CORS_ORIGINS must not contain '*' in production. "
                    "Set explicit allowed origins."
                )
            if self.stripe_test_mode:
                raise ValueError(
                    "STRIPE_TEST_MODE must be false in production. "
                    "Test mode accepts unsigned simulated webhooks."
                )
            if not self.jwt_secret:
                raise ValueError(
                    "JWT_SECRET must be set in production. "
                    "It is used to sign admin session cookies."
                )
            logger.info("Production settings validated")
        else:
            warnings = []
            if self.stripe_test_mode:
                warnings.append("STRIPE_TEST_MODE=true (payments are simulated)")
            if not self.database_configured:
                warnings.append("DATABASE_URL not set (orders kept in memory only)")
            if "*" in self.cors_origins:
                warnings.append("CORS_ORIGINS contains '*' (open access)")
            for w in warnings:
                logger.warning(f"⚠️  {w}")


# Global settings instance
settings = Settings()

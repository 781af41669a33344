"""
Configuration management for the Radeo Storefront API.

Loads settings from .env via pydantic-settings.

Notes:
    - validate_production_settings() enforces strict CORS and required secrets
      in production
    - Shiprocket and Razorpay credentials are optional in development; the
      adapters raise a provider error when called without them
"""
import logging

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # ── Database ────────────────────────────────────────────────────
    database_url: str = "sqlite:///./data/storefront.db"

    # ── Application ─────────────────────────────────────────────────
    environment: str = "development"
    app_name: str = "Radeo Storefront API"

    # ── Auth (JWT) ──────────────────────────────────────────────────
    jwt_secret: str = ""
    jwt_issuer: str = "radeo-api"
    jwt_access_ttl_minutes: int = 60 * 24

    # ── Shiprocket ──────────────────────────────────────────────────
    shiprocket_base_url: str = "https://apiv2.shiprocket.in/v1/external"
    shiprocket_email: str = ""
    shiprocket_password: str = ""
    shiprocket_pickup_location: str = "Primary"
    shiprocket_pickup_pincode: str = "110001"
    shiprocket_webhook_token: str = ""
    shiprocket_token_ttl_hours: int = 216  # tokens live 10 days; refresh a day early

    # Default parcel for a boxed pair of shoes
    package_weight_kg: float = 0.8
    package_length_cm: float = 33.0
    package_breadth_cm: float = 22.0
    package_height_cm: float = 12.0

    # ── Razorpay ────────────────────────────────────────────────────
    razorpay_base_url: str = "https://api.razorpay.com/v1"
    razorpay_key_id: str = ""
    razorpay_key_secret: str = ""
    razorpay_webhook_secret: str = ""

    # ── Commerce ────────────────────────────────────────────────────
    currency: str = "INR"
    flat_shipping_cost: float = 79.0
    free_shipping_threshold: float = 999.0
    cod_enabled: bool = True
    low_stock_threshold: int = 10
    coupon_validate_limit_per_hour: int = 10

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
    def shiprocket_configured(self) -> bool:
        return bool(self.shiprocket_email and self.shiprocket_password)

    @property
    def razorpay_configured(self) -> bool:
        return bool(self.razorpay_key_id and self.razorpay_key_secret)

    def validate_production_settings(self):
        """
        Validate settings for production safety.

        Called during app startup.
        """
        if self.environment == "production":
            if "*" in self.cors_origins:
                raise ValueError(
                    "CORS_ORIGINS must not contain '*' in production. "
                    "Set explicit allowed origins."
                )
            if not self.jwt_secret:
                raise ValueError(
                    "JWT_SECRET must be set in production. "
                    "It is used to sign customer and admin access tokens."
                )
            if not self.razorpay_webhook_secret:
                raise ValueError(
                    "RAZORPAY_WEBHOOK_SECRET must be set in production. "
                    "Unsigned payment webhooks are rejected."
                )
            if not self.shiprocket_webhook_token:
                raise ValueError(
                    "SHIPROCKET_WEBHOOK_TOKEN must be set in production. "
                    "It authenticates carrier status pushes."
                )
            logger.info("Production settings validated")
        else:
            warnings = []
            if "*" in self.cors_origins:
                warnings.append("CORS_ORIGINS contains '*' (open access)")
            if not self.shiprocket_configured:
                warnings.append("Shiprocket credentials missing (shipment calls will fail)")
            if not self.razorpay_webhook_secret:
                warnings.append("RAZORPAY_WEBHOOK_SECRET missing (payment webhooks rejected)")
            for w in warnings:
                logger.warning(f"⚠️  {w}")


# Global settings instance
settings = Settings()

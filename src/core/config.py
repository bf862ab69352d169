"""Application configuration management using Pydantic Settings."""

from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    Required settings will raise validation errors if not provided.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="storefront-checkout", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/staging/production)")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")
    max_request_body_size: int = Field(default=262144, description="Maximum request body size in bytes")

    # CORS
    cors_origins: str = Field(
        default="http://localhost:3000",
        description="Comma-separated list of allowed CORS origins",
    )

    # Persistent store
    store_backend: Literal["supabase", "memory"] = Field(
        default="supabase",
        description="Document store implementation (supabase for production, memory for local runs)",
    )
    supabase_url: str = Field(default="", description="Supabase project URL")
    supabase_secret_key: str = Field(default="", description="Supabase secret key for backend operations")

    # Mercado Pago
    mercadopago_access_token: str = Field(default="", description="Mercado Pago access token")
    mercadopago_api_url: str = Field(
        default="https://api.mercadopago.com",
        description="Mercado Pago REST API base URL",
    )
    gateway_timeout_seconds: float = Field(default=10.0, description="Timeout for payment gateway calls")

    # Public URLs
    public_base_url: str | None = Field(
        default=None,
        description="Public base URL used for gateway callback and webhook URLs. Falls back to the request host.",
    )

    # Shipping
    origin_postal_code: str = Field(default="14680057", description="Store/pickup postal code (8 digits)")
    free_shipping_threshold: Decimal = Field(default=Decimal("150.00"), description="Cart subtotal for free shipping")
    postal_lookup_url: str = Field(default="https://viacep.com.br/ws", description="ViaCEP base URL")
    postal_lookup_timeout_seconds: float = Field(default=5.0, description="Timeout for postal code lookups")

    # Checkout
    currency: str = Field(default="BRL", description="Storefront currency")
    max_order_draft_bytes: int = Field(
        default=16000,
        description="Maximum serialized order draft size carried in payment metadata",
    )

    @model_validator(mode="after")
    def require_supabase_credentials(self) -> "Settings":
        """Require Supabase credentials when the Supabase store is selected."""
        if self.store_backend == "supabase" and not (self.supabase_url and self.supabase_secret_key):
            raise ValueError("SUPABASE_URL and SUPABASE_SECRET_KEY are required when STORE_BACKEND=supabase")
        return self

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_mercadopago_test_mode(self) -> bool:
        """Check if using Mercado Pago test credentials."""
        return self.mercadopago_access_token.startswith("TEST-")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings singleton.

    Returns:
        Settings: Application settings instance.

    Note:
        Settings are cached using lru_cache for performance.
        Call get_settings.cache_clear() to reload settings.
    """
    return Settings()

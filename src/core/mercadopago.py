"""Mercado Pago HTTP client configuration."""

import logging

import httpx

from src.core.config import Settings

logger = logging.getLogger(__name__)


def configure_mercadopago(settings: Settings) -> bool:
    """Check Mercado Pago credentials at application startup.

    Missing credentials do not stop the application (shipping quotes and
    order reads keep working) but every checkout will fail with a
    ConfigurationError until the token is set.

    Returns:
        bool: True when an access token is configured.
    """
    if not settings.mercadopago_access_token:
        logger.error("MERCADOPAGO_ACCESS_TOKEN is not configured. Checkout and webhooks will fail.")
        return False
    if settings.is_mercadopago_test_mode:
        logger.info("Mercado Pago configured with test credentials")
    return True


def create_gateway_http_client(settings: Settings) -> httpx.AsyncClient:
    """Create the async HTTP client used for Mercado Pago API calls.

    Authentication headers are added per request so a missing token is
    reported when it is needed instead of at import time.
    """
    return httpx.AsyncClient(
        base_url=settings.mercadopago_api_url,
        timeout=httpx.Timeout(settings.gateway_timeout_seconds),
        headers={"Content-Type": "application/json"},
    )


def create_postal_http_client(settings: Settings) -> httpx.AsyncClient:
    """Create the async HTTP client used for postal code lookups."""
    return httpx.AsyncClient(timeout=httpx.Timeout(settings.postal_lookup_timeout_seconds))

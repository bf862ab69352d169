"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from src.api.middleware.error_handler import error_handler_middleware
from src.api.middleware.latency_logging import latency_logging_middleware
from src.api.middleware.request_size import request_size_limit_middleware
from src.api.routes import checkout, health, orders, webhooks
from src.core.config import get_settings
from src.core.mercadopago import (
    configure_mercadopago,
    create_gateway_http_client,
    create_postal_http_client,
)
from src.core.store import create_document_store
from src.services.gateway_client import CheckoutGatewayClient
from src.services.postal_service import PostalLookupClient

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Builds the document store and the outbound HTTP clients on startup and
    closes the clients on shutdown.

    Args:
        app: FastAPI application instance.

    Yields:
        None: Control back to the application.
    """
    # Startup
    settings = get_settings()
    logger.info("Starting %s in %s mode", settings.app_name, settings.app_env)

    app.state.store = create_document_store(settings)
    logger.info("Document store initialized (%s)", settings.store_backend)

    configure_mercadopago(settings)
    gateway_http = create_gateway_http_client(settings)
    postal_http = create_postal_http_client(settings)
    app.state.gateway_client = CheckoutGatewayClient(gateway_http, settings.mercadopago_access_token)
    app.state.postal_client = PostalLookupClient(postal_http, settings.postal_lookup_url)
    logger.info("HTTP clients initialized")

    yield
    # Shutdown
    await postal_http.aclose()
    await gateway_http.aclose()
    logger.info("HTTP clients closed")
    logger.info("Shutting down %s", settings.app_name)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Storefront Checkout API",
        description="Shipping quotes, payment checkout and order ledger for the apparel storefront",
        version="0.1.0",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Add error handler middleware (outermost - catches all errors)
    app.add_middleware(BaseHTTPMiddleware, dispatch=error_handler_middleware)

    # Add latency logging middleware (tracks request timing)
    app.add_middleware(BaseHTTPMiddleware, dispatch=latency_logging_middleware)

    # Add request size limit middleware (rejects oversized requests early)
    app.add_middleware(BaseHTTPMiddleware, dispatch=request_size_limit_middleware)

    # Mount health routes at root level (no prefix)
    app.include_router(health.router)

    # Create API v1 router for versioned endpoints
    api_v1_router = APIRouter(prefix="/api/v1")

    # Checkout and orders routes
    api_v1_router.include_router(checkout.router)
    api_v1_router.include_router(orders.router)

    # Webhook routes
    api_v1_router.include_router(webhooks.router)

    app.include_router(api_v1_router)

    return app


# Create application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )

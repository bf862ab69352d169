"""Pytest configuration and fixtures."""

import os
from collections.abc import Generator
from decimal import Decimal
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("MERCADOPAGO_ACCESS_TOKEN", "TEST-0000000000000000-000000-test")
os.environ.setdefault("PUBLIC_BASE_URL", "https://shop.example.com")

from src.core.memory_store import InMemoryDocumentStore  # noqa: E402
from src.schemas.checkout import CartLine, OrderDraft, ShippingAddress, ShippingOption  # noqa: E402
from src.schemas.payment import PaymentRecord, PreferenceResult  # noqa: E402
from src.services.gateway_client import CheckoutGatewayClient  # noqa: E402
from src.services.order_ledger import OrderLedger  # noqa: E402
from src.services.postal_service import PostalLookupClient  # noqa: E402
from src.services.preference_builder import CallbackUrls  # noqa: E402


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache.

    Yields:
        Settings: Test configuration settings.
    """
    from src.core.config import get_settings

    # Clear the cache to ensure fresh settings
    get_settings.cache_clear()

    settings = get_settings()
    yield settings

    # Clean up cache after tests
    get_settings.cache_clear()


@pytest.fixture
def sample_items() -> list[CartLine]:
    """Two cart lines totalling 179.80."""
    return [
        CartLine(
            product_id="prod-tee",
            title="Camiseta Básica",
            unit_price=Decimal("59.90"),
            quantity=2,
            size="M",
            color="Preto",
        ),
        CartLine(product_id="prod-cap", title="Boné", unit_price=Decimal("60.00"), quantity=1),
    ]


@pytest.fixture
def sample_address() -> ShippingAddress:
    """Complete shipping address in São Paulo."""
    return ShippingAddress(
        name="Ana Souza",
        street="Rua Augusta",
        number="1500",
        complement="Apto 12",
        neighborhood="Consolação",
        city="São Paulo",
        state="SP",
        postal_code="01304-001",
        phone="(11) 98765-4321",
    )


@pytest.fixture
def pac_option() -> ShippingOption:
    return ShippingOption(name="PAC", price=Decimal("25.00"), eta_days=5)


@pytest.fixture
def callback_urls() -> CallbackUrls:
    return CallbackUrls.from_base_url("https://shop.example.com")


@pytest.fixture
def order_draft_json(sample_items: list[CartLine], pac_option: ShippingOption, sample_address: ShippingAddress) -> str:
    """Serialized order draft as carried in payment metadata."""
    return OrderDraft(items=sample_items, shipping=pac_option, shipping_address=sample_address).model_dump_json()


@pytest.fixture
def approved_payment(order_draft_json: str) -> PaymentRecord:
    """Approved payment record for user u1."""
    return PaymentRecord.model_validate(
        {
            "id": "pay_1",
            "status": "approved",
            "status_detail": "accredited",
            "transaction_amount": 204.80,
            "currency_id": "BRL",
            "payment_method_id": "pix",
            "external_reference": "u1",
            "metadata": {"user_id": "u1", "order_draft": order_draft_json},
        }
    )


@pytest.fixture
def memory_store() -> InMemoryDocumentStore:
    """Fresh in-memory store with payment ids unique across orders."""
    return InMemoryDocumentStore(unique_fields={"orders": ("payment_id",)})


@pytest.fixture
def ledger(memory_store: InMemoryDocumentStore) -> OrderLedger:
    return OrderLedger(memory_store)


@pytest.fixture
def mock_gateway() -> MagicMock:
    """Mocked payment gateway client.

    Returns:
        MagicMock: Gateway with async create_preference and fetch_payment.
    """
    gateway = MagicMock(spec=CheckoutGatewayClient)
    gateway.create_preference = AsyncMock(
        return_value=PreferenceResult(
            preference_id="pref_123",
            redirect_url="https://www.mercadopago.com.br/checkout/v1/redirect?pref_id=pref_123",
            sandbox_redirect_url="https://sandbox.mercadopago.com.br/checkout/v1/redirect?pref_id=pref_123",
        )
    )
    gateway.fetch_payment = AsyncMock()
    return gateway


@pytest.fixture
def mock_postal_client() -> MagicMock:
    """Mocked postal code lookup client."""
    postal_client = MagicMock(spec=PostalLookupClient)
    postal_client.lookup = AsyncMock(return_value=None)
    return postal_client


@pytest.fixture
def client(mock_gateway: MagicMock, mock_postal_client: MagicMock) -> Generator[TestClient, None, None]:
    """Provide a test client for the FastAPI application.

    The lifespan builds a fresh in-memory store per test; the outbound
    gateway and postal clients are replaced with mocks.

    Yields:
        TestClient: FastAPI test client.
    """
    from src.main import app

    with TestClient(app) as test_client:
        app.state.gateway_client = mock_gateway
        app.state.postal_client = mock_postal_client
        yield test_client

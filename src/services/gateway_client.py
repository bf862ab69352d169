"""Checkout gateway client for the Mercado Pago REST API."""

import logging
import time
from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from src.api.middleware.error_handler import ConfigurationError, GatewayError
from src.schemas.payment import PaymentPreference, PaymentRecord, PreferenceResult

logger = logging.getLogger(__name__)

# Retry configuration for read-only payment fetches
MAX_FETCH_ATTEMPTS = 3
MIN_WAIT_SECONDS = 0.5
MAX_WAIT_SECONDS = 4

PREFERENCES_PATH = "/checkout/preferences"
PAYMENTS_PATH = "/v1/payments/{payment_id}"


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class CheckoutGatewayClient:
    """Client for creating checkout preferences and fetching payments.

    Preference creation is the first money-relevant side effect of checkout
    and is never retried automatically. Payment fetches are read-only and
    are retried on transport errors.
    """

    def __init__(self, http_client: httpx.AsyncClient, access_token: str) -> None:
        """Initialize the gateway client.

        Args:
            http_client: Async client with the gateway base URL and timeout.
            access_token: Gateway access token. Empty means not configured.
        """
        self.http_client = http_client
        self.access_token = access_token

    def _auth_headers(self) -> dict[str, str]:
        if not self.access_token:
            raise ConfigurationError("Payment gateway is not configured. Please set MERCADOPAGO_ACCESS_TOKEN.")
        return {"Authorization": f"Bearer {self.access_token}"}

    async def create_preference(self, preference: PaymentPreference) -> PreferenceResult:
        """Create a checkout preference.

        Args:
            preference: Preference built by the preference builder.

        Returns:
            PreferenceResult: Preference id and redirect URLs.

        Raises:
            ConfigurationError: If no access token is configured.
            GatewayError: On non-2xx responses, timeouts or transport errors.
        """
        headers = self._auth_headers()
        start_time = time.perf_counter()

        try:
            response = await self.http_client.post(PREFERENCES_PATH, json=preference.to_wire(), headers=headers)
        except httpx.TimeoutException as e:
            logger.error("Timed out creating payment preference for %s", preference.external_reference)
            raise GatewayError("Payment gateway timed out") from e
        except httpx.HTTPError as e:
            logger.error("Transport error creating payment preference: %s", str(e))
            raise GatewayError("Payment gateway unreachable") from e

        latency_ms = (time.perf_counter() - start_time) * 1000
        body = _response_body(response)

        if not response.is_success:
            logger.error(
                "Gateway rejected preference (status %d): %s",
                response.status_code,
                body,
                extra={"latency_ms": round(latency_ms, 2)},
            )
            raise GatewayError(
                "Error creating payment preference",
                provider_status=response.status_code,
                provider_body=body,
            )

        if not isinstance(body, dict) or not body.get("id") or not body.get("init_point"):
            logger.error("Gateway returned an unexpected preference body: %s", body)
            raise GatewayError("Payment gateway returned no checkout URL", provider_status=response.status_code)

        logger.info(
            "Created payment preference %s for %s in %.2fms",
            body["id"],
            preference.external_reference,
            latency_ms,
        )
        return PreferenceResult(
            preference_id=str(body["id"]),
            redirect_url=body["init_point"],
            sandbox_redirect_url=body.get("sandbox_init_point"),
        )

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(MAX_FETCH_ATTEMPTS),
        wait=wait_exponential(multiplier=MIN_WAIT_SECONDS, min=MIN_WAIT_SECONDS, max=MAX_WAIT_SECONDS),
        reraise=True,
    )
    async def _get_payment(self, payment_id: str, headers: dict[str, str]) -> httpx.Response:
        """GET a payment with retry on transport errors."""
        return await self.http_client.get(PAYMENTS_PATH.format(payment_id=payment_id), headers=headers)

    async def fetch_payment(self, payment_id: str) -> PaymentRecord:
        """Fetch the authoritative state of a payment.

        Args:
            payment_id: Gateway payment id.

        Returns:
            PaymentRecord: Validated payment record.

        Raises:
            ConfigurationError: If no access token is configured.
            GatewayError: On non-2xx responses, exhausted retries or malformed records.
        """
        headers = self._auth_headers()

        try:
            response = await self._get_payment(payment_id, headers)
        except httpx.HTTPError as e:
            logger.error("Failed to fetch payment %s: %s", payment_id, str(e))
            raise GatewayError("Payment gateway unreachable") from e

        body = _response_body(response)
        if not response.is_success:
            logger.warning("Gateway returned %d for payment %s: %s", response.status_code, payment_id, body)
            raise GatewayError(
                "Error fetching payment",
                provider_status=response.status_code,
                provider_body=body,
            )

        try:
            return PaymentRecord.model_validate(body)
        except PydanticValidationError as e:
            logger.error("Malformed payment record for %s: %s", payment_id, e.errors())
            raise GatewayError("Payment gateway returned a malformed payment", provider_status=response.status_code) from e

"""Postal code (CEP) lookup against ViaCEP."""

import logging

import httpx

from src.api.middleware.error_handler import PostalLookupError
from src.schemas.checkout import PostalAddress

logger = logging.getLogger(__name__)


class PostalLookupClient:
    """Resolves Brazilian postal codes to address fields."""

    def __init__(self, http_client: httpx.AsyncClient, base_url: str = "https://viacep.com.br/ws") -> None:
        """Initialize the lookup client.

        Args:
            http_client: Shared async HTTP client (carries the request timeout).
            base_url: ViaCEP base URL.
        """
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")

    async def lookup(self, postal_code: str) -> PostalAddress | None:
        """Look up an 8-digit postal code.

        Args:
            postal_code: Postal code, digits only.

        Returns:
            PostalAddress | None: Address fields, or None when the code does not exist.

        Raises:
            PostalLookupError: On timeout, transport failure or unexpected response.
        """
        url = f"{self.base_url}/{postal_code}/json/"
        try:
            response = await self.http_client.get(url)
        except httpx.TimeoutException as e:
            logger.warning("Postal lookup timed out for %s", postal_code)
            raise PostalLookupError("Postal code lookup timed out") from e
        except httpx.HTTPError as e:
            logger.warning("Postal lookup failed for %s: %s", postal_code, str(e))
            raise PostalLookupError() from e

        # ViaCEP answers 400 for malformed codes
        if response.status_code == 400:
            return None
        if response.status_code != 200:
            logger.warning("Postal lookup returned %d for %s", response.status_code, postal_code)
            raise PostalLookupError()

        try:
            data = response.json()
        except ValueError as e:
            raise PostalLookupError("Postal code lookup returned an invalid response") from e

        if data.get("erro"):
            return None

        return PostalAddress(
            postal_code=postal_code,
            street=data.get("logradouro") or "",
            neighborhood=data.get("bairro") or "",
            city=data.get("localidade") or "",
            state=data.get("uf") or "",
        )

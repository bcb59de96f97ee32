"""SMS gateway HTTP client.

Each job carries its own bearer token, so the gateway account is chosen
per message rather than per worker.
"""

import logging
from functools import lru_cache
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from clinic_jobs.config import get_settings
from clinic_jobs.integrations.circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)


class SmsClient:
    """SMS gateway client."""

    def __init__(self, api_url: str | None = None, transport: httpx.AsyncBaseTransport | None = None) -> None:
        """Initialize SMS client.

        Args:
            api_url: Gateway endpoint, defaults to the configured one
            transport: Optional httpx transport (tests)
        """
        self.api_url = api_url or get_settings().sms_api_url
        self.circuit_breaker = CircuitBreaker("SMS gateway")
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create httpx client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"Content-Type": "application/json"},
                timeout=15.0,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close httpx client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        reraise=True,
    )
    async def _post(self, body: dict[str, Any], token: str) -> httpx.Response:
        self.circuit_breaker.guard()

        client = await self._get_client()
        try:
            response = await client.post(self.api_url, json=body, headers={"Authorization": f"Bearer {token}"})
        except httpx.TransportError:
            self.circuit_breaker.record_failure()
            raise

        if response.status_code >= 500:
            self.circuit_breaker.record_failure()
        else:
            self.circuit_breaker.record_success()
        return response

    async def send(self, message: str, phone: str, business_name: str, token: str) -> bool:
        """Send an SMS.

        Args:
            message: Message text
            phone: Destination phone number
            business_name: Sender name shown to the recipient (optional)
            token: Gateway authorization token

        Returns:
            True if the gateway accepted the message, False otherwise

        Raises:
            httpx.TransportError: If the gateway is unreachable
            DownstreamError: If the circuit breaker is open
        """
        body: dict[str, Any] = {"to": phone, "message": message}
        if business_name:
            body["sender"] = business_name

        response = await self._post(body, token)
        if response.is_success:
            return True

        logger.warning(f"SMS gateway rejected message to {phone}: HTTP {response.status_code}")
        return False


@lru_cache()
def get_sms_client() -> SmsClient:
    """Get SMS client instance (lazy init)."""
    return SmsClient()

"""Cliniko HTTP client with retry and circuit breaker.

HTTP Basic auth with the API key as username and an empty password.
Cliniko rejects requests without a descriptive User-Agent.
"""

import base64
from functools import lru_cache
from typing import Any
from urllib.parse import quote

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from clinic_jobs.config import get_settings
from clinic_jobs.integrations.circuit_breaker import CircuitBreaker


class ClinikoClient:
    """Cliniko REST API client."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize Cliniko client.

        Args:
            api_key: API key, defaults to the configured one
            base_url: API base URL, defaults to the shard URL from settings
            transport: Optional httpx transport (tests)
        """
        self.settings = get_settings()
        self.api_key = api_key if api_key is not None else self.settings.cliniko_api_key
        self.base_url = base_url or self.settings.cliniko_base_url
        self.user_agent = self.settings.cliniko_user_agent
        self.circuit_breaker = CircuitBreaker("Cliniko")
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create httpx client."""
        if self._client is None:
            auth_string = base64.b64encode(f"{self.api_key}:".encode()).decode()
            headers = {
                "Authorization": f"Basic {auth_string}",
                "Accept": "application/json",
                "Content-Type": "application/json",
                "User-Agent": self.user_agent,
            }
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=30.0,
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
    async def _request(self, method: str, path: str, data: dict[str, Any] | None = None) -> httpx.Response:
        """Make HTTP request to Cliniko, retrying transport errors.

        Args:
            method: HTTP method
            path: Path relative to the API base URL
            data: JSON request body

        Returns:
            HTTP response

        Raises:
            DownstreamError: If the circuit breaker is open
            httpx.HTTPError: On transport or HTTP status errors
        """
        self.circuit_breaker.guard()

        client = await self._get_client()
        try:
            response = await client.request(method, path, json=data)
            response.raise_for_status()
            self.circuit_breaker.record_success()
            return response
        except httpx.HTTPError:
            self.circuit_breaker.record_failure()
            raise

    async def cancel_appointment(
        self,
        appointment_id: str,
        cancellation_note: str = "",
        cancellation_reason: int = 50,
        apply_to_repeats: bool = False,
    ) -> None:
        """Cancel an individual appointment.

        Args:
            appointment_id: Cliniko appointment ID
            cancellation_note: Free-text note stored with the cancellation
            cancellation_reason: Cliniko cancellation reason code (50 = other)
            apply_to_repeats: Also cancel the rest of a recurring series

        Raises:
            httpx.HTTPError: If Cliniko rejects the request
            DownstreamError: If the circuit breaker is open
        """
        await self._request(
            "PATCH",
            f"/individual_appointments/{quote(appointment_id, safe='')}/cancel",
            {
                "cancellation_note": cancellation_note,
                "cancellation_reason": cancellation_reason,
                "apply_to_repeats": apply_to_repeats,
            },
        )


@lru_cache()
def get_cliniko_client() -> ClinikoClient:
    """Get Cliniko client instance (lazy init)."""
    return ClinikoClient()

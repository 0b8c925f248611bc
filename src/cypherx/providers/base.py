"""Shared HTTP plumbing for external providers.

Each request opens a short-lived ``httpx.AsyncClient``. A transport can be
injected (``httpx.MockTransport`` in tests).
"""

import logging
from typing import Any, Optional

import httpx

from cypherx.errors import ProviderUnavailable

logger = logging.getLogger(__name__)


class HTTPProvider:
    """Base class for JSON-over-HTTP providers."""

    name = "http"

    def __init__(
        self,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    def _headers(self) -> dict:
        return {"Accept": "application/json"}

    async def _get_json(
        self,
        url: str,
        params: Optional[dict] = None,
        not_found_ok: bool = True,
    ) -> Optional[Any]:
        """GET ``url`` and decode JSON.

        Returns None for 404 when ``not_found_ok``; "not found" is an answer,
        not an outage.

        Raises:
            ProviderUnavailable: transport errors, 5xx/429, undecodable body
        """
        try:
            async with self._client() as client:
                response = await client.get(url, params=params, headers=self._headers())
        except httpx.HTTPError as e:
            logger.error(f"{self.name} request failed: {type(e).__name__}: {e}")
            raise ProviderUnavailable(f"{self.name} is unreachable", provider=self.name) from e

        if response.status_code == 404 and not_found_ok:
            logger.debug(f"{self.name}: 404 for {url}")
            return None
        if response.status_code >= 400:
            logger.error(f"{self.name} API error: {response.status_code} - {response.text[:200]}")
            raise ProviderUnavailable(
                f"{self.name} returned HTTP {response.status_code}", provider=self.name
            )
        return self._decode(response)

    def _decode(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"{self.name} returned invalid JSON: {response.text[:200]}")
            raise ProviderUnavailable(f"{self.name} returned invalid JSON", provider=self.name) from e

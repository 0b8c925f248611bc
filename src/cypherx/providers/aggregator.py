"""0x Swap API v2 client (allowance-holder flow).

API docs: https://0x.org/docs/api#tag/Swap

``/price`` is the cheap indicative endpoint; ``/quote`` returns a binding,
executable transaction and requires ``taker``.
"""

import logging
from typing import Optional

import httpx

from cypherx.errors import InvalidInput, ProviderUnavailable, QuoteUnavailable
from cypherx.providers.base import HTTPProvider

logger = logging.getLogger(__name__)

ZEROX_API_URL = "https://api.0x.org"
ZEROX_PRICE_PATH = "/swap/allowance-holder/price"
ZEROX_QUOTE_PATH = "/swap/allowance-holder/quote"


def _error_reason(data: Optional[dict]) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    if data.get("reason"):
        return str(data["reason"])
    errors = data.get("validationErrors") or (data.get("data") or {}).get("details") or []
    if errors and isinstance(errors[0], dict):
        return errors[0].get("description") or errors[0].get("reason")
    return data.get("message") or data.get("name")


class ZeroExClient(HTTPProvider):
    """Swap aggregator client for a single chain."""

    name = "0x"

    def __init__(
        self,
        chain_id: int,
        api_key: str = "",
        base_url: str = ZEROX_API_URL,
        fee_recipient: Optional[str] = None,
        fee_bps: Optional[int] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(timeout=timeout, transport=transport)
        self.chain_id = chain_id
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.fee_recipient = fee_recipient
        self.fee_bps = fee_bps

    def _headers(self) -> dict:
        headers = {"Accept": "application/json", "0x-version": "v2"}
        if self.api_key:
            headers["0x-api-key"] = self.api_key
        return headers

    def build_params(
        self,
        sell_token: str,
        buy_token: str,
        sell_amount: int,
        slippage_bps: int,
        taker: Optional[str] = None,
    ) -> dict:
        params = {
            "chainId": str(self.chain_id),
            "sellToken": sell_token,
            "buyToken": buy_token,
            "sellAmount": str(sell_amount),
            "slippageBps": str(slippage_bps),
        }
        if taker:
            params["taker"] = taker
        if self.fee_recipient and self.fee_bps:
            params["integratorFeeRecipient"] = self.fee_recipient
            params["integratorFeeBps"] = str(self.fee_bps)
        return params

    async def _request(self, path: str, params: dict) -> dict:
        url = f"{self.base_url}{path}"
        logger.debug(
            f"0x request {path}: {params['sellAmount']} {params['sellToken']} -> {params['buyToken']}"
        )
        try:
            async with self._client() as client:
                response = await client.get(url, params=params, headers=self._headers())
        except httpx.HTTPError as e:
            logger.error(f"0x request failed: {type(e).__name__}: {e}")
            raise ProviderUnavailable("Swap aggregator is unreachable", provider=self.name) from e

        if response.status_code >= 500 or response.status_code == 429:
            logger.error(f"0x API error: {response.status_code} - {response.text[:200]}")
            raise ProviderUnavailable(
                f"Swap aggregator returned HTTP {response.status_code}", provider=self.name
            )

        data = self._decode(response)
        if response.status_code >= 400:
            reason = _error_reason(data) or "Failed to get quote"
            logger.warning(f"0x rejected request: {response.status_code} - {reason}")
            raise QuoteUnavailable(reason)

        if not isinstance(data, dict):
            raise ProviderUnavailable("Unexpected aggregator response", provider=self.name)
        if data.get("liquidityAvailable") is False:
            raise QuoteUnavailable("Insufficient liquidity for this swap")
        if not data.get("buyAmount"):
            raise QuoteUnavailable("Aggregator returned no buy amount")
        return data

    async def get_price(
        self,
        sell_token: str,
        buy_token: str,
        sell_amount: int,
        slippage_bps: int = 100,
        taker: Optional[str] = None,
    ) -> dict:
        """Indicative price (non-binding)."""
        params = self.build_params(sell_token, buy_token, sell_amount, slippage_bps, taker)
        return await self._request(ZEROX_PRICE_PATH, params)

    async def get_quote(
        self,
        sell_token: str,
        buy_token: str,
        sell_amount: int,
        taker: str,
        slippage_bps: int = 100,
    ) -> dict:
        """Firm quote with an executable ``transaction``."""
        if not taker:
            raise InvalidInput("A firm quote requires the taker address")
        params = self.build_params(sell_token, buy_token, sell_amount, slippage_bps, taker)
        data = await self._request(ZEROX_QUOTE_PATH, params)
        if not isinstance(data.get("transaction"), dict) or not data["transaction"].get("to"):
            raise QuoteUnavailable("Aggregator quote has no transaction")
        return data

"""Chain-data provider over JSON-RPC.

Standard ``eth_*`` methods plus Alchemy's token enumeration extensions
(``alchemy_getTokenBalances`` / ``alchemy_getTokenMetadata``).
"""

import itertools
import logging
from typing import Any, Optional

import httpx

from cypherx.errors import ProviderUnavailable, RpcError
from cypherx.providers.base import HTTPProvider
from cypherx.utils.addresses import DECIMALS_SELECTOR, encode_balance_of

logger = logging.getLogger(__name__)


def _hex_to_int(value: Optional[str]) -> int:
    if value in (None, "", "0x"):
        return 0
    return int(value, 16)


class ChainDataProvider(HTTPProvider):
    """JSON-RPC client for the single target chain."""

    name = "rpc"

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(timeout=timeout, transport=transport)
        self.rpc_url = rpc_url
        self._ids = itertools.count(1)

    async def _post(self, payload: Any) -> Any:
        try:
            async with self._client() as client:
                response = await client.post(self.rpc_url, json=payload, headers=self._headers())
        except httpx.HTTPError as e:
            logger.error(f"RPC request failed: {type(e).__name__}: {e}")
            raise ProviderUnavailable("RPC node is unreachable", provider=self.name) from e

        if response.status_code != 200:
            logger.error(f"RPC HTTP error: {response.status_code} - {response.text[:200]}")
            raise ProviderUnavailable(
                f"RPC node returned HTTP {response.status_code}", provider=self.name
            )
        return self._decode(response)

    async def rpc(self, method: str, params: list) -> Any:
        """Call one JSON-RPC method and return its ``result``.

        Raises:
            RpcError: node answered with an error object
            ProviderUnavailable: transport fault
        """
        logger.debug(f"RPC {method}")
        data = await self._post(
            {"jsonrpc": "2.0", "method": method, "params": params, "id": next(self._ids)}
        )
        if not isinstance(data, dict):
            raise ProviderUnavailable(f"Unexpected RPC response for {method}", provider=self.name)
        if data.get("error"):
            error = data["error"]
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            code = error.get("code") if isinstance(error, dict) else None
            logger.warning(f"RPC {method} error: {message}")
            raise RpcError(message, rpc_code=code)
        return data.get("result")

    async def rpc_batch(self, calls: list[tuple[str, list]]) -> list[Any]:
        """Send several calls in one HTTP round trip. Results keep call order.

        Individual errors come back as None.
        """
        if not calls:
            return []
        ids = [next(self._ids) for _ in calls]
        payload = [
            {"jsonrpc": "2.0", "method": method, "params": params, "id": call_id}
            for call_id, (method, params) in zip(ids, calls)
        ]
        data = await self._post(payload)
        if not isinstance(data, list):
            raise ProviderUnavailable("Unexpected RPC batch response", provider=self.name)

        by_id = {item.get("id"): item for item in data if isinstance(item, dict)}
        results = []
        for call_id, (method, _) in zip(ids, calls):
            item = by_id.get(call_id) or {}
            if item.get("error"):
                logger.warning(f"RPC batch {method} error: {item['error']}")
                results.append(None)
            else:
                results.append(item.get("result"))
        return results

    # Balances

    async def get_balance(self, address: str) -> int:
        """Native balance in wei."""
        return _hex_to_int(await self.rpc("eth_getBalance", [address, "latest"]))

    async def get_token_balance(self, token: str, owner: str) -> int:
        """ERC-20 balanceOf in smallest units."""
        result = await self.call(token, encode_balance_of(owner))
        return _hex_to_int(result)

    async def get_token_balances(self, address: str) -> list[tuple[str, int]]:
        """All indexed ERC-20 balances for ``address`` as (contract, raw)."""
        result = await self.rpc("alchemy_getTokenBalances", [address, "erc20"]) or {}
        if not isinstance(result, dict):
            raise ProviderUnavailable("Unexpected token balance response", provider=self.name)
        balances = []
        for entry in result.get("tokenBalances") or []:
            if not isinstance(entry, dict) or entry.get("error"):
                continue
            contract = entry.get("contractAddress")
            if not contract:
                continue
            try:
                raw = _hex_to_int(entry.get("tokenBalance"))
            except (TypeError, ValueError):
                logger.warning(f"Skipping malformed balance for {contract}: {entry.get('tokenBalance')!r}")
                continue
            balances.append((contract, raw))
        return balances

    async def get_token_metadata(self, addresses: list[str]) -> dict[str, dict]:
        """Batched metadata lookup. Keys are lower-cased addresses."""
        results = await self.rpc_batch(
            [("alchemy_getTokenMetadata", [address]) for address in addresses]
        )
        return {
            address.lower(): result
            for address, result in zip(addresses, results)
            if isinstance(result, dict)
        }

    # Contract reads

    async def call(self, to: str, data: str) -> str:
        return await self.rpc("eth_call", [{"to": to, "data": data}, "latest"])

    async def get_decimals(self, token: str) -> Optional[int]:
        """On-chain decimals(), or None when the contract does not answer."""
        try:
            result = await self.call(token, DECIMALS_SELECTOR)
        except RpcError as e:
            logger.warning(f"decimals() reverted for {token}: {e}")
            return None
        if not result or result == "0x":
            return None
        value = _hex_to_int(result)
        return value if value <= 255 else None

    # Transactions

    async def get_transaction_count(self, address: str) -> int:
        return _hex_to_int(await self.rpc("eth_getTransactionCount", [address, "pending"]))

    async def get_gas_price(self) -> int:
        return _hex_to_int(await self.rpc("eth_gasPrice", []))

    async def send_raw_transaction(self, raw_tx: bytes) -> str:
        """Broadcast and return the transaction hash."""
        raw_hex = "0x" + bytes(raw_tx).hex()
        tx_hash = await self.rpc("eth_sendRawTransaction", [raw_hex])
        if not tx_hash:
            raise RpcError("Node did not return a transaction hash")
        return tx_hash.lower()

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[dict]:
        """Receipt, or None while the transaction is pending."""
        return await self.rpc("eth_getTransactionReceipt", [tx_hash])

"""Balance & Holdings Aggregator.

Fetches native balance and ERC-20 holdings from the chain-data provider.
Provider faults come back as ``ProviderFailure`` values so a portfolio view
can offer a retry instead of crashing; "no holdings" is an empty list.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Union

from cypherx.errors import ProviderUnavailable, WalletError
from cypherx.models import BalanceSnapshot, ProviderFailure, TokenDescriptor, TokenHolding
from cypherx.providers.chain import ChainDataProvider
from cypherx.services.catalog import TokenCatalog
from cypherx.utils.addresses import normalize_address
from cypherx.utils.locks import SingleFlight

logger = logging.getLogger(__name__)

BalanceResult = Union[BalanceSnapshot, ProviderFailure]
HoldingsResult = Union[list[TokenHolding], ProviderFailure]
UpdateCallback = Callable[[BalanceResult], Optional[Awaitable[None]]]


class BalanceAggregator:
    def __init__(
        self,
        chain: ChainDataProvider,
        catalog: Optional[TokenCatalog] = None,
        refresh_interval: float = 30.0,
        holdings_limit: int = 30,
        poll_holdings: bool = False,
    ):
        self._chain = chain
        self._catalog = catalog
        self.refresh_interval = refresh_interval
        self.holdings_limit = holdings_limit
        self.poll_holdings = poll_holdings
        self._inflight = SingleFlight("balance_refresh")
        self._snapshots: dict[str, BalanceSnapshot] = {}
        self._failures: dict[str, ProviderFailure] = {}
        self._pollers: dict[str, asyncio.Task] = {}

    async def fetch_balance(self, address: str, include_holdings: bool = False) -> BalanceResult:
        """Native balance (plus holdings when asked) as one snapshot.

        Raises:
            InvalidAddress: before any network call
        """
        address = normalize_address(address)
        try:
            native_raw = await self._chain.get_balance(address)
        except ProviderUnavailable as e:
            logger.error(f"Balance fetch failed for {address}: {e}")
            return ProviderFailure(address=address, operation="fetch_balance", error=str(e))

        holdings: list[TokenHolding] = []
        if include_holdings:
            result = await self.fetch_holdings(address)
            if isinstance(result, ProviderFailure):
                return result
            holdings = result

        return BalanceSnapshot(address=address, native_balance_raw=native_raw, holdings=holdings)

    async def fetch_holdings(self, address: str) -> HoldingsResult:
        """Non-zero ERC-20 holdings, capped at ``holdings_limit``.

        Returns [] when the provider has nothing indexed for the address.
        """
        address = normalize_address(address)
        try:
            balances = await self._chain.get_token_balances(address)
            non_zero = [(contract, raw) for contract, raw in balances if raw > 0]
            non_zero = non_zero[: self.holdings_limit]
            if not non_zero:
                return []
            metadata = await self._chain.get_token_metadata([contract for contract, _ in non_zero])
        except ProviderUnavailable as e:
            logger.error(f"Holdings fetch failed for {address}: {e}")
            return ProviderFailure(address=address, operation="fetch_holdings", error=str(e))

        holdings = []
        for contract, raw in non_zero:
            meta = metadata.get(contract.lower()) or {}
            symbol = meta.get("symbol") or "???"
            decimals = meta.get("decimals")
            if decimals is None:
                decimals = await self._lookup_decimals(contract, symbol)
            if decimals is None:
                logger.warning(f"Skipping holding {contract}: decimals unknown")
                continue
            if self._catalog is not None:
                self._catalog.remember_decimals(contract, int(decimals))
            holdings.append(
                TokenHolding(
                    contract_address=contract,
                    symbol=symbol,
                    decimals=int(decimals),
                    raw_balance=raw,
                    name=meta.get("name") or "",
                    logo_url=meta.get("logo"),
                )
            )
        return holdings

    async def _lookup_decimals(self, contract: str, symbol: str) -> Optional[int]:
        if self._catalog is None:
            return None
        try:
            token = await self._catalog.ensure_decimals(
                TokenDescriptor(address=contract, symbol=symbol)
            )
        except WalletError as e:
            logger.warning(f"Decimals lookup failed for {contract}: {e}")
            return None
        return token.decimals

    # ======================
    # Refresh policy
    # ======================

    async def refresh(self, address: str, include_holdings: Optional[bool] = None) -> BalanceResult:
        """Refresh the cached snapshot.

        At most one refresh per address is in flight; a second trigger joins
        the running one instead of issuing another provider call.
        """
        address = normalize_address(address)
        if include_holdings is None:
            include_holdings = self.poll_holdings

        async def _do_refresh() -> BalanceResult:
            result = await self.fetch_balance(address, include_holdings=include_holdings)
            key = address.lower()
            if isinstance(result, BalanceSnapshot):
                self._snapshots[key] = result
                self._failures.pop(key, None)
            else:
                self._failures[key] = result
            return result

        return await self._inflight.run(address, _do_refresh)

    def latest(self, address: str) -> Optional[BalanceSnapshot]:
        return self._snapshots.get(address.lower())

    def last_failure(self, address: str) -> Optional[ProviderFailure]:
        return self._failures.get(address.lower())

    def is_polling(self, address: str) -> bool:
        task = self._pollers.get(address.lower())
        return task is not None and not task.done()

    def start_polling(self, address: str, on_update: Optional[UpdateCallback] = None) -> asyncio.Task:
        """Refresh now and then every ``refresh_interval`` seconds until stopped."""
        address = normalize_address(address)
        key = address.lower()
        if self.is_polling(address):
            return self._pollers[key]

        async def _poll() -> None:
            while True:
                result = await self.refresh(address)
                if on_update is not None:
                    maybe = on_update(result)
                    if asyncio.iscoroutine(maybe):
                        await maybe
                await asyncio.sleep(self.refresh_interval)

        task = asyncio.create_task(_poll(), name=f"balance-poll-{key}")
        self._pollers[key] = task
        logger.debug(f"Started balance polling for {address}")
        return task

    async def stop_polling(self, address: str) -> None:
        key = address.lower()
        task = self._pollers.pop(key, None)
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug(f"Stopped balance polling for {address}")

    async def stop_all(self) -> None:
        for key in list(self._pollers):
            await self.stop_polling(key)
        self._inflight.cancel_all()

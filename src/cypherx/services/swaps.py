"""Swap Quote & Execution Engine.

Two phases, mirroring the aggregator's price/quote split:

1. ``get_indicative_price`` - cheap, non-binding, re-requested on every edit.
2. ``get_firm_quote`` - binding and short-lived, fetched right before
   ``execute``.

``execute`` only accepts a firm quote that belongs to the current intent,
was issued to the signing address and has not expired. ``swap`` retries
exactly once with a fresh firm quote when execution reports the quote as
expired.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Optional

from cypherx.errors import (
    BroadcastFailed,
    InsufficientBalance,
    InvalidInput,
    QuoteExpired,
    StaleQuote,
)
from cypherx.models import Quote, SwapIntent, TokenDescriptor, TxDirection, TxHandle, TxStatus, UnsignedTx
from cypherx.providers.aggregator import ZeroExClient
from cypherx.services.catalog import TokenCatalog
from cypherx.services.transactions import TransactionService
from cypherx.utils.addresses import normalize_address, same_address
from cypherx.utils.units import from_smallest_unit, to_decimal
from cypherx.vault import Session

logger = logging.getLogger(__name__)

DEFAULT_SWAP_GAS = 500000

# Node/aggregator phrases meaning the calldata is no longer valid
_STALE_MARKERS = ("expired", "deadline", "stale", "too old", "quote is no longer valid")


def _is_stale_error(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in _STALE_MARKERS)


def _hex_or_int(value) -> Optional[int]:
    if value is None or value == "":
        return None
    if isinstance(value, int):
        return value
    value = str(value)
    return int(value, 16) if value.startswith("0x") else int(value)


class SwapEngine:
    def __init__(
        self,
        aggregator: ZeroExClient,
        transactions: TransactionService,
        catalog: Optional[TokenCatalog] = None,
        quote_ttl_seconds: int = 60,
        gas_buffer_percent: int = 20,
    ):
        self._aggregator = aggregator
        self._transactions = transactions
        self._catalog = catalog
        self.quote_ttl_seconds = quote_ttl_seconds
        self.gas_buffer_percent = gas_buffer_percent

    async def _resolve(self, intent: SwapIntent) -> SwapIntent:
        """Validate and make sure both sides carry real decimals."""
        intent.validate()
        if self._catalog is None:
            intent.sell_token.require_decimals()
            intent.buy_token.require_decimals()
            return intent
        sell = await self._catalog.ensure_decimals(intent.sell_token)
        buy = await self._catalog.ensure_decimals(intent.buy_token)
        return SwapIntent(
            sell_token=sell,
            buy_token=buy,
            sell_amount=intent.sell_amount,
            slippage_bps=intent.slippage_bps,
        )

    def _build_quote(
        self,
        intent: SwapIntent,
        data: dict,
        firm: bool,
        taker: Optional[str] = None,
    ) -> Quote:
        price_impact = data.get("estimatedPriceImpact") or data.get("priceImpact")
        return Quote(
            intent=intent,
            sell_amount_raw=int(data.get("sellAmount") or intent.sell_amount_raw),
            buy_amount_raw=int(data["buyAmount"]),
            firm=firm,
            raw_payload=data,
            taker=taker,
            transaction=data.get("transaction") if firm else None,
            allowance_target=data.get("allowanceTarget"),
            price_impact=to_decimal(price_impact) if price_impact not in (None, "") else None,
            ttl_seconds=self.quote_ttl_seconds,
        )

    async def get_indicative_price(self, intent: SwapIntent, taker: Optional[str] = None) -> Quote:
        """Non-binding estimate for live display. Never executable."""
        intent = await self._resolve(intent)
        data = await self._aggregator.get_price(
            sell_token=intent.sell_token.address,
            buy_token=intent.buy_token.address,
            sell_amount=intent.sell_amount_raw,
            slippage_bps=intent.slippage_bps,
            taker=taker,
        )
        quote = self._build_quote(intent, data, firm=False, taker=taker)
        logger.debug(
            f"Indicative: {intent.sell_amount} {intent.sell_token.symbol} -> "
            f"~{quote.buy_amount} {intent.buy_token.symbol}"
        )
        return quote

    async def get_firm_quote(self, intent: SwapIntent, taker: str) -> Quote:
        """Binding quote with an executable transaction, valid for a short time."""
        taker = normalize_address(taker)
        intent = await self._resolve(intent)
        data = await self._aggregator.get_quote(
            sell_token=intent.sell_token.address,
            buy_token=intent.buy_token.address,
            sell_amount=intent.sell_amount_raw,
            taker=taker,
            slippage_bps=intent.slippage_bps,
        )
        quote = self._build_quote(intent, data, firm=True, taker=taker)
        logger.info(
            f"Firm quote: {quote.sell_amount} {intent.sell_token.symbol} -> "
            f"{quote.buy_amount} {intent.buy_token.symbol} "
            f"(expires in {quote.seconds_until_expiry:.0f}s)"
        )
        return quote

    def _check_executable(self, quote: Quote, session: Session, intent: Optional[SwapIntent]) -> None:
        if not quote.firm or not quote.transaction:
            raise StaleQuote("Indicative prices cannot be executed. Fetch a firm quote")
        if intent is not None and not quote.matches(intent):
            raise StaleQuote()
        if not same_address(quote.taker, session.address):
            raise StaleQuote("Quote was issued for a different wallet")
        if quote.is_expired:
            raise QuoteExpired()

    def _swap_tx(self, quote: Quote) -> UnsignedTx:
        payload = quote.transaction
        gas = _hex_or_int(payload.get("gas"))
        gas = gas * (100 + self.gas_buffer_percent) // 100 if gas else DEFAULT_SWAP_GAS
        intent = quote.intent
        return UnsignedTx(
            to=normalize_address(payload["to"]),
            value=_hex_or_int(payload.get("value")) or 0,
            data=payload.get("data") or "0x",
            chain_id=self._transactions.chain_id,
            gas=gas,
            gas_price=_hex_or_int(payload.get("gasPrice")),
            direction=TxDirection.SWAP,
            amount=intent.sell_amount,
            token_symbol=f"{intent.sell_token.symbol}->{intent.buy_token.symbol}",
            token_address=intent.sell_token.address,
            recipient=payload["to"],
            description=(
                f"Swap {intent.sell_amount} {intent.sell_token.symbol} "
                f"for ~{quote.buy_amount} {intent.buy_token.symbol}"
            ),
        )

    async def _ensure_balance(self, quote: Quote, session: Session) -> None:
        sell_token = quote.intent.sell_token
        available = await self._transactions.available_raw(sell_token, session.address)
        if available < quote.sell_amount_raw:
            decimals = sell_token.require_decimals()
            raise InsufficientBalance(
                available=from_smallest_unit(available, decimals),
                requested=from_smallest_unit(quote.sell_amount_raw, decimals),
                symbol=sell_token.symbol,
            )

    async def _ensure_allowance(self, quote: Quote, session: Session) -> None:
        """Approve the aggregator's spender when the quote reports a shortfall."""
        sell_token = quote.intent.sell_token
        issue = quote.allowance_issue
        if sell_token.is_native or not issue:
            return
        spender = issue.get("spender") or quote.allowance_target
        if not spender:
            raise InvalidInput("Quote reports an allowance shortfall without a spender")

        logger.info(f"Approving {spender} to spend {sell_token.symbol}")
        approval = self._transactions.build_approval(sell_token, spender)
        handle = await self._transactions.submit(approval, session)
        record = await self._transactions.await_confirmation(handle)
        if record.status != TxStatus.CONFIRMED:
            raise BroadcastFailed(f"Token approval {handle.hash} did not confirm")

    async def execute(
        self,
        quote: Quote,
        session: Session,
        intent: Optional[SwapIntent] = None,
    ) -> TxHandle:
        """Sign and submit the quote's transaction.

        Raises:
            StaleQuote: indicative quote, other intent or other taker
            InsufficientBalance: wallet holds less than the quoted sell amount
            QuoteExpired: past TTL, or rejected as stale at broadcast
            BroadcastFailed: any other broadcast rejection
        """
        self._check_executable(quote, session, intent)
        await self._ensure_balance(quote, session)
        await self._ensure_allowance(quote, session)
        if quote.is_expired:
            raise QuoteExpired("Quote expired while waiting for token approval")

        try:
            handle = await self._transactions.submit(self._swap_tx(quote), session)
        except BroadcastFailed as e:
            if _is_stale_error(e.message):
                raise QuoteExpired() from e
            raise

        self._transactions.track(handle)
        if self._catalog is not None:
            await self._catalog.record_usage(quote.intent.sell_token)
            await self._catalog.record_usage(quote.intent.buy_token)
        return handle

    async def swap(self, intent: SwapIntent, session: Session) -> TxHandle:
        """Fetch a firm quote and execute it; on QuoteExpired retry once."""
        quote = await self.get_firm_quote(intent, session.address)
        try:
            return await self.execute(quote, session, intent)
        except QuoteExpired:
            logger.warning("Quote expired at execution, fetching a fresh one (single retry)")
        quote = await self.get_firm_quote(intent, session.address)
        return await self.execute(quote, session, intent)


class SwapDraft:
    """Editable swap form state, independent of any view.

    Every edit bumps ``generation`` and drops the current price; a price
    response that arrives for an older generation, or after ``cancel``, is
    discarded.
    """

    def __init__(
        self,
        engine: SwapEngine,
        sell_token: TokenDescriptor,
        buy_token: TokenDescriptor,
        sell_amount: Optional[Decimal] = None,
        slippage_bps: int = 100,
    ):
        self._engine = engine
        self.sell_token = sell_token
        self.buy_token = buy_token
        self.sell_amount = sell_amount
        self.slippage_bps = slippage_bps
        self.generation = 0
        self.price: Optional[Quote] = None
        self.closed = False
        self._price_task: Optional[asyncio.Task] = None

    @property
    def intent(self) -> Optional[SwapIntent]:
        if self.sell_amount is None or self.sell_amount <= 0:
            return None
        return SwapIntent(
            sell_token=self.sell_token,
            buy_token=self.buy_token,
            sell_amount=self.sell_amount,
            slippage_bps=self.slippage_bps,
        )

    def _invalidate(self) -> None:
        self.generation += 1
        self.price = None
        if self._price_task is not None and not self._price_task.done():
            self._price_task.cancel()
        self._price_task = None

    def set_amount(self, amount) -> None:
        self.sell_amount = to_decimal(amount) if amount not in (None, "") else None
        self._invalidate()

    def set_tokens(self, sell_token: TokenDescriptor, buy_token: TokenDescriptor) -> None:
        self.sell_token = sell_token
        self.buy_token = buy_token
        self._invalidate()

    def flip(self) -> None:
        """Swap pay and receive tokens locally; any fetched price is discarded."""
        self.sell_token, self.buy_token = self.buy_token, self.sell_token
        self._invalidate()

    async def refresh_price(self) -> Optional[Quote]:
        """Fetch an indicative price for the current intent.

        Returns None when there is nothing to price, or when the draft changed
        or was cancelled before the response arrived.
        """
        intent = self.intent
        if self.closed or intent is None:
            return None
        self._invalidate()
        generation = self.generation
        task = asyncio.create_task(self._engine.get_indicative_price(intent))
        self._price_task = task
        try:
            quote = await task
        except asyncio.CancelledError:
            if self.closed or generation != self.generation:
                return None
            raise
        if self.closed or generation != self.generation:
            return None
        self.price = quote
        return quote

    def cancel(self) -> None:
        """Close the draft; an in-flight price request is cancelled."""
        self.closed = True
        self._invalidate()

    async def confirm(self, session: Session) -> TxHandle:
        """Execute the current intent with a freshly fetched firm quote."""
        if self.closed:
            raise InvalidInput("Swap draft is closed")
        intent = self.intent
        if intent is None:
            raise InvalidInput("Enter an amount greater than zero")
        return await self._engine.swap(intent, session)

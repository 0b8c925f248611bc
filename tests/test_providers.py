"""Tests for the HTTP providers using httpx.MockTransport."""

import json
from decimal import Decimal

import httpx
import pytest

from cypherx.errors import InvalidInput, ProviderUnavailable, QuoteUnavailable, RpcError
from cypherx.models import Timeframe
from cypherx.providers import ChainDataProvider, MarketDataProvider, ZeroExClient

from conftest import RECIPIENT, USDC

RPC_URL = "https://rpc.test"


def rpc_transport(results: dict, errors: dict = None, seen: list = None) -> httpx.MockTransport:
    """JSON-RPC node answering ``results[method]`` (single and batch requests)."""
    errors = errors or {}

    def answer(call: dict) -> dict:
        if seen is not None:
            seen.append(call)
        method = call["method"]
        if method in errors:
            return {"jsonrpc": "2.0", "id": call["id"], "error": errors[method]}
        result = results[method]
        if callable(result):
            result = result(call["params"])
        return {"jsonrpc": "2.0", "id": call["id"], "result": result}

    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        if isinstance(payload, list):
            return httpx.Response(200, json=[answer(call) for call in reversed(payload)])
        return httpx.Response(200, json=answer(payload))

    return httpx.MockTransport(handler)


class TestChainDataProvider:
    @pytest.mark.asyncio
    async def test_balance(self):
        chain = ChainDataProvider(RPC_URL, transport=rpc_transport({"eth_getBalance": "0xde0b6b3a7640000"}))

        assert await chain.get_balance(RECIPIENT) == 10**18

    @pytest.mark.asyncio
    async def test_token_balance_encodes_balance_of(self):
        seen = []
        chain = ChainDataProvider(RPC_URL, transport=rpc_transport({"eth_call": "0x0f4240"}, seen=seen))

        assert await chain.get_token_balance(USDC.address, RECIPIENT) == 1_000_000
        call_obj = seen[0]["params"][0]
        assert call_obj["to"] == USDC.address
        assert call_obj["data"].startswith("0x70a08231")

    @pytest.mark.asyncio
    async def test_rpc_error_object(self):
        chain = ChainDataProvider(
            RPC_URL,
            transport=rpc_transport({}, errors={"eth_sendRawTransaction": {"code": -32000, "message": "nonce too low"}}),
        )

        with pytest.raises(RpcError) as exc_info:
            await chain.send_raw_transaction(b"\x01\x02")
        assert exc_info.value.rpc_code == -32000
        assert exc_info.value.message == "nonce too low"

    @pytest.mark.asyncio
    async def test_http_failure_is_provider_unavailable(self):
        chain = ChainDataProvider(RPC_URL, transport=httpx.MockTransport(lambda r: httpx.Response(502)))

        with pytest.raises(ProviderUnavailable) as exc_info:
            await chain.get_gas_price()
        assert not isinstance(exc_info.value, RpcError)
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        chain = ChainDataProvider(RPC_URL, transport=httpx.MockTransport(refuse))

        with pytest.raises(ProviderUnavailable):
            await chain.get_balance(RECIPIENT)

    @pytest.mark.asyncio
    async def test_token_enumeration_and_batched_metadata(self):
        other = "0x4200000000000000000000000000000000000006"
        seen = []
        transport = rpc_transport(
            {
                "alchemy_getTokenBalances": {
                    "tokenBalances": [
                        {"contractAddress": USDC.address, "tokenBalance": "0x0f4240"},
                        {"contractAddress": other, "tokenBalance": None, "error": "bad"},
                    ]
                },
                "alchemy_getTokenMetadata": lambda params: {"symbol": "USDC", "decimals": 6}
                if params[0] == USDC.address
                else None,
            },
            seen=seen,
        )
        chain = ChainDataProvider(RPC_URL, transport=transport)

        balances = await chain.get_token_balances(RECIPIENT)
        metadata = await chain.get_token_metadata([USDC.address, other])

        assert balances == [(USDC.address, 1_000_000)]
        assert metadata == {USDC.address.lower(): {"symbol": "USDC", "decimals": 6}}

    @pytest.mark.asyncio
    async def test_malformed_token_balances(self):
        other = "0x4200000000000000000000000000000000000006"
        transport = rpc_transport(
            {
                "alchemy_getTokenBalances": {
                    "tokenBalances": [
                        {"contractAddress": other, "tokenBalance": "not-hex"},
                        "garbage",
                        {"contractAddress": USDC.address, "tokenBalance": "0x0f4240"},
                    ]
                },
            }
        )
        chain = ChainDataProvider(RPC_URL, transport=transport)

        assert await chain.get_token_balances(RECIPIENT) == [(USDC.address, 1_000_000)]

        broken = ChainDataProvider(RPC_URL, transport=rpc_transport({"alchemy_getTokenBalances": ["unexpected"]}))
        with pytest.raises(ProviderUnavailable):
            await broken.get_token_balances(RECIPIENT)

    @pytest.mark.asyncio
    async def test_decimals(self):
        chain = ChainDataProvider(RPC_URL, transport=rpc_transport({"eth_call": "0x" + "0" * 62 + "12"}))
        assert await chain.get_decimals(USDC.address) == 18

        empty = ChainDataProvider(RPC_URL, transport=rpc_transport({"eth_call": "0x"}))
        assert await empty.get_decimals(USDC.address) is None

        reverted = ChainDataProvider(
            RPC_URL, transport=rpc_transport({}, errors={"eth_call": {"code": 3, "message": "execution reverted"}})
        )
        assert await reverted.get_decimals(USDC.address) is None

    @pytest.mark.asyncio
    async def test_send_raw_transaction(self):
        seen = []
        tx_hash = "0x" + "AB" * 32
        chain = ChainDataProvider(RPC_URL, transport=rpc_transport({"eth_sendRawTransaction": tx_hash}, seen=seen))

        assert await chain.send_raw_transaction(b"\xf8\x01") == tx_hash.lower()
        assert seen[0]["params"] == ["0xf801"]

    @pytest.mark.asyncio
    async def test_pending_receipt_is_none(self):
        chain = ChainDataProvider(RPC_URL, transport=rpc_transport({"eth_getTransactionReceipt": None}))
        assert await chain.get_transaction_receipt("0x" + "00" * 32) is None


def market_transport(routes: dict) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        for prefix, (status, body) in routes.items():
            if request.url.path.endswith(prefix):
                return httpx.Response(status, json=body)
        return httpx.Response(404, json={})

    return httpx.MockTransport(handler)


def dex_pair(address: str, symbol: str, chain_id: str = "base", price: str = "1.0") -> dict:
    return {
        "chainId": chain_id,
        "pairAddress": "0xpair",
        "baseToken": {"address": address, "symbol": symbol, "name": symbol},
        "priceUsd": price,
        "priceChange": {"h24": -1.5},
        "info": {"imageUrl": f"https://img.test/{symbol}.png"},
    }


class TestMarketDataProvider:
    @pytest.mark.asyncio
    async def test_search(self):
        market = MarketDataProvider(
            transport=market_transport({"/latest/dex/search": (200, {"pairs": [dex_pair(USDC.address, "USDC")]})})
        )

        [listing] = await market.search("usdc")

        assert listing.token.symbol == "USDC"
        assert listing.token.decimals is None
        assert listing.price_usd == Decimal("1.0")
        assert listing.change_24h == Decimal("-1.5")

    @pytest.mark.asyncio
    async def test_token_listings_filter_base_token(self):
        pairs = [dex_pair(USDC.address, "USDC"), dex_pair(RECIPIENT, "OTHER")]
        market = MarketDataProvider(
            transport=market_transport({f"/tokens/{USDC.address}": (200, {"pairs": pairs})})
        )

        listings = await market.get_token_listings(USDC.address)

        assert [l.token.symbol for l in listings] == ["USDC"]
        assert await market.get_logo_url(USDC.address) == "https://img.test/USDC.png"
        assert (await market.get_token_price(USDC.address)).price_usd == Decimal("1.0")

    @pytest.mark.asyncio
    async def test_not_found_is_empty(self):
        market = MarketDataProvider(transport=market_transport({}))

        assert await market.get_token_listings(USDC.address) == []
        assert await market.get_top_pool(USDC.address) is None

    @pytest.mark.asyncio
    async def test_server_error_raises(self):
        market = MarketDataProvider(transport=market_transport({"/latest/dex/search": (503, {})}))

        with pytest.raises(ProviderUnavailable):
            await market.search("usdc")

    @pytest.mark.asyncio
    async def test_pool_ohlcv_sorted_oldest_first(self):
        ohlcv = {"data": {"attributes": {"ohlcv_list": [[200, 1, 1, 1, "2.5", 10], [100, 1, 1, 1, "2.0", 5]]}}}
        market = MarketDataProvider(transport=market_transport({"/ohlcv/hour": (200, ohlcv)}))

        points = await market.get_pool_ohlcv("0xpool", Timeframe.H1)

        assert [p.timestamp for p in points] == [100, 200]
        assert points[-1].price == Decimal("2.5")

    @pytest.mark.asyncio
    async def test_top_pool(self):
        pools = {"data": [{"id": "base_0xabc", "attributes": {"address": "0xabc"}}]}
        market = MarketDataProvider(transport=market_transport({"/pools": (200, pools)}))

        assert await market.get_top_pool(USDC.address) == "0xabc"

    @pytest.mark.asyncio
    async def test_native_price_and_history(self):
        routes = {
            "/simple/price": (200, {"ethereum": {"usd": 2500.5, "usd_24h_change": 1.25}}),
            "/market_chart": (200, {"prices": [[2000000, 2400.0], [1000000, 2300.0]]}),
        }
        market = MarketDataProvider(transport=market_transport(routes))

        info = await market.get_native_price()
        history = await market.get_native_history(Timeframe.D1)

        assert info.price_usd == Decimal("2500.5")
        assert info.change_24h == Decimal("1.25")
        assert [p.timestamp for p in history] == [1000, 2000]


def zeroex_transport(status: int, body: dict, seen: list = None) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status, json=body)

    return httpx.MockTransport(handler)


PRICE = {"liquidityAvailable": True, "sellAmount": "1000000", "buyAmount": "400000000000000"}


class TestZeroExClient:
    @pytest.mark.asyncio
    async def test_headers_and_params(self):
        seen = []
        client = ZeroExClient(
            chain_id=8453,
            api_key="secret",
            fee_recipient=RECIPIENT,
            fee_bps=15,
            transport=zeroex_transport(200, PRICE, seen),
        )

        await client.get_price(USDC.address, RECIPIENT, 1_000_000, slippage_bps=50)

        request = seen[0]
        assert request.url.path == "/swap/allowance-holder/price"
        assert request.headers["0x-api-key"] == "secret"
        assert request.headers["0x-version"] == "v2"
        params = request.url.params
        assert params["chainId"] == "8453"
        assert params["sellAmount"] == "1000000"
        assert params["slippageBps"] == "50"
        assert params["integratorFeeBps"] == "15"
        assert "taker" not in params

    def test_fee_needs_both_settings(self):
        client = ZeroExClient(chain_id=8453, fee_recipient=RECIPIENT)

        params = client.build_params(USDC.address, RECIPIENT, 1, 100)

        assert "integratorFeeRecipient" not in params

    @pytest.mark.asyncio
    async def test_validation_error_is_quote_unavailable(self):
        body = {"name": "INPUT_INVALID", "data": {"details": [{"field": "sellAmount", "reason": "too small"}]}}
        client = ZeroExClient(chain_id=8453, transport=zeroex_transport(400, body))

        with pytest.raises(QuoteUnavailable) as exc_info:
            await client.get_price(USDC.address, RECIPIENT, 1)
        assert exc_info.value.message == "too small"

    @pytest.mark.asyncio
    async def test_server_error_is_retryable(self):
        client = ZeroExClient(chain_id=8453, transport=zeroex_transport(503, {}))

        with pytest.raises(ProviderUnavailable):
            await client.get_price(USDC.address, RECIPIENT, 1)

    @pytest.mark.asyncio
    async def test_no_liquidity(self):
        client = ZeroExClient(chain_id=8453, transport=zeroex_transport(200, {"liquidityAvailable": False}))

        with pytest.raises(QuoteUnavailable):
            await client.get_price(USDC.address, RECIPIENT, 1)

    @pytest.mark.asyncio
    async def test_quote_requires_taker(self):
        client = ZeroExClient(chain_id=8453, transport=zeroex_transport(200, PRICE))

        with pytest.raises(InvalidInput):
            await client.get_quote(USDC.address, RECIPIENT, 1, taker="")

    @pytest.mark.asyncio
    async def test_quote_without_transaction(self):
        client = ZeroExClient(chain_id=8453, transport=zeroex_transport(200, PRICE))

        with pytest.raises(QuoteUnavailable):
            await client.get_quote(USDC.address, RECIPIENT, 1, taker=RECIPIENT)

    @pytest.mark.asyncio
    async def test_quote(self):
        seen = []
        body = dict(PRICE, transaction={"to": RECIPIENT, "data": "0x", "value": "0", "gas": "100"})
        client = ZeroExClient(chain_id=8453, transport=zeroex_transport(200, body, seen))

        data = await client.get_quote(USDC.address, RECIPIENT, 1, taker=RECIPIENT)

        assert data["transaction"]["to"] == RECIPIENT
        assert seen[0].url.path == "/swap/allowance-holder/quote"
        assert seen[0].url.params["taker"] == RECIPIENT

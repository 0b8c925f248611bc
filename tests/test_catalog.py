"""Tests for the Token Catalog & Resolver."""

import pytest

from cypherx.errors import ProviderUnavailable, UnresolvedDecimals
from cypherx.models import NATIVE_TOKEN, TokenDescriptor
from cypherx.services import TokenCatalog
from cypherx.services.catalog import PLACEHOLDER_LOGO_URL

from conftest import DEGEN, USDC, listing


def make_token(i: int) -> TokenDescriptor:
    return TokenDescriptor(address=f"0x{i:040x}", symbol=f"T{i}", decimals=18)


class TestRecentTokens:
    def test_native_always_first(self, catalog):
        assert catalog.recent() == [NATIVE_TOKEN]

    @pytest.mark.asyncio
    async def test_record_usage_moves_to_front(self, catalog):
        await catalog.record_usage(USDC)
        await catalog.record_usage(DEGEN)
        await catalog.record_usage(USDC)

        assert [t.symbol for t in catalog.recent()] == ["ETH", "USDC", "DEGEN"]

    @pytest.mark.asyncio
    async def test_dedup_by_lowercase_address(self, catalog):
        await catalog.record_usage(USDC)
        await catalog.record_usage(TokenDescriptor(address=USDC.address.lower(), symbol="USDC", decimals=6))

        assert len(catalog.recent()) == 2

    @pytest.mark.asyncio
    async def test_capped_and_native_never_evicted(self, catalog):
        for i in range(1, 15):
            await catalog.record_usage(make_token(i))
        await catalog.record_usage(NATIVE_TOKEN)

        recent = catalog.recent()
        assert len(recent) == 10
        assert recent[0] == NATIVE_TOKEN
        assert recent[1].symbol == "T14"
        assert "T5" not in [t.symbol for t in recent]
        assert recent[-1].symbol == "T6"

    @pytest.mark.asyncio
    async def test_persisted_across_instances(self, catalog, market, chain, store):
        await catalog.record_usage(USDC)
        await catalog.record_usage(DEGEN)

        reloaded = TokenCatalog(market, chain, store=store)
        await reloaded.load()

        assert [t.symbol for t in reloaded.recent()] == ["ETH", "DEGEN", "USDC"]


class TestResolve:
    @pytest.mark.asyncio
    async def test_short_query_returns_nothing(self, catalog, market):
        assert await catalog.resolve("a") == []
        assert market.calls == []

    @pytest.mark.asyncio
    async def test_address_lookup_returns_at_most_one(self, catalog, market):
        market.listings[DEGEN.address.lower()] = [
            listing(DEGEN, chain_id="ethereum"),
            listing(DEGEN),
            listing(DEGEN),
        ]

        result = await catalog.resolve(DEGEN.address)

        assert result == [DEGEN]
        assert market.calls == [("get_token_listings", DEGEN.address)]

    @pytest.mark.asyncio
    async def test_unknown_address_is_empty(self, catalog):
        assert await catalog.resolve(DEGEN.address) == []

    @pytest.mark.asyncio
    async def test_native_address_resolves_locally(self, catalog, market):
        assert await catalog.resolve(NATIVE_TOKEN.address) == [NATIVE_TOKEN]
        assert market.calls == []

    @pytest.mark.asyncio
    async def test_search_filters_chain_and_dedups(self, catalog, market):
        usdc_without_decimals = TokenDescriptor(address=USDC.address, symbol="USDC")
        market.search_results = [
            listing(usdc_without_decimals),
            listing(usdc_without_decimals),
            listing(DEGEN, chain_id="solana"),
            listing(DEGEN, chain_id="8453"),
        ]

        result = await catalog.resolve("usd")

        assert [t.symbol for t in result] == ["USDC", "DEGEN"]
        # Known decimals are filled in from the built-in table
        assert result[0].decimals == 6

    @pytest.mark.asyncio
    async def test_search_capped(self, market, chain):
        catalog = TokenCatalog(market, chain, search_limit=3)
        market.search_results = [listing(make_token(i)) for i in range(1, 10)]

        assert len(await catalog.resolve("token")) == 3

    @pytest.mark.asyncio
    async def test_provider_outage_is_not_empty_result(self, catalog, market):
        market.fail_with = ProviderUnavailable("down")

        with pytest.raises(ProviderUnavailable):
            await catalog.resolve("degen")


class TestDecimals:
    @pytest.mark.asyncio
    async def test_descriptor_decimals_used_first(self, catalog, chain):
        assert (await catalog.ensure_decimals(USDC)).decimals == 6
        assert chain.calls == []

    @pytest.mark.asyncio
    async def test_known_table_before_chain(self, catalog, chain):
        token = TokenDescriptor(address=USDC.address, symbol="USDC")

        assert (await catalog.ensure_decimals(token)).decimals == 6
        assert chain.calls == []

    @pytest.mark.asyncio
    async def test_chain_lookup_cached(self, catalog, chain):
        chain.decimals[DEGEN.address.lower()] = 18

        await catalog.ensure_decimals(DEGEN)
        resolved = await catalog.ensure_decimals(DEGEN)

        assert resolved.decimals == 18
        assert len(chain.calls) == 1

    @pytest.mark.asyncio
    async def test_unresolvable_decimals_never_default(self, catalog):
        with pytest.raises(UnresolvedDecimals):
            await catalog.ensure_decimals(DEGEN)


class TestLogos:
    @pytest.mark.asyncio
    async def test_descriptor_logo_wins_without_network(self, catalog, market):
        token = TokenDescriptor(address=DEGEN.address, symbol="DEGEN", logo_url="https://logo.test/degen.png")

        assert await catalog.resolve_logo(token) == "https://logo.test/degen.png"
        assert market.calls == []

    @pytest.mark.asyncio
    async def test_provider_logo_next(self, catalog, market):
        market.logos[DEGEN.address.lower()] = "https://provider.test/degen.png"

        assert await catalog.resolve_logo(DEGEN) == "https://provider.test/degen.png"

    @pytest.mark.asyncio
    async def test_failures_fall_through_to_placeholder(self, catalog, market):
        market.fail_with = ProviderUnavailable("down")

        async def reject_remote(url: str) -> bool:
            if "cdn.test" in url:
                raise RuntimeError("image failed to load")
            return True

        logo = await catalog.resolve_logo(DEGEN, accept=reject_remote)

        assert logo == PLACEHOLDER_LOGO_URL.format(symbol="DEGEN")

    @pytest.mark.asyncio
    async def test_candidate_order(self, catalog, market):
        token = TokenDescriptor(address=DEGEN.address, symbol="DEGEN", logo_url="https://logo.test/a.png")
        market.logos[DEGEN.address.lower()] = "https://provider.test/b.png"

        candidates = [url async for url in catalog.logo_candidates(token)]

        assert candidates == [
            "https://logo.test/a.png",
            "https://provider.test/b.png",
            f"https://cdn.test/{DEGEN.address.lower()}.png",
            PLACEHOLDER_LOGO_URL.format(symbol="DEGEN"),
        ]

    @pytest.mark.asyncio
    async def test_native_skips_provider(self, catalog, market):
        candidates = [url async for url in catalog.logo_candidates(NATIVE_TOKEN)]

        assert candidates == [PLACEHOLDER_LOGO_URL.format(symbol="ETH")]
        assert market.calls == []

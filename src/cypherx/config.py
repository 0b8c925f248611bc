"""Application configuration using pydantic-settings.

Single-network wallet core: everything is scoped to one EVM chain (Base by default).
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=True, description="Enable debug mode")
    api_host: str = Field(default="127.0.0.1", description="API server host")
    api_port: int = Field(default=8000, description="API server port")

    # ======================
    # Local storage
    # ======================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/cypherx.db",
        description="Database connection URL",
    )
    storage_namespace: str = Field(
        default="cypherx", description="Namespace all local records are keyed by"
    )

    # ======================
    # Network
    # ======================
    chain_id: int = Field(default=8453, description="EVM chain id (Base mainnet)")
    chain_name: str = Field(default="base", description="Chain slug used by market-data providers")
    rpc_url: str = Field(
        default="https://mainnet.base.org",
        description="JSON-RPC endpoint (Alchemy URL enables holdings enumeration)",
    )
    http_timeout: float = Field(default=30.0, description="Timeout for provider HTTP calls")

    # ======================
    # Swap aggregator (0x)
    # ======================
    zeroex_api_url: str = Field(default="https://api.0x.org", description="0x API base URL")
    zeroex_api_key: str = Field(default="", description="0x API key")
    zeroex_fee_recipient: Optional[str] = Field(
        default=None, description="Integrator fee recipient address"
    )
    zeroex_fee_bps: Optional[int] = Field(default=None, description="Integrator fee in bps")
    default_slippage_bps: int = Field(default=100, description="Default slippage (100 = 1%)")
    quote_ttl_seconds: int = Field(default=60, description="Firm quote validity window")
    gas_buffer_percent: int = Field(default=20, description="Extra gas added to quoted gas limits")

    # ======================
    # Market data
    # ======================
    dexscreener_api_url: str = Field(
        default="https://api.dexscreener.com", description="DexScreener API base URL"
    )
    geckoterminal_api_url: str = Field(
        default="https://api.geckoterminal.com/api/v2", description="GeckoTerminal API base URL"
    )
    coingecko_api_url: str = Field(
        default="https://api.coingecko.com/api/v3", description="CoinGecko API base URL"
    )

    # ======================
    # Policy
    # ======================
    balance_refresh_interval: float = Field(
        default=30.0, description="Seconds between native balance refreshes"
    )
    confirmation_poll_interval: float = Field(
        default=2.0, description="Seconds between receipt polls"
    )
    confirmation_timeout: float = Field(
        default=300.0, description="Give up waiting for a receipt after this many seconds"
    )
    recent_tokens_limit: int = Field(default=10, description="Recent token cache size")
    token_search_limit: int = Field(default=20, description="Maximum fuzzy search results")
    holdings_limit: int = Field(default=30, description="Maximum token holdings listed")
    kdf_iterations: int = Field(default=100_000, description="PBKDF2 iterations for key encryption")
    synthetic_charts_enabled: bool = Field(
        default=True, description="Fall back to synthetic chart series when history is missing"
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def has_aggregator_fee(self) -> bool:
        return bool(self.zeroex_fee_recipient and self.zeroex_fee_bps)

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "api_host": self.api_host,
            "api_port": self.api_port,
            "database_url": self._redact_url(self.database_url),
            "storage_namespace": self.storage_namespace,
            "chain": {
                "id": self.chain_id,
                "name": self.chain_name,
                "rpc": self._redact_url(self.rpc_url),
            },
            "aggregator": {
                "url": self.zeroex_api_url,
                "api_key": "***" if self.zeroex_api_key else "(not set)",
                "fee_enabled": self.has_aggregator_fee,
                "slippage_bps": self.default_slippage_bps,
                "quote_ttl_seconds": self.quote_ttl_seconds,
            },
            "market_data": {
                "dexscreener": self.dexscreener_api_url,
                "geckoterminal": self.geckoterminal_api_url,
                "coingecko": self.coingecko_api_url,
            },
            "synthetic_charts_enabled": self.synthetic_charts_enabled,
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact credentials and API-key path segments from a URL."""
        if "://" in url and "@" in url:
            proto, rest = url.split("://", 1)
            if "@" in rest:
                creds, host = rest.rsplit("@", 1)
                if ":" in creds:
                    user, _ = creds.split(":", 1)
                    return f"{proto}://{user}:***@{host}"
        # Alchemy-style URLs carry the key as the last path segment
        if "/v2/" in url:
            base, _ = url.rsplit("/v2/", 1)
            return f"{base}/v2/***"
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

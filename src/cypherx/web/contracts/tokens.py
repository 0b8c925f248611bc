"""Token contracts shared by the catalog, transfer and swap endpoints."""

from typing import Optional

from pydantic import BaseModel, Field

from cypherx.models import TokenDescriptor


class TokenInfo(BaseModel):
    """Token metadata as exchanged with clients."""

    address: str = Field(..., description="Contract address (0xEeee... for the native asset)")
    symbol: str = Field(..., description="Token symbol")
    name: str = Field(default="", description="Token name")
    decimals: Optional[int] = Field(
        None, ge=0, le=77, description="Token decimals (resolved server-side when omitted)"
    )
    logo_url: Optional[str] = Field(None, description="Token logo URL")

    @classmethod
    def from_descriptor(cls, token: TokenDescriptor) -> "TokenInfo":
        return cls(
            address=token.address,
            symbol=token.symbol,
            name=token.name,
            decimals=token.decimals,
            logo_url=token.logo_url,
        )

    def to_descriptor(self) -> TokenDescriptor:
        return TokenDescriptor(
            address=self.address.strip(),
            symbol=self.symbol,
            name=self.name,
            decimals=self.decimals,
            logo_url=self.logo_url,
        )


class TokenListResponse(BaseModel):
    """Search results or the recent-token list."""

    success: bool = Field(default=True)
    tokens: list[TokenInfo] = Field(default_factory=list)


class RecordUsageRequest(BaseModel):
    """Mark a token as just used (moves it to the front of the recent list)."""

    token: TokenInfo

from __future__ import annotations

import os

from pydantic import BaseModel, Field

from walletcache.observability.config import env_bool


class WalletSettings(BaseModel):
    """Runtime configuration for the wallet cache server."""

    api_base_url: str = Field(
        default="",
        description="Wallet backend base URL. Falls back to WALLET_API_URL env var.",
    )
    http_timeout: float = Field(
        default=30.0,
        description="Timeout in seconds for wallet API calls. Falls back to WALLET_HTTP_TIMEOUT.",
    )
    unspent_refresh_seconds: float = Field(
        default=10.0,
        gt=0,
        description="TTL of cached unspent outputs. Falls back to WALLET_UNSPENT_REFRESH_SECONDS.",
    )
    pairs_refresh_seconds: float = Field(
        default=2.0,
        gt=0,
        description="TTL of cached supported pairs. Falls back to WALLET_PAIRS_REFRESH_SECONDS.",
    )
    fiat_currency: str = Field(
        default="USD",
        description="Fiat currency supported pairs are filtered by. Falls back to WALLET_FIAT_CURRENCY.",
    )
    simple_buy_enabled: bool = Field(
        default=True,
        description="When False supported pairs resolve to an empty set without a network call.",
    )
    auto_refresh: bool = Field(
        default=False,
        description="Refresh time-bound caches in the background. Falls back to WALLET_AUTO_REFRESH.",
    )
    server_port: int = Field(
        default=8001,
        description="Port of the MCP server. Falls back to WALLET_MCP_PORT.",
    )

    def resolve(self) -> WalletSettings:
        """Return a copy with env-var fallbacks applied."""
        return self.model_validate(
            {
                **self.model_dump(),
                "api_base_url": self.api_base_url or os.getenv("WALLET_API_URL", ""),
                "http_timeout": os.getenv("WALLET_HTTP_TIMEOUT", self.http_timeout),
                "unspent_refresh_seconds": os.getenv(
                    "WALLET_UNSPENT_REFRESH_SECONDS", self.unspent_refresh_seconds
                ),
                "pairs_refresh_seconds": os.getenv(
                    "WALLET_PAIRS_REFRESH_SECONDS", self.pairs_refresh_seconds
                ),
                "fiat_currency": os.getenv("WALLET_FIAT_CURRENCY", self.fiat_currency),
                "simple_buy_enabled": env_bool(
                    "WALLET_SIMPLE_BUY_ENABLED", self.simple_buy_enabled
                ),
                "auto_refresh": env_bool("WALLET_AUTO_REFRESH", self.auto_refresh),
                "server_port": os.getenv("WALLET_MCP_PORT", self.server_port),
            }
        )

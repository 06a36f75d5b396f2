from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastmcp import FastMCP

from walletcache import LifecycleSignals, SystemClock

from server.client import WalletAPIClient
from server.repositories import WalletServices, build_services
from server.settings import WalletSettings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def wallet_context(
    settings: WalletSettings,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AsyncIterator[dict]:
    """Build the HTTP client, signal source and owning services, and tear them down."""
    signals = LifecycleSignals()
    clock = SystemClock()

    async with httpx.AsyncClient(timeout=settings.http_timeout, transport=transport) as http:
        services: WalletServices = build_services(
            WalletAPIClient(http, settings.api_base_url),
            settings,
            clock=clock,
            signals=signals,
        )

        if settings.auto_refresh:
            for cache in services.caches:
                if cache.policy.is_time_bound:
                    cache.start_auto_refresh()

        try:
            yield {"services": services, "signals": signals, "settings": settings}
        finally:
            await services.aclose()
            logger.info("Wallet services closed")


@asynccontextmanager
async def app_lifespan(server: FastMCP):
    settings = WalletSettings().resolve()

    if not settings.api_base_url:
        # Reads will fail with a transport error until WALLET_API_URL is set
        logger.warning("WALLET_API_URL is not set; wallet API calls will fail")

    async with wallet_context(settings) as context:
        yield context

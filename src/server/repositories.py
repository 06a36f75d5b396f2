from __future__ import annotations

import logging
from dataclasses import dataclass

from walletcache import (
    CachedValue,
    Clock,
    LifecycleSignals,
    RefreshPolicy,
    Subscription,
    weak_fetch,
)

from server.client import WalletAPIClient
from server.models import AccountBalance, SupportedPairs, UnspentOutputs
from server.settings import WalletSettings

logger = logging.getLogger(__name__)


class BalanceRepository:
    """Account balance, fetched on login and dropped on logout."""

    def __init__(
        self,
        client: WalletAPIClient,
        *,
        clock: Clock | None = None,
        signals: LifecycleSignals | None = None,
    ) -> None:
        self._client = client
        self.cache: CachedValue[AccountBalance] = CachedValue(
            RefreshPolicy.on_login_logout(),
            identifier="account-balance",
            clock=clock,
            signals=signals,
        )
        self.cache.set_fetch(weak_fetch(self, "_fetch_balance"))

    async def balance(self) -> AccountBalance:
        return await self.cache.read()

    async def fetch_balance(self) -> AccountBalance:
        return await self.cache.force_refresh()

    def observe_balance(self) -> Subscription[AccountBalance]:
        return self.cache.observe()

    async def aclose(self) -> None:
        await self.cache.close()

    async def _fetch_balance(self) -> AccountBalance:
        return await self._client.fetch_balance()


class UnspentOutputRepository:
    """Unspent outputs of every wallet address; periodic, refreshed on login."""

    def __init__(
        self,
        client: WalletAPIClient,
        *,
        refresh_seconds: float = 10.0,
        clock: Clock | None = None,
        signals: LifecycleSignals | None = None,
    ) -> None:
        self._client = client
        self.cache: CachedValue[UnspentOutputs] = CachedValue(
            RefreshPolicy.periodic_and_login(refresh_seconds),
            identifier="unspent-outputs",
            clock=clock,
            signals=signals,
        )
        self.cache.set_fetch(weak_fetch(self, "_fetch_all_unspent_outputs"))

    async def unspent_outputs(self) -> UnspentOutputs:
        return await self.cache.read()

    async def fetch_unspent_outputs(self) -> UnspentOutputs:
        return await self.cache.force_refresh()

    async def aclose(self) -> None:
        await self.cache.close()

    async def _fetch_all_unspent_outputs(self) -> UnspentOutputs:
        addresses = await self._client.fetch_wallet_addresses()
        logger.debug("Fetching unspent outputs for %d address(es)", len(addresses))
        return await self._client.fetch_unspent_outputs(addresses)


class SupportedPairsService:
    """Trading pairs available for simple-buy in the selected fiat currency."""

    def __init__(
        self,
        client: WalletAPIClient,
        *,
        fiat_currency: str = "USD",
        enabled: bool = True,
        refresh_seconds: float = 2.0,
        clock: Clock | None = None,
        signals: LifecycleSignals | None = None,
    ) -> None:
        self._client = client
        self._fiat_currency = fiat_currency
        self._enabled = enabled
        self.cache: CachedValue[SupportedPairs] = CachedValue(
            RefreshPolicy.periodic(
                refresh_seconds, fetch_on_login=True, flush_on_logout=True
            ),
            identifier="simple-buy-supported-pairs",
            clock=clock,
            signals=signals,
        )
        self.cache.set_fetch(weak_fetch(self, "_fetch_pairs"))

    @property
    def fiat_currency(self) -> str:
        return self._fiat_currency

    def set_fiat_currency(self, fiat_currency: str) -> None:
        if fiat_currency == self._fiat_currency:
            return
        self._fiat_currency = fiat_currency
        self.cache.invalidate()

    async def supported_pairs(self) -> SupportedPairs:
        return await self.cache.read()

    async def fetch(self) -> SupportedPairs:
        return await self.cache.force_refresh()

    def observe(self) -> Subscription[SupportedPairs]:
        return self.cache.observe()

    async def aclose(self) -> None:
        await self.cache.close()

    async def _fetch_pairs(self) -> SupportedPairs:
        if not self._enabled:
            return SupportedPairs.empty()
        fiat = self._fiat_currency
        pairs = await self._client.fetch_supported_pairs(fiat)
        return pairs.only(fiat)


@dataclass
class WalletServices:
    balances: BalanceRepository
    unspent_outputs: UnspentOutputRepository
    supported_pairs: SupportedPairsService

    @property
    def caches(self) -> list[CachedValue]:
        return [
            self.balances.cache,
            self.unspent_outputs.cache,
            self.supported_pairs.cache,
        ]

    async def aclose(self) -> None:
        await self.balances.aclose()
        await self.unspent_outputs.aclose()
        await self.supported_pairs.aclose()


def build_services(
    client: WalletAPIClient,
    settings: WalletSettings,
    *,
    clock: Clock | None = None,
    signals: LifecycleSignals | None = None,
) -> WalletServices:
    """Wire every owning service with the same client, clock and signal source."""
    return WalletServices(
        balances=BalanceRepository(client, clock=clock, signals=signals),
        unspent_outputs=UnspentOutputRepository(
            client,
            refresh_seconds=settings.unspent_refresh_seconds,
            clock=clock,
            signals=signals,
        ),
        supported_pairs=SupportedPairsService(
            client,
            fiat_currency=settings.fiat_currency,
            enabled=settings.simple_buy_enabled,
            refresh_seconds=settings.pairs_refresh_seconds,
            clock=clock,
            signals=signals,
        ),
    )
